"""
Bisna: repositories, filter criteria and transactional entity services on top
of SQLAlchemy.
"""

from bisna.exceptions import BisnaError, InvalidClassError, PersistenceFailure, ProgrammingError
from bisna.filters import Criteria, Query
from bisna.repositories import Repository
from bisna.services import EntityService, NotificationService, ServiceContexts

__version__ = "0.1.0"

__all__ = [
    "BisnaError",
    "InvalidClassError",
    "PersistenceFailure",
    "ProgrammingError",
    "Criteria",
    "Query",
    "Repository",
    "EntityService",
    "NotificationService",
    "ServiceContexts",
]
