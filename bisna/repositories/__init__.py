"""
This package contains the repository implementation for entity persistence.

Repositories provide a clean abstraction layer over a persistence context,
separating business logic from data access concerns.
"""

from bisna.repositories.base import Repository

__all__ = ["Repository"]
