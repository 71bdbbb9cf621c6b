"""
Persistence context interface.

A persistence context is the unit of work the repositories and services talk
to: it demarcates transactions, tracks entities to persist or remove, loads
entities by identifier, executes compiled filter queries and hands out one
repository per entity class.

Contexts are not thread-safe. Each request or thread uses its own context, and
at most one transaction is active on a context at any time.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Type, TypeVar, TYPE_CHECKING

from bisna.filters.query import Query

if TYPE_CHECKING:
    from bisna.repositories.base import Repository

T = TypeVar('T')
R = TypeVar('R')

logger = logging.getLogger(__name__)

class PersistenceContext(ABC):
    """Abstract base class for persistence contexts."""

    @abstractmethod
    def begin_transaction(self) -> None:
        """Begin a transaction.

        Raises:
            ProgrammingError: If a transaction is already active
        """
        pass

    @abstractmethod
    def commit(self) -> None:
        """Commit the active transaction."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Roll back the active transaction and discard pending changes."""
        pass

    @abstractmethod
    def in_transaction(self) -> bool:
        """Check whether a transaction begun with ``begin_transaction`` is active."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Write pending changes to the database."""
        pass

    @abstractmethod
    def persist(self, entity: Any) -> None:
        """Mark an entity for persistence."""
        pass

    @abstractmethod
    def remove(self, entity: Any) -> None:
        """Mark an entity for removal."""
        pass

    @abstractmethod
    def find(self, entity_class: Type[T], id: Any) -> Optional[T]:
        """Load an entity by identifier.

        Returns:
            The entity if found, None otherwise
        """
        pass

    @abstractmethod
    def get_reference(self, entity_class: Type[T], id: Any) -> T:
        """Get a reference to an entity without loading it from the database."""
        pass

    @abstractmethod
    def get_identifier(self, entity: Any) -> Any:
        """Get the identifier of an entity.

        Returns:
            The identifier, a tuple for composite keys, or None if unset
        """
        pass

    @abstractmethod
    def execute(self, query: Query) -> List[Any]:
        """Execute a compiled filter query and return the root entities."""
        pass

    @abstractmethod
    def count(self, query: Query) -> int:
        """Count the root entities matching a compiled filter query."""
        pass

    @abstractmethod
    def get_repository(self, entity_class: Type[T]) -> "Repository[T]":
        """Get the repository for an entity class."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the resources held by the context."""
        pass

    def transactional(self, callback: Callable[["PersistenceContext"], R]) -> R:
        """
        Run a callback inside a transaction.

        The transaction is flushed and committed when the callback returns,
        and rolled back exactly once if any step fails. The error is re-raised
        unchanged.

        Args:
            callback: Callable receiving this context

        Returns:
            The callback's return value
        """
        self.begin_transaction()
        try:
            result = callback(self)
            self.flush()
            self.commit()
            return result
        except Exception:
            self.rollback()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
