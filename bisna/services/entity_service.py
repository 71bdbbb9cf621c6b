"""
Entity service: the minimum contract of every service managing an entity.

This module handles:
- Saving and deleting entities inside a transaction on the write context
- Reading entities by identifier or filter criteria on the read context
- Translating backend failures into ``PersistenceFailure``
- Notifying an optional observer of every failure

Write operations roll the transaction back before the failure is reported, so
a failed write never leaves partial changes committed. Nothing is retried.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, NoReturn, Optional, Type, TypeVar, Union

from bisna.adapters.database import PersistenceContext
from bisna.exceptions import PersistenceFailure, ProgrammingError
from bisna.filters.criteria import Criteria
from bisna.repositories.base import Repository
from bisna.services.notification import EXCEPTION_EVENT, Observer

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

DEFAULT_ALIAS = "e"


@dataclass(frozen=True)
class ServiceContexts:
    """Persistence contexts used by a service: one for reads, one for writes."""
    read: PersistenceContext
    write: PersistenceContext


class EntityService(Generic[T]):
    """Service providing transactional persistence for one entity class."""

    def __init__(self, entity_class: Type[T],
                 contexts: Union[ServiceContexts, PersistenceContext],
                 observer: Optional[Observer] = None):
        """Initialize the service.

        Args:
            entity_class: Mapped entity class managed by the service
            contexts: Read and write contexts, or a single context used for both
            observer: Optional observer notified of failures
        """
        if isinstance(contexts, PersistenceContext):
            contexts = ServiceContexts(read=contexts, write=contexts)

        self.entity_class = entity_class
        self.contexts = contexts
        self.observer = observer

    @classmethod
    def from_factory(cls, entity_class: Type[T], factory, observer: Optional[Observer] = None,
                     read_context: Optional[str] = None,
                     write_context: Optional[str] = None) -> "EntityService[T]":
        """
        Create a service with contexts from a ``PersistenceContextFactory``.

        Context names default to the ``READ_CONTEXT`` and ``WRITE_CONTEXT``
        settings. When both names are the same the service uses one context.
        """
        read_name = read_context or factory.settings.READ_CONTEXT
        write_name = write_context or factory.settings.WRITE_CONTEXT

        write = factory.create_context(write_name)
        read = write if read_name == write_name else factory.create_context(read_name)
        return cls(entity_class, ServiceContexts(read=read, write=write), observer)

    @property
    def read_repository(self) -> Repository[T]:
        return self.contexts.read.get_repository(self.entity_class)

    @property
    def write_repository(self) -> Repository[T]:
        return self.contexts.write.get_repository(self.entity_class)

    def build_filter_criteria(self, alias: str = DEFAULT_ALIAS) -> Criteria:
        """
        Create a new filter criteria over the service's entity.

        Args:
            alias: Root alias (default ``"e"``)

        Returns:
            Criteria: New criteria
        """
        return self.read_repository.create_criteria(alias)

    def filter(self, criteria: Optional[Criteria] = None) -> List[T]:
        """
        Get a list of filtered entities.

        Args:
            criteria: Filter criteria. All entities are returned if omitted.

        Returns:
            List[T]: Matching entities

        Raises:
            PersistenceFailure: If the backend fails
        """
        try:
            if criteria is None:
                criteria = self.build_filter_criteria()

            return self.read_repository.filter(criteria)
        except ProgrammingError:
            raise
        except Exception as e:
            self._fail(e, "Unable to retrieve entities.", "filter")

    def get(self, id: Any) -> Optional[T]:
        """
        Get an entity by its identifier.

        Args:
            id: Primary key value

        Returns:
            Optional[T]: Entity if found, None otherwise

        Raises:
            PersistenceFailure: If the backend fails
        """
        try:
            return self.read_repository.find(id)
        except ProgrammingError:
            raise
        except Exception as e:
            self._fail(e, f"Unable to retrieve entity with ID: {id}", "get", id)

    def delete(self, id: Any) -> bool:
        """
        Delete an entity by its identifier.

        Args:
            id: Primary key value

        Returns:
            bool: True once the deletion is committed

        Raises:
            PersistenceFailure: If the backend fails; the transaction is rolled back
        """
        try:
            self.contexts.write.transactional(
                lambda context: context.get_repository(self.entity_class).delete(id)
            )
            logger.debug(f"Deleted {self.entity_class.__name__} with ID: {id}")
            return True
        except ProgrammingError:
            raise
        except Exception as e:
            self._fail(e, f"Unable to delete entity with ID: {id}", "delete", id)

    def save(self, entity: T) -> bool:
        """
        Save the entity on storage.

        Args:
            entity: Entity to insert or update

        Returns:
            bool: True once the changes are committed

        Raises:
            PersistenceFailure: If the backend fails; the transaction is rolled back
        """
        # Identifiers assigned by a flush that is rolled back do not count
        entity_id = self.contexts.write.get_identifier(entity)
        try:
            self.contexts.write.transactional(
                lambda context: context.get_repository(self.entity_class).save(entity)
            )
            logger.debug(f"Saved {self.entity_class.__name__} with ID: {self.contexts.write.get_identifier(entity)}")
            return True
        except ProgrammingError:
            raise
        except Exception as e:
            message = ("Unable to save new entity."
                       if entity_id is None
                       else f"Unable to save entity with ID: {entity_id}")
            self._fail(e, message, "save", entity_id)

    def transactional(self, callback: Callable[[Repository[T]], R]) -> R:
        """
        Run several repository calls in one transaction on the write context.

            service.transactional(lambda repository: [repository.save(e) for e in entities])

        Args:
            callback: Callable receiving the write repository

        Returns:
            The callback's return value

        Raises:
            PersistenceFailure: If the callback or the backend fails; the
                transaction is rolled back
        """
        try:
            return self.contexts.write.transactional(
                lambda context: callback(context.get_repository(self.entity_class))
            )
        except ProgrammingError:
            raise
        except Exception as e:
            self._fail(e, "Unable to complete transaction.", "transaction")

    def _fail(self, error: Exception, message: str, operation: str, entity_id: Any = None) -> NoReturn:
        """Notify the observer and raise the uniform failure for ``error``."""
        self._dispatch_exception_event(error)
        logger.error(f"{message} ({self.entity_class.__name__}): {str(error)}", exc_info=True)
        raise PersistenceFailure(message, operation, entity_id, error) from error

    def _dispatch_exception_event(self, error: Exception) -> None:
        if self.observer is not None:
            self.observer.notify(EXCEPTION_EVENT, error)
