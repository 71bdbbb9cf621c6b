"""
SQLAlchemy persistence context.

This module implements the ``PersistenceContext`` interface on top of a
SQLAlchemy ``Session``. The session's identity map and unit of work provide
entity tracking; this class adds explicit transaction demarcation, reference
loading and per-entity repository lookup.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import inspect
from sqlalchemy.orm import Session, make_transient_to_detached
from sqlalchemy.orm.attributes import set_committed_value

from bisna.adapters.database import PersistenceContext
from bisna.exceptions import InvalidClassError, ProgrammingError
from bisna.filters.query import Query
from bisna.repositories.base import Repository

logger = logging.getLogger(__name__)
T = TypeVar('T')

class SQLAlchemyContext(PersistenceContext):
    """Persistence context backed by a SQLAlchemy session."""

    def __init__(self, session: Session, name: str = "default"):
        """Initialize the context.

        Args:
            session: Session owned by this context
            name: Configured name of the context, used in log messages
        """
        self.session = session
        self.name = name
        self._transaction_active = False
        self._repositories: Dict[type, Repository] = {}
        # Pending entities flushed in the current transaction, with their identifiers before the flush
        self._flushed_pending: List[Tuple[Any, Tuple[Any, ...]]] = []

    def begin_transaction(self) -> None:
        if self._transaction_active:
            raise ProgrammingError(f'A transaction is already active on persistence context "{self.name}".')

        # Reads issued before the transaction autobegin one on the session; adopt it
        if not self.session.in_transaction():
            self.session.begin()
        self._transaction_active = True
        logger.debug(f"Began transaction on persistence context {self.name}")

    def commit(self) -> None:
        if not self._transaction_active:
            raise ProgrammingError(f'No active transaction to commit on persistence context "{self.name}".')

        self.session.commit()
        self._transaction_active = False
        self._flushed_pending.clear()
        logger.debug(f"Committed transaction on persistence context {self.name}")

    def rollback(self) -> None:
        """
        Roll back the active transaction.

        Entities inserted by a flush in the rolled back transaction become
        transient again and get back the identifiers they had before the flush.
        """
        self.session.rollback()
        self._transaction_active = False
        for entity, identity in self._flushed_pending:
            if inspect(entity).transient:
                self._set_primary_key(entity, identity)
        self._flushed_pending.clear()
        logger.debug(f"Rolled back transaction on persistence context {self.name}")

    def in_transaction(self) -> bool:
        return self._transaction_active

    def flush(self) -> None:
        self._flushed_pending.extend(
            (entity, self._primary_key(entity)) for entity in self.session.new
        )
        self.session.flush()

    def persist(self, entity: Any) -> None:
        self.session.add(entity)

    def remove(self, entity: Any) -> None:
        self.session.delete(entity)

    def find(self, entity_class: Type[T], id: Any) -> Optional[T]:
        if id is None:
            return None
        return self.session.get(entity_class, id)

    def get_reference(self, entity_class: Type[T], id: Any) -> T:
        """
        Get a reference to an entity without loading it.

        An instance already in the identity map is returned as is. Otherwise a
        detached instance carrying only the primary key is attached to the
        session; its other attributes load lazily on first access.

        Args:
            entity_class: Mapped entity class
            id: Primary key value, or a tuple for composite keys

        Returns:
            The entity reference
        """
        mapper = inspect(entity_class)
        identity = tuple(id) if isinstance(id, (tuple, list)) else (id,)
        if len(identity) != len(mapper.primary_key):
            raise ProgrammingError(
                f"{entity_class.__name__} has {len(mapper.primary_key)} primary key column(s), "
                f"got identifier {id!r}."
            )

        existing = self.session.identity_map.get(mapper.identity_key_from_primary_key(identity))
        if existing is not None:
            return existing

        reference = mapper.class_manager.new_instance()
        for column, value in zip(mapper.primary_key, identity):
            setattr(reference, mapper.get_property_by_column(column).key, value)
        make_transient_to_detached(reference)
        self.session.add(reference)
        return reference

    def get_identifier(self, entity: Any) -> Any:
        state = inspect(entity, raiseerr=False)
        if state is None:
            return getattr(entity, "id", None)

        values = state.identity if state.identity is not None else self._primary_key(entity)
        if all(value is None for value in values):
            return None
        return values[0] if len(values) == 1 else tuple(values)

    def execute(self, query: Query) -> List[Any]:
        return query.get_result(self.session)

    def count(self, query: Query) -> int:
        return query.get_count(self.session)

    def get_repository(self, entity_class: Type[T]) -> Repository[T]:
        """
        Get the repository for an entity class.

        Uses the entity's ``__repository_class__`` when set. Repositories are
        created once per entity class and context.

        Raises:
            InvalidClassError: If ``__repository_class__`` is not a Repository subclass
        """
        repository = self._repositories.get(entity_class)
        if repository is None:
            repository_class = getattr(entity_class, "__repository_class__", None) or Repository
            if not (isinstance(repository_class, type) and issubclass(repository_class, Repository)):
                raise InvalidClassError.missing_interface_implementation(
                    getattr(repository_class, "__name__", repr(repository_class)),
                    Repository.__name__
                )
            repository = repository_class(self, entity_class)
            self._repositories[entity_class] = repository
        return repository

    def close(self) -> None:
        self.session.close()
        self._transaction_active = False
        self._flushed_pending.clear()
        logger.debug(f"Closed persistence context {self.name}")

    @staticmethod
    def _primary_key(entity: Any) -> Tuple[Any, ...]:
        """Primary key attribute values currently set on a mapped entity."""
        state = inspect(entity)
        mapper = state.mapper
        return tuple(state.dict.get(mapper.get_property_by_column(column).key)
                     for column in mapper.primary_key)

    @staticmethod
    def _set_primary_key(entity: Any, values: Tuple[Any, ...]) -> None:
        mapper = inspect(entity).mapper
        for column, value in zip(mapper.primary_key, values):
            set_committed_value(entity, mapper.get_property_by_column(column).key, value)
