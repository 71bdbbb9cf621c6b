"""
Base repository implementation for entity persistence.

A repository is a stateless gateway bound to one entity class and one
persistence context. It marks entities for persistence or removal in the
context's unit of work, and reads entities back by identifier or through
filter criteria. It never commits: transaction demarcation belongs to the
caller, usually an ``EntityService``.

Backend errors are not caught here; they propagate to the caller.
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, TYPE_CHECKING

from bisna.filters.criteria import Criteria

if TYPE_CHECKING:
    from bisna.adapters.database import PersistenceContext

# Type variable for the entity
T = TypeVar('T')

logger = logging.getLogger(__name__)

class Repository(Generic[T]):
    """
    Generic repository for entity persistence.

    Subclass it to add entity-specific queries and point the entity's
    ``__repository_class__`` at the subclass; the persistence context then
    hands out the subclass for that entity.

    Attributes:
        context (PersistenceContext): Persistence context the repository works on
        entity_class (Type[T]): Mapped entity class
    """

    def __init__(self, context: "PersistenceContext", entity_class: Type[T]):
        """
        Initialize the repository.

        Args:
            context (PersistenceContext): Persistence context
            entity_class (Type[T]): Mapped entity class
        """
        self.context = context
        self.entity_class = entity_class

    @property
    def entity_name(self) -> str:
        return self.entity_class.__name__

    def create_criteria(self, alias: str) -> Criteria:
        """
        Create filter criteria over this repository's entity.

        Args:
            alias (str): Root alias used in predicates and orderings

        Returns:
            Criteria: New criteria
        """
        return Criteria(self.entity_class, alias)

    def save(self, entity: T) -> None:
        """
        Mark an entity for persistence.

        The entity receives its identifier when the unit of work is flushed,
        not when this method returns.

        Args:
            entity (T): Entity to persist
        """
        self.context.persist(entity)

    def delete(self, id: Any) -> None:
        """
        Mark the entity with the given identifier for removal.

        Only a reference is loaded (no database read); whether the row exists
        is left to the backend when the removal is flushed.

        Args:
            id (Any): Primary key value
        """
        reference = self.context.get_reference(self.entity_class, id)
        self.context.remove(reference)

    def find(self, id: Any) -> Optional[T]:
        """
        Get an entity by identifier.

        Args:
            id (Any): Primary key value

        Returns:
            Optional[T]: Entity if found, None otherwise
        """
        return self.context.find(self.entity_class, id)

    def filter(self, criteria: Criteria) -> List[T]:
        """
        Get the entities matching a filter criteria.

        Results follow the criteria's ordering; without one the order is
        whatever the backend returns.

        Args:
            criteria (Criteria): Filter criteria

        Returns:
            List[T]: Matching entities
        """
        query = criteria.compile()
        return self.context.execute(query)

    def count(self, criteria: Optional[Criteria] = None) -> int:
        """
        Count the entities matching a filter criteria, ignoring pagination.

        Args:
            criteria (Criteria, optional): Filter criteria. Counts all entities if omitted.

        Returns:
            int: Number of matching entities
        """
        if criteria is None:
            criteria = self.create_criteria("e")
        return self.context.count(criteria.compile())

    def find_all(self) -> List[T]:
        """Get all entities."""
        return self.filter(self.create_criteria("e"))

    def find_by(self, filters: Dict[str, Any], order_by: Optional[Dict[str, str]] = None,
                limit: Optional[int] = None, offset: Optional[int] = None) -> List[T]:
        """
        Get the entities whose fields equal the given values.

        Args:
            filters (Dict[str, Any]): Field values to match
            order_by (Dict[str, str], optional): Field to direction ("ASC"/"DESC")
            limit (int, optional): Maximum number of entities
            offset (int, optional): Number of entities to skip

        Returns:
            List[T]: Matching entities
        """
        return self.filter(self._criteria_for(filters, order_by, limit, offset))

    def find_one_by(self, filters: Dict[str, Any]) -> Optional[T]:
        """
        Get the first entity whose fields equal the given values.

        Returns:
            Optional[T]: Entity if found, None otherwise
        """
        results = self.filter(self._criteria_for(filters, limit=1))
        return results[0] if results else None

    def _criteria_for(self, filters: Dict[str, Any], order_by: Optional[Dict[str, str]] = None,
                      limit: Optional[int] = None, offset: Optional[int] = None) -> Criteria:
        criteria = self.create_criteria("e")
        root = criteria.alias("e")
        for field, value in filters.items():
            attribute = getattr(root, field)
            criteria.and_where(attribute.is_(None) if value is None else attribute == value)
        for field, direction in (order_by or {}).items():
            criteria.add_order_by(getattr(root, field), direction)
        return criteria.set_max_results(limit).set_offset(offset)
