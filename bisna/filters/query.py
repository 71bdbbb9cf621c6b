"""
Compiled filter queries.

A ``Query`` is the immutable snapshot produced by ``Criteria.compile()``. It
keeps the builder state it was compiled from together with the SQLAlchemy
statements built from that state, so mutating the criteria afterwards never
changes a query that was already compiled.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.sql import Select


class Parameter(NamedTuple):
    """A bound query parameter."""
    name: str
    value: Any
    type: Any = None


class Join(NamedTuple):
    """A join over an entity association, e.g. ``Join("u.phonenumbers", "p", "left")``."""
    path: str
    alias: str
    kind: str = "inner"


class Ordering(NamedTuple):
    """An ordering clause."""
    field: Any
    direction: str = "ASC"


@dataclass(frozen=True, eq=False)
class Query:
    """
    Immutable, executable snapshot of a filter criteria.

    Attributes:
        entity_class: Root entity class
        root_alias: Alias of the root entity
        aliases: Aliases in the result projection, root first
        joins: Join clauses in registration order
        predicate: Predicate tree (``None`` when unfiltered)
        orderings: Ordering clauses
        parameters: Read-only ``name -> Parameter`` mapping
        offset: Number of leading results skipped, or ``None``
        max_results: Result cap, or ``None``
        statement: SQLAlchemy select of the root entities
        count_statement: SQLAlchemy select counting matching root entities
    """
    entity_class: type
    root_alias: str
    aliases: Tuple[str, ...]
    joins: Tuple[Join, ...]
    predicate: Any
    orderings: Tuple[Ordering, ...]
    parameters: Mapping[str, Parameter]
    offset: Optional[int]
    max_results: Optional[int]
    statement: Select
    count_statement: Select

    def __post_init__(self):
        # List and set values are frozen into tuples
        parameters = {
            name: parameter._replace(value=tuple(parameter.value))
            if isinstance(parameter.value, (list, set)) else parameter
            for name, parameter in self.parameters.items()
        }
        object.__setattr__(self, "parameters", MappingProxyType(parameters))

    def get_parameter_values(self) -> Dict[str, Any]:
        """Get the ``name -> value`` mapping passed to the backend on execution."""
        return {name: parameter.value for name, parameter in self.parameters.items()}

    def get_sql(self) -> str:
        """Render the statement as SQL, for inspection and logging."""
        return str(self.statement)

    def get_result(self, session: Session) -> List[Any]:
        """
        Execute the query and hydrate the root entities.

        Rows produced by collection joins are collapsed so each root entity
        appears once, in statement order.

        Args:
            session: SQLAlchemy session to execute on

        Returns:
            List of root entities
        """
        result = session.execute(self.statement, self.get_parameter_values())
        return list(result.unique().scalars().all())

    def get_count(self, session: Session) -> int:
        """Count the distinct root entities matching the predicates, ignoring pagination."""
        return session.execute(self.count_statement, self.get_parameter_values()).scalar_one()
