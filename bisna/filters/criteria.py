"""
Filter criteria for entity queries.

``Criteria`` is a mutable, fluent builder over SQLAlchemy's ``select()``. It
collects joins, predicates, orderings, parameter bindings and pagination for
one root entity, and compiles them into an immutable ``Query``.

Usage:
    criteria = service.build_filter_criteria("u") \\
        .left_join("u.phonenumbers", "p") \\
        .where("u.active = :active") \\
        .set_parameter("active", True) \\
        .order_by("u.name") \\
        .set_max_results(10)

    users = service.filter(criteria)

Raw SQL fragments reference the aliases given to the root entity and to the
joins, and the column names of their tables.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, inspect, literal_column, select
from sqlalchemy.orm import aliased, contains_eager

from bisna.exceptions import ProgrammingError
from bisna.filters.expr import Andx, Expr, Orx, normalize_key, to_clause
from bisna.filters.query import Join, Ordering, Parameter, Query

logger = logging.getLogger(__name__)

INNER_JOIN = "inner"
LEFT_JOIN = "left"
JOIN_KINDS = (INNER_JOIN, LEFT_JOIN)
DIRECTIONS = ("ASC", "DESC")


def _pagination_value(value: Optional[int], name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ProgrammingError(f"{name} must be a non-negative integer or None, got {value!r}.")
    return value


class Criteria:
    """
    Composes a filtered, joined, ordered and paginated query over one entity.

    Every mutator returns the criteria itself so calls can be chained.

    Attributes:
        root_alias (str): Alias of the root entity, fixed at construction
        root_entity (type): Root entity class
    """

    def __init__(self, entity_class: Optional[type] = None, alias: Optional[str] = None):
        """
        Initialize the criteria.

        Args:
            entity_class: Mapped class queried by the criteria
            alias: Alias of the root entity in predicates and orderings
        """
        self._entity_class = entity_class
        self._root_alias = alias
        self._joins: List[Join] = []
        self._predicate: Any = None
        self._orderings: List[Ordering] = []
        self._parameters: Dict[str, Parameter] = {}
        self._offset: Optional[int] = None
        self._max_results: Optional[int] = None
        self._aliased: Dict[str, Any] = {}

    @property
    def root_alias(self) -> Optional[str]:
        """
        Gets the root alias of the criteria.

            service.build_filter_criteria("u").root_alias  # "u"
        """
        return self._root_alias

    @property
    def root_entity(self) -> Optional[type]:
        return self._entity_class

    @property
    def root_entity_name(self) -> Optional[str]:
        """
        Gets the name of the root entity.

            service.build_filter_criteria("u").root_entity_name  # "User"
        """
        return self._entity_class.__name__ if self._entity_class is not None else None

    @property
    def joins(self) -> Tuple[Join, ...]:
        return tuple(self._joins)

    @property
    def predicate(self) -> Any:
        return self._predicate

    @property
    def orderings(self) -> Tuple[Ordering, ...]:
        return tuple(self._orderings)

    def expr(self) -> Expr:
        """Retrieve the expression builder."""
        return Expr()

    def alias(self, name: str) -> Any:
        """
        Retrieve the aliased entity registered under ``name``.

        The returned object builds column expressions bound to the alias:

            u = criteria.alias("u")
            criteria.where(u.email.like("%@example.com"))

        Args:
            name: Root alias or join alias

        Returns:
            SQLAlchemy aliased entity

        Raises:
            ProgrammingError: If no entity is registered under ``name``
        """
        if name in self._aliased:
            return self._aliased[name]

        if name == self._root_alias and self._entity_class is not None:
            self._aliased[name] = aliased(self._entity_class, name=name)
            return self._aliased[name]

        for index, join in enumerate(self._joins):
            if join.alias == name:
                return self._resolve_join(index)[2]

        raise ProgrammingError(f'Unknown alias "{name}" in filter criteria.')

    def join(self, path: str, alias: str, kind: str = INNER_JOIN) -> "Criteria":
        """
        Creates and adds a join over an entity association.

        The joined alias becomes part of the result projection: the associated
        entities are hydrated onto the root entities.

        Args:
            path: Association path, e.g. ``"u.groups"``
            alias: Alias of the joined entity, e.g. ``"g"``
            kind: ``"inner"`` or ``"left"``

        Returns:
            Criteria: self
        """
        kind = (kind or INNER_JOIN).lower()
        if kind not in JOIN_KINDS:
            raise ProgrammingError(f'Unknown join kind "{kind}", expected one of {", ".join(JOIN_KINDS)}.')

        self._joins.append(Join(path, alias, kind))
        return self

    def left_join(self, path: str, alias: str) -> "Criteria":
        """
        Creates and adds a left join over an entity association.

            criteria = service.build_filter_criteria("u") \\
                .left_join("u.phonenumbers", "p")
        """
        return self.join(path, alias, LEFT_JOIN)

    def inner_join(self, path: str, alias: str) -> "Criteria":
        """
        Creates and adds an inner join over an entity association.

            criteria = service.build_filter_criteria("u") \\
                .inner_join("u.phonenumbers", "p")
        """
        return self.join(path, alias, INNER_JOIN)

    def where(self, *predicates: Any) -> "Criteria":
        """
        Specifies one or more restrictions to the query result.
        Replaces any previously specified restrictions. Several predicates
        form a logical conjunction; calling with none clears the restrictions.

            criteria.where("u.id = ?1")

            expr = criteria.expr()
            criteria.where(expr.orx(expr.eq("u.id", 1), expr.eq("u.id", 2)))

        Returns:
            Criteria: self
        """
        if not predicates:
            self._predicate = None
        elif len(predicates) == 1:
            self._predicate = predicates[0]
        else:
            self._predicate = Andx(tuple(predicates))
        return self

    def and_where(self, *predicates: Any) -> "Criteria":
        """
        Adds restrictions forming a logical conjunction with the existing ones.

            criteria.where("u.username LIKE ?1").and_where("u.is_active = 1")

        Returns:
            Criteria: self
        """
        if not predicates:
            return self
        if self._predicate is None:
            return self.where(*predicates)

        if isinstance(self._predicate, Andx):
            self._predicate = self._predicate.add(*predicates)
        else:
            self._predicate = Andx((self._predicate,) + predicates)
        return self

    def or_where(self, *predicates: Any) -> "Criteria":
        """
        Adds restrictions forming a logical disjunction with the existing ones.

            criteria.where("u.username LIKE ?1").or_where("u.is_active = 1")

        Returns:
            Criteria: self
        """
        if not predicates:
            return self
        if self._predicate is None:
            return self.where(*predicates)

        if isinstance(self._predicate, Orx):
            self._predicate = self._predicate.add(*predicates)
        else:
            self._predicate = Orx((self._predicate,) + predicates)
        return self

    def order_by(self, field: Any, direction: Optional[str] = None) -> "Criteria":
        """
        Specifies an ordering for the query results, replacing any previous one.

        Args:
            field: Ordering expression, e.g. ``"u.name"``
            direction: ``"ASC"`` (default) or ``"DESC"``

        Returns:
            Criteria: self
        """
        self._orderings = []
        return self.add_order_by(field, direction)

    def add_order_by(self, field: Any, direction: Optional[str] = None) -> "Criteria":
        """Adds an ordering to the query results."""
        direction = (direction or "ASC").upper()
        if direction not in DIRECTIONS:
            raise ProgrammingError(f'Invalid ordering direction "{direction}", expected ASC or DESC.')

        self._orderings.append(Ordering(field, direction))
        return self

    def set_parameter(self, key: Any, value: Any, type_: Any = None) -> "Criteria":
        """
        Sets a parameter for the query being constructed.

            criteria.where("u.id = :user_id").set_parameter(":user_id", 1)

        Args:
            key: Parameter name or position
            value: Parameter value
            type_: Optional SQLAlchemy type for the bound value

        Returns:
            Criteria: self
        """
        name = normalize_key(key)
        self._parameters[name] = Parameter(name, value, type_)
        return self

    def set_parameters(self, params: Mapping[Any, Any], types: Optional[Mapping[Any, Any]] = None) -> "Criteria":
        """
        Sets a collection of parameters. Existing parameters whose keys are
        not in ``params`` are kept.

            criteria.where("u.id = :user_id1 OR u.id = :user_id2") \\
                .set_parameters({":user_id1": 1, ":user_id2": 2})

        Args:
            params: Parameter values by name or position
            types: Optional SQLAlchemy types by name or position

        Returns:
            Criteria: self
        """
        types = {normalize_key(key): type_ for key, type_ in (types or {}).items()}
        for key, value in params.items():
            name = normalize_key(key)
            self._parameters[name] = Parameter(name, value, types.get(name))
        return self

    def get_parameters(self) -> Dict[str, Parameter]:
        """Gets all defined query parameters."""
        return dict(self._parameters)

    def get_parameter(self, key: Any) -> Optional[Parameter]:
        """
        Gets a previously set query parameter.

        Returns:
            Optional[Parameter]: The parameter, or None if it was never set
        """
        return self._parameters.get(normalize_key(key))

    def set_offset(self, offset: Optional[int]) -> "Criteria":
        """Sets the position of the first result to retrieve (the "offset")."""
        self._offset = _pagination_value(offset, "Offset")
        return self

    def get_offset(self) -> Optional[int]:
        return self._offset

    def set_max_results(self, max_results: Optional[int]) -> "Criteria":
        """Sets the maximum number of results to retrieve (the "limit")."""
        self._max_results = _pagination_value(max_results, "Max results")
        return self

    def get_max_results(self) -> Optional[int]:
        return self._max_results

    def compile(self) -> Query:
        """
        Compile the current state into an executable query snapshot.

        Returns:
            Query: Snapshot unaffected by later changes to this criteria

        Raises:
            ProgrammingError: If the root entity or alias is missing, or a join
                path cannot be resolved
        """
        if not self._root_alias or self._entity_class is None:
            raise ProgrammingError("Filter criteria requires a root entity and a root alias to compile.")

        root = self.alias(self._root_alias)
        types = {name: parameter.type for name, parameter in self._parameters.items()
                 if parameter.type is not None}

        statement = select(root)
        count_base = select(*self._primary_key_columns(root))

        loaders = {}
        for index, join in enumerate(self._joins):
            parent, attribute, target = self._resolve_join(index)
            path = attribute.of_type(target)
            is_outer = join.kind == LEFT_JOIN
            statement = statement.join(path, isouter=is_outer)
            count_base = count_base.join(path, isouter=is_outer)

            parent_alias = join.path.partition(".")[0]
            if parent_alias in loaders:
                loaders[join.alias] = loaders[parent_alias].contains_eager(path)
            else:
                loaders[join.alias] = contains_eager(path)

        if loaders:
            statement = statement.options(*loaders.values())

        if self._predicate is not None:
            clause = to_clause(self._predicate, types)
            statement = statement.where(clause)
            count_base = count_base.where(clause)

        for ordering in self._orderings:
            field = literal_column(ordering.field) if isinstance(ordering.field, str) else ordering.field
            statement = statement.order_by(field.desc() if ordering.direction == "DESC" else field.asc())

        if self._offset is not None:
            statement = statement.offset(self._offset)
        if self._max_results is not None:
            statement = statement.limit(self._max_results)

        count_statement = select(func.count()).select_from(count_base.distinct().subquery())

        query = Query(
            entity_class=self._entity_class,
            root_alias=self._root_alias,
            aliases=(self._root_alias,) + tuple(join.alias for join in self._joins),
            joins=tuple(self._joins),
            predicate=self._predicate,
            orderings=tuple(self._orderings),
            parameters=self._parameters,
            offset=self._offset,
            max_results=self._max_results,
            statement=statement,
            count_statement=count_statement,
        )
        logger.debug(f"Compiled filter criteria for {self.root_entity_name}: {query.get_sql()}")
        return query

    def _resolve_join(self, index: int) -> Tuple[Any, Any, Any]:
        """Resolve a join into (parent aliased entity, association attribute, target aliased entity)."""
        join = self._joins[index]
        parent_alias, _, association = join.path.partition(".")
        if not association:
            raise ProgrammingError(f'Join path "{join.path}" must have the form "<alias>.<association>".')

        # A join may only start from the root or from an earlier join
        known = {self._root_alias} | {earlier.alias for earlier in self._joins[:index]}
        if parent_alias not in known:
            raise ProgrammingError(f'Join path "{join.path}" refers to unknown alias "{parent_alias}".')

        parent = self.alias(parent_alias)
        mapper = inspect(parent).mapper
        if association not in mapper.relationships:
            raise ProgrammingError(f'"{association}" is not an association of {mapper.class_.__name__}.')

        target = self._aliased.get(join.alias)
        if target is None:
            target = aliased(mapper.relationships[association].mapper.class_, name=join.alias)
            self._aliased[join.alias] = target

        return parent, getattr(parent, association), target

    @staticmethod
    def _primary_key_columns(root: Any) -> List[Any]:
        mapper = inspect(root).mapper
        return [getattr(root, mapper.get_property_by_column(column).key) for column in mapper.primary_key]
