"""
Expression helpers for filter criteria.

Predicates handed to a ``Criteria`` can be raw SQL fragments, SQLAlchemy
column expressions, or the ``Andx``/``Orx`` composites defined here. The
``Expr`` factory builds column expressions from ``"alias.column"`` strings:

    expr = criteria.expr()
    criteria.where(expr.orx(expr.eq("u.id", 1), expr.eq("u.id", 2)))

Composites are immutable; ``add()`` returns a new composite so that a query
compiled earlier never sees later additions.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from sqlalchemy import and_, or_, not_, true, false, bindparam, literal, literal_column, text
from sqlalchemy.sql.elements import BindParameter, ClauseElement, TextClause
from sqlalchemy.sql.visitors import replacement_traverse
from sqlalchemy.types import NullType

PLACEHOLDER_PATTERN = re.compile(r"^[:?](\w+)$")
POSITIONAL_PATTERN = re.compile(r"\?(\d+)")
# Same rule sqlalchemy.text() uses to find bind parameters
NAMED_PATTERN = re.compile(r"(?<![:\w\x5c]):(\w+)(?!:)")


def normalize_key(key: Any) -> str:
    """
    Normalize a parameter key.

    ``":user_id"`` and ``"user_id"`` name the same parameter, as do the
    positions ``1``, ``"1"`` and ``"?1"``.
    """
    key = str(key)
    if key[:1] in (":", "?"):
        key = key[1:]
    return key


@dataclass(frozen=True)
class Andx:
    """Logical conjunction of predicates."""

    parts: Tuple[Any, ...] = ()

    def add(self, *parts: Any) -> "Andx":
        return Andx(self.parts + tuple(parts))

    def count(self) -> int:
        return len(self.parts)


@dataclass(frozen=True)
class Orx:
    """Logical disjunction of predicates."""

    parts: Tuple[Any, ...] = ()

    def add(self, *parts: Any) -> "Orx":
        return Orx(self.parts + tuple(parts))

    def count(self) -> int:
        return len(self.parts)


def column(name: str) -> ClauseElement:
    """Reference a column by its ``alias.column`` name."""
    return literal_column(name)


def operand(value: Any, expanding: bool = False) -> Any:
    """
    Coerce the right-hand side of a comparison.

    Strings shaped like ``:name`` or ``?1`` become bound parameters named
    ``name`` / ``1``. SQLAlchemy clauses pass through; other values are bound
    by SQLAlchemy as literals.
    """
    if isinstance(value, str):
        match = PLACEHOLDER_PATTERN.match(value)
        if match:
            return bindparam(match.group(1), expanding=expanding)
    return value


def _left(value: Any) -> Any:
    return column(value) if isinstance(value, str) else value


class Expr:
    """Factory for predicate expressions."""

    @staticmethod
    def andx(*parts: Any) -> Andx:
        return Andx(tuple(parts))

    @staticmethod
    def orx(*parts: Any) -> Orx:
        return Orx(tuple(parts))

    @staticmethod
    def not_(predicate: Any) -> ClauseElement:
        return not_(to_clause(predicate))

    @staticmethod
    def eq(x: Any, y: Any) -> ClauseElement:
        return _left(x) == operand(y)

    @staticmethod
    def neq(x: Any, y: Any) -> ClauseElement:
        return _left(x) != operand(y)

    @staticmethod
    def lt(x: Any, y: Any) -> ClauseElement:
        return _left(x) < operand(y)

    @staticmethod
    def lte(x: Any, y: Any) -> ClauseElement:
        return _left(x) <= operand(y)

    @staticmethod
    def gt(x: Any, y: Any) -> ClauseElement:
        return _left(x) > operand(y)

    @staticmethod
    def gte(x: Any, y: Any) -> ClauseElement:
        return _left(x) >= operand(y)

    @staticmethod
    def like(x: Any, pattern: Any) -> ClauseElement:
        return _left(x).like(operand(pattern))

    @staticmethod
    def in_(x: Any, values: Any) -> ClauseElement:
        return _left(x).in_(operand(values, expanding=True))

    @staticmethod
    def not_in(x: Any, values: Any) -> ClauseElement:
        return _left(x).not_in(operand(values, expanding=True))

    @staticmethod
    def is_null(x: Any) -> ClauseElement:
        return _left(x).is_(None)

    @staticmethod
    def is_not_null(x: Any) -> ClauseElement:
        return _left(x).is_not(None)

    @staticmethod
    def between(x: Any, low: Any, high: Any) -> ClauseElement:
        return _left(x).between(operand(low), operand(high))

    @staticmethod
    def column(name: str) -> ClauseElement:
        return column(name)

    @staticmethod
    def literal(value: Any) -> ClauseElement:
        return literal(value)

    @staticmethod
    def param(name: str, type_: Any = None) -> ClauseElement:
        return bindparam(normalize_key(name), type_=type_)


def text_predicate(fragment: str, types: Optional[Mapping[str, Any]] = None) -> TextClause:
    """
    Turn a raw SQL fragment into a text clause.

    Positional placeholders ``?1`` are rewritten to the named parameter ``:1``.
    Placeholders with a registered type hint get a typed bound parameter.
    """
    fragment = POSITIONAL_PATTERN.sub(r":\1", fragment)
    clause = text(fragment)
    if types:
        names = set(NAMED_PATTERN.findall(fragment))
        typed = [bindparam(name, type_=type_) for name, type_ in types.items()
                 if name in names and type_ is not None]
        if typed:
            clause = clause.bindparams(*typed)
    return clause


def typed_clause(clause: ClauseElement, types: Optional[Mapping[str, Any]] = None) -> ClauseElement:
    """
    Apply parameter type hints to the named bound parameters of a clause.

    Bound parameters that already carry a type are left as they are.
    """
    if not types:
        return clause

    def replace(element):
        if isinstance(element, BindParameter) and element.key in types \
                and types[element.key] is not None and isinstance(element.type, NullType):
            return bindparam(
                element.key,
                value=element.value,
                type_=types[element.key],
                expanding=element.expanding,
                required=element.required,
            )
        return None

    return replacement_traverse(clause, {}, replace)


def to_clause(predicate: Any, types: Optional[Mapping[str, Any]] = None) -> Any:
    """
    Convert a predicate tree into a SQLAlchemy clause.

    Args:
        predicate: Raw SQL fragment, SQLAlchemy clause, or ``Andx``/``Orx`` composite
        types: Parameter type hints applied to named placeholders

    Returns:
        The SQLAlchemy clause
    """
    if isinstance(predicate, Andx):
        if not predicate.parts:
            return true()
        return and_(*(to_clause(part, types) for part in predicate.parts))
    if isinstance(predicate, Orx):
        if not predicate.parts:
            return false()
        return or_(*(to_clause(part, types) for part in predicate.parts))
    if isinstance(predicate, str):
        return text_predicate(predicate, types)
    if isinstance(predicate, ClauseElement):
        return typed_clause(predicate, types)
    return predicate
