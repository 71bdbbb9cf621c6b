"""
Filter criteria for entity queries.

This package contains the fluent ``Criteria`` builder, the expression helpers
used to build predicates, and the immutable ``Query`` snapshot that criteria
compile into.
"""

from bisna.filters.criteria import Criteria, INNER_JOIN, LEFT_JOIN
from bisna.filters.expr import Andx, Expr, Orx
from bisna.filters.query import Join, Ordering, Parameter, Query

__all__ = [
    "Criteria",
    "INNER_JOIN",
    "LEFT_JOIN",
    "Andx",
    "Expr",
    "Orx",
    "Join",
    "Ordering",
    "Parameter",
    "Query",
]
