"""
Client-side evaluation of predicates over output rows.

Used when a predicate could not be pushed down. Evaluation follows plain
SQL semantics (AND is an intersection, a NULL operand never matches),
unlike the upstream key mask. Opaque nodes cannot be evaluated here and
are treated as true, so rows are only ever kept for the engine to decide.
"""
from __future__ import annotations

import operator
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..models import (
    And,
    Comparison,
    ComparisonOp,
    Membership,
    Opaque,
    OptionalFilter,
    Or,
    Predicate,
    Range,
)
from .filter_encoder import format_constant

_OPERATORS: Dict[ComparisonOp, Callable[[Any, Any], bool]] = {
    ComparisonOp.EQ: operator.eq,
    ComparisonOp.NE: operator.ne,
    ComparisonOp.GT: operator.gt,
    ComparisonOp.GE: operator.ge,
    ComparisonOp.LT: operator.lt,
    ComparisonOp.LE: operator.le,
}


def _coerce(row_value: Any, constant: Any) -> Optional[Tuple[Any, Any]]:
    if row_value is None or constant is None:
        return None
    if isinstance(row_value, float):
        try:
            return row_value, float(constant)
        except (TypeError, ValueError):
            return None
    return str(row_value), format_constant(constant)


def _compare(row: Mapping[str, Any], dimension: str, op: ComparisonOp, constant: Any) -> bool:
    pair = _coerce(row.get(dimension.lower()), constant)
    if pair is None:
        return False
    return _OPERATORS[op](*pair)


def matches(predicate: Predicate, row: Mapping[str, Any]) -> bool:
    """Evaluate ``predicate`` against a row keyed by lower-case column name."""
    if isinstance(predicate, Comparison):
        return _compare(row, predicate.dimension, predicate.op, predicate.value)
    if isinstance(predicate, Membership):
        return any(_compare(row, predicate.dimension, ComparisonOp.EQ, v) for v in predicate.values)
    if isinstance(predicate, Range):
        return _compare(row, predicate.dimension, ComparisonOp.GE, predicate.lower) and _compare(
            row, predicate.dimension, ComparisonOp.LE, predicate.upper
        )
    if isinstance(predicate, And):
        return all(matches(child, row) for child in predicate.children)
    if isinstance(predicate, Or):
        return any(matches(child, row) for child in predicate.children)
    if isinstance(predicate, OptionalFilter):
        return predicate.child is None or matches(predicate.child, row)
    if isinstance(predicate, Opaque):
        return True
    raise TypeError(f"Unsupported predicate type: {type(predicate).__name__}")
