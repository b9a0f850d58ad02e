"""
Predicate encoder.

Translates a predicate tree over dataflow dimensions into filter branches
for the Eurostat SDMX 2.1 data query, see
https://ec.europa.eu/eurostat/web/user-guides/data-browser/api-data-access/api-detailed-guidelines/sdmx2-1/data-query

Only a restricted subset is pushed down: equality and IN on coded
dimensions, equality / >= / <= / BETWEEN on ``time_period``, AND, OR.
Anything else makes the whole encoding unsupported (all-or-nothing) and
the caller filters client-side.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence, Union

from ..models import (
    And,
    Comparison,
    ComparisonOp,
    Dimension,
    FilterBranchSet,
    Membership,
    Opaque,
    OptionalFilter,
    Or,
    Predicate,
    Range,
)
from .catalog import find_dimension

logger = logging.getLogger(__name__)

PredicateInput = Union[Predicate, Sequence[Predicate]]

# Characters with a meaning in the key path or the query string.
KEY_RESERVED = frozenset(".+/?&=")
PERIOD_RESERVED = frozenset("&?=")


def format_constant(value: Any) -> str:
    """Text of a constant as it appears in the query."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_valid_key_value(text: str) -> bool:
    return bool(text) and not (set(text) & KEY_RESERVED)


def is_valid_period(text: str) -> bool:
    return bool(text) and not (set(text) & PERIOD_RESERVED)


class FilterEncoder:
    """Encodes predicates against one dataflow catalog.

    One instance owns one :class:`FilterBranchSet` per ``encode`` call;
    nothing is shared between calls.
    """

    def __init__(self, catalog: Sequence[Dimension], debug: bool = False):
        self.catalog = catalog
        self.debug = debug

    def encode(self, predicate: PredicateInput) -> FilterBranchSet:
        """Encode a predicate, or a list of predicates joined by AND."""
        branch_set = FilterBranchSet(self.catalog)

        if isinstance(predicate, (list, tuple)):
            predicates = list(predicate)
        else:
            predicates = [predicate]

        if not predicates:
            branch_set.supported = False
            return branch_set

        for node in predicates:
            if not self._encode_node(node, branch_set):
                branch_set.supported = False
                return branch_set
        return branch_set

    def _reject(self, reason: str) -> bool:
        if self.debug:
            logger.debug(f"Predicate not pushed down: {reason}")
        return False

    def _encode_node(self, node: Predicate, out: FilterBranchSet) -> bool:
        if isinstance(node, Comparison):
            return self._encode_comparison(node, out)
        if isinstance(node, Membership):
            return self._encode_membership(node, out)
        if isinstance(node, Range):
            return self._encode_range(node, out)
        if isinstance(node, And):
            for child in node.children:
                if not self._encode_node(child, out):
                    return False
            return True
        if isinstance(node, Or):
            # Each alternative gets its own branch; a trailing empty one is left behind.
            for child in node.children:
                if not self._encode_node(child, out):
                    return False
                out.push_empty()
            return True
        if isinstance(node, OptionalFilter):
            if node.child is None:
                return True
            return self._encode_node(node.child, out)
        if isinstance(node, Opaque):
            return self._reject(f"opaque expression {node.description!r}")
        return self._reject(f"unknown predicate type {type(node).__name__}")

    def _resolve(self, name: str):
        found = find_dimension(self.catalog, name)
        if found is None:
            self._reject(f"dimension '{name}' is not in the catalog")
            return None
        index, dim = found
        if dim.is_virtual and not dim.is_time:
            self._reject(f"dimension '{dim.name}' is derived client-side")
            return None
        return found

    def _encode_comparison(self, node: Comparison, out: FilterBranchSet) -> bool:
        found = self._resolve(node.dimension)
        if found is None:
            return False
        index, dim = found

        if node.value is None:
            return self._reject(f"NULL constant on '{dim.name}'")

        value = format_constant(node.value)
        branch = out.current

        if dim.is_time:
            if not is_valid_period(value):
                return self._reject(f"time constant {value!r} cannot be sent as a period")
            if node.op is ComparisonOp.GE:
                branch.start_period = value
                return True
            if node.op is ComparisonOp.LE:
                branch.end_period = value
                return True
            if node.op is ComparisonOp.EQ:
                branch.start_period = value
                branch.end_period = value
                return True
            return self._reject(f"operator {node.op.value} on '{dim.name}'")

        if node.op is not ComparisonOp.EQ:
            return self._reject(f"operator {node.op.value} on coded dimension '{dim.name}'")
        if not is_valid_key_value(value):
            return self._reject(f"constant {value!r} cannot be placed in the key of '{dim.name}'")

        # Repeated values at one key position are OR'd by the API.
        branch.add_value(index, value)
        return True

    def _encode_membership(self, node: Membership, out: FilterBranchSet) -> bool:
        found = self._resolve(node.dimension)
        if found is None:
            return False
        _, dim = found

        if dim.is_time and len(node.values) > 1:
            return self._reject("the API accepts a single time period or a range, not a list")

        for value in node.values:
            if not self._encode_comparison(Comparison(node.dimension, ComparisonOp.EQ, value), out):
                return False
        return True

    def _encode_range(self, node: Range, out: FilterBranchSet) -> bool:
        found = self._resolve(node.dimension)
        if found is None:
            return False
        _, dim = found

        if not dim.is_time:
            return self._reject(f"BETWEEN on coded dimension '{dim.name}'")
        if node.lower is None or node.upper is None:
            return self._reject("BETWEEN with a NULL bound")

        lower = format_constant(node.lower)
        upper = format_constant(node.upper)
        if not (is_valid_period(lower) and is_valid_period(upper)):
            return self._reject(f"BETWEEN bounds {lower!r}, {upper!r} cannot be sent as periods")

        branch = out.current
        branch.start_period = lower
        branch.end_period = upper
        return True


def encode_predicate(
    predicate: PredicateInput, catalog: Sequence[Dimension], debug: bool = False
) -> FilterBranchSet:
    """Shortcut for ``FilterEncoder(catalog).encode(predicate)``."""
    return FilterEncoder(catalog, debug=debug).encode(predicate)
