"""
Renders filter branches into Eurostat data query URLs.

    <api_url>data/<dataset>/<v1>.<v2>...<vN>?[startPeriod=..&][endPeriod=..&]format=TSV&compressed=true

Virtual dimensions get no key segment. An empty segment is a wildcard.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from collections import Counter
from typing import List, Optional, Sequence

from ..models import (
    And,
    Comparison,
    ComparisonOp,
    Dimension,
    FilterBranch,
    FilterBranchSet,
    Membership,
    OptionalFilter,
    Or,
    Predicate,
    Range,
)
from .filter_encoder import FilterEncoder, PredicateInput

logger = logging.getLogger(__name__)

DATA_FORMAT_PARAMS = "format=TSV&compressed=true"


@dataclass
class QueryPlan:
    """Distinct filter strings for one predicate, in production order.

    ``exact`` is set when the filters select exactly the rows the predicate
    selects. A supported plan that is not exact over-fetches, for example
    when an OR below an AND drops the earlier conjuncts from later branches,
    or when two equalities on one dimension become a union.
    """
    filters: List[str] = field(default_factory=list)
    supported: bool = False
    exact: bool = False

    def urls(self, dataset_url: str) -> List[str]:
        """Full request URLs; one unfiltered URL when nothing was pushed down."""
        if not self.supported or not self.filters:
            return [unfiltered_url(dataset_url)]
        return [query_url(dataset_url, f) for f in self.filters]


def render_filter(branch: FilterBranch, catalog: Sequence[Dimension]) -> Optional[str]:
    """Render one branch as ``/key?params&``, or None when it filters nothing."""
    if branch.is_empty():
        return None

    segments = [branch.mask[i] for i, dim in enumerate(catalog) if not dim.is_virtual]

    clause = "/" + ".".join(segments) if segments else ""
    clause += "?"
    if branch.start_period is not None:
        clause += f"startPeriod={branch.start_period}&"
    if branch.end_period is not None:
        clause += f"endPeriod={branch.end_period}&"
    return clause


def render_filters(branch_set: FilterBranchSet) -> List[str]:
    """Distinct, non-empty filter strings of a branch set, first occurrence first."""
    filters: List[str] = []
    for branch in branch_set.branches:
        clause = render_filter(branch, branch_set.catalog)
        if clause is not None and clause not in filters:
            filters.append(clause)
    return filters


def build_query_plan(
    predicate: PredicateInput, catalog: Sequence[Dimension], debug: bool = False
) -> QueryPlan:
    """Encode and render a predicate.

    The plan is unsupported when any node could not be encoded, or when
    every branch turned out to be a wildcard.
    """
    branch_set = FilterEncoder(catalog, debug=debug).encode(predicate)
    if not branch_set.supported:
        return QueryPlan()

    filters = render_filters(branch_set)
    if debug:
        logger.debug(f"Encoded {len(branch_set.branches)} branches into {len(filters)} queries: {filters}")
    supported = bool(filters)
    exact = supported and is_exact_encoding(predicate)
    if debug and supported and not exact:
        logger.debug("Pushed-down filters are wider than the predicate; rows need a residual filter")
    return QueryPlan(filters=filters, supported=supported, exact=exact)


def is_exact_encoding(predicate: PredicateInput) -> bool:
    """Whether the branch encoding of a supported predicate loses nothing.

    Exact shapes are a conjunction of distinct constraints, or an OR whose
    alternatives are all such conjunctions.
    """
    if isinstance(predicate, (list, tuple)):
        if len(predicate) == 1:
            return _exact_disjunction(predicate[0])
        return _exact_conjunction(And(tuple(predicate)))
    return _exact_disjunction(predicate)


def _exact_disjunction(node: Predicate) -> bool:
    if isinstance(node, Or):
        # An alternative that constrains nothing widens the OR to every row.
        return all(_exact_disjunction(child) and not _is_vacuous(child) for child in node.children)
    return _exact_conjunction(node)


def _exact_conjunction(node: Predicate) -> bool:
    leaves: List[Predicate] = []
    if not _collect_conjuncts(node, leaves):
        return False

    coded: Counter = Counter()
    starts = ends = 0
    for leaf in leaves:
        name = leaf.dimension.lower()
        if name != "time_period":
            coded[name] += 1
        elif isinstance(leaf, Comparison) and leaf.op is ComparisonOp.GE:
            starts += 1
        elif isinstance(leaf, Comparison) and leaf.op is ComparisonOp.LE:
            ends += 1
        else:
            starts += 1
            ends += 1
    return all(count == 1 for count in coded.values()) and starts <= 1 and ends <= 1


def _collect_conjuncts(node: Predicate, leaves: List[Predicate]) -> bool:
    """Flatten AND and optional wrappers into leaves; False when an OR is met."""
    if isinstance(node, And):
        return all(_collect_conjuncts(child, leaves) for child in node.children)
    if isinstance(node, OptionalFilter):
        return node.child is None or _collect_conjuncts(node.child, leaves)
    if isinstance(node, (Comparison, Membership, Range)):
        leaves.append(node)
        return True
    return False


def _is_vacuous(node: Predicate) -> bool:
    if isinstance(node, OptionalFilter):
        return node.child is None or _is_vacuous(node.child)
    if isinstance(node, And):
        return all(_is_vacuous(child) for child in node.children)
    return False


def split_filter_path(clause: str) -> List[List[str]]:
    """Recover per-dimension value lists from a rendered filter (virtual ones excluded)."""
    path, _, _ = clause.partition("?")
    if not path:
        return []
    return [segment.split("+") if segment else [] for segment in path.lstrip("/").split(".")]


def dataset_url(api_url: str, dataset_id: str) -> str:
    if not api_url.endswith("/"):
        api_url += "/"
    return f"{api_url}data/{dataset_id}"


def query_url(base_url: str, clause: str) -> str:
    return f"{base_url}{clause}{DATA_FORMAT_PARAMS}"


def unfiltered_url(base_url: str) -> str:
    return f"{base_url}?{DATA_FORMAT_PARAMS}"
