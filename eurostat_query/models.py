"""
Core data model: dimensions, the predicate sum type, filter branches and
the row table produced by a scan.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import InvalidInputError, InvalidPredicateError

TIME_PERIOD_DIMENSION = "time_period"
GEO_DIMENSION = "geo"
GEO_LEVEL_DIMENSION = "geo_level"
OBSERVATION_VALUE_COLUMN = "observation_value"

#: Ordinal position of a dimension with no slot in the upstream key.
VIRTUAL_POSITION = -1


class DimensionKind(str, Enum):
    """Whether a dimension occupies a dot-separated slot in the upstream key."""
    PHYSICAL = "physical"
    VIRTUAL = "virtual"


class Dimension(BaseModel):
    """One axis of a dataflow, as listed by its data structure definition."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    position: int = Field(default=VIRTUAL_POSITION, description="Ordinal in the DSD, -1 when virtual")
    label: str = ""
    values: Tuple[str, ...] = ()
    kind: DimensionKind = DimensionKind.PHYSICAL

    @model_validator(mode="before")
    @classmethod
    def derive_kind(cls, data: Any) -> Any:
        # The time dimension and position -1 entries never get a key slot.
        if isinstance(data, dict) and data.get("kind") is None:
            data = dict(data)
            name = str(data.get("name", "")).lower()
            position = data.get("position", VIRTUAL_POSITION)
            if position == VIRTUAL_POSITION or name == TIME_PERIOD_DIMENSION:
                data["kind"] = DimensionKind.VIRTUAL
            else:
                data["kind"] = DimensionKind.PHYSICAL
        return data

    @property
    def is_virtual(self) -> bool:
        return self.kind is DimensionKind.VIRTUAL

    @property
    def is_time(self) -> bool:
        return self.name.lower() == TIME_PERIOD_DIMENSION


class Endpoint(BaseModel):
    """API endpoint of a Eurostat-style data provider."""

    model_config = ConfigDict(frozen=True)

    organization: str
    description: str
    api_url: str


# ----------------------------------------------------------------------------
# Predicates
# ----------------------------------------------------------------------------

class ComparisonOp(str, Enum):
    EQ = "="
    NE = "<>"
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="


@dataclass(frozen=True)
class Comparison:
    """``dimension <op> value``; ``value`` None stands for SQL NULL."""
    dimension: str
    op: ComparisonOp
    value: Any


@dataclass(frozen=True)
class Membership:
    """``dimension IN (values...)``."""
    dimension: str
    values: Tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))
        if not self.values:
            raise InvalidPredicateError(
                f"IN list on '{self.dimension}' needs at least one value", field=self.dimension
            )


@dataclass(frozen=True)
class Range:
    """``dimension BETWEEN lower AND upper``."""
    dimension: str
    lower: Any
    upper: Any


@dataclass(frozen=True)
class And:
    children: Tuple["Predicate", ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", tuple(self.children))
        if not self.children:
            raise InvalidPredicateError("AND requires at least one child predicate")


@dataclass(frozen=True)
class Or:
    children: Tuple["Predicate", ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", tuple(self.children))
        if not self.children:
            raise InvalidPredicateError("OR requires at least one child predicate")


@dataclass(frozen=True)
class OptionalFilter:
    """A filter the engine may drop; an absent child always holds."""
    child: Optional["Predicate"] = None


@dataclass(frozen=True)
class Opaque:
    """Any expression the engine cannot state with the nodes above."""
    description: str = ""


Predicate = Union[Comparison, Membership, Range, And, Or, OptionalFilter, Opaque]


# ----------------------------------------------------------------------------
# Filter branches
# ----------------------------------------------------------------------------

#: Mask entry of a dimension that is never rendered into the key.
VIRTUAL_MASK = "---"


@dataclass
class FilterBranch:
    """Per-dimension value masks of one upstream query, plus time bounds.

    ``mask[i]`` belongs to ``catalog[i]``: "" is a wildcard, otherwise a
    "+"-joined list of codes.
    """
    mask: List[str]
    start_period: Optional[str] = None
    end_period: Optional[str] = None

    @classmethod
    def empty(cls, catalog: Sequence[Dimension]) -> "FilterBranch":
        return cls(mask=[VIRTUAL_MASK if dim.is_virtual else "" for dim in catalog])

    def add_value(self, index: int, value: str) -> None:
        current = self.mask[index]
        self.mask[index] = value if not current else f"{current}+{value}"

    def values_at(self, index: int) -> List[str]:
        entry = self.mask[index]
        if not entry or entry == VIRTUAL_MASK:
            return []
        return entry.split("+")

    def is_empty(self) -> bool:
        if self.start_period is not None or self.end_period is not None:
            return False
        return all(not m or m == VIRTUAL_MASK for m in self.mask)


@dataclass
class FilterBranchSet:
    """Ordered branches produced by one encode call.

    Starts with one empty branch. ``current`` is the last one; an OR
    appends a fresh branch after each of its alternatives.
    """
    catalog: Sequence[Dimension]
    branches: List[FilterBranch] = field(default_factory=list)
    supported: bool = True

    def __post_init__(self) -> None:
        if not self.branches:
            self.push_empty()

    def push_empty(self) -> FilterBranch:
        branch = FilterBranch.empty(self.catalog)
        self.branches.append(branch)
        return branch

    @property
    def current(self) -> FilterBranch:
        return self.branches[-1]

    def non_empty(self) -> List[FilterBranch]:
        return [b for b in self.branches if not b.is_empty()]


# ----------------------------------------------------------------------------
# Row table
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Observation:
    combo_index: int
    time_period: str
    value: float


@dataclass(frozen=True)
class RowTable:
    """Result of one scan: dimension combinations plus observations referencing them.

    Output rows are ``(*combination, time_period, observation_value)``.
    """
    dimension_names: Tuple[str, ...] = ()
    combinations: Tuple[Tuple[str, ...], ...] = ()
    observations: Tuple[Observation, ...] = ()

    @property
    def columns(self) -> List[str]:
        return [*self.dimension_names, TIME_PERIOD_DIMENSION, OBSERVATION_VALUE_COLUMN]

    @property
    def cardinality(self) -> int:
        return len(self.observations)

    def __len__(self) -> int:
        return len(self.observations)

    def row(self, index: int) -> Tuple[Any, ...]:
        obs = self.observations[index]
        return (*self.combinations[obs.combo_index], obs.time_period, obs.value)

    def rows(self) -> Iterator[Tuple[Any, ...]]:
        for index in range(len(self.observations)):
            yield self.row(index)

    def as_dicts(self) -> Iterator[Dict[str, Any]]:
        columns = self.columns
        for row in self.rows():
            yield dict(zip(columns, row))

    def project(self, columns: Sequence[str]) -> Iterator[Tuple[Any, ...]]:
        """Yield rows reduced to ``columns``, in the requested order."""
        indexes = self.column_indexes(columns)
        for row in self.rows():
            yield tuple(row[i] for i in indexes)

    def column_indexes(self, columns: Sequence[str]) -> List[int]:
        available = {name: i for i, name in enumerate(self.columns)}
        indexes: List[int] = []
        for column in columns:
            key = column.lower()
            if key not in available:
                raise InvalidInputError(
                    f"Unknown column '{column}'. Available: {', '.join(self.columns)}",
                    field="columns",
                )
            indexes.append(available[key])
        return indexes

    def iter_batches(self, batch_size: int, offset: int = 0) -> Iterator[List[Tuple[Any, ...]]]:
        """Sequential, offset-based pagination over output rows."""
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        total = len(self.observations)
        while offset < total:
            end = min(offset + batch_size, total)
            yield [self.row(i) for i in range(offset, end)]
            offset = end
