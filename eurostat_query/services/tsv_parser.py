"""
Parser for the Eurostat SDMX-TSV data format.

    freq,unit,sex,age,geo\\TIME_PERIOD\t2000 \t2001
    A,NR,F,TOTAL,AL\t1526762 \t1535822

Dimension names are lower-cased. An empty field or ":" is a missing
observation and is left out; so is any value that does not parse as a
number (Eurostat appends status flags such as "12.3 p").
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from ..exceptions import ResponseFormatError
from ..geo import classify_geo_code
from ..models import GEO_DIMENSION, GEO_LEVEL_DIMENSION, Observation, RowTable

logger = logging.getLogger(__name__)

TIME_PERIOD_MARKER = "\\TIME_PERIOD"
MISSING_MARKERS = ("", ":")


@dataclass
class TsvHeader:
    dimension_names: List[str]
    time_periods: List[str]


def parse_header(line: str) -> TsvHeader:
    pos = line.find(TIME_PERIOD_MARKER)
    if pos == -1:
        raise ResponseFormatError("TIME_PERIOD not found in TSV header", line_number=1)

    names = [token.strip().lower() for token in line[:pos].split(",")]
    if any(not name for name in names):
        raise ResponseFormatError(f"Empty dimension name in TSV header: {line[:pos]!r}", line_number=1)

    periods = [token.strip() for token in line[pos + len(TIME_PERIOD_MARKER):].split("\t")]
    return TsvHeader(dimension_names=names, time_periods=[p for p in periods if p])


def parse_observation(field: str) -> Optional[float]:
    text = field.strip()
    if text in MISSING_MARKERS:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class RowTableBuilder:
    """Accumulates one or more TSV responses into a RowTable.

    With ``dedupe`` on, an observation whose ``(raw dimension values, time
    period)`` pair was already emitted is skipped. A line that ends up with
    no observations adds no combination. Responses must be added in query
    order so that the first occurrence wins.
    """

    def __init__(
        self,
        dimension_names: Sequence[str] = (),
        derive_geo_level: bool = False,
        dedupe: bool = False,
    ):
        self.dimension_names: List[str] = [n for n in dimension_names if n != GEO_LEVEL_DIMENSION]
        self.derive_geo_level = derive_geo_level
        self.dedupe = dedupe
        self._header_seen = False
        self._combinations: List[Tuple[str, ...]] = []
        self._observations: List[Observation] = []
        self._seen: Set[Tuple[str, str]] = set()
        self.duplicates_skipped = 0

    @property
    def _geo_index(self) -> Optional[int]:
        if self.derive_geo_level and GEO_DIMENSION in self.dimension_names:
            return self.dimension_names.index(GEO_DIMENSION)
        return None

    def output_dimension_names(self) -> Tuple[str, ...]:
        names = list(self.dimension_names)
        geo_index = self._geo_index
        if geo_index is not None:
            names.insert(geo_index + 1, GEO_LEVEL_DIMENSION)
        return tuple(names)

    def add_response(self, text: str) -> int:
        """Parse one response body; returns the number of observations added."""
        added = 0
        header: Optional[TsvHeader] = None

        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line:
                continue
            if header is None:
                header = parse_header(line)
                self._check_header(header)
                continue
            added += self._add_line(line, line_number, header)

        if header is None:
            raise ResponseFormatError("Empty TSV response, no header line", line_number=1)
        return added

    def _check_header(self, header: TsvHeader) -> None:
        if not self._header_seen:
            self.dimension_names = header.dimension_names
            self._header_seen = True
        elif header.dimension_names != self.dimension_names:
            raise ResponseFormatError(
                f"TSV header dimensions {header.dimension_names} do not match "
                f"earlier response {self.dimension_names}",
                line_number=1,
            )

    def _add_line(self, line: str, line_number: int, header: TsvHeader) -> int:
        fields = line.split("\t")
        if len(fields) != len(header.time_periods) + 1:
            raise ResponseFormatError(
                f"Expected {len(header.time_periods)} observation fields, got {len(fields) - 1}",
                line_number=line_number,
            )

        raw_dims = fields[0]
        values = raw_dims.split(",")
        if len(values) != len(header.dimension_names):
            raise ResponseFormatError(
                f"Expected {len(header.dimension_names)} dimension values, got {len(values)}",
                line_number=line_number,
            )

        pending: List[Tuple[str, float]] = []
        for period, field in zip(header.time_periods, fields[1:]):
            value = parse_observation(field)
            if value is None:
                continue
            if self.dedupe:
                key = (raw_dims, period)
                if key in self._seen:
                    self.duplicates_skipped += 1
                    continue
                self._seen.add(key)
            pending.append((period, value))

        if not pending:
            return 0

        geo_index = self._geo_index
        if geo_index is not None:
            values.insert(geo_index + 1, classify_geo_code(values[geo_index]))

        self._combinations.append(tuple(values))
        combo_index = len(self._combinations) - 1
        self._observations.extend(Observation(combo_index, period, value) for period, value in pending)
        return len(pending)

    def build(self) -> RowTable:
        return RowTable(
            dimension_names=self.output_dimension_names(),
            combinations=tuple(self._combinations),
            observations=tuple(self._observations),
        )


def parse_tsv(text: str, derive_geo_level: bool = False) -> RowTable:
    """Parse a single TSV response body."""
    builder = RowTableBuilder(derive_geo_level=derive_geo_level)
    builder.add_response(text)
    return builder.build()
