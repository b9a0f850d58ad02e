"""
Dimension catalogs of dataflows.

The structure document of a dataflow (DSD) is parsed elsewhere; this
module takes its ordered dimension list, adds the derived ``geo_level``
dimension and serves it to scans.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..exceptions import InvalidInputError
from ..geo import GEO_LEVELS
from ..models import (
    GEO_DIMENSION,
    GEO_LEVEL_DIMENSION,
    TIME_PERIOD_DIMENSION,
    VIRTUAL_POSITION,
    Dimension,
    DimensionKind,
)

logger = logging.getLogger(__name__)

GEO_LEVEL_LABEL = "NUTS classification level"

DimensionLike = Union[Dimension, Mapping[str, Any]]


class CatalogLookup(Protocol):
    """Anything that can list the dimensions of a dataflow."""

    async def lookup(self, provider_id: str, dataset_id: str) -> Sequence[Dimension]:
        ...


def geo_level_dimension() -> Dimension:
    return Dimension(
        name=GEO_LEVEL_DIMENSION,
        position=VIRTUAL_POSITION,
        label=GEO_LEVEL_LABEL,
        values=GEO_LEVELS,
        kind=DimensionKind.VIRTUAL,
    )


def build_catalog(dimensions: Iterable[DimensionLike]) -> List[Dimension]:
    """Normalize a DSD dimension list into a scan catalog.

    Names are lower-cased, ``time_period`` becomes virtual and
    ``geo_level`` is inserted right after ``geo``.
    """
    catalog: List[Dimension] = []
    seen: set[str] = set()

    for item in dimensions:
        data = item.model_dump() if isinstance(item, Dimension) else dict(item)
        data["name"] = str(data.get("name", "")).strip().lower()
        if data["name"] == GEO_LEVEL_DIMENSION:
            # Derived; re-added below at its canonical place.
            continue
        if data["name"] == TIME_PERIOD_DIMENSION:
            data["kind"] = DimensionKind.VIRTUAL
        elif data.get("kind") is None and data.get("position", VIRTUAL_POSITION) == VIRTUAL_POSITION:
            logger.warning(
                f"Dimension '{data['name']}' has no position; treated as virtual and never pushed down"
            )
        dim = Dimension(**data)

        if dim.name in seen:
            raise InvalidInputError(f"Duplicate dimension '{dim.name}' in catalog", field="catalog")
        seen.add(dim.name)
        catalog.append(dim)

        if dim.name == GEO_DIMENSION:
            catalog.append(geo_level_dimension())

    return catalog


def find_dimension(catalog: Sequence[Dimension], name: str) -> Optional[Tuple[int, Dimension]]:
    """Return ``(index, dimension)`` for a case-insensitive name, or None."""
    key = name.lower()
    for index, dim in enumerate(catalog):
        if dim.name == key:
            return index, dim
    return None


def has_geo_level(catalog: Sequence[Dimension]) -> bool:
    return any(dim.name == GEO_LEVEL_DIMENSION for dim in catalog)


class StaticCatalog:
    """In-memory catalog keyed by ``(provider_id, dataset_id)``.

    Dataset ids are matched case-insensitively, the way the API treats them.
    """

    def __init__(self, entries: Optional[Mapping[Tuple[str, str], Iterable[DimensionLike]]] = None):
        self._entries: Dict[Tuple[str, str], List[Dimension]] = {}
        for (provider_id, dataset_id), dimensions in (entries or {}).items():
            self.register(provider_id, dataset_id, dimensions)

    def register(self, provider_id: str, dataset_id: str, dimensions: Iterable[DimensionLike]) -> List[Dimension]:
        catalog = build_catalog(dimensions)
        self._entries[(provider_id, dataset_id.upper())] = catalog
        logger.debug(f"Registered catalog {provider_id}/{dataset_id}: {[d.name for d in catalog]}")
        return catalog

    async def lookup(self, provider_id: str, dataset_id: str) -> Sequence[Dimension]:
        catalog = self._entries.get((provider_id, dataset_id.upper()))
        if catalog is None:
            raise InvalidInputError(
                f"Unknown dataflow '{dataset_id}' for provider '{provider_id}'.",
                field="dataset_id",
            )
        return catalog
