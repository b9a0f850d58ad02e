from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import httpx

from ..config import Settings, get_settings
from ..exceptions import InvalidInputError
from ..models import (
    OBSERVATION_VALUE_COLUMN,
    TIME_PERIOD_DIMENSION,
    And,
    Comparison,
    Dimension,
    Membership,
    OptionalFilter,
    Or,
    Predicate,
    Range,
    RowTable,
)
from ..services.catalog import CatalogLookup, find_dimension, has_geo_level
from ..services.fetch_merge import FetchMergePipeline
from ..services.filter_encoder import PredicateInput
from ..services.query_builder import build_query_plan, dataset_url
from ..services.residual_filter import matches
from .endpoints import get_endpoint

logger = logging.getLogger(__name__)


def referenced_dimensions(predicate: Optional[PredicateInput]) -> List[str]:
    """Names of every dimension a predicate tree mentions, in visit order."""
    if predicate is None:
        return []
    if isinstance(predicate, (list, tuple)):
        names: List[str] = []
        for node in predicate:
            names.extend(referenced_dimensions(node))
        return names
    if isinstance(predicate, (Comparison, Membership, Range)):
        return [predicate.dimension]
    if isinstance(predicate, (And, Or)):
        return referenced_dimensions(list(predicate.children))
    if isinstance(predicate, OptionalFilter):
        return referenced_dimensions(predicate.child)
    return []


def _as_single_predicate(predicate: Optional[PredicateInput]) -> Optional[Predicate]:
    if isinstance(predicate, (list, tuple)):
        if not predicate:
            return None
        return predicate[0] if len(predicate) == 1 else And(tuple(predicate))
    return predicate


@dataclass
class ScanResult:
    """Rows of one scan, projected onto ``columns``.

    When ``residual`` is set the predicate was not pushed down, or was pushed
    down only approximately (``exact`` is False), and rows are filtered
    client-side as they are produced.
    """
    table: RowTable
    columns: List[str]
    queries: List[str] = field(default_factory=list)
    pushed_down: bool = False
    exact: bool = False
    residual: Optional[Predicate] = None
    batch_size: int = 2048

    @property
    def cardinality(self) -> int:
        return self.table.cardinality

    def rows(self) -> Iterator[Tuple[Any, ...]]:
        indexes = self.table.column_indexes(self.columns)
        all_columns = self.table.columns
        for row in self.table.rows():
            if self.residual is not None and not matches(self.residual, dict(zip(all_columns, row))):
                continue
            yield tuple(row[i] for i in indexes)

    def as_dicts(self) -> Iterator[dict]:
        for row in self.rows():
            yield dict(zip(self.columns, row))

    def iter_batches(self, batch_size: Optional[int] = None) -> Iterator[List[Tuple[Any, ...]]]:
        size = batch_size or self.batch_size
        if size < 1:
            raise ValueError("batch_size must be positive")
        batch: List[Tuple[Any, ...]] = []
        for row in self.rows():
            batch.append(row)
            if len(batch) >= size:
                yield batch
                batch = []
        if batch:
            yield batch


class EurostatProvider:
    """Scans Eurostat dataflows with predicate pushdown.

    Dimension catalogs come from the injected ``catalog``; nothing here
    fetches structure documents.
    """

    def __init__(
        self,
        catalog: CatalogLookup,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.catalog = catalog
        self.settings = settings or get_settings()
        self._client = client

    @property
    def provider_name(self) -> str:
        return "Eurostat"

    async def scan(
        self,
        provider_id: str,
        dataset_id: str,
        predicate: Optional[PredicateInput] = None,
        columns: Optional[Sequence[str]] = None,
        residual_filter: bool = True,
    ) -> ScanResult:
        """Retrieve the rows of a dataflow matching ``predicate``.

        Args:
            provider_id: Endpoint identifier, e.g. "ESTAT"
            dataset_id: Dataflow code, e.g. "demo_pjan"
            predicate: Predicate tree, or a list of them joined by AND
            columns: Output columns, all of them when omitted
            residual_filter: Filter rows client-side when the predicate
                could not be pushed down, or when the pushed-down filters
                select more rows than the predicate

        Raises:
            InvalidInputError: Empty or unknown identifiers, unknown dimensions
                or columns. Raised before any request is made.
            DataProviderError: Transport, upstream or format failure
        """
        endpoint = get_endpoint(provider_id, self.settings)
        if not dataset_id:
            raise InvalidInputError("The 'dataset' identifier cannot be empty.", field="dataset_id")

        catalog = list(await self.catalog.lookup(provider_id, dataset_id))
        self._validate_predicate(catalog, predicate)
        output_columns = self._validate_columns(catalog, columns)

        if predicate is None:
            plan_filters: List[str] = []
            pushed_down = exact = False
        else:
            plan = build_query_plan(predicate, catalog, debug=self.settings.debug)
            plan_filters = plan.filters if plan.supported else []
            pushed_down = plan.supported
            exact = plan.exact

        pipeline = FetchMergePipeline(
            provider_id,
            dataset_id,
            dimension_names=[dim.name for dim in catalog if not dim.is_time],
            derive_geo_level=has_geo_level(catalog),
            settings=self.settings,
            client=self._client,
        )
        base_url = dataset_url(endpoint.api_url, dataset_id)
        queries = pipeline.request_urls(plan_filters, base_url)
        table = await pipeline.fetch_and_merge(plan_filters, base_url)

        residual = None
        if residual_filter and not (pushed_down and exact):
            residual = _as_single_predicate(predicate)

        logger.info(
            f"Eurostat scan {provider_id}/{dataset_id}: {len(queries)} queries, "
            f"{table.cardinality} observations, pushed_down={pushed_down}, exact={exact}"
        )
        return ScanResult(
            table=table,
            columns=output_columns if output_columns is not None else table.columns,
            queries=queries,
            pushed_down=pushed_down,
            exact=exact,
            residual=residual,
            batch_size=self.settings.scan_batch_size,
        )

    @staticmethod
    def _validate_predicate(catalog: Sequence[Dimension], predicate: Optional[PredicateInput]) -> None:
        for name in referenced_dimensions(predicate):
            if name.lower() in (OBSERVATION_VALUE_COLUMN, TIME_PERIOD_DIMENSION):
                continue
            if find_dimension(catalog, name) is None:
                raise InvalidInputError(
                    f"Unknown dimension '{name}'. Available: {', '.join(d.name for d in catalog)}",
                    field="predicate",
                )

    @staticmethod
    def _validate_columns(catalog: Sequence[Dimension], columns: Optional[Sequence[str]]) -> Optional[List[str]]:
        if columns is None:
            return None
        known = {dim.name for dim in catalog} | {TIME_PERIOD_DIMENSION, OBSERVATION_VALUE_COLUMN}
        result: List[str] = []
        for column in columns:
            key = column.lower()
            if key not in known:
                raise InvalidInputError(f"Unknown column '{column}'.", field="columns")
            result.append(key)
        return result
