"""Query Eurostat SDMX dissemination APIs with predicate pushdown."""
from __future__ import annotations

__version__ = "0.3.0"

from .exceptions import (
    ConfigurationError,
    DataProviderError,
    EurostatQueryError,
    InvalidInputError,
    InvalidPredicateError,
    ResponseFormatError,
    TransportError,
    UpstreamError,
)
from .geo import classify_geo_code, country_name
from .models import (
    And,
    Comparison,
    ComparisonOp,
    Dimension,
    DimensionKind,
    Membership,
    Opaque,
    OptionalFilter,
    Or,
    Range,
    RowTable,
)
from .providers.endpoints import ENDPOINTS, get_endpoint, list_endpoints
from .providers.eurostat import EurostatProvider, ScanResult
from .services.catalog import StaticCatalog, build_catalog
from .services.query_builder import build_query_plan

__all__ = [
    "And",
    "Comparison",
    "ComparisonOp",
    "ConfigurationError",
    "DataProviderError",
    "Dimension",
    "DimensionKind",
    "ENDPOINTS",
    "EurostatProvider",
    "EurostatQueryError",
    "InvalidInputError",
    "InvalidPredicateError",
    "Membership",
    "Opaque",
    "OptionalFilter",
    "Or",
    "Range",
    "ResponseFormatError",
    "RowTable",
    "ScanResult",
    "StaticCatalog",
    "TransportError",
    "UpstreamError",
    "build_catalog",
    "build_query_plan",
    "classify_geo_code",
    "country_name",
    "get_endpoint",
    "list_endpoints",
]
