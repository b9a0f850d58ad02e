"""Exception hierarchy for eurostat-query.

Exception Hierarchy:
    EurostatQueryError (base)
    ├── ConfigurationError
    ├── ValidationError
    │   ├── InvalidInputError
    │   └── InvalidPredicateError
    └── DataProviderError
        ├── TransportError
        │   └── ProviderTimeoutError
        ├── UpstreamError
        └── ResponseFormatError

A predicate that cannot be pushed down is not an error: the encoder
reports it through the ``supported`` flag instead of raising.
"""
from __future__ import annotations

from typing import Optional, Dict, Any


class EurostatQueryError(Exception):
    """Base exception for all eurostat-query errors.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a plain dictionary."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(EurostatQueryError):
    """Raised when a configuration value is unusable (e.g. a bad endpoint override)."""
    pass


# Validation Errors
class ValidationError(EurostatQueryError):
    """Raised when caller input is invalid. No network activity happens before it."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, code, details)


class InvalidInputError(ValidationError):
    """Raised for an empty or unknown provider/dataset, or an unknown dimension.

    Examples:
        - provider_id == ""
        - provider_id not in ENDPOINTS
        - predicate references a column the dataset does not have
    """
    pass


class InvalidPredicateError(ValidationError):
    """Raised when a predicate node is malformed (And/Or without children, empty IN list)."""
    pass


# Data Provider Errors
class DataProviderError(EurostatQueryError):
    """Base class for failures while talking to the upstream API.

    Attributes:
        provider: Provider identifier (e.g. ESTAT)
        dataset: Dataset (dataflow) code
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        dataset: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.provider = provider
        self.dataset = dataset
        details = details or {}
        if provider:
            details["provider"] = provider
        if dataset:
            details["dataset"] = dataset
        super().__init__(message, code, details)


class TransportError(DataProviderError):
    """Raised on connection, TLS or protocol failures. Aborts the scan."""
    pass


class ProviderTimeoutError(TransportError):
    """Raised when a request exceeds the configured timeout."""
    pass


class UpstreamError(DataProviderError):
    """Raised on a non-200 status or a structured fault document.

    Attributes:
        status_code: HTTP status returned by the API
        fault_message: Text of the SDMX/SOAP fault, when one was present
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        dataset: Optional[str] = None,
        status_code: Optional[int] = None,
        fault_message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.fault_message = fault_message
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        if fault_message:
            details["fault_message"] = fault_message
        super().__init__(message, provider, dataset, code, details)


class ResponseFormatError(DataProviderError):
    """Raised when a response body cannot be decoded or tokenized.

    Individual non-numeric observation values are not format errors;
    they are dropped like missing observations.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        dataset: Optional[str] = None,
        line_number: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.line_number = line_number
        details = details or {}
        if line_number is not None:
            details["line_number"] = line_number
        super().__init__(message, provider, dataset, code, details)


def is_retryable_error(error: Exception) -> bool:
    """Check if a caller-level retry could succeed.

    The library never retries on its own; this only classifies.
    """
    if isinstance(error, TransportError):
        return True
    if isinstance(error, UpstreamError) and error.status_code is not None:
        return error.status_code == 429 or error.status_code >= 500
    return False


def get_error_response(error: Exception) -> Dict[str, Any]:
    """Convert any exception to a serializable error payload."""
    if isinstance(error, EurostatQueryError):
        return error.to_dict()

    return {
        "error": "InternalError",
        "message": str(error),
        "details": {},
    }
