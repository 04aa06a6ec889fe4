"""
fincache - Core Error Types

Defines the exception hierarchy for the fincache runtime.
All exceptions inherit from FinCacheError for consistent error handling.

Error kinds surfaced to callers of the cache:
- UnserializableParameterError: key derivation received a parameter it cannot canonicalize
- FetchFailedError: the supplied fetch function failed and no cached value could be served

Persistence failures are wrapped in PersistenceError for observability hooks only;
they are never raised out of the cache manager.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """
    Standard error codes for structured error reporting.

    Lets calling code tell "no data at all" apart from configuration or input bugs.
    """

    # Input validation errors
    INVALID_INPUT = "INVALID_INPUT"
    UNSERIALIZABLE_PARAMETER = "UNSERIALIZABLE_PARAMETER"

    # Fetch errors
    FETCH_FAILED = "FETCH_FAILED"

    # Cache errors
    CACHE_FAILURE = "CACHE_FAILURE"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class FinCacheError(Exception):
    """Base exception for all fincache errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(FinCacheError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, status_code=500)


class CacheError(FinCacheError):
    """Base exception for cache-related errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None, status_code: int = 500):
        super().__init__(message, details, status_code=status_code)


class UnserializableParameterError(CacheError):
    """Raised when a cache key parameter cannot be canonicalized."""

    def __init__(self, operation: str, path: str, value: Any):
        self.operation = operation
        self.path = path
        self.value_type = type(value).__name__
        message = f"Parameter '{path}' of operation '{operation}' is not serializable ({self.value_type})"
        super().__init__(
            message,
            {"operation": operation, "path": path, "value_type": self.value_type},
            status_code=400,
        )


class FetchFailedError(CacheError):
    """
    Raised when a fetch function fails and there is nothing cached to fall back to.

    The original exception is kept as ``cause`` (and chained as ``__cause__``)
    so the caller sees the backend failure unchanged.
    """

    def __init__(self, key: str, cause: BaseException):
        self.key = key
        self.cause = cause
        message = f"Fetch failed for cache key '{key}' with no cached value available: {cause}"
        super().__init__(
            message,
            {"key": key, "cause_type": type(cause).__name__, "cause": str(cause)},
            status_code=502,
        )


class PersistenceError(CacheError):
    """Wraps a durable store failure before it is reported to observability hooks."""

    def __init__(self, key: str, operation: str, cause: BaseException):
        self.key = key
        self.operation = operation
        self.cause = cause
        message = f"Durable store {operation} failed for key '{key}': {cause}"
        super().__init__(
            message,
            {"key": key, "operation": operation, "cause_type": type(cause).__name__},
        )


def extract_error_code(error: Exception) -> ErrorCode:
    """
    Extract appropriate ErrorCode from an exception.

    Args:
        error: Exception to categorize

    Returns:
        Appropriate ErrorCode for the exception
    """
    if isinstance(error, UnserializableParameterError):
        return ErrorCode.UNSERIALIZABLE_PARAMETER

    if isinstance(error, FetchFailedError):
        return ErrorCode.FETCH_FAILED

    if isinstance(error, PersistenceError):
        return ErrorCode.PERSISTENCE_FAILURE

    if isinstance(error, CacheError):
        return ErrorCode.CACHE_FAILURE

    if isinstance(error, ConfigurationError):
        return ErrorCode.CONFIGURATION_ERROR

    if isinstance(error, ValueError):
        return ErrorCode.INVALID_INPUT

    return ErrorCode.INTERNAL_ERROR
