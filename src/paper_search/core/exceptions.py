"""
Unified Exception Hierarchy for the paper search aggregator.

Exception Hierarchy:
    PaperSearchError (base)
    ├── APIError
    │   ├── RateLimitError            (upstream answered 429)
    │   ├── NetworkError              (timeout / connection failure)
    │   └── ServiceUnavailableError   (upstream 5xx)
    │       └── CircuitOpenError
    ├── ValidationError
    │   ├── InvalidQueryError
    │   └── InvalidParameterError
    ├── DataError
    │   └── ParseError
    ├── ConfigurationError
    ├── CacheUnavailableError
    └── RateLimitExceededError        (local limiter denied the call)

Source-level errors are contained inside the adapters and the orchestrator.
Only validation errors and unexpected merge failures reach the HTTP layer.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = auto()      # Recoverable, can continue
    ERROR = auto()        # Failed but can retry
    CRITICAL = auto()     # Cannot continue
    TRANSIENT = auto()    # Temporary, should retry automatically


class ErrorCategory(Enum):
    """Categories for error classification."""
    API = "api"
    VALIDATION = "validation"
    DATA = "data"
    CONFIGURATION = "config"
    NETWORK = "network"
    CACHE = "cache"
    RATE_LIMIT = "rate_limit"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Structured context attached to every error."""
    source: str | None = None
    operation: str | None = None
    input_value: Any = None
    suggestion: str | None = None
    retry_after: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class PaperSearchError(Exception):
    """
    Base exception for all paper search errors.

    Provides:
    - Structured error context
    - Severity classification
    - Retry guidance
    """

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.API,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable

    @property
    def source(self) -> str | None:
        return self.context.source

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "category": self.category.value,
            "severity": self.severity.name.lower(),
            "retryable": self.retryable,
        }
        if self.context.source:
            result["source"] = self.context.source
        if self.context.suggestion:
            result["suggestion"] = self.context.suggestion
        if self.context.retry_after:
            result["retry_after_seconds"] = self.context.retry_after
        return result


# =============================================================================
# API Errors
# =============================================================================

class APIError(PaperSearchError):
    """Base class for upstream API errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        retryable: bool = True,
        category: ErrorCategory = ErrorCategory.API,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=category,
            retryable=retryable,
        )


class RateLimitError(APIError):
    """Raised when an upstream API answers with HTTP 429."""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        *,
        retry_after: float = 1.0,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(
            context or ErrorContext(),
            retry_after=retry_after,
        )
        if not ctx.suggestion:
            ctx = replace(ctx, suggestion="Wait and retry the request")
        super().__init__(message, context=ctx, retryable=True)
        self.severity = ErrorSeverity.TRANSIENT


class NetworkError(APIError):
    """Raised for timeouts and connection failures."""

    def __init__(
        self,
        message: str = "Network connection failed",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            retryable=True,
            category=ErrorCategory.NETWORK,
        )


class ServiceUnavailableError(APIError):
    """Raised when the external service is temporarily unavailable."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        *,
        service: str = "upstream",
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(f"{service}: {message}", context=context, retryable=True)
        self.severity = ErrorSeverity.TRANSIENT


class CircuitOpenError(ServiceUnavailableError):
    """Raised without contacting the upstream while its circuit breaker is open."""

    def __init__(self, service: str, *, retry_after: float | None = None) -> None:
        super().__init__(
            "circuit breaker is open",
            service=service,
            context=ErrorContext(source=service, retry_after=retry_after),
        )


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(PaperSearchError):
    """Base class for validation errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )


class InvalidQueryError(ValidationError):
    """Raised when a search query is unusable."""

    def __init__(
        self,
        query: str | None,
        reason: str = "Query cannot be empty",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(context or ErrorContext(), input_value=query)
        if not ctx.suggestion:
            ctx = replace(ctx, suggestion="Provide a search query or at least one category")
        super().__init__(f"Invalid query: {reason}", context=ctx)


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(
        self,
        param_name: str,
        value: Any,
        expected: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(
            context or ErrorContext(),
            input_value=value,
            suggestion=f"Expected {expected}",
        )
        super().__init__(
            f"Invalid parameter '{param_name}': {value!r} (expected {expected})",
            context=ctx,
        )
        self.param_name = param_name


# =============================================================================
# Data Errors
# =============================================================================

class DataError(PaperSearchError):
    """Base class for data-related errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.DATA,
            retryable=False,
        )


class ParseError(DataError):
    """Raised when an upstream payload or a single record cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        full_msg = f"Parse error: {message}"
        if source:
            full_msg = f"Parse error ({source}): {message}"
        ctx = context or ErrorContext()
        if source and not ctx.source:
            ctx = replace(ctx, source=source)
        super().__init__(full_msg, context=ctx)


# =============================================================================
# Configuration / infrastructure errors
# =============================================================================

class ConfigurationError(PaperSearchError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )


class CacheUnavailableError(PaperSearchError):
    """Raised by a cache backend whose backing store cannot be reached."""

    def __init__(
        self,
        message: str = "Cache backend unavailable",
        *,
        backend: str = "redis",
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            f"{backend}: {message}",
            context=context,
            severity=ErrorSeverity.TRANSIENT,
            category=ErrorCategory.CACHE,
            retryable=True,
        )
        self.backend = backend


class RateLimitExceededError(PaperSearchError):
    """Raised when the local rate limiter denies a source call."""

    def __init__(
        self,
        service: str,
        *,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        ctx = replace(
            context or ErrorContext(),
            source=service,
            retry_after=retry_after,
        )
        super().__init__(
            f"Rate limit exceeded for {service}",
            context=ctx,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.RATE_LIMIT,
            retryable=True,
        )
        self.service = service


# =============================================================================
# Retry helpers
# =============================================================================

def is_retryable_error(error: Exception) -> bool:
    """Check if an error should be retried."""
    if isinstance(error, PaperSearchError):
        return error.retryable

    error_str = str(error).lower()
    transient_patterns = [
        "rate limit",
        "too many requests",
        "temporarily unavailable",
        "service unavailable",
        "connection reset",
        "timeout",
    ]
    return any(pattern in error_str for pattern in transient_patterns)


def get_retry_delay(error: Exception, attempt: int, *, cap: float = 30.0) -> float:
    """
    Calculate retry delay with exponential backoff.

    Args:
        error: The exception that occurred
        attempt: Current attempt number (0-based)
        cap: Upper bound for the delay in seconds

    Returns:
        Delay in seconds before next retry
    """
    base_delay = 1.0

    if isinstance(error, PaperSearchError) and error.context.retry_after:
        base_delay = error.context.retry_after

    delay = base_delay * (2 ** attempt)
    jitter = random.uniform(0, 0.1 * delay)

    return min(delay + jitter, cap)
