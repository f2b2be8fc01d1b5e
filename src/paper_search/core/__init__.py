"""
Core module for Paper Search.

Provides:
- Unified exception hierarchy
- Async utilities (settle-all gather, circuit breaker, timeouts)
- Settings loaded from the environment
"""

from .async_utils import CircuitBreaker, gather_settled, timeout_with_fallback
from .config import Settings
from .exceptions import (
    # Base
    PaperSearchError,
    ErrorContext,
    ErrorSeverity,
    ErrorCategory,
    # API errors
    APIError,
    RateLimitError,
    NetworkError,
    ServiceUnavailableError,
    CircuitOpenError,
    # Validation errors
    ValidationError,
    InvalidQueryError,
    InvalidParameterError,
    # Data errors
    DataError,
    ParseError,
    # Infrastructure errors
    ConfigurationError,
    CacheUnavailableError,
    RateLimitExceededError,
    # Utilities
    is_retryable_error,
    get_retry_delay,
)

__all__ = [
    "PaperSearchError",
    "ErrorContext",
    "ErrorSeverity",
    "ErrorCategory",
    "APIError",
    "RateLimitError",
    "NetworkError",
    "ServiceUnavailableError",
    "CircuitOpenError",
    "ValidationError",
    "InvalidQueryError",
    "InvalidParameterError",
    "DataError",
    "ParseError",
    "ConfigurationError",
    "CacheUnavailableError",
    "RateLimitExceededError",
    "is_retryable_error",
    "get_retry_delay",
    "CircuitBreaker",
    "gather_settled",
    "timeout_with_fallback",
    "Settings",
]
