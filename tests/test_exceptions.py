"""
Tests for the exception hierarchy and retry helpers.
"""

from __future__ import annotations

import pytest

from paper_search.core.exceptions import (
    APIError,
    CacheUnavailableError,
    CircuitOpenError,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    InvalidParameterError,
    InvalidQueryError,
    NetworkError,
    PaperSearchError,
    ParseError,
    RateLimitError,
    RateLimitExceededError,
    ServiceUnavailableError,
    ValidationError,
    get_retry_delay,
    is_retryable_error,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        ("error", "parent"),
        [
            (RateLimitError(), APIError),
            (NetworkError(), APIError),
            (ServiceUnavailableError(), APIError),
            (CircuitOpenError("pubmed"), ServiceUnavailableError),
            (InvalidQueryError(""), ValidationError),
            (InvalidParameterError("limit", -1, "a positive integer"), ValidationError),
            (ParseError("bad"), PaperSearchError),
            (ConfigurationError("bad"), PaperSearchError),
            (CacheUnavailableError(), PaperSearchError),
            (RateLimitExceededError("arxiv"), PaperSearchError),
        ],
    )
    def test_subclassing(self, error, parent):
        assert isinstance(error, parent)

    def test_categories_and_severity(self):
        assert NetworkError().category == ErrorCategory.NETWORK
        assert RateLimitError().severity == ErrorSeverity.TRANSIENT
        assert ConfigurationError("x").severity == ErrorSeverity.CRITICAL
        assert InvalidQueryError("").category == ErrorCategory.VALIDATION
        assert RateLimitExceededError("pubmed").category == ErrorCategory.RATE_LIMIT


class TestErrorDetails:
    def test_rate_limit_error_carries_retry_after(self):
        error = RateLimitError(retry_after=7.5)

        assert error.context.retry_after == 7.5
        assert error.context.suggestion == "Wait and retry the request"

    def test_parse_error_message_and_source(self):
        error = ParseError("missing PMID", source="pubmed")

        assert str(error) == "Parse error (pubmed): missing PMID"
        assert error.source == "pubmed"

    def test_service_unavailable_prefixes_service(self):
        assert str(ServiceUnavailableError("HTTP 503", service="arxiv")) == "arxiv: HTTP 503"

    def test_circuit_open_error(self):
        error = CircuitOpenError("biorxiv", retry_after=30.0)

        assert error.source == "biorxiv"
        assert error.retryable is True
        assert error.context.retry_after == 30.0

    def test_rate_limit_exceeded(self):
        error = RateLimitExceededError("pubmed", retry_after=12.0)

        assert error.service == "pubmed"
        assert str(error) == "Rate limit exceeded for pubmed"

    def test_invalid_parameter(self):
        error = InvalidParameterError("limit", 0, "1-100")

        assert error.param_name == "limit"
        assert error.context.suggestion == "Expected 1-100"

    def test_to_dict(self):
        error = InvalidQueryError("", context=ErrorContext(source="api"))

        assert error.to_dict() == {
            "error": "Invalid query: Query cannot be empty",
            "category": "validation",
            "severity": "warning",
            "retryable": False,
            "source": "api",
            "suggestion": "Provide a search query or at least one category",
        }

    def test_to_dict_retry_after(self):
        assert RateLimitExceededError("arxiv", retry_after=3.0).to_dict()["retry_after_seconds"] == 3.0


class TestRetryHelpers:
    def test_retryable_flags(self):
        assert is_retryable_error(NetworkError()) is True
        assert is_retryable_error(ParseError("x")) is False
        assert is_retryable_error(APIError("404", retryable=False)) is False

    def test_retryable_by_message(self):
        assert is_retryable_error(RuntimeError("Connection reset by peer")) is True
        assert is_retryable_error(RuntimeError("division by zero")) is False

    def test_delay_grows_and_is_capped(self):
        first = get_retry_delay(NetworkError(), 0)
        third = get_retry_delay(NetworkError(), 2)

        assert 1.0 <= first <= 1.1
        assert 4.0 <= third <= 4.4
        assert get_retry_delay(NetworkError(), 10, cap=5.0) == 5.0

    def test_delay_uses_retry_after(self):
        assert 3.0 <= get_retry_delay(RateLimitError(retry_after=3.0), 0) <= 3.3
