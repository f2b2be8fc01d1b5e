"""
Runtime settings for the paper search aggregator.

All values come from environment variables with defaults suited to a single
process deployment:

    PAPER_SEARCH_CACHE_BACKEND        memory | redis         (memory)
    PAPER_SEARCH_REDIS_URL            redis://host:port/db   (redis://localhost:6379/0)
    PAPER_SEARCH_CACHE_TTL            default entry TTL, s   (3600)
    PAPER_SEARCH_SEARCH_CACHE_TTL     TTL for source results (86400)
    PAPER_SEARCH_CACHE_MAX_SIZE       in-process entries     (1024)
    PAPER_SEARCH_RATE_LIMIT_BACKEND   memory | redis         (memory)
    PAPER_SEARCH_RATE_LIMIT_ENABLED   enforce limits         (true)
    PAPER_SEARCH_RATE_LIMIT_FAIL_OPEN allow on store failure (true)
    PAPER_SEARCH_SOURCE_TIMEOUT       per-source timeout, s  (15)
    PAPER_SEARCH_SEARCH_DEADLINE      whole fan-out, s       (20)
    PAPER_SEARCH_MAX_RESULTS          default result cap     (60)
    PAPER_SEARCH_SYNTHETIC_FALLBACK   placeholders on outage (true)
    PAPER_SEARCH_BIORXIV_WINDOW_DAYS  bioRxiv date window    (730)
    PAPER_SEARCH_LOG_LEVEL            logging level          (INFO)
    NCBI_API_KEY / NCBI_EMAIL         E-utilities identity
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from .exceptions import ConfigurationError

ENV_PREFIX = "PAPER_SEARCH_"

BACKENDS = ("memory", "redis")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _parse_number(name: str, raw: str, kind: type[int] | type[float]) -> Any:
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be {'an integer' if kind is int else 'a number'}, got {raw!r}"
        ) from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Immutable settings snapshot; see module docstring for variables."""

    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 3600
    search_cache_ttl: int = 86400
    cache_max_size: int = 1024
    rate_limit_backend: str = "memory"
    rate_limit_enabled: bool = True
    rate_limit_fail_open: bool = True
    source_timeout: float = 15.0
    search_deadline: float = 20.0
    max_results: int = 60
    synthetic_fallback: bool = True
    biorxiv_window_days: int = 730
    log_level: str = "INFO"
    ncbi_api_key: str | None = None
    ncbi_email: str | None = None

    def __post_init__(self) -> None:
        for name in ("cache_backend", "rate_limit_backend"):
            if getattr(self, name) not in BACKENDS:
                raise ConfigurationError(
                    f"{name} must be one of {', '.join(BACKENDS)}, got {getattr(self, name)!r}"
                )
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ

        def get(key: str) -> str | None:
            value = env.get(ENV_PREFIX + key)
            return value if value not in (None, "") else None

        values: dict[str, Any] = {}
        text_fields = {
            "CACHE_BACKEND": "cache_backend",
            "REDIS_URL": "redis_url",
            "RATE_LIMIT_BACKEND": "rate_limit_backend",
        }
        for key, attr in text_fields.items():
            if (raw := get(key)) is not None:
                values[attr] = raw.strip().lower() if attr.endswith("backend") else raw.strip()

        int_fields = {
            "CACHE_TTL": "cache_ttl",
            "SEARCH_CACHE_TTL": "search_cache_ttl",
            "CACHE_MAX_SIZE": "cache_max_size",
            "MAX_RESULTS": "max_results",
            "BIORXIV_WINDOW_DAYS": "biorxiv_window_days",
        }
        for key, attr in int_fields.items():
            if (raw := get(key)) is not None:
                values[attr] = _parse_number(ENV_PREFIX + key, raw, int)

        float_fields = {
            "SOURCE_TIMEOUT": "source_timeout",
            "SEARCH_DEADLINE": "search_deadline",
        }
        for key, attr in float_fields.items():
            if (raw := get(key)) is not None:
                values[attr] = _parse_number(ENV_PREFIX + key, raw, float)

        bool_fields = {
            "RATE_LIMIT_ENABLED": "rate_limit_enabled",
            "RATE_LIMIT_FAIL_OPEN": "rate_limit_fail_open",
            "SYNTHETIC_FALLBACK": "synthetic_fallback",
        }
        for key, attr in bool_fields.items():
            if (raw := get(key)) is not None:
                values[attr] = _parse_bool(ENV_PREFIX + key, raw)

        if (raw := get("LOG_LEVEL")) is not None:
            values["log_level"] = raw.strip().upper()

        values["ncbi_api_key"] = env.get("NCBI_API_KEY") or None
        values["ncbi_email"] = env.get("NCBI_EMAIL") or None

        return cls(**values)

    def as_dict(self) -> dict[str, Any]:
        """Plain dict, the shape the DI container's Configuration expects."""
        return asdict(self)
