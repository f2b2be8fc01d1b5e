"""Result cache: backends and the degrading facade."""

from .backends import CacheBackend, CacheEntry, MemoryCacheBackend, RedisCacheBackend
from .result_cache import DEFAULT_TTL, SEARCH_RESULT_TTL, ResultCache

__all__ = [
    "DEFAULT_TTL",
    "SEARCH_RESULT_TTL",
    "CacheBackend",
    "CacheEntry",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "ResultCache",
]
