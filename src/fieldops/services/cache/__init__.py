"""Expiring cache shared by the geo and distance adapters."""

from .store import CacheCategory, CacheEntry, ExpiringCache, get_cache

__all__ = [
    "CacheCategory",
    "CacheEntry",
    "ExpiringCache",
    "get_cache",
]
