"""Core utilities: configuration, caching and date handling."""

from libspot.core.cache import CacheEntry, CacheLookup, TtlCache
from libspot.core.config import Settings, get_settings, load_facilities

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "Settings",
    "TtlCache",
    "get_settings",
    "load_facilities",
]
