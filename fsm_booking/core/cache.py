"""Lightweight in-memory TTL cache.

Holds short-lived values such as FSM OAuth bearer tokens, keyed per tenant,
so repeated Data API calls do not request a fresh token every time.
"""

import time
from collections.abc import Hashable
from typing import Any

_cache: dict[Hashable, tuple[float, float, Any]] = {}

# Default TTL in seconds
DEFAULT_TTL = 30


def get(key: Hashable) -> Any | None:
    """Return cached value if present and not expired, else None."""
    entry = _cache.get(key)
    if entry is None:
        return None
    stored_at, ttl, value = entry
    if time.monotonic() - stored_at > ttl:
        _cache.pop(key, None)
        return None
    return value


def put(key: Hashable, value: Any, ttl: float = DEFAULT_TTL) -> None:
    """Store a value in the cache for ``ttl`` seconds."""
    _cache[key] = (time.monotonic(), ttl, value)


def invalidate(key: Hashable) -> None:
    """Remove a specific cache entry."""
    _cache.pop(key, None)


def clear() -> None:
    """Clear all cached entries."""
    _cache.clear()
