"""cachedsession -- a cache-aside HTTP client backed by SQLite.

Responses are persisted in a keyed store with TTL-based expiry, hit/miss
accounting, stale-on-error fallback, and a cookie jar that survives across
sessions.  Sessions are safe to share between threads: all store, cookie,
and counter access is serialised by one session lock while network fetches
run outside it.

Typical usage::

    from cachedsession import LockedSession

    with LockedSession("cache.db", expire_after=300, stale_if_error=True) as s:
        body = s.get("https://httpbin.org/get", params={"q": "1"})
        print(s.stats())

Modules:
    client: The request cache engine, its self-locking wrapper, and the
        transport boundary.
    cache: SQLite store and cookie jar.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer CLI for fetching through and inspecting a cache.
"""

__version__ = "0.1.0"

from cachedsession.client import CachedSession, HttpxTransport, LockedSession, Transport  # noqa: E402
from cachedsession.exceptions import (  # noqa: E402
    CachedSessionError,
    ConfigError,
    StoreError,
    TransportError,
)
from cachedsession.models import CacheSettings, CacheStats, EntryInfo, SearchResult  # noqa: E402

__all__ = [
    "CacheSettings",
    "CacheStats",
    "CachedSession",
    "CachedSessionError",
    "ConfigError",
    "EntryInfo",
    "HttpxTransport",
    "LockedSession",
    "SearchResult",
    "StoreError",
    "Transport",
    "TransportError",
    "__version__",
]
