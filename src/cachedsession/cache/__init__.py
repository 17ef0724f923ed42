"""Persistence layer for cachedsession.

This package provides :class:`SQLiteStore`, the durable store holding cached
responses, cookies, and hit/miss counters, and :class:`CookieJar`, the
in-memory cookie mapping mirrored write-through to that store.

Both are consumed by :class:`~cachedsession.client.session.CachedSession`,
which serialises every call through its session lock.
"""

from cachedsession.cache.cookies import CookieJar, parse_set_cookie
from cachedsession.cache.store import SQLiteStore

__all__ = ["CookieJar", "SQLiteStore", "parse_set_cookie"]
