"""HTTP client module for cachedsession.

Provides the request cache engine and its transport boundary.

Classes:
    :class:`CachedSession` -- cache-aside engine; every method takes the
    session lock as an argument.
    :class:`LockedSession` -- wrapper owning a private lock, for callers
    that do not want to manage one.
    :class:`HttpxTransport` -- default :class:`Transport` backed by
    :class:`httpx.Client`.

Example::

    from cachedsession.client import LockedSession

    with LockedSession("cache.db", expire_after=300) as session:
        body = session.get("https://httpbin.org/get", params={"q": "1"})
"""

from cachedsession.client.locked import LockedSession
from cachedsession.client.session import CachedSession, merge_query_params
from cachedsession.client.transport import HttpxTransport, Transport

__all__ = [
    "CachedSession",
    "HttpxTransport",
    "LockedSession",
    "Transport",
    "merge_query_params",
]
