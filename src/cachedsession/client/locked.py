"""Self-locking convenience wrapper around :class:`CachedSession`.

:class:`LockedSession` owns one private :class:`threading.Lock` and passes it
to every engine call, so callers never deal with locks themselves.  The same
lock instance is used for every operation on a given session for its whole
lifetime, which keeps e.g. a cache read and a concurrent ``clear_cache``
mutually exclusive.  Network fetches still run outside the lock.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

from cachedsession.client.session import CachedSession
from cachedsession.client.transport import Transport
from cachedsession.models import (
    CacheSettings,
    CacheStats,
    DEFAULT_EXPIRE_AFTER,
    EntryInfo,
    SearchResult,
)


class LockedSession:
    """A :class:`CachedSession` that manages its own lock.

    Persisted cookies are loaded on construction.  Accepts the same arguments
    as :class:`CachedSession`.

    Example::

        with LockedSession("cache.db", expire_after=10, stale_if_error=True) as s:
            s.settings.url_filter = lambda url: "api/private" not in url
            s.get("https://httpbin.org/get?user=test")
            with s.caching_disabled():
                s.get("https://httpbin.org/get?user=test")
            print(s.stats())
    """

    def __init__(
        self,
        db_path: str | Path = "cache.db",
        expire_after: int = DEFAULT_EXPIRE_AFTER,
        allowable_methods: Optional[Iterable[str]] = None,
        allowable_status_codes: Optional[Iterable[int]] = None,
        stale_if_error: bool = False,
        *,
        settings: Optional[CacheSettings] = None,
        transport: Optional[Transport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._session = CachedSession(
            db_path,
            expire_after,
            allowable_methods,
            allowable_status_codes,
            stale_if_error,
            settings=settings,
            transport=transport,
            clock=clock,
        )
        self._session.load_cookies(self._lock)

    @property
    def session(self) -> CachedSession:
        """The wrapped engine.  Any direct call must not bypass this wrapper's lock."""
        return self._session

    @property
    def settings(self) -> CacheSettings:
        """The live, mutable caching policy."""
        return self._session.settings

    @property
    def cache_enabled(self) -> bool:
        with self._lock:
            return self._session.cache_enabled

    @cache_enabled.setter
    def cache_enabled(self, value: bool) -> None:
        with self._lock:
            self._session.cache_enabled = value

    def close(self) -> None:
        with self._lock:
            self._session.close()

    def __enter__(self) -> LockedSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # --- Requests ---

    def request(
        self,
        method: str,
        url: str,
        data: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        return self._session.request(method, url, self._lock, data=data, headers=headers)

    def get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        return self._session.get(url, self._lock, params=params, headers=headers)

    def post(
        self,
        url: str,
        data: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        return self._session.post(url, self._lock, data=data, headers=headers)

    def head(self, url: str, headers: Optional[dict[str, str]] = None) -> str:
        return self._session.head(url, self._lock, headers=headers)

    # --- Scoped toggles ---

    @contextmanager
    def caching_disabled(self) -> Iterator[None]:
        with self._session.caching_disabled(self._lock):
            yield

    @contextmanager
    def caching_enabled(self) -> Iterator[None]:
        with self._session.caching_enabled(self._lock):
            yield

    # --- Cookies ---

    def load_cookies(self) -> None:
        self._session.load_cookies(self._lock)

    def save_cookies(self) -> None:
        self._session.save_cookies(self._lock)

    def set_cookie(self, name: str, value: str) -> None:
        self._session.set_cookie(name, value, self._lock)

    def get_cookie(self, name: str) -> Optional[str]:
        return self._session.get_cookie(name, self._lock)

    def clear_cookies(self) -> None:
        self._session.clear_cookies(self._lock)

    def cookie_items(self) -> list[tuple[str, str]]:
        """Snapshot of the jar's ``(name, value)`` pairs."""
        with self._lock:
            return self._session.cookies.items()

    # --- Inspection and management ---

    def list_cached_urls(self) -> list[str]:
        return self._session.list_cached_urls(self._lock)

    def get_entry(self, url: str, method: str = "GET") -> Optional[EntryInfo]:
        return self._session.get_entry(url, self._lock, method=method)

    def search(self, pattern: str) -> list[SearchResult]:
        return self._session.search(pattern, self._lock)

    def size(self) -> int:
        return self._session.size(self._lock)

    def clear_cache(self) -> None:
        self._session.clear_cache(self._lock)

    def clear_expired(self) -> int:
        return self._session.clear_expired(self._lock)

    def stats(self) -> CacheStats:
        return self._session.stats(self._lock)
