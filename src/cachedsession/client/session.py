"""Request cache engine with an externally supplied lock.

This module provides :class:`CachedSession`, the cache-aside layer in front
of a :class:`~cachedsession.client.transport.Transport`.  Every request runs
through the same small state machine:

1. **Gate** -- the request is cacheable only if caching is enabled, the method
   is in ``allowable_methods`` and ``url_filter`` (if any) accepts the URL.
   Requests that fail the gate never touch the cache or the counters.
2. **Lookup** -- a fresh entry (``now < expires_at``) is a hit and is returned
   without network I/O.  An expired entry is kept as a stale fallback.
   Absent and expired entries both count as a miss.
3. **Fetch** -- performed by the transport *outside* the lock.
4. **Fallback** -- on :class:`~cachedsession.exceptions.TransportError` the
   stale body is returned when ``stale_if_error`` is set; otherwise the error
   propagates unchanged.
5. **Write-back** -- ``Set-Cookie`` headers are stored, and a cacheable
   response with an allowable status code overwrites the entry with a fresh
   TTL and a zero hit count.

Locking discipline:
    Every public method takes a ``lock`` argument, a context-manager lock
    such as :class:`threading.Lock`.  All access to the store, the cookie jar,
    and the counters happens while holding it; the network fetch never does.
    Callers sharing one session between threads must always pass the *same*
    lock.  :class:`~cachedsession.client.locked.LockedSession` does this for
    you.

Known limitations:
    Concurrent misses on the same cold key each perform their own fetch (no
    request coalescing).  POST entries are keyed on ``(url, method)`` only, so
    two different payloads sent to the same URL share one cache entry.
    Bodies are stored as decoded text, so binary payloads come back with
    replacement characters instead of their original bytes.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable, Iterator, Optional

import httpx

from cachedsession.cache import CookieJar, SQLiteStore
from cachedsession.exceptions import TransportError
from cachedsession.models import (
    CacheEntry,
    CacheSettings,
    CacheStats,
    DEFAULT_ALLOWABLE_METHODS,
    DEFAULT_ALLOWABLE_STATUS_CODES,
    DEFAULT_EXPIRE_AFTER,
    EntryInfo,
    SearchResult,
)
from cachedsession.client.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)


def merge_query_params(url: str, params: Optional[dict[str, Any]]) -> str:
    """Merge *params* into the query string of *url*.

    Caller-supplied values replace existing ones with the same key.  The URL
    is returned untouched when *params* is empty.

    Raises:
        TransportError: If httpx cannot parse *url*.
    """
    if not params:
        return url
    try:
        return str(httpx.URL(url).copy_merge_params(params))
    except httpx.InvalidURL as exc:
        raise TransportError(f"Cannot build request URL from {url}: {exc}") from exc


class CachedSession:
    """HTTP cache-aside engine persisting responses in a :class:`SQLiteStore`.

    Args:
        db_path: Path of the SQLite database (``":memory:"`` is allowed).
        expire_after: TTL in seconds applied to newly written entries.
        allowable_methods: Methods eligible for caching.
        allowable_status_codes: Status codes eligible for write-back.
        stale_if_error: Serve expired entries when the fetch fails.
        settings: A ready-made :class:`CacheSettings`; overrides the four
            policy arguments above.
        transport: Network collaborator.  Defaults to an
            :class:`HttpxTransport` owned (and closed) by this session.
        clock: Returns the current epoch time in seconds.
        load_cookies: Load persisted cookies into the jar immediately.

    Example::

        lock = threading.Lock()
        with CachedSession("cache.db", expire_after=60) as session:
            body = session.get("https://httpbin.org/get", lock)
            print(session.stats(lock))
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
        load_cookies: bool = False,
    ) -> None:
        if settings is None:
            settings = CacheSettings(
                expire_after=expire_after,
                allowable_methods=set(
                    DEFAULT_ALLOWABLE_METHODS if allowable_methods is None else allowable_methods
                ),
                allowable_status_codes=set(
                    DEFAULT_ALLOWABLE_STATUS_CODES
                    if allowable_status_codes is None
                    else allowable_status_codes
                ),
                stale_if_error=stale_if_error,
            )
        self.db_path = str(db_path)
        self.settings = settings
        self.cache_enabled = True
        self._clock = clock
        self._store = SQLiteStore(db_path)
        self._cookies = CookieJar(self._store, clock=clock)
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport()
        if load_cookies:
            self._cookies.load()

    @property
    def store(self) -> SQLiteStore:
        return self._store

    @property
    def cookies(self) -> CookieJar:
        """The in-memory cookie jar.  Hold the session lock while using it."""
        return self._cookies

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Release the store handle and any transport this session created."""
        if self._owns_transport:
            self._transport.close()
        self._store.close()

    def __enter__(self) -> CachedSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Core request
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        url: str,
        lock: Lock,
        data: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        """Serve *url* from the cache or the network and return the body.

        Args:
            method: HTTP method; case-insensitive.
            url: Absolute request URL, also the cache key with *method*.
            lock: The session lock.
            data: Raw request body.  Not part of the cache key.
            headers: Extra request headers.  A ``Cookie`` header built from
                the jar is appended to any caller-supplied one.

        Returns:
            The response body, either cached or freshly fetched.

        Raises:
            TransportError: If the fetch fails and no stale fallback applies.
            StoreError: If the persisted store fails.
        """
        method = method.upper()
        now = int(self._clock())
        stale_body: Optional[str] = None

        with lock:
            try_cache = self._is_cacheable(method, url)
            if try_cache:
                entry = self._store.get_entry(url, method)
                if entry is not None and entry.is_fresh(now):
                    self._store.increment_hits(url, method)
                    self._store.increment_hit()
                    logger.debug("Cache hit: %s %s", method, url)
                    return entry.body
                if entry is not None:
                    stale_body = entry.body
                    logger.debug("Cache entry expired: %s %s", method, url)
                self._store.increment_miss()
            cookie_header = self._cookies.format_header()

        request_headers = self._build_headers(headers, cookie_header)

        try:
            response = self._transport.send(method, url, request_headers, data)
        except TransportError as exc:
            logger.warning("HTTP request error: %s", exc)
            if self.settings.stale_if_error and stale_body is not None:
                logger.debug("Serving stale response for %s %s", method, url)
                return stale_body
            raise

        with lock:
            self._cookies.extract_from_response(response.get_all("set-cookie"))
            if try_cache and response.status_code in self.settings.allowable_status_codes:
                self._store.put_entry(
                    CacheEntry(
                        url=url,
                        method=method,
                        body=response.body,
                        status_code=response.status_code,
                        headers=response.joined_headers(),
                        created_at=now,
                        expires_at=now + self.settings.expire_after,
                    )
                )
                logger.debug("Cached %s %s (status %d)", method, url, response.status_code)

        return response.body

    def get(
        self,
        url: str,
        lock: Lock,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        """Send a cached GET, merging *params* into the URL's query string."""
        return self.request("GET", merge_query_params(url, params), lock, headers=headers)

    def post(
        self,
        url: str,
        lock: Lock,
        data: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> str:
        return self.request("POST", url, lock, data=data, headers=headers)

    def head(self, url: str, lock: Lock, headers: Optional[dict[str, str]] = None) -> str:
        return self.request("HEAD", url, lock, headers=headers)

    # ------------------------------------------------------------------ #
    # Scoped toggles
    # ------------------------------------------------------------------ #

    @contextmanager
    def caching_disabled(self, lock: Lock) -> Iterator[None]:
        """Turn caching off for the ``with`` block, then restore the previous state."""
        with self._caching_forced(False, lock):
            yield

    @contextmanager
    def caching_enabled(self, lock: Lock) -> Iterator[None]:
        """Turn caching on for the ``with`` block, then restore the previous state."""
        with self._caching_forced(True, lock):
            yield

    @contextmanager
    def _caching_forced(self, value: bool, lock: Lock) -> Iterator[None]:
        with lock:
            previous = self.cache_enabled
            self.cache_enabled = value
        try:
            yield
        finally:
            with lock:
                self.cache_enabled = previous

    # ------------------------------------------------------------------ #
    # Cookies
    # ------------------------------------------------------------------ #

    def load_cookies(self, lock: Lock) -> None:
        """Replace the jar's contents with the cookies persisted in the store."""
        with lock:
            self._cookies.load()

    def save_cookies(self, lock: Lock) -> None:
        """Overwrite the persisted cookies with the jar's contents."""
        with lock:
            self._cookies.save()

    def set_cookie(self, name: str, value: str, lock: Lock) -> None:
        with lock:
            self._cookies.set(name, value)

    def get_cookie(self, name: str, lock: Lock) -> Optional[str]:
        with lock:
            return self._cookies.get(name)

    def clear_cookies(self, lock: Lock) -> None:
        with lock:
            self._cookies.clear()

    # ------------------------------------------------------------------ #
    # Inspection and management
    # ------------------------------------------------------------------ #

    def list_cached_urls(self, lock: Lock) -> list[str]:
        """Return every distinct cached URL, across all methods."""
        with lock:
            urls = self._store.list_distinct_urls()
        return sorted(urls)

    def get_entry(self, url: str, lock: Lock, method: str = "GET") -> Optional[EntryInfo]:
        with lock:
            entry = self._store.get_entry(url, method.upper())
        if entry is None:
            return None
        return EntryInfo(
            body=entry.body,
            status_code=entry.status_code,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
            hit_count=entry.hit_count,
        )

    def search(self, pattern: str, lock: Lock) -> list[SearchResult]:
        """Find cached URLs matching *pattern* (``%`` any run, ``_`` one character)."""
        with lock:
            return self._store.search_by_pattern(pattern)

    def size(self, lock: Lock) -> int:
        with lock:
            return self._store.count()

    def clear_cache(self, lock: Lock) -> None:
        """Delete every entry and reset the hit/miss counters."""
        with lock:
            self._store.delete_all()

    def clear_expired(self, lock: Lock) -> int:
        """Delete entries whose ``expires_at`` has passed and return the count."""
        now = int(self._clock())
        with lock:
            removed = self._store.delete_expired(now)
        logger.debug("Removed %d expired cache entries", removed)
        return removed

    def stats(self, lock: Lock) -> CacheStats:
        with lock:
            hits, misses = self._store.get_totals()
            size = self._store.count()
        return CacheStats(hits=hits, misses=misses, size=size)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _is_cacheable(self, method: str, url: str) -> bool:
        return (
            self.cache_enabled
            and method in self.settings.allowable_methods
            and self.settings.permits_url(url)
        )

    @staticmethod
    def _build_headers(headers: Optional[dict[str, str]], cookie_header: str) -> dict[str, str]:
        merged = dict(headers or {})
        if cookie_header:
            # Preserve any Cookie header supplied by the caller.
            existing = merged.get("Cookie")
            merged["Cookie"] = f"{existing}; {cookie_header}" if existing else cookie_header
        return merged
