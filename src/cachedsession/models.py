"""Canonical Pydantic models shared across all cachedsession modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Settings** -- mutable runtime and persisted configuration:
    :class:`CacheSettings` and :class:`SessionConfig`.

**Stored records** -- rows of the persisted ``cache`` table:
    :class:`CacheEntry`.

**Query results** -- shapes returned by inspection operations and the
transport boundary:
    :class:`EntryInfo`, :class:`SearchResult`, :class:`CacheStats`, and
    :class:`TransportResponse`.

All models use Pydantic v2.  Assignment is *not* validated, so settings can be
mutated freely after construction (e.g. swapping ``url_filter`` at runtime).
"""

from __future__ import annotations

import json
from typing import Callable, Optional

from pydantic import BaseModel, Field

DEFAULT_EXPIRE_AFTER = 3600
DEFAULT_ALLOWABLE_METHODS = frozenset({"GET", "HEAD"})
DEFAULT_ALLOWABLE_STATUS_CODES = frozenset({200})


# --- Settings ---


class CacheSettings(BaseModel):
    """Caching policy consulted on every request.

    ``expire_after`` is applied at write time, so changing it only affects
    entries written afterwards.  ``url_filter`` is an optional predicate over
    the request URL; ``None`` means every URL may be cached.

    Example::

        settings = CacheSettings(expire_after=60, stale_if_error=True)
        settings.allowable_methods.add("POST")
        settings.url_filter = lambda url: "api/private" not in url
    """

    expire_after: int = Field(
        default=DEFAULT_EXPIRE_AFTER, description="TTL in seconds applied at write time"
    )
    allowable_methods: set[str] = Field(
        default_factory=lambda: set(DEFAULT_ALLOWABLE_METHODS),
        description="HTTP methods eligible for caching (upper case)",
    )
    allowable_status_codes: set[int] = Field(
        default_factory=lambda: set(DEFAULT_ALLOWABLE_STATUS_CODES),
        description="Response status codes eligible for write-back",
    )
    stale_if_error: bool = Field(
        default=False, description="Serve an expired entry when the fetch fails"
    )
    url_filter: Optional[Callable[[str], bool]] = Field(
        default=None, exclude=True, description="Predicate deciding which URLs are cacheable"
    )

    def permits_url(self, url: str) -> bool:
        """Return ``True`` if *url* passes the filter (or no filter is set)."""
        return self.url_filter is None or bool(self.url_filter(url))


class SessionConfig(BaseModel):
    """Persisted configuration at ``~/.config/cachedsession/config.json``.

    Loaded by :func:`~cachedsession.config.load_config` and layered with
    project config, environment variables and CLI flags by
    :func:`~cachedsession.config.resolve_config`.
    """

    db_path: Optional[str] = Field(
        default=None, description="Cache database path (default: XDG cache dir)"
    )
    expire_after: int = DEFAULT_EXPIRE_AFTER
    allowable_methods: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_ALLOWABLE_METHODS)
    )
    allowable_status_codes: list[int] = Field(
        default_factory=lambda: sorted(DEFAULT_ALLOWABLE_STATUS_CODES)
    )
    stale_if_error: bool = False
    timeout: float = Field(default=30.0, description="Transport timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    def to_settings(self) -> CacheSettings:
        """Build the runtime :class:`CacheSettings` from this config."""
        return CacheSettings(
            expire_after=self.expire_after,
            allowable_methods={m.upper() for m in self.allowable_methods},
            allowable_status_codes=set(self.allowable_status_codes),
            stale_if_error=self.stale_if_error,
        )


# --- Stored records ---


class CacheEntry(BaseModel):
    """One row of the ``cache`` table, unique on ``(url, method)``.

    ``headers`` maps each response header name to its comma-joined values.
    """

    url: str
    method: str
    body: str
    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    created_at: int
    expires_at: int
    hit_count: int = 0

    def serialized_headers(self) -> str:
        return json.dumps(self.headers)

    def is_fresh(self, now: int) -> bool:
        """Fresh strictly before ``expires_at``; the boundary itself is expired."""
        return now < self.expires_at


# --- Query results ---


class EntryInfo(BaseModel):
    """Metadata for a single cached entry, as returned by ``get_entry``."""

    body: str
    status_code: int
    created_at: int
    expires_at: int
    hit_count: int


class SearchResult(BaseModel):
    """A URL matched by a wildcard search, with its cached status code."""

    url: str
    status_code: int


class CacheStats(BaseModel):
    """Cumulative hit/miss counters plus the current number of entries."""

    hits: int = 0
    misses: int = 0
    size: int = 0


class TransportResponse(BaseModel):
    """What a :class:`~cachedsession.client.transport.Transport` hands back.

    ``headers`` is a multimap kept as ``(name, value)`` pairs in arrival order
    so that repeated headers such as ``Set-Cookie`` survive intact.
    """

    status_code: int
    body: str = ""
    headers: list[tuple[str, str]] = Field(default_factory=list)

    def get_all(self, name: str) -> list[str]:
        """Return every value of header *name* (case-insensitive)."""
        wanted = name.lower()
        return [v for k, v in self.headers if k.lower() == wanted]

    def joined_headers(self) -> dict[str, str]:
        """Collapse the multimap into ``name -> "v1,v2"`` for persistence."""
        grouped: dict[str, list[str]] = {}
        for key, value in self.headers:
            grouped.setdefault(key, []).append(value)
        return {key: ",".join(values) for key, values in grouped.items()}
