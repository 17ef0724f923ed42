"""In-memory cookie jar mirrored write-through to the persisted store.

The jar keeps a plain ``name -> value`` mapping for fast header formatting
and mirrors every mutation to :class:`~cachedsession.cache.store.SQLiteStore`
immediately.  :meth:`CookieJar.load` discards the in-memory mapping and
refreshes it wholesale from the store.

The jar is not thread-safe on its own; the owning
:class:`~cachedsession.client.session.CachedSession` wraps each call in the
session lock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Iterator, Optional

from cachedsession.cache.store import SQLiteStore

logger = logging.getLogger(__name__)


def parse_set_cookie(header: str) -> tuple[str, str]:
    """Extract ``(name, value)`` from a ``Set-Cookie`` header value.

    Only the first ``;``-separated segment is considered, and it is split on
    the first ``=``.  Both sides are stripped.  A segment without ``=`` yields
    ``("", "")``.  Attributes such as ``Path`` or ``Expires`` are ignored.

    Example::

        >>> parse_set_cookie("session=abc; Path=/")
        ('session', 'abc')
        >>> parse_set_cookie("data=key=value")
        ('data', 'key=value')
        >>> parse_set_cookie("novalue")
        ('', '')
    """
    first = header.split(";", 1)[0]
    name, sep, value = first.partition("=")
    if not sep:
        return "", ""
    return name.strip(), value.strip()


class CookieJar:
    """Session cookies backed by a :class:`SQLiteStore`.

    Args:
        store: Store that persists the ``cookies`` table.
        clock: Returns the current epoch time; used to skip expired rows on
            :meth:`load`.
    """

    def __init__(self, store: SQLiteStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._cookies: dict[str, str] = {}

    def load(self) -> None:
        """Replace the in-memory cookies with the unexpired persisted ones."""
        self._cookies = self._store.load_cookies(int(self._clock()))
        logger.debug("Loaded %d cookies", len(self._cookies))

    def save(self) -> None:
        """Overwrite the persisted cookies with the in-memory mapping."""
        self._store.replace_cookies(dict(self._cookies))

    def set(self, name: str, value: str) -> None:
        self._cookies[name] = value
        self._store.upsert_cookie(name, value)

    def get(self, name: str) -> Optional[str]:
        return self._cookies.get(name)

    def clear(self) -> None:
        """Forget every cookie, in memory and in the store."""
        self._cookies.clear()
        self._store.delete_all_cookies()

    def format_header(self) -> str:
        """Build a ``Cookie`` request header value (order not guaranteed)."""
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def extract_from_response(self, header_values: Iterable[str]) -> int:
        """Parse raw ``Set-Cookie`` values and store each named cookie.

        Values that do not parse to a non-empty name are dropped silently.

        Returns:
            The number of cookies stored.
        """
        stored = 0
        for raw in header_values:
            name, value = parse_set_cookie(raw)
            if not name:
                logger.debug("Ignoring malformed Set-Cookie header: %r", raw)
                continue
            self.set(name, value)
            stored += 1
        return stored

    def items(self) -> list[tuple[str, str]]:
        return list(self._cookies.items())

    def __len__(self) -> int:
        return len(self._cookies)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._cookies))

    def __contains__(self, name: object) -> bool:
        return name in self._cookies
