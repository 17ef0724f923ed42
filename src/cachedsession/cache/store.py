"""SQLite-backed persisted store for cache entries, cookies, and counters.

The store owns a single :class:`sqlite3.Connection` opened at a path and
creates its schema idempotently on construction::

    cache(url, method, response, status_code, headers,
          created_at, expires_at, hits)          UNIQUE(url, method)
    cookies(name UNIQUE, value, expires_at)
    stats(id=1, hits, misses)

Every public method is atomic on its own (one statement or one committed
transaction).  The store does no locking of its own: the connection is opened
with ``check_same_thread=False`` and callers serialise access through the
session lock held by :class:`~cachedsession.client.session.CachedSession`.

Any :class:`sqlite3.Error` is re-raised as
:class:`~cachedsession.exceptions.StoreError`; nothing is retried here.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from cachedsession.exceptions import StoreError
from cachedsession.models import CacheEntry, SearchResult

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    method TEXT NOT NULL,
    response TEXT NOT NULL,
    status_code INTEGER,
    headers TEXT,
    created_at INTEGER,
    expires_at INTEGER,
    hits INTEGER DEFAULT 0,
    UNIQUE(url, method)
);

CREATE INDEX IF NOT EXISTS idx_expires_at ON cache(expires_at);
CREATE INDEX IF NOT EXISTS idx_url ON cache(url);

CREATE TABLE IF NOT EXISTS cookies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    value TEXT,
    expires_at INTEGER
);

CREATE TABLE IF NOT EXISTS stats (
    id INTEGER PRIMARY KEY,
    hits INTEGER DEFAULT 0,
    misses INTEGER DEFAULT 0
);

INSERT OR IGNORE INTO stats (id, hits, misses) VALUES (1, 0, 0);
"""


class SQLiteStore:
    """Durable keyed storage for a :class:`CachedSession`.

    Args:
        path: Database file path, or ``":memory:"`` for a private in-memory
            database.  Parent directories are created as needed.

    Raises:
        StoreError: If the database cannot be opened or the schema cannot be
            created.

    Example::

        with SQLiteStore("/tmp/cache.db") as store:
            store.put_entry(entry)
            assert store.count() == 1
    """

    def __init__(self, path: str | Path = "cache.db") -> None:
        self._path = str(path)
        self._conn: Optional[sqlite3.Connection] = None
        with self._guard("open store"):
            if self._path != MEMORY_PATH:
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        logger.debug("Opened cache store at %s", self._path)

    @property
    def path(self) -> str:
        """The path this store was opened at."""
        return self._path

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Release the database handle.  Safe to call more than once."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SQLiteStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Cache entries
    # ------------------------------------------------------------------ #

    def get_entry(self, url: str, method: str) -> Optional[CacheEntry]:
        """Return the entry stored for ``(url, method)``, or ``None``.

        Rows with missing metadata columns are treated as absent.
        """
        with self._guard("read entry"):
            row = self._connection.execute(
                "SELECT response, status_code, headers, created_at, expires_at, hits "
                "FROM cache WHERE url = ? AND method = ?",
                (url, method),
            ).fetchone()
        if row is None:
            return None
        response, status_code, headers, created_at, expires_at, hits = row
        if status_code is None or created_at is None or expires_at is None or hits is None:
            return None
        return CacheEntry(
            url=url,
            method=method,
            body=response,
            status_code=status_code,
            headers=self._decode_headers(headers),
            created_at=created_at,
            expires_at=expires_at,
            hit_count=hits,
        )

    def put_entry(self, entry: CacheEntry) -> None:
        """Insert or replace the row for ``(entry.url, entry.method)``.

        The stored hit count always starts again at zero.
        """
        with self._guard("write entry"), self._connection as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache "
                "(url, method, response, status_code, headers, created_at, expires_at, hits) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, 0)",
                (
                    entry.url,
                    entry.method,
                    entry.body,
                    entry.status_code,
                    entry.serialized_headers(),
                    entry.created_at,
                    entry.expires_at,
                ),
            )

    def increment_hits(self, url: str, method: str) -> None:
        """Add one to the ``hits`` column of a single entry."""
        with self._guard("update entry hits"), self._connection as conn:
            conn.execute(
                "UPDATE cache SET hits = hits + 1 WHERE url = ? AND method = ?",
                (url, method),
            )

    def delete_all(self) -> None:
        """Empty the cache table and reset the counters to zero."""
        with self._guard("clear cache"), self._connection as conn:
            conn.execute("DELETE FROM cache")
            conn.execute("UPDATE stats SET hits = 0, misses = 0 WHERE id = 1")

    def delete_expired(self, now: int) -> int:
        """Delete entries with ``expires_at <= now`` and return how many went."""
        with self._guard("delete expired entries"), self._connection as conn:
            cursor = conn.execute("DELETE FROM cache WHERE expires_at <= ?", (now,))
            return cursor.rowcount

    def list_distinct_urls(self) -> set[str]:
        with self._guard("list urls"):
            rows = self._connection.execute("SELECT DISTINCT url FROM cache").fetchall()
        return {row[0] for row in rows}

    def search_by_pattern(self, pattern: str) -> list[SearchResult]:
        """Match URLs with SQL ``LIKE`` wildcards (``%`` any run, ``_`` one char)."""
        with self._guard("search cache"):
            rows = self._connection.execute(
                "SELECT url, status_code FROM cache WHERE url LIKE ? ORDER BY url",
                (pattern,),
            ).fetchall()
        return [SearchResult(url=url, status_code=status) for url, status in rows]

    def count(self) -> int:
        with self._guard("count entries"):
            (total,) = self._connection.execute("SELECT count(*) FROM cache").fetchone()
        return int(total)

    # ------------------------------------------------------------------ #
    # Cookies
    # ------------------------------------------------------------------ #

    def load_cookies(self, now: int) -> dict[str, str]:
        """Return ``name -> value`` for cookies that never expire or expire after *now*."""
        with self._guard("load cookies"):
            rows = self._connection.execute(
                "SELECT name, value FROM cookies WHERE expires_at IS NULL OR expires_at > ?",
                (now,),
            ).fetchall()
        return {name: value for name, value in rows}

    def upsert_cookie(self, name: str, value: str, expires_at: Optional[int] = None) -> None:
        with self._guard("save cookie"), self._connection as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cookies (name, value, expires_at) VALUES (?, ?, ?)",
                (name, value, expires_at),
            )

    def replace_cookies(self, cookies: dict[str, str]) -> None:
        """Overwrite every persisted cookie with *cookies* in one transaction."""
        with self._guard("save cookies"), self._connection as conn:
            conn.execute("DELETE FROM cookies")
            conn.executemany(
                "INSERT INTO cookies (name, value) VALUES (?, ?)",
                list(cookies.items()),
            )

    def delete_all_cookies(self) -> None:
        with self._guard("clear cookies"), self._connection as conn:
            conn.execute("DELETE FROM cookies")

    # ------------------------------------------------------------------ #
    # Stats
    # ------------------------------------------------------------------ #

    def increment_hit(self) -> None:
        with self._guard("record hit"), self._connection as conn:
            conn.execute("UPDATE stats SET hits = hits + 1 WHERE id = 1")

    def increment_miss(self) -> None:
        with self._guard("record miss"), self._connection as conn:
            conn.execute("UPDATE stats SET misses = misses + 1 WHERE id = 1")

    def get_totals(self) -> tuple[int, int]:
        """Return the cumulative ``(hits, misses)``."""
        with self._guard("read stats"):
            row = self._connection.execute(
                "SELECT hits, misses FROM stats WHERE id = 1"
            ).fetchone()
        if row is None:
            raise StoreError(f"Stats row missing from cache store at {self._path}")
        return int(row[0]), int(row[1])

    def reset_totals(self) -> None:
        with self._guard("reset stats"), self._connection as conn:
            conn.execute("UPDATE stats SET hits = 0, misses = 0 WHERE id = 1")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    @property
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError(f"Cache store at {self._path} is closed")
        return self._conn

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        """Translate :class:`sqlite3.Error` and :class:`OSError` into :class:`StoreError`."""
        try:
            yield
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"Cannot {action} ({self._path}): {exc}") from exc

    def _decode_headers(self, raw: Optional[str]) -> dict[str, str]:
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Corrupt headers column in {self._path}: {exc}") from exc
        if not isinstance(decoded, dict):
            raise StoreError(f"Corrupt headers column in {self._path}: expected an object")
        return {str(k): str(v) for k, v in decoded.items()}
