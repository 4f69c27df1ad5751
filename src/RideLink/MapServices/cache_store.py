# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.cache_store",
#   "purpose": "Key-value storage engines for cached provider responses.",
#   "sections": [
#     {
#       "id": "cachekind",
#       "name": "CacheKind",
#       "anchor": "class-cachekind",
#       "kind": "class"
#     },
#     {
#       "id": "cacheentry",
#       "name": "CacheEntry",
#       "anchor": "class-cacheentry",
#       "kind": "class"
#     },
#     {
#       "id": "cachestore",
#       "name": "CacheStore",
#       "anchor": "class-cachestore",
#       "kind": "class"
#     },
#     {
#       "id": "memorycachestore",
#       "name": "MemoryCacheStore",
#       "anchor": "class-memorycachestore",
#       "kind": "class"
#     },
#     {
#       "id": "sqlitecachestore",
#       "name": "SQLiteCacheStore",
#       "anchor": "class-sqlitecachestore",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Storage engines for the response cache.

Cache entries are immutable value records. Engines only move bytes: the
payload codec (JSON for geocode/route results, raw bytes for tiles) lives in
:mod:`RideLink.MapServices.cache`.

Key Design:
- ``SQLiteCacheStore`` persists three logical maps (tiles, geocode results,
  routes) in one table keyed by ``(kind, key)``, durable across restarts
- ``MemoryCacheStore`` keeps the same contract in a dict for tests and
  ephemeral sessions
- Every storage I/O failure surfaces as :class:`CacheError`; the caller
  decides whether to swallow it
- Uses PRAGMA journal_mode=WAL for concurrent reader safety

Typical Usage:
    from pathlib import Path
    from RideLink.MapServices.cache_store import CacheEntry, CacheKind, SQLiteCacheStore

    store = SQLiteCacheStore(Path("tmp/map_cache.sqlite"))
    store.put(CacheEntry("tile_12_655_1583", CacheKind.TILE, b"...", time.time(), 86400))
    entry = store.get(CacheKind.TILE, "tile_12_655_1583")
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Protocol

from .errors import CacheError

LOGGER = logging.getLogger(__name__)


class CacheKind(str, Enum):
    """Logical payload maps held by the cache."""

    TILE = "tile"
    GEOCODE = "geocode"
    ROUTE = "route"


@dataclass(frozen=True)
class CacheEntry:
    """One cached payload.

    Attributes:
        key: Cache key within ``kind``
        kind: Logical map the entry belongs to
        payload: Encoded payload bytes
        cached_at: Wall-clock epoch seconds when the entry was written
        ttl: Validity window in seconds
    """

    key: str
    kind: CacheKind
    payload: bytes = field(repr=False)
    cached_at: float
    ttl: float

    def __post_init__(self) -> None:
        if self.ttl <= 0:
            msg = f"ttl must be positive, got {self.ttl}"
            raise ValueError(msg)

    @property
    def size_bytes(self) -> int:
        return len(self.payload)

    def age(self, now: float) -> float:
        return now - self.cached_at

    def is_expired(self, now: float) -> bool:
        """An entry expires once strictly more than ``ttl`` seconds have elapsed."""
        return now - self.cached_at > self.ttl


class CacheStore(Protocol):
    """Storage contract shared by the cache engines."""

    def get(self, kind: CacheKind, key: str) -> Optional[CacheEntry]: ...

    def put(self, entry: CacheEntry) -> None: ...

    def delete(self, kind: CacheKind, key: str) -> None: ...

    def clear(self, kind: Optional[CacheKind] = None) -> int: ...

    def delete_expired(self, now: float) -> int: ...

    def stats(self) -> Dict[CacheKind, Dict[str, int]]: ...

    def close(self) -> None: ...


def _empty_stats() -> Dict[CacheKind, Dict[str, int]]:
    return {kind: {"entries": 0, "bytes": 0} for kind in CacheKind}


class MemoryCacheStore:
    """Dict-backed engine; contents vanish with the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[tuple[CacheKind, str], CacheEntry] = {}

    def get(self, kind: CacheKind, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get((kind, key))

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[(entry.kind, entry.key)] = entry

    def delete(self, kind: CacheKind, key: str) -> None:
        with self._lock:
            self._entries.pop((kind, key), None)

    def clear(self, kind: Optional[CacheKind] = None) -> int:
        with self._lock:
            if kind is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [k for k in self._entries if k[0] is kind]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def delete_expired(self, now: float) -> int:
        with self._lock:
            doomed = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def stats(self) -> Dict[CacheKind, Dict[str, int]]:
        result = _empty_stats()
        with self._lock:
            for entry in self._entries.values():
                result[entry.kind]["entries"] += 1
                result[entry.kind]["bytes"] += entry.size_bytes
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        return None


_DDL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;
PRAGMA busy_timeout=4000;
CREATE TABLE IF NOT EXISTS map_cache (
    kind TEXT NOT NULL,           -- "tile" | "geocode" | "route"
    key TEXT NOT NULL,
    payload BLOB NOT NULL,
    cached_at REAL NOT NULL,      -- UTC epoch seconds (wall-clock)
    ttl REAL NOT NULL,            -- seconds
    PRIMARY KEY (kind, key)
);
CREATE INDEX IF NOT EXISTS idx_map_cache_expiry ON map_cache(cached_at, ttl);
"""


@dataclass
class SQLiteCacheStore:
    """
    Durable cache engine backed by SQLite.

    Parameters
    ----------
    db_path : Path
        Path to SQLite database file. Directories are created if missing.

    Attributes
    ----------
    db_path : Path
        Database file location.
    _conn : sqlite3.Connection
        Persistent connection to database (autocommit mode).

    Raises
    ------
    CacheError
        If the database cannot be opened or its schema created.
    """

    db_path: Path

    def __post_init__(self) -> None:
        """Open the connection and create the schema if needed."""
        self.db_path = Path(self.db_path)
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.db_path,
                isolation_level=None,  # autocommit mode
                check_same_thread=False,
            )
            cursor = self._conn.cursor()
            for stmt in _DDL.strip().split(";\n"):
                if stmt.strip():
                    cursor.execute(stmt)
        except (OSError, sqlite3.Error) as exc:
            raise CacheError(f"Cannot open cache database {self.db_path}: {exc}") from exc

    def _query(self, sql: str, params: tuple = ()) -> list:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise CacheError(f"Cache read failed: {exc}", details={"db_path": str(self.db_path)}) from exc

    def _write(self, sql: str, params: tuple = ()) -> int:
        try:
            with self._lock:
                return self._conn.execute(sql, params).rowcount or 0
        except sqlite3.Error as exc:
            raise CacheError(f"Cache write failed: {exc}", details={"db_path": str(self.db_path)}) from exc

    # ── CacheStore API (Protocol) ──────────────────────────────────────────

    def get(self, kind: CacheKind, key: str) -> Optional[CacheEntry]:
        """
        Fetch an entry regardless of expiry.

        Parameters
        ----------
        kind : CacheKind
            Logical map to read.
        key : str
            Cache key.

        Returns
        -------
        Optional[CacheEntry]
            Stored entry or ``None`` when absent.

        Notes
        -----
        - Expiry is judged by the caller, which may accept stale entries
          while offline
        """
        rows = self._query(
            "SELECT payload, cached_at, ttl FROM map_cache WHERE kind=? AND key=?",
            (kind.value, key),
        )
        if not rows:
            return None
        payload, cached_at, ttl = rows[0]
        return CacheEntry(key, kind, bytes(payload), float(cached_at), float(ttl))

    def put(self, entry: CacheEntry) -> None:
        """
        Insert or overwrite an entry (last writer wins).

        Parameters
        ----------
        entry : CacheEntry
            Entry to persist.
        """
        self._write(
            """
            INSERT INTO map_cache(kind, key, payload, cached_at, ttl)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(kind, key) DO UPDATE SET
                payload=excluded.payload,
                cached_at=excluded.cached_at,
                ttl=excluded.ttl
            """,
            (entry.kind.value, entry.key, sqlite3.Binary(entry.payload), entry.cached_at, entry.ttl),
        )

    def delete(self, kind: CacheKind, key: str) -> None:
        self._write("DELETE FROM map_cache WHERE kind=? AND key=?", (kind.value, key))

    # ── Maintenance ───────────────────────────────────────────────────────────

    def clear(self, kind: Optional[CacheKind] = None) -> int:
        """
        Delete every entry, or every entry of one kind.

        Returns
        -------
        int
            Number of rows deleted.
        """
        if kind is None:
            return self._write("DELETE FROM map_cache")
        return self._write("DELETE FROM map_cache WHERE kind=?", (kind.value,))

    def delete_expired(self, now: float) -> int:
        """
        Delete all entries whose age exceeds their TTL.

        Parameters
        ----------
        now : float
            Current wall-clock epoch seconds.

        Returns
        -------
        int
            Number of rows deleted.
        """
        return self._write("DELETE FROM map_cache WHERE ? - cached_at > ttl", (now,))

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Diagnostics ───────────────────────────────────────────────────────────

    def stats(self) -> Dict[CacheKind, Dict[str, int]]:
        """
        Entry counts and payload bytes per kind.

        Returns
        -------
        dict[CacheKind, dict[str, int]]
            ``{"entries": n, "bytes": b}`` for every kind, zero when empty.
        """
        rows = self._query(
            "SELECT kind, COUNT(*), COALESCE(SUM(LENGTH(payload)), 0) FROM map_cache GROUP BY kind"
        )
        result = _empty_stats()
        for kind, count, size in rows:
            result[CacheKind(kind)] = {"entries": int(count), "bytes": int(size)}
        return result


__all__ = [
    "CacheEntry",
    "CacheKind",
    "CacheStore",
    "MemoryCacheStore",
    "SQLiteCacheStore",
]
