"""Persistent ordered key/value store backing the element caches."""

from __future__ import annotations

import os
import sqlite3
import struct
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Optional

from .cacheconfig import CacheOptions

# Elements with this ID are placeholders and are never stored.
SKIP = -1

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_KEY = struct.Struct(">q")


class NotFoundError(LookupError):
    """Raised when an element is not in a cache."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


def id_to_key(id_: int) -> bytes:
    """Encode an ID as an 8-byte big-endian key (two's complement)."""
    if not _INT64_MIN <= id_ <= _INT64_MAX:
        raise OverflowError(f"id {id_} out of 64-bit range")
    return _KEY.pack(id_)


def id_from_key(buf: bytes) -> int:
    """Decode the ID from the first eight bytes of a key."""
    if len(buf) < 8:
        raise ValueError("key shorter than 8 bytes")
    return _KEY.unpack(bytes(buf[:8]))[0]


class KeyValueStore:
    """A directory-backed store with bytes keys kept in lexical order."""

    _FILENAME = "store.sqlite"
    _CHUNK = 1024

    def __init__(self, path: str | os.PathLike[str], options: Optional[CacheOptions] = None) -> None:
        self.path = Path(path)
        self.path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        conn = sqlite3.connect(
            self.path / self._FILENAME, isolation_level=None, check_same_thread=False
        )
        conn.execute("PRAGMA synchronous = OFF")
        if options is not None and options.cache_size_m > 0:
            conn.execute(f"PRAGMA cache_size = {-options.cache_size_m * 1024}")
        conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key BLOB PRIMARY KEY, value BLOB NOT NULL) WITHOUT ROWID"
        )
        self._conn: Optional[sqlite3.Connection] = conn

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ValueError("store is closed")
        return self._conn

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the value stored for key, or None."""
        with self._lock:
            row = self._connection().execute(
                "SELECT value FROM kv WHERE key = ?", (bytes(key),)
            ).fetchone()
        return None if row is None else bytes(row[0])

    def put(self, key: bytes, value: bytes) -> None:
        """Store value under key, replacing any previous value."""
        with self._lock:
            self._connection().execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (bytes(key), bytes(value))
            )

    def delete(self, key: bytes) -> None:
        """Remove key; missing keys are ignored."""
        with self._lock:
            self._connection().execute("DELETE FROM kv WHERE key = ?", (bytes(key),))

    def write_batch(self, items: Iterable[tuple[bytes, bytes]]) -> None:
        """Store all (key, value) pairs atomically."""
        with self._lock:
            conn = self._connection()
            conn.execute("BEGIN")
            try:
                conn.executemany(
                    "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                    ((bytes(k), bytes(v)) for k, v in items),
                )
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def items(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield all (key, value) pairs in ascending key order."""
        last: Optional[bytes] = None
        while True:
            with self._lock:
                conn = self._connection()
                if last is None:
                    rows = conn.execute(
                        "SELECT key, value FROM kv ORDER BY key LIMIT ?", (self._CHUNK,)
                    ).fetchall()
                else:
                    rows = conn.execute(
                        "SELECT key, value FROM kv WHERE key > ? ORDER BY key LIMIT ?",
                        (last, self._CHUNK),
                    ).fetchall()
            for key, value in rows:
                yield bytes(key), bytes(value)
            if len(rows) < self._CHUNK:
                return
            last = bytes(rows[-1][0])

    def close(self) -> None:
        """Close the store; further operations raise ValueError."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()