"""Last-write-wins set persisted in an SQLite database."""

from __future__ import annotations

import random
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Mapping

from .crdt import KeyLike, Reader, Value, _to_key, _to_prefix, length_prefixed, now, uvarint
from .volatile import Volatile

TOMBSTONE_TTL = 6 * 60 * 60.0
_RESERVOIR_SIZE = 50_000
_ALIVE = "(expires IS NULL OR expires > ?)"


class Durable:
    """A last-write-wins set stored on disk; removed entries expire after six hours."""

    def __init__(self, path: str = "", items: Mapping[KeyLike, Value] | None = None) -> None:
        self._path = path or ":memory:"
        self._lock = threading.RLock()
        self._db = sqlite3.connect(self._path, check_same_thread=False, isolation_level=None)
        self._db.execute(
            "CREATE TABLE IF NOT EXISTS entries "
            "(key BLOB PRIMARY KEY, value BLOB NOT NULL, expires REAL)"
        )
        if items:
            with self._transaction():
                for key, value in items.items():
                    self._store(_to_key(key), value)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            self._db.execute("BEGIN")
            try:
                yield
            except BaseException:
                self._db.execute("ROLLBACK")
                raise
            self._db.execute("COMMIT")

    def _fetch(self, key: bytes) -> Value:
        row = self._db.execute(
            f"SELECT value FROM entries WHERE key = ? AND {_ALIVE}", (key, time.time())
        ).fetchone()
        return Value.decode(row[0]) if row else Value()

    def _store(self, key: bytes, value: Value) -> None:
        expires = time.time() + TOMBSTONE_TTL if value.is_removed() else None
        self._db.execute(
            "INSERT OR REPLACE INTO entries (key, value, expires) VALUES (?, ?, ?)",
            (key, value.encode(), expires),
        )

    def _rows(self) -> list[tuple[bytes, bytes]]:
        with self._lock:
            return self._db.execute(
                f"SELECT key, value FROM entries WHERE {_ALIVE} ORDER BY key", (time.time(),)
            ).fetchall()

    def add(self, item: KeyLike, value: bytes | None = b"") -> None:
        """Add an item with a payload, unless a newer addition exists."""
        key = _to_key(item)
        with self._transaction():
            entry, current = self._fetch(key), now()
            if entry.add_time < current:
                entry.set_add_time(current)
                entry.set_payload(value)
                self._store(key, entry)

    def delete(self, item: KeyLike) -> None:
        """Mark an item as removed, unless a newer removal exists."""
        key = _to_key(item)
        with self._transaction():
            entry, current = self._fetch(key), now()
            if entry.del_time < current:
                entry.set_del_time(current)
                self._store(key, entry)

    def has(self, item: KeyLike) -> bool:
        with self._lock:
            return self._fetch(_to_key(item)).is_added()

    def get(self, item: KeyLike) -> Value:
        with self._lock:
            return self._fetch(_to_key(item))

    def merge(self, other: Volatile) -> None:
        """Merge a volatile set into this one, leaving only the delta in the other."""
        if not isinstance(other, Volatile):
            raise TypeError(f"can only merge a Volatile set, not {type(other).__name__}")
        with self._transaction():
            other._reconcile(self._fetch, self._store)

    def range(
        self, prefix: KeyLike | None = None, tombstones: bool = True
    ) -> list[tuple[bytes, Value]]:
        """Entries in key order whose key starts with prefix; removed ones only with tombstones."""
        start = _to_prefix(prefix)
        result = []
        for key, raw in self._rows():
            if not key.startswith(start):
                continue
            value = Value.decode(raw)
            if tombstones or value.is_added():
                result.append((key, value))
        return result

    def count(self) -> int:
        """Number of stored entries, unexpired removed ones included."""
        return len(self.range(None, True))

    def to_dict(self) -> dict[bytes, Value]:
        return dict(self.range(None, True))

    def encode(self) -> bytes:
        """Serialise a random sample of at most 50,000 entries, sorted by key."""
        sample: list[tuple[bytes, bytes]] = []
        for seen, row in enumerate(self._rows(), start=1):
            if seen <= _RESERVOIR_SIZE:
                sample.append(row)
            else:
                slot = random.randrange(seen)
                if slot < _RESERVOIR_SIZE:
                    sample[slot] = row
        sample.sort(key=lambda row: row[0])

        parts = [uvarint(len(sample))]
        for key, raw in sample:
            parts.append(length_prefixed(key))
            parts.append(length_prefixed(raw))
        return b"".join(parts)

    @classmethod
    def decode(cls, data: bytes) -> Durable:
        """Decode into a new in-memory set; a truncated tail of entries is ignored."""
        reader = Reader(data)
        size = reader.read_uvarint()
        out = cls()
        with out._transaction():
            for _ in range(size):
                try:
                    key = reader.read_bytes()
                    raw = reader.read_bytes()
                except (EOFError, ValueError):
                    break
                out._db.execute(
                    "INSERT OR REPLACE INTO entries (key, value, expires) VALUES (?, ?, NULL)",
                    (key, Value.decode(raw).encode()),
                )
        return out

    def close(self) -> None:
        """Close the underlying database."""
        with self._lock:
            self._db.close()

    def __enter__(self) -> Durable:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Durable(path={self._path!r})"