"""In-memory last-write-wins set with a bias for additions."""

from __future__ import annotations

import threading
from typing import Callable, Mapping

from .crdt import KeyLike, Reader, Value, _to_key, _to_prefix, length_prefixed, now, uvarint


class Volatile:
    """A thread-safe last-write-wins set held in memory."""

    def __init__(self, items: Mapping[KeyLike, Value] | None = None) -> None:
        self._lock = threading.Lock()
        self._data: dict[bytes, Value] = {
            _to_key(key): value.copy() for key, value in (items or {}).items()
        }

    def _fetch(self, key: bytes) -> Value:
        value = self._data.get(key)
        return value if value is not None else Value()

    def _put(self, key: bytes, value: Value) -> None:
        self._data[key] = value

    def add(self, item: KeyLike, value: bytes | None = b"") -> None:
        """Add an item with a payload, unless a newer addition exists."""
        key = _to_key(item)
        with self._lock:
            entry, current = self._fetch(key), now()
            if entry.add_time < current:
                entry.set_add_time(current)
                entry.set_payload(value)
                self._data[key] = entry

    def delete(self, item: KeyLike) -> None:
        """Mark an item as removed, unless a newer removal exists."""
        key = _to_key(item)
        with self._lock:
            entry, current = self._fetch(key), now()
            if entry.del_time < current:
                entry.set_del_time(current)
                self._data[key] = entry

    def has(self, item: KeyLike) -> bool:
        with self._lock:
            return self._fetch(_to_key(item)).is_added()

    def get(self, item: KeyLike) -> Value:
        with self._lock:
            return self._fetch(_to_key(item)).copy()

    def merge(self, other: Volatile) -> None:
        """Merge another set into this one, leaving only the delta in the other."""
        if not isinstance(other, Volatile):
            raise TypeError(f"can only merge a Volatile set, not {type(other).__name__}")
        if other is self:
            raise ValueError("cannot merge a set into itself")
        with self._lock:
            other._reconcile(self._fetch, self._put)

    def _reconcile(
        self,
        fetch: Callable[[bytes], Value],
        store: Callable[[bytes, Value], None],
    ) -> None:
        """Push this set's entries into a target and reduce this set to the delta."""
        with self._lock:
            for key, remote in list(self._data.items()):
                local = fetch(key)

                if local.add_time < remote.add_time:
                    local.set_add_time(remote.add_time)
                else:
                    remote.set_add_time(0)

                if local.del_time < remote.del_time:
                    local.set_del_time(remote.del_time)
                else:
                    remote.set_del_time(0)

                if remote.is_zero():
                    del self._data[key]
                else:
                    local.set_payload(remote.payload)
                    store(key, local)

    def range(
        self, prefix: KeyLike | None = None, tombstones: bool = True
    ) -> list[tuple[bytes, Value]]:
        """Snapshot of entries whose key starts with prefix; removed ones only with tombstones."""
        start = _to_prefix(prefix)
        with self._lock:
            return [
                (key, value.copy())
                for key, value in self._data.items()
                if key.startswith(start) and (tombstones or value.is_added())
            ]

    def count(self) -> int:
        """Number of entries, removed ones included."""
        with self._lock:
            return len(self._data)

    def to_dict(self) -> dict[bytes, Value]:
        return dict(self.range(None, True))

    def encode(self) -> bytes:
        """Serialise the set as a varint count followed by length-prefixed keys and values."""
        with self._lock:
            parts = [uvarint(len(self._data))]
            for key, value in self._data.items():
                parts.append(length_prefixed(key))
                parts.append(length_prefixed(value.encode()))
        return b"".join(parts)

    @classmethod
    def decode(cls, data: bytes) -> Volatile:
        """Decode a set; a truncated tail of entries is ignored."""
        reader = Reader(data)
        size = reader.read_uvarint()
        out = cls()
        for _ in range(size):
            try:
                key = reader.read_bytes()
                raw = reader.read_bytes()
            except (EOFError, ValueError):
                break
            out._data[key] = Value.decode(raw)
        return out

    def __repr__(self) -> str:
        return f"Volatile(count={self.count()})"