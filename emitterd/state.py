"""Globally replicated cluster state, split into one CRDT set per event type."""

from __future__ import annotations

import os
import struct
import zlib
from typing import Iterator, Union

from .crdt import Reader, Value, length_prefixed, new_map, uvarint
from .durable import Durable
from .events import (
    Ban,
    Connection,
    Subscription,
    UnitType,
    decode_connection,
    decode_subscription,
)
from .volatile import Volatile

Event = Union[Subscription, Ban, Connection]
CrdtSet = Union[Volatile, Durable]

MEMORY = ":memory:"


def _file_of(directory: str, name: str) -> str:
    if directory == MEMORY:
        return directory
    return os.path.join(directory, name)


def _prefix_of(peer: int) -> bytes:
    try:
        return struct.pack(">Q", peer)
    except struct.error as exc:
        raise ValueError(f"peer must fit in 64 bits: {exc}") from None


class State:
    """Replicated state; durable when a directory (or ':memory:') is given."""

    def __init__(self, directory: str = "") -> None:
        self.durable = directory != ""
        self._subsets: dict[UnitType, CrdtSet] = {
            UnitType.SUBSCRIPTION: new_map(self.durable, ""),
            UnitType.BAN: new_map(self.durable, _file_of(directory, "ban.db")),
            UnitType.CONNECTION: new_map(self.durable, ""),
        }

    def add(self, event: Event) -> None:
        self._subsets[event.unit_type].add(event.key(), event.val())

    def delete(self, event: Event) -> None:
        self._subsets[event.unit_type].delete(event.key())

    def has(self, event: Event) -> bool:
        return self._subsets[event.unit_type].has(event.key())

    def merge(self, other: State) -> State | None:
        """Merge another state in; it is reduced to the delta, returned unless empty."""
        if not isinstance(other, State):
            raise TypeError(f"can only merge a State, not {type(other).__name__}")
        count = 0
        for unit_type, subset in self._subsets.items():
            theirs = other._subsets[unit_type]
            subset.merge(theirs)
            count += theirs.count()
        return other if count else None

    def subscriptions(self) -> Iterator[tuple[Subscription, Value]]:
        """Every subscription, removed ones included, with its timestamps."""
        for key, value in self._subsets[UnitType.SUBSCRIPTION].range(None, True):
            try:
                event = decode_subscription(key, value.payload)
            except ValueError:
                continue
            yield event, value

    def subscriptions_of(self, peer: int) -> Iterator[Subscription]:
        """Live subscriptions owned by a peer."""
        for key, value in self._events_of(UnitType.SUBSCRIPTION, peer):
            try:
                yield decode_subscription(key, value.payload)
            except ValueError:
                continue

    def connections_of(self, peer: int) -> Iterator[Connection]:
        """Live connections owned by a peer."""
        for key, value in self._events_of(UnitType.CONNECTION, peer):
            try:
                yield decode_connection(key, value.payload)
            except ValueError:
                continue

    def _events_of(self, unit_type: UnitType, peer: int) -> list[tuple[bytes, Value]]:
        return self._subsets[unit_type].range(_prefix_of(peer), False)

    def count_added(self, unit_type: UnitType | int) -> int:
        """Number of live entries of one event type."""
        return len(self._subsets[UnitType(unit_type)].range(None, False))

    def encode(self) -> bytes:
        """Serialise the whole state, compressed."""
        parts = [uvarint(len(self._subsets))]
        for unit_type in sorted(self._subsets):
            parts.append(bytes([unit_type]))
            parts.append(length_prefixed(self._subsets[unit_type].encode()))
        return zlib.compress(b"".join(parts))

    def close(self) -> None:
        """Close every subset backed by storage."""
        for subset in self._subsets.values():
            if isinstance(subset, Durable):
                subset.close()

    def __enter__(self) -> State:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def decode_state(data: bytes) -> State:
    """Decode a state; the result is always volatile."""
    try:
        raw = zlib.decompress(data)
    except zlib.error as exc:
        raise ValueError(f"invalid state encoding: {exc}") from None

    out = State("")
    reader = Reader(raw)
    try:
        for _ in range(reader.read_uvarint()):
            unit_type = UnitType(reader.read_byte())
            out._subsets[unit_type] = Volatile.decode(reader.read_bytes())
    except EOFError as exc:
        raise ValueError(f"truncated state: {exc}") from None
    return out