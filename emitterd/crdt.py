"""Last-write-wins timestamps, the replication clock and the binary framing helpers."""

from __future__ import annotations

import struct
import time
from typing import Callable, Union

_TIME = struct.Struct(">q")
_HEADER = 16
_MAX_VARINT_BYTES = 10

Clock = Callable[[], int]
KeyLike = Union[str, bytes, bytearray, memoryview]


class Value:
    """An add time, a delete time and a payload, stored as one byte buffer."""

    __slots__ = ("_buf",)

    def __init__(self, add_time: int = 0, del_time: int = 0, payload: bytes = b"") -> None:
        self._buf = bytearray(_HEADER)
        _TIME.pack_into(self._buf, 0, add_time)
        _TIME.pack_into(self._buf, 8, del_time)
        self._buf += payload or b""

    @classmethod
    def decode(cls, data: bytes) -> Value:
        """Decode a value from its encoded form."""
        if len(data) < _HEADER:
            raise ValueError(f"encoded value needs at least {_HEADER} bytes, got {len(data)}")
        value = cls.__new__(cls)
        value._buf = bytearray(data)
        return value

    @property
    def add_time(self) -> int:
        return _TIME.unpack_from(self._buf, 0)[0]

    @property
    def del_time(self) -> int:
        return _TIME.unpack_from(self._buf, 8)[0]

    @property
    def payload(self) -> bytes:
        return bytes(self._buf[_HEADER:])

    def is_zero(self) -> bool:
        """True when neither time is set."""
        return self.add_time == 0 and self.del_time == 0

    def is_added(self) -> bool:
        """True when the entry was added and not removed afterwards."""
        add = self.add_time
        return add != 0 and add >= self.del_time

    def is_removed(self) -> bool:
        """True when the removal is newer than the addition."""
        return self.add_time < self.del_time

    def set_add_time(self, t: int) -> None:
        _TIME.pack_into(self._buf, 0, t)

    def set_del_time(self, t: int) -> None:
        _TIME.pack_into(self._buf, 8, t)

    def set_payload(self, payload: bytes | None) -> None:
        del self._buf[_HEADER:]
        self._buf += payload or b""

    def copy(self) -> Value:
        return Value.decode(self._buf)

    def encode(self) -> bytes:
        return bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self._buf == other._buf

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Value(add_time={self.add_time}, del_time={self.del_time}, payload={self.payload!r})"


def _system_clock() -> int:
    return time.time_ns()


_clock_state: dict[str, Clock] = {"clock": _system_clock}


def now() -> int:
    """Current time in Unix nanoseconds, as given by the active clock."""
    return _clock_state["clock"]()


def set_clock(clock: Clock) -> None:
    """Replace the clock used for timestamps."""
    if not callable(clock):
        raise TypeError(f"clock must be callable, not {type(clock).__name__}")
    _clock_state["clock"] = clock


def get_clock() -> Clock:
    """Return the clock currently used for timestamps."""
    return _clock_state["clock"]


def uvarint(n: int) -> bytes:
    """Encode a non-negative integer as an unsigned LEB128 varint."""
    if n < 0:
        raise ValueError("uvarint requires a non-negative integer")
    out = bytearray()
    while n >= 0x80:
        out.append((n & 0x7F) | 0x80)
        n >>= 7
    out.append(n)
    return bytes(out)


def length_prefixed(data: bytes) -> bytes:
    """Prefix data with its length as a varint."""
    return uvarint(len(data)) + bytes(data)


class Reader:
    """Sequential reader over varint-framed binary data."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read_byte(self) -> int:
        if self._pos >= len(self._data):
            raise EOFError("unexpected end of data")
        byte = self._data[self._pos]
        self._pos += 1
        return byte

    def read_uvarint(self) -> int:
        result = 0
        shift = 0
        for index in range(_MAX_VARINT_BYTES):
            byte = self.read_byte()
            if byte < 0x80:
                if index == _MAX_VARINT_BYTES - 1 and byte > 1:
                    break
                return result | (byte << shift)
            result |= (byte & 0x7F) << shift
            shift += 7
        raise ValueError("varint overflows a 64-bit integer")

    def read_bytes(self) -> bytes:
        size = self.read_uvarint()
        if size > self.remaining:
            raise EOFError("unexpected end of data")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk


def _to_key(item: KeyLike) -> bytes:
    if isinstance(item, str):
        return item.encode("utf-8")
    if isinstance(item, (bytes, bytearray, memoryview)):
        return bytes(item)
    raise TypeError(f"keys must be str or bytes, not {type(item).__name__}")


def _to_prefix(prefix: KeyLike | None) -> bytes:
    return b"" if prefix is None else _to_key(prefix)


def new_map(durable: bool, path: str = ""):
    """Create a durable (database-backed) or volatile (in-memory) set."""
    if durable:
        from .durable import Durable

        return Durable(path)
    from .volatile import Volatile

    return Volatile()