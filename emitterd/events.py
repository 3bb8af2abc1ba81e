"""Replicated cluster events: subscriptions, key bans and client connections."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from .crdt import KeyLike, Reader, _to_key, length_prefixed

_U64 = struct.Struct(">Q")
_U32 = struct.Struct(">I")
_PREFIX = 16


class UnitType(IntEnum):
    """The kinds of replicated events; each lives in its own set."""

    SUBSCRIPTION = 0
    BAN = 1
    CONNECTION = 2


def _peer_conn(peer: int, conn: int) -> bytes:
    try:
        return _U64.pack(peer) + _U64.pack(conn)
    except struct.error as exc:
        raise ValueError(f"peer and connection must fit in 64 bits: {exc}") from None


def _split_key(key: KeyLike) -> tuple[int, int, bytes]:
    raw = _to_key(key)
    if len(raw) < _PREFIX:
        raise ValueError(f"event key needs at least {_PREFIX} bytes, got {len(raw)}")
    return _U64.unpack_from(raw, 0)[0], _U64.unpack_from(raw, 8)[0], raw[_PREFIX:]


@dataclass
class Subscription:
    """A subscription of a connection on a peer to a channel."""

    peer: int = 0
    conn: int = 0
    ssid: tuple[int, ...] = ()
    user: str = ""
    channel: bytes = b""

    unit_type: ClassVar[UnitType] = UnitType.SUBSCRIPTION

    def __post_init__(self) -> None:
        self.ssid = tuple(self.ssid)
        self.channel = bytes(self.channel)

    def key(self) -> bytes:
        """Peer, connection and every SSID part, all big-endian."""
        try:
            parts = b"".join(_U32.pack(part) for part in self.ssid)
        except struct.error as exc:
            raise ValueError(f"ssid parts must fit in 32 bits: {exc}") from None
        return _peer_conn(self.peer, self.conn) + parts

    def val(self) -> bytes:
        """The user name and the channel, each length-prefixed."""
        return length_prefixed(self.user.encode("utf-8")) + length_prefixed(self.channel)


@dataclass(frozen=True)
class Ban:
    """A banned key."""

    name: str

    unit_type: ClassVar[UnitType] = UnitType.BAN

    def key(self) -> bytes:
        return self.name.encode("utf-8")

    def val(self) -> bytes:
        """Bans carry no payload: the value is always empty."""
        return bytes()


@dataclass
class Connection:
    """A client connection with its last-will settings."""

    peer: int = 0
    conn: int = 0
    will_flag: bool = False
    will_retain: bool = False
    will_qos: int = 0
    will_topic: bytes = b""
    will_message: bytes = b""
    client_id: bytes = b""
    username: bytes = b""

    unit_type: ClassVar[UnitType] = UnitType.CONNECTION

    def __post_init__(self) -> None:
        self.will_topic = bytes(self.will_topic)
        self.will_message = bytes(self.will_message)
        self.client_id = bytes(self.client_id)
        self.username = bytes(self.username)

    def key(self) -> bytes:
        """Peer and connection identifier, big-endian."""
        return _peer_conn(self.peer, self.conn)

    def val(self) -> bytes:
        """Flags, QoS and the length-prefixed will and client fields."""
        head = bytes([int(self.will_flag), int(self.will_retain), self.will_qos])
        return head + b"".join(
            length_prefixed(part)
            for part in (self.will_topic, self.will_message, self.client_id, self.username)
        )


def decode_subscription(key: KeyLike, value: bytes | None) -> Subscription:
    """Rebuild a subscription from its key and value."""
    peer, conn, rest = _split_key(key)
    ssid = tuple(_U32.unpack_from(rest, offset)[0] for offset in range(0, len(rest) - 3, 4))
    event = Subscription(peer=peer, conn=conn, ssid=ssid)
    if value:
        reader = Reader(value)
        try:
            event.user = reader.read_bytes().decode("utf-8")
            event.channel = reader.read_bytes()
        except EOFError as exc:
            raise ValueError(f"truncated subscription value: {exc}") from None
    return event


def decode_ban(key: KeyLike) -> Ban:
    """Rebuild a ban from its key."""
    return Ban(_to_key(key).decode("utf-8"))


def decode_connection(key: KeyLike, value: bytes | None) -> Connection:
    """Rebuild a connection from its key and value."""
    peer, conn, _ = _split_key(key)
    event = Connection(peer=peer, conn=conn)
    if value:
        reader = Reader(value)
        try:
            event.will_flag = reader.read_byte() != 0
            event.will_retain = reader.read_byte() != 0
            event.will_qos = reader.read_byte()
            event.will_topic = reader.read_bytes()
            event.will_message = reader.read_bytes()
            event.client_id = reader.read_bytes()
            event.username = reader.read_bytes()
        except EOFError as exc:
            raise ValueError(f"truncated connection value: {exc}") from None
    return event