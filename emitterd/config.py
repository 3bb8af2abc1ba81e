"""Broker configuration and its JSON representation."""

from __future__ import annotations

from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from typing import Any, Mapping

CHANNEL_SEPARATOR = "/"
MAX_MESSAGE_SIZE = 65536


def _json(name: str | None, kind: Any, *, omit: bool = False, default: Any = MISSING,
          default_factory: Any = MISSING) -> Any:
    """Describe a field; a name of None means the JSON key is the field's own name."""
    return field(
        default=default,
        default_factory=default_factory,
        metadata={"json": name, "kind": kind, "omit": omit},
    )


def _key(spec: Any) -> str:
    return spec.metadata["json"] or spec.name


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == {} or value is False or (
        isinstance(value, int) and value == 0
    )


def _encode(obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for spec in fields(obj):
        value = getattr(obj, spec.name)
        if spec.metadata["omit"] and _is_empty(value):
            continue
        if is_dataclass(value):
            value = _encode(value)
        elif isinstance(value, dict):
            value = dict(value)
        out[_key(spec)] = value
    return out


def _check(name: str, kind: type, raw: Any) -> Any:
    valid = isinstance(raw, kind) and not (kind is int and isinstance(raw, bool))
    if not valid:
        raise TypeError(f"{name!r} must be of type {kind.__name__}, not {type(raw).__name__}")
    return dict(raw) if kind is dict else raw


def _decode(cls: Any, data: Any) -> Any:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected an object for {cls.__name__}, not {type(data).__name__}")
    kwargs: dict[str, Any] = {}
    for spec in fields(cls):
        name = _key(spec)
        raw = data.get(name)
        if raw is None:
            continue
        kind = spec.metadata["kind"]
        kwargs[spec.name] = _decode(kind, raw) if is_dataclass(kind) else _check(name, kind, raw)
    return cls(**kwargs)


@dataclass
class LimitConfig:
    """Per-connection limits."""

    message_size: int = _json("messageSize", int, omit=True, default=0)
    read_rate: int = _json("readRate", int, omit=True, default=0)
    flush_rate: int = _json("flushRate", int, omit=True, default=0)


@dataclass
class ClusterConfig:
    """Settings for joining and gossiping within a cluster."""

    node_name: str = _json("name", str, omit=True, default="")
    listen_addr: str = _json("listen", str, default="")
    advertise_addr: str = _json("advertise", str, default="")
    seed: str = _json("seed", str, omit=True, default="")
    passphrase: str = _json(None, str, omit=True, default="")
    directory: str = _json("dir", str, omit=True, default="")


@dataclass
class TLSConfig:
    """The address of the secure listener."""

    listen_addr: str = _json("listen", str, default="")


@dataclass
class ProviderConfig:
    """The name of a pluggable provider and its settings."""

    provider: str = _json("provider", str, default="")
    config: dict[str, Any] | None = _json("config", dict, omit=True, default=None)


@dataclass
class Config:
    """The main broker configuration."""

    listen_addr: str = _json("listen", str, default="")
    license: str = _json("license", str, default="")
    matcher: str = _json("matcher", str, omit=True, default="")
    debug: bool = _json("debug", bool, omit=True, default=False)
    limit: LimitConfig = _json("limit", LimitConfig, default_factory=LimitConfig)
    tls: TLSConfig | None = _json("tls", TLSConfig, omit=True, default=None)
    cluster: ClusterConfig | None = _json("cluster", ClusterConfig, omit=True, default=None)
    storage: ProviderConfig | None = _json("storage", ProviderConfig, omit=True, default=None)
    contract: ProviderConfig | None = _json("contract", ProviderConfig, omit=True, default=None)
    metering: ProviderConfig | None = _json("metering", ProviderConfig, omit=True, default=None)
    logging: ProviderConfig | None = _json("logging", ProviderConfig, omit=True, default=None)
    monitor: ProviderConfig | None = _json("monitor", ProviderConfig, omit=True, default=None)
    vault: dict[str, Any] | None = _json("vault", dict, omit=True, default=None)
    dynamo: dict[str, Any] | None = _json("dynamodb", dict, omit=True, default=None)

    def max_message_bytes(self) -> int:
        """The configured maximum message size, capped at 64 KiB."""
        size = self.limit.message_size
        if size <= 0 or size > MAX_MESSAGE_SIZE:
            return MAX_MESSAGE_SIZE
        return size

    def to_dict(self) -> dict[str, Any]:
        """The JSON object for this configuration; empty optional fields are left out."""
        return _encode(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build a configuration from a parsed JSON object; unknown keys are ignored."""
        return _decode(cls, data)


def new_default() -> Config:
    """The configuration written when none exists yet."""
    return Config(
        listen_addr=":8080",
        tls=TLSConfig(listen_addr=":443"),
        cluster=ClusterConfig(listen_addr=":4000", advertise_addr="external:4000"),
        storage=ProviderConfig(provider="inmemory"),
    )


def to_username(ip: Any) -> str:
    """Turn an IP address into a user name by replacing dots and colons with dashes."""
    return str(ip).replace(".", "-").replace(":", "-")