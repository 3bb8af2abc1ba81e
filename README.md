# emitterd

Building blocks for the replicated state of a clustered publish/subscribe broker:
last-write-wins sets, the cluster events stored in them, the error responses sent
to clients and the broker configuration.

## Modules

- `emitterd.crdt`: `Value`, which holds an add time, a delete time and a payload
  in one buffer (`is_added`, `is_removed`, `is_zero`, `encode`, `Value.decode`);
  the clock used to stamp entries (`now`, `set_clock`, `get_clock`, nanoseconds by
  default); the varint helpers `uvarint`, `length_prefixed` and `Reader`; and
  `new_map(durable, path)`, which returns a `Durable` or a `Volatile` set.
- `emitterd.volatile`: `Volatile`, a thread-safe in-memory last-write-wins set with
  a bias for additions. `add`, `delete`, `has`, `get`, `range(prefix, tombstones)`,
  `count`, `to_dict`, `encode` and `Volatile.decode`. `merge(other)` folds another
  `Volatile` in and leaves only the delta in `other`.
- `emitterd.durable`: `Durable`, the same set stored in SQLite (in memory when no
  path is given). Removed entries expire six hours after removal. `merge` accepts a
  `Volatile` set. `encode` writes a random sample of at most 50,000 entries, sorted
  by key. Use `close()` or a `with` block to close the database.
- `emitterd.events`: the replicated events `Subscription`, `Ban` and `Connection`,
  each with a binary `key()` and `val()`, the `UnitType` enum, and
  `decode_subscription`, `decode_ban` and `decode_connection`.
- `emitterd.state`: `State`, one set per event type, with `add`, `delete`, `has`,
  `merge` (returns the delta, or `None` when nothing was new), `subscriptions`,
  `subscriptions_of(peer)`, `connections_of(peer)`, `count_added(unit_type)`,
  `encode` (zlib-compressed) and `close`. `State("")` is held in memory; any other
  directory makes it durable, with bans kept in `ban.db` in that directory, or in
  memory when the directory is `":memory:"`. `decode_state` always gives back an
  in-memory state.
- `emitterd.errors`: `EmitterError` with a status, a message and a request id
  (`copy`, `for_request`, `to_dict`, `to_json`), `new_error` for status 500 errors,
  and the standard responses such as `ERR_BAD_REQUEST` and `ERR_UNAUTHORIZED`.
- `emitterd.config`: `Config` with `LimitConfig`, `ClusterConfig`, `TLSConfig` and
  `ProviderConfig`; `Config.to_dict`, `Config.from_dict` and `max_message_bytes`
  (capped at 64 KiB); `new_default()`; and `to_username(ip)`.
- `emitterd.version`: the version command.

## Install

    pip install .

For the tests:

    pip install ".[test]"
    pytest

## Example

    from emitterd.events import Subscription
    from emitterd.state import State, decode_state

    state = State()
    sub = Subscription(peer=1, conn=2, channel=b"a/b/c/")
    state.add(sub)
    assert state.has(sub)

    peer_state = decode_state(state.encode())
    assert [s.channel for s, _ in peer_state.subscriptions()] == [b"a/b/c/"]

## Command

Print the version:

    emitterd-version

## What this package does not do

It is not a broker: it opens no listeners, speaks no wire protocol, does not
gossip with peers and generates no keys or licences. It has no scheduler for
running actions on an interval. `emitterd.config` converts configurations to and
from dictionaries but does not read or write configuration files, parse listen
addresses or load certificates.