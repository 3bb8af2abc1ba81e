import threading

import pytest

from emitterd.crdt import Value, get_clock, set_clock
from emitterd.volatile import Volatile


@pytest.fixture(autouse=True)
def restore_clock():
    saved = get_clock()
    yield
    set_clock(saved)


def fixed(t):
    return lambda: t


def T(key, add, delete, payload=""):
    return key, Value(add, delete, payload.encode())


def map_of(*entries):
    return Volatile(dict(entries))


@pytest.mark.parametrize(
    "initial, expected, actions",
    [
        ([T("A", 10, 0, "A1")], [T("A", 20, 0, "A2")], [T("A", 20, 0, "A2")]),
        ([T("A", 10, 0, "A1")], [T("A", 10, 20, "A1")], [T("A", 0, 20, "A1")]),
        (
            [T("A", 10, 0, "A1")],
            [T("A", 20, 0, "A2")],
            [T("A", 20, 0, "A2"), T("A", 15, 0, "A3")],
        ),
        ([T("A", 10, 0, "A1")], [T("A", 10, 20, "A1")], [T("A", 0, 20), T("A", 0, 15)]),
    ],
)
def test_add_remove(initial, expected, actions):
    current = map_of(*initial)
    want = map_of(*expected)
    for key, value in actions:
        if value.is_added():
            set_clock(fixed(value.add_time))
            current.add(key, value.payload)
        if value.is_removed():
            set_clock(fixed(value.del_time))
            current.delete(key)
    for key, value in want.range(None, True):
        assert current.get(key) == value
    assert current.count() == want.count()


@pytest.mark.parametrize(
    "lww1, lww2, expected, delta, valid, invalid",
    [
        (
            [T("A", 10, 0, "A1"), T("B", 20, 0, "B1")],
            [T("A", 0, 20, "A2"), T("B", 0, 20, "B2")],
            [T("A", 10, 20, "A2"), T("B", 20, 20, "B2")],
            [T("A", 0, 20, "A2"), T("B", 0, 20, "B2")],
            ["B"],
            ["A"],
        ),
        (
            [T("A", 10, 0, "A1"), T("B", 20, 0, "B1")],
            [T("A", 0, 20), T("B", 10, 0, "B2")],
            [T("A", 10, 20), T("B", 20, 0, "B1")],
            [T("A", 0, 20)],
            ["B"],
            ["A"],
        ),
        (
            [T("A", 30, 0, "A1"), T("B", 20, 0, "B1")],
            [T("A", 20, 0, "A2"), T("B", 10, 0, "B2")],
            [T("A", 30, 0, "A1"), T("B", 20, 0, "B1")],
            [],
            ["A", "B"],
            [],
        ),
        (
            [T("A", 10, 0, "A1"), T("B", 0, 20)],
            [T("C", 10, 0, "C1"), T("D", 0, 20)],
            [T("A", 10, 0, "A1"), T("B", 0, 20), T("C", 10, 0, "C1"), T("D", 0, 20)],
            [T("C", 10, 0, "C1"), T("D", 0, 20)],
            ["A", "C"],
            ["B", "D"],
        ),
        (
            [T("A", 10, 0, "A1"), T("B", 30, 0, "B1")],
            [T("A", 20, 0, "A2"), T("B", 20, 0, "B2")],
            [T("A", 20, 0, "A2"), T("B", 30, 0, "B1")],
            [T("A", 20, 0, "A2")],
            ["A", "B"],
            [],
        ),
        (
            [T("A", 0, 10), T("B", 0, 30)],
            [T("A", 0, 20), T("B", 0, 20)],
            [T("A", 0, 20), T("B", 0, 30)],
            [T("A", 0, 20)],
            [],
            ["A", "B"],
        ),
    ],
)
def test_merge(lww1, lww2, expected, delta, valid, invalid):
    target, source = map_of(*lww1), map_of(*lww2)
    target.merge(source)
    assert target.to_dict() == map_of(*expected).to_dict()
    assert source.to_dict() == map_of(*delta).to_dict()
    for key in valid:
        assert target.has(key)
    for key in invalid:
        assert not target.has(key)


def test_merge_rejects_other_types():
    with pytest.raises(TypeError):
        Volatile().merge({"A": Value(1, 0)})


def test_merge_into_itself_rejected():
    s = Volatile()
    with pytest.raises(ValueError):
        s.merge(s)


def test_concurrent():
    lww = Volatile()
    for i in range(100):
        set_clock(fixed(i))
        lww.add(str(i), None)

    others = []
    for x in range(2, 10):
        other = Volatile()
        for gi in range(100, x * 100):
            set_clock(fixed(100000 + gi))
            other.delete("100")
        others.append(other)

    encoded = []
    start = threading.Barrier(len(others) + 1)

    def work(other):
        start.wait()
        lww.merge(other)
        other.merge(lww)

    def snapshot():
        start.wait()
        encoded.append(lww.encode())

    threads = [threading.Thread(target=work, args=(o,)) for o in others]
    threads.append(threading.Thread(target=snapshot))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not lww.has("0")
    assert all(lww.has(str(n)) for n in range(1, 100))
    assert not lww.has("100")
    assert Volatile.decode(encoded[0]).count() >= 99


def test_range():
    state = Volatile(
        {
            "AC": Value(60, 50),
            "AB": Value(60, 50),
            "AA": Value(10, 50),
            "BA": Value(60, 50),
            "BB": Value(60, 50),
            "BC": Value(60, 50),
        }
    )
    assert len(state.range(b"A", False)) == 2
    assert len(state.range(None, False)) == 5
    assert state.count() == 6


def test_marshal():
    set_clock(fixed(0))
    state = Volatile({"A": Value(10, 50)})
    enc = state.encode()
    assert enc == bytes(
        [0x1, 0x1, 0x41, 0x10, 0, 0, 0, 0, 0, 0, 0, 0xA, 0, 0, 0, 0, 0, 0, 0, 0x32]
    )
    assert Volatile.decode(enc).to_dict() == state.to_dict()


def test_decode_empty_raises():
    with pytest.raises(EOFError):
        Volatile.decode(b"")


def test_decode_truncated_keeps_complete_entries():
    entry = b"\x01A\x10" + Value(10, 0).encode()
    dec = Volatile.decode(b"\x02" + entry + b"\x01")
    assert dec.count() == 1
    assert dec.get("A") == Value(10, 0)


def test_get_returns_copy():
    s = Volatile({"A": Value(10, 0, b"x")})
    got = s.get("A")
    got.set_add_time(1)
    assert s.get("A").add_time == 10
    assert s.get("missing") == Value()