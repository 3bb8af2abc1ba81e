import pytest

from emitterd.crdt import (
    Reader,
    Value,
    get_clock,
    length_prefixed,
    new_map,
    now,
    set_clock,
    uvarint,
)
from emitterd.durable import Durable
from emitterd.volatile import Volatile


@pytest.fixture(autouse=True)
def restore_clock():
    saved = get_clock()
    yield
    set_clock(saved)


def test_new_map_types():
    set_clock(lambda: 10)
    s1 = new_map(True, "")
    try:
        assert isinstance(s1, Durable)
        s1.add("A", b"x")
        assert s1.has("A")
        assert s1.get("A").add_time == 10
        assert s1.count() == 1
    finally:
        s1.close()
    s2 = new_map(False, "")
    assert isinstance(s2, Volatile)
    s2.add("B", b"y")
    assert s2.has("B")
    assert s2.get("B").payload == b"y"
    assert s2.count() == 1


def test_time_codec():
    v1 = Value(10, 50, b"hello")
    enc = v1.encode()
    assert v1.add_time == 10
    assert v1.del_time == 50
    assert enc == bytes(
        [0, 0, 0, 0, 0, 0, 0, 0xA, 0, 0, 0, 0, 0, 0, 0, 0x32, 0x68, 0x65, 0x6C, 0x6C, 0x6F]
    )
    assert len(v1) == 21
    assert Value.decode(enc) == v1


def test_time_payload_resize():
    v = Value(now(), now(), b"hello")
    assert len(v) == 21
    v.set_payload(b"larger value")
    assert len(v) == 28
    assert v.payload == b"larger value"
    v.set_payload(None)
    assert len(v) == 16


def test_value_states():
    assert Value().is_zero()
    assert Value(10, 0).is_added()
    assert Value(20, 20).is_added()
    assert not Value(10, 20).is_added()
    assert Value(10, 20).is_removed()
    assert not Value(0, 0).is_added()


def test_setters_keep_payload():
    v = Value(1, 2, b"x")
    v.set_add_time(30)
    v.set_del_time(40)
    assert (v.add_time, v.del_time, v.payload) == (30, 40, b"x")


def test_copy_is_independent():
    v = Value(1, 2, b"x")
    c = v.copy()
    c.set_add_time(99)
    assert v.add_time == 1
    assert c.add_time == 99


def test_decode_short_raises():
    with pytest.raises(ValueError):
        Value.decode(b"\x00" * 15)


def test_negative_times_round_trip():
    v = Value(-5, 7)
    assert Value.decode(v.encode()).add_time == -5


def test_clock_override():
    set_clock(lambda: 42)
    assert now() == 42


def test_uvarint_values():
    assert uvarint(0) == b"\x00"
    assert uvarint(1) == b"\x01"
    assert uvarint(127) == b"\x7f"
    assert uvarint(300) == b"\xac\x02"
    with pytest.raises(ValueError):
        uvarint(-1)


def test_reader_round_trip():
    data = uvarint(300) + length_prefixed(b"abc") + b"\x07"
    reader = Reader(data)
    assert reader.read_uvarint() == 300
    assert reader.read_bytes() == b"abc"
    assert reader.read_byte() == 7
    assert reader.remaining == 0


def test_reader_truncated():
    with pytest.raises(EOFError):
        Reader(b"\x05ab").read_bytes()
    with pytest.raises(EOFError):
        Reader(b"").read_byte()
    with pytest.raises(EOFError):
        Reader(b"\x80").read_uvarint()


def test_reader_overflow():
    with pytest.raises(ValueError):
        Reader(b"\xff" * 10 + b"\x01").read_uvarint()