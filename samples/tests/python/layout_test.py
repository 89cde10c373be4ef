"""Tests for type layouts and the reference memory codec"""

import pytest

from witxgen.layout import (
    SizeAlign, align_to, bitflags_repr, element_size, is_aggregate, load_int,
    load_value, member_layout, payload_offset, scalar_size, size_align,
    store_int, store_value,
)
from witxgen.types import (
    Builtin, BuiltinKind, Case, Handle, IntRepr, ListType, NamedType, Pointer,
    Record, RecordKind, RecordMember, Variant,
)

U8 = Builtin(BuiltinKind.U8)
U16 = Builtin(BuiltinKind.U16)
U32 = Builtin(BuiltinKind.U32)
U64 = Builtin(BuiltinKind.U64)
S16 = Builtin(BuiltinKind.S16)
F32 = Builtin(BuiltinKind.F32)
CHAR = Builtin(BuiltinKind.CHAR)


def record(*members):
    return Record(RecordKind.PLAIN, tuple(RecordMember(name, tref) for name, tref in members))


def flags(count, repr_=None):
    return Record(RecordKind.BITFLAGS, tuple(RecordMember(f"f{i}") for i in range(count)), repr_)


def test_align_to():
    assert align_to(0, 4) == 0
    assert align_to(1, 4) == 4
    assert align_to(4, 4) == 4
    assert align_to(9, 8) == 16


def test_record_padding():
    """u8 followed by u32 is padded to the u32's alignment"""
    rec = record(("a", U8), ("b", U32))
    assert size_align(rec) == SizeAlign(8, 4)
    assert [layout.offset for layout in member_layout(rec)] == [0, 4]


def test_record_size_rounded_to_alignment():
    rec = record(("a", U32), ("b", U8))
    assert size_align(rec) == SizeAlign(8, 4)
    assert [layout.offset for layout in member_layout(rec)] == [0, 4]


def test_nested_record():
    inner = NamedType("inner", record(("nbytes", U64), ("flags", U16)))
    outer = record(("userdata", U64), ("error", U16), ("type", U8), ("inner", inner))
    assert size_align(inner) == SizeAlign(16, 8)
    assert [layout.offset for layout in member_layout(outer)] == [0, 8, 10, 16]
    assert size_align(outer) == SizeAlign(32, 8)


def test_scalar_layouts():
    assert size_align(Pointer(U8)) == SizeAlign(4, 4)
    assert size_align(Handle()) == SizeAlign(4, 4)
    assert size_align(ListType(U8)) == SizeAlign(8, 4)
    assert size_align(Builtin(BuiltinKind.USIZE)) == SizeAlign(4, 4)
    assert size_align(Builtin(BuiltinKind.F64)) == SizeAlign(8, 8)


def test_enum_layout():
    enum = Variant(IntRepr.U16, (Case("success"), Case("inval")))
    assert size_align(enum) == SizeAlign(2, 2)
    assert scalar_size(enum) == 2


def test_is_aggregate():
    assert is_aggregate(record(("a", U8)))
    assert is_aggregate(Variant(IntRepr.U8, (Case("a", U32), Case("b"))))
    assert not is_aggregate(Variant(IntRepr.U8, (Case("a"), Case("b"))))
    assert not is_aggregate(flags(3))
    assert not is_aggregate(ListType(U8))
    assert not is_aggregate(U64)


def test_variant_payload_offset():
    """Payload starts after the tag, aligned for the most aligned case"""
    variant = Variant(IntRepr.U8, (Case("a", U64), Case("b", U8), Case("c")))
    assert payload_offset(variant) == 8
    assert size_align(variant) == SizeAlign(16, 8)


def test_variant_small_payload():
    dir_ = NamedType("prestat_dir", record(("pr_name_len", U32)))
    prestat = Variant(IntRepr.U8, (Case("dir", dir_),))
    assert payload_offset(prestat) == 4
    assert size_align(prestat) == SizeAlign(8, 4)


def test_bitflags_width():
    assert bitflags_repr(flags(1)) is IntRepr.U8
    assert bitflags_repr(flags(8)) is IntRepr.U8
    assert bitflags_repr(flags(9)) is IntRepr.U16
    assert bitflags_repr(flags(17)) is IntRepr.U32
    assert bitflags_repr(flags(33)) is IntRepr.U64


def test_bitflags_declared_repr_only_widens():
    assert bitflags_repr(flags(3, IntRepr.U64)) is IntRepr.U64
    assert bitflags_repr(flags(9, IntRepr.U8)) is IntRepr.U16
    assert size_align(flags(29, IntRepr.U64)) == SizeAlign(8, 8)


def test_element_size():
    assert element_size(record(("buf", Pointer(U8)), ("buf_len", U32))) == 8
    assert element_size(U16) == 2


def test_aggregates_have_no_scalar_size():
    assert scalar_size(record(("a", U8))) is None
    assert scalar_size(Variant(IntRepr.U8, (Case("a", U32),))) is None
    assert scalar_size(flags(12)) == 2


def test_store_int_little_endian():
    memory = bytearray(8)
    store_int(memory, 0x01020304, 2, 4)
    assert memory == bytearray([0, 0, 4, 3, 2, 1, 0, 0])
    assert load_int(memory, 2, 4) == 0x01020304


def test_store_int_signed():
    memory = bytearray(2)
    store_int(memory, -2, 0, 2, signed=True)
    assert memory == bytearray([0xfe, 0xff])
    assert load_int(memory, 0, 2, signed=True) == -2


def test_out_of_bounds_access():
    memory = bytearray(4)
    with pytest.raises(IndexError):
        store_int(memory, 1, 2, 4)
    with pytest.raises(IndexError):
        load_int(memory, -1, 1)


RECORD = NamedType("sample", record(
    ("tag", U8),
    ("delta", S16),
    ("size", U32),
    ("stamp", U64),
    ("ratio", F32),
    ("letter", CHAR),
    ("data", ListType(U8)),
))


@pytest.mark.parametrize("value", [
    {"tag": 0, "delta": 0, "size": 0, "stamp": 0, "ratio": 0.0, "letter": "\0", "data": (0, 0)},
    {
        "tag": 0xff, "delta": 0x7fff, "size": 0xffffffff, "stamp": 0xffffffffffffffff,
        "ratio": 1.5, "letter": "\U0010ffff", "data": (0xffffffff, 0xffffffff),
    },
    {"tag": 7, "delta": -0x8000, "size": 12, "stamp": 1 << 40, "ratio": -2.25, "letter": "x", "data": (64, 3)},
])
def test_record_round_trip(value):
    memory = bytearray(size_align(RECORD).size + 8)
    store_value(memory, RECORD, value, 8)
    assert memory[:8] == bytearray(8)
    assert load_value(memory, RECORD, 8) == value


VARIANT = Variant(IntRepr.U8, (
    Case("none"),
    Case("small", U16),
    Case("big", U64),
    Case("pair", NamedType("pair", record(("a", U8), ("b", U32)))),
))


@pytest.mark.parametrize("value", [
    (0, None),
    (1, 0),
    (1, 0xffff),
    (2, 0),
    (2, 0xffffffffffffffff),
    (3, {"a": 0, "b": 0}),
    (3, {"a": 0xff, "b": 0xffffffff}),
])
def test_variant_round_trip(value):
    memory = bytearray(size_align(VARIANT).size)
    store_value(memory, VARIANT, value, 0)
    assert memory[0] == value[0]
    assert load_value(memory, VARIANT, 0) == value


def test_variant_payload_written_at_payload_offset():
    memory = bytearray(16)
    store_value(memory, VARIANT, (1, 0xabcd), 0)
    assert load_int(memory, payload_offset(VARIANT), 2) == 0xabcd


def test_bitflags_and_enum_round_trip():
    memory = bytearray(8)
    rights = flags(29, IntRepr.U64)
    store_value(memory, rights, (1 << 28) | 1, 0)
    assert load_value(memory, rights, 0) == (1 << 28) | 1

    whence = Variant(IntRepr.U8, (Case("set"), Case("cur"), Case("end")))
    for index in range(3):
        store_value(memory, whence, index, 0)
        assert load_value(memory, whence, 0) == index
