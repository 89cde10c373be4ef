"""Memory layout of witx types

Sizes, alignments and offsets under the 32-bit, naturally aligned,
little-endian linear-memory model. ``store_value``/``load_value`` are a
reference codec over a ``bytearray`` that writes exactly the bytes the
generated store/load routines write.
"""

import struct
from dataclasses import dataclass
from typing import Optional

from .types import (
    Builtin, BuiltinKind, ConstPointer, Handle, IntRepr, ListType, Pointer,
    Record, RecordMember, TypeRef, Variant, resolve,
)

POINTER_SIZE = 4
LIST_SIZE = 8

BUILTIN_SIZES = {
    BuiltinKind.U8: 1,
    BuiltinKind.S8: 1,
    BuiltinKind.CHAR8: 1,
    BuiltinKind.U16: 2,
    BuiltinKind.S16: 2,
    BuiltinKind.U32: 4,
    BuiltinKind.S32: 4,
    BuiltinKind.USIZE: 4,
    BuiltinKind.CHAR: 4,
    BuiltinKind.F32: 4,
    BuiltinKind.U64: 8,
    BuiltinKind.S64: 8,
    BuiltinKind.F64: 8,
}

SIGNED_KINDS = {BuiltinKind.S8, BuiltinKind.S16, BuiltinKind.S32, BuiltinKind.S64}


@dataclass(frozen=True)
class SizeAlign:
    size: int
    align: int


@dataclass(frozen=True)
class MemberLayout:
    """A record member and its byte offset from the start of the record"""
    member: RecordMember
    offset: int


def align_to(offset: int, alignment: int) -> int:
    """Smallest multiple of ``alignment`` that is >= ``offset``"""
    return (offset + alignment - 1) // alignment * alignment


def bitflags_repr(record: Record) -> IntRepr:
    """Integer a bitflags record packs into.

    The smallest power-of-two byte width holding one bit per member; an
    explicitly declared representation can only widen it.
    """
    computed = IntRepr.smallest(max(len(record.members), 1))
    if record.repr is not None and record.repr.size > computed.size:
        return record.repr
    return computed


def size_align(tref: TypeRef) -> SizeAlign:
    ty = resolve(tref)
    if isinstance(ty, Builtin):
        size = BUILTIN_SIZES[ty.kind]
        return SizeAlign(size, size)
    if isinstance(ty, (Pointer, ConstPointer, Handle)):
        return SizeAlign(POINTER_SIZE, POINTER_SIZE)
    if isinstance(ty, ListType):
        return SizeAlign(LIST_SIZE, POINTER_SIZE)
    if isinstance(ty, Record):
        return _record_size_align(ty)
    if isinstance(ty, Variant):
        return _variant_size_align(ty)
    raise TypeError(f"not a witx type: {ty!r}")


def mem_size(tref: TypeRef) -> int:
    return size_align(tref).size


def mem_align(tref: TypeRef) -> int:
    return size_align(tref).align


def element_size(tref: TypeRef) -> int:
    """Stride of ``tref`` when laid out in a list"""
    sa = size_align(tref)
    return align_to(sa.size, sa.align)


def member_layout(record: Record) -> list[MemberLayout]:
    """Offsets of a plain or tuple record's members, in declaration order"""
    layouts = []
    offset = 0
    for member in record.members:
        sa = size_align(member.tref)
        offset = align_to(offset, sa.align)
        layouts.append(MemberLayout(member, offset))
        offset += sa.size
    return layouts


def _record_size_align(record: Record) -> SizeAlign:
    if record.is_bitflags():
        size = bitflags_repr(record).size
        return SizeAlign(size, size)

    end = 0
    align = 1
    for layout in member_layout(record):
        sa = size_align(layout.member.tref)
        end = layout.offset + sa.size
        align = max(align, sa.align)
    return SizeAlign(align_to(end, align), align)


def _payload_align(variant: Variant) -> int:
    return max((mem_align(c.tref) for c in variant.cases if c.tref is not None), default=1)


def payload_offset(variant: Variant) -> int:
    """Offset of the payload; shared by every case of the variant"""
    return align_to(variant.tag_repr.size, _payload_align(variant))


def _variant_size_align(variant: Variant) -> SizeAlign:
    tag = variant.tag_repr.size
    if variant.is_enum():
        return SizeAlign(tag, tag)

    align = max(tag, _payload_align(variant))
    payload = max((mem_size(c.tref) for c in variant.cases if c.tref is not None), default=0)
    return SizeAlign(align_to(payload_offset(variant) + payload, align), align)


def scalar_size(tref: TypeRef) -> Optional[int]:
    """Width of the fixed-size integer encoding of ``tref``.

    Returns None for true aggregates (plain records and non-enum variants),
    which are stored and loaded through their own generated routines.
    """
    ty = resolve(tref)
    if isinstance(ty, Record):
        return bitflags_repr(ty).size if ty.is_bitflags() else None
    if isinstance(ty, Variant):
        return ty.tag_repr.size if ty.is_enum() else None
    return size_align(ty).size


def is_aggregate(tref: TypeRef) -> bool:
    return scalar_size(tref) is None


# Reference codec


def _check_bounds(memory: bytearray, address: int, nbytes: int):
    if address < 0 or address + nbytes > len(memory):
        raise IndexError(f"out of bounds memory access: {nbytes} bytes at {address}")


def store_int(memory: bytearray, value: int, address: int, nbytes: int, signed: bool = False):
    _check_bounds(memory, address, nbytes)
    memory[address:address + nbytes] = value.to_bytes(nbytes, "little", signed=signed)


def load_int(memory: bytearray, address: int, nbytes: int, signed: bool = False) -> int:
    _check_bounds(memory, address, nbytes)
    return int.from_bytes(memory[address:address + nbytes], "little", signed=signed)


def store_value(memory: bytearray, tref: TypeRef, value, address: int):
    """Write ``value`` of type ``tref`` at ``address``"""
    ty = resolve(tref)
    if isinstance(ty, Builtin):
        _store_builtin(memory, ty.kind, value, address)
    elif isinstance(ty, ListType):
        pointer, length = value
        store_int(memory, pointer, address, POINTER_SIZE)
        store_int(memory, length, address + POINTER_SIZE, POINTER_SIZE)
    elif isinstance(ty, Record):
        if ty.is_bitflags():
            store_int(memory, value, address, bitflags_repr(ty).size)
            return
        for layout in member_layout(ty):
            member = layout.member
            store_value(memory, member.tref, value[member.name], address + layout.offset)
    elif isinstance(ty, Variant):
        if ty.is_enum():
            store_int(memory, value, address, ty.tag_repr.size)
            return
        index, payload = value
        store_int(memory, index, address, ty.tag_repr.size)
        case = ty.cases[index]
        if case.tref is not None:
            store_value(memory, case.tref, payload, address + payload_offset(ty))
    else:
        store_int(memory, value, address, POINTER_SIZE)


def load_value(memory: bytearray, tref: TypeRef, address: int):
    """Read a value of type ``tref`` from ``address``"""
    ty = resolve(tref)
    if isinstance(ty, Builtin):
        return _load_builtin(memory, ty.kind, address)
    if isinstance(ty, ListType):
        return (load_int(memory, address, POINTER_SIZE),
                load_int(memory, address + POINTER_SIZE, POINTER_SIZE))
    if isinstance(ty, Record):
        if ty.is_bitflags():
            return load_int(memory, address, bitflags_repr(ty).size)
        return {
            layout.member.name: load_value(memory, layout.member.tref, address + layout.offset)
            for layout in member_layout(ty)
        }
    if isinstance(ty, Variant):
        index = load_int(memory, address, ty.tag_repr.size)
        if ty.is_enum():
            return index
        case = ty.cases[index]
        if case.tref is None:
            return index, None
        return index, load_value(memory, case.tref, address + payload_offset(ty))
    return load_int(memory, address, POINTER_SIZE)


def _store_builtin(memory: bytearray, kind: BuiltinKind, value, address: int):
    if kind is BuiltinKind.F32:
        _check_bounds(memory, address, 4)
        memory[address:address + 4] = struct.pack("<f", value)
    elif kind is BuiltinKind.F64:
        _check_bounds(memory, address, 8)
        memory[address:address + 8] = struct.pack("<d", value)
    elif kind is BuiltinKind.CHAR:
        store_int(memory, ord(value), address, 4)
    else:
        store_int(memory, value, address, BUILTIN_SIZES[kind], signed=kind in SIGNED_KINDS)


def _load_builtin(memory: bytearray, kind: BuiltinKind, address: int):
    if kind is BuiltinKind.F32:
        _check_bounds(memory, address, 4)
        return struct.unpack("<f", memory[address:address + 4])[0]
    if kind is BuiltinKind.F64:
        _check_bounds(memory, address, 8)
        return struct.unpack("<d", memory[address:address + 8])[0]
    if kind is BuiltinKind.CHAR:
        return chr(load_int(memory, address, 4))
    return load_int(memory, address, BUILTIN_SIZES[kind], signed=kind in SIGNED_KINDS)
