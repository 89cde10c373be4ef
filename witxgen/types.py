"""Data types for witx documents

Entities are frozen once the loader has built them; the generator only
traverses them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class IntRepr(Enum):
    """Integer representation of tags and bitflags; value is the byte width"""
    U8 = 1
    U16 = 2
    U32 = 4
    U64 = 8

    @property
    def size(self) -> int:
        return self.value

    @classmethod
    def smallest(cls, nbits: int) -> "IntRepr":
        """Smallest representation with at least ``nbits`` bits"""
        for repr_ in cls:
            if nbits <= repr_.size * 8:
                return repr_
        raise ValueError(f"no integer representation holds {nbits} bits")


class BuiltinKind(Enum):
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    S8 = "s8"
    S16 = "s16"
    S32 = "s32"
    S64 = "s64"
    F32 = "f32"
    F64 = "f64"
    CHAR = "char"
    # u8 standing for a C character
    CHAR8 = "char8"
    # u32 standing for a pointer-sized integer
    USIZE = "usize"


class RecordKind(Enum):
    PLAIN = "plain"
    TUPLE = "tuple"
    BITFLAGS = "bitflags"


@dataclass(frozen=True)
class Builtin:
    kind: BuiltinKind


@dataclass(frozen=True)
class Handle:
    pass


@dataclass(frozen=True)
class Pointer:
    pointee: "TypeRef"


@dataclass(frozen=True)
class ConstPointer:
    pointee: "TypeRef"


@dataclass(frozen=True)
class ListType:
    element: "TypeRef"


@dataclass(frozen=True)
class RecordMember:
    """Record member; bitflags members carry no type"""
    name: str
    tref: Optional["TypeRef"] = None
    docs: str = ""


@dataclass(frozen=True)
class Record:
    kind: RecordKind
    members: tuple[RecordMember, ...] = ()
    # explicit bitflags representation, if the document declared one
    repr: Optional[IntRepr] = None

    def is_tuple(self) -> bool:
        return self.kind is RecordKind.TUPLE

    def is_bitflags(self) -> bool:
        return self.kind is RecordKind.BITFLAGS


@dataclass(frozen=True)
class Case:
    name: str
    tref: Optional["TypeRef"] = None
    docs: str = ""


@dataclass(frozen=True)
class Variant:
    tag_repr: IntRepr
    cases: tuple[Case, ...] = ()

    def is_enum(self) -> bool:
        return all(c.tref is None for c in self.cases)

    def as_expected(self) -> Optional[tuple[Optional["TypeRef"], Optional["TypeRef"]]]:
        """Return (ok, err) payloads if this is a result-shaped variant"""
        if len(self.cases) != 2:
            return None
        ok, err = self.cases
        if ok.name != "ok" or err.name != "err":
            return None
        return ok.tref, err.tref


Type = Union[Builtin, Handle, Pointer, ConstPointer, ListType, Record, Variant]


@dataclass(frozen=True)
class NamedType:
    name: str
    tref: "TypeRef"
    docs: str = ""

    def type_(self) -> Type:
        return resolve(self.tref)


TypeRef = Union[NamedType, Type]


def resolve(tref: TypeRef) -> Type:
    """Follow named references down to the underlying anonymous type"""
    while isinstance(tref, NamedType):
        tref = tref.tref
    return tref


@dataclass(frozen=True)
class Param:
    name: str
    tref: TypeRef
    docs: str = ""


@dataclass(frozen=True)
class InterfaceFunc:
    name: str
    params: tuple[Param, ...] = ()
    results: tuple[Param, ...] = ()
    noreturn: bool = False
    docs: str = ""


@dataclass(frozen=True)
class ModuleImport:
    """Module import; memory is the only import kind"""
    name: str
    kind: str = "memory"
    docs: str = ""


@dataclass(frozen=True)
class Module:
    name: str
    imports: tuple[ModuleImport, ...] = ()
    funcs: tuple[InterfaceFunc, ...] = ()
    docs: str = ""

    def memory_import(self) -> Optional[ModuleImport]:
        return next((i for i in self.imports if i.kind == "memory"), None)


@dataclass(frozen=True)
class Constant:
    """Named value belonging to the type ``ty``"""
    ty: str
    name: str
    value: int
    docs: str = ""


@dataclass(frozen=True)
class Document:
    """Complete loaded witx document set"""
    typenames: tuple[NamedType, ...] = ()
    modules: tuple[Module, ...] = ()
    constants: tuple[Constant, ...] = ()
    # file names the document was loaded from, in load order
    sources: tuple[str, ...] = field(default=())

    def typename(self, name: str) -> Optional[NamedType]:
        return next((t for t in self.typenames if t.name == name), None)

    def module(self, name: str) -> Optional[Module]:
        return next((m for m in self.modules if m.name == name), None)
