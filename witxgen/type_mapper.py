"""Type and identifier mapping from witx to Go"""

import re

from .abi import WasmType
from .types import (
    Builtin, BuiltinKind, ConstPointer, Handle, IntRepr, ListType, NamedType,
    Pointer, Record, Type, TypeRef, Variant, resolve,
)


class TypeMapper:
    """Maps witx names and types to Go identifiers and types"""

    # Prefix of every generated named type
    PREFIX = "wasi"

    BUILTIN_TYPES = {
        BuiltinKind.U8: 'uint8',
        BuiltinKind.U16: 'uint16',
        BuiltinKind.U32: 'uint32',
        BuiltinKind.U64: 'uint64',
        BuiltinKind.S8: 'int8',
        BuiltinKind.S16: 'int16',
        BuiltinKind.S32: 'int32',
        BuiltinKind.S64: 'int64',
        BuiltinKind.F32: 'float32',
        BuiltinKind.F64: 'float64',
        BuiltinKind.CHAR: 'rune',
        BuiltinKind.CHAR8: 'byte',
        BuiltinKind.USIZE: 'uint32',
    }

    INT_REPR_TYPES = {
        IntRepr.U8: 'uint8',
        IntRepr.U16: 'uint16',
        IntRepr.U32: 'uint32',
        IntRepr.U64: 'uint64',
    }

    WASM_TYPES = {
        WasmType.I32: 'int32',
        WasmType.I64: 'int64',
        WasmType.F32: 'float32',
        WasmType.F64: 'float64',
    }

    GO_KEYWORDS = {
        'break', 'case', 'chan', 'const', 'continue', 'default', 'defer',
        'else', 'fallthrough', 'for', 'func', 'go', 'goto', 'if', 'import',
        'interface', 'map', 'package', 'range', 'return', 'select', 'struct',
        'switch', 'type', 'var',
    }

    @classmethod
    def words(cls, name: str) -> list[str]:
        """Split a witx identifier into words"""
        name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name)
        return [w for w in re.split(r'[^0-9A-Za-z]+', name) if w]

    @classmethod
    def export_ident_name(cls, name: str) -> str:
        """fd_write -> FdWrite"""
        return ''.join(w[0].upper() + w[1:].lower() for w in cls.words(name))

    @classmethod
    def ident_name(cls, name: str) -> str:
        """fd_write -> fdWrite; Go keywords get a trailing underscore"""
        if name in cls.GO_KEYWORDS:
            return f'{name}_'
        words = cls.words(name)
        if not words:
            return name
        return words[0].lower() + cls.export_ident_name('_'.join(words[1:]))

    @classmethod
    def intrepr_name(cls, repr_: IntRepr) -> str:
        return cls.INT_REPR_TYPES[repr_]

    @classmethod
    def wasm_type_name(cls, wasm: WasmType) -> str:
        return cls.WASM_TYPES[wasm]

    @classmethod
    def builtin_type_name(cls, kind: BuiltinKind) -> str:
        return cls.BUILTIN_TYPES[kind]

    @classmethod
    def type_name(cls, ty: Type) -> str:
        """Go type of an anonymous witx type"""
        if isinstance(ty, ListType):
            return 'list'
        if isinstance(ty, Builtin):
            return cls.builtin_type_name(ty.kind)
        if isinstance(ty, (Pointer, ConstPointer)):
            return 'pointer'
        if isinstance(ty, Handle):
            return 'handle'
        if isinstance(ty, Variant):
            return 'variant'
        if isinstance(ty, Record):
            return 'record'
        raise TypeError(f"not a witx type: {ty!r}")

    @classmethod
    def namedtype_name(cls, named: NamedType) -> str:
        ty = named.type_()
        if isinstance(ty, (Pointer, ConstPointer)):
            return 'pointer'
        if isinstance(ty, ListType):
            return 'list'
        return cls.declared_name(named)

    @classmethod
    def declared_name(cls, named: NamedType) -> str:
        """Name of the Go declaration of a named type, whatever its kind"""
        return f'{cls.PREFIX}{cls.export_ident_name(named.name)}'

    @classmethod
    def typeref_name(cls, tref: TypeRef) -> str:
        if isinstance(tref, NamedType):
            return cls.namedtype_name(tref)
        return cls.type_name(tref)

    @classmethod
    def alias_target(cls, tref: TypeRef) -> str:
        """Right-hand side of ``type wasiX = ...`` for alias-like named types"""
        ty = resolve(tref)
        if isinstance(ty, Builtin):
            return cls.builtin_type_name(ty.kind)
        if isinstance(ty, (Pointer, ConstPointer)):
            return 'pointer'
        if isinstance(ty, Handle):
            return 'handle'
        # a named list keeps its storeIndex/loadIndex methods
        if isinstance(ty, ListType) and isinstance(tref, NamedType):
            return cls.declared_name(tref)
        # indirection to another named aggregate
        return cls.typeref_name(tref)

    @classmethod
    def as_tuple(cls, tref: TypeRef):
        """The record of an anonymous tuple type, else None"""
        if isinstance(tref, Record) and tref.is_tuple():
            return tref
        return None
