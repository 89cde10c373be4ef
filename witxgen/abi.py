"""Instruction set of the lowering engine and the callee-side instruction stream

The instruction set is closed: every class below is handled by
``witxgen.lowering.Lowering`` and nothing else may reach it. Each
instruction declares how many operands it pops and how many it pushes;
operands are handed over in the order they were pushed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import UnsupportedResultCountError, UnsupportedShapeError
from .layout import bitflags_repr
from .types import (
    Builtin, BuiltinKind, ConstPointer, Handle, IntRepr, InterfaceFunc,
    ListType, Pointer, Record, TypeRef, Variant, resolve,
)


class WasmType(Enum):
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"


@dataclass(frozen=True)
class Instruction:
    """Base of the closed instruction set"""

    def arity(self) -> tuple[int, int]:
        """(operands popped, results pushed)"""
        return 1, 1


# Lifting: wasm values to interface values

@dataclass(frozen=True)
class GetArg(Instruction):
    nth: int

    def arity(self):
        return 0, 1


@dataclass(frozen=True)
class S8FromI32(Instruction):
    pass


@dataclass(frozen=True)
class U8FromI32(Instruction):
    pass


@dataclass(frozen=True)
class S16FromI32(Instruction):
    pass


@dataclass(frozen=True)
class U16FromI32(Instruction):
    pass


@dataclass(frozen=True)
class S32FromI32(Instruction):
    pass


@dataclass(frozen=True)
class U32FromI32(Instruction):
    pass


@dataclass(frozen=True)
class S64FromI64(Instruction):
    pass


@dataclass(frozen=True)
class U64FromI64(Instruction):
    pass


@dataclass(frozen=True)
class CharFromI32(Instruction):
    pass


@dataclass(frozen=True)
class Char8FromI32(Instruction):
    pass


@dataclass(frozen=True)
class UsizeFromI32(Instruction):
    pass


@dataclass(frozen=True)
class If32FromF32(Instruction):
    pass


@dataclass(frozen=True)
class If64FromF64(Instruction):
    pass


@dataclass(frozen=True)
class PointerFromI32(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class ConstPointerFromI32(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class HandleFromI32(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class BitflagsFromI32(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class BitflagsFromI64(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class EnumLift(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class ListFromPointerLength(Instruction):
    """Operands: (pointer, length)"""
    ty: TypeRef

    def arity(self):
        return 2, 1


# Lowering: interface values to wasm values

@dataclass(frozen=True)
class I32FromS8(Instruction):
    pass


@dataclass(frozen=True)
class I32FromU8(Instruction):
    pass


@dataclass(frozen=True)
class I32FromS16(Instruction):
    pass


@dataclass(frozen=True)
class I32FromU16(Instruction):
    pass


@dataclass(frozen=True)
class I32FromS32(Instruction):
    pass


@dataclass(frozen=True)
class I32FromU32(Instruction):
    pass


@dataclass(frozen=True)
class I64FromS64(Instruction):
    pass


@dataclass(frozen=True)
class I64FromU64(Instruction):
    pass


@dataclass(frozen=True)
class I32FromChar(Instruction):
    pass


@dataclass(frozen=True)
class I32FromChar8(Instruction):
    pass


@dataclass(frozen=True)
class I32FromUsize(Instruction):
    pass


@dataclass(frozen=True)
class F32FromIf32(Instruction):
    pass


@dataclass(frozen=True)
class F64FromIf64(Instruction):
    pass


@dataclass(frozen=True)
class I32FromPointer(Instruction):
    pass


@dataclass(frozen=True)
class I32FromConstPointer(Instruction):
    pass


@dataclass(frozen=True)
class I32FromHandle(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class I32FromBitflags(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class I64FromBitflags(Instruction):
    ty: TypeRef


@dataclass(frozen=True)
class EnumLower(Instruction):
    ty: TypeRef


# Memory and aggregates

@dataclass(frozen=True)
class Store(Instruction):
    """Operands: (value, pointer)"""
    ty: TypeRef

    def arity(self):
        return 2, 0


@dataclass(frozen=True)
class TupleLower(Instruction):
    """Splits a tuple operand into ``amt`` member operands, in member order"""
    amt: int

    def arity(self):
        return 1, self.amt


@dataclass(frozen=True)
class VariantPayload(Instruction):
    """Pushes the payload of the case whose block is being lowered"""

    def arity(self):
        return 0, 1


@dataclass(frozen=True)
class ResultLower(Instruction):
    """Operand: the discriminant. Consumes the ok and err blocks"""
    ok: Optional[TypeRef]
    err: Optional[TypeRef]


# Blocks

@dataclass(frozen=True)
class BlockStart(Instruction):
    """Opens a block; ``case`` names the variant case whose payload is in scope"""
    case: Optional[str] = None

    def arity(self):
        return 0, 0


@dataclass(frozen=True)
class BlockEnd(Instruction):
    """Closes a block, optionally yielding the block's last operand"""
    yields: bool = False

    def arity(self):
        return 0, 0


# Calls

@dataclass(frozen=True)
class CallInterface(Instruction):
    module: str
    func: InterfaceFunc

    def arity(self):
        return len(self.func.params), len(self.func.results)


@dataclass(frozen=True)
class Return(Instruction):
    amt: int

    def arity(self):
        return self.amt, 0


@dataclass(frozen=True)
class WasmSignature:
    params: tuple[WasmType, ...] = ()
    results: tuple[WasmType, ...] = ()


def repr_wasm_type(repr_: IntRepr) -> WasmType:
    return WasmType.I64 if repr_ is IntRepr.U64 else WasmType.I32


BUILTIN_WASM_TYPES = {
    BuiltinKind.U64: WasmType.I64,
    BuiltinKind.S64: WasmType.I64,
    BuiltinKind.F32: WasmType.F32,
    BuiltinKind.F64: WasmType.F64,
}

BUILTIN_LIFTS = {
    BuiltinKind.U8: U8FromI32,
    BuiltinKind.S8: S8FromI32,
    BuiltinKind.U16: U16FromI32,
    BuiltinKind.S16: S16FromI32,
    BuiltinKind.U32: U32FromI32,
    BuiltinKind.S32: S32FromI32,
    BuiltinKind.U64: U64FromI64,
    BuiltinKind.S64: S64FromI64,
    BuiltinKind.F32: If32FromF32,
    BuiltinKind.F64: If64FromF64,
    BuiltinKind.CHAR: CharFromI32,
    BuiltinKind.CHAR8: Char8FromI32,
    BuiltinKind.USIZE: UsizeFromI32,
}


def _param_wasm_types(tref: TypeRef) -> list[WasmType]:
    ty = resolve(tref)
    if isinstance(ty, Builtin):
        return [BUILTIN_WASM_TYPES.get(ty.kind, WasmType.I32)]
    if isinstance(ty, (Pointer, ConstPointer, Handle)):
        return [WasmType.I32]
    if isinstance(ty, ListType):
        return [WasmType.I32, WasmType.I32]
    if isinstance(ty, Record) and ty.is_bitflags():
        return [repr_wasm_type(bitflags_repr(ty))]
    if isinstance(ty, Variant) and ty.is_enum():
        return [repr_wasm_type(ty.tag_repr)]
    raise UnsupportedShapeError(f"aggregate parameters are not passed by value: {ty!r}")


def _lift(tref: TypeRef) -> Instruction:
    ty = resolve(tref)
    if isinstance(ty, Builtin):
        return BUILTIN_LIFTS[ty.kind]()
    if isinstance(ty, Pointer):
        return PointerFromI32(tref)
    if isinstance(ty, ConstPointer):
        return ConstPointerFromI32(tref)
    if isinstance(ty, Handle):
        return HandleFromI32(tref)
    if isinstance(ty, ListType):
        return ListFromPointerLength(tref)
    if isinstance(ty, Variant):
        return EnumLift(tref)
    if bitflags_repr(ty) is IntRepr.U64:
        return BitflagsFromI64(tref)
    return BitflagsFromI32(tref)


def result_variant(func: InterfaceFunc) -> Optional[Variant]:
    """The variant of the function's result, or None when there is none.

    Raises if the function has more results than the ABI allows or a
    result that is neither an enum nor expected-shaped.
    """
    if len(func.results) > 1:
        raise UnsupportedResultCountError(len(func.results), func.name)
    if not func.results:
        return None
    ty = resolve(func.results[0].tref)
    if not isinstance(ty, Variant):
        raise UnsupportedShapeError(f"result of {func.name!r} is not a variant")
    if ty.is_enum():
        return ty
    expected = ty.as_expected()
    if expected is None:
        raise UnsupportedShapeError(f"result of {func.name!r} is neither an enum nor expected")
    if expected[1] is None:
        raise UnsupportedShapeError(f"result of {func.name!r} has no error payload")
    err = resolve(expected[1])
    if not isinstance(err, Variant) or not err.is_enum():
        raise UnsupportedShapeError(f"error payload of {func.name!r} is not an enum")
    return ty


def _is_tuple(tref: TypeRef) -> bool:
    return isinstance(tref, Record) and tref.is_tuple()


def ok_values(ok: Optional[TypeRef]) -> list[TypeRef]:
    """Types returned through out-pointers for an ok payload"""
    if ok is None:
        return []
    if _is_tuple(ok):
        return [m.tref for m in ok.members]
    return [ok]


def wasm_signature(func: InterfaceFunc) -> WasmSignature:
    params = []
    for param in func.params:
        params.extend(_param_wasm_types(param.tref))

    results = []
    variant = result_variant(func)
    if variant is not None:
        expected = None if variant.is_enum() else variant.as_expected()
        if expected is None:
            results.append(repr_wasm_type(variant.tag_repr))
        else:
            ok, err = expected
            params.extend(WasmType.I32 for _ in ok_values(ok))
            results.append(repr_wasm_type(resolve(err).tag_repr))
    return WasmSignature(tuple(params), tuple(results))


def call_interface(module: str, func: InterfaceFunc) -> list[Instruction]:
    """Instruction stream of the adapter that lets wasm call ``func``.

    Lifts every wasm argument, calls the implementation, lowers the result
    (ok values through trailing out-pointer arguments, the error code as
    the return value) and returns.
    """
    sig = wasm_signature(func)
    stream = []

    nth = 0
    for param in func.params:
        for _ in _param_wasm_types(param.tref):
            stream.append(GetArg(nth))
            nth += 1
        stream.append(_lift(param.tref))

    stream.append(CallInterface(module, func))

    variant = result_variant(func)
    if variant is not None:
        result = func.results[0].tref
        expected = None if variant.is_enum() else variant.as_expected()
        if expected is None:
            stream.append(EnumLower(result))
        else:
            ok, err = expected
            values = ok_values(ok)

            stream.append(BlockStart("ok"))
            if ok is not None:
                stream.append(VariantPayload())
                if _is_tuple(ok):
                    stream.append(TupleLower(len(values)))
                # the last value is on top of the stack
                for i in reversed(range(len(values))):
                    stream.append(GetArg(nth + i))
                    stream.append(Store(values[i]))
            stream.append(BlockEnd())

            stream.append(BlockStart("err"))
            stream.append(VariantPayload())
            stream.append(EnumLower(err))
            stream.append(BlockEnd(yields=True))

            stream.append(ResultLower(ok, err))

    stream.append(Return(len(sig.results)))
    return stream
