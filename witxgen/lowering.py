"""ABI lowering engine

Interprets one function's instruction stream and renders the body of the
Go ABI adapter for it. The engine keeps an operand stack of ``Operand``
values; every instruction pops and pushes exactly the number of operands
it declares.

All per-function state lives in ``LoweringState``, which is threaded
through every handler, so a single ``Lowering`` can render any number of
functions.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from . import abi
from .errors import (
    ArityError, UnknownInstructionError, UnsupportedResultCountError,
    UnsupportedShapeError,
)
from .memory_access import store_statement
from .type_mapper import TypeMapper
from .types import NamedType, Record, TypeRef, Variant, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operand:
    """A rendered Go expression and, when known, its witx type"""
    type: Optional[TypeRef]
    expr: str


@dataclass
class Block:
    """Statements captured between BlockStart and BlockEnd"""
    lines: list[str]
    operand: Optional[Operand] = None


@dataclass
class Frame:
    """Outer state saved while a block is being captured"""
    lines: list[str]
    stack: list[Operand]
    payload: Optional[Operand]


@dataclass
class LoweringState:
    lines: list[str] = field(default_factory=list)
    stack: list[Operand] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)
    frames: list[Frame] = field(default_factory=list)
    # ok/err temporaries bound by CallInterface, keyed by case name
    payloads: dict[str, Operand] = field(default_factory=dict)
    # payload of the case whose block is open; taken at most once
    payload: Optional[Operand] = None


class Lowering:
    """Renders instruction streams as Go statements"""

    # Single operand conversions
    CASTS = {
        abi.S8FromI32: 'int8',
        abi.U8FromI32: 'uint8',
        abi.S16FromI32: 'int16',
        abi.U16FromI32: 'uint16',
        abi.U32FromI32: 'uint32',
        abi.U64FromI64: 'uint64',
        abi.CharFromI32: 'rune',
        abi.Char8FromI32: 'byte',
        abi.UsizeFromI32: 'uint32',
        abi.PointerFromI32: 'pointer',
        abi.ConstPointerFromI32: 'pointer',
        abi.I32FromS8: 'int32',
        abi.I32FromU8: 'int32',
        abi.I32FromS16: 'int32',
        abi.I32FromU16: 'int32',
        abi.I32FromU32: 'int32',
        abi.I32FromChar: 'int32',
        abi.I32FromChar8: 'int32',
        abi.I32FromUsize: 'int32',
        abi.I32FromPointer: 'int32',
        abi.I32FromConstPointer: 'int32',
        abi.I32FromHandle: 'int32',
        abi.I32FromBitflags: 'int32',
        abi.I64FromU64: 'int64',
        abi.I64FromBitflags: 'int64',
    }

    # No conversion necessary
    PASSTHROUGH = {
        abi.S32FromI32,
        abi.S64FromI64,
        abi.I32FromS32,
        abi.I64FromS64,
        abi.If32FromF32,
        abi.If64FromF64,
        abi.F32FromIf32,
        abi.F64FromIf64,
    }

    HANDLERS = {
        abi.GetArg: '_get_arg',
        abi.HandleFromI32: '_named_cast',
        abi.BitflagsFromI32: '_named_cast',
        abi.BitflagsFromI64: '_named_cast',
        abi.EnumLift: '_enum_lift',
        abi.EnumLower: '_enum_lower',
        abi.ListFromPointerLength: '_list_from_pointer_length',
        abi.Store: '_store',
        abi.TupleLower: '_tuple_lower',
        abi.VariantPayload: '_variant_payload',
        abi.BlockStart: '_block_start',
        abi.BlockEnd: '_block_end',
        abi.ResultLower: '_result_lower',
        abi.CallInterface: '_call_interface',
        abi.Return: '_return',
    }

    def __init__(self, mem: str = "m.mem()", impl: str = "m.impl"):
        self.mem = mem
        self.impl = impl

    def lower(self, instructions) -> list[str]:
        """Render a complete instruction stream; returns unindented Go lines"""
        instructions = list(instructions)
        logger.debug("lowering %d instructions", len(instructions))
        state = LoweringState()
        for inst in instructions:
            self.emit(state, inst)
        if state.frames:
            raise ArityError(f"{len(state.frames)} block(s) left open")
        if state.stack:
            raise ArityError(f"{len(state.stack)} stale operand(s) left on the stack")
        if state.blocks:
            raise ArityError(f"{len(state.blocks)} block(s) never consumed")
        return state.lines

    def emit(self, state: LoweringState, inst):
        handler = self._handler(inst)
        pops, pushes = inst.arity()
        if len(state.stack) < pops:
            raise ArityError(f"{inst!r} needs {pops} operand(s), {len(state.stack)} available")

        split = len(state.stack) - pops
        operands = state.stack[split:]
        del state.stack[split:]

        results = handler(state, inst, operands)
        if len(results) != pushes:
            raise ArityError(f"{inst!r} declared {pushes} result(s) but produced {len(results)}")
        state.stack.extend(results)

    def _handler(self, inst):
        cls = type(inst)
        if cls in self.CASTS:
            return self._cast
        if cls in self.PASSTHROUGH:
            return self._passthrough
        name = self.HANDLERS.get(cls)
        if name is None:
            raise UnknownInstructionError(inst)
        return getattr(self, name)

    # Scalars

    def _cast(self, state, inst, operands):
        return [Operand(None, f"{self.CASTS[type(inst)]}({operands[0].expr})")]

    def _passthrough(self, state, inst, operands):
        return operands

    def _named_cast(self, state, inst, operands):
        return [Operand(None, f"{TypeMapper.typeref_name(inst.ty)}({operands[0].expr})")]

    def _enum_lift(self, state, inst, operands):
        variant = self._enum(inst.ty)
        return [Operand(None, f"{TypeMapper.intrepr_name(variant.tag_repr)}({operands[0].expr})")]

    def _enum_lower(self, state, inst, operands):
        variant = self._enum(inst.ty)
        wasm = TypeMapper.wasm_type_name(abi.repr_wasm_type(variant.tag_repr))
        return [Operand(None, f"{wasm}({operands[0].expr})")]

    def _get_arg(self, state, inst, operands):
        return [Operand(None, f"p{inst.nth}")]

    def _list_from_pointer_length(self, state, inst, operands):
        pointer, length = operands
        return [Operand(None, f"list{{pointer: pointer({pointer.expr}), length: int32({length.expr})}}")]

    # Memory

    def _store(self, state, inst, operands):
        value, pointer = operands
        state.lines.append(store_statement(inst.ty, self.mem, value.expr, pointer.expr, 0))
        return []

    def _tuple_lower(self, state, inst, operands):
        (tuple_,) = operands
        record = resolve(tuple_.type) if tuple_.type is not None else None
        if not isinstance(record, Record) or not record.is_tuple():
            raise UnsupportedShapeError(f"TupleLower of a non-tuple operand {tuple_.expr!r}")
        return [
            Operand(m.tref, tuple_.expr + TypeMapper.ident_name(m.name))
            for m in record.members[:inst.amt]
        ]

    def _variant_payload(self, state, inst, operands):
        if state.payload is None:
            raise ArityError("no variant payload in scope")
        payload, state.payload = state.payload, None
        return [payload]

    # Blocks

    def _block_start(self, state, inst, operands):
        state.frames.append(Frame(state.lines, state.stack, state.payload))
        state.lines, state.stack = [], []
        state.payload = state.payloads.pop(inst.case, None) if inst.case else None
        return []

    def _block_end(self, state, inst, operands):
        if not state.frames:
            raise ArityError("block end without block start")
        operand = None
        if inst.yields:
            if not state.stack:
                raise ArityError("block yields an operand but its stack is empty")
            operand = state.stack.pop()
        if state.stack:
            raise ArityError(f"{len(state.stack)} stale operand(s) at end of block")

        block = Block(state.lines, operand)
        frame = state.frames.pop()
        state.lines, state.stack, state.payload = frame.lines, frame.stack, frame.payload
        state.blocks.append(block)
        return []

    def _result_lower(self, state, inst, operands):
        (discriminant,) = operands
        if len(state.blocks) < 2:
            raise ArityError("ResultLower needs an ok block and an err block")
        err_block = state.blocks.pop()
        ok_block = state.blocks.pop()

        success = self.success_name(inst.err)
        wasm = TypeMapper.wasm_type_name(abi.repr_wasm_type(self._enum(inst.err).tag_repr))
        lines = state.lines
        lines.append(f"res := {wasm}({success})")
        if ok_block.lines:
            lines.append(f"if {discriminant.expr} == {success} {{")
            lines.extend(f"\t{line}" for line in ok_block.lines)
            lines.append("} else {")
        else:
            lines.append(f"if {discriminant.expr} != {success} {{")
        lines.extend(f"\t{line}" for line in err_block.lines)
        if err_block.operand is not None:
            lines.append(f"\tres = {err_block.operand.expr}")
        lines.append("}")
        return [Operand(None, "res")]

    # Calls

    def _call_interface(self, state, inst, operands):
        func = inst.func
        if len(func.results) > 1:
            raise UnsupportedResultCountError(len(func.results), func.name)

        args = ", ".join(o.expr for o in operands)
        call = f"{self.impl}.{TypeMapper.ident_name(func.name)}({args})"
        if not func.results:
            state.lines.append(call)
            return []

        variant = resolve(func.results[0].tref)
        if not isinstance(variant, Variant):
            raise UnsupportedShapeError(f"result of {func.name!r} is not a variant")
        if variant.is_enum():
            state.lines.append(f"rv := {call}")
            return [Operand(None, "rv")]

        expected = variant.as_expected()
        if expected is None or expected[1] is None:
            raise UnsupportedShapeError(f"result of {func.name!r} is not expected-shaped")
        ok, err = expected

        names = []
        if ok is not None:
            tuple_ = TypeMapper.as_tuple(ok)
            if tuple_ is not None:
                names.extend(f"rv{TypeMapper.ident_name(m.name)}" for m in tuple_.members)
            else:
                names.append("rv")
            state.payloads["ok"] = Operand(ok, "rv")
        names.append("err")
        state.payloads["err"] = Operand(err, "err")

        state.lines.append(f"{', '.join(names)} := {call}")
        return [Operand(err, "err")]

    def _return(self, state, inst, operands):
        if inst.amt > 1:
            raise UnsupportedResultCountError(inst.amt)
        if inst.amt == 1:
            state.lines.append(f"return {operands[0].expr}")
        return []

    # Helpers

    @staticmethod
    def _enum(tref: TypeRef) -> Variant:
        variant = resolve(tref)
        if not isinstance(variant, Variant) or not variant.is_enum():
            raise UnsupportedShapeError(f"expected an enum, got {tref!r}")
        return variant

    @classmethod
    def success_name(cls, err: TypeRef) -> str:
        """Constant for the success case (case 0) of an error enum"""
        variant = cls._enum(err)
        if not isinstance(err, NamedType) or not variant.cases:
            return "0"
        return TypeMapper.namedtype_name(err) + TypeMapper.export_ident_name(variant.cases[0].name)
