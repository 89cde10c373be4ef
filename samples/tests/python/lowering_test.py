"""Tests for the ABI lowering engine"""

from dataclasses import dataclass

import pytest

from witxgen import abi
from witxgen.abi import call_interface
from witxgen.errors import (
    ArityError, UnknownInstructionError, UnsupportedResultCountError,
    UnsupportedShapeError,
)
from witxgen.lowering import Lowering, LoweringState
from witxgen.parser import loads
from witxgen.types import Builtin, BuiltinKind, Record, RecordKind, RecordMember

DOC = loads('''
(typename $size u32)
(typename $errno (enum (@witx tag u16) $success $badf))
(typename $fd (handle))
(typename $whence (enum (@witx tag u8) $set $cur $end))
(typename $oflags (flags (@witx repr u16) $creat $excl))
(typename $filestat (record (field $size u64) (field $ino u64)))
(typename $iovec (record (field $buf (@witx pointer u8)) (field $buf_len $size)))
(typename $iovec_array (list $iovec))

(module $test_mod
  (import "memory" (memory))
  (@interface func (export "foo")
    (param $x u32)
    (result $error (expected (error $errno))))
  (@interface func (export "fd_read")
    (param $fd $fd)
    (param $iovs $iovec_array)
    (result $error (expected $size (error $errno))))
  (@interface func (export "args_sizes_get")
    (result $error (expected (tuple $size $size) (error $errno))))
  (@interface func (export "fd_filestat_get")
    (param $fd $fd)
    (result $error (expected $filestat (error $errno))))
  (@interface func (export "fd_seek")
    (param $fd $fd)
    (param $offset s64)
    (param $whence $whence)
    (result $error (expected u64 (error $errno))))
  (@interface func (export "status")
    (result $rv $errno))
  (@interface func (export "proc_exit")
    (param $rval u32)
    (@witx noreturn))
)
''')
FUNCS = {f.name: f for f in DOC.module("test_mod").funcs}


def lower(name):
    return Lowering().lower(call_interface("test_mod", FUNCS[name]))


def run(*instructions):
    """Emit instructions into a fresh state and return it"""
    lowering = Lowering()
    state = LoweringState()
    for inst in instructions:
        lowering.emit(state, inst)
    return state


@pytest.mark.parametrize("inst, expr", [
    (abi.U8FromI32(), "uint8(p0)"),
    (abi.S8FromI32(), "int8(p0)"),
    (abi.U16FromI32(), "uint16(p0)"),
    (abi.U32FromI32(), "uint32(p0)"),
    (abi.U64FromI64(), "uint64(p0)"),
    (abi.CharFromI32(), "rune(p0)"),
    (abi.Char8FromI32(), "byte(p0)"),
    (abi.UsizeFromI32(), "uint32(p0)"),
    (abi.PointerFromI32(DOC.typename("size")), "pointer(p0)"),
    (abi.HandleFromI32(DOC.typename("fd")), "wasiFd(p0)"),
    (abi.BitflagsFromI32(DOC.typename("oflags")), "wasiOflags(p0)"),
    (abi.EnumLift(DOC.typename("whence")), "uint8(p0)"),
    (abi.I32FromU8(), "int32(p0)"),
    (abi.I64FromU64(), "int64(p0)"),
    (abi.EnumLower(DOC.typename("errno")), "int32(p0)"),
])
def test_casts(inst, expr):
    state = run(abi.GetArg(0), inst)
    assert [o.expr for o in state.stack] == [expr]


@pytest.mark.parametrize("inst", [
    abi.S32FromI32(), abi.S64FromI64(), abi.I32FromS32(), abi.I64FromS64(),
    abi.If32FromF32(), abi.If64FromF64(), abi.F32FromIf32(), abi.F64FromIf64(),
])
def test_passthrough(inst):
    state = run(abi.GetArg(3), inst)
    assert [o.expr for o in state.stack] == ["p3"]


def test_list_from_pointer_and_length():
    state = run(abi.GetArg(1), abi.GetArg(2), abi.ListFromPointerLength(DOC.typename("iovec_array")))
    assert [o.expr for o in state.stack] == ["list{pointer: pointer(p1), length: int32(p2)}"]


def test_store_scalar():
    state = run(abi.GetArg(1), abi.GetArg(0), abi.Store(DOC.typename("size")))
    assert state.stack == []
    assert state.lines == ["m.mem().PutUint32(uint32(p1), uint32(p0), 0)"]


def test_store_aggregate():
    state = run(abi.GetArg(1), abi.GetArg(0), abi.Store(DOC.typename("filestat")))
    assert state.lines == ["p1.store(m.mem(), uint32(p0), 0)"]


def test_store_anonymous_aggregate_rejected():
    record = Record(RecordKind.PLAIN, (RecordMember("a", Builtin(BuiltinKind.U8)),))
    with pytest.raises(UnsupportedShapeError):
        run(abi.GetArg(1), abi.GetArg(0), abi.Store(record))


def test_tuple_lower_requires_tuple():
    with pytest.raises(UnsupportedShapeError):
        run(abi.GetArg(0), abi.TupleLower(2))


def test_error_only_result():
    assert lower("foo") == [
        "err := m.impl.foo(uint32(p0))",
        "res := int32(wasiErrnoSuccess)",
        "if err != wasiErrnoSuccess {",
        "\tres = int32(err)",
        "}",
        "return res",
    ]


def test_ok_value_result():
    assert lower("fd_read") == [
        "rv, err := m.impl.fdRead(wasiFd(p0), list{pointer: pointer(p1), length: int32(p2)})",
        "res := int32(wasiErrnoSuccess)",
        "if err == wasiErrnoSuccess {",
        "\tm.mem().PutUint32(uint32(rv), uint32(p3), 0)",
        "} else {",
        "\tres = int32(err)",
        "}",
        "return res",
    ]


def test_tuple_result():
    assert lower("args_sizes_get") == [
        "rv0, rv1, err := m.impl.argsSizesGet()",
        "res := int32(wasiErrnoSuccess)",
        "if err == wasiErrnoSuccess {",
        "\tm.mem().PutUint32(uint32(rv1), uint32(p1), 0)",
        "\tm.mem().PutUint32(uint32(rv0), uint32(p0), 0)",
        "} else {",
        "\tres = int32(err)",
        "}",
        "return res",
    ]


def test_aggregate_result():
    lines = lower("fd_filestat_get")
    assert lines[0] == "rv, err := m.impl.fdFilestatGet(wasiFd(p0))"
    assert "\trv.store(m.mem(), uint32(p1), 0)" in lines


def test_mixed_params():
    lines = lower("fd_seek")
    assert lines[0] == "rv, err := m.impl.fdSeek(wasiFd(p0), p1, uint8(p2))"
    assert "\tm.mem().PutUint64(uint64(rv), uint32(p3), 0)" in lines


def test_enum_result():
    assert lower("status") == [
        "rv := m.impl.status()",
        "return int32(rv)",
    ]


def test_no_result():
    assert lower("proc_exit") == ["m.impl.procExit(uint32(p0))"]


def test_state_is_per_call():
    lowering = Lowering()
    first = lowering.lower(call_interface("test_mod", FUNCS["foo"]))
    second = lowering.lower(call_interface("test_mod", FUNCS["foo"]))
    assert first == second


def test_custom_receivers():
    lines = Lowering(mem="mem", impl="impl").lower(call_interface("test_mod", FUNCS["fd_read"]))
    assert lines[0].startswith("rv, err := impl.fdRead(")
    assert "\tmem.PutUint32(uint32(rv), uint32(p3), 0)" in lines


def test_return_counts():
    assert Lowering().lower([abi.Return(0)]) == []
    assert Lowering().lower([abi.GetArg(0), abi.Return(1)]) == ["return p0"]
    with pytest.raises(UnsupportedResultCountError):
        Lowering().lower([abi.GetArg(0), abi.GetArg(1), abi.Return(2)])


@dataclass(frozen=True)
class Unknown(abi.Instruction):
    pass


def test_unknown_instruction():
    with pytest.raises(UnknownInstructionError, match="unimplemented instruction"):
        Lowering().lower([Unknown()])


def test_stack_underflow():
    with pytest.raises(ArityError, match="needs 1 operand"):
        Lowering().lower([abi.U32FromI32()])


def test_stale_operands():
    with pytest.raises(ArityError, match="stale"):
        Lowering().lower([abi.GetArg(0)])


def test_unbalanced_blocks():
    with pytest.raises(ArityError, match="left open"):
        Lowering().lower([abi.BlockStart("ok")])
    with pytest.raises(ArityError, match="without block start"):
        Lowering().lower([abi.BlockEnd()])


def test_payload_taken_once():
    with pytest.raises(ArityError, match="no variant payload"):
        Lowering().lower([abi.VariantPayload()])


def test_result_lower_needs_blocks():
    errno = DOC.typename("errno")
    with pytest.raises(ArityError, match="ok block and an err block"):
        Lowering().lower([abi.GetArg(0), abi.ResultLower(None, errno)])


def test_success_name():
    assert Lowering.success_name(DOC.typename("errno")) == "wasiErrnoSuccess"
