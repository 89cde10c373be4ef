"""Go statements for fixed-offset linear-memory stores and loads

Types with a scalar encoding are written and read with the byte, half,
word and double-word primitives of ``exec.Memory``. Aggregates are
self-describing: their generated ``store``/``load`` methods are called.
"""

from .errors import UnsupportedShapeError
from .layout import is_aggregate, scalar_size
from .type_mapper import TypeMapper
from .types import NamedType, TypeRef

# width -> (put method, conversion)
STORE_PRIMITIVES = {
    1: ('PutByte', 'byte'),
    2: ('PutUint16', 'uint16'),
    4: ('PutUint32', 'uint32'),
    8: ('PutUint64', 'uint64'),
}

LOAD_PRIMITIVES = {
    1: 'Byte',
    2: 'Uint16',
    4: 'Uint32',
    8: 'Uint64',
}


def sized_store(size: int, mem: str, value: str, pointer: str, offset: int) -> str:
    method, cvt = STORE_PRIMITIVES[size]
    return f"{mem}.{method}({cvt}({value}), uint32({pointer}), {offset})"


def typed_load(lvalue_type: str, size: int, mem: str, lvalue: str, pointer: str, offset: int) -> str:
    method = LOAD_PRIMITIVES[size]
    return f"{lvalue} = {lvalue_type}({mem}.{method}(uint32({pointer}), {offset}))"


def _check_named(tref: TypeRef):
    if not isinstance(tref, NamedType):
        raise UnsupportedShapeError(f"anonymous aggregate has no store/load routine: {tref!r}")


def store_statement(tref: TypeRef, mem: str, value: str, pointer: str, offset: int) -> str:
    """Statement writing ``value`` of type ``tref`` at ``pointer + offset``"""
    if is_aggregate(tref):
        _check_named(tref)
        return f"{value}.store({mem}, uint32({pointer}), {offset})"
    return sized_store(scalar_size(tref), mem, value, pointer, offset)


def load_statement(tref: TypeRef, mem: str, lvalue: str, pointer: str, offset: int) -> str:
    """Statement reading a ``tref`` from ``pointer + offset`` into ``lvalue``"""
    if is_aggregate(tref):
        _check_named(tref)
        return f"{lvalue}.load({mem}, uint32({pointer}), {offset})"
    return typed_load(TypeMapper.typeref_name(tref), scalar_size(tref), mem, lvalue, pointer, offset)
