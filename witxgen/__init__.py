"""
witx Binding Generator Package

Parses witx interface definitions and generates Go host bindings:
  1. Module definitions, ABI adapters and dispatch tables
  2. Named types with linear memory layouts
  3. Implementation stubs
"""

from .types import (
    Builtin, BuiltinKind, Case, ConstPointer, Constant, Document, Handle,
    IntRepr, InterfaceFunc, ListType, Module, ModuleImport, NamedType, Param,
    Pointer, Record, RecordKind, RecordMember, Variant,
)
from .errors import (
    ArityError, LoadError, OutputError, UnknownInstructionError,
    UnsupportedResultCountError, UnsupportedShapeError, WitxgenError,
)
from .parser import WitxParser, load, loads
from .type_mapper import TypeMapper
from .lowering import Lowering
from .types_generator import TypesGenerator
from .module_generator import ModuleGenerator
from .common_generator import CommonGenerator
from .bindings import Generated, generate, to_go

__all__ = [
    'Builtin', 'BuiltinKind', 'Case', 'ConstPointer', 'Constant', 'Document',
    'Handle', 'IntRepr', 'InterfaceFunc', 'ListType', 'Module', 'ModuleImport',
    'NamedType', 'Param', 'Pointer', 'Record', 'RecordKind', 'RecordMember',
    'Variant',
    'WitxgenError', 'LoadError', 'UnsupportedShapeError',
    'UnsupportedResultCountError', 'UnknownInstructionError', 'ArityError',
    'OutputError',
    'WitxParser', 'load', 'loads', 'TypeMapper', 'Lowering',
    'TypesGenerator', 'ModuleGenerator', 'CommonGenerator',
    'Generated', 'generate', 'to_go',
]
