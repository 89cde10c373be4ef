"""witx parser

Reads witx S-expression text into a ``Document``. ``;;;`` comments are
documentation and attach to the next form or name; ``;;`` comments are
dropped. Names must be defined before they are used.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .errors import LoadError
from .layout import bitflags_repr
from .types import (
    Builtin, BuiltinKind, Case, Constant, ConstPointer, Document, Handle,
    IntRepr, InterfaceFunc, ListType, Module, ModuleImport, NamedType, Param,
    Pointer, Record, RecordKind, RecordMember, TypeRef, Variant,
)

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r'''
    (?P<space>\s+)
  | (?P<doc>;;;[^\n]*)
  | (?P<comment>;;[^\n]*)
  | (?P<open>\()
  | (?P<close>\))
  | (?P<string>"[^"]*")
  | (?P<atom>[^\s()";]+)
''', re.VERBOSE)

BUILTINS = {
    'u8': BuiltinKind.U8,
    'u16': BuiltinKind.U16,
    'u32': BuiltinKind.U32,
    'u64': BuiltinKind.U64,
    's8': BuiltinKind.S8,
    's16': BuiltinKind.S16,
    's32': BuiltinKind.S32,
    's64': BuiltinKind.S64,
    'f32': BuiltinKind.F32,
    'f64': BuiltinKind.F64,
    'char': BuiltinKind.CHAR,
}

INT_REPRS = {
    'u8': IntRepr.U8,
    'u16': IntRepr.U16,
    'u32': IntRepr.U32,
    'u64': IntRepr.U64,
}


@dataclass
class Atom:
    value: str
    line: int
    quoted: bool = False
    docs: str = ""


@dataclass
class SExpr:
    line: int
    items: list = field(default_factory=list)
    docs: str = ""

    def head(self) -> Optional[str]:
        if self.items and isinstance(self.items[0], Atom) and not self.items[0].quoted:
            return self.items[0].value
        return None


Node = Union[Atom, SExpr]


def read_sexprs(content: str, path=None) -> list[SExpr]:
    """Tokenize and read the top-level forms of a witx file"""
    stack = [SExpr(line=1)]
    docs = []
    line = 1
    pos = 0
    while pos < len(content):
        m = TOKEN_RE.match(content, pos)
        if m is None:
            raise LoadError(f"line {line}: unexpected character {content[pos]!r}", path)
        kind, text = m.lastgroup, m.group()
        pos = m.end()

        if kind == 'doc':
            doc = text[3:]
            docs.append(doc[1:] if doc.startswith(' ') else doc)
        elif kind == 'open':
            node = SExpr(line=line, docs="\n".join(docs))
            docs = []
            stack[-1].items.append(node)
            stack.append(node)
        elif kind == 'close':
            if len(stack) == 1:
                raise LoadError(f"line {line}: unbalanced ')'", path)
            stack.pop()
            docs = []
        elif kind in ('atom', 'string'):
            quoted = kind == 'string'
            value = text[1:-1] if quoted else text
            stack[-1].items.append(Atom(value, line, quoted, "\n".join(docs)))
            docs = []

        line += text.count('\n')

    if len(stack) != 1:
        raise LoadError(f"line {stack[-1].line}: unclosed '('", path)
    forms = []
    for item in stack[0].items:
        if not isinstance(item, SExpr):
            raise LoadError(f"line {item.line}: unexpected {item.value!r} at top level", path)
        forms.append(item)
    return forms


class WitxParser:
    """Builds a Document from one or more witx files.

    A parser keeps its symbol table across files, so later files may refer
    to names defined by earlier ones (or by files pulled in with ``use``).
    """

    def __init__(self):
        self.typenames: dict[str, NamedType] = {}
        self.modules: list[Module] = []
        self.constants: list[Constant] = []
        self.sources: list[str] = []
        self._loaded: set[Path] = set()
        self._path = None

    def document(self) -> Document:
        return Document(
            typenames=tuple(self.typenames.values()),
            modules=tuple(self.modules),
            constants=tuple(self.constants),
            sources=tuple(self.sources),
        )

    def parse_file(self, path):
        path = Path(path)
        resolved = path.resolve()
        if resolved in self._loaded:
            return
        self._loaded.add(resolved)
        try:
            content = path.read_text()
        except OSError as e:
            raise LoadError(f"cannot read witx file: {e.strerror or e}", path) from e
        logger.debug("loading %s", path)
        self.parse(content, path)

    def parse(self, content: str, path=None):
        """Parse witx text; ``path`` resolves ``use`` and labels errors"""
        outer = self._path
        self._path = path
        try:
            if path is not None:
                self.sources.append(Path(path).name)
            for form in read_sexprs(content, path):
                self._toplevel(form)
        finally:
            self._path = outer

    def _error(self, node: Node, message: str) -> LoadError:
        return LoadError(f"line {node.line}: {message}", self._path)

    # Top level

    def _toplevel(self, form: SExpr):
        head = form.head()
        if head == 'use':
            self._use(form)
        elif head == 'typename':
            self._typename(form)
        elif head == 'module':
            self._module(form)
        elif head == '@witx' and self._atom(form, 1) == 'const':
            self._constant(form)
        else:
            raise self._error(form, f"unknown top-level form {head!r}")

    def _use(self, form: SExpr):
        target = self._item(form, 1)
        if not isinstance(target, Atom) or not target.quoted:
            raise self._error(form, "use expects a quoted file name")
        base = Path(self._path).parent if self._path is not None else Path.cwd()
        self.parse_file(base / target.value)

    def _typename(self, form: SExpr):
        name = self._id(self._item(form, 1))
        if name in self.typenames:
            raise self._error(form, f"duplicate typename ${name}")
        tref = self._tref(self._item(form, 2))
        self.typenames[name] = NamedType(name=name, tref=tref, docs=form.docs)

    def _constant(self, form: SExpr):
        # (@witx const $type $name value)
        ty = self._id(self._item(form, 2))
        if ty not in self.typenames:
            raise self._error(form, f"constant for unknown type ${ty}")
        name = self._id(self._item(form, 3))
        value_atom = self._item(form, 4)
        try:
            value = int(value_atom.value, 0)
        except (AttributeError, ValueError):
            raise self._error(form, f"constant ${name} has a non-integer value") from None
        self.constants.append(Constant(ty=ty, name=name, value=value, docs=form.docs))

    def _module(self, form: SExpr):
        name = self._id(self._item(form, 1))
        imports = []
        funcs = []
        for item in form.items[2:]:
            if not isinstance(item, SExpr):
                raise self._error(item, f"unexpected {item.value!r} in module ${name}")
            head = item.head()
            if head == 'import':
                imports.append(self._import(item))
            elif head == '@interface' and self._atom(item, 1) == 'func':
                funcs.append(self._func(item))
            else:
                raise self._error(item, f"unknown module item {head!r}")

        if sum(1 for i in imports if i.kind == 'memory') > 1:
            raise self._error(form, f"module ${name} imports more than one memory")
        if len({f.name for f in funcs}) != len(funcs):
            raise self._error(form, f"module ${name} declares a function twice")
        self.modules.append(Module(name=name, imports=tuple(imports), funcs=tuple(funcs), docs=form.docs))

    def _import(self, form: SExpr) -> ModuleImport:
        # (import "memory" (memory))
        name = self._item(form, 1)
        kind = self._item(form, 2)
        if not isinstance(name, Atom) or not name.quoted:
            raise self._error(form, "import expects a quoted name")
        if not isinstance(kind, SExpr) or kind.head() != 'memory':
            raise self._error(form, "only memory imports are supported")
        return ModuleImport(name=name.value, kind='memory', docs=form.docs)

    def _func(self, form: SExpr) -> InterfaceFunc:
        # (@interface func (export "name") (param $p T)* (result $r T)* (@witx noreturn)?)
        export = self._item(form, 2)
        if not isinstance(export, SExpr) or export.head() != 'export':
            raise self._error(form, "function expects (export \"name\")")
        name_atom = self._item(export, 1)
        if not isinstance(name_atom, Atom) or not name_atom.quoted:
            raise self._error(export, "export expects a quoted name")
        name = name_atom.value

        params = []
        results = []
        noreturn = False
        for item in form.items[3:]:
            head = item.head() if isinstance(item, SExpr) else None
            if head in ('param', 'result'):
                param = Param(
                    name=self._id(self._item(item, 1)),
                    tref=self._tref(self._item(item, 2)),
                    docs=item.docs,
                )
                (params if head == 'param' else results).append(param)
            elif head == '@witx' and self._atom(item, 1) == 'noreturn':
                noreturn = True
            else:
                raise self._error(item, f"unexpected item in function {name!r}")
        return InterfaceFunc(
            name=name,
            params=tuple(params),
            results=tuple(results),
            noreturn=noreturn,
            docs=form.docs,
        )

    # Types

    def _tref(self, node: Node) -> TypeRef:
        if isinstance(node, Atom):
            return self._named_tref(node)

        head = node.head()
        if head == '@witx':
            return self._witx_type(node)
        if head == 'string':
            return ListType(Builtin(BuiltinKind.CHAR8))
        if head == 'handle':
            return Handle()
        if head == 'list':
            return ListType(self._tref(self._item(node, 1)))
        if head == 'tuple':
            members = tuple(
                RecordMember(name=str(i), tref=self._tref(item))
                for i, item in enumerate(node.items[1:])
            )
            return Record(RecordKind.TUPLE, members)
        if head == 'record':
            return self._record(node)
        if head == 'flags':
            return self._flags(node)
        if head == 'enum':
            return self._enum(node)
        if head == 'variant':
            return self._variant(node)
        if head == 'union':
            return self._union(node)
        if head == 'expected':
            return self._expected(node)
        raise self._error(node, f"unknown type constructor {head!r}")

    def _named_tref(self, atom: Atom) -> TypeRef:
        if atom.value == 'string':
            return ListType(Builtin(BuiltinKind.CHAR8))
        if atom.value in BUILTINS:
            return Builtin(BUILTINS[atom.value])
        name = self._id(atom)
        if name not in self.typenames:
            raise self._error(atom, f"unknown type ${name}")
        return self.typenames[name]

    def _witx_type(self, node: SExpr) -> TypeRef:
        kind = self._atom(node, 1)
        if kind == 'pointer':
            return Pointer(self._tref(self._item(node, 2)))
        if kind == 'const_pointer':
            return ConstPointer(self._tref(self._item(node, 2)))
        if kind == 'char8':
            return Builtin(BuiltinKind.CHAR8)
        if kind == 'usize':
            return Builtin(BuiltinKind.USIZE)
        raise self._error(node, f"unknown @witx type {kind!r}")

    def _record(self, node: SExpr) -> Record:
        members = []
        for item in node.items[1:]:
            if not isinstance(item, SExpr) or item.head() != 'field':
                raise self._error(item, "record expects (field $name type)")
            members.append(RecordMember(
                name=self._id(self._item(item, 1)),
                tref=self._tref(self._item(item, 2)),
                docs=item.docs,
            ))
        self._check_unique(node, [m.name for m in members])
        return Record(RecordKind.PLAIN, tuple(members))

    def _flags(self, node: SExpr) -> Record:
        items = node.items[1:]
        repr_ = None
        if items and self._is_witx_annotation(items[0], 'repr'):
            repr_ = self._int_repr(items[0])
            items = items[1:]
        members = tuple(RecordMember(name=self._id(i), docs=i.docs) for i in items)
        self._check_unique(node, [m.name for m in members])
        if len(members) > 64:
            raise self._error(node, "flags have more than 64 members")
        record = Record(RecordKind.BITFLAGS, members, repr_)
        if repr_ is not None and bitflags_repr(record) is not repr_:
            raise self._error(node, f"{len(members)} flags do not fit in {repr_.name.lower()}")
        return record

    def _enum(self, node: SExpr) -> Variant:
        items = node.items[1:]
        tag = None
        if items and self._is_witx_annotation(items[0], 'tag'):
            tag = self._int_repr(items[0])
            items = items[1:]
        cases = tuple(Case(name=self._id(i), docs=i.docs) for i in items)
        self._check_unique(node, [c.name for c in cases])
        return Variant(tag or self._default_tag(len(cases)), cases)

    def _variant(self, node: SExpr) -> Variant:
        items = node.items[1:]
        tag = None
        if items and self._is_witx_annotation(items[0], 'tag'):
            tag = self._int_repr(items[0])
            items = items[1:]
        cases = []
        for item in items:
            if not isinstance(item, SExpr) or item.head() != 'case':
                raise self._error(item, "variant expects (case $name type?)")
            payload = self._item(item, 2) if len(item.items) > 2 else None
            cases.append(Case(
                name=self._id(self._item(item, 1)),
                tref=self._tref(payload) if payload is not None else None,
                docs=item.docs,
            ))
        self._check_unique(node, [c.name for c in cases])
        return Variant(tag or self._default_tag(len(cases)), tuple(cases))

    def _union(self, node: SExpr) -> Variant:
        # (union (@witx tag $enum)? T*): cases take the tag enum's case names
        items = node.items[1:]
        names = None
        tag = None
        if items and self._is_witx_annotation(items[0], 'tag'):
            tag_type = self._tref(self._item(items[0], 2))
            tag_enum = tag_type.type_() if isinstance(tag_type, NamedType) else tag_type
            if not isinstance(tag_enum, Variant) or not tag_enum.is_enum():
                raise self._error(node, "union tag must be an enum")
            tag = tag_enum.tag_repr
            names = [c.name for c in tag_enum.cases]
            items = items[1:]
            if len(names) != len(items):
                raise self._error(node, f"union has {len(items)} cases but its tag has {len(names)}")
        if names is None:
            names = [str(i) for i in range(len(items))]
        cases = tuple(
            Case(name=name, tref=self._tref(item), docs=item.docs)
            for name, item in zip(names, items)
        )
        return Variant(tag or self._default_tag(len(cases)), cases)

    def _expected(self, node: SExpr) -> Variant:
        # (expected T? (error E))
        items = node.items[1:]
        err = None
        if items and isinstance(items[-1], SExpr) and items[-1].head() == 'error':
            err = self._tref(self._item(items[-1], 1))
            items = items[:-1]
        if err is None:
            raise self._error(node, "expected requires an (error type)")
        if len(items) > 1:
            raise self._error(node, "expected has at most one ok type")
        ok = self._tref(items[0]) if items else None
        return Variant(IntRepr.U32, (Case("ok", ok), Case("err", err)))

    # Helpers

    def _item(self, node: SExpr, index: int) -> Node:
        if index >= len(node.items):
            raise self._error(node, f"{node.head() or 'form'} is missing an item")
        return node.items[index]

    def _atom(self, node: SExpr, index: int) -> Optional[str]:
        if index < len(node.items) and isinstance(node.items[index], Atom):
            return node.items[index].value
        return None

    def _id(self, node: Node) -> str:
        if not isinstance(node, Atom) or not node.value.startswith('$') or len(node.value) < 2:
            raise self._error(node, "expected a $name")
        return node.value[1:]

    def _is_witx_annotation(self, node: Node, kind: str) -> bool:
        return isinstance(node, SExpr) and node.head() == '@witx' and self._atom(node, 1) == kind

    def _int_repr(self, node: SExpr) -> IntRepr:
        name = self._atom(node, 2)
        if name not in INT_REPRS:
            raise self._error(node, f"invalid integer representation {name!r}")
        return INT_REPRS[name]

    def _default_tag(self, ncases: int) -> IntRepr:
        return IntRepr.smallest(max(ncases - 1, 1).bit_length())

    def _check_unique(self, node: SExpr, names: list[str]):
        seen = set()
        for name in names:
            if name in seen:
                raise self._error(node, f"duplicate name ${name}")
            seen.add(name)


def load(paths) -> Document:
    """Load witx files (and the files they ``use``) into one Document"""
    parser = WitxParser()
    for path in paths:
        parser.parse_file(path)
    return parser.document()


def loads(content: str) -> Document:
    """Load a Document from witx text"""
    parser = WitxParser()
    parser.parse(content)
    return parser.document()
