"""Types Generator - renders named witx types and their memory routines as Go"""

from .layout import bitflags_repr, element_size, member_layout, payload_offset, size_align
from .memory_access import load_statement, sized_store, store_statement, typed_load
from .type_mapper import TypeMapper
from .types import Constant, Document, ListType, NamedType, Record, Variant


def doc_lines(docs: str, indent: str = "") -> list[str]:
    return [f"{indent}// {line}" for line in docs.splitlines()]


class TypesGenerator:
    """Generates Go declarations for every named type of a document"""

    def __init__(self, doc: Document):
        self.doc = doc

    def generate(self) -> list[str]:
        """Declarations in document order, each followed by its constants"""
        constants: dict[str, list[Constant]] = {}
        for c in self.doc.constants:
            constants.setdefault(c.ty, []).append(c)

        lines = []
        for nt in self.doc.typenames:
            lines.extend(self.datatype(nt))
            for c in constants.pop(nt.name, []):
                lines.extend(self._constant(c))
        return lines

    def uses_memory(self) -> bool:
        """Whether any generated routine takes an *exec.Memory"""
        for nt in self.doc.typenames:
            if isinstance(nt.tref, NamedType):
                continue
            ty = nt.type_()
            if isinstance(ty, ListType):
                return True
            if isinstance(ty, Record) and not ty.is_bitflags():
                return True
            if isinstance(ty, Variant) and not ty.is_enum():
                return True
        return False

    def datatype(self, nt: NamedType) -> list[str]:
        lines = doc_lines(nt.docs)
        # a reference to another named type is always an alias
        if isinstance(nt.tref, NamedType):
            lines.extend(self._alias(nt))
            return lines

        ty = nt.tref
        if isinstance(ty, Record):
            lines.extend(self._bitflags(nt, ty) if ty.is_bitflags() else self._record(nt, ty))
        elif isinstance(ty, Variant):
            lines.extend(self._enum(nt, ty) if ty.is_enum() else self._variant(nt, ty))
        elif isinstance(ty, ListType):
            lines.extend(self._list(nt, ty))
        else:
            lines.extend(self._alias(nt))
        return lines

    def _name(self, nt: NamedType) -> str:
        return TypeMapper.declared_name(nt)

    def _alias(self, nt: NamedType) -> list[str]:
        return [f"type {self._name(nt)} = {TypeMapper.alias_target(nt.tref)}", ""]

    def _enum(self, nt: NamedType, variant: Variant) -> list[str]:
        name = self._name(nt)
        lines = [f"type {name} = {TypeMapper.intrepr_name(variant.tag_repr)}"]
        for index, case in enumerate(variant.cases):
            lines.extend(doc_lines(case.docs))
            lines.append(f"const {name}{TypeMapper.export_ident_name(case.name)} = {index}")
        lines.append("")
        return lines

    def _bitflags(self, nt: NamedType, record: Record) -> list[str]:
        name = self._name(nt)
        lines = [f"type {name} = {TypeMapper.intrepr_name(bitflags_repr(record))}"]
        for i, member in enumerate(record.members):
            lines.extend(doc_lines(member.docs))
            lines.append(f"const {name}{TypeMapper.export_ident_name(member.name)} = 1 << {i}")
        lines.append("")
        return lines

    def _constant(self, c: Constant) -> list[str]:
        return doc_lines(c.docs) + [f"const {TypeMapper.ident_name(c.name)} = {c.value}", ""]

    def _layout(self, name: str, tref) -> list[str]:
        sa = size_align(tref)
        return [
            f"func (v *{name}) layout() (uint32, uint32) {{",
            f"\treturn {sa.size}, {sa.align}",
            "}",
            "",
        ]

    def _record(self, nt: NamedType, record: Record) -> list[str]:
        name = self._name(nt)
        lines = [f"type {name} struct {{"]
        for member in record.members:
            lines.extend(doc_lines(member.docs, "\t"))
            lines.append(f"\t{TypeMapper.ident_name(member.name)} {TypeMapper.typeref_name(member.tref)}")
        lines.append("}")
        lines.append("")
        lines.extend(self._layout(name, record))

        layouts = member_layout(record)
        lines.append(f"func (v *{name}) store(mem *exec.Memory, addr, offset uint32) {{")
        lines.append("\tbase := addr + offset")
        for layout in layouts:
            field = f"v.{TypeMapper.ident_name(layout.member.name)}"
            lines.append("\t" + store_statement(layout.member.tref, "mem", field, "base", layout.offset))
        lines.append("}")
        lines.append("")

        lines.append(f"func (v *{name}) load(mem *exec.Memory, addr, offset uint32) {{")
        lines.append("\tbase := addr + offset")
        for layout in layouts:
            field = f"v.{TypeMapper.ident_name(layout.member.name)}"
            lines.append("\t" + load_statement(layout.member.tref, "mem", field, "base", layout.offset))
        lines.append("}")
        lines.append("")
        return lines

    def _variant(self, nt: NamedType, variant: Variant) -> list[str]:
        name = self._name(nt)
        tag_size = variant.tag_repr.size
        offset = payload_offset(variant)

        lines = [f"type {name} struct {{", f"\ttag {TypeMapper.intrepr_name(variant.tag_repr)}", ""]
        for case in variant.cases:
            if case.tref is None:
                continue
            lines.extend(doc_lines(case.docs, "\t"))
            lines.append(f"\t{TypeMapper.ident_name(case.name)} {TypeMapper.typeref_name(case.tref)}")
        lines.append("}")
        lines.append("")
        lines.extend(self._layout(name, variant))

        lines.append(f"func (v *{name}) store(mem *exec.Memory, addr, offset uint32) {{")
        lines.append("\tbase := addr + offset")
        lines.append("\t" + sized_store(tag_size, "mem", "v.tag", "base", 0))
        lines.append("\tswitch v.tag {")
        for index, case in enumerate(variant.cases):
            lines.append(f"\tcase {index}:")
            if case.tref is not None:
                field = f"v.{TypeMapper.ident_name(case.name)}"
                lines.append("\t\t" + store_statement(case.tref, "mem", field, "base", offset))
        lines.append("\t}")
        lines.append("}")
        lines.append("")

        tag_type = TypeMapper.intrepr_name(variant.tag_repr)
        lines.append(f"func (v *{name}) load(mem *exec.Memory, addr, offset uint32) {{")
        lines.append("\tbase := addr + offset")
        lines.append("\t" + typed_load(tag_type, tag_size, "mem", "v.tag", "base", 0))
        lines.append("\tswitch v.tag {")
        for index, case in enumerate(variant.cases):
            lines.append(f"\tcase {index}:")
            if case.tref is not None:
                field = f"v.{TypeMapper.ident_name(case.name)}"
                lines.append("\t\t" + load_statement(case.tref, "mem", field, "base", offset))
        lines.append("\t}")
        lines.append("}")
        lines.append("")
        return lines

    def _list(self, nt: NamedType, list_: ListType) -> list[str]:
        name = self._name(nt)
        element = TypeMapper.typeref_name(list_.element)
        stride = element_size(list_.element)
        return [
            f"type {name} list",
            "",
            f"func (l *{name}) elementSize() uint32 {{",
            f"\treturn {stride}",
            "}",
            "",
            f"func (l *{name}) storeIndex(mem *exec.Memory, index int, value {element}) {{",
            f"\taddr := uint32(l.pointer) + {stride}*uint32(index)",
            "\t" + store_statement(list_.element, "mem", "value", "addr", 0),
            "}",
            "",
            f"func (l *{name}) loadIndex(mem *exec.Memory, index int) {element} {{",
            f"\tvar value {element}",
            f"\taddr := uint32(l.pointer) + {stride}*uint32(index)",
            "\t" + load_statement(list_.element, "mem", "value", "addr", 0),
            "\treturn value",
            "}",
            "",
        ]
