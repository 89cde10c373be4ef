"""Module Generator - renders module definitions, ABI adapters and implementation stubs"""

import logging

from .abi import call_interface, result_variant, wasm_signature
from .lowering import Lowering
from .type_mapper import TypeMapper
from .types import InterfaceFunc, Module
from .types_generator import doc_lines

logger = logging.getLogger(__name__)


class ModuleGenerator:
    """Generates the host module and the implementation stubs for one module.

    ``module_lines`` go into the module file: the definition, the instance,
    its dispatch table and one ABI adapter per function. ``stub_lines`` go
    into the stubs file: the implementation type with one method per function.
    """

    def __init__(self, module: Module):
        self.module = module
        self.name = TypeMapper.ident_name(module.name)
        self.exported = TypeMapper.export_ident_name(module.name)
        self.lowering = Lowering()

    def generate(self) -> tuple[list[str], list[str]]:
        # reject unsupported signatures before rendering anything
        for func in self.module.funcs:
            result_variant(func)

        module_lines = doc_lines(self.module.docs)
        module_lines.extend(self._definition())
        module_lines.extend(self._instance())

        stub_lines = doc_lines(self.module.docs)
        stub_lines.extend([f"type {self.name}Impl struct {{", "}", ""])

        for func in self.module.funcs:
            stub_lines.extend(self.func_stub(func))
            module_lines.extend(self.func_adapter(func))
        return module_lines, stub_lines

    def _definition(self) -> list[str]:
        name = self.name
        lines = [
            f"type {name}Definition struct {{",
            f"\timpl *{name}Impl",
            "}",
            "",
            f"func New{self.exported}Definition(impl *{name}Impl) {name}Definition {{",
            f"\treturn {name}Definition{{impl: impl}}",
            "}",
            "",
            f"func (def {name}Definition) GetImports() []wasm.ImportEntry {{",
            "\treturn []wasm.ImportEntry{",
        ]
        memory = self.module.memory_import()
        if memory is not None:
            lines.append(f'\t\t{{ModuleName: "", FieldName: "{memory.name}", Type: wasm.MemoryImport{{}}}},')
        lines.extend([
            "\t}",
            "}",
            "",
            f"func (def {name}Definition) Allocate(name string) (exec.AllocatedModule, error) {{",
            f"\tm := allocated{self.exported}{{",
            f"\t\t{name}: &{name}{{name: name, impl: def.impl}},",
            "\t}",
            "\tm.functions = m.functionTable()",
            "\treturn &m, nil",
            "}",
            "",
        ])
        return lines

    def _instance(self) -> list[str]:
        name = self.name
        memory = self.module.memory_import()
        lines = [
            f"type {name}Function struct {{",
            "\tindex uint32",
            "\tfn    interface{}",
            "}",
            "",
            f"type {name} struct {{",
            "\tname      string",
            f"\timpl      *{name}Impl",
            f"\tfunctions map[string]{name}Function",
        ]
        if memory is not None:
            lines.extend(doc_lines(memory.docs, "\t"))
            lines.append(f"\t{TypeMapper.ident_name(memory.name)} *exec.Memory")
        lines.extend([
            "}",
            "",
            f"type allocated{self.exported} struct {{",
            f"\t*{name}",
            "}",
            "",
            f"func (m *allocated{self.exported}) Instantiate(imports exec.ImportResolver) (mod exec.Module, err error) {{",
        ])
        if memory is not None:
            lines.extend([
                f'\tm.{TypeMapper.ident_name(memory.name)}, err = imports.ResolveMemory("", "{memory.name}", wasm.Memory{{}})',
                "\tif err != nil {",
                "\t\treturn nil, err",
                "\t}",
            ])
        lines.extend([
            f"\treturn m.{name}, nil",
            "}",
            "",
            f"func (m *{name}) Name() string {{",
            "\treturn m.name",
            "}",
            "",
            f"func (m *{name}) GetTable(name string) (*exec.Table, error) {{",
            '\treturn nil, errors.New("unknown table")',
            "}",
            "",
            f"func (m *{name}) GetMemory(name string) (*exec.Memory, error) {{",
            '\treturn nil, errors.New("unknown memory")',
            "}",
            "",
            f"func (m *{name}) GetGlobal(name string) (*exec.Global, error) {{",
            '\treturn nil, errors.New("unknown global")',
            "}",
            "",
            f"func (m *{name}) GetFunction(name string) (exec.Function, error) {{",
            "\tif f, ok := m.functions[name]; ok {",
            "\t\treturn exec.NewHostFunction(m, f.index, reflect.ValueOf(f.fn)), nil",
            "\t}",
            '\treturn nil, errors.New("unknown function")',
            "}",
            "",
        ])
        lines.extend(self._function_table())
        lines.append(f"func (m *{name}) mem() *exec.Memory {{")
        if memory is not None:
            lines.append(f"\treturn m.{TypeMapper.ident_name(memory.name)}")
        else:
            lines.append("\treturn nil")
        lines.extend(["}", ""])
        return lines

    def _function_table(self) -> list[str]:
        """Dispatch table from declared function names to their adapters"""
        name = self.name
        lines = [
            f"func (m *{name}) functionTable() map[string]{name}Function {{",
            f"\treturn map[string]{name}Function{{",
        ]
        for index, func in enumerate(self.module.funcs):
            adapter = self.adapter_name(func)
            lines.append(f'\t\t"{func.name}": {{{index}, m.{adapter}}},')
        lines.extend(["\t}", "}", ""])
        return lines

    @staticmethod
    def adapter_name(func: InterfaceFunc) -> str:
        return f"{TypeMapper.PREFIX}{TypeMapper.export_ident_name(func.name)}"

    def stub_returns(self, func: InterfaceFunc) -> list[str]:
        """Named results of the implementation method"""
        variant = result_variant(func)
        if variant is None:
            return []
        result = func.results[0].tref
        if variant.is_enum():
            return [f"rv {TypeMapper.typeref_name(result)}"]

        ok, err = variant.as_expected()
        returns = []
        if ok is not None:
            tuple_ = TypeMapper.as_tuple(ok)
            if tuple_ is not None:
                returns.extend(
                    f"rv{TypeMapper.ident_name(m.name)} {TypeMapper.typeref_name(m.tref)}"
                    for m in tuple_.members
                )
            else:
                returns.append(f"rv {TypeMapper.typeref_name(ok)}")
        returns.append(f"err {TypeMapper.typeref_name(err)}")
        return returns

    def func_stub(self, func: InterfaceFunc) -> list[str]:
        params = ", ".join(
            f"p{TypeMapper.ident_name(p.name)} {TypeMapper.typeref_name(p.tref)}"
            for p in func.params
        )
        returns = self.stub_returns(func)
        signature = f"func (m *{self.name}Impl) {TypeMapper.ident_name(func.name)}({params})"
        if returns:
            signature += f" ({', '.join(returns)})"

        lines = doc_lines(func.docs)
        lines.extend([f"{signature} {{", "\treturn", "}", ""])
        return lines

    def func_adapter(self, func: InterfaceFunc) -> list[str]:
        """ABI adapter taking and returning machine words only"""
        logger.debug("generating adapter for %s.%s", self.module.name, func.name)
        sig = wasm_signature(func)
        params = ", ".join(
            f"p{i} {TypeMapper.wasm_type_name(t)}" for i, t in enumerate(sig.params)
        )
        signature = f"func (m *{self.name}) {self.adapter_name(func)}({params})"
        if sig.results:
            signature += f" {TypeMapper.wasm_type_name(sig.results[0])}"

        body = self.lowering.lower(call_interface(self.module.name, func))

        lines = doc_lines(func.docs)
        lines.append(f"{signature} {{")
        lines.extend(f"\t{line}" for line in body)
        lines.extend(["}", ""])
        return lines
