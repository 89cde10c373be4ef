"""Common Generator - generates the provenance header shared by all generated files"""

REGENERATE_COMMAND = "python bin/generate_bindings.py generate-api"


class CommonGenerator:
    """Generates the header every generated Go file starts with"""

    def __init__(self, inputs_str: str, package: str = "wasi"):
        self.inputs_str = inputs_str
        self.package = package

    def generate_header(self, imports: list[str] = ()) -> list[str]:
        """Provenance comment, package clause and import block"""
        lines = [
            "// THIS FILE IS AUTO-GENERATED from the following files:",
            "//",
            f"//   {self.inputs_str}",
            "//",
            "// To regenerate this file execute:",
            "//",
            f"//     {REGENERATE_COMMAND}",
            "//",
            "// Modifications to this file will cause CI to fail, the code generator tool",
            "// must be modified to change this file.",
            "",
            f"package {self.package}",
            "",
        ]
        if imports:
            lines.append("import (")
            for group in self._import_groups(imports):
                lines.extend(f'\t"{path}"' for path in group)
                lines.append("")
            lines.pop()
            lines.append(")")
            lines.append("")
        return lines

    @staticmethod
    def _import_groups(imports) -> list[list[str]]:
        """Standard library imports first, then everything else"""
        std = sorted(i for i in imports if '.' not in i.split('/')[0])
        other = sorted(i for i in imports if '.' in i.split('/')[0])
        return [g for g in (std, other) if g]
