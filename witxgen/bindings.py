"""Renders a loaded witx document into the three generated Go files"""

import logging
from dataclasses import dataclass
from pathlib import Path

from .common_generator import CommonGenerator
from .errors import OutputError
from .module_generator import ModuleGenerator
from .parser import load
from .types import Document
from .types_generator import TypesGenerator

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).parent.parent
WITX_DIR = ROOT_DIR / "samples" / "witx"
API_OUTPUT_DIR = ROOT_DIR / "samples" / "generated"

SNAPSHOT_WITX_FILES = ["typenames.witx", "wasi_snapshot_preview1.witx"]

MODULE_IMPORTS = [
    "errors",
    "reflect",
    "github.com/pgavlin/warp/exec",
    "github.com/pgavlin/warp/wasm",
]
MEMORY_IMPORTS = ["github.com/pgavlin/warp/exec"]


@dataclass
class Generated:
    """Contents of the module, types and stubs files"""
    module: str
    types: str
    stubs: str

    def files(self, module_path, types_path, stubs_path) -> dict[Path, str]:
        return {
            Path(module_path): self.module,
            Path(types_path): self.types,
            Path(stubs_path): self.stubs,
        }


def to_go(doc: Document, inputs_str: str = None, package: str = "wasi") -> Generated:
    """Render every named type and module of ``doc``.

    Nothing is returned unless all three buffers were produced.
    """
    if inputs_str is None:
        inputs_str = ", ".join(doc.sources)
    common = CommonGenerator(inputs_str, package)

    module_lines = common.generate_header(MODULE_IMPORTS)
    stub_lines = common.generate_header()
    for module in doc.modules:
        logger.debug("generating module %s", module.name)
        mod, stubs = ModuleGenerator(module).generate()
        module_lines.extend(mod)
        stub_lines.extend(stubs)

    types_gen = TypesGenerator(doc)
    type_lines = common.generate_header(MEMORY_IMPORTS if types_gen.uses_memory() else ())
    type_lines.extend(types_gen.generate())

    return Generated(
        module="\n".join(module_lines) + "\n",
        types="\n".join(type_lines) + "\n",
        stubs="\n".join(stub_lines) + "\n",
    )


def generate(paths, package: str = "wasi") -> Generated:
    """Load witx files and render them"""
    return to_go(load(paths), package=package)


def write_generated(files: dict[Path, str]) -> list[Path]:
    written = []
    for path, content in files.items():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except OSError as e:
            raise OutputError(f"cannot write {path}: {e.strerror or e}") from e
        written.append(path)
    return written


def snapshot_witx_files() -> list[Path]:
    return [WITX_DIR / name for name in SNAPSHOT_WITX_FILES]


def output_paths(stem) -> tuple[Path, Path, Path]:
    """``<stem>.module.go``, ``<stem>.types.go`` and ``<stem>.stubs.go``"""
    stem = str(stem)
    return (
        Path(f"{stem}.module.go"),
        Path(f"{stem}.types.go"),
        Path(f"{stem}.stubs.go"),
    )


def api_output_paths(output_dir: Path = API_OUTPUT_DIR) -> tuple[Path, Path, Path]:
    return (
        output_dir / "module_definition.go",
        output_dir / "types.go",
        output_dir / "stubs.go",
    )
