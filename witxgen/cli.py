"""Command line interface for the witx binding generator

Usage:
    witxgen generate typenames.witx wasi_snapshot_preview1.witx -o out/wasi
    witxgen generate-api
"""

import argparse
import logging
import sys
import time

from .bindings import (
    api_output_paths, generate, output_paths, snapshot_witx_files, write_generated,
)
from .errors import WitxgenError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="witxgen", description="Generate Go host bindings from witx")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    gen = commands.add_parser("generate", help="Generate bindings for witx files")
    gen.add_argument("inputs", nargs="+", help="Paths to witx files")
    gen.add_argument("--output", "-o", required=True,
                     help="Output stem; writes <stem>.module.go, <stem>.types.go, <stem>.stubs.go")
    gen.add_argument("--package", "-p", default="wasi", help="Go package name")

    api = commands.add_parser("generate-api", help="Regenerate the bundled WASI snapshot bindings")
    api.add_argument("--package", "-p", default="wasi", help="Go package name")
    return parser


def main(argv=None) -> int:
    start_time = time.perf_counter()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    if args.command == "generate":
        inputs = args.inputs
        paths = output_paths(args.output)
    else:
        inputs = snapshot_witx_files()
        paths = api_output_paths()

    try:
        generated = generate(inputs, args.package)
        written = write_generated(generated.files(*paths))
    except WitxgenError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    for path in written:
        print(f"Generated: {path}")

    elapsed = time.perf_counter() - start_time
    print(f"Generation completed in {elapsed*1000:.2f} ms")
    return 0


if __name__ == "__main__":
    sys.exit(main())
