#!/usr/bin/env python3
"""
witx Binding Generator

Reads witx interface definitions and generates Go host bindings for the
warp WebAssembly runtime:
  1. Module definition with ABI adapters and a dispatch table
  2. Type declarations with linear memory store/load routines
  3. Implementation stubs

Usage:
    python bin/generate_bindings.py generate input.witx -o generated/wasi
    python bin/generate_bindings.py generate-api
"""

import sys
from pathlib import Path

# Add parent directory to path so witxgen package can be found
sys.path.insert(0, str(Path(__file__).parent.parent))

from witxgen.cli import main


if __name__ == "__main__":
    sys.exit(main())
