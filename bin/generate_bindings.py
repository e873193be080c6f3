#!/usr/bin/env python3
"""
IDL binding generator

Parses an IDL file (objects, functions, enums) and generates:
  1. Python bindings driven by ffigen.runtime
  2. The C header of the native export contract (--c-api)

Usage:
    python generate_bindings.py input.idl --output-dir generated/
    python generate_bindings.py input.idl --output-dir generated/ --c-api --ptr-bits 64
"""

import sys
from pathlib import Path

# Add parent directory to path so the ffigen package can be found
sys.path.insert(0, str(Path(__file__).parent.parent))

from ffigen.cli import main


if __name__ == "__main__":
    sys.exit(main())
