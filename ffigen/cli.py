"""
Command-line entry point: IDL file -> Python bindings and C header

Usage:
    ffigen api.idl --output-dir generated/
    ffigen api.idl -o generated/ --python-output bindings/ --ptr-bits 64
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from . import config
from .abi import Abi
from .c_api_generator import CAPIGenerator
from .errors import FfiGenError, IdlSyntaxError, ResolutionFailed, use_color
from .parser import IDLParser
from .python_generator import PythonGenerator
from .resolver import Resolver

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate bindings from IDL")
    parser.add_argument("idl_file", nargs="?", help="Path to IDL file (positional)")
    parser.add_argument("--idl", help="Path to IDL file (alternative)")
    parser.add_argument("--output-dir", "-o", default=config.DEFAULT_OUTPUT_DIR, help="Output directory")
    parser.add_argument("--namespace", "-n", default="", help="Library / module name (default: IDL file stem)")
    parser.add_argument("--python", action="store_true", help="Generate Python bindings (default when nothing is selected)")
    parser.add_argument("--python-output", default="", help="Python bindings output directory")
    parser.add_argument("--c-api", action="store_true", help="Generate the C header of the native contract")
    parser.add_argument("--api-macro", default="", help="API export macro name")
    parser.add_argument("--ptr-bits", type=int, choices=(32, 64), default=config.HOST_PTR_BITS,
                        help="Pointer width of the native module (default: host pointer width)")
    parser.add_argument("--slot-word-bits", type=int, choices=(32, 64), default=config.DEFAULT_SLOT_WORD_BITS,
                        help="Width of the words notifier slot ids are split into")
    parser.add_argument("--log-level", default=os.environ.get(config.LOG_LEVEL_ENV, config.DEFAULT_LOG_LEVEL),
                        help=f"Logging level (default: ${config.LOG_LEVEL_ENV} or {config.DEFAULT_LOG_LEVEL})")
    return parser


def main(argv=None) -> int:
    start_time = time.perf_counter()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    # Support both positional and --idl argument
    idl_file = args.idl_file or args.idl
    if not idl_file:
        parser.error("IDL file is required (positional or --idl)")

    idl_path = Path(idl_file)
    namespace = args.namespace or idl_path.stem.replace("-", "_")
    try:
        source = idl_path.read_text(encoding=config.DEFAULT_FILE_ENCODING)
    except OSError as e:
        print(f"error: cannot read {idl_path}: {e.strerror}", file=sys.stderr)
        return 1

    color = use_color() and sys.stderr.isatty()
    try:
        module = IDLParser(source, str(idl_path)).parse()
        module = Resolver(module, str(idl_path)).resolve()
        abi = Abi(args.ptr_bits, args.slot_word_bits)

        files = {}
        generate_python = args.python or args.python_output or not args.c_api
        if generate_python:
            python_output = Path(args.python_output) if args.python_output else Path(args.output_dir)
            files[python_output / f"{namespace}.py"] = PythonGenerator(module, namespace, abi).generate()
        if args.c_api:
            c_api = CAPIGenerator(module, namespace, args.api_macro, abi)
            files[Path(args.output_dir) / f"{namespace}_ffi.h"] = c_api.generate_header()
    except (IdlSyntaxError, ResolutionFailed) as e:
        print(e.render(source, color=color), file=sys.stderr)
        return 1
    except FfiGenError as e:
        logger.debug("generation failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1

    for path, content in files.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding=config.DEFAULT_FILE_ENCODING)
        print(f"Generated: {path}")

    elapsed = time.perf_counter() - start_time
    print(f"Generation completed in {elapsed*1000:.2f} ms")
    return 0
