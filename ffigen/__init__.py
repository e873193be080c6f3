"""
IDL binding generator and host runtime

Parses an IDL of objects, functions and enums and generates:
  1. Python bindings that drive a numbers-only native module through
     ffigen.runtime (ownership tokens, notifier slots, async adapters)
  2. The C header of the native export contract
"""

from .types import (
    PrimKind, PrimitiveType, BufferType, TupleType, RefType, SliceType, VecType, OptionType,
    ResultType, IterType, FutureType, StreamType, NamedType, Arg, Function, Object,
    EnumEntry, Enum, Module,
)
from .errors import (
    FfiGenError, IdlSyntaxError, ResolutionError, ResolutionErrorKind, ResolutionFailed,
    GeneratorError, OwnershipError, UseAfterFree, UseAfterMove, DoubleFree, InteropError,
    DecodeError,
)
from .parser import IDLParser, parse_module, parse_file
from .resolver import Resolver, resolve_module
from .abi import Abi, AbiFunction, Lowering
from .type_mapper import TypeMapper
from .common_generator import CommonGenerator
from .c_api_generator import CAPIGenerator
from .python_generator import PythonGenerator

__all__ = [
    'PrimKind', 'PrimitiveType', 'BufferType', 'TupleType', 'RefType', 'SliceType', 'VecType',
    'OptionType', 'ResultType', 'IterType', 'FutureType', 'StreamType', 'NamedType',
    'Arg', 'Function', 'Object', 'EnumEntry', 'Enum', 'Module',
    'FfiGenError', 'IdlSyntaxError', 'ResolutionError', 'ResolutionErrorKind', 'ResolutionFailed',
    'GeneratorError', 'OwnershipError', 'UseAfterFree', 'UseAfterMove', 'DoubleFree',
    'InteropError', 'DecodeError',
    'IDLParser', 'parse_module', 'parse_file',
    'Resolver', 'resolve_module',
    'Abi', 'AbiFunction', 'Lowering',
    'TypeMapper', 'CommonGenerator', 'CAPIGenerator', 'PythonGenerator',
]
