"""Native instances: the flat, numbers-only surface of a compiled module"""

import abc
import ctypes
import logging
import os
import sys
from ctypes import CFUNCTYPE, Structure, c_double, c_float, c_int32, c_int64, c_uint64
from typing import Callable, Optional

from .. import config
from ..errors import DecodeError

logger = logging.getLogger(__name__)

_CTYPES = {
    "i32": c_int32,
    "i64": c_int64,
    "f32": c_float,
    "f64": c_double,
}

NOTIFIER_FN = CFUNCTYPE(None, c_uint64)


class NativeInstance(abc.ABC):
    """Exports plus linear memory of one loaded native module"""

    @abc.abstractmethod
    def call(self, symbol: str, *words):
        """Invoke an export. Returns None, a number, or a tuple of numbers."""

    @abc.abstractmethod
    def read(self, ptr: int, size: int) -> bytes:
        pass

    @abc.abstractmethod
    def write(self, ptr: int, data: bytes):
        pass

    @abc.abstractmethod
    def install_trampoline(self, callback: Callable[[int], None]):
        """Route native wake-ups for a slot id to callback"""


def library_filename(name: str) -> str:
    if sys.platform == "win32":
        return f"{name}.dll"
    if sys.platform == "darwin":
        return f"lib{name}.dylib"
    return f"lib{name}.so"


def find_library(name: str, base_dir: Optional[str] = None) -> str:
    """Locate a shared library by name or path.

    Looks next to base_dir (the generated bindings), in the configured search
    paths below it and below the working directory, and finally falls back to
    the bare file name for the system loader.
    """
    if os.path.sep in name or os.path.exists(name):
        return name
    lib_name = library_filename(name)
    roots = [base_dir] if base_dir else []
    roots.append(os.getcwd())
    for root in roots:
        for sub in config.LIBRARY_SEARCH_PATHS:
            lib_path = os.path.join(root, sub, lib_name)
            if os.path.exists(lib_path):
                return lib_path
    return lib_name


class CdllInstance(NativeInstance):
    """Native module loaded in-process with ctypes.

    Process memory stands in for linear memory: pointers are plain
    addresses, so ptr_bits must be at least the host pointer width.
    signatures maps each export to (param kinds, result kinds).
    """

    def __init__(self, name: str, signatures: dict, base_dir: Optional[str] = None,
                 ptr_bits: int = config.HOST_PTR_BITS):
        if ptr_bits < config.HOST_PTR_BITS:
            raise DecodeError(
                f"bindings use {ptr_bits}-bit pointers but in-process libraries need "
                f"{config.HOST_PTR_BITS}; regenerate them with --ptr-bits {config.HOST_PTR_BITS}"
            )
        self.ptr_bits = ptr_bits
        self.path = find_library(name, base_dir)
        self.lib = ctypes.CDLL(self.path)
        self.signatures = signatures
        self._functions = {}
        self._trampoline = None
        logger.debug(f"loaded native library {self.path}")

    def _function(self, symbol: str):
        fn = self._functions.get(symbol)
        if fn is not None:
            return fn
        params, results = self.signatures[symbol]
        fn = getattr(self.lib, symbol)
        fn.argtypes = [_CTYPES[k] for k in params]
        if not results:
            fn.restype = None
        elif len(results) == 1:
            fn.restype = _CTYPES[results[0]]
        else:
            fn.restype = _result_struct(symbol, results)
        self._functions[symbol] = fn
        return fn

    def call(self, symbol: str, *words):
        result = self._function(symbol)(*words)
        if isinstance(result, Structure):
            return tuple(getattr(result, name) for name, _ in result._fields_)
        return result

    def read(self, ptr: int, size: int) -> bytes:
        return ctypes.string_at(ptr, size)

    def write(self, ptr: int, data: bytes):
        ctypes.memmove(ptr, data, len(data))

    def install_trampoline(self, callback: Callable[[int], None]):
        try:
            setter = getattr(self.lib, config.SET_TRAMPOLINE_SYMBOL)
        except AttributeError:
            logger.debug(f"{self.path} exports no {config.SET_TRAMPOLINE_SYMBOL}; wake-ups disabled")
            return
        self._trampoline = NOTIFIER_FN(callback)  # Prevent GC
        setter.argtypes = [NOTIFIER_FN]
        setter.restype = None
        setter(self._trampoline)


def _result_struct(symbol: str, kinds) -> type:
    fields = [(f"w{i}", _CTYPES[k]) for i, k in enumerate(kinds)]
    return type(f"{symbol}_result", (Structure,), {"_fields_": fields})
