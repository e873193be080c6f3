"""ABI lowering: flat word kinds for IDL types and the native export contract"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from . import config
from .errors import GeneratorError
from .types import (
    ASYNC_TYPES,
    BufferType, Enum, Function, FutureType, IterType, Module, NamedType, Object,
    OptionType, PrimKind, PrimitiveType, RefType, ResultType, SliceType, StreamType,
    TupleType, TypeExpr, VecType, walk_type,
)

logger = logging.getLogger(__name__)

I32 = "i32"
I64 = "i64"
F32 = "f32"
F64 = "f64"

_PRIM_WORDS = {
    PrimKind.U8: I32, PrimKind.U16: I32, PrimKind.U32: I32,
    PrimKind.I8: I32, PrimKind.I16: I32, PrimKind.I32: I32,
    PrimKind.BOOL: I32,
    PrimKind.U64: I64, PrimKind.I64: I64,
    PrimKind.F32: F32, PrimKind.F64: F64,
}

# Element kinds a Vec or slice may carry
SEQUENCE_KINDS = frozenset(_PRIM_WORDS) | {PrimKind.USIZE, PrimKind.ISIZE}


def join(a: str, b: str) -> str:
    """Smallest word kind able to hold the bits of both a and b"""
    if a == b:
        return a
    if {a, b} == {I32, F32}:
        return I32
    return I64


def async_element(ty: TypeExpr) -> Optional[TypeExpr]:
    """Element type of a Future/Iterator/Stream, or None"""
    if isinstance(ty, ASYNC_TYPES):
        return ty.inner
    return None


def fallible_element(ty: TypeExpr) -> TypeExpr:
    """Strip a Result wrapper; the error channel travels separately"""
    return ty.inner if isinstance(ty, ResultType) else ty


@dataclass(frozen=True)
class AbiFunction:
    """One native export: symbol name and flat parameter / result kinds"""
    symbol: str
    params: tuple = ()
    results: tuple = ()
    role: str = "call"  # call | drop | alloc | future_poll | stream_poll | iter_next

    @property
    def multi_value(self) -> bool:
        return len(self.results) > 1


class Abi:
    """Word layout of IDL types for one target word size"""

    def __init__(self, ptr_bits: int = config.DEFAULT_PTR_BITS,
                 slot_word_bits: int = config.DEFAULT_SLOT_WORD_BITS):
        if ptr_bits not in (32, 64):
            raise GeneratorError(f"unsupported pointer width {ptr_bits}")
        if slot_word_bits not in (32, 64):
            raise GeneratorError(f"unsupported slot word width {slot_word_bits}")
        self.ptr_bits = ptr_bits
        self.slot_word_bits = slot_word_bits
        self._expanding = set()

    @property
    def ptr(self) -> str:
        return I32 if self.ptr_bits == 32 else I64

    @property
    def slot_words(self) -> tuple:
        """Word kinds of one notifier slot id"""
        count = config.SLOT_ID_BITS // self.slot_word_bits
        return (I32 if self.slot_word_bits == 32 else I64,) * count

    def flatten(self, ty: TypeExpr, enums: Optional[dict] = None) -> tuple:
        """Flat word kinds of a type crossing the boundary.

        enums maps enum names to their declarations; it is required as soon
        as ty mentions an enum.
        """
        if isinstance(ty, PrimitiveType):
            if ty.kind == PrimKind.STRING:
                return (self.ptr, self.ptr)
            if ty.kind in (PrimKind.USIZE, PrimKind.ISIZE):
                return (self.ptr,)
            return (_PRIM_WORDS[ty.kind],)
        if isinstance(ty, (BufferType, SliceType, VecType)):
            return (self.ptr, self.ptr)
        if isinstance(ty, RefType):
            return self.flatten(ty.inner, enums)
        if isinstance(ty, TupleType):
            return tuple(w for e in ty.elems for w in self.flatten(e, enums))
        if isinstance(ty, OptionType):
            return (I32,) + self.flatten(ty.inner, enums)
        if isinstance(ty, ResultType):
            return self.poll_shape(ty.inner, enums)
        if isinstance(ty, ASYNC_TYPES):
            return (self.ptr,)
        if isinstance(ty, NamedType):
            if ty.kind == "object":
                return (self.ptr,)
            if ty.kind == "enum" and enums and ty.name in enums:
                return (I32,) + self.enum_payload_words(enums[ty.name], enums)
        raise GeneratorError(f"unresolved type {ty!r}")

    def enum_payload_words(self, enum: Enum, enums: Optional[dict] = None) -> tuple:
        """Payload words shared by every entry, joined position by position"""
        if enum.name in self._expanding:
            raise GeneratorError(f"enum `{enum.name}` contains itself and has no finite layout")
        self._expanding.add(enum.name)
        joined = []
        try:
            for entry in enum.entries:
                if entry.payload is None:
                    continue
                for i, word in enumerate(self.flatten(entry.payload, enums)):
                    if i < len(joined):
                        joined[i] = join(joined[i], word)
                    else:
                        joined.append(word)
        finally:
            self._expanding.discard(enum.name)
        return tuple(joined)

    def value_word(self, ty: TypeExpr, enums: Optional[dict] = None) -> str:
        """Kind of the single value word of the poll shape.

        One-word values travel directly, zero-word values as a zero i32, and
        wider values as a pointer to spilled words.
        """
        words = self.flatten(ty, enums)
        if len(words) == 1:
            return words[0]
        if not words:
            return I32
        return self.ptr

    def poll_shape(self, ty: TypeExpr, enums: Optional[dict] = None) -> tuple:
        # (ready, is_error, err_ptr, err_len, err_cap, value)
        return (I32, I32, self.ptr, self.ptr, self.ptr, self.value_word(ty, enums))


class Lowering:
    """Lowers a resolved Module to the flat native export contract"""

    def __init__(self, module: Module, abi: Optional[Abi] = None):
        self.module = module
        self.abi = abi or Abi()
        self.enums = {e.name: e for e in module.enums}

    # -- types ----------------------------------------------------------

    def flatten(self, ty: TypeExpr) -> tuple:
        return self.abi.flatten(ty, self.enums)

    def enum_payload_words(self, enum: Enum) -> tuple:
        return self.abi.enum_payload_words(enum, self.enums)

    def value_word(self, ty: TypeExpr) -> str:
        return self.abi.value_word(ty, self.enums)

    def poll_shape(self, ty: TypeExpr) -> tuple:
        return self.abi.poll_shape(ty, self.enums)

    # -- validation -----------------------------------------------------

    def validate(self, func: Function, where: str):
        for arg in func.args:
            self._validate_type(arg.type, f"{where}({arg.name})", argument=True)
        if func.ret is not None:
            self._validate_return(func.ret, where)

    def _validate_return(self, ty: TypeExpr, where: str):
        element = async_element(ty)
        if element is None:
            if not isinstance(ty, ResultType):
                self._validate_type(ty, where)
            else:
                self._validate_type(ty.inner, where)
            return
        if any(isinstance(t, ASYNC_TYPES) for t in walk_type(element)):
            raise GeneratorError(f"{where}: async wrappers cannot be nested in an async element")
        self._validate_type(fallible_element(element), where)

    def _validate_type(self, ty: TypeExpr, where: str, argument: bool = False):
        for node in walk_type(ty):
            if isinstance(node, ResultType):
                if argument:
                    raise GeneratorError(f"{where}: Result cannot be passed as an argument")
                raise GeneratorError(
                    f"{where}: Result is only supported as the whole return type or an async element"
                )
            if isinstance(node, ASYNC_TYPES):
                raise GeneratorError(f"{where}: async wrappers are only supported as the whole return type")
            if isinstance(node, (VecType, SliceType)):
                inner = node.inner
                if not (isinstance(inner, PrimitiveType) and inner.kind in SEQUENCE_KINDS):
                    raise GeneratorError(
                        f"{where}: sequence elements must be numeric primitives or bool"
                    )

    # -- exports --------------------------------------------------------

    @staticmethod
    def export_name(func: Function, owner: Optional[Object] = None) -> str:
        fqn = f"{owner.name}_{func.name}" if owner is not None else func.name
        return f"{config.EXPORT_PREFIX}{fqn}"

    def lower_function(self, func: Function, owner: Optional[Object] = None) -> list:
        """AbiFunctions for one function: its own export plus async helpers"""
        where = f"{owner.name}.{func.name}" if owner is not None else func.name
        self.validate(func, where)

        symbol = self.export_name(func, owner)
        params = ()
        if owner is not None and not func.is_static:
            params += (self.abi.ptr,)
        for arg in func.args:
            params += self.flatten(arg.type)
        results = () if func.ret is None else self.flatten(func.ret)
        exports = [AbiFunction(symbol, params, results)]

        ret = func.ret
        ptr = self.abi.ptr
        slot = self.abi.slot_words
        if isinstance(ret, FutureType):
            value = fallible_element(ret.inner)
            exports.append(AbiFunction(
                f"{symbol}_future_poll", (ptr,) + slot, self.poll_shape(value), "future_poll"))
            exports.append(AbiFunction(f"{symbol}_future_drop", (ptr,), (), "drop"))
        elif isinstance(ret, StreamType):
            value = fallible_element(ret.inner)
            exports.append(AbiFunction(
                f"{symbol}_stream_poll", (ptr,) + slot + slot, self.poll_shape(value), "stream_poll"))
            exports.append(AbiFunction(f"{symbol}_stream_drop", (ptr,), (), "drop"))
        elif isinstance(ret, IterType):
            exports.append(AbiFunction(
                f"{symbol}_iter_next", (ptr,), (I32,) + self.flatten(ret.inner), "iter_next"))
            exports.append(AbiFunction(f"{symbol}_iter_drop", (ptr,), (), "drop"))
        return exports

    def exports(self) -> list:
        """Whole native export contract of the module, in declaration order"""
        ptr = self.abi.ptr
        out = [
            AbiFunction(config.ALLOCATE_SYMBOL, (ptr, ptr), (ptr,), "alloc"),
            AbiFunction(config.DEALLOCATE_SYMBOL, (ptr, ptr, ptr), (), "alloc"),
        ]
        for item in self.module.items:
            if isinstance(item, Object):
                out.append(AbiFunction(drop_symbol(item.name), (ptr,), (), "drop"))
                for method in item.methods:
                    out.extend(self.lower_function(method, item))
            elif isinstance(item, Function):
                out.extend(self.lower_function(item))
            elif isinstance(item, Enum):
                for entry in item.entries:
                    if entry.payload is not None:
                        self._validate_type(entry.payload, f"{item.name}::{entry.name}")
                self.enum_payload_words(item)
        for symbol, count in Counter(e.symbol for e in out).items():
            if count > 1:
                raise GeneratorError(f"export symbol `{symbol}` is generated {count} times")
        logger.debug(f"lowered module to {len(out)} exports")
        return out


def drop_symbol(object_name: str) -> str:
    return f"{config.EXPORT_PREFIX}{object_name}_drop"
