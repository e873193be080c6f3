"""Data types for the parsed IDL: type expressions and items"""

from dataclasses import dataclass, field
from enum import Enum as _Enum
from typing import Iterator, Optional, Union


class PrimKind(_Enum):
    """Primitive type keywords"""
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    USIZE = "usize"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    ISIZE = "isize"
    BOOL = "bool"
    F32 = "f32"
    F64 = "f64"
    STRING = "string"


# Fixed-width numeric kinds, the only ones allowed as buffer elements
NUMERIC_KINDS = frozenset({
    PrimKind.U8, PrimKind.U16, PrimKind.U32, PrimKind.U64,
    PrimKind.I8, PrimKind.I16, PrimKind.I32, PrimKind.I64,
    PrimKind.F32, PrimKind.F64,
})

PRIMITIVE_KEYWORDS = {k.value: k for k in PrimKind}


class TypeExpr:
    """Base class of all type expressions"""

    def children(self) -> tuple:
        return ()


@dataclass(frozen=True)
class PrimitiveType(TypeExpr):
    kind: PrimKind


@dataclass(frozen=True)
class BufferType(TypeExpr):
    """Native-owned contiguous region typed by a numeric element kind"""
    elem: PrimKind


@dataclass(frozen=True)
class TupleType(TypeExpr):
    elems: tuple = ()

    def children(self) -> tuple:
        return self.elems


@dataclass(frozen=True)
class WrapperType(TypeExpr):
    inner: TypeExpr

    def children(self) -> tuple:
        return (self.inner,)


@dataclass(frozen=True)
class RefType(WrapperType):
    """Borrowed, non-owning view"""


@dataclass(frozen=True)
class SliceType(WrapperType):
    pass


@dataclass(frozen=True)
class VecType(WrapperType):
    """Owned growable sequence"""


@dataclass(frozen=True)
class OptionType(WrapperType):
    pass


@dataclass(frozen=True)
class ResultType(WrapperType):
    """Success or error. The error payload is always a message string."""


@dataclass(frozen=True)
class IterType(WrapperType):
    """Lazy pull sequence"""


@dataclass(frozen=True)
class FutureType(WrapperType):
    """Single eventual value"""


@dataclass(frozen=True)
class StreamType(WrapperType):
    """Lazy push sequence"""


ASYNC_TYPES = (IterType, FutureType, StreamType)


@dataclass(frozen=True)
class NamedType(TypeExpr):
    """Reference to a declared object or enum. kind is set by the resolver."""
    name: str
    kind: Optional[str] = field(default=None, compare=False)

    @property
    def is_object(self) -> bool:
        return self.kind == "object"

    @property
    def is_enum(self) -> bool:
        return self.kind == "enum"


def walk_type(ty: TypeExpr) -> Iterator[TypeExpr]:
    """Yield ty and every nested type expression, pre-order"""
    yield ty
    for child in ty.children():
        yield from walk_type(child)


def prim(name: str) -> PrimitiveType:
    """Shorthand: prim("u8") -> PrimitiveType(PrimKind.U8)"""
    return PrimitiveType(PRIMITIVE_KEYWORDS[name])


@dataclass(frozen=True)
class Arg:
    """Function argument"""
    name: str
    type: TypeExpr


@dataclass(frozen=True)
class Function:
    """Free function or object member"""
    name: str
    args: tuple = ()
    ret: Optional[TypeExpr] = None
    is_static: bool = False
    docs: tuple = ()
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Object:
    """IDL object: an opaque native handle with member functions"""
    name: str
    methods: tuple = ()
    docs: tuple = ()
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class EnumEntry:
    name: str
    payload: Optional[TypeExpr] = None


@dataclass(frozen=True)
class Enum:
    """IDL enum, entries in declaration order"""
    name: str
    entries: tuple = ()
    docs: tuple = ()
    line: int = field(default=0, compare=False)


Item = Union[Function, Object, Enum]


@dataclass(frozen=True)
class Module:
    """Complete parsed IDL"""
    docs: tuple = ()
    items: tuple = ()

    @property
    def objects(self) -> list[Object]:
        return [i for i in self.items if isinstance(i, Object)]

    @property
    def functions(self) -> list[Function]:
        return [i for i in self.items if isinstance(i, Function)]

    @property
    def enums(self) -> list[Enum]:
        return [i for i in self.items if isinstance(i, Enum)]

    def lookup(self, name: str) -> Optional[Item]:
        return next((i for i in self.items if i.name == name), None)
