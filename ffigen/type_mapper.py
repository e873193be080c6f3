"""Type mapping from IDL type expressions to IDL text, Python hints and C words"""

import keyword

from .types import (
    BufferType, FutureType, IterType, NamedType, OptionType, PrimKind, PrimitiveType,
    RefType, ResultType, SliceType, StreamType, TupleType, TypeExpr, VecType,
)


class TypeMapper:
    """Maps IDL type expressions to their textual forms"""

    # Parametric forms as written in IDL source
    IDL_WRAPPERS = {
        VecType: 'Vec',
        OptionType: 'Option',
        ResultType: 'Result',
        IterType: 'Iterator',
        FutureType: 'Future',
        StreamType: 'Stream',
    }

    # Python type hints for primitives
    PYTHON_TYPES = {
        PrimKind.BOOL: 'bool',
        PrimKind.F32: 'float',
        PrimKind.F64: 'float',
        PrimKind.STRING: 'str',
    }

    # Module-level names of generated Python bindings
    PYTHON_GLOBALS = frozenset({
        'annotations', 'array', 'os',
        'AsyncIterator', 'Iterator', 'List', 'Optional', 'Tuple',
        'LIBRARY', 'PTR_BITS', 'SLOT_WORD_BITS', 'SIGNATURES', 'Api',
        'BoolCodec', 'CallScope', 'CdllInstance', 'EnumCodec', 'FloatCodec',
        'FutureCodec', 'IntCodec', 'IterCodec', 'ObjectCodec', 'OptionCodec',
        'OwnershipToken', 'ResultCodec', 'RuntimeContext', 'SequenceCodec',
        'StreamCodec', 'StringCodec', 'TupleCodec', 'Variant',
    })

    # C types of ABI words
    C_WORDS = {
        'i32': 'int32_t',
        'i64': 'int64_t',
        'f32': 'float',
        'f64': 'double',
    }

    @classmethod
    def to_idl(cls, ty: TypeExpr) -> str:
        """Convert a type expression back to IDL surface syntax"""
        if isinstance(ty, PrimitiveType):
            return ty.kind.value
        if isinstance(ty, NamedType):
            return ty.name
        if isinstance(ty, BufferType):
            return f'buffer<{ty.elem.value}>'
        if isinstance(ty, TupleType):
            if len(ty.elems) == 1:
                return f'({cls.to_idl(ty.elems[0])},)'
            return f'({", ".join(cls.to_idl(e) for e in ty.elems)})'
        if isinstance(ty, RefType):
            return f'&{cls.to_idl(ty.inner)}'
        if isinstance(ty, SliceType):
            return f'[{cls.to_idl(ty.inner)}]'
        return f'{cls.IDL_WRAPPERS[type(ty)]}<{cls.to_idl(ty.inner)}>'

    @classmethod
    def to_python(cls, ty: TypeExpr) -> str:
        """Convert a type expression to a Python type hint"""
        if isinstance(ty, PrimitiveType):
            return cls.PYTHON_TYPES.get(ty.kind, 'int')
        if isinstance(ty, NamedType):
            return cls.py_name(ty.name)
        if isinstance(ty, BufferType):
            return 'array.array'
        if isinstance(ty, TupleType):
            if not ty.elems:
                return 'Tuple[()]'
            return f'Tuple[{", ".join(cls.to_python(e) for e in ty.elems)}]'
        if isinstance(ty, (RefType, ResultType)):
            # errors surface as InteropError, not as a value
            return cls.to_python(ty.inner)
        if isinstance(ty, (SliceType, VecType)):
            return f'List[{cls.to_python(ty.inner)}]'
        if isinstance(ty, OptionType):
            return f'Optional[{cls.to_python(ty.inner)}]'
        if isinstance(ty, IterType):
            return f'Iterator[{cls.to_python(ty.inner)}]'
        if isinstance(ty, StreamType):
            return f'AsyncIterator[{cls.to_python(ty.inner)}]'
        if isinstance(ty, FutureType):
            return cls.to_python(ty.inner)
        raise TypeError(f'unknown type expression {ty!r}')

    @classmethod
    def to_python_return(cls, ty) -> str:
        return 'None' if ty is None else cls.to_python(ty)

    @classmethod
    def to_c(cls, word: str) -> str:
        """Convert an ABI word kind to its C type"""
        return cls.C_WORDS[word]

    @classmethod
    def py_name(cls, name: str) -> str:
        """Python class name of an IDL object or enum"""
        while keyword.iskeyword(name) or name in cls.PYTHON_GLOBALS:
            name += '_'
        return name
