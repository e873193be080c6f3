"""Host-side runtime imported by generated bindings"""

from .adapters import NativeIterator, NativeStream, native_future
from .box import OwnershipToken, TokenState
from .context import RuntimeContext
from .instance import CdllInstance, NativeInstance, find_library
from .marshal import (
    BoolCodec, CallScope, Codec, EnumCodec, FloatCodec, FutureCodec, IntCodec, IterCodec, ObjectCodec,
    OptionCodec, ResultCodec, SequenceCodec, StreamCodec, StringCodec, TupleCodec, Variant, Words,
)
from .notifier import NotifierRegistry, join_wide, split_wide

__all__ = [
    'NativeIterator', 'NativeStream', 'native_future',
    'OwnershipToken', 'TokenState',
    'RuntimeContext',
    'CdllInstance', 'NativeInstance', 'find_library',
    'BoolCodec', 'CallScope', 'Codec', 'EnumCodec', 'FloatCodec', 'FutureCodec', 'IntCodec', 'IterCodec',
    'ObjectCodec', 'OptionCodec', 'ResultCodec', 'SequenceCodec', 'StreamCodec', 'StringCodec',
    'TupleCodec', 'Variant', 'Words',
    'NotifierRegistry', 'join_wide', 'split_wide',
]
