"""Run-time marshalling of host values to and from flat ABI words.

Every codec knows the flat word layout of one IDL type:

* ``lower(ctx, value, out, scope)`` appends the words for value to out and
  records on a CallScope what must happen to host memory and handles around
  the call.
* ``lift(ctx, words)`` consumes words from a Words cursor and builds the
  host value, freeing native memory the host became responsible for.

At run time a word is either an integer or a float; ``kinds`` only records
which, since integer widths are restored by the codec that reads the word.
"""

import array
import struct
from dataclasses import dataclass
from functools import partial
from typing import Any, ClassVar

from .. import config
from ..errors import DecodeError, InteropError, UseAfterMove
from .adapters import NativeIterator, NativeStream, native_future
from .box import OwnershipToken
from .notifier import split_wide

INT = "int"
F32 = "f32"
F64 = "f64"

_INT_BITS = {
    "u8": 8, "u16": 16, "u32": 32, "u64": 64,
    "i8": 8, "i16": 16, "i32": 32, "i64": 64,
}

# struct / array format codes of sequence elements
_STRUCT_FORMATS = {
    "u8": "B", "u16": "H", "u32": "I", "u64": "Q",
    "i8": "b", "i16": "h", "i32": "i", "i64": "q",
    "f32": "f", "f64": "d", "bool": "?",
}
_ARRAY_CODES = {
    "u8": "B", "u16": "H", "u32": "I", "u64": "Q",
    "i8": "b", "i16": "h", "i32": "i", "i64": "q",
    "f32": "f", "f64": "d",
}


def _unsigned(word, bits: int) -> int:
    return int(word) & ((1 << bits) - 1)


def _signed(word, bits: int) -> int:
    value = _unsigned(word, bits)
    return value - (1 << bits) if value >= 1 << (bits - 1) else value


def _join(a: str, b: str) -> str:
    return a if a == b else INT


def _to_bits(word, kind: str) -> int:
    """Bit pattern of a word stored in an integer slot"""
    if kind == F32:
        return struct.unpack("<I", struct.pack("<f", word))[0]
    if kind == F64:
        return struct.unpack("<Q", struct.pack("<d", word))[0]
    return int(word)


def _from_bits(word, kind: str):
    """Inverse of _to_bits for a word read back from an integer slot"""
    if kind == F32:
        return struct.unpack("<f", struct.pack("<I", _unsigned(word, 32)))[0]
    if kind == F64:
        return struct.unpack("<d", struct.pack("<Q", _unsigned(word, 64)))[0]
    return int(word)


class Words:
    """Cursor over the flat words of a native result"""

    def __init__(self, values=()):
        self.values = tuple(values)
        self.pos = 0

    def take(self):
        if self.pos >= len(self.values):
            raise DecodeError(f"native result ended after {len(self.values)} words")
        value = self.values[self.pos]
        self.pos += 1
        return value

    def take_many(self, count: int) -> tuple:
        return tuple(self.take() for _ in range(count))

    @property
    def remaining(self) -> int:
        return len(self.values) - self.pos


class CallScope(list):
    """Deferred work of one native call.

    The list itself holds frees of borrowed scratch memory, run newest first
    once the call is over whatever happened. Ownership moves are held back
    until every argument has converted and run just before the call; if the
    call is never made, owned allocations are freed instead and no token
    changes state.
    """

    def __init__(self, ctx):
        super().__init__()
        self.ctx = ctx
        self.moves = []  # tokens to move_out() at the call
        self.undo = []  # frees of owned allocations if the call is never made
        self.called = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.called:
            self.moves.clear()
            while self.undo:
                self.undo.pop()()
        self.ctx.release(self)
        return False

    def move(self, token: OwnershipToken) -> int:
        """Handle of a token whose ownership passes to the callee"""
        handle = token.borrow()
        if any(t is token for t in self.moves):
            raise UseAfterMove(f"handle {handle:#x} is passed by value more than once")
        self.moves.append(token)
        return handle

    def owned(self, ptr: int, size: int, align: int):
        """Register an allocation the callee takes over"""
        self.undo.append(partial(self.ctx.deallocate, ptr, size, align))

    def call(self, symbol: str, words) -> tuple:
        for token in self.moves:
            token.move_out()
        self.moves.clear()
        self.undo.clear()
        self.called = True
        return self.ctx.call(symbol, *words)


class Codec:
    kinds: tuple = ()

    @property
    def width(self) -> int:
        return len(self.kinds)

    def zeros(self) -> list:
        return [0.0 if k != INT else 0 for k in self.kinds]

    def lower(self, ctx, value, out: list, scope: CallScope):
        raise TypeError(f"{type(self).__name__} values cannot be passed to native code")

    def lift(self, ctx, words: Words):
        raise TypeError(f"{type(self).__name__} values cannot be returned from native code")

    def decode(self, ctx, words) -> Any:
        """Lift a complete native result"""
        cursor = Words(words)
        value = self.lift(ctx, cursor)
        if cursor.remaining:
            raise DecodeError(f"native result has {cursor.remaining} unexpected trailing words")
        return value


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

class IntCodec(Codec):
    kinds = (INT,)

    def __init__(self, kind: str):
        self.kind = kind
        self.signed = kind[0] == "i"

    def _bits(self, ctx) -> int:
        return _INT_BITS.get(self.kind) or ctx.ptr_bits

    def lower(self, ctx, value, out, scope):
        bits = self._bits(ctx)
        low, high = (-(1 << (bits - 1)), (1 << (bits - 1)) - 1) if self.signed else (0, (1 << bits) - 1)
        value = int(value)
        if not low <= value <= high:
            raise OverflowError(f"{value} does not fit in {self.kind}")
        out.append(value)

    def lift(self, ctx, words):
        bits = self._bits(ctx)
        word = words.take()
        return _signed(word, bits) if self.signed else _unsigned(word, bits)


class FloatCodec(Codec):
    def __init__(self, kind: str):
        self.kind = kind
        self.kinds = (F32 if kind == "f32" else F64,)

    def lower(self, ctx, value, out, scope):
        out.append(float(value))

    def lift(self, ctx, words):
        return float(words.take())


class BoolCodec(Codec):
    kinds = (INT,)

    def lower(self, ctx, value, out, scope):
        out.append(1 if value else 0)

    def lift(self, ctx, words):
        return _unsigned(words.take(), 32) != 0


class StringCodec(Codec):
    """UTF-8 text as (ptr, len).

    Owned strings belong to the receiver: arguments are freed by the callee
    and results by the host after decoding. Borrowed (&string) arguments are
    freed by the host after the call; borrowed results are never freed.
    """
    kinds = (INT, INT)

    def __init__(self, owned: bool = True):
        self.owned = owned

    def lower(self, ctx, value, out, scope):
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        ptr, length = ctx.write_string(value)
        if length and self.owned:
            scope.owned(ptr, length, config.STRING_ALIGN)
        elif length:
            scope.append(partial(ctx.deallocate, ptr, length, config.STRING_ALIGN))
        out.extend((ptr, length))

    def lift(self, ctx, words):
        ptr = _unsigned(words.take(), ctx.ptr_bits)
        length = _unsigned(words.take(), ctx.ptr_bits)
        if not length:
            return ""
        if not self.owned:
            return ctx.read_string(ptr, length)
        data = ctx.read(ptr, length)
        ctx.deallocate(ptr, length, config.STRING_ALIGN)
        return _decode_utf8(data, ptr)


def _decode_utf8(data: bytes, ptr: int) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"malformed UTF-8 in native string at {ptr:#x}: {e.reason}") from e


class SequenceCodec(Codec):
    """Numeric elements packed little-endian at (ptr, count).

    container is "list" for Vec and slices and "array" for buffers.
    """
    kinds = (INT, INT)

    def __init__(self, elem: str, owned: bool = True, container: str = "list"):
        self.elem = elem
        self.owned = owned
        self.container = container

    def _format(self, ctx) -> str:
        if self.elem in ("usize", "isize"):
            code = "I" if ctx.ptr_bits == 32 else "Q"
            return code.lower() if self.elem == "isize" else code
        return _STRUCT_FORMATS[self.elem]

    def _build(self, values):
        if self.container == "array":
            return array.array(_ARRAY_CODES[self.elem], values)
        return list(values)

    def lower(self, ctx, value, out, scope):
        values = list(value)
        if not values:
            out.extend((0, 0))
            return
        fmt = self._format(ctx)
        size = struct.calcsize(f"<{fmt}")
        data = struct.pack(f"<{len(values)}{fmt}", *values)
        ptr = ctx.allocate(len(data), size)
        ctx.write(ptr, data)
        if self.owned:
            scope.owned(ptr, len(data), size)
        else:
            scope.append(partial(ctx.deallocate, ptr, len(data), size))
        out.extend((ptr, len(values)))

    def lift(self, ctx, words):
        ptr = _unsigned(words.take(), ctx.ptr_bits)
        count = _unsigned(words.take(), ctx.ptr_bits)
        if not count:
            return self._build(())
        fmt = self._format(ctx)
        size = struct.calcsize(f"<{fmt}")
        data = ctx.read(ptr, count * size)
        if self.owned:
            ctx.deallocate(ptr, count * size, size)
        return self._build(struct.unpack(f"<{count}{fmt}", data))


# ---------------------------------------------------------------------------
# Composites
# ---------------------------------------------------------------------------

class TupleCodec(Codec):
    def __init__(self, *elems: Codec):
        self.elems = elems
        self.kinds = tuple(k for e in elems for k in e.kinds)

    def lower(self, ctx, value, out, scope):
        value = tuple(value)
        if len(value) != len(self.elems):
            raise ValueError(f"expected a {len(self.elems)}-tuple, got {len(value)} elements")
        for codec, item in zip(self.elems, value):
            codec.lower(ctx, item, out, scope)

    def lift(self, ctx, words):
        return tuple(codec.lift(ctx, words) for codec in self.elems)


class OptionCodec(Codec):
    def __init__(self, inner: Codec):
        self.inner = inner
        self.kinds = (INT,) + inner.kinds

    def lower(self, ctx, value, out, scope):
        if value is None:
            out.append(0)
            out.extend(self.inner.zeros())
        else:
            out.append(1)
            self.inner.lower(ctx, value, out, scope)

    def lift_present(self, ctx, words) -> tuple:
        """(present, value), telling an absent value from a present None"""
        tag = _unsigned(words.take(), 32)
        if tag == 0:
            words.take_many(self.inner.width)
            return False, None
        if tag != 1:
            raise DecodeError(f"invalid option discriminant {tag}")
        return True, self.inner.lift(ctx, words)

    def lift(self, ctx, words):
        return self.lift_present(ctx, words)[1]


def _unspill(kind: str, chunk: bytes):
    if kind == F32:
        return struct.unpack("<f", chunk[:4])[0]
    if kind == F64:
        return struct.unpack("<d", chunk)[0]
    return struct.unpack("<q", chunk)[0]


def lift_value_word(ctx, codec: Codec, word):
    """Decode the single value word of the poll shape.

    Wider values arrive spilled: the word points at one 8-byte slot per
    flat word, which the host frees after reading.
    """
    if codec.width == 0:
        return codec.lift(ctx, Words())
    if codec.width == 1:
        return codec.lift(ctx, Words((word,)))
    ptr = _unsigned(word, ctx.ptr_bits)
    size = codec.width * config.SPILL_WORD_SIZE
    data = ctx.read(ptr, size)
    ctx.deallocate(ptr, size, config.SPILL_WORD_SIZE)
    step = config.SPILL_WORD_SIZE
    values = [_unspill(kind, data[i * step:(i + 1) * step]) for i, kind in enumerate(codec.kinds)]
    return codec.lift(ctx, Words(values))


def take_error(ctx, err_ptr, err_len, err_cap) -> str:
    """Read and free a native error message"""
    length = _unsigned(err_len, ctx.ptr_bits)
    if not length:
        return ""
    ptr = _unsigned(err_ptr, ctx.ptr_bits)
    data = ctx.read(ptr, length)
    ctx.deallocate(ptr, _unsigned(err_cap, ctx.ptr_bits), config.STRING_ALIGN)
    return _decode_utf8(data, ptr)


def lift_poll(ctx, words: tuple, value: Codec) -> tuple:
    """Decode (ready, is_error, err_ptr, err_len, err_cap, value) -> (ready, value)"""
    if len(words) != config.POLL_TUPLE_WIDTH:
        raise DecodeError(f"poll result has {len(words)} words, expected {config.POLL_TUPLE_WIDTH}")
    ready, is_error, err_ptr, err_len, err_cap, word = words
    if not ready:
        return False, None
    if is_error:
        raise InteropError(take_error(ctx, err_ptr, err_len, err_cap))
    return True, lift_value_word(ctx, value, word)


class ResultCodec(Codec):
    """Synchronous Result<T>: the poll shape with ready fixed at 1"""

    def __init__(self, inner: Codec):
        self.inner = inner
        value_kind = inner.kinds[0] if inner.width == 1 else INT
        self.kinds = (INT, INT, INT, INT, INT, value_kind)

    def lift(self, ctx, words):
        shape = words.take_many(config.POLL_TUPLE_WIDTH)
        if not shape[0]:
            raise DecodeError("synchronous result reported as pending")
        return lift_poll(ctx, shape, self.inner)[1]


# ---------------------------------------------------------------------------
# Objects and enums
# ---------------------------------------------------------------------------

class ObjectCodec(Codec):
    """Object handle. Owned handles move in and are adopted on the way out."""
    kinds = (INT,)

    def __init__(self, cls, drop_symbol: str, owned: bool = True):
        self.cls = cls
        self.drop_symbol = drop_symbol
        self.owned = owned

    def lower(self, ctx, value, out, scope):
        if not isinstance(value, self.cls):
            raise TypeError(f"expected {self.cls.__name__}, got {type(value).__name__}")
        token = value._token
        out.append(scope.move(token) if self.owned else token.borrow())

    def lift(self, ctx, words):
        handle = _unsigned(words.take(), ctx.ptr_bits)
        if not handle:
            raise DecodeError(f"native code returned a null {self.cls.__name__} handle")
        if self.owned:
            return self.cls(ctx, ctx.adopt(handle, self.drop_symbol))
        return self.cls(ctx, OwnershipToken(handle, None))


@dataclass(frozen=True)
class Variant:
    """Base of generated enum types: the entry name plus its payload"""
    tag: str
    payload: Any = None

    ENTRIES: ClassVar[tuple] = ()

    def __post_init__(self):
        if self.tag not in self.ENTRIES:
            raise ValueError(f"{type(self).__name__} has no entry {self.tag!r}")

    @property
    def index(self) -> int:
        return self.ENTRIES.index(self.tag)


class EnumCodec(Codec):
    """Discriminant followed by the payload slots joined across all entries"""

    def __init__(self, cls, payloads: tuple):
        if len(payloads) != len(cls.ENTRIES):
            raise ValueError(f"{cls.__name__}: {len(cls.ENTRIES)} entries, {len(payloads)} payload codecs")
        self.cls = cls
        self.payloads = payloads
        joined = []
        for codec in payloads:
            if codec is None:
                continue
            for i, kind in enumerate(codec.kinds):
                if i < len(joined):
                    joined[i] = _join(joined[i], kind)
                else:
                    joined.append(kind)
        self.slots = tuple(joined)
        self.kinds = (INT,) + self.slots

    def lower(self, ctx, value, out, scope):
        if not isinstance(value, self.cls):
            raise TypeError(f"expected {self.cls.__name__}, got {type(value).__name__}")
        index = value.index
        out.append(index)
        words = []
        codec = self.payloads[index]
        if codec is not None:
            codec.lower(ctx, value.payload, words, scope)
            words = [w if k == s else _to_bits(w, k) for w, k, s in zip(words, codec.kinds, self.slots)]
        for slot in self.slots[len(words):]:
            words.append(0 if slot == INT else 0.0)
        out.extend(words)

    def lift(self, ctx, words):
        tag = _signed(words.take(), 32)
        slots = words.take_many(len(self.slots))
        if not 0 <= tag < len(self.cls.ENTRIES):
            raise DecodeError(f"invalid {self.cls.__name__} discriminant {tag}")
        name = self.cls.ENTRIES[tag]
        codec = self.payloads[tag]
        if codec is None:
            return self.cls(name)
        values = [w if k == s else _from_bits(w, k) for w, k, s in zip(slots, codec.kinds, self.slots)]
        return self.cls(name, codec.lift(ctx, Words(values)))


# ---------------------------------------------------------------------------
# Async handles
# ---------------------------------------------------------------------------

class _HandleCodec(Codec):
    kinds = (INT,)

    def _adopt(self, ctx, words) -> OwnershipToken:
        handle = _unsigned(words.take(), ctx.ptr_bits)
        if not handle:
            raise DecodeError(f"native code returned a null {self.what} handle")
        return ctx.adopt(handle, self.drop_symbol)


class IterCodec(_HandleCodec):
    what = "iterator"

    def __init__(self, next_symbol: str, drop_symbol: str, element: Codec):
        self.next_symbol = next_symbol
        self.drop_symbol = drop_symbol
        self.element = OptionCodec(element)

    def lift(self, ctx, words) -> NativeIterator:
        token = self._adopt(ctx, words)

        def next_(handle):
            result = Words(ctx.call(self.next_symbol, handle))
            return self.element.lift_present(ctx, result)

        return NativeIterator(token, next_)


class FutureCodec(_HandleCodec):
    what = "future"

    def __init__(self, poll_symbol: str, drop_symbol: str, value: Codec):
        self.poll_symbol = poll_symbol
        self.drop_symbol = drop_symbol
        self.value = value

    def lift(self, ctx, words):
        token = self._adopt(ctx, words)

        def poll(handle, slot):
            result = ctx.call(self.poll_symbol, handle, *split_wide(slot, ctx.slot_word_bits))
            return lift_poll(ctx, result, self.value)

        return native_future(ctx, token, poll)


class StreamCodec(_HandleCodec):
    what = "stream"

    def __init__(self, poll_symbol: str, drop_symbol: str, value: Codec):
        self.poll_symbol = poll_symbol
        self.drop_symbol = drop_symbol
        self.value = value

    def lift(self, ctx, words) -> NativeStream:
        token = self._adopt(ctx, words)

        def poll(handle, next_slot, done_slot):
            result = ctx.call(
                self.poll_symbol, handle,
                *split_wide(next_slot, ctx.slot_word_bits),
                *split_wide(done_slot, ctx.slot_word_bits),
            )
            return lift_poll(ctx, result, self.value)

        return NativeStream(ctx, token, poll)
