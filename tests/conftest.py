"""
Pytest configuration and shared fixtures.

FakeInstance stands in for a compiled native module: a bytearray of linear
memory, a bump allocator that records every allocation and free, and exports
given as plain Python callables.
"""

import struct
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
from ffigen.runtime import NativeInstance, NotifierRegistry, RuntimeContext


SAMPLES_DIR = Path(__file__).parent.parent / "samples"


class FakeInstance(NativeInstance):
    """In-memory native module for driving the runtime without a real library"""

    def __init__(self, exports=None, size=1 << 16):
        self.memory = bytearray(size)
        self.exports = dict(exports or {})
        self.next_ptr = 16  # 0 stays reserved for null
        self.live = {}  # ptr -> (size, align)
        self.freed = []  # (ptr, size, align), in call order
        self.calls = []
        self.trampoline = None

    # -- NativeInstance -------------------------------------------------

    def call(self, symbol, *words):
        self.calls.append((symbol, words))
        if symbol == "allocate":
            return self.allocate(*words)
        if symbol == "deallocate":
            return self.deallocate(*words)
        return self.exports[symbol](*words)

    def read(self, ptr, size):
        return bytes(self.memory[ptr:ptr + size])

    def write(self, ptr, data):
        self.memory[ptr:ptr + len(data)] = data

    def install_trampoline(self, callback):
        self.trampoline = callback

    # -- allocator ------------------------------------------------------

    def allocate(self, size, align):
        ptr = (self.next_ptr + align - 1) // align * align
        self.next_ptr = ptr + max(size, 1)
        self.live[ptr] = (size, align)
        return ptr

    def deallocate(self, ptr, size, align):
        assert ptr in self.live, f"free of unknown pointer {ptr:#x}"
        del self.live[ptr]
        self.freed.append((ptr, size, align))

    # -- native-side helpers --------------------------------------------

    def put_bytes(self, data, align=1):
        ptr = self.allocate(len(data), align)
        self.write(ptr, data)
        return ptr

    def put_string(self, text):
        """Native-owned UTF-8 string: (ptr, len)"""
        data = text.encode("utf-8")
        return self.put_bytes(data), len(data)

    def get_string(self, ptr, length):
        return self.read(ptr, length).decode("utf-8")

    def spill(self, words):
        """Native-owned spilled words, one little-endian 8-byte slot each"""
        data = b"".join(
            struct.pack("<d", w) if isinstance(w, float) else struct.pack("<q", w)
            for w in words
        )
        return self.put_bytes(data, 8)

    def calls_to(self, symbol):
        return [words for name, words in self.calls if name == symbol]


def poll_pending():
    return (0, 0, 0, 0, 0, 0)


def poll_ready(value=0):
    return (1, 0, 0, 0, 0, value)


def poll_error(instance, message):
    """Ready-with-error poll result. The message buffer has spare capacity."""
    data = message.encode("utf-8")
    cap = len(data) + 8
    ptr = instance.allocate(cap, 1)
    instance.write(ptr, data)
    return (1, 1, ptr, len(data), cap, 0)


@pytest.fixture
def instance():
    return FakeInstance()


@pytest.fixture
def ctx(instance):
    context = RuntimeContext(instance)
    yield context
    context.close()


@pytest.fixture
def registry():
    return NotifierRegistry()


@pytest.fixture
def sample_idl():
    return (SAMPLES_DIR / "api.idl").read_text(encoding="utf-8")
