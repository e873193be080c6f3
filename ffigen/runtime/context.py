"""Runtime context: one native instance plus its process-scoped state"""

import asyncio
import logging
from functools import partial
from typing import Optional

from .. import config
from ..errors import DecodeError
from .box import OwnershipToken
from .instance import NativeInstance
from .notifier import NotifierRegistry

logger = logging.getLogger(__name__)


class RuntimeContext:
    """Owns the notifier registry and mediates all access to the native module.

    Generated bindings and the async adapters receive the context
    explicitly; nothing in the runtime is global.
    """

    def __init__(self, instance: NativeInstance, registry: Optional[NotifierRegistry] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None,
                 ptr_bits: int = config.DEFAULT_PTR_BITS,
                 slot_word_bits: int = config.DEFAULT_SLOT_WORD_BITS):
        self.instance = instance
        self.registry = registry if registry is not None else NotifierRegistry()
        self.loop = loop
        self.ptr_bits = ptr_bits
        self.slot_word_bits = slot_word_bits
        self.closed = False
        instance.install_trampoline(self.trampoline)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        if self.closed:
            return
        self.closed = True
        pending = len(self.registry)
        if pending:
            logger.warning(f"closing runtime context with {pending} pending notifier slots")
        self.registry.clear()

    def get_loop(self) -> asyncio.AbstractEventLoop:
        return self.loop if self.loop is not None else asyncio.get_running_loop()

    # -- calls ----------------------------------------------------------

    def call(self, symbol: str, *words) -> tuple:
        """Invoke an export; the result is always a tuple of words"""
        logger.debug(f"call {symbol}{words}")
        result = self.instance.call(symbol, *words)
        if result is None:
            return ()
        if isinstance(result, (tuple, list)):
            return tuple(result)
        return (result,)

    def trampoline(self, slot: int):
        self.registry.trampoline(slot)

    # -- memory ---------------------------------------------------------

    def allocate(self, size: int, align: int) -> int:
        (ptr,) = self.call(config.ALLOCATE_SYMBOL, size, align)
        return ptr

    def deallocate(self, ptr: int, size: int, align: int):
        self.call(config.DEALLOCATE_SYMBOL, ptr, size, align)

    def read(self, ptr: int, size: int) -> bytes:
        return bytes(self.instance.read(ptr, size))

    def write(self, ptr: int, data: bytes):
        self.instance.write(ptr, data)

    def read_string(self, ptr: int, length: int) -> str:
        data = self.read(ptr, length)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"malformed UTF-8 in native string at {ptr:#x}: {e.reason}") from e

    def write_string(self, text: str) -> tuple:
        """Copy text into native memory. Returns (ptr, len); empty text is (0, 0)."""
        data = text.encode("utf-8")
        if not data:
            return 0, 0
        ptr = self.allocate(len(data), config.STRING_ALIGN)
        self.write(ptr, data)
        return ptr, len(data)

    # -- ownership ------------------------------------------------------

    def drop(self, symbol: str, ptr: int):
        logger.debug(f"drop {symbol}({ptr:#x})")
        self.call(symbol, ptr)

    def adopt(self, ptr: int, drop_symbol: str) -> OwnershipToken:
        """Take ownership of a handle returned by the native side"""
        return OwnershipToken(ptr, partial(self.drop, drop_symbol, ptr))

    @staticmethod
    def release(cleanups: list):
        """Run deferred frees of host-owned argument memory, newest first"""
        while cleanups:
            cleanups.pop()()
