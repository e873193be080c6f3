"""Notifier registry: slot id -> wake-up callback"""

import itertools
import logging
import struct
from typing import Callable

from .. import config

logger = logging.getLogger(__name__)

_WORD_FORMATS = {32: "I", 64: "Q"}


class NotifierRegistry:
    """Maps notifier slots to zero-argument callbacks.

    Slot ids come from a monotonically increasing counter and are never
    handed out twice.
    """

    def __init__(self):
        self._counter = itertools.count()
        self._callbacks = {}

    def __contains__(self, slot: int) -> bool:
        return slot in self._callbacks

    def __len__(self):
        return len(self._callbacks)

    def reserve_slot(self) -> int:
        return next(self._counter)

    def register(self, slot: int, callback: Callable[[], None]):
        self._callbacks[slot] = callback
        logger.debug(f"registered notifier slot {slot}")

    def unregister(self, slot: int):
        if self._callbacks.pop(slot, None) is not None:
            logger.debug(f"unregistered notifier slot {slot}")

    def clear(self):
        self._callbacks.clear()

    def trampoline(self, slot: int):
        """Entry point for native wake-ups. Unknown slots are ignored."""
        callback = self._callbacks.get(slot)
        if callback is None:
            logger.debug(f"wake-up for unknown slot {slot} ignored")
            return
        callback()


def split_wide(value: int, word_bits: int = config.DEFAULT_SLOT_WORD_BITS,
               total_bits: int = config.SLOT_ID_BITS) -> tuple:
    """Reinterpret one wide unsigned integer as narrow words, low word first"""
    wide = _WORD_FORMATS[total_bits]
    narrow = _WORD_FORMATS[word_bits]
    count = total_bits // word_bits
    return struct.unpack(f"<{count}{narrow}", struct.pack(f"<{wide}", value))


def join_wide(words, word_bits: int = config.DEFAULT_SLOT_WORD_BITS) -> int:
    """Inverse of split_wide"""
    words = tuple(w & ((1 << word_bits) - 1) for w in words)
    total_bits = word_bits * len(words)
    data = struct.pack(f"<{len(words)}{_WORD_FORMATS[word_bits]}", *words)
    return struct.unpack(f"<{_WORD_FORMATS[total_bits]}", data)[0]
