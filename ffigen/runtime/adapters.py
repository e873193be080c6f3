"""Future, iterator and stream adapters over native poll/next exports"""

import asyncio
import logging
from typing import Any, Callable, Tuple

from ..errors import DecodeError, InteropError
from .box import OwnershipToken

logger = logging.getLogger(__name__)

# poll(handle, slot) -> (ready, value); raises InteropError / DecodeError
FuturePoll = Callable[[int, int], Tuple[bool, Any]]
# next_(handle) -> (present, value)
IterNext = Callable[[int], Tuple[bool, Any]]
# poll(handle, next_slot, done_slot) -> (ready, value)
StreamPoll = Callable[[int, int, int], Tuple[bool, Any]]


def native_future(ctx, token: OwnershipToken, poll: FuturePoll) -> asyncio.Future:
    """Drive a native future handle to completion on the event loop.

    The handle is polled once immediately and again on every wake-up of
    its notifier slot. The first ready poll unregisters the slot, drops
    the token and settles the returned future.
    """
    future = ctx.get_loop().create_future()
    registry = ctx.registry
    slot = registry.reserve_slot()
    state = {"polling": False, "rewake": False}

    def settle(exc=None, value=None):
        registry.unregister(slot)
        token.drop()
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(value)

    def wake():
        if future.done():
            # cancelled by the caller; the token is left to its finalizer
            registry.unregister(slot)
            return
        if state["polling"]:
            # woken from inside poll(); poll again once it returns
            state["rewake"] = True
            return
        state["polling"] = True
        try:
            while True:
                state["rewake"] = False
                try:
                    ready, value = poll(token.borrow(), slot)
                except (InteropError, DecodeError) as e:
                    settle(exc=e)
                    return
                if ready:
                    settle(value=value)
                    return
                if not state["rewake"]:
                    return
        finally:
            state["polling"] = False

    registry.register(slot, wake)
    wake()
    return future


class NativeIterator:
    """Synchronous iterator over a native iterator handle.

    The first absent element drops the token; the iterator then stays
    exhausted without calling into native code again.
    """

    def __init__(self, token: OwnershipToken, next_: IterNext):
        self._token = token
        self._next = next_
        self._exhausted = False

    def __iter__(self):
        return self

    def __next__(self):
        if self._exhausted:
            raise StopIteration
        present, value = self._next(self._token.borrow())
        if not present:
            self._exhausted = True
            self._token.drop()
            raise StopIteration
        return value

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Release the native iterator before it is exhausted"""
        self._exhausted = True
        if self._token.is_live:
            self._token.drop()


class _Failure:
    __slots__ = ("exc",)

    def __init__(self, exc):
        self.exc = exc


_CLOSED = object()


class NativeStream:
    """Async iterator fed by native "next" and "done" wake-ups"""

    def __init__(self, ctx, token: OwnershipToken, poll: StreamPoll):
        self._token = token
        self._poll = poll
        self._registry = ctx.registry
        self._queue = asyncio.Queue()
        self._closed = False
        self._finished = False

        self.next_slot = self._registry.reserve_slot()
        self.done_slot = self._registry.reserve_slot()
        self._registry.register(self.next_slot, self._on_next)
        self._registry.register(self.done_slot, self._on_done)
        self._on_next()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            raise item.exc
        return item

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_next(self):
        if self._closed:
            return
        try:
            ready, value = self._poll(self._token.borrow(), self.next_slot, self.done_slot)
        except (InteropError, DecodeError) as e:
            self._queue.put_nowait(_Failure(e))
            return
        if ready:
            self._queue.put_nowait(value)

    def _on_done(self):
        if self._closed:
            return
        self._shutdown()
        logger.debug(f"stream {self.next_slot}/{self.done_slot} finished")

    def _shutdown(self):
        self._closed = True
        self._registry.unregister(self.next_slot)
        self._registry.unregister(self.done_slot)
        self._queue.put_nowait(_CLOSED)
        self._token.drop()

    async def aclose(self):
        """Stop listening and release the native stream early"""
        if not self._closed:
            self._shutdown()
