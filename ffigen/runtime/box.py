"""Ownership token: exclusive control of one native handle"""

import logging
import weakref
from enum import Enum
from typing import Callable, Optional

from ..errors import DoubleFree, UseAfterFree, UseAfterMove

logger = logging.getLogger(__name__)


class TokenState(Enum):
    LIVE = "live"
    MOVED = "moved"
    DROPPED = "dropped"


def _finalize(handle, destructor):
    logger.debug(f"finalizer reclaiming leaked handle {handle:#x}")
    destructor()


class OwnershipToken:
    """Owns a native handle and runs its destructor exactly once.

    LIVE -> MOVED and LIVE -> DROPPED are the only transitions. A finalizer
    reclaims a token that becomes unreachable while LIVE; it is a leak
    backstop only and is detached as soon as the token leaves LIVE.
    A token built with destructor=None is a non-owning view.
    """

    def __init__(self, handle: int, destructor: Optional[Callable[[], None]], finalize: bool = True):
        self.handle = handle
        self.state = TokenState.LIVE
        self._destructor = destructor
        self._finalizer = None
        if destructor is not None and finalize:
            self._finalizer = weakref.finalize(self, _finalize, handle, destructor)
            self._finalizer.atexit = False

    def __repr__(self):
        return f"OwnershipToken({self.handle:#x}, {self.state.value})"

    @property
    def is_live(self) -> bool:
        return self.state is TokenState.LIVE

    @property
    def owning(self) -> bool:
        return self._destructor is not None

    def _check_live(self, action: str):
        if self.state is TokenState.MOVED:
            raise UseAfterMove(f"cannot {action} handle {self.handle:#x}: ownership was moved out")
        if self.state is TokenState.DROPPED:
            raise UseAfterFree(f"cannot {action} handle {self.handle:#x}: it was already dropped")

    def borrow(self) -> int:
        """Raw handle for a call that does not take ownership"""
        self._check_live("borrow")
        return self.handle

    def move_out(self) -> int:
        """Give up ownership; the receiver becomes responsible for the handle"""
        self._check_live("move")
        self.state = TokenState.MOVED
        self._detach()
        return self.handle

    def drop(self):
        """Run the destructor"""
        if self.state is TokenState.DROPPED:
            raise DoubleFree(f"handle {self.handle:#x} was already dropped")
        if self.state is TokenState.MOVED:
            raise UseAfterMove(f"cannot drop handle {self.handle:#x}: ownership was moved out")
        self.state = TokenState.DROPPED
        self._detach()
        if self._destructor is not None:
            destructor, self._destructor = self._destructor, None
            destructor()

    def _detach(self):
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
