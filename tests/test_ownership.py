"""
Tests for OwnershipToken state transitions.
"""

import gc

import pytest

from ffigen.errors import DoubleFree, OwnershipError, UseAfterFree, UseAfterMove
from ffigen.runtime import OwnershipToken, TokenState


class Destructor:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


@pytest.fixture
def destructor():
    return Destructor()


def test_new_token_is_live(destructor):
    token = OwnershipToken(0x40, destructor)
    assert token.is_live
    assert token.owning
    assert token.borrow() == 0x40
    assert token.borrow() == 0x40
    assert destructor.calls == 0


def test_drop_runs_destructor_once(destructor):
    token = OwnershipToken(0x40, destructor)
    token.drop()
    assert token.state is TokenState.DROPPED
    assert destructor.calls == 1
    with pytest.raises(DoubleFree):
        token.drop()
    assert destructor.calls == 1


def test_borrow_after_drop(destructor):
    token = OwnershipToken(0x40, destructor)
    token.drop()
    with pytest.raises(UseAfterFree):
        token.borrow()
    with pytest.raises(UseAfterFree):
        token.move_out()


def test_move_out_transfers_responsibility(destructor):
    token = OwnershipToken(0x40, destructor)
    assert token.move_out() == 0x40
    assert token.state is TokenState.MOVED
    assert not token.is_live
    for action in (token.borrow, token.move_out, token.drop):
        with pytest.raises(UseAfterMove):
            action()
    assert destructor.calls == 0


def test_errors_share_a_base():
    for cls in (DoubleFree, UseAfterFree, UseAfterMove):
        assert issubclass(cls, OwnershipError)


def test_non_owning_token(destructor):
    view = OwnershipToken(0x40, None)
    assert not view.owning
    assert view.borrow() == 0x40
    view.drop()
    assert view.state is TokenState.DROPPED
    with pytest.raises(UseAfterFree):
        view.borrow()


def test_finalizer_reclaims_leaked_token(destructor):
    OwnershipToken(0x40, destructor)
    gc.collect()
    assert destructor.calls == 1


def test_finalizer_detached_after_drop(destructor):
    token = OwnershipToken(0x40, destructor)
    token.drop()
    del token
    gc.collect()
    assert destructor.calls == 1


def test_finalizer_detached_after_move(destructor):
    token = OwnershipToken(0x40, destructor)
    token.move_out()
    del token
    gc.collect()
    assert destructor.calls == 0


def test_finalizer_can_be_disabled(destructor):
    OwnershipToken(0x40, destructor, finalize=False)
    gc.collect()
    assert destructor.calls == 0


def test_repr():
    assert repr(OwnershipToken(0x40, None)) == "OwnershipToken(0x40, live)"
