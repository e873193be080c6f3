"""
Tests for NotifierRegistry and the wide slot-id word split.
"""

import pytest

from ffigen.runtime import NotifierRegistry, join_wide, split_wide


def test_reserved_slots_are_distinct(registry):
    slots = [registry.reserve_slot() for _ in range(100)]
    assert len(set(slots)) == 100


def test_slots_are_never_reused(registry):
    first = registry.reserve_slot()
    registry.register(first, lambda: None)
    registry.unregister(first)
    assert registry.reserve_slot() != first


def test_trampoline_dispatches(registry):
    hits = []
    a, b = registry.reserve_slot(), registry.reserve_slot()
    registry.register(a, lambda: hits.append("a"))
    registry.register(b, lambda: hits.append("b"))
    registry.trampoline(b)
    registry.trampoline(a)
    registry.trampoline(b)
    assert hits == ["b", "a", "b"]


def test_unknown_and_unregistered_slots_are_ignored(registry):
    hits = []
    slot = registry.reserve_slot()
    registry.register(slot, lambda: hits.append(slot))
    registry.unregister(slot)
    registry.trampoline(slot)
    registry.trampoline(12345)
    assert hits == []
    assert slot not in registry


def test_unregister_is_idempotent(registry):
    slot = registry.reserve_slot()
    registry.register(slot, lambda: None)
    registry.unregister(slot)
    registry.unregister(slot)
    assert len(registry) == 0


def test_clear(registry):
    for _ in range(3):
        registry.register(registry.reserve_slot(), lambda: None)
    assert len(registry) == 3
    registry.clear()
    assert len(registry) == 0


def test_registries_are_independent():
    first, second = NotifierRegistry(), NotifierRegistry()
    hits = []
    slot = first.reserve_slot()
    first.register(slot, lambda: hits.append("first"))
    second.register(second.reserve_slot(), lambda: hits.append("second"))
    second.trampoline(slot)
    first.trampoline(slot)
    assert hits == ["second", "first"]


@pytest.mark.parametrize("value", [0, 1, 0xFFFFFFFF, 0x1_0000_0000, 0xDEAD_BEEF_0000_0001, (1 << 64) - 1])
def test_split_and_join(value):
    low, high = split_wide(value)
    assert low == value & 0xFFFFFFFF
    assert high == value >> 32
    assert join_wide((low, high)) == value


def test_split_into_one_wide_word():
    assert split_wide(0xDEAD_BEEF_0000_0001, word_bits=64) == (0xDEAD_BEEF_0000_0001,)


def test_join_accepts_signed_words():
    # i32 words arrive sign-extended from the native side
    assert join_wide((-1, 0)) == 0xFFFFFFFF
    assert join_wide((0, -1)) == 0xFFFFFFFF_00000000
