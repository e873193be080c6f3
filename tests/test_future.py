"""
Tests for native futures: polling on wake-ups, settlement and cleanup.
"""

import asyncio

import pytest

from ffigen.errors import DecodeError, InteropError
from ffigen.runtime import FutureCodec, IntCodec, RuntimeContext, StringCodec, TupleCodec, join_wide
from conftest import poll_error, poll_pending, poll_ready

POLL = "__f_future_poll"
DROP = "__f_future_drop"


class ScriptedPoll:
    """Native poll export replaying a list of results (or callables producing them)"""

    def __init__(self, *script):
        self.script = list(script)
        self.slots = []

    def __call__(self, handle, *slot_words):
        self.slots.append(join_wide(slot_words))
        step = self.script.pop(0)
        return step() if callable(step) else step


def install(instance, poll):
    instance.exports[POLL] = poll
    instance.exports[DROP] = lambda handle: None


def test_ready_after_third_poll(instance, ctx):
    poll = ScriptedPoll(poll_pending(), poll_pending(), poll_ready(42))
    install(instance, poll)
    codec = FutureCodec(POLL, DROP, IntCodec("u32"))

    async def main():
        future = codec.decode(ctx, (0x100,))
        assert not future.done()
        slot = poll.slots[0]
        assert slot in ctx.registry

        instance.trampoline(slot)
        assert not future.done()
        assert instance.calls_to(DROP) == []

        instance.trampoline(slot)
        assert future.done()
        assert instance.calls_to(DROP) == [(0x100,)]
        assert slot not in ctx.registry
        return await future

    assert asyncio.run(main()) == 42
    assert len(poll.slots) == 3
    assert len(set(poll.slots)) == 1


def test_ready_on_first_poll(instance, ctx):
    install(instance, ScriptedPoll(poll_ready(7)))
    codec = FutureCodec(POLL, DROP, IntCodec("i64"))

    async def main():
        return await codec.decode(ctx, (0x100,))

    assert asyncio.run(main()) == 7
    assert instance.calls_to(DROP) == [(0x100,)]


def test_unit_future(instance, ctx):
    install(instance, ScriptedPoll(poll_ready()))
    codec = FutureCodec(POLL, DROP, TupleCodec())

    async def main():
        return await codec.decode(ctx, (0x100,))

    assert asyncio.run(main()) == ()


def test_error_is_raised_and_message_freed(instance, ctx):
    error = poll_error(instance, "boom")
    _, _, err_ptr, err_len, err_cap, _ = error
    poll = ScriptedPoll(poll_pending(), error)
    install(instance, poll)
    codec = FutureCodec(POLL, DROP, StringCodec())

    async def main():
        future = codec.decode(ctx, (0x100,))
        instance.trampoline(poll.slots[0])
        return await future

    with pytest.raises(InteropError) as info:
        asyncio.run(main())
    assert info.value.message == "boom"
    assert instance.freed.count((err_ptr, err_cap, 1)) == 1
    assert err_cap > err_len
    assert instance.calls_to(DROP) == [(0x100,)]
    assert len(ctx.registry) == 0


def test_wrong_poll_width_is_decode_error(instance, ctx):
    install(instance, ScriptedPoll((1, 0, 0)))
    codec = FutureCodec(POLL, DROP, IntCodec("u8"))

    async def main():
        return await codec.decode(ctx, (0x100,))

    with pytest.raises(DecodeError):
        asyncio.run(main())


def test_wake_during_poll_polls_again(instance, ctx):
    def wake_then_pending():
        # the native side signals readiness before the first poll returns
        instance.trampoline(poll.slots[0])
        return poll_pending()

    poll = ScriptedPoll(wake_then_pending, poll_ready(9))
    install(instance, poll)
    codec = FutureCodec(POLL, DROP, IntCodec("u8"))

    async def main():
        future = codec.decode(ctx, (0x100,))
        assert future.done()
        return await future

    assert asyncio.run(main()) == 9
    assert len(poll.slots) == 2


def test_late_wake_up_is_ignored(instance, ctx):
    poll = ScriptedPoll(poll_ready(1))
    install(instance, poll)
    codec = FutureCodec(POLL, DROP, IntCodec("u8"))

    async def main():
        return await codec.decode(ctx, (0x100,))

    asyncio.run(main())
    instance.trampoline(poll.slots[0])
    assert len(poll.slots) == 1


def test_cancelled_future_stops_polling(instance, ctx):
    poll = ScriptedPoll(poll_pending())
    install(instance, poll)
    codec = FutureCodec(POLL, DROP, IntCodec("u8"))

    async def main():
        future = codec.decode(ctx, (0x100,))
        future.cancel()
        instance.trampoline(poll.slots[0])

    asyncio.run(main())
    assert len(poll.slots) == 1
    assert len(ctx.registry) == 0


def test_null_future_handle(instance, ctx):
    codec = FutureCodec(POLL, DROP, IntCodec("u8"))

    async def main():
        codec.decode(ctx, (0,))

    with pytest.raises(DecodeError):
        asyncio.run(main())


def test_slot_split_into_one_wide_word(instance):
    ctx = RuntimeContext(instance, slot_word_bits=64)
    poll = ScriptedPoll(poll_ready(3))
    install(instance, poll)
    codec = FutureCodec(POLL, DROP, IntCodec("u8"))

    async def main():
        return await codec.decode(ctx, (0x100,))

    assert asyncio.run(main()) == 3
    [(symbol, words)] = [c for c in instance.calls if c[0] == POLL]
    assert len(words) == 2  # handle + one slot word
    ctx.close()
