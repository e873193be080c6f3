"""
Tests for ABI lowering: flat word kinds and the native export contract.
"""

import pytest

from ffigen.abi import Abi, Lowering, join
from ffigen.errors import GeneratorError
from ffigen.parser import parse_module
from ffigen.resolver import resolve_module
from ffigen.types import NamedType


def lowering(source: str, **abi) -> Lowering:
    return Lowering(resolve_module(parse_module(source)), Abi(**abi))


def ret_words(source: str, **abi) -> tuple:
    low = lowering(source, **abi)
    return low.flatten(low.module.functions[0].ret)


@pytest.fixture
def sample(sample_idl):
    return Lowering(resolve_module(parse_module(sample_idl)))


class TestFlatten:

    @pytest.mark.parametrize("ty, words", [
        ("u8", ("i32",)),
        ("bool", ("i32",)),
        ("i64", ("i64",)),
        ("f32", ("f32",)),
        ("f64", ("f64",)),
        ("usize", ("i32",)),
        ("string", ("i32", "i32")),
        ("&string", ("i32", "i32")),
        ("Vec<u16>", ("i32", "i32")),
        ("buffer<f64>", ("i32", "i32")),
        ("()", ()),
        ("(u8, f64, string)", ("i32", "f64", "i32", "i32")),
        ("Option<f32>", ("i32", "f32")),
        ("Option<Option<u64>>", ("i32", "i32", "i64")),
    ])
    def test_words(self, ty, words):
        assert ret_words(f"fn f() -> {ty};") == words

    def test_pointer_width(self):
        assert ret_words("fn f() -> string;", ptr_bits=64) == ("i64", "i64")
        assert ret_words("fn f() -> usize;", ptr_bits=64) == ("i64",)

    def test_object_handle(self):
        assert ret_words("object O {} fn f() -> O;") == ("i32",)

    def test_async_handles(self):
        for ty in ("Future<u8>", "Stream<string>", "Iterator<f64>"):
            assert ret_words(f"fn f() -> {ty};") == ("i32",)

    def test_join(self):
        assert join("f32", "f32") == "f32"
        assert join("i32", "f32") == "i32"
        assert join("f32", "f64") == "i64"
        assert join("i32", "i64") == "i64"

    def test_enum_payload_join(self, sample):
        # Circle(f64), Rect((f32, f32)), Labeled(string), Empty
        shape = sample.enums["Shape"]
        assert sample.enum_payload_words(shape) == ("i64", "i32")
        assert sample.flatten(NamedType("Shape", "enum")) == ("i32", "i64", "i32")

    def test_fieldless_enum(self):
        assert ret_words("enum E { A, B } fn f() -> E;") == ("i32",)

    def test_recursive_enum_has_no_layout(self):
        with pytest.raises(GeneratorError):
            lowering("enum E { Again(Option<E>), Stop }").exports()


class TestPollShape:

    def test_one_word_value(self):
        assert ret_words("fn f() -> Result<f64>;") == ("i32", "i32", "i32", "i32", "i32", "f64")

    def test_unit_value(self):
        assert ret_words("fn f() -> Result<()>;")[-1] == "i32"

    def test_wide_value_is_spilled_through_a_pointer(self):
        assert ret_words("fn f() -> Result<string>;", ptr_bits=64) == (
            "i32", "i32", "i64", "i64", "i64", "i64",
        )

    def test_future_poll_export(self, sample):
        poll = next(e for e in sample.exports() if e.symbol == "__Greeter_greet_later_future_poll")
        assert poll.role == "future_poll"
        assert poll.params == ("i32", "i32", "i32")  # handle + two slot words
        assert poll.results == ("i32", "i32", "i32", "i32", "i32", "i32")

    def test_stream_poll_takes_two_slots(self, sample):
        poll = next(e for e in sample.exports() if e.symbol == "__Greeter_events_stream_poll")
        assert poll.params == ("i32",) * 5
        assert poll.results[-1] == "i32"

    def test_wide_slot_words(self, sample_idl):
        low = Lowering(resolve_module(parse_module(sample_idl)), Abi(slot_word_bits=64))
        poll = next(e for e in low.exports() if e.symbol == "__async_hello_world_future_poll")
        assert poll.params == ("i32", "i64")


class TestExports:

    def test_sample_contract(self, sample):
        symbols = [e.symbol for e in sample.exports()]
        assert symbols[:2] == ["allocate", "deallocate"]
        assert symbols[2:5] == ["__Greeter_drop", "__Greeter_new", "__Greeter_greet"]
        for expected in (
            "__Greeter_names_iter_next", "__Greeter_names_iter_drop",
            "__Greeter_events_stream_drop", "__Greeter_greet_later_future_drop",
            "__hello_world", "__div_mod", "__async_hello_world_future_poll",
        ):
            assert expected in symbols
        assert len(symbols) == len(set(symbols))

    def test_method_takes_receiver(self, sample):
        exports = {e.symbol: e for e in sample.exports()}
        assert exports["__Greeter_greet"].params == ("i32", "i32", "i32")
        assert exports["__Greeter_new"].params == ("i32", "i32")
        assert exports["__Greeter_new"].results == ("i32",)

    def test_iter_next_results(self, sample):
        exports = {e.symbol: e for e in sample.exports()}
        assert exports["__Greeter_names_iter_next"].results == ("i32", "i32", "i32")

    def test_multi_value(self, sample):
        exports = {e.symbol: e for e in sample.exports()}
        assert exports["__div_mod"].multi_value
        assert not exports["__area"].multi_value
        assert exports["__hello_world"].results == ()

    @pytest.mark.parametrize("source", [
        "fn f(x: Result<u8>);",
        "fn f() -> Option<Result<u8>>;",
        "fn f() -> (u8, Future<u8>);",
        "fn f() -> Future<Future<u8>>;",
        "fn f() -> Stream<Option<Iterator<u8>>>;",
        "fn f(x: Vec<string>);",
        "object O {} fn f() -> Vec<O>;",
        "enum E { A(Result<u8>) }",
    ])
    def test_unsupported_shapes(self, source):
        with pytest.raises(GeneratorError):
            lowering(source).exports()

    def test_unsupported_pointer_width(self):
        with pytest.raises(GeneratorError):
            Abi(ptr_bits=16)

    @pytest.mark.parametrize("source", [
        "object O { fn drop(); }",
        "object A { fn b_c(); } object A_b { fn c(); }",
        "fn f() -> Future<u8>; fn f_future_poll();",
    ])
    def test_symbol_clashes(self, source):
        with pytest.raises(GeneratorError, match="generated 2 times"):
            lowering(source).exports()
