"""
Tests for the C header generator.
"""

import pytest

from ffigen.abi import Abi
from ffigen.c_api_generator import CAPIGenerator
from ffigen.errors import GeneratorError
from ffigen.parser import parse_module
from ffigen.resolver import resolve_module


def header(source: str, namespace: str = "api", **kwargs) -> str:
    return CAPIGenerator(resolve_module(parse_module(source)), namespace, **kwargs).generate_header()


@pytest.fixture
def sample_header(sample_idl):
    return header(sample_idl)


def test_guard_and_macro(sample_header):
    lines = sample_header.splitlines()
    assert lines[0] == "// AUTO-GENERATED - DO NOT EDIT"
    assert "#ifndef API_FFI_H" in lines
    assert lines[-1] == "#endif // API_FFI_H"
    assert '    #define API_API __attribute__((visibility("default")))' in lines


def test_custom_api_macro():
    text = header("fn f();", api_macro="MY_EXPORT")
    assert "MY_EXPORT void __f(void);" in text


def test_memory_and_notifier_entry_points(sample_header):
    assert "API_API int32_t allocate(int32_t a0, int32_t a1);" in sample_header
    assert "API_API void deallocate(int32_t a0, int32_t a1, int32_t a2);" in sample_header
    assert "typedef void (*api_notifier_fn)(uint64_t slot);" in sample_header
    assert "API_API void __notifier_set_callback(api_notifier_fn callback);" in sample_header


def test_function_prototypes(sample_header):
    assert "// fn div_mod(a: u32, b: u32) -> (u32, u32)" in sample_header
    assert "API_API __div_mod_result __div_mod(int32_t a0, int32_t a1);" in sample_header
    assert "API_API double __area(int32_t a0, int64_t a1, int32_t a2);" in sample_header
    assert "API_API void __hello_world(void);" in sample_header


def test_result_structs(sample_header):
    assert "typedef struct {\n    int32_t w0;\n    int32_t w1;\n} __div_mod_result;" in sample_header
    assert "} __parse_number_result;" in sample_header
    assert "    int64_t w5;\n} __parse_number_result;" in sample_header


def test_object_section(sample_header):
    assert "// ---- object Greeter ----" in sample_header
    assert "// Greets people, synchronously and asynchronously." in sample_header
    assert "API_API void __Greeter_drop(int32_t a0);" in sample_header
    assert "// static fn Greeter::new(salutation: string) -> Greeter" in sample_header
    assert "// fn Greeter::greet(name: &string) -> string" in sample_header


def test_async_helpers(sample_header):
    assert (
        "API_API __Greeter_greet_later_future_poll_result "
        "__Greeter_greet_later_future_poll(int32_t a0, int32_t a1, int32_t a2);"
    ) in sample_header
    assert "API_API void __Greeter_events_stream_drop(int32_t a0);" in sample_header
    assert "API_API __Greeter_names_iter_next_result __Greeter_names_iter_next(int32_t a0);" in sample_header


def test_enum_constants(sample_header):
    assert "// ---- enum Shape: int32_t discriminant, payload words (i64, i32) ----" in sample_header
    assert "    Shape_Circle = 0," in sample_header
    assert "    Shape_Empty = 3," in sample_header


def test_wide_target():
    module = resolve_module(parse_module("fn name() -> string;"))
    text = CAPIGenerator(module, "api", abi=Abi(ptr_bits=64)).generate_header()
    assert "} __name_result;" in text
    assert "API_API int64_t allocate(int64_t a0, int64_t a1);" in text


def test_unsupported_shape():
    with pytest.raises(GeneratorError):
        header("fn f(x: Vec<string>);")
