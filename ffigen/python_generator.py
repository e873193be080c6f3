"""Python Generator - generates Python bindings driven by ffigen.runtime"""

import keyword
import logging
from typing import Optional

from .abi import drop_symbol, fallible_element
from .common_generator import CommonGenerator
from .type_mapper import TypeMapper
from .types import (
    BufferType, Enum, Function, FutureType, IterType, NamedType, Object, OptionType,
    PrimKind, PrimitiveType, RefType, ResultType, SliceType, StreamType, TupleType,
    TypeExpr, VecType,
)

logger = logging.getLogger(__name__)

RUNTIME_IMPORTS = (
    "BoolCodec", "CallScope", "CdllInstance", "EnumCodec", "FloatCodec", "FutureCodec", "IntCodec",
    "IterCodec", "ObjectCodec", "OptionCodec", "OwnershipToken", "ResultCodec",
    "RuntimeContext", "SequenceCodec", "StreamCodec", "StringCodec", "TupleCodec", "Variant",
)

# Members of the generated classes that IDL names must not shadow
VARIANT_MEMBERS = frozenset({"ENTRIES", "index", "tag", "payload"})
OBJECT_MEMBERS = frozenset({"drop", "_ctx", "_token"})
API_MEMBERS = frozenset({"ctx", "load", "from_instance", "close"})
# First parameter and locals of a generated call site
CALL_LOCALS = frozenset({"self", "api", "_ctx", "_args", "_scope", "_words"})


def _py_names(names, reserved=frozenset()) -> dict:
    """Python identifiers for sibling IDL names; keywords and clashes get trailing underscores"""
    raw = set(names)
    out = {}
    for name in names:
        py = name
        while keyword.iskeyword(py) or py in reserved or py in out.values() or (py != name and py in raw):
            py += "_"
        out[name] = py
    return out


def _docstring(docs, fallback: str, indent: str) -> list[str]:
    text = [d.replace("\\", "\\\\").replace('"""', '\\"\\"\\"') for d in docs] or [fallback]
    if text[-1].endswith('"'):
        text[-1] = text[-1][:-1] + '\\"'
    if len(text) == 1:
        return [f'{indent}"""{text[0]}"""']
    lines = [f'{indent}"""{text[0]}']
    lines.extend(f"{indent}{t}" if t else "" for t in text[1:])
    lines.append(f'{indent}"""')
    return lines


def _tuple_expr(parts) -> str:
    parts = list(parts)
    if len(parts) == 1:
        return f"({parts[0]},)"
    return f"({', '.join(parts)})"


class PythonGenerator(CommonGenerator):
    """Generates a Python module wrapping the native export contract"""

    def __init__(self, module, namespace: str, abi=None):
        super().__init__(module, namespace, abi)
        self.codecs = []  # (variable, expression), emitted after all classes

    def generate(self) -> str:
        """Generate complete Python module"""
        self.exports = self.lowering.exports()
        self.codecs = []
        lines = self.preamble()
        for enum in self.module.enums:
            lines.extend(self.emit_enum(enum))
        for obj in self.module.objects:
            lines.extend(self.emit_object(obj))
        lines.extend(self._generate_api())
        lines.extend(self.postamble())
        logger.debug(f"generated Python bindings for {self.namespace}: {len(self.codecs)} codecs")
        return "\n".join(lines) + "\n"

    def preamble(self) -> list[str]:
        lines = [
            '"""',
            f"AUTO-GENERATED Python bindings for {self.namespace}",
            "DO NOT EDIT - Generated from IDL",
        ]
        if self.module.docs:
            lines.append("")
            lines.extend(d.replace('"""', '\\"\\"\\"') for d in self.module.docs)
        lines.extend([
            '"""',
            "",
            "from __future__ import annotations",
            "",
            "import array",
            "import os",
            "from typing import AsyncIterator, Iterator, List, Optional, Tuple",
            "",
            "from ffigen.runtime import (",
        ])
        lines.extend(f"    {name}," for name in RUNTIME_IMPORTS)
        lines.extend([")", "", ""])
        lines.extend(self.section("Native Signatures"))
        lines.append(f'LIBRARY = "{self.namespace}"')
        lines.append(f"PTR_BITS = {self.abi.ptr_bits}")
        lines.append(f"SLOT_WORD_BITS = {self.abi.slot_word_bits}")
        lines.append("")
        lines.append("SIGNATURES = {")
        for export in self.exports:
            lines.append(f'    "{export.symbol}": ({export.params!r}, {export.results!r}),')
        lines.extend(["}", "", ""])
        return lines

    def postamble(self) -> list[str]:
        lines = self.section("Codecs")
        lines.extend(f"{name} = {expr}" for name, expr in self.codecs)
        return lines

    # -- capability interface -------------------------------------------

    def emit_primitive(self, kind: PrimKind) -> str:
        if kind == PrimKind.STRING:
            return "StringCodec()"
        if kind == PrimKind.BOOL:
            return "BoolCodec()"
        if kind in (PrimKind.F32, PrimKind.F64):
            return f'FloatCodec("{kind.value}")'
        return f'IntCodec("{kind.value}")'

    def emit_enum(self, enum: Enum) -> list[str]:
        """Generate a Variant subclass with one constructor per entry"""
        name = TypeMapper.py_name(enum.name)
        methods = _py_names([e.name for e in enum.entries], VARIANT_MEMBERS)
        lines = self.section(f"{enum.name} Enum")
        lines.append(f"class {name}(Variant):")
        lines.extend(_docstring(enum.docs, f"IDL enum {enum.name}", "    "))
        lines.append(f"    ENTRIES = {_tuple_expr(repr(e.name) for e in enum.entries)}")
        for entry in enum.entries:
            lines.append("")
            lines.append("    @classmethod")
            if entry.payload is None:
                lines.append(f"    def {methods[entry.name]}(cls) -> {name}:")
                lines.append(f"        return cls({entry.name!r})")
            else:
                hint = TypeMapper.to_python(entry.payload)
                lines.append(f"    def {methods[entry.name]}(cls, value: {hint}) -> {name}:")
                lines.append(f"        return cls({entry.name!r}, value)")
        lines.extend(["", ""])
        return lines

    def emit_object(self, obj: Object) -> list[str]:
        """Generate the wrapper class of an object handle"""
        name = TypeMapper.py_name(obj.name)
        lines = self.section(f"{obj.name} Class")
        lines.append(f"class {name}:")
        lines.extend(_docstring(obj.docs, f"Python wrapper for {obj.name} object", "    "))
        lines.extend([
            "",
            "    def __init__(self, ctx: RuntimeContext, token: OwnershipToken):",
            "        self._ctx = ctx",
            "        self._token = token",
            "",
            "    def __repr__(self):",
            f'        return f"{name}({{self._token!r}})"',
            "",
            "    def __enter__(self):",
            "        return self",
            "",
            "    def __exit__(self, exc_type, exc_val, exc_tb):",
            "        if self._token.is_live:",
            "            self._token.drop()",
            "        return False",
            "",
            "    def drop(self) -> None:",
            f'        """Destroy the native {obj.name}"""',
            "        self._token.drop()",
            "",
        ])
        for method in obj.methods:
            lines.extend(self.emit_function(method, obj))
        lines.append("")
        return lines

    def method_name(self, func: Function, owner: Optional[Object] = None) -> str:
        """Python name of a wrapper method"""
        if owner is not None:
            return _py_names([m.name for m in owner.methods], OBJECT_MEMBERS)[func.name]
        return _py_names([f.name for f in self.module.functions], API_MEMBERS)[func.name]

    def emit_function(self, func: Function, owner: Optional[Object] = None) -> list[str]:
        """Generate one call site: encode, invoke, decode.

        Arguments are lowered inside a CallScope, so a conversion failure
        frees what was already allocated and moves no handle.
        """
        fqn = f"{owner.name}_{func.name}" if owner is not None else func.name
        symbol = self.export_symbol(func, owner)

        lines = []
        if owner is not None and func.is_static:
            lines.append("    @staticmethod")
            first, ctx_expr, args_init = "api: Api", "api.ctx", "[]"
        elif owner is not None:
            first, ctx_expr, args_init = "self", "self._ctx", "[self._token.borrow()]"
        else:
            first, ctx_expr, args_init = "self", "self.ctx", "[]"

        arg_names = _py_names([a.name for a in func.args], CALL_LOCALS)
        params = [first] + [f"{arg_names[a.name]}: {TypeMapper.to_python(a.type)}" for a in func.args]
        is_async = isinstance(func.ret, FutureType)
        ret_hint = TypeMapper.to_python_return(func.ret)
        what = f"{owner.name}.{func.name}" if owner is not None else func.name

        lines.append(
            f"    {'async ' if is_async else ''}def {self.method_name(func, owner)}"
            f"({', '.join(params)}) -> {ret_hint}:"
        )
        lines.extend(_docstring(func.docs, f"Call {what}", "        "))
        lines.append(f"        _ctx = {ctx_expr}")
        lines.append(f"        _args = {args_init}")
        lines.append("        with CallScope(_ctx) as _scope:")
        for arg in func.args:
            var = self._codec_var(f"_{fqn}_arg_{arg.name}", self.codec(arg.type))
            lines.append(f"            {var}.lower(_ctx, {arg_names[arg.name]}, _args, _scope)")
        if func.ret is None:
            lines.append(f'            _scope.call("{symbol}", _args)')
        else:
            lines.append(f'            _words = _scope.call("{symbol}", _args)')
        if func.ret is not None:
            var = self._codec_var(f"_{fqn}_ret", self.codec(func.ret, symbol=symbol))
            if is_async:
                lines.append(f"        return await {var}.decode(_ctx, _words)")
            else:
                lines.append(f"        return {var}.decode(_ctx, _words)")
        lines.append("")
        return lines

    # -- codecs ---------------------------------------------------------

    def codec(self, ty: TypeExpr, owned: bool = True, symbol: Optional[str] = None) -> str:
        """Codec constructor expression for a type"""
        if isinstance(ty, PrimitiveType):
            if ty.kind == PrimKind.STRING:
                return f"StringCodec(owned={owned})"
            return self.emit_primitive(ty.kind)
        if isinstance(ty, BufferType):
            return f'SequenceCodec("{ty.elem.value}", owned=False, container="array")'
        if isinstance(ty, SliceType):
            return f'SequenceCodec("{ty.inner.kind.value}", owned=False)'
        if isinstance(ty, VecType):
            return f'SequenceCodec("{ty.inner.kind.value}", owned={owned})'
        if isinstance(ty, RefType):
            return self.codec(ty.inner, owned=False)
        if isinstance(ty, TupleType):
            return f"TupleCodec({', '.join(self.codec(e, owned) for e in ty.elems)})"
        if isinstance(ty, OptionType):
            return f"OptionCodec({self.codec(ty.inner, owned)})"
        if isinstance(ty, ResultType):
            return f"ResultCodec({self.codec(ty.inner, owned)})"
        if isinstance(ty, NamedType) and ty.is_object:
            return f'ObjectCodec({TypeMapper.py_name(ty.name)}, "{drop_symbol(ty.name)}", owned={owned})'
        if isinstance(ty, NamedType) and ty.is_enum:
            enum = self.lowering.enums[ty.name]
            payloads = ("None" if e.payload is None else self.codec(e.payload) for e in enum.entries)
            return f"EnumCodec({TypeMapper.py_name(ty.name)}, {_tuple_expr(payloads)})"
        if isinstance(ty, IterType):
            return f'IterCodec("{symbol}_iter_next", "{symbol}_iter_drop", {self.codec(ty.inner)})'
        if isinstance(ty, FutureType):
            value = self.codec(fallible_element(ty.inner))
            return f'FutureCodec("{symbol}_future_poll", "{symbol}_future_drop", {value})'
        if isinstance(ty, StreamType):
            value = self.codec(fallible_element(ty.inner))
            return f'StreamCodec("{symbol}_stream_poll", "{symbol}_stream_drop", {value})'
        raise TypeError(f"no codec for {ty!r}")

    def _codec_var(self, name: str, expr: str) -> str:
        taken = {n for n, _ in self.codecs}
        base, n = name, 1
        while name in taken:
            n += 1
            name = f"{base}_{n}"
        self.codecs.append((name, expr))
        return name

    # -- api ------------------------------------------------------------

    def _generate_api(self) -> list[str]:
        lines = self.section("Api")
        lines.append("class Api:")
        lines.extend(_docstring((), f"Entry point of the {self.namespace} native module", "    "))
        lines.extend([
            "",
            "    def __init__(self, ctx: RuntimeContext):",
            "        self.ctx = ctx",
            "",
            "    @classmethod",
            "    def load(cls, library: Optional[str] = None, **kwargs) -> Api:",
            '        """Load the native library next to this file, in lib/ or on the system path"""',
            "        base_dir = os.path.dirname(os.path.abspath(__file__))",
            "        return cls.from_instance(CdllInstance(library or LIBRARY, SIGNATURES, base_dir, PTR_BITS), **kwargs)",
            "",
            "    @classmethod",
            "    def from_instance(cls, instance, **kwargs) -> Api:",
            "        return cls(RuntimeContext(instance, ptr_bits=PTR_BITS, slot_word_bits=SLOT_WORD_BITS, **kwargs))",
            "",
            "    def close(self) -> None:",
            "        self.ctx.close()",
            "",
            "    def __enter__(self):",
            "        return self",
            "",
            "    def __exit__(self, exc_type, exc_val, exc_tb):",
            "        self.close()",
            "        return False",
            "",
        ])
        for func in self.module.functions:
            lines.extend(self.emit_function(func))
        lines.append("")
        return lines
