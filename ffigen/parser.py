"""IDL parser: source text -> Module"""

import logging
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from typing import Optional

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken, VisitError
from lark.lexer import PatternStr

from . import config
from .errors import IdlSyntaxError
from .types import (
    NUMERIC_KINDS, PRIMITIVE_KEYWORDS,
    Arg, BufferType, Enum, EnumEntry, Function, FutureType, IterType, Module, NamedType,
    Object, OptionType, PrimitiveType, RefType, ResultType, SliceType, StreamType,
    TupleType, VecType,
)

logger = logging.getLogger(__name__)

GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"

# Terminals without a literal spelling, for "expected ..." messages
_TERMINAL_TEXT = {
    "NAME": "identifier",
    "ITEM_DOC": "doc comment",
    "MODULE_DOC": "module doc comment",
    "$END": "end of input",
}


def _doc_text(token: Token) -> str:
    # strip the three-character marker (/// or //!)
    return str(token)[3:].strip()


@v_args(inline=True)
class _ModuleBuilder(Transformer):
    """Builds Module items from the Lark parse tree"""

    def __init__(self, filename: str):
        super().__init__()
        self.filename = filename

    # -- module ---------------------------------------------------------

    def start(self, *children):
        docs = tuple(c for c in children if isinstance(c, str))
        items = tuple(c for c in children if not isinstance(c, str))
        return Module(docs=docs, items=items)

    def module_doc(self, token):
        return _doc_text(token)

    def docs(self, *tokens):
        return tuple(_doc_text(t) for t in tokens)

    def item(self, *children):
        if len(children) == 2:
            docs, decl = children
            return _with_docs(decl, docs)
        return children[0]

    method = item

    # -- declarations ---------------------------------------------------

    def object(self, name, *methods):
        return Object(name=str(name), methods=tuple(methods), line=name.line)

    def function(self, *children):
        is_static = False
        args = ()
        ret = None
        name = None
        for child in children:
            if isinstance(child, Token) and child.type == "STATIC":
                is_static = True
            elif isinstance(child, Token):
                name = child
            elif isinstance(child, _Ret):
                ret = child.type
            else:
                args = child
        return Function(name=str(name), args=args, ret=ret, is_static=is_static, line=name.line)

    def args(self, *args):
        return tuple(args)

    def arg(self, name, ty):
        return Arg(name=str(name), type=ty)

    def ret(self, ty):
        return _Ret(ty)

    def enum(self, name, *entries):
        return Enum(name=str(name), entries=tuple(entries), line=name.line)

    def entry(self, name, payload=None):
        return EnumEntry(name=str(name), payload=payload)

    # -- types ----------------------------------------------------------

    def named(self, name):
        kind = PRIMITIVE_KEYWORDS.get(str(name))
        if kind is not None:
            return PrimitiveType(kind)
        return NamedType(str(name))

    def buffer(self, name):
        kind = PRIMITIVE_KEYWORDS.get(str(name))
        if kind not in NUMERIC_KINDS:
            raise IdlSyntaxError(
                f"buffer element must be a fixed-width numeric type, got `{name}`",
                self.filename, name.line, name.column, name.start_pos,
                expected=sorted(k.value for k in NUMERIC_KINDS),
            )
        return BufferType(kind)

    def tuple(self, *elems):
        return TupleType(tuple(elems))

    def ref(self, inner):
        return RefType(inner)

    def slice(self, inner):
        return SliceType(inner)

    def vec(self, inner):
        return VecType(inner)

    def option(self, inner):
        return OptionType(inner)

    def result(self, inner):
        return ResultType(inner)

    def iterator(self, inner):
        return IterType(inner)

    def future(self, inner):
        return FutureType(inner)

    def stream(self, inner):
        return StreamType(inner)


class _Ret:
    __slots__ = ("type",)

    def __init__(self, ty):
        self.type = ty


def _with_docs(decl, docs):
    # items are frozen; rebuild with docs attached
    return replace(decl, docs=tuple(docs))


@lru_cache(maxsize=None)
def _lark() -> Lark:
    return Lark.open(
        str(GRAMMAR_PATH),
        start="start",
        parser="lalr",
        propagate_positions=True,
        maybe_placeholders=False,
    )


def _describe_terminal(name: str) -> str:
    if name in _TERMINAL_TEXT:
        return _TERMINAL_TEXT[name]
    try:
        term = _lark().get_terminal(name)
    except KeyError:
        return name.lower()
    if isinstance(term.pattern, PatternStr):
        return term.pattern.value
    return name.lower()


class IDLParser:
    """Parses IDL source text into a Module"""

    def __init__(self, content: str, filename: str = "<idl>"):
        self.content = content
        self.filename = filename

    def parse(self) -> Module:
        try:
            tree = _lark().parse(self.content)
        except UnexpectedInput as e:
            raise self._syntax_error(e) from None

        try:
            module = _ModuleBuilder(self.filename).transform(tree)
        except VisitError as e:
            if isinstance(e.orig_exc, IdlSyntaxError):
                raise e.orig_exc from None
            raise

        logger.debug(
            f"parsed {self.filename}: {len(module.objects)} objects, "
            f"{len(module.functions)} functions, {len(module.enums)} enums"
        )
        return module

    def _syntax_error(self, e: UnexpectedInput) -> IdlSyntaxError:
        line, column, offset = e.line, e.column, e.pos_in_stream
        if isinstance(e, UnexpectedToken):
            expected = e.accepts or e.expected
            got = "end of input" if e.token.type == "$END" else f"`{e.token}`"
            message = f"unexpected {got}"
        elif isinstance(e, UnexpectedCharacters):
            expected = e.allowed or ()
            message = f"unexpected character `{self.content[e.pos_in_stream]}`"
        elif isinstance(e, UnexpectedEOF):
            expected = e.expected
            message = "unexpected end of input"
        else:
            expected = ()
            message = str(e)

        if line is None or line < 0:
            line, column, offset = _end_position(self.content)
        return IdlSyntaxError(
            message, self.filename, line, column, offset or 0,
            expected=[_describe_terminal(t) for t in expected],
        )


def _end_position(content: str) -> tuple:
    lines = content.split("\n")
    return len(lines), len(lines[-1]) + 1, len(content)


def parse_module(source: str, filename: str = "<idl>") -> Module:
    return IDLParser(source, filename).parse()


def parse_file(path, encoding: Optional[str] = None) -> Module:
    path = Path(path)
    return IDLParser(path.read_text(encoding=encoding or config.DEFAULT_FILE_ENCODING), str(path)).parse()
