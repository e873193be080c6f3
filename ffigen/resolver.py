"""Resolver - validates a parsed Module and binds named type references"""

import logging
from collections import Counter
from dataclasses import replace
from typing import Optional

from .errors import ResolutionError, ResolutionErrorKind, ResolutionFailed
from .types import (
    ASYNC_TYPES, NUMERIC_KINDS,
    BufferType, Enum, EnumEntry, Function, Module, NamedType, Object, TupleType,
    TypeExpr, WrapperType, walk_type,
)

logger = logging.getLogger(__name__)

_ASYNC_NAMES = {"IterType": "Iterator", "FutureType": "Future", "StreamType": "Stream"}


class Resolver:
    """Checks module invariants and produces the resolved Module.

    All checks run to completion so that one pass reports every problem.
    """

    def __init__(self, module: Module, filename: str = "<idl>"):
        self.module = module
        self.filename = filename
        self.kinds = {}  # top-level name -> "object" | "enum" | "function"
        self.errors = []

    def check(self) -> list:
        """Return every ResolutionError found in the module"""
        self.errors = []
        self.kinds = {}

        self._check_namespace()
        for item in self.module.items:
            if isinstance(item, Object):
                self._check_object(item)
            elif isinstance(item, Function):
                if item.is_static:
                    self._error(
                        item.name, ResolutionErrorKind.STATIC_FUNCTION,
                        f"`static` only applies to object methods; `{item.name}` is a free function",
                        item.line,
                    )
                self._check_function(item, item.name)
            elif isinstance(item, Enum):
                self._check_enum(item)

        logger.debug(f"resolved {len(self.module.items)} items in {self.filename}, {len(self.errors)} errors")
        return list(self.errors)

    def resolve(self) -> Module:
        """Return the resolved Module or raise ResolutionFailed"""
        errors = self.check()
        if errors:
            raise ResolutionFailed(errors, self.filename)
        return replace(self.module, items=tuple(self._bind_item(i) for i in self.module.items))

    # -- checks ---------------------------------------------------------

    def _error(self, item: str, kind: ResolutionErrorKind, message: str, line: int = 0):
        self.errors.append(ResolutionError(item, kind, message, line))

    def _check_namespace(self):
        for item in self.module.items:
            kind = "object" if isinstance(item, Object) else "enum" if isinstance(item, Enum) else "function"
            if item.name in self.kinds:
                self._error(
                    item.name, ResolutionErrorKind.DUPLICATE_NAME,
                    f"`{item.name}` is already declared as {_article(self.kinds[item.name])}",
                    item.line,
                )
                continue
            self.kinds[item.name] = kind

    def _check_object(self, obj: Object):
        for name, count in Counter(m.name for m in obj.methods).items():
            if count > 1:
                self._error(
                    f"{obj.name}.{name}", ResolutionErrorKind.DUPLICATE_NAME,
                    f"method `{name}` is declared {count} times in object `{obj.name}`",
                    obj.line,
                )
        for method in obj.methods:
            self._check_function(method, f"{obj.name}.{method.name}")

    def _check_function(self, func: Function, path: str):
        for name, count in Counter(a.name for a in func.args).items():
            if count > 1:
                self._error(
                    path, ResolutionErrorKind.DUPLICATE_NAME,
                    f"argument `{name}` is declared {count} times",
                    func.line,
                )
        for arg in func.args:
            self._check_type(arg.type, path, func.line, argument=arg.name)
        if func.ret is not None:
            self._check_type(func.ret, path, func.line)

    def _check_enum(self, enum: Enum):
        if not enum.entries:
            self._error(
                enum.name, ResolutionErrorKind.EMPTY_ENUM,
                f"enum `{enum.name}` has no entries",
                enum.line,
            )
        for name, count in Counter(e.name for e in enum.entries).items():
            if count > 1:
                self._error(
                    f"{enum.name}::{name}", ResolutionErrorKind.DUPLICATE_NAME,
                    f"entry `{name}` is declared {count} times in enum `{enum.name}`",
                    enum.line,
                )
        for entry in enum.entries:
            if entry.payload is not None:
                # payloads cross the boundary in the argument direction too
                self._check_type(entry.payload, f"{enum.name}::{entry.name}", enum.line, argument=entry.name)

    def _check_type(self, ty: TypeExpr, path: str, line: int, argument: Optional[str] = None):
        reported_async = False
        for node in walk_type(ty):
            if isinstance(node, NamedType):
                kind = self.kinds.get(node.name)
                if kind not in ("object", "enum"):
                    what = "is a function, not a type" if kind == "function" else "is not declared"
                    self._error(
                        path, ResolutionErrorKind.UNDEFINED_NAME,
                        f"type `{node.name}` {what}",
                        line,
                    )
            elif isinstance(node, BufferType):
                if node.elem not in NUMERIC_KINDS:
                    self._error(
                        path, ResolutionErrorKind.INVALID_BUFFER,
                        f"buffer element `{node.elem.value}` is not a fixed-width numeric type",
                        line,
                    )
            elif isinstance(node, ASYNC_TYPES) and argument is not None and not reported_async:
                reported_async = True
                self._error(
                    path, ResolutionErrorKind.ASYNC_ARGUMENT,
                    f"`{argument}` uses {_ASYNC_NAMES[type(node).__name__]}<..>, "
                    "which is only allowed in return position",
                    line,
                )

    # -- binding --------------------------------------------------------

    def _bind_item(self, item):
        if isinstance(item, Object):
            return replace(item, methods=tuple(self._bind_function(m) for m in item.methods))
        if isinstance(item, Function):
            return self._bind_function(item)
        return replace(item, entries=tuple(
            EnumEntry(e.name, None if e.payload is None else self._bind_type(e.payload))
            for e in item.entries
        ))

    def _bind_function(self, func: Function) -> Function:
        args = tuple(replace(a, type=self._bind_type(a.type)) for a in func.args)
        ret = None if func.ret is None else self._bind_type(func.ret)
        return replace(func, args=args, ret=ret)

    def _bind_type(self, ty: TypeExpr) -> TypeExpr:
        if isinstance(ty, NamedType):
            return NamedType(ty.name, self.kinds[ty.name])
        if isinstance(ty, TupleType):
            return TupleType(tuple(self._bind_type(e) for e in ty.elems))
        if isinstance(ty, WrapperType):
            return type(ty)(self._bind_type(ty.inner))
        return ty


def _article(kind: str) -> str:
    return f"an {kind}" if kind[0] in "aeiou" else f"a {kind}"


def resolve_module(module: Module, filename: str = "<idl>") -> Module:
    return Resolver(module, filename).resolve()
