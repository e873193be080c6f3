"""Error taxonomy and diagnostic rendering"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from . import config


def use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    explicit = os.environ.get(config.COLOR_ENV, "").lower()
    if explicit in ("0", "false", "no", "never"):
        return False
    return True


_BOLD = "\033[1m"
_RED = "\033[31m"
_BLUE = "\033[34m"
_RESET = "\033[0m"


def _style(text: str, *codes: str, color: bool = True) -> str:
    if not color:
        return text
    return f"{''.join(codes)}{text}{_RESET}"


def render_diagnostic(
    message: str,
    filename: str,
    line: int = 0,
    column: int = 0,
    source: Optional[str] = None,
    color: bool = False,
) -> str:
    """Render one error in rustc style.

    Example (plain)::

        error: expected one of: ">", got ","
         --> api.idl:3:17
          |
        3 | fn f(a: Vec<u8, u8>);
          |                ^
    """
    out = [_style("error", _BOLD, _RED, color=color) + _style(f": {message}", _BOLD, color=color)]
    if line <= 0:
        out.append(_style(" --> ", _BOLD, _BLUE, color=color) + filename)
        return "\n".join(out)

    gutter = len(str(line))
    out.append(_style(" " * gutter + "--> ", _BOLD, _BLUE, color=color) + f"{filename}:{line}:{column}")
    lines = source.split("\n") if source is not None else []
    if 0 < line <= len(lines):
        bar = _style(" " * (gutter + 1) + "|", _BOLD, _BLUE, color=color)
        out.append(bar)
        out.append(_style(f"{line} | ", _BOLD, _BLUE, color=color) + lines[line - 1])
        caret = " " * max(column - 1, 0) + "^"
        out.append(bar + " " + _style(caret, _BOLD, _RED, color=color))
    return "\n".join(out)


class FfiGenError(Exception):
    """Base exception for all ffigen errors"""


# ---------------------------------------------------------------------------
# Compile-time errors
# ---------------------------------------------------------------------------

class IdlSyntaxError(FfiGenError):
    """Malformed IDL text, with the position of the offending input"""

    def __init__(
        self,
        message: str,
        filename: str = "<idl>",
        line: int = 0,
        column: int = 0,
        offset: int = 0,
        expected: Iterable[str] = (),
    ):
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column
        self.offset = offset
        self.expected = frozenset(expected)
        super().__init__(message)

    def __str__(self):
        text = f"{self.filename}:{self.line}:{self.column}: {self.message}"
        if self.expected:
            text += f" (expected one of: {', '.join(sorted(self.expected))})"
        return text

    def render(self, source: Optional[str] = None, color: Optional[bool] = None) -> str:
        message = self.message
        if self.expected:
            message += f" (expected one of: {', '.join(sorted(self.expected))})"
        return render_diagnostic(
            message, self.filename, self.line, self.column, source,
            color=use_color() if color is None else color,
        )


class ResolutionErrorKind(Enum):
    UNDEFINED_NAME = "undefined name"
    DUPLICATE_NAME = "duplicate name"
    EMPTY_ENUM = "empty enum"
    ASYNC_ARGUMENT = "async type in argument position"
    INVALID_BUFFER = "invalid buffer element"
    STATIC_FUNCTION = "static free function"


@dataclass(frozen=True)
class ResolutionError:
    """One resolver diagnostic, naming the item and the violated rule"""
    item: str
    kind: ResolutionErrorKind
    message: str
    line: int = 0

    def __str__(self):
        return f"{self.item}: {self.kind.value}: {self.message}"


class ResolutionFailed(FfiGenError):
    """Raised by Resolver.resolve() with every diagnostic collected"""

    def __init__(self, errors: list, filename: str = "<idl>"):
        self.errors = list(errors)
        self.filename = filename
        count = len(self.errors)
        super().__init__(f"resolution failed with {count} error{'s' if count != 1 else ''}")

    def render(self, source: Optional[str] = None, color: Optional[bool] = None) -> str:
        color = use_color() if color is None else color
        parts = [
            render_diagnostic(str(e), self.filename, e.line, 1 if e.line else 0, source, color=color)
            for e in self.errors
        ]
        count = len(self.errors)
        parts.append(
            _style("error", _BOLD, _RED, color=color)
            + _style(f": aborting due to {count} previous error{'s' if count != 1 else ''}", _BOLD, color=color)
        )
        return "\n\n".join(parts)


class GeneratorError(FfiGenError):
    """A resolved type shape that the calling convention cannot express"""


# ---------------------------------------------------------------------------
# Run-time errors
# ---------------------------------------------------------------------------

class OwnershipError(FfiGenError):
    """Misuse of an ownership token. Always a programmer error."""


class UseAfterFree(OwnershipError):
    pass


class UseAfterMove(OwnershipError):
    pass


class DoubleFree(OwnershipError):
    pass


class InteropError(FfiGenError):
    """Failure reported by the native side through a result or future"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DecodeError(FfiGenError):
    """Glue code and native module disagree about the ABI"""
