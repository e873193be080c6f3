"""Common Generator - the per-target capability interface shared by all emitters"""

import abc
from typing import Optional

from . import config
from .abi import Abi, Lowering
from .types import Enum, Function, Module, Object, PrimKind


class CommonGenerator(abc.ABC):
    """Walks a resolved module and emits target text through four hooks.

    A target implements emit_primitive, emit_function, emit_object and
    emit_enum. The module walk, the ABI lowering and the export contract are
    shared, so the resolved AST stays target-agnostic.
    """

    def __init__(self, module: Module, namespace: str, abi: Optional[Abi] = None):
        self.module = module
        self.namespace = namespace
        self.abi = abi or Abi()
        self.lowering = Lowering(module, self.abi)

    def generate(self) -> str:
        """Generate the complete output file"""
        # lowering first: unsupported shapes fail before any text is produced
        self.exports = self.lowering.exports()
        lines = self.preamble()
        for item in self.module.items:
            if isinstance(item, Object):
                lines.extend(self.emit_object(item))
            elif isinstance(item, Function):
                lines.extend(self.emit_function(item))
            elif isinstance(item, Enum):
                lines.extend(self.emit_enum(item))
        lines.extend(self.postamble())
        return "\n".join(lines) + "\n"

    def preamble(self) -> list[str]:
        return []

    def postamble(self) -> list[str]:
        return []

    @abc.abstractmethod
    def emit_primitive(self, kind: PrimKind) -> str:
        """Target spelling of one primitive"""

    @abc.abstractmethod
    def emit_function(self, func: Function, owner: Optional[Object] = None) -> list[str]:
        """Lines for one free function, or one member of owner"""

    @abc.abstractmethod
    def emit_object(self, obj: Object) -> list[str]:
        pass

    @abc.abstractmethod
    def emit_enum(self, enum: Enum) -> list[str]:
        pass

    # -- helpers --------------------------------------------------------

    def banner(self, comment: str = "//") -> str:
        return f"{comment} {config.GENERATED_BANNER}"

    def section(self, title: str, comment: str = "#") -> list[str]:
        rule = f"{comment} " + "═" * 62
        return [rule, f"{comment} {title}", rule, ""]

    def export_symbol(self, func: Function, owner: Optional[Object] = None) -> str:
        return self.lowering.export_name(func, owner)
