"""C API Generator - generates the C header of the native export contract"""

import logging
from typing import Optional

from . import config
from .abi import AbiFunction, drop_symbol
from .common_generator import CommonGenerator
from .type_mapper import TypeMapper
from .types import Enum, Function, Object, PrimKind

logger = logging.getLogger(__name__)

# C spelling of the host-facing primitive, for documentation comments
_C_PRIMITIVES = {
    PrimKind.U8: "uint8_t", PrimKind.U16: "uint16_t", PrimKind.U32: "uint32_t", PrimKind.U64: "uint64_t",
    PrimKind.I8: "int8_t", PrimKind.I16: "int16_t", PrimKind.I32: "int32_t", PrimKind.I64: "int64_t",
    PrimKind.USIZE: "uintptr_t", PrimKind.ISIZE: "intptr_t",
    PrimKind.BOOL: "bool", PrimKind.F32: "float", PrimKind.F64: "double",
    PrimKind.STRING: "const char*",
}


class CAPIGenerator(CommonGenerator):
    """Generates the header a native module implements"""

    def __init__(self, module, namespace: str, api_macro: str = "", abi=None):
        super().__init__(module, namespace, abi)
        self.api_macro = api_macro or f"{namespace.upper()}_API"
        self.export_macro = f"{namespace.upper()}_EXPORTS"

    def generate_header(self) -> str:
        return self.generate()

    def preamble(self) -> list[str]:
        guard = f"{self.namespace.upper()}_FFI_H"
        lines = [self.banner()]
        lines.extend(f"// {d}" for d in self.module.docs)
        lines.extend([
            f"#ifndef {guard}",
            f"#define {guard}",
            "",
            "#include <stdint.h>",
            "",
            "#ifdef __cplusplus",
            'extern "C" {',
            "#endif",
            "",
            "#ifdef _WIN32",
            f"    #ifdef {self.export_macro}",
            f"        #define {self.api_macro} __declspec(dllexport)",
            "    #else",
            f"        #define {self.api_macro} __declspec(dllimport)",
            "    #endif",
            "#else",
            f'    #define {self.api_macro} __attribute__((visibility("default")))',
            "#endif",
            "",
            "// Wake-up entry point: the host installs it, native code calls it with a slot id",
            f"typedef void (*{self.namespace}_notifier_fn)(uint64_t slot);",
            f"{self.api_macro} void {config.SET_TRAMPOLINE_SYMBOL}({self.namespace}_notifier_fn callback);",
            "",
            "// Poll results are (ready, is_error, err_ptr, err_len, err_cap, value)",
        ])
        for export in self.exports:
            if export.multi_value:
                lines.extend(self._result_struct(export))
        lines.append("")
        lines.extend(self._prototypes([e for e in self.exports if e.role == "alloc"]))
        lines.append("")
        return lines

    def postamble(self) -> list[str]:
        return [
            "#ifdef __cplusplus",
            "}",
            "#endif",
            "",
            f"#endif // {self.namespace.upper()}_FFI_H",
        ]

    # -- capability interface -------------------------------------------

    def emit_primitive(self, kind: PrimKind) -> str:
        return _C_PRIMITIVES[kind]

    def emit_function(self, func: Function, owner: Optional[Object] = None) -> list[str]:
        lines = [f"// {d}" for d in func.docs]
        lines.append(f"// {self._signature(func, owner)}")
        lines.extend(self._prototypes(self.lowering.lower_function(func, owner)))
        return lines

    def emit_object(self, obj: Object) -> list[str]:
        lines = [f"// ---- object {obj.name} ----"]
        lines.extend(f"// {d}" for d in obj.docs)
        lines.extend(self._prototypes([AbiFunction(drop_symbol(obj.name), (self.abi.ptr,), (), "drop")]))
        for method in obj.methods:
            lines.extend(self.emit_function(method, obj))
        lines.append("")
        return lines

    def emit_enum(self, enum: Enum) -> list[str]:
        """Discriminant constants; payload words follow the discriminant"""
        words = self.lowering.enum_payload_words(enum)
        lines = [f"// ---- enum {enum.name}: int32_t discriminant, payload words ({', '.join(words)}) ----"]
        lines.extend(f"// {d}" for d in enum.docs)
        lines.append("enum {")
        for i, entry in enumerate(enum.entries):
            lines.append(f"    {enum.name}_{entry.name} = {i},")
        lines.append("};")
        lines.append("")
        return lines

    # -- helpers --------------------------------------------------------

    def _signature(self, func: Function, owner: Optional[Object]) -> str:
        args = ", ".join(f"{a.name}: {TypeMapper.to_idl(a.type)}" for a in func.args)
        prefix = "static " if func.is_static else ""
        name = f"{owner.name}::{func.name}" if owner is not None else func.name
        ret = f" -> {TypeMapper.to_idl(func.ret)}" if func.ret is not None else ""
        return f"{prefix}fn {name}({args}){ret}"

    def _result_struct(self, export: AbiFunction) -> list[str]:
        lines = ["typedef struct {"]
        for i, word in enumerate(export.results):
            lines.append(f"    {TypeMapper.to_c(word)} w{i};")
        lines.append(f"}} {export.symbol}_result;")
        return lines

    def _prototypes(self, exports) -> list[str]:
        lines = []
        for export in exports:
            if not export.results:
                ret = "void"
            elif export.multi_value:
                ret = f"{export.symbol}_result"
            else:
                ret = TypeMapper.to_c(export.results[0])
            params = ", ".join(f"{TypeMapper.to_c(w)} a{i}" for i, w in enumerate(export.params)) or "void"
            lines.append(f"{self.api_macro} {ret} {export.symbol}({params});")
        return lines
