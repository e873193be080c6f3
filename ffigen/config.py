"""
Configuration constants shared by the generator and the runtime
"""

import ctypes

# ABI shape constants
POLL_TUPLE_WIDTH = 6  # (ready, is_error, err_ptr, err_len, err_cap, value)
DEFAULT_PTR_BITS = 32  # wasm32 linear memory
HOST_PTR_BITS = ctypes.sizeof(ctypes.c_void_p) * 8  # libraries loaded in-process
DEFAULT_SLOT_WORD_BITS = 32  # notifier slot ids cross the ABI as two 32-bit halves
SLOT_ID_BITS = 64
SPILL_WORD_SIZE = 8  # bytes per word when a multi-word value is returned through memory
STRING_ALIGN = 1

# Native export naming
EXPORT_PREFIX = "__"
ALLOCATE_SYMBOL = "allocate"
DEALLOCATE_SYMBOL = "deallocate"
SET_TRAMPOLINE_SYMBOL = "__notifier_set_callback"

# Generated file naming
GENERATED_BANNER = "AUTO-GENERATED - DO NOT EDIT"
DEFAULT_OUTPUT_DIR = "generated"

# Shared library search paths, relative to the generated bindings
LIBRARY_SEARCH_PATHS = (
    ".",
    "lib",
    "../lib",
    "../build",
)

# Environment variables
LOG_LEVEL_ENV = "FFIGEN_LOG_LEVEL"
COLOR_ENV = "FFIGEN_COLOR"
DEFAULT_LOG_LEVEL = "WARNING"

# File encoding
DEFAULT_FILE_ENCODING = "utf-8"
