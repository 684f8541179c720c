"""
dis86: an 8086 disassembler whose output reassembles byte-identically.

Decoding lives in `dis86.decoding`; `dis86.printer` turns decoded records
into NASM text and `dis86.driver` runs the pass over a whole image.
"""

__version__ = "0.1.0"

from .config import DisasmConfig, FailurePolicy, load_disasm_config  # noqa: E402
from .driver import Driver, decode_all, disassemble  # noqa: E402
from .printer import format_instruction, render  # noqa: E402

__all__ = [
    "DisasmConfig",
    "Driver",
    "FailurePolicy",
    "__version__",
    "decode_all",
    "disassemble",
    "format_instruction",
    "load_disasm_config",
    "render",
]
