"""
Table-driven decoding of 8086 machine code into typed instruction records.

The pipeline runs strictly forward over a single `ByteCursor`: prefixes,
opcode lookup, ModRM/displacement, immediates. Nothing here formats text;
see `dis86.printer` for that.
"""

from .bind import (  # noqa: F401
    DecodedInstr,
    FarPointer,
    Immediate,
    Memory,
    ModRM,
    Operand,
    Prefixes,
    Register,
    RelativeTarget,
    RepeatKind,
)
from .decode_map import OpcodeDescriptor, Scheme, Shortcut, lookup_opcode  # noqa: F401
from .decoder import decode_instruction  # noqa: F401
from .errors import (  # noqa: F401
    DecodeError,
    UnexpectedEndOfInput,
    UnknownOpcode,
    UnsupportedEncoding,
)
from .immediates import read_immediate, read_relative  # noqa: F401
from .modrm import decode_modrm  # noqa: F401
from .prefixes import classify_prefixes  # noqa: F401
from .reader import ByteCursor  # noqa: F401
from . import decode_map  # noqa: F401

__all__ = [
    "ByteCursor",
    "DecodeError",
    "DecodedInstr",
    "FarPointer",
    "Immediate",
    "Memory",
    "ModRM",
    "OpcodeDescriptor",
    "Operand",
    "Prefixes",
    "Register",
    "RelativeTarget",
    "RepeatKind",
    "Scheme",
    "Shortcut",
    "UnexpectedEndOfInput",
    "UnknownOpcode",
    "UnsupportedEncoding",
    "classify_prefixes",
    "decode_instruction",
    "decode_map",
    "decode_modrm",
    "lookup_opcode",
    "read_immediate",
    "read_relative",
]
