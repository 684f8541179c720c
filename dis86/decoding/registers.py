from __future__ import annotations

from typing import Optional, Tuple

REG8_NAMES: Tuple[str, ...] = ("al", "cl", "dl", "bl", "ah", "ch", "dh", "bh")
REG16_NAMES: Tuple[str, ...] = ("ax", "cx", "dx", "bx", "sp", "bp", "si", "di")
SREG_NAMES: Tuple[str, ...] = ("es", "cs", "ss", "ds")

# r/m field -> effective address components when mod != 11
EA_BASES: Tuple[Tuple[str, ...], ...] = (
    ("bx", "si"),
    ("bx", "di"),
    ("bp", "si"),
    ("bp", "di"),
    ("si",),
    ("di",),
    ("bp",),
    ("bx",),
)

# mod == 00 with this r/m selects a bare 16-bit address
DIRECT_ADDRESS_RM = 0b110

ACCUMULATOR = 0


def register_name(index: int, width: int) -> str:
    if width == 8:
        return REG8_NAMES[index]
    if width == 16:
        return REG16_NAMES[index]
    raise ValueError(f"Unsupported register width: {width}")


def segment_name(index: int) -> Optional[str]:
    if 0 <= index < len(SREG_NAMES):
        return SREG_NAMES[index]
    return None


__all__ = [
    "ACCUMULATOR",
    "DIRECT_ADDRESS_RM",
    "EA_BASES",
    "REG16_NAMES",
    "REG8_NAMES",
    "SREG_NAMES",
    "register_name",
    "segment_name",
]
