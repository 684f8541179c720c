from __future__ import annotations

from typing import Optional

from .bind import Immediate, RelativeTarget
from .reader import ByteCursor


def read_immediate(
    cursor: ByteCursor, encoded_width: int, width: Optional[int] = None, signed: bool = False
) -> Immediate:
    """
    Read an immediate of `encoded_width` bits and widen it to `width`.

    With `signed` set (the s-bit form), a byte is sign-extended; otherwise it
    is zero-extended. The result always holds the unsigned value at `width`.
    """
    width = width or encoded_width
    if encoded_width == 8:
        raw = cursor.read_s8() if signed else cursor.read_u8()
    elif encoded_width == 16:
        raw = cursor.read_u16()
    else:
        raise ValueError(f"Unsupported immediate width: {encoded_width}")
    return Immediate(raw & ((1 << width) - 1), width, encoded_width)


def read_relative(cursor: ByteCursor, width: int, origin: int = 0) -> RelativeTarget:
    """
    Read a branch displacement and resolve it against the end of the
    instruction, which is the cursor position once the displacement is read.
    """
    if width == 8:
        disp = cursor.read_s8()
    elif width == 16:
        disp = cursor.read_s16()
    else:
        raise ValueError(f"Unsupported displacement width: {width}")
    return RelativeTarget(disp, origin + cursor.offset + disp, width)


__all__ = ["read_immediate", "read_relative"]
