from __future__ import annotations

from typing import Tuple

from .bind import Memory, ModRM, Operand, Prefixes, Register
from .decode_map import OpcodeDescriptor
from .reader import ByteCursor
from .registers import DIRECT_ADDRESS_RM, EA_BASES, register_name


def decode_modrm(
    cursor: ByteCursor, descriptor: OpcodeDescriptor, prefixes: Prefixes
) -> Tuple[ModRM, Operand]:
    """
    Consume a ModRM byte plus any displacement and return the r/m operand.

    The displacement keeps the width it was encoded with (`disp_width`), so a
    disp8 of zero or a disp16 that would fit in a byte survives to the printer.
    The segment override, if any, is attached to memory operands only.
    """
    modrm = ModRM.from_byte(cursor.read_u8())
    width = descriptor.width or 16

    if modrm.register_direct:
        return modrm, Register(register_name(modrm.rm, width), width)

    if modrm.mod == 0b00 and modrm.rm == DIRECT_ADDRESS_RM:
        address = cursor.read_u16()
        return modrm, Memory((), address, 16, prefixes.segment, width)

    if modrm.mod == 0b01:
        disp, disp_width = cursor.read_s8(), 8
    elif modrm.mod == 0b10:
        disp, disp_width = cursor.read_s16(), 16
    else:
        disp, disp_width = 0, 0

    return modrm, Memory(EA_BASES[modrm.rm], disp, disp_width, prefixes.segment, width)


__all__ = ["decode_modrm"]
