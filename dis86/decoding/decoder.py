from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Tuple

from .bind import (
    DecodedInstr,
    FarPointer,
    Immediate,
    Memory,
    ModRM,
    Operand,
    Prefixes,
    Register,
)
from .decode_map import OpcodeDescriptor, Scheme, lookup_opcode
from .errors import DecodeError, UnexpectedEndOfInput, UnknownOpcode
from .immediates import read_immediate, read_relative
from .modrm import decode_modrm
from .prefixes import classify_prefixes
from .reader import ByteCursor
from .registers import ACCUMULATOR, register_name, segment_name

logger = logging.getLogger(__name__)

Operands = Tuple[Operand, ...]
Decoded = Tuple[Optional[ModRM], Operands]


class _OperandContext:
    """Per-instruction state shared by the scheme handlers."""

    def __init__(
        self,
        cursor: ByteCursor,
        opcode: int,
        opcode_offset: int,
        descriptor: OpcodeDescriptor,
        prefixes: Prefixes,
        origin: int,
    ) -> None:
        self.cursor = cursor
        self.opcode = opcode
        self.opcode_offset = opcode_offset
        self.descriptor = descriptor
        self.prefixes = prefixes
        self.origin = origin

    @property
    def width(self) -> int:
        return self.descriptor.width or 16

    def accumulator(self) -> Register:
        return Register(register_name(ACCUMULATOR, self.width), self.width)

    def invalid(self, detail: str) -> UnknownOpcode:
        return UnknownOpcode(self.opcode, self.opcode_offset, detail)


def _ordered(first_is_reg: bool, reg: Operand, other: Operand) -> Operands:
    return (reg, other) if first_is_reg else (other, reg)


def _none(ctx: _OperandContext) -> Decoded:
    return None, ()


def _register(ctx: _OperandContext) -> Decoded:
    return None, (Register(register_name(ctx.descriptor.reg, 16), 16),)


def _acc_register(ctx: _OperandContext) -> Decoded:
    return None, (ctx.accumulator(), Register(register_name(ctx.descriptor.reg, 16), 16))


def _register_immediate(ctx: _OperandContext) -> Decoded:
    desc = ctx.descriptor
    reg = Register(register_name(desc.reg, ctx.width), ctx.width)
    return None, (reg, read_immediate(ctx.cursor, desc.imm_width, ctx.width))


def _segment(ctx: _OperandContext) -> Decoded:
    return None, (Register(segment_name(ctx.descriptor.reg), 16),)


def _rm(ctx: _OperandContext) -> Tuple[ModRM, Operand]:
    modrm, operand = decode_modrm(ctx.cursor, ctx.descriptor, ctx.prefixes)
    if ctx.descriptor.memory_only and modrm.register_direct:
        raise ctx.invalid("register operand where memory is required")
    return modrm, operand


def _modrm_register(ctx: _OperandContext) -> Decoded:
    modrm, rm = _rm(ctx)
    reg = Register(register_name(modrm.reg, ctx.width), ctx.width)
    return modrm, _ordered(ctx.descriptor.reg_first, reg, rm)


def _modrm_segment(ctx: _OperandContext) -> Decoded:
    modrm, rm = _rm(ctx)
    name = segment_name(modrm.reg)
    if name is None:
        raise ctx.invalid(f"no segment register {modrm.reg}")
    if ctx.descriptor.reg_first and name == "cs":
        raise ctx.invalid("cs is not a valid destination")
    return modrm, _ordered(ctx.descriptor.reg_first, Register(name, 16), rm)


def _modrm_immediate(ctx: _OperandContext) -> Decoded:
    desc = ctx.descriptor
    modrm, rm = _rm(ctx)
    imm = read_immediate(ctx.cursor, desc.imm_width, ctx.width, signed=desc.s_bit)
    return modrm, (rm, imm)


def _modrm(ctx: _OperandContext) -> Decoded:
    modrm, rm = _rm(ctx)
    return modrm, (rm,)


def _modrm_shift(ctx: _OperandContext) -> Decoded:
    modrm, rm = _rm(ctx)
    if ctx.descriptor.count == "cl":
        return modrm, (rm, Register("cl", 8))
    return modrm, (rm, Immediate(1, 8, 0))


def _acc_immediate(ctx: _OperandContext) -> Decoded:
    desc = ctx.descriptor
    return None, (ctx.accumulator(), read_immediate(ctx.cursor, desc.imm_width, ctx.width))


def _acc_memory(ctx: _OperandContext) -> Decoded:
    address = ctx.cursor.read_u16()
    memory = Memory((), address, 16, ctx.prefixes.segment, ctx.width)
    return None, _ordered(ctx.descriptor.reg_first, ctx.accumulator(), memory)


def _port_immediate(ctx: _OperandContext) -> Decoded:
    port = read_immediate(ctx.cursor, 8)
    return None, _ordered(ctx.descriptor.reg_first, ctx.accumulator(), port)


def _port_dx(ctx: _OperandContext) -> Decoded:
    return None, _ordered(ctx.descriptor.reg_first, ctx.accumulator(), Register("dx", 16))


def _relative(ctx: _OperandContext) -> Decoded:
    return None, (read_relative(ctx.cursor, ctx.descriptor.imm_width, ctx.origin),)


def _far_pointer(ctx: _OperandContext) -> Decoded:
    offset = ctx.cursor.read_u16()
    segment = ctx.cursor.read_u16()
    return None, (FarPointer(segment, offset),)


def _immediate(ctx: _OperandContext) -> Decoded:
    return None, (read_immediate(ctx.cursor, ctx.descriptor.imm_width),)


SCHEME_HANDLERS: Dict[Scheme, Callable[[_OperandContext], Decoded]] = {
    Scheme.NONE: _none,
    Scheme.STRING: _none,
    Scheme.REGISTER: _register,
    Scheme.ACC_REGISTER: _acc_register,
    Scheme.REGISTER_IMMEDIATE: _register_immediate,
    Scheme.SEGMENT: _segment,
    Scheme.MODRM_REGISTER: _modrm_register,
    Scheme.MODRM_SEGMENT: _modrm_segment,
    Scheme.MODRM_IMMEDIATE: _modrm_immediate,
    Scheme.MODRM: _modrm,
    Scheme.MODRM_SHIFT: _modrm_shift,
    Scheme.ACC_IMMEDIATE: _acc_immediate,
    Scheme.ACC_MEMORY: _acc_memory,
    Scheme.PORT_IMMEDIATE: _port_immediate,
    Scheme.PORT_DX: _port_dx,
    Scheme.RELATIVE: _relative,
    Scheme.FAR_POINTER: _far_pointer,
    Scheme.IMMEDIATE: _immediate,
}


def decode_instruction(cursor: ByteCursor, origin: int = 0) -> DecodedInstr:
    """
    Decode one instruction starting at the cursor.

    On success the cursor sits on the first byte after the instruction and
    the record's `length` equals the bytes consumed. On failure the cursor is
    restored to where it started and the `DecodeError` propagates.
    """
    start = cursor.offset
    opcode_offset = start
    try:
        prefixes = classify_prefixes(cursor)
        opcode_offset = cursor.offset
        opcode, descriptor = lookup_opcode(cursor)
        ctx = _OperandContext(cursor, opcode, opcode_offset, descriptor, prefixes, origin)
        modrm, operands = SCHEME_HANDLERS[descriptor.scheme](ctx)
    except UnexpectedEndOfInput as exc:
        cursor.seek(start)
        # a prefix run cut short reports its first prefix byte
        index = min(opcode_offset, len(cursor.data) - 1)
        byte = cursor.data[index] if index >= start else None
        raise UnexpectedEndOfInput(start, exc.needed, exc.remaining, byte) from exc
    except DecodeError:
        cursor.seek(start)
        raise

    raw = cursor.slice_from(start)
    return DecodedInstr(
        offset=start,
        length=len(raw),
        raw=raw,
        opcode=opcode,
        descriptor=descriptor,
        operands=operands,
        prefixes=prefixes,
        modrm=modrm,
        origin=origin,
    )


__all__ = ["SCHEME_HANDLERS", "decode_instruction"]
