"""
Static opcode table for the 8086 one-byte opcode map.

`OPCODES` maps every recognised opcode byte to an `OpcodeDescriptor`;
`GROUPS` maps the opcodes that overload the ModRM reg field to eight
per-extension descriptors (None marks an undefined slot). Adding an opcode
is a data change here, never a change to the decoder's control flow.

Besides the fields the decoder needs (scheme, width, immediate width), each
descriptor carries the metadata the printer uses to pick a textual form the
assembler re-encodes to the same bytes: which shorter opcode shadows a
register-direct form, whether a word immediate has a sign-extended twin, and
whether a memory operand needs an explicit size.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from .errors import UnknownOpcode, UnsupportedEncoding
from .reader import ByteCursor


class Scheme(str, Enum):
    """How the operands of an opcode are encoded."""

    NONE = "none"
    STRING = "string"
    REGISTER = "register"  # r16 in the low three opcode bits
    ACC_REGISTER = "acc_register"  # xchg ax, r16
    REGISTER_IMMEDIATE = "register_immediate"  # mov r, imm
    SEGMENT = "segment"  # push/pop sreg
    MODRM_REGISTER = "modrm_register"
    MODRM_SEGMENT = "modrm_segment"
    MODRM_IMMEDIATE = "modrm_immediate"
    MODRM = "modrm"
    MODRM_SHIFT = "modrm_shift"
    ACC_IMMEDIATE = "acc_immediate"
    ACC_MEMORY = "acc_memory"
    PORT_IMMEDIATE = "port_immediate"
    PORT_DX = "port_dx"
    RELATIVE = "relative"
    FAR_POINTER = "far_pointer"
    IMMEDIATE = "immediate"


class Shortcut(str, Enum):
    """A shorter opcode that covers some register-direct forms."""

    ACC_RM = "acc_rm"  # r/m operand is AL/AX
    ANY_RM = "any_rm"  # r/m operand is any register
    ACC_EITHER = "acc_either"  # either register operand is AX


MODRM_SCHEMES = frozenset(
    {
        Scheme.MODRM_REGISTER,
        Scheme.MODRM_SEGMENT,
        Scheme.MODRM_IMMEDIATE,
        Scheme.MODRM,
        Scheme.MODRM_SHIFT,
    }
)


@dataclass(frozen=True, slots=True)
class OpcodeDescriptor:
    mnemonic: str
    scheme: Scheme
    width: Optional[int] = None  # operand width in bits
    w_bit: bool = False  # width selected by the opcode's w bit
    s_bit: bool = False  # imm8 sign-extended to `width`
    d_bit: bool = False  # opcode carries a direction bit
    reg_first: bool = False  # reg-field operand is printed first
    reg: Optional[int] = None  # fixed register / segment index
    imm_width: Optional[int] = None
    branch: Optional[str] = None  # "short", "near" or "far"
    sized_memory: bool = False  # memory operand needs byte/word
    shortcut: Optional[Shortcut] = None
    sbyte_shortcut: bool = False
    moffs_shortcut: bool = False
    memory_only: bool = False
    alias: bool = False  # undocumented duplicate of another opcode
    count: Optional[str] = None  # shift count: "1" or "cl"
    repe: bool = False  # F3 reads as repe/repz
    implicit_imm: Optional[int] = None  # immediate the bare mnemonic implies

    @property
    def has_modrm(self) -> bool:
        return self.scheme in MODRM_SCHEMES


D = OpcodeDescriptor


def _alu(base: int, mnemonic: str) -> Dict[int, OpcodeDescriptor]:
    return {
        base + 0: D(mnemonic, Scheme.MODRM_REGISTER, 8, w_bit=True, d_bit=True),
        base + 1: D(mnemonic, Scheme.MODRM_REGISTER, 16, w_bit=True, d_bit=True),
        base + 2: D(mnemonic, Scheme.MODRM_REGISTER, 8, w_bit=True, d_bit=True, reg_first=True),
        base + 3: D(mnemonic, Scheme.MODRM_REGISTER, 16, w_bit=True, d_bit=True, reg_first=True),
        base + 4: D(mnemonic, Scheme.ACC_IMMEDIATE, 8, w_bit=True, imm_width=8),
        base + 5: D(mnemonic, Scheme.ACC_IMMEDIATE, 16, w_bit=True, imm_width=16, sbyte_shortcut=True),
    }


def _simple(pairs: Iterable[Tuple[int, str]]) -> Dict[int, OpcodeDescriptor]:
    return {opcode: D(mnemonic, Scheme.NONE) for opcode, mnemonic in pairs}


def _string(base: int, stem: str, repe: bool = False) -> Dict[int, OpcodeDescriptor]:
    return {
        base: D(stem + "b", Scheme.STRING, 8, w_bit=True, repe=repe),
        base + 1: D(stem + "w", Scheme.STRING, 16, w_bit=True, repe=repe),
    }


def _per_register(base: int, mnemonic: str, scheme: Scheme, **kw) -> Dict[int, OpcodeDescriptor]:
    return {base + r: D(mnemonic, scheme, 16, reg=r, **kw) for r in range(8)}


JCC_MNEMONICS = (
    "jo", "jno", "jb", "jnb", "je", "jne", "jbe", "ja",
    "js", "jns", "jp", "jnp", "jl", "jnl", "jle", "jg",
)  # fmt: skip

ALU_MNEMONICS = ("add", "or", "adc", "sbb", "and", "sub", "xor", "cmp")

SHIFT_MNEMONICS = ("rol", "ror", "rcl", "rcr", "shl", "shr", None, "sar")


OPCODES: Dict[int, OpcodeDescriptor] = {
    **_alu(0x00, "add"),
    **_alu(0x08, "or"),
    **_alu(0x10, "adc"),
    **_alu(0x18, "sbb"),
    **_alu(0x20, "and"),
    **_alu(0x28, "sub"),
    **_alu(0x30, "xor"),
    **_alu(0x38, "cmp"),
    0x06: D("push", Scheme.SEGMENT, 16, reg=0),
    0x07: D("pop", Scheme.SEGMENT, 16, reg=0),
    0x0E: D("push", Scheme.SEGMENT, 16, reg=1),
    0x16: D("push", Scheme.SEGMENT, 16, reg=2),
    0x17: D("pop", Scheme.SEGMENT, 16, reg=2),
    0x1E: D("push", Scheme.SEGMENT, 16, reg=3),
    0x1F: D("pop", Scheme.SEGMENT, 16, reg=3),
    **_simple([(0x27, "daa"), (0x2F, "das"), (0x37, "aaa"), (0x3F, "aas")]),
    **_per_register(0x40, "inc", Scheme.REGISTER),
    **_per_register(0x48, "dec", Scheme.REGISTER),
    **_per_register(0x50, "push", Scheme.REGISTER),
    **_per_register(0x58, "pop", Scheme.REGISTER),
    **{
        0x70 + cc: D(name, Scheme.RELATIVE, imm_width=8, branch="short")
        for cc, name in enumerate(JCC_MNEMONICS)
    },
    # 0x80-0x83, 0x8F: see GROUPS
    0x84: D("test", Scheme.MODRM_REGISTER, 8, w_bit=True),
    0x85: D("test", Scheme.MODRM_REGISTER, 16, w_bit=True),
    0x86: D("xchg", Scheme.MODRM_REGISTER, 8, w_bit=True, reg_first=True),
    0x87: D("xchg", Scheme.MODRM_REGISTER, 16, w_bit=True, reg_first=True, shortcut=Shortcut.ACC_EITHER),
    0x88: D("mov", Scheme.MODRM_REGISTER, 8, w_bit=True, d_bit=True, moffs_shortcut=True),
    0x89: D("mov", Scheme.MODRM_REGISTER, 16, w_bit=True, d_bit=True, moffs_shortcut=True),
    0x8A: D("mov", Scheme.MODRM_REGISTER, 8, w_bit=True, d_bit=True, reg_first=True, moffs_shortcut=True),
    0x8B: D("mov", Scheme.MODRM_REGISTER, 16, w_bit=True, d_bit=True, reg_first=True, moffs_shortcut=True),
    0x8C: D("mov", Scheme.MODRM_SEGMENT, 16),
    0x8D: D("lea", Scheme.MODRM_REGISTER, 16, reg_first=True, memory_only=True),
    0x8E: D("mov", Scheme.MODRM_SEGMENT, 16, reg_first=True),
    0x90: D("nop", Scheme.NONE),
    **{0x90 + r: D("xchg", Scheme.ACC_REGISTER, 16, reg=r) for r in range(1, 8)},
    **_simple([(0x98, "cbw"), (0x99, "cwd"), (0x9B, "wait")]),
    0x9A: D("call", Scheme.FAR_POINTER),
    **_simple([(0x9C, "pushf"), (0x9D, "popf"), (0x9E, "sahf"), (0x9F, "lahf")]),
    0xA0: D("mov", Scheme.ACC_MEMORY, 8, w_bit=True, reg_first=True),
    0xA1: D("mov", Scheme.ACC_MEMORY, 16, w_bit=True, reg_first=True),
    0xA2: D("mov", Scheme.ACC_MEMORY, 8, w_bit=True),
    0xA3: D("mov", Scheme.ACC_MEMORY, 16, w_bit=True),
    **_string(0xA4, "movs"),
    **_string(0xA6, "cmps", repe=True),
    0xA8: D("test", Scheme.ACC_IMMEDIATE, 8, w_bit=True, imm_width=8),
    0xA9: D("test", Scheme.ACC_IMMEDIATE, 16, w_bit=True, imm_width=16),
    **_string(0xAA, "stos"),
    **_string(0xAC, "lods"),
    **_string(0xAE, "scas", repe=True),
    **{0xB0 + r: D("mov", Scheme.REGISTER_IMMEDIATE, 8, w_bit=True, reg=r, imm_width=8) for r in range(8)},
    **{0xB8 + r: D("mov", Scheme.REGISTER_IMMEDIATE, 16, w_bit=True, reg=r, imm_width=16) for r in range(8)},
    0xC2: D("ret", Scheme.IMMEDIATE, imm_width=16),
    0xC3: D("ret", Scheme.NONE),
    0xC4: D("les", Scheme.MODRM_REGISTER, 16, reg_first=True, memory_only=True),
    0xC5: D("lds", Scheme.MODRM_REGISTER, 16, reg_first=True, memory_only=True),
    # 0xC6, 0xC7: see GROUPS
    0xCA: D("retf", Scheme.IMMEDIATE, imm_width=16),
    0xCB: D("retf", Scheme.NONE),
    0xCC: D("int3", Scheme.NONE),
    0xCD: D("int", Scheme.IMMEDIATE, imm_width=8),
    0xCE: D("into", Scheme.NONE),
    0xCF: D("iret", Scheme.NONE),
    # 0xD0-0xD3: see GROUPS
    0xD4: D("aam", Scheme.IMMEDIATE, imm_width=8, implicit_imm=10),
    0xD5: D("aad", Scheme.IMMEDIATE, imm_width=8, implicit_imm=10),
    0xD7: D("xlatb", Scheme.STRING),
    0xE0: D("loopnz", Scheme.RELATIVE, imm_width=8),
    0xE1: D("loopz", Scheme.RELATIVE, imm_width=8),
    0xE2: D("loop", Scheme.RELATIVE, imm_width=8),
    0xE3: D("jcxz", Scheme.RELATIVE, imm_width=8),
    0xE4: D("in", Scheme.PORT_IMMEDIATE, 8, w_bit=True, reg_first=True, imm_width=8),
    0xE5: D("in", Scheme.PORT_IMMEDIATE, 16, w_bit=True, reg_first=True, imm_width=8),
    0xE6: D("out", Scheme.PORT_IMMEDIATE, 8, w_bit=True, imm_width=8),
    0xE7: D("out", Scheme.PORT_IMMEDIATE, 16, w_bit=True, imm_width=8),
    0xE8: D("call", Scheme.RELATIVE, imm_width=16),
    0xE9: D("jmp", Scheme.RELATIVE, imm_width=16, branch="near"),
    0xEA: D("jmp", Scheme.FAR_POINTER),
    0xEB: D("jmp", Scheme.RELATIVE, imm_width=8, branch="short"),
    0xEC: D("in", Scheme.PORT_DX, 8, w_bit=True, reg_first=True),
    0xED: D("in", Scheme.PORT_DX, 16, w_bit=True, reg_first=True),
    0xEE: D("out", Scheme.PORT_DX, 8, w_bit=True),
    0xEF: D("out", Scheme.PORT_DX, 16, w_bit=True),
    **_simple(
        [
            (0xF4, "hlt"), (0xF5, "cmc"), (0xF8, "clc"), (0xF9, "stc"),
            (0xFA, "cli"), (0xFB, "sti"), (0xFC, "cld"), (0xFD, "std"),
        ]
    ),  # fmt: skip
}


def _group(*entries: Optional[OpcodeDescriptor]) -> Tuple[Optional[OpcodeDescriptor], ...]:
    if len(entries) != 8:
        raise ValueError(f"Opcode group needs 8 entries, got {len(entries)}")
    return tuple(entries)


def _alu_group(width: int, imm_width: int, **kw) -> Tuple[Optional[OpcodeDescriptor], ...]:
    return _group(
        *(
            D(name, Scheme.MODRM_IMMEDIATE, width, imm_width=imm_width, sized_memory=True, **kw)
            for name in ALU_MNEMONICS
        )
    )


def _shift_group(width: int, count: str) -> Tuple[Optional[OpcodeDescriptor], ...]:
    return _group(
        *(
            D(name, Scheme.MODRM_SHIFT, width, w_bit=True, sized_memory=True, count=count)
            if name is not None
            else None
            for name in SHIFT_MNEMONICS
        )
    )


def _unary_group(width: int) -> Tuple[Optional[OpcodeDescriptor], ...]:
    def unary(name: str) -> OpcodeDescriptor:
        return D(name, Scheme.MODRM, width, w_bit=True, sized_memory=True)

    return _group(
        D(
            "test",
            Scheme.MODRM_IMMEDIATE,
            width,
            w_bit=True,
            imm_width=width,
            sized_memory=True,
            shortcut=Shortcut.ACC_RM,
        ),
        None,
        unary("not"),
        unary("neg"),
        unary("mul"),
        unary("imul"),
        unary("div"),
        unary("idiv"),
    )


GROUPS: Dict[int, Tuple[Optional[OpcodeDescriptor], ...]] = {
    0x80: _alu_group(8, 8, w_bit=True, shortcut=Shortcut.ACC_RM),
    0x81: _alu_group(16, 16, w_bit=True, shortcut=Shortcut.ACC_RM, sbyte_shortcut=True),
    0x82: _alu_group(8, 8, alias=True),
    0x83: _alu_group(16, 8, w_bit=True, s_bit=True),
    0x8F: _group(
        D("pop", Scheme.MODRM, 16, sized_memory=True, shortcut=Shortcut.ANY_RM),
        None, None, None, None, None, None, None,
    ),  # fmt: skip
    0xC6: _group(
        D("mov", Scheme.MODRM_IMMEDIATE, 8, w_bit=True, imm_width=8, sized_memory=True, shortcut=Shortcut.ANY_RM),
        None, None, None, None, None, None, None,
    ),  # fmt: skip
    0xC7: _group(
        D("mov", Scheme.MODRM_IMMEDIATE, 16, w_bit=True, imm_width=16, sized_memory=True, shortcut=Shortcut.ANY_RM),
        None, None, None, None, None, None, None,
    ),  # fmt: skip
    0xD0: _shift_group(8, "1"),
    0xD1: _shift_group(16, "1"),
    0xD2: _shift_group(8, "cl"),
    0xD3: _shift_group(16, "cl"),
    0xF6: _unary_group(8),
    0xF7: _unary_group(16),
    0xFE: _group(
        D("inc", Scheme.MODRM, 8, w_bit=True, sized_memory=True),
        D("dec", Scheme.MODRM, 8, w_bit=True, sized_memory=True),
        None, None, None, None, None, None,
    ),  # fmt: skip
    0xFF: _group(
        D("inc", Scheme.MODRM, 16, w_bit=True, sized_memory=True, shortcut=Shortcut.ANY_RM),
        D("dec", Scheme.MODRM, 16, w_bit=True, sized_memory=True, shortcut=Shortcut.ANY_RM),
        D("call", Scheme.MODRM, 16, sized_memory=True, branch="near"),
        D("call", Scheme.MODRM, 16, memory_only=True, branch="far"),
        D("jmp", Scheme.MODRM, 16, sized_memory=True, branch="near"),
        D("jmp", Scheme.MODRM, 16, memory_only=True, branch="far"),
        D("push", Scheme.MODRM, 16, sized_memory=True, shortcut=Shortcut.ANY_RM),
        None,
    ),
}

# Recognised opcodes that belong to instruction sets beyond the 8086.
UNSUPPORTED: Dict[int, str] = {
    0x0F: "two-byte opcode escape",
    **{op: "80186 instruction" for op in (0x60, 0x61, 0x62, 0x68, 0x69, 0x6A, 0x6B, 0x6C, 0x6D, 0x6E, 0x6F)},
    0x63: "80286 protected-mode instruction",
    0x64: "80386 segment prefix",
    0x65: "80386 segment prefix",
    0x66: "80386 operand-size prefix",
    0x67: "80386 address-size prefix",
    0xC0: "80186 instruction",
    0xC1: "80186 instruction",
    0xC8: "80186 instruction",
    0xC9: "80186 instruction",
    **{op: "x87 escape" for op in range(0xD8, 0xE0)},
}


def lookup_opcode(cursor: ByteCursor) -> Tuple[int, OpcodeDescriptor]:
    """
    Read the opcode byte and return its descriptor.

    Group opcodes peek (but do not consume) the ModRM byte to select the
    operation from its reg field.
    """
    offset = cursor.offset
    opcode = cursor.read_u8()

    group = GROUPS.get(opcode)
    if group is not None:
        extension = (cursor.peek() >> 3) & 0b111
        descriptor = group[extension]
        if descriptor is None:
            raise UnknownOpcode(opcode, offset, f"undefined extension /{extension}")
        return opcode, descriptor

    descriptor = OPCODES.get(opcode)
    if descriptor is not None:
        return opcode, descriptor

    reason = UNSUPPORTED.get(opcode)
    if reason is not None:
        raise UnsupportedEncoding(opcode, offset, reason)
    raise UnknownOpcode(opcode, offset)


__all__ = [
    "ALU_MNEMONICS",
    "GROUPS",
    "JCC_MNEMONICS",
    "OPCODES",
    "OpcodeDescriptor",
    "Scheme",
    "Shortcut",
    "UNSUPPORTED",
    "lookup_opcode",
]
