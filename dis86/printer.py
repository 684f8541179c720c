"""
Render decoded instructions as NASM source that reassembles byte-for-byte.

Most of the work is choosing between textual forms. NASM picks the first
matching template in its instruction table, so the printer mirrors those
choices: it adds `byte`/`word` where a memory operand has no register to
size it, pins non-minimal displacements with `[byte ...]`/`[word ...]`,
writes `strict word` for full-width immediates that NASM would otherwise
shrink, and names the branch distance for jmp and conditional jumps. Encodings
that no text selects fall back to `db` with the instruction in a comment.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .decoding.bind import (
    DecodedInstr,
    FarPointer,
    Immediate,
    Memory,
    Operand,
    Register,
    RelativeTarget,
    RepeatKind,
)
from .decoding.decode_map import Scheme, Shortcut
from .decoding.registers import ACCUMULATOR, DIRECT_ADDRESS_RM
from .tokens import (
    TAddr,
    TBegMem,
    TComment,
    TEndMem,
    TInstr,
    TInt,
    TKeyword,
    TReg,
    TSep,
    TText,
    Token,
    asm_str,
)

logger = logging.getLogger(__name__)

SIZE_KEYWORDS = {8: "byte", 16: "word"}


def format_raw(data: bytes) -> str:
    return "db " + ", ".join(f"0x{b:02x}" for b in data)


LOCKABLE_MNEMONICS = frozenset(
    {"add", "adc", "and", "or", "sbb", "sub", "xor", "inc", "dec", "neg", "not", "xchg"}
)


def _lockable(instr: DecodedInstr) -> bool:
    if instr.mnemonic not in LOCKABLE_MNEMONICS or not instr.operands:
        return False
    if instr.mnemonic == "xchg":
        return any(isinstance(op, Memory) for op in instr.operands)
    return isinstance(instr.operands[0], Memory)


def raw_encoding_reason(instr: DecodedInstr) -> Optional[str]:
    """
    Why NASM cannot reproduce `instr` from text, or None when it can.

    Every reason corresponds to a shorter or differently-ordered encoding that
    NASM prefers for the same assembly text.
    """
    desc = instr.descriptor
    prefixes = instr.prefixes
    modrm = instr.modrm

    if not prefixes.canonical:
        return "prefix order"
    if prefixes.repeat is not None and desc.scheme is not Scheme.STRING:
        return "repeat prefix on a non-string instruction"
    if prefixes.lock and not _lockable(instr):
        return "lock prefix on a non-lockable instruction"
    if desc.alias:
        return "undocumented alias opcode"
    if modrm is None:
        return None

    if modrm.register_direct:
        if desc.d_bit and desc.reg_first:
            return "register pair with direction bit set"
        if desc.shortcut is Shortcut.ANY_RM:
            return "short register form"
        if desc.shortcut is Shortcut.ACC_RM and modrm.rm == ACCUMULATOR:
            return "accumulator form"
        if desc.shortcut is Shortcut.ACC_EITHER and ACCUMULATOR in (modrm.rm, modrm.reg):
            return "accumulator form"
    elif (
        desc.moffs_shortcut
        and modrm.mod == 0b00
        and modrm.rm == DIRECT_ADDRESS_RM
        and modrm.reg == ACCUMULATOR
    ):
        return "accumulator direct-address form"
    return None


def _displacement_pin(mem: Memory) -> Optional[str]:
    if mem.direct or mem.disp_width == 0:
        return None
    if mem.disp == 0 and mem.base != ("bp",):
        minimal = 0
    elif -0x80 <= mem.disp <= 0x7F:
        minimal = 8
    else:
        minimal = 16
    if minimal == mem.disp_width:
        return None
    return SIZE_KEYWORDS[mem.disp_width]


def _memory_tokens(mem: Memory, sized: bool) -> List[Token]:
    result: List[Token] = []
    if sized and mem.width in SIZE_KEYWORDS:
        result += [TKeyword(SIZE_KEYWORDS[mem.width]), TSep(" ")]

    result.append(TBegMem())
    pin = _displacement_pin(mem)
    if pin is not None:
        result += [TKeyword(pin), TSep(" ")]
    if mem.segment is not None:
        result += [TReg(mem.segment), TSep(":")]

    if mem.direct:
        result.append(TAddr(mem.disp))
    else:
        for index, base in enumerate(mem.base):
            if index > 0:
                result.append(TSep("+"))
            result.append(TReg(base))
        if mem.disp != 0 or pin is not None:
            result.append(TSep("-" if mem.disp < 0 else "+"))
            result.append(TInt(abs(mem.disp)))
    result.append(TEndMem())
    return result


def _immediate_tokens(instr: DecodedInstr, imm: Immediate) -> List[Token]:
    desc = instr.descriptor
    if imm.encoded_width == 0:
        return [TInt(imm.value)]
    if imm.sign_extended:
        return [TInt(imm.signed)]
    if desc.sbyte_shortcut and imm.width == 16 and -0x80 <= imm.signed <= 0x7F:
        return [TKeyword("strict"), TSep(" "), TKeyword("word"), TSep(" "), TInt(imm.value)]
    return [TInt(imm.value)]


def _operand_tokens(instr: DecodedInstr, operand: Operand, plain: bool) -> List[Token]:
    desc = instr.descriptor
    match operand:
        case Register(name=name):
            return [TReg(name)]
        case Memory():
            result: List[Token] = []
            if desc.branch == "far":
                result += [TKeyword("far"), TSep(" ")]
            return result + _memory_tokens(operand, desc.sized_memory)
        case Immediate():
            if plain:
                return [TInt(operand.signed if operand.sign_extended else operand.value)]
            return _immediate_tokens(instr, operand)
        case RelativeTarget(target=target):
            if desc.branch is not None and not plain:
                return [TKeyword(desc.branch), TSep(" "), TAddr(target)]
            return [TAddr(target)]
        case FarPointer(segment=segment, offset=offset):
            return [TAddr(segment), TSep(":"), TAddr(offset)]
    raise NotImplementedError(f"Unknown operand {operand!r}")


def _prefix_keywords(instr: DecodedInstr) -> List[str]:
    prefixes = instr.prefixes
    keywords: List[str] = []
    if prefixes.repeat is RepeatKind.REPNE:
        keywords.append("repne")
    elif prefixes.repeat is RepeatKind.REP:
        keywords.append("repe" if instr.descriptor.repe else "rep")
    if prefixes.lock:
        keywords.append("lock")
    has_memory = any(isinstance(op, Memory) for op in instr.operands)
    if prefixes.segment is not None and not has_memory:
        keywords.append(prefixes.segment)
    return keywords


def _visible_operands(instr: DecodedInstr) -> Iterable[Operand]:
    desc = instr.descriptor
    operands = instr.operands
    if desc.implicit_imm is not None and len(operands) == 1:
        (imm,) = operands
        if isinstance(imm, Immediate) and imm.value == desc.implicit_imm:
            return ()
    return operands


def _instruction_tokens(instr: DecodedInstr, plain: bool = False) -> List[Token]:
    result: List[Token] = []
    for keyword in _prefix_keywords(instr):
        result += [TKeyword(keyword), TSep(" ")]
    result.append(TInstr(instr.mnemonic))
    for index, operand in enumerate(_visible_operands(instr)):
        result.append(TSep(", " if index > 0 else " "))
        result += _operand_tokens(instr, operand, plain)
    return result


def render(instr: DecodedInstr) -> List[Token]:
    """Tokens for one output line, without listing comments."""
    reason = raw_encoding_reason(instr)
    if reason is None:
        return _instruction_tokens(instr)

    logger.debug(
        "offset %#06x: %s, emitting raw bytes (%s)",
        instr.offset,
        instr.raw.hex(" "),
        reason,
    )
    return [
        TText(format_raw(instr.raw)),
        TComment(asm_str(_instruction_tokens(instr, plain=True))),
    ]


def format_instruction(instr: DecodedInstr) -> str:
    return asm_str(render(instr))


def format_listing(record) -> str:
    """Address and bytes of a decoded record, for listing comments."""
    return f"{record.address:04x}: {record.raw.hex(' ')}"


__all__ = [
    "format_instruction",
    "format_listing",
    "format_raw",
    "raw_encoding_reason",
    "render",
]
