"""
Execute decoded 8086 instructions over a real-mode register file and memory.

The emulator reuses the decoder: each step decodes the bytes at CS:IP into a
`DecodedInstr` and dispatches on its mnemonic. It covers straight-line and
branching integer code (data movement, ALU, stack, flags, near control
transfer); anything else raises `EmulationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from .decoding import (
    ByteCursor,
    DecodeError,
    DecodedInstr,
    FarPointer,
    Immediate,
    Memory,
    Operand,
    Register,
    RelativeTarget,
    decode_instruction,
)
from .printer import format_instruction

logger = logging.getLogger(__name__)

ADDRESS_SPACE_SIZE = 1 << 20
ADDRESS_MASK = ADDRESS_SPACE_SIZE - 1
# Longest 8086 instruction plus a generous prefix run.
FETCH_WINDOW = 16


class EmulationError(Exception):
    pass


class RegisterName(enum.Enum):
    # 16-bit
    AX = "ax"
    CX = "cx"
    DX = "dx"
    BX = "bx"
    SP = "sp"
    BP = "bp"
    SI = "si"
    DI = "di"
    # segment
    ES = "es"
    CS = "cs"
    SS = "ss"
    DS = "ds"
    IP = "ip"
    FLAGS = "flags"
    # 8-bit halves
    AL = "al"
    CL = "cl"
    DL = "dl"
    BL = "bl"
    AH = "ah"
    CH = "ch"
    DH = "dh"
    BH = "bh"


class Flag(enum.IntEnum):
    """Bit positions in FLAGS."""

    CF = 0
    PF = 2
    AF = 4
    ZF = 6
    SF = 7
    TF = 8
    IF = 9
    DF = 10
    OF = 11


# Bits 1 and 12-15 read as set on the 8086.
FLAGS_FIXED = 0xF002
# Flags LAHF/SAHF transfer through AH.
LAHF_MASK = (1 << Flag.SF) | (1 << Flag.ZF) | (1 << Flag.AF) | (1 << Flag.PF) | (1 << Flag.CF)


class Registers:
    BASE: Set[RegisterName] = {
        RegisterName.AX,
        RegisterName.CX,
        RegisterName.DX,
        RegisterName.BX,
        RegisterName.SP,
        RegisterName.BP,
        RegisterName.SI,
        RegisterName.DI,
        RegisterName.ES,
        RegisterName.CS,
        RegisterName.SS,
        RegisterName.DS,
        RegisterName.IP,
        RegisterName.FLAGS,
    }

    _SUBREG_INFO: Dict[RegisterName, Tuple[RegisterName, int, int]] = {
        RegisterName.AL: (RegisterName.AX, 0, 0xFF),
        RegisterName.CL: (RegisterName.CX, 0, 0xFF),
        RegisterName.DL: (RegisterName.DX, 0, 0xFF),
        RegisterName.BL: (RegisterName.BX, 0, 0xFF),
        RegisterName.AH: (RegisterName.AX, 8, 0xFF),
        RegisterName.CH: (RegisterName.CX, 8, 0xFF),
        RegisterName.DH: (RegisterName.DX, 8, 0xFF),
        RegisterName.BH: (RegisterName.BX, 8, 0xFF),
    }

    def __init__(self) -> None:
        self._values: Dict[RegisterName, int] = {reg: 0 for reg in self.BASE}
        self._values[RegisterName.FLAGS] = FLAGS_FIXED

    def get(self, reg: RegisterName) -> int:
        if reg in self.BASE:
            return self._values[reg]

        info = self._SUBREG_INFO.get(reg)
        if info is not None:
            base, shift, mask = info
            return (self._values[base] >> shift) & mask

        raise ValueError(f"Attempted to get unknown register: {reg}")

    def set(self, reg: RegisterName, value: int) -> None:
        if reg is RegisterName.FLAGS:
            self._values[reg] = (value & 0x0FFF & ~0x2A) | FLAGS_FIXED
            return
        if reg in self.BASE:
            self._values[reg] = value & 0xFFFF
            return

        info = self._SUBREG_INFO.get(reg)
        if info is not None:
            base, shift, mask = info
            cur = self._values[base] & ~(mask << shift)
            self._values[base] = cur | ((value & mask) << shift)
            return

        raise ValueError(f"Attempted to set unknown register: {reg}")

    def get_by_name(self, name: str) -> int:
        return self.get(RegisterName(name))

    def set_by_name(self, name: str, value: int) -> None:
        self.set(RegisterName(name), value)

    def get_flag(self, flag: Flag) -> int:
        return (self._values[RegisterName.FLAGS] >> flag) & 1

    def set_flag(self, flag: Flag, value: int) -> None:
        flags = self._values[RegisterName.FLAGS] & ~(1 << flag)
        self.set(RegisterName.FLAGS, flags | ((1 if value else 0) << flag))

    def snapshot(self) -> Dict[str, int]:
        return {reg.value: self._values[reg] for reg in RegisterName if reg in self.BASE}


class PhysicalMemory:
    """1 MiB real-mode address space; segment:offset wraps at 20 bits."""

    def __init__(self) -> None:
        self.data = bytearray(ADDRESS_SPACE_SIZE)

    @staticmethod
    def physical(segment: int, offset: int) -> int:
        return ((segment << 4) + (offset & 0xFFFF)) & ADDRESS_MASK

    def load(self, address: int, image: bytes) -> None:
        if address + len(image) > ADDRESS_SPACE_SIZE:
            raise EmulationError(
                f"image of {len(image)} bytes at {address:#x} exceeds the address space"
            )
        self.data[address : address + len(image)] = image

    def read_u8(self, segment: int, offset: int) -> int:
        return self.data[self.physical(segment, offset)]

    def read_u16(self, segment: int, offset: int) -> int:
        lo = self.read_u8(segment, offset)
        hi = self.read_u8(segment, offset + 1)
        return (hi << 8) | lo

    def write_u8(self, segment: int, offset: int, value: int) -> None:
        self.data[self.physical(segment, offset)] = value & 0xFF

    def write_u16(self, segment: int, offset: int, value: int) -> None:
        self.write_u8(segment, offset, value)
        self.write_u8(segment, offset + 1, value >> 8)

    def window(self, address: int, size: int) -> bytes:
        end = min(address + size, ADDRESS_SPACE_SIZE)
        return bytes(self.data[address:end])


@dataclass
class EmulatorState:
    registers: Dict[str, int]
    steps: int
    stop_reason: str
    trace: List[str] = field(default_factory=list)

    def flag_letters(self) -> str:
        flags = self.registers["flags"]
        letters = [("C", Flag.CF), ("P", Flag.PF), ("A", Flag.AF), ("Z", Flag.ZF),
                   ("S", Flag.SF), ("I", Flag.IF), ("D", Flag.DF), ("O", Flag.OF)]  # fmt: skip
        return "".join(name for name, bit in letters if flags >> bit & 1)

    def comment_lines(self) -> List[str]:
        """Final state as assembler comments, so the listing still assembles."""
        lines = [f"; stopped after {self.steps} step(s): {self.stop_reason}"]
        for name, value in self.registers.items():
            if name == "flags":
                continue
            if value or name == "ip":
                lines.append(f"; {name}: 0x{value:04x} ({value})")
        lines.append(f"; flags: {self.flag_letters()}")
        return lines


def _parity(value: int) -> int:
    return 1 if bin(value & 0xFF).count("1") % 2 == 0 else 0


JCC_CONDITIONS: Dict[str, Callable[[Registers], bool]] = {
    "jo": lambda r: r.get_flag(Flag.OF) == 1,
    "jno": lambda r: r.get_flag(Flag.OF) == 0,
    "jb": lambda r: r.get_flag(Flag.CF) == 1,
    "jnb": lambda r: r.get_flag(Flag.CF) == 0,
    "je": lambda r: r.get_flag(Flag.ZF) == 1,
    "jne": lambda r: r.get_flag(Flag.ZF) == 0,
    "jbe": lambda r: r.get_flag(Flag.CF) == 1 or r.get_flag(Flag.ZF) == 1,
    "ja": lambda r: r.get_flag(Flag.CF) == 0 and r.get_flag(Flag.ZF) == 0,
    "js": lambda r: r.get_flag(Flag.SF) == 1,
    "jns": lambda r: r.get_flag(Flag.SF) == 0,
    "jp": lambda r: r.get_flag(Flag.PF) == 1,
    "jnp": lambda r: r.get_flag(Flag.PF) == 0,
    "jl": lambda r: r.get_flag(Flag.SF) != r.get_flag(Flag.OF),
    "jnl": lambda r: r.get_flag(Flag.SF) == r.get_flag(Flag.OF),
    "jle": lambda r: r.get_flag(Flag.ZF) == 1 or r.get_flag(Flag.SF) != r.get_flag(Flag.OF),
    "jg": lambda r: r.get_flag(Flag.ZF) == 0 and r.get_flag(Flag.SF) == r.get_flag(Flag.OF),
}

ARITHMETIC = {"add", "adc", "sub", "sbb", "cmp"}
LOGICAL = {"and", "or", "xor", "test"}
FLAG_OPS = {
    "clc": (Flag.CF, 0),
    "stc": (Flag.CF, 1),
    "cli": (Flag.IF, 0),
    "sti": (Flag.IF, 1),
    "cld": (Flag.DF, 0),
    "std": (Flag.DF, 1),
}


class Emulator:
    def __init__(self, image: bytes, origin: int = 0) -> None:
        self.regs = Registers()
        self.memory = PhysicalMemory()
        self.origin = origin
        self.image_end = origin + len(image)
        self.memory.load(origin, image)
        # CS:IP addresses origin from the 64 KiB-aligned segment containing it
        self.regs.set(RegisterName.CS, (origin >> 4) & 0xF000)
        self.regs.set(RegisterName.IP, origin & 0xFFFF)
        self.halted = False
        self.steps = 0
        self._handlers: Dict[str, Callable[[DecodedInstr], None]] = {
            "mov": self._mov,
            "xchg": self._xchg,
            "lea": self._lea,
            "push": self._push_op,
            "pop": self._pop_op,
            "inc": self._inc_dec,
            "dec": self._inc_dec,
            "neg": self._neg,
            "not": self._not,
            "cbw": self._cbw,
            "cwd": self._cwd,
            "lahf": self._lahf,
            "sahf": self._sahf,
            "pushf": self._pushf,
            "popf": self._popf,
            "cmc": self._cmc,
            "jmp": self._jmp,
            "call": self._call,
            "ret": self._ret,
            "loop": self._loop,
            "loopz": self._loop,
            "loopnz": self._loop,
            "jcxz": self._jcxz,
            "hlt": self._hlt,
            "nop": lambda instr: None,
        }
        for name in ARITHMETIC | LOGICAL:
            self._handlers[name] = self._alu
        for name in JCC_CONDITIONS:
            self._handlers[name] = self._jcc
        for name in FLAG_OPS:
            self._handlers[name] = self._flag_op

    # operand access

    def _ip(self) -> int:
        return self.regs.get(RegisterName.IP)

    def _segment_for(self, mem: Memory) -> int:
        if mem.segment is not None:
            name = mem.segment
        elif "bp" in mem.base:
            name = "ss"
        else:
            name = "ds"
        return self.regs.get_by_name(name)

    def effective_address(self, mem: Memory) -> int:
        if mem.direct:
            return mem.disp & 0xFFFF
        total = sum(self.regs.get_by_name(base) for base in mem.base)
        return (total + mem.disp) & 0xFFFF

    def read(self, operand: Operand, width: int = 16) -> int:
        match operand:
            case Register(name=name):
                return self.regs.get_by_name(name)
            case Memory():
                segment = self._segment_for(operand)
                offset = self.effective_address(operand)
                if (operand.width or width) == 8:
                    return self.memory.read_u8(segment, offset)
                return self.memory.read_u16(segment, offset)
            case Immediate(value=value):
                return value
            case RelativeTarget(target=target):
                return target & 0xFFFF
        raise EmulationError(f"cannot read operand {operand!r}")

    def write(self, operand: Operand, value: int, width: int = 16) -> None:
        match operand:
            case Register(name=name):
                self.regs.set_by_name(name, value)
                return
            case Memory():
                segment = self._segment_for(operand)
                offset = self.effective_address(operand)
                if (operand.width or width) == 8:
                    self.memory.write_u8(segment, offset, value)
                else:
                    self.memory.write_u16(segment, offset, value)
                return
        raise EmulationError(f"cannot write operand {operand!r}")

    def push(self, value: int) -> None:
        sp = (self.regs.get(RegisterName.SP) - 2) & 0xFFFF
        self.regs.set(RegisterName.SP, sp)
        self.memory.write_u16(self.regs.get(RegisterName.SS), sp, value)

    def pop(self) -> int:
        sp = self.regs.get(RegisterName.SP)
        value = self.memory.read_u16(self.regs.get(RegisterName.SS), sp)
        self.regs.set(RegisterName.SP, sp + 2)
        return value

    # flags

    def _set_result_flags(self, result: int, width: int) -> None:
        mask = (1 << width) - 1
        self.regs.set_flag(Flag.ZF, (result & mask) == 0)
        self.regs.set_flag(Flag.SF, (result >> (width - 1)) & 1)
        self.regs.set_flag(Flag.PF, _parity(result))

    def _arith(self, op: str, a: int, b: int, width: int) -> int:
        mask = (1 << width) - 1
        sign = 1 << (width - 1)
        carry_in = self.regs.get_flag(Flag.CF) if op in ("adc", "sbb") else 0
        if op in ("add", "adc"):
            raw = a + b + carry_in
            overflow = (a ^ raw) & (b ^ raw) & sign
            carry = raw > mask
        else:
            raw = a - b - carry_in
            overflow = (a ^ b) & (a ^ raw) & sign
            carry = raw < 0
        result = raw & mask
        self.regs.set_flag(Flag.CF, carry)
        self.regs.set_flag(Flag.OF, overflow != 0)
        self.regs.set_flag(Flag.AF, ((a ^ b ^ raw) & 0x10) != 0)
        self._set_result_flags(result, width)
        return result

    def _logic(self, op: str, a: int, b: int, width: int) -> int:
        if op == "or":
            result = a | b
        elif op == "xor":
            result = a ^ b
        else:
            result = a & b
        self.regs.set_flag(Flag.CF, 0)
        self.regs.set_flag(Flag.OF, 0)
        self.regs.set_flag(Flag.AF, 0)
        self._set_result_flags(result, width)
        return result

    # handlers

    @staticmethod
    def _width(instr: DecodedInstr) -> int:
        for operand in instr.operands:
            if isinstance(operand, Register):
                return operand.width
        return instr.descriptor.width or 16

    def _alu(self, instr: DecodedInstr) -> None:
        dst, src = instr.operands
        width = self._width(instr)
        a, b = self.read(dst, width), self.read(src, width)
        if instr.mnemonic in ARITHMETIC:
            result = self._arith(instr.mnemonic, a, b, width)
        else:
            result = self._logic(instr.mnemonic, a, b, width)
        if instr.mnemonic not in ("cmp", "test"):
            self.write(dst, result, width)

    def _inc_dec(self, instr: DecodedInstr) -> None:
        (dst,) = instr.operands
        width = self._width(instr)
        carry = self.regs.get_flag(Flag.CF)
        op = "add" if instr.mnemonic == "inc" else "sub"
        result = self._arith(op, self.read(dst, width), 1, width)
        self.regs.set_flag(Flag.CF, carry)
        self.write(dst, result, width)

    def _neg(self, instr: DecodedInstr) -> None:
        (dst,) = instr.operands
        width = self._width(instr)
        result = self._arith("sub", 0, self.read(dst, width), width)
        self.write(dst, result, width)

    def _not(self, instr: DecodedInstr) -> None:
        (dst,) = instr.operands
        width = self._width(instr)
        self.write(dst, ~self.read(dst, width) & ((1 << width) - 1), width)

    def _mov(self, instr: DecodedInstr) -> None:
        dst, src = instr.operands
        width = self._width(instr)
        self.write(dst, self.read(src, width), width)

    def _xchg(self, instr: DecodedInstr) -> None:
        a, b = instr.operands
        width = self._width(instr)
        va, vb = self.read(a, width), self.read(b, width)
        self.write(a, vb, width)
        self.write(b, va, width)

    def _lea(self, instr: DecodedInstr) -> None:
        dst, src = instr.operands
        assert isinstance(src, Memory)
        self.write(dst, self.effective_address(src))

    def _push_op(self, instr: DecodedInstr) -> None:
        (src,) = instr.operands
        if isinstance(src, Register) and src.name == "sp":
            # the 8086 pushes SP after the decrement
            self.push((self.regs.get(RegisterName.SP) - 2) & 0xFFFF)
            return
        self.push(self.read(src))

    def _pop_op(self, instr: DecodedInstr) -> None:
        (dst,) = instr.operands
        self.write(dst, self.pop())

    def _cbw(self, instr: DecodedInstr) -> None:
        al = self.regs.get(RegisterName.AL)
        self.regs.set(RegisterName.AX, al | (0xFF00 if al & 0x80 else 0))

    def _cwd(self, instr: DecodedInstr) -> None:
        ax = self.regs.get(RegisterName.AX)
        self.regs.set(RegisterName.DX, 0xFFFF if ax & 0x8000 else 0)

    def _lahf(self, instr: DecodedInstr) -> None:
        self.regs.set(RegisterName.AH, self.regs.get(RegisterName.FLAGS) & LAHF_MASK | 0x02)

    def _sahf(self, instr: DecodedInstr) -> None:
        flags = self.regs.get(RegisterName.FLAGS) & ~LAHF_MASK
        self.regs.set(RegisterName.FLAGS, flags | (self.regs.get(RegisterName.AH) & LAHF_MASK))

    def _pushf(self, instr: DecodedInstr) -> None:
        self.push(self.regs.get(RegisterName.FLAGS))

    def _popf(self, instr: DecodedInstr) -> None:
        self.regs.set(RegisterName.FLAGS, self.pop())

    def _cmc(self, instr: DecodedInstr) -> None:
        self.regs.set_flag(Flag.CF, not self.regs.get_flag(Flag.CF))

    def _flag_op(self, instr: DecodedInstr) -> None:
        flag, value = FLAG_OPS[instr.mnemonic]
        self.regs.set_flag(flag, value)

    def _branch_target(self, instr: DecodedInstr) -> int:
        (target,) = instr.operands
        if isinstance(target, FarPointer) or instr.descriptor.branch == "far":
            raise EmulationError(f"far {instr.mnemonic} is not supported")
        return self.read(target)

    def _jmp(self, instr: DecodedInstr) -> None:
        self.regs.set(RegisterName.IP, self._branch_target(instr))

    def _jcc(self, instr: DecodedInstr) -> None:
        if JCC_CONDITIONS[instr.mnemonic](self.regs):
            self._jmp(instr)

    def _call(self, instr: DecodedInstr) -> None:
        target = self._branch_target(instr)
        self.push(self._ip())
        self.regs.set(RegisterName.IP, target)

    def _ret(self, instr: DecodedInstr) -> None:
        self.regs.set(RegisterName.IP, self.pop())
        if instr.operands:
            release = self.read(instr.operands[0])
            self.regs.set(RegisterName.SP, self.regs.get(RegisterName.SP) + release)

    def _loop(self, instr: DecodedInstr) -> None:
        cx = (self.regs.get(RegisterName.CX) - 1) & 0xFFFF
        self.regs.set(RegisterName.CX, cx)
        zf = self.regs.get_flag(Flag.ZF)
        taken = cx != 0
        if instr.mnemonic == "loopz":
            taken = taken and zf == 1
        elif instr.mnemonic == "loopnz":
            taken = taken and zf == 0
        if taken:
            self._jmp(instr)

    def _jcxz(self, instr: DecodedInstr) -> None:
        if self.regs.get(RegisterName.CX) == 0:
            self._jmp(instr)

    def _hlt(self, instr: DecodedInstr) -> None:
        self.halted = True

    # execution

    def fetch(self) -> DecodedInstr:
        ip = self._ip()
        address = self.memory.physical(self.regs.get(RegisterName.CS), ip)
        cursor = ByteCursor(self.memory.window(address, FETCH_WINDOW))
        try:
            # origin=ip resolves relative targets to IP values directly
            return decode_instruction(cursor, origin=ip)
        except DecodeError as exc:
            raise EmulationError(f"ip {ip:#06x}: {exc}") from exc

    def step(self) -> DecodedInstr:
        instr = self.fetch()
        if instr.prefixes.repeat is not None or instr.prefixes.lock:
            raise EmulationError(f"ip {self._ip():#06x}: prefixed {instr.mnemonic} is not supported")
        handler = self._handlers.get(instr.mnemonic)
        if handler is None:
            raise EmulationError(f"ip {self._ip():#06x}: {instr.mnemonic} is not supported")
        self.regs.set(RegisterName.IP, self._ip() + instr.length)
        handler(instr)
        self.steps += 1
        return instr

    def _in_image(self) -> bool:
        address = self.memory.physical(self.regs.get(RegisterName.CS), self._ip())
        return self.origin <= address < self.image_end

    def run(self, step_limit: int, trace: bool = False) -> EmulatorState:
        lines: List[str] = []
        reason: Optional[str] = None
        while reason is None:
            if self.halted:
                reason = "hlt"
            elif not self._in_image():
                reason = f"ip {self._ip():#06x} left the image"
            elif self.steps >= step_limit:
                reason = f"step limit {step_limit} reached"
            else:
                instr = self.step()
                if trace:
                    lines.append(f"; {format_instruction(instr)}")
        logger.debug("emulation stopped after %d step(s): %s", self.steps, reason)
        return EmulatorState(self.regs.snapshot(), self.steps, reason, lines)


__all__ = [
    "Emulator",
    "EmulationError",
    "EmulatorState",
    "Flag",
    "PhysicalMemory",
    "RegisterName",
    "Registers",
]
