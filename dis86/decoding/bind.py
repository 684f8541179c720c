from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple, Union

if TYPE_CHECKING:
    from .decode_map import OpcodeDescriptor


class RepeatKind(str, Enum):
    """Repeat prefix variants (F3 / F2)."""

    REP = "rep"
    REPNE = "repne"


# Slot order the reference assembler emits prefixes in.
_PREFIX_RANK = {0xF2: 0, 0xF3: 0, 0xF0: 1, 0x26: 2, 0x2E: 2, 0x36: 2, 0x3E: 2}


@dataclass(frozen=True, slots=True)
class Prefixes:
    segment: Optional[str] = None
    repeat: Optional[RepeatKind] = None
    lock: bool = False
    raw: Tuple[int, ...] = ()

    @property
    def size(self) -> int:
        return len(self.raw)

    @property
    def canonical(self) -> bool:
        """True when the run has at most one prefix per slot, in slot order."""
        ranks = [_PREFIX_RANK[b] for b in self.raw]
        return all(a < b for a, b in zip(ranks, ranks[1:]))


@dataclass(frozen=True, slots=True)
class ModRM:
    mod: int
    reg: int
    rm: int

    @classmethod
    def from_byte(cls, value: int) -> "ModRM":
        if not 0 <= value <= 0xFF:
            raise ValueError(f"ModRM out of range: {value:#x}")
        return cls(mod=value >> 6, reg=(value >> 3) & 0b111, rm=value & 0b111)

    @property
    def register_direct(self) -> bool:
        return self.mod == 0b11


@dataclass(frozen=True, slots=True)
class Register:
    name: str
    width: int


@dataclass(frozen=True, slots=True)
class Memory:
    base: Tuple[str, ...]  # empty for a direct address
    disp: int  # signed offset, or the unsigned address when direct
    disp_width: int  # 0, 8 or 16 bits as encoded
    segment: Optional[str] = None
    width: Optional[int] = None

    def __post_init__(self) -> None:
        if self.disp_width not in (0, 8, 16):
            raise ValueError(f"Invalid displacement width: {self.disp_width}")

    @property
    def direct(self) -> bool:
        return not self.base


@dataclass(frozen=True, slots=True)
class Immediate:
    value: int  # unsigned, already extended to `width`
    width: int
    encoded_width: int  # bits actually present in the byte stream (0 = implicit)

    def __post_init__(self) -> None:
        if not 0 <= self.value < (1 << self.width):
            raise ValueError(f"Immediate out of range for {self.width} bits: {self.value:#x}")

    @property
    def signed(self) -> int:
        top = 1 << (self.width - 1)
        return self.value - (1 << self.width) if self.value & top else self.value

    @property
    def sign_extended(self) -> bool:
        return 0 < self.encoded_width < self.width


@dataclass(frozen=True, slots=True)
class RelativeTarget:
    disp: int  # signed
    target: int  # absolute address, origin applied
    width: int  # 8 or 16


@dataclass(frozen=True, slots=True)
class FarPointer:
    segment: int
    offset: int


Operand = Union[Register, Memory, Immediate, RelativeTarget, FarPointer]


@dataclass(frozen=True, slots=True)
class DecodedInstr:
    offset: int
    length: int
    raw: bytes
    opcode: int
    descriptor: "OpcodeDescriptor"
    operands: Tuple[Operand, ...]
    prefixes: Prefixes = Prefixes()
    modrm: Optional[ModRM] = None
    origin: int = 0

    @property
    def mnemonic(self) -> str:
        return self.descriptor.mnemonic

    @property
    def address(self) -> int:
        return self.origin + self.offset

    @property
    def end(self) -> int:
        return self.offset + self.length


__all__ = [
    "DecodedInstr",
    "FarPointer",
    "Immediate",
    "Memory",
    "ModRM",
    "Operand",
    "Prefixes",
    "Register",
    "RelativeTarget",
    "RepeatKind",
]
