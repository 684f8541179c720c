from __future__ import annotations

from typing import Optional


class DecodeError(Exception):
    """Base class for failures while decoding a single instruction."""

    def __init__(self, offset: int, message: str) -> None:
        super().__init__(f"offset {offset:#06x}: {message}")
        self.offset = offset


class UnexpectedEndOfInput(DecodeError):
    """
    Raised when a read would run past the end of the buffer.

    Cursor reads report the offset of the short read. `decode_instruction`
    re-raises against the start of the instruction with its opcode `byte`,
    so the message reads `offset 0x0001: b8 truncated: ...`.
    """

    def __init__(
        self, offset: int, needed: int, remaining: int, byte: Optional[int] = None
    ) -> None:
        what = "unexpected end of input" if byte is None else f"{byte:02x} truncated"
        super().__init__(
            offset, f"{what}: need {needed} byte(s), have {remaining} remaining"
        )
        self.needed = needed
        self.remaining = remaining
        self.byte = byte


class UnknownOpcode(DecodeError):
    def __init__(self, byte: int, offset: int, detail: str = "") -> None:
        message = f"unknown opcode {byte:#04x}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(offset, message)
        self.byte = byte


class UnsupportedEncoding(DecodeError):
    """A recognised opcode that belongs to an excluded instruction set."""

    def __init__(self, byte: int, offset: int, reason: str) -> None:
        super().__init__(offset, f"unsupported opcode {byte:#04x} ({reason})")
        self.byte = byte
        self.reason = reason


__all__ = [
    "DecodeError",
    "UnexpectedEndOfInput",
    "UnknownOpcode",
    "UnsupportedEncoding",
]
