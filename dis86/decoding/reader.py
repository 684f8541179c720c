from __future__ import annotations

from dataclasses import dataclass

from .errors import UnexpectedEndOfInput


@dataclass
class ByteCursor:
    """
    Sequential, bounds-checked reader over an immutable input buffer.

    `offset` never exceeds `len(data)`: every read checks the remaining byte
    count before advancing, so a short read raises `UnexpectedEndOfInput`
    and leaves the cursor where it was.
    """

    data: bytes
    offset: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.offset <= len(self.data):
            raise ValueError(
                f"offset {self.offset} outside buffer of {len(self.data)} bytes"
            )

    def _require(self, count: int) -> None:
        if self.offset + count > len(self.data):
            raise UnexpectedEndOfInput(self.offset, count, self.remaining())

    def peek(self, ahead: int = 0) -> int:
        self._require(ahead + 1)
        return self.data[self.offset + ahead]

    def read_u8(self) -> int:
        self._require(1)
        value = self.data[self.offset]
        self.offset += 1
        return value

    def read_s8(self) -> int:
        raw = self.read_u8()
        return raw - 0x100 if raw & 0x80 else raw

    def read_u16(self) -> int:
        self._require(2)
        lo = self.data[self.offset]
        hi = self.data[self.offset + 1]
        self.offset += 2
        return (hi << 8) | lo

    def read_s16(self) -> int:
        raw = self.read_u16()
        return raw - 0x10000 if raw & 0x8000 else raw

    def seek(self, offset: int) -> None:
        if not 0 <= offset <= len(self.data):
            raise ValueError(
                f"offset {offset} outside buffer of {len(self.data)} bytes"
            )
        self.offset = offset

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def slice_from(self, start: int) -> bytes:
        """Bytes consumed since `start`."""
        return bytes(self.data[start : self.offset])
