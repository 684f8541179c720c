"""
Single forward pass over an image, one output line per decoded instruction.

`Driver` owns the only `ByteCursor` of the run. It walks the states
Scanning -> Decoding -> Emitting -> Scanning until the cursor reaches the end
of the buffer (Done). A decode failure moves it to Failed, where the
`FailurePolicy` either re-raises the error or emits the byte at the failure
position as data and resumes scanning at the next byte.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Iterator, List, Optional, Union

from .config import DisasmConfig, FailurePolicy
from .decoding import ByteCursor, DecodeError, DecodedInstr, decode_instruction
from .printer import format_instruction, format_listing, format_raw
from .tokens import TComment

logger = logging.getLogger(__name__)


class DriverState(str, Enum):
    SCANNING = "scanning"
    DECODING = "decoding"
    EMITTING = "emitting"
    FAILED = "failed"
    DONE = "done"


@dataclass(frozen=True)
class RawByte:
    """A byte emitted as data after a recovered decode failure."""

    offset: int
    value: int
    error: DecodeError
    origin: int = 0

    @property
    def length(self) -> int:
        return 1

    @property
    def address(self) -> int:
        return self.origin + self.offset

    @property
    def raw(self) -> bytes:
        return bytes([self.value])


Record = Union[DecodedInstr, RawByte]


class Driver:
    def __init__(self, data: bytes, config: Optional[DisasmConfig] = None) -> None:
        self.config = config or DisasmConfig()
        self.cursor = ByteCursor(bytes(data))
        self.state = DriverState.SCANNING
        self.failures: List[DecodeError] = []

    def _transition(self, state: DriverState) -> None:
        logger.debug(
            "offset %#06x: %s -> %s", self.cursor.offset, self.state.value, state.value
        )
        self.state = state

    def records(self) -> Iterator[Record]:
        """
        Decode the buffer, yielding each record as soon as it is decoded.

        Under `FailurePolicy.FATAL` the first `DecodeError` propagates after
        every earlier record has been yielded.
        """
        cursor = self.cursor
        origin = self.config.origin
        instr: Optional[DecodedInstr] = None
        error: Optional[DecodeError] = None

        while self.state is not DriverState.DONE:
            if self.state is DriverState.SCANNING:
                self._transition(
                    DriverState.DONE if cursor.at_end() else DriverState.DECODING
                )
            elif self.state is DriverState.DECODING:
                try:
                    instr = decode_instruction(cursor, origin)
                except DecodeError as exc:
                    error = exc
                    self._transition(DriverState.FAILED)
                else:
                    self._transition(DriverState.EMITTING)
            elif self.state is DriverState.EMITTING:
                assert instr is not None
                yield instr
                instr = None
                self._transition(DriverState.SCANNING)
            elif self.state is DriverState.FAILED:
                assert error is not None
                self.failures.append(error)
                if self.config.policy is FailurePolicy.FATAL:
                    raise error
                offset = cursor.offset
                value = cursor.read_u8()
                logger.warning(
                    "offset %#06x: emitting byte %#04x as data (%s)", offset, value, error
                )
                yield RawByte(offset, value, error, origin)
                error = None
                self._transition(DriverState.SCANNING)

        assert cursor.offset == len(cursor.data)

    def header(self) -> List[str]:
        if not self.config.header:
            return []
        lines = ["bits 16"]
        if self.config.origin:
            lines.append(f"org 0x{self.config.origin:x}")
        return lines

    def format_record(self, record: Record) -> str:
        if isinstance(record, RawByte):
            line = format_raw(record.raw)
        else:
            line = format_instruction(record)
        if self.config.listing:
            line += str(TComment(format_listing(record)))
        return line

    def lines(self) -> Iterator[str]:
        yield from self.header()
        for record in self.records():
            yield self.format_record(record)


def disassemble(data: bytes, config: Optional[DisasmConfig] = None) -> List[str]:
    return list(Driver(data, config).lines())


def decode_all(data: bytes, origin: int = 0) -> List[DecodedInstr]:
    """Decode every instruction in `data`; the first failure propagates."""
    driver = Driver(data, DisasmConfig(origin=origin))
    return [record for record in driver.records() if isinstance(record, DecodedInstr)]


__all__ = [
    "Driver",
    "DriverState",
    "RawByte",
    "Record",
    "decode_all",
    "disassemble",
]
