from __future__ import annotations

from typing import Dict, List, Optional

from .bind import Prefixes, RepeatKind
from .reader import ByteCursor

SEGMENT_PREFIXES: Dict[int, str] = {
    0x26: "es",
    0x2E: "cs",
    0x36: "ss",
    0x3E: "ds",
}

REPEAT_PREFIXES: Dict[int, RepeatKind] = {
    0xF2: RepeatKind.REPNE,
    0xF3: RepeatKind.REP,
}

LOCK_PREFIX = 0xF0

PREFIX_BYTES = frozenset(SEGMENT_PREFIXES) | frozenset(REPEAT_PREFIXES) | {LOCK_PREFIX}


def classify_prefixes(cursor: ByteCursor) -> Prefixes:
    """
    Consume the run of prefix bytes at the cursor.

    Later prefixes of the same kind override earlier ones, as on the CPU; the
    complete run is kept in `raw` so the printer can tell whether it can be
    reproduced textually. A run that reaches the end of the buffer raises
    `UnexpectedEndOfInput` from the opcode peek.
    """
    segment: Optional[str] = None
    repeat: Optional[RepeatKind] = None
    lock = False
    raw: List[int] = []

    while True:
        byte = cursor.peek()
        if byte in SEGMENT_PREFIXES:
            segment = SEGMENT_PREFIXES[byte]
        elif byte in REPEAT_PREFIXES:
            repeat = REPEAT_PREFIXES[byte]
        elif byte == LOCK_PREFIX:
            lock = True
        else:
            break
        raw.append(cursor.read_u8())

    return Prefixes(segment=segment, repeat=repeat, lock=lock, raw=tuple(raw))
