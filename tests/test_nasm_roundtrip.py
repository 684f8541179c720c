"""
Reassemble disassembly output with nasm and compare it to the input bytes.

Every test here needs a working nasm (see the `--nasm` option in conftest);
without one they are skipped.
"""

from __future__ import annotations

import os
from typing import List, NamedTuple

import pytest
from hypothesis import HealthCheck, given, settings

from dis86.config import DisasmConfig, FailurePolicy
from dis86.driver import disassemble
from dis86.test_printer import print_cases

from prop.strategies import instruction_streams

pytestmark = pytest.mark.nasm

RUN_NIGHTLY = os.getenv("DIS86_PROP_RUN_NIGHTLY") == "1"


class Program(NamedTuple):
    test_id: str
    source: str
    origin: int = 0


programs: List[Program] = [
    Program(
        "copy_loop",
        """
        org 0x100
        start:
            mov ax, 0x1234
            mov ds, ax
            xor si, si
            mov cx, 16
        .copy:
            lodsb
            add al, 3
            stosb
            loop .copy
            cmp byte [bp+6], 0
            jne short start
            call far [bx+si+4]
            int 0x21
            ret
        """,
        origin=0x100,
    ),
    Program(
        "prefixes_and_groups",
        """
            cld
            rep movsw
            repne scasb
            es lodsb
            mov al, [es:di]
            push word [bx+di-2]
            pop es
            sub sp, 8
            and word [0x2000], 0x7fff
            shr bx, cl
            les si, [bp+4]
            lock inc word [bx]
            jmp short done
            nop
        done:
            hlt
        """,
    ),
    Program(
        "pinned_encodings",
        """
            mov ax, [byte bx+0]
            mov ax, [word bp+0]
            add bx, strict word 5
            add ax, strict word 5
            jmp near next
        next:
            db 0x8b, 0xc3
            db 0x82, 0xc3, 0x05
            aam 0x10
            aad
        """,
    ),
]


def _source(program: Program) -> str:
    return "bits 16\n" + "\n".join(line.strip() for line in program.source.splitlines())


@pytest.mark.parametrize("program", programs, ids=lambda p: p.test_id)
def test_program_roundtrip(assemble, program: Program) -> None:
    binary = assemble(_source(program))
    text = "\n".join(disassemble(binary, DisasmConfig(origin=program.origin)))
    assert assemble(text) == binary


@pytest.mark.parametrize("case", print_cases, ids=lambda c: c.test_id)
def test_printed_instruction_roundtrip(assemble, case) -> None:
    data = bytes.fromhex(case.data)
    assert assemble("\n".join(disassemble(data))) == data


def test_recovered_bytes_roundtrip(assemble) -> None:
    data = bytes.fromhex("90 0f 01 d8 c0 e0 04 f1 c3")
    lines = disassemble(data, DisasmConfig(policy=FailurePolicy.RAW_BYTE))
    assert assemble("\n".join(lines)) == data


@pytest.mark.skipif(not RUN_NIGHTLY, reason="set DIS86_PROP_RUN_NIGHTLY=1 to enable")
@settings(
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.filter_too_much],
)
@given(data=instruction_streams())
def test_random_stream_roundtrip(assemble, data: bytes) -> None:
    assert assemble("\n".join(disassemble(data))) == data
