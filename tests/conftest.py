"""Shared pytest fixtures for the reassembly tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from plumbum import CommandNotFound, local  # type: ignore[import-untyped]


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--nasm",
        action="store",
        metavar="PATH",
        default="nasm",
        help="nasm executable used by the reassembly tests (default: nasm on PATH)",
    )


@pytest.fixture(scope="session")
def nasm(request: pytest.FixtureRequest):
    name = request.config.getoption("--nasm")
    try:
        return local[name]
    except CommandNotFound:
        pytest.skip(f"nasm not available ({name})")


@pytest.fixture
def assemble(nasm, tmp_path: Path) -> Callable[[str], bytes]:
    """Assemble NASM source text to a flat binary."""
    counter = iter(range(1_000_000))

    def run(source: str) -> bytes:
        index = next(counter)
        src = tmp_path / f"src{index}.asm"
        out = tmp_path / f"out{index}.bin"
        src.write_text(source if source.endswith("\n") else source + "\n")
        nasm["-f", "bin", "-o", str(out), str(src)]()
        return out.read_bytes()

    return run
