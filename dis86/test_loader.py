from pathlib import Path

import bincopy  # type: ignore[import-untyped]
import pytest

from .loader import ImageFormat, ImageLoadError, detect_format, load_image, parse_image_text


def _binfile(data: bytes, address: int) -> bincopy.BinFile:
    binfile = bincopy.BinFile()
    binfile.add_binary(data, address=address)
    return binfile


def test_flat_binary(tmp_path: Path) -> None:
    path = tmp_path / "prog.bin"
    path.write_bytes(bytes.fromhex("89d8"))
    image = load_image(path)
    assert image.data == bytes.fromhex("89d8")
    assert image.origin == 0
    assert image.fmt is ImageFormat.BINARY

    assert load_image(path, origin=0x100).origin == 0x100


def test_ihex_carries_origin(tmp_path: Path) -> None:
    path = tmp_path / "prog.hex"
    path.write_text(_binfile(bytes.fromhex("b80500f4"), 0x100).as_ihex())
    image = load_image(path)
    assert image.fmt is ImageFormat.IHEX
    assert image.origin == 0x100
    assert image.data == bytes.fromhex("b80500f4")
    assert image.end == 0x104


def test_srec_explicit_format(tmp_path: Path) -> None:
    path = tmp_path / "prog.dat"
    path.write_text(_binfile(bytes.fromhex("90c3"), 0x7C00).as_srec())
    image = load_image(path, "srec")
    assert image.origin == 0x7C00
    assert image.data == bytes.fromhex("90c3")


def test_ti_txt_text() -> None:
    text = _binfile(bytes.fromhex("cd21"), 0x10).as_ti_txt()
    image = parse_image_text(text, ImageFormat.TI_TXT)
    assert image.origin == 0x10
    assert image.data == bytes.fromhex("cd21")


def test_detect_format() -> None:
    assert detect_format("a.HEX") is ImageFormat.IHEX
    assert detect_format("a.s19") is ImageFormat.SREC
    assert detect_format("a.txt") is ImageFormat.TI_TXT
    assert detect_format("a.com") is ImageFormat.BINARY


def test_invalid_hex(tmp_path: Path) -> None:
    path = tmp_path / "bad.hex"
    path.write_text("this is not intel hex\n")
    with pytest.raises(ImageLoadError, match="invalid ihex image"):
        load_image(path)


def test_origin_mismatch(tmp_path: Path) -> None:
    path = tmp_path / "prog.hex"
    path.write_text(_binfile(b"\x90", 0x100).as_ihex())
    with pytest.raises(ImageLoadError, match="does not match"):
        load_image(path, origin=0x200)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ImageLoadError, match="cannot read"):
        load_image(tmp_path / "missing.bin")
