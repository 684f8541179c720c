import pytest

from dis86.decoding.errors import UnexpectedEndOfInput
from dis86.decoding.reader import ByteCursor


def test_reads_little_endian_words() -> None:
    cursor = ByteCursor(bytes([0x34, 0x12, 0xFE, 0xFF]))
    assert cursor.read_u16() == 0x1234
    assert cursor.read_s16() == -2
    assert cursor.at_end()


def test_signed_byte() -> None:
    cursor = ByteCursor(bytes([0x80, 0x7F]))
    assert cursor.read_s8() == -128
    assert cursor.read_s8() == 127


def test_short_read_does_not_advance() -> None:
    cursor = ByteCursor(bytes([0xAA]))
    with pytest.raises(UnexpectedEndOfInput) as excinfo:
        cursor.read_u16()
    assert cursor.offset == 0
    assert excinfo.value.offset == 0
    assert excinfo.value.needed == 2
    assert excinfo.value.remaining == 1
    assert "offset 0x0000" in str(excinfo.value)


def test_peek_and_slice() -> None:
    cursor = ByteCursor(bytes([1, 2, 3]))
    assert cursor.peek() == 1
    assert cursor.peek(2) == 3
    cursor.read_u8()
    cursor.read_u8()
    assert cursor.slice_from(0) == bytes([1, 2])
    assert cursor.remaining() == 1
    with pytest.raises(UnexpectedEndOfInput):
        cursor.peek(1)


def test_seek_bounds() -> None:
    cursor = ByteCursor(bytes(4))
    cursor.seek(4)
    assert cursor.at_end()
    with pytest.raises(ValueError):
        cursor.seek(5)
    with pytest.raises(ValueError):
        ByteCursor(bytes(2), offset=3)
