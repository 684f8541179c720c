import pytest

from dis86.decoding.bind import Memory, ModRM, Prefixes, Register
from dis86.decoding.decode_map import OPCODES
from dis86.decoding.errors import UnexpectedEndOfInput
from dis86.decoding.immediates import read_immediate, read_relative
from dis86.decoding.modrm import decode_modrm
from dis86.decoding.reader import ByteCursor

MOV_RM16 = OPCODES[0x89]
MOV_RM8 = OPCODES[0x88]


def test_modrm_fields() -> None:
    modrm = ModRM.from_byte(0b10_011_110)
    assert (modrm.mod, modrm.reg, modrm.rm) == (0b10, 0b011, 0b110)
    assert not modrm.register_direct
    with pytest.raises(ValueError):
        ModRM.from_byte(0x100)


def test_register_direct() -> None:
    modrm, operand = decode_modrm(ByteCursor(bytes([0xD8])), MOV_RM16, Prefixes())
    assert modrm.register_direct
    assert operand == Register("ax", 16)

    _, operand8 = decode_modrm(ByteCursor(bytes([0xE0])), MOV_RM8, Prefixes())
    assert operand8 == Register("al", 8)


def test_direct_address() -> None:
    cursor = ByteCursor(bytes([0x06, 0x34, 0x12]))
    _, operand = decode_modrm(cursor, MOV_RM16, Prefixes())
    assert operand == Memory((), 0x1234, 16, None, 16)
    assert operand.direct
    assert cursor.at_end()


def test_no_displacement() -> None:
    _, operand = decode_modrm(ByteCursor(bytes([0x00])), MOV_RM8, Prefixes())
    assert operand == Memory(("bx", "si"), 0, 0, None, 8)


def test_byte_displacement_keeps_width() -> None:
    _, operand = decode_modrm(ByteCursor(bytes([0x46, 0x00])), MOV_RM16, Prefixes())
    assert operand == Memory(("bp",), 0, 8, None, 16)

    _, negative = decode_modrm(ByteCursor(bytes([0x47, 0xFF])), MOV_RM16, Prefixes())
    assert negative.disp == -1
    assert negative.disp_width == 8


def test_word_displacement_keeps_width() -> None:
    _, operand = decode_modrm(ByteCursor(bytes([0x87, 0x05, 0x00])), MOV_RM16, Prefixes())
    assert operand == Memory(("bx",), 5, 16, None, 16)


def test_segment_override_attaches_to_memory() -> None:
    prefixes = Prefixes(segment="es", raw=(0x26,))
    _, operand = decode_modrm(ByteCursor(bytes([0x07])), MOV_RM16, prefixes)
    assert operand.segment == "es"
    _, reg = decode_modrm(ByteCursor(bytes([0xC0])), MOV_RM16, prefixes)
    assert reg == Register("ax", 16)


def test_truncated_displacement() -> None:
    with pytest.raises(UnexpectedEndOfInput):
        decode_modrm(ByteCursor(bytes([0x86, 0x01])), MOV_RM16, Prefixes())


def test_immediate_sign_extension() -> None:
    imm = read_immediate(ByteCursor(bytes([0xFF])), 8, 16, signed=True)
    assert imm.value == 0xFFFF
    assert imm.signed == -1
    assert imm.sign_extended

    zero_extended = read_immediate(ByteCursor(bytes([0xFF])), 8)
    assert zero_extended.value == 0xFF
    assert not zero_extended.sign_extended


def test_relative_target_from_instruction_end() -> None:
    cursor = ByteCursor(bytes([0xEB, 0x05]), offset=1)
    target = read_relative(cursor, 8)
    assert target.disp == 5
    assert target.target == 7

    backward = read_relative(ByteCursor(bytes([0xE2, 0xFE]), offset=1), 8, origin=0x100)
    assert backward.target == 0x100
