import pytest

from dis86.decoding import decode_map
from dis86.decoding.decode_map import GROUPS, OPCODES, UNSUPPORTED, Scheme, Shortcut, lookup_opcode
from dis86.decoding.errors import UnknownOpcode, UnsupportedEncoding
from dis86.decoding.prefixes import PREFIX_BYTES
from dis86.decoding.reader import ByteCursor


def test_every_byte_is_classified_once() -> None:
    for byte in range(0x100):
        owners = [
            byte in OPCODES,
            byte in GROUPS,
            byte in UNSUPPORTED,
            byte in PREFIX_BYTES,
        ]
        assert sum(owners) <= 1, f"{byte:#04x} classified twice"
    unclassified = {
        byte
        for byte in range(0x100)
        if byte not in OPCODES
        and byte not in GROUPS
        and byte not in UNSUPPORTED
        and byte not in PREFIX_BYTES
    }
    assert unclassified == {0xD6, 0xF1}


def test_groups_have_eight_slots() -> None:
    for opcode, group in GROUPS.items():
        assert len(group) == 8, f"{opcode:#04x}"


def test_alu_block_layout() -> None:
    for index, name in enumerate(decode_map.ALU_MNEMONICS):
        base = index * 8
        assert OPCODES[base].mnemonic == name
        assert OPCODES[base + 1].width == 16
        assert OPCODES[base + 3].reg_first
        assert OPCODES[base + 4].scheme is Scheme.ACC_IMMEDIATE
        assert OPCODES[base + 5].sbyte_shortcut
        assert GROUPS[0x80][index].mnemonic == name
        assert GROUPS[0x83][index].s_bit


def test_jcc_table() -> None:
    assert OPCODES[0x74].mnemonic == "je"
    assert OPCODES[0x7F].mnemonic == "jg"
    assert all(OPCODES[op].scheme is Scheme.RELATIVE for op in range(0x70, 0x80))
    assert all(OPCODES[op].branch == "short" for op in range(0x70, 0x80))
    assert all(OPCODES[op].branch is None for op in range(0xE0, 0xE4))


def test_lookup_plain_opcode() -> None:
    cursor = ByteCursor(bytes([0x89, 0xD8]))
    opcode, desc = lookup_opcode(cursor)
    assert opcode == 0x89
    assert desc.mnemonic == "mov"
    assert desc.d_bit
    assert cursor.offset == 1


def test_lookup_group_peeks_modrm() -> None:
    cursor = ByteCursor(bytes([0xF7, 0xD8]))  # neg ax
    opcode, desc = lookup_opcode(cursor)
    assert desc.mnemonic == "neg"
    assert cursor.offset == 1
    assert cursor.peek() == 0xD8


def test_shortcut_metadata() -> None:
    assert GROUPS[0xFF][0].shortcut is Shortcut.ANY_RM
    assert GROUPS[0xF6][0].shortcut is Shortcut.ACC_RM
    assert OPCODES[0x87].shortcut is Shortcut.ACC_EITHER
    assert GROUPS[0xFF][3].memory_only
    assert GROUPS[0x82][0].alias


@pytest.mark.parametrize(
    "data",
    [
        bytes([0xD6]),
        bytes([0xF1]),
        bytes([0xFF, 0xF8]),  # /7
        bytes([0xD0, 0xF0]),  # /6
        bytes([0xF6, 0xC8]),  # /1
        bytes([0x8F, 0xC8]),  # /1
    ],
    ids=lambda d: d.hex(),
)
def test_unknown_opcodes(data: bytes) -> None:
    with pytest.raises(UnknownOpcode) as excinfo:
        lookup_opcode(ByteCursor(data))
    assert excinfo.value.byte == data[0]
    assert excinfo.value.offset == 0


@pytest.mark.parametrize("byte", [0x0F, 0x60, 0x66, 0xC0, 0xC8, 0xD8, 0xDF])
def test_unsupported_opcodes(byte: int) -> None:
    with pytest.raises(UnsupportedEncoding) as excinfo:
        lookup_opcode(ByteCursor(bytes([byte, 0x00])))
    assert excinfo.value.byte == byte
    assert "unsupported opcode" in str(excinfo.value)
