import pytest

from .emulator import EmulationError, Emulator, Flag, RegisterName, Registers


def run(hex_bytes: str, step_limit: int = 1000, origin: int = 0):
    emu = Emulator(bytes.fromhex(hex_bytes), origin)
    return emu, emu.run(step_limit)


def test_subregisters() -> None:
    regs = Registers()
    regs.set(RegisterName.AX, 0x1234)
    assert regs.get(RegisterName.AL) == 0x34
    assert regs.get(RegisterName.AH) == 0x12
    regs.set(RegisterName.AH, 0xAB)
    assert regs.get(RegisterName.AX) == 0xAB34
    regs.set_by_name("bl", 0x1FF)
    assert regs.get_by_name("bx") == 0x00FF


def test_flags_register_fixed_bits() -> None:
    regs = Registers()
    regs.set_flag(Flag.CF, 1)
    regs.set_flag(Flag.ZF, 1)
    assert regs.get_flag(Flag.CF) == 1
    assert regs.get(RegisterName.FLAGS) & 0x0FFF == (1 << Flag.CF) | (1 << Flag.ZF) | 0x02


def test_loop_accumulates() -> None:
    # mov cx, 3; mov ax, 0; add ax, 2; loop -5; hlt
    emu, state = run("b90300" "b80000" "83c002" "e2fb" "f4")
    assert state.stop_reason == "hlt"
    assert emu.regs.get(RegisterName.AX) == 6
    assert emu.regs.get(RegisterName.CX) == 0
    assert emu.regs.get(RegisterName.IP) == 12
    assert state.steps == 9
    assert state.flag_letters() == "P"


def test_subtract_borrow_flags() -> None:
    # mov ax, 1; sub ax, 2; hlt
    emu, state = run("b80100" "83e802" "f4")
    assert emu.regs.get(RegisterName.AX) == 0xFFFF
    assert state.flag_letters() == "CPAS"


def test_call_and_ret() -> None:
    # mov sp, 0x100; call 7; hlt; mov ax, 1; ret
    emu, state = run("bc0001" "e80100" "f4" "b80100" "c3")
    assert state.stop_reason == "hlt"
    assert emu.regs.get(RegisterName.AX) == 1
    assert emu.regs.get(RegisterName.SP) == 0x100
    assert emu.regs.get(RegisterName.IP) == 7


def test_memory_store_and_load() -> None:
    # mov word [0x0200], 0x1234; mov bx, [0x0200]; hlt
    emu, _ = run("c70600023412" "8b1e0002" "f4")
    assert emu.regs.get(RegisterName.BX) == 0x1234
    assert emu.memory.read_u16(0, 0x200) == 0x1234


def test_conditional_jump_taken() -> None:
    # mov ax, 5; cmp ax, 5; je +3; mov bx, 1; hlt
    emu, state = run("b80500" "83f805" "7403" "bb0100" "f4")
    assert emu.regs.get(RegisterName.BX) == 0
    assert emu.regs.get_flag(Flag.ZF) == 1
    assert state.steps == 4


def test_push_pop_and_xchg() -> None:
    # mov sp, 0x100; mov ax, 7; push ax; pop bx; xchg ax, cx; hlt
    emu, _ = run("bc0001" "b80700" "50" "5b" "91" "f4")
    assert emu.regs.get(RegisterName.BX) == 7
    assert emu.regs.get(RegisterName.CX) == 7
    assert emu.regs.get(RegisterName.AX) == 0


def test_stops_when_leaving_image() -> None:
    _, state = run("90")
    assert state.steps == 1
    assert "left the image" in state.stop_reason


def test_step_limit() -> None:
    _, state = run("ebfe", step_limit=5)
    assert state.steps == 5
    assert state.stop_reason == "step limit 5 reached"


def test_origin() -> None:
    emu, state = run("b80200" "f4", origin=0x100)
    assert emu.regs.get(RegisterName.IP) == 0x104
    assert state.registers["ax"] == 2


def test_unsupported_instruction() -> None:
    with pytest.raises(EmulationError, match="mul is not supported"):
        run("f7e3")


def test_comment_lines() -> None:
    _, state = run("b80600" "f4")
    lines = state.comment_lines()
    assert lines[0] == "; stopped after 2 step(s): hlt"
    assert "; ax: 0x0006 (6)" in lines
    assert "; ip: 0x0004 (4)" in lines
    assert lines[-1] == "; flags: "
    assert all(line.startswith(";") for line in lines)


def test_origin_above_first_segment() -> None:
    emu, state = run("b80600" "f4", origin=0x10000)
    assert state.stop_reason == "hlt"
    assert state.steps == 2
    assert emu.regs.get(RegisterName.CS) == 0x1000
    assert emu.regs.get(RegisterName.IP) == 0x0004
    assert state.registers["ax"] == 6


def test_origin_above_first_segment_branches() -> None:
    # jmp short +1; nop; hlt
    emu, state = run("eb01" "90" "f4", origin=0x23450)
    assert state.stop_reason == "hlt"
    assert state.steps == 2
    assert emu.regs.get(RegisterName.CS) == 0x2000
    assert emu.regs.get(RegisterName.IP) == 0x3454


def test_push_sp_stores_decremented_value() -> None:
    # mov sp, 0x100; push sp; pop ax; hlt
    emu, _ = run("bc0001" "54" "58" "f4")
    assert emu.regs.get(RegisterName.AX) == 0x00FE
    assert emu.regs.get(RegisterName.SP) == 0x0100
