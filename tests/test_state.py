import io

import pytest

from y86tools.isa import (
    DEFAULT_CC,
    AluOp,
    Cond,
    IType,
    Reg,
    Stat,
    compute_alu,
    hpack,
    pack_cc,
)
from y86tools.state import State


def _word(val):
    return (val & 0xFFFFFFFF).to_bytes(4, "little")


def irmovl(val, reg):
    return bytes([hpack(IType.IRMOVL, 0), hpack(Reg.NONE, reg)]) + _word(val)


def alu(op, ra, rb):
    return bytes([hpack(IType.ALU, op), hpack(ra, rb)])


def rr(cond, ra, rb):
    return bytes([hpack(IType.RRMOVL, cond), hpack(ra, rb)])


def rmmovl(ra, disp, rb):
    return bytes([hpack(IType.RMMOVL, 0), hpack(ra, rb)]) + _word(disp)


def mrmovl(disp, rb, ra):
    return bytes([hpack(IType.MRMOVL, 0), hpack(ra, rb)]) + _word(disp)


def jump(cond, dest):
    return bytes([hpack(IType.JMP, cond)]) + _word(dest)


def call(dest):
    return bytes([hpack(IType.CALL, 0)]) + _word(dest)


def pushl(ra):
    return bytes([hpack(IType.PUSHL, 0), hpack(ra, Reg.NONE)])


def popl(ra):
    return bytes([hpack(IType.POPL, 0), hpack(ra, Reg.NONE)])


def iaddl(val, reg):
    return bytes([hpack(IType.IADDL, 0), hpack(Reg.NONE, reg)]) + _word(val)


HALT = bytes([hpack(IType.HALT, 0)])
NOP = bytes([hpack(IType.NOP, 0)])
RET = bytes([hpack(IType.RET, 0)])
LEAVE = bytes([hpack(IType.LEAVE, 0)])


def machine(code, memlen=1024):
    state = State(memlen)
    state.m.contents[: len(code)] = code
    return state


def run_all(state, limit=100):
    stat = Stat.AOK
    for _ in range(limit):
        stat = state.step()
        if stat != Stat.AOK:
            break
    return stat


def test_new_state_defaults():
    state = State(100)
    assert state.pc == 0
    assert state.cc == DEFAULT_CC
    assert state.m.length % 32 == 0 and state.m.length >= 100
    assert all(state.r.get(r) == 0 for r in range(8))


def test_halt_keeps_pc():
    state = machine(HALT)
    assert state.step() == Stat.HLT
    assert state.pc == 0


def test_nop_advances_one_byte():
    state = machine(NOP + HALT)
    assert state.step() == Stat.AOK
    assert state.pc == 1


def test_irmovl_sets_register():
    state = machine(irmovl(1234, Reg.EDX) + HALT)
    assert state.step() == Stat.AOK
    assert state.r.get(Reg.EDX) == 1234
    assert state.pc == 6


def test_add_overflow_sets_flags():
    code = irmovl(0x7FFFFFFF, Reg.EAX) + irmovl(1, Reg.EBX) + alu(AluOp.ADD, Reg.EAX, Reg.EBX) + HALT
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.r.get(Reg.EBX) == compute_alu(AluOp.ADD, 0x7FFFFFFF, 1)
    assert state.r.get(Reg.EBX) < 0
    assert state.cc == pack_cc(0, 1, 1)


def test_subl_subtracts_first_from_second():
    code = irmovl(3, Reg.EAX) + irmovl(10, Reg.EBX) + alu(AluOp.SUB, Reg.EAX, Reg.EBX) + HALT
    state = machine(code)
    run_all(state)
    assert state.r.get(Reg.EBX) == 10 - 3
    assert state.cc == pack_cc(0, 0, 0)


def test_xorl_self_sets_zero():
    code = irmovl(77, Reg.ESI) + alu(AluOp.XOR, Reg.ESI, Reg.ESI) + HALT
    state = machine(code)
    run_all(state)
    assert state.r.get(Reg.ESI) == 0
    assert state.cc == pack_cc(1, 0, 0)


def test_conditional_moves_follow_cc():
    code = irmovl(9, Reg.EAX) + rr(Cond.E, Reg.EAX, Reg.ECX) + rr(Cond.NE, Reg.EAX, Reg.EDX) + HALT
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.r.get(Reg.ECX) == 9
    assert state.r.get(Reg.EDX) == 0


def test_memory_store_load_round_trip():
    code = (
        irmovl(-5, Reg.EAX)
        + irmovl(0x200, Reg.EBX)
        + rmmovl(Reg.EAX, 8, Reg.EBX)
        + mrmovl(8, Reg.EBX, Reg.ECX)
        + HALT
    )
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.r.get(Reg.ECX) == -5
    assert state.m.get_word(0x208) == -5


def test_push_pop_round_trip():
    code = irmovl(0x300, Reg.ESP) + irmovl(42, Reg.EAX) + pushl(Reg.EAX) + popl(Reg.EDI) + HALT
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.r.get(Reg.EDI) == 42
    assert state.r.get(Reg.ESP) == 0x300
    assert state.m.get_word(0x300 - 4) == 42


def test_call_and_ret():
    code = irmovl(0x300, Reg.ESP) + call(0x20) + HALT
    code = code.ljust(0x20, b"\x00")
    code += irmovl(7, Reg.EAX) + RET
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.pc == 11
    assert state.r.get(Reg.EAX) == 7
    assert state.r.get(Reg.ESP) == 0x300
    assert state.m.get_word(0x300 - 4) == 11


def test_jump_taken_and_not_taken():
    state = machine(jump(Cond.E, 0x40))
    state.step()
    assert state.pc == 0x40
    state = machine(jump(Cond.NE, 0x40))
    state.step()
    assert state.pc == 5


def test_leave_restores_frame():
    code = irmovl(0x200, Reg.EBP) + irmovl(0x123, Reg.EAX) + rmmovl(Reg.EAX, 0, Reg.EBP) + LEAVE + HALT
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.r.get(Reg.EBP) == 0x123
    assert state.r.get(Reg.ESP) == 0x200 + 4


def test_iaddl_adds_and_sets_cc():
    code = irmovl(5, Reg.EBX) + iaddl(-5, Reg.EBX) + HALT
    state = machine(code)
    assert run_all(state) == Stat.HLT
    assert state.r.get(Reg.EBX) == 0
    assert state.cc == pack_cc(1, 0, 0)


def test_invalid_instruction_reports():
    state = machine(bytes([0xF0]))
    err = io.StringIO()
    assert state.step(err) == Stat.INS
    assert "Invalid instruction f0" in err.getvalue()
    assert state.pc == 0


def test_pc_outside_memory_is_address_error():
    state = State(32)
    state.pc = 64
    err = io.StringIO()
    assert state.step(err) == Stat.ADR
    assert err.getvalue() == "PC = 0x40, Invalid instruction address\n"


def test_invalid_register_in_move():
    state = machine(bytes([hpack(IType.RRMOVL, 0), hpack(Reg.EAX, 8)]))
    err = io.StringIO()
    assert state.step(err) == Stat.INS
    assert "Invalid register ID 0x8" in err.getvalue()


def test_store_to_bad_address():
    code = irmovl(5000, Reg.EBX) + rmmovl(Reg.EAX, 0, Reg.EBX)
    state = machine(code)
    state.step()
    err = io.StringIO()
    assert state.step(err) == Stat.ADR
    assert "Invalid data address 0x1388" in err.getvalue()
    assert state.pc == 6


def test_load_from_bad_address_is_silent():
    state = machine(mrmovl(-4, Reg.NONE, Reg.EAX))
    err = io.StringIO()
    assert state.step(err) == Stat.ADR
    assert err.getvalue() == ""


def test_ret_with_bad_stack():
    state = machine(RET)
    state.r.set(Reg.ESP, -8)
    err = io.StringIO()
    assert state.step(err) == Stat.ADR
    assert "Invalid stack address 0xfffffff8" in err.getvalue()


def test_copy_is_independent():
    state = machine(irmovl(3, Reg.EAX) + HALT)
    clone = state.copy()
    state.step()
    assert clone.pc == 0
    assert clone.r.get(Reg.EAX) == 0
    assert state.diff(clone)


def test_diff_reports_changes():
    state = machine(irmovl(10, Reg.EAX) + HALT)
    before = state.copy()
    assert not before.diff(state)
    state.step()
    out = io.StringIO()
    assert before.diff(state, out)
    text = out.getvalue()
    assert "pc:\t0x00000000\t0x00000006\n" in text
    assert "%eax:\t0x00000000\t0x0000000a\n" in text


@pytest.mark.parametrize("memlen", [1, 32, 33])
def test_memory_rounded_to_blocks(memlen):
    state = State(memlen)
    assert state.m.length >= memlen
    assert state.m.length % 32 == 0