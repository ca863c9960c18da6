"""Instruction-set level model of a Y86 processor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import IO, Callable

from y86tools.isa import (
    DEFAULT_CC,
    MEM_SIZE,
    AluOp,
    IType,
    Memory,
    MemoryAccessError,
    Reg,
    RegisterFile,
    Stat,
    cc_name,
    compute_alu,
    compute_cc,
    cond_holds,
    reg_valid,
)

_MASK = 0xFFFFFFFF

_NEEDS_REGIDS = frozenset(
    {
        IType.RRMOVL,
        IType.ALU,
        IType.PUSHL,
        IType.POPL,
        IType.IRMOVL,
        IType.RMMOVL,
        IType.MRMOVL,
        IType.IADDL,
    }
)

_NEEDS_IMM = frozenset(
    {IType.IRMOVL, IType.RMMOVL, IType.MRMOVL, IType.JMP, IType.CALL, IType.IADDL}
)

_BAD_IADDR = "Invalid instruction address\n"


def _word(value: int) -> int:
    """Wrap an integer to a signed 32-bit word."""
    value &= _MASK
    return value - (1 << 32) if value & 0x80000000 else value


class _Fault(Exception):
    """Stops execution of an instruction with a status and optional message."""

    def __init__(self, stat: Stat, message: str | None):
        super().__init__(message)
        self.stat = stat
        self.message = message


@dataclass
class _Fetched:
    icode: int
    ifun: int
    ra: int
    rb: int
    valc: int
    ok1: bool
    okc: bool
    valp: int


class State:
    """Program counter, registers, memory and condition code of a machine."""

    def __init__(self, memlen: int = MEM_SIZE):
        self.pc = 0
        self.r = RegisterFile()
        self.m = Memory(memlen)
        self.cc = DEFAULT_CC

    def copy(self) -> "State":
        """Return an independent copy of the whole machine state."""
        result = State(0)
        result.pc = self.pc
        result.r = self.r.copy()
        result.m = self.m.copy()
        result.cc = self.cc
        return result

    def diff(self, other: "State", out: IO[str] | None = None) -> bool:
        """Report what differs from ``other``; True if anything does."""
        differs = False
        if self.pc != other.pc:
            differs = True
            if out is not None:
                out.write(f"pc:\t0x{self.pc & _MASK:08x}\t0x{other.pc & _MASK:08x}\n")
        if self.cc != other.cc:
            differs = True
            if out is not None:
                out.write(f"cc:\t{cc_name(self.cc)}\t{cc_name(other.cc)}\n")
        if self.r.diff(other.r, out):
            differs = True
        if self.m.diff(other.m, out):
            differs = True
        return differs

    def step(self, error_file: IO[str] | None = None) -> Stat:
        """Execute one instruction and return the resulting status."""
        pc = self.pc
        try:
            fetched = self._fetch()
            handler = self._HANDLERS.get(fetched.icode)
            if handler is None:
                raise _Fault(
                    Stat.INS, f"Invalid instruction {self.m.get_byte(pc):02x}\n"
                )
            return handler(self, fetched)
        except _Fault as fault:
            if fault.message is not None and error_file is not None:
                error_file.write(f"PC = 0x{pc & _MASK:x}, {fault.message}")
            return fault.stat

    # Fetch and decode helpers

    def _fetch(self) -> _Fetched:
        ftpc = self.pc
        try:
            byte0 = self.m.get_byte(ftpc)
        except MemoryAccessError:
            raise _Fault(Stat.ADR, _BAD_IADDR) from None
        ftpc += 1
        icode, ifun = (byte0 >> 4) & 0xF, byte0 & 0xF

        ok1, ra, rb = True, Reg.NONE, Reg.NONE
        if icode in _NEEDS_REGIDS:
            try:
                byte1 = self.m.get_byte(ftpc)
            except MemoryAccessError:
                ok1, byte1 = False, 0
            ftpc += 1
            ra, rb = (byte1 >> 4) & 0xF, byte1 & 0xF

        okc, valc = True, 0
        if icode in _NEEDS_IMM:
            try:
                valc = self.m.get_word(ftpc)
            except MemoryAccessError:
                okc = False
            ftpc += 4

        return _Fetched(icode, ifun, ra, rb, valc, ok1, okc, ftpc)

    @staticmethod
    def _need_regids(f: _Fetched) -> None:
        if not f.ok1:
            raise _Fault(Stat.ADR, _BAD_IADDR)

    @staticmethod
    def _need_const(f: _Fetched, stat: Stat, message: str) -> None:
        if not f.okc:
            raise _Fault(stat, message)

    @staticmethod
    def _need_valid(reg_id: int) -> None:
        if not reg_valid(reg_id):
            raise _Fault(Stat.INS, f"Invalid register ID 0x{reg_id:x}\n")

    def _read(self, addr: int, message: str | None) -> int:
        try:
            return self.m.get_word(addr)
        except MemoryAccessError:
            raise _Fault(Stat.ADR, message) from None

    def _write(self, addr: int, val: int, message: str) -> None:
        try:
            self.m.set_word(addr, val)
        except MemoryAccessError:
            raise _Fault(Stat.ADR, message) from None

    # Instruction handlers

    def _nop(self, f: _Fetched) -> Stat:
        self.pc = f.valp
        return Stat.AOK

    def _halt(self, f: _Fetched) -> Stat:
        return Stat.HLT

    def _rrmovl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_valid(f.ra)
        self._need_valid(f.rb)
        val = self.r.get(f.ra)
        if cond_holds(self.cc, f.ifun):
            self.r.set(f.rb, val)
        self.pc = f.valp
        return Stat.AOK

    def _irmovl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_const(f, Stat.INS, "Invalid instruction address")
        self._need_valid(f.rb)
        self.r.set(f.rb, f.valc)
        self.pc = f.valp
        return Stat.AOK

    def _effective_address(self, f: _Fetched) -> int:
        addr = f.valc
        if reg_valid(f.rb):
            addr = _word(addr + self.r.get(f.rb))
        return addr

    def _rmmovl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_const(f, Stat.INS, _BAD_IADDR)
        self._need_valid(f.ra)
        addr = self._effective_address(f)
        val = self.r.get(f.ra)
        self._write(addr, val, f"Invalid data address 0x{addr & _MASK:x}\n")
        self.pc = f.valp
        return Stat.AOK

    def _mrmovl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_const(f, Stat.INS, "Invalid instruction addres\n")
        self._need_valid(f.ra)
        addr = self._effective_address(f)
        val = self._read(addr, None)
        self.r.set(f.ra, val)
        self.pc = f.valp
        return Stat.AOK

    def _alu(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        arg_a = self.r.get(f.ra)
        arg_b = self.r.get(f.rb)
        self.r.set(f.rb, compute_alu(f.ifun, arg_a, arg_b))
        self.cc = compute_cc(f.ifun, arg_a, arg_b)
        self.pc = f.valp
        return Stat.AOK

    def _jmp(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_const(f, Stat.ADR, _BAD_IADDR)
        self.pc = f.valc if cond_holds(self.cc, f.ifun) else f.valp
        return Stat.AOK

    def _call(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_const(f, Stat.ADR, _BAD_IADDR)
        sp = _word(self.r.get(Reg.ESP) - 4)
        self.r.set(Reg.ESP, sp)
        self._write(sp, f.valp, f"Invalid stack address 0x{sp & _MASK:x}\n")
        self.pc = f.valc
        return Stat.AOK

    def _ret(self, f: _Fetched) -> Stat:
        sp = self.r.get(Reg.ESP)
        val = self._read(sp, f"Invalid stack address 0x{sp & _MASK:x}\n")
        self.r.set(Reg.ESP, _word(sp + 4))
        self.pc = val
        return Stat.AOK

    def _pushl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_valid(f.ra)
        val = self.r.get(f.ra)
        sp = _word(self.r.get(Reg.ESP) - 4)
        self.r.set(Reg.ESP, sp)
        self._write(sp, val, f"Invalid stack address 0x{sp & _MASK:x}\n")
        self.pc = f.valp
        return Stat.AOK

    def _popl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_valid(f.ra)
        sp = self.r.get(Reg.ESP)
        self.r.set(Reg.ESP, _word(sp + 4))
        val = self._read(sp, f"Invalid stack address 0x{sp & _MASK:x}\n")
        self.r.set(f.ra, val)
        self.pc = f.valp
        return Stat.AOK

    def _leave(self, f: _Fetched) -> Stat:
        fp = self.r.get(Reg.EBP)
        self.r.set(Reg.ESP, _word(fp + 4))
        val = self._read(fp, f"Invalid stack address 0x{fp & _MASK:x}\n")
        self.r.set(Reg.EBP, val)
        self.pc = f.valp
        return Stat.AOK

    def _iaddl(self, f: _Fetched) -> Stat:
        self._need_regids(f)
        self._need_const(f, Stat.INS, "Invalid instruction address")
        self._need_valid(f.rb)
        arg_b = self.r.get(f.rb)
        self.r.set(f.rb, compute_alu(AluOp.ADD, f.valc, arg_b))
        self.cc = compute_cc(AluOp.ADD, f.valc, arg_b)
        self.pc = f.valp
        return Stat.AOK

    _HANDLERS: dict[int, Callable[["State", _Fetched], Stat]] = {
        IType.NOP: _nop,
        IType.HALT: _halt,
        IType.RRMOVL: _rrmovl,
        IType.IRMOVL: _irmovl,
        IType.RMMOVL: _rmmovl,
        IType.MRMOVL: _mrmovl,
        IType.ALU: _alu,
        IType.JMP: _jmp,
        IType.CALL: _call,
        IType.RET: _ret,
        IType.PUSHL: _pushl,
        IType.POPL: _popl,
        IType.LEAVE: _leave,
        IType.IADDL: _iaddl,
    }