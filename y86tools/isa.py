"""Y86 instruction set: registers, encodings, memory, ALU and condition codes."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import IO, Iterable

BPL = 32
"""Bytes per line; memories are sized in multiples of this block."""

MEM_SIZE = 1 << 13
BIG_MEM_SIZE = 1 << 16

_WORD_MASK = 0xFFFFFFFF


def _s32(value: int) -> int:
    """Wrap an integer to a signed 32-bit word."""
    value &= _WORD_MASK
    return value - (1 << 32) if value & 0x80000000 else value


class Reg(IntEnum):
    EAX = 0
    ECX = 1
    EDX = 2
    EBX = 3
    ESP = 4
    EBP = 5
    ESI = 6
    EDI = 7
    NONE = 0xF
    ERR = 0x10


_REG_NAMES = ("%eax", "%ecx", "%edx", "%ebx", "%esp", "%ebp", "%esi", "%edi")
_REG_BY_NAME = {name: Reg(i) for i, name in enumerate(_REG_NAMES)}
_NO_REG_NAME = "----"


class ArgType(IntEnum):
    R_ARG = 0
    M_ARG = 1
    I_ARG = 2
    NO_ARG = 3


class IType(IntEnum):
    HALT = 0
    NOP = 1
    RRMOVL = 2
    IRMOVL = 3
    RMMOVL = 4
    MRMOVL = 5
    ALU = 6
    JMP = 7
    CALL = 8
    RET = 9
    PUSHL = 10
    POPL = 11
    IADDL = 12
    LEAVE = 13
    POP2 = 14


class AluOp(IntEnum):
    ADD = 0
    SUB = 1
    AND = 2
    XOR = 3
    NONE = 4


class Cond(IntEnum):
    YES = 0
    LE = 1
    L = 2
    E = 3
    NE = 4
    GE = 5
    G = 6


class Stat(IntEnum):
    BUB = 0
    AOK = 1
    HLT = 2
    ADR = 3
    INS = 4
    PIP = 5


F_NONE = 0


def hpack(hi: int, lo: int) -> int:
    """Pack an instruction type and function code into one byte."""
    return ((hi & 0xF) << 4) | (lo & 0xF)


def find_register(name: str) -> Reg:
    """Return the register with this name, or Reg.ERR."""
    return _REG_BY_NAME.get(name, Reg.ERR)


def reg_name(reg_id: int) -> str:
    """Return the printed name of a register ID."""
    if 0 <= reg_id < len(_REG_NAMES):
        return _REG_NAMES[reg_id]
    return _NO_REG_NAME


def reg_valid(reg_id: int) -> bool:
    """Is the ID one of the eight program registers?"""
    return 0 <= reg_id < len(_REG_NAMES)


@dataclass(frozen=True)
class Instr:
    """Encoding information about one instruction or directive."""

    name: str
    code: int
    size: int
    arg1: ArgType
    arg1pos: int
    arg1hi: int
    arg2: ArgType
    arg2pos: int
    arg2hi: int


_R, _M, _I, _N = ArgType.R_ARG, ArgType.M_ARG, ArgType.I_ARG, ArgType.NO_ARG

INSTRUCTION_SET: tuple[Instr, ...] = (
    Instr("nop", hpack(IType.NOP, F_NONE), 1, _N, 0, 0, _N, 0, 0),
    Instr("halt", hpack(IType.HALT, F_NONE), 1, _N, 0, 0, _N, 0, 0),
    Instr("rrmovl", hpack(IType.RRMOVL, F_NONE), 2, _R, 1, 1, _R, 1, 0),
    Instr("cmovle", hpack(IType.RRMOVL, Cond.LE), 2, _R, 1, 1, _R, 1, 0),
    Instr("cmovl", hpack(IType.RRMOVL, Cond.L), 2, _R, 1, 1, _R, 1, 0),
    Instr("cmove", hpack(IType.RRMOVL, Cond.E), 2, _R, 1, 1, _R, 1, 0),
    Instr("cmovne", hpack(IType.RRMOVL, Cond.NE), 2, _R, 1, 1, _R, 1, 0),
    Instr("cmovge", hpack(IType.RRMOVL, Cond.GE), 2, _R, 1, 1, _R, 1, 0),
    Instr("cmovg", hpack(IType.RRMOVL, Cond.G), 2, _R, 1, 1, _R, 1, 0),
    Instr("irmovl", hpack(IType.IRMOVL, F_NONE), 6, _I, 2, 4, _R, 1, 0),
    Instr("rmmovl", hpack(IType.RMMOVL, F_NONE), 6, _R, 1, 1, _M, 1, 0),
    Instr("mrmovl", hpack(IType.MRMOVL, F_NONE), 6, _M, 1, 0, _R, 1, 1),
    Instr("addl", hpack(IType.ALU, AluOp.ADD), 2, _R, 1, 1, _R, 1, 0),
    Instr("subl", hpack(IType.ALU, AluOp.SUB), 2, _R, 1, 1, _R, 1, 0),
    Instr("andl", hpack(IType.ALU, AluOp.AND), 2, _R, 1, 1, _R, 1, 0),
    Instr("xorl", hpack(IType.ALU, AluOp.XOR), 2, _R, 1, 1, _R, 1, 0),
    Instr("jmp", hpack(IType.JMP, Cond.YES), 5, _I, 1, 4, _N, 0, 0),
    Instr("jle", hpack(IType.JMP, Cond.LE), 5, _I, 1, 4, _N, 0, 0),
    Instr("jl", hpack(IType.JMP, Cond.L), 5, _I, 1, 4, _N, 0, 0),
    Instr("je", hpack(IType.JMP, Cond.E), 5, _I, 1, 4, _N, 0, 0),
    Instr("jne", hpack(IType.JMP, Cond.NE), 5, _I, 1, 4, _N, 0, 0),
    Instr("jge", hpack(IType.JMP, Cond.GE), 5, _I, 1, 4, _N, 0, 0),
    Instr("jg", hpack(IType.JMP, Cond.G), 5, _I, 1, 4, _N, 0, 0),
    Instr("call", hpack(IType.CALL, F_NONE), 5, _I, 1, 4, _N, 0, 0),
    Instr("ret", hpack(IType.RET, F_NONE), 1, _N, 0, 0, _N, 0, 0),
    Instr("pushl", hpack(IType.PUSHL, F_NONE), 2, _R, 1, 1, _N, 0, 0),
    Instr("popl", hpack(IType.POPL, F_NONE), 2, _R, 1, 1, _N, 0, 0),
    Instr("iaddl", hpack(IType.IADDL, F_NONE), 6, _I, 2, 4, _R, 1, 0),
    Instr("leave", hpack(IType.LEAVE, F_NONE), 1, _N, 0, 0, _N, 0, 0),
    # Gives the POP2 code a name; it has no encoding of its own.
    Instr("pop2", hpack(IType.POP2, F_NONE), 0, _N, 0, 0, _N, 0, 0),
    # For allocation directives arg1hi is the number of bytes.
    Instr(".byte", 0x00, 1, _I, 0, 1, _N, 0, 0),
    Instr(".word", 0x00, 2, _I, 0, 2, _N, 0, 0),
    Instr(".long", 0x00, 4, _I, 0, 4, _N, 0, 0),
)

INVALID_INSTR = Instr("XXX", 0, 0, _N, 0, 0, _N, 0, 0)

_INSTR_BY_NAME = {instr.name: instr for instr in INSTRUCTION_SET}


def find_instr(name: str) -> Instr | None:
    """Return the instruction with this mnemonic, or None."""
    return _INSTR_BY_NAME.get(name)


def iname(code: int) -> str:
    """Return the name of the first instruction with this encoding byte."""
    return next((i.name for i in INSTRUCTION_SET if i.code == code), "<bad>")


def bad_instr() -> Instr:
    """Return the placeholder used for invalid instructions."""
    return INVALID_INSTR


class MemoryAccessError(IndexError):
    """An access fell outside a memory's bounds."""

    def __init__(self, pos: int, size: int = 1):
        super().__init__(f"Invalid address 0x{pos & _WORD_MASK:x}")
        self.pos = pos
        self.size = size


class LoadError(ValueError):
    """A .yo file could not be loaded."""

    def __init__(self, message: str, lineno: int):
        super().__init__(f"Line {lineno}: {message}")
        self.lineno = lineno


_ADDR_RE = re.compile(r"\s*0[xX]([0-9a-fA-F]*)\s*")
_CODE_RE = re.compile(r"\s*((?:[0-9a-fA-F]{2})*)")


def _diff_words(old: "Memory", new: "Memory", out: IO[str] | None, label) -> bool:
    differs = False
    for pos in range(0, min(old.length, new.length), 4):
        if differs and out is None:
            break
        ov, nv = old.get_word(pos), new.get_word(pos)
        if ov != nv:
            differs = True
            if out is not None:
                out.write(
                    f"{label(pos)}:\t0x{ov & _WORD_MASK:08x}\t0x{nv & _WORD_MASK:08x}\n"
                )
    return differs


class Memory:
    """A byte-addressed memory, sized in whole blocks of BPL bytes."""

    def __init__(self, length: int):
        self.length = ((length + BPL - 1) // BPL) * BPL
        self.contents = bytearray(max(self.length, 0))

    def __len__(self) -> int:
        return self.length

    def _check(self, pos: int, size: int) -> None:
        if pos < 0 or pos + size > self.length:
            raise MemoryAccessError(pos, size)

    def clear(self) -> None:
        """Set every byte to zero."""
        self.contents[:] = bytes(len(self.contents))

    def copy(self) -> "Memory":
        """Return an independent copy."""
        result = Memory(self.length)
        result.contents[:] = self.contents
        return result

    def diff(self, other: "Memory", out: IO[str] | None = None) -> bool:
        """Report words that differ from ``other``; True if any do.

        Without ``out`` the comparison stops at the first difference.
        """
        return _diff_words(self, other, out, lambda pos: f"0x{pos:04x}")

    def load(self, lines: Iterable[str], report_error: bool = False) -> int:
        """Load the contents of a .yo listing; return the number of bytes read."""
        count = 0
        for lineno, line in enumerate(lines, 1):
            match = _ADDR_RE.match(line)
            if not match:
                continue
            addr = int(match.group(1), 16) if match.group(1) else 0
            cpos = match.end()
            if line[cpos:cpos + 1] != ":":
                if report_error:
                    print("Error reading file. Expected colon", file=sys.stderr)
                    print(f"Line {lineno}:{line}", file=sys.stderr)
                    print(
                        f"Reading '{line[cpos + 1:cpos + 2]}' at position {cpos + 1}",
                        file=sys.stderr,
                    )
                raise LoadError("Expected colon", lineno)
            data = bytes.fromhex(_CODE_RE.match(line, cpos + 1).group(1))
            fit = max(0, min(len(data), self.length - addr))
            self.contents[addr:addr + fit] = data[:fit]
            count += fit
            if fit < len(data):
                bad = addr + fit
                if report_error:
                    print(
                        f"Error reading file. Invalid address. 0x{bad:x}",
                        file=sys.stderr,
                    )
                    print(f"Line {lineno}:{line}", file=sys.stderr)
                raise LoadError(f"Invalid address 0x{bad:x}", lineno)
        return count

    def get_byte(self, pos: int) -> int:
        self._check(pos, 1)
        return self.contents[pos]

    def get_word(self, pos: int) -> int:
        """Read a little-endian signed 32-bit word."""
        self._check(pos, 4)
        return _s32(int.from_bytes(self.contents[pos:pos + 4], "little"))

    def set_byte(self, pos: int, val: int) -> None:
        self._check(pos, 1)
        self.contents[pos] = val & 0xFF

    def set_word(self, pos: int, val: int) -> None:
        """Write a little-endian 32-bit word."""
        self._check(pos, 4)
        self.contents[pos:pos + 4] = (val & _WORD_MASK).to_bytes(4, "little")

    def dump(self, out: IO[str], pos: int, length: int) -> None:
        """Write the words of whole blocks covering ``length`` bytes from ``pos``."""
        offset = pos % BPL
        pos -= offset
        length += offset
        length = ((length + BPL - 1) // BPL) * BPL
        if pos + length > self.length:
            length = self.length - pos
        for row in range(pos, pos + length, BPL):
            val = 0
            out.write(f"0x{row & _WORD_MASK:04x}:")
            for addr in range(row, row + BPL, 4):
                try:
                    val = self.get_word(addr)
                except MemoryAccessError:
                    pass
                out.write(f" {val & _WORD_MASK:08x}")


class RegisterFile:
    """The eight program registers, held as a small word memory."""

    def __init__(self):
        self._mem = Memory(32)

    def get(self, reg_id: int) -> int:
        """Value of a register; 0 for IDs that name no register."""
        if reg_id >= Reg.NONE:
            return 0
        try:
            return self._mem.get_word(reg_id * 4)
        except MemoryAccessError:
            return 0

    def set(self, reg_id: int, val: int) -> None:
        """Set a register; IDs that name no register are ignored."""
        if reg_id < Reg.NONE:
            try:
                self._mem.set_word(reg_id * 4, val)
            except MemoryAccessError:
                pass

    def copy(self) -> "RegisterFile":
        result = RegisterFile()
        result._mem = self._mem.copy()
        return result

    def diff(self, other: "RegisterFile", out: IO[str] | None = None) -> bool:
        """Report registers that differ from ``other``; True if any do."""
        return _diff_words(self._mem, other._mem, out, lambda pos: reg_name(pos // 4))

    def dump(self, out: IO[str]) -> None:
        """Write a line of register names and a line of their values in hex."""
        ids = range(len(_REG_NAMES))
        out.write("".join(f"   {reg_name(i)}  " for i in ids) + "\n")
        out.write("".join(f" {self.get(i) & _WORD_MASK:x}" for i in ids) + "\n")


_ALU_SYMBOLS = "+-&^"


def op_name(op: int) -> str:
    """Symbol of an ALU operation, '?' for an unknown one."""
    if 0 <= op < AluOp.NONE:
        return _ALU_SYMBOLS[op]
    return "?"


def compute_alu(op: int, arg_a: int, arg_b: int) -> int:
    """Apply an ALU operation to two words; subtraction is arg_b - arg_a."""
    if op == AluOp.ADD:
        val = arg_a + arg_b
    elif op == AluOp.SUB:
        val = arg_b - arg_a
    elif op == AluOp.AND:
        val = arg_a & arg_b
    elif op == AluOp.XOR:
        val = arg_a ^ arg_b
    else:
        val = 0
    return _s32(val)


def pack_cc(zf: int, sf: int, of: int) -> int:
    """Pack zero, sign and overflow flags into a condition code."""
    return (int(zf) << 2) | (int(sf) << 1) | int(of)


def _zf(cc: int) -> int:
    return (cc >> 2) & 1


def _sf(cc: int) -> int:
    return (cc >> 1) & 1


def _of(cc: int) -> int:
    return cc & 1


DEFAULT_CC = pack_cc(1, 0, 0)


def compute_cc(op: int, arg_a: int, arg_b: int) -> int:
    """Condition code resulting from an ALU operation."""
    a, b = _s32(arg_a), _s32(arg_b)
    val = compute_alu(op, a, b)
    zero = val == 0
    sign = val < 0
    if op == AluOp.ADD:
        ovf = ((a < 0) == (b < 0)) and ((val < 0) != (a < 0))
    elif op == AluOp.SUB:
        ovf = ((a > 0) == (b < 0)) and ((val < 0) != (b < 0))
    else:
        ovf = False
    return pack_cc(zero, sign, ovf)


_CC_NAMES = (
    "Z=0 S=0 O=0",
    "Z=0 S=0 O=1",
    "Z=0 S=1 O=0",
    "Z=0 S=1 O=1",
    "Z=1 S=0 O=0",
    "Z=1 S=0 O=1",
    "Z=1 S=1 O=0",
    "Z=1 S=1 O=1",
)


def cc_name(cc: int) -> str:
    if 0 <= cc < len(_CC_NAMES):
        return _CC_NAMES[cc]
    return "???????????"


_STAT_NAMES = ("BUB", "AOK", "HLT", "ADR", "INS", "PIP")


def stat_name(stat: int) -> str:
    if 0 <= stat < len(_STAT_NAMES):
        return _STAT_NAMES[stat]
    return "Invalid Status"


def cond_holds(cc: int, cond: int) -> bool:
    """Does the branch or move condition hold under this condition code?"""
    zf, sf, of = _zf(cc), _sf(cc), _of(cc)
    if cond == Cond.YES:
        return True
    if cond == Cond.LE:
        return bool((sf ^ of) | zf)
    if cond == Cond.L:
        return bool(sf ^ of)
    if cond == Cond.E:
        return bool(zf)
    if cond == Cond.NE:
        return not zf
    if cond == Cond.GE:
        return not (sf ^ of)
    if cond == Cond.G:
        return not (sf ^ of) and not zf
    return False