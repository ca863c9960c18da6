"""Two-pass assembler that turns Y86 assembly into .yo listings."""

from __future__ import annotations

import contextlib
import io
import re
import sys
from typing import IO

from y86tools.isa import (
    ArgType,
    Reg,
    bad_instr,
    find_instr,
    find_register,
    hpack,
)
from y86tools.lexer import LexError, Token, TokenType, tokenize

TOK_PER_LINE = 12
STRMAX = 4096

_MASK = 0xFFFFFFFF
_ERR_TOKEN = Token(TokenType.ERR)
_COLON = Token(TokenType.PUNCT, ":")
_COMMA = Token(TokenType.PUNCT, ",")
_LPAREN = Token(TokenType.PUNCT, "(")
_LINE_RE = re.compile(r"([^\n\r]*)(\r*[\n\r])")

_USAGE = (
    "Usage: yas [-V[n]] file.ys\n"
    "   -V[n]  Generate memory initialization in Verilog format (n-way blocking)"
)


class AssemblyError(Exception):
    """Assembly failed; ``errors`` holds the reports, ``listing`` any output made."""

    def __init__(self, errors: list[str], listing: str = ""):
        super().__init__("\n".join(errors))
        self.errors = list(errors)
        self.listing = listing


def _trunc_div(num: int, den: int) -> int:
    quotient = abs(num) // abs(den)
    return quotient if (num >= 0) == (den >= 0) else -quotient


class Assembler:
    """Assembles source text into a listing of addresses, code and lines.

    Only lines ended by a line terminator are assembled.
    """

    def __init__(self, vcode: bool = False, block_factor: int = 0, big_mem: bool = False):
        self.vcode = vcode
        self.block_factor = block_factor
        self.big_mem = big_mem
        self.symbols: dict[str, int] = {}
        self.errors: list[str] = []
        self._pass = 1
        self._bytepos = 0
        self._lineno = 0
        self._line = ""
        self._error_mode = False
        self._tokens: list[Token] = []
        self._tpos = 0
        self._code = bytearray(6)
        self._bcount = 0

    def assemble(self, text: str) -> str:
        """Assemble ``text`` and return the listing; raise AssemblyError on errors."""
        self.symbols = {}
        self.errors = []
        lines = [(m.group(0), m.group(1)) for m in _LINE_RE.finditer(text)]
        self._run(lines, 1, None)
        if self.errors:
            raise AssemblyError(self.errors, "")
        out = io.StringIO()
        self._run(lines, 2, out)
        listing = out.getvalue()
        if self.errors:
            raise AssemblyError(self.errors, listing)
        return listing

    def _run(self, lines: list[tuple[str, str]], pass_no: int, out: IO[str] | None) -> None:
        self._pass = pass_no
        self._bytepos = 0
        for lineno, (raw, line) in enumerate(lines, 1):
            self._lineno = lineno
            self._line = line
            self._error_mode = False
            self._tokens = []
            if len(raw) >= STRMAX:
                self._fail("Input Line too long")
                continue
            try:
                tokens = tokenize(line)
            except LexError:
                self._fail("Invalid line")
                continue
            if len(tokens) >= TOK_PER_LINE:
                self._fail("Line too long")
                continue
            self._finish_line(tokens, out)

    def _fail(self, message: str) -> None:
        if not self._error_mode:
            self.errors.append(
                f"Error on line {self._lineno}: {message}\n"
                f"Line {self._lineno}, Byte 0x{self._bytepos & _MASK:04x}: {self._line}"
            )
        self._error_mode = True

    def _tok(self, index: int) -> Token:
        return self._tokens[index] if index < len(self._tokens) else _ERR_TOKEN

    def _lookup(self, name: str) -> int:
        if name in self.symbols:
            return self.symbols[name]
        self._fail("Can't find label")
        return -1

    def _finish_line(self, tokens: list[Token], out: IO[str] | None) -> None:
        self._tokens = tokens
        self._tpos = 0
        self._code = bytearray(6)
        self._bcount = 0
        savebytepos = self._bytepos
        second = self._pass > 1

        if not tokens:
            if second:
                self._print_code(out, savebytepos)
            return

        if self._tok(0).type is TokenType.IDENT:
            if self._tok(1) != _COLON:
                self._fail("Missing Colon")
                return
            if not second:
                self.symbols.setdefault(self._tok(0).value, self._bytepos)
            self._tpos = 2
            if len(tokens) == 2:
                if second:
                    self._print_code(out, savebytepos)
                return

        head = self._tok(self._tpos)
        if head.type is not TokenType.INSTR:
            self._fail("Bad Instruction")
            return

        if head.value == ".pos":
            self._tpos += 1
            arg = self._tok(self._tpos)
            if arg.type is not TokenType.NUM:
                self._fail("Invalid Address")
                return
            self._bytepos = arg.value
            if second:
                self._print_code(out, self._bytepos)
            return

        if head.value == ".align":
            self._tpos += 1
            arg = self._tok(self._tpos)
            if arg.type is not TokenType.NUM or arg.value <= 0:
                self._fail("Invalid Alignment")
                return
            align = arg.value
            self._bytepos = _trunc_div(self._bytepos + align - 1, align) * align
            if second:
                self._print_code(out, self._bytepos)
            return

        instr = find_instr(head.value)
        self._tpos += 1
        if instr is None:
            self._fail("Invalid Instruction")
            instr = bad_instr()
        self._bytepos += instr.size
        self._bcount = instr.size

        if not second:
            return

        self._code[0] = instr.code
        self._code[1] = hpack(Reg.NONE, Reg.NONE)
        self._get_arg(instr.arg1, instr.arg1pos, instr.arg1hi)
        if instr.arg2 is not ArgType.NO_ARG:
            if self._tok(self._tpos) != _COMMA:
                self._fail("Expecting Comma")
                return
            self._tpos += 1
            self._get_arg(instr.arg2, instr.arg2pos, instr.arg2hi)

        self._print_code(out, savebytepos)

    def _get_arg(self, kind: ArgType, pos: int, hi: int) -> None:
        if kind is ArgType.R_ARG:
            self._get_reg(pos, hi)
        elif kind is ArgType.M_ARG:
            self._get_mem(pos)
        elif kind is ArgType.I_ARG:
            self._get_num(pos, hi)

    def _get_reg(self, pos: int, hi: int) -> None:
        tok = self._tok(self._tpos)
        if tok.type is not TokenType.REG:
            self._fail("Expecting Register ID")
            return
        rval = find_register(tok.value)
        c = self._code[pos]
        c = (c & 0x0F) | (rval << 4) if hi else (c & 0xF0) | rval
        self._code[pos] = c & 0xFF
        self._tpos += 1

    def _get_num(self, pos: int, nbytes: int) -> None:
        tok = self._tok(self._tpos)
        if tok.type is TokenType.NUM:
            val = tok.value
        elif tok.type is TokenType.IDENT:
            val = self._lookup(tok.value)
        else:
            self._fail("Number Expected")
            return
        mask = (1 << (8 * nbytes)) - 1
        self._code[pos:pos + nbytes] = (val & mask).to_bytes(nbytes, "little")
        self._tpos += 1

    def _get_mem(self, pos: int) -> None:
        rval = int(Reg.NONE)
        val = 0
        tok = self._tok(self._tpos)
        if tok.type is TokenType.NUM:
            val = tok.value
            self._tpos += 1
        elif tok.type is TokenType.IDENT:
            val = self._lookup(tok.value)
            self._tpos += 1
        if self._tok(self._tpos) == _LPAREN:
            self._tpos += 1
            tok = self._tok(self._tpos)
            if tok.type is not TokenType.REG:
                self._fail("Expecting Register Id")
                return
            rval = find_register(tok.value)
            self._tpos += 1
            tok = self._tok(self._tpos)
            if tok.type is not TokenType.PUNCT:
                self._fail("Expecting ')'")
                return
            self._tpos += 1
            if tok.value != ")":
                self._fail("Expecting ')'")
                return
        self._code[pos] = (self._code[pos] & 0xF0) | (rval & 0xF)
        self._code[pos + 1:pos + 5] = (val & _MASK).to_bytes(4, "little")

    def _print_code(self, out: IO[str] | None, pos: int) -> None:
        if out is None:
            return
        code = bytes(self._code[:self._bcount])
        if self._tokens:
            hexcode = code.hex()
            if self.big_mem:
                prefix = f"  0x{pos & 0xFFFF:04x}:{hexcode:<12}  | "
            else:
                prefix = f"  0x{pos & 0xFFF:03x}: {hexcode:<12} | "
        else:
            prefix = " " * (23 if self.big_mem else 22) + "| "

        if not self.vcode:
            out.write(f"{prefix}{self._line}\n")
            return
        out.write(f"//{prefix}{self._line}\n")
        if not self._tokens:
            return
        for offset, byte in enumerate(code):
            addr = pos + offset
            if self.block_factor:
                out.write(
                    f"    bank{addr % self.block_factor}"
                    f"[{addr // self.block_factor}] = 8'h{byte:02x};\n"
                )
            else:
                out.write(f"    mem[{addr}] = 8'h{byte:02x};\n")


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def main(argv: list[str] | None = None) -> int:
    """Assemble a .ys file into a .yo listing, or Verilog on standard output."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print(_USAGE)
        return 0

    vcode = False
    block_factor = 0
    nextarg = 0
    if args[0].startswith("-"):
        if args[0][1:2] != "V":
            print(_USAGE)
            return 0
        vcode = True
        if args[0][2:]:
            block_factor = _atoi(args[0][2:])
            if block_factor != 8:
                print(f"Unknown blocking factor {block_factor}", file=sys.stderr)
                return 1
        nextarg = 1

    if nextarg >= len(args) or not args[nextarg].endswith(".ys"):
        print(_USAGE)
        return 0
    infname = args[nextarg]
    root = infname[:-3]
    if len(root) > 500:
        print("File name too long", file=sys.stderr)
        return 1

    try:
        with open(infname, "r", newline="") as infile:
            text = infile.read()
    except OSError:
        print(f"Can't open input file '{infname}'", file=sys.stderr)
        return 1

    outfname = root + ".yo"
    try:
        target = contextlib.nullcontext(sys.stdout) if vcode else open(outfname, "w")
    except OSError:
        print(f"Can't open output file '{outfname}'", file=sys.stderr)
        return 1

    with target as out:
        try:
            listing = Assembler(vcode, block_factor).assemble(text)
            status = 0
        except AssemblyError as err:
            for message in err.errors:
                print(message, file=sys.stderr)
            listing = err.listing
            status = 1
        out.write(listing)
    return status


if __name__ == "__main__":
    sys.exit(main())