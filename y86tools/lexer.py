"""Tokenizer for lines of Y86 assembly source."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from y86tools.isa import INSTRUCTION_SET

DIRECTIVES = (".pos", ".align")
"""Assembler directives that place code rather than emit bytes."""

_MASK = 0xFFFFFFFF
_COMMENT_STARTS = ("#", "//", "/*")


def _s32(value: int) -> int:
    value &= _MASK
    return value - (1 << 32) if value & 0x80000000 else value


class TokenType(Enum):
    IDENT = "I"
    NUM = "N"
    REG = "R"
    INSTR = "X"
    PUNCT = "P"
    ERR = "E"


@dataclass(frozen=True)
class Token:
    """One lexical token; ``value`` is a string, or an int for numbers."""

    type: TokenType
    value: str | int = ""

    def __str__(self) -> str:
        if self.type is TokenType.ERR:
            return "[E ERR]"
        return f"[{self.type.value} {self.value}]"


class LexError(ValueError):
    """A character that starts no token was found."""

    def __init__(self, char: str, column: int):
        super().__init__(f"Invalid character {char!r} at column {column}")
        self.char = char
        self.column = column


def atoh(text: str) -> int:
    """Parse a hexadecimal number, with optional 0x prefix, as an unsigned word."""
    match = re.match(r"\s*(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]*)", text)
    digits = match.group(1) if match else ""
    return int(digits, 16) & _MASK if digits else 0


_INSTR_NAMES = sorted(
    [instr.name for instr in INSTRUCTION_SET if instr.size > 0] + list(DIRECTIVES),
    key=len,
    reverse=True,
)

_Maker = Optional[Callable[[str], Token]]

# Order matters: on equally long matches the earlier rule wins.
_RULES: tuple[tuple[re.Pattern[str], _Maker], ...] = (
    (re.compile(r"[ \t]+"), None),
    (re.compile(r"\$+"), None),
    (
        re.compile("|".join(re.escape(name) for name in _INSTR_NAMES)),
        lambda text: Token(TokenType.INSTR, text),
    ),
    (
        re.compile(r"%(?:eax|ecx|edx|ebx|esi|edi|esp|ebp)"),
        lambda text: Token(TokenType.REG, text),
    ),
    (re.compile(r"-?[0-9]+"), lambda text: Token(TokenType.NUM, _s32(int(text)))),
    (
        re.compile(r"0[xX][0-9a-fA-F]+"),
        lambda text: Token(TokenType.NUM, _s32(atoh(text))),
    ),
    (re.compile(r"[():,]"), lambda text: Token(TokenType.PUNCT, text)),
    (
        re.compile(r"[a-zA-Z][a-zA-Z0-9_]*"),
        lambda text: Token(TokenType.IDENT, text),
    ),
)


def tokenize(line: str) -> list[Token]:
    """Split one source line into tokens, stopping at a comment or line end.

    Raises LexError on a character that cannot start any token.
    """
    text = re.split(r"[\r\n]", line, maxsplit=1)[0]
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        if text.startswith(_COMMENT_STARTS, pos):
            break
        best: tuple[re.Match[str], _Maker] | None = None
        best_len = 0
        for pattern, make in _RULES:
            match = pattern.match(text, pos)
            if match and match.end() - pos > best_len:
                best, best_len = (match, make), match.end() - pos
        if best is None:
            raise LexError(text[pos], pos)
        match, make = best
        if make is not None:
            tokens.append(make(match.group()))
        pos = match.end()
    return tokens