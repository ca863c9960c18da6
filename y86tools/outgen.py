"""Output generator that keeps lines within a column limit."""

from __future__ import annotations

import sys
from typing import IO


class OutputGenerator:
    """Writes tokens, starting a new indented line when one would overflow."""

    def __init__(
        self,
        out: IO[str] | None = None,
        max_column: int = 80,
        first_indent: int = 4,
        other_indents: int = 2,
    ):
        self._out = out
        self.max_column = max_column
        self.first_indent = first_indent
        self.other_indents = other_indents
        self.cur_pos = 0
        self.indent = first_indent

    @property
    def out(self) -> IO[str]:
        """The stream written to; standard output when none was given."""
        return self._out if self._out is not None else sys.stdout

    def emit(self, text: str) -> None:
        """Write a token, wrapping to a fresh indented line if it would not fit."""
        out = self.out
        if len(text) + self.cur_pos > self.max_column:
            out.write("\n" + " " * self.indent)
            self.cur_pos = self.indent
        out.write(text)
        self.cur_pos += len(text)

    def terminate(self) -> None:
        """End the statement and reset the indentation."""
        self.out.write("\n")
        self.cur_pos = 0
        self.indent = self.first_indent

    def upindent(self) -> None:
        """Increase the indentation of continuation lines."""
        self.indent += self.other_indents

    def downindent(self) -> None:
        """Decrease the indentation of continuation lines."""
        self.indent -= self.other_indents