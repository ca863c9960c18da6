"""Instruction set simulator: run a .yo program and report its effects."""

from __future__ import annotations

import re
import sys
from typing import IO

from y86tools.isa import MEM_SIZE, LoadError, Stat, cc_name, stat_name
from y86tools.state import State

DEFAULT_MAX_STEPS = 10000


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def run(state: State, max_steps: int = DEFAULT_MAX_STEPS, out: IO[str] | None = None):
    """Step until a non-AOK status or ``max_steps``; return (steps, status)."""
    stat = Stat.AOK
    steps = 0
    while steps < max_steps and stat == Stat.AOK:
        stat = state.step(out)
        steps += 1
    return steps, stat


def main(argv: list[str] | None = None) -> int:
    """Load a .yo file, run it and print the changes it made."""
    args = sys.argv[1:] if argv is None else list(argv)
    out = sys.stdout
    if not 1 <= len(args) <= 2:
        print("Usage: yis code_file [max_steps]", file=out)
        return 0

    state = State(MEM_SIZE)
    saved_regs = state.r.copy()
    try:
        with open(args[0], "r") as code_file:
            try:
                loaded = state.m.load(code_file, True)
            except LoadError:
                loaded = 0
    except OSError:
        print(f"Can't open code file '{args[0]}'", file=sys.stderr)
        return 1
    if not loaded:
        print("Exiting", file=out)
        return 1

    saved_mem = state.m.copy()
    max_steps = _atoi(args[1]) if len(args) > 1 else DEFAULT_MAX_STEPS

    steps, stat = run(state, max_steps, out)

    print(
        f"Stopped in {steps} steps at PC = 0x{state.pc & 0xFFFFFFFF:x}.  "
        f"Status '{stat_name(stat)}', CC {cc_name(state.cc)}",
        file=out,
    )
    print("Changes to registers:", file=out)
    saved_regs.diff(state.r, out)
    print("\nChanges to memory:", file=out)
    saved_mem.diff(state.m, out)
    return 0


if __name__ == "__main__":
    sys.exit(main())