"""Reference versions of the list and block routines of the architecture lab."""

from __future__ import annotations

from dataclasses import dataclass
from typing import MutableSequence, Optional, Sequence

_MASK = 0xFFFFFFFF


def _s32(value: int) -> int:
    value &= _MASK
    return value - (1 << 32) if value & 0x80000000 else value


@dataclass
class Ele:
    """Element of a singly linked list of integers."""

    val: int
    next: Optional["Ele"] = None


def sum_list(ls: Ele | None) -> int:
    """Sum the elements of a linked list."""
    val = 0
    while ls is not None:
        val = _s32(val + ls.val)
        ls = ls.next
    return val


def rsum_list(ls: Ele | None) -> int:
    """Sum the elements of a linked list recursively."""
    if ls is None:
        return 0
    return _s32(ls.val + rsum_list(ls.next))


def copy_block(src: Sequence[int], dest: MutableSequence[int], length: int) -> int:
    """Copy ``length`` words of ``src`` into ``dest``; return their xor."""
    result = 0
    for i, val in enumerate(src[:max(length, 0)]):
        dest[i] = val
        result ^= val
    return result