"""Seeded random source and Fisher–Yates shuffle used by the group maker.

``Mulberry32`` reproduces the 32-bit mulberry32 generator bit for bit so that a
seed typed into the tool gives the same groups on every machine.
"""

from __future__ import annotations

import random
from typing import Callable, MutableSequence, Optional

MASK32 = 0xFFFFFFFF
INCREMENT = 0x6D2B79F5
TWO_POW_32 = 4294967296


def _imul(a: int, b: int) -> int:
    return (a * b) & MASK32


class Mulberry32:
    """Single-word mixing generator producing floats in [0, 1)."""

    def __init__(self, seed: int):
        self.state = int(seed) & MASK32

    def random(self) -> float:
        self.state = (self.state + INCREMENT) & MASK32
        t = self.state
        t = _imul(t ^ (t >> 15), t | 1)
        t = ((t + _imul(t ^ (t >> 7), t | 61)) & MASK32) ^ t
        return ((t ^ (t >> 14)) & MASK32) / TWO_POW_32

    __call__ = random


def make_rng(seed: Optional[int]) -> Optional[Mulberry32]:
    """Return a seeded source, or None to fall back to system randomness."""
    if seed is None:
        return None
    return Mulberry32(seed)


def shuffle_in_place(seq: MutableSequence, rng: Optional[Callable[[], float]] = None) -> None:
    draw = rng if rng is not None else random.random
    for i in range(len(seq) - 1, 0, -1):
        j = int(draw() * (i + 1))
        seq[i], seq[j] = seq[j], seq[i]
