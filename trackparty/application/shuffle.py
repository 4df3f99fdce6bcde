from __future__ import annotations

import math
import random
from typing import List, Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")

LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280


def lcg_shuffle(items: Sequence[T], seed: int) -> List[T]:
    """Fisher-Yates shuffle driven by a linear congruential generator.

    The recurrence is fixed so that a given seed always yields the same order;
    changing it would reorder every stored game. State is carried as an IEEE-754
    double and reduced with ``fmod`` so millisecond-timestamp seeds, whose
    products exceed 2**53, round exactly as JavaScript number arithmetic does.
    """
    if isinstance(seed, bool) or not isinstance(seed, int) or seed < 0:
        raise ValueError(f"seed must be a non-negative integer, got {seed!r}")

    shuffled = list(items)
    state = float(seed)
    for i in range(len(shuffled) - 1, 0, -1):
        state = math.fmod(state * LCG_MULTIPLIER + LCG_INCREMENT, LCG_MODULUS)
        j = int(math.fmod(state, i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class ShuffleStrategy(Protocol):
    """Reorders the distinct-track pool before selection."""

    def shuffle(self, items: Sequence[T], seed: Optional[int] = None) -> List[T]:
        ...


class SeededLcgShuffle:
    """Deterministic shuffle used whenever a seed is supplied."""

    def shuffle(self, items: Sequence[T], seed: Optional[int] = None) -> List[T]:
        if seed is None:
            raise ValueError("SeededLcgShuffle requires a seed")
        return lcg_shuffle(items, seed)


class RandomShuffle:
    """Non-reproducible Fisher-Yates shuffle."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.SystemRandom()

    def shuffle(self, items: Sequence[T], seed: Optional[int] = None) -> List[T]:
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self._rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled


def shuffle_pool(items: Sequence[T], seed: Optional[int] = None,
                 seeded: Optional[ShuffleStrategy] = None,
                 unseeded: Optional[ShuffleStrategy] = None) -> List[T]:
    """Shuffle with the seeded strategy when a seed is given, otherwise randomly."""
    if seed is not None:
        return (seeded or SeededLcgShuffle()).shuffle(items, seed)
    return (unseeded or RandomShuffle()).shuffle(items)
