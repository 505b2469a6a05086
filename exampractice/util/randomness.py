from __future__ import annotations

"""Randomness helpers for seeding and shuffling."""

import os
import random
from typing import List, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


def seed_if_needed() -> Optional[int]:
    """Seed RNGs if SEED env var is set. Returns the seed used, if any."""
    seed = os.environ.get("SEED")
    if seed is None:
        return None
    try:
        s = int(seed)
    except ValueError:
        return None
    random.seed(s)
    np.random.seed(s)
    return s


def make_rng(seed: Optional[int] = None) -> random.Random:
    """Return a private RNG; unseeded draws from the module-level generator."""
    if seed is None:
        return random.Random(random.getrandbits(64))
    return random.Random(seed)


def permutation(n: int, rng: random.Random) -> List[int]:
    """Uniform random ordering of range(n)."""
    order = list(range(n))
    rng.shuffle(order)
    return order


def apply_permutation(items: Sequence[T], order: Sequence[int]) -> List[T]:
    return [items[i] for i in order]
