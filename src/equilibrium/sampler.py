from __future__ import annotations

import math
from typing import Protocol

import numpy as np


class UniformSource(Protocol):
    """Anything with random() -> float in [0, 1): random.Random, numpy Generator, ..."""

    def random(self) -> float: ...


def box_muller(u1: float, u2: float) -> float:
    """Map two uniforms in (0, 1] to one standard-normal variate."""
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


class GaussianSampler:
    """
    Standard-normal variates from an injected uniform source.

    Not suitable for cryptographic use. A sampler is not thread-safe; give
    each worker its own.
    """

    def __init__(self, source: UniformSource | None = None, seed: int | None = None):
        if source is not None and seed is not None:
            raise ValueError("pass either source or seed, not both")
        self.source = source if source is not None else np.random.default_rng(seed)

    def _uniform(self) -> float:
        # redraw exact zeros so log(u1) stays finite
        u = 0.0
        while u == 0.0:
            u = float(self.source.random())
        return u

    def sample(self) -> float:
        u1 = self._uniform()
        u2 = self._uniform()
        return box_muller(u1, u2)

    def samples(self, n: int) -> np.ndarray:
        return np.array([self.sample() for _ in range(n)], dtype=float)
