from __future__ import annotations

import math

import numpy as np

from equilibrium.errors import InvalidParameter, NumericDegenerate
from equilibrium.sampler import GaussianSampler


def simulate_path(
    S0: float,
    r: float,
    sigma: float,
    T: float,
    steps: int,
    sampler: GaussianSampler | None = None,
) -> np.ndarray:
    """
    One risk-neutral GBM trajectory:
      S[i] = S[i-1] * exp((r - sigma^2/2) dt + sigma sqrt(dt) Z_i)

    Returns a read-only array of steps + 1 prices, S[0] == S0.
    """
    if not (math.isfinite(S0) and math.isfinite(r) and math.isfinite(sigma) and math.isfinite(T)):
        raise InvalidParameter("S0, r, sigma and T must be finite")
    if S0 <= 0:
        raise InvalidParameter(f"S0 must be > 0, got {S0!r}")
    if sigma < 0:
        raise InvalidParameter(f"sigma must be >= 0, got {sigma!r}")
    if T <= 0:
        raise InvalidParameter(f"T must be > 0, got {T!r}")
    if int(steps) != steps or steps < 1:
        raise InvalidParameter(f"steps must be an integer >= 1, got {steps!r}")
    steps = int(steps)

    if sampler is None:
        sampler = GaussianSampler()

    dt = T / steps
    drift = (r - 0.5 * sigma * sigma) * dt
    vol = sigma * math.sqrt(dt)

    values = [S0]
    s = S0
    try:
        for _ in range(steps):
            s = s * math.exp(drift + vol * sampler.sample())
            values.append(s)
    except OverflowError as e:
        raise NumericDegenerate("GBM step overflowed") from e

    path = np.array(values, dtype=float)
    if not np.all(np.isfinite(path)) or not np.all(path > 0):
        raise NumericDegenerate("GBM path left the positive finite range")
    path.flags.writeable = False
    return path
