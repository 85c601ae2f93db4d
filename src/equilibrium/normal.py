from __future__ import annotations

import numpy as np

# Zelen & Severo (Abramowitz-Stegun 26.2.17) polynomial, |error| < 7.5e-8
_P = 0.2316419
_SCALE = 0.3989423
_B = (0.3193815, -0.3565638, 1.781478, -1.821256, 1.330274)

_INV_SQRT_2PI = 1.0 / np.sqrt(2.0 * np.pi)


def norm_pdf(x):
    """Standard normal density. Accepts a float or an array."""
    x = np.asarray(x, dtype=float)
    out = np.exp(-0.5 * x * x) * _INV_SQRT_2PI
    return float(out) if out.ndim == 0 else out


def norm_cdf(x):
    """
    Standard normal CDF via the Zelen & Severo rational approximation.

    The tail mass is computed for |x| and mirrored: 1 - prob for x > 0,
    prob otherwise. Accepts a float or an array.
    """
    x = np.asarray(x, dtype=float)
    t = 1.0 / (1.0 + _P * np.abs(x))
    d = _SCALE * np.exp(-x * x / 2.0)
    b1, b2, b3, b4, b5 = _B
    prob = d * t * (b1 + t * (b2 + t * (b3 + t * (b4 + t * b5))))
    out = np.where(x > 0, 1.0 - prob, prob)
    return float(out) if out.ndim == 0 else out
