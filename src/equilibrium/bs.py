from __future__ import annotations

import math
from dataclasses import astuple, dataclass

import numpy as np
import pandas as pd

from equilibrium.errors import InvalidParameter, NumericDegenerate
from equilibrium.normal import norm_cdf, norm_pdf

DAYS_PER_YEAR = 365
PERCENT = 100.0

# Price curve defaults: S*(1 - span) .. S*(1 + span)
CURVE_POINTS = 51
CURVE_SPAN = 0.5


@dataclass(frozen=True)
class MarketParameters:
    """
    Inputs to the Black-Scholes pricer.

    risk_free_rate and volatility are decimals (0.05 == 5%),
    maturity_years is in years.
    """

    spot: float
    strike: float
    maturity_years: float
    risk_free_rate: float
    volatility: float

    def validate(self) -> None:
        for name in ("spot", "strike", "maturity_years", "risk_free_rate", "volatility"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidParameter(f"{name} must be finite, got {value!r}")
        for name in ("spot", "strike", "maturity_years", "volatility"):
            value = getattr(self, name)
            if value <= 0:
                raise InvalidParameter(f"{name} must be > 0, got {value!r}")


@dataclass(frozen=True)
class OptionGreeks:
    """
    Call/put prices and Greeks.

    theta is per calendar day, vega and rho are per 1 percentage point.
    delta is the call delta (the put delta is delta - 1).
    """

    call_price: float
    put_price: float
    delta: float
    gamma: float
    theta: float
    vega: float
    rho: float


def discount_factor(r: float, T: float) -> float:
    """e^(-rT); NumericDegenerate when it overflows."""
    try:
        return math.exp(-r * T)
    except OverflowError as e:
        raise NumericDegenerate(f"discount factor exp(-r*T) overflows (r={r!r}, T={T!r})") from e


def _d1_d2(S: float, K: float, r: float, T: float, sigma: float) -> tuple[float, float]:
    vsqrt = sigma * math.sqrt(T)
    if not vsqrt > 0 or not math.isfinite(vsqrt):
        raise NumericDegenerate(f"sigma * sqrt(T) is degenerate ({vsqrt!r})")
    d1 = (math.log(S) - math.log(K) + (r + 0.5 * sigma * sigma) * T) / vsqrt
    d2 = d1 - vsqrt
    return d1, d2


def black_scholes(params: MarketParameters) -> OptionGreeks:
    """Closed-form European call/put prices and Greeks (no dividends)."""
    params.validate()
    S, K, T = params.spot, params.strike, params.maturity_years
    r, sigma = params.risk_free_rate, params.volatility

    d1, d2 = _d1_d2(S, K, r, T, sigma)
    sqrt_T = math.sqrt(T)

    Nd1 = norm_cdf(d1)
    Nd2 = norm_cdf(d2)
    n_d1 = norm_pdf(d1)
    disc_r = discount_factor(r, T)

    call = S * Nd1 - K * disc_r * Nd2
    put = K * disc_r * norm_cdf(-d2) - S * norm_cdf(-d1)

    gamma = n_d1 / (S * sigma * sqrt_T)
    theta = -(S * n_d1 * sigma) / (2.0 * sqrt_T) - r * K * disc_r * Nd2
    vega = S * n_d1 * sqrt_T
    rho = K * T * disc_r * Nd2

    greeks = OptionGreeks(
        call_price=call,
        put_price=put,
        delta=Nd1,
        gamma=gamma,
        theta=theta / DAYS_PER_YEAR,
        vega=vega / PERCENT,
        rho=rho / PERCENT,
    )
    if not all(math.isfinite(v) for v in astuple(greeks)):
        raise NumericDegenerate(f"non-finite Black-Scholes output for {params}")
    return greeks


def bs_call_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    return black_scholes(MarketParameters(S, K, T, r, sigma)).call_price


def bs_put_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    return black_scholes(MarketParameters(S, K, T, r, sigma)).put_price


def price_curve(
    params: MarketParameters,
    n_points: int = CURVE_POINTS,
    span: float = CURVE_SPAN,
) -> pd.DataFrame:
    """
    Re-price call and put across a band of spot values around params.spot.

    Strike, maturity, rate and vol stay fixed. Returns columns: spot, call, put.
    """
    if n_points < 2:
        raise InvalidParameter(f"n_points must be >= 2, got {n_points!r}")
    if not 0 < span < 1:
        raise InvalidParameter(f"span must be in (0, 1), got {span!r}")
    params.validate()

    spots = np.linspace(params.spot * (1.0 - span), params.spot * (1.0 + span), n_points)
    rows = []
    for s in spots:
        g = black_scholes(
            MarketParameters(
                spot=float(s),
                strike=params.strike,
                maturity_years=params.maturity_years,
                risk_free_rate=params.risk_free_rate,
                volatility=params.volatility,
            )
        )
        rows.append({"spot": float(s), "call": g.call_price, "put": g.put_price})
    return pd.DataFrame(rows, columns=["spot", "call", "put"])
