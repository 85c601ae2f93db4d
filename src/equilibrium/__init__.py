from equilibrium.bs import MarketParameters, OptionGreeks, black_scholes, price_curve
from equilibrium.errors import InvalidParameter, NumericDegenerate, QuantError, SimulationCancelled
from equilibrium.gbm import simulate_path
from equilibrium.mc import (
    OptionType,
    SimulationConfig,
    SimulationHandle,
    SimulationResult,
    run_simulation,
    submit_simulation,
)
from equilibrium.normal import norm_cdf, norm_pdf
from equilibrium.portfolio import Action, Asset, Portfolio, rebalance
from equilibrium.sampler import GaussianSampler

__all__ = [
    "Action",
    "Asset",
    "GaussianSampler",
    "InvalidParameter",
    "MarketParameters",
    "NumericDegenerate",
    "OptionGreeks",
    "OptionType",
    "Portfolio",
    "QuantError",
    "SimulationCancelled",
    "SimulationConfig",
    "SimulationHandle",
    "SimulationResult",
    "black_scholes",
    "norm_cdf",
    "norm_pdf",
    "price_curve",
    "rebalance",
    "run_simulation",
    "simulate_path",
    "submit_simulation",
]
