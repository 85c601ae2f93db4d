"""Exception types raised by the pricing, simulation and rebalancing code."""

from concurrent.futures import CancelledError


class QuantError(Exception):
    """Base class for all library errors."""


class InvalidParameter(QuantError, ValueError):
    """An input violates a precondition (non-positive maturity, zero paths, ...)."""


class NumericDegenerate(QuantError, ArithmeticError):
    """An intermediate or final value is NaN or infinite."""


class SimulationCancelled(QuantError, CancelledError):
    """A running simulation observed its cancel signal and stopped."""
