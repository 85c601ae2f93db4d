from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import FIRST_EXCEPTION, Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np
import pandas as pd

from equilibrium.bs import discount_factor
from equilibrium.errors import InvalidParameter, NumericDegenerate, SimulationCancelled
from equilibrium.gbm import simulate_path
from equilibrium.sampler import GaussianSampler

logger = logging.getLogger(__name__)

VAR_QUANTILE = 0.05
MAX_VISUAL_PATHS = 20
DEFAULT_PATH_COUNT = 2000
DEFAULT_STEPS_PER_PATH = 50


class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"

    @classmethod
    def parse(cls, value: OptionType | str) -> OptionType:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidParameter(f"option_type must be 'call' or 'put', got {value!r}") from None


@dataclass(frozen=True)
class SimulationConfig:
    spot: float
    strike: float
    maturity_years: float
    risk_free_rate: float
    volatility: float
    path_count: int = DEFAULT_PATH_COUNT
    steps_per_path: int = DEFAULT_STEPS_PER_PATH
    option_type: OptionType | str = OptionType.CALL

    def validate(self) -> None:
        for name in ("spot", "strike", "maturity_years", "risk_free_rate", "volatility"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidParameter(f"{name} must be finite, got {value!r}")
        if self.spot <= 0:
            raise InvalidParameter(f"spot must be > 0, got {self.spot!r}")
        if self.strike <= 0:
            raise InvalidParameter(f"strike must be > 0, got {self.strike!r}")
        if self.maturity_years <= 0:
            raise InvalidParameter(f"maturity_years must be > 0, got {self.maturity_years!r}")
        if self.volatility < 0:
            raise InvalidParameter(f"volatility must be >= 0, got {self.volatility!r}")
        for name in ("path_count", "steps_per_path"):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise InvalidParameter(f"{name} must be an integer >= 1, got {value!r}")
        OptionType.parse(self.option_type)


@dataclass(frozen=True, eq=False)
class SimulationResult:
    """
    Outcome of one Monte Carlo run.

    in_the_money_probability is a percentage in [0, 100]. value_at_risk_95 is
    the estimated price minus the 5th-percentile discounted payoff.
    sampled_paths holds up to MAX_VISUAL_PATHS paths for plotting only.
    """

    estimated_price: float
    in_the_money_probability: float
    value_at_risk_95: float
    sampled_paths: tuple[np.ndarray, ...] = ()


@dataclass
class _PartialRun:
    payoff_sum: float
    itm_count: int
    payoffs: np.ndarray
    sampled: dict[int, np.ndarray] = field(default_factory=dict)


def visual_indices(path_count: int, max_paths: int = MAX_VISUAL_PATHS) -> list[int]:
    """Evenly strided path indices kept for display, in simulation order."""
    stride = max(1, path_count // max_paths)
    return list(range(0, path_count, stride))[:max_paths]


def value_at_risk(discounted_payoffs, estimated_price: float, quantile: float = VAR_QUANTILE) -> float:
    """estimated_price minus the floor(quantile * n)-th smallest discounted payoff."""
    payoffs = np.sort(np.asarray(discounted_payoffs, dtype=float))
    if payoffs.size == 0:
        raise InvalidParameter("need at least one payoff")
    if not 0 <= quantile < 1:
        raise InvalidParameter(f"quantile must be in [0, 1), got {quantile!r}")
    idx = int(math.floor(quantile * payoffs.size))
    return float(estimated_price - payoffs[idx])


def _partition(n: int, workers: int) -> list[tuple[int, int]]:
    base, extra = divmod(n, workers)
    bounds = []
    start = 0
    for w in range(workers):
        stop = start + base + (1 if w < extra else 0)
        bounds.append((start, stop))
        start = stop
    return bounds


def _simulate_chunk(
    config: SimulationConfig,
    option_type: OptionType,
    start: int,
    stop: int,
    sampler: GaussianSampler,
    keep: set[int],
    should_stop: Callable[[], bool],
) -> _PartialRun:
    S0, K = config.spot, config.strike
    r, sigma, T = config.risk_free_rate, config.volatility, config.maturity_years
    steps = int(config.steps_per_path)
    disc = discount_factor(r, T)

    payoffs = np.empty(stop - start, dtype=float)
    total = 0.0
    itm = 0
    sampled = {}

    for j, i in enumerate(range(start, stop)):
        if should_stop():
            raise SimulationCancelled(f"simulation stopped at path {i}")
        path = simulate_path(S0, r, sigma, T, steps, sampler)
        ST = float(path[-1])
        if option_type is OptionType.CALL:
            payoff = max(ST - K, 0.0)
        else:
            payoff = max(K - ST, 0.0)
        if payoff > 0:
            itm += 1
        discounted = payoff * disc
        payoffs[j] = discounted
        total += discounted
        if i in keep:
            sampled[i] = path

    return _PartialRun(payoff_sum=total, itm_count=itm, payoffs=payoffs, sampled=sampled)


def run_simulation(
    config: SimulationConfig,
    sampler: GaussianSampler | None = None,
    *,
    seed: int | None = None,
    workers: int = 1,
    cancel_event: threading.Event | None = None,
) -> SimulationResult:
    """
    Monte Carlo price, ITM probability and VaR for a European call/put under GBM.

    Paths are split into `workers` contiguous chunks, each with its own sampler
    spawned from `seed`. Partial sums are reduced in chunk order and the
    discounted payoffs are concatenated before sorting, so a given
    (seed, workers) pair always gives the same result.

    An injected `sampler` is only valid with workers == 1.
    """
    config.validate()
    option_type = OptionType.parse(config.option_type)
    if int(workers) != workers or workers < 1:
        raise InvalidParameter(f"workers must be an integer >= 1, got {workers!r}")
    if sampler is not None and seed is not None:
        raise InvalidParameter("pass either sampler or seed, not both")
    if sampler is not None and workers > 1:
        raise InvalidParameter("an injected sampler cannot be shared across workers")

    n = int(config.path_count)
    chunks = _partition(n, min(int(workers), n))
    keep = set(visual_indices(n))
    if sampler is not None:
        samplers = [sampler]
    else:
        samplers = [
            GaussianSampler(np.random.default_rng(child))
            for child in np.random.SeedSequence(seed).spawn(len(chunks))
        ]

    abort = threading.Event()

    def should_stop() -> bool:
        return abort.is_set() or (cancel_event is not None and cancel_event.is_set())

    logger.debug("simulating %d paths x %d steps on %d worker(s)", n, config.steps_per_path, len(chunks))

    try:
        if len(chunks) == 1:
            partials = [_simulate_chunk(config, option_type, 0, n, samplers[0], keep, should_stop)]
        else:
            with ThreadPoolExecutor(max_workers=len(chunks), thread_name_prefix="mc-worker") as pool:
                futures = [
                    pool.submit(_simulate_chunk, config, option_type, start, stop, s, keep, should_stop)
                    for (start, stop), s in zip(chunks, samplers)
                ]
                done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                failed = [f for f in futures if f in done and f.exception() is not None]
                if failed:
                    abort.set()
                    raise failed[0].exception()
                partials = [f.result() for f in futures]
    except SimulationCancelled:
        logger.warning("Monte Carlo simulation cancelled (%d paths requested)", n)
        raise

    total = 0.0
    itm = 0
    sampled = {}
    for p in partials:
        total += p.payoff_sum
        itm += p.itm_count
        sampled.update(p.sampled)
    payoffs = np.concatenate([p.payoffs for p in partials])

    price = total / n
    var95 = value_at_risk(payoffs, price)
    itm_pct = 100.0 * itm / n
    if not (math.isfinite(price) and math.isfinite(var95)):
        raise NumericDegenerate(f"non-finite simulation output (price={price!r}, var={var95!r})")

    logger.info(
        "MC %s: %d paths, price=%.4f, itm=%.2f%%, var95=%.4f",
        option_type.value, n, price, itm_pct, var95,
    )
    return SimulationResult(
        estimated_price=price,
        in_the_money_probability=itm_pct,
        value_at_risk_95=var95,
        sampled_paths=tuple(sampled[i] for i in sorted(sampled)),
    )


class SimulationHandle:
    """Cancellable handle on a submitted simulation."""

    def __init__(self, future: Future, cancel_event: threading.Event):
        self._future = future
        self._cancel_event = cancel_event

    def cancel(self) -> bool:
        """Ask the run to stop. False if it already finished."""
        if self._future.done():
            return False
        self._cancel_event.set()
        self._future.cancel()
        return True

    def cancelled(self) -> bool:
        if self._future.cancelled():
            return True
        if not self._future.done():
            return False
        return isinstance(self._future.exception(), SimulationCancelled)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> SimulationResult:
        return self._future.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout)

    def add_done_callback(self, fn: Callable[[SimulationHandle], object]) -> None:
        self._future.add_done_callback(lambda _: fn(self))


def submit_simulation(
    config: SimulationConfig,
    *,
    executor: Executor | None = None,
    sampler: GaussianSampler | None = None,
    seed: int | None = None,
    workers: int = 1,
) -> SimulationHandle:
    """
    Schedule run_simulation and return immediately.

    Invalid configs are reported through the handle (result() raises), not here.
    Without an executor a private single-thread one is used for this task.
    """
    cancel_event = threading.Event()
    own_executor = executor is None
    if own_executor:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mc-sim")
    try:
        future = executor.submit(
            run_simulation,
            config,
            sampler,
            seed=seed,
            workers=workers,
            cancel_event=cancel_event,
        )
    finally:
        if own_executor:
            executor.shutdown(wait=False)
    return SimulationHandle(future, cancel_event)


def paths_frame(result: SimulationResult) -> pd.DataFrame:
    """Sampled paths as columns path0..pathN indexed by time step."""
    if not result.sampled_paths:
        return pd.DataFrame(index=pd.RangeIndex(0, name="step"))
    frame = pd.DataFrame({f"path{i}": path for i, path in enumerate(result.sampled_paths)})
    frame.index.name = "step"
    return frame
