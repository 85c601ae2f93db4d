import math
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor

import numpy as np
import pytest

from equilibrium.bs import bs_call_price, bs_put_price
from equilibrium.errors import InvalidParameter, NumericDegenerate, SimulationCancelled
from equilibrium.mc import (
    OptionType,
    SimulationConfig,
    paths_frame,
    run_simulation,
    submit_simulation,
    value_at_risk,
    visual_indices,
)
from equilibrium.sampler import GaussianSampler
from stubs import UNIT_DRAW, CycleSource, StartSignalSource


def _config(**overrides):
    kwargs = dict(
        spot=100.0,
        strike=100.0,
        maturity_years=1.0,
        risk_free_rate=0.05,
        volatility=0.2,
        path_count=500,
        steps_per_path=10,
        option_type=OptionType.CALL,
    )
    kwargs.update(overrides)
    return SimulationConfig(**kwargs)


def test_call_converges_to_black_scholes():
    cfg = _config(path_count=50_000, steps_per_path=1)
    res = run_simulation(cfg, seed=7)
    bs = bs_call_price(100, 100, 1.0, 0.05, 0.2)
    assert abs(res.estimated_price - bs) / bs < 0.03


def test_put_converges_to_black_scholes_in_parallel():
    cfg = _config(path_count=40_000, steps_per_path=2, option_type="put")
    res = run_simulation(cfg, seed=99, workers=4)
    bs = bs_put_price(100, 100, 1.0, 0.05, 0.2)
    assert abs(res.estimated_price - bs) / bs < 0.05


def test_same_seed_same_result():
    a = run_simulation(_config(), seed=123, workers=3)
    b = run_simulation(_config(), seed=123, workers=3)
    assert a.estimated_price == b.estimated_price
    assert a.in_the_money_probability == b.in_the_money_probability
    assert a.value_at_risk_95 == b.value_at_risk_95
    assert all(np.array_equal(p, q) for p, q in zip(a.sampled_paths, b.sampled_paths))


def test_itm_probability_bounds():
    res = run_simulation(_config(), seed=1)
    assert 0.0 <= res.in_the_money_probability <= 100.0


def test_deep_otm_call_is_never_in_the_money():
    cfg = _config(strike=1e6, volatility=0.1, path_count=200)
    res = run_simulation(cfg, seed=3)
    assert res.in_the_money_probability == 0.0
    assert res.estimated_price == 0.0
    assert res.value_at_risk_95 == 0.0


def test_deterministic_draws_give_closed_form_terminal():
    # every Z == 1, so every path ends at the same price
    S0, K, r, sigma, T, steps = 100.0, 90.0, 0.05, 0.2, 1.0, 5
    cfg = _config(strike=K, path_count=40, steps_per_path=steps)
    res = run_simulation(cfg, GaussianSampler(CycleSource(UNIT_DRAW)))
    dt = T / steps
    ST = S0 * math.exp(steps * ((r - 0.5 * sigma**2) * dt + sigma * math.sqrt(dt)))
    expected = (ST - K) * math.exp(-r * T)
    assert np.isclose(res.estimated_price, expected)
    assert res.in_the_money_probability == 100.0
    assert np.isclose(res.value_at_risk_95, 0.0, atol=1e-9)


def test_value_at_risk_definition():
    payoffs = [5.0, 0.0, 3.0, 9.0, 1.0, 7.0, 2.0, 8.0, 4.0, 6.0] * 2
    mean = float(np.mean(payoffs))
    # floor(0.05 * 20) == 1 -> second smallest payoff (0.0)
    assert value_at_risk(payoffs, mean) == mean - 0.0
    assert value_at_risk([2.0, 4.0], 3.0) == 1.0


def test_sampled_paths_are_strided_and_capped():
    res = run_simulation(_config(path_count=1000, steps_per_path=8), seed=5)
    assert len(res.sampled_paths) == 20
    assert all(p.shape == (9,) for p in res.sampled_paths)
    assert all(np.all(p > 0) for p in res.sampled_paths)


def test_visual_indices():
    assert visual_indices(1000) == list(range(0, 1000, 50))
    assert visual_indices(7) == list(range(7))
    assert visual_indices(45) == list(range(0, 40, 2))


def test_sampled_paths_match_across_worker_counts_in_shape():
    one = run_simulation(_config(path_count=100), seed=1, workers=1)
    many = run_simulation(_config(path_count=100), seed=1, workers=4)
    assert len(one.sampled_paths) == len(many.sampled_paths) == 20


def test_zero_paths_is_invalid():
    with pytest.raises(InvalidParameter):
        run_simulation(_config(path_count=0))


def test_zero_steps_is_invalid():
    with pytest.raises(InvalidParameter):
        run_simulation(_config(steps_per_path=0))


def test_unknown_option_type_is_invalid():
    with pytest.raises(InvalidParameter):
        run_simulation(_config(option_type="straddle"))


def test_injected_sampler_requires_single_worker():
    with pytest.raises(InvalidParameter):
        run_simulation(_config(), GaussianSampler(seed=1), workers=2)


def test_cancel_event_stops_run():
    event = threading.Event()
    event.set()
    with pytest.raises(SimulationCancelled):
        run_simulation(_config(), seed=1, cancel_event=event)


def test_submit_resolves_with_result():
    handle = submit_simulation(_config(), seed=42)
    res = handle.result(timeout=60)
    assert res.estimated_price > 0
    assert handle.done()
    assert not handle.cancelled()
    assert handle.cancel() is False


def test_submit_reports_invalid_config_through_handle():
    handle = submit_simulation(_config(path_count=0))
    with pytest.raises(InvalidParameter):
        handle.result(timeout=60)
    assert isinstance(handle.exception(), InvalidParameter)


def test_submit_on_caller_executor_and_callback():
    seen = []
    with ThreadPoolExecutor(max_workers=2) as pool:
        handle = submit_simulation(_config(path_count=50), executor=pool, seed=8)
        handle.add_done_callback(seen.append)
        handle.result(timeout=60)
    assert seen == [handle]


def test_cancel_long_running_simulation():
    release = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as pool:
        # occupy the only worker so the simulation is still queued
        pool.submit(release.wait)
        handle = submit_simulation(_config(path_count=100_000), executor=pool, seed=1)
        assert handle.cancel() is True
        release.set()
    assert handle.cancelled()


def test_paths_frame_layout():
    res = run_simulation(_config(path_count=60, steps_per_path=4), seed=2)
    frame = paths_frame(res)
    assert frame.shape == (5, 20)
    assert frame.index.name == "step"
    assert list(frame.columns[:2]) == ["path0", "path1"]
    assert (frame.iloc[0] == 100.0).all()


def test_overflowing_discount_factor_is_degenerate():
    cfg = _config(maturity_years=1600.0, risk_free_rate=-0.5, volatility=0.0, path_count=1, steps_per_path=1)
    with pytest.raises(NumericDegenerate):
        run_simulation(cfg, seed=1)


def test_cancel_running_simulation_through_handle():
    started = threading.Event()
    sampler = GaussianSampler(StartSignalSource(started))
    handle = submit_simulation(_config(path_count=5_000_000), sampler=sampler)
    assert started.wait(timeout=30)
    assert handle.cancel() is True
    with pytest.raises(SimulationCancelled):
        handle.result(timeout=60)
    assert handle.cancelled()
    assert isinstance(handle.exception(), SimulationCancelled)


def test_cancel_parallel_run_mid_flight():
    event = threading.Event()
    timer = threading.Timer(0.2, event.set)
    timer.start()
    try:
        with pytest.raises(SimulationCancelled):
            run_simulation(_config(path_count=5_000_000), seed=3, workers=4, cancel_event=event)
    finally:
        timer.cancel()


def test_cancel_parallel_handle():
    handle = submit_simulation(_config(path_count=5_000_000), seed=3, workers=4)
    assert handle.cancel() is True
    with pytest.raises(CancelledError):
        handle.result(timeout=60)
    assert handle.cancelled()


def test_worker_failure_aborts_whole_run():
    # sigma^2 overflows to inf, so every path collapses to 0
    cfg = _config(volatility=1e160, path_count=400)
    with pytest.raises(NumericDegenerate):
        run_simulation(cfg, seed=1, workers=4)

    handle = submit_simulation(cfg, seed=1, workers=4)
    assert isinstance(handle.exception(timeout=60), NumericDegenerate)
    assert not handle.cancelled()
