from __future__ import annotations

import logging
import time

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# Works when installed (pip install -e .) or run with: PYTHONPATH=src streamlit run app.py
from equilibrium.bs import MarketParameters, black_scholes, price_curve
from equilibrium.errors import QuantError
from equilibrium.mc import (
    DEFAULT_PATH_COUNT,
    DEFAULT_STEPS_PER_PATH,
    SimulationConfig,
    paths_frame,
    submit_simulation,
)
from equilibrium.portfolio import Asset, Portfolio

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ----------------------------
# Streamlit page config
# ----------------------------
st.set_page_config(
    page_title="Equilibrium",
    layout="wide",
)

st.title("Equilibrium")

CHART_COLORS = ["#577c75", "#0f766e", "#d97706", "#b45309", "#0e7490", "#6366f1"]


# ----------------------------
# Helpers
# ----------------------------
def _curve_fig(curve: pd.DataFrame, strike: float):
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=curve["spot"], y=curve["call"], mode="lines", name="Call", line=dict(width=2)))
    fig.add_trace(go.Scatter(x=curve["spot"], y=curve["put"], mode="lines", name="Put", line=dict(width=2)))
    fig.add_vline(x=strike, line_dash="dot", annotation_text="K")
    fig.update_layout(
        title="Option Value vs Spot",
        xaxis_title="Spot price",
        yaxis_title="Option value",
        height=420,
        margin=dict(l=20, r=20, t=50, b=20),
    )
    return fig


def _paths_fig(frame: pd.DataFrame, strike: float):
    fig = go.Figure()
    for i, col in enumerate(frame.columns):
        fig.add_trace(
            go.Scatter(
                x=frame.index,
                y=frame[col],
                mode="lines",
                line=dict(width=1, color=CHART_COLORS[i % len(CHART_COLORS)]),
                showlegend=False,
            )
        )
    fig.add_hline(y=strike, line_dash="dot", annotation_text="K")
    fig.update_layout(
        title="Sample GBM Paths",
        xaxis_title="Step",
        yaxis_title="Underlying price",
        height=420,
        margin=dict(l=20, r=20, t=50, b=20),
    )
    return fig


def _pie_fig(distribution: dict[str, float], title: str):
    fig = go.Figure(
        go.Pie(
            labels=list(distribution.keys()),
            values=list(distribution.values()),
            hole=0.55,
            marker=dict(colors=CHART_COLORS),
        )
    )
    fig.update_layout(title=title, height=340, margin=dict(l=20, r=20, t=50, b=20))
    return fig


tabs = st.tabs(["Valuation", "Simulation", "Balance"])

# ----------------------------
# Black-Scholes
# ----------------------------
with tabs[0]:
    st.subheader("Black-Scholes Valuation")

    c1, c2 = st.columns(2)
    with c1:
        S = st.slider("Spot Price (S)", 10.0, 500.0, 100.0, step=1.0, key="bs_S")
        K = st.slider("Strike (K)", 10.0, 500.0, 100.0, step=1.0, key="bs_K")
        T = st.slider("Maturity (T, years)", 0.01, 5.0, 1.0, step=0.01, key="bs_T")
    with c2:
        r_pct = st.slider("Risk-Free Rate (%)", 0.0, 20.0, 5.0, step=0.1, key="bs_r")
        sigma_pct = st.slider("Volatility (%)", 1.0, 150.0, 20.0, step=0.5, key="bs_sigma")

    params = MarketParameters(
        spot=float(S),
        strike=float(K),
        maturity_years=float(T),
        risk_free_rate=float(r_pct) / 100.0,
        volatility=float(sigma_pct) / 100.0,
    )

    try:
        greeks = black_scholes(params)
    except QuantError as e:
        st.error(str(e))
    else:
        m1, m2 = st.columns(2)
        m1.metric("Call Price", f"${greeks.call_price:.2f}")
        m2.metric("Put Price", f"${greeks.put_price:.2f}")

        g = st.columns(5)
        g[0].metric("Delta", f"{greeks.delta:.4f}")
        g[1].metric("Gamma", f"{greeks.gamma:.4f}")
        g[2].metric("Theta (per day)", f"{greeks.theta:.4f}")
        g[3].metric("Vega (per 1%)", f"{greeks.vega:.4f}")
        g[4].metric("Rho (per 1%)", f"{greeks.rho:.4f}")

        st.plotly_chart(_curve_fig(price_curve(params), float(K)), use_container_width=True)

# ----------------------------
# Monte Carlo
# ----------------------------
with tabs[1]:
    st.subheader("Monte Carlo Simulation (GBM)")
    st.caption("Plain Monte Carlo under risk-neutral GBM. VaR is the estimate minus the 5th-percentile payoff.")

    cA, cB, cC = st.columns(3)
    with cA:
        opt_type = st.selectbox("Option Type", ["Call", "Put"], index=0, key="mc_opt_type")
        S_mc = st.number_input("Spot Price (S)", value=100.0, step=1.0, format="%.2f", key="mc_S")
        K_mc = st.number_input("Strike (K)", value=100.0, step=1.0, format="%.2f", key="mc_K")
    with cB:
        T_mc = st.number_input("Maturity (T, years)", value=1.0, step=0.01, format="%.4f", key="mc_T")
        sigma_mc = st.number_input("Volatility (σ)", value=0.20, step=0.01, format="%.4f", key="mc_sigma")
        r_mc = st.number_input("Risk-Free Rate (r)", value=0.05, step=0.001, format="%.4f", key="mc_r")
    with cC:
        n_paths = st.slider("Paths", 100, 20_000, DEFAULT_PATH_COUNT, step=100, key="mc_paths")
        n_steps = st.slider("Steps", 1, 252, DEFAULT_STEPS_PER_PATH, step=1, key="mc_steps")
        seed = st.number_input("Random seed (0 = fresh)", value=0, step=1, key="mc_seed")

    run = st.button("Run Monte Carlo", type="primary", key="run_mc_btn")

    if not run:
        st.info("Set parameters and click **Run Monte Carlo**.")
    else:
        config = SimulationConfig(
            spot=float(S_mc),
            strike=float(K_mc),
            maturity_years=float(T_mc),
            risk_free_rate=float(r_mc),
            volatility=float(sigma_mc),
            path_count=int(n_paths),
            steps_per_path=int(n_steps),
            option_type=opt_type.lower(),
        )
        handle = submit_simulation(config, seed=int(seed) or None)
        with st.spinner("Simulating…"):
            while not handle.done():
                time.sleep(0.05)
            try:
                res = handle.result()
            except QuantError as e:
                st.error("Simulation failed.")
                st.exception(e)
                res = None

        if res is not None:
            k1, k2, k3 = st.columns(3)
            k1.metric("Estimated Price", f"${res.estimated_price:.2f}")
            k2.metric("Prob. In The Money", f"{res.in_the_money_probability:.1f}%")
            k3.metric("VaR (95%)", f"${res.value_at_risk_95:.2f}")
            st.plotly_chart(_paths_fig(paths_frame(res), float(K_mc)), use_container_width=True)

# ----------------------------
# Portfolio rebalancing
# ----------------------------
with tabs[2]:
    st.subheader("Portfolio Rebalancing")

    if "portfolio" not in st.session_state:
        st.session_state["portfolio"] = Portfolio.default()
    portfolio: Portfolio = st.session_state["portfolio"]

    if "pf_start_rows" not in st.session_state:
        st.session_state["pf_start_rows"] = pd.DataFrame(
            [
                {
                    "name": a.name,
                    "current_value": a.current_value,
                    "target_allocation_percent": a.target_allocation_percent,
                }
                for a in portfolio
            ],
            columns=["name", "current_value", "target_allocation_percent"],
        )
    edited = st.data_editor(
        st.session_state["pf_start_rows"],
        num_rows="dynamic",
        use_container_width=True,
        column_config={
            "name": st.column_config.TextColumn("Asset"),
            "current_value": st.column_config.NumberColumn("Current ($)", format="%.2f", min_value=0.0),
            "target_allocation_percent": st.column_config.NumberColumn("Target (%)", format="%.2f", min_value=0.0),
        },
        key="pf_editor",
    )

    # data_editor rows carry no ids; rebuild positionally, keeping ids of surviving rows
    old = list(portfolio)
    rebuilt = []
    for i, row in enumerate(edited.fillna({"name": "", "current_value": 0.0, "target_allocation_percent": 0.0}).itertuples()):
        asset = Asset(str(row.name), float(row.current_value), float(row.target_allocation_percent))
        if i < len(old):
            asset.id = old[i].id
        rebuilt.append(asset)
    portfolio.assets = rebuilt

    summary = portfolio.summary()
    t1, t2, t3 = st.columns(3)
    t1.metric("Total Value", f"${summary.total_value:,.2f}")
    t2.metric("Total Allocation", f"{summary.total_allocation:.2f}%")
    t3.metric("Status", "Balanced" if summary.is_valid else "Check targets")
    if not summary.is_valid:
        st.warning("Target allocations must sum to 100%. Actions below reflect the current targets.")

    st.dataframe(portfolio.to_frame().drop(columns=["id"]), use_container_width=True)

    p1, p2 = st.columns(2)
    with p1:
        st.plotly_chart(_pie_fig(summary.current_distribution, "Current"), use_container_width=True)
    with p2:
        st.plotly_chart(_pie_fig(summary.target_distribution, "Target"), use_container_width=True)
