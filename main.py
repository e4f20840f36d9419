import logging

import streamlit as st
import pandas as pd
import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from libchainkinetic.config import SPECIES, DEFAULT_GRID_STEP, FitSettings
from libchainkinetic.errors import KineticFitError
from libchainkinetic.equations import chain_analytic
from libchainkinetic.integrator import simulate
from libchainkinetic.logging_config import setup_logging
from libchainkinetic.models import ChainState, RateConstants
from libchainkinetic.observations import from_frame, synthesize_observations, to_frame
from libchainkinetic.report import generate_fit_report, generate_simulation_report
from libchainkinetic.solver import KineticSolver
from libchainkinetic.uncertainty import confidence_ellipse, parameter_intervals

setup_logging(logging.INFO)

SPECIES_COLORS = {"A": "#38bdf8", "B": "#a78bfa", "C": "#34d399"}

PLOTLY_DARK = dict(
    template="plotly_dark",
    paper_bgcolor="rgba(0,0,0,0)",
    plot_bgcolor="rgba(15,20,30,0.6)",
    font=dict(family="Inter, sans-serif", size=13),
    legend=dict(bgcolor="rgba(0,0,0,0)"),
    margin=dict(l=60, r=30, t=60, b=50),
)

st.set_page_config(
    page_title="ChainKineticPy — A → B → C Rate Fitting",
    page_icon="⚗️",
    layout="wide",
    initial_sidebar_state="expanded",
)


# ═══════════════════════════════════════════════════════
#  HELPERS
# ═══════════════════════════════════════════════════════
def make_example_data(k1=2.0, k2=1.0, noise_sd=0.015):
    """Noisy A → B → C data sampled every 0.5 time units."""
    truth = simulate(RateConstants(k1=k1, k2=k2), ChainState(a=1.0), t_end=6.0, step=0.05, method="rk4")
    times = truth.times[::10]
    obs = synthesize_observations(truth, times, noise_sd=noise_sd, rng=np.random.default_rng())
    df = to_frame(obs)
    # The initial composition is taken as known
    df.loc[df["time"] == 0, list(SPECIES)] = [1.0, 0.0, 0.0]
    df.insert(0, "Include?", True)
    return df.round(4)


def apply_plotly_theme(fig, height=480):
    fig.update_layout(**PLOTLY_DARK, height=height)
    return fig


def trajectory_figure(data_df, trajectory, title):
    fig = go.Figure()
    for name in SPECIES:
        color = SPECIES_COLORS[name]
        if data_df is not None and name in data_df:
            fig.add_trace(go.Scatter(x=data_df["time"], y=data_df[name], mode="markers",
                                     name=f"[{name}] data", marker=dict(size=8, color=color)))
        fig.add_trace(go.Scatter(x=trajectory.times, y=trajectory.species(name), mode="lines",
                                 name=f"[{name}] model", line=dict(width=2.5, color=color)))
    fig.update_layout(xaxis_title="Time", yaxis_title="Concentration", title=title)
    return apply_plotly_theme(fig)


def ellipse_figure(fit_result, ellipse):
    closed = ellipse.closed_points
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=closed[:, 0], y=closed[:, 1], mode="lines", fill="toself",
                             name=f"{ellipse.level:.0%} joint region",
                             line=dict(color="#fb7185", width=2), fillcolor="rgba(251,113,133,0.15)"))
    fig.add_trace(go.Scatter(x=[fit_result.rates.k1], y=[fit_result.rates.k2], mode="markers",
                             name="Estimate", marker=dict(size=12, symbol="x", color="#fbbf24")))
    fig.update_layout(xaxis_title="k1", yaxis_title="k2", title="Parameter Confidence Ellipse")
    return apply_plotly_theme(fig, 440)


if "df_data" not in st.session_state:
    st.session_state.df_data = make_example_data()


# ═══════════════════════════════════════════════════════
#  SIDEBAR
# ═══════════════════════════════════════════════════════
with st.sidebar:
    st.markdown("## ⚗️ ChainKineticPy")
    st.caption("Consecutive first-order reactions  A → B → C")
    st.markdown("---")
    mode = st.radio("Mode", ["🔬  Fit Data", "📈  Simulation"])
    st.markdown("---")
    st.markdown("**Integrator**")
    method = st.selectbox("Scheme", ["euler", "rk4"], index=0,
                          help="Euler is fast and low-accuracy; RK4 is 4th order at 4× the cost.")
    grid_step = st.number_input("Reference grid step", min_value=0.001, value=DEFAULT_GRID_STEP,
                                step=0.01, format="%.3f")


# ═══════════════════════════════════════════════════════
#  FIT MODE
# ═══════════════════════════════════════════════════════
if mode.endswith("Fit Data"):
    st.title("Rate-Constant Fitting")
    col1, col2 = st.columns([1, 2])

    with col1:
        st.markdown("**Data** — `time, A, B, C` (blanks allowed) or tidy `time, species, concentration`")
        uploaded_file = st.file_uploader("Upload CSV", type=["csv"])
        if uploaded_file:
            try:
                df = pd.read_csv(uploaded_file)
                if "Include?" not in df.columns:
                    df.insert(0, "Include?", True)
                st.session_state.df_data = df
            except (pd.errors.ParserError, UnicodeDecodeError) as err:
                st.error(f"Could not parse file: {err}")
        if st.button("🎲  New Example Data"):
            st.session_state.df_data = make_example_data()

        edited_df = st.data_editor(
            st.session_state.df_data, num_rows="dynamic", use_container_width=True,
            column_config={"Include?": st.column_config.CheckboxColumn(default=True)},
        )

        st.markdown("**Initial guess**")
        g1, g2 = st.columns(2)
        k1_guess = g1.number_input("k1₀", min_value=0.0, value=0.5, step=0.1)
        k2_guess = g2.number_input("k2₀", min_value=0.0, value=0.5, step=0.1)
        auto_guess = st.checkbox("Estimate the initial guess from the data", value=False)
        run_bootstrap = st.checkbox("Bootstrap intervals (slow)", value=False)
        run_fit = st.button("🚀  Run Fit", type="primary", use_container_width=True)

    with col2:
        if run_fit:
            try:
                rows = edited_df[edited_df["Include?"].fillna(False).astype(bool)].drop(columns=["Include?"])
                data = from_frame(rows)
                settings = FitSettings(grid_step=grid_step, method=method)
                solver = KineticSolver(data, settings=settings)
                guess = None if auto_guess else RateConstants(k1=k1_guess, k2=k2_guess)
                with st.spinner("Running Levenberg–Marquardt…"):
                    result = solver.fit(guess)
                ellipse = confidence_ellipse(result, settings.confidence_level, settings.ellipse_points)
                intervals = parameter_intervals(result, settings.confidence_level)
                diagnostics = solver.diagnose_residuals(result.residuals)
                bootstrap = None
                if run_bootstrap:
                    with st.spinner("Running residual bootstrap…"):
                        bootstrap = solver.bootstrap_uncertainty(result, n_iter=50)
            except KineticFitError as err:
                st.error(f"❌ {type(err).__name__}: {err}")
                st.stop()
            except ValueError as err:
                st.error(f"❌ Invalid data: {err}")
                st.stop()

            m1, m2, m3, m4 = st.columns(4)
            m1.metric("k1", f"{result.rates.k1:.4f}", f"± {result.stderr['k1']:.3g}", delta_color="off")
            m2.metric("k2", f"{result.rates.k2:.4f}", f"± {result.stderr['k2']:.3g}", delta_color="off")
            m3.metric("RSS", f"{result.rss:.3g}")
            m4.metric("R²", f"{result.r_squared:.4f}")

            param_table = []
            for k in ("k1", "k2"):
                row = {"Parameter": k, "Value": getattr(result.rates, k), "Std. error": result.stderr[k],
                       "Lower 95%": intervals[k][0], "Upper 95%": intervals[k][1]}
                if bootstrap:
                    row["Bootstrap lower"], row["Bootstrap upper"] = bootstrap[k]
                param_table.append(row)
            st.dataframe(pd.DataFrame(param_table), hide_index=True, use_container_width=True)

            t_end = float(data.times().max())
            fitted = simulate(result.rates, solver.initial_state, t_end, grid_step / 5, method)
            tab1, tab2, tab3 = st.tabs(["📈 Fit", "🩺 Residuals", "⭕ Confidence Region"])
            with tab1:
                st.plotly_chart(trajectory_figure(to_frame(data), fitted, "Data and fitted model"),
                                use_container_width=True)
            with tab2:
                t_obs, s_idx, _ = data.to_arrays()
                fig_res = make_subplots(rows=1, cols=len(SPECIES), subplot_titles=[f"[{s}]" for s in SPECIES])
                for i, name in enumerate(SPECIES):
                    mask = s_idx == i
                    fig_res.add_trace(go.Scatter(x=t_obs[mask], y=result.residuals[mask], mode="markers",
                                                 marker=dict(color=SPECIES_COLORS[name], size=8), showlegend=False),
                                      row=1, col=i + 1)
                    fig_res.add_hline(y=0, line_dash="dash", line_color="#64748b", row=1, col=i + 1)
                st.plotly_chart(apply_plotly_theme(fig_res, 380), use_container_width=True)
                st.caption(f"Shapiro–Wilk p = {diagnostics['shapiro_p']:.3f} · runs-test Z = {diagnostics['runs_z']:.2f}")
            with tab3:
                st.plotly_chart(ellipse_figure(result, ellipse), use_container_width=True)
                st.caption(f"Correlation(k1, k2) = {result.correlation:.3f}")

            report = generate_fit_report(result, ellipse, intervals, diagnostics, bootstrap)
            st.download_button("📄  Download Report", report, "chainkinetic_report.txt")
        else:
            st.info("Edit or upload data, then press **Run Fit**.")


# ═══════════════════════════════════════════════════════
#  SIMULATION MODE
# ═══════════════════════════════════════════════════════
else:
    st.title("Simulation")
    col1, col2 = st.columns([1, 2])
    with col1:
        k1 = st.slider("k1", 0.0, 10.0, 2.0, 0.05)
        k2 = st.slider("k2", 0.0, 10.0, 1.0, 0.05)
        a0 = st.number_input("[A]₀", min_value=0.0, value=1.0)
        b0 = st.number_input("[B]₀", min_value=0.0, value=0.0)
        c0 = st.number_input("[C]₀", min_value=0.0, value=0.0)
        t_end = st.number_input("End time", min_value=0.1, value=5.0)
        show_exact = st.checkbox("Overlay analytic solution", value=True)

    with col2:
        rates = RateConstants(k1=k1, k2=k2)
        start = ChainState(a=a0, b=b0, c=c0)
        try:
            trajectory = simulate(rates, start, t_end, grid_step, method)
        except KineticFitError as err:
            st.error(f"❌ {type(err).__name__}: {err}")
            st.stop()

        fig = trajectory_figure(None, trajectory, f"{method.upper()} integration, step {grid_step:g}")
        if show_exact:
            t_fine = np.linspace(0, t_end, 400)
            exact = chain_analytic(t_fine, start, rates)
            for i, name in enumerate(SPECIES):
                fig.add_trace(go.Scatter(x=t_fine, y=exact[:, i], mode="lines", name=f"[{name}] exact",
                                         line=dict(dash="dot", width=1.5, color=SPECIES_COLORS[name])))
        st.plotly_chart(fig, use_container_width=True)

        st.code(generate_simulation_report(rates, start, trajectory), language=None)
        st.download_button("⬇️  Download Trajectory (CSV)", trajectory.to_frame().to_csv(index=False),
                           "trajectory.csv")
