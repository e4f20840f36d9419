"""
libchainkinetic/report.py
─────────────────────────────────────────────────────────────────────────────
Plain-text reports for a rate-constant fit and for a forward simulation.
Each section explains what its numbers mean so the output can be read on
its own, e.g. attached to a lab notebook.
"""
import datetime

import numpy as np

from .equations import MODEL_THEORY

_W  = 72        # line width
_DV = "═" * _W  # heavy divider
_DH = "─" * _W  # light divider
_DT = "·" * _W  # dot divider

METHOD_LABELS = {
    "euler": "Explicit Euler (1st order, one step per grid gap)",
    "rk4":   "Classic Runge-Kutta (4th order, one step per grid gap)",
}


def _sec(title):
    return f"\n{_DV}\n  {title}\n{_DV}\n"


def _fmt_interval(lo, hi):
    return f"[{lo:.4g}, {hi:.4g}]"


def generate_fit_report(fit_result, ellipse=None, intervals=None,
                        diagnostics=None, bootstrap=None):
    """Report for a converged fit. Optional parts are skipped when not supplied."""
    rates     = fit_result.rates
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d  %H:%M")

    lines = []
    A = lines.append

    A(_DV)
    A("  ChainKineticPy  ·  RATE-CONSTANT FIT REPORT")
    A(_DV)
    A(f"  Generated  :  {timestamp}")
    A(_DT)

    # ── 1. OVERVIEW ─────────────────────────────────────────────────────────
    A(_sec("1.  OVERVIEW"))
    A(f"  Observations          :  {fit_result.n_observations}")
    A(f"  Fitted parameters     :  2  (k1, k2)")
    A(f"  Degrees of freedom    :  {fit_result.dof}")
    A(f"  Regression algorithm  :  Levenberg-Marquardt (MINPACK via lmfit)")
    A(f"  Integrator            :  {METHOD_LABELS.get(fit_result.method, fit_result.method)}")
    A(f"  Function evaluations  :  {fit_result.nfev}")
    A(f"  Solver message        :  {fit_result.message}")
    if fit_result.method == "euler":
        A("")
        A("  Note: explicit Euler trades accuracy for speed. Rate constants are")
        A("  biased when k·Δt is not small; refit with the RK4 integrator or a")
        A("  finer grid step to check.")

    # ── 2. MODEL ────────────────────────────────────────────────────────────
    A(_sec("2.  KINETIC MODEL"))
    A(f"  {MODEL_THEORY['name']}")
    A(f"  Scheme  :  {MODEL_THEORY['scheme']}")
    A("")
    for eq in MODEL_THEORY["equations"]:
        A(f"     {eq}")
    A("")
    A("  ASSUMPTIONS")
    A("  " + _DH)
    for a in MODEL_THEORY["assumptions"]:
        A(f"  • {a}")

    # ── 3. PARAMETERS ───────────────────────────────────────────────────────
    A(_sec("3.  RATE CONSTANTS"))
    header = f"  {'Parameter':<10} {'Value':>12} {'Std. error':>12}"
    if intervals:
        header += f"   {'95% t-interval':^26}"
    if bootstrap:
        header += f"   {'95% bootstrap':^26}"
    A(header)
    A("  " + _DH)
    for name, value in (("k1", rates.k1), ("k2", rates.k2)):
        row = f"  {name:<10} {value:>12.6g} {fit_result.stderr[name]:>12.4g}"
        if intervals:
            row += f"   {_fmt_interval(*intervals[name]):^26}"
        if bootstrap:
            row += f"   {_fmt_interval(*bootstrap[name]):^26}"
        A(row)
    A("")
    for name, desc in MODEL_THEORY["parameters"].items():
        A(f"  {name}: {desc}")
    A(f"  Correlation(k1, k2) = {fit_result.correlation:.4f}")
    if bootstrap:
        A(f"  Bootstrap refits: {bootstrap['n_success']} succeeded, {bootstrap['n_failed']} failed.")

    # ── 4. GOODNESS OF FIT ──────────────────────────────────────────────────
    A(_sec("4.  GOODNESS OF FIT"))
    A(f"  Residual sum of squares  :  {fit_result.rss:.6g}")
    A(f"  Residual variance        :  {fit_result.rss / fit_result.dof if fit_result.dof > 0 else float('nan'):.6g}")
    A(f"  R² (all species pooled)  :  {fit_result.r_squared:.6f}")
    A(f"  AIC / BIC                :  {fit_result.aic:.2f} / {fit_result.bic:.2f}")

    # ── 5. JOINT REGION ─────────────────────────────────────────────────────
    if ellipse is not None:
        A(_sec(f"5.  {ellipse.level:.0%} JOINT CONFIDENCE REGION"))
        A("  The region is the ellipse (p - p̂)ᵀ C⁻¹ (p - p̂) = r² with")
        A("  r² = 2·F(level; 2, dof). It accounts for the correlation between k1")
        A("  and k2, which the marginal intervals above ignore.")
        A("")
        A(f"  Radius r         :  {ellipse.radius:.4f}")
        A(f"  k1 extent        :  {_fmt_interval(ellipse.k1.min(), ellipse.k1.max())}")
        A(f"  k2 extent        :  {_fmt_interval(ellipse.k2.min(), ellipse.k2.max())}")
        A(f"  Boundary points  :  {len(ellipse.points)}")

    # ── 6. RESIDUAL DIAGNOSTICS ─────────────────────────────────────────────
    if diagnostics is not None:
        A(_sec("6.  RESIDUAL DIAGNOSTICS"))
        sw_p = diagnostics.get("shapiro_p", float("nan"))
        rz   = diagnostics.get("runs_z", float("nan"))
        A(f"  Shapiro-Wilk p-value  :  {sw_p:.4f}   "
          f"{'(consistent with normal errors)' if sw_p > 0.05 else '(residuals NOT normal)'}")
        A(f"  Runs test Z-score     :  {rz:.3f}   "
          f"{'(random signs)' if abs(rz) < 1.96 else '(systematic misfit)'}")
        res = np.asarray(fit_result.residuals)
        A(f"  Largest |residual|    :  {np.max(np.abs(res)):.4g}")

    A("")
    A(_DV)
    return "\n".join(lines)


def generate_simulation_report(rates, initial_state, trajectory):
    lines = []
    A = lines.append
    b = trajectory.species("B")
    i_peak = int(np.argmax(b))
    drift = np.max(np.abs(trajectory.totals() - initial_state.total))
    final = trajectory.states[-1]

    A(_DV)
    A("  ChainKineticPy  ·  SIMULATION SUMMARY")
    A(_DV)
    A(f"  k1 = {rates.k1:.4g}    k2 = {rates.k2:.4g}")
    A(f"  Initial state  :  A={initial_state.a:.4g}  B={initial_state.b:.4g}  C={initial_state.c:.4g}")
    A(f"  Time span      :  {trajectory.times[0]:.4g} – {trajectory.times[-1]:.4g}  ({len(trajectory)} points)")
    A(_DH)
    A(f"  Final state    :  A={final[0]:.4g}  B={final[1]:.4g}  C={final[2]:.4g}")
    A(f"  B maximum      :  {b[i_peak]:.4g} at t = {trajectory.times[i_peak]:.4g}")
    if initial_state.b == 0 and rates.k1 > 0 and rates.k2 > 0 and not np.isclose(rates.k1, rates.k2):
        t_max = np.log(rates.k1 / rates.k2) / (rates.k1 - rates.k2)
        A(f"  Analytic t_max:  {t_max:.4g}")
    A(f"  Mass balance   :  max |Σ - Σ0| = {drift:.2e}")
    A(_DV)
    return "\n".join(lines)
