import logging

import numpy as np
from lmfit import Parameters, minimize
from scipy import stats
from scipy.optimize import brentq

from .config import CONFIDENCE_LEVEL, SPECIES, FitSettings
from .errors import InvalidInput, NonConvergence, SingularJacobian
from .models import ChainState, FitResult, Observation, ObservationSet, RateConstants
from .residuals import ChainResidual

logger = logging.getLogger(__name__)


class KineticSolver:
    def __init__(self, data: ObservationSet, initial_state: ChainState = None, settings: FitSettings = None):
        self.data = data
        self.settings = settings or FitSettings()
        self.initial_state = initial_state or self._initial_state_from_data()
        self.residual = ChainResidual(data, self.initial_state, self.settings.grid_step, self.settings.method)

    def _initial_state_from_data(self):
        at_zero = self.data.state_at(0.0)
        missing = [s for s in SPECIES if s not in at_zero]
        if missing:
            raise InvalidInput(
                f"No initial state given and species {missing} are not observed at t=0; "
                "pass initial_state explicitly."
            )
        return ChainState(a=at_zero["A"], b=at_zero["B"], c=at_zero["C"])

    def _estimate_initial_guesses(self):
        """
        k1 from a log-linear fit of A(t) through the origin.
        k2 from the time of the B maximum: t_max = ln(k1/k2) / (k1 - k2).
        """
        t, s, c = self.data.to_arrays()
        a0 = self.initial_state.a

        k1 = 1.0
        mask = (s == 0) & (c > 0) & (t > 0)
        if a0 > 0 and np.any(mask):
            x = t[mask]
            y = np.log(c[mask] / a0)
            slope = np.sum(x * y) / np.sum(x * x)
            k1 = max(-slope, 1e-3)

        k2 = k1 / 2
        b_mask = s == 1
        if np.sum(b_mask) >= 3:
            t_b, c_b = t[b_mask], c[b_mask]
            t_peak = t_b[np.argmax(c_b)]
            if 0 < t_peak < t_b.max():
                def peak_offset(k):
                    if np.isclose(k, k1):
                        return 1.0 / k1 - t_peak
                    return np.log(k1 / k) / (k1 - k) - t_peak

                lo, hi = k1 * 1e-4, k1 * 1e4
                if peak_offset(lo) > 0 > peak_offset(hi):
                    k2 = brentq(peak_offset, lo, hi)

        guess = RateConstants(k1=k1, k2=k2)
        logger.debug(f"Estimated initial guess k1={guess.k1:.4g}, k2={guess.k2:.4g}")
        return guess

    def _objective(self, params):
        rates = RateConstants(k1=params['k1'].value, k2=params['k2'].value)
        return self.residual(rates)

    def fit(self, initial_guess: RateConstants = None) -> FitResult:
        """Levenberg-Marquardt fit of k1 and k2 to every observation."""
        guess = initial_guess or self._estimate_initial_guesses()

        params = Parameters()
        params.add('k1', value=guess.k1, min=0)
        params.add('k2', value=guess.k2, min=0)

        fit_kwargs = {}
        if self.settings.max_nfev is not None:
            fit_kwargs['max_nfev'] = self.settings.max_nfev

        logger.info(
            f"Fitting {len(self.residual)} observations ({self.settings.method}, step={self.settings.grid_step}) "
            f"from k1={guess.k1:.4g}, k2={guess.k2:.4g}"
        )
        try:
            result = minimize(self._objective, params, method='leastsq', **fit_kwargs)
        except ValueError as err:
            # lmfit aborts on NaN residuals, e.g. when a trial step makes Euler blow up
            logger.warning(f"Fit diverged: {err}")
            raise NonConvergence(f"Levenberg-Marquardt diverged: {err}") from err

        if not result.success:
            logger.warning(f"Fit did not converge after {result.nfev} evaluations: {result.message}")
            raise NonConvergence(f"Levenberg-Marquardt did not converge after {result.nfev} evaluations: {result.message}")

        covar = getattr(result, 'covar', None)
        if covar is None or not np.all(np.isfinite(covar)):
            logger.warning("Fit converged but the Jacobian is rank-deficient; no covariance available.")
            raise SingularJacobian(
                "Jacobian is rank-deficient: the data do not constrain both k1 and k2 "
                f"(k1={result.params['k1'].value:.4g}, k2={result.params['k2'].value:.4g})."
            )

        residuals = np.asarray(result.residual, dtype=float)
        observed = self.residual.observed
        ss_tot = np.sum((observed - observed.mean()) ** 2)
        r_squared = 1.0 - result.chisqr / ss_tot if ss_tot > 0 else float("nan")

        fit_result = FitResult(
            rates=RateConstants(k1=result.params['k1'].value, k2=result.params['k2'].value),
            covariance=covar,
            rss=result.chisqr,
            dof=result.nfree,
            n_observations=result.ndata,
            nfev=result.nfev,
            message=str(result.message),
            stderr={name: float(np.sqrt(covar[i, i])) for i, name in enumerate(('k1', 'k2'))},
            aic=result.aic,
            bic=result.bic,
            r_squared=r_squared,
            method=self.settings.method,
            residuals=residuals,
        )
        logger.info(
            f"Converged in {result.nfev} evaluations: k1={fit_result.rates.k1:.6g}, "
            f"k2={fit_result.rates.k2:.6g}, RSS={fit_result.rss:.3g}"
        )
        return fit_result

    def bootstrap_uncertainty(self, fit_result: FitResult, n_iter=50, seed=None, level=CONFIDENCE_LEVEL):
        """
        Residual-resampling bootstrap. Synthetic data are the fitted curve
        minus resampled residuals; each set is refitted from the best
        estimate. Failed refits are counted and reported.
        """
        rng = np.random.default_rng(seed)
        t, s, _ = self.data.to_arrays()
        residuals = fit_result.residuals
        predicted = self.residual.observed + residuals

        collected = {'k1': [], 'k2': []}
        n_failed = 0
        for i in range(n_iter):
            synthetic = predicted - rng.choice(residuals, size=len(residuals), replace=True)
            resampled = ObservationSet(points=[
                Observation(time=ti, species=SPECIES[si], concentration=ci)
                for ti, si, ci in zip(t, s, synthetic)
            ])
            solver = KineticSolver(resampled, self.initial_state, self.settings)
            try:
                refit = solver.fit(fit_result.rates)
            except (NonConvergence, SingularJacobian) as err:
                n_failed += 1
                logger.warning(f"Bootstrap refit {i + 1}/{n_iter} failed: {err}")
                continue
            collected['k1'].append(refit.rates.k1)
            collected['k2'].append(refit.rates.k2)

        n_success = n_iter - n_failed
        if n_success < 5:
            raise NonConvergence(f"Only {n_success} of {n_iter} bootstrap refits converged.")

        tail = 100 * (1 - level) / 2
        ci_results = {k: (float(np.percentile(v, tail)), float(np.percentile(v, 100 - tail)))
                      for k, v in collected.items()}
        ci_results['n_success'] = n_success
        ci_results['n_failed'] = n_failed
        return ci_results

    def diagnose_residuals(self, residuals):
        """
        Performs statistical tests on residuals.
        1. Shapiro-Wilk (Normality): p < 0.05 means NOT normal.
        2. Runs Test (Randomness): |Z| > 1.96 means systematic deviation.
        """
        residuals = np.asarray(residuals, dtype=float)
        if len(residuals) >= 3 and np.ptp(residuals) > 0:
            shapiro_p = float(stats.shapiro(residuals).pvalue)
        else:
            shapiro_p = 1.0

        signs = np.sign(residuals)
        signs = signs[signs != 0]
        n = len(signs)
        z_score = 0.0
        if n > 1:
            n_pos = np.sum(signs > 0)
            n_neg = np.sum(signs < 0)
            runs = 1 + np.sum(signs[1:] != signs[:-1])
            mu = (2 * n_pos * n_neg) / n + 1
            var = (mu - 1) * (mu - 2) / (n - 1)
            if var > 0:
                z_score = float((runs - mu) / np.sqrt(var))

        return {
            "shapiro_p": shapiro_p,
            "runs_z": z_score,
        }


def fit(observations: ObservationSet, initial_guess: RateConstants = None,
        initial_state: ChainState = None, settings: FitSettings = None) -> FitResult:
    return KineticSolver(observations, initial_state, settings).fit(initial_guess)
