import unittest
import numpy as np
import sys
import os

from scipy import stats

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from libchainkinetic.models import ChainState, RateConstants, FitResult
from libchainkinetic.equations import chain_derivative
from libchainkinetic.integrator import integrate
from libchainkinetic.residuals import build_evaluation_grid
from libchainkinetic.observations import synthesize_observations
from libchainkinetic.solver import KineticSolver
from libchainkinetic.uncertainty import confidence_ellipse, parameter_intervals
from libchainkinetic.linalg import invert, svd
from libchainkinetic.errors import InvalidInput, SingularCovariance


START = ChainState(a=1.0, b=0.0, c=0.0)


def make_fit_result(covariance, dof=20, k1=2.0, k2=1.0):
    cov = np.asarray(covariance, dtype=float)
    return FitResult(
        rates=RateConstants(k1=k1, k2=k2),
        covariance=cov,
        rss=0.01,
        dof=dof,
        n_observations=dof + 2,
        nfev=10,
        stderr={"k1": float(np.sqrt(abs(cov[0, 0]))), "k2": float(np.sqrt(abs(cov[1, 1])))},
        aic=-100.0,
        bic=-98.0,
        r_squared=0.99,
        method="euler",
        residuals=np.zeros(dof + 2),
    )


class TestConfidenceEllipse(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        obs_times = np.arange(1, 11) * 0.5
        grid = build_evaluation_grid(obs_times, 0.1)
        traj = integrate(chain_derivative, START, grid, RateConstants(k1=2.0, k2=1.0))
        data = synthesize_observations(traj, obs_times, noise_sd=0.01, rng=np.random.default_rng(5))
        cls.fit_result = KineticSolver(data, initial_state=START).fit(RateConstants(k1=0.5, k2=0.5))

    def test_centroid_equals_estimate(self):
        ellipse = confidence_ellipse(self.fit_result)
        np.testing.assert_allclose(ellipse.centroid, self.fit_result.rates.as_array(), rtol=0, atol=1e-10)
        np.testing.assert_array_equal(ellipse.center, self.fit_result.rates.as_array())

    def test_points_lie_on_the_confidence_boundary(self):
        ellipse = confidence_ellipse(self.fit_result)
        offsets = ellipse.points - ellipse.center
        inv_cov = np.linalg.inv(self.fit_result.covariance)
        quad = np.einsum("ij,jk,ik->i", offsets, inv_cov, offsets)
        np.testing.assert_allclose(quad, ellipse.radius ** 2, rtol=1e-8)

    def test_radius_from_f_distribution(self):
        ellipse = confidence_ellipse(self.fit_result, level=0.9)
        expected = np.sqrt(2 * stats.f.ppf(0.9, 2, self.fit_result.dof))
        self.assertAlmostEqual(ellipse.radius, expected)
        self.assertEqual(ellipse.level, 0.9)

    def test_point_count_and_closure(self):
        ellipse = confidence_ellipse(self.fit_result, n_points=50)
        self.assertEqual(ellipse.points.shape, (50, 2))
        closed = ellipse.closed_points
        self.assertEqual(len(closed), 51)
        np.testing.assert_array_equal(closed[0], closed[-1])
        self.assertEqual(list(ellipse.to_frame().columns), ["k1", "k2"])

    def test_axis_aligned_extents(self):
        """Diagonal covariance gives semi-axes r·σ1 and r·σ2 along k1 and k2."""
        result = make_fit_result([[0.04, 0.0], [0.0, 0.01]], dof=30)
        ellipse = confidence_ellipse(result, n_points=400)
        r = ellipse.radius
        self.assertAlmostEqual(ellipse.k1.max() - 2.0, r * 0.2, places=6)
        self.assertAlmostEqual(2.0 - ellipse.k1.min(), r * 0.2, places=6)
        self.assertAlmostEqual(ellipse.k2.max() - 1.0, r * 0.1, places=4)

    def test_singular_covariance(self):
        for cov in ([[1.0, 2.0], [2.0, 4.0]], [[0.0, 0.0], [0.0, 0.0]], [[np.nan, 0.0], [0.0, 1.0]]):
            with self.assertRaises(SingularCovariance):
                confidence_ellipse(make_fit_result(cov))

    def test_invalid_arguments(self):
        good = make_fit_result([[0.04, 0.0], [0.0, 0.01]])
        with self.assertRaises(InvalidInput):
            confidence_ellipse(make_fit_result([[0.04, 0.0], [0.0, 0.01]], dof=0))
        with self.assertRaises(InvalidInput):
            confidence_ellipse(good, level=1.5)
        with self.assertRaises(InvalidInput):
            confidence_ellipse(good, n_points=2)


class TestParameterIntervals(unittest.TestCase):

    def test_symmetric_t_intervals(self):
        result = make_fit_result([[0.04, 0.01], [0.01, 0.01]], dof=10)
        ci = parameter_intervals(result)
        t_crit = stats.t.ppf(0.975, 10)
        self.assertAlmostEqual(ci["k1"][0], 2.0 - t_crit * 0.2)
        self.assertAlmostEqual(ci["k1"][1], 2.0 + t_crit * 0.2)
        self.assertAlmostEqual(sum(ci["k2"]) / 2, 1.0)


class TestLinalg(unittest.TestCase):

    def test_invert_and_svd(self):
        m = np.array([[4.0, 1.0], [1.0, 3.0]])
        np.testing.assert_allclose(invert(m) @ m, np.eye(2), atol=1e-12)
        u, s, vt = svd(m)
        np.testing.assert_allclose(u @ np.diag(s) @ vt, m)

    def test_invert_rejects_non_square(self):
        with self.assertRaises(SingularCovariance):
            invert(np.ones((2, 3)))


if __name__ == '__main__':
    unittest.main()
