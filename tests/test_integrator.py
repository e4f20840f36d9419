import unittest
import numpy as np
import sys
import os

# Add parent directory to path so we can import the library without installing it
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from libchainkinetic.models import ChainState, RateConstants
from libchainkinetic.equations import chain_derivative, chain_analytic
from libchainkinetic.integrator import integrate, simulate, validate_time_grid, uniform_grid
from libchainkinetic.errors import InvalidInput


START = ChainState(a=1.0, b=0.0, c=0.0)


class TestKineticModel(unittest.TestCase):

    def test_derivative_values(self):
        rates = RateConstants(k1=2.0, k2=1.0)
        d = chain_derivative(0.0, np.array([1.0, 0.5, 0.2]), rates)
        np.testing.assert_allclose(d, [-2.0, 1.5, 0.5])
        self.assertAlmostEqual(d.sum(), 0.0)

    def test_derivative_ignores_time(self):
        rates = RateConstants(k1=0.7, k2=0.3)
        y = np.array([0.4, 0.3, 0.3])
        np.testing.assert_array_equal(chain_derivative(0.0, y, rates), chain_derivative(42.0, y, rates))

    def test_analytic_equal_rates(self):
        """k1 == k2 uses the degenerate closed form and still conserves mass."""
        rates = RateConstants(k1=1.5, k2=1.5)
        t = np.linspace(0, 4, 9)
        exact = chain_analytic(t, START, rates)
        np.testing.assert_allclose(exact[:, 1], 1.5 * t * np.exp(-1.5 * t))
        np.testing.assert_allclose(exact.sum(axis=1), 1.0)


class TestIntegrator(unittest.TestCase):

    def test_mass_conservation(self):
        """A+B+C stays at its initial value for any rates and any grid."""
        grids = [
            np.linspace(0, 5, 51),
            np.array([0.0, 0.05, 0.3, 0.31, 1.2, 2.0, 4.5]),
        ]
        for k1, k2 in [(0.0, 0.0), (2.0, 1.0), (0.3, 5.0), (4.0, 4.0)]:
            for grid in grids:
                for method in ("euler", "rk4"):
                    start = ChainState(a=0.8, b=0.15, c=0.05)
                    traj = integrate(chain_derivative, start, grid, RateConstants(k1=k1, k2=k2), method)
                    np.testing.assert_allclose(traj.totals(), start.total, atol=1e-12)

    def test_monotonicity(self):
        traj = simulate(RateConstants(k1=2.0, k2=1.0), START, t_end=5.0, step=0.1)
        self.assertTrue(np.all(np.diff(traj.species("A")) <= 0))
        self.assertTrue(np.all(np.diff(traj.species("C")) >= 0))

    def test_euler_converges_to_exponential(self):
        """The error in A(t) shrinks as the step shrinks."""
        rates = RateConstants(k1=2.0, k2=1.0)
        errors = []
        for step in (0.1, 0.01, 0.001):
            traj = simulate(rates, START, t_end=1.0, step=step)
            errors.append(abs(traj.species("A")[-1] - np.exp(-2.0 * traj.times[-1])))
        self.assertGreater(errors[0], errors[1])
        self.assertGreater(errors[1], errors[2])
        self.assertLess(errors[2], 1e-3)

    def test_euler_matches_closed_form_step(self):
        """One Euler step per gap: A_n = A0 · (1 - k1·h)^n."""
        traj = simulate(RateConstants(k1=2.0, k2=1.0), START, t_end=1.0, step=0.1)
        np.testing.assert_allclose(traj.species("A"), 0.8 ** np.arange(11))

    def test_rk4_is_more_accurate(self):
        rates = RateConstants(k1=2.0, k2=1.0)
        traj = simulate(rates, START, t_end=2.0, step=0.1, method="rk4")
        exact = chain_analytic(traj.times, START, rates)
        self.assertLess(np.max(np.abs(traj.states - exact)), 1e-4)

    def test_non_uniform_grid_one_step_per_gap(self):
        grid = [0.0, 0.1, 0.5]
        traj = integrate(chain_derivative, START, grid, RateConstants(k1=1.0, k2=0.0))
        np.testing.assert_allclose(traj.species("A"), [1.0, 0.9, 0.9 * 0.6])
        np.testing.assert_array_equal(traj.times, grid)

    def test_trajectory_is_read_only(self):
        traj = simulate(RateConstants(k1=1.0, k2=1.0), START, t_end=1.0, step=0.5)
        with self.assertRaises(ValueError):
            traj.states[0, 0] = 5.0

    def test_restrict_and_frame(self):
        traj = simulate(RateConstants(k1=1.0, k2=1.0), START, t_end=1.0, step=0.25)
        sub = traj.restrict([0.25, 1.0])
        self.assertEqual(len(sub), 2)
        np.testing.assert_array_equal(sub.states, traj.states[[1, 4]])
        with self.assertRaises(InvalidInput):
            traj.restrict([0.3])
        df = traj.to_frame()
        self.assertEqual(list(df.columns), ["time", "A", "B", "C"])

    def test_invalid_grids(self):
        rates = RateConstants(k1=1.0, k2=1.0)
        for bad in ([], [0.0], [0.0, 1.0, 1.0], [1.0, 0.5], [0.0, np.nan], [[0.0, 1.0]]):
            with self.assertRaises(InvalidInput):
                integrate(chain_derivative, START, bad, rates)
        self.assertIsInstance(InvalidInput("x"), ValueError)

    def test_unknown_method(self):
        with self.assertRaises(InvalidInput):
            integrate(chain_derivative, START, [0.0, 1.0], RateConstants(k1=1.0, k2=1.0), "midpoint")

    def test_validate_and_uniform_grid(self):
        np.testing.assert_array_equal(validate_time_grid([0, 1, 3]), [0.0, 1.0, 3.0])
        grid = uniform_grid(5.0, 0.1)
        self.assertEqual(len(grid), 51)
        self.assertAlmostEqual(grid[-1], 5.0)


if __name__ == '__main__':
    unittest.main()
