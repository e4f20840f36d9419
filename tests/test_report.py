import unittest
import logging
import numpy as np
import sys
import os

from pydantic import ValidationError

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from libchainkinetic.models import ChainState, RateConstants, FitResult
from libchainkinetic.config import FitSettings
from libchainkinetic.integrator import simulate
from libchainkinetic.uncertainty import confidence_ellipse, parameter_intervals
from libchainkinetic.report import generate_fit_report, generate_simulation_report
from libchainkinetic.logging_config import setup_logging


def sample_fit_result():
    return FitResult(
        rates=RateConstants(k1=2.01, k2=0.98),
        covariance=np.array([[0.0025, -0.0004], [-0.0004, 0.0016]]),
        rss=0.0031,
        dof=28,
        n_observations=30,
        nfev=27,
        message="Fit succeeded.",
        stderr={"k1": 0.05, "k2": 0.04},
        aic=-270.5,
        bic=-267.7,
        r_squared=0.9987,
        method="euler",
        residuals=np.linspace(-0.02, 0.02, 30),
    )


class TestReports(unittest.TestCase):

    def test_fit_report_sections(self):
        result = sample_fit_result()
        report = generate_fit_report(
            result,
            ellipse=confidence_ellipse(result),
            intervals=parameter_intervals(result),
            diagnostics={"shapiro_p": 0.42, "runs_z": 0.5},
            bootstrap={"k1": (1.9, 2.1), "k2": (0.9, 1.05), "n_success": 48, "n_failed": 2},
        )
        for heading in ("OVERVIEW", "KINETIC MODEL", "RATE CONSTANTS", "GOODNESS OF FIT",
                        "95% JOINT CONFIDENCE REGION", "RESIDUAL DIAGNOSTICS"):
            self.assertIn(heading, report)
        self.assertIn("2.01", report)
        self.assertIn("Explicit Euler", report)
        self.assertIn("48 succeeded, 2 failed", report)

    def test_fit_report_minimal(self):
        report = generate_fit_report(sample_fit_result())
        self.assertIn("RATE CONSTANTS", report)
        self.assertNotIn("JOINT CONFIDENCE REGION", report)
        self.assertNotIn("RESIDUAL DIAGNOSTICS", report)

    def test_simulation_report(self):
        rates = RateConstants(k1=2.0, k2=1.0)
        start = ChainState(a=1.0)
        report = generate_simulation_report(rates, start, simulate(rates, start, 5.0, 0.1, "rk4"))
        self.assertIn("SIMULATION SUMMARY", report)
        self.assertIn("Analytic t_max:  0.6931", report)
        self.assertIn("Mass balance", report)


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        settings = FitSettings()
        self.assertEqual(settings.grid_step, 0.1)
        self.assertEqual(settings.method, "euler")
        self.assertEqual(settings.confidence_level, 0.95)
        self.assertEqual(settings.ellipse_points, 100)
        self.assertIsNone(settings.max_nfev)

    def test_invalid_settings(self):
        with self.assertRaises(ValidationError):
            FitSettings(method="midpoint")
        with self.assertRaises(ValidationError):
            FitSettings(grid_step=0)
        with self.assertRaises(ValidationError):
            FitSettings(confidence_level=1.0)
        self.assertEqual(FitSettings(method="RK4").method, "rk4")


class TestLogging(unittest.TestCase):

    def test_setup_is_idempotent(self):
        logger = setup_logging(logging.WARNING)
        setup_logging(logging.WARNING)
        self.assertEqual(len(logger.handlers), 1)
        self.assertEqual(logger.name, "libchainkinetic")


if __name__ == '__main__':
    unittest.main()
