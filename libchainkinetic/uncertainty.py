import logging

import numpy as np
from scipy import stats

from .config import CONFIDENCE_LEVEL, ELLIPSE_POINTS
from .errors import InvalidInput
from .linalg import invert, svd
from .models import ConfidenceEllipse, FitResult

logger = logging.getLogger(__name__)


def _check_level(level):
    if not 0 < level < 1:
        raise InvalidInput(f"Confidence level must lie in (0, 1), got {level}.")


def confidence_ellipse(fit_result: FitResult, level: float = CONFIDENCE_LEVEL,
                       n_points: int = ELLIPSE_POINTS) -> ConfidenceEllipse:
    """
    Joint confidence region for (k1, k2).

    The boundary satisfies (p - p̂)ᵀ C⁻¹ (p - p̂) = r², with
    r² = 2 · F(level; 2, dof). A circle of radius r is mapped through
    V · diag(1/√s), where U, s, Vᵀ is the SVD of C⁻¹, and shifted to p̂.
    """
    _check_level(level)
    if fit_result.dof <= 0:
        raise InvalidInput(f"Degrees of freedom must be positive, got {fit_result.dof}.")
    if n_points < 3:
        raise InvalidInput(f"An ellipse needs at least 3 points, got {n_points}.")

    n_params = 2
    radius = np.sqrt(stats.f.ppf(level, n_params, fit_result.dof) * n_params)

    theta = np.linspace(0, 2 * np.pi, n_points, endpoint=False)
    circle = radius * np.column_stack([np.cos(theta), np.sin(theta)])

    _, singular_values, vt = svd(invert(fit_result.covariance))
    points = (circle / np.sqrt(singular_values)) @ vt + fit_result.rates.as_array()

    logger.debug(f"{level:.0%} ellipse: radius={radius:.4g}, semi-axes={radius / np.sqrt(singular_values)}")
    return ConfidenceEllipse(
        center=fit_result.rates.as_array(),
        points=points,
        level=level,
        radius=float(radius),
    )


def parameter_intervals(fit_result: FitResult, level: float = CONFIDENCE_LEVEL):
    """Marginal Student-t intervals: k ± t((1+level)/2, dof) · stderr."""
    _check_level(level)
    if fit_result.dof <= 0:
        raise InvalidInput(f"Degrees of freedom must be positive, got {fit_result.dof}.")
    t_crit = stats.t.ppf((1 + level) / 2, fit_result.dof)
    values = {'k1': fit_result.rates.k1, 'k2': fit_result.rates.k2}
    return {k: (v - t_crit * fit_result.stderr[k], v + t_crit * fit_result.stderr[k])
            for k, v in values.items()}
