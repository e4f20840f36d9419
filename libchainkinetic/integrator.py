import logging

import numpy as np

from .config import DEFAULT_METHOD
from .equations import chain_derivative
from .errors import InvalidInput
from .models import ChainState, Trajectory

logger = logging.getLogger(__name__)


def euler_step(model, t, y, h, params):
    return y + h * model(t, y, params)


def rk4_step(model, t, y, h, params):
    k1 = model(t, y, params)
    k2 = model(t + h / 2, y + h / 2 * k1, params)
    k3 = model(t + h / 2, y + h / 2 * k2, params)
    k4 = model(t + h, y + h * k3, params)
    return y + h / 6 * (k1 + 2 * k2 + 2 * k3 + k4)


STEPPERS = {
    "euler": euler_step,
    "rk4": rk4_step,
}


def validate_time_grid(time_grid):
    grid = np.asarray(time_grid, dtype=float)
    if grid.ndim != 1:
        raise InvalidInput(f"Time grid must be one-dimensional, got shape {grid.shape}.")
    if grid.size < 2:
        raise InvalidInput("Time grid needs at least two points (initial time plus one step).")
    if not np.all(np.isfinite(grid)):
        raise InvalidInput("Time grid contains non-finite values.")
    if np.any(np.diff(grid) <= 0):
        raise InvalidInput("Time grid must be strictly increasing.")
    return grid


def integrate(model, initial_state: ChainState, time_grid, params, method: str = DEFAULT_METHOD) -> Trajectory:
    """
    Advance ``model`` from ``initial_state`` across ``time_grid``.

    Each gap between consecutive grid points is taken as exactly one step of
    the chosen explicit scheme; there is no error control. The grid may be
    non-uniform, and its first element is the initial time.
    """
    try:
        step = STEPPERS[method.lower()]
    except KeyError:
        raise InvalidInput(f"Unknown integration method '{method}'. Choose from {tuple(STEPPERS)}.") from None

    grid = validate_time_grid(time_grid)
    states = np.empty((grid.size, 3))
    y = initial_state.as_array()
    states[0] = y
    for i in range(grid.size - 1):
        y = step(model, grid[i], y, grid[i + 1] - grid[i], params)
        states[i + 1] = y

    logger.debug(f"Integrated {grid.size} points with {method} over [{grid[0]}, {grid[-1]}]")
    return Trajectory(times=grid, states=states)


def uniform_grid(t_end: float, step: float):
    """0, step, 2·step, ... up to and including t_end (within rounding)."""
    if step <= 0 or t_end <= 0:
        raise InvalidInput("Both t_end and step must be positive.")
    n = int(np.floor(t_end / step + 1e-9))
    return step * np.arange(n + 1)


def simulate(rates, initial_state: ChainState, t_end: float, step: float, method: str = DEFAULT_METHOD) -> Trajectory:
    return integrate(chain_derivative, initial_state, uniform_grid(t_end, step), rates, method)
