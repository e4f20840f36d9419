import numpy as np

from .config import DEFAULT_GRID_STEP, DEFAULT_METHOD
from .equations import chain_derivative
from .errors import InvalidInput
from .integrator import integrate
from .models import ChainState, ObservationSet, RateConstants, Trajectory


def build_evaluation_grid(obs_times, step: float = DEFAULT_GRID_STEP):
    """
    Merge a uniform reference grid 0, step, 2·step, ... <= max(obs_times)
    with the exact experimental timestamps, sorted and deduplicated.

    Reference points that coincide with a timestamp up to rounding are
    dropped, so every experimental time appears on the grid verbatim.
    """
    obs = np.unique(np.asarray(obs_times, dtype=float))
    if obs.size == 0:
        raise InvalidInput("No experimental timestamps supplied.")
    if not np.all(np.isfinite(obs)) or obs[0] < 0:
        raise InvalidInput("Experimental timestamps must be finite and non-negative.")
    if not step > 0:
        raise InvalidInput(f"Grid step must be positive, got {step}.")

    n = int(np.floor(obs[-1] / step + 1e-9))
    dense = step * np.arange(n + 1)

    tol = 1e-9 * np.maximum(1.0, dense)
    nearest = np.min(np.abs(dense[:, None] - obs[None, :]), axis=1)
    return np.union1d(dense[nearest > tol], obs)


class ChainResidual:
    """
    predicted - observed for every (time, species) observation.

    The evaluation grid and the lookup rows are fixed at construction, so
    repeated calls with the same rates return identical arrays in the order
    of ``ObservationSet.to_arrays()``.
    """

    def __init__(self, observations: ObservationSet, initial_state: ChainState,
                 step: float = DEFAULT_GRID_STEP, method: str = DEFAULT_METHOD):
        self.initial_state = initial_state
        self.method = method
        self.times, self.species_idx, self.observed = observations.to_arrays()
        self.obs_times = observations.times()
        self.grid = build_evaluation_grid(self.obs_times, step)
        self._rows = np.searchsorted(self.obs_times, self.times)

    def predict(self, rates: RateConstants) -> Trajectory:
        trajectory = integrate(chain_derivative, self.initial_state, self.grid, rates, self.method)
        return trajectory.restrict(self.obs_times)

    def __call__(self, rates: RateConstants):
        sampled = self.predict(rates)
        return sampled.states[self._rows, self.species_idx] - self.observed

    def __len__(self):
        return len(self.observed)


def chain_residuals(rates: RateConstants, observations: ObservationSet, initial_state: ChainState,
                    step: float = DEFAULT_GRID_STEP, method: str = DEFAULT_METHOD):
    return ChainResidual(observations, initial_state, step, method)(rates)
