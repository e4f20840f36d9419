from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from typing import Dict, Tuple
import numpy as np
import pandas as pd

from .config import SPECIES
from .errors import InvalidInput


def _frozen_array(v, ndim):
    arr = np.array(v, dtype=float)
    if arr.ndim != ndim:
        raise ValueError(f"Expected a {ndim}-D array, got shape {arr.shape}.")
    arr.setflags(write=False)
    return arr


class ChainState(BaseModel):
    """Concentrations of A, B and C at one instant."""
    model_config = ConfigDict(frozen=True)

    a: float
    b: float = 0.0
    c: float = 0.0

    @field_validator('a', 'b', 'c')
    @classmethod
    def must_be_non_negative(cls, v):
        if v < 0:
            raise ValueError("Concentrations must be non-negative.")
        return v

    @property
    def total(self) -> float:
        return self.a + self.b + self.c

    def as_array(self) -> np.ndarray:
        return np.array([self.a, self.b, self.c], dtype=float)


class RateConstants(BaseModel):
    """First-order rate constants for A -> B (k1) and B -> C (k2)."""
    model_config = ConfigDict(frozen=True)

    k1: float
    k2: float

    @field_validator('k1', 'k2')
    @classmethod
    def must_be_non_negative(cls, v):
        if not np.isfinite(v) or v < 0:
            raise ValueError("Rate constants must be finite and non-negative.")
        return v

    def as_array(self) -> np.ndarray:
        return np.array([self.k1, self.k2], dtype=float)

    @classmethod
    def from_array(cls, values) -> "RateConstants":
        k1, k2 = np.asarray(values, dtype=float)
        return cls(k1=k1, k2=k2)


class Observation(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: float
    species: str
    concentration: float

    @field_validator('time')
    @classmethod
    def time_must_be_non_negative(cls, v):
        if not np.isfinite(v) or v < 0:
            raise ValueError("Observation time must be finite and non-negative.")
        return v

    @field_validator('species')
    @classmethod
    def must_be_known_species(cls, v):
        v = v.strip().upper()
        if v not in SPECIES:
            raise ValueError(f"Species must be one of {SPECIES}, got '{v}'.")
        return v

    @field_validator('concentration')
    @classmethod
    def must_be_finite(cls, v):
        if not np.isfinite(v):
            raise ValueError("Concentration must be finite.")
        return v


class ObservationSet(BaseModel):
    """Experimental data ready for fitting. Repeated readings must be averaged beforehand."""
    model_config = ConfigDict(frozen=True)

    points: Tuple[Observation, ...]

    @field_validator('points')
    @classmethod
    def must_be_unique(cls, v):
        if not v:
            raise ValueError("An observation set needs at least one observation.")
        seen = set()
        for p in v:
            key = (p.time, p.species)
            if key in seen:
                raise ValueError(f"Duplicate observation of {p.species} at t={p.time}; average repeats first.")
            seen.add(key)
        return v

    def __len__(self):
        return len(self.points)

    def to_arrays(self):
        """(times, species_index, concentration), ordered by species then time."""
        t = np.array([p.time for p in self.points])
        s = np.array([SPECIES.index(p.species) for p in self.points])
        c = np.array([p.concentration for p in self.points])
        order = np.lexsort((t, s))
        return t[order], s[order], c[order]

    def times(self) -> np.ndarray:
        return np.unique([p.time for p in self.points])

    def state_at(self, time: float) -> Dict[str, float]:
        return {p.species: p.concentration for p in self.points if p.time == time}


class Trajectory(BaseModel):
    """Integrated states; row i of ``states`` is [A, B, C] at ``times[i]``."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    times: np.ndarray
    states: np.ndarray

    @field_validator('times', mode='before')
    @classmethod
    def _times_array(cls, v):
        return _frozen_array(v, 1)

    @field_validator('states', mode='before')
    @classmethod
    def _states_array(cls, v):
        return _frozen_array(v, 2)

    @model_validator(mode='after')
    def _shapes_match(self):
        if self.states.shape != (len(self.times), len(SPECIES)):
            raise ValueError(f"states must have shape ({len(self.times)}, {len(SPECIES)}), got {self.states.shape}.")
        return self

    def __len__(self):
        return len(self.times)

    def species(self, name: str) -> np.ndarray:
        return self.states[:, SPECIES.index(name.upper())]

    def totals(self) -> np.ndarray:
        return self.states.sum(axis=1)

    def restrict(self, times) -> "Trajectory":
        """Keep only the requested grid points. Every time must lie on the grid exactly."""
        wanted = np.asarray(times, dtype=float)
        idx = np.searchsorted(self.times, wanted)
        idx_clipped = np.clip(idx, 0, len(self.times) - 1)
        if np.any(idx >= len(self.times)) or np.any(self.times[idx_clipped] != wanted):
            raise InvalidInput("Requested times are not all points of the integration grid.")
        return Trajectory(times=self.times[idx], states=self.states[idx])

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.states, columns=list(SPECIES))
        df.insert(0, "time", self.times)
        return df


class FitResult(BaseModel):
    """Converged Levenberg-Marquardt estimate with its covariance."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    rates: RateConstants
    covariance: np.ndarray
    rss: float
    dof: int
    n_observations: int
    nfev: int
    message: str = ""
    stderr: Dict[str, float]
    aic: float
    bic: float
    r_squared: float
    method: str
    residuals: np.ndarray

    @field_validator('covariance', mode='before')
    @classmethod
    def _covariance_array(cls, v):
        arr = _frozen_array(v, 2)
        if arr.shape != (2, 2):
            raise ValueError(f"covariance must be 2x2, got {arr.shape}.")
        return arr

    @field_validator('residuals', mode='before')
    @classmethod
    def _residual_array(cls, v):
        return _frozen_array(v, 1)

    @property
    def correlation(self) -> float:
        sd = np.sqrt(np.diag(self.covariance))
        if np.any(sd == 0):
            return float("nan")
        return float(self.covariance[0, 1] / (sd[0] * sd[1]))


class ConfidenceEllipse(BaseModel):
    """Boundary of the joint (k1, k2) confidence region."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    center: np.ndarray
    points: np.ndarray
    level: float
    radius: float

    @field_validator('center', mode='before')
    @classmethod
    def _center_array(cls, v):
        return _frozen_array(v, 1)

    @field_validator('points', mode='before')
    @classmethod
    def _points_array(cls, v):
        return _frozen_array(v, 2)

    @property
    def k1(self) -> np.ndarray:
        return self.points[:, 0]

    @property
    def k2(self) -> np.ndarray:
        return self.points[:, 1]

    @property
    def closed_points(self) -> np.ndarray:
        return np.vstack([self.points, self.points[:1]])

    @property
    def centroid(self) -> np.ndarray:
        return self.points.mean(axis=0)

    def to_frame(self) -> pd.DataFrame:
        closed = self.closed_points
        return pd.DataFrame({"k1": closed[:, 0], "k2": closed[:, 1]})
