"""
Turning tabular concentration data into ObservationSets.

Accepted layouts (column names are case-insensitive):
  tidy : time, species, concentration   (one row per reading)
  wide : time, A, B, C                  (one row per time; blanks allowed)
Repeated readings at the same time are averaged, as digitised curves often
contain several points per timestamp.
"""
import logging

import numpy as np
import pandas as pd

from .config import SPECIES
from .errors import InvalidInput
from .models import Observation, ObservationSet, Trajectory

logger = logging.getLogger(__name__)

TIDY_COLUMNS = ("time", "species", "concentration")


def _tidy_from_wide(df):
    present = [s for s in SPECIES if s.lower() in df.columns]
    if not present:
        raise InvalidInput(f"Wide data needs at least one of the columns {SPECIES}.")
    tidy = df.melt(id_vars="time", value_vars=[s.lower() for s in present],
                   var_name="species", value_name="concentration")
    return tidy


def from_frame(df: pd.DataFrame) -> ObservationSet:
    df = df.rename(columns=lambda c: str(c).strip().lower())
    if "time" not in df.columns:
        raise InvalidInput("Observation data needs a 'time' column.")

    if set(TIDY_COLUMNS).issubset(df.columns):
        tidy = df[list(TIDY_COLUMNS)].copy()
    else:
        tidy = _tidy_from_wide(df)

    tidy["species"] = tidy["species"].astype(str).str.strip().str.upper()
    tidy["time"] = pd.to_numeric(tidy["time"], errors="coerce")
    tidy["concentration"] = pd.to_numeric(tidy["concentration"], errors="coerce")

    n_rows = len(tidy)
    tidy = tidy.dropna()
    if len(tidy) < n_rows:
        logger.info(f"Dropped {n_rows - len(tidy)} rows with missing values.")
    if tidy.empty:
        raise InvalidInput("No usable observations after dropping missing values.")

    averaged = tidy.groupby(["time", "species"], as_index=False, sort=True)["concentration"].mean()
    if len(averaged) < len(tidy):
        logger.info(f"Averaged {len(tidy)} readings into {len(averaged)} observations.")

    return ObservationSet(points=[
        Observation(time=row.time, species=row.species, concentration=row.concentration)
        for row in averaged.itertuples(index=False)
    ])


def load_observations(path_or_buffer) -> ObservationSet:
    df = pd.read_csv(path_or_buffer)
    logger.info(f"Loaded {len(df)} rows from {getattr(path_or_buffer, 'name', path_or_buffer)}")
    return from_frame(df)


def to_frame(observations: ObservationSet) -> pd.DataFrame:
    """Wide layout (time, A, B, C) for tables and plots."""
    tidy = pd.DataFrame([p.model_dump() for p in observations.points])
    wide = tidy.pivot(index="time", columns="species", values="concentration")
    return wide.reindex(columns=list(SPECIES)).reset_index().rename_axis(columns=None)


def synthesize_observations(trajectory: Trajectory, times=None, noise_sd: float = 0.0,
                            rng: np.random.Generator = None, species=SPECIES) -> ObservationSet:
    """Sample a trajectory (optionally with Gaussian noise) as if it were measured."""
    sampled = trajectory if times is None else trajectory.restrict(times)
    if noise_sd > 0:
        rng = rng or np.random.default_rng()
        states = sampled.states + rng.normal(0.0, noise_sd, size=sampled.states.shape)
    else:
        states = sampled.states

    return ObservationSet(points=[
        Observation(time=t, species=name, concentration=states[i, SPECIES.index(name)])
        for i, t in enumerate(sampled.times)
        for name in species
    ])
