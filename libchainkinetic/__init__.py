# libchainkinetic — A -> B -> C rate-constant fitting
# Public API Exports

from .models import (
    ChainState,
    RateConstants,
    Observation,
    ObservationSet,
    Trajectory,
    FitResult,
    ConfidenceEllipse,
)
from .errors import KineticFitError, InvalidInput, NonConvergence, SingularJacobian, SingularCovariance
from .config import FitSettings, SPECIES
from .equations import chain_derivative, chain_analytic
from .integrator import integrate, simulate, validate_time_grid, STEPPERS
from .residuals import ChainResidual, build_evaluation_grid, chain_residuals
from .solver import KineticSolver, fit
from .uncertainty import confidence_ellipse, parameter_intervals
from .observations import from_frame, load_observations, synthesize_observations
from .report import generate_fit_report, generate_simulation_report
from .logging_config import setup_logging
