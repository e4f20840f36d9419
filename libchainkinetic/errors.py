"""Typed failures raised by the fitting pipeline."""


class KineticFitError(Exception):
    """Base class for every failure raised by libchainkinetic."""


class InvalidInput(KineticFitError, ValueError):
    """Raised for malformed inputs: bad time grids, unknown methods, dof <= 0."""


class NonConvergence(KineticFitError):
    """Raised when the optimizer stops without meeting its convergence tolerance."""


class SingularJacobian(KineticFitError):
    """Raised when the fit Jacobian is rank-deficient and no covariance exists."""


class SingularCovariance(KineticFitError):
    """Raised when a covariance matrix cannot be inverted."""
