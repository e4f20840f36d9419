"""Matrix inverse and SVD used by the confidence-region construction."""
import numpy as np

from .errors import SingularCovariance


def invert(matrix):
    m = np.asarray(matrix, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise SingularCovariance(f"Expected a square matrix, got shape {m.shape}.")
    if not np.all(np.isfinite(m)):
        raise SingularCovariance("Matrix contains non-finite entries.")
    if np.linalg.cond(m) > 1.0 / np.finfo(float).eps:
        raise SingularCovariance(f"Matrix is numerically singular (determinant {np.linalg.det(m):.3g}).")
    try:
        return np.linalg.inv(m)
    except np.linalg.LinAlgError as err:
        raise SingularCovariance(f"Matrix cannot be inverted: {err}") from err


def svd(matrix):
    """Returns (U, singular_values, Vt)."""
    try:
        return np.linalg.svd(np.asarray(matrix, dtype=float))
    except np.linalg.LinAlgError as err:
        raise SingularCovariance(f"SVD did not converge: {err}") from err
