import numpy as np

from .models import ChainState, RateConstants


def chain_derivative(t, y, rates: RateConstants):
    """
    Consecutive first-order reactions A -> B -> C.
      dA/dt = -k1·A
      dB/dt =  k1·A - k2·B
      dC/dt =  k2·B
    The system is autonomous, so t is ignored. Negative concentrations are
    not guarded: the equations are evaluated as given.
    """
    k1, k2 = rates.k1, rates.k2
    a, b = y[0], y[1]
    return np.array([-k1 * a, k1 * a - k2 * b, k2 * b])


def chain_analytic(t, initial_state: ChainState, rates: RateConstants):
    """
    Closed-form solution of the chain for an arbitrary initial state.
    Returns an array of shape (len(t), 3).
    """
    t = np.atleast_1d(np.asarray(t, dtype=float))
    a0, b0, total = initial_state.a, initial_state.b, initial_state.total
    k1, k2 = rates.k1, rates.k2

    e1 = np.exp(-k1 * t)
    e2 = np.exp(-k2 * t)
    a = a0 * e1
    if np.isclose(k1, k2):
        # Degenerate case: B(t) = (b0 + a0·k·t)·exp(-k·t)
        b = (b0 + a0 * k1 * t) * e2
    else:
        b = a0 * k1 / (k2 - k1) * (e1 - e2) + b0 * e2
    c = total - a - b
    return np.column_stack([a, b, c])


# Text used by the report generator
MODEL_THEORY = {
    "name": "Consecutive First-Order Reactions",
    "scheme": "A  --k1-->  B  --k2-->  C",
    "equations": [
        "dA/dt = -k1·[A]",
        "dB/dt =  k1·[A] - k2·[B]",
        "dC/dt =  k2·[B]",
    ],
    "assumptions": [
        "Both steps are irreversible and first order",
        "Closed system: [A] + [B] + [C] is conserved",
        "Isothermal, well-mixed reactor",
    ],
    "parameters": {
        "k1": "Rate constant of A -> B (1/time)",
        "k2": "Rate constant of B -> C (1/time)",
    },
    "diagnostic": "[B] rises then falls; its maximum occurs at t = ln(k1/k2) / (k1 - k2).",
}
