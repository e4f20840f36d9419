import logging

import numpy as np

from libchainkinetic import (
    ChainState,
    RateConstants,
    KineticSolver,
    confidence_ellipse,
    generate_fit_report,
    parameter_intervals,
    setup_logging,
    simulate,
    synthesize_observations,
)

setup_logging(logging.INFO)

# 1. Simulate "measured" data: k1=2, k2=1, A0=1, sampled every 0.5 time units
true_rates = RateConstants(k1=2.0, k2=1.0)
start = ChainState(a=1.0, b=0.0, c=0.0)
truth = simulate(true_rates, start, t_end=5.0, step=0.1)
sample_times = truth.times[::5][1:]
data = synthesize_observations(truth, sample_times, noise_sd=0.01, rng=np.random.default_rng(7))

# 2. Fit
solver = KineticSolver(data, initial_state=start)
result = solver.fit(RateConstants(k1=0.5, k2=0.5))
ellipse = confidence_ellipse(result)

# 3. Print Report
print(generate_fit_report(
    result,
    ellipse=ellipse,
    intervals=parameter_intervals(result),
    diagnostics=solver.diagnose_residuals(result.residuals),
))
