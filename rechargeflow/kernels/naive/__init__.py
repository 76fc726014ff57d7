"""
Naive (reference) water balance implementation.

Plain NumPy, prioritising correctness and readability over performance.
Serves as the baseline for equivalence testing of the Taichi kernels.
"""

from rechargeflow.kernels.naive.water_balance import (
    StepFluxes,
    compute_actual_et,
    compute_eff_precip,
    compute_recharge,
    compute_runoff,
    water_balance_step,
    water_balance_timeseries,
)

__all__ = [
    "StepFluxes",
    "compute_eff_precip",
    "compute_runoff",
    "compute_recharge",
    "compute_actual_et",
    "water_balance_step",
    "water_balance_timeseries",
]
