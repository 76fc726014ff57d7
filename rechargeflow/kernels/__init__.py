"""
Taichi kernels for the gridded water balance.

Usage:
    from rechargeflow.kernels import water_balance_timeseries

    water_balance_timeseries(
        total_actet, total_recharge, total_runoff, total_prec,
        soil_storage, prec, pet, landuse, soil,
        thresh_prec, crop_coeff, soil_cap, soil_ext_depth,
        n_timesteps, block_dim,
    )

Submodules:
- water_balance: Taichi kernels (one lane per cell, time loop inside)
- naive: NumPy reference implementation (correctness first)
- protocol: Execution context interface and result types
"""

from rechargeflow.kernels.protocol import (
    TOTAL_NAMES,
    DispatchTotals,
    ExecutionContext,
)
from rechargeflow.kernels.water_balance import (
    water_balance_step,
    water_balance_timeseries,
)

__all__ = [
    # Protocol types
    "ExecutionContext",
    "DispatchTotals",
    "TOTAL_NAMES",
    # Taichi kernels
    "water_balance_timeseries",
    "water_balance_step",
]
