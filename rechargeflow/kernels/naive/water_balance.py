"""
NumPy reference for the bucket water balance.

Vectorised over cells, serial over time. Prioritises readability over speed;
used as the baseline the Taichi kernels are checked against.
"""

from dataclasses import dataclass

import numpy as np

from rechargeflow.core import SOIL_ET_FRACTION
from rechargeflow.kernels.protocol import DispatchTotals


def compute_eff_precip(prec, threshold):
    """min(prec, threshold)"""
    return np.minimum(prec, threshold)


def compute_runoff(prec, eff_prec):
    """max(0, prec - eff_prec)"""
    return np.maximum(0.0, np.subtract(prec, eff_prec))


def compute_recharge(storage, soil_cap, soil_ext_depth, eff_prec):
    """max(0, storage + eff_prec - soil_cap·soil_ext_depth)"""
    return np.maximum(0.0, np.add(storage, eff_prec) - np.multiply(soil_cap, soil_ext_depth))


def compute_actual_et(pet, kc, storage, soil_et, capacity):
    """pet·kc above soil_et, pet·kc·storage/capacity at or below it."""
    storage = np.asarray(storage, dtype=np.float64)
    potential = np.multiply(pet, kc)
    with np.errstate(divide="ignore", invalid="ignore"):
        stressed = potential * (storage / capacity)
    return np.where(storage > soil_et, potential, stressed)


@dataclass(frozen=True)
class StepFluxes:
    """Per-cell fluxes [mm] and updated storage for one timestep."""

    eff_prec: np.ndarray
    runoff: np.ndarray
    recharge: np.ndarray
    actet: np.ndarray
    storage: np.ndarray


def water_balance_step(
    storage: np.ndarray,
    prec: float | np.ndarray,
    pet: float | np.ndarray,
    threshold: np.ndarray,
    kc: np.ndarray,
    soil_cap: np.ndarray,
    soil_ext_depth: np.ndarray,
    soil_et: np.ndarray,
) -> StepFluxes:
    """Advance every cell by one timestep. Does not modify storage in place."""
    eff_prec = compute_eff_precip(prec, threshold)
    runoff = compute_runoff(prec, eff_prec)
    recharge = compute_recharge(storage, soil_cap, soil_ext_depth, eff_prec)

    new_storage = storage + (eff_prec - recharge)
    actet = compute_actual_et(pet, kc, new_storage, soil_et, soil_cap * soil_ext_depth)
    new_storage = new_storage - actet

    return StepFluxes(
        eff_prec=np.broadcast_to(eff_prec, np.shape(storage)).astype(np.float64),
        runoff=np.broadcast_to(runoff, np.shape(storage)).astype(np.float64),
        recharge=recharge,
        actet=actet,
        storage=new_storage,
    )


def water_balance_timeseries(
    soil_storage: np.ndarray,
    prec: np.ndarray,
    pet: np.ndarray,
    landuse: np.ndarray,
    soil: np.ndarray,
    arrays,
) -> DispatchTotals:
    """
    Reference for kernels.water_balance.water_balance_timeseries.

    Args:
        soil_storage: Storage per cell [mm], updated in place
        prec: Precipitation per timestep [mm/day]
        pet: Potential ET per timestep [mm/day]
        landuse: Land use index per cell (1-based)
        soil: Soil index per cell (1-based)
        arrays: ParameterArrays

    Returns:
        DispatchTotals for the slice
    """
    lu = np.asarray(landuse) - 1
    so = np.asarray(soil) - 1
    threshold = arrays.threshold[lu]
    kc = arrays.crop_coefficient[lu]
    ext_depth = arrays.extraction_depth[lu]
    soil_cap = arrays.soil_capacity[so]
    soil_et = soil_cap * ext_depth * SOIL_ET_FRACTION

    storage = np.asarray(soil_storage, dtype=np.float64).copy()
    sums = {name: np.zeros_like(storage) for name in ("actet", "recharge", "runoff", "prec")}

    for t in range(len(prec)):
        step = water_balance_step(
            storage, prec[t], pet[t], threshold, kc, soil_cap, ext_depth, soil_et
        )
        storage = step.storage
        sums["actet"] += step.actet
        sums["recharge"] += step.recharge
        sums["runoff"] += step.runoff
        sums["prec"] += prec[t]

    soil_storage[:] = storage
    return DispatchTotals(n_timesteps=len(prec), **sums)
