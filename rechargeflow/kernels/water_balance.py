"""
Daily bucket water balance: effective precipitation, runoff, recharge, ET.

Per cell and timestep, in this order:

    eff_prec = min(P, threshold)
    runoff   = P - eff_prec
    recharge = max(0, S + eff_prec - C)          C = soil_cap * ext_depth
    S       += eff_prec - recharge
    actet    = PET·kc             if S > C/2
               PET·kc·S/C         otherwise
    S       -= actet

Cells are independent: one lane (GPU) or loop iteration (CPU) per cell, each
running the full timestep slice serially. Storage is read-modify-write so
consecutive dispatches continue where the previous one stopped.
"""

import taichi as ti

from rechargeflow.core import SOIL_ET_FRACTION


@ti.func
def compute_eff_precip(prec, threshold):
    """Precipitation that infiltrates, capped by the threshold [mm]."""
    return ti.min(prec, threshold)


@ti.func
def compute_runoff(prec, eff_prec):
    """Precipitation in excess of the infiltration threshold [mm]."""
    return ti.max(0.0, prec - eff_prec)


@ti.func
def compute_recharge(storage, soil_cap, soil_ext_depth, eff_prec):
    """Water percolating below the root zone once capacity is exceeded [mm].

    Evaluated against storage before eff_prec is added.
    """
    return ti.max(0.0, storage + eff_prec - soil_cap * soil_ext_depth)


@ti.func
def compute_actual_et(pet, kc, storage, soil_et, capacity):
    """Crop ET, reduced linearly with storage below the stress breakpoint [mm]."""
    actet = pet * kc
    if storage <= soil_et:
        actet = pet * kc * (storage / capacity)
    return actet


@ti.kernel
def water_balance_timeseries(
    total_actet: ti.types.ndarray(ndim=1),
    total_recharge: ti.types.ndarray(ndim=1),
    total_runoff: ti.types.ndarray(ndim=1),
    total_prec: ti.types.ndarray(ndim=1),
    soil_storage: ti.types.ndarray(ndim=1),
    prec: ti.types.ndarray(ndim=1),
    pet: ti.types.ndarray(ndim=1),
    landuse: ti.types.ndarray(ndim=1),
    soil: ti.types.ndarray(ndim=1),
    thresh_prec: ti.types.ndarray(ndim=1),
    crop_coeff: ti.types.ndarray(ndim=1),
    soil_cap: ti.types.ndarray(ndim=1),
    soil_ext_depth: ti.types.ndarray(ndim=1),
    n_timesteps: ti.i32,
    block_dim: ti.template(),
):
    """
    Run the water balance over n_timesteps for every active cell.

    Writes the final storage back to soil_storage and the per-cell sums of
    this call (not cumulative) to the total_* arrays. Parameter arrays are
    indexed by the 1-based land use / soil index minus one.
    """
    ti.loop_config(block_dim=block_dim)
    for i in range(soil_storage.shape[0]):
        lu = landuse[i] - 1
        threshold = thresh_prec[lu]
        kc = crop_coeff[lu]
        cap = soil_cap[soil[i] - 1]
        ext_depth = soil_ext_depth[lu]
        capacity = cap * ext_depth
        soil_et = capacity * SOIL_ET_FRACTION

        storage = soil_storage[i]

        actet_sum = 0.0
        recharge_sum = 0.0
        runoff_sum = 0.0
        prec_sum = 0.0

        for t in range(n_timesteps):
            p = prec[t]
            eff_prec = compute_eff_precip(p, threshold)
            runoff = compute_runoff(p, eff_prec)
            recharge = compute_recharge(storage, cap, ext_depth, eff_prec)

            storage += eff_prec - recharge
            actet = compute_actual_et(pet[t], kc, storage, soil_et, capacity)
            storage -= actet

            actet_sum += actet
            recharge_sum += recharge
            runoff_sum += runoff
            prec_sum += p

        total_actet[i] = actet_sum
        total_recharge[i] = recharge_sum
        total_runoff[i] = runoff_sum
        total_prec[i] = prec_sum
        soil_storage[i] = storage


@ti.kernel
def water_balance_step(
    actet: ti.types.ndarray(ndim=1),
    pet: ti.types.ndarray(ndim=1),
    soil_storage: ti.types.ndarray(ndim=1),
    kc: ti.types.ndarray(ndim=1),
    soil_et: ti.types.ndarray(ndim=1),
    recharge: ti.types.ndarray(ndim=1),
    soil_cap: ti.types.ndarray(ndim=1),
    soil_ext_depth: ti.types.ndarray(ndim=1),
    eff_prec: ti.types.ndarray(ndim=1),
    prec: ti.types.ndarray(ndim=1),
    threshold: ti.types.ndarray(ndim=1),
    runoff: ti.types.ndarray(ndim=1),
):
    """
    Single timestep over per-cell parameter arrays.

    Same ordering as water_balance_timeseries, but the ET breakpoint is
    supplied per cell and every intermediate flux is written out, so one
    step can be checked cell by cell.
    """
    for i in range(soil_storage.shape[0]):
        storage = soil_storage[i]
        capacity = soil_cap[i] * soil_ext_depth[i]

        eff = compute_eff_precip(prec[i], threshold[i])
        rech = compute_recharge(storage, soil_cap[i], soil_ext_depth[i], eff)
        storage += eff - rech
        et = compute_actual_et(pet[i], kc[i], storage, soil_et[i], capacity)
        storage -= et

        eff_prec[i] = eff
        runoff[i] = compute_runoff(prec[i], eff)
        recharge[i] = rech
        actet[i] = et
        soil_storage[i] = storage
