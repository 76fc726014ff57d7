"""Conservation checks for the water balance.

Simple functions for mass balance verification.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from rechargeflow.periods import PeriodResult


@dataclass
class MassBalance:
    """Whole-run fluxes per active cell [mm]."""

    cumulative_prec: float = 0.0
    cumulative_actet: float = 0.0
    cumulative_recharge: float = 0.0
    cumulative_runoff: float = 0.0
    change_in_storage: float = 0.0  # mean(final - initial)

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[PeriodResult],
        initial_storage: np.ndarray,
        final_storage: np.ndarray,
    ) -> "MassBalance":
        """Sum period means and take the mean storage change."""
        change = 0.0
        if len(initial_storage):
            change = float(np.mean(np.asarray(final_storage) - np.asarray(initial_storage)))
        return cls(
            cumulative_prec=float(sum(r.prec for r in rows)),
            cumulative_actet=float(sum(r.actet for r in rows)),
            cumulative_recharge=float(sum(r.recharge for r in rows)),
            cumulative_runoff=float(sum(r.runoff for r in rows)),
            change_in_storage=change,
        )

    def error(self) -> float:
        """Input - outputs - storage change; zero for a closed balance."""
        outputs = self.cumulative_actet + self.cumulative_recharge + self.cumulative_runoff
        return self.cumulative_prec - outputs - self.change_in_storage

    def check(self, atol: float = 1e-2) -> float:
        """Check closure and return the balance error.

        Args:
            atol: Absolute tolerance [mm]

        Raises:
            AssertionError: If |error| exceeds atol
        """
        error = self.error()
        if not abs(error) <= atol:
            raise AssertionError(
                f"Water balance not closed!\n"
                f"  Error:    {error:.6e} mm (tolerance: {atol:.1e})\n"
                f"  Prec:     {self.cumulative_prec:.6e}\n"
                f"  ActET:    {self.cumulative_actet:.6e}\n"
                f"  Recharge: {self.cumulative_recharge:.6e}\n"
                f"  Runoff:   {self.cumulative_runoff:.6e}\n"
                f"  dS:       {self.change_in_storage:.6e}"
            )
        return error


def compute_balance_error(
    rows: Sequence[PeriodResult],
    initial_storage: np.ndarray,
    final_storage: np.ndarray,
) -> float:
    """Balance error: sum(prec) - sum(actet + recharge + runoff) - mean(dS)."""
    return MassBalance.from_rows(rows, initial_storage, final_storage).error()


def check_conservation(
    storage_before: np.ndarray,
    storage_after: np.ndarray,
    inflow: np.ndarray,
    outflows: dict[str, np.ndarray] | None = None,
    rtol: float = 1e-12,
    atol: float = 1e-9,
) -> None:
    """Check per-cell conservation: after == before + inflow - sum(outflows).

    Args:
        storage_before: Storage per cell before the step
        storage_after: Storage per cell after the step
        inflow: Water added per cell (effective precipitation)
        outflows: Dict of flux name -> per-cell loss
        rtol: Relative tolerance
        atol: Absolute tolerance

    Raises:
        AssertionError: If any cell violates conservation
    """
    outflows = outflows or {}
    expected = np.asarray(storage_before) + np.asarray(inflow)
    for flux in outflows.values():
        expected = expected - np.asarray(flux)
    diff = np.abs(np.asarray(storage_after) - expected)
    tol = atol + rtol * np.abs(expected)

    bad = np.flatnonzero(diff > tol)
    if bad.size:
        i = int(bad[0])
        flux_str = ", ".join(f"{k}={np.asarray(v)[i]:.6e}" for k, v in outflows.items())
        raise AssertionError(
            f"Storage not conserved in {bad.size} cell(s)!\n"
            f"  First cell: {i}\n"
            f"  Expected: {expected[i]:.10e}\n"
            f"  Actual:   {np.asarray(storage_after)[i]:.10e}\n"
            f"  Fluxes: {flux_str}\n"
            f"  Difference: {diff[i]:.10e} (tolerance: {tol[i]:.10e})"
        )
