"""
Execution protocol shared by the host and device strategies.

Both strategies expose the same dispatch surface so the period loop never
branches on the backend:

- load_static(): upload cell indices and parameter arrays once per run
- load_storage() / read_storage(): move soil storage between host and backend
- dispatch(): run the water balance over one timestep slice for every cell

DispatchTotals captures the per-cell sums of a single dispatch for
aggregation and mass balance tracking.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable, Any

import numpy as np


TOTAL_NAMES: tuple[str, ...] = ("actet", "recharge", "runoff", "prec")


@dataclass(frozen=True)
class DispatchTotals:
    """Per-cell sums over the timesteps of one dispatch.

    Sums start from zero on every dispatch; accumulating across periods is
    the caller's job.

    Attributes:
        actet: Actual evapotranspiration per cell [mm]
        recharge: Recharge below the root zone per cell [mm]
        runoff: Surface runoff per cell [mm]
        prec: Precipitation per cell [mm]
        n_timesteps: Number of timesteps in the dispatch
    """

    actet: np.ndarray
    recharge: np.ndarray
    runoff: np.ndarray
    prec: np.ndarray
    n_timesteps: int

    def cell_means(self) -> dict[str, float]:
        """Average of each sum over the cells."""
        return {name: float(np.mean(getattr(self, name))) for name in TOTAL_NAMES}


@runtime_checkable
class ExecutionContext(Protocol):
    """Protocol for an execution strategy bound to one run.

    Implementations own their buffers. dispatch() blocks until every cell
    has finished (completion barrier) before returning.
    """

    n_cells: int

    def load_static(self, landuse: np.ndarray, soil: np.ndarray, arrays: Any) -> None:
        """Upload per-cell indices and dense parameter arrays.

        Args:
            landuse: Land use index per active cell (1-based)
            soil: Soil index per active cell (1-based)
            arrays: ParameterArrays with threshold, crop coefficient,
                extraction depth and soil capacity
        """
        ...

    def load_storage(self, storage: np.ndarray) -> None:
        """Set soil storage for every cell [mm]."""
        ...

    def read_storage(self) -> np.ndarray:
        """Current soil storage for every cell [mm] as float64."""
        ...

    def dispatch(self, prec: np.ndarray, pet: np.ndarray) -> DispatchTotals:
        """Run the recurrence over one timestep slice, updating storage.

        Args:
            prec: Precipitation per timestep [mm/day]
            pet: Potential ET per timestep [mm/day]

        Returns:
            DispatchTotals for this slice
        """
        ...
