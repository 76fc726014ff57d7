"""Active cell selection and scatter-back.

Cells are flattened in row-major order once per run; the same order is used
for every kernel dispatch and for scattering per-cell results back onto the
grid.
"""

from dataclasses import dataclass
from typing import Callable

import numpy as np

from rechargeflow.core.dtypes import NP_INDEX_DTYPE
from rechargeflow.params.schema import ValidationError


@dataclass(frozen=True)
class CellBatch:
    """Flat parallel arrays over the active cells of a grid.

    Attributes:
        landuse: Land use index per active cell (1-based)
        soil: Soil index per active cell (1-based)
        mask: Boolean grid marking active cells
    """

    landuse: np.ndarray
    soil: np.ndarray
    mask: np.ndarray

    def __post_init__(self):
        n = int(np.count_nonzero(self.mask))
        if len(self.landuse) != n or len(self.soil) != n:
            raise ValidationError(
                f"Cell arrays must match mask count {n}, "
                f"got landuse={len(self.landuse)}, soil={len(self.soil)}"
            )

    @property
    def n_cells(self) -> int:
        return len(self.landuse)

    @property
    def shape(self) -> tuple[int, ...]:
        return self.mask.shape

    def scatter(self, values: np.ndarray, fill: float = 0.0) -> np.ndarray:
        """Place per-cell values on the full grid; inactive cells get fill."""
        values = np.asarray(values)
        if values.shape != (self.n_cells,):
            raise ValidationError(
                f"Expected {self.n_cells} per-cell values, got shape {values.shape}"
            )
        grid = np.full(self.mask.shape, fill, dtype=np.result_type(values.dtype, np.float64))
        grid[self.mask] = values
        return grid


def select_active_cells(
    landuse: np.ndarray,
    soil: np.ndarray,
    landuse_floor: int = 1,
    predicate: Callable[[np.ndarray], np.ndarray] | None = None,
) -> CellBatch:
    """Select cells to simulate.

    Args:
        landuse: Normalized land use index grid
        soil: Normalized soil index grid (same shape)
        landuse_floor: Cells are active when their land use index exceeds this
        predicate: Optional callable returning a boolean mask from the land
            use grid; replaces the floor test when given

    Returns:
        CellBatch with row-major flat index arrays and the mask used
    """
    landuse = np.asarray(landuse)
    soil = np.asarray(soil)
    if landuse.shape != soil.shape:
        raise ValidationError(
            f"Land use and soil grids differ in shape: {landuse.shape} vs {soil.shape}"
        )

    if predicate is None:
        mask = landuse > landuse_floor
    else:
        mask = np.asarray(predicate(landuse), dtype=bool)
        if mask.shape != landuse.shape:
            raise ValidationError(
                f"Predicate mask shape {mask.shape} != grid shape {landuse.shape}"
            )

    # Boolean indexing walks the grid in C (row-major) order
    return CellBatch(
        landuse=np.ascontiguousarray(landuse[mask], dtype=NP_INDEX_DTYPE),
        soil=np.ascontiguousarray(soil[mask], dtype=NP_INDEX_DTYPE),
        mask=mask,
    )
