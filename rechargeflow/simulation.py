"""Water balance run orchestration.

Wires datasets, lookup tables and forcing through cell selection, an
execution context and the period loop, then audits closure of the whole run.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from rechargeflow.backend import create_context
from rechargeflow.cells import CellBatch, select_active_cells
from rechargeflow.config import Backend
from rechargeflow.datasets import SpatialDatasets
from rechargeflow.diagnostics import MassBalance
from rechargeflow.forcing import ForcingSeries
from rechargeflow.kernels.protocol import TOTAL_NAMES
from rechargeflow.params.lookup import CategoryMapping, ParameterArrays, find_missing_codes
from rechargeflow.params.schema import LookupTables, SimulationConfig, ValidationError
from rechargeflow.periods import PeriodAggregator, PeriodResult

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ("year", "month", "actet", "recharge", "runoff", "prec", "change_in_storage")


@dataclass(frozen=True)
class WaterBalanceResult:
    """Everything a run produces.

    Attributes:
        rows: Monthly per-cell means, chronological
        balance_error: Whole-run closure error [mm]
        backend: Backend the run executed on
        cells: Active cells and their grid mask
        initial_storage: Storage per active cell at the start [mm]
        final_storage: Storage per active cell at the end [mm]
        cell_totals: Per-cell sums over the run (actet, recharge, runoff, prec) [mm]
    """

    rows: tuple[PeriodResult, ...]
    balance_error: float
    backend: Backend
    cells: CellBatch
    initial_storage: np.ndarray
    final_storage: np.ndarray
    cell_totals: dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def mass_balance(self) -> MassBalance:
        return MassBalance.from_rows(self.rows, self.initial_storage, self.final_storage)

    def to_records(self) -> np.ndarray:
        """Rows as a structured array, one record per period."""
        dtype = [("year", np.int32), ("month", np.int32)] + [
            (name, np.float64) for name in RESULT_COLUMNS[2:]
        ]
        return np.array(
            [tuple(getattr(row, name) for name in RESULT_COLUMNS) for row in self.rows],
            dtype=dtype,
        )

    def maps(self, fill: float = 0.0) -> dict[str, np.ndarray]:
        """Per-cell run totals and storage scattered back onto the grid."""
        grids = {name: self.cells.scatter(self.cell_totals[name], fill) for name in TOTAL_NAMES}
        grids["initial_storage"] = self.cells.scatter(self.initial_storage, fill)
        grids["final_storage"] = self.cells.scatter(self.final_storage, fill)
        return grids


def _warn_missing_codes(
    tables: dict[str, dict[int, float]],
    mapping: CategoryMapping,
    active_indices: np.ndarray,
) -> None:
    """Log codes used by active cells that a table does not cover."""
    active_codes = set(mapping.decode(np.unique(active_indices)).tolist())
    for name, table in tables.items():
        missing = [code for code in find_missing_codes(table, mapping) if code in active_codes]
        if missing:
            logger.warning("No %s value for codes %s; using 0.0", name, missing)


class WaterBalanceModel:
    """Bucket water balance over the active cells of a grid.

    Example:
        datasets = SpatialDatasets.from_codes(landuse_codes, soil_codes)
        model = WaterBalanceModel(datasets)
        result = model.run(forcing, backend="device")
        print(result.balance_error)
    """

    def __init__(
        self,
        datasets: SpatialDatasets,
        tables: LookupTables | None = None,
        config: SimulationConfig | None = None,
        predicate: Callable[[np.ndarray], np.ndarray] | None = None,
    ):
        """Select active cells and densify the lookup tables.

        Args:
            datasets: Encoded land use and soil grids
            tables: Lookup tables (default: config.tables)
            config: Run configuration (default: SimulationConfig())
            predicate: Optional active-cell test on the land use index grid
        """
        self.config = config or SimulationConfig()
        self.tables = tables or self.config.tables
        self.datasets = datasets

        self.cells = select_active_cells(
            datasets.landuse,
            datasets.soil,
            landuse_floor=self.config.model.landuse_floor,
            predicate=predicate,
        )
        self.arrays = ParameterArrays.build(
            self.tables, datasets.landuse_mapping, datasets.soil_mapping
        )
        _warn_missing_codes(self.tables.landuse_tables, datasets.landuse_mapping, self.cells.landuse)
        _warn_missing_codes(self.tables.soil_tables, datasets.soil_mapping, self.cells.soil)

        logger.info(
            "Model: grid=%s active cells=%d", "x".join(map(str, datasets.shape)), self.cells.n_cells
        )

    def initial_storage(self) -> np.ndarray:
        """Starting storage per active cell [mm]."""
        return self.arrays.initial_storage(
            self.cells.landuse,
            self.cells.soil,
            self.config.model.initial_storage_fraction,
        )

    def run(self, forcing: ForcingSeries, backend: Backend | str | None = None) -> WaterBalanceResult:
        """Simulate the forcing period by period.

        Args:
            forcing: Daily forcing, shared by every cell
            backend: Backend override (default: config.execution.backend)

        Returns:
            WaterBalanceResult with monthly rows and the balance error

        Raises:
            ConfigurationError: If backend is not recognised (before any allocation)
            ValidationError: If no cell is active
        """
        backend = Backend.parse(self.config.execution.backend if backend is None else backend)
        if self.cells.n_cells == 0:
            raise ValidationError(
                f"No active cells (land use index > {self.config.model.landuse_floor})"
            )

        execution = self.config.execution
        context = create_context(
            backend,
            self.cells.n_cells,
            block_dim=execution.block_dim,
            num_threads=execution.num_threads,
            debug=execution.debug,
        )
        context.load_static(self.cells.landuse, self.cells.soil, self.arrays)

        logger.info("Running %d timesteps on %s backend", len(forcing), backend.value)
        aggregation = PeriodAggregator(context, self.cells.n_cells).run(forcing, self.initial_storage())

        balance = MassBalance.from_rows(
            aggregation.rows, aggregation.initial_storage, aggregation.final_storage
        )
        balance_error = balance.error()
        logger.info("Run complete: %d periods, balance error %.3e mm", len(aggregation.rows), balance_error)

        return WaterBalanceResult(
            rows=aggregation.rows,
            balance_error=balance_error,
            backend=backend,
            cells=self.cells,
            initial_storage=aggregation.initial_storage,
            final_storage=aggregation.final_storage,
            cell_totals=aggregation.cell_totals,
        )


def run_water_balance(
    precipitation,
    pet,
    dates,
    backend: Backend | str,
    *,
    datasets: SpatialDatasets,
    tables: LookupTables | None = None,
    config: SimulationConfig | None = None,
) -> tuple[tuple[PeriodResult, ...], float]:
    """Run the model over daily forcing and return (rows, balance_error).

    Raises:
        ConfigurationError: If backend is not recognised
    """
    backend = Backend.parse(backend)
    forcing = ForcingSeries.from_arrays(dates, precipitation, pet)
    result = WaterBalanceModel(datasets, tables=tables, config=config).run(forcing, backend)
    return result.rows, result.balance_error
