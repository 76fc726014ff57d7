"""
Output functions for saving run results.

Writes the monthly table as CSV, per-cell maps as a compressed ``.npz``
bundle and a small YAML run summary.
"""

from pathlib import Path
from typing import Sequence

import numpy as np
import yaml

from rechargeflow.periods import PeriodResult
from rechargeflow.simulation import RESULT_COLUMNS, WaterBalanceResult


def scatter_to_grid(values: np.ndarray, mask: np.ndarray, fill: float = np.nan) -> np.ndarray:
    """
    Place per-cell values on a grid in row-major mask order.

    Args:
        values: One value per True entry of mask
        mask: Boolean grid of active cells
        fill: Value for inactive cells

    Returns:
        float64 grid with the shape of mask
    """
    mask = np.asarray(mask, dtype=bool)
    values = np.asarray(values, dtype=np.float64)
    if values.shape != (int(np.count_nonzero(mask)),):
        raise ValueError(
            f"Expected {int(np.count_nonzero(mask))} values for mask, got shape {values.shape}"
        )
    grid = np.full(mask.shape, fill, dtype=np.float64)
    grid[mask] = values
    return grid


def save_results_table(rows: Sequence[PeriodResult], filepath: str | Path) -> Path:
    """
    Save monthly rows as CSV with a header line.

    Args:
        rows: Period results in chronological order
        filepath: Output path

    Returns:
        Path written
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    table = np.array(
        [[getattr(row, name) for name in RESULT_COLUMNS] for row in rows],
        dtype=np.float64,
    ).reshape(-1, len(RESULT_COLUMNS))
    fmt = ["%d", "%d"] + ["%.6f"] * (len(RESULT_COLUMNS) - 2)
    np.savetxt(filepath, table, fmt=fmt, delimiter=",", header=",".join(RESULT_COLUMNS), comments="")
    return filepath


def save_maps(maps: dict[str, np.ndarray], filepath: str | Path) -> Path:
    """Save named grids to a compressed ``.npz`` bundle."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(filepath, **maps)
    return filepath


def save_run_output(
    result: WaterBalanceResult,
    output_dir: str | Path,
    prefix: str = "wb",
) -> dict[str, Path]:
    """
    Save the table, maps and summary of a run.

    Creates:
    - {prefix}_monthly.csv: Monthly per-cell means
    - {prefix}_maps.npz: Run totals and storage grids
    - {prefix}_summary.yaml: Backend, cell count and balance error

    Args:
        result: Completed run
        output_dir: Output directory
        prefix: Filename prefix

    Returns:
        Dict of output kind -> path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        "table": save_results_table(result.rows, output_dir / f"{prefix}_monthly.csv"),
        "maps": save_maps(result.maps(), output_dir / f"{prefix}_maps.npz"),
    }

    summary = {
        "backend": result.backend.value,
        "n_cells": result.cells.n_cells,
        "n_periods": len(result.rows),
        "balance_error": float(result.balance_error),
    }
    if result.rows:
        summary["first_period"] = f"{result.rows[0].year:04d}-{result.rows[0].month:02d}"
        summary["last_period"] = f"{result.rows[-1].year:04d}-{result.rows[-1].month:02d}"

    summary_path = output_dir / f"{prefix}_summary.yaml"
    with open(summary_path, "w") as f:
        yaml.safe_dump(summary, f, default_flow_style=False, sort_keys=False)
    paths["summary"] = summary_path

    return paths
