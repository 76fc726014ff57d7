"""Pytest fixtures and test utilities for recharge-flow."""

import datetime

import numpy as np
import pytest

from rechargeflow.config import init_taichi
from rechargeflow.datasets import SpatialDatasets
from rechargeflow.forcing import ForcingSeries


@pytest.fixture(scope="session", autouse=True)
def taichi_init():
    """Initialize Taichi once per test session with the host backend."""
    init_taichi(backend="host", debug=True)
    yield


@pytest.fixture
def host_runtime():
    """Re-initialize the host runtime (contexts created by earlier tests reset it)."""
    init_taichi(backend="host", debug=True)
    yield


# Land use codes: 1 is urban and never simulated (index 1 <= floor)
LANDUSE_CODES = np.array(
    [
        [1, 1, 21, 21, 31],
        [1, 21, 21, 31, 32],
        [33, 36, 36, 307, 32],
        [21, 36, 307, 307, 1],
    ],
    dtype=np.int32,
)

SOIL_CODES = np.array(
    [
        [10, 10, 10, 11, 11],
        [10, 10, 11, 11, 11],
        [10, 11, 10, 11, 10],
        [11, 11, 10, 10, 10],
    ],
    dtype=np.int32,
)


@pytest.fixture
def landuse_codes():
    return LANDUSE_CODES.copy()


@pytest.fixture
def soil_codes():
    return SOIL_CODES.copy()


@pytest.fixture
def datasets():
    """Encoded 4x5 grid with 16 active cells."""
    return SpatialDatasets.from_codes(LANDUSE_CODES, SOIL_CODES)


@pytest.fixture
def forcing_factory():
    """Factory for synthetic daily forcing."""
    return make_forcing


def make_forcing(
    start: datetime.date = datetime.date(2020, 1, 1),
    n_days: int = 366,
    seed: int = 42,
) -> ForcingSeries:
    """Seasonal rain with dry spells and a sinusoidal PET curve."""
    rng = np.random.default_rng(seed)
    day = np.arange(n_days)
    season = 0.5 + 0.5 * np.cos(2 * np.pi * day / 365.0)

    wet = rng.random(n_days) < 0.2 + 0.4 * season
    prec = np.where(wet, rng.gamma(0.8, 12.0, n_days), 0.0)
    # Day one moves storage off the ET breakpoint it starts on
    prec[0] = 5.0
    pet = 3.0 + 2.0 * (1.0 - season) + rng.uniform(0.0, 0.5, n_days)

    dates = np.datetime64(start, "D") + day
    return ForcingSeries.from_arrays(dates, prec, pet)


@pytest.fixture
def year_forcing():
    """One year (2020, leap) of daily forcing."""
    return make_forcing()


@pytest.fixture
def assert_balance_closed():
    """Assert the whole-run water balance closes within tolerance."""
    return check_balance_closed


def check_balance_closed(rows, initial_storage, final_storage, atol: float = 1e-2):
    """Check sum(prec) - sum(outputs) - mean(dS) within atol."""
    prec = sum(r.prec for r in rows)
    outputs = sum(r.actet + r.recharge + r.runoff for r in rows)
    change = float(np.mean(np.asarray(final_storage) - np.asarray(initial_storage)))
    error = prec - outputs - change

    if abs(error) > atol:
        raise AssertionError(
            f"Water balance not closed!\n"
            f"  Prec:    {prec:.10e}\n"
            f"  Outputs: {outputs:.10e}\n"
            f"  dS:      {change:.10e}\n"
            f"  Error:   {error:.10e} (tolerance: {atol:.1e})"
        )
