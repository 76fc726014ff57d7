"""Tests for the NumPy reference water balance.

Checks the flux laws the Taichi kernels are held to: complementary
effective precipitation and runoff, non-negative recharge, monotone ET and
per-step conservation.
"""

import numpy as np
import pytest

from rechargeflow.diagnostics import check_conservation
from rechargeflow.kernels.naive.water_balance import (
    compute_actual_et,
    compute_eff_precip,
    compute_recharge,
    compute_runoff,
    water_balance_step,
    water_balance_timeseries,
)
from rechargeflow.params import ParameterArrays


class TestFluxLaws:
    """Tests for the individual flux functions."""

    def test_eff_precip_and_runoff_split(self):
        """Precipitation above the threshold becomes runoff."""
        eff = compute_eff_precip(15.0, 10.0)
        assert eff == 10.0
        assert compute_runoff(15.0, eff) == 5.0

    def test_below_threshold_no_runoff(self):
        eff = compute_eff_precip(4.0, 10.0)
        assert eff == 4.0
        assert compute_runoff(4.0, eff) == 0.0

    def test_complementary(self):
        """eff_prec + runoff == prec for any precipitation."""
        rng = np.random.default_rng(0)
        prec = rng.gamma(0.8, 15.0, 1000)
        threshold = rng.uniform(5.0, 20.0, 1000)

        eff = compute_eff_precip(prec, threshold)
        np.testing.assert_allclose(eff + compute_runoff(prec, eff), prec, rtol=1e-15)

    def test_recharge_example(self):
        """Storage 95 plus 10 over a 100 mm bucket recharges 5."""
        assert compute_recharge(95.0, 100.0, 1.0, 10.0) == 5.0

    def test_recharge_non_negative(self):
        storage = np.linspace(0.0, 200.0, 50)
        recharge = compute_recharge(storage, 0.1, 1000.0, 3.0)

        assert np.all(recharge >= 0.0)
        assert np.all(recharge[storage + 3.0 <= 100.0] == 0.0)

    def test_actual_et_unstressed(self):
        """Above the breakpoint ET is PET times the crop coefficient."""
        assert compute_actual_et(4.0, 1.2, 80.0, 50.0, 100.0) == pytest.approx(4.8)

    def test_actual_et_stressed(self):
        """At or below the breakpoint ET scales with relative storage."""
        assert compute_actual_et(4.0, 1.0, 25.0, 50.0, 100.0) == pytest.approx(1.0)
        assert compute_actual_et(4.0, 1.0, 50.0, 50.0, 100.0) == pytest.approx(2.0)

    def test_actual_et_monotone_in_storage(self):
        """Holding everything else fixed, more storage never means less ET."""
        storage = np.linspace(0.0, 100.0, 201)
        actet = compute_actual_et(3.0, 0.9, storage, 50.0, 100.0)

        assert np.all(np.diff(actet) >= 0.0)
        assert actet[0] == 0.0


class TestWaterBalanceStep:
    """Tests for one reference timestep."""

    @pytest.fixture
    def cells(self):
        rng = np.random.default_rng(7)
        n = 200
        cap = rng.choice([0.12, 0.13], n)
        depth = rng.choice([300.0, 600.0, 1000.0], n)
        return {
            "storage": rng.uniform(0.0, 1.0, n) * cap * depth,
            "threshold": rng.uniform(10.0, 20.0, n),
            "kc": rng.uniform(0.6, 1.5, n),
            "soil_cap": cap,
            "soil_ext_depth": depth,
            "soil_et": 0.5 * cap * depth,
        }

    @pytest.mark.parametrize("prec,pet", [(0.0, 4.0), (8.0, 3.0), (60.0, 2.0), (200.0, 0.0)])
    def test_conservation(self, cells, prec, pet):
        """storage_after == storage_before + eff_prec - recharge - actet."""
        step = water_balance_step(
            cells["storage"], prec, pet, cells["threshold"], cells["kc"],
            cells["soil_cap"], cells["soil_ext_depth"], cells["soil_et"],
        )
        check_conservation(
            cells["storage"], step.storage, step.eff_prec,
            {"recharge": step.recharge, "actet": step.actet},
        )
        np.testing.assert_allclose(step.eff_prec + step.runoff, prec)

    def test_input_not_modified(self, cells):
        before = cells["storage"].copy()
        water_balance_step(
            cells["storage"], 10.0, 3.0, cells["threshold"], cells["kc"],
            cells["soil_cap"], cells["soil_ext_depth"], cells["soil_et"],
        )
        np.testing.assert_array_equal(cells["storage"], before)

    def test_storage_never_exceeds_capacity(self, cells):
        step = water_balance_step(
            cells["storage"], 500.0, 0.0, cells["threshold"], cells["kc"],
            cells["soil_cap"], cells["soil_ext_depth"], cells["soil_et"],
        )
        capacity = cells["soil_cap"] * cells["soil_ext_depth"]
        assert np.all(step.storage <= capacity + 1e-9)


class TestWaterBalanceTimeseries:
    """Tests for the reference time loop."""

    @pytest.fixture
    def arrays(self):
        return ParameterArrays(
            threshold=np.array([12.0, 15.0, 17.5]),
            crop_coefficient=np.array([0.6, 1.5, 1.0]),
            extraction_depth=np.array([300.0, 1000.0, 600.0]),
            soil_capacity=np.array([0.13, 0.12]),
        )

    def test_sums_match_forcing(self, arrays, year_forcing):
        landuse = np.array([2, 3, 2, 3], dtype=np.int32)
        soil = np.array([1, 1, 2, 2], dtype=np.int32)
        storage = arrays.initial_storage(landuse, soil)
        start = storage.copy()

        totals = water_balance_timeseries(
            storage, year_forcing.precipitation, year_forcing.pet, landuse, soil, arrays
        )

        assert totals.n_timesteps == len(year_forcing)
        np.testing.assert_allclose(totals.prec, year_forcing.precipitation.sum())
        # Closure per cell over the whole year
        np.testing.assert_allclose(
            totals.prec - totals.runoff - totals.recharge - totals.actet,
            storage - start,
            atol=1e-9,
        )

    def test_storage_updated_in_place(self, arrays):
        storage = np.array([10.0, 10.0])
        water_balance_timeseries(
            storage, np.array([5.0]), np.array([0.0]),
            np.array([1, 2]), np.array([1, 1]), arrays,
        )
        np.testing.assert_allclose(storage, [15.0, 15.0])
