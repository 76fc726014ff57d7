"""Tests for saving run results and the command line entry point."""

import numpy as np
import pytest
import yaml

from rechargeflow.datasets import save_datasets
from rechargeflow.main import main
from rechargeflow.output import save_maps, save_results_table, save_run_output
from rechargeflow.params import SimulationConfig, save_config
from rechargeflow.periods import PeriodResult
from rechargeflow.simulation import RESULT_COLUMNS, WaterBalanceModel


@pytest.fixture
def rows():
    return (
        PeriodResult(2020, 1, actet=40.5, recharge=10.25, runoff=5.0, prec=60.0, change_in_storage=4.25),
        PeriodResult(2020, 2, actet=30.0, recharge=0.0, runoff=0.0, prec=20.0, change_in_storage=-10.0),
    )


@pytest.fixture
def bundles(tmp_path, landuse_codes, soil_codes, year_forcing):
    datasets_path = save_datasets(landuse_codes, soil_codes, tmp_path / "grids.npz")
    forcing_path = tmp_path / "forcing.npz"
    np.savez(
        forcing_path,
        date=year_forcing.dates,
        precipitation=year_forcing.precipitation,
        pet=year_forcing.pet,
    )
    return datasets_path, forcing_path


class TestSaveResultsTable:
    """Tests for the CSV table."""

    def test_header_and_values(self, tmp_path, rows):
        path = save_results_table(rows, tmp_path / "out" / "monthly.csv")

        lines = path.read_text().splitlines()
        assert lines[0] == ",".join(RESULT_COLUMNS)
        assert lines[1].startswith("2020,1,40.500000,10.250000")

        table = np.loadtxt(path, delimiter=",", skiprows=1)
        np.testing.assert_allclose(table[:, 6], [4.25, -10.0])

    def test_empty_rows(self, tmp_path):
        path = save_results_table((), tmp_path / "monthly.csv")
        assert path.read_text().splitlines() == [",".join(RESULT_COLUMNS)]


class TestSaveMaps:
    """Tests for the map bundle."""

    def test_roundtrip(self, tmp_path):
        maps = {"recharge": np.array([[1.0, np.nan]]), "actet": np.zeros((1, 2))}
        path = save_maps(maps, tmp_path / "maps.npz")

        with np.load(path) as data:
            assert set(data.files) == {"recharge", "actet"}
            np.testing.assert_array_equal(data["recharge"], maps["recharge"])


class TestSaveRunOutput:
    """Tests for save_run_output."""

    def test_writes_all_outputs(self, tmp_path, datasets, year_forcing):
        result = WaterBalanceModel(datasets).run(year_forcing, "host")
        paths = save_run_output(result, tmp_path / "run", prefix="arusha")

        assert set(paths) == {"table", "maps", "summary"}
        assert paths["table"].name == "arusha_monthly.csv"
        assert all(p.exists() for p in paths.values())

        summary = yaml.safe_load(paths["summary"].read_text())
        assert summary["backend"] == "host"
        assert summary["n_cells"] == 16
        assert summary["n_periods"] == 12
        assert summary["first_period"] == "2020-01"
        assert summary["last_period"] == "2020-12"

        with np.load(paths["maps"]) as data:
            assert data["recharge"].shape == datasets.shape


class TestMain:
    """Tests for the CLI."""

    def test_run(self, tmp_path, bundles, capsys):
        datasets_path, forcing_path = bundles
        out_dir = tmp_path / "results"

        code = main([
            "--datasets", str(datasets_path),
            "--forcing", str(forcing_path),
            "--backend", "host",
            "--output", str(out_dir),
        ])

        assert code == 0
        out = capsys.readouterr().out
        assert "2020-12" in out
        assert "Balance error" in out
        assert (out_dir / "wb_monthly.csv").exists()

    def test_config_and_years(self, tmp_path, bundles, capsys, monkeypatch):
        monkeypatch.delenv("RECHARGE_BACKEND", raising=False)
        datasets_path, forcing_path = bundles
        config_path = tmp_path / "config.yaml"
        save_config(SimulationConfig().with_updates(execution={"block_dim": 16}), config_path)

        code = main([
            "--config", str(config_path),
            "--datasets", str(datasets_path),
            "--forcing", str(forcing_path),
            "--years", "2",
        ])

        assert code == 0
        out = capsys.readouterr().out
        assert "2021-12" in out

    def test_unknown_backend(self, bundles, capsys):
        datasets_path, forcing_path = bundles

        code = main([
            "--datasets", str(datasets_path),
            "--forcing", str(forcing_path),
            "--backend", "abacus",
        ])

        assert code == 2
        assert "Unknown backend" in capsys.readouterr().err

    def test_missing_bundle(self, tmp_path, bundles, capsys):
        _, forcing_path = bundles
        code = main(["--datasets", str(tmp_path / "nope.npz"), "--forcing", str(forcing_path)])

        assert code == 2
        assert "not found" in capsys.readouterr().err

    def test_tables_file(self, tmp_path, bundles, capsys):
        datasets_path, forcing_path = bundles
        tables_path = tmp_path / "tables.yaml"
        tables_path.write_text("threshold:\n  21: 100.0\n")

        code = main([
            "--datasets", str(datasets_path),
            "--forcing", str(forcing_path),
            "--tables", str(tables_path),
            "--backend", "host",
        ])

        # Codes 31..307 lose their threshold entries, so a warning is logged
        assert code == 0
        assert "Balance error" in capsys.readouterr().out
