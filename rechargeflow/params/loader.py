"""
YAML configuration for water balance runs.

A run file has up to three groups, each optional:

    tables:      # code -> value, keyed by land use or soil code
      threshold: {1: 12.0, 21: 15.0}
      soil_capacity: {10: 0.13}
    model:
      landuse_floor: 1
    execution:
      backend: device
      block_dim: 128

Lookup tables can also live in a file of their own (``load_tables``) so one
calibrated set is shared between run files.
"""

from pathlib import Path
from typing import Any

import yaml

from rechargeflow.params.schema import LookupTables, SimulationConfig, ValidationError


def _read_mapping(path: str | Path, what: str) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    # An empty file means "all defaults"
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{what} in {path} must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: str | Path) -> SimulationConfig:
    """
    Read a run configuration.

    Raises:
        FileNotFoundError: If path does not exist
        ValidationError: If the file is not a mapping or a value is invalid
        ConfigurationError: If the backend name is not recognised
        yaml.YAMLError: If the YAML is malformed
    """
    return SimulationConfig.from_dict(_read_mapping(path, "Configuration"))


def load_tables(path: str | Path) -> LookupTables:
    """
    Read lookup tables from a file holding only the ``tables`` group.

    Tables missing from the file keep their defaults.

    Example:
        tables = load_tables("config/arusha_tables.yaml")
        model = WaterBalanceModel(datasets, tables=tables)
    """
    data = _read_mapping(path, "Lookup table")
    # Accept both a bare group and one nested under "tables"
    if set(data) == {"tables"}:
        data = data["tables"] or {}
    try:
        return LookupTables(**data)
    except TypeError as exc:
        raise ValidationError(f"Unknown lookup table in {path}: {exc}") from exc


def save_config(config: SimulationConfig, path: str | Path) -> None:
    """
    Write a run configuration so the run can be reproduced.

    Parent directories are created as needed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def load_config_with_overrides(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> SimulationConfig:
    """
    Build a configuration from an optional file plus per-group overrides.

    The command line uses this to layer flags over a run file.

    Args:
        path: Run file (defaults when None)
        overrides: Group name -> {field: value} applied on top

    Example:
        config = load_config_with_overrides(
            path="config/arusha.yaml",
            overrides={"execution": {"backend": "device", "block_dim": 128}}
        )
    """
    config = SimulationConfig() if path is None else load_config(path)
    return config.with_updates(**overrides) if overrides else config
