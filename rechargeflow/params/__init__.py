"""
Parameter management module for recharge-flow.

This module provides:
- Validated, immutable parameter containers (schema.py)
- YAML loading utilities (loader.py)
- Categorical encoding and dense lookup arrays (lookup.py)
"""

from rechargeflow.params.schema import (
    BackendParams,
    LookupTables,
    ModelParams,
    SimulationConfig,
    ValidationError,
)
from rechargeflow.params.loader import (
    load_config,
    load_tables,
    load_config_with_overrides,
    save_config,
)
from rechargeflow.params.lookup import (
    CategoryMapping,
    ParameterArrays,
    encode_categorical,
    find_missing_codes,
    lookup_table_to_array,
)

__all__ = [
    # Schema classes
    "LookupTables",
    "ModelParams",
    "BackendParams",
    "SimulationConfig",
    "ValidationError",
    # Loader functions
    "load_config",
    "load_tables",
    "save_config",
    "load_config_with_overrides",
    # Lookup tables
    "CategoryMapping",
    "ParameterArrays",
    "encode_categorical",
    "lookup_table_to_array",
    "find_missing_codes",
]
