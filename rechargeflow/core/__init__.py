"""Core infrastructure: dtypes and constants."""

from rechargeflow.core.dtypes import (
    DEVICE_DTYPE,
    HOST_DTYPE,
    INDEX_DTYPE,
    NP_DEVICE_DTYPE,
    NP_HOST_DTYPE,
    NP_INDEX_DTYPE,
)

# Fraction of the storage capacity below which ET is reduced by moisture stress
SOIL_ET_FRACTION: float = 0.5

# Fraction of the storage capacity held by every cell at the start of a run
INITIAL_STORAGE_FRACTION: float = 0.5

__all__ = [
    "HOST_DTYPE",
    "DEVICE_DTYPE",
    "INDEX_DTYPE",
    "NP_HOST_DTYPE",
    "NP_DEVICE_DTYPE",
    "NP_INDEX_DTYPE",
    "SOIL_ET_FRACTION",
    "INITIAL_STORAGE_FRACTION",
]
