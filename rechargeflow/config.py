"""
Taichi configuration and initialization.

Environment variables:
    RECHARGE_BACKEND: 'host' or 'device' (default: 'host')
    RECHARGE_DEBUG: '1' to enable debug mode

The host backend runs on the Taichi CPU arch (thread-pool parallel-for) in
double precision. The device backend targets ti.gpu in single precision;
Taichi itself falls back to CPU when no GPU is present.
"""

import logging
import os
from enum import Enum

import numpy as np
import taichi as ti

from rechargeflow.core.dtypes import (
    DEVICE_DTYPE,
    HOST_DTYPE,
    INDEX_DTYPE,
    NP_DEVICE_DTYPE,
    NP_HOST_DTYPE,
)

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Execution configuration is not recognised (fatal, raised before allocation)."""


class Backend(Enum):
    """Closed set of execution strategies."""

    HOST = "host"  # CPU thread pool, f64
    DEVICE = "device"  # GPU lanes, f32

    @classmethod
    def parse(cls, value: "Backend | str") -> "Backend":
        """Resolve an enum member or a case-insensitive name.

        Raises:
            ConfigurationError: If value does not name a backend
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key == member.value:
                    return member
        raise ConfigurationError(
            f"Unknown backend: {value!r}. "
            f"Available: {[member.value for member in cls]}"
        )

    @property
    def arch(self):
        return ti.cpu if self is Backend.HOST else ti.gpu

    @property
    def dtype(self):
        """Taichi floating-point type used for buffers and arithmetic."""
        return HOST_DTYPE if self is Backend.HOST else DEVICE_DTYPE

    @property
    def np_dtype(self) -> type:
        return NP_HOST_DTYPE if self is Backend.HOST else NP_DEVICE_DTYPE


def get_backend() -> Backend:
    """Determine backend from the RECHARGE_BACKEND env var (default: host)."""
    return Backend.parse(os.environ.get("RECHARGE_BACKEND", "host"))


def init_taichi(
    backend: Backend | str | None = None,
    debug: bool | None = None,
    num_threads: int | None = None,
) -> Backend:
    """Initialize Taichi for the given or env-selected backend.

    Calling this again re-initializes the process-wide runtime, which
    invalidates any ndarray allocated before the call.

    Args:
        backend: Backend member or name (default: RECHARGE_BACKEND)
        debug: Enable Taichi debug mode (default: RECHARGE_DEBUG)
        num_threads: Upper bound on CPU worker threads (host only)

    Returns:
        The backend that was initialized
    """
    backend = get_backend() if backend is None else Backend.parse(backend)
    if debug is None:
        debug = os.environ.get("RECHARGE_DEBUG", "0") == "1"

    options = {
        "arch": backend.arch,
        "default_fp": backend.dtype,
        "default_ip": INDEX_DTYPE,
        "debug": debug,
        "offline_cache": True,
        # Strict IEEE ordering keeps per-step conservation exact
        "fast_math": False,
    }
    if backend is Backend.HOST and num_threads is not None:
        if num_threads < 1:
            raise ConfigurationError(f"num_threads must be >= 1, got {num_threads}")
        options["cpu_max_num_threads"] = num_threads

    ti.init(**options)
    logger.debug(
        "Taichi initialized: backend=%s dtype=%s",
        backend.value,
        np.dtype(backend.np_dtype).name,
    )
    return backend
