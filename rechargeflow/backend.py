"""
Execution contexts: host-parallel (CPU) and device-parallel (GPU).

Both wrap the same Taichi kernel and differ only in arch, precision and
launch configuration. A context owns every buffer of a run:

- per-cell: land use / soil index, soil storage, four dispatch totals
- per-table: dense parameter arrays
- per-period: precipitation and PET, sized to the slice (cached by length)

Usage:
    context = create_context("device", n_cells, block_dim=64)
    context.load_static(cells.landuse, cells.soil, arrays)
    context.load_storage(initial_storage)
    totals = context.dispatch(prec_slice, pet_slice)

Creating a context re-initializes the Taichi runtime, so only one context
is live at a time.
"""

import logging
from typing import Type

import numpy as np
import taichi as ti

from rechargeflow.config import Backend, ConfigurationError, init_taichi
from rechargeflow.core.dtypes import INDEX_DTYPE, NP_INDEX_DTYPE
from rechargeflow.kernels.protocol import TOTAL_NAMES, DispatchTotals, ExecutionContext
from rechargeflow.kernels.water_balance import water_balance_timeseries
from rechargeflow.params.lookup import ParameterArrays
from rechargeflow.params.schema import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_DIM = 64


class TaichiContext:
    """Buffers and dispatch for one backend.

    Subclasses only pick the backend; everything else is shared.
    """

    backend: Backend

    def __init__(
        self,
        n_cells: int,
        block_dim: int = DEFAULT_BLOCK_DIM,
        num_threads: int | None = None,
        debug: bool | None = None,
    ):
        """Initialize the runtime and allocate per-cell buffers.

        Args:
            n_cells: Number of active cells (>= 1)
            block_dim: Lanes per block on GPU, loop grain on CPU
            num_threads: CPU worker thread cap (host only)
            debug: Taichi debug mode
        """
        if n_cells < 1:
            raise ValidationError(f"n_cells must be >= 1, got {n_cells}")
        if block_dim < 1:
            raise ConfigurationError(f"block_dim must be >= 1, got {block_dim}")

        init_taichi(self.backend, debug=debug, num_threads=num_threads)

        self.n_cells = n_cells
        self.block_dim = int(block_dim)
        self._dtype = self.backend.dtype
        self._np_dtype = self.backend.np_dtype

        self._landuse = ti.ndarray(INDEX_DTYPE, shape=n_cells)
        self._soil = ti.ndarray(INDEX_DTYPE, shape=n_cells)
        self._storage = ti.ndarray(self._dtype, shape=n_cells)
        self._totals = {name: ti.ndarray(self._dtype, shape=n_cells) for name in TOTAL_NAMES}
        self._tables = None
        self._forcing = {}

        logger.info(
            "Execution context: backend=%s cells=%d block_dim=%d",
            self.backend.value, n_cells, self.block_dim,
        )

    def _upload(self, values: np.ndarray, dtype, np_dtype):
        buf = ti.ndarray(dtype, shape=len(values))
        buf.from_numpy(np.ascontiguousarray(values, dtype=np_dtype))
        return buf

    def load_static(self, landuse: np.ndarray, soil: np.ndarray, arrays: ParameterArrays) -> None:
        """Upload per-cell indices and dense parameter arrays."""
        if len(landuse) != self.n_cells or len(soil) != self.n_cells:
            raise ValidationError(
                f"Expected {self.n_cells} cells, got landuse={len(landuse)}, soil={len(soil)}"
            )
        self._landuse.from_numpy(np.ascontiguousarray(landuse, dtype=NP_INDEX_DTYPE))
        self._soil.from_numpy(np.ascontiguousarray(soil, dtype=NP_INDEX_DTYPE))
        self._tables = {
            name: self._upload(getattr(arrays, name), self._dtype, self._np_dtype)
            for name in ("threshold", "crop_coefficient", "extraction_depth", "soil_capacity")
        }

    def load_storage(self, storage: np.ndarray) -> None:
        """Set soil storage for every cell [mm]."""
        if len(storage) != self.n_cells:
            raise ValidationError(f"Expected {self.n_cells} storage values, got {len(storage)}")
        self._storage.from_numpy(np.ascontiguousarray(storage, dtype=self._np_dtype))

    def read_storage(self) -> np.ndarray:
        """Current soil storage [mm] as float64."""
        return self._storage.to_numpy().astype(np.float64)

    def _forcing_buffers(self, n_timesteps: int):
        # Months repeat the same few lengths, so buffers are reused by size
        if n_timesteps not in self._forcing:
            self._forcing[n_timesteps] = (
                ti.ndarray(self._dtype, shape=n_timesteps),
                ti.ndarray(self._dtype, shape=n_timesteps),
            )
        return self._forcing[n_timesteps]

    def dispatch(self, prec: np.ndarray, pet: np.ndarray) -> DispatchTotals:
        """Run the kernel over one timestep slice and wait for completion."""
        if self._tables is None:
            raise RuntimeError("Static buffers not loaded; call load_static() first")
        n_timesteps = len(prec)
        if len(pet) != n_timesteps:
            raise ValidationError(f"prec and pet differ in length: {n_timesteps} vs {len(pet)}")
        if n_timesteps == 0:
            raise ValidationError("Cannot dispatch an empty timestep slice")

        prec_buf, pet_buf = self._forcing_buffers(n_timesteps)
        prec_buf.from_numpy(np.ascontiguousarray(prec, dtype=self._np_dtype))
        pet_buf.from_numpy(np.ascontiguousarray(pet, dtype=self._np_dtype))

        water_balance_timeseries(
            self._totals["actet"],
            self._totals["recharge"],
            self._totals["runoff"],
            self._totals["prec"],
            self._storage,
            prec_buf,
            pet_buf,
            self._landuse,
            self._soil,
            self._tables["threshold"],
            self._tables["crop_coefficient"],
            self._tables["soil_capacity"],
            self._tables["extraction_depth"],
            n_timesteps,
            self.block_dim,
        )
        ti.sync()

        return DispatchTotals(
            n_timesteps=n_timesteps,
            **{name: buf.to_numpy().astype(np.float64) for name, buf in self._totals.items()},
        )


class HostContext(TaichiContext):
    """Parallel-for over cells on the CPU thread pool, double precision."""

    backend = Backend.HOST


class DeviceContext(TaichiContext):
    """One GPU lane per cell, single precision, configurable block size."""

    backend = Backend.DEVICE


class BackendRegistry:
    """Registry of execution context classes by backend.

    Example:
        registry = BackendRegistry()
        context_cls = registry.get(Backend.DEVICE)

        # Swap in a custom implementation
        registry.register(Backend.DEVICE, MyDeviceContext)
    """

    def __init__(self):
        """Initialize registry with the Taichi host and device contexts."""
        self._contexts: dict[Backend, Type[ExecutionContext]] = {
            Backend.HOST: HostContext,
            Backend.DEVICE: DeviceContext,
        }

    def get(self, backend: Backend | str) -> Type[ExecutionContext]:
        """Get the context class for a backend.

        Raises:
            ConfigurationError: If backend is unknown or has no registered context
        """
        backend = Backend.parse(backend)
        if backend not in self._contexts:
            raise ConfigurationError(
                f"No execution context registered for backend {backend}. "
                f"Available: {self.available()}"
            )
        return self._contexts[backend]

    def register(self, backend: Backend, context_cls: Type[ExecutionContext]) -> None:
        """Register a context class for a backend."""
        self._contexts[Backend.parse(backend)] = context_cls

    def available(self) -> list[Backend]:
        return list(self._contexts.keys())


# Default registry instance for convenience
_default_registry = BackendRegistry()


def get_registry() -> BackendRegistry:
    """Get the default backend registry."""
    return _default_registry


def create_context(
    backend: Backend | str,
    n_cells: int,
    block_dim: int = DEFAULT_BLOCK_DIM,
    num_threads: int | None = None,
    debug: bool | None = None,
    registry: BackendRegistry | None = None,
) -> ExecutionContext:
    """Build the execution context for backend.

    The backend identifier is validated before the runtime is touched or any
    buffer allocated.

    Raises:
        ConfigurationError: If backend is not recognised
    """
    context_cls = (registry or _default_registry).get(backend)
    return context_cls(n_cells, block_dim=block_dim, num_threads=num_threads, debug=debug)
