"""Tests for execution contexts and the backend registry."""

import numpy as np
import pytest

import rechargeflow.backend as backend_module
from rechargeflow.backend import (
    BackendRegistry,
    DeviceContext,
    HostContext,
    create_context,
    get_registry,
)
from rechargeflow.config import Backend, ConfigurationError, get_backend, init_taichi
from rechargeflow.kernels import ExecutionContext
from rechargeflow.kernels.naive import water_balance as naive
from rechargeflow.params import ParameterArrays, ValidationError


@pytest.fixture
def arrays():
    return ParameterArrays(
        threshold=np.array([12.0, 15.0, 17.5]),
        crop_coefficient=np.array([0.6, 1.5, 1.0]),
        extraction_depth=np.array([300.0, 1000.0, 600.0]),
        soil_capacity=np.array([0.13, 0.12]),
    )


@pytest.fixture
def cells():
    landuse = np.array([2, 3, 2, 3, 2], dtype=np.int32)
    soil = np.array([1, 1, 2, 2, 1], dtype=np.int32)
    return landuse, soil


class TestBackendRegistry:
    """Tests for BackendRegistry."""

    def test_default_contexts(self):
        registry = BackendRegistry()
        assert registry.get(Backend.HOST) is HostContext
        assert registry.get("device") is DeviceContext
        assert set(registry.available()) == {Backend.HOST, Backend.DEVICE}

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            BackendRegistry().get("cuda")

    def test_register_custom(self):
        class CustomContext(HostContext):
            pass

        registry = BackendRegistry()
        registry.register("host", CustomContext)
        assert registry.get(Backend.HOST) is CustomContext
        # Default registry untouched
        assert get_registry().get(Backend.HOST) is HostContext

    def test_contexts_satisfy_protocol(self, cells):
        context = create_context("host", len(cells[0]))
        assert isinstance(context, ExecutionContext)


class TestCreateContext:
    """Tests for create_context validation."""

    def test_unknown_backend_before_init(self, monkeypatch):
        """An unknown backend fails before the runtime is touched."""
        calls = []
        monkeypatch.setattr(backend_module, "init_taichi", lambda *a, **k: calls.append(a))

        with pytest.raises(ConfigurationError):
            create_context("quantum", 10)
        assert calls == []

    def test_zero_cells(self):
        with pytest.raises(ValidationError):
            create_context("host", 0)

    def test_bad_block_dim(self):
        with pytest.raises(ConfigurationError):
            create_context("host", 4, block_dim=0)

    def test_env_backend(self, monkeypatch):
        monkeypatch.setenv("RECHARGE_BACKEND", "Device")
        assert get_backend() is Backend.DEVICE

        monkeypatch.setenv("RECHARGE_BACKEND", "fpga")
        with pytest.raises(ConfigurationError):
            get_backend()

    def test_bad_num_threads(self):
        with pytest.raises(ConfigurationError):
            init_taichi("host", num_threads=0)


class TestHostContext:
    """Tests for dispatching on the host context."""

    def test_dispatch_matches_reference(self, arrays, cells, year_forcing):
        landuse, soil = cells
        storage = arrays.initial_storage(landuse, soil)

        context = create_context(Backend.HOST, len(landuse))
        context.load_static(landuse, soil, arrays)
        context.load_storage(storage)
        totals = context.dispatch(year_forcing.precipitation, year_forcing.pet)

        expected_storage = storage.copy()
        expected = naive.water_balance_timeseries(
            expected_storage, year_forcing.precipitation, year_forcing.pet, landuse, soil, arrays
        )

        assert totals.n_timesteps == len(year_forcing)
        np.testing.assert_allclose(context.read_storage(), expected_storage, rtol=1e-10)
        for name in ("actet", "recharge", "runoff", "prec"):
            np.testing.assert_allclose(getattr(totals, name), getattr(expected, name), rtol=1e-10, atol=1e-9)

    def test_sums_reset_per_dispatch(self, arrays, cells):
        landuse, soil = cells
        context = create_context(Backend.HOST, len(landuse))
        context.load_static(landuse, soil, arrays)
        context.load_storage(arrays.initial_storage(landuse, soil))

        first = context.dispatch(np.array([3.0, 1.0]), np.array([2.0, 2.0]))
        second = context.dispatch(np.array([3.0, 1.0]), np.array([2.0, 2.0]))

        np.testing.assert_allclose(first.prec, 4.0)
        np.testing.assert_allclose(second.prec, 4.0)

    def test_buffers_reused_by_length(self, arrays, cells):
        landuse, soil = cells
        context = create_context(Backend.HOST, len(landuse))
        context.load_static(landuse, soil, arrays)
        context.load_storage(np.zeros(len(landuse)))

        context.dispatch(np.ones(31), np.ones(31))
        context.dispatch(np.ones(30), np.ones(30))
        context.dispatch(np.ones(31), np.ones(31))
        assert sorted(context._forcing) == [30, 31]

    def test_dispatch_requires_static(self, cells):
        context = create_context(Backend.HOST, len(cells[0]))
        with pytest.raises(RuntimeError):
            context.dispatch(np.ones(3), np.ones(3))

    def test_dispatch_validation(self, arrays, cells):
        landuse, soil = cells
        context = create_context(Backend.HOST, len(landuse))
        context.load_static(landuse, soil, arrays)

        with pytest.raises(ValidationError):
            context.dispatch(np.ones(3), np.ones(2))
        with pytest.raises(ValidationError):
            context.dispatch(np.array([]), np.array([]))
        with pytest.raises(ValidationError):
            context.load_storage(np.zeros(2))


class TestDeviceContext:
    """Tests for the single-precision device context."""

    def test_matches_host(self, arrays, cells, year_forcing):
        landuse, soil = cells
        storage = arrays.initial_storage(landuse, soil)
        results = {}

        for backend in (Backend.HOST, Backend.DEVICE):
            context = create_context(backend, len(landuse), block_dim=32)
            context.load_static(landuse, soil, arrays)
            context.load_storage(storage)
            totals = context.dispatch(year_forcing.precipitation[:31], year_forcing.pet[:31])
            results[backend] = (totals, context.read_storage())

        host_totals, host_storage = results[Backend.HOST]
        device_totals, device_storage = results[Backend.DEVICE]

        assert device_storage.dtype == np.float64
        np.testing.assert_allclose(device_storage, host_storage, rtol=1e-4, atol=1e-3)
        for name in ("actet", "recharge", "runoff", "prec"):
            np.testing.assert_allclose(
                getattr(device_totals, name), getattr(host_totals, name), rtol=1e-4, atol=1e-3
            )
