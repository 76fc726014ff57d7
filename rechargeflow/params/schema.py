"""Parameter schema with validation. Units: mm, mm/day, fractions."""

from dataclasses import dataclass, field, asdict
from typing import Any

from rechargeflow.config import Backend


class ValidationError(ValueError):
    """Parameter validation failed."""
    pass


def _positive(value: float, name: str) -> None:
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def _non_negative(value: float, name: str) -> None:
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")


def _fraction(value: float, name: str) -> None:
    if not 0 <= value <= 1:
        raise ValidationError(f"{name} must be in [0, 1], got {value}")


def _code_table(table: dict[Any, Any], name: str) -> dict[int, float]:
    """Normalise a code -> value table to int keys and float values."""
    if not isinstance(table, dict):
        raise ValidationError(f"{name} must be a mapping of code -> value, got {type(table)}")
    result = {}
    for code, value in table.items():
        try:
            key = int(code)
            val = float(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{name}: invalid entry {code!r}: {value!r}") from exc
        _non_negative(val, f"{name}[{key}]")
        result[key] = val
    return result


# Land use classes of the Arusha study area:
#   1 urban, 21 agriculture, 31 deciduous forest, 32 coniferous,
#   33 mixed forest, 36 shrub/grassland, 307 sparsely vegetated

def _default_threshold() -> dict[int, float]:
    return {1: 12.0, 21: 15.0, 31: 17.5, 32: 16.0, 33: 18.5, 36: 17.5, 307: 17.5}


def _default_crop_coefficient() -> dict[int, float]:
    return {1: 0.6, 21: 1.5, 31: 1.3, 32: 1.2, 33: 1.2, 36: 1.0, 307: 0.9}


def _default_extraction_depth() -> dict[int, float]:
    return {1: 300.0, 21: 1000.0, 31: 1000.0, 32: 1000.0, 33: 1000.0, 36: 600.0, 307: 1000.0}


def _default_soil_capacity() -> dict[int, float]:
    return {10: 0.13, 11: 0.12}


@dataclass(frozen=True)
class LookupTables:
    """Sparse code -> value tables.

    threshold [mm/day], crop_coefficient [-] and extraction_depth [mm] are keyed
    by land use code; soil_capacity [mm/mm] is keyed by soil type code.
    """
    threshold: dict[int, float] = field(default_factory=_default_threshold)
    crop_coefficient: dict[int, float] = field(default_factory=_default_crop_coefficient)
    extraction_depth: dict[int, float] = field(default_factory=_default_extraction_depth)
    soil_capacity: dict[int, float] = field(default_factory=_default_soil_capacity)

    def __post_init__(self) -> None:
        for name in ("threshold", "crop_coefficient", "extraction_depth", "soil_capacity"):
            object.__setattr__(self, name, _code_table(getattr(self, name), name))

    @property
    def landuse_tables(self) -> dict[str, dict[int, float]]:
        return {
            "threshold": self.threshold,
            "crop_coefficient": self.crop_coefficient,
            "extraction_depth": self.extraction_depth,
        }

    @property
    def soil_tables(self) -> dict[str, dict[int, float]]:
        return {"soil_capacity": self.soil_capacity}


@dataclass(frozen=True)
class ModelParams:
    """Model: landuse_floor (cells need index > floor), initial_storage_fraction [-]."""
    landuse_floor: int = 1
    initial_storage_fraction: float = 0.5

    def __post_init__(self) -> None:
        if int(self.landuse_floor) != self.landuse_floor:
            raise ValidationError(f"landuse_floor must be an integer, got {self.landuse_floor}")
        _non_negative(self.landuse_floor, "landuse_floor")
        _fraction(self.initial_storage_fraction, "initial_storage_fraction")


@dataclass(frozen=True)
class BackendParams:
    """Execution: backend ('host'/'device'), block_dim, num_threads, debug."""
    backend: str = "host"
    block_dim: int = 64
    num_threads: int | None = None
    debug: bool = False

    def __post_init__(self) -> None:
        # Unknown names are configuration errors, not value errors
        object.__setattr__(self, "backend", Backend.parse(self.backend).value)
        _positive(self.block_dim, "block_dim")
        if self.num_threads is not None:
            _positive(self.num_threads, "num_threads")


@dataclass(frozen=True)
class SimulationConfig:
    """Complete run configuration."""

    tables: LookupTables = field(default_factory=LookupTables)
    model: ModelParams = field(default_factory=ModelParams)
    execution: BackendParams = field(default_factory=BackendParams)

    def to_dict(self) -> dict[str, Any]:
        """Convert to nested dictionary."""
        return {
            "tables": asdict(self.tables),
            "model": asdict(self.model),
            "execution": asdict(self.execution),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimulationConfig":
        """Create from nested dictionary."""
        param_classes = {
            "tables": LookupTables,
            "model": ModelParams,
            "execution": BackendParams,
        }
        unknown = set(data) - set(param_classes)
        if unknown:
            raise ValidationError(f"Unknown parameter groups: {sorted(unknown)}")
        kwargs = {k: param_classes[k](**(data[k] or {})) for k in data}
        return cls(**kwargs)

    def with_updates(self, **kwargs: Any) -> "SimulationConfig":
        """Create new config with updates."""
        current = self.to_dict()
        for key, value in kwargs.items():
            if key not in current:
                raise ValidationError(f"Unknown parameter group: {key}")
            if isinstance(value, dict):
                current[key].update(value)
            else:
                current[key] = asdict(value)
        return self.from_dict(current)

    # Convenience accessors
    @property
    def backend(self) -> Backend:
        return Backend.parse(self.execution.backend)
