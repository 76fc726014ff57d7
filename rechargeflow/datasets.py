"""Spatial inputs: normalized land use and soil grids with their mappings.

The loader is an explicit object built once and handed to the model; there is
no module-level dataset cache. Raster I/O lives outside this package, so the
on-disk format here is a plain ``.npz`` bundle of raw code grids.
"""

from dataclasses import dataclass
from pathlib import Path

import numpy as np

from rechargeflow.params.lookup import CategoryMapping, encode_categorical
from rechargeflow.params.schema import ValidationError


@dataclass(frozen=True)
class SpatialDatasets:
    """Encoded categorical grids.

    Attributes:
        landuse: Land use index grid (1-based, int32)
        landuse_mapping: Land use code <-> index mapping
        soil: Soil index grid (1-based, int32)
        soil_mapping: Soil code <-> index mapping
    """

    landuse: np.ndarray
    landuse_mapping: CategoryMapping
    soil: np.ndarray
    soil_mapping: CategoryMapping

    def __post_init__(self):
        if self.landuse.shape != self.soil.shape:
            raise ValidationError(
                f"Land use and soil grids differ in shape: "
                f"{self.landuse.shape} vs {self.soil.shape}"
            )
        for name, grid, mapping in (
            ("landuse", self.landuse, self.landuse_mapping),
            ("soil", self.soil, self.soil_mapping),
        ):
            if grid.size and (grid.min() < 1 or grid.max() > mapping.max_index):
                raise ValidationError(
                    f"{name} indices must lie in 1..{mapping.max_index}, "
                    f"got {grid.min()}..{grid.max()}"
                )

    @classmethod
    def from_codes(cls, landuse_codes: np.ndarray, soil_codes: np.ndarray) -> "SpatialDatasets":
        """Encode raw code grids."""
        landuse, landuse_mapping = encode_categorical(landuse_codes)
        soil, soil_mapping = encode_categorical(soil_codes)
        return cls(landuse, landuse_mapping, soil, soil_mapping)

    @property
    def shape(self) -> tuple[int, ...]:
        return self.landuse.shape


def load_datasets(path: str | Path) -> SpatialDatasets:
    """Load an ``.npz`` bundle with ``landuse`` and ``soil`` code grids."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset bundle not found: {path}")

    with np.load(path) as data:
        missing = {"landuse", "soil"} - set(data.files)
        if missing:
            raise ValidationError(f"{path} is missing arrays: {sorted(missing)}")
        return SpatialDatasets.from_codes(data["landuse"], data["soil"])


def save_datasets(landuse_codes: np.ndarray, soil_codes: np.ndarray, path: str | Path) -> Path:
    """Write raw code grids as an ``.npz`` bundle readable by ``load_datasets``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, landuse=np.asarray(landuse_codes), soil=np.asarray(soil_codes))
    return path
