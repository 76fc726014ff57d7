"""
Categorical raster encoding and dense parameter tables.

Land use and soil rasters carry sparse integer codes (1, 21, 307, ...).
Kernels index parameters by a dense 1-based rank instead, so a code is never
looked up by key inside the hot loop:

    indices, mapping = encode_categorical(landuse_codes)
    kc = lookup_table_to_array({1: 0.6, 21: 1.5}, mapping)
    kc_cell = kc[indices[i, j] - 1]

Index k of a mapping lives at position k - 1 of every parameter array.
"""

from dataclasses import dataclass
from typing import Iterator, Mapping

import numpy as np

from rechargeflow.core import INITIAL_STORAGE_FRACTION, NP_INDEX_DTYPE
from rechargeflow.params.schema import LookupTables, ValidationError


@dataclass(frozen=True)
class CategoryMapping:
    """Immutable Code <-> Index bijection.

    Attributes:
        codes: Distinct codes in ascending order; code ``codes[k - 1]`` has index k
    """

    codes: tuple[int, ...] = ()

    def __post_init__(self):
        codes = tuple(int(c) for c in self.codes)
        if any(b <= a for a, b in zip(codes, codes[1:])):
            raise ValidationError(
                f"Mapping codes must be strictly ascending, got {codes}"
            )
        object.__setattr__(self, "codes", codes)

    @classmethod
    def from_dict(cls, code_to_index: Mapping[int, int]) -> "CategoryMapping":
        """Build from a code -> index dictionary.

        Raises:
            ValidationError: If indices are not exactly 1..K in ascending code order
        """
        ordered = sorted((int(code), int(idx)) for code, idx in code_to_index.items())
        indices = [idx for _, idx in ordered]
        if indices != list(range(1, len(ordered) + 1)):
            raise ValidationError(
                f"Mapping indices must be 1..{len(ordered)} in ascending code order, "
                f"got {dict(ordered)}"
            )
        return cls(tuple(code for code, _ in ordered))

    def to_dict(self) -> dict[int, int]:
        return dict(self.items())

    def items(self) -> Iterator[tuple[int, int]]:
        """Iterate (code, index) pairs in index order."""
        for position, code in enumerate(self.codes):
            yield code, position + 1

    @property
    def max_index(self) -> int:
        return len(self.codes)

    def __len__(self) -> int:
        return len(self.codes)

    def __contains__(self, code: object) -> bool:
        return code in self.codes

    def index_of(self, code: int) -> int:
        """Index assigned to code (KeyError if the code is not mapped)."""
        position = int(np.searchsorted(self.codes, code))
        if position == len(self.codes) or self.codes[position] != code:
            raise KeyError(f"Code {code} not in mapping")
        return position + 1

    def code_of(self, index: int) -> int:
        """Code that was assigned index (KeyError if out of range)."""
        if not 1 <= index <= len(self.codes):
            raise KeyError(f"Index {index} outside 1..{len(self.codes)}")
        return self.codes[index - 1]

    def decode(self, indices: np.ndarray) -> np.ndarray:
        """Map an index array back to codes (same shape)."""
        indices = np.asarray(indices)
        if indices.size == 0:
            return np.zeros(indices.shape, dtype=np.int64)
        return np.asarray(self.codes, dtype=np.int64)[indices - 1]


def encode_categorical(codes: np.ndarray) -> tuple[np.ndarray, CategoryMapping]:
    """Replace every code by its dense rank among the distinct codes.

    Args:
        codes: Integer code array of any shape

    Returns:
        (indices, mapping): int32 indices of the same shape, 1..K, and the
        mapping they were assigned by. Empty input yields K = 0.
    """
    codes = np.asarray(codes)
    distinct, inverse = np.unique(codes, return_inverse=True)
    indices = (inverse.reshape(codes.shape) + 1).astype(NP_INDEX_DTYPE)
    return indices, CategoryMapping(tuple(int(c) for c in distinct))


def lookup_table_to_array(
    lookup_table: Mapping[int, float], mapping: CategoryMapping
) -> np.ndarray:
    """Convert a sparse code -> value table to a dense index-ordered array.

    ``result[k - 1]`` holds the value for the code mapped to index k. Codes
    missing from the table get 0.0; this never raises, so callers wanting an
    error must check ``find_missing_codes`` first.
    """
    index_to_code = {idx: code for code, idx in mapping.items()}
    result = np.zeros(mapping.max_index, dtype=np.float64)

    for idx in range(1, mapping.max_index + 1):
        result[idx - 1] = lookup_table.get(index_to_code[idx], 0.0)

    return result


def find_missing_codes(
    lookup_table: Mapping[int, float], mapping: CategoryMapping
) -> list[int]:
    """Codes present in mapping but absent from lookup_table."""
    return [code for code, _ in mapping.items() if code not in lookup_table]


@dataclass(frozen=True)
class ParameterArrays:
    """Dense parameter arrays shared read-only by every dispatch.

    Attributes:
        threshold: Infiltration threshold per land use index [mm/day]
        crop_coefficient: Crop coefficient per land use index [-]
        extraction_depth: Root zone extraction depth per land use index [mm]
        soil_capacity: Water holding capacity per soil index [mm/mm]
    """

    threshold: np.ndarray
    crop_coefficient: np.ndarray
    extraction_depth: np.ndarray
    soil_capacity: np.ndarray

    @classmethod
    def build(
        cls,
        tables: LookupTables,
        landuse_mapping: CategoryMapping,
        soil_mapping: CategoryMapping,
    ) -> "ParameterArrays":
        """Densify every lookup table against its mapping."""
        return cls(
            threshold=lookup_table_to_array(tables.threshold, landuse_mapping),
            crop_coefficient=lookup_table_to_array(tables.crop_coefficient, landuse_mapping),
            extraction_depth=lookup_table_to_array(tables.extraction_depth, landuse_mapping),
            soil_capacity=lookup_table_to_array(tables.soil_capacity, soil_mapping),
        )

    def capacity(self, landuse: np.ndarray, soil: np.ndarray) -> np.ndarray:
        """Storage capacity soil_cap·ext_depth per cell [mm]."""
        landuse = np.asarray(landuse)
        soil = np.asarray(soil)
        return self.soil_capacity[soil - 1] * self.extraction_depth[landuse - 1]

    def initial_storage(
        self,
        landuse: np.ndarray,
        soil: np.ndarray,
        fraction: float = INITIAL_STORAGE_FRACTION,
    ) -> np.ndarray:
        """Starting storage per cell: a fraction of capacity [mm]."""
        return self.capacity(landuse, soil) * fraction
