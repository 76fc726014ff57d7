"""Daily climate forcing: precipitation and potential ET per date."""

import calendar
import datetime
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from rechargeflow.params.schema import ValidationError


@dataclass(frozen=True)
class ForcingSeries:
    """Date-ascending daily forcing shared by every cell.

    Attributes:
        dates: Calendar dates (datetime64[D])
        precipitation: Precipitation [mm/day]
        pet: Potential evapotranspiration [mm/day]
    """

    dates: np.ndarray
    precipitation: np.ndarray
    pet: np.ndarray

    def __post_init__(self):
        n = len(self.dates)
        if len(self.precipitation) != n or len(self.pet) != n:
            raise ValidationError(
                f"Forcing arrays differ in length: dates={n}, "
                f"precipitation={len(self.precipitation)}, pet={len(self.pet)}"
            )
        if n > 1 and np.any(np.diff(self.dates) <= np.timedelta64(0, "D")):
            raise ValidationError("Forcing dates must be strictly ascending")
        for name in ("precipitation", "pet"):
            values = getattr(self, name)
            if not np.all(np.isfinite(values)):
                raise ValidationError(f"{name} contains NaN or Inf")
            if np.any(values < 0):
                raise ValidationError(f"{name} must be non-negative")

    @classmethod
    def from_arrays(cls, dates, precipitation, pet) -> "ForcingSeries":
        """Build from array-likes (dates may be date objects or ISO strings)."""
        return cls(
            dates=np.asarray(dates, dtype="datetime64[D]"),
            precipitation=np.asarray(precipitation, dtype=np.float64),
            pet=np.asarray(pet, dtype=np.float64),
        )

    def __len__(self) -> int:
        return len(self.dates)

    @property
    def years(self) -> np.ndarray:
        """Calendar year of each timestep."""
        return self.dates.astype("datetime64[Y]").astype(np.int64) + 1970

    @property
    def months(self) -> np.ndarray:
        """Calendar month (1-12) of each timestep."""
        return self.dates.astype("datetime64[M]").astype(np.int64) % 12 + 1

    def select(self, indices: np.ndarray) -> "ForcingSeries":
        """Sub-series at the given (ascending) timestep indices."""
        return ForcingSeries(
            dates=self.dates[indices],
            precipitation=self.precipitation[indices],
            pet=self.pet[indices],
        )


def load_forcing(path: str | Path) -> ForcingSeries:
    """Load an ``.npz`` bundle with ``date``, ``precipitation`` and ``pet`` arrays."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Forcing bundle not found: {path}")

    with np.load(path) as data:
        missing = {"date", "precipitation", "pet"} - set(data.files)
        if missing:
            raise ValidationError(f"{path} is missing arrays: {sorted(missing)}")
        return ForcingSeries.from_arrays(data["date"], data["precipitation"], data["pet"])


def replicate_years(forcing: ForcingSeries, n_years: int) -> ForcingSeries:
    """Repeat one calendar year of forcing over consecutive years.

    Feb 29 is dropped in target years that are not leap years.

    Args:
        forcing: Forcing covering a single calendar year
        n_years: Number of years in the result (1-200)

    Returns:
        ForcingSeries spanning n_years starting at the base year
    """
    if n_years < 1 or n_years > 200:
        raise ValidationError(f"n_years must be between 1 and 200, got {n_years}")
    if len(forcing) == 0:
        return forcing

    base_years = np.unique(forcing.years)
    if len(base_years) != 1:
        raise ValidationError(
            f"Base forcing must cover a single year, got {base_years.tolist()}"
        )
    base_year = int(base_years[0])

    dates = []
    keep = []
    for year_offset in range(n_years):
        new_year = base_year + year_offset
        for idx, day in enumerate(forcing.dates.astype(object)):
            if day.month == 2 and day.day == 29 and not calendar.isleap(new_year):
                continue
            dates.append(datetime.date(new_year, day.month, day.day))
            keep.append(idx)

    keep = np.asarray(keep, dtype=np.int64)
    return ForcingSeries.from_arrays(
        dates, forcing.precipitation[keep], forcing.pet[keep]
    )
