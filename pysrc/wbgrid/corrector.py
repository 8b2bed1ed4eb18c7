"""
Topographic correction of point climate.

Downscales one point climate series to every simulated cell of a site
grid: temperatures by lapse rate over the elevation difference, PET by the
cell's heat load multiplier.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from .errors import NoValidCellsError
from .models.terrain import count_reasons
from .physics.heat_load import heat_load_multiplier
from .physics.pet import compute_pet
from .wb_logging import get_logger

if TYPE_CHECKING:
    import datetime as _dt

    from numpy.typing import NDArray

    from .models.climate import ClimateSeries
    from .models.config import ModelConfig
    from .models.terrain import TerrainGrid

logger = get_logger(__name__)


@dataclass
class CorrectedClimateDay:
    """
    One day of climate at every simulated cell.

    Derived and consumed immediately by the engine; never persisted.

    Attributes:
        date: Calendar day.
        tmin, tmax, tmean: Corrected temperatures (°C).
        pet: PET after heat-load scaling (mm).
        precip: Point precipitation (mm), identical for every cell.
    """

    date: _dt.date
    tmin: NDArray[np.float64]
    tmax: NDArray[np.float64]
    tmean: NDArray[np.float64]
    pet: NDArray[np.float64]
    precip: float


class TopoClimateCorrector:
    """
    Per-site corrector, built once per (terrain, config, climate point).

    Attributes:
        reasons: Exclusion bitfield for the full grid.
        valid_mask: True for simulated cells.
        heat_load: Heat load multiplier per simulated cell.
        elevation_delta: Cell elevation minus climate point elevation (m), per simulated cell.

    Raises:
        NoValidCellsError: If every cell is excluded.
        DomainRangeError: In strict mode, if any cell is out of range.
    """

    def __init__(self, terrain: TerrainGrid, config: ModelConfig, climate_elevation_m: float):
        self.terrain = terrain
        self.config = config
        self.climate_elevation_m = float(climate_elevation_m)

        self.reasons = terrain.exclusion_reasons(config.max_slope_deg, strict=config.strict)
        self.valid_mask = self.reasons == 0
        self.n_valid = int(self.valid_mask.sum())
        if self.n_valid == 0:
            raise NoValidCellsError(terrain.n_cells, count_reasons(self.reasons))

        valid = self.valid_mask
        self.latitude = terrain.latitude[valid]
        self.whc = terrain.whc[valid]
        self.elevation_delta = terrain.elevation[valid] - self.climate_elevation_m
        # Aspect is undefined on flat cells; it drops out there because sin(slope) = 0
        aspect = np.nan_to_num(terrain.aspect[valid], nan=0.0)
        self.heat_load = heat_load_multiplier(
            self.latitude, terrain.slope[valid], aspect, normalize_to_flat=config.normalize_heat_load
        )

    @property
    def n_excluded(self) -> int:
        return self.terrain.n_cells - self.n_valid

    def exclusion_counts(self) -> dict[str, int]:
        return count_reasons(self.reasons)

    def correct_temperature(self, t_point: float) -> NDArray[np.float64]:
        """T_cell = T_point + lapse_rate × (elevation_cell − elevation_point)."""
        return t_point + self.config.lapse_rate * self.elevation_delta

    def correct_day(self, date: _dt.date, tmin: float, tmax: float, precip: float) -> CorrectedClimateDay:
        """Correct one day of point climate."""
        tmin_c = self.correct_temperature(tmin)
        tmax_c = self.correct_temperature(tmax)
        tmean_c = (tmin_c + tmax_c) / 2.0
        doy = date.timetuple().tm_yday
        pet = compute_pet(self.config.pet_method, tmean_c, self.latitude, doy, kpec=self.config.hamon_kpec)
        return CorrectedClimateDay(
            date=date,
            tmin=tmin_c,
            tmax=tmax_c,
            tmean=tmean_c,
            pet=pet * self.heat_load,
            precip=float(precip),
        )

    def iter_days(self, climate: ClimateSeries) -> Iterator[CorrectedClimateDay]:
        """Yield corrected days in date order."""
        for date, tmin, tmax, precip in zip(climate.dates, climate.tmin, climate.tmax, climate.precip):
            yield self.correct_day(date.date(), tmin, tmax, precip)

    def scatter(self, values: NDArray[np.floating], fill: float = np.nan) -> NDArray[np.float64]:
        """Place per-cell values back on the full grid; excluded cells get ``fill``."""
        grid = np.full(self.terrain.shape, fill, dtype=np.float64)
        grid[self.valid_mask] = values
        return grid
