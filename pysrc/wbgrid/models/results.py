"""Result data models."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ..wb_logging import get_logger
from .terrain import ExclusionReason

if TYPE_CHECKING:
    import pandas as pd
    from numpy.typing import NDArray

    from ..summary import AnnualSummary
    from .climate import ClimateSource

logger = get_logger(__name__)

EXCLUSION_FLAGS_TAG = ",".join(f"{flag.value}={flag.name.lower()}" for flag in ExclusionReason if flag.value)


@dataclass
class DailyBalance:
    """
    One day of bucket outputs for the simulated cells.

    Attributes:
        date: Calendar day.
        pet: Potential evapotranspiration (mm).
        water_input: Water reaching the soil: precipitation, or rain + melt (mm).
        aet: Actual evapotranspiration (mm), 0 ≤ aet ≤ pet.
        cwd: Climatic water deficit, pet − aet (mm).
        storage: End-of-day soil storage (mm), 0 ≤ storage ≤ WHC.
        surplus: Water beyond WHC, reported as runoff and not routed (mm).
    """

    date: _dt.date
    pet: NDArray[np.float64]
    water_input: NDArray[np.float64]
    aet: NDArray[np.float64]
    cwd: NDArray[np.float64]
    storage: NDArray[np.float64]
    surplus: NDArray[np.float64]

    def get(self, name: str) -> NDArray[np.float64]:
        return getattr(self, name)


@dataclass
class WaterBalanceResult:
    """
    Results from one (site, climate source) run.

    Attributes:
        site: Site name.
        source: Climate source the run used.
        annual: Calendar-year sums per variable; excluded cells are NaN.
        exclusion: Exclusion-reason bitfield (uint8), 0 for simulated cells.
        exclusion_counts: Cells per exclusion reason.
        guard_counts: Negative values clamped to zero, per variable.
        dates: Simulated days.
        daily: Variable → (n_days, n_valid) per-cell daily values. Only
            populated when the run was asked to keep them.
        transform: GDAL-style geotransform of the grid.
        crs_wkt: Grid CRS.
        artifacts: Files written by the run.
    """

    site: str
    source: ClimateSource
    annual: AnnualSummary
    exclusion: NDArray[np.uint8]
    exclusion_counts: dict[str, int]
    guard_counts: dict[str, int]
    dates: pd.DatetimeIndex
    daily: dict[str, NDArray[np.float64]] | None = None
    transform: list[float] | None = None
    crs_wkt: str | None = None
    artifacts: list[Path] = field(default_factory=list)

    @property
    def valid_mask(self) -> NDArray[np.bool_]:
        return self.exclusion == 0

    @property
    def n_excluded(self) -> int:
        return int(np.count_nonzero(self.exclusion))

    @property
    def years(self) -> list[int]:
        return self.annual.years

    def daily_grid(self, name: str) -> NDArray[np.float64]:
        """
        Daily values of one variable on the full grid: (n_days, rows, cols), NaN where excluded.

        Raises:
            ValueError: If daily values were not kept for this run.
        """
        if self.daily is None or name not in self.daily:
            kept = sorted(self.daily) if self.daily else []
            raise ValueError(f"Daily '{name}' was not kept for this run (kept: {kept}); pass keep_daily=True")
        values = self.daily[name]
        grid = np.full((values.shape[0], *self.exclusion.shape), np.nan, dtype=np.float64)
        grid[:, self.valid_mask] = values
        return grid

    def to_geotiff(self, output_dir: str | Path, prefix: str, storage: str = "scaled_int") -> list[Path]:
        """
        Save annual sums and the exclusion raster.

        Creates ``{prefix}_{variable}.tif`` (one band per year) for every
        summarised variable and ``{prefix}_exclusion.tif``.

        Returns:
            Paths written.
        """
        from .. import io

        output_dir = Path(output_dir)
        paths = self.annual.to_geotiff(output_dir, prefix, self.transform, self.crs_wkt, storage=storage)
        trf = self.transform if self.transform is not None else [0.0, 1.0, 0.0, 0.0, 0.0, -1.0]
        paths.append(
            io.save_raster(
                output_dir / f"{prefix}_exclusion.tif",
                self.exclusion.astype(np.uint8),
                trf,
                self.crs_wkt,
                no_data_val=None,
                band_descriptions=["exclusion_reason"],
                tags={"flags": EXCLUSION_FLAGS_TAG},
            )
        )
        logger.debug(f"Saved {len(paths)} artifacts with prefix {prefix}")
        return paths
