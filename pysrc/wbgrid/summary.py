"""Annual, multi-year, and ensemble reductions.

Defines :class:`AnnualSummary` (per-year sums returned by
:func:`calculate_timeseries`) and :class:`AnnualAccumulator` (the internal
helper that builds it incrementally during the daily loop), plus the
multi-year / multi-model means and the ×10 integer storage convention.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from .constants import INT_NODATA, STORAGE_SCALE
from .wb_logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .models.results import DailyBalance

logger = get_logger(__name__)


# =============================================================================
# Storage convention
# =============================================================================


def scale_for_storage(values: NDArray[np.floating], scale: int = STORAGE_SCALE) -> NDArray[np.int32]:
    """
    Convert float mm to the integer storage convention.

    Values are multiplied by ``scale`` and truncated toward zero; NaN
    becomes ``INT_NODATA``.
    """
    values = np.asarray(values, dtype=np.float64)
    valid = np.isfinite(values)
    out = np.full(values.shape, INT_NODATA, dtype=np.int32)
    out[valid] = np.trunc(values[valid] * scale).astype(np.int32)
    return out


def unscale(stored: NDArray, scale: int = STORAGE_SCALE, nodata: float | None = INT_NODATA) -> NDArray[np.float64]:
    """
    Convert stored values back to float mm.

    Integer arrays are divided by ``scale`` and ``nodata`` becomes NaN.
    Float arrays are already in mm and are returned as float64.
    """
    stored = np.asarray(stored)
    if np.issubdtype(stored.dtype, np.floating):
        return stored.astype(np.float64)
    out = stored.astype(np.float64) / scale
    if nodata is not None:
        out[stored == nodata] = np.nan
    return out


# =============================================================================
# Reductions
# =============================================================================


def multi_year_mean(annual: NDArray[np.floating], years: list[int], start: int, end: int) -> NDArray[np.float64]:
    """
    Arithmetic mean of annual grids over the closed year range [start, end].

    Every year is weighted equally. Cells that are NaN in the inputs stay
    NaN in the result.

    Args:
        annual: (n_years, rows, cols) annual sums.
        years: Calendar year of each band.
        start: First year, inclusive.
        end: Last year, inclusive.

    Raises:
        ValueError: If the range is empty or reaches outside ``years``.
    """
    if start > end:
        raise ValueError(f"Year range is empty: {start} > {end}")
    years = [int(y) for y in years]
    missing = [y for y in range(start, end + 1) if y not in years]
    if missing:
        span = f"{years[0]}-{years[-1]}" if years else "no years"
        raise ValueError(f"Years {missing[0]}..{missing[-1]} requested but the series covers {span}")
    idx = [years.index(y) for y in range(start, end + 1)]
    return np.mean(np.asarray(annual, dtype=np.float64)[idx], axis=0)


def ensemble_mean(grids: list[NDArray[np.floating]]) -> NDArray[np.float64]:
    """
    Mean across climate models for one scenario.

    A cell that is NaN in any member is NaN in the result.
    """
    if not grids:
        raise ValueError("Ensemble mean needs at least one member")
    shapes = {np.shape(g) for g in grids}
    if len(shapes) != 1:
        raise ValueError(f"Ensemble members have different shapes: {sorted(shapes)}")
    return np.mean(np.stack([np.asarray(g, dtype=np.float64) for g in grids]), axis=0)


# =============================================================================
# Annual summary
# =============================================================================


@dataclass
class AnnualSummary:
    """Per-cell calendar-year sums from one run.

    All grids have shape (n_years, rows, cols). Excluded cells are NaN.

    Attributes:
        variables: Variable name ("aet", "cwd", ...) → annual sums (mm).
        years: Calendar year of each band.
        days_per_year: Simulated days in each year.
    """

    variables: dict[str, NDArray[np.float64]]
    years: list[int]
    days_per_year: list[int]

    def __len__(self) -> int:
        return len(self.years)

    def __getitem__(self, name: str) -> NDArray[np.float64]:
        return self.variables[name]

    @property
    def partial_years(self) -> list[int]:
        """Years with fewer simulated days than the calendar has."""
        return [
            y
            for y, n in zip(self.years, self.days_per_year)
            if n < (366 if calendar.isleap(y) else 365)
        ]

    def mean(self, name: str, start: int | None = None, end: int | None = None) -> NDArray[np.float64]:
        """Multi-year mean of one variable; defaults to every year in the run."""
        start = self.years[0] if start is None else start
        end = self.years[-1] if end is None else end
        return multi_year_mean(self.variables[name], self.years, start, end)

    def to_geotiff(
        self,
        output_dir: str | Path,
        prefix: str,
        transform: list[float] | None,
        crs_wkt: str | None,
        storage: str = "scaled_int",
    ) -> list[Path]:
        """
        Save one multi-band GeoTIFF per variable: ``{prefix}_{name}.tif``.

        Band ``i`` holds year ``years[i]``; band descriptions carry the year.

        Returns:
            Paths written.
        """
        output_dir = Path(output_dir)
        paths = []
        for name, grid in self.variables.items():
            paths.append(
                write_stack(
                    output_dir / f"{prefix}_{name}.tif",
                    grid,
                    [str(y) for y in self.years],
                    transform,
                    crs_wkt,
                    storage,
                    tags={"variable": name, "period": "annual"},
                )
            )
        return paths


def write_stack(
    path: Path,
    data: NDArray[np.floating],
    band_descriptions: list[str],
    transform: list[float] | None,
    crs_wkt: str | None,
    storage: str = "scaled_int",
    tags: dict | None = None,
) -> Path:
    """Write a (bands, rows, cols) float mm stack in the chosen storage convention."""
    from . import io

    trf = transform if transform is not None else [0.0, 1.0, 0.0, 0.0, 0.0, -1.0]
    all_tags = {"units": "mm", **(tags or {})}
    if storage == "scaled_int":
        all_tags["scale_factor"] = STORAGE_SCALE
        return io.save_raster(
            path,
            scale_for_storage(data),
            trf,
            crs_wkt,
            no_data_val=INT_NODATA,
            band_descriptions=band_descriptions,
            scale=1.0 / STORAGE_SCALE,
            tags=all_tags,
        )
    return io.save_raster(
        path,
        np.asarray(data, dtype=np.float32),
        trf,
        crs_wkt,
        no_data_val=np.nan,
        band_descriptions=band_descriptions,
        tags=all_tags,
    )


def read_annual_artifact(path: str | Path) -> tuple[NDArray[np.float64], list[int], dict]:
    """
    Read an annual artifact back as float mm.

    Returns:
        (data, years, meta) where ``data`` is (n_years, rows, cols) with NaN
        for no-data and ``meta`` holds transform, crs, and tags.
    """
    from . import io

    stack = io.load_raster_stack(path)
    data = stack["data"]
    scale_factor = stack["tags"].get("scale_factor")
    if scale_factor is not None:
        data = data / float(scale_factor)
    years = [int(d) for d in stack["descriptions"]]
    meta = {"transform": stack["transform"], "crs": stack["crs"], "tags": stack["tags"]}
    return data, years, meta


class AnnualAccumulator:
    """Accumulates per-cell calendar-year sums during the daily loop.

    Works on the simulated cells only; each finished year is scattered back
    onto the full grid with NaN for excluded cells. All sums use float64.
    """

    def __init__(self, valid_mask: NDArray[np.bool_], variables: list[str]) -> None:
        self.valid_mask = np.asarray(valid_mask, dtype=bool)
        self.shape = self.valid_mask.shape
        self.variables = list(variables)
        self._n_valid = int(self.valid_mask.sum())

        self._year: int | None = None
        self._days = 0
        self._sums: dict[str, NDArray[np.float64]] = {}
        self._years: list[int] = []
        self._days_per_year: list[int] = []
        self._grids: dict[str, list[NDArray[np.float64]]] = {v: [] for v in self.variables}
        self._reset()

    def _reset(self) -> None:
        self._days = 0
        self._sums = {v: np.zeros(self._n_valid, dtype=np.float64) for v in self.variables}

    def _flush(self) -> None:
        if self._year is None or self._days == 0:
            return
        for name in self.variables:
            grid = np.full(self.shape, np.nan, dtype=np.float64)
            grid[self.valid_mask] = self._sums[name]
            self._grids[name].append(grid)
        self._years.append(self._year)
        self._days_per_year.append(self._days)
        self._reset()

    def update(self, balance: DailyBalance) -> None:
        """Add one day. Days must arrive in date order."""
        if balance.date.year != self._year:
            self._flush()
            self._year = balance.date.year
        for name in self.variables:
            self._sums[name] += balance.get(name)
        self._days += 1

    def finalize(self) -> AnnualSummary:
        """Close the current year and build the summary."""
        self._flush()
        variables = {
            name: np.stack(grids) if grids else np.empty((0, *self.shape), dtype=np.float64)
            for name, grids in self._grids.items()
        }
        summary = AnnualSummary(variables=variables, years=list(self._years), days_per_year=list(self._days_per_year))
        for year in summary.partial_years:
            n = summary.days_per_year[summary.years.index(year)]
            logger.info(f"  Year {year} is partial ({n} days); its sums cover those days only")
        return summary


@dataclass
class EnsembleSummary:
    """Multi-model mean for one site and scenario.

    Attributes:
        site: Site name.
        scenario: Emissions scenario.
        variable: Summarised variable.
        models: GCMs included.
        years: Calendar years common to every member.
        mean: (n_years, rows, cols) ensemble mean of the annual sums.
    """

    site: str
    scenario: str
    variable: str
    models: list[str]
    years: list[int]
    mean: NDArray[np.float64] = field(repr=False)

    def to_geotiff(
        self, output_dir: str | Path, transform: list[float] | None, crs_wkt: str | None, storage: str = "scaled_int"
    ) -> Path:
        """Save as ``{site}_ensemble_{scenario}_{variable}.tif``."""
        return write_stack(
            Path(output_dir) / f"{self.site}_ensemble_{self.scenario}_{self.variable}.tif",
            self.mean,
            [str(y) for y in self.years],
            transform,
            crs_wkt,
            storage,
            tags={"variable": self.variable, "period": "annual", "models": ",".join(self.models)},
        )
