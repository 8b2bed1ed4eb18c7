"""Shared pytest helpers: synthetic terrain, climate, and on-disk sites."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from pyproj import CRS

from wbgrid.io import save_raster
from wbgrid.models import ClimateSeries, ClimateSource, SiteConfig, TerrainGrid

# UTM 11N, 30 m cells, origin in the Sierra Nevada
UTM_WKT = CRS.from_epsg(32611).to_wkt()
UTM_TRANSFORM = [270000.0, 30.0, 0.0, 4180000.0, 0.0, -30.0]


def make_terrain(
    shape: tuple[int, int] = (4, 5),
    *,
    elevation: float = 1000.0,
    slope: float = 0.0,
    aspect: float = np.nan,
    whc: float = 100.0,
    latitude: float = 38.0,
    name: str = "testsite",
    **kwargs,
) -> TerrainGrid:
    """Uniform terrain grid; any field can be overridden by passing an array."""

    def _grid(value):
        arr = np.asarray(value, dtype=np.float64)
        return np.full(shape, value, dtype=np.float64) if arr.ndim == 0 else arr

    return TerrainGrid.from_arrays(
        elevation=_grid(elevation),
        slope=_grid(slope),
        aspect=_grid(aspect),
        whc=_grid(whc),
        latitude=latitude,
        name=name,
        **kwargs,
    )


def make_climate(
    start: str = "2001-01-01",
    n_days: int = 365,
    *,
    tmin: float | np.ndarray = 5.0,
    tmax: float | np.ndarray = 15.0,
    precip: float | np.ndarray = 1.0,
    source: ClimateSource | None = None,
) -> ClimateSeries:
    """Daily climate with constant (or given) values."""
    dates = pd.date_range(start, periods=n_days, freq="D")

    def _series(value):
        arr = np.asarray(value, dtype=np.float64)
        return np.full(n_days, value, dtype=np.float64) if arr.ndim == 0 else arr

    return ClimateSeries(
        dates=dates,
        tmin=_series(tmin),
        tmax=_series(tmax),
        precip=_series(precip),
        source=source or ClimateSource.historical(),
    )


def write_climate_csv(path: Path, climate: ClimateSeries) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(
        {
            "date": climate.dates.strftime("%Y-%m-%d"),
            "tmin": climate.tmin,
            "tmax": climate.tmax,
            "precip": climate.precip,
        }
    ).to_csv(path, index=False)
    return path


def write_site(
    root: Path,
    name: str = "testsite",
    shape: tuple[int, int] = (4, 5),
    *,
    elevation: np.ndarray | None = None,
    slope: np.ndarray | None = None,
    whc: np.ndarray | None = None,
    sources: list[ClimateSource] | None = None,
    n_days: int = 365,
    start: str = "2001-01-01",
    climate_elevation_m: float = 1000.0,
) -> SiteConfig:
    """
    Write a complete site (terrain, soil, climate tables) under ``root/name``.

    Slope is flat unless given; aspect is 180° (south) everywhere.
    """
    site_dir = root / name
    elevation = np.full(shape, 1200.0) if elevation is None else elevation
    slope = np.zeros(shape) if slope is None else slope
    whc = np.full(shape, 150.0) if whc is None else whc
    aspect = np.full(shape, 180.0)

    for rel, arr in (
        ("terrain/elevation.tif", elevation),
        ("terrain/slope.tif", slope),
        ("terrain/aspect.tif", aspect),
        ("soil/whc.tif", whc),
    ):
        save_raster(site_dir / rel, np.asarray(arr, dtype=np.float32), UTM_TRANSFORM, UTM_WKT, no_data_val=np.nan)

    for source in sources or [ClimateSource.historical()]:
        stem = "historical" if source.is_historical else source.label
        # Projections run warmer and drier than the observed record
        warm = 0.0 if source.is_historical else 2.0
        climate = make_climate(
            start, n_days, tmin=2.0 + warm, tmax=14.0 + warm, precip=2.0 if source.is_historical else 1.5
        )
        write_climate_csv(site_dir / "climate" / f"{stem}.csv", climate)

    return SiteConfig(name=name, input_root=str(site_dir), climate_elevation_m=climate_elevation_m)


@pytest.fixture()
def flat_terrain():
    return make_terrain()


@pytest.fixture()
def one_year_climate():
    return make_climate()
