"""
Simplified wbgrid API

Thin entry points over the model packages for the common cases: check a
site's inputs, run one site against one climate source, and run a batch.

Example:
    import wbgrid

    site = wbgrid.SiteConfig(name="yosemite", input_root="data/yosemite", climate_elevation_m=2100.0)
    warnings = wbgrid.validate_inputs(site)
    result = wbgrid.calculate_site(site, output_dir="out/yosemite")
    print(f"Mean AET: {result.annual.mean('aet').mean():.1f} mm")
"""

from __future__ import annotations

import calendar
from pathlib import Path

import numpy as np

from .config import load_params
from .errors import InputDataError, NoValidCellsError
from .metadata import create_run_metadata, load_run_metadata, save_run_metadata
from .models import (
    BatchConfig,
    ClimateSeries,
    ClimateSource,
    ModelConfig,
    SiteConfig,
    TerrainGrid,
    WaterBalanceResult,
)
from .models.terrain import count_reasons
from .orchestrator import BatchReport, build_ensemble_summaries, run_scenarios
from .summary import AnnualSummary, ensemble_mean, multi_year_mean
from .timeseries import calculate_timeseries
from .wb_logging import get_logger

logger = get_logger(__name__)


def validate_inputs(
    site: SiteConfig,
    config: ModelConfig | None = None,
    sources: list[ClimateSource] | None = None,
) -> list[str]:
    """
    Check a site's inputs without running the water balance.

    Loads every raster (verifying co-registration), computes the exclusion
    raster, and parses the climate table of each requested source.

    Args:
        site: Site to check.
        config: Model configuration; supplies the slope cutoff and strict mode.
        sources: Climate sources to check. Defaults to the historical record.

    Returns:
        Non-fatal warnings (e.g. share of excluded cells).

    Raises:
        InputDataError: For missing, misaligned, or malformed inputs.
        NoValidCellsError: If every cell would be excluded.
        DomainRangeError: Strict mode only, for out-of-range cells.
    """
    config = config or ModelConfig()
    sources = sources or [ClimateSource.historical()]
    warnings: list[str] = []

    terrain = TerrainGrid.from_site(site, whc_scale=config.whc_scale)
    reasons = terrain.exclusion_reasons(config.max_slope_deg, strict=config.strict)
    n_excluded = int(np.count_nonzero(reasons))
    if n_excluded == terrain.n_cells:
        raise NoValidCellsError(terrain.n_cells, count_reasons(reasons))
    if n_excluded:
        pct = 100.0 * n_excluded / terrain.n_cells
        warnings.append(f"{n_excluded} of {terrain.n_cells} cells ({pct:.1f}%) will be excluded")

    for source in sources:
        path = site.climate_path(source.model, source.scenario)
        climate = ClimateSeries.from_csv(path, source=source, columns=site.climate_columns)
        partial = [y for y in (climate.dates[0].year, climate.dates[-1].year) if _is_partial(climate, y)]
        if partial:
            warnings.append(f"{source.label}: partial year(s) {sorted(set(partial))} at the ends of the record")

    for w in warnings:
        logger.warning(w)
    return warnings


def _is_partial(climate: ClimateSeries, year: int) -> bool:
    days = int(np.count_nonzero(climate.dates.year == year))
    return days < (366 if calendar.isleap(year) else 365)


def calculate_site(
    site: SiteConfig,
    source: ClimateSource | None = None,
    config: ModelConfig | None = None,
    output_dir: str | Path | None = None,
    **kwargs,
) -> WaterBalanceResult:
    """
    Load one site's inputs and run the water balance for one climate source.

    Args:
        site: Site inputs.
        source: Climate source. Defaults to the historical record.
        config: Model configuration.
        output_dir: Where to write artifacts, if anywhere.
        **kwargs: Passed to :func:`calculate_timeseries`.

    Raises:
        InputDataError: For missing or malformed inputs.
    """
    config = config or ModelConfig()
    source = source or ClimateSource.historical()
    terrain = TerrainGrid.from_site(site, whc_scale=config.whc_scale)
    climate = ClimateSeries.from_csv(
        site.climate_path(source.model, source.scenario), source=source, columns=site.climate_columns
    )
    return calculate_timeseries(
        terrain,
        climate,
        climate_elevation_m=site.climate_elevation_m,
        config=config,
        output_dir=output_dir,
        prefix=f"{site.name}_{source.label}",
        **kwargs,
    )


__all__ = [
    "AnnualSummary",
    "BatchConfig",
    "BatchReport",
    "ClimateSeries",
    "ClimateSource",
    "InputDataError",
    "ModelConfig",
    "SiteConfig",
    "TerrainGrid",
    "WaterBalanceResult",
    "build_ensemble_summaries",
    "calculate_site",
    "calculate_timeseries",
    "create_run_metadata",
    "ensemble_mean",
    "load_params",
    "load_run_metadata",
    "multi_year_mean",
    "run_scenarios",
    "save_run_metadata",
    "validate_inputs",
]
