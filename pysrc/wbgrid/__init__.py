"""wbgrid - Gridded daily soil water balance.

Distributes point daily climate across a terrain grid (elevation lapse
rate, heat-load adjusted PET), runs a single-bucket Thornthwaite-Mather
soil water balance per cell, and summarises actual evapotranspiration (AET)
and climatic water deficit (CWD) by calendar year.

Quick start::

    import wbgrid

    site = wbgrid.SiteConfig(name="yosemite", input_root="data/yosemite", climate_elevation_m=2100.0)
    result = wbgrid.calculate_site(site, output_dir="out/yosemite")
    print(f"CWD 1981-2010: {result.annual.mean('cwd', 1981, 2010).mean():.1f} mm")

Batch runs::

    batch = wbgrid.BatchConfig.load("batch.json")
    report = wbgrid.run_scenarios(batch)
    wbgrid.build_ensemble_summaries(batch, report)
"""

from importlib.metadata import PackageNotFoundError, version

# Version: single source of truth is pyproject.toml
try:
    __version__ = version("wbgrid")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for source checkouts without metadata

from . import io, physics, progress  # noqa: E402
from .api import (  # noqa: E402
    AnnualSummary,
    BatchConfig,
    BatchReport,
    ClimateSeries,
    ClimateSource,
    ModelConfig,
    SiteConfig,
    TerrainGrid,
    WaterBalanceResult,
    # Runs
    build_ensemble_summaries,
    calculate_site,
    calculate_timeseries,
    # Run metadata/provenance
    create_run_metadata,
    # Reductions
    ensemble_mean,
    load_params,
    load_run_metadata,
    multi_year_mean,
    run_scenarios,
    save_run_metadata,
    # Validation
    validate_inputs,
)
from .errors import WaterBalanceError  # noqa: E402
from .models import SnowConfig  # noqa: E402

__all__ = [
    # Version
    "__version__",
    # Core API
    "SiteConfig",
    "ModelConfig",
    "SnowConfig",
    "BatchConfig",
    "TerrainGrid",
    "ClimateSource",
    "ClimateSeries",
    "WaterBalanceResult",
    "AnnualSummary",
    "BatchReport",
    "WaterBalanceError",
    "calculate_timeseries",
    "calculate_site",
    "run_scenarios",
    "build_ensemble_summaries",
    "validate_inputs",
    "load_params",
    # Reductions
    "multi_year_mean",
    "ensemble_mean",
    # Run metadata/provenance
    "create_run_metadata",
    "save_run_metadata",
    "load_run_metadata",
    # Utility modules
    "io",
    "physics",
    "progress",
]
