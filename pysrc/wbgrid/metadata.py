"""Run metadata and provenance tracking."""

from __future__ import annotations

import json
from datetime import datetime as dt
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ClimateSeries, ModelConfig, TerrainGrid


def create_run_metadata(
    terrain: TerrainGrid,
    climate: ClimateSeries,
    config: ModelConfig,
    climate_elevation_m: float,
    n_excluded: int,
    exclusion_counts: dict[str, int],
    guard_counts: dict[str, int],
    years: list[int],
    days_per_year: list[int],
    artifacts: list[str] | None = None,
) -> dict:
    """
    Create run metadata dictionary for provenance tracking.

    Args:
        terrain: Site grid the run used.
        climate: Climate series the run consumed.
        config: Model configuration.
        climate_elevation_m: Elevation of the climate point.
        n_excluded: Cells left out of the run.
        exclusion_counts: Excluded cells per reason (a cell may carry several).
        guard_counts: Clamped negative values per variable.
        years: Calendar years summarised.
        days_per_year: Simulated days in each year.
        artifacts: Files written by the run.

    Returns:
        Dictionary containing run metadata.
    """
    from . import __version__

    return {
        "wbgrid_version": __version__,
        "run_timestamp": dt.now().isoformat(),
        "site": terrain.name,
        "source": {"model": climate.source.model, "scenario": climate.source.scenario},
        "grid": {
            "rows": terrain.shape[0],
            "cols": terrain.shape[1],
            "transform": terrain.transform,
            "crs": terrain.crs_wkt,
        },
        "period": {
            "start": climate.dates[0].date().isoformat(),
            "end": climate.dates[-1].date().isoformat(),
            "days": len(climate),
            "years": years,
            "days_per_year": days_per_year,
        },
        "climate_elevation_m": climate_elevation_m,
        "config": config.to_dict(),
        "exclusions": {"excluded_cells": int(n_excluded), "by_reason": exclusion_counts},
        "numeric_guards": guard_counts,
        "artifacts": list(artifacts or []),
    }


def save_run_metadata(metadata: dict, output_dir: str | Path, filename: str = "run_metadata.json") -> Path:
    """
    Save run metadata to JSON file.

    Returns:
        Path to saved metadata file.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    metadata_path = output_path / filename

    with open(metadata_path, "w") as f:
        json.dump(metadata, f, indent=2)

    return metadata_path


def load_run_metadata(metadata_path: str | Path) -> dict:
    """Load run metadata from JSON file."""
    with open(metadata_path) as f:
        return json.load(f)
