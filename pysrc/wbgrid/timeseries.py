"""Daily water balance over a full climate series.

Provides :func:`calculate_timeseries`, which corrects point climate to every
simulated cell, advances the soil bucket one day at a time, and accumulates
annual sums. The loop is sequential over days and vectorised over cells.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from .computation import bucket_step, clamp_negative
from .corrector import TopoClimateCorrector
from .metadata import create_run_metadata, save_run_metadata
from .models import DailyBalance, ModelConfig, SoilMoistureState, WaterBalanceResult
from .models.config import VALID_OUTPUTS
from .output_async import DailyStackWriter, async_output_enabled
from .physics.snow import snow_step
from .progress import ProgressReporter
from .summary import AnnualAccumulator
from .wb_logging import get_logger

if TYPE_CHECKING:
    from .models import ClimateSeries, TerrainGrid

logger = get_logger(__name__)


def calculate_timeseries(
    terrain: TerrainGrid,
    climate: ClimateSeries,
    climate_elevation_m: float,
    config: ModelConfig | None = None,
    keep_daily: bool | list[str] = False,
    output_dir: str | Path | None = None,
    prefix: str | None = None,
    show_progress: bool = True,
    progress_callback: Callable[[int, int], None] | None = None,
) -> WaterBalanceResult:
    """
    Run the water balance for one site and one climate source.

    Storage starts at WHC and is carried strictly in date order. Cells that
    are missing inputs, steeper than ``config.max_slope_deg``, or masked by
    the caller are excluded and stay NaN in every output.

    Args:
        terrain: Site terrain and soil grid.
        climate: Daily point climate series.
        climate_elevation_m: Elevation (m) of the point the climate describes.
        config: Model configuration. Defaults to ``ModelConfig()``.
        keep_daily: Retain per-cell daily values in memory. True keeps every
            variable; a list keeps only those named.
        output_dir: If given, annual GeoTIFFs, the exclusion raster, run
            metadata, and any ``config.daily_outputs`` stacks are written there.
        prefix: Artifact name prefix. Defaults to ``{site}_{model}_{scenario}``.
        show_progress: Show a tqdm bar over days.
        progress_callback: Optional ``callback(day, n_days)``; replaces the bar.

    Returns:
        :class:`WaterBalanceResult` with annual sums, exclusion raster and counts.

    Raises:
        NoValidCellsError: If every cell is excluded.
        DomainRangeError: Strict mode only, for out-of-range cells.
        NumericGuardError: Strict mode only, for negative precipitation or PET.

    Example:
        result = calculate_timeseries(terrain, climate, climate_elevation_m=2100.0)
        aet_mean = result.annual.mean("aet", 1981, 2010)
    """
    config = config or ModelConfig()
    prefix = prefix or f"{terrain.name}_{climate.source.label}"
    run_log = logger.bind(f"{terrain.name}/{climate.source.model}/{climate.source.scenario}")

    corrector = TopoClimateCorrector(terrain, config, climate_elevation_m)
    exclusion_counts = corrector.exclusion_counts()

    if keep_daily is True:
        daily_vars = list(VALID_OUTPUTS)
    elif keep_daily:
        daily_vars = [v for v in keep_daily if v in VALID_OUTPUTS]
    else:
        daily_vars = []

    # Log configuration summary
    n_days = len(climate)
    run_log.info("=" * 60)
    run_log.info("Starting water balance calculation")
    run_log.info(f"  Grid size: {terrain.shape[1]}×{terrain.shape[0]} cells ({corrector.n_valid} simulated)")
    run_log.info(f"  Days: {n_days}")
    run_log.info(f"  Period: {climate.dates[0].date()} → {climate.dates[-1].date()}")
    run_log.info(f"  PET: {config.pet_method}, lapse rate {config.lapse_rate:.5f} °C/m")
    if corrector.n_excluded:
        detail = ", ".join(f"{k}={v}" for k, v in exclusion_counts.items() if v)
        run_log.info(f"  Excluded cells: {corrector.n_excluded} ({detail})")
    if config.snow.enabled:
        run_log.info(f"  Snow: threshold {config.snow.snow_threshold_c} °C, melt factor {config.snow.melt_factor}")
    if output_dir is not None:
        run_log.info(f"  Auto-save: {output_dir} ({', '.join(config.outputs)})")
    run_log.info("=" * 60)

    output_path = Path(output_dir) if output_dir is not None else None
    whc = corrector.whc
    state = SoilMoistureState.initial(whc)
    accumulator = AnnualAccumulator(corrector.valid_mask, config.outputs)
    guard_counts = {"precip": 0, "pet": 0}
    daily_store: dict[str, np.ndarray] = {v: np.empty((n_days, corrector.n_valid)) for v in daily_vars}

    writer = None
    year_buffer: dict[str, list[np.ndarray]] = {}
    year_dates: list[str] = []
    current_year: int | None = None
    if output_path is not None and config.daily_outputs:
        writer = DailyStackWriter(
            output_path,
            prefix,
            transform=terrain.transform,
            crs_wkt=terrain.crs_wkt,
            storage=config.storage,
            use_async=async_output_enabled(),
        )

    def _flush_year() -> None:
        if writer is None or current_year is None or not year_dates:
            return
        writer.submit(
            current_year,
            list(year_dates),
            {name: np.stack([corrector.scatter(v) for v in days]) for name, days in year_buffer.items()},
        )
        year_buffer.clear()
        year_dates.clear()

    progress = (
        ProgressReporter(total=n_days, desc=f"{terrain.name} {climate.source.label}", callback=progress_callback)
        if show_progress or progress_callback is not None
        else None
    )
    start_time = time.time()

    try:
        for i, day in enumerate(corrector.iter_days(climate)):
            precip, n_neg = clamp_negative(np.asarray(day.precip), "precip", strict=config.strict)
            if n_neg:
                guard_counts["precip"] += n_neg
                run_log.warning(f"Negative precipitation on {day.date} clamped to zero")
            pet, n_neg = clamp_negative(day.pet, "pet", strict=config.strict)
            guard_counts["pet"] += n_neg

            if config.snow.enabled:
                water_input, state.snowpack, _ = snow_step(
                    np.broadcast_to(precip, pet.shape),
                    day.tmean,
                    state.snowpack,
                    config.snow.snow_threshold_c,
                    config.snow.melt_base_c,
                    config.snow.melt_factor,
                )
            else:
                water_input = np.broadcast_to(precip, pet.shape)

            step = bucket_step(water_input, pet, state.storage, whc)
            state.storage = step.storage

            balance = DailyBalance(
                date=day.date,
                pet=pet,
                water_input=water_input,
                aet=step.aet,
                cwd=step.cwd,
                storage=step.storage,
                surplus=step.surplus,
            )
            accumulator.update(balance)
            for name in daily_vars:
                daily_store[name][i] = balance.get(name)

            if writer is not None:
                if day.date.year != current_year:
                    _flush_year()
                    current_year = day.date.year
                for name in config.daily_outputs:
                    year_buffer.setdefault(name, []).append(np.array(balance.get(name)))
                year_dates.append(day.date.isoformat())

            if progress is not None:
                progress.update(1)
        _flush_year()
    finally:
        if progress is not None:
            progress.close()
        if writer is not None:
            writer.close()

    annual = accumulator.finalize()
    total_time = time.time() - start_time
    if guard_counts["pet"]:
        run_log.warning(f"{guard_counts['pet']} negative PET value(s) clamped to zero")

    result = WaterBalanceResult(
        site=terrain.name,
        source=climate.source,
        annual=annual,
        exclusion=np.asarray(corrector.reasons, dtype=np.uint8),
        exclusion_counts=exclusion_counts,
        guard_counts=guard_counts,
        dates=climate.dates,
        daily=daily_store if daily_vars else None,
        transform=terrain.transform,
        crs_wkt=terrain.crs_wkt,
    )

    # Log summary statistics
    run_log.info("=" * 60)
    run_log.info(f"✓ Calculation complete: {n_days} days, {len(annual)} year(s)")
    run_log.info(f"  Total time: {total_time:.1f}s ({n_days / total_time if total_time > 0 else 0:.0f} days/s)")
    if len(annual) and "aet" in annual.variables:
        with np.errstate(invalid="ignore"):
            run_log.info(f"  Mean annual AET: {np.nanmean(annual['aet']):.1f} mm")
    if len(annual) and "cwd" in annual.variables:
        with np.errstate(invalid="ignore"):
            run_log.info(f"  Mean annual CWD: {np.nanmean(annual['cwd']):.1f} mm")
    run_log.info("=" * 60)

    if output_path is not None:
        result.artifacts = result.to_geotiff(output_path, prefix, storage=config.storage)
        if writer is not None:
            result.artifacts.extend(writer.written)
        metadata = create_run_metadata(
            terrain=terrain,
            climate=climate,
            config=config,
            climate_elevation_m=climate_elevation_m,
            n_excluded=corrector.n_excluded,
            exclusion_counts=exclusion_counts,
            guard_counts=guard_counts,
            years=annual.years,
            days_per_year=annual.days_per_year,
            artifacts=[p.name for p in result.artifacts],
        )
        result.artifacts.append(save_run_metadata(metadata, output_path, filename=f"{prefix}_run_metadata.json"))

    return result
