"""Fan-out of (site, climate source) runs over a bounded worker pool.

Each run is an independent task: it loads its own inputs, writes uniquely
named artifacts under ``{output_root}/{site}/``, and reports a
:class:`RunOutcome`. A failed run is recorded and its partial artifacts
removed; the batch continues. The orchestrator itself does no numerics.
"""

from __future__ import annotations

import json
import os
import re
import threading
import time
from concurrent.futures import BrokenExecutor, Future, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from datetime import datetime as dt
from itertools import product
from pathlib import Path

from .errors import ConfigurationError, WaterBalanceError
from .io import get_raster_metadata, partial_path
from .models.climate import HISTORICAL, ClimateSeries, ClimateSource
from .models.config import BatchConfig, ModelConfig, SiteConfig
from .models.terrain import TerrainGrid
from .progress import ProgressReporter
from .summary import EnsembleSummary, ensemble_mean, read_annual_artifact
from .timeseries import calculate_timeseries
from .wb_logging import get_logger

logger = get_logger(__name__)

_RAM_FRACTION = 0.50  # Use at most half of physical RAM for concurrent runs
_WORKING_ARRAYS = 24  # float64 per-cell arrays alive during a run
_ASSUMED_YEARS = 100  # annual bands held per summarised variable
_MAX_AUTO_WORKERS = 16

RESERVED_MODEL_NAMES = (HISTORICAL, "ensemble")


# =============================================================================
# Tasks
# =============================================================================


@dataclass
class ScenarioTask:
    """
    One (site, climate source) run.

    Attributes:
        site: Site inputs.
        source: Climate source.
        output_root: Root directory for artifacts.
        model: Model configuration.
        overwrite: Re-run even when the artifacts already exist.
    """

    site: SiteConfig
    source: ClimateSource
    output_root: str
    model: ModelConfig
    overwrite: bool = False

    @property
    def prefix(self) -> str:
        """``{site}_{model}_{scenario}``; unique per task within a batch."""
        return f"{self.site.name}_{self.source.model}_{self.source.scenario}"

    @property
    def output_dir(self) -> Path:
        return Path(self.output_root) / self.site.name

    @property
    def label(self) -> str:
        return f"{self.site.name}/{self.source.model}/{self.source.scenario}"

    def artifact_path(self, variable: str) -> Path:
        """``{output_root}/{site}/{site}_{model}_{scenario}_{variable}.tif``"""
        return self.output_dir / f"{self.prefix}_{variable}.tif"

    @property
    def metadata_path(self) -> Path:
        return self.output_dir / f"{self.prefix}_run_metadata.json"

    def expected_artifacts(self) -> list[Path]:
        """Files a completed run leaves behind (daily stacks excluded)."""
        paths = [self.artifact_path(v) for v in self.model.outputs]
        paths.append(self.artifact_path("exclusion"))
        paths.append(self.metadata_path)
        return paths

    def is_complete(self) -> bool:
        return all(p.exists() for p in self.expected_artifacts())

    def remove_artifacts(self) -> list[Path]:
        """Delete this task's artifacts, including half-written ones. Returns what was removed."""
        candidates = []
        for path in self.expected_artifacts():
            candidates.extend([path, partial_path(path)])
        daily_dir = self.output_dir / "daily"
        if daily_dir.is_dir() and self.model.daily_outputs:
            names = "|".join(re.escape(n) for n in self.model.daily_outputs)
            pattern = re.compile(rf"{re.escape(self.prefix)}_({names})_\d{{4}}(\.partial)?\.tif$")
            candidates.extend(p for p in daily_dir.iterdir() if pattern.match(p.name))
        removed = []
        for path in candidates:
            if path.exists():
                path.unlink()
                removed.append(path)
        return removed


def enumerate_tasks(batch: BatchConfig) -> list[ScenarioTask]:
    """
    Expand a batch into tasks: sites × ({historical} ∪ sources).

    Sources are ``batch.pairs`` when given, else ``gcms × scenarios``.
    Duplicate pairs are dropped. GCM and scenario names may not contain
    ``_``, which joins them in artifact names.

    Raises:
        ConfigurationError: If a name is reserved or malformed, two tasks
            would write the same artifact, or no source is configured.
    """
    pairs = list(batch.pairs) if batch.pairs is not None else list(product(batch.gcms, batch.scenarios))
    seen: set[tuple[str, str]] = set()
    unique_pairs = []
    for gcm, scenario in pairs:
        if gcm in RESERVED_MODEL_NAMES or scenario == HISTORICAL:
            raise ConfigurationError("gcms", f"'{gcm}/{scenario}' uses a reserved name {RESERVED_MODEL_NAMES}")
        for parameter, name in (("gcms", gcm), ("scenarios", scenario)):
            if any(sep in name for sep in ("/", "\\")):
                raise ConfigurationError(parameter, f"'{name}' contains a path separator")
            if "_" in name:
                raise ConfigurationError(parameter, f"'{name}' contains '_', the artifact name separator")
        if (gcm, scenario) not in seen:
            seen.add((gcm, scenario))
            unique_pairs.append((gcm, scenario))

    sources = [ClimateSource.historical()] if batch.include_historical else []
    sources.extend(ClimateSource(gcm, scenario) for gcm, scenario in unique_pairs)
    if not sources:
        raise ConfigurationError("scenarios", "no climate sources: enable include_historical or give gcms/scenarios")

    tasks = [
        ScenarioTask(
            site=site, source=source, output_root=batch.output_root, model=batch.model, overwrite=batch.overwrite
        )
        for site in batch.sites
        for source in sources
    ]

    owners: dict[Path, str] = {}
    for task in tasks:
        path = task.metadata_path.resolve()
        if path in owners:
            raise ConfigurationError("sites", f"{task.label} and {owners[path]} would both write {path}")
        owners[path] = task.label
    return tasks


# =============================================================================
# Outcomes
# =============================================================================


@dataclass
class RunOutcome:
    """
    What happened to one task.

    Attributes:
        site, model, scenario: Task identity.
        status: "ok", "skipped" (artifacts already present), or "failed".
        artifacts: Files written.
        error_type: Exception class name for failures.
        error: Exception message for failures.
        elapsed_s: Wall time of the run.
        n_excluded: Cells left out of the water balance.
        guard_counts: Negative values clamped, per variable.
        years: Calendar years summarised.
    """

    site: str
    model: str
    scenario: str
    status: str
    artifacts: list[str] = field(default_factory=list)
    error_type: str | None = None
    error: str | None = None
    elapsed_s: float = 0.0
    n_excluded: int = 0
    guard_counts: dict[str, int] = field(default_factory=dict)
    years: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in ("ok", "skipped")


@dataclass
class BatchReport:
    """Outcomes of every task in a batch."""

    outcomes: list[RunOutcome] = field(default_factory=list)
    started: str = field(default_factory=lambda: dt.now().isoformat())
    elapsed_s: float = 0.0
    n_workers: int = 1

    @property
    def succeeded(self) -> list[RunOutcome]:
        return [o for o in self.outcomes if o.status == "ok"]

    @property
    def skipped(self) -> list[RunOutcome]:
        return [o for o in self.outcomes if o.status == "skipped"]

    @property
    def failed(self) -> list[RunOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    def report(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Batch: {len(self.outcomes)} run(s) in {self.elapsed_s:.1f}s with {self.n_workers} worker(s)",
            f"  ok: {len(self.succeeded)}, skipped: {len(self.skipped)}, failed: {len(self.failed)}",
        ]
        for o in self.failed:
            lines.append(f"  ✗ {o.site}/{o.model}/{o.scenario}: {o.error_type}: {o.error}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "started": self.started,
            "elapsed_s": self.elapsed_s,
            "n_workers": self.n_workers,
            "outcomes": [asdict(o) for o in self.outcomes],
        }

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        return path

    @classmethod
    def load(cls, path: str | Path) -> BatchReport:
        with open(path) as f:
            data = json.load(f)
        outcomes = [RunOutcome(**o) for o in data.pop("outcomes", [])]
        return cls(outcomes=outcomes, **data)


# =============================================================================
# Running one task
# =============================================================================

_terrain_cache: dict[tuple, TerrainGrid] = {}
_terrain_lock = threading.Lock()


def _input_signature(path: Path | None) -> tuple | None:
    """``(path, mtime_ns, size)`` of an input file, so edited inputs miss the cache."""
    if path is None:
        return None
    try:
        stat = path.stat()
    except OSError:
        return (str(path), None, None)
    return (str(path), stat.st_mtime_ns, stat.st_size)


def _load_terrain(site: SiteConfig, whc_scale: float) -> TerrainGrid:
    """Load a site grid once per worker and batch; grids are read-only and shared by every source of the site."""
    inputs = (site.elevation, site.slope, site.aspect, site.whc, site.soil_mask)
    key = (
        site.name,
        site.latitude,
        tuple(site.bbox) if site.bbox is not None else None,
        whc_scale,
        *(_input_signature(site.resolve(p)) for p in inputs),
    )
    with _terrain_lock:
        terrain = _terrain_cache.get(key)
        if terrain is None:
            terrain = TerrainGrid.from_site(site, whc_scale=whc_scale)
            _terrain_cache[key] = terrain
    return terrain


def clear_terrain_cache() -> None:
    with _terrain_lock:
        _terrain_cache.clear()


def run_task(task: ScenarioTask, show_progress: bool = False) -> RunOutcome:
    """
    Execute one task and report its outcome. Never raises for input or run errors.

    Existing complete artifacts are kept (status "skipped") unless the task
    asks to overwrite. On failure every artifact of the task is removed.
    """
    start = time.time()
    outcome = RunOutcome(site=task.site.name, model=task.source.model, scenario=task.source.scenario, status="ok")

    if not task.overwrite and task.is_complete():
        logger.info(f"[{task.label}] Artifacts exist, skipping")
        outcome.status = "skipped"
        outcome.artifacts = [str(p) for p in task.expected_artifacts()]
        return outcome

    try:
        terrain = _load_terrain(task.site, task.model.whc_scale)
        climate_path = task.site.climate_path(task.source.model, task.source.scenario)
        climate = ClimateSeries.from_csv(climate_path, source=task.source, columns=task.site.climate_columns)
        result = calculate_timeseries(
            terrain,
            climate,
            climate_elevation_m=task.site.climate_elevation_m,
            config=task.model,
            output_dir=task.output_dir,
            prefix=task.prefix,
            show_progress=show_progress,
        )
    except (WaterBalanceError, OSError, ValueError) as e:
        removed = task.remove_artifacts()
        logger.error(f"[{task.label}] Run failed: {type(e).__name__}: {e}")
        if removed:
            logger.info(f"[{task.label}] Removed {len(removed)} partial artifact(s)")
        outcome.status = "failed"
        outcome.error_type = type(e).__name__
        outcome.error = str(e)
    else:
        outcome.artifacts = [str(p) for p in result.artifacts]
        outcome.n_excluded = result.n_excluded
        outcome.guard_counts = dict(result.guard_counts)
        outcome.years = list(result.years)
    outcome.elapsed_s = time.time() - start
    return outcome


# =============================================================================
# Resource detection
# =============================================================================


def _get_total_ram_bytes() -> int | None:
    """Total physical RAM in bytes via ``os.sysconf``, or None where unavailable."""
    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, AttributeError):
        return None
    if pages > 0 and page_size > 0:
        return pages * page_size
    return None


def estimate_task_bytes(site: SiteConfig, model: ModelConfig) -> int | None:
    """Rough peak memory of one run, from the elevation grid size."""
    try:
        meta = get_raster_metadata(site.resolve(site.elevation))
    except OSError:
        return None
    n_cells = meta["rows"] * meta["cols"]
    per_cell = 8 * (_WORKING_ARRAYS + len(model.outputs) * _ASSUMED_YEARS)
    return n_cells * per_cell


def _resolve_workers(max_workers: int | None, n_tasks: int, task_bytes: int | None = None) -> int:
    """
    Worker count: ``max_workers`` or one per CPU, never more than tasks,
    and capped so that concurrent runs fit in half of physical RAM.
    """
    if n_tasks <= 0:
        return 1
    if max_workers is not None and max_workers < 1:
        raise ConfigurationError("max_workers", f"must be >= 1, got {max_workers}")
    if max_workers is None:
        max_workers = max(1, min(_MAX_AUTO_WORKERS, os.cpu_count() or 1))
    workers = max(1, min(max_workers, n_tasks))

    if task_bytes:
        total_ram = _get_total_ram_bytes()
        if total_ram is not None:
            ram_cap = max(1, int(total_ram * _RAM_FRACTION) // task_bytes)
            if ram_cap < workers:
                logger.info(f"Limiting workers to {ram_cap} (est. {task_bytes / 1e9:.2f} GB per run)")
                workers = ram_cap
    return workers


def _resolve_inflight_limit(n_workers: int, n_tasks: int, queue_depth: int | None) -> int:
    """
    Max number of submitted but unfinished tasks: ``n_workers + queue_depth``.

    ``queue_depth`` defaults to one queued task per worker.
    """
    if queue_depth is not None and queue_depth < 0:
        raise ConfigurationError("queue_depth", f"must be >= 0, got {queue_depth}")
    depth = n_workers if queue_depth is None else queue_depth
    return max(1, min(n_tasks, n_workers + depth))


# =============================================================================
# Batch
# =============================================================================


def run_scenarios(
    batch: BatchConfig,
    show_progress: bool = True,
    report_path: str | Path | None = None,
) -> BatchReport:
    """
    Run every (site, climate source) task of a batch.

    Tasks are submitted to a process (default) or thread pool with at most
    ``workers + queue_depth`` in flight; the rest wait their turn. Results
    come back in completion order and the report lists outcomes in task
    order.

    Args:
        batch: What to run and where to write it.
        show_progress: Show a tqdm bar over completed runs.
        report_path: Optional path for the JSON batch report.

    Returns:
        :class:`BatchReport` with one outcome per task.

    Example:
        batch = BatchConfig.load("batch.json")
        report = run_scenarios(batch, report_path="out/batch_report.json")
        print(report.report())
    """
    tasks = enumerate_tasks(batch)
    n_tasks = len(tasks)
    task_bytes = max((estimate_task_bytes(s, batch.model) or 0 for s in batch.sites), default=0) or None
    n_workers = _resolve_workers(batch.max_workers, n_tasks, task_bytes)
    inflight_limit = _resolve_inflight_limit(n_workers, n_tasks, batch.queue_depth)

    logger.info("=" * 60)
    logger.info(f"Starting batch: {len(batch.sites)} site(s), {n_tasks} run(s)")
    logger.info(f"  Output root: {batch.output_root}")
    logger.info(f"  Executor: {batch.executor}, workers={n_workers}, inflight_limit={inflight_limit}")
    if batch.overwrite:
        logger.info("  Overwrite: existing artifacts will be replaced")
    logger.info("=" * 60)

    start = time.time()
    outcomes: dict[int, RunOutcome] = {}
    progress = ProgressReporter(total=n_tasks, desc="Scenario runs", disable=not show_progress)
    executor_cls = ProcessPoolExecutor if batch.executor == "process" else ThreadPoolExecutor

    def _crashed(task: ScenarioTask, e: BaseException) -> RunOutcome:
        logger.error(f"[{task.label}] Worker crashed: {type(e).__name__}: {e}")
        task.remove_artifacts()
        return RunOutcome(
            site=task.site.name,
            model=task.source.model,
            scenario=task.source.scenario,
            status="failed",
            error_type=type(e).__name__,
            error=str(e),
        )

    try:
        with executor_cls(max_workers=n_workers) as executor:
            futures: dict[Future, int] = {}
            next_task = 0

            def _fill() -> None:
                nonlocal next_task
                while next_task < n_tasks and len(futures) < inflight_limit:
                    idx = next_task
                    next_task += 1
                    try:
                        futures[executor.submit(run_task, tasks[idx])] = idx
                    except BrokenExecutor as e:
                        outcomes[idx] = _crashed(tasks[idx], e)
                        progress.update(1)

            _fill()
            while futures:
                future = next(as_completed(futures))
                idx = futures.pop(future)
                try:
                    outcomes[idx] = future.result()
                except Exception as e:
                    outcomes[idx] = _crashed(tasks[idx], e)
                progress.update(1)
                _fill()
    finally:
        progress.close()
        # Thread workers fill this process's cache
        clear_terrain_cache()

    report = BatchReport(
        outcomes=[outcomes[i] for i in range(n_tasks)],
        elapsed_s=time.time() - start,
        n_workers=n_workers,
    )

    logger.info("=" * 60)
    for line in report.report().splitlines():
        logger.info(line)
    logger.info("=" * 60)

    if report_path is not None:
        report.save(report_path)
        logger.info(f"Batch report saved to {report_path}")
    return report


def build_ensemble_summaries(
    batch: BatchConfig,
    report: BatchReport | None = None,
    variables: list[str] | None = None,
    write: bool = True,
) -> list[EnsembleSummary]:
    """
    Multi-model means of annual sums, per site × scenario × variable.

    Members are the GCM runs whose artifacts exist (and, when ``report`` is
    given, that did not fail). Years are restricted to those common to every
    member. Written as ``{site}_ensemble_{scenario}_{variable}.tif``.
    """
    variables = variables or list(batch.model.outputs)
    failed = set()
    if report is not None:
        failed = {(o.site, o.model, o.scenario) for o in report.failed}

    by_group: dict[tuple[str, str], list[ScenarioTask]] = {}
    for task in enumerate_tasks(batch):
        if task.source.is_historical:
            continue
        if (task.site.name, task.source.model, task.source.scenario) in failed:
            continue
        by_group.setdefault((task.site.name, task.source.scenario), []).append(task)

    summaries = []
    for (site_name, scenario), members in by_group.items():
        for variable in variables:
            loaded = []
            for task in members:
                path = task.artifact_path(variable)
                if path.exists():
                    data, years, meta = read_annual_artifact(path)
                    loaded.append((task.source.model, data, years, meta))
            if not loaded:
                logger.warning(f"No {variable} artifacts for {site_name}/{scenario}; skipping ensemble")
                continue
            common = sorted(set.intersection(*(set(years) for _, _, years, _ in loaded)))
            if not common:
                logger.warning(f"Ensemble members for {site_name}/{scenario} share no years; skipping")
                continue
            grids = [data[[years.index(y) for y in common]] for _, data, years, _ in loaded]
            summary = EnsembleSummary(
                site=site_name,
                scenario=scenario,
                variable=variable,
                models=[m for m, _, _, _ in loaded],
                years=common,
                mean=ensemble_mean(grids),
            )
            if write:
                meta = loaded[0][3]
                summary.to_geotiff(
                    Path(batch.output_root) / site_name, meta["transform"], meta["crs"], storage=batch.model.storage
                )
            logger.info(f"Ensemble {site_name}/{scenario}/{variable}: {len(loaded)} model(s), {len(common)} year(s)")
            summaries.append(summary)
    return summaries
