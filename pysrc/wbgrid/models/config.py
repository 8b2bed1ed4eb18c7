"""Model, site, and batch configuration classes."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path

from ..constants import (
    DEFAULT_LAPSE_RATE,
    DEFAULT_MELT_BASE_C,
    DEFAULT_MELT_FACTOR,
    DEFAULT_SNOW_THRESHOLD_C,
    HAMON_KPEC,
    MAX_HEAT_LOAD_SLOPE_DEG,
)
from ..errors import ConfigurationError
from ..wb_logging import get_logger

logger = get_logger(__name__)

VALID_OUTPUTS = ("aet", "cwd", "pet", "surplus", "water_input", "storage")
ANNUAL_OUTPUTS = ("aet", "cwd", "pet", "surplus", "water_input")
VALID_STORAGE = ("scaled_int", "float")
VALID_EXECUTORS = ("process", "thread")


def _write_json(path: str | Path, data: dict, label: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Saved {label} to {path}")
    return path


def _read_json(path: str | Path) -> dict:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path) as f:
        return json.load(f)


@dataclass
class SnowConfig:
    """
    Degree-day snowpack settings.

    Attributes:
        enabled: Route precipitation through a snowpack. Default False, in
            which case the daily water input is exactly the precipitation.
        snow_threshold_c: Precipitation falls as snow at or below this mean temperature.
        melt_base_c: Melt starts above this mean temperature.
        melt_factor: Melt rate in mm per °C per day.
    """

    enabled: bool = False
    snow_threshold_c: float = DEFAULT_SNOW_THRESHOLD_C
    melt_base_c: float = DEFAULT_MELT_BASE_C
    melt_factor: float = DEFAULT_MELT_FACTOR

    def __post_init__(self):
        if self.melt_factor < 0:
            raise ConfigurationError("snow.melt_factor", f"must be >= 0, got {self.melt_factor}")


@dataclass
class ModelConfig:
    """
    Model configuration for water balance runs.

    Pure configuration, no paths or data. One instance is shared by every
    run in a batch.

    Attributes:
        pet_method: "hamon" (default) or "oudin".
        hamon_kpec: Hamon calibration coefficient.
        lapse_rate: Temperature lapse rate (°C/m). Default is the mean of the
            north- and south-slope rates; it is not varied by aspect.
        max_slope_deg: Cells steeper than this are excluded. Cannot exceed 60,
            the limit of the heat load regression.
        normalize_heat_load: Divide heat load by the flat-cell value at the
            same latitude so flat terrain has multiplier 1.
        outputs: Variables summed per year and written to disk.
        daily_outputs: Variables additionally written as per-year daily stacks.
        storage: "scaled_int" (mm × 10 truncated, int32) or "float" (float32 mm).
        whc_scale: Multiplier applied to the WHC raster (e.g. unit conversion).
        snow: Degree-day snowpack settings.
        strict: Raise instead of excluding out-of-range cells and clamping
            negative PET / precipitation.

    Examples:
        >>> config = ModelConfig(pet_method="oudin", outputs=["aet", "cwd", "pet"])
        >>> config.save("model.json")
        >>> ModelConfig.load("model.json").pet_method
        'oudin'
    """

    pet_method: str = "hamon"
    hamon_kpec: float = HAMON_KPEC
    lapse_rate: float = DEFAULT_LAPSE_RATE
    max_slope_deg: float = MAX_HEAT_LOAD_SLOPE_DEG
    normalize_heat_load: bool = True
    outputs: list[str] = field(default_factory=lambda: ["aet", "cwd"])
    daily_outputs: list[str] = field(default_factory=list)
    storage: str = "scaled_int"
    whc_scale: float = 1.0
    snow: SnowConfig = field(default_factory=SnowConfig)
    strict: bool = False

    def __post_init__(self):
        if isinstance(self.snow, dict):
            self.snow = SnowConfig(**self.snow)
        if self.pet_method not in ("hamon", "oudin"):
            raise ConfigurationError("pet_method", f"must be 'hamon' or 'oudin', got '{self.pet_method}'")
        if not 0 < self.max_slope_deg <= MAX_HEAT_LOAD_SLOPE_DEG:
            raise ConfigurationError(
                "max_slope_deg",
                f"must be in (0, {MAX_HEAT_LOAD_SLOPE_DEG:g}], got {self.max_slope_deg}; "
                "the heat load equation is not defined beyond that",
            )
        if self.lapse_rate > 0:
            logger.warning(f"Positive lapse rate {self.lapse_rate} °C/m: temperature will increase with elevation")
        unknown = [o for o in self.outputs if o not in ANNUAL_OUTPUTS]
        if unknown or not self.outputs:
            raise ConfigurationError("outputs", f"must be a non-empty subset of {ANNUAL_OUTPUTS}, got {self.outputs}")
        unknown = [o for o in self.daily_outputs if o not in VALID_OUTPUTS]
        if unknown:
            raise ConfigurationError("daily_outputs", f"unknown variable(s) {unknown}; valid: {VALID_OUTPUTS}")
        if self.storage not in VALID_STORAGE:
            raise ConfigurationError("storage", f"must be one of {VALID_STORAGE}, got '{self.storage}'")
        if self.whc_scale <= 0:
            raise ConfigurationError("whc_scale", f"must be > 0, got {self.whc_scale}")

    @classmethod
    def defaults(cls) -> ModelConfig:
        """Standard configuration: Hamon PET, mean lapse rate, AET and CWD, ×10 integer storage."""
        return cls()

    @classmethod
    def from_params(cls, params) -> ModelConfig:
        """
        Build a configuration from a parameters namespace (see ``load_params``).

        Example:
            >>> from wbgrid.config import load_params
            >>> config = ModelConfig.from_params(load_params())
        """
        lapse = params.Lapse_rate.Value
        snow = params.Snow.Value
        return cls(
            pet_method=params.PET.Value.method,
            hamon_kpec=params.PET.Value.hamon_kpec,
            lapse_rate=(lapse.north_slope + lapse.south_slope) / 2.0,
            max_slope_deg=params.Heat_load.Value.max_slope_deg,
            normalize_heat_load=params.Heat_load.Value.normalize_to_flat,
            storage=params.Storage.Value.mode,
            snow=SnowConfig(
                enabled=snow.enabled,
                snow_threshold_c=snow.snow_threshold_c,
                melt_base_c=snow.melt_base_c,
                melt_factor=snow.melt_factor,
            ),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def save(self, path: str | Path) -> Path:
        """Save configuration to a JSON file."""
        return _write_json(path, self.to_dict(), "model configuration")

    @classmethod
    def load(cls, path: str | Path) -> ModelConfig:
        """Load configuration from a JSON file written by :meth:`save`."""
        return cls(**_read_json(path))


@dataclass(frozen=True)
class SiteConfig:
    """
    Input locations and point-climate metadata for one site.

    Raster paths are relative to ``input_root``. Slope and aspect are
    optional: when both are missing they are derived from the elevation
    grid (projected CRS only).

    Attributes:
        name: Site identifier used in artifact names.
        input_root: Directory holding the site's inputs.
        climate_elevation_m: Elevation (m) of the point the climate series describes.
        latitude: Latitude (degrees) used for PET when the grid CRS cannot
            provide per-cell latitude. Ignored when the CRS is known.
        elevation: Elevation raster path.
        slope: Slope raster path (degrees), or None to derive.
        aspect: Aspect raster path (degrees clockwise from north), or None to derive.
        whc: Water holding capacity raster path (mm).
        soil_mask: Optional exclusion polygons (vector) or raster (non-zero = excluded).
        climate_dir: Directory of climate tables, relative to ``input_root``.
        climate_columns: Optional column-name mapping for climate tables.
        bbox: Optional [minx, miny, maxx, maxy] crop in the raster CRS.
    """

    name: str
    input_root: str
    climate_elevation_m: float
    latitude: float | None = None
    elevation: str = "terrain/elevation.tif"
    slope: str | None = "terrain/slope.tif"
    aspect: str | None = "terrain/aspect.tif"
    whc: str = "soil/whc.tif"
    soil_mask: str | None = None
    climate_dir: str = "climate"
    climate_columns: dict | None = None
    bbox: tuple | None = None

    def __post_init__(self):
        if not self.name or "/" in self.name or "\\" in self.name:
            raise ConfigurationError(
                "site.name", f"must be a non-empty name without path separators, got '{self.name}'"
            )
        if self.latitude is not None and not -90.0 <= self.latitude <= 90.0:
            raise ConfigurationError("site.latitude", f"must be within [-90, 90], got {self.latitude}")
        if (self.slope is None) != (self.aspect is None):
            raise ConfigurationError("site.slope/aspect", "provide both slope and aspect rasters, or neither")

    def resolve(self, relative: str | None) -> Path | None:
        """Absolute path of an input, or None when the input is not configured."""
        if relative is None:
            return None
        return Path(self.input_root) / relative

    def climate_path(self, model: str, scenario: str) -> Path:
        """Climate table for a source: ``historical.csv`` or ``{model}_{scenario}.csv``."""
        stem = "historical" if model == "historical" else f"{model}_{scenario}"
        return Path(self.input_root) / self.climate_dir / f"{stem}.csv"

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["bbox"] is not None:
            data["bbox"] = list(data["bbox"])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SiteConfig:
        data = dict(data)
        if data.get("bbox") is not None:
            data["bbox"] = tuple(data["bbox"])
        return cls(**data)


@dataclass
class BatchConfig:
    """
    Set of (site, climate source) runs to execute.

    Sources are {historical} ∪ (gcms × scenarios), or ``pairs`` when not
    every combination exists.

    Attributes:
        sites: Sites to simulate.
        output_root: Artifacts are written to ``{output_root}/{site}/``.
        gcms: Climate model names.
        scenarios: Emissions scenario names.
        pairs: Explicit (gcm, scenario) pairs; overrides the gcms × scenarios product.
        include_historical: Also run the observed record.
        model: Model configuration shared by every run.
        max_workers: Parallel runs. None picks from CPU count and memory.
        executor: "process" (default) or "thread".
        queue_depth: Extra submitted runs beyond active workers. None = one per worker.
        overwrite: Re-run sources whose artifacts already exist.
    """

    sites: list[SiteConfig]
    output_root: str
    gcms: list[str] = field(default_factory=list)
    scenarios: list[str] = field(default_factory=list)
    pairs: list[tuple[str, str]] | None = None
    include_historical: bool = True
    model: ModelConfig = field(default_factory=ModelConfig)
    max_workers: int | None = None
    executor: str = "process"
    queue_depth: int | None = None
    overwrite: bool = False

    def __post_init__(self):
        self.sites = [SiteConfig.from_dict(s) if isinstance(s, dict) else s for s in self.sites]
        if isinstance(self.model, dict):
            self.model = ModelConfig(**self.model)
        if self.pairs is not None:
            self.pairs = [tuple(p) for p in self.pairs]
            bad = [p for p in self.pairs if len(p) != 2]
            if bad:
                raise ConfigurationError("pairs", f"each pair must be (gcm, scenario), got {bad}")
        if not self.sites:
            raise ConfigurationError("sites", "at least one site is required")
        names = [s.name for s in self.sites]
        if len(set(names)) != len(names):
            raise ConfigurationError("sites", f"site names must be unique, got {names}")
        if self.executor not in VALID_EXECUTORS:
            raise ConfigurationError("executor", f"must be one of {VALID_EXECUTORS}, got '{self.executor}'")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError("max_workers", f"must be >= 1, got {self.max_workers}")
        if self.queue_depth is not None and self.queue_depth < 0:
            raise ConfigurationError("queue_depth", f"must be >= 0, got {self.queue_depth}")

    def save(self, path: str | Path) -> Path:
        data = {
            "sites": [s.to_dict() for s in self.sites],
            "output_root": self.output_root,
            "gcms": self.gcms,
            "scenarios": self.scenarios,
            "pairs": [list(p) for p in self.pairs] if self.pairs is not None else None,
            "include_historical": self.include_historical,
            "model": self.model.to_dict(),
            "max_workers": self.max_workers,
            "executor": self.executor,
            "queue_depth": self.queue_depth,
            "overwrite": self.overwrite,
        }
        return _write_json(path, data, "batch configuration")

    @classmethod
    def load(cls, path: str | Path) -> BatchConfig:
        return cls(**_read_json(path))
