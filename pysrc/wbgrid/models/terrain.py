"""Per-site terrain and soil grid."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ..errors import DomainRangeError, GridShapeMismatch, InputDataError
from ..wb_logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .config import SiteConfig

logger = get_logger(__name__)

RASTER_SUFFIXES = (".tif", ".tiff", ".vrt", ".img")


class ExclusionReason(IntFlag):
    """Why a cell is left out of the water balance. Stored as a uint8 bitfield."""

    NONE = 0
    MISSING_ELEVATION = 1
    MISSING_SLOPE = 2
    MISSING_ASPECT = 4
    MISSING_WHC = 8
    STEEP_SLOPE = 16
    INVALID_WHC = 32
    SOIL_MASK = 64


def count_reasons(reasons: NDArray[np.uint8]) -> dict[str, int]:
    """Number of cells carrying each exclusion reason (a cell may carry several)."""
    return {
        flag.name.lower(): int(np.count_nonzero(reasons & flag.value))
        for flag in ExclusionReason
        if flag is not ExclusionReason.NONE
    }


@dataclass
class TerrainGrid:
    """
    Co-registered terrain and soil rasters for one site.

    Built once per site and reused, read-only, for every climate source.

    Attributes:
        elevation: Elevation grid (m).
        slope: Slope (degrees).
        aspect: Aspect (degrees clockwise from north). NaN is accepted on
            cells with zero slope, where aspect is undefined.
        whc: Soil water holding capacity (mm).
        latitude: Per-cell latitude (degrees).
        transform: GDAL-style geotransform, or None for array-only grids.
        crs_wkt: CRS as WKT, or None.
        exclusion_mask: Caller-supplied mask (True = excluded), e.g. soil
            units with undefined depth.
        name: Site name, for logging.

    Example:
        >>> terrain = TerrainGrid.from_arrays(
        ...     elevation=dem, slope=slope, aspect=aspect, whc=whc, latitude=44.5
        ... )
        >>> reasons = terrain.exclusion_reasons(max_slope_deg=60.0)
    """

    elevation: NDArray[np.float64]
    slope: NDArray[np.float64]
    aspect: NDArray[np.float64]
    whc: NDArray[np.float64]
    latitude: NDArray[np.float64]
    transform: list[float] | None = None
    crs_wkt: str | None = None
    exclusion_mask: NDArray[np.bool_] | None = None
    name: str = "site"
    _reasons_cache: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.elevation = np.array(self.elevation, dtype=np.float64)
        if self.elevation.ndim != 2:
            raise InputDataError(
                f"Elevation must be a 2D grid, got {self.elevation.ndim}D", field="elevation", reason="shape"
            )
        shape = self.elevation.shape
        lat = np.asarray(self.latitude, dtype=np.float64)
        self.latitude = np.broadcast_to(lat, shape).copy() if lat.ndim == 0 else lat
        for name in ("slope", "aspect", "whc", "latitude"):
            arr = np.array(getattr(self, name), dtype=np.float64)
            if arr.shape != shape:
                raise GridShapeMismatch(name, shape, arr.shape)
            setattr(self, name, arr)
        if self.exclusion_mask is not None:
            mask = np.array(self.exclusion_mask, dtype=bool)
            if mask.shape != shape:
                raise GridShapeMismatch("exclusion_mask", shape, mask.shape)
            self.exclusion_mask = mask
        if np.nanmax(np.abs(self.latitude), initial=0.0) > 90.0:
            raise InputDataError("Latitude values outside [-90, 90]", field="latitude", reason="range")
        for name in ("elevation", "slope", "aspect", "whc", "latitude", "exclusion_mask"):
            arr = getattr(self, name)
            if arr is not None:
                arr.setflags(write=False)

    @property
    def shape(self) -> tuple[int, int]:
        return self.elevation.shape

    @property
    def n_cells(self) -> int:
        return int(self.elevation.size)

    def exclusion_reasons(self, max_slope_deg: float = 60.0, strict: bool = False) -> NDArray[np.uint8]:
        """
        Exclusion bitfield per cell (0 = simulated).

        Combines input validation (missing values, slope beyond
        ``max_slope_deg``, negative WHC) with the caller-supplied mask; each
        reason is recorded separately.

        Raises:
            DomainRangeError: In strict mode, when any cell is too steep or has invalid WHC.
        """
        key = (float(max_slope_deg), bool(strict))
        if key in self._reasons_cache:
            return self._reasons_cache[key]

        reasons = np.zeros(self.shape, dtype=np.uint8)
        flat = self.slope == 0.0

        def _mark(cond, flag: ExclusionReason) -> None:
            reasons[cond] |= np.uint8(flag.value)

        _mark(~np.isfinite(self.elevation), ExclusionReason.MISSING_ELEVATION)
        _mark(~np.isfinite(self.slope), ExclusionReason.MISSING_SLOPE)
        _mark(~np.isfinite(self.aspect) & ~flat, ExclusionReason.MISSING_ASPECT)
        _mark(~np.isfinite(self.whc), ExclusionReason.MISSING_WHC)
        with np.errstate(invalid="ignore"):
            steep = self.slope > max_slope_deg
            bad_whc = self.whc < 0
        _mark(steep, ExclusionReason.STEEP_SLOPE)
        _mark(bad_whc, ExclusionReason.INVALID_WHC)
        if self.exclusion_mask is not None:
            _mark(self.exclusion_mask, ExclusionReason.SOIL_MASK)

        if strict:
            n_steep = int(np.count_nonzero(steep))
            if n_steep:
                raise DomainRangeError("slope", n_steep, f"slope exceeds {max_slope_deg:g}°")
            n_bad = int(np.count_nonzero(bad_whc | ~np.isfinite(self.whc)))
            if n_bad:
                raise DomainRangeError("whc", n_bad, "water holding capacity is missing or negative")

        reasons.setflags(write=False)
        self._reasons_cache[key] = reasons
        return reasons

    @classmethod
    def from_arrays(
        cls,
        elevation,
        slope,
        aspect,
        whc,
        latitude,
        transform: list[float] | None = None,
        crs_wkt: str | None = None,
        exclusion_mask=None,
        name: str = "site",
    ) -> TerrainGrid:
        """Build a grid from in-memory arrays. ``latitude`` may be a scalar."""
        return cls(
            elevation=elevation,
            slope=slope,
            aspect=aspect,
            whc=whc,
            latitude=latitude,
            transform=transform,
            crs_wkt=crs_wkt,
            exclusion_mask=exclusion_mask,
            name=name,
        )

    @classmethod
    def from_site(cls, site: SiteConfig, whc_scale: float = 1.0) -> TerrainGrid:
        """
        Load a site's terrain and soil rasters.

        Every raster must share the elevation grid. Slope and aspect are
        derived from elevation (Horn's method) when the site configures
        neither.

        Raises:
            InputDataError: Missing file, CRS that cannot supply latitude, or
                a raster on a different grid.
        """
        from .. import io
        from ..physics.terrain import horn_slope_aspect
        from ..utils import pixel_centers, pixel_size_from_transform, transforms_match

        logger.info(f"Loading terrain for site '{site.name}'...")
        elev_path = site.resolve(site.elevation)
        elevation, transform, crs_wkt, _ = _load(io, elev_path, "elevation", site.bbox)
        logger.info(f"  Elevation: {elevation.shape[1]}×{elevation.shape[0]} cells")

        def _load_matching(relative: str, field_name: str):
            path = site.resolve(relative)
            arr, trf, _, _ = _load(io, path, field_name, site.bbox)
            if arr.shape != elevation.shape:
                raise GridShapeMismatch(field_name, elevation.shape, arr.shape)
            if not transforms_match(trf, transform):
                raise InputDataError(
                    f"'{field_name}' is not co-registered with the elevation grid: {trf} vs {transform}",
                    field=field_name,
                    path=str(path),
                    reason="transform",
                )
            return arr

        if site.slope is not None:
            slope = _load_matching(site.slope, "slope")
            aspect = _load_matching(site.aspect, "aspect")
            logger.info("  ✓ Slope and aspect loaded")
        else:
            if crs_wkt is None or io.is_geographic(crs_wkt):
                raise InputDataError(
                    "Slope/aspect can only be derived from elevation on a projected grid; "
                    "supply slope and aspect rasters instead",
                    field="slope",
                    path=str(elev_path),
                    reason="crs",
                )
            px_w, px_h = pixel_size_from_transform(transform)
            slope, aspect = horn_slope_aspect(elevation, px_w, px_h)
            logger.info("  → Slope and aspect derived from elevation (Horn)")

        whc = _load_matching(site.whc, "whc") * whc_scale

        exclusion_mask = None
        if site.soil_mask is not None:
            mask_path = site.resolve(site.soil_mask)
            if mask_path.suffix.lower() in RASTER_SUFFIXES:
                mask_arr = _load_matching(site.soil_mask, "soil_mask")
                exclusion_mask = np.nan_to_num(mask_arr, nan=0.0) != 0
            else:
                try:
                    exclusion_mask = io.read_vector_mask(mask_path, transform, elevation.shape, crs_wkt)
                except FileNotFoundError as e:
                    raise InputDataError(str(e), field="soil_mask", path=str(mask_path), reason="missing_file") from e
            logger.info(f"  ✓ Soil exclusion mask: {int(exclusion_mask.sum())} cells")

        if crs_wkt is not None:
            x, y = pixel_centers(transform, elevation.shape)
            _, latitude = io.xy_to_lnglat(crs_wkt, x, y)
            latitude = np.asarray(latitude, dtype=np.float64)
            logger.info(f"  Latitude from CRS: {np.nanmin(latitude):.3f}° to {np.nanmax(latitude):.3f}°")
        elif site.latitude is not None:
            latitude = site.latitude
            logger.info(f"  → No CRS, using site latitude {site.latitude:.3f}°")
        else:
            raise InputDataError(
                "Elevation raster has no CRS and the site has no latitude configured",
                field="latitude",
                path=str(elev_path),
                reason="crs",
            )

        return cls(
            elevation=elevation,
            slope=slope,
            aspect=aspect,
            whc=whc,
            latitude=latitude,
            transform=transform,
            crs_wkt=crs_wkt,
            exclusion_mask=exclusion_mask,
            name=site.name,
        )


def _load(io, path: Path, field_name: str, bbox):
    try:
        return io.load_raster(path, bbox=list(bbox) if bbox is not None else None)
    except OSError as e:
        raise InputDataError(
            f"Could not read {field_name} raster {path}: {e}", field=field_name, path=str(path), reason="missing_file"
        ) from e
    except ValueError as e:
        raise InputDataError(
            f"Malformed {field_name} raster {path}: {e}", field=field_name, path=str(path), reason="malformed"
        ) from e
