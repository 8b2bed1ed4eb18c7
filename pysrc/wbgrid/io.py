import logging
import math
import os
from pathlib import Path

import numpy as np
import pandas as pd
import pyproj
import rasterio
from rasterio.errors import RasterioError
from rasterio.features import rasterize
from rasterio.transform import Affine
from rasterio.windows import Window
from shapely import geometry

logger = logging.getLogger(__name__)


FLOAT_TOLERANCE = 1e-9
PIXEL_TOLERANCE = 1e-6  # fraction of a cell


def _assert_north_up(transform) -> None:
    """Ensure the raster transform describes a north-up raster."""
    if not math.isclose(transform.b, 0.0, abs_tol=FLOAT_TOLERANCE) or not math.isclose(
        transform.d, 0.0, abs_tol=FLOAT_TOLERANCE
    ):
        raise ValueError("Only north-up rasters (no rotation) are supported.")


def bbox_to_window(bbox, transform: Affine, width: int, height: int) -> Window:
    """
    Pixel window of the whole cells inside ``bbox`` ([minx, miny, maxx, maxy]).

    Edges are snapped inward to the grid, so partly covered edge cells are
    dropped.

    Raises:
        ValueError: If the bbox is malformed, extends past the raster, or
            covers no whole cell.
    """
    try:
        minx, miny, maxx, maxy = (float(v) for v in bbox)
    except (TypeError, ValueError) as exc:
        raise ValueError("Bounding box must contain exactly four numeric values") from exc
    if minx >= maxx or miny >= maxy:
        raise ValueError(f"Bounding box {list(bbox)} is invalid (min must be < max for both axes)")

    col_start = math.ceil((minx - transform.c) / transform.a - PIXEL_TOLERANCE)
    col_stop = math.floor((maxx - transform.c) / transform.a + PIXEL_TOLERANCE)
    row_start = math.ceil((maxy - transform.f) / transform.e - PIXEL_TOLERANCE)
    row_stop = math.floor((miny - transform.f) / transform.e + PIXEL_TOLERANCE)
    if col_start < 0 or row_start < 0 or col_stop > width or row_stop > height:
        raise ValueError(f"Bounding box {list(bbox)} is not fully contained within the raster bounds")
    if col_stop <= col_start or row_stop <= row_start:
        raise ValueError(f"Bounding box {list(bbox)} covers no whole cell of the grid")
    return Window(col_start, row_start, col_stop - col_start, row_stop - row_start)


def check_path(path_str: str | Path, make_dir: bool = False) -> Path:
    # Ensure path exists
    path = Path(path_str).absolute()
    if not path.parent.exists():
        if make_dir:
            path.parent.mkdir(parents=True, exist_ok=True)
        else:
            raise OSError(
                f"Parent directory {path.parent} does not exist for path {path}. Set make_dir=True to create it."
            )
    if not path.exists() and not path.suffix:
        if make_dir:
            path.mkdir(parents=True, exist_ok=True)
        else:
            raise OSError(f"Path {path} does not exist. Set make_dir=True to create it.")
    return path


def partial_path(out_path: Path) -> Path:
    """Sibling path a raster is written to before being moved into place."""
    return out_path.with_name(f"{out_path.stem}.partial{out_path.suffix}")


def save_raster(
    out_path_str: str | Path,
    data_arr: np.ndarray,
    trf_arr: list[float],
    crs_wkt: str | None,
    no_data_val: float | int | None = -9999,
    band_descriptions: list[str] | None = None,
    scale: float | None = None,
    tags: dict | None = None,
):
    """
    Save a single- or multi-band raster to GeoTIFF.

    The file is written next to its destination and moved into place once
    complete, so a reader never sees a half-written artifact.

    Args:
        out_path_str: Output file path
        data_arr: 2D array (rows, cols) or 3D array (bands, rows, cols)
        trf_arr: GDAL-style geotransform [top_left_x, pixel_width, rotation, top_left_y, rotation, pixel_height]
        crs_wkt: CRS in WKT format (or None)
        no_data_val: No-data value to record in the file
        band_descriptions: Optional description per band (e.g. the year)
        scale: Optional GDAL band scale applied by readers (e.g. 0.1 for mm x 10 integers)
        tags: Optional dataset-level metadata tags
    """
    stack = data_arr[np.newaxis, ...] if data_arr.ndim == 2 else data_arr
    if stack.ndim != 3:
        raise ValueError(f"Raster data must be 2D or 3D, got {data_arr.ndim}D")
    count, height, width = stack.shape
    if band_descriptions is not None and len(band_descriptions) != count:
        raise ValueError(f"Got {len(band_descriptions)} band descriptions for {count} bands")

    attempts = 2
    while attempts > 0:
        attempts -= 1
        out_path = check_path(out_path_str, make_dir=True)
        tmp_path = partial_path(out_path)
        try:
            trf = Affine.from_gdal(*trf_arr)
            crs = pyproj.CRS(crs_wkt) if crs_wkt else None
            profile = {
                "driver": "GTiff",
                "height": height,
                "width": width,
                "count": count,
                "dtype": stack.dtype,
                "crs": crs,
                "transform": trf,
                "nodata": no_data_val,
                "compress": "deflate",
            }

            # Tile only grids large enough to hold a full 256 x 256 block
            with rasterio.open(tmp_path, "w", tiled=width >= 256 and height >= 256, **profile) as dst:
                dst.write(stack)
                if band_descriptions is not None:
                    for idx, desc in enumerate(band_descriptions, start=1):
                        dst.set_band_description(idx, str(desc))
                if scale is not None:
                    dst.scales = (float(scale),) * count
                if tags:
                    dst.update_tags(**{k: str(v) for k, v in tags.items()})

            os.replace(tmp_path, out_path)
            logger.debug(f"Saved raster: {out_path}")
            return out_path
        except (OSError, RasterioError) as e:
            tmp_path.unlink(missing_ok=True)
            if attempts == 0:
                raise
            logger.warning(f"Failed to save raster to {out_path_str}: {e}. Retrying...")


def get_raster_metadata(path_str: str | Path) -> dict:
    """
    Get raster metadata without loading the whole file.
    Returns dict with keys: rows, cols, count, transform, crs, nodata, res, bounds.
    Transform is always a list [c, a, b, f, d, e] (GDAL-style).
    CRS is always a WKT string (or None).
    """
    path = check_path(path_str)
    with rasterio.open(path) as src:
        trf = src.transform
        return {
            "rows": src.height,
            "cols": src.width,
            "count": src.count,
            "transform": [trf.c, trf.a, trf.b, trf.f, trf.d, trf.e],
            "crs": src.crs.to_wkt() if src.crs is not None else None,
            "nodata": src.nodata,
            "res": src.res,
            "bounds": src.bounds,
        }


def load_raster(
    path_str: str | Path, bbox: list[float] | None = None, band: int = 0
) -> tuple[np.ndarray, list[float], str | None, float | None]:
    """
    Load one band of a raster as float64, optionally cropped to bbox.

    No-data cells are returned as NaN.

    Args:
        path_str: Path to raster file
        bbox: Optional bounding box [minx, miny, maxx, maxy] in the raster CRS
        band: Band index to read (0-based)

    Returns:
        Tuple of (array, transform, crs_wkt, no_data_value)
    """
    path = check_path(path_str, make_dir=False)
    if not path.exists():
        raise FileNotFoundError(f"Raster file {path} does not exist.")
    with rasterio.open(path) as dataset:
        _assert_north_up(dataset.transform)
        crs_wkt = dataset.crs.to_wkt() if dataset.crs is not None else None
        no_data_val = dataset.nodata
        if band < 0 or band >= dataset.count:
            raise IndexError(f"Requested band {band} out of range; raster has {dataset.count} band(s)")
        if bbox is not None:
            window = bbox_to_window(bbox, dataset.transform, dataset.width, dataset.height)
            rast_arr = dataset.read(band + 1, window=window)
            trf = dataset.window_transform(window)
        else:
            rast_arr = dataset.read(band + 1)
            trf = dataset.transform
        trf_arr = [trf.c, trf.a, trf.b, trf.f, trf.d, trf.e]

    rast_arr = rast_arr.astype(np.float64)
    if no_data_val is not None and not np.isnan(no_data_val):
        rast_arr[rast_arr == no_data_val] = np.nan
    if rast_arr.size == 0:
        raise ValueError("Raster array is empty after loading/cropping")
    return rast_arr, trf_arr, crs_wkt, no_data_val


def load_raster_stack(path_str: str | Path) -> dict:
    """
    Load every band of a raster along with its band descriptions, scales, and tags.

    Values are returned raw (no unscaling); no-data cells become NaN.

    Returns:
        Dict with keys: data (bands, rows, cols) float64, descriptions, scales,
        tags, transform, crs, nodata.
    """
    path = check_path(path_str)
    if not path.exists():
        raise FileNotFoundError(f"Raster file {path} does not exist.")
    with rasterio.open(path) as src:
        data = src.read().astype(np.float64)
        trf = src.transform
        meta = {
            "descriptions": list(src.descriptions),
            "scales": list(src.scales),
            "tags": src.tags(),
            "transform": [trf.c, trf.a, trf.b, trf.f, trf.d, trf.e],
            "crs": src.crs.to_wkt() if src.crs is not None else None,
            "nodata": src.nodata,
        }
    if meta["nodata"] is not None and not np.isnan(meta["nodata"]):
        data[data == meta["nodata"]] = np.nan
    meta["data"] = data
    return meta


def rasterise_gdf(gdf, transform: list[float], shape: tuple[int, int], all_touched: bool = False) -> np.ndarray:
    """
    Burn polygon footprints onto an existing grid.

    Args:
        gdf: GeoDataFrame already in the grid CRS
        transform: GDAL-style geotransform of the target grid
        shape: Target grid shape (rows, cols)
        all_touched: Burn every cell a polygon touches, not just cells whose centre it covers

    Returns:
        Boolean array, True where a polygon covers the cell.
    """
    trf = Affine.from_gdal(*transform)
    rows, cols = shape
    x0, y0 = trf * (0, 0)
    x1, y1 = trf * (cols, rows)
    extent = geometry.box(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))
    # Polygons entirely off the grid burn nothing
    geoms = [geom for geom in gdf.geometry if geom is not None and not geom.is_empty and geom.intersects(extent)]
    if not geoms:
        return np.zeros(shape, dtype=bool)
    burned = rasterize(
        ((geom, 1) for geom in geoms),
        out_shape=shape,
        transform=trf,
        fill=0,
        all_touched=all_touched,
        dtype=np.uint8,
    )
    return burned.astype(bool)


def read_vector_mask(path_str: str | Path, transform: list[float], shape: tuple[int, int], crs_wkt: str | None):
    """Read polygons (any format geopandas can open) and rasterise them onto the grid."""
    import geopandas as gpd

    path = check_path(path_str)
    if not path.exists():
        raise FileNotFoundError(f"Vector file {path} does not exist.")
    gdf = gpd.read_file(path)
    if crs_wkt and gdf.crs is not None:
        gdf = gdf.to_crs(pyproj.CRS(crs_wkt))
    return rasterise_gdf(gdf, transform, shape)


def xy_to_lnglat(crs_wkt: str | None, x, y):
    """Convert x, y coordinates to longitude and latitude.

    Accepts scalar or array-like x/y. If crs_wkt is None the inputs are
    assumed already to be lon/lat and are returned unchanged.
    """
    if crs_wkt is None:
        logger.info("No CRS provided, assuming coordinates are already in WGS84 (lon/lat).")
        return x, y

    source_crs = pyproj.CRS(crs_wkt)
    target_crs = pyproj.CRS(4326)
    transformer = pyproj.Transformer.from_crs(source_crs, target_crs, always_xy=True)
    lng, lat = transformer.transform(x, y)
    return lng, lat


def is_geographic(crs_wkt: str | None) -> bool:
    """Return True when the CRS uses angular (degree) units."""
    return crs_wkt is not None and pyproj.CRS(crs_wkt).is_geographic


def read_climate_table(path: str | Path, columns: dict[str, str] | None = None) -> pd.DataFrame:
    """
    Read a dated climate table (CSV) into a DataFrame indexed by date.

    The table needs a date column plus minimum/maximum temperature (°C) and
    precipitation (mm). Further numeric columns (wind, humidity, radiation)
    are kept as float; non-numeric ones are dropped.

    Args:
        path: Path to the CSV file
        columns: Optional mapping from the canonical names
            (``date``, ``tmin``, ``tmax``, ``precip``) to the file's column names

    Returns:
        DataFrame with a DatetimeIndex named ``date``, float columns
        ``tmin``, ``tmax``, ``precip``, then any extra numeric columns, sorted by date.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a required column is missing or a date cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Climate table not found: {path}")

    names = {"date": "date", "tmin": "tmin", "tmax": "tmax", "precip": "precip"}
    if columns:
        names.update(columns)

    df = pd.read_csv(path, comment="#")
    missing = [canonical for canonical, col in names.items() if col not in df.columns]
    if missing:
        raise ValueError(f"Climate table {path.name} is missing column(s) {missing}; found {list(df.columns)}")

    df = df.rename(columns={col: canonical for canonical, col in names.items()})
    df["date"] = pd.to_datetime(df["date"], errors="raise")
    df = df.set_index("date").sort_index()
    core = df[["tmin", "tmax", "precip"]].apply(pd.to_numeric, errors="coerce")
    extra = [c for c in df.columns if c not in core.columns and pd.api.types.is_numeric_dtype(df[c])]
    df = pd.concat([core, df[extra]], axis=1).astype(np.float64)

    if df.empty:
        raise ValueError(f"Climate table {path.name} contains no rows")

    start, end = df.index.min().date(), df.index.max().date()
    logger.info(f"Loaded climate table {path.name}: {len(df)} rows from {start} to {end}")
    return df
