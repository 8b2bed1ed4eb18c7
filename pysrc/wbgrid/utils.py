"""Utility functions for namespace conversion and grid geometry."""

from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import numpy as np
from affine import Affine

if TYPE_CHECKING:
    from numpy.typing import NDArray


# =============================================================================
# Namespace Conversion (for JSON parameter loading)
# =============================================================================


def dict_to_namespace(d: dict[str, Any] | list | Any) -> SimpleNamespace | list | Any:
    """
    Recursively convert dicts to SimpleNamespace.

    Args:
        d: Dictionary, list, or scalar value to convert

    Returns:
        SimpleNamespace for dicts, list of converted items for lists, or original value for scalars
    """
    if isinstance(d, dict):
        return SimpleNamespace(**{k: dict_to_namespace(v) for k, v in d.items()})
    elif isinstance(d, list):
        return [dict_to_namespace(i) for i in d]
    else:
        return d


# =============================================================================
# Geometric Utilities
# =============================================================================


def pixel_centers(transform: list[float], shape: tuple[int, int]) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Map coordinates of every pixel centre.

    Args:
        transform: GDAL-style geotransform [x0, dx, rx, y0, ry, dy].
        shape: Grid shape (rows, cols).

    Returns:
        Tuple of (x, y) arrays, each of shape ``shape``.
    """
    rows, cols = shape
    trf = Affine.from_gdal(*transform)
    col_idx, row_idx = np.meshgrid(np.arange(cols) + 0.5, np.arange(rows) + 0.5)
    x, y = trf * (col_idx, row_idx)
    return np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)


def pixel_size_from_transform(transform: list[float]) -> tuple[float, float]:
    """Return (width, height) of a pixel in map units, both positive."""
    return abs(float(transform[1])), abs(float(transform[5]))


def transforms_match(a: list[float], b: list[float], tol: float = 1e-6) -> bool:
    """Check whether two geotransforms describe the same grid."""
    return len(a) == len(b) and all(abs(float(x) - float(y)) <= tol for x, y in zip(a, b))
