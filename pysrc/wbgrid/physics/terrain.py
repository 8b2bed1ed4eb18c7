"""Slope and aspect from an elevation grid."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def horn_slope_aspect(
    dem: NDArray[np.floating], pixel_width: float, pixel_height: float | None = None
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Slope and aspect by Horn's (1981) 3x3 finite difference.

    Edges are handled by replicating the border row/column. NaN elevations
    propagate to their neighbours.

    Args:
        dem: Elevation grid (m), north-up.
        pixel_width: Cell width in map units (same units as elevation).
        pixel_height: Cell height; defaults to ``pixel_width``.

    Returns:
        (slope, aspect) in degrees. Aspect is clockwise from north,
        in [0, 360), and NaN where the slope is exactly zero.
    """
    if pixel_height is None:
        pixel_height = pixel_width
    z = np.pad(np.asarray(dem, dtype=np.float64), 1, mode="edge")

    a, b, c = z[:-2, :-2], z[:-2, 1:-1], z[:-2, 2:]
    d, f = z[1:-1, :-2], z[1:-1, 2:]
    g, h, i = z[2:, :-2], z[2:, 1:-1], z[2:, 2:]

    dz_dx = ((c + 2 * f + i) - (a + 2 * d + g)) / (8.0 * pixel_width)
    # Rows increase southward, so north-minus-south is top-minus-bottom
    dz_dy = ((a + 2 * b + c) - (g + 2 * h + i)) / (8.0 * pixel_height)

    slope = np.degrees(np.arctan(np.hypot(dz_dx, dz_dy)))
    # Downslope direction: the surface faces against the gradient
    aspect = np.mod(np.degrees(np.arctan2(-dz_dx, -dz_dy)), 360.0)
    aspect = np.where(slope == 0.0, np.nan, aspect)
    return slope, aspect
