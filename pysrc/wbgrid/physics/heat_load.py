"""
Heat load index (McCune & Keon 2002).

Potential annual direct incident radiation as a function of latitude,
slope, and aspect, using equation 3 of the paper (slopes up to 60°).
Aspect is folded about the north-east / south-west axis so that the
warmest exposure (south-west) and coolest (north-east) sit at the ends.

Reference:
    McCune, B. & Keon, D. (2002) Equations for potential annual direct
    incident radiation and heat load. Journal of Vegetation Science 13: 603-606.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from ..constants import (
    HEAT_LOAD_C0,
    HEAT_LOAD_C1,
    HEAT_LOAD_C2,
    HEAT_LOAD_C3,
    HEAT_LOAD_C4,
    HEAT_LOAD_FOLD_AXIS_DEG,
    MAX_HEAT_LOAD_SLOPE_DEG,
)


def folded_aspect(aspect_deg: NDArray[np.floating]) -> NDArray[np.floating]:
    """Fold aspect (degrees) about 225°: 0 for north-east, 180 for south-west."""
    aspect = np.mod(aspect_deg, 360.0)
    return np.abs(180.0 - np.abs(aspect - HEAT_LOAD_FOLD_AXIS_DEG))


def _log_radiation(lat_deg, slope_deg, aspect_deg):
    lat = np.radians(lat_deg)
    slope = np.radians(slope_deg)
    fold = np.radians(folded_aspect(aspect_deg))
    return (
        HEAT_LOAD_C0
        + HEAT_LOAD_C1 * np.cos(lat) * np.cos(slope)
        + HEAT_LOAD_C2 * np.cos(fold) * np.sin(slope) * np.sin(lat)
        + HEAT_LOAD_C3 * np.sin(lat) * np.sin(slope)
        + HEAT_LOAD_C4 * np.sin(fold) * np.sin(slope)
    )


def heat_load_index(
    lat_deg: NDArray[np.floating],
    slope_deg: NDArray[np.floating],
    aspect_deg: NDArray[np.floating],
) -> NDArray[np.floating]:
    """
    Potential direct incident radiation (MJ/cm²/yr).

    Cells steeper than 60° get NaN: the regression is not defined there.
    """
    with np.errstate(invalid="ignore"):
        rad = np.exp(_log_radiation(lat_deg, slope_deg, aspect_deg))
    return np.where(np.asarray(slope_deg) > MAX_HEAT_LOAD_SLOPE_DEG, np.nan, rad)


def heat_load_multiplier(
    lat_deg: NDArray[np.floating],
    slope_deg: NDArray[np.floating],
    aspect_deg: NDArray[np.floating],
    normalize_to_flat: bool = True,
) -> NDArray[np.floating]:
    """
    PET multiplier for each cell.

    With ``normalize_to_flat`` the index is divided by the value for a flat
    cell at the same latitude, so flat terrain keeps the point PET unchanged
    and south-west facing slopes get a multiplier above one.
    """
    hli = heat_load_index(lat_deg, slope_deg, aspect_deg)
    if not normalize_to_flat:
        return hli
    zeros = np.zeros_like(np.asarray(slope_deg, dtype=np.float64))
    flat = heat_load_index(lat_deg, zeros, zeros)
    return hli / flat
