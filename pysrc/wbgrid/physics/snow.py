"""Degree-day snowpack ahead of the soil bucket."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def snow_step(
    precip: NDArray[np.floating],
    tmean: NDArray[np.floating],
    snowpack: NDArray[np.floating],
    snow_threshold_c: float,
    melt_base_c: float,
    melt_factor: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Advance the snowpack by one day.

    Precipitation falls as snow when ``tmean <= snow_threshold_c``. Melt is
    ``min(pack, melt_factor * max(0, tmean - melt_base_c))``, taken from the
    pack after today's snowfall has been added.

    Returns:
        (water_input, new_snowpack, melt), all mm. ``water_input`` is rain
        plus melt and is what reaches the soil today.
    """
    is_snow = tmean <= snow_threshold_c
    snowfall = np.where(is_snow, precip, 0.0)
    rain = precip - snowfall
    pack = snowpack + snowfall
    potential_melt = melt_factor * np.maximum(0.0, tmean - melt_base_c)
    melt = np.minimum(pack, potential_melt)
    return rain + melt, pack - melt, melt
