"""
Temperature-based potential evapotranspiration.

Both formulas work on arrays of cells for a single day: temperature and
latitude are per-cell, the day of year is a scalar. Solar geometry follows
FAO-56 (Allen et al. 1998, equations 21-25 and 34).
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from ..constants import (
    HAMON_COEFFICIENT,
    HAMON_KPEC,
    LATENT_HEAT_VAPORIZATION,
    OUDIN_K1,
    OUDIN_K2,
    SOLAR_CONSTANT,
)

PET_METHODS = ("hamon", "oudin")


def solar_declination(doy: int | NDArray) -> NDArray[np.floating]:
    """Solar declination (radians) for a day of year."""
    return 0.409 * np.sin(2.0 * np.pi * np.asarray(doy, dtype=np.float64) / 365.0 - 1.39)


def sunset_hour_angle(lat_rad: NDArray[np.floating], declination: float | NDArray) -> NDArray[np.floating]:
    """
    Sunset hour angle (radians).

    The arccos argument is clipped so polar day / polar night give pi / 0
    rather than NaN.
    """
    arg = -np.tan(lat_rad) * np.tan(declination)
    return np.arccos(np.clip(arg, -1.0, 1.0))


def daylength_hours(lat_deg: NDArray[np.floating], doy: int) -> NDArray[np.floating]:
    """Hours of daylight for each latitude on the given day of year."""
    lat_rad = np.radians(lat_deg)
    ws = sunset_hour_angle(lat_rad, solar_declination(doy))
    return 24.0 / np.pi * ws


def extraterrestrial_radiation(lat_deg: NDArray[np.floating], doy: int) -> NDArray[np.floating]:
    """Daily extraterrestrial radiation Ra (MJ/m²/day)."""
    lat_rad = np.radians(lat_deg)
    dec = solar_declination(doy)
    dr = 1.0 + 0.033 * np.cos(2.0 * np.pi * doy / 365.0)
    ws = sunset_hour_angle(lat_rad, dec)
    ra = (
        (24.0 * 60.0 / np.pi)
        * SOLAR_CONSTANT
        * dr
        * (ws * np.sin(lat_rad) * np.sin(dec) + np.cos(lat_rad) * np.cos(dec) * np.sin(ws))
    )
    return np.maximum(ra, 0.0)


def saturation_vapor_pressure(tmean: NDArray[np.floating]) -> NDArray[np.floating]:
    """Saturation vapour pressure (hPa) over water, Tetens form used by Hamon."""
    return 6.108 * np.exp(17.26939 * tmean / (tmean + 237.3))


def hamon_pet(tmean: NDArray[np.floating], lat_deg: NDArray[np.floating], doy: int, kpec: float = HAMON_KPEC):
    """
    Hamon PET (mm/day), Lu et al. (2005) formulation.

    PET = 0.1651 * (N / 12) * rho_sat * KPEC, with N the day length in hours
    and rho_sat the saturated vapour density (g/m³) at the mean temperature.
    """
    rho_sat = 216.7 * saturation_vapor_pressure(tmean) / (tmean + 273.3)
    return HAMON_COEFFICIENT * (daylength_hours(lat_deg, doy) / 12.0) * rho_sat * kpec


def oudin_pet(tmean: NDArray[np.floating], lat_deg: NDArray[np.floating], doy: int) -> NDArray[np.floating]:
    """
    Oudin PET (mm/day).

    PET = Ra / lambda * (T + 5) / 100 where T + 5 > 0, else 0.
    """
    ra = extraterrestrial_radiation(lat_deg, doy)
    pet = ra / LATENT_HEAT_VAPORIZATION * (tmean + OUDIN_K2) / OUDIN_K1
    return np.where(tmean + OUDIN_K2 > 0.0, pet, 0.0)


def compute_pet(
    method: str,
    tmean: NDArray[np.floating],
    lat_deg: NDArray[np.floating],
    doy: int,
    kpec: float = HAMON_KPEC,
) -> NDArray[np.floating]:
    """Dispatch to the configured PET formula."""
    if method == "hamon":
        return hamon_pet(tmean, lat_deg, doy, kpec=kpec)
    if method == "oudin":
        return oudin_pet(tmean, lat_deg, doy)
    raise ValueError(f"Unknown PET method '{method}'. Valid: {PET_METHODS}")
