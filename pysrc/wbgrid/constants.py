"""
Physical constants and default parameters for wbgrid.

Consolidates the constants used by the PET formulas, the topographic
correction, and the storage convention, with references.
"""

# =============================================================================
# Temperature lapse rate
# =============================================================================
# Temperature change per metre of elevation (°C/m, negative = cooler uphill).
# Observed separately on north- and south-facing slopes; the engine uses the
# mean and does not vary the rate by aspect at run time.

NORTH_SLOPE_LAPSE_RATE = -0.0054
SOUTH_SLOPE_LAPSE_RATE = -0.0064
DEFAULT_LAPSE_RATE = (NORTH_SLOPE_LAPSE_RATE + SOUTH_SLOPE_LAPSE_RATE) / 2.0


# =============================================================================
# Heat load (McCune & Keon 2002, equation 3)
# =============================================================================
# ln(Rad) = C0 + C1 cos(L) cos(S) + C2 cos(F) sin(S) sin(L)
#              + C3 sin(L) sin(S) + C4 sin(F) sin(S)
# L latitude, S slope, F aspect folded about the north-east/south-west line.
# Fitted for slopes up to 60 degrees only.

HEAT_LOAD_C0 = -1.467
HEAT_LOAD_C1 = 1.582
HEAT_LOAD_C2 = -1.5
HEAT_LOAD_C3 = -0.262
HEAT_LOAD_C4 = 0.607
HEAT_LOAD_FOLD_AXIS_DEG = 225.0
MAX_HEAT_LOAD_SLOPE_DEG = 60.0


# =============================================================================
# Potential evapotranspiration
# =============================================================================

# Hamon (Lu et al. 2005): PET = 0.1651 * (N / 12) * rho_sat * KPEC  [mm/day]
HAMON_COEFFICIENT = 0.1651
HAMON_KPEC = 1.2

# Oudin et al. (2005): PET = Ra / (lambda * rho) * (T + K2) / K1  [mm/day]
OUDIN_K1 = 100.0
OUDIN_K2 = 5.0
LATENT_HEAT_VAPORIZATION = 2.45  # MJ/kg

# FAO-56 solar geometry
SOLAR_CONSTANT = 0.0820  # MJ/m²/min


# =============================================================================
# Snow (degree-day)
# =============================================================================

DEFAULT_SNOW_THRESHOLD_C = 0.0
DEFAULT_MELT_BASE_C = 0.0
DEFAULT_MELT_FACTOR = 2.5  # mm/°C/day


# =============================================================================
# Storage convention
# =============================================================================
# Persisted values are mm × STORAGE_SCALE truncated to integers.

STORAGE_SCALE = 10
INT_NODATA = -9999


__all__ = [
    "NORTH_SLOPE_LAPSE_RATE",
    "SOUTH_SLOPE_LAPSE_RATE",
    "DEFAULT_LAPSE_RATE",
    "HEAT_LOAD_C0",
    "HEAT_LOAD_C1",
    "HEAT_LOAD_C2",
    "HEAT_LOAD_C3",
    "HEAT_LOAD_C4",
    "HEAT_LOAD_FOLD_AXIS_DEG",
    "MAX_HEAT_LOAD_SLOPE_DEG",
    "HAMON_COEFFICIENT",
    "HAMON_KPEC",
    "OUDIN_K1",
    "OUDIN_K2",
    "LATENT_HEAT_VAPORIZATION",
    "SOLAR_CONSTANT",
    "DEFAULT_SNOW_THRESHOLD_C",
    "DEFAULT_MELT_BASE_C",
    "DEFAULT_MELT_FACTOR",
    "STORAGE_SCALE",
    "INT_NODATA",
]
