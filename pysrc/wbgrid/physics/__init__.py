"""Physical formulas: PET, heat load, terrain derivatives, snow."""

from .heat_load import folded_aspect, heat_load_index, heat_load_multiplier
from .pet import PET_METHODS, compute_pet, daylength_hours, extraterrestrial_radiation, hamon_pet, oudin_pet
from .snow import snow_step
from .terrain import horn_slope_aspect

__all__ = [
    "PET_METHODS",
    "compute_pet",
    "daylength_hours",
    "extraterrestrial_radiation",
    "folded_aspect",
    "hamon_pet",
    "heat_load_index",
    "heat_load_multiplier",
    "horn_slope_aspect",
    "oudin_pet",
    "snow_step",
]
