"""Data models for water balance runs.

Modules
-------
terrain
    ``TerrainGrid`` (elevation, slope, aspect, WHC, latitude) and
    ``ExclusionReason`` flags.
climate
    ``ClimateSource`` and ``ClimateSeries`` (daily point climate).
state
    ``SoilMoistureState`` carried between days.
config
    ``ModelConfig``, ``SnowConfig``, ``SiteConfig``, ``BatchConfig``.
results
    ``DailyBalance`` and ``WaterBalanceResult``.
"""

from .climate import ClimateSeries, ClimateSource
from .config import BatchConfig, ModelConfig, SiteConfig, SnowConfig
from .results import DailyBalance, WaterBalanceResult
from .state import SoilMoistureState
from .terrain import ExclusionReason, TerrainGrid

__all__ = [
    # Terrain
    "TerrainGrid",
    "ExclusionReason",
    # Climate
    "ClimateSource",
    "ClimateSeries",
    # State
    "SoilMoistureState",
    # Configuration
    "ModelConfig",
    "SnowConfig",
    "SiteConfig",
    "BatchConfig",
    # Results
    "DailyBalance",
    "WaterBalanceResult",
]
