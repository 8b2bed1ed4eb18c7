"""Soil moisture state carried between days."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass
class SoilMoistureState:
    """
    Per-cell bucket state for one run.

    Arrays cover the simulated (non-excluded) cells only, in the order of
    ``np.flatnonzero(valid_mask)``.

    Attributes:
        storage: Soil water in storage (mm), always within [0, WHC].
        snowpack: Snow water equivalent (mm); stays zero when snow is disabled.

    Example:
        state = SoilMoistureState.initial(whc)
        for day in days:
            step = bucket_step(day.water_input, day.pet, state.storage, whc)
            state.storage = step.storage
    """

    storage: NDArray[np.float64]
    snowpack: NDArray[np.float64]

    @classmethod
    def initial(cls, whc: NDArray[np.floating]) -> SoilMoistureState:
        """Bucket at field capacity, no snow."""
        whc = np.asarray(whc, dtype=np.float64)
        return cls(storage=whc.copy(), snowpack=np.zeros_like(whc))

    def copy(self) -> SoilMoistureState:
        """Create a deep copy of this state."""
        return SoilMoistureState(storage=self.storage.copy(), snowpack=self.snowpack.copy())
