"""
Core daily water balance step.

Thornthwaite-Mather bucket accounting, vectorised over cells for a single
day. Days must be applied in date order because storage carries forward;
cells are independent of each other.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
from numpy.typing import NDArray

from .errors import NumericGuardError
from .wb_logging import get_logger

logger = get_logger(__name__)


class BucketStep(NamedTuple):
    """Outputs of one daily bucket update (all mm, one value per cell)."""

    aet: NDArray[np.float64]
    cwd: NDArray[np.float64]
    storage: NDArray[np.float64]
    surplus: NDArray[np.float64]


def bucket_step(
    water_input: NDArray[np.floating],
    pet: NDArray[np.floating],
    storage: NDArray[np.floating],
    whc: NDArray[np.floating],
) -> BucketStep:
    """
    Advance the soil bucket by one day.

    available = input + storage. When available covers PET, AET = PET and
    storage refills up to WHC with the remainder running off as surplus.
    Otherwise AET = available and the bucket empties. CWD = PET - AET.

    Inputs must already be non-negative (see :func:`clamp_negative`).

    Args:
        water_input: Precipitation (or rain + melt) reaching the soil.
        pet: Potential evapotranspiration.
        storage: Storage at the start of the day, within [0, whc].
        whc: Water holding capacity.

    Returns:
        BucketStep with AET, CWD, end-of-day storage, and surplus.
    """
    available = water_input + storage
    aet = np.minimum(pet, available)
    remaining = available - aet
    new_storage = np.minimum(remaining, whc)
    surplus = remaining - new_storage
    cwd = pet - aet
    return BucketStep(aet=aet, cwd=cwd, storage=new_storage, surplus=surplus)


def clamp_negative(values: NDArray[np.floating], field: str, strict: bool = False) -> tuple[NDArray[np.float64], int]:
    """
    Clamp negative values to zero.

    Returns:
        (clamped values, number of values clamped)

    Raises:
        NumericGuardError: In strict mode, if any value is negative.
    """
    values = np.asarray(values, dtype=np.float64)
    negative = values < 0.0
    n = int(np.count_nonzero(negative))
    if n == 0:
        return values, 0
    if strict:
        raise NumericGuardError(field, n)
    return np.where(negative, 0.0, values), n


def run_bucket(
    water_input: NDArray[np.floating],
    pet: NDArray[np.floating],
    whc: NDArray[np.floating] | float,
    initial_storage: NDArray[np.floating] | float | None = None,
) -> dict[str, NDArray[np.float64]]:
    """
    Run the bucket over a whole series held in memory.

    Args:
        water_input: (n_days, n_cells) or (n_days,) daily water input.
        pet: Same shape as ``water_input``.
        whc: Per-cell (or scalar) water holding capacity.
        initial_storage: Starting storage; defaults to WHC (field capacity).

    Returns:
        Dict of (n_days, ...) arrays: "aet", "cwd", "storage", "surplus".
    """
    water_input = np.asarray(water_input, dtype=np.float64)
    pet = np.asarray(pet, dtype=np.float64)
    if water_input.shape != pet.shape:
        raise ValueError(f"water_input {water_input.shape} and pet {pet.shape} must have the same shape")
    cell_shape = water_input.shape[1:]
    whc = np.broadcast_to(np.asarray(whc, dtype=np.float64), cell_shape)
    storage = whc.copy() if initial_storage is None else np.broadcast_to(initial_storage, cell_shape).astype(np.float64)

    out = {name: np.empty_like(pet) for name in BucketStep._fields}
    for day in range(pet.shape[0]):
        step = bucket_step(water_input[day], pet[day], storage, whc)
        for name, values in step._asdict().items():
            out[name][day] = values
        storage = step.storage
    return out
