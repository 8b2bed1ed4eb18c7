"""Asynchronous GeoTIFF writing for per-year daily stacks."""

from __future__ import annotations

import os
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from .summary import write_stack
from .wb_logging import get_logger

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

logger = get_logger(__name__)


def async_output_enabled() -> bool:
    """Return whether asynchronous output writing is enabled (``WBGRID_ASYNC_OUTPUT``)."""
    raw = os.environ.get("WBGRID_ASYNC_OUTPUT", "1").strip().lower()
    return raw not in {"0", "false", "no", "off"}


def daily_stack_path(output_dir: Path, prefix: str, name: str, year: int) -> Path:
    """``{output_dir}/daily/{prefix}_{name}_{year}.tif``"""
    return output_dir / "daily" / f"{prefix}_{name}_{year}.tif"


class DailyStackWriter:
    """
    Writes one multi-band GeoTIFF per variable per year (one band per day).

    With ``use_async`` the writes run on a single background thread so the
    daily loop can continue while I/O proceeds; ``max_pending`` provides
    backpressure and bounds memory use.
    """

    def __init__(
        self,
        output_dir: str | Path,
        prefix: str,
        *,
        transform: list[float] | None,
        crs_wkt: str | None,
        storage: str = "scaled_int",
        use_async: bool = True,
        max_pending: int = 2,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.transform = transform
        self.crs_wkt = crs_wkt
        self.storage = storage
        self.max_pending = max(1, int(max_pending))
        self.written: list[Path] = []
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wbgrid-geotiff") if use_async else None
        self._pending: deque[Future[Path]] = deque()

    def submit(self, year: int, dates: list[str], arrays: dict[str, NDArray[np.floating]]) -> None:
        """Queue one year of daily grids: name → (n_days, rows, cols)."""
        if not arrays:
            return
        for name, stack in arrays.items():
            path = daily_stack_path(self.output_dir, self.prefix, name, year)
            kwargs = {
                "band_descriptions": dates,
                "transform": self.transform,
                "crs_wkt": self.crs_wkt,
                "storage": self.storage,
                "tags": {"variable": name, "period": "daily", "year": year},
            }
            if self._executor is None:
                self.written.append(write_stack(path, stack, **kwargs))
                continue
            self._drain_completed()
            while len(self._pending) >= self.max_pending:
                self.written.append(self._pending.popleft().result())
            self._pending.append(self._executor.submit(write_stack, path, stack, **kwargs))
        logger.debug(f"Queued daily stacks for {year}: {', '.join(arrays)}")

    def close(self) -> None:
        """Wait for all queued writes and stop the background worker."""
        try:
            while self._pending:
                self.written.append(self._pending.popleft().result())
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=True)

    def _drain_completed(self) -> None:
        while self._pending and self._pending[0].done():
            self.written.append(self._pending.popleft().result())
