"""
Progress reporting for wbgrid.

Wraps tqdm so the daily loop of a run and the completed runs of a batch
share one interface. A caller-supplied callback replaces the bar.

Usage:
    from wbgrid.progress import ProgressReporter

    progress = ProgressReporter(total=len(climate), desc="yell historical")
    for day in days:
        step(day)
        progress.update(1)
    progress.close()
"""

from __future__ import annotations

from collections.abc import Callable

from tqdm import tqdm


class ProgressReporter:
    """
    Progress reporter backed by tqdm.

    Args:
        total: Total number of steps.
        desc: Description shown in the progress bar.
        callback: Optional ``callback(current, total)``. When given, no bar is drawn.
        disable: If True, report nothing (used inside worker processes).
    """

    def __init__(
        self,
        total: int,
        desc: str = "",
        callback: Callable[[int, int], None] | None = None,
        disable: bool = False,
    ):
        self.total = total
        self.desc = desc
        self.current = 0
        self.disable = disable
        self._callback = callback
        self._closed = False
        self._bar = None
        if not disable and callback is None:
            self._bar = tqdm(total=total, desc=desc, leave=False)

    def update(self, n: int = 1) -> None:
        """Update progress by n steps."""
        if self._closed:
            return
        self.current += n
        if self.disable:
            return
        if self._callback is not None:
            self._callback(self.current, self.total)
        elif self._bar is not None:
            self._bar.update(n)

    def set_description(self, desc: str) -> None:
        """Update the progress description."""
        self.desc = desc
        if self._bar is not None:
            self._bar.set_description(desc)

    def close(self) -> None:
        """Close the progress bar."""
        if self._closed:
            return
        self._closed = True
        if self._bar is not None:
            self._bar.close()

    def __enter__(self) -> ProgressReporter:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
