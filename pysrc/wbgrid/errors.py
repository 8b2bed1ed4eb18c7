"""Water balance error types for actionable error messages.

These exceptions carry structured information about which input failed and
why, so the orchestrator can record a meaningful outcome for each
(site, climate-source) run instead of a bare traceback.

Example:
    from wbgrid.errors import GridShapeMismatch, InputDataError

    try:
        result = wbgrid.calculate_timeseries(terrain, climate, climate_elevation_m=2100.0)
    except GridShapeMismatch as e:
        print(f"Grid '{e.field}' has wrong shape: expected {e.expected_shape}, got {e.actual_shape}")
    except InputDataError as e:
        print(f"Run aborted: {e}")
"""

from __future__ import annotations


class WaterBalanceError(Exception):
    """Base class for all wbgrid errors."""

    pass


class InputDataError(WaterBalanceError):
    """Raised when terrain, soil, or climate input for a run is missing or malformed.

    Aborts only the run that hit it; other runs in a batch continue.

    Attributes:
        message: Human-readable error description.
        field: Name of the problematic input (e.g., "elevation", "precip").
        path: File the input was read from (optional).
        reason: Short machine-friendly reason (optional).
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        path: str | None = None,
        reason: str | None = None,
    ):
        self.field = field
        self.path = path
        self.reason = reason
        super().__init__(message)


class GridShapeMismatch(InputDataError):
    """Raised when a site raster is not co-registered with the elevation grid.

    Example:
        >>> TerrainGrid(elevation=np.ones((100, 100)), whc=np.ones((50, 50)), ...)
        GridShapeMismatch: Grid shape mismatch for 'whc':
          Expected: (100, 100) (matching elevation)
          Got: (50, 50)
    """

    def __init__(self, field: str, expected_shape: tuple, actual_shape: tuple):
        message = (
            f"Grid shape mismatch for '{field}':\n"
            f"  Expected: {expected_shape} (matching elevation)\n"
            f"  Got: {actual_shape}\n"
            "Terrain and soil rasters must share the elevation grid."
        )
        super().__init__(message, field=field, reason="shape")
        self.expected_shape = expected_shape
        self.actual_shape = actual_shape


class NoValidCellsError(InputDataError):
    """Raised when every cell of a site grid is excluded from simulation.

    Attributes:
        n_cells: Total number of cells in the grid.
        reasons: Mapping of exclusion reason name to cell count.
    """

    def __init__(self, n_cells: int, reasons: dict[str, int] | None = None):
        self.n_cells = n_cells
        self.reasons = dict(reasons or {})
        detail = ", ".join(f"{k}={v}" for k, v in self.reasons.items() if v)
        message = f"All {n_cells} cells are excluded from the water balance"
        if detail:
            message += f" ({detail})"
        super().__init__(message, field="terrain", reason="no_valid_cells")


class DomainRangeError(WaterBalanceError):
    """Raised in strict mode when cells fall outside a formula's valid range.

    Outside strict mode these cells are excluded and recorded instead.

    Attributes:
        field: The offending input (e.g., "slope", "whc").
        n_cells: Number of cells affected.
        reason: Why the values are out of range.
    """

    def __init__(self, field: str, n_cells: int, reason: str):
        self.field = field
        self.n_cells = n_cells
        self.reason = reason
        super().__init__(f"{n_cells} cell(s) have invalid '{field}': {reason}")


class NumericGuardError(WaterBalanceError):
    """Raised in strict mode when negative PET or precipitation is encountered.

    Outside strict mode these values are clamped to zero and counted.

    Attributes:
        field: "pet" or "precip".
        n_events: Number of clamped values.
    """

    def __init__(self, field: str, n_events: int):
        self.field = field
        self.n_events = n_events
        super().__init__(f"Negative '{field}' encountered {n_events} time(s); refusing to clamp in strict mode")


class ConfigurationError(WaterBalanceError):
    """Raised when configuration is invalid or inconsistent.

    Attributes:
        parameter: The problematic parameter name.
        reason: Why the configuration is invalid.
    """

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        message = f"Invalid configuration for '{parameter}': {reason}"
        super().__init__(message)
