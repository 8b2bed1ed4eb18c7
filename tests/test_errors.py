"""
Tests for structured error types.

The orchestrator records ``type(e).__name__`` and ``str(e)`` for failed
runs, so messages must name the offending input.
"""

import pytest

from wbgrid.errors import (
    ConfigurationError,
    DomainRangeError,
    GridShapeMismatch,
    InputDataError,
    NoValidCellsError,
    NumericGuardError,
    WaterBalanceError,
)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            InputDataError("bad"),
            GridShapeMismatch("whc", (2, 2), (3, 3)),
            NoValidCellsError(4),
            DomainRangeError("slope", 3, "exceeds 60°"),
            NumericGuardError("precip", 2),
            ConfigurationError("storage", "unknown mode"),
        ],
    )
    def test_all_derive_from_base(self, error):
        assert isinstance(error, WaterBalanceError)

    def test_shape_and_no_cells_are_input_errors(self):
        """Both abort a single run, like any other input problem."""
        assert issubclass(GridShapeMismatch, InputDataError)
        assert issubclass(NoValidCellsError, InputDataError)
        assert not issubclass(ConfigurationError, InputDataError)


class TestErrorDetails:
    def test_input_data_error_fields(self):
        error = InputDataError("Climate table not found", field="climate", path="/x.csv", reason="missing")
        assert str(error) == "Climate table not found"
        assert (error.field, error.path, error.reason) == ("climate", "/x.csv", "missing")

    def test_grid_shape_mismatch_message(self):
        error = GridShapeMismatch("whc", (100, 100), (50, 50))
        assert error.field == "whc"
        assert error.expected_shape == (100, 100)
        assert error.actual_shape == (50, 50)
        assert "(50, 50)" in str(error)
        assert error.reason == "shape"

    def test_no_valid_cells_lists_reasons(self):
        error = NoValidCellsError(12, {"steep_slope": 10, "missing_whc": 2, "soil_mask": 0})
        message = str(error)
        assert "All 12 cells" in message
        assert "steep_slope=10" in message
        assert "soil_mask" not in message

    def test_no_valid_cells_without_reasons(self):
        error = NoValidCellsError(3)
        assert error.reasons == {}
        assert str(error) == "All 3 cells are excluded from the water balance"

    def test_domain_range_error(self):
        error = DomainRangeError("slope", 7, "steeper than 60°")
        assert error.n_cells == 7
        assert "'slope'" in str(error)

    def test_numeric_guard_error(self):
        error = NumericGuardError("pet", 5)
        assert error.field == "pet"
        assert error.n_events == 5
        assert "strict" in str(error)

    def test_configuration_error(self):
        error = ConfigurationError("max_slope_deg", "must be <= 60")
        assert error.parameter == "max_slope_deg"
        assert str(error) == "Invalid configuration for 'max_slope_deg': must be <= 60"
