"""
Tests for the simplified API: validate_inputs() and calculate_site().
"""

import numpy as np
import pytest
from conftest import write_site

import wbgrid
from wbgrid.errors import InputDataError, NoValidCellsError


class TestValidateInputs:
    def test_clean_site_has_no_warnings(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(3, 3))
        assert wbgrid.validate_inputs(site) == []

    def test_excluded_share_reported(self, tmp_path):
        slope = np.zeros((2, 2))
        slope[0, 0] = 65.0
        site = write_site(tmp_path, "alpha", shape=(2, 2), slope=slope)

        warnings = wbgrid.validate_inputs(site)

        assert len(warnings) == 1
        assert "1 of 4 cells (25.0%)" in warnings[0]

    def test_all_cells_excluded(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(2, 2), slope=np.full((2, 2), 70.0))
        with pytest.raises(NoValidCellsError) as exc_info:
            wbgrid.validate_inputs(site)
        assert exc_info.value.reasons["steep_slope"] == 4

    def test_partial_year_reported(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(2, 2), n_days=400)
        warnings = wbgrid.validate_inputs(site)
        assert any("partial year(s) [2002]" in w for w in warnings)

    def test_missing_projection_table(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(2, 2))
        with pytest.raises(InputDataError):
            wbgrid.validate_inputs(site, sources=[wbgrid.ClimateSource("CCSM4", "rcp85")])


class TestCalculateSite:
    def test_historical_run_writes_artifacts(self, tmp_path):
        site = write_site(tmp_path / "in", "alpha", shape=(2, 3), n_days=730)

        result = wbgrid.calculate_site(site, output_dir=tmp_path / "out", show_progress=False)

        assert result.years == [2001, 2002]
        assert result.annual["aet"].shape == (2, 2, 3)
        assert (tmp_path / "out" / "alpha_historical_historical_aet.tif").exists()
        assert (tmp_path / "out" / "alpha_historical_historical_run_metadata.json").exists()

    def test_projection_runs_warmer(self, tmp_path):
        """The synthetic projection is 2 °C warmer, so PET and CWD are higher."""
        source = wbgrid.ClimateSource("CCSM4", "rcp85")
        site = write_site(tmp_path, "alpha", shape=(2, 2), sources=[wbgrid.ClimateSource.historical(), source])
        config = wbgrid.ModelConfig(outputs=["aet", "cwd", "pet"])

        hist = wbgrid.calculate_site(site, config=config, show_progress=False)
        proj = wbgrid.calculate_site(site, source=source, config=config, show_progress=False)

        assert np.all(proj.annual["pet"] > hist.annual["pet"])
        assert np.all(proj.annual["cwd"] >= hist.annual["cwd"])


class TestPackageExports:
    def test_version(self):
        assert isinstance(wbgrid.__version__, str)

    @pytest.mark.parametrize("name", wbgrid.__all__)
    def test_exported(self, name):
        assert hasattr(wbgrid, name)
