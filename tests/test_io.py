"""
Tests for raster / table I/O and loading a site from disk.
"""

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from affine import Affine
from conftest import UTM_TRANSFORM, UTM_WKT, write_site
from shapely.geometry import box

from wbgrid import io
from wbgrid.errors import GridShapeMismatch, InputDataError
from wbgrid.models import SiteConfig, TerrainGrid


class TestSaveLoadRaster:
    def test_round_trip(self, tmp_path):
        data = np.arange(12, dtype=np.float32).reshape(3, 4)
        data[0, 0] = np.nan
        path = io.save_raster(tmp_path / "x.tif", data, UTM_TRANSFORM, UTM_WKT, no_data_val=np.nan)

        arr, trf, crs, _ = io.load_raster(path)

        assert arr.dtype == np.float64
        assert np.isnan(arr[0, 0])
        np.testing.assert_allclose(arr[1:], data[1:])
        assert trf == UTM_TRANSFORM
        assert crs is not None

    def test_int_nodata_becomes_nan(self, tmp_path):
        data = np.array([[1, -9999], [3, 4]], dtype=np.int32)
        path = io.save_raster(tmp_path / "i.tif", data, UTM_TRANSFORM, UTM_WKT, no_data_val=-9999)
        arr, _, _, nodata = io.load_raster(path)
        assert nodata == -9999
        assert np.isnan(arr[0, 1])

    def test_no_partial_file_left(self, tmp_path):
        path = io.save_raster(tmp_path / "p.tif", np.ones((2, 2), dtype=np.float32), UTM_TRANSFORM, UTM_WKT)
        assert path.exists()
        assert not io.partial_path(path).exists()

    @pytest.mark.parametrize("size, block", [(512, (256, 256)), (16, None)])
    def test_tiling_by_grid_size(self, tmp_path, size, block):
        path = io.save_raster(tmp_path / "t.tif", np.zeros((size, size), dtype=np.float32), UTM_TRANSFORM, UTM_WKT)
        with rasterio.open(path) as src:
            if block is None:
                # Striped: every block spans the full width
                assert src.block_shapes[0][1] == size
            else:
                assert src.block_shapes[0] == block
            assert src.profile["compress"] == "deflate"

    def test_band_descriptions_and_tags(self, tmp_path):
        stack = np.ones((2, 3, 3), dtype=np.float32)
        path = io.save_raster(
            tmp_path / "s.tif",
            stack,
            UTM_TRANSFORM,
            UTM_WKT,
            band_descriptions=["2001", "2002"],
            tags={"variable": "aet"},
        )
        meta = io.load_raster_stack(path)
        assert meta["descriptions"] == ["2001", "2002"]
        assert meta["tags"]["variable"] == "aet"
        assert meta["data"].shape == (2, 3, 3)

    def test_description_count_mismatch(self, tmp_path):
        with pytest.raises(ValueError, match="band descriptions"):
            io.save_raster(
                tmp_path / "s.tif", np.ones((2, 3, 3)), UTM_TRANSFORM, UTM_WKT, band_descriptions=["2001"]
            )

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            io.load_raster(tmp_path / "missing.tif")

    def test_metadata(self, tmp_path):
        path = io.save_raster(tmp_path / "m.tif", np.ones((5, 7), dtype=np.float32), UTM_TRANSFORM, UTM_WKT)
        meta = io.get_raster_metadata(path)
        assert (meta["rows"], meta["cols"]) == (5, 7)


class TestBboxWindow:
    TRF = Affine(30.0, 0.0, 1000.0, 0.0, -30.0, 2000.0)

    def test_aligned(self):
        window = io.bbox_to_window([1030.0, 1850.0, 1120.0, 1970.0], self.TRF, 10, 10)
        assert (window.col_off, window.row_off, window.width, window.height) == (1, 1, 3, 4)

    def test_snaps_inward(self):
        window = io.bbox_to_window([1010.0, 1840.0, 1130.0, 1975.0], self.TRF, 10, 10)
        assert (window.col_off, window.row_off, window.width, window.height) == (1, 1, 3, 4)

    @pytest.mark.parametrize(
        "bbox, match",
        [
            ([1000.0, 1900.0], "four numeric values"),
            ([1100.0, 1900.0, 1000.0, 2000.0], "invalid"),
            ([970.0, 1900.0, 1060.0, 2000.0], "not fully contained"),
            ([1005.0, 1905.0, 1025.0, 1925.0], "no whole cell"),
        ],
    )
    def test_rejected(self, bbox, match):
        with pytest.raises(ValueError, match=match):
            io.bbox_to_window(bbox, self.TRF, 10, 10)


class TestRasterise:
    def test_off_grid_polygons_ignored(self):
        x0, y0 = UTM_TRANSFORM[0], UTM_TRANSFORM[3]
        on_grid = box(x0, y0 - 60.0, x0 + 30.0, y0)
        off_grid = box(x0 + 3000.0, y0 + 3000.0, x0 + 3090.0, y0 + 3090.0)
        gdf = gpd.GeoDataFrame(geometry=[on_grid, off_grid], crs=UTM_WKT)

        burned = io.rasterise_gdf(gdf, UTM_TRANSFORM, (3, 3))

        expected = np.zeros((3, 3), dtype=bool)
        expected[:2, 0] = True
        np.testing.assert_array_equal(burned, expected)

    def test_nothing_on_grid(self):
        x0, y0 = UTM_TRANSFORM[0], UTM_TRANSFORM[3]
        gdf = gpd.GeoDataFrame(geometry=[box(x0 - 900.0, y0, x0 - 600.0, y0 + 300.0)], crs=UTM_WKT)
        assert not io.rasterise_gdf(gdf, UTM_TRANSFORM, (3, 3)).any()


class TestCoordinates:
    def test_utm_latitude(self):
        _, lat = io.xy_to_lnglat(UTM_WKT, np.array([270000.0]), np.array([4180000.0]))
        assert 37.0 < lat[0] < 38.5

    def test_is_geographic(self):
        from pyproj import CRS

        assert io.is_geographic(CRS.from_epsg(4326).to_wkt())
        assert not io.is_geographic(UTM_WKT)
        assert not io.is_geographic(None)


class TestTerrainFromSite:
    def test_loads_site(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(3, 4))
        terrain = TerrainGrid.from_site(site)

        assert terrain.shape == (3, 4)
        assert terrain.name == "alpha"
        assert 37.0 < terrain.latitude.mean() < 38.5
        np.testing.assert_allclose(terrain.whc, 150.0)

    def test_whc_scale(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(2, 2))
        terrain = TerrainGrid.from_site(site, whc_scale=0.5)
        np.testing.assert_allclose(terrain.whc, 75.0)

    def test_missing_raster(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(2, 2))
        (tmp_path / "alpha" / "soil" / "whc.tif").unlink()
        with pytest.raises(InputDataError) as exc_info:
            TerrainGrid.from_site(site)
        assert exc_info.value.field == "whc"

    def test_misaligned_raster(self, tmp_path):
        site = write_site(tmp_path, "alpha", shape=(3, 3))
        whc_path = tmp_path / "alpha" / "soil" / "whc.tif"
        io.save_raster(whc_path, np.ones((2, 3), dtype=np.float32), UTM_TRANSFORM, UTM_WKT)
        with pytest.raises(GridShapeMismatch):
            TerrainGrid.from_site(site)

    def test_slope_aspect_derived(self, tmp_path):
        """Without slope/aspect rasters they come from the DEM (Horn)."""
        elevation = np.tile(np.arange(5, dtype=np.float32) * 30.0, (5, 1))
        write_site(tmp_path, "ramp", shape=(5, 5), elevation=elevation)
        site = SiteConfig(
            name="ramp", input_root=str(tmp_path / "ramp"), climate_elevation_m=1000.0, slope=None, aspect=None
        )

        terrain = TerrainGrid.from_site(site)

        np.testing.assert_allclose(terrain.slope[1:-1, 1:-1], 45.0, atol=1e-6)
        np.testing.assert_allclose(terrain.aspect[1:-1, 1:-1], 270.0, atol=1e-6)

    @pytest.mark.parametrize(
        "offsets",
        [
            (60.0, 150.0, 180.0, 30.0),  # on cell edges
            (45.0, 170.0, 200.0, 20.0),  # partly covered edge cells are dropped
        ],
    )
    def test_bbox_crop(self, tmp_path, offsets):
        elevation = 1000.0 + np.arange(48, dtype=np.float32).reshape(6, 8)
        write_site(tmp_path, "alpha", shape=(6, 8), elevation=elevation)
        x0, y0 = UTM_TRANSFORM[0], UTM_TRANSFORM[3]
        left, bottom, right, top = offsets
        site = SiteConfig(
            name="alpha",
            input_root=str(tmp_path / "alpha"),
            climate_elevation_m=1000.0,
            bbox=(x0 + left, y0 - bottom, x0 + right, y0 - top),
        )

        terrain = TerrainGrid.from_site(site)

        assert terrain.shape == (4, 4)
        np.testing.assert_allclose(terrain.elevation, elevation[1:5, 2:6])
        np.testing.assert_allclose(terrain.whc, 150.0)
        assert terrain.transform == [x0 + 60.0, 30.0, 0.0, y0 - 30.0, 0.0, -30.0]

    def test_bbox_outside_grid(self, tmp_path):
        write_site(tmp_path, "alpha", shape=(3, 3))
        x0, y0 = UTM_TRANSFORM[0], UTM_TRANSFORM[3]
        site = SiteConfig(
            name="alpha",
            input_root=str(tmp_path / "alpha"),
            climate_elevation_m=1000.0,
            bbox=(x0 - 60.0, y0 - 60.0, x0 + 60.0, y0),
        )
        with pytest.raises(InputDataError) as exc_info:
            TerrainGrid.from_site(site)
        assert exc_info.value.field == "elevation"

    def test_vector_soil_mask(self, tmp_path):
        write_site(tmp_path, "alpha", shape=(4, 4))
        x0, y0 = UTM_TRANSFORM[0], UTM_TRANSFORM[3]
        # Covers the two western columns
        polygon = box(x0, y0 - 4 * 30.0, x0 + 2 * 30.0, y0)
        gpd.GeoDataFrame(geometry=[polygon], crs=UTM_WKT).to_file(tmp_path / "alpha" / "soil" / "exclude.gpkg")
        site = SiteConfig(
            name="alpha", input_root=str(tmp_path / "alpha"), climate_elevation_m=1000.0, soil_mask="soil/exclude.gpkg"
        )

        terrain = TerrainGrid.from_site(site)

        expected = np.zeros((4, 4), dtype=bool)
        expected[:, :2] = True
        np.testing.assert_array_equal(terrain.exclusion_mask, expected)


class TestReadClimateTable:
    def test_sorted_by_date(self, tmp_path):
        (tmp_path / "c.csv").write_text("date,tmin,tmax,precip\n2001-01-02,0,1,2\n2001-01-01,3,4,5\n")
        df = io.read_climate_table(tmp_path / "c.csv")
        assert list(df["precip"]) == [5.0, 2.0]

    def test_comment_lines_ignored(self, tmp_path):
        (tmp_path / "c.csv").write_text("# station 042\ndate,tmin,tmax,precip\n2001-01-01,0,1,2\n")
        assert len(io.read_climate_table(tmp_path / "c.csv")) == 1

    def test_empty_table(self, tmp_path):
        (tmp_path / "c.csv").write_text("date,tmin,tmax,precip\n")
        with pytest.raises(ValueError, match="no rows"):
            io.read_climate_table(tmp_path / "c.csv")
