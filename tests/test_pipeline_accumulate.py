"""Tests for the multi-year accumulation of land-cover zonal means."""

import geopandas as gpd
import numpy as np
import polars as pl
import pytest
import rasterio
import rioxarray  # noqa: F401
import xarray as xr
from polars.testing import assert_frame_equal
from rasterio.transform import from_origin
from shapely.geometry import box

from geodata_tutorials.config import PipelineConfig
from geodata_tutorials.pipeline import (
    accumulate,
    raster_path_loader,
    run_landcover_pipeline,
    table_schema,
    to_multi_year_table,
    write_table,
)
from geodata_tutorials.raster_calcs import load_raster
from geodata_tutorials.vector_calcs import repair_geometries

# 2 x 6 grids, one polygon per 2 x 2 block
_CODES = {
    2020: np.array([[0, 0, 5, 5, 1, 1], [0, 0, 5, 5, 1, 1]], dtype="uint8"),
    2021: np.array([[2, 2, 6, 6, 3, 3], [2, 2, 6, 6, 4, 4]], dtype="uint8"),
}


def _write_raster(path, data, transform, crs="EPSG:4326"):
    height, width = data.shape
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=data.dtype,
        crs=crs,
        transform=transform,
    ) as dst:
        dst.write(data, 1)
    return path


@pytest.fixture
def raster_pattern(tmp_path):
    for year, codes in _CODES.items():
        _write_raster(tmp_path / f"lc_{year}.tif", codes, from_origin(0, 2, 1, 1))
    return str(tmp_path / "lc_{year}.tif")


@pytest.fixture
def parishes():
    return gpd.GeoDataFrame(
        {
            "GID_0": ["ECU"] * 3,
            "NAME_1": ["Pichincha", "Pichincha", "Napo"],
            "NAME_2": ["Quito", "Quito", "Tena"],
            "NAME_3": ["Cumbaya", "Tumbaco", "Puerto Napo"],
        },
        geometry=[box(0, 0, 2, 2), box(2, 0, 4, 2), box(4, 0, 6, 2)],
        crs="EPSG:4326",
    )


def _config(**kwargs):
    kwargs.setdefault("years", (2020, 2021))
    return PipelineConfig(crop=None, tile_size=2, **kwargs)


def test_accumulate_builds_long_table(raster_pattern, parishes):
    table = accumulate([2020, 2021], raster_path_loader(raster_pattern), parishes, config=_config())

    assert table.columns == ["id", "mean", "year", "parish", "province", "canton"]
    assert table.dtypes == [pl.Int64, pl.Float64, pl.Int32, pl.Utf8, pl.Utf8, pl.Utf8]
    assert table.height == 6
    assert table["year"].to_list() == [2020] * 3 + [2021] * 3
    assert table["id"].to_list() == [1, 2, 3, 1, 2, 3]
    assert table["mean"].to_list() == [None, 5.0, 1.0, 0.0, 6.0, None]
    assert table["parish"].to_list()[:3] == ["Cumbaya", "Tumbaco", "Puerto Napo"]
    assert table["province"].to_list()[2] == "Napo"


def test_accumulate_keeps_requested_year_order(raster_pattern, parishes):
    table = accumulate([2021, 2020], raster_path_loader(raster_pattern), parishes, config=_config(years=(2021, 2020)))

    assert table["year"].to_list() == [2021] * 3 + [2020] * 3


def test_accumulate_concurrent_matches_serial(raster_pattern, parishes):
    loader = raster_path_loader(raster_pattern)

    serial = accumulate([2020, 2021], loader, parishes, config=_config())
    concurrent = accumulate([2020, 2021], loader, parishes, config=_config(max_workers=2, tile_workers=2))

    assert_frame_equal(serial, concurrent)


def test_accumulate_with_custom_loader(parishes):
    def _load(year):
        grid = xr.DataArray(
            _CODES[2020].astype("float32"),
            dims=("y", "x"),
            coords={"y": [1.5, 0.5], "x": [0.5, 1.5, 2.5, 3.5, 4.5, 5.5]},
        )
        return grid.rio.write_crs("EPSG:4326")

    table = accumulate([1999], _load, parishes, config=_config(years=(1999,)))

    assert table["mean"].to_list() == [None, 5.0, 1.0]
    assert table["year"].to_list() == [1999] * 3


def test_accumulate_missing_year_aborts(raster_pattern, parishes):
    with pytest.raises(FileNotFoundError):
        accumulate([2020, 2022], raster_path_loader(raster_pattern), parishes, config=_config(years=(2020, 2022)))


def test_accumulate_rejects_duplicate_years(raster_pattern, parishes):
    with pytest.raises(ValueError):
        accumulate([2020, 2020], raster_path_loader(raster_pattern), parishes, config=_config(years=()))


def test_accumulate_saves_reclassified_rasters(tmp_path, raster_pattern, parishes):
    out_dir = tmp_path / "reclassified"

    accumulate([2020], raster_path_loader(raster_pattern), parishes, config=_config(years=(2020,), save_rasters_to=out_dir))

    with rasterio.open(out_dir / "reclassified_2020.tif") as src:
        assert np.isnan(src.read(1)[0, 0])


def test_raster_path_loader_requires_year_placeholder():
    with pytest.raises(ValueError):
        raster_path_loader("land_cover.tif")


def test_empty_table_is_typed():
    config = _config(years=())

    table = to_multi_year_table([], config.stat, config.schema)

    assert table.height == 0
    assert dict(table.schema) == table_schema(config.stat, config.schema)


def test_write_table_round_trip(tmp_path, raster_pattern, parishes):
    table = accumulate([2020], raster_path_loader(raster_pattern), parishes, config=_config(years=(2020,)))

    out_path = write_table(table, tmp_path / "nested" / "land_cover.csv")
    loaded = pl.read_csv(out_path)

    assert loaded.columns == table.columns
    assert loaded["mean"].to_list() == [None, 5.0, 1.0]


def test_run_landcover_pipeline_from_files(tmp_path, raster_pattern, parishes):
    polygon_path = tmp_path / "parishes.gpkg"
    parishes.to_file(polygon_path, driver="GPKG")
    output_csv = tmp_path / "out" / "land_cover.csv"

    table = run_landcover_pipeline(
        _config(raster_pattern=raster_pattern, polygon_path=polygon_path, output_csv=output_csv)
    )

    assert output_csv.exists()
    assert table.height == 6
    assert table["mean"].to_list() == [None, 5.0, 1.0, 0.0, 6.0, None]


def test_run_landcover_pipeline_needs_years(raster_pattern):
    with pytest.raises(ValueError):
        run_landcover_pipeline(_config(years=(), raster_pattern=raster_pattern))


def test_accumulate_without_config_keeps_full_width(raster_pattern, parishes):
    table = accumulate([2020, 2021], raster_path_loader(raster_pattern), parishes)

    assert table.height == 6
    assert table["mean"].to_list() == [None, 5.0, 1.0, 0.0, 6.0, None]


def test_accumulate_concurrent_missing_year_aborts(raster_pattern, parishes):
    config = _config(years=(2020, 2021, 2022), max_workers=2)

    with pytest.raises(FileNotFoundError):
        accumulate([2020, 2021, 2022], raster_path_loader(raster_pattern), parishes, config=config)


def test_accumulate_repairs_after_reprojection(tmp_path, parishes, monkeypatch):
    from geodata_tutorials import zonal_calcs

    data = np.full((3, 7), 5, dtype="uint8")
    path = _write_raster(tmp_path / "lc_mercator.tif", data, from_origin(0, 300000, 100000, 100000), crs="EPSG:3857")
    seen = []

    def _recording_repair(gdf, layer_name=None):
        seen.append(gdf.crs.to_epsg())
        return repair_geometries(gdf, layer_name=layer_name)

    monkeypatch.setattr(zonal_calcs, "repair_geometries", _recording_repair)

    table = accumulate([2020], lambda year: load_raster(path), parishes, config=_config(years=(2020,)))

    assert seen == [3857]
    assert table["mean"].to_list() == pytest.approx([5.0, 5.0, 5.0])
