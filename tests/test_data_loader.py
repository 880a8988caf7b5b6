from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import box

from geodata_tutorials import data_loader
from geodata_tutorials.paths import data_dir, output_path


def test_land_cover_raster_path_defaults_to_data_dir():
    path = data_loader.land_cover_raster_path(2015)

    assert path == data_dir() / "rasters" / "land_cover_2015.tif"


def test_land_cover_raster_path_absolute_pattern(tmp_path):
    pattern = tmp_path / "lc_{year}.tif"

    assert data_loader.land_cover_raster_path(2001, pattern) == tmp_path / "lc_2001.tif"


def test_get_political_level_rejects_unknown_level():
    with pytest.raises(ValueError):
        data_loader.get_political_level(7)


def test_read_vector_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_loader.read_vector(tmp_path / "missing.shp")


def test_output_path_accepts_iterables():
    assert output_path(["tables", "a.csv"]) == output_path("tables", "a.csv")
    assert isinstance(output_path("a.csv"), Path)


def test_population_shapefile_is_cached_and_copied(tmp_path, monkeypatch):
    shp_dir = tmp_path / "shapefiles"
    shp_dir.mkdir()
    layer = gpd.GeoDataFrame({"2001": [10], "2020": [12]}, geometry=[box(0, 0, 1, 1)], crs="EPSG:4326")
    layer.to_file(shp_dir / "pop_shape7.shp")

    monkeypatch.setattr(data_loader, "data_path", lambda *parts: tmp_path.joinpath(*parts))
    data_loader._load_population_shapefile.cache_clear()
    try:
        first = data_loader.get_population_shapefile()
        first["extra"] = 1
        second = data_loader.get_population_shapefile()
    finally:
        data_loader._load_population_shapefile.cache_clear()

    assert "extra" not in second.columns
    assert len(second) == 1
