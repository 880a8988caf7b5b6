"""Helpers for lazily loading the workshop's vector layers and raster paths.

The notebooks read the Ecuador political division shapefiles
(``nivel-politico-{1..4}.shp``), the population layer and one land-cover
raster per year.  This module centralises where those files live, loads the
vector layers on demand and caches the parsed ``geopandas`` objects.  Callers
always receive a fresh copy so that renaming or adding columns in one notebook
cell never leaks into another.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Callable, Optional, Tuple, TypeVar

import geopandas as gpd

from geodata_tutorials.paths import PathLike, as_path, data_path

gpd.options.io_engine = "pyogrio"

TableT = TypeVar("TableT")

POLITICAL_LEVELS = (1, 2, 3, 4)
LAND_COVER_PATTERN = "land_cover_{year}.tif"


def _ensure_exists(path: Path, *, description: str) -> Path:
    """Ensure ``path`` exists before attempting to read it."""

    if not path.exists():
        raise FileNotFoundError(f"Expected {description} at '{path}'.")
    return path


def _cached_table(
    path_factory: Callable[[], Path],
    reader: Callable[[Path], TableT],
    *,
    description: str,
    clone_method: str = "copy",
) -> Tuple[Callable[[], TableT], Callable[[], TableT]]:
    """Construct cached loader/getter pair for tabular resources.

    The returned loader lazily reads from ``path_factory`` on first use while the
    getter clones the cached object each time to protect callers from accidental
    mutation.
    """

    @lru_cache(maxsize=None)
    def load() -> TableT:
        path = _ensure_exists(path_factory(), description=description)
        return reader(path)

    def get() -> TableT:
        table = load()
        return getattr(table, clone_method)()

    return load, get


def read_vector(path: PathLike) -> gpd.GeoDataFrame:
    """Read a vector file, raising ``FileNotFoundError`` with the path when absent."""

    path = _ensure_exists(as_path(path), description="vector layer")
    return gpd.read_file(path)


@lru_cache(maxsize=None)
def _load_political_level(level: int) -> gpd.GeoDataFrame:
    """Read one Ecuador political division shapefile from disk."""

    path = data_path("shapefiles", f"nivel-politico-{level}.shp")
    return gpd.read_file(_ensure_exists(path, description=f"political level {level} shapefile"))


def get_political_level(level: int) -> gpd.GeoDataFrame:
    """Return a cached copy of the Ecuador political division layer ``level`` (1-4)."""

    if level not in POLITICAL_LEVELS:
        raise ValueError(f"Political level must be one of {POLITICAL_LEVELS}, got {level}.")
    return _load_political_level(level).copy()


_load_population_shapefile, get_population_shapefile = _cached_table(
    lambda: data_path("shapefiles", "pop_shape7.shp"),
    gpd.read_file,
    description="population shapefile",
)
_load_population_shapefile.__doc__ = "Read the population shapefile from disk."
get_population_shapefile.__doc__ = (
    "Return a cached copy of the population shapefile."
)


def land_cover_raster_path(year: int, pattern: Optional[PathLike] = None) -> Path:
    """Return the land-cover raster path for ``year``.

    ``pattern`` is a ``{year}`` template; relative templates resolve beneath
    ``02_data/rasters``.
    """

    template = str(pattern) if pattern is not None else LAND_COVER_PATTERN
    candidate = Path(template.format(year=year))
    if candidate.is_absolute():
        return candidate
    return data_path("rasters", candidate)
