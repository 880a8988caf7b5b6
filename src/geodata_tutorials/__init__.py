"""geodata_tutorials: land-cover and spatial analysis helpers for the geodata workshop.

The top-level package re-exports the workflows used by the workshop
notebooks so they can depend on a stable surface area.  The curated groups
are:

* Raster reclassification (:mod:`geodata_tutorials.raster_calcs`)
  - :class:`ReclassificationRule`, :data:`LAND_COVER_RULE`
  - :func:`load_raster`, :func:`iter_tiles`, :func:`apply_rule`
  - :func:`reclassify`, :func:`reclassify_raster`
  - :func:`crop_columns`, :func:`write_raster`
* Zonal statistics (:mod:`geodata_tutorials.zonal_calcs`)
  - :func:`compute_zonal_statistic`, :func:`compute_zonal_mean`
  - :func:`apply_admin_schema`, :func:`aggregate`
* Polygon layers (:mod:`geodata_tutorials.vector_calcs`)
  - :func:`repair_geometries`, :func:`check_layers`
  - :func:`assign_default_crs`, :func:`align_crs`, :func:`prepare_polygons`
  - :func:`population_change`
* Multi-year pipeline (:mod:`geodata_tutorials.pipeline`)
  - :func:`accumulate`, :func:`process_year`, :func:`raster_path_loader`
  - :func:`to_multi_year_table`, :func:`write_table`, :func:`run_landcover_pipeline`
* Spatial lags (:mod:`geodata_tutorials.spatial_lags`)
  - :func:`contiguity_weights`, :func:`knn_weights`
  - :func:`spatial_lag`, :func:`morans_i`, :class:`MoranResult`
* Data lookups (:mod:`geodata_tutorials.data_loader`)
  - :func:`get_political_level`, :func:`get_population_shapefile`
  - :func:`land_cover_raster_path`, :func:`read_vector`
* Settings and errors (:mod:`geodata_tutorials.config`, :mod:`geodata_tutorials.errors`)
  - :class:`PipelineConfig`, :class:`ColumnCrop`, :class:`AdminSchema`
  - :class:`GeodataError`, :class:`GeometryError`, :class:`CRSError`
"""

from .config import AdminSchema, ColumnCrop, PipelineConfig
from .data_loader import (
    get_political_level,
    get_population_shapefile,
    land_cover_raster_path,
    read_vector,
)
from .errors import CRSError, GeodataError, GeometryError
from .pipeline import (
    accumulate,
    process_year,
    raster_path_loader,
    run_landcover_pipeline,
    to_multi_year_table,
    write_table,
)
from .raster_calcs import (
    LAND_COVER_RULE,
    ReclassificationRule,
    apply_rule,
    crop_columns,
    iter_tiles,
    load_raster,
    reclassify,
    reclassify_raster,
    write_raster,
)
from .spatial_lags import (
    MoranResult,
    contiguity_weights,
    knn_weights,
    morans_i,
    spatial_lag,
)
from .vector_calcs import (
    align_crs,
    assign_default_crs,
    check_layers,
    population_change,
    prepare_polygons,
    repair_geometries,
)
from .zonal_calcs import (
    aggregate,
    apply_admin_schema,
    compute_zonal_mean,
    compute_zonal_statistic,
)


_CONFIG_EXPORTS = [
    "AdminSchema",
    "ColumnCrop",
    "PipelineConfig",
    "CRSError",
    "GeodataError",
    "GeometryError",
]
_DATA_LOADER_EXPORTS = [
    "get_political_level",
    "get_population_shapefile",
    "land_cover_raster_path",
    "read_vector",
]
_RASTER_EXPORTS = [
    "LAND_COVER_RULE",
    "ReclassificationRule",
    "apply_rule",
    "crop_columns",
    "iter_tiles",
    "load_raster",
    "reclassify",
    "reclassify_raster",
    "write_raster",
]
_ZONAL_EXPORTS = [
    "aggregate",
    "apply_admin_schema",
    "compute_zonal_mean",
    "compute_zonal_statistic",
]
_VECTOR_EXPORTS = [
    "align_crs",
    "assign_default_crs",
    "check_layers",
    "population_change",
    "prepare_polygons",
    "repair_geometries",
]
_PIPELINE_EXPORTS = [
    "accumulate",
    "process_year",
    "raster_path_loader",
    "run_landcover_pipeline",
    "to_multi_year_table",
    "write_table",
]
_SPATIAL_LAGS_EXPORTS = [
    "MoranResult",
    "contiguity_weights",
    "knn_weights",
    "morans_i",
    "spatial_lag",
]


__all__ = (
    _CONFIG_EXPORTS
    + _DATA_LOADER_EXPORTS
    + _RASTER_EXPORTS
    + _ZONAL_EXPORTS
    + _VECTOR_EXPORTS
    + _PIPELINE_EXPORTS
    + _SPATIAL_LAGS_EXPORTS
    + ["__version__", "__author__"]
)

# Package metadata
from importlib import metadata as _metadata
from pathlib import Path


try:
    __version__ = _metadata.version("geodata_tutorials")
except _metadata.PackageNotFoundError:
    try:  # Python 3.11+
        import tomllib
    except ModuleNotFoundError:  # pragma: no cover - Python <3.11
        tomllib = None

    _pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
    if tomllib is not None and _pyproject.exists():
        with _pyproject.open("rb") as _fp:
            __version__ = tomllib.load(_fp)["project"]["version"]
    else:
        __version__ = "0.0.0.dev1"

__author__ = "Geodata Tutorials contributors"
