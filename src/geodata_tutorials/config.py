"""Settings for the land-cover zonal statistics workflow.

Defaults follow the Ecuador land-cover exercise: 512 pixel tiles, polygons
without a CRS treated as lon/lat, and the GADM administrative columns reduced
to ``parish``, ``province`` and ``canton``.  The exercise also crops its
source raster from column ``DEFAULT_CROP_START`` onwards; that crop is only
applied when asked for (``ColumnCrop(DEFAULT_CROP_START)`` or the command
line default).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple, Union

DEFAULT_TILE_SIZE = 512
DEFAULT_CROP_START = 40000
DEFAULT_POLYGON_CRS = "EPSG:4326"
DEFAULT_STAT = "mean"
SUPPORTED_STATS = ("mean", "sum", "count", "min", "max")

# GADM level columns -> workshop names
DEFAULT_ADMIN_RENAME = {
    "NAME_3": "parish",
    "NAME_1": "province",
    "NAME_2": "canton",
}
DEFAULT_ADMIN_DROP = (
    "GID_0",
    "NAME_0",
    "GID_1",
    "NL_NAME_1",
    "GID_2",
    "NL_NAME_2",
    "GID_3",
    "VARNAME_3",
    "NL_NAME_3",
    "TYPE_3",
    "ENGTYPE_3",
    "CC_3",
    "HASC_3",
)


@dataclass(frozen=True)
class ColumnCrop:
    """Column slice ``[start, stop)`` applied to a raster before aggregation."""

    start: int = 0
    stop: Optional[int] = None

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"Crop start must be >= 0, got {self.start}.")
        if self.stop is not None and self.stop <= self.start:
            raise ValueError(f"Crop stop ({self.stop}) must be greater than start ({self.start}).")


@dataclass(frozen=True)
class AdminSchema:
    """Declarative drop/rename applied to the polygon attribute table."""

    rename: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ADMIN_RENAME))
    drop: Sequence[str] = DEFAULT_ADMIN_DROP

    @property
    def output_columns(self) -> Tuple[str, ...]:
        return tuple(self.rename.values())


@dataclass(frozen=True)
class PipelineConfig:
    """Everything :func:`geodata_tutorials.pipeline.run_landcover_pipeline` needs."""

    raster_pattern: Union[str, Path] = ""
    polygon_path: Union[str, Path] = ""
    years: Sequence[int] = ()
    output_csv: Optional[Union[str, Path]] = None
    tile_size: int = DEFAULT_TILE_SIZE
    crop: Optional[ColumnCrop] = None
    stat: str = DEFAULT_STAT
    default_crs: str = DEFAULT_POLYGON_CRS
    schema: AdminSchema = field(default_factory=AdminSchema)
    band: int = 1
    max_workers: Optional[int] = None
    tile_workers: Optional[int] = None
    save_rasters_to: Optional[Union[str, Path]] = None

    def __post_init__(self):
        if self.tile_size <= 0:
            raise ValueError(f"tile_size must be a positive integer, got {self.tile_size}.")
        if self.stat not in SUPPORTED_STATS:
            raise ValueError(f"Unknown statistic {self.stat!r}. Valid values are {', '.join(SUPPORTED_STATS)}.")
        if self.band < 1:
            raise ValueError(f"band must be >= 1, got {self.band}.")
        for name in ("max_workers", "tile_workers"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be >= 1 when given, got {value}.")
        if len(set(self.years)) != len(tuple(self.years)):
            raise ValueError("years must not contain duplicates.")
