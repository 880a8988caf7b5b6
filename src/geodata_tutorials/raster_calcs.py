"""
Raster loading, tiled reclassification and cropping for land-cover grids
"""

# -----------------------------------------------------------------------------
# MODULES
# -----------------------------------------------------------------------------
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

import numpy as np
import rasterio
import rioxarray as rxr
import xarray as xr
from rasterio.transform import Affine
from rasterio.windows import Window
from tqdm.auto import tqdm

from geodata_tutorials.config import DEFAULT_TILE_SIZE, ColumnCrop
from geodata_tutorials.log import raster_logger
from geodata_tutorials.paths import PathLike, as_path


# -----------------------------------------------------------------------------
# RULES
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ReclassificationRule:
    """Cell-wise remapping of categorical codes.

    Parameters
    ----------
    mapping:
        ``{input_code: replacement_value}``.
    nodata_codes:
        Codes that become ``nodata`` in the output.
    nodata:
        Value written for no-data cells.  The output grid is float32, so NaN
        is the natural choice.

    Codes that are in neither ``mapping`` nor ``nodata_codes`` pass through
    unchanged.  Cells equal to the source raster's own nodata value always
    become ``nodata``.
    """

    mapping: Mapping[float, float] = field(default_factory=dict)
    nodata_codes: frozenset = frozenset()
    nodata: float = np.nan

    def __post_init__(self):
        object.__setattr__(self, "mapping", dict(self.mapping))
        object.__setattr__(self, "nodata_codes", frozenset(self.nodata_codes))
        overlap = self.nodata_codes.intersection(self.mapping)
        if overlap:
            raise ValueError(f"Codes {sorted(overlap)} are both remapped and declared no-data.")


# Land-cover classes: 0, 3 and 4 carry no usable signal, 2 is recoded to 0.
LAND_COVER_RULE = ReclassificationRule(mapping={2: 0}, nodata_codes=(0, 3, 4))


def apply_rule(
    block: np.ndarray,
    rule: ReclassificationRule,
    source_nodata: Optional[float] = None,
) -> np.ndarray:
    """Apply ``rule`` to every cell of ``block`` and return a float32 array."""
    block = np.asarray(block)
    out = block.astype("float32", copy=True)

    # masks are built on the input so remapped values are never remapped again
    for code, value in rule.mapping.items():
        out[block == code] = value

    invalid = np.zeros(block.shape, dtype=bool)
    if rule.nodata_codes:
        invalid |= np.isin(block, list(rule.nodata_codes))
    if source_nodata is not None and not np.isnan(source_nodata):
        invalid |= block == source_nodata
    if np.issubdtype(block.dtype, np.floating):
        invalid |= np.isnan(block)

    out[invalid] = rule.nodata
    return out


# -----------------------------------------------------------------------------
# TILES
# -----------------------------------------------------------------------------
def iter_tiles(height: int, width: int, tile_size: int) -> Iterator[Window]:
    """Yield row-major windows of at most ``tile_size`` x ``tile_size`` pixels.

    Tiles on the far edges are clipped to the grid.
    """
    if tile_size <= 0:
        raise ValueError(f"tile_size must be a positive integer, got {tile_size}.")

    for row_start in range(0, height, tile_size):
        rows = min(tile_size, height - row_start)
        for col_start in range(0, width, tile_size):
            cols = min(tile_size, width - col_start)
            yield Window(col_start, row_start, cols, rows)


def count_tiles(height: int, width: int, tile_size: int) -> int:
    """Number of windows :func:`iter_tiles` yields for a grid."""
    return int(np.ceil(height / tile_size)) * int(np.ceil(width / tile_size))


# -----------------------------------------------------------------------------
# FUNCTIONS
# -----------------------------------------------------------------------------
def load_raster(path: PathLike, band: int = 1) -> xr.DataArray:
    """
    Open a single band of a raster as a lazily-read DataArray with spatial coords.

    Pixels are only read when a slice of the array is accessed, so tiled
    processing never holds the full source in memory.
    """
    path = as_path(path)
    if not path.exists():
        raise FileNotFoundError(f"Expected raster at '{path}'.")

    da = rxr.open_rasterio(path, masked=False, cache=False)
    n_bands = da.sizes.get("band", 1)
    if band < 1 or band > n_bands:
        raise ValueError(f"Band {band} requested but '{path}' has {n_bands} band(s).")

    if "band" in da.dims:
        da = da.isel(band=band - 1, drop=True)

    raster_logger.debug("Opened %s (%d x %d, crs=%s)", path, da.sizes["y"], da.sizes["x"], da.rio.crs)
    return da


def reclassify(
    grid: xr.DataArray,
    rule: ReclassificationRule,
    tile_size: int = DEFAULT_TILE_SIZE,
    max_workers: Optional[int] = None,
) -> xr.DataArray:
    """
    Reclassify ``grid`` tile by tile.

    Parameters
    ----------
    grid : xr.DataArray
        Single-band raster with ``rio`` metadata.  May be lazily backed by a file.
    rule : ReclassificationRule
        Remapping applied to each cell.
    tile_size : int
        Edge length of the square tiles.  Only affects memory use and speed,
        the result is the same for any positive value.
    max_workers : int, optional
        When greater than one, tiles are processed on a thread pool.  Tiles
        write disjoint regions of the output so no locking is needed.

    Returns
    -------
    xr.DataArray
        float32 grid with the same shape, coordinates, transform and CRS as
        ``grid`` and the rule's nodata value recorded.
    """
    if tile_size <= 0:
        raise ValueError(f"tile_size must be a positive integer, got {tile_size}.")

    y_dim, x_dim = grid.rio.y_dim, grid.rio.x_dim
    height, width = grid.sizes[y_dim], grid.sizes[x_dim]
    source_nodata = grid.rio.nodata
    out = np.empty((height, width), dtype="float32")

    n_tiles = count_tiles(height, width, tile_size)
    raster_logger.debug("Reclassifying %d x %d grid in %d tiles of %d px", height, width, n_tiles, tile_size)

    def _process(win: Window) -> None:
        rows, cols = win.toslices()
        block = grid.isel({y_dim: rows, x_dim: cols}).values
        out[rows, cols] = apply_rule(block, rule, source_nodata=source_nodata)

    progress = dict(desc="Reclassifying tiles", unit="tile", total=n_tiles, leave=False)
    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            # consuming the iterator re-raises the first failing tile
            for _ in tqdm(pool.map(_process, iter_tiles(height, width, tile_size)), **progress):
                pass
    else:
        for win in tqdm(iter_tiles(height, width, tile_size), **progress):
            _process(win)

    result = grid.copy(data=out)
    result.attrs.pop("_FillValue", None)
    return result.rio.write_nodata(rule.nodata, encoded=False, inplace=False)


def reclassify_raster(
    path: PathLike,
    rule: ReclassificationRule,
    tile_size: int = DEFAULT_TILE_SIZE,
    band: int = 1,
    max_workers: Optional[int] = None,
) -> xr.DataArray:
    """Load ``path`` and reclassify it with ``rule``."""
    return reclassify(load_raster(path, band=band), rule, tile_size=tile_size, max_workers=max_workers)


def crop_columns(grid: xr.DataArray, crop: Optional[ColumnCrop]) -> xr.DataArray:
    """
    Keep only the columns ``[crop.start, crop.stop)`` of ``grid``.

    The affine transform is shifted by ``crop.start`` pixels so every kept
    cell keeps its geographic footprint.  ``crop=None`` returns ``grid``.
    """
    if crop is None:
        return grid

    x_dim = grid.rio.x_dim
    width = grid.sizes[x_dim]
    if crop.start >= width:
        raise ValueError(f"Crop start column {crop.start} is outside a raster {width} columns wide.")
    stop = width if crop.stop is None else min(crop.stop, width)

    shifted = grid.rio.transform() * Affine.translation(crop.start, 0)
    cropped = grid.isel({x_dim: slice(crop.start, stop)})
    raster_logger.debug("Cropped columns %d:%d of %d", crop.start, stop, width)
    return cropped.rio.write_transform(shifted)


def write_raster(grid: xr.DataArray, out_path: PathLike) -> None:
    """
    Write a single-band DataArray to a float32 GeoTIFF using its own metadata.
    """
    y_dim, x_dim = grid.rio.y_dim, grid.rio.x_dim
    meta = {
        "driver": "GTiff",
        "height": grid.sizes[y_dim],
        "width": grid.sizes[x_dim],
        "count": 1,
        "dtype": "float32",
        "crs": grid.rio.crs,
        "transform": grid.rio.transform(),
        "nodata": grid.rio.nodata,
        "compress": "lzw",
    }
    with rasterio.open(as_path(out_path), "w", **meta) as dst:
        dst.write(grid.values.astype("float32"), 1)
