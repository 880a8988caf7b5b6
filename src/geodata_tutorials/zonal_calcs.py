# Zonal statistics of raster grids over polygon layers

# MODULES
from __future__ import annotations

from typing import Callable, Dict, List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr
from rasterio.features import rasterize
from rasterio.transform import Affine
from rasterio.windows import Window
from rasterio.windows import transform as window_transform
from shapely.geometry import box
from shapely.prepared import prep as prep_geom

from geodata_tutorials.config import DEFAULT_POLYGON_CRS, DEFAULT_STAT, SUPPORTED_STATS, AdminSchema, ColumnCrop
from geodata_tutorials.log import zonal_logger
from geodata_tutorials.raster_calcs import crop_columns
from geodata_tutorials.vector_calcs import align_crs, repair_geometries


###########################
### COVERAGE FRACTIONS ###
###########################

def _pixel_area_from_transform(transform: Affine) -> float:
    """Pixel area for north-up rasters."""
    return abs(transform.a * transform.e)


def _fractional_cover_supersample(geom, out_shape, transform, factor=5):
    """
    Approximate fractional coverage per pixel by rasterising on a grid
    ``factor`` times finer and averaging the blocks back.
    Returns an array (H, W) with fractions in [0, 1].
    """
    H, W = out_shape
    Hf, Wf = H * factor, W * factor

    fine_transform = Affine(transform.a / factor, transform.b, transform.c,
                            transform.d, transform.e / factor, transform.f)

    # centre-of-cell rule on the fine grid, otherwise edges bleed into neighbours
    fine_mask = rasterize(
        [(geom, 1)],
        out_shape=(Hf, Wf),
        transform=fine_transform,
        all_touched=False,
        fill=0,
        dtype="float32"
    )

    fine_mask = fine_mask.reshape(H, factor, W, factor)
    return fine_mask.mean(axis=(1, 3))


def _fractional_cover_exact(geom, out_shape, transform):
    """
    Exact fractional coverage using per-cell polygon intersections.
    Returns an array (H, W) with fractions in [0, 1].
    NOTE: slow for large windows.
    """
    H, W = out_shape
    frac = np.zeros((H, W), dtype="float32")
    prepared = prep_geom(geom)
    px_area = _pixel_area_from_transform(transform)

    for r in range(H):
        y_top = transform.f + r * transform.e
        y_bot = y_top + transform.e
        for c in range(W):
            x_left = transform.c + c * transform.a
            x_right = x_left + transform.a

            cell_poly = box(min(x_left, x_right), min(y_top, y_bot),
                            max(x_left, x_right), max(y_top, y_bot))
            if not prepared.intersects(cell_poly):
                continue

            inter_area = cell_poly.intersection(geom).area
            if inter_area <= 0:
                continue

            frac[r, c] = min(1.0, inter_area / px_area)
    return frac


_COVER_METHODS: Dict[str, Callable] = {
    "supersample": _fractional_cover_supersample,
    "exact": _fractional_cover_exact,
}


def _polygon_window(geom, transform: Affine, height: int, width: int) -> Optional[Window]:
    """Smallest window of the grid containing the bounds of ``geom``, or None when outside."""
    minx, miny, maxx, maxy = geom.bounds
    inverse = ~transform
    corners = [inverse * (x, y) for x in (minx, maxx) for y in (miny, maxy)]
    cols = [col for col, _ in corners]
    rows = [row for _, row in corners]

    col_off = max(int(np.floor(min(cols))), 0)
    col_end = min(int(np.ceil(max(cols))), width)
    row_off = max(int(np.floor(min(rows))), 0)
    row_end = min(int(np.ceil(max(rows))), height)

    if col_end <= col_off or row_end <= row_off:
        return None
    return Window(col_off, row_off, col_end - col_off, row_end - row_off)


def _summarise(values: np.ndarray, weights: np.ndarray, stat: str) -> Optional[float]:
    """Coverage-weighted summary of the valid cells; None when there are none."""
    valid = np.isfinite(values) & (weights > 0)
    if stat == "count":
        return float(weights[valid].sum())
    if not valid.any():
        return None

    v = values[valid].astype("float64")
    w = weights[valid].astype("float64")
    if stat == "mean":
        return float(np.sum(w * v) / np.sum(w))
    if stat == "sum":
        return float(np.sum(w * v))
    if stat == "min":
        return float(v.min())
    if stat == "max":
        return float(v.max())
    raise ValueError(f"Unknown statistic {stat!r}. Valid values are {', '.join(SUPPORTED_STATS)}.")


#################
### FUNCTIONS ###
#################

def compute_zonal_statistic(
    grid: xr.DataArray,
    polygons: gpd.GeoDataFrame,
    stat: str = DEFAULT_STAT,
    method: str = "supersample",
    factor: int = 5,
) -> List[Optional[float]]:
    """
    Compute ``stat`` of ``grid`` for every polygon, in polygon order.

    Parameters
    ----------
    grid : xr.DataArray
        Single-band raster with ``rio`` metadata.  Nodata cells are excluded.
    polygons : GeoDataFrame
        Polygons already in the grid's CRS.
    stat : str
        ``mean`` (coverage-weighted, default), ``sum`` and ``count``
        (coverage-weighted), ``min`` or ``max``.
    method : str
        ``supersample`` (fast approximation) or ``exact`` cell coverage.
        Polygons too small to hit a supersampled cell centre fall back to
        ``exact``.
    factor : int
        Supersampling factor.

    Returns
    -------
    list
        One float per polygon, or None where no valid cell is covered.
    """
    if stat not in SUPPORTED_STATS:
        raise ValueError(f"Unknown statistic {stat!r}. Valid values are {', '.join(SUPPORTED_STATS)}.")
    if method not in _COVER_METHODS:
        raise ValueError(f"Unknown coverage method {method!r}. Valid values are {', '.join(_COVER_METHODS)}.")
    if factor < 1:
        raise ValueError(f"factor must be >= 1, got {factor}.")

    y_dim, x_dim = grid.rio.y_dim, grid.rio.x_dim
    height, width = grid.sizes[y_dim], grid.sizes[x_dim]
    transform = grid.rio.transform()
    nodata = grid.rio.nodata

    results: List[Optional[float]] = []
    for geom in polygons.geometry:
        win = _polygon_window(geom, transform, height, width)
        if win is None:
            results.append(_summarise(np.empty(0), np.empty(0), stat))
            continue

        rows, cols = win.toslices()
        values = grid.isel({y_dim: rows, x_dim: cols}).values.astype("float64")
        if nodata is not None and not np.isnan(nodata):
            values[values == nodata] = np.nan

        win_transform = window_transform(win, transform)
        if method == "supersample":
            weights = _fractional_cover_supersample(geom, values.shape, win_transform, factor=factor)
            if not weights.any():
                weights = _fractional_cover_exact(geom, values.shape, win_transform)
        else:
            weights = _fractional_cover_exact(geom, values.shape, win_transform)

        results.append(_summarise(values, weights, stat))

    return results


def compute_zonal_mean(grid: xr.DataArray, polygons: gpd.GeoDataFrame, **kwargs) -> List[Optional[float]]:
    """Coverage-weighted mean of ``grid`` per polygon (None where nothing valid overlaps)."""
    return compute_zonal_statistic(grid, polygons, stat="mean", **kwargs)


def apply_admin_schema(table: pd.DataFrame, schema: AdminSchema) -> pd.DataFrame:
    """
    Drop the administrative metadata columns and rename the level columns.

    Columns listed in ``schema.drop`` that are absent are ignored; a column
    that ``schema.rename`` expects but cannot find raises ``KeyError``.
    """
    missing = [name for name in schema.rename if name not in table.columns]
    if missing:
        raise KeyError(f"Columns {missing} required by the admin schema not found. Available: {list(table.columns)}")

    to_drop = [name for name in schema.drop if name in table.columns]
    return table.drop(columns=to_drop).rename(columns=dict(schema.rename))


def aggregate(
    grid: xr.DataArray,
    polygons: gpd.GeoDataFrame,
    stat: str = DEFAULT_STAT,
    crop: Optional[ColumnCrop] = None,
    schema: Optional[AdminSchema] = None,
    default_crs: Optional[str] = DEFAULT_POLYGON_CRS,
    repair: bool = True,
    method: str = "supersample",
) -> gpd.GeoDataFrame:
    """
    Attach the zonal ``stat`` of ``grid`` to every polygon.

    Steps: optional column crop of the grid, polygons moved to the grid's
    CRS (``default_crs`` assumed when they have none) and then repaired, zonal
    statistic, then the optional admin schema.  The result has one row per
    polygon, in input order, with a nullable ``stat`` column.
    """
    grid = crop_columns(grid, crop)
    polygons = align_crs(polygons, grid.rio.crs, default_crs=default_crs)
    # reprojection can itself produce invalid rings
    if repair:
        polygons = repair_geometries(polygons)

    zonal_logger.debug("Computing %s over %d polygons", stat, len(polygons))
    values = compute_zonal_statistic(grid, polygons, stat=stat, method=method)

    result = polygons.copy()
    result[stat] = pd.array(values, dtype="Float64")

    if schema is not None:
        result = apply_admin_schema(result, schema)

    n_null = int(result[stat].isna().sum())
    if n_null:
        zonal_logger.debug("%d of %d polygons have no valid cells", n_null, len(result))
    return result
