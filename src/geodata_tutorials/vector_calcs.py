# Methods for checking and preparing polygon layers

# MODULES
from __future__ import annotations

from typing import Dict, Mapping, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import MultiPolygon, Polygon

from geodata_tutorials.config import DEFAULT_POLYGON_CRS
from geodata_tutorials.errors import CRSError, GeometryError
from geodata_tutorials.log import zonal_logger

_POLYGONAL = ("Polygon", "MultiPolygon")


#################
### GEOMETRY ###
#################

def _polygonal_part(geom):
    """Return the polygon content of ``geom`` or ``None`` when there is none."""
    if geom is None or geom.is_empty:
        return None
    if geom.geom_type in _POLYGONAL:
        return geom

    # make_valid can return collections mixing polygons with stray lines/points
    parts = []
    for part in getattr(geom, "geoms", []):
        if isinstance(part, Polygon):
            parts.append(part)
        elif isinstance(part, MultiPolygon):
            parts.extend(part.geoms)
    if not parts:
        return None
    return parts[0] if len(parts) == 1 else MultiPolygon(parts)


def _positions(mask: pd.Series) -> list:
    return np.flatnonzero(np.asarray(mask)).tolist()


def repair_geometries(gdf: gpd.GeoDataFrame, layer_name: Optional[str] = None) -> gpd.GeoDataFrame:
    """
    Return ``gdf`` with invalid polygon geometries repaired.

    Invalid geometries go through ``make_valid`` and are reduced to their
    polygonal parts.  Rows are never dropped: a missing, empty or
    non-polygonal geometry, or one that is still invalid after repair, raises
    :class:`GeometryError` with the offending row positions.
    """
    label = layer_name or "polygon layer"
    geoms = gdf.geometry

    missing = geoms.isna() | geoms.is_empty
    if missing.any():
        positions = _positions(missing)
        raise GeometryError(f"{label}: missing or empty geometries at rows {positions}.", positions)

    invalid = ~geoms.is_valid
    if not invalid.any():
        fixed = gdf
    else:
        zonal_logger.info("%s: repairing %d invalid geometries", label, int(invalid.sum()))
        repaired = geoms.copy()
        repaired[invalid] = geoms[invalid].make_valid().apply(_polygonal_part)
        fixed = gdf.copy()
        fixed[geoms.name] = repaired

    fixed_geoms = fixed.geometry
    bad = fixed_geoms.isna() | ~fixed_geoms.geom_type.isin(_POLYGONAL) | ~fixed_geoms.is_valid
    if bad.any():
        positions = _positions(bad)
        raise GeometryError(f"{label}: geometries at rows {positions} are not valid polygons and could not be repaired.", positions)

    return fixed


def check_layers(layers: Mapping[str, gpd.GeoDataFrame]) -> Dict[str, gpd.GeoDataFrame]:
    """Check every layer for valid geometries, repairing where needed.

    Returns a new ``{name: layer}`` dictionary with the repaired layers.
    """
    checked = {}
    for name, layer in layers.items():
        is_valid = bool(layer.geometry.is_valid.all())
        zonal_logger.info("Layer %s valid: %s", name, is_valid)
        checked[name] = repair_geometries(layer, layer_name=name)
        if not is_valid:
            zonal_logger.info("Fixed invalid geometries for %s", name)
    return checked


###########
### CRS ###
###########

def assign_default_crs(gdf: gpd.GeoDataFrame, default_crs: Optional[str] = DEFAULT_POLYGON_CRS) -> gpd.GeoDataFrame:
    """Give ``gdf`` ``default_crs`` when it carries no CRS of its own."""
    if gdf.crs is not None:
        return gdf
    if default_crs is None:
        raise CRSError("Polygon layer has no CRS and no default CRS was given.")

    # only safe because the workshop layers are known to be lon/lat
    zonal_logger.warning("Polygon layer has no CRS; assuming %s", default_crs)
    return gdf.set_crs(default_crs)


def align_crs(
    gdf: gpd.GeoDataFrame,
    raster_crs,
    default_crs: Optional[str] = DEFAULT_POLYGON_CRS,
) -> gpd.GeoDataFrame:
    """
    Reproject ``gdf`` to ``raster_crs``.

    Polygons without a CRS get ``default_crs`` first.  The reprojection is
    applied once to the whole layer.
    """
    if raster_crs is None:
        raise CRSError("Raster has no CRS; polygons cannot be aligned to it.")

    gdf = assign_default_crs(gdf, default_crs)
    if gdf.crs != raster_crs:
        zonal_logger.debug("Reprojecting polygons from %s to %s", gdf.crs, raster_crs)
        gdf = gdf.to_crs(raster_crs)
    return gdf


def prepare_polygons(
    gdf: gpd.GeoDataFrame,
    raster_crs=None,
    default_crs: Optional[str] = DEFAULT_POLYGON_CRS,
    repair: bool = True,
) -> gpd.GeoDataFrame:
    """Default the CRS, reproject to ``raster_crs`` when given, then repair geometries."""
    if raster_crs is None:
        gdf = assign_default_crs(gdf, default_crs)
    else:
        gdf = align_crs(gdf, raster_crs, default_crs)
    return repair_geometries(gdf) if repair else gdf


##################
### ATTRIBUTES ###
##################

def population_change(
    gdf: gpd.GeoDataFrame,
    start: str = "2001",
    end: str = "2020",
    column: str = "pop_change",
) -> gpd.GeoDataFrame:
    """
    Add the percentage change between columns ``start`` and ``end``.

    Rows with a zero or missing baseline get a null change.
    """
    for name in (start, end):
        if name not in gdf.columns:
            raise KeyError(f"Column '{name}' not found. Available: {list(gdf.columns)}")

    baseline = gdf[start].astype("Float64").replace(0, pd.NA)
    change = (gdf[end].astype("Float64") - baseline) / baseline * 100

    out = gdf.copy()
    out[column] = change
    return out
