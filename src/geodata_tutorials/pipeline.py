"""
Multi-year land-cover zonal statistics.

Each year's raster is loaded through an injected loader, reclassified,
aggregated against one shared polygon layer and stamped with the year and a
per-polygon ``id``.  The per-year frames are folded into a single long table
with a declared ``polars`` schema::

    id | <stat> | year | parish | province | canton

Any failing year aborts the whole run.
"""

# -----------------------------------------------------------------------------
# MODULES
# -----------------------------------------------------------------------------
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import geopandas as gpd
import pandas as pd
import polars as pl
import xarray as xr
from tqdm.auto import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from geodata_tutorials.config import AdminSchema, PipelineConfig
from geodata_tutorials.data_loader import read_vector
from geodata_tutorials.log import LOGGER, pipeline_logger
from geodata_tutorials.paths import PathLike, as_path
from geodata_tutorials.raster_calcs import (
    LAND_COVER_RULE,
    ReclassificationRule,
    load_raster,
    reclassify,
    write_raster,
)
from geodata_tutorials.vector_calcs import prepare_polygons
from geodata_tutorials.zonal_calcs import aggregate

RasterLoader = Callable[[int], xr.DataArray]


# -----------------------------------------------------------------------------
# TABLE SCHEMA
# -----------------------------------------------------------------------------
def table_schema(stat: str, schema: AdminSchema) -> Dict[str, pl.DataType]:
    """Column types of the multi-year table, in output order."""
    columns: Dict[str, pl.DataType] = {"id": pl.Int64, stat: pl.Float64, "year": pl.Int32}
    for name in schema.output_columns:
        columns[name] = pl.Utf8
    return columns


def _stamp_year(table: pd.DataFrame, year: int, stat: str, schema: AdminSchema) -> pl.DataFrame:
    """Typed per-year frame: ``id`` is the 1-based position in the polygon layer."""
    n = len(table)
    data = {
        "id": list(range(1, n + 1)),
        stat: [None if pd.isna(v) else float(v) for v in table[stat]],
        "year": [year] * n,
    }
    for name in schema.output_columns:
        data[name] = [None if pd.isna(v) else str(v) for v in table[name]]
    return pl.DataFrame(data, schema=table_schema(stat, schema))


def to_multi_year_table(frames: Sequence[pl.DataFrame], stat: str, schema: AdminSchema) -> pl.DataFrame:
    """Concatenate per-year frames; an empty input gives an empty typed table."""
    if not frames:
        return pl.DataFrame(schema=table_schema(stat, schema))
    return pl.concat(list(frames), how="vertical")


# -----------------------------------------------------------------------------
# FUNCTIONS
# -----------------------------------------------------------------------------
def raster_path_loader(pattern: PathLike, band: int = 1) -> RasterLoader:
    """Loader reading ``pattern.format(year=year)`` for each year."""
    template = str(pattern)
    if "{year}" not in template:
        raise ValueError(f"Raster pattern must contain '{{year}}', got {template!r}.")

    def _load(year: int) -> xr.DataArray:
        return load_raster(template.format(year=year), band=band)

    return _load


def process_year(
    year: int,
    load_raster: RasterLoader,
    polygons: gpd.GeoDataFrame,
    config: PipelineConfig,
    rule: ReclassificationRule = LAND_COVER_RULE,
) -> pl.DataFrame:
    """Load, reclassify and aggregate a single year."""
    pipeline_logger.info("Processing %s...", year)
    grid = load_raster(year)
    reclassified = reclassify(grid, rule, tile_size=config.tile_size, max_workers=config.tile_workers)

    if config.save_rasters_to is not None:
        out_dir = as_path(config.save_rasters_to)
        out_dir.mkdir(parents=True, exist_ok=True)
        write_raster(reclassified, out_dir / f"reclassified_{year}.tif")

    table = aggregate(
        reclassified,
        polygons,
        stat=config.stat,
        crop=config.crop,
        schema=config.schema,
        default_crs=config.default_crs,
    )
    return _stamp_year(table, year, config.stat, config.schema)


def accumulate(
    years: Sequence[int],
    load_raster: RasterLoader,
    polygons: gpd.GeoDataFrame,
    config: Optional[PipelineConfig] = None,
    rule: ReclassificationRule = LAND_COVER_RULE,
) -> pl.DataFrame:
    """
    Run the reclassify/aggregate step for every year and combine the results.

    Parameters
    ----------
    years : sequence of int
        Years in output order.
    load_raster : callable
        ``load_raster(year)`` returning that year's grid.
    polygons : GeoDataFrame
        Shared polygon layer.  Validated once (CRS default and geometry
        repair) before the first year, then re-checked after each year's
        reprojection.
    config : PipelineConfig, optional
        Tile size, crop, statistic, admin schema and worker counts.
    rule : ReclassificationRule
        Reclassification applied to each year's grid.

    Returns
    -------
    pl.DataFrame
        ``len(years) * len(polygons)`` rows in year-major order.
    """
    years = list(years)
    config = PipelineConfig(years=tuple(years)) if config is None else config
    if len(set(years)) != len(years):
        raise ValueError(f"years must not contain duplicates, got {years}.")

    polygons = prepare_polygons(polygons, default_crs=config.default_crs)
    pipeline_logger.info("Accumulating %d year(s) over %d polygons", len(years), len(polygons))

    def _run(year: int) -> pl.DataFrame:
        try:
            return process_year(year, load_raster, polygons, config, rule)
        except Exception as exc:
            pipeline_logger.error("Year %s failed (%s: %s); aborting run", year, type(exc).__name__, exc)
            raise

    with logging_redirect_tqdm(loggers=[LOGGER]):
        if config.max_workers is not None and config.max_workers > 1 and len(years) > 1:
            by_year = _run_concurrently(years, _run, config.max_workers)
        else:
            by_year = {}
            for year in tqdm(years, desc="Years", unit="year"):
                by_year[year] = _run(year)

    frames: List[pl.DataFrame] = [by_year[year] for year in years]
    combined = to_multi_year_table(frames, config.stat, config.schema)
    pipeline_logger.info("Done: %d rows", combined.height)
    return combined


def _run_concurrently(years: List[int], run: Callable[[int], pl.DataFrame], max_workers: int) -> Dict[int, pl.DataFrame]:
    """Run years on a thread pool; results are keyed by year, not completion order."""
    by_year: Dict[int, pl.DataFrame] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(run, year): year for year in years}
        try:
            for future in tqdm(as_completed(futures), total=len(futures), desc="Years", unit="year"):
                by_year[futures[future]] = future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return by_year


def write_table(table: pl.DataFrame, out_path: PathLike) -> Path:
    """Write the combined table as CSV, creating parent folders."""
    out_path = as_path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    table.write_csv(out_path)
    pipeline_logger.info("Table written to %s", out_path)
    return out_path


def run_landcover_pipeline(config: PipelineConfig, rule: ReclassificationRule = LAND_COVER_RULE) -> pl.DataFrame:
    """Read the polygon source, accumulate every configured year and write the CSV."""
    if not config.years:
        raise ValueError("No years configured.")

    polygons = read_vector(config.polygon_path)
    loader = raster_path_loader(config.raster_pattern, band=config.band)
    table = accumulate(config.years, loader, polygons, config=config, rule=rule)

    if config.output_csv is not None:
        write_table(table, config.output_csv)
    return table
