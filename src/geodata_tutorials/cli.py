"""Command line entry point for the multi-year land-cover zonal statistics.

Usage::

    geodata-landcover "rasters/land_cover_{year}.tif" shapefiles/nivel-politico-4.shp \\
        --start-year 2001 --end-year 2020 --output parish_land_cover.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from pyproj.exceptions import CRSError as ProjCRSError

from geodata_tutorials.config import (
    DEFAULT_CROP_START,
    DEFAULT_POLYGON_CRS,
    DEFAULT_STAT,
    DEFAULT_TILE_SIZE,
    SUPPORTED_STATS,
    ColumnCrop,
    PipelineConfig,
)
from geodata_tutorials.errors import GeodataError
from geodata_tutorials.log import LOGGER, add_file_handler, set_console_level
from geodata_tutorials.paths import output_path
from geodata_tutorials.pipeline import run_landcover_pipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geodata-landcover",
        description="Reclassify yearly land-cover rasters and average them over polygons.",
    )
    parser.add_argument("raster_pattern", help="Raster path template containing '{year}'")
    parser.add_argument("polygons", help="Polygon layer (shapefile, GeoPackage, ...)")
    parser.add_argument("--start-year", type=int, required=True, help="First year (inclusive)")
    parser.add_argument("--end-year", type=int, required=True, help="Last year (inclusive)")
    parser.add_argument("--output", help="CSV output path (default: 03_outputs/land_cover_<start>_<end>.csv)")
    parser.add_argument("--tile-size", type=int, default=DEFAULT_TILE_SIZE, help="Tile edge length in pixels")
    parser.add_argument("--crop-start", type=int, default=DEFAULT_CROP_START,
                        help="First raster column kept for aggregation")
    parser.add_argument("--no-crop", action="store_true", help="Aggregate over the full raster width")
    parser.add_argument("--stat", choices=SUPPORTED_STATS, default=DEFAULT_STAT, help="Zonal statistic")
    parser.add_argument("--default-crs", default=DEFAULT_POLYGON_CRS,
                        help="CRS assumed for polygons without one")
    parser.add_argument("--band", type=int, default=1, help="Raster band to read")
    parser.add_argument("--workers", type=int, help="Years processed concurrently")
    parser.add_argument("--save-rasters", help="Folder for the reclassified rasters")
    parser.add_argument("--log-file", help="Also write DEBUG logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show DEBUG messages on the console")
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    if args.end_year < args.start_year:
        raise ValueError(f"--end-year ({args.end_year}) is before --start-year ({args.start_year}).")

    output = args.output or output_path(f"land_cover_{args.start_year}_{args.end_year}.csv")
    return PipelineConfig(
        raster_pattern=args.raster_pattern,
        polygon_path=args.polygons,
        years=tuple(range(args.start_year, args.end_year + 1)),
        output_csv=output,
        tile_size=args.tile_size,
        crop=None if args.no_crop else ColumnCrop(args.crop_start),
        stat=args.stat,
        default_crs=args.default_crs,
        band=args.band,
        max_workers=args.workers,
        save_rasters_to=args.save_rasters,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_console_level(logging.DEBUG)
    if args.log_file:
        add_file_handler(args.log_file)

    try:
        config = config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        run_landcover_pipeline(config)
    except (GeodataError, ProjCRSError, OSError, ValueError, KeyError) as exc:
        LOGGER.error("Pipeline failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
