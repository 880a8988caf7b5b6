"""Exception types raised by the land-cover workflows.

Missing or unreadable sources surface as :class:`FileNotFoundError` or
rasterio's ``RasterioIOError`` (both :class:`OSError`), and bad settings as
:class:`ValueError`.  The two geospatial failure modes get their own types so
callers can tell them apart from generic value problems.
"""

from pyproj.exceptions import CRSError as _ProjCRSError


class GeodataError(Exception):
    """Base class for errors raised by :mod:`geodata_tutorials`."""


class GeometryError(GeodataError, ValueError):
    """Raised when polygon geometries are invalid and cannot be repaired."""

    def __init__(self, message: str, positions=None):
        super().__init__(message)
        self.positions = list(positions) if positions is not None else []


class CRSError(GeodataError, _ProjCRSError):
    """Raised when no coordinate reference system can be resolved for an input."""
