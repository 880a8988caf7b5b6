"""Utilities for resolving repository-relative paths.

The workshop keeps its datasets under ``02_data`` and writes derived tables
and rasters to ``03_outputs``.  The helpers below return
:class:`pathlib.Path` objects anchored at the repository root so notebooks and
the command line entry point resolve the same files regardless of the current
working directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Union, overload

PathLike = Union[str, Path]


def _resolve_root() -> Path:
    """Return the repository root directory.

    Package sources live under ``src/``, so the root is two parents up from
    ``.../src/geodata_tutorials/paths.py``.
    """

    return Path(__file__).resolve().parent.parent.parent


_PROJECT_ROOT = _resolve_root()
_DATA_DIR = _PROJECT_ROOT / "02_data"
_OUTPUT_DIR = _PROJECT_ROOT / "03_outputs"


def project_root() -> Path:
    """Return the absolute path to the repository root."""

    return _PROJECT_ROOT


def data_dir() -> Path:
    """Return the absolute path to the repository ``02_data`` directory."""

    return _DATA_DIR


def output_dir() -> Path:
    """Return the absolute path to the ``03_outputs`` directory."""

    return _OUTPUT_DIR


def as_path(value: PathLike) -> Path:
    """Return ``value`` as a :class:`~pathlib.Path` instance."""

    return value if isinstance(value, Path) else Path(value)


def _coerce_parts(parts: tuple[PathLike | Iterable[PathLike], ...]) -> Iterable[PathLike]:
    """Normalise variadic path components into a single iterable."""

    if len(parts) == 1 and isinstance(parts[0], Iterable) and not isinstance(parts[0], (str, bytes, Path)):
        return parts[0]

    return parts


@overload
def data_path(*parts: PathLike) -> Path:
    ...


@overload
def data_path(parts: Iterable[PathLike]) -> Path:
    ...


def data_path(*parts: PathLike | Iterable[PathLike]) -> Path:
    """Return a path inside the repository ``02_data`` directory.

    Parameters
    ----------
    parts:
        Path segments joined beneath ``02_data``.  Either variadic positional
        arguments or a single iterable are accepted.

    Examples
    --------
    >>> data_path("shapefiles", "nivel-politico-4.shp")
    PosixPath('/.../02_data/shapefiles/nivel-politico-4.shp')
    """

    return _DATA_DIR.joinpath(*map(Path, _coerce_parts(parts)))


def output_path(*parts: PathLike | Iterable[PathLike]) -> Path:
    """Return a path inside the repository ``03_outputs`` directory."""

    return _OUTPUT_DIR.joinpath(*map(Path, _coerce_parts(parts)))

