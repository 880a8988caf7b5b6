"""Shared logger construction for the package."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def _build_logger(name: str) -> logging.Logger:
    """Create a logger with the shared stream handler if it has not been configured."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.INFO)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


def add_file_handler(log_file: Union[str, Path], level: int = logging.DEBUG) -> logging.FileHandler:
    """Attach a file handler to the package logger and return it."""
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_FORMAT))
    LOGGER.addHandler(file_handler)
    return file_handler


def set_console_level(level: int, logger: Optional[logging.Logger] = None) -> None:
    """Change the level of the console handlers on ``logger`` (package logger by default)."""
    logger = LOGGER if logger is None else logger
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


LOGGER = _build_logger("geodata_tutorials")
raster_logger = LOGGER.getChild("raster")
zonal_logger = LOGGER.getChild("zonal")
pipeline_logger = LOGGER.getChild("pipeline")
lags_logger = LOGGER.getChild("lags")
