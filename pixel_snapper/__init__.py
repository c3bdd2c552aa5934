"""Public interface for the Pixel Snapper grid-recovery toolkit."""

from __future__ import annotations

import logging

from .config import ConfigError, DimensionError, PixelSnapError, SnapConfig
from .raster import RasterError, RasterImage, load_raster
from .snapper import (
    EncodedSnap,
    SnapResult,
    pixel_snap,
    pixel_snap_from_url,
    pixel_snap_with_grid,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ConfigError",
    "DimensionError",
    "EncodedSnap",
    "PixelSnapError",
    "RasterError",
    "RasterImage",
    "SnapConfig",
    "SnapResult",
    "load_raster",
    "pixel_snap",
    "pixel_snap_from_url",
    "pixel_snap_with_grid",
]
