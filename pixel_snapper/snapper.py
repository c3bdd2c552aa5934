"""
Pixel snapping pipeline.

Turns soft, off-grid "pixel art" into true low-resolution pixel art:

1. Quantize the opaque palette (seeded k-means++)
2. Profile per-column / per-row gradient energy
3. Estimate and reconcile the grid step of each axis
4. Walk each axis, snapping cuts to strong edges, then stabilize both axes
5. Collapse every cell to its majority colour
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

import numpy as np
from PIL import Image

from .config import SnapConfig, ensure_processable_dimensions, resolve_config
from .grid import estimate_step_size, resolve_step_sizes, stabilize_both_axes, walk
from .profiles import compute_profiles
from .quantizer import quantize_image
from .raster import ImageSource, RasterImage, as_raster, encode_png, load_raster, to_data_url
from .resampler import resample

logger = logging.getLogger(__name__)

ImageInput = Union[RasterImage, np.ndarray, Image.Image]
ConfigInput = Union[SnapConfig, Mapping[str, Any], None]


@dataclass(frozen=True)
class SnapResult:
    """Snapped image together with the grid that produced it."""

    image: RasterImage
    quantized: RasterImage
    col_profile: np.ndarray
    row_profile: np.ndarray
    step_x_estimate: Optional[float]
    step_y_estimate: Optional[float]
    step_x: float
    step_y: float
    raw_col_cuts: List[int]
    raw_row_cuts: List[int]
    col_cuts: List[int]
    row_cuts: List[int]
    config: SnapConfig

    @property
    def grid_size(self) -> Tuple[int, int]:
        """Output ``(columns, rows)``."""
        return self.image.width, self.image.height

    def palette_size(self) -> int:
        """Distinct opaque RGB values in the snapped image."""
        pixels = self.image.to_array()
        opaque = pixels[pixels[..., 3] != 0][:, :3]
        if not len(opaque):
            return 0
        return int(len(np.unique(opaque, axis=0)))


@dataclass(frozen=True)
class EncodedSnap:
    data_url: str
    png_bytes: bytes
    width: int
    height: int


def pixel_snap_with_grid(image: ImageInput, config: ConfigInput = None, **overrides: Any) -> SnapResult:
    """Run the full pipeline and keep every intermediate needed for diagnostics."""
    cfg = resolve_config(config, overrides)
    raster = as_raster(image)
    width, height = raster.width, raster.height
    ensure_processable_dimensions(width, height)

    quantized = quantize_image(raster.to_array(), cfg.k_colors, cfg.k_seed, cfg.max_kmeans_iterations)
    col_profile, row_profile = compute_profiles(quantized)

    step_x_est = estimate_step_size(col_profile, cfg)
    step_y_est = estimate_step_size(row_profile, cfg)
    step_x, step_y = resolve_step_sizes(step_x_est, step_y_est, width, height, cfg)
    logger.debug(
        "Step estimates x=%s y=%s -> resolved %.2f x %.2f", step_x_est, step_y_est, step_x, step_y
    )

    raw_col_cuts = walk(col_profile, step_x, width, cfg)
    raw_row_cuts = walk(row_profile, step_y, height, cfg)
    col_cuts, row_cuts = stabilize_both_axes(
        col_profile, row_profile, raw_col_cuts, raw_row_cuts, width, height, cfg
    )

    output = resample(quantized, col_cuts, row_cuts)
    logger.debug(
        "Snapped %dx%d -> %dx%d (raw cuts %d/%d)",
        width,
        height,
        output.shape[1],
        output.shape[0],
        len(raw_col_cuts),
        len(raw_row_cuts),
    )
    return SnapResult(
        image=RasterImage.from_array(output),
        quantized=RasterImage.from_array(quantized),
        col_profile=col_profile,
        row_profile=row_profile,
        step_x_estimate=step_x_est,
        step_y_estimate=step_y_est,
        step_x=step_x,
        step_y=step_y,
        raw_col_cuts=raw_col_cuts,
        raw_row_cuts=raw_row_cuts,
        col_cuts=col_cuts,
        row_cuts=row_cuts,
        config=cfg,
    )


def pixel_snap(image: ImageInput, config: ConfigInput = None, **overrides: Any) -> RasterImage:
    """Snap ``image`` to its implicit pixel grid.

    Args:
        image: ``RasterImage``, ``(H, W, 3|4)`` uint8 array, or Pillow image.
        config: ``SnapConfig`` or a partial mapping of parameter overrides.
        **overrides: Individual parameters; these win over ``config``.

    Returns:
        A new ``RasterImage``, one pixel per detected grid cell.

    Raises:
        ConfigError: A parameter is invalid (``k_colors`` is checked first).
        DimensionError: The image is smaller than 3x3.
    """
    return pixel_snap_with_grid(image, config, **overrides).image


def pixel_snap_from_url(ref: ImageSource, config: ConfigInput = None, **overrides: Any) -> EncodedSnap:
    """Decode an image reference, snap it, and return it PNG-encoded with its size."""
    cfg = resolve_config(config, overrides)
    result = pixel_snap(load_raster(ref), cfg)
    png = encode_png(result)
    return EncodedSnap(to_data_url(png), png, result.width, result.height)
