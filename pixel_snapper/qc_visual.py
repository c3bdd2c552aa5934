"""Visual QC output for snapped sprites.

Generates inspection-friendly images:
  - Source with the detected cuts drawn on top
  - Magnified 1x result with a pixel grid
  - Side-by-side panel: cuts | magnified result | result expanded back to source size
  - Column/row gradient profiles with the final cuts marked
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from .raster import RasterImage
from .snapper import SnapResult

logger = logging.getLogger(__name__)

GRID_COLOR = (255, 0, 0)
BACKGROUND_GRAY = 220.0  # shows through transparent pixels

ArrayLike = Union[RasterImage, np.ndarray]


def _rgba(image: ArrayLike) -> np.ndarray:
    if isinstance(image, RasterImage):
        return image.to_array()
    arr = np.asarray(image, dtype=np.uint8)
    if arr.ndim == 3 and arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=2)
    return arr


def _flatten_alpha(rgba: np.ndarray) -> np.ndarray:
    """Composite RGBA over a light grey background, returning contiguous RGB."""
    alpha = rgba[:, :, 3:4].astype(np.float32) / 255.0
    rgb = rgba[:, :, :3].astype(np.float32)
    flat = rgb * alpha + BACKGROUND_GRAY * (1.0 - alpha)
    return np.ascontiguousarray(np.clip(flat + 0.5, 0, 255).astype(np.uint8))


def render_cut_overlay(
    source: ArrayLike,
    col_cuts: Sequence[int],
    row_cuts: Sequence[int],
    grid_color: Tuple[int, int, int] = GRID_COLOR,
) -> np.ndarray:
    """Draw every cut of an (irregular) grid over the source image."""
    overlay = _flatten_alpha(_rgba(source))
    h, w = overlay.shape[:2]
    for x in col_cuts:
        x = min(int(x), w - 1)
        cv2.line(overlay, (x, 0), (x, h - 1), grid_color, 1)
    for y in row_cuts:
        y = min(int(y), h - 1)
        cv2.line(overlay, (0, y), (w - 1, y), grid_color, 1)
    return overlay


def render_pixel_grid(
    image_1x: ArrayLike,
    scale: int = 16,
    grid_color: Tuple[int, int, int] = GRID_COLOR,
) -> np.ndarray:
    """Magnify a 1x image with nearest neighbour and separate its pixels by grid lines."""
    rgba = _rgba(image_1x)
    h, w = rgba.shape[:2]
    scale = max(int(scale), 1)
    big = cv2.resize(rgba, (w * scale, h * scale), interpolation=cv2.INTER_NEAREST)
    out = _flatten_alpha(big)
    if scale < 3:
        return out
    out[::scale, :] = grid_color
    out[:, ::scale] = grid_color
    out[-1, :] = grid_color
    out[:, -1] = grid_color
    return out


def expand_to_source(image_1x: ArrayLike, col_cuts: Sequence[int], row_cuts: Sequence[int]) -> np.ndarray:
    """Repeat each output pixel over the source cell it was voted from."""
    rgba = _rgba(image_1x)
    widths = np.diff(np.asarray(col_cuts, dtype=np.int64))
    heights = np.diff(np.asarray(row_cuts, dtype=np.int64))
    if len(widths) != rgba.shape[1] or len(heights) != rgba.shape[0]:
        raise ValueError(
            f"Cuts describe a {len(widths)}x{len(heights)} grid but the image is "
            f"{rgba.shape[1]}x{rgba.shape[0]}"
        )
    return np.repeat(np.repeat(rgba, heights, axis=0), widths, axis=1)


def _pad_to_height(panel: np.ndarray, target: int) -> np.ndarray:
    h, w = panel.shape[:2]
    if h >= target:
        return panel[:target]
    pad = np.full((target - h, w, 3), 40, dtype=np.uint8)
    return np.vstack([panel, pad])


def _fit_height(panel: np.ndarray, max_height: int, interpolation: int) -> np.ndarray:
    h, w = panel.shape[:2]
    if h <= max_height:
        return panel
    ratio = max_height / float(h)
    return cv2.resize(panel, (max(int(w * ratio), 1), max_height), interpolation=interpolation)


def render_qc_panel(
    result: SnapResult,
    source: ArrayLike,
    source_name: str = "",
    max_panel_height: int = 512,
) -> np.ndarray:
    """Source with cuts | magnified result | result expanded to source size, plus a text bar."""
    src = _rgba(source)
    out_w, out_h = result.grid_size

    cut_panel = _fit_height(
        render_cut_overlay(src, result.col_cuts, result.row_cuts), max_panel_height, cv2.INTER_AREA
    )
    pixel_scale = max(4, min(32, max_panel_height // max(out_h, 1)))
    pixel_panel = _fit_height(render_pixel_grid(result.image, pixel_scale), max_panel_height, cv2.INTER_NEAREST)
    expanded = _flatten_alpha(expand_to_source(result.image, result.col_cuts, result.row_cuts))
    rec_panel = _fit_height(expanded, max_panel_height, cv2.INTER_NEAREST)

    target_h = max(cut_panel.shape[0], pixel_panel.shape[0], rec_panel.shape[0])
    sep = np.full((target_h, 3, 3), 128, dtype=np.uint8)
    composite = np.hstack(
        [
            _pad_to_height(cut_panel, target_h),
            sep,
            _pad_to_height(pixel_panel, target_h),
            sep,
            _pad_to_height(rec_panel, target_h),
        ]
    )

    def _fmt(step):
        return "n/a" if step is None else f"{step:.1f}"

    lines = [
        f"{source_name}  |  source {src.shape[1]}x{src.shape[0]}  ->  {out_w}x{out_h}",
        f"step est x={_fmt(result.step_x_estimate)} y={_fmt(result.step_y_estimate)}  |  "
        f"resolved {result.step_x:.1f}x{result.step_y:.1f}  |  k={result.config.k_colors}",
    ]
    bar = np.full((60, composite.shape[1], 3), 30, dtype=np.uint8)
    for i, line in enumerate(lines):
        cv2.putText(bar, line, (10, 18 + i * 22), cv2.FONT_HERSHEY_SIMPLEX, 0.45, (220, 220, 220), 1, cv2.LINE_AA)
    return np.vstack([composite, bar])


def save_qc_image(result: SnapResult, source: ArrayLike, output_path: Path, source_name: str = "") -> Path:
    panel = render_qc_panel(result, source, source_name=source_name)
    Image.fromarray(panel).save(output_path)
    logger.info("QC image saved: %s", output_path)
    return output_path


def save_profile_plot(result: SnapResult, output_path: Path, title: str = "") -> Path:
    """Plot both gradient profiles with the final cuts as vertical markers."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    fig, axs = plt.subplots(2, 1, figsize=(10, 6))
    for ax, profile, cuts, label in (
        (axs[0], result.col_profile, result.col_cuts, "Column"),
        (axs[1], result.row_profile, result.row_cuts, "Row"),
    ):
        ax.plot(profile, linewidth=0.8)
        for cut in cuts:
            ax.axvline(cut, color="red", alpha=0.35, linewidth=0.6)
        ax.set_title(f"{label} gradient profile ({len(cuts) - 1} cells)")
    if title:
        fig.suptitle(title)
    fig.tight_layout()
    fig.savefig(output_path)
    plt.close(fig)
    logger.info("Profile plot saved: %s", output_path)
    return output_path
