"""Majority-vote resampling of grid cells to single output pixels."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .config import PixelSnapError


def _pack_rgba(pixels: np.ndarray) -> np.ndarray:
    # Big-endian packing, so numeric order == lexicographic (R, G, B, A) order.
    px = pixels.astype(np.uint64)
    return (px[..., 0] << 24) | (px[..., 1] << 16) | (px[..., 2] << 8) | px[..., 3]


def _check_cuts(cuts: np.ndarray, limit: int, axis: str) -> None:
    if cuts[0] < 0 or cuts[-1] > limit or np.any(np.diff(cuts) <= 0):
        raise PixelSnapError(
            f"{axis} cuts must be strictly increasing within [0, {limit}], got {cuts.tolist()}"
        )


def resample(pixels: np.ndarray, col_cuts: Sequence[int], row_cuts: Sequence[int]) -> np.ndarray:
    """Collapse each cell between consecutive cuts to its most frequent RGBA value.

    Ties go to the lexicographically smallest ``(R, G, B, A)`` so the result
    never depends on scan order.  With fewer than two cuts on either axis no
    cell exists and the input is returned as a copy.
    """
    pixels = np.asarray(pixels, dtype=np.uint8)
    if len(col_cuts) < 2 or len(row_cuts) < 2:
        return pixels.copy()

    height, width = pixels.shape[:2]
    cols = np.asarray(col_cuts, dtype=np.int64)
    rows = np.asarray(row_cuts, dtype=np.int64)
    _check_cuts(cols, width, "Column")
    _check_cuts(rows, height, "Row")

    out_w = len(cols) - 1
    out_h = len(rows) - 1
    region = pixels[rows[0] : rows[-1], cols[0] : cols[-1]]

    col_ids = np.repeat(np.arange(out_w, dtype=np.uint64), np.diff(cols))
    row_ids = np.repeat(np.arange(out_h, dtype=np.uint64), np.diff(rows))
    cell_ids = row_ids[:, None] * np.uint64(out_w) + col_ids[None, :]

    combined = (cell_ids << np.uint64(32)) | _pack_rgba(region)
    keys, counts = np.unique(combined.ravel(), return_counts=True)
    key_cells = keys >> np.uint64(32)
    key_colors = keys & np.uint64(0xFFFFFFFF)

    # Per cell: highest count first, then the smallest colour.
    order = np.lexsort((key_colors, -counts, key_cells))
    sorted_cells = key_cells[order]
    first_of_cell = np.ones(len(order), dtype=bool)
    first_of_cell[1:] = sorted_cells[1:] != sorted_cells[:-1]
    winners = key_colors[order[first_of_cell]]

    out = np.empty((out_h * out_w, 4), dtype=np.uint8)
    for channel, shift in enumerate((24, 16, 8, 0)):
        out[:, channel] = (winners >> np.uint64(shift)) & np.uint64(0xFF)
    return out.reshape(out_h, out_w, 4)
