"""Palette reduction: seeded k-means++ over the opaque pixels."""

from __future__ import annotations

import logging
import math
from typing import Tuple

import numpy as np

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF

# Centroid movement (squared RGB distance) below which Lloyd's loop stops.
CONVERGENCE_EPSILON = 0.01


class Mulberry32:
    """Deterministic 32-bit mulberry32 generator.

    Arithmetic wraps at 32 bits exactly like the reference implementation,
    so a given seed yields the same sequence everywhere.
    """

    def __init__(self, seed: int) -> None:
        self._state = int(seed) & _MASK32

    def next_uint32(self) -> int:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        s = self._state
        t = ((s ^ (s >> 15)) * (s | 1)) & _MASK32
        t = ((t + (((t ^ (t >> 7)) * (t | 61)) & _MASK32)) & _MASK32) ^ t
        return (t ^ (t >> 14)) & _MASK32

    def random(self) -> float:
        """Uniform float in [0, 1)."""
        return self.next_uint32() / 4294967296.0

    def randrange(self, upper: int) -> int:
        return int(math.floor(self.random() * upper))


def weighted_index_sample(rng: Mulberry32, weights: np.ndarray) -> int:
    """Pick an index with probability proportional to ``weights``.

    Returns the first index whose running total reaches ``random() * total``;
    falls back to a uniform draw when every weight is zero.
    """
    weights = np.asarray(weights, dtype=np.float64)
    cumulative = np.cumsum(weights)
    total = float(cumulative[-1]) if len(cumulative) else 0.0
    if total <= 0.0:
        return rng.randrange(len(weights))
    r = rng.random() * total
    idx = int(np.searchsorted(cumulative, r, side="left"))
    return min(idx, len(weights) - 1)


def _dist_sq(points: np.ndarray, centroid: np.ndarray) -> np.ndarray:
    dr = points[:, 0] - centroid[0]
    dg = points[:, 1] - centroid[1]
    db = points[:, 2] - centroid[2]
    return dr * dr + dg * dg + db * db


def _nearest_centroid(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the closest centroid per point; the earliest centroid wins ties."""
    best_dist = np.full(len(points), np.inf)
    labels = np.zeros(len(points), dtype=np.int64)
    for j, centroid in enumerate(centroids):
        dist = _dist_sq(points, centroid)
        closer = dist < best_dist
        best_dist[closer] = dist[closer]
        labels[closer] = j
    return labels


def _seed_centroids(points: np.ndarray, k: int, rng: Mulberry32) -> np.ndarray:
    """k-means++ initialisation over every opaque pixel (duplicates included)."""
    n_points = len(points)
    centroids = [points[rng.randrange(n_points)].copy()]
    distances = np.full(n_points, np.inf)
    for _ in range(1, k):
        distances = np.minimum(distances, _dist_sq(points, centroids[-1]))
        if float(distances.sum()) <= 0.0:
            idx = rng.randrange(n_points)
        else:
            idx = weighted_index_sample(rng, distances)
        centroids.append(points[idx].copy())
    return np.array(centroids, dtype=np.float64)


def _unique_colors(opaque_rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    keys = (
        (opaque_rgb[:, 0].astype(np.uint32) << 16)
        | (opaque_rgb[:, 1].astype(np.uint32) << 8)
        | opaque_rgb[:, 2].astype(np.uint32)
    )
    unique_keys, inverse, counts = np.unique(keys, return_inverse=True, return_counts=True)
    colors = np.stack(
        [(unique_keys >> 16) & 0xFF, (unique_keys >> 8) & 0xFF, unique_keys & 0xFF], axis=1
    ).astype(np.float64)
    return colors, inverse.reshape(-1), counts.astype(np.float64)


def _lloyd(colors: np.ndarray, counts: np.ndarray, centroids: np.ndarray, max_iterations: int) -> np.ndarray:
    k = len(centroids)
    centroids = centroids.copy()
    previous = centroids.copy()
    for iteration in range(max_iterations):
        labels = _nearest_centroid(colors, centroids)
        members = np.bincount(labels, weights=counts, minlength=k)
        for channel in range(3):
            sums = np.bincount(labels, weights=colors[:, channel] * counts, minlength=k)
            filled = members > 0
            centroids[filled, channel] = sums[filled] / members[filled]

        if iteration > 0:
            movement = max(
                float(_dist_sq(centroids[j : j + 1], previous[j])[0]) for j in range(k)
            )
            if movement < CONVERGENCE_EPSILON:
                logger.debug("k-means converged after %d iterations", iteration + 1)
                break
        previous = centroids.copy()
    return centroids


def quantize_image(pixels: np.ndarray, k_colors: int, seed: int, max_iterations: int) -> np.ndarray:
    """Reduce the opaque palette of an ``(H, W, 4)`` image to at most ``k_colors``.

    Transparent pixels (alpha 0) are copied verbatim and never influence the
    clustering; opaque pixels keep their alpha.  An image without opaque
    pixels is returned as an unchanged copy.
    """
    out = np.array(pixels, dtype=np.uint8, copy=True)
    opaque_mask = out[..., 3] != 0
    if not opaque_mask.any():
        return out

    opaque_rgb = out[opaque_mask][:, :3]
    points = opaque_rgb.astype(np.float64)
    k = min(int(k_colors), len(points))

    rng = Mulberry32(seed)
    centroids = _seed_centroids(points, k, rng)

    # Assignment only depends on the colour, so cluster distinct colours
    # weighted by their pixel counts.
    colors, inverse, counts = _unique_colors(opaque_rgb)
    centroids = _lloyd(colors, counts, centroids, max_iterations)

    palette = np.floor(centroids + 0.5).clip(0, 255).astype(np.uint8)
    labels = _nearest_centroid(colors, centroids)
    out[opaque_mask, :3] = palette[labels][inverse]
    logger.debug(
        "Quantized %d opaque pixels (%d distinct colours) to %d centroids",
        len(points),
        len(colors),
        k,
    )
    return out
