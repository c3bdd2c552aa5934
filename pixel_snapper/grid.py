"""Grid inference: step estimation, elastic walking, and cut stabilisation.

Every function works on one axis at a time.  A *profile* is the gradient
energy per column (or row) produced by :mod:`pixel_snapper.profiles`; a *cut
list* is a strictly increasing list of integer boundaries from ``0`` to the
axis length.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

from .config import PixelSnapError, SnapConfig

logger = logging.getLogger(__name__)

# In the final consistency pass an axis is only re-snapped when its cells are
# this much larger than the finer axis.
RESNAP_SLACK = 1.2


def _as_list(profile: Sequence[float]) -> List[float]:
    return [float(v) for v in profile]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _profile_mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _strongest_edge(values: Sequence[float], start: int, stop: int) -> Tuple[int, float]:
    """First index of the maximum in ``values[start:stop]``.

    Returns ``(start, -1.0)`` for an empty range so callers fall back to their
    uniform position.
    """
    best_idx = start
    best_val = -1.0
    for i in range(start, stop):
        if values[i] > best_val:
            best_val = values[i]
            best_idx = i
    return best_idx, best_val


def _cell_step(limit: int, cuts: Sequence[int]) -> float:
    return limit / float(max(len(cuts) - 1, 1))


# ---------------------------------------------------------------------------
# Step estimation
# ---------------------------------------------------------------------------


def estimate_step_size(profile: Sequence[float], config: SnapConfig) -> Optional[float]:
    """Dominant spacing between strong profile peaks, or ``None`` if undetectable."""
    values = _as_list(profile)
    if not values:
        return None
    max_val = max(values)
    if max_val <= 0.0:
        return None

    threshold = max_val * config.peak_threshold_multiplier
    peaks = [
        i
        for i in range(1, len(values) - 1)
        if values[i] > threshold and values[i] > values[i - 1] and values[i] > values[i + 1]
    ]
    if len(peaks) < 2:
        return None

    kept = [peaks[0]]
    for peak in peaks[1:]:
        if peak - kept[-1] >= config.peak_distance_filter:
            kept.append(peak)
    if len(kept) < 2:
        return None

    gaps = sorted(b - a for a, b in zip(kept, kept[1:]))
    return float(gaps[(len(gaps) - 1) // 2])


def resolve_step_sizes(
    step_x: Optional[float],
    step_y: Optional[float],
    width: int,
    height: int,
    config: SnapConfig,
) -> Tuple[float, float]:
    """Reconcile the per-axis estimates into the step used for each axis."""
    if step_x is not None and step_y is not None:
        ratio = max(step_x, step_y) / min(step_x, step_y)
        if ratio > config.max_step_ratio:
            smaller = min(step_x, step_y)
            return smaller, smaller
        mean = (step_x + step_y) / 2.0
        return mean, mean
    if step_x is not None:
        return step_x, step_x
    if step_y is not None:
        return step_y, step_y
    fallback = max(min(width, height) / float(config.fallback_target_segments), 1.0)
    return fallback, fallback


# ---------------------------------------------------------------------------
# Elastic walk
# ---------------------------------------------------------------------------


def walk(profile: Sequence[float], step_size: float, limit: int, config: SnapConfig) -> List[int]:
    """Advance by ``step_size`` from 0, snapping each cut to a nearby strong edge.

    When the strongest value within the search window does not beat
    ``mean(profile) * walker_strength_threshold`` the cut stays at the
    un-adjusted target, so featureless stretches get uniform spacing.
    """
    values = _as_list(profile)
    if not values:
        return [0, limit]
    if not (step_size > 0.0 and math.isfinite(step_size)):
        raise PixelSnapError(f"step_size must be a positive finite number, got {step_size!r}")

    window = max(step_size * config.walker_search_window_ratio, config.walker_min_search_window)
    strength = _profile_mean(values) * config.walker_strength_threshold
    search_limit = min(limit, len(values))

    cuts = [0]
    position = 0.0
    while position < limit:
        target = position + step_size
        if target >= limit:
            cuts.append(limit)
            break

        start = max(math.floor(target - window), math.floor(position + 1.0))
        stop = min(math.ceil(target + window), search_limit)
        if stop <= start:
            position = target
            continue

        idx, value = _strongest_edge(values, start, stop)
        if value > strength:
            cuts.append(idx)
            position = float(idx)
        else:
            cuts.append(math.floor(target))
            position = target
    return cuts


# ---------------------------------------------------------------------------
# Stabilisation
# ---------------------------------------------------------------------------


def sanitize_cuts(cuts: Sequence[int], limit: int) -> List[int]:
    """Clamp into ``[0, limit]``, force both ends, drop duplicates, sort."""
    if limit <= 0:
        return [0]
    cleaned = {min(max(int(c), 0), limit) for c in cuts}
    cleaned.update((0, limit))
    return sorted(cleaned)


def snap_uniform_cuts(
    profile: Sequence[float],
    limit: int,
    target_step: float,
    config: SnapConfig,
    min_required: int,
) -> List[int]:
    """Evenly spaced cuts, each pulled toward the strongest nearby edge."""
    if limit <= 0:
        return [0]
    if limit == 1:
        return [0, 1]

    values = _as_list(profile)
    if target_step > 0.0 and math.isfinite(target_step):
        desired_cells = _round_half_up(limit / target_step)
    else:
        desired_cells = 0
    desired_cells = max(desired_cells, max(min_required - 1, 1))
    desired_cells = min(desired_cells, limit)

    cell_width = limit / float(desired_cells)
    window = max(cell_width * config.walker_search_window_ratio, config.walker_min_search_window)
    strength = _profile_mean(values) * config.walker_strength_threshold
    last_index = len(values) - 1

    cuts = [0]
    for idx in range(1, desired_cells):
        target = cell_width * idx
        prev = cuts[-1]
        if prev + 1 >= limit:
            break

        start = max(math.floor(target - window), prev + 1)
        end = min(math.ceil(target + window), limit - 1)
        if end < start:
            start = end = prev + 1

        best_idx, best_val = _strongest_edge(values, start, min(end, last_index) + 1)
        if best_val <= strength:
            best_idx = max(_round_half_up(target), prev + 1)
            if best_idx >= limit:
                best_idx = max(limit - 1, prev + 1)
        cuts.append(best_idx)

    if cuts[-1] != limit:
        cuts.append(limit)
    return sanitize_cuts(cuts, limit)


def stabilize_cuts(
    profile: Sequence[float],
    cuts: Sequence[int],
    limit: int,
    sibling_cuts: Sequence[int],
    sibling_limit: int,
    config: SnapConfig,
) -> List[int]:
    """Sanitize one axis and regenerate it when it is too sparse or out of
    proportion with the sibling axis.

    ``sibling_cuts`` must be the sibling's *raw* walk output, never its
    stabilized cuts.
    """
    if limit <= 0:
        return [0]

    cuts = sanitize_cuts(cuts, limit)
    min_required = min(max(config.min_cuts_per_axis, 2), limit + 1)

    axis_cells = max(len(cuts) - 1, 0)
    sibling_cells = max(len(sibling_cuts) - 1, 0)
    sibling_has_grid = sibling_limit > 0 and sibling_cells >= max(min_required - 1, 1)

    steps_skewed = False
    if sibling_has_grid and axis_cells > 0:
        step_ratio = (limit / float(axis_cells)) / (sibling_limit / float(sibling_cells))
        steps_skewed = step_ratio > config.max_step_ratio or step_ratio < 1.0 / config.max_step_ratio

    if len(cuts) >= min_required and not steps_skewed:
        return cuts

    if sibling_has_grid:
        target_step = sibling_limit / float(sibling_cells)
    elif config.fallback_target_segments > 1:
        target_step = limit / float(config.fallback_target_segments)
    elif axis_cells > 0:
        target_step = limit / float(axis_cells)
    else:
        target_step = float(limit)
    if not math.isfinite(target_step) or target_step <= 0.0:
        target_step = 1.0

    logger.debug(
        "Regenerating cuts (limit=%d, cuts=%d, skewed=%s) with target step %.2f",
        limit,
        len(cuts),
        steps_skewed,
        target_step,
    )
    return snap_uniform_cuts(profile, limit, target_step, config, min_required)


def stabilize_both_axes(
    profile_x: Sequence[float],
    profile_y: Sequence[float],
    raw_col_cuts: Sequence[int],
    raw_row_cuts: Sequence[int],
    width: int,
    height: int,
    config: SnapConfig,
) -> Tuple[List[int], List[int]]:
    """Stabilize both axes against each other's raw cuts, then re-check the
    resulting cell-size ratio once and re-snap the coarser axis if needed."""
    col_cuts = stabilize_cuts(profile_x, raw_col_cuts, width, raw_row_cuts, height, config)
    row_cuts = stabilize_cuts(profile_y, raw_row_cuts, height, raw_col_cuts, width, config)

    col_step = _cell_step(width, col_cuts)
    row_step = _cell_step(height, row_cuts)
    step_ratio = max(col_step, row_step) / min(col_step, row_step)
    if step_ratio <= config.max_step_ratio:
        return col_cuts, row_cuts

    target_step = min(col_step, row_step)
    logger.debug(
        "Cell sizes still skewed (%.2f vs %.2f); re-snapping to %.2f", col_step, row_step, target_step
    )
    if col_step > target_step * RESNAP_SLACK:
        col_cuts = snap_uniform_cuts(profile_x, width, target_step, config, config.min_cuts_per_axis)
    if row_step > target_step * RESNAP_SLACK:
        row_cuts = snap_uniform_cuts(profile_y, height, target_step, config, config.min_cuts_per_axis)
    return col_cuts, row_cuts
