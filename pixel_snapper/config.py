"""Snapping parameters, validation, and the package exception hierarchy."""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, fields, replace
from numbers import Integral, Real
from typing import Any, Dict, Mapping, Optional, Union

# Smallest image side that still has an interior pixel for gradients.
MIN_DIMENSION = 3


class PixelSnapError(ValueError):
    """Base exception for pixel snapper failures."""


class ConfigError(PixelSnapError):
    """Raised for invalid or unknown configuration values."""


class DimensionError(PixelSnapError):
    """Raised when an image is too small (or malformed) to be snapped."""


@dataclass(frozen=True)
class SnapConfig:
    """Tuning knobs for the snapping pipeline.

    The defaults suit 512-1024 px renders of 32-64 cell sprites.  Every field
    can also be overridden through its camelCase alias (``kColors``,
    ``maxStepRatio``, ...), which is how the web front-end names them.
    """

    k_colors: int = 16
    k_seed: int = 42
    max_kmeans_iterations: int = 15
    peak_threshold_multiplier: float = 0.2
    peak_distance_filter: int = 4
    walker_search_window_ratio: float = 0.35
    walker_min_search_window: float = 2.0
    walker_strength_threshold: float = 0.5
    min_cuts_per_axis: int = 4
    fallback_target_segments: int = 64
    max_step_ratio: float = 1.8

    def __post_init__(self) -> None:
        # k_colors first: it is the one callers usually get wrong.
        object.__setattr__(self, "k_colors", _positive_int(self.k_colors, "k_colors"))
        object.__setattr__(self, "k_seed", _integer(self.k_seed, "k_seed"))
        object.__setattr__(
            self,
            "max_kmeans_iterations",
            _bounded_int(self.max_kmeans_iterations, "max_kmeans_iterations", 0),
        )
        object.__setattr__(
            self, "peak_distance_filter", _bounded_int(self.peak_distance_filter, "peak_distance_filter", 1)
        )
        object.__setattr__(
            self, "min_cuts_per_axis", _bounded_int(self.min_cuts_per_axis, "min_cuts_per_axis", 2)
        )
        object.__setattr__(
            self,
            "fallback_target_segments",
            _bounded_int(self.fallback_target_segments, "fallback_target_segments", 1),
        )

        multiplier = _real(self.peak_threshold_multiplier, "peak_threshold_multiplier")
        if not 0.0 <= multiplier <= 1.0:
            raise ConfigError("peak_threshold_multiplier must be between 0 and 1")
        ratio = _real(self.walker_search_window_ratio, "walker_search_window_ratio")
        if ratio <= 0.0:
            raise ConfigError("walker_search_window_ratio must be greater than 0")
        if _real(self.walker_min_search_window, "walker_min_search_window") < 0.0:
            raise ConfigError("walker_min_search_window must be >= 0")
        if _real(self.walker_strength_threshold, "walker_strength_threshold") < 0.0:
            raise ConfigError("walker_strength_threshold must be >= 0")
        if _real(self.max_step_ratio, "max_step_ratio") < 1.0:
            raise ConfigError("max_step_ratio must be >= 1")

    def with_overrides(self, overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "SnapConfig":
        """Return a copy with the given fields replaced (snake_case or camelCase keys)."""
        merged: Dict[str, Any] = {}
        for source in (overrides or {}, kwargs):
            for key, value in source.items():
                merged[_canonical_field(key)] = value
        if not merged:
            return self
        return replace(self, **merged)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


_FIELD_NAMES = {f.name for f in fields(SnapConfig)}
_ALIASES = {_camel(name): name for name in _FIELD_NAMES}


def _canonical_field(key: str) -> str:
    if key in _FIELD_NAMES:
        return key
    if key in _ALIASES:
        return _ALIASES[key]
    snake = re.sub(r"[-\s]+", "_", key).lower()
    if snake in _FIELD_NAMES:
        return snake
    raise ConfigError(f"Unknown configuration parameter: {key!r}")


def resolve_config(
    config: Union[SnapConfig, Mapping[str, Any], None] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SnapConfig:
    """Merge a base config (dataclass or partial mapping) with keyword overrides."""
    if config is None:
        base = SnapConfig()
    elif isinstance(config, SnapConfig):
        base = config
    elif isinstance(config, Mapping):
        base = SnapConfig().with_overrides(config)
    else:
        raise ConfigError(f"Unsupported configuration object: {type(config).__name__}")
    return base.with_overrides(overrides)


def ensure_processable_dimensions(width: int, height: int) -> None:
    """Reject images the gradient stage cannot work with."""
    if width <= 0 or height <= 0:
        raise DimensionError("Image dimensions must be positive")
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        raise DimensionError(f"Image must be at least {MIN_DIMENSION}x{MIN_DIMENSION} pixels")


def _integer(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer")
    if isinstance(value, Integral):
        return int(value)
    if isinstance(value, Real) and math.isfinite(value) and float(value).is_integer():
        return int(value)
    raise ConfigError(f"{name} must be an integer")


def _positive_int(value: Any, name: str) -> int:
    try:
        number = _integer(value, name)
    except ConfigError:
        raise ConfigError(f"{name} must be a positive integer") from None
    if number <= 0:
        raise ConfigError(f"{name} must be a positive integer")
    return number


def _bounded_int(value: Any, name: str, minimum: int) -> int:
    number = _integer(value, name)
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}")
    return number


def _real(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise ConfigError(f"{name} must be a finite number")
    return float(value)
