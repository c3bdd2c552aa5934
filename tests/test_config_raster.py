"""Tests for parameter validation and the RGBA raster boundary."""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from pixel_snapper.config import (
    ConfigError,
    DimensionError,
    SnapConfig,
    ensure_processable_dimensions,
    resolve_config,
)
from pixel_snapper.raster import RasterError, RasterImage, encode_png, load_raster, to_data_url


class TestSnapConfig:
    def test_defaults(self):
        cfg = SnapConfig()
        assert cfg.k_colors == 16
        assert cfg.k_seed == 42
        assert cfg.max_kmeans_iterations == 15
        assert cfg.peak_threshold_multiplier == 0.2
        assert cfg.peak_distance_filter == 4
        assert cfg.walker_search_window_ratio == 0.35
        assert cfg.walker_min_search_window == 2.0
        assert cfg.walker_strength_threshold == 0.5
        assert cfg.min_cuts_per_axis == 4
        assert cfg.fallback_target_segments == 64
        assert cfg.max_step_ratio == 1.8

    def test_integral_float_accepted(self):
        assert SnapConfig(k_colors=8.0).k_colors == 8

    @pytest.mark.parametrize(
        "field,value",
        [
            ("peak_threshold_multiplier", 1.5),
            ("walker_search_window_ratio", 0.0),
            ("walker_min_search_window", -1.0),
            ("max_step_ratio", 0.5),
            ("min_cuts_per_axis", 1),
            ("fallback_target_segments", 0),
            ("max_kmeans_iterations", -1),
            ("peak_distance_filter", 0),
            ("k_seed", 1.5),
        ],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ConfigError):
            SnapConfig(**{field: value})

    def test_k_colors_reported_first(self):
        with pytest.raises(ConfigError, match="k_colors"):
            SnapConfig(k_colors=0, max_step_ratio=0.1)

    def test_override_aliases(self):
        cfg = SnapConfig().with_overrides({"kColors": 4, "max-step-ratio": 2.5}, k_seed=7)
        assert (cfg.k_colors, cfg.max_step_ratio, cfg.k_seed) == (4, 2.5, 7)

    def test_resolve_partial_mapping(self):
        cfg = resolve_config({"peakDistanceFilter": 2}, {"k_colors": 5})
        assert cfg.peak_distance_filter == 2
        assert cfg.k_colors == 5
        assert cfg.max_step_ratio == 1.8

    def test_frozen(self):
        cfg = SnapConfig()
        with pytest.raises(AttributeError):
            cfg.k_colors = 3

    def test_to_dict_round_trips_through_overrides(self):
        cfg = SnapConfig(k_colors=5)
        assert SnapConfig().with_overrides(cfg.to_dict()) == cfg

    def test_dimension_checks(self):
        ensure_processable_dimensions(3, 3)
        with pytest.raises(DimensionError, match="positive"):
            ensure_processable_dimensions(0, 10)
        with pytest.raises(DimensionError, match="at least 3x3"):
            ensure_processable_dimensions(10, 2)


class TestRasterImage:
    def test_buffer_length_checked(self):
        with pytest.raises(RasterError):
            RasterImage(2, 2, bytes(15))

    def test_negative_dimension(self):
        with pytest.raises(DimensionError):
            RasterImage(-1, 2, b"")

    def test_rgb_array_gets_alpha(self):
        raster = RasterImage.from_array(np.full((2, 3, 3), 9, dtype=np.uint8))
        arr = raster.to_array()
        assert arr.shape == (2, 3, 4)
        assert np.all(arr[..., 3] == 255)

    def test_out_of_range_values(self):
        with pytest.raises(RasterError):
            RasterImage.from_array(np.full((2, 2, 4), 300, dtype=np.int32))

    def test_to_array_is_a_copy(self):
        raster = RasterImage(1, 1, bytes([1, 2, 3, 4]))
        arr = raster.to_array()
        arr[0, 0, 0] = 99
        assert raster.data[0] == 1

    def test_pillow_round_trip(self):
        pixels = np.arange(3 * 4 * 4, dtype=np.uint8).reshape(3, 4, 4)
        raster = RasterImage.from_array(pixels)
        assert RasterImage.from_pil(raster.to_pil()) == raster


class TestLoadRaster:
    def test_png_bytes_and_stream(self):
        raster = RasterImage.from_array(np.full((3, 5, 4), 128, dtype=np.uint8))
        png = encode_png(raster)
        assert load_raster(png) == raster
        assert load_raster(io.BytesIO(png)) == raster

    def test_data_url(self):
        raster = RasterImage.from_array(np.full((4, 4, 4), 17, dtype=np.uint8))
        assert load_raster(to_data_url(encode_png(raster))) == raster

    def test_palette_image_converted(self, tmp_path):
        path = tmp_path / "indexed.gif"
        Image.new("P", (6, 4), 0).save(path)
        raster = load_raster(path)
        assert raster.size == (6, 4)
        assert len(raster.data) == 6 * 4 * 4

    def test_garbage_rejected(self):
        with pytest.raises(RasterError):
            load_raster(b"\x00\x01not a png")
        with pytest.raises(RasterError):
            load_raster("data:image/png;base64,@@@")
