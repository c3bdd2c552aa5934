"""Tests for the seeded k-means++ palette reduction."""

from __future__ import annotations

import numpy as np

from pixel_snapper.quantizer import Mulberry32, quantize_image, weighted_index_sample


# ---------------------------------------------------------------------------
# Synthetic image helpers
# ---------------------------------------------------------------------------


def _make_noise_sprite(size: int = 24, seed: int = 7) -> np.ndarray:
    """Opaque RGBA noise: close to one distinct colour per pixel."""
    rng = np.random.RandomState(seed)
    img = rng.randint(0, 256, (size, size, 4)).astype(np.uint8)
    img[..., 3] = 255
    return img


def _make_three_colour_sprite() -> np.ndarray:
    """16x16 sprite made of three flat colours with mixed alpha."""
    img = np.zeros((16, 16, 4), dtype=np.uint8)
    img[:, :6] = (30, 60, 90, 255)
    img[:, 6:11] = (200, 40, 40, 128)
    img[:, 11:] = (250, 250, 120, 255)
    return img


def _opaque_colours(img: np.ndarray) -> set:
    return {tuple(p) for p in img[img[..., 3] != 0][:, :3].tolist()}


# ---------------------------------------------------------------------------
# Tests: PRNG
# ---------------------------------------------------------------------------


class TestMulberry32:
    def test_reference_sequence(self):
        rng = Mulberry32(42)
        words = [rng.next_uint32() for _ in range(4)]
        assert words == [2581720956, 1925393290, 3661312704, 2876485805]

    def test_random_is_word_over_two_pow_32(self):
        rng = Mulberry32(42)
        assert rng.random() == 2581720956 / 4294967296
        assert abs(rng.random() - 0.4482905589975417) < 1e-15

    def test_seed_wraps_to_32_bits(self):
        wide = Mulberry32(42 + 2**32)
        narrow = Mulberry32(42)
        assert [wide.next_uint32() for _ in range(3)] == [narrow.next_uint32() for _ in range(3)]

    def test_negative_seed_is_twos_complement(self):
        a = Mulberry32(-1)
        b = Mulberry32(0xFFFFFFFF)
        assert [a.next_uint32() for _ in range(3)] == [b.next_uint32() for _ in range(3)]

    def test_randrange_bounds(self):
        rng = Mulberry32(1234)
        values = [rng.randrange(7) for _ in range(500)]
        assert min(values) >= 0
        assert max(values) <= 6


class TestWeightedSample:
    def test_zero_weights_fall_back_to_uniform(self):
        # floor(0.6011... * 4) == 2
        assert weighted_index_sample(Mulberry32(42), np.zeros(4)) == 2

    def test_equal_weights(self):
        # r = 0.6011... * 4 = 2.40 -> first running total >= r is index 2
        assert weighted_index_sample(Mulberry32(42), np.ones(4)) == 2

    def test_only_positive_weight_can_win(self):
        weights = np.array([0.0, 0.0, 5.0, 0.0])
        for seed in range(20):
            assert weighted_index_sample(Mulberry32(seed), weights) == 2


# ---------------------------------------------------------------------------
# Tests: quantization
# ---------------------------------------------------------------------------


class TestQuantizeImage:
    def test_identity_when_palette_already_small(self):
        img = _make_three_colour_sprite()
        for k in (3, 5, 16):
            out = quantize_image(img, k, 42, 15)
            assert np.array_equal(out, img), f"k={k} should keep the three colours"

    def test_palette_size_bounded_by_k(self):
        img = _make_noise_sprite()
        for k in (1, 2, 4, 9):
            out = quantize_image(img, k, 42, 15)
            assert len(_opaque_colours(out)) <= k

    def test_single_cluster_is_rounded_mean(self):
        img = _make_noise_sprite(size=16, seed=3)
        out = quantize_image(img, 1, 42, 15)
        rgb = img[..., :3].reshape(-1, 3).astype(np.float64)
        expected = np.floor(rgb.sum(axis=0) / len(rgb) + 0.5).astype(np.uint8)
        assert _opaque_colours(out) == {tuple(expected.tolist())}

    def test_transparent_pixels_copied_verbatim(self):
        img = _make_noise_sprite(size=20, seed=11)
        img[::2, :, 3] = 0
        out = quantize_image(img, 2, 42, 15)
        transparent = img[..., 3] == 0
        assert np.array_equal(out[transparent], img[transparent])
        assert np.array_equal(out[..., 3], img[..., 3])

    def test_all_transparent_returned_unchanged(self):
        img = _make_noise_sprite(size=8)
        img[..., 3] = 0
        out = quantize_image(img, 4, 42, 15)
        assert np.array_equal(out, img)
        assert out is not img

    def test_deterministic_for_same_seed(self):
        img = _make_noise_sprite(size=32, seed=5)
        first = quantize_image(img, 6, 99, 15)
        second = quantize_image(img, 6, 99, 15)
        assert np.array_equal(first, second)

    def test_zero_iterations_keeps_seed_colours(self):
        img = _make_noise_sprite(size=12, seed=2)
        out = quantize_image(img, 3, 42, 0)
        assert _opaque_colours(out) <= _opaque_colours(img)

    def test_input_not_mutated(self):
        img = _make_noise_sprite(size=12)
        before = img.copy()
        quantize_image(img, 2, 42, 15)
        assert np.array_equal(img, before)
