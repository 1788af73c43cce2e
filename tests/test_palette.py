"""Tests for OKLCH palette generation."""

import dataclasses

import numpy as np
import pytest

from chromafield.color.palette import (
    LINEAR_CURVE,
    AnchorColor,
    PaletteConfig,
    PaletteGenerator,
    calculate_thresholds,
    cubic_bezier,
    generate_palette,
)


class TestCubicBezier:
    def test_linear_is_identity(self):
        for x in np.linspace(0, 1, 11):
            assert cubic_bezier(x, LINEAR_CURVE) == pytest.approx(x, abs=1e-3)

    def test_endpoints(self):
        curve = (0.3, 0.1, 1.0, 0.7)
        assert cubic_bezier(0.0, curve) == pytest.approx(0.0, abs=1e-3)
        assert cubic_bezier(1.0, curve) == pytest.approx(1.0, abs=2e-2)

    def test_ease_in_below_diagonal(self):
        assert cubic_bezier(0.5, (0.42, 0.0, 1.0, 1.0)) < 0.5

    def test_input_clamped(self):
        assert cubic_bezier(-1.0, LINEAR_CURVE) == pytest.approx(0.0, abs=1e-3)
        assert cubic_bezier(2.0, LINEAR_CURVE) == pytest.approx(1.0, abs=1e-3)


class TestThresholds:
    def test_ascending_and_bounded(self):
        thresholds = calculate_thresholds((0.3, 0.1, 1.0, 0.7), 10)
        assert len(thresholds) == 10
        assert np.all(np.diff(thresholds) >= 0)
        assert thresholds[0] >= 0.0 and thresholds[-1] <= 1.0

    def test_too_few_steps(self):
        with pytest.raises(ValueError):
            calculate_thresholds(LINEAR_CURVE, 1)


class TestPaletteConfig:
    def test_is_frozen(self, palette_config):
        with pytest.raises(dataclasses.FrozenInstanceError):
            palette_config.base_hue = 10.0

    def test_bad_curve_rejected(self):
        with pytest.raises(ValueError):
            PaletteConfig(
                base_hue=0.0,
                darkest=AnchorColor(0.1, 0.0),
                brightest=AnchorColor(0.9, 0.1),
                hue_curve=(0.0, 1.0),
            )

    def test_bad_hex_rejected(self):
        with pytest.raises(ValueError):
            PaletteConfig(base_hue="#zzz", darkest=AnchorColor(0.1, 0.0), brightest=AnchorColor(0.9, 0.1))

    def test_hex_base_hue(self):
        config = PaletteConfig(
            base_hue="#ff0000", darkest=AnchorColor(0.1, 0.0), brightest=AnchorColor(0.9, 0.1)
        )
        assert config.base_hue_degrees == pytest.approx(29.23, abs=0.1)

    def test_anchor_hues_wrap(self):
        config = PaletteConfig(
            base_hue=10.0,
            darkest=AnchorColor(0.1, 0.0, hue_offset=-30),
            brightest=AnchorColor(0.9, 0.1, hue=400.0),
        )
        assert config.anchor_hues() == pytest.approx((340.0, 40.0))


class TestGeneratePalette:
    def test_step_count(self, palette_config):
        for n in (2, 5, 10, 16):
            assert len(generate_palette(palette_config, n)) == n

    def test_too_few_steps(self, palette_config):
        with pytest.raises(ValueError):
            generate_palette(palette_config, 1)

    def test_endpoints_match_anchors(self, palette):
        assert palette.oklch[0, 0] == pytest.approx(0.1, abs=1e-3)
        assert palette.oklch[-1, 0] == pytest.approx(0.95, abs=1e-3)
        assert palette.oklch[0, 2] == pytest.approx(170.0, abs=0.05)
        assert palette.oklch[-1, 2] == pytest.approx(230.0, abs=0.05)

    def test_ordered_darkest_to_brightest(self, palette):
        assert np.all(np.diff(palette.oklch[:, 0]) > 0)

    def test_colors_in_gamut(self, palette):
        assert palette.colors.shape == (10, 3)
        assert np.all((palette.colors >= 0) & (palette.colors <= 1))

    def test_idempotent(self, palette_config):
        a = generate_palette(palette_config, 10)
        b = generate_palette(palette_config, 10)
        np.testing.assert_array_equal(a.colors, b.colors)
        assert a.hex_colors() == b.hex_colors()

    def test_arrays_read_only(self, palette):
        with pytest.raises(ValueError):
            palette.colors[0, 0] = 1.0

    def test_thresholds_only_with_curve(self, palette_config):
        assert generate_palette(palette_config).thresholds is None
        with_curve = dataclasses.replace(palette_config, threshold_curve=(0.3, 0.1, 1.0, 0.7))
        thresholds = generate_palette(with_curve, 6).thresholds
        assert thresholds.shape == (6,)


class TestPaletteGenerator:
    def test_caches_same_config(self, palette_config):
        gen = PaletteGenerator()
        assert gen.generate(palette_config) is gen.generate(palette_config)

    def test_new_config_regenerates(self, palette_config):
        gen = PaletteGenerator()
        first = gen.generate(palette_config)
        other = dataclasses.replace(palette_config, base_hue=20.0)
        assert gen.generate(other) is not first

    def test_invalidate(self, palette_config):
        gen = PaletteGenerator()
        first = gen.generate(palette_config)
        gen.invalidate()
        assert gen.generate(palette_config) is not first
