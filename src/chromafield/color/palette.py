"""
OKLCH palette generation.

A palette is described by two anchor colors (darkest and brightest) and
three cubic-bezier easing curves that shape how lightness, chroma and hue
travel between them across N steps.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from chromafield.color.converter import (
    hex_to_rgb,
    interpolate_hue,
    oklch_to_rgb,
    rgb_to_hex,
    rgb_to_oklch,
)

logger = logging.getLogger(__name__)

Curve = tuple[float, float, float, float]

LINEAR_CURVE: Curve = (0.0, 0.0, 1.0, 1.0)

_BEZIER_ITERATIONS = 20
_BEZIER_EPSILON = 1e-4


def _bezier_point(t, p1, p2):
    """One axis of a cubic bezier anchored at 0 and 1."""
    u = 1.0 - t
    return 3.0 * u * u * t * p1 + 3.0 * u * t * t * p2 + t * t * t


def cubic_bezier(x: float, curve: Curve) -> float:
    """
    Evaluate a CSS-style easing curve at *x*.

    The curve parameter whose x-component matches *x* is found by
    bisection, then the y-component at that parameter is returned.

    Args:
        x: Input in [0, 1].
        curve: Control points (x1, y1, x2, y2).

    Returns:
        Eased value.
    """
    x1, y1, x2, y2 = curve
    x = float(np.clip(x, 0.0, 1.0))
    low, high = 0.0, 1.0
    mid = 0.5
    for _ in range(_BEZIER_ITERATIONS):
        mid = (low + high) / 2.0
        estimate = _bezier_point(mid, x1, x2)
        if abs(estimate - x) < _BEZIER_EPSILON:
            break
        if estimate < x:
            low = mid
        else:
            high = mid
    return float(_bezier_point(mid, y1, y2))


def calculate_thresholds(curve: Curve, step_count: int = 10) -> np.ndarray:
    """
    Sample an easing curve into per-step quantization thresholds.

    Returns:
        Ascending thresholds; index 0 belongs to the darkest step.
    """
    if step_count < 2:
        raise ValueError("step_count must be at least 2")
    values = [cubic_bezier(i / (step_count - 1), curve) for i in range(step_count)]
    return np.clip(np.array(values), 0.0, 1.0)


@dataclass(frozen=True)
class AnchorColor:
    """One end of a palette. `hue` wins over `hue_offset` when both are set."""

    lightness: float
    chroma: float
    hue: Optional[float] = None
    hue_offset: float = 0.0

    def resolve_hue(self, base_hue: float) -> float:
        if self.hue is not None:
            return self.hue % 360.0
        return (base_hue + self.hue_offset) % 360.0


@dataclass(frozen=True)
class PaletteConfig:
    """
    Immutable palette description.

    `base_hue` is either an OKLCH hue in degrees or a hex color whose
    OKLCH hue is used.
    """

    base_hue: Union[float, str]
    darkest: AnchorColor
    brightest: AnchorColor
    lightness_curve: Curve = LINEAR_CURVE
    chroma_curve: Curve = LINEAR_CURVE
    hue_curve: Curve = LINEAR_CURVE
    threshold_curve: Optional[Curve] = None

    def __post_init__(self):
        if isinstance(self.base_hue, str):
            hex_to_rgb(self.base_hue)
        for name in ("lightness_curve", "chroma_curve", "hue_curve", "threshold_curve"):
            curve = getattr(self, name)
            if curve is None:
                continue
            if len(curve) != 4:
                raise ValueError(f"{name} needs four control values, got {len(curve)}")
            object.__setattr__(self, name, tuple(float(v) for v in curve))

    @property
    def base_hue_degrees(self) -> float:
        if isinstance(self.base_hue, str):
            return float(rgb_to_oklch(hex_to_rgb(self.base_hue))[2])
        return float(self.base_hue) % 360.0

    def anchor_hues(self) -> tuple[float, float]:
        base = self.base_hue_degrees
        return self.darkest.resolve_hue(base), self.brightest.resolve_hue(base)

    def with_anchor_hues(self, darkest_hue: float, brightest_hue: float) -> "PaletteConfig":
        """Copy with both anchors pinned to explicit hues."""
        return PaletteConfig(
            base_hue=self.base_hue,
            darkest=AnchorColor(self.darkest.lightness, self.darkest.chroma, darkest_hue % 360.0),
            brightest=AnchorColor(
                self.brightest.lightness, self.brightest.chroma, brightest_hue % 360.0
            ),
            lightness_curve=self.lightness_curve,
            chroma_curve=self.chroma_curve,
            hue_curve=self.hue_curve,
            threshold_curve=self.threshold_curve,
        )


@dataclass(frozen=True, eq=False)
class GeneratedPalette:
    """N colors ordered darkest -> brightest."""

    colors: np.ndarray               # (N, 3) sRGB in [0, 1]
    oklch: np.ndarray                # (N, 3) L, C, H
    thresholds: Optional[np.ndarray] = field(default=None)

    def __len__(self) -> int:
        return len(self.colors)

    def hex_colors(self) -> list[str]:
        return [rgb_to_hex(c) for c in self.colors]


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


def generate_palette(config: PaletteConfig, step_count: int = 10) -> GeneratedPalette:
    """
    Build the palette for *config*.

    Args:
        config: Anchors and easing curves.
        step_count: Number of colors (at least 2).

    Returns:
        GeneratedPalette, darkest first.
    """
    if step_count < 2:
        raise ValueError("step_count must be at least 2")

    darkest_hue, brightest_hue = config.anchor_hues()
    d, b = config.darkest, config.brightest

    lch = np.empty((step_count, 3))
    for i in range(step_count):
        t = i / (step_count - 1)
        lch[i, 0] = d.lightness + (b.lightness - d.lightness) * cubic_bezier(t, config.lightness_curve)
        lch[i, 1] = d.chroma + (b.chroma - d.chroma) * cubic_bezier(t, config.chroma_curve)
        lch[i, 2] = interpolate_hue(darkest_hue, brightest_hue, cubic_bezier(t, config.hue_curve))

    thresholds = None
    if config.threshold_curve is not None:
        thresholds = _freeze(calculate_thresholds(config.threshold_curve, step_count))

    return GeneratedPalette(
        colors=_freeze(oklch_to_rgb(lch)),
        oklch=_freeze(lch),
        thresholds=thresholds,
    )


class PaletteGenerator:
    """generate_palette() with a one-entry cache keyed on (config, step_count)."""

    def __init__(self):
        self._key = None
        self._palette: Optional[GeneratedPalette] = None

    def generate(self, config: PaletteConfig, step_count: int = 10) -> GeneratedPalette:
        key = (config, step_count)
        if self._palette is None or key != self._key:
            logger.debug("Generating %d-step palette (base hue %s)", step_count, config.base_hue)
            self._palette = generate_palette(config, step_count)
            self._key = key
        return self._palette

    def invalidate(self) -> None:
        self._key = None
        self._palette = None
