"""
Noise + dither + palette compositor.

A pure function of one frame's immutable state: the same inputs always
produce the same color, so samples can be evaluated in any order or all
at once over a pixel grid.

Positions use x, y in [-1, 1] with x = -1 at the left edge and y = 1 at
the top.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from chromafield.color.palette import GeneratedPalette
from chromafield.core.analyzer import AudioFeatureFrame
from chromafield.core.ripples import RippleField
from chromafield.render.noise import bayer_value, fbm

# Ascending per-step thresholds; index 0 is the darkest color.
DEFAULT_THRESHOLDS = (
    0.0138, 0.28, 0.4270, 0.5499, 0.6577, 0.7528, 0.8359, 0.9054, 0.9571, 0.98,
)

# Direction the noise field drifts in as time advances
_DRIFT = (1.0, 0.6)


@dataclass
class CompositorConfig:
    """Tunable constants of the compositing function."""

    # Noise field
    noise_scale: float = 1.5
    time_speed: float = 0.1
    octaves: int = 4
    lacunarity: float = 2.0
    gain: float = 0.5
    seed: int = 0

    # Brightness
    brightness_floor: float = 0.25
    stereo_strength: float = 0.3
    ripple_gain: float = 1.0

    # Quantization
    base_thresholds: Sequence[float] = field(default_factory=lambda: DEFAULT_THRESHOLDS)
    dither_amount: float = 0.08
    bayer_level: int = 3
    dither_resolution: int = 256   # virtual pixels across when no pixel index is given
    band_pull: float = 0.5
    threshold_floor: float = 0.5
    transition_width: float = 0.05

    def __post_init__(self):
        self.brightness_floor = float(np.clip(self.brightness_floor, 0.0, 1.0))
        self.threshold_floor = float(np.clip(self.threshold_floor, 0.0, 1.0))
        self.base_thresholds = tuple(float(v) for v in self.base_thresholds)
        if len(self.base_thresholds) < 2:
            raise ValueError("base_thresholds needs at least two values")


def volume_brightness(volume, floor: float = 0.25):
    """Map volume in [0, 1] to a brightness factor in [floor, 1]."""
    v = np.clip(np.nan_to_num(np.asarray(volume, dtype=np.float64)), 0.0, 1.0)
    result = floor + v * (1.0 - floor)
    return float(result) if result.ndim == 0 else result


def stereo_weight(stereo, bands) -> float:
    """Energy-weighted mean stereo position of the bands."""
    stereo = np.asarray(stereo, dtype=np.float64)
    bands = np.asarray(bands, dtype=np.float64)
    total = bands.sum()
    if total <= 1e-6:
        return 0.0
    return float(np.clip((stereo * bands).sum() / total, -1.0, 1.0))


def stereo_brightness(x, stereo, bands, strength: float = 0.3):
    """
    Brightness factor for horizontal position *x*.

    Blends a left gain, a center gain of 1 and a right gain by how far
    the sample sits toward each side, so a right-panned mix brightens the
    right half and dims the left.
    """
    balance = stereo_weight(stereo, bands)
    x = np.clip(np.asarray(x, dtype=np.float64), -1.0, 1.0)
    left_gain = 1.0 - strength * balance
    right_gain = 1.0 + strength * balance
    left = np.maximum(-x, 0.0)
    right = np.maximum(x, 0.0)
    center = 1.0 - np.abs(x)
    result = left * left_gain + right * right_gain + center
    return float(result) if result.ndim == 0 else result


def _resample(values, n: int) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    if len(values) == n:
        return values
    return np.interp(np.linspace(0.0, 1.0, n), np.linspace(0.0, 1.0, len(values)), values)


def step_thresholds(
    base,
    bands,
    dither=0.0,
    dither_amount: float = 0.08,
    band_pull: float = 0.5,
    floor: float = 0.5,
) -> np.ndarray:
    """
    Per-step thresholds for one or many samples.

    Each threshold is jittered by the centered ordered-dither value and
    then pulled down by its own band's energy, never below *floor* times
    its jittered value.

    Args:
        base: (N,) ascending base thresholds.
        bands: (N,) band energies matched to the steps.
        dither: Dither value(s) in [0, 1), any shape.
        dither_amount: Peak-to-peak jitter.
        band_pull: How strongly a full-scale band lowers its threshold.
        floor: Minimum fraction of the unreduced threshold.

    Returns:
        Array of shape dither.shape + (N,).
    """
    base = np.asarray(base, dtype=np.float64)
    bands = np.clip(np.asarray(bands, dtype=np.float64), 0.0, 1.0)
    jitter = (np.asarray(dither, dtype=np.float64)[..., None] - 0.5) * dither_amount
    unreduced = base + jitter
    reduced = unreduced - bands * band_pull
    return np.maximum(reduced, unreduced * floor)


def _smoothstep(edge0, edge1, x):
    span = np.where(edge1 - edge0 == 0, 1.0, edge1 - edge0)
    t = np.clip((x - edge0) / span, 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def blend_weights(t, thresholds, width: float = 0.05) -> np.ndarray:
    """
    Per-step palette weights for quantization input *t*.

    Step i is "reached" with a smoothstep of half-width *width* around its
    threshold; the darkest step is always reached. Each step keeps only
    the share not claimed by brighter steps, so the weights sum to 1.

    Args:
        t: Quantization input(s) in [0, 1].
        thresholds: (..., N) thresholds broadcastable against t.
        width: Half-width of the transition band.

    Returns:
        Weights of shape broadcast(t, thresholds).
    """
    t = np.asarray(t, dtype=np.float64)[..., None]
    thresholds = np.asarray(thresholds, dtype=np.float64)
    if width > 0:
        reached = _smoothstep(thresholds - width, thresholds + width, t)
    else:
        reached = (t >= thresholds).astype(np.float64)
    reached = np.broadcast_to(reached, np.broadcast(t, thresholds).shape).copy()
    reached[..., 0] = 1.0

    # Product of (1 - reached) over all brighter steps
    remaining = 1.0 - reached
    brighter = np.ones_like(reached)
    brighter[..., :-1] = np.cumprod(remaining[..., :0:-1], axis=-1)[..., ::-1]
    return reached * brighter


def _evaluate(
    x: np.ndarray,
    y: np.ndarray,
    px: np.ndarray,
    py: np.ndarray,
    time: float,
    features: AudioFeatureFrame,
    ripples: Optional[RippleField],
    palette: GeneratedPalette,
    cfg: CompositorConfig,
    time_offset: float,
) -> np.ndarray:
    n = len(palette)

    # 1. Noise, advected by wall-clock time plus time debt
    drift = time * cfg.time_speed + max(time_offset, 0.0)
    noise = fbm(
        x * cfg.noise_scale + drift * _DRIFT[0],
        y * cfg.noise_scale + drift * _DRIFT[1],
        octaves=cfg.octaves,
        lacunarity=cfg.lacunarity,
        gain=cfg.gain,
        seed=cfg.seed,
    )

    # 2. Volume and stereo brightness
    value = noise * volume_brightness(features.smoothed_volume, cfg.brightness_floor)
    value = value * stereo_brightness(x, features.stereo, features.bands, cfg.stereo_strength)

    # 3. Ripples
    if ripples is not None and cfg.ripple_gain:
        value = value + ripples.render(x, y, time) * cfg.ripple_gain

    # 4. Quantization input
    t = np.clip(np.nan_to_num(value), 0.0, 1.0)

    # 5. Thresholds
    base = palette.thresholds if palette.thresholds is not None else cfg.base_thresholds
    thresholds = step_thresholds(
        _resample(base, n),
        _resample(features.smoothed_bands, n),
        bayer_value(px, py, cfg.bayer_level),
        dither_amount=cfg.dither_amount,
        band_pull=cfg.band_pull,
        floor=cfg.threshold_floor,
    )

    # 6. Blend
    weights = blend_weights(t, thresholds, cfg.transition_width)
    return np.clip(weights @ np.asarray(palette.colors), 0.0, 1.0)


def _virtual_pixel(coord, resolution: int) -> np.ndarray:
    return np.floor((np.asarray(coord, dtype=np.float64) + 1.0) * 0.5 * resolution)


def compose(
    position: tuple[float, float],
    time: float,
    features: AudioFeatureFrame,
    ripples: Optional[RippleField],
    palette: GeneratedPalette,
    config: Optional[CompositorConfig] = None,
    time_offset: float = 0.0,
    pixel: Optional[tuple[int, int]] = None,
) -> tuple[float, float, float]:
    """
    Color of one sample.

    Args:
        position: (x, y) in [-1, 1].
        time: Frame time in seconds.
        features: Audio features for this frame.
        ripples: Ripple snapshot for this frame, or None.
        palette: Palette to quantize into.
        config: Compositor constants.
        time_offset: Accumulated time debt in seconds.
        pixel: (column, row) used for the dither pattern; derived from
            the position when omitted.

    Returns:
        (r, g, b) floats in [0, 1].
    """
    cfg = config or CompositorConfig()
    x = np.asarray(float(position[0]))
    y = np.asarray(float(position[1]))
    if pixel is None:
        px = _virtual_pixel(x, cfg.dither_resolution)
        py = _virtual_pixel(-y, cfg.dither_resolution)
    else:
        px, py = np.asarray(pixel[0]), np.asarray(pixel[1])
    rgb = _evaluate(x, y, px, py, time, features, ripples, palette, cfg, time_offset)
    return float(rgb[0]), float(rgb[1]), float(rgb[2])


def pixel_grid(width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Sample positions at pixel centers, shape (height, width) each."""
    xs = (np.arange(width) + 0.5) / width * 2.0 - 1.0
    ys = 1.0 - (np.arange(height) + 0.5) / height * 2.0
    return np.meshgrid(xs, ys)


def compose_field(
    width: int,
    height: int,
    time: float,
    features: AudioFeatureFrame,
    ripples: Optional[RippleField],
    palette: GeneratedPalette,
    config: Optional[CompositorConfig] = None,
    time_offset: float = 0.0,
) -> np.ndarray:
    """
    Evaluate compose() at every pixel center of a width x height grid.

    Returns:
        Float array of shape (height, width, 3) in [0, 1].
    """
    if width < 1 or height < 1:
        raise ValueError(f"Invalid field size {width}x{height}")
    cfg = config or CompositorConfig()
    x, y = pixel_grid(width, height)
    rows, cols = np.mgrid[0:height, 0:width]
    return _evaluate(x, y, cols, rows, time, features, ripples, palette, cfg, time_offset)
