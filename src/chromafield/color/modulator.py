"""
Audio-driven hue modulation.

Shifts both palette anchors by a smoothed angle derived from the balance
between bass and treble energy: bass-heavy passages pull the palette
warm (negative shift), treble-heavy passages pull it cool.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from chromafield.color.palette import GeneratedPalette, PaletteConfig, PaletteGenerator
from chromafield.core.analyzer import AudioFeatureFrame
from chromafield.core.smoothing import SMOOTHING_PRESETS, SmoothingParams, TempoRelativeSmoother

logger = logging.getLogger(__name__)


@dataclass
class ModulationState:
    """Mutable per-frame modulation state."""

    hue_shift: float = 0.0          # smoothed, degrees
    applied_shift: float = 0.0      # shift baked into the current palette
    base_darkest_hue: float = 0.0
    base_brightest_hue: float = 0.0
    enabled: bool = True
    last_time: Optional[float] = None


def frequency_balance(bass: float, treble: float, min_level: float) -> float:
    """(treble - bass) / (treble + bass), or 0 when the pair is quieter than *min_level*."""
    total = bass + treble
    if total < min_level or total <= 0:
        return 0.0
    return (treble - bass) / total


class ColorModulator:
    """
    Applies a frequency-balance hue shift to a base palette config.

    The palette is only regenerated when the smoothed shift has moved
    more than `change_threshold` degrees since it was last applied.
    """

    def __init__(
        self,
        base_config: PaletteConfig,
        step_count: int = 10,
        max_hue_shift: float = 45.0,
        min_audio_threshold: float = 0.5,
        change_threshold: float = 1.0,
        smoothing: Optional[SmoothingParams] = None,
    ):
        self.step_count = step_count
        self.min_audio_threshold = min_audio_threshold
        self.change_threshold = change_threshold
        self.max_hue_shift = 0.0
        self.set_max_hue_shift(max_hue_shift)

        self._smoother = TempoRelativeSmoother(smoothing or SMOOTHING_PRESETS["color_modulation"])
        self._generator = PaletteGenerator()
        self.state = ModulationState()
        self.set_base_config(base_config)

    @property
    def config(self) -> PaletteConfig:
        """The config behind the current palette."""
        return self._config

    @property
    def base_config(self) -> PaletteConfig:
        return self._base_config

    @property
    def palette(self) -> GeneratedPalette:
        return self._palette

    @property
    def hue_shift(self) -> float:
        return self.state.hue_shift

    @property
    def enabled(self) -> bool:
        return self.state.enabled

    def set_base_config(self, config: PaletteConfig) -> None:
        """Switch to a new base palette and drop any accumulated shift."""
        self._base_config = config
        darkest, brightest = config.anchor_hues()
        self.state = ModulationState(
            base_darkest_hue=darkest,
            base_brightest_hue=brightest,
            enabled=self.state.enabled,
        )
        self._smoother.reset(0.0)
        self._apply_base()

    def set_enabled(self, enabled: bool) -> None:
        self.state.enabled = bool(enabled)
        if not enabled:
            self.state.hue_shift = 0.0
            self.state.applied_shift = 0.0
            self.state.last_time = None
            self._smoother.reset(0.0)
            self._apply_base()

    def set_max_hue_shift(self, degrees: float) -> None:
        self.max_hue_shift = float(np.clip(degrees, 0.0, 180.0))

    def _apply_base(self) -> None:
        self._config = self._base_config
        self._palette = self._generator.generate(self._config, self.step_count)

    def _apply_shift(self, shift: float) -> None:
        s = self.state
        self._config = self._base_config.with_anchor_hues(
            s.base_darkest_hue + shift, s.base_brightest_hue + shift
        )
        self._palette = self._generator.generate(self._config, self.step_count)
        s.applied_shift = shift

    def target_shift(self, frame: AudioFeatureFrame) -> float:
        balance = frequency_balance(frame.bass, frame.treble, self.min_audio_threshold)
        return balance * self.max_hue_shift

    def update(self, frame: AudioFeatureFrame) -> GeneratedPalette:
        """
        Advance the hue shift by one frame.

        Args:
            frame: Current audio features (bass, treble, bpm, time).

        Returns:
            The palette to render this frame with.
        """
        s = self.state
        if not s.enabled or frame is None:
            return self._palette

        if s.last_time is None:
            delta_time = frame.delta_time or self._smoother.default_delta_time
        else:
            delta_time = frame.time - s.last_time
        if delta_time > 0:
            s.last_time = frame.time

        s.hue_shift = float(self._smoother.step(self.target_shift(frame), delta_time, frame.bpm))

        if abs(s.hue_shift - s.applied_shift) > self.change_threshold:
            logger.debug("Hue shift %.2f -> %.2f degrees", s.applied_shift, s.hue_shift)
            self._apply_shift(s.hue_shift)
        return self._palette
