"""
Per-tick frame pipeline.

Orchestrates one audio-analysis tick, from raw band energies to the
immutable state the compositor reads for that frame.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from chromafield.color.modulator import ColorModulator
from chromafield.color.palette import GeneratedPalette, PaletteConfig
from chromafield.color.presets import DEFAULT_PRESET, get_palette_preset
from chromafield.core.analyzer import (
    AudioFeatureFrame,
    ExtractorConfig,
    FeatureExtractor,
    RawAudioFrame,
)
from chromafield.core.ripples import (
    BAND_RIPPLE_PARAMS,
    OverflowPolicy,
    RippleEventPool,
    RippleField,
    band_center_y,
)
from chromafield.core.timedebt import TimeDebt, TimeDebtConfig
from chromafield.render.compositor import CompositorConfig, compose, compose_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FrameState:
    """Everything the compositor needs for one frame. Never mutated."""

    features: AudioFeatureFrame
    palette: GeneratedPalette
    ripples: RippleField
    time_offset: float
    hue_shift: float
    compositor: CompositorConfig

    @property
    def time(self) -> float:
        return self.features.time

    def compose(self, position: tuple[float, float]) -> tuple[float, float, float]:
        """Color at *position* (x, y in [-1, 1])."""
        return compose(
            position,
            self.time,
            self.features,
            self.ripples,
            self.palette,
            self.compositor,
            self.time_offset,
        )

    def render(self, width: int, height: int) -> np.ndarray:
        """
        Render the whole frame.

        Returns:
            uint8 array of shape (height, width, 3).
        """
        field = compose_field(
            width,
            height,
            self.time,
            self.features,
            self.ripples,
            self.palette,
            self.compositor,
            self.time_offset,
        )
        return (field * 255.0 + 0.5).astype(np.uint8)


class FramePipeline:
    """
    Single-writer frame state machine.

    Each call to process() runs, in order: feature extraction, one ripple
    spawn per band onset, ripple aging, hue modulation and the time-debt
    update, then freezes the result into a FrameState.
    """

    def __init__(
        self,
        palette: Optional[PaletteConfig] = None,
        extractor_config: Optional[ExtractorConfig] = None,
        compositor_config: Optional[CompositorConfig] = None,
        time_debt_config: Optional[TimeDebtConfig] = None,
        ripple_capacity: int = 12,
        ripple_overflow: OverflowPolicy = OverflowPolicy.RECYCLE_OLDEST,
        step_count: int = 10,
        modulate_colors: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            palette: Base palette; the default preset when None.
            extractor_config: Onset thresholds, stereo emphasis, etc.
            compositor_config: Noise and quantization constants.
            time_debt_config: Time offset accumulation rates.
            ripple_capacity: Maximum concurrent ripples.
            ripple_overflow: What to do when the ripple pool is full.
            step_count: Number of palette colors.
            modulate_colors: Whether bass/treble balance shifts the hue.
        """
        self.extractor = FeatureExtractor(extractor_config)
        self.ripples = RippleEventPool(capacity=ripple_capacity, overflow=ripple_overflow)
        self.modulator = ColorModulator(
            palette or get_palette_preset(DEFAULT_PRESET), step_count=step_count
        )
        self.modulator.set_enabled(modulate_colors)
        self.time_debt = TimeDebt(time_debt_config)
        self.compositor = compositor_config or CompositorConfig()
        self.last_state: Optional[FrameState] = None

    def set_palette(self, config: PaletteConfig) -> None:
        self.modulator.set_base_config(config)

    def set_metadata_bpm(self, bpm: float) -> None:
        self.extractor.set_metadata_bpm(bpm)

    def _spawn_ripples(self, features: AudioFeatureFrame) -> None:
        for band in features.onsets:
            beat = features.beat(band)
            center = (features.band_stereo(band), band_center_y(band, beat.intensity))
            slot = self.ripples.spawn(center, beat.intensity, features.time, BAND_RIPPLE_PARAMS[band])
            if slot is not None:
                logger.debug(
                    "Spawned %s ripple in slot %d at (%.2f, %.2f)", band, slot, *center
                )

    def process(self, raw: RawAudioFrame) -> FrameState:
        """
        Advance all per-frame state by one tick.

        Args:
            raw: Raw audio energies for this tick.

        Returns:
            Frozen FrameState for the compositor.
        """
        features = self.extractor.extract(raw)
        self._spawn_ripples(features)
        self.ripples.tick(features.time)
        palette = self.modulator.update(features)
        self.time_debt.update(
            features.smoothed_volume, features.delta_time, features.bpm
        )

        state = FrameState(
            features=features,
            palette=palette,
            ripples=self.ripples.snapshot(),
            time_offset=self.time_debt.smoothed,
            hue_shift=self.modulator.hue_shift,
            compositor=self.compositor,
        )
        self.last_state = state
        return state

    def reset(self) -> None:
        """Forget all cross-frame state."""
        self.extractor.reset()
        self.ripples.reset()
        self.modulator.set_base_config(self.modulator.base_config)
        self.time_debt.reset()
        self.last_state = None

