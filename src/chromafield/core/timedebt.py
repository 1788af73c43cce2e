"""
Volume-driven animation time offset.

Loud passages let the noise pattern run ahead of wall-clock time, quiet
passages let it catch up again.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from chromafield.color.palette import cubic_bezier
from chromafield.core.smoothing import SMOOTHING_PRESETS, TempoRelativeSmoother

logger = logging.getLogger(__name__)


@dataclass
class TimeDebtConfig:
    """Accumulate/decay rates (seconds of offset per second) and thresholds."""

    accumulation_rate: float = 0.5
    decay_rate: float = 0.3
    max_offset: float = 5.0
    accumulate_threshold: float = 0.12
    decay_threshold: float = 0.08
    # Optional bezier (x1, y1, x2, y2) shaping accumulation by volume
    easing_curve: Optional[tuple[float, float, float, float]] = None

    def __post_init__(self):
        if self.max_offset < 0:
            raise ValueError("max_offset must be non-negative")
        if self.decay_threshold > self.accumulate_threshold:
            raise ValueError("decay_threshold must not exceed accumulate_threshold")


class TimeDebt:
    """Accumulated time offset plus a tempo-relative smoothed copy."""

    def __init__(self, config: Optional[TimeDebtConfig] = None):
        self.cfg = config or TimeDebtConfig()
        self.offset = 0.0
        self._smoother = TempoRelativeSmoother(SMOOTHING_PRESETS["time_offset"])

    @property
    def smoothed(self) -> float:
        return float(self._smoother.value)

    def _accumulation(self, volume: float) -> float:
        rate = self.cfg.accumulation_rate
        if self.cfg.easing_curve is not None:
            rate *= cubic_bezier(volume, self.cfg.easing_curve)
        return rate

    def update(self, volume: float, delta_time: float, bpm: float = 0.0) -> float:
        """
        Advance the offset by one frame.

        Args:
            volume: Current (smoothed) volume in [0, 1].
            delta_time: Seconds since the previous update.
            bpm: Tempo estimate for the smoothed copy.

        Returns:
            The new raw offset.
        """
        if delta_time is None or not math.isfinite(delta_time) or delta_time <= 0:
            logger.debug("Ignoring time debt update with delta_time=%r", delta_time)
            return self.offset
        volume = float(np.clip(np.nan_to_num(volume), 0.0, 1.0))
        cfg = self.cfg

        if volume > cfg.accumulate_threshold:
            self.offset += self._accumulation(volume) * delta_time
        elif volume < cfg.decay_threshold:
            self.offset -= cfg.decay_rate * delta_time
        self.offset = float(np.clip(self.offset, 0.0, cfg.max_offset))

        self._smoother.step(self.offset, delta_time, bpm)
        return self.offset

    def reset(self) -> None:
        self.offset = 0.0
        self._smoother.reset()
