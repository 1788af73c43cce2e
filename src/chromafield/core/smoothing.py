"""
Tempo-relative attack/release smoothing.

Every consumer of raw audio features runs its values through an
asymmetric exponential smoother whose time constants are expressed as
musical note fractions, so the visuals breathe with the track tempo
instead of a fixed wall-clock duration.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

logger = logging.getLogger(__name__)

Number = Union[float, np.ndarray]

# Reference frame interval used when no previous update time is known.
DEFAULT_DELTA_TIME = 1.0 / 60.0


@dataclass(frozen=True)
class SmoothingParams:
    """Attack/release note fractions with millisecond fallbacks."""

    attack_note: float = 1.0 / 128.0
    release_note: float = 1.0 / 16.0
    attack_fallback_ms: float = 5.0
    release_fallback_ms: float = 100.0

    def time_constants(self, bpm: float) -> tuple[float, float]:
        """Return (attack, release) time constants in seconds for *bpm*."""
        return (
            tempo_time_constant(self.attack_note, bpm, self.attack_fallback_ms),
            tempo_time_constant(self.release_note, bpm, self.release_fallback_ms),
        )


SMOOTHING_PRESETS: dict[str, SmoothingParams] = {
    # Brightness control
    "volume": SmoothingParams(1.0 / 128.0, 1.0 / 16.0, 5.0, 100.0),
    # Band energies used for color mapping and onset detection
    "frequency_bands": SmoothingParams(1.0 / 128.0, 1.0 / 2.0, 2.0, 100.0),
    # Palette hue shift
    "color_modulation": SmoothingParams(1.0 / 32.0, 1.0 / 4.0, 20.0, 200.0),
    # Pattern morphing offset
    "time_offset": SmoothingParams(1.0 / 128.0, 1.0 / 4.0, 10.0, 150.0),
    "ripple_brightness": SmoothingParams(1.0 / 128.0, 1.0 / 4.0, 5.0, 150.0),
}


def tempo_time_constant(note_fraction: float, bpm: float, fallback_ms: float) -> float:
    """
    Convert a musical note fraction into a smoothing time constant.

    The whole note is the reference: a quarter note (0.25) at 120 BPM is
    half a second.

    Args:
        note_fraction: Note length as a fraction of a whole note.
        bpm: Current tempo estimate (0 = unknown).
        fallback_ms: Time constant used when the tempo is unknown.

    Returns:
        Time constant in seconds.
    """
    if bpm is None or not math.isfinite(bpm) or bpm <= 0:
        return fallback_ms / 1000.0
    return (60.0 / max(bpm, 1.0)) * note_fraction * 4.0


def _decay_factor(delta_time: float, time_constant: float) -> float:
    if time_constant <= 0:
        return 0.0
    return math.exp(-delta_time / time_constant)


def advance(
    current: Number,
    target: Number,
    delta_time: float,
    attack_time_constant: float,
    release_time_constant: float,
) -> Number:
    """
    Move *current* toward *target* by one exponential-decay step.

    The attack constant applies when the target is above the current
    value; the release constant applies otherwise, including ties.

    Args:
        current: Current smoothed value (scalar or array).
        target: Instantaneous target (same shape as current).
        delta_time: Seconds since the previous step.
        attack_time_constant: Rising time constant in seconds.
        release_time_constant: Falling time constant in seconds.

    Returns:
        The next smoothed value. Degenerate input returns *current*.
    """
    if delta_time is None or not math.isfinite(delta_time) or delta_time <= 0:
        logger.debug("Ignoring smoothing step with delta_time=%r", delta_time)
        return current

    attack = _decay_factor(delta_time, attack_time_constant)
    release = _decay_factor(delta_time, release_time_constant)

    if np.ndim(current) == 0 and np.ndim(target) == 0:
        if not math.isfinite(target):
            logger.debug("Ignoring non-finite smoothing target %r", target)
            return current
        factor = attack if target > current else release
        return float(target + (current - target) * factor)

    current_arr = np.asarray(current, dtype=np.float64)
    target_arr = np.asarray(target, dtype=np.float64)
    finite = np.isfinite(target_arr)
    if not np.all(finite):
        logger.debug("Holding %d non-finite smoothing targets", int((~finite).sum()))
    safe_target = np.where(finite, target_arr, current_arr)
    factor = np.where(safe_target > current_arr, attack, release)
    return safe_target + (current_arr - safe_target) * factor


class TempoRelativeSmoother:
    """
    Smoothing state for one scalar or vector value.

    The last update time is kept on the instance so independent smoothers
    never share hidden state.
    """

    def __init__(
        self,
        params: Optional[SmoothingParams] = None,
        initial: Number = 0.0,
        default_delta_time: float = DEFAULT_DELTA_TIME,
    ):
        self.params = params or SmoothingParams()
        self.default_delta_time = default_delta_time
        self._initial = initial
        self.value: Number = self._copy(initial)
        self.last_time: Optional[float] = None

    @staticmethod
    def _copy(value: Number) -> Number:
        if np.ndim(value) == 0:
            return float(value)
        return np.array(value, dtype=np.float64)

    def step(self, target: Number, delta_time: float, bpm: float = 0.0) -> Number:
        """Advance by an explicit *delta_time* and return the new value."""
        attack_tc, release_tc = self.params.time_constants(bpm)
        self.value = advance(self.value, target, delta_time, attack_tc, release_tc)
        return self.value

    def update(self, target: Number, now: float, bpm: float = 0.0) -> Number:
        """Advance to timestamp *now*, deriving the delta from the last update."""
        if self.last_time is None:
            delta_time = self.default_delta_time
        else:
            delta_time = now - self.last_time
        if delta_time > 0:
            self.last_time = now
        return self.step(target, delta_time, bpm)

    def reset(self, value: Optional[Number] = None) -> None:
        """Forget the history and restart from *value* (or the initial value)."""
        self.value = self._copy(self._initial if value is None else value)
        self.last_time = None
