"""
Per-frame feature extraction.

Turns a raw audio snapshot (ten band energies, per-band channel energies
and RMS) into an immutable AudioFeatureFrame: smoothed and peak-tracked
bass/mid/treble, per-band stereo balance, onset flags with beat ages and
a running BPM estimate.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from chromafield.core.smoothing import (
    DEFAULT_DELTA_TIME,
    SMOOTHING_PRESETS,
    SmoothingParams,
    TempoRelativeSmoother,
)

logger = logging.getLogger(__name__)

N_BANDS = 10

# Octave-spaced band edges in Hz, lowest band first.
BAND_EDGES_HZ = (20.0, 40.0, 80.0, 160.0, 320.0, 640.0, 1280.0, 2560.0, 5120.0, 10240.0, 20000.0)

# Band indices aggregated into the three main bands.
BAND_GROUPS = {
    "bass": slice(0, 4),
    "mid": slice(4, 7),
    "treble": slice(7, 10),
}

MAIN_BANDS = ("bass", "mid", "treble")

_STEREO_EPSILON = 1e-6
_STEREO_QUIET = 0.01


def _read_only(values: Sequence[float]) -> np.ndarray:
    arr = np.array(values, dtype=np.float64)
    arr.flags.writeable = False
    return arr


def sanitize(values, size: Optional[int] = None) -> np.ndarray:
    """
    Clamp raw input to [0, 1], mapping NaN and -inf to 0 and +inf to 1.

    Args:
        values: Scalar or sequence of raw energies.
        size: If given, pad with zeros / truncate to this length.

    Returns:
        Float64 array of clean values.
    """
    arr = np.atleast_1d(np.asarray(values if values is not None else [], dtype=np.float64))
    arr = np.nan_to_num(arr, nan=0.0, posinf=1.0, neginf=0.0)
    arr = np.clip(arr, 0.0, 1.0)
    if size is not None:
        if len(arr) >= size:
            arr = arr[:size]
        else:
            arr = np.concatenate([arr, np.zeros(size - len(arr))])
    return arr


def _sanitize_scalar(value) -> float:
    return float(sanitize([value if value is not None else 0.0])[0])


def stereo_balance(left, right, emphasis: float = 0.7) -> np.ndarray:
    """
    Per-band stereo position in [-1, 1] (-1 = left, 1 = right).

    The linear balance is emphasized with a signed power curve so that
    the partial panning typical of real mixes still reads as off-center;
    lower *emphasis* exaggerates more. Quiet bands report center.
    """
    left = np.asarray(left, dtype=np.float64)
    right = np.asarray(right, dtype=np.float64)
    total = left + right
    raw = (right - left) / (total + _STEREO_EPSILON)
    shaped = np.sign(raw) * np.abs(raw) ** emphasis
    return np.where(total < _STEREO_QUIET, 0.0, np.clip(shaped, -1.0, 1.0))


@dataclass
class RawAudioFrame:
    """One tick of analyzed audio as delivered by the spectral front end."""

    time: float
    bands: Sequence[float]
    left: Optional[Sequence[float]] = None
    right: Optional[Sequence[float]] = None
    rms: float = 0.0
    # Explicit main bands; derived from the band groups when None
    bass: Optional[float] = None
    mid: Optional[float] = None
    treble: Optional[float] = None


@dataclass(frozen=True)
class BandBeat:
    """Beat state for one of the main bands."""

    onset: bool = False
    age: float = 0.0        # seconds since the last onset (0 = none / expired)
    intensity: float = 0.0  # smoothed value at the last crossing


@dataclass(frozen=True, eq=False)
class AudioFeatureFrame:
    """Immutable snapshot of audio state for one analysis tick."""

    time: float
    delta_time: float

    # Instantaneous values [0, 1]
    bass: float
    mid: float
    treble: float
    volume: float
    bands: np.ndarray    # (10,) low -> high
    stereo: np.ndarray   # (10,) [-1, 1]

    # Smoothed / peak-tracked values [0, 1]
    smoothed_bass: float
    smoothed_mid: float
    smoothed_treble: float
    smoothed_volume: float
    smoothed_bands: np.ndarray  # (10,)
    peak_bass: float
    peak_mid: float
    peak_treble: float

    # Beats
    bass_beat: BandBeat = field(default_factory=BandBeat)
    mid_beat: BandBeat = field(default_factory=BandBeat)
    treble_beat: BandBeat = field(default_factory=BandBeat)

    # Group stereo position [-1, 1]
    bass_stereo: float = 0.0
    mid_stereo: float = 0.0
    treble_stereo: float = 0.0

    bpm: float = 0.0

    def beat(self, band: str) -> BandBeat:
        """Return the BandBeat for 'bass', 'mid' or 'treble'."""
        return getattr(self, f"{band}_beat")

    def band_stereo(self, band: str) -> float:
        return getattr(self, f"{band}_stereo")

    @property
    def onsets(self) -> tuple[str, ...]:
        """Names of the main bands with an onset in this frame."""
        return tuple(b for b in MAIN_BANDS if self.beat(b).onset)

    @classmethod
    def silent(cls, time: float = 0.0) -> "AudioFeatureFrame":
        """A frame of silence, useful before the first audio tick."""
        zeros = _read_only(np.zeros(N_BANDS))
        return cls(
            time=time, delta_time=0.0,
            bass=0.0, mid=0.0, treble=0.0, volume=0.0,
            bands=zeros, stereo=zeros,
            smoothed_bass=0.0, smoothed_mid=0.0, smoothed_treble=0.0,
            smoothed_volume=0.0, smoothed_bands=zeros,
            peak_bass=0.0, peak_mid=0.0, peak_treble=0.0,
        )


@dataclass
class OnsetThresholds:
    """Minimum smoothed level for a band to register a beat."""

    bass: float = 0.08
    mid: float = 0.05
    treble: float = 0.05

    def __post_init__(self):
        for name in MAIN_BANDS:
            setattr(self, name, float(np.clip(getattr(self, name), 0.0, 1.0)))


@dataclass
class ExtractorConfig:
    """Configuration for the FeatureExtractor."""

    thresholds: OnsetThresholds = field(default_factory=OnsetThresholds)
    stereo_emphasis: float = 0.7
    hysteresis: float = 0.1
    peak_decay: float = 0.92          # per 1/60 s
    min_beat_interval: float = 0.16   # 375 BPM ceiling
    beat_timeout: float = 2.0
    bpm_history: int = 8
    bpm_tolerance: float = 0.25
    min_bpm_interval: float = 0.2
    max_bpm_interval: float = 2.0
    volume_smoothing: SmoothingParams = field(
        default_factory=lambda: SMOOTHING_PRESETS["volume"]
    )
    # Main bands drive onsets and need a short release to re-arm between beats
    main_band_smoothing: SmoothingParams = field(
        default_factory=lambda: SMOOTHING_PRESETS["volume"]
    )
    band_smoothing: SmoothingParams = field(
        default_factory=lambda: SMOOTHING_PRESETS["frequency_bands"]
    )

    def __post_init__(self):
        self.stereo_emphasis = float(np.clip(self.stereo_emphasis, 0.5, 1.0))
        if self.bpm_history < 1:
            raise ValueError("bpm_history must be at least 1")


class _OnsetDetector:
    """Rising-edge detector with hysteresis for one band."""

    def __init__(self, threshold: float, hysteresis: float, min_interval: float):
        self.threshold = threshold
        self.hysteresis = hysteresis
        self.min_interval = min_interval
        self.reset()

    def reset(self):
        self.armed = True
        self.trough = 0.0
        self.last_onset: Optional[float] = None
        self.intensity = 0.0

    def update(self, value: float, peak: float, now: float) -> bool:
        if self.armed:
            self.trough = min(self.trough, value)
            crossed = value >= self.threshold and (
                self.trough < self.threshold
                or value >= self.trough + self.hysteresis
            )
            too_soon = (
                self.last_onset is not None
                and now - self.last_onset < self.min_interval
            )
            if crossed and not too_soon:
                self.armed = False
                self.last_onset = now
                self.intensity = value
                return True
            return False

        if value < self.threshold or value <= peak - self.hysteresis:
            self.armed = True
            self.trough = value
        return False


class BpmEstimator:
    """Running tempo estimate from bass onset intervals."""

    def __init__(
        self,
        history: int = 8,
        tolerance: float = 0.25,
        min_interval: float = 0.2,
        max_interval: float = 2.0,
    ):
        self.tolerance = tolerance
        self.min_interval = min_interval
        self.max_interval = max_interval
        self._intervals: deque = deque(maxlen=history)
        self._last_onset: Optional[float] = None
        self.metadata_bpm = 0.0

    def reset(self):
        self._intervals.clear()
        self._last_onset = None

    def add_onset(self, time: float) -> None:
        if self._last_onset is not None:
            interval = time - self._last_onset
            if self.min_interval <= interval <= self.max_interval:
                self._intervals.append(interval)
        self._last_onset = time

    def set_metadata_bpm(self, bpm: float) -> None:
        """Pin the estimate to a known tempo; anything outside (0, 300] clears it."""
        if bpm is not None and math.isfinite(bpm) and 0 < bpm <= 300:
            self.metadata_bpm = float(bpm)
        else:
            self.metadata_bpm = 0.0

    @property
    def bpm(self) -> float:
        if self.metadata_bpm > 0:
            return self.metadata_bpm
        if not self._intervals:
            return 0.0
        intervals = np.asarray(self._intervals)
        median = float(np.median(intervals))
        spread = float(np.median(np.abs(intervals - median)))
        if spread > self.tolerance * median:
            return 0.0
        return 60.0 / median


class FeatureExtractor:
    """
    Converts RawAudioFrames into AudioFeatureFrames.

    Holds only its own smoothers, onset detectors and tempo history; the
    frames it returns are immutable snapshots.
    """

    def __init__(self, config: Optional[ExtractorConfig] = None):
        self.cfg = config or ExtractorConfig()
        cfg = self.cfg

        self._volume = TempoRelativeSmoother(cfg.volume_smoothing)
        self._main = {
            name: TempoRelativeSmoother(cfg.main_band_smoothing) for name in MAIN_BANDS
        }
        self._bands = TempoRelativeSmoother(cfg.band_smoothing, initial=np.zeros(N_BANDS))
        self._peaks = {name: 0.0 for name in MAIN_BANDS}

        self._detectors = {
            name: _OnsetDetector(
                getattr(cfg.thresholds, name), cfg.hysteresis, cfg.min_beat_interval
            )
            for name in MAIN_BANDS
        }
        self.bpm_estimator = BpmEstimator(
            history=cfg.bpm_history,
            tolerance=cfg.bpm_tolerance,
            min_interval=cfg.min_bpm_interval,
            max_interval=cfg.max_bpm_interval,
        )
        self._last_time: Optional[float] = None

    @property
    def bpm(self) -> float:
        return self.bpm_estimator.bpm

    def set_metadata_bpm(self, bpm: float) -> None:
        self.bpm_estimator.set_metadata_bpm(bpm)

    def reset(self) -> None:
        """Drop all smoothing, peak, beat and tempo history."""
        self._volume.reset()
        for smoother in self._main.values():
            smoother.reset()
        self._bands.reset()
        self._peaks = {name: 0.0 for name in MAIN_BANDS}
        for detector in self._detectors.values():
            detector.reset()
        self.bpm_estimator.reset()
        self._last_time = None

    def _delta_time(self, now: float) -> float:
        if self._last_time is None:
            return DEFAULT_DELTA_TIME
        return now - self._last_time

    def _group(self, bands: np.ndarray, name: str) -> float:
        return float(np.mean(bands[BAND_GROUPS[name]]))

    def _group_stereo(self, left: np.ndarray, right: np.ndarray, name: str) -> float:
        group = BAND_GROUPS[name]
        return float(
            stereo_balance(left[group].sum(), right[group].sum(), self.cfg.stereo_emphasis)
        )

    def extract(self, raw: RawAudioFrame) -> AudioFeatureFrame:
        """
        Analyze one raw frame.

        Args:
            raw: Raw per-frame energies. Out-of-range values are clamped.

        Returns:
            AudioFeatureFrame snapshot for this tick.
        """
        cfg = self.cfg
        now = float(raw.time) if raw.time is not None and math.isfinite(raw.time) else 0.0
        delta_time = self._delta_time(now)
        if delta_time <= 0:
            logger.debug(
                "Non-increasing frame time %.4f (previous %.4f); holding state",
                now, self._last_time,
            )
        else:
            self._last_time = now

        bands = sanitize(raw.bands, N_BANDS)
        left = sanitize(raw.left, N_BANDS) if raw.left is not None else bands.copy()
        right = sanitize(raw.right, N_BANDS) if raw.right is not None else bands.copy()
        volume = _sanitize_scalar(raw.rms)
        main = {}
        for name in MAIN_BANDS:
            explicit = getattr(raw, name)
            main[name] = (
                _sanitize_scalar(explicit) if explicit is not None
                else self._group(bands, name)
            )

        bpm = self.bpm
        smoothed_volume = self._volume.step(volume, delta_time, bpm)
        smoothed_bands = self._bands.step(bands, delta_time, bpm)
        smoothed = {
            name: self._main[name].step(main[name], delta_time, bpm)
            for name in MAIN_BANDS
        }

        if delta_time > 0:
            decay = cfg.peak_decay ** (delta_time / DEFAULT_DELTA_TIME)
            for name in MAIN_BANDS:
                s = smoothed[name]
                self._peaks[name] = max(s, s + (self._peaks[name] - s) * decay)

        beats = {}
        for name in MAIN_BANDS:
            detector = self._detectors[name]
            onset = False
            if delta_time > 0:
                onset = detector.update(smoothed[name], self._peaks[name], now)
            if onset:
                logger.debug("%s onset at %.3fs (intensity %.3f)", name, now, detector.intensity)
                if name == "bass":
                    self.bpm_estimator.add_onset(now)
            beats[name] = self._beat_state(detector, onset, now)

        stereo = stereo_balance(left, right, cfg.stereo_emphasis)

        return AudioFeatureFrame(
            time=now,
            delta_time=max(delta_time, 0.0),
            bass=main["bass"],
            mid=main["mid"],
            treble=main["treble"],
            volume=volume,
            bands=_read_only(bands),
            stereo=_read_only(stereo),
            smoothed_bass=float(smoothed["bass"]),
            smoothed_mid=float(smoothed["mid"]),
            smoothed_treble=float(smoothed["treble"]),
            smoothed_volume=float(smoothed_volume),
            smoothed_bands=_read_only(np.clip(smoothed_bands, 0.0, 1.0)),
            peak_bass=self._peaks["bass"],
            peak_mid=self._peaks["mid"],
            peak_treble=self._peaks["treble"],
            bass_beat=beats["bass"],
            mid_beat=beats["mid"],
            treble_beat=beats["treble"],
            bass_stereo=self._group_stereo(left, right, "bass"),
            mid_stereo=self._group_stereo(left, right, "mid"),
            treble_stereo=self._group_stereo(left, right, "treble"),
            bpm=self.bpm,
        )

    def _beat_state(self, detector: _OnsetDetector, onset: bool, now: float) -> BandBeat:
        if detector.last_onset is None:
            return BandBeat()
        age = max(now - detector.last_onset, 0.0)
        if age > self.cfg.beat_timeout:
            return BandBeat(onset=False, age=0.0, intensity=0.0)
        return BandBeat(onset=onset, age=age, intensity=detector.intensity)
