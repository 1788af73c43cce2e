"""
Audio file front end.

Loads a (stereo) audio file with librosa and turns its short-time
spectrum into a stream of RawAudioFrames: ten octave-band energies per
channel plus RMS, at a fixed frame rate.
"""

import logging
from pathlib import Path
from typing import Iterator, Union

import librosa
import numpy as np

from chromafield.core.analyzer import BAND_EDGES_HZ, N_BANDS, RawAudioFrame

logger = logging.getLogger(__name__)

# Decibel window mapped onto [0, 1]
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


def decibels_to_unit(db: np.ndarray) -> np.ndarray:
    """Map magnitudes in dB onto [0, 1] over the analyser window."""
    return np.clip((db - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS), 0.0, 1.0)


def band_energies(magnitude: np.ndarray, frequencies: np.ndarray) -> np.ndarray:
    """
    Average normalized spectrum bins into the ten octave bands.

    Args:
        magnitude: (n_bins, n_frames) linear STFT magnitude.
        frequencies: (n_bins,) bin center frequencies in Hz.

    Returns:
        (n_frames, 10) band energies in [0, 1].
    """
    level = decibels_to_unit(librosa.amplitude_to_db(magnitude, ref=1.0, amin=1e-10))
    bands = np.zeros((magnitude.shape[1], N_BANDS))
    for i in range(N_BANDS):
        low, high = BAND_EDGES_HZ[i], BAND_EDGES_HZ[i + 1]
        mask = (frequencies >= low) & (frequencies < high)
        if not mask.any():
            # Band narrower than one bin: take the nearest bin
            mask = np.zeros_like(mask)
            mask[np.argmin(np.abs(frequencies - (low + high) / 2))] = True
        bands[:, i] = level[mask].mean(axis=0)
    return bands


class AudioFrameSource:
    """
    RawAudioFrame generator for an audio file.

    Mono files are duplicated into both channels.
    """

    def __init__(
        self,
        audio_path: Union[str, Path],
        fps: int = 60,
        sample_rate: int = 44100,
        n_fft: int = 2048,
    ):
        """
        Initialize the source.

        Args:
            audio_path: Path to audio file (wav, mp3, flac).
            fps: Frames per second to emit.
            sample_rate: Resample target.
            n_fft: FFT window size.
        """
        self.audio_path = Path(audio_path)
        if not self.audio_path.exists():
            raise FileNotFoundError(f"Audio file not found: {self.audio_path}")
        self.fps = fps
        self.sample_rate = sample_rate
        self.n_fft = n_fft
        self._signal = None

    def compute_hop_length(self) -> int:
        return int(self.sample_rate / self.fps)

    def load(self) -> np.ndarray:
        """Load the file as a (2, n_samples) array."""
        if self._signal is None:
            y, _ = librosa.load(self.audio_path, sr=self.sample_rate, mono=False)
            if y.ndim == 1:
                y = np.stack([y, y])
            elif y.shape[0] > 2:
                y = y[:2]
            self._signal = y
            logger.info(
                "Loaded %s: %.2fs at %d Hz", self.audio_path.name, self.duration, self.sample_rate
            )
        return self._signal

    @property
    def duration(self) -> float:
        return self.load().shape[1] / self.sample_rate

    def estimate_bpm(self) -> float:
        """Global tempo estimate from librosa's beat tracker (0 if none)."""
        mono = librosa.to_mono(self.load())
        tempo, _ = librosa.beat.beat_track(y=mono, sr=self.sample_rate)
        return float(np.atleast_1d(tempo)[0])

    def analyze(self) -> dict[str, np.ndarray]:
        """
        Compute per-frame band energies for both channels.

        Returns:
            Dict with "times", "left", "right", "bands" (n_frames, 10)
            and "rms" (n_frames,).
        """
        y = self.load()
        hop_length = self.compute_hop_length()
        frequencies = librosa.fft_frequencies(sr=self.sample_rate, n_fft=self.n_fft)

        channels = []
        for channel in y:
            magnitude = np.abs(librosa.stft(channel, n_fft=self.n_fft, hop_length=hop_length))
            # Scale like a browser analyser node (1/N) before the dB window
            magnitude /= self.n_fft
            channels.append(band_energies(magnitude, frequencies))
        left, right = channels

        mono = librosa.to_mono(y)
        rms = librosa.feature.rms(y=mono, frame_length=self.n_fft, hop_length=hop_length)[0]
        peak = rms.max() if rms.size else 0.0
        rms = rms / peak if peak > 0 else rms

        n_frames = min(len(left), len(rms))
        times = librosa.frames_to_time(
            np.arange(n_frames), sr=self.sample_rate, hop_length=hop_length
        )
        return {
            "times": times,
            "left": left[:n_frames],
            "right": right[:n_frames],
            "bands": (left[:n_frames] + right[:n_frames]) / 2.0,
            "rms": rms[:n_frames],
        }

    def frames(self, max_duration: float | None = None) -> Iterator[RawAudioFrame]:
        """Yield one RawAudioFrame per analysis hop."""
        data = self.analyze()
        for i, t in enumerate(data["times"]):
            if max_duration is not None and t >= max_duration:
                break
            yield RawAudioFrame(
                time=float(t),
                bands=data["bands"][i],
                left=data["left"][i],
                right=data["right"][i],
                rms=float(data["rms"][i]),
            )


def frames_from_audio(
    audio_path: Union[str, Path],
    fps: int = 60,
    sample_rate: int = 44100,
    max_duration: float | None = None,
) -> Iterator[RawAudioFrame]:
    """Shorthand for AudioFrameSource(...).frames()."""
    return AudioFrameSource(audio_path, fps=fps, sample_rate=sample_rate).frames(max_duration)
