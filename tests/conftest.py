"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from chromafield.color.palette import AnchorColor, PaletteConfig, generate_palette
from chromafield.core.analyzer import RawAudioFrame

# Default sample rate for test audio
TEST_SR = 22050

FRAME_DT = 1.0 / 60.0


def make_raw_frame(
    time: float,
    bass: float = 0.0,
    mid: float = 0.0,
    treble: float = 0.0,
    rms: float | None = None,
    pan: float = 0.0,
) -> RawAudioFrame:
    """
    Build a RawAudioFrame with flat energy inside each band group.

    Args:
        pan: -1 puts all energy in the left channel, 1 in the right.
    """
    bands = np.array([bass] * 4 + [mid] * 3 + [treble] * 3, dtype=float)
    left = bands * (1.0 - pan) / 2.0
    right = bands * (1.0 + pan) / 2.0
    if rms is None:
        rms = float(bands.mean())
    return RawAudioFrame(time=time, bands=bands, left=left, right=right, rms=rms)


@pytest.fixture
def raw_frame():
    """Factory for RawAudioFrames."""
    return make_raw_frame


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def palette_config() -> PaletteConfig:
    """A simple 10-step palette from near black to near white."""
    return PaletteConfig(
        base_hue=200.0,
        darkest=AnchorColor(lightness=0.1, chroma=0.05, hue_offset=-30),
        brightest=AnchorColor(lightness=0.95, chroma=0.15, hue_offset=30),
    )


@pytest.fixture
def palette(palette_config):
    return generate_palette(palette_config, 10)


@pytest.fixture
def click_track(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a stereo click track at 120 BPM over a quiet 440Hz tone.

    Clicks are panned hard left.

    Returns:
        Tuple of ((2, n) audio_signal, sample_rate).
    """
    duration = 2.0
    bpm = 120
    samples_per_beat = int(sample_rate * 60 / bpm)
    total_samples = int(sample_rate * duration)
    t = np.arange(total_samples) / sample_rate

    tone = 0.1 * np.sin(2 * np.pi * 440.0 * t)
    clicks = np.zeros(total_samples)

    click_duration = int(sample_rate * 0.05)
    for beat_start in range(0, total_samples, samples_per_beat):
        click_end = min(beat_start + click_duration, total_samples)
        n = click_end - beat_start
        decay = np.exp(-np.linspace(0, 5, n))
        clicks[beat_start:click_end] = 0.8 * decay * np.sin(2 * np.pi * 60.0 * t[:n])

    left = tone + clicks
    right = tone
    return np.stack([left, right]).astype(np.float32), sample_rate


@pytest.fixture
def temp_audio_file(tmp_path, click_track):
    """Create a temporary stereo audio file for testing file I/O."""
    import soundfile as sf

    y, sr = click_track
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y.T, sr)
    return audio_path
