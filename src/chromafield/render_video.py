"""
Audio file to video / still image driver.

Runs the frame pipeline over an audio file's analysis frames, renders
each frame at a reduced internal resolution (one field sample per
`pixel_size` x `pixel_size` block) and upscales with Pillow so the
ordered dither stays crisp.
"""

import logging
import math
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

import numpy as np
from PIL import Image

from chromafield.color.presets import DEFAULT_PRESET, get_palette_preset
from chromafield.io.encoder import encode_video
from chromafield.io.source import AudioFrameSource
from chromafield.pipeline import FramePipeline, FrameState
from chromafield.render.compositor import CompositorConfig

logger = logging.getLogger(__name__)


def internal_size(width: int, height: int, pixel_size: int) -> tuple[int, int]:
    """Field resolution for an output size and block size."""
    pixel_size = max(int(pixel_size), 1)
    return max(math.ceil(width / pixel_size), 1), max(math.ceil(height / pixel_size), 1)


def upscale(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resize of a uint8 RGB frame to (height, width, 3)."""
    if frame.shape[:2] == (height, width):
        return frame
    image = Image.fromarray(frame)
    return np.asarray(image.resize((width, height), Image.NEAREST))


def _make_pipeline(
    palette: str,
    modulate_colors: bool,
    compositor_config: Optional[CompositorConfig],
) -> FramePipeline:
    return FramePipeline(
        palette=get_palette_preset(palette),
        compositor_config=compositor_config,
        modulate_colors=modulate_colors,
    )


def iter_states(
    source: AudioFrameSource,
    pipeline: FramePipeline,
    max_duration: Optional[float] = None,
) -> Iterator[FrameState]:
    for raw in source.frames(max_duration):
        yield pipeline.process(raw)


def render_frames(
    states: Iterator[FrameState],
    width: int,
    height: int,
    pixel_size: int = 4,
) -> Iterator[np.ndarray]:
    """Render each state to an upscaled (height, width, 3) uint8 frame."""
    field_w, field_h = internal_size(width, height, pixel_size)
    for state in states:
        yield upscale(state.render(field_w, field_h), width, height)


def render_video(
    audio_path: Union[str, Path],
    output_path: Union[str, Path],
    width: int = 1280,
    height: int = 720,
    fps: int = 30,
    palette: str = DEFAULT_PRESET,
    pixel_size: int = 4,
    max_duration: Optional[float] = None,
    quality: str = "medium",
    bpm: Optional[float] = None,
    modulate_colors: bool = True,
    compositor_config: Optional[CompositorConfig] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> Path:
    """
    Render an audio-reactive MP4.

    Args:
        audio_path: Input audio file.
        output_path: Output MP4 path.
        width: Video width in pixels.
        height: Video height in pixels.
        fps: Frames per second (also the analysis rate).
        palette: Palette preset name.
        pixel_size: Output pixels per field sample.
        max_duration: Maximum duration in seconds (None for full audio).
        quality: Encoding quality profile ("high", "medium", or "fast").
        bpm: Known tempo; 0 estimates it with librosa, None uses only
            the running onset estimate.
        modulate_colors: Whether bass/treble balance shifts the hue.
        compositor_config: Noise and quantization constants.
        progress_callback: Optional callback(current_frame, total_frames).

    Returns:
        Path to the written video.
    """
    audio_path = Path(audio_path)
    source = AudioFrameSource(audio_path, fps=fps)
    pipeline = _make_pipeline(palette, modulate_colors, compositor_config)

    if bpm == 0:
        bpm = source.estimate_bpm()
        logger.info("Estimated tempo: %.1f BPM", bpm)
    if bpm:
        pipeline.set_metadata_bpm(bpm)

    duration = source.duration
    if max_duration is not None:
        duration = min(duration, max_duration)
    total_frames = int(duration * fps)

    frames = render_frames(iter_states(source, pipeline, max_duration), width, height, pixel_size)
    return encode_video(
        frames,
        output_path,
        width,
        height,
        fps=fps,
        audio_path=audio_path,
        quality=quality,
        duration=duration,
        total_frames=total_frames,
        progress_callback=progress_callback,
    )


def render_still(
    audio_path: Union[str, Path],
    output_path: Union[str, Path],
    at_time: float,
    width: int = 1280,
    height: int = 720,
    fps: int = 30,
    palette: str = DEFAULT_PRESET,
    pixel_size: int = 4,
    modulate_colors: bool = True,
    compositor_config: Optional[CompositorConfig] = None,
) -> Path:
    """
    Render the frame at *at_time* seconds to a PNG.

    All frames up to that point are still processed so smoothing, beats
    and ripples are in the state they would have in the video.
    """
    source = AudioFrameSource(audio_path, fps=fps)
    pipeline = _make_pipeline(palette, modulate_colors, compositor_config)

    state = None
    for state in iter_states(source, pipeline, max_duration=at_time + 1.0 / fps):
        pass
    if state is None:
        raise ValueError(f"No audio frames before {at_time:.2f}s in {audio_path}")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    frame = next(render_frames(iter([state]), width, height, pixel_size))
    Image.fromarray(frame).save(output_path)
    logger.info("Wrote still at %.2fs to %s", state.time, output_path)
    return output_path
