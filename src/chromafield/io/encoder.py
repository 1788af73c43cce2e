"""
FFmpeg video encoder.

Pipes raw RGB frames to ffmpeg over stdin and muxes in the source audio,
so frames go straight from numpy arrays to the encoder.
"""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Iterable, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Quality presets: (preset, crf, pix_fmt)
QUALITY_PRESETS = {
    "high": ("slow", "18", "yuv444p"),
    "medium": ("medium", "23", "yuv420p"),
    "fast": ("ultrafast", "28", "yuv420p"),
}


def ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None


def build_ffmpeg_command(
    output_path: Path,
    width: int,
    height: int,
    fps: int,
    audio_path: Optional[Path] = None,
    quality: str = "high",
    duration: Optional[float] = None,
) -> list[str]:
    """Assemble the ffmpeg argument list for a rawvideo rgb24 stdin stream."""
    preset, crf, pix_fmt = QUALITY_PRESETS.get(quality, QUALITY_PRESETS["high"])

    cmd = [
        "ffmpeg", "-y",
        "-loglevel", "error", "-nostats",
        "-f", "rawvideo",
        "-pix_fmt", "rgb24",
        "-s", f"{width}x{height}",
        "-r", str(fps),
        "-i", "pipe:0",
    ]
    if audio_path is not None:
        cmd += ["-i", str(audio_path)]
    cmd += [
        "-c:v", "libx264",
        "-preset", preset,
        "-crf", crf,
        "-pix_fmt", pix_fmt,
    ]
    if audio_path is not None:
        cmd += ["-c:a", "aac", "-b:a", "192k", "-shortest"]
    if duration is not None:
        cmd += ["-t", f"{duration:.3f}"]
    cmd.append(str(output_path))
    return cmd


def encode_video(
    frames: Iterable[np.ndarray],
    output_path: Path,
    width: int,
    height: int,
    fps: int = 60,
    audio_path: Optional[Path] = None,
    quality: str = "high",
    duration: Optional[float] = None,
    total_frames: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> Path:
    """
    Encode frames to MP4, optionally with audio.

    Args:
        frames: Yields (height, width, 3) uint8 arrays.
        output_path: Output MP4 path.
        width: Frame width.
        height: Frame height.
        fps: Frames per second.
        audio_path: Audio file to mux in, or None for a silent video.
        quality: "high", "medium", or "fast".
        duration: Optional output duration limit in seconds.
        total_frames: Total frame count for progress reporting.
        progress_callback: Optional callback(current_frame, total_frames).

    Returns:
        Path to the output file.

    Raises:
        RuntimeError: If ffmpeg exits with a non-zero status.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = build_ffmpeg_command(
        output_path, width, height, fps,
        audio_path=audio_path, quality=quality, duration=duration,
    )
    logger.debug("Running %s", " ".join(cmd))

    # stderr goes to a file; a pipe left unread while stdin is fed fills up and stalls ffmpeg
    with tempfile.TemporaryFile() as stderr_file:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=stderr_file,
        )

        frame_count = 0
        try:
            for frame in frames:
                if frame.shape != (height, width, 3):
                    raise ValueError(
                        f"Frame {frame_count} has shape {frame.shape}, "
                        f"expected {(height, width, 3)}"
                    )
                proc.stdin.write(np.ascontiguousarray(frame, dtype=np.uint8).tobytes())
                frame_count += 1
                if progress_callback and total_frames:
                    progress_callback(frame_count, total_frames)
        except BrokenPipeError:
            # ffmpeg died early; its exit status and stderr explain why
            logger.debug("ffmpeg closed its input after %d frames", frame_count)
        finally:
            if proc.stdin:
                proc.stdin.close()

        proc.wait()
        stderr_file.seek(0)
        stderr = stderr_file.read()

    if proc.returncode != 0:
        text = stderr.decode("utf-8", errors="replace")
        error_lines = [
            line for line in text.split("\n")
            if "error" in line.lower() or "invalid" in line.lower()
        ]
        error_msg = "\n".join(error_lines[-5:]) if error_lines else text[-500:]
        raise RuntimeError(f"ffmpeg exited with code {proc.returncode}: {error_msg}")

    logger.info("Encoded %d frames to %s", frame_count, output_path)
    return output_path
