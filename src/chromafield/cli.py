"""
CLI entry point for the chromafield renderer.

Usage:
    chromafield <audio_file> [options]
    python -m chromafield <audio_file> [options]
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from chromafield.color.presets import DEFAULT_PRESET, palette_preset_names
from chromafield.io.encoder import QUALITY_PRESETS, ffmpeg_available
from chromafield.render_video import render_still, render_video

logger = logging.getLogger(__name__)


def _format_clock(seconds: float) -> str:
    minutes, secs = divmod(max(seconds, 0.0), 60.0)
    return f"{int(minutes)}:{secs:04.1f}"


def _audio_progress(fps: int, width: int = 30):
    """Return a progress callback that reports how much of the track is rendered."""

    def report(current: int, total: int):
        frac = min(current / max(total, 1), 1.0)
        position = f"{_format_clock(current / fps)} / {_format_clock(total / fps)}"
        if sys.stdout.isatty():
            filled = int(width * frac)
            sys.stdout.write(f"\r|{'=' * filled}{' ' * (width - filled)}| {position}  {frac:4.0%}")
            sys.stdout.flush()
            if current >= total:
                sys.stdout.write("\n")
        elif current % max(1, total // 10) == 0 or current >= total:
            print(f"{position}  ({frac:.0%})", flush=True)

    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chromafield",
        description="Audio-reactive dithered noise field video renderer",
    )

    parser.add_argument(
        "audio",
        type=Path,
        nargs="?",
        help="Input audio file (wav, mp3, flac)",
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output path (default: <audio>_chromafield.mp4, or .png with --still)",
    )

    # Resolution
    parser.add_argument("--width", type=int, default=1280, help="Output width (default: 1280)")
    parser.add_argument("--height", type=int, default=720, help="Output height (default: 720)")
    parser.add_argument("-f", "--fps", type=int, default=30, help="Frames per second (default: 30)")
    parser.add_argument(
        "--pixel-size", type=int, default=4,
        help="Output pixels per field sample (default: 4)",
    )

    # Visual
    parser.add_argument(
        "-p", "--palette", type=str, default=DEFAULT_PRESET,
        help=f"Palette preset (default: {DEFAULT_PRESET}; see --list-palettes)",
    )
    parser.add_argument(
        "--no-modulation", action="store_true",
        help="Disable bass/treble hue modulation",
    )
    parser.add_argument(
        "--bpm", type=float, default=None,
        help="Known tempo in BPM; 0 estimates it from the file",
    )

    # Limits & output
    parser.add_argument(
        "--max-duration", type=float, default=None,
        help="Limit output to N seconds",
    )
    parser.add_argument(
        "-q", "--quality", type=str, default="medium",
        choices=sorted(QUALITY_PRESETS),
        help="Encoding quality (default: medium)",
    )
    parser.add_argument(
        "--still", type=float, default=None, metavar="SECONDS",
        help="Write a single PNG frame at this time instead of a video",
    )

    parser.add_argument("--list-palettes", action="store_true", help="List palette presets and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_palettes:
        for name in palette_preset_names():
            print(name)
        return 0

    if args.audio is None:
        parser.error("the following arguments are required: audio")

    if not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        return 1

    if args.palette.lower() not in palette_preset_names():
        print(
            f"Error: Unknown palette '{args.palette}'. "
            f"Available: {', '.join(palette_preset_names())}",
            file=sys.stderr,
        )
        return 1

    common = dict(
        width=args.width,
        height=args.height,
        fps=args.fps,
        palette=args.palette,
        pixel_size=args.pixel_size,
        modulate_colors=not args.no_modulation,
    )

    try:
        if args.still is not None:
            output = args.output or args.audio.with_name(f"{args.audio.stem}_chromafield.png")
            render_still(args.audio, output, at_time=args.still, **common)
            print(f"Output: {output}")
            return 0

        if not ffmpeg_available():
            print("Error: ffmpeg not found on PATH", file=sys.stderr)
            return 1

        output = args.output or args.audio.with_name(f"{args.audio.stem}_chromafield.mp4")
        print(f"Rendering {args.audio} at {args.width}x{args.height} @ {args.fps}fps")
        print(f"  Palette: {args.palette}, Quality: {args.quality}")
        t0 = time.time()

        render_video(
            args.audio,
            output,
            max_duration=args.max_duration,
            quality=args.quality,
            bpm=args.bpm,
            progress_callback=_audio_progress(args.fps),
            **common,
        )
    except (RuntimeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    elapsed = time.time() - t0
    file_size_mb = output.stat().st_size / 1024 / 1024
    print(f"\nDone! {file_size_mb:.1f} MB")
    print(f"  Render+encode took {elapsed:.1f}s")
    print(f"  Output: {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
