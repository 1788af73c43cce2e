"""Audio file input and video output."""

from chromafield.io.encoder import encode_video
from chromafield.io.source import AudioFrameSource, frames_from_audio

__all__ = ["AudioFrameSource", "encode_video", "frames_from_audio"]
