"""Audio-reactive noise, ripple and palette field for generative visuals."""

from chromafield.core.analyzer import AudioFeatureFrame, FeatureExtractor, RawAudioFrame
from chromafield.core.ripples import RippleEventPool
from chromafield.core.smoothing import TempoRelativeSmoother
from chromafield.color.modulator import ColorModulator
from chromafield.color.palette import PaletteConfig, PaletteGenerator
from chromafield.render.compositor import CompositorConfig, compose
from chromafield.pipeline import FramePipeline, FrameState

__version__ = "0.1.0"
__all__ = [
    "AudioFeatureFrame",
    "ColorModulator",
    "CompositorConfig",
    "FeatureExtractor",
    "FramePipeline",
    "FrameState",
    "PaletteConfig",
    "PaletteGenerator",
    "RawAudioFrame",
    "RippleEventPool",
    "TempoRelativeSmoother",
    "compose",
]
