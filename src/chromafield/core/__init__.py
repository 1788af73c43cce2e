"""Per-frame audio feature processing."""

from chromafield.core.smoothing import SmoothingParams, TempoRelativeSmoother
from chromafield.core.analyzer import (
    AudioFeatureFrame,
    ExtractorConfig,
    FeatureExtractor,
    RawAudioFrame,
)
from chromafield.core.ripples import OverflowPolicy, RippleEventPool, RippleParams
from chromafield.core.timedebt import TimeDebt, TimeDebtConfig

__all__ = [
    "AudioFeatureFrame",
    "ExtractorConfig",
    "FeatureExtractor",
    "OverflowPolicy",
    "RawAudioFrame",
    "RippleEventPool",
    "RippleParams",
    "SmoothingParams",
    "TempoRelativeSmoother",
    "TimeDebt",
    "TimeDebtConfig",
]
