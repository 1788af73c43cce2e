"""Perceptual palette generation and audio-driven hue modulation."""

from chromafield.color.modulator import ColorModulator, ModulationState
from chromafield.color.palette import (
    AnchorColor,
    GeneratedPalette,
    PaletteConfig,
    PaletteGenerator,
    generate_palette,
)
from chromafield.color.presets import get_palette_preset, palette_preset_names

__all__ = [
    "AnchorColor",
    "ColorModulator",
    "GeneratedPalette",
    "ModulationState",
    "PaletteConfig",
    "PaletteGenerator",
    "generate_palette",
    "get_palette_preset",
    "palette_preset_names",
]
