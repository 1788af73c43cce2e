"""
Packaged palette presets.

Presets live in presets.json next to this module: ten evenly spaced hue
families plus the "aqua" background palette.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Dict

from importlib import resources

from chromafield.color.palette import LINEAR_CURVE, AnchorColor, PaletteConfig

DEFAULT_PRESET = "aqua"


@lru_cache(maxsize=1)
def load_palette_presets() -> Dict[str, Any]:
    """Load the raw preset table from the packaged JSON file."""
    with resources.files("chromafield.color").joinpath("presets.json").open(
        "r", encoding="utf-8"
    ) as f:
        return json.load(f)["palettes"]


def palette_preset_names() -> list[str]:
    return sorted(load_palette_presets())


def _anchor(data: Dict[str, Any]) -> AnchorColor:
    return AnchorColor(
        lightness=float(data["lightness"]),
        chroma=float(data["chroma"]),
        hue=data.get("hue"),
        hue_offset=float(data.get("hue_offset", 0.0)),
    )


def palette_config_from_dict(data: Dict[str, Any]) -> PaletteConfig:
    """Build a PaletteConfig from one preset entry."""
    curves = data.get("curves", {})
    threshold_curve = data.get("threshold_curve")
    return PaletteConfig(
        base_hue=data["base_hue"],
        darkest=_anchor(data["darkest"]),
        brightest=_anchor(data["brightest"]),
        lightness_curve=tuple(curves.get("lightness", LINEAR_CURVE)),
        chroma_curve=tuple(curves.get("chroma", LINEAR_CURVE)),
        hue_curve=tuple(curves.get("hue", LINEAR_CURVE)),
        threshold_curve=tuple(threshold_curve) if threshold_curve else None,
    )


def get_palette_preset(name: str) -> PaletteConfig:
    """
    Look up a preset by name (case-insensitive).

    Raises:
        KeyError: If no preset has that name.
    """
    presets = load_palette_presets()
    key = name.lower()
    if key not in presets:
        raise KeyError(
            f"Unknown palette '{name}'. Available: {', '.join(palette_preset_names())}"
        )
    return palette_config_from_dict(presets[key])
