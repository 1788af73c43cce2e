"""
Color space conversions.

sRGB <-> linear RGB <-> OKLab <-> OKLCH, plus hex helpers.
All array functions accept (..., 3) inputs and broadcast.
"""

import re

import numpy as np

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

_RGB_TO_LMS = np.array([
    [0.4122214708, 0.5363325363, 0.0514459929],
    [0.2119034982, 0.6806995451, 0.1073969566],
    [0.0883024619, 0.2817188376, 0.6299787005],
])
_LMS_TO_OKLAB = np.array([
    [0.2104542553, 0.7936177850, -0.0040720468],
    [1.9779984951, -2.4285922050, 0.4505937099],
    [0.0259040371, 0.7827717662, -0.8086757660],
])
_OKLAB_TO_LMS = np.array([
    [1.0, 0.3963377774, 0.2158037573],
    [1.0, -0.1055613458, -0.0638541728],
    [1.0, -0.0894841775, -1.2914855480],
])
_LMS_TO_RGB = np.array([
    [4.0767416621, -3.3077115913, 0.2309699292],
    [-1.2684380046, 2.6097574011, -0.3413193965],
    [-0.0041960863, -0.7034186147, 1.7076147010],
])


def hex_to_rgb(hex_color: str) -> np.ndarray:
    """
    Parse "#RGB" / "#RRGGBB" (leading # optional) into floats in [0, 1].

    Raises:
        ValueError: If the string is not a valid hex color.
    """
    match = _HEX_RE.match(hex_color.strip()) if isinstance(hex_color, str) else None
    if match is None:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return np.array([int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4)])


def rgb_to_hex(rgb) -> str:
    r, g, b = (int(round(float(np.clip(c, 0.0, 1.0)) * 255)) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def srgb_to_linear(rgb) -> np.ndarray:
    rgb = np.asarray(rgb, dtype=np.float64)
    return np.where(rgb <= 0.04045, rgb / 12.92, ((rgb + 0.055) / 1.055) ** 2.4)


def linear_to_srgb(rgb) -> np.ndarray:
    rgb = np.clip(np.asarray(rgb, dtype=np.float64), 0.0, None)
    return np.where(rgb <= 0.0031308, 12.92 * rgb, 1.055 * rgb ** (1.0 / 2.4) - 0.055)


def linear_rgb_to_oklab(rgb) -> np.ndarray:
    lms = np.asarray(rgb, dtype=np.float64) @ _RGB_TO_LMS.T
    return np.cbrt(lms) @ _LMS_TO_OKLAB.T


def oklab_to_linear_rgb(lab) -> np.ndarray:
    lms = (np.asarray(lab, dtype=np.float64) @ _OKLAB_TO_LMS.T) ** 3
    return lms @ _LMS_TO_RGB.T


def rgb_to_oklch(rgb) -> np.ndarray:
    """
    Convert sRGB to OKLCH.

    Returns:
        Array of [L, C, H] with L in [0, 1], C >= 0 and H in [0, 360).
    """
    lab = linear_rgb_to_oklab(srgb_to_linear(rgb))
    lightness = lab[..., 0]
    chroma = np.hypot(lab[..., 1], lab[..., 2])
    hue = np.degrees(np.arctan2(lab[..., 2], lab[..., 1])) % 360.0
    return np.stack([lightness, chroma, hue], axis=-1)


def oklch_to_rgb(lch) -> np.ndarray:
    """Convert OKLCH to sRGB, clamping out-of-gamut results to [0, 1]."""
    lch = np.asarray(lch, dtype=np.float64)
    hue = np.radians(lch[..., 2])
    lab = np.stack(
        [lch[..., 0], lch[..., 1] * np.cos(hue), lch[..., 1] * np.sin(hue)], axis=-1
    )
    return np.clip(linear_to_srgb(oklab_to_linear_rgb(lab)), 0.0, 1.0)


def interpolate_hue(start, end, t):
    """Interpolate hue angles along the shortest arc; result in [0, 360)."""
    delta = (np.asarray(end) - np.asarray(start) + 180.0) % 360.0 - 180.0
    return (np.asarray(start) + delta * np.asarray(t)) % 360.0
