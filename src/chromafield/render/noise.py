"""
Procedural noise and ordered dither.

Deterministic, vectorized value noise (integer lattice hash, smoothstep
interpolation), its fractal sum, and the recursive Bayer matrix used to
jitter quantization thresholds per pixel.
"""

import numpy as np

_MASK32 = np.uint64(0xFFFFFFFF)


def _hash2(ix: np.ndarray, iy: np.ndarray, seed: int = 0) -> np.ndarray:
    """Hash integer lattice coordinates to floats in [0, 1)."""
    x = ix.astype(np.int64).astype(np.uint64) & _MASK32
    y = iy.astype(np.int64).astype(np.uint64) & _MASK32
    h = (x * np.uint64(374761393) + y * np.uint64(668265263) + np.uint64(seed)) & _MASK32
    h = ((h ^ (h >> np.uint64(13))) * np.uint64(1274126177)) & _MASK32
    h = h ^ (h >> np.uint64(16))
    return h.astype(np.float64) / 4294967296.0


def _smoothstep01(t):
    return t * t * (3.0 - 2.0 * t)


def value_noise(x, y, seed: int = 0) -> np.ndarray:
    """
    2D value noise in [0, 1).

    Args:
        x: Sample x coordinate(s).
        y: Sample y coordinate(s).
        seed: Lattice seed.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    x0 = np.floor(x)
    y0 = np.floor(y)
    fx = _smoothstep01(x - x0)
    fy = _smoothstep01(y - y0)

    a = _hash2(x0, y0, seed)
    b = _hash2(x0 + 1, y0, seed)
    c = _hash2(x0, y0 + 1, seed)
    d = _hash2(x0 + 1, y0 + 1, seed)

    top = a + (b - a) * fx
    bottom = c + (d - c) * fx
    return top + (bottom - top) * fy


def fbm(
    x,
    y,
    octaves: int = 4,
    lacunarity: float = 2.0,
    gain: float = 0.5,
    seed: int = 0,
) -> np.ndarray:
    """
    Fractal Brownian motion over value noise, normalized to [0, 1].

    Each octave multiplies frequency by *lacunarity* and amplitude by
    *gain*; the sum is divided by the total amplitude.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    total = np.zeros(np.broadcast(x, y).shape)
    amplitude = 1.0
    frequency = 1.0
    norm = 0.0
    for octave in range(max(int(octaves), 1)):
        total = total + amplitude * value_noise(x * frequency, y * frequency, seed + octave)
        norm += amplitude
        amplitude *= gain
        frequency *= lacunarity
    if norm <= 0:
        return np.zeros_like(total)
    return np.clip(total / norm, 0.0, 1.0)


def bayer_value(x, y, level: int = 3) -> np.ndarray:
    """
    Ordered-dither value from a recursive Bayer matrix.

    Level 1 is the 2x2 matrix, each further level doubles the size
    (level 3 = 8x8). Values are k / 4**level for k in 0 .. 4**level - 1.

    Args:
        x: Integer pixel column(s).
        y: Integer pixel row(s).
        level: Recursion depth.

    Returns:
        Dither threshold(s) in [0, 1).
    """
    x = np.asarray(x).astype(np.int64)
    y = np.asarray(y).astype(np.int64)
    value = np.zeros(np.broadcast(x, y).shape, dtype=np.int64)
    for bit in range(level):
        xb = (x >> bit) & 1
        yb = (y >> bit) & 1
        # 2x2 base pattern [[0, 2], [3, 1]]
        cell = (xb ^ yb) * 2 + yb
        value = value + cell * (4 ** (level - 1 - bit))
    return value / float(4 ** level)


def bayer_matrix(level: int = 3) -> np.ndarray:
    """Full (2**level, 2**level) Bayer matrix, indexed [row, column]."""
    size = 2 ** level
    rows, cols = np.mgrid[0:size, 0:size]
    return bayer_value(cols, rows, level)
