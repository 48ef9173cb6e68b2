"""Seeded coherent noise evaluated at arbitrary coordinates."""

from __future__ import annotations

import numpy as np


_GRADIENTS = np.array(
    [
        [1.0, 1.0],
        [-1.0, 1.0],
        [1.0, -1.0],
        [-1.0, -1.0],
        [1.0, 0.0],
        [-1.0, 0.0],
        [0.0, 1.0],
        [0.0, -1.0],
    ],
    dtype=np.float64,
)

# Per-octave lattice shift so octaves do not all vanish at the same integer points.
_OCTAVE_SHIFT = (0.3183098861837907, 0.5772156649015329)


def _fade(t: np.ndarray) -> np.ndarray:
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def permutation_table(rng: np.random.Generator) -> np.ndarray:
    """Shuffled 0..255 lattice hash, doubled to avoid index wrapping."""

    perm = rng.permutation(256).astype(np.int64)
    return np.concatenate([perm, perm])


def gradient_noise_2d(perm: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Perlin gradient noise in approximately [-1, 1] at float coordinates."""

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    x0 = np.floor(x)
    y0 = np.floor(y)
    xf = x - x0
    yf = y - y0
    xi = x0.astype(np.int64) & 255
    yi = y0.astype(np.int64) & 255

    u = _fade(xf)
    v = _fade(yf)

    h00 = perm[perm[xi] + yi] & 7
    h10 = perm[perm[xi + 1] + yi] & 7
    h01 = perm[perm[xi] + yi + 1] & 7
    h11 = perm[perm[xi + 1] + yi + 1] & 7

    n00 = _dot_gradient(h00, xf, yf)
    n10 = _dot_gradient(h10, xf - 1.0, yf)
    n01 = _dot_gradient(h01, xf, yf - 1.0)
    n11 = _dot_gradient(h11, xf - 1.0, yf - 1.0)

    top = n00 + u * (n10 - n00)
    bottom = n01 + u * (n11 - n01)
    return top + v * (bottom - top)


def fbm_2d(
    perm: np.ndarray,
    x: np.ndarray,
    y: np.ndarray,
    *,
    octaves: float = 6.0,
    persistence: float = 0.5,
    lacunarity: float = 2.0,
) -> np.ndarray:
    """Sum octaves of gradient noise; a fractional octave count weights the last octave."""

    whole = int(np.floor(octaves))
    remainder = float(octaves) - whole
    total = np.zeros(np.broadcast(x, y).shape, dtype=np.float64)
    amplitude = 1.0
    frequency = 1.0

    for octave in range(whole + (1 if remainder > 0.0 else 0)):
        weight = amplitude if octave < whole else amplitude * remainder
        sx = x * frequency + octave * _OCTAVE_SHIFT[0]
        sy = y * frequency + octave * _OCTAVE_SHIFT[1]
        total += weight * gradient_noise_2d(perm, sx, sy)
        amplitude *= persistence
        frequency *= lacunarity
    return total


def _dot_gradient(hashes: np.ndarray, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
    g = _GRADIENTS[hashes]
    return g[..., 0] * dx + g[..., 1] * dy
