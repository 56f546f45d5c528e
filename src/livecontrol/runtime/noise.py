"""Seeded noise and counter-based random draws used by the builtins."""

import math
from functools import lru_cache
from typing import Tuple

import numpy as np

PERLIN_SEED = 42

# Offset between successive indices in rn(seed, idx)
RN_INDEX_STRIDE = 19247

_KEY_MASK = (1 << 64) - 1


def _philox(key: int) -> np.random.Generator:
    return np.random.Generator(np.random.Philox(key=int(key) & _KEY_MASK))


def random_draws(key: int, count: int) -> Tuple[float, ...]:
    """`count` uniform draws in [0, 1) from a Philox stream keyed on `key`.

    The same key always yields the same draws, on any platform.
    """
    return tuple(float(v) for v in _philox(key).random(count))


def rn(seed: float, idx: float) -> float:
    """Deterministic pseudo-random number in [0, 1) for (seed, idx)."""
    key = int(seed + RN_INDEX_STRIDE * idx)
    return random_draws(key, 1)[0]


@lru_cache(maxsize=None)
def _permutation(seed: int) -> Tuple[int, ...]:
    perm = np.random.default_rng(seed).permutation(256)
    return tuple(int(p) for p in np.concatenate([perm, perm]))


def _fade(t: float) -> float:
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _grad(h: int, x: float, y: float, z: float) -> float:
    # 12 gradient directions from the edges of a cube
    h &= 15
    u = x if h < 8 else y
    if h < 4:
        v = y
    elif h in (12, 14):
        v = x
    else:
        v = z
    return (u if (h & 1) == 0 else -u) + (v if (h & 2) == 0 else -v)


def perlin(x: float, y: float, z: float, seed: int = PERLIN_SEED) -> float:
    """3D gradient noise in roughly [-1, 1]; zero at integer lattice points."""
    p = _permutation(seed)

    xf, yf, zf = math.floor(x), math.floor(y), math.floor(z)
    xi, yi, zi = int(xf) & 255, int(yf) & 255, int(zf) & 255
    x, y, z = x - xf, y - yf, z - zf
    u, v, w = _fade(x), _fade(y), _fade(z)

    a = p[xi] + yi
    aa, ab = p[a] + zi, p[a + 1] + zi
    b = p[xi + 1] + yi
    ba, bb = p[b] + zi, p[b + 1] + zi

    def lerp(t, lo, hi):
        return lo + t * (hi - lo)

    return lerp(w,
                lerp(v,
                     lerp(u, _grad(p[aa], x, y, z), _grad(p[ba], x - 1, y, z)),
                     lerp(u, _grad(p[ab], x, y - 1, z), _grad(p[bb], x - 1, y - 1, z))),
                lerp(v,
                     lerp(u, _grad(p[aa + 1], x, y, z - 1), _grad(p[ba + 1], x - 1, y, z - 1)),
                     lerp(u, _grad(p[ab + 1], x, y - 1, z - 1), _grad(p[bb + 1], x - 1, y - 1, z - 1))))
