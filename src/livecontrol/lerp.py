"""
Deterministic interpolation of resolved payload values.

Used by blending (a repeat's trailing items cross-fade into the next
ones) and by lazy vectors. Numbers interpolate linearly, sequences
interpolate element-wise, lists may change length, and anything without
a meaningful in-between (bools, strings, mismatched shapes) steps over at
the halfway point.
"""

import dataclasses
from typing import Any, List, Mapping

import numpy as np

from .runtime.builtins import lerp


def step(this: Any, other: Any, pct: float) -> Any:
    return other if pct > 0.5 else this


def combine_vecs(this: List[Any], other: List[Any], pct: float) -> List[Any]:
    """
    Interpolate two lists that may differ in length.

    The result length is `round(lerp(len(this), len(other), pct))`; shared
    positions are interpolated and the remainder is taken from whichever
    list is long enough.
    """
    this_len, other_len = len(this), len(other)
    if this_len == other_len:
        count = this_len
    else:
        count = int(round(lerp(this_len, other_len, pct)))
    out = []
    for i in range(count):
        if i >= this_len:
            out.append(other[i])
        elif i >= other_len:
            out.append(this[i])
        else:
            out.append(lerp_values(this[i], other[i], pct))
    return out


def lerp_values(this: Any, other: Any, pct: float) -> Any:
    """Interpolate `this` toward `other` by `pct`."""
    if hasattr(this, "lerpify"):
        return this.lerpify(other, pct)
    if isinstance(this, bool) or isinstance(other, bool):
        return step(this, other, pct)
    if isinstance(this, int) and isinstance(other, int):
        return int(lerp(this, other, pct))
    if isinstance(this, (int, float)) and isinstance(other, (int, float)):
        return lerp(float(this), float(other), pct)
    if isinstance(this, np.ndarray) and isinstance(other, np.ndarray):
        if this.shape != other.shape:
            return step(this, other, pct)
        return this + (other - this) * pct
    if isinstance(this, tuple) and isinstance(other, tuple):
        if len(this) != len(other):
            return step(this, other, pct)
        return tuple(lerp_values(a, b, pct) for a, b in zip(this, other))
    if isinstance(this, list) and isinstance(other, list):
        if not this or not other:
            return list(this)
        return combine_vecs(this, other, pct)
    if isinstance(this, Mapping) and isinstance(other, Mapping):
        out = {}
        for key, value in this.items():
            out[key] = lerp_values(value, other[key], pct) if key in other else value
        for key, value in other.items():
            if key not in this and pct > 0.5:
                out[key] = value
        return out
    if (dataclasses.is_dataclass(this) and not isinstance(this, type)
            and type(this) is type(other)):
        changes = {
            f.name: lerp_values(getattr(this, f.name), getattr(other, f.name), pct)
            for f in dataclasses.fields(this) if f.init
        }
        return dataclasses.replace(this, **changes)
    return step(this, other, pct)
