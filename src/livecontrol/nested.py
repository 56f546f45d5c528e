"""
Read and edit nested values with dot-delimited paths.

Paths address mapping keys, dataclass fields and list/tuple positions:
`"shapes.2.color"`. `nest_update` never mutates its input; it returns a
copy with every matching leaf replaced.
"""

import dataclasses
from typing import Any, Dict, List, Mapping, Sequence, Union

from .expr.errors import error_structural_mismatch

Path = Union[str, Sequence[str]]


def split_path(path: Path) -> List[str]:
    if isinstance(path, str):
        return [p for p in path.split(".") if p] if path else []
    return [str(p) for p in path]


def _is_record(obj: Any) -> bool:
    return dataclasses.is_dataclass(obj) and not isinstance(obj, type)


def _child(obj: Any, key: str, full: str) -> Any:
    if isinstance(obj, Mapping):
        if key in obj:
            return obj[key]
    elif _is_record(obj):
        if key in {f.name for f in dataclasses.fields(obj)}:
            return getattr(obj, key)
    elif isinstance(obj, (list, tuple)):
        try:
            return obj[int(key)]
        except (ValueError, IndexError):
            pass
    raise error_structural_mismatch(f"no value at '{full}'", full)


def nest_get(obj: Any, path: Path) -> Any:
    """The value at `path`; an empty path is `obj` itself."""
    parts = split_path(path)
    full = ".".join(parts)
    for key in parts:
        obj = _child(obj, key, full)
    return obj


def _parse_leaf(current: Any, raw: Any) -> Any:
    # edits arrive as text; keep the leaf's type where we can
    if not isinstance(raw, str):
        return raw
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        try:
            return int(float(raw))
        except ValueError:
            return current
    if isinstance(current, float):
        try:
            return float(raw)
        except ValueError:
            return current
    return raw


def nest_update(obj: Any, mods: Mapping[str, Any], _loc: Sequence[str] = ()) -> Any:
    """Copy of `obj` with every leaf whose dotted path is in `mods` replaced."""
    here = ".".join(_loc)
    if here in mods and _loc:
        return _parse_leaf(obj, mods[here])

    if isinstance(obj, Mapping):
        return {k: nest_update(v, mods, (*_loc, str(k))) for k, v in obj.items()}
    if _is_record(obj):
        changes = {
            f.name: nest_update(getattr(obj, f.name), mods, (*_loc, f.name))
            for f in dataclasses.fields(obj) if f.init
        }
        return dataclasses.replace(obj, **changes)
    if isinstance(obj, list):
        return [nest_update(v, mods, (*_loc, str(i))) for i, v in enumerate(obj)]
    if isinstance(obj, tuple):
        return tuple(nest_update(v, mods, (*_loc, str(i))) for i, v in enumerate(obj))
    return obj


def nest_set(obj: Any, path: Path, value: Any) -> Any:
    """Copy of `obj` with the single value at `path` replaced."""
    parts = split_path(path)
    nest_get(obj, parts)
    return nest_update(obj, {".".join(parts): value})


def flatten(obj: Any, prefix: str = "") -> Dict[str, Any]:
    """Every leaf of `obj` keyed by its dotted path."""
    out: Dict[str, Any] = {}
    stack = [(prefix, obj)]
    while stack:
        path, value = stack.pop()
        if isinstance(value, Mapping):
            items = [(str(k), v) for k, v in value.items()]
        elif _is_record(value):
            items = [(f.name, getattr(value, f.name)) for f in dataclasses.fields(value)]
        elif isinstance(value, (list, tuple)):
            items = [(str(i), v) for i, v in enumerate(value)]
        else:
            out[path] = value
            continue
        for key, child in reversed(items):
            stack.append((f"{path}.{key}" if path else key, child))
    return out
