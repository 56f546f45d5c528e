"""
Tests for dotted-path access to nested values.
"""

from dataclasses import dataclass
from typing import Tuple

import pytest

from livecontrol.expr import StructuralMismatch
from livecontrol.nested import flatten, nest_get, nest_set, nest_update, split_path


@dataclass(frozen=True)
class Style:
    width: float
    visible: bool
    count: int


@dataclass(frozen=True)
class Scene:
    style: Style
    points: Tuple[float, ...]


@pytest.fixture
def scene():
    return Scene(Style(1.0, True, 3), (0.0, 0.5))


class TestNestGet:
    def test_split_path(self):
        assert split_path("a.b.2") == ["a", "b", "2"]
        assert split_path("") == []
        assert split_path(["a", 1]) == ["a", "1"]

    def test_record_fields(self, scene):
        assert nest_get(scene, "style.width") == 1.0
        assert nest_get(scene, "points.1") == 0.5
        assert nest_get(scene, "") is scene

    def test_mappings_and_lists(self):
        data = {"shapes": [{"r": 2.0}]}
        assert nest_get(data, "shapes.0.r") == 2.0

    def test_missing_path(self, scene):
        with pytest.raises(StructuralMismatch):
            nest_get(scene, "style.height")
        with pytest.raises(StructuralMismatch):
            nest_get(scene, "points.7")
        with pytest.raises(StructuralMismatch):
            nest_get(scene, "style.width.x")


class TestNestUpdate:
    def test_copy_with_replacements(self, scene):
        """Edits produce a new value; the original is untouched."""
        out = nest_update(scene, {"style.width": 2.5, "points.0": 1.0})
        assert out.style.width == 2.5
        assert out.points == (1.0, 0.5)
        assert scene.style.width == 1.0

    def test_text_edits_keep_leaf_type(self, scene):
        out = nest_update(scene, {"style.visible": "false", "style.count": "7.9", "style.width": "0.25"})
        assert out.style.visible is False
        assert out.style.count == 7
        assert out.style.width == 0.25

    def test_unparseable_text_keeps_value(self, scene):
        out = nest_update(scene, {"style.count": "many"})
        assert out.style.count == 3

    def test_unmatched_paths_ignored(self):
        assert nest_update({"a": 1}, {"b": 2}) == {"a": 1}

    def test_nest_set(self):
        assert nest_set({"a": {"b": 1}}, "a.b", 5) == {"a": {"b": 5}}

    def test_nest_set_missing(self):
        with pytest.raises(StructuralMismatch):
            nest_set({"a": 1}, "b", 5)


class TestFlatten:
    def test_leaves_by_path(self, scene):
        assert flatten(scene) == {
            "style.width": 1.0,
            "style.visible": True,
            "style.count": 3,
            "points.0": 0.0,
            "points.1": 0.5,
        }

    def test_prefix(self):
        assert flatten({"a": [1]}, prefix="root") == {"root.a.0": 1}
