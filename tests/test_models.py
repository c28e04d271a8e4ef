"""Tests for data models."""

from taskhue.models import DIALOG_ROLE, ItemNode, StyleResult
from tests.conftest import make_item


class TestItemNode:
    """Test the ItemNode model."""

    def test_lineage_stops_at_root(self) -> None:
        root = ItemNode(is_root=True)
        outer = make_item("tasks.a", parent=root)
        inner = make_item(parent=outer)

        assert list(inner.lineage()) == [inner, outer]

    def test_in_dialog(self) -> None:
        dialog = make_item(role=DIALOG_ROLE)
        assert make_item(parent=make_item(parent=dialog)).in_dialog()
        assert not make_item().in_dialog()

    def test_dialog_beyond_root_is_ignored(self) -> None:
        dialog = ItemNode(role=DIALOG_ROLE)
        root = ItemNode(parent=dialog, is_root=True)
        assert not make_item(parent=root).in_dialog()

    def test_capture_observed_once(self) -> None:
        """The first captured background is kept; later captures are ignored."""
        item = make_item(completed=True)

        assert item.capture_observed("rgb(179, 179, 179)", "#3c4043")
        assert not item.capture_observed("#ff0000")

        assert item.observed is not None
        assert item.observed.background == "rgb(179, 179, 179)"
        assert item.observed.text == "#3c4043"
        assert item.observed.was_completed

    def test_capture_without_background_can_be_retried(self) -> None:
        item = make_item()
        item.capture_observed(None, "#3c4043")
        assert item.capture_observed("#4285f4")
        assert item.observed is not None
        assert item.observed.background == "#4285f4"


class TestStyleResult:
    """Test the StyleResult model."""

    def test_to_dict_uses_camel_case(self) -> None:
        style = StyleResult("#ff0000", "#fff", 1.0, 0.5)
        assert style.to_dict() == {
            "backgroundColor": "#ff0000",
            "textColor": "#fff",
            "bgOpacity": 1.0,
            "textOpacity": 0.5,
        }
