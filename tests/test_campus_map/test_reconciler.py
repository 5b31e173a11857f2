"""Tests for key-based marker reconciliation."""

import pytest
from unittest.mock import MagicMock, call

from campus_map.models import MarkerKind, MarkerVisual, RenderSpec
from campus_map.reconciler import MarkerReconciler, diff

RED = MarkerVisual(color="#ff0000", size=20)
BLUE = MarkerVisual(color="#0000ff", size=20)


def _spec(key: str, lon: float = 0.0, lat: float = 0.0, visual: MarkerVisual = RED) -> RenderSpec:
    return RenderSpec(key=key, kind=MarkerKind.LEAF, lon=lon, lat=lat, visual=visual)


class TestDiff:
    """Tests for the pure diff() function."""

    def test_empty_to_empty(self):
        assert diff({}, []).is_empty

    def test_keys_are_disjoint_and_conserved(self):
        """create and update together are exactly the next key set."""
        reconciler = MarkerReconciler()
        reconciler.reconcile([_spec("a"), _spec("b"), _spec("c")], MagicMock())

        plan = diff(reconciler.markers, [_spec("b"), _spec("c", lon=1.0), _spec("d")])
        created = {spec.key for spec in plan.to_create}
        updated = {spec.key for spec in plan.to_update}
        removed = set(plan.to_remove)

        assert created == {"d"}
        assert updated == {"b", "c"}
        assert removed == {"a"}
        assert not (created & updated or created & removed or updated & removed)
        assert created | updated == {"b", "c", "d"}

    def test_duplicate_keys_first_wins(self):
        plan = diff({}, [_spec("a", lon=1.0), _spec("a", lon=2.0)])
        assert [spec.lon for spec in plan.to_create] == [1.0]


class TestMarkerReconciler:
    """Tests for MarkerReconciler applying plans to a renderer."""

    @pytest.fixture
    def renderer(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def reconciler(self) -> MarkerReconciler:
        return MarkerReconciler()

    def test_initial_reconcile_creates_everything(self, reconciler, renderer):
        plan = reconciler.reconcile([_spec("a"), _spec("b", lon=1.0)], renderer)

        assert len(plan.to_create) == 2
        assert renderer.set_marker.call_args_list == [
            call("a", 0.0, 0.0, RED),
            call("b", 1.0, 0.0, RED),
        ]
        assert len(reconciler) == 2
        assert "a" in reconciler

    def test_removals_happen_before_creates(self, reconciler, renderer):
        reconciler.reconcile([_spec("a"), _spec("b")], renderer)
        renderer.reset_mock()

        reconciler.reconcile([_spec("c"), _spec("b", visual=BLUE)], renderer)

        names = [name for name, _, _ in renderer.mock_calls]
        assert names == ["remove_marker", "set_marker", "set_marker"]
        assert renderer.mock_calls[0] == call.remove_marker("a")

    def test_unchanged_marker_is_not_redrawn(self, reconciler, renderer):
        reconciler.reconcile([_spec("a")], renderer)
        renderer.reset_mock()

        plan = reconciler.reconcile([_spec("a")], renderer)

        assert [spec.key for spec in plan.to_update] == ["a"]
        renderer.set_marker.assert_not_called()
        renderer.remove_marker.assert_not_called()

    def test_moved_marker_is_updated_in_place(self, reconciler, renderer):
        reconciler.reconcile([_spec("a")], renderer)
        renderer.reset_mock()

        reconciler.reconcile([_spec("a", lon=5.0)], renderer)

        renderer.set_marker.assert_called_once_with("a", 5.0, 0.0, RED)
        renderer.remove_marker.assert_not_called()
        assert reconciler.markers["a"].lon == 5.0

    def test_rendered_set_matches_next_specs(self, reconciler, renderer):
        """After each step the owned keys are exactly the keys passed in."""
        steps = [["a", "b", "c"], ["b", "d"], [], ["e"]]
        for keys in steps:
            reconciler.reconcile([_spec(key) for key in keys], renderer)
            assert set(reconciler.markers) == set(keys)

    def test_markers_view_is_a_copy(self, reconciler, renderer):
        reconciler.reconcile([_spec("a")], renderer)
        view = reconciler.markers
        view.clear()
        assert "a" in reconciler

    def test_clear_removes_all(self, reconciler, renderer):
        reconciler.reconcile([_spec("a"), _spec("b")], renderer)
        reconciler.clear(renderer)

        assert len(reconciler) == 0
        assert renderer.remove_marker.call_count == 2
