"""
Tests for the follow/manual state machine.

transition() is pure, so most tests feed event sequences through a
FollowController and check the instructions and final state.
"""

import pytest

from campus_map.errors import PermissionDenied
from campus_map.follow import (
    FollowController,
    FollowSnapshot,
    InteractionKind,
    InteractionStart,
    MoveUserMarker,
    PositionError,
    PositionUpdate,
    Recenter,
    RecenterRequest,
    haversine_m,
    transition,
)
from campus_map.models import FollowState


def _recenters(instructions) -> list[Recenter]:
    return [i for i in instructions if isinstance(i, Recenter)]


def _run(controller: FollowController, events) -> list:
    instructions = []
    for event in events:
        instructions.extend(controller.handle(event))
    return instructions


class TestHaversine:
    def test_zero_distance(self):
        assert haversine_m(40.0, -73.0, 40.0, -73.0) == 0.0

    def test_one_degree_latitude(self):
        assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)


class TestFollowController:
    """Tests for event sequences through FollowController."""

    @pytest.fixture
    def controller(self) -> FollowController:
        return FollowController()

    def test_starts_following_without_position(self, controller):
        assert controller.state is FollowState.FOLLOWING
        assert controller.position is None
        assert controller.has_live_position is False

    def test_first_fix_recenters_at_follow_zoom(self, controller):
        instructions = controller.handle(PositionUpdate(40.7589, -73.9851, 1.0))

        assert instructions == [
            MoveUserMarker(lon=-73.9851, lat=40.7589),
            Recenter(lon=-73.9851, lat=40.7589, zoom=17),
        ]

    def test_interaction_stops_recentering(self, controller):
        """pos, pos, interaction, pos: one recenter, ends in Manual."""
        instructions = _run(
            controller,
            [
                PositionUpdate(40.7589, -73.9851, 1.0),
                PositionUpdate(40.7589, -73.9851, 2.0),
                InteractionStart(InteractionKind.PAN),
                PositionUpdate(40.7600, -73.9800, 3.0),
            ],
        )

        assert len(_recenters(instructions)) == 1
        assert controller.state is FollowState.MANUAL

    def test_user_marker_moves_in_manual_mode(self, controller):
        controller.handle(InteractionStart(InteractionKind.ZOOM))
        instructions = controller.handle(PositionUpdate(40.0, -73.0, 1.0))

        assert instructions == [MoveUserMarker(lon=-73.0, lat=40.0)]
        assert controller.position.lat == 40.0

    def test_following_recenters_after_real_movement(self, controller):
        instructions = _run(
            controller,
            [
                PositionUpdate(40.7589, -73.9851, 1.0),
                PositionUpdate(40.7600, -73.9851, 2.0),  # ~120 m north
            ],
        )
        assert len(_recenters(instructions)) == 2

    def test_jitter_does_not_recenter(self, controller):
        controller.handle(PositionUpdate(40.7589, -73.9851, 1.0))
        instructions = controller.handle(PositionUpdate(40.75892, -73.98511, 2.0))

        assert _recenters(instructions) == []
        assert isinstance(instructions[0], MoveUserMarker)

    def test_recenter_request_resumes_following(self, controller):
        controller.handle(PositionUpdate(40.0, -73.0, 1.0))
        controller.handle(InteractionStart(InteractionKind.TOUCH))

        instructions = controller.handle(RecenterRequest())

        assert controller.state is FollowState.FOLLOWING
        assert instructions == [Recenter(lon=-73.0, lat=40.0, zoom=17)]

    def test_recenter_request_without_fix(self, controller):
        controller.handle(InteractionStart())
        instructions = controller.handle(RecenterRequest())

        assert instructions == []
        assert controller.state is FollowState.FOLLOWING

    def test_stale_sample_is_discarded(self, controller):
        controller.handle(PositionUpdate(40.0, -73.0, 10.0))
        instructions = controller.handle(PositionUpdate(41.0, -74.0, 5.0))

        assert instructions == []
        assert controller.position.lat == 40.0

    def test_permission_denied_is_not_fatal(self, controller):
        instructions = controller.handle(PositionError("denied", permission_denied=True))

        assert instructions == []
        assert controller.state is FollowState.FOLLOWING
        assert controller.snapshot.position_available is False

    def test_permission_denied_hides_last_fix(self, controller):
        controller.handle(PositionUpdate(40.0, -73.0, 1.0))
        controller.handle(PositionError("denied", permission_denied=True))

        assert controller.position is not None
        assert controller.has_live_position is False

    def test_recenter_request_after_denial_does_nothing(self, controller):
        controller.handle(PositionUpdate(40.75, -73.99, 1.0))
        controller.handle(PositionError("denied", permission_denied=True))

        assert controller.handle(RecenterRequest()) == []
        assert controller.state is FollowState.FOLLOWING

    def test_fix_after_denial_restores_live_position(self, controller):
        controller.handle(PositionError("denied", permission_denied=True))
        controller.handle(PositionUpdate(40.0, -73.0, 1.0))
        assert controller.has_live_position is True

    def test_transient_error_keeps_state(self, controller):
        controller.handle(PositionUpdate(40.0, -73.0, 1.0))
        before = controller.snapshot

        assert controller.handle(PositionError("timeout")) == []
        assert controller.snapshot == before

    def test_custom_follow_zoom(self):
        controller = FollowController(follow_zoom=15)
        (_, recenter) = controller.handle(PositionUpdate(1.0, 2.0, 1.0))
        assert recenter.zoom == 15


class TestTransition:
    """Tests for the pure transition function."""

    def test_does_not_mutate_input(self):
        snapshot = FollowSnapshot()
        transition(snapshot, PositionUpdate(1.0, 2.0, 1.0))
        assert snapshot == FollowSnapshot()

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            transition(FollowSnapshot(), object())


class TestPositionErrorFromException:
    def test_permission_denied(self):
        event = PositionError.from_exception(PermissionDenied("User denied Geolocation"))
        assert event == PositionError("User denied Geolocation", permission_denied=True)

    def test_other_failure(self):
        event = PositionError.from_exception(TimeoutError())
        assert event == PositionError("TimeoutError", permission_denied=False)
