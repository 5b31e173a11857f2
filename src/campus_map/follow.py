"""
Follow/manual viewport state machine.

Live position samples and user interaction signals are fed in as events;
the transition function decides whether the camera should fly to the
viewer. Only user-originated interactions are events here: programmatic
camera moves (fly_to, fit_bounds) must not be reported as
``InteractionStart`` by the renderer adapter.

    state      event               next state   instructions
    ---------  ------------------  -----------  ---------------------------
    Following  PositionUpdate      Following    MoveUserMarker, Recenter(17)
    Manual     PositionUpdate      Manual       MoveUserMarker
    any        InteractionStart    Manual       -
    any        RecenterRequest     Following    Recenter(17) if a live fix exists
    any        PositionError       unchanged    -
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum

from campus_map.config import FOLLOW_ZOOM
from campus_map.errors import PermissionDenied
from campus_map.models import FollowState, Position

logger = logging.getLogger(__name__)

# Samples closer than this to the last recenter target do not move the camera
DEFAULT_RECENTER_THRESHOLD_M = 10.0

_EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return 2 * _EARTH_RADIUS_M * math.asin(math.sqrt(a))


class InteractionKind(str, Enum):
    PAN = "pan"
    ZOOM = "zoom"
    ROTATE = "rotate"
    TOUCH = "touch"


# Events

@dataclass(frozen=True)
class PositionUpdate:
    lat: float
    lon: float
    timestamp: float


@dataclass(frozen=True)
class InteractionStart:
    kind: InteractionKind = InteractionKind.PAN


@dataclass(frozen=True)
class RecenterRequest:
    pass


@dataclass(frozen=True)
class PositionError:
    reason: str
    permission_denied: bool = False

    @classmethod
    def from_exception(cls, exc: Exception) -> "PositionError":
        """Build the event for a failure raised by a position source."""
        return cls(
            reason=str(exc) or type(exc).__name__,
            permission_denied=isinstance(exc, PermissionDenied),
        )


FollowEvent = PositionUpdate | InteractionStart | RecenterRequest | PositionError


# Instructions

@dataclass(frozen=True)
class Recenter:
    lon: float
    lat: float
    zoom: int


@dataclass(frozen=True)
class MoveUserMarker:
    lon: float
    lat: float


FollowInstruction = Recenter | MoveUserMarker


@dataclass(frozen=True)
class FollowSnapshot:
    """
    Complete follow-controller state.

    Attributes:
        state: Following or Manual
        position: Most recently accepted sample, if any
        recenter_target: (lon, lat) of the last emitted Recenter
        position_available: False once the position source reported that
            permission was denied
    """

    state: FollowState = FollowState.FOLLOWING
    position: Position | None = None
    recenter_target: tuple[float, float] | None = None
    position_available: bool = True


def _recenter(snapshot: FollowSnapshot, position: Position, zoom: int) -> tuple[FollowSnapshot, Recenter]:
    return (
        replace(snapshot, recenter_target=(position.lon, position.lat)),
        Recenter(lon=position.lon, lat=position.lat, zoom=zoom),
    )


def transition(
    snapshot: FollowSnapshot,
    event: FollowEvent,
    *,
    follow_zoom: int = FOLLOW_ZOOM,
    recenter_threshold_m: float = DEFAULT_RECENTER_THRESHOLD_M,
) -> tuple[FollowSnapshot, list[FollowInstruction]]:
    """
    Apply one event to a snapshot.

    Args:
        snapshot: Current state
        event: Incoming event
        follow_zoom: Zoom used for every Recenter instruction
        recenter_threshold_m: While following, samples within this distance
            of the last recenter target only move the user marker

    Returns:
        Tuple of (next snapshot, instructions to execute in order)
    """
    if isinstance(event, InteractionStart):
        if snapshot.state is FollowState.FOLLOWING:
            logger.debug(f"User interaction ({event.kind.value}), following off")
        return replace(snapshot, state=FollowState.MANUAL), []

    if isinstance(event, RecenterRequest):
        snapshot = replace(snapshot, state=FollowState.FOLLOWING)
        if snapshot.position is None:
            logger.info("Recenter requested but no position fix yet")
            return snapshot, []
        if not snapshot.position_available:
            logger.info("Recenter requested but position permission is denied")
            return snapshot, []
        snapshot, instruction = _recenter(snapshot, snapshot.position, follow_zoom)
        return snapshot, [instruction]

    if isinstance(event, PositionError):
        if event.permission_denied:
            logger.warning(f"Position permission denied: {event.reason}")
            return replace(snapshot, position_available=False), []
        logger.info(f"No position fix: {event.reason}")
        return snapshot, []

    if isinstance(event, PositionUpdate):
        previous = snapshot.position
        if previous is not None and event.timestamp < previous.timestamp:
            logger.debug(
                f"Discarding stale position sample ({event.timestamp} < {previous.timestamp})"
            )
            return snapshot, []

        position = Position(lat=event.lat, lon=event.lon, timestamp=event.timestamp)
        snapshot = replace(snapshot, position=position, position_available=True)
        instructions: list[FollowInstruction] = [MoveUserMarker(lon=position.lon, lat=position.lat)]

        if snapshot.state is FollowState.FOLLOWING:
            target = snapshot.recenter_target
            if target is None or haversine_m(
                target[1], target[0], position.lat, position.lon
            ) > recenter_threshold_m:
                snapshot, instruction = _recenter(snapshot, position, follow_zoom)
                instructions.append(instruction)

        return snapshot, instructions

    raise TypeError(f"Unknown follow event: {event!r}")


class FollowController:
    """Owns the follow snapshot and feeds events through ``transition``."""

    def __init__(
        self,
        follow_zoom: int = FOLLOW_ZOOM,
        recenter_threshold_m: float = DEFAULT_RECENTER_THRESHOLD_M,
    ) -> None:
        self.follow_zoom = follow_zoom
        self.recenter_threshold_m = recenter_threshold_m
        self._snapshot = FollowSnapshot()

    @property
    def snapshot(self) -> FollowSnapshot:
        return self._snapshot

    @property
    def state(self) -> FollowState:
        return self._snapshot.state

    @property
    def position(self) -> Position | None:
        return self._snapshot.position

    @property
    def has_live_position(self) -> bool:
        return self._snapshot.position_available and self._snapshot.position is not None

    def handle(self, event: FollowEvent) -> list[FollowInstruction]:
        """Apply an event and return the instructions it produced."""
        self._snapshot, instructions = transition(
            self._snapshot,
            event,
            follow_zoom=self.follow_zoom,
            recenter_threshold_m=self.recenter_threshold_m,
        )
        return instructions
