"""
Session wiring for the campus map.

A Session owns the map handle for one viewer: it loads the catalogue,
resolves the routing credential, builds the spatial index and routes
every renderer, position and selection event to the component that owns
the corresponding state.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from campus_map.catalogue import CatalogueProvider
from campus_map.config import (
    LOCATION_FOCUS_ZOOM,
    SHARED_FIT_PADDING,
    SHARED_LOCATION_ZOOM,
    Settings,
    load_settings,
)
from campus_map.deeplink import build_share_url, external_directions_url, parse_shared_location
from campus_map.errors import PreconditionFailure
from campus_map.follow import (
    FollowController,
    FollowInstruction,
    InteractionKind,
    InteractionStart,
    MoveUserMarker,
    PositionError,
    PositionUpdate,
    Recenter,
    RecenterRequest,
)
from campus_map.models import (
    Cluster,
    FollowState,
    Location,
    RenderSpec,
    RouteFailure,
    RouteGeometry,
    RouteResult,
    SharedLocation,
    Viewport,
)
from campus_map.projector import (
    CLUSTER_KEY_PREFIX,
    project,
    shared_marker_spec,
    user_marker_spec,
)
from campus_map.reconciler import MarkerReconciler, ReconcilePlan
from campus_map.renderer import Renderer
from campus_map.routing import RoutingAggregator, format_travel_times
from campus_map.spatial_index import SpatialIndex

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    """Interface of the routing credential source."""

    def get_routing_token(self) -> str | None: ...


@dataclass
class SetupStatus:
    """
    Outcome of loading the catalogue and credential.

    Attributes:
        needs_token: No routing token was provided; show manual entry
        catalogue_error: Error banner text when the catalogue is empty or
            failed to load
    """

    needs_token: bool = False
    catalogue_error: str | None = None

    @property
    def ready(self) -> bool:
        return not self.needs_token and self.catalogue_error is None


@dataclass
class SelectionResult:
    """What happened when the viewer selected a location."""

    location: Location
    route: RouteGeometry | RouteFailure | None = None
    travel_times: list[RouteResult] = field(default_factory=list)
    summary: str | None = None
    external_url: str | None = None


class Session:
    """Owns the map handle and the per-viewer state of the campus map."""

    def __init__(
        self,
        renderer: Renderer,
        catalogue_provider: CatalogueProvider,
        credential_provider: CredentialProvider,
        settings: Settings | None = None,
        display_width_px: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.renderer = renderer
        self.settings = settings or load_settings()
        self.display_width_px = display_width_px

        self._catalogue_provider = catalogue_provider
        self._credential_provider = credential_provider
        self._http_client = http_client

        self.locations: dict[str, Location] = {}
        self.index: SpatialIndex | None = None
        self.routing: RoutingAggregator | None = None
        self.status = SetupStatus()

        self.follow = FollowController()
        self.reconciler = MarkerReconciler()
        self.shared_location: SharedLocation | None = None
        self.selected: Location | None = None

        self._started = False
        self._viewport: Viewport | None = None
        self._selection_generation = 0

    @property
    def mobile(self) -> bool:
        return self.settings.is_mobile(self.display_width_px)

    @property
    def started(self) -> bool:
        return self._started

    # Setup

    def setup(self) -> SetupStatus:
        """
        Load the catalogue and resolve the routing credential.

        Catalogue failures are not fatal: they leave an empty catalogue and
        an error banner. A missing token leaves the session waiting for
        ``submit_token``.
        """
        self.status = SetupStatus()
        self._load_catalogue()

        token = self._credential_provider.get_routing_token()
        if token:
            self._configure_routing(token)
        else:
            logger.warning("No routing token available, waiting for manual entry")
            self.status.needs_token = True

        return self.status

    def retry_setup(self) -> SetupStatus:
        """Explicit retry path after a setup failure."""
        logger.info("Retrying setup")
        return self.setup()

    def _load_catalogue(self) -> None:
        try:
            locations = self._catalogue_provider.list_locations()
        except Exception as e:
            logger.exception("Failed to load catalogue")
            locations = []
            self.status.catalogue_error = f"Could not load campus locations: {e}"

        self.locations = {location.id: location for location in locations}
        if not locations and self.status.catalogue_error is None:
            self.status.catalogue_error = "No campus locations available"

        self._build_index()

    def _build_index(self) -> None:
        radius = self.settings.radius_for_width(self.display_width_px)
        self.index = SpatialIndex.build(
            self.locations.values(),
            radius=radius,
            max_zoom=self.settings.max_zoom,
        )

    def _configure_routing(self, token: str) -> None:
        self.routing = RoutingAggregator(
            token,
            client=self._http_client,
            base_url=self.settings.directions_url,
            timeout=self.settings.request_timeout,
        )

    def submit_token(self, token: str) -> SetupStatus:
        """
        Manual-entry path for the routing credential.

        Raises:
            PreconditionFailure: If the token is blank
        """
        token = token.strip()
        if not token:
            raise PreconditionFailure("Routing token must not be empty")
        self._configure_routing(token)
        self.status.needs_token = False
        logger.info("Routing token entered manually")
        return self.status

    def start(self) -> ReconcilePlan:
        """
        Draw the initial marker set.

        Raises:
            PreconditionFailure: If setup has not produced a token and a
                non-empty catalogue
        """
        if self.status.needs_token:
            raise PreconditionFailure("Routing token required before the map can start")
        if self.status.catalogue_error is not None:
            raise PreconditionFailure(self.status.catalogue_error)

        self._started = True
        if self.follow.has_live_position and self.follow.state is FollowState.FOLLOWING:
            self._apply_follow(self.follow.handle(RecenterRequest()))
        plan = self.refresh()
        if self.shared_location is not None:
            self._focus_shared(self.shared_location)
        return plan

    async def close(self) -> None:
        if self.routing is not None:
            await self.routing.close()

    # Rendering

    def _overlay_specs(self) -> list[RenderSpec]:
        specs = []
        position = self.follow.position
        if position is not None:
            specs.append(user_marker_spec(position))
        if self.shared_location is not None:
            specs.append(shared_marker_spec(self.shared_location))
        return specs

    def refresh(self, viewport: Viewport | None = None) -> ReconcilePlan:
        """Re-query, project and reconcile the markers for a viewport."""
        viewport = viewport or self.renderer.get_viewport()
        self._viewport = viewport

        nodes = self.index.query(viewport.bbox, viewport.zoom) if self.index is not None else []
        specs = project(
            nodes,
            self.locations,
            mobile=self.mobile,
            strict=self.settings.strict,
        )
        specs.extend(self._overlay_specs())
        return self.reconciler.reconcile(specs, self.renderer)

    def on_viewport_change(self, viewport: Viewport | None = None) -> ReconcilePlan | None:
        if not self._started:
            logger.debug("Viewport change before start ignored")
            return None
        return self.refresh(viewport)

    def set_display_width(self, width_px: int) -> None:
        """Rebuild the index if the display switches between narrow and wide."""
        was_mobile = self.mobile
        self.display_width_px = width_px
        if self.mobile == was_mobile:
            return
        logger.info(f"Display width {width_px}px, mobile={self.mobile}: rebuilding index")
        self._build_index()
        if self._started:
            self.refresh(self._viewport)

    # Follow

    def _apply_follow(self, instructions: list[FollowInstruction]) -> None:
        if not self._started:
            return
        for instruction in instructions:
            if isinstance(instruction, Recenter):
                self.renderer.fly_to(instruction.lon, instruction.lat, instruction.zoom)
            elif isinstance(instruction, MoveUserMarker):
                self.refresh(self._viewport)

    def on_interaction_start(self, kind: InteractionKind = InteractionKind.PAN) -> None:
        self._apply_follow(self.follow.handle(InteractionStart(kind)))

    def on_position(self, lat: float, lon: float, timestamp: float | None = None) -> None:
        if timestamp is None:
            timestamp = time.time()
        self._apply_follow(self.follow.handle(PositionUpdate(lat, lon, timestamp)))

    def on_position_error(self, reason: str | Exception, permission_denied: bool = False) -> None:
        """Report a position failure, either as text or as the source's exception."""
        if isinstance(reason, Exception):
            event = PositionError.from_exception(reason)
        else:
            event = PositionError(reason, permission_denied)
        self._apply_follow(self.follow.handle(event))

    def request_recenter(self) -> None:
        """The "locate me" action: resume following and fly to the viewer."""
        self._apply_follow(self.follow.handle(RecenterRequest()))

    # Deep links and sharing

    def apply_deep_link(self, link) -> SharedLocation | None:
        """
        Show a shared location decoded from a deep link.

        With a live position both points are fit into view; otherwise the
        camera flies to the shared point.
        Before start() the camera move waits until the map is drawn.
        """
        shared = parse_shared_location(link)
        if shared is None:
            return None

        self.shared_location = shared
        logger.info(f"Showing shared location ({shared.lat}, {shared.lon})")
        if not self._started:
            return shared

        self.refresh(self._viewport)
        self._focus_shared(shared)
        return shared

    def _focus_shared(self, shared: SharedLocation) -> None:
        position = self.follow.position
        if self.follow.has_live_position and position is not None:
            bbox = (
                min(position.lon, shared.lon),
                min(position.lat, shared.lat),
                max(position.lon, shared.lon),
                max(position.lat, shared.lat),
            )
            self.renderer.fit_bounds(bbox, SHARED_FIT_PADDING)
        else:
            self.renderer.fly_to(shared.lon, shared.lat, SHARED_LOCATION_ZOOM)

    def share_my_location(self, base_url: str) -> str | None:
        """Deep link for the viewer's current position, or None without a fix."""
        position = self.follow.position
        if position is None or not self.follow.has_live_position:
            return None
        return build_share_url(base_url, position.lat, position.lon)

    # Selection

    def on_marker_click(self, key: str) -> Location | Cluster | None:
        """
        Handle a tap on a rendered marker.

        A cluster zooms in until it splits; a location is selected and
        focused. The user and shared markers do nothing.
        """
        marker = self.reconciler.markers.get(key)
        if marker is None:
            logger.warning(f"Click on unknown marker {key!r}")
            return None

        if key.startswith(CLUSTER_KEY_PREFIX):
            cluster_id = int(key[len(CLUSTER_KEY_PREFIX):])
            zoom = min(self.index.get_cluster_expansion_zoom(cluster_id), LOCATION_FOCUS_ZOOM)
            self.renderer.fly_to(marker.lon, marker.lat, zoom)
            return Cluster(
                id=cluster_id,
                lon=marker.lon,
                lat=marker.lat,
                point_count=len(self.index.get_leaves(cluster_id, limit=None)),
                expansion_zoom=self.index.get_cluster_expansion_zoom(cluster_id),
            )

        location = self.locations.get(key)
        if location is None:
            return None
        self.selected = location
        self.renderer.fly_to(location.lon, location.lat, LOCATION_FOCUS_ZOOM)
        return location

    async def select_location(self, location_id: str) -> SelectionResult:
        """
        Route from the live position to a location and summarise travel times.

        Without a live position an external directions link is returned
        instead. A newer selection supersedes an in-flight one: the older
        call gets a superseded route and no travel times.

        Raises:
            KeyError: If the location id is not in the catalogue
            PreconditionFailure: If routing is needed but no token is set
        """
        location = self.locations[location_id]
        self.selected = location
        self._selection_generation += 1
        generation = self._selection_generation

        position = self.follow.position
        if position is None or not self.follow.has_live_position:
            url = external_directions_url(location.lat, location.lon)
            logger.info(f"No live position, offering external directions for {location.name}")
            return SelectionResult(location=location, external_url=url)

        if self.routing is None:
            raise PreconditionFailure("Routing token required for directions")

        route, times = await asyncio.gather(
            self.routing.get_route(position, location, self.renderer),
            self.routing.get_travel_times(position, location),
        )
        if generation != self._selection_generation:
            logger.debug(f"Discarding travel times for superseded selection of {location.name}")
            return SelectionResult(location=location, route=route)

        return SelectionResult(
            location=location,
            route=route,
            travel_times=times,
            summary=format_travel_times(times),
        )
