"""Concurrent route and travel-time queries against the Mapbox Directions API."""

import asyncio
import logging
import math
from typing import TYPE_CHECKING, Protocol

import httpx

from campus_map.config import (
    DEFAULT_DIRECTIONS_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ROUTE_FIT_PADDING,
)
from campus_map.errors import PreconditionFailure, TransientIOFailure
from campus_map.models import Profile, RouteFailure, RouteGeometry, RouteResult

if TYPE_CHECKING:
    from campus_map.renderer import Renderer

logger = logging.getLogger(__name__)

SUPERSEDED = "superseded by a newer request"


class LatLon(Protocol):
    lat: float
    lon: float


def seconds_to_minutes(seconds: float) -> int:
    """Round a duration to whole minutes, halves rounding up."""
    return int(math.floor(seconds / 60.0 + 0.5))


def format_travel_times(results: list[RouteResult]) -> str:
    """
    Build the one-line travel time summary shown to the user.

    Example:
        >>> format_travel_times([RouteResult(Profile.WALK, 6), RouteResult(Profile.DRIVE, None)])
        'Walk: 6 min | Drive: N/A'
    """
    parts = []
    for result in results:
        duration = f"{result.duration_minutes} min" if result.duration_minutes is not None else "N/A"
        parts.append(f"{result.profile.label}: {duration}")
    return " | ".join(parts)


class RoutingAggregator:
    """
    Issues per-profile directions requests and merges their results.

    At most one ``get_route`` overlay operation is in flight: a new call
    cancels the previous request and any response that still arrives for
    it is discarded.
    """

    def __init__(
        self,
        token: str | None,
        client: httpx.AsyncClient | None = None,
        base_url: str = DEFAULT_DIRECTIONS_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        profiles: tuple[Profile, ...] = tuple(Profile),
        primary_profile: Profile = Profile.DRIVE,
    ) -> None:
        """
        Args:
            token: Mapbox access token
            client: Shared HTTP client; one is created (and owned) if omitted
            base_url: Directions API base URL
            timeout: Per-request timeout in seconds
            profiles: Profiles reported by get_travel_times, in order
            primary_profile: Profile whose geometry get_route draws

        Raises:
            PreconditionFailure: If no token is given
        """
        if not token:
            raise PreconditionFailure("A routing access token is required for directions")

        self._token = token
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.profiles = profiles
        self.primary_profile = primary_profile

        self._pending: set[asyncio.Task] = set()
        self._route_task: asyncio.Task | None = None
        self._route_generation = 0

    async def __aenter__(self) -> "RoutingAggregator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel outstanding requests and close the owned HTTP client."""
        self.cancel()
        if self._owns_client:
            await self._client.aclose()

    def directions_path(self, profile: Profile, origin: LatLon, destination: LatLon) -> str:
        return (
            f"/directions/v5/mapbox/{profile.backend_name}/"
            f"{origin.lon},{origin.lat};{destination.lon},{destination.lat}"
        )

    async def _fetch(self, profile: Profile, origin: LatLon, destination: LatLon) -> RouteGeometry:
        """
        Request one profile's route.

        Raises:
            TransientIOFailure: On network errors, timeouts, bad status codes,
                unparseable bodies or an empty route list
        """
        path = self.directions_path(profile, origin, destination)
        logger.debug(f"Requesting {profile.backend_name} route: {path}")

        try:
            response = await self._client.get(
                f"{self._base_url}{path}",
                params={"geometries": "geojson", "access_token": self._token},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise TransientIOFailure(profile.backend_name, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise TransientIOFailure(profile.backend_name, f"invalid JSON: {e}") from e

        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            raise TransientIOFailure(profile.backend_name, "no route returned")

        route = routes[0]
        try:
            coordinates = tuple(
                (float(lon), float(lat)) for lon, lat, *_ in route["geometry"]["coordinates"]
            )
            duration = float(route["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientIOFailure(profile.backend_name, f"malformed route: {e}") from e

        if not coordinates:
            raise TransientIOFailure(profile.backend_name, "empty route geometry")

        return RouteGeometry(profile=profile, coordinates=coordinates, duration_seconds=duration)

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def get_travel_times(self, origin: LatLon, destination: LatLon) -> list[RouteResult]:
        """
        Query every profile concurrently and wait for all of them to settle.

        Returns:
            One RouteResult per profile, in profile order. A profile whose
            request failed, was cancelled or found no route has
            ``duration_minutes=None``.
        """
        tasks = [self._track(self._fetch(profile, origin, destination)) for profile in self.profiles]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: list[RouteResult] = []
        for profile, outcome in zip(self.profiles, outcomes):
            if isinstance(outcome, RouteGeometry):
                results.append(RouteResult(profile, seconds_to_minutes(outcome.duration_seconds)))
                continue

            if isinstance(outcome, TransientIOFailure):
                logger.warning(f"Travel time unavailable: {outcome}")
            elif isinstance(outcome, asyncio.CancelledError):
                logger.info(f"{profile.backend_name} travel time request cancelled")
            else:
                logger.error(
                    f"Unexpected error in {profile.backend_name} request",
                    exc_info=outcome,
                )
            results.append(RouteResult(profile, None))

        logger.info(f"Travel times: {format_travel_times(results)}")
        return results

    async def get_route(
        self,
        origin: LatLon,
        destination: LatLon,
        renderer: "Renderer",
    ) -> RouteGeometry | RouteFailure:
        """
        Fetch the primary profile's route and replace the route overlay.

        The previous overlay is removed before the new one is drawn, then
        the viewport is fit to the route with fixed padding. A newer call
        supersedes this one; a superseded call touches nothing and returns
        a RouteFailure.

        Returns:
            The drawn RouteGeometry, or a RouteFailure describing why
            nothing was drawn
        """
        self._route_generation += 1
        generation = self._route_generation
        profile = self.primary_profile

        if self._route_task is not None and not self._route_task.done():
            logger.info("Cancelling in-flight route request")
            self._route_task.cancel()

        task = self._track(self._fetch(profile, origin, destination))
        self._route_task = task

        try:
            geometry = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            if generation != self._route_generation:
                return RouteFailure(profile, SUPERSEDED)
            return RouteFailure(profile, "cancelled")
        except TransientIOFailure as e:
            if generation != self._route_generation:
                return RouteFailure(profile, SUPERSEDED)
            logger.warning(f"Route unavailable: {e}")
            return RouteFailure(profile, e.reason)
        finally:
            if self._route_task is task:
                self._route_task = None

        if generation != self._route_generation:
            logger.info("Discarding stale route response")
            return RouteFailure(profile, SUPERSEDED)

        renderer.set_route_overlay(None)
        renderer.set_route_overlay(geometry)
        renderer.fit_bounds(geometry.bounds(), ROUTE_FIT_PADDING)
        logger.info(
            f"Route drawn: {len(geometry.coordinates)} points, "
            f"{seconds_to_minutes(geometry.duration_seconds)} min {profile.label.lower()}"
        )
        return geometry

    def cancel(self) -> None:
        """Cancel every in-flight request (travel times and route)."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            logger.info(f"Cancelled {len(self._pending)} routing request(s)")
