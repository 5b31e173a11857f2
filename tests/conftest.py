"""
Shared pytest fixtures for campus_map tests.

This module provides reusable fixtures that are automatically discovered
by pytest. Fixtures here are available to all test files.

Notes for new developers:
- Fixtures are functions that provide test data or set up test state
- Fixtures can depend on other fixtures (dependency injection)
- Use 'yield' in fixtures for setup/teardown patterns
- The HTTP fixtures never touch the network: httpx.MockTransport answers
  every request from a handler function
"""

import json

import httpx
import pytest
import pytest_asyncio
from unittest.mock import MagicMock

from campus_map.catalogue import SAMPLE_CATALOGUE_PATH, location_from_record
from campus_map.config import Settings
from campus_map.models import Location, Viewport

# Seconds returned by the fake directions backend per profile
FAKE_DURATIONS = {"walking": 360.0, "cycling": 150.0, "driving": 100.0}


@pytest.fixture
def campus_locations() -> list[Location]:
    """
    Provide the 12 bundled campus locations.

    They span roughly 0.003 degrees of latitude and longitude around
    (40.758, -73.985), so they collapse into one cluster when zoomed out
    and are all separate leaves at zoom 18.
    """
    with open(SAMPLE_CATALOGUE_PATH, encoding="utf-8") as f:
        return [location_from_record(record) for record in json.load(f)]


@pytest.fixture
def catalogue(campus_locations) -> dict[str, Location]:
    """Location id -> Location for the bundled campus."""
    return {location.id: location for location in campus_locations}


@pytest.fixture
def campus_viewport() -> Viewport:
    """Viewport framing the whole campus at street level."""
    return Viewport(west=-73.99, south=40.755, east=-73.98, north=40.762, zoom=16)


@pytest.fixture
def mock_renderer(campus_viewport) -> MagicMock:
    """
    Create a mock renderer that records every drawing call.

    get_viewport returns ``campus_viewport``; all other methods are plain
    MagicMocks, so tests can inspect call order via ``mock_calls``.

    Example:
        def test_fly(mock_renderer):
            session.on_marker_click("main-library")
            mock_renderer.fly_to.assert_called_once_with(-73.9851, 40.7589, 18)
    """
    renderer = MagicMock()
    renderer.get_viewport.return_value = campus_viewport
    return renderer


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the developer's environment."""
    return Settings(routing_token="test-token")


@pytest.fixture
def mock_catalogue_provider(campus_locations) -> MagicMock:
    """Catalogue provider returning the bundled campus."""
    provider = MagicMock()
    provider.list_locations.return_value = campus_locations
    return provider


@pytest.fixture
def mock_credential_provider() -> MagicMock:
    """Credential provider that has a routing token."""
    provider = MagicMock()
    provider.get_routing_token.return_value = "test-token"
    return provider


def directions_response(profile: str, lon0=-73.99, lat0=40.75, lon1=-73.985, lat1=40.759) -> dict:
    """Minimal Mapbox Directions API body with one route."""
    return {
        "code": "Ok",
        "routes": [
            {
                "duration": FAKE_DURATIONS[profile],
                "distance": 1200.0,
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[lon0, lat0], [(lon0 + lon1) / 2, lat0], [lon1, lat1]],
                },
            }
        ],
    }


def profile_from_request(request: httpx.Request) -> str:
    """Pull 'walking'/'cycling'/'driving' out of a directions URL."""
    return request.url.path.split("/")[4]


@pytest.fixture
def directions_handler():
    """
    Handler for httpx.MockTransport that answers every profile successfully.

    Requests are recorded on ``handler.requests``.
    """
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=directions_response(profile_from_request(request)))

    handler.requests = requests
    return handler


@pytest_asyncio.fixture
async def http_client(directions_handler):
    """AsyncClient wired to ``directions_handler``, closed after the test."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(directions_handler))
    yield client
    await client.aclose()
