"""Shared-location deep links and external map links."""

import logging
import math
from collections.abc import Mapping
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from campus_map.errors import InputRejected
from campus_map.models import SharedLocation, validate_coordinates

logger = logging.getLogger(__name__)

SHARED_LAT_PARAM = "sharedLat"
SHARED_LNG_PARAM = "sharedLng"

GOOGLE_MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/"


def _query_params(link: str | Mapping[str, str]) -> dict[str, str]:
    if isinstance(link, Mapping):
        return {key: str(value) for key, value in link.items()}

    # Accept a full URL, "?a=1&b=2" or "a=1&b=2"
    query = urlsplit(link).query if "://" in link else link.lstrip("?")
    return {key: values[0] for key, values in parse_qs(query).items() if values}


def parse_shared_location(link: str | Mapping[str, str]) -> SharedLocation | None:
    """
    Decode a shared location from deep link query parameters.

    Args:
        link: URL, query string, or already-parsed parameter mapping

    Returns:
        SharedLocation if both sharedLat and sharedLng are present, parse as
        finite numbers and are in range; None otherwise
    """
    params = _query_params(link)
    raw_lat = params.get(SHARED_LAT_PARAM)
    raw_lng = params.get(SHARED_LNG_PARAM)
    if raw_lat is None or raw_lng is None:
        return None

    try:
        lat = float(raw_lat)
        lon = float(raw_lng)
    except ValueError:
        logger.warning(f"Ignoring shared location with non-numeric coordinates: {raw_lat!r}, {raw_lng!r}")
        return None

    if not (math.isfinite(lat) and math.isfinite(lon)):
        logger.warning(f"Ignoring shared location with non-finite coordinates: {lat}, {lon}")
        return None

    try:
        validate_coordinates(lat, lon, what="shared location")
    except InputRejected as e:
        logger.warning(f"Ignoring shared location: {e}")
        return None

    return SharedLocation(lat=lat, lon=lon)


def build_share_url(base_url: str, lat: float, lon: float) -> str:
    """
    Build a deep link that shares a position.

    Any existing query string on ``base_url`` is replaced.

    Example:
        >>> build_share_url("https://campus.example/map", 40.7589, -73.9851)
        'https://campus.example/map?sharedLat=40.7589&sharedLng=-73.9851'
    """
    validate_coordinates(lat, lon, what="shared location")
    parts = urlsplit(base_url)
    query = urlencode({SHARED_LAT_PARAM: lat, SHARED_LNG_PARAM: lon})
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))


def external_directions_url(lat: float, lon: float, travelmode: str = "driving") -> str:
    """Directions link for an external maps app (used without a live position)."""
    query = urlencode({"api": 1, "destination": f"{lat},{lon}", "travelmode": travelmode})
    return f"{GOOGLE_MAPS_DIRECTIONS_URL}?{query}"

