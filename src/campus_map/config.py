"""Runtime configuration for the campus map, read from the environment."""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Clustering radius in pixels. Narrow displays use the smaller radius so
# individual markers stay visible.
DEFAULT_CLUSTER_RADIUS = 40
DEFAULT_MOBILE_CLUSTER_RADIUS = 20
DEFAULT_MOBILE_WIDTH_PX = 768
DEFAULT_MAX_ZOOM = 18

# Camera constants
FOLLOW_ZOOM = 17
LOCATION_FOCUS_ZOOM = 18
SHARED_LOCATION_ZOOM = 17
ROUTE_FIT_PADDING = 50
SHARED_FIT_PADDING = 80
DEFAULT_CENTER = (-73.9857, 40.7484)  # (lon, lat)
DEFAULT_ZOOM = 16

# Routing backend
DEFAULT_DIRECTIONS_URL = "https://api.mapbox.com"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
TOKEN_ENV_VAR = "MAPBOX_TOKEN"


@dataclass
class Settings:
    """Resolved configuration for one session."""

    routing_token: str | None = None
    cluster_radius: int = DEFAULT_CLUSTER_RADIUS
    mobile_cluster_radius: int = DEFAULT_MOBILE_CLUSTER_RADIUS
    mobile_width_px: int = DEFAULT_MOBILE_WIDTH_PX
    max_zoom: int = DEFAULT_MAX_ZOOM
    directions_url: str = DEFAULT_DIRECTIONS_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    strict: bool = False

    def is_mobile(self, width_px: int | None) -> bool:
        """Whether a display of the given width counts as narrow."""
        return width_px is not None and width_px <= self.mobile_width_px

    def radius_for_width(self, width_px: int | None) -> int:
        """Pick the clustering radius for a display width."""
        if self.is_mobile(width_px):
            return self.mobile_cluster_radius
        return self.cluster_radius


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """
    Build Settings from the environment (and a .env file, if present).

    Returns:
        Settings with every unset variable at its default
    """
    load_dotenv()
    token = os.getenv(TOKEN_ENV_VAR) or None

    return Settings(
        routing_token=token,
        cluster_radius=_env_int("CAMPUS_MAP_CLUSTER_RADIUS", DEFAULT_CLUSTER_RADIUS),
        mobile_cluster_radius=_env_int(
            "CAMPUS_MAP_MOBILE_CLUSTER_RADIUS", DEFAULT_MOBILE_CLUSTER_RADIUS
        ),
        mobile_width_px=_env_int("CAMPUS_MAP_MOBILE_WIDTH", DEFAULT_MOBILE_WIDTH_PX),
        max_zoom=_env_int("CAMPUS_MAP_MAX_ZOOM", DEFAULT_MAX_ZOOM),
        directions_url=os.getenv("CAMPUS_MAP_DIRECTIONS_URL") or DEFAULT_DIRECTIONS_URL,
        request_timeout=_env_float(
            "CAMPUS_MAP_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
        ),
        strict=_env_bool("CAMPUS_MAP_STRICT", False),
    )


class EnvCredentialProvider:
    """Credential provider backed by the MAPBOX_TOKEN environment variable."""

    def get_routing_token(self) -> str | None:
        load_dotenv()
        token = os.getenv(TOKEN_ENV_VAR)
        if not token:
            logger.warning(f"{TOKEN_ENV_VAR} not found in environment variables")
            return None
        return token.strip()
