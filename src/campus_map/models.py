"""Data model shared by the clustering, follow and routing components."""

import math
from dataclasses import dataclass, field
from enum import Enum

from campus_map.errors import InputRejected


class Category(str, Enum):
    """Campus location categories with a fixed visual."""

    ACADEMIC = "academic"
    STUDENT_SERVICES = "student-services"
    DINING = "dining"
    HOUSING = "housing"
    RECREATION = "recreation"
    ADMINISTRATIVE = "administrative"
    SERVICES = "services"

    @classmethod
    def parse(cls, value: str) -> "Category | str":
        """Return the matching Category, or the raw string if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return value


@dataclass(frozen=True)
class Location:
    """A point of interest from the campus catalogue."""

    id: str
    name: str
    category: Category | str
    lat: float
    lon: float
    description: str | None = None


@dataclass(frozen=True)
class Viewport:
    """Visible region reported by the renderer on every camera move."""

    west: float
    south: float
    east: float
    north: float
    zoom: int

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)


@dataclass(frozen=True)
class Cluster:
    """Aggregate of two or more nearby points at a given zoom."""

    id: int
    lon: float
    lat: float
    point_count: int
    expansion_zoom: int


@dataclass(frozen=True)
class Leaf:
    """A single unclustered location."""

    lon: float
    lat: float
    location_id: str


ClusterNode = Cluster | Leaf


class MarkerKind(str, Enum):
    LEAF = "leaf"
    CLUSTER = "cluster"
    USER = "user"
    SHARED = "shared"


@dataclass(frozen=True)
class MarkerVisual:
    """
    Everything the renderer needs to draw a marker.

    Attributes:
        color: CSS colour of the blip or badge
        size: Marker diameter in pixels
        icon: Icon glyph name (empty for badges)
        initials: Short text fallback when the icon cannot be drawn
        label: Text shown next to (leaf) or inside (cluster) the marker
        show_label: Whether the label is drawn at all
    """

    color: str
    size: int
    icon: str = ""
    initials: str = ""
    label: str = ""
    show_label: bool = True


@dataclass(frozen=True)
class RenderSpec:
    """A ClusterNode (or overlay point) paired with its visual."""

    key: str
    kind: MarkerKind
    lon: float
    lat: float
    visual: MarkerVisual
    node: ClusterNode | None = None


@dataclass(frozen=True)
class RenderedMarker:
    """A marker currently drawn by the renderer, owned by the reconciler."""

    key: str
    lon: float
    lat: float
    kind: MarkerKind
    visual: MarkerVisual

    @classmethod
    def from_spec(cls, spec: RenderSpec) -> "RenderedMarker":
        return cls(
            key=spec.key,
            lon=spec.lon,
            lat=spec.lat,
            kind=spec.kind,
            visual=spec.visual,
        )


class FollowState(str, Enum):
    FOLLOWING = "following"
    MANUAL = "manual"


class Profile(str, Enum):
    """Routing travel profiles, in the order results are reported."""

    WALK = "walk"
    CYCLE = "cycle"
    DRIVE = "drive"

    @property
    def backend_name(self) -> str:
        return _BACKEND_NAMES[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()


_BACKEND_NAMES = {
    Profile.WALK: "walking",
    Profile.CYCLE: "cycling",
    Profile.DRIVE: "driving",
}


@dataclass(frozen=True)
class RouteResult:
    profile: Profile
    duration_minutes: int | None


@dataclass(frozen=True)
class RouteGeometry:
    """Route line returned by the directions backend."""

    profile: Profile
    coordinates: tuple[tuple[float, float], ...]  # (lon, lat) pairs
    duration_seconds: float

    def bounds(self) -> tuple[float, float, float, float]:
        """Return (west, south, east, north) covering every coordinate."""
        lons = [lon for lon, _ in self.coordinates]
        lats = [lat for _, lat in self.coordinates]
        return (min(lons), min(lats), max(lons), max(lats))


@dataclass(frozen=True)
class RouteFailure:
    profile: Profile
    reason: str


@dataclass(frozen=True)
class SharedLocation:
    """One-shot location snapshot decoded from a deep link."""

    lat: float
    lon: float


@dataclass(frozen=True)
class Position:
    """A live position sample."""

    lat: float
    lon: float
    timestamp: float = field(default=0.0, compare=False)


def validate_coordinates(lat: float, lon: float, what: str = "point") -> None:
    """
    Reject non-finite or out-of-range coordinates.

    Raises:
        InputRejected: If lat is outside [-90, 90], lon outside [-180, 180],
            or either is NaN/infinite
    """
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError) as e:
        raise InputRejected(f"{what}: coordinates are not numbers ({e})") from e

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InputRejected(f"{what}: coordinates must be finite, got ({lat}, {lon})")
    if not -90.0 <= lat <= 90.0:
        raise InputRejected(f"{what}: latitude {lat} outside [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InputRejected(f"{what}: longitude {lon} outside [-180, 180]")
