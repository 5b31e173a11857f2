"""Turn index query results into renderable marker specs."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from campus_map.errors import UnknownCategoryError
from campus_map.models import (
    Category,
    Cluster,
    ClusterNode,
    Location,
    MarkerKind,
    MarkerVisual,
    Position,
    RenderSpec,
    SharedLocation,
)

logger = logging.getLogger(__name__)

# Campus palette
CAMPUS_BLUE = "#3b82f6"
CAMPUS_ORANGE = "#f97316"
CAMPUS_GREEN = "#16a34a"
CAMPUS_PURPLE = "#9333ea"
CLUSTER_COLOR = "#6366f1"
NEUTRAL_COLOR = "#6b7280"

# Marker sizes in pixels: (desktop, mobile)
LEAF_SIZE = (28, 20)
CLUSTER_SIZE = (40, 30)
USER_MARKER_SIZE = 28

CLUSTER_KEY_PREFIX = "cluster:"
USER_MARKER_KEY = "user"
SHARED_MARKER_KEY = "shared"


@dataclass(frozen=True)
class CategoryStyle:
    color: str
    icon: str
    initials: str


CATEGORY_STYLES: dict[Category, CategoryStyle] = {
    Category.ACADEMIC: CategoryStyle(CAMPUS_BLUE, "graduation-cap", "A"),
    Category.STUDENT_SERVICES: CategoryStyle(CAMPUS_ORANGE, "users", "SS"),
    Category.DINING: CategoryStyle(CAMPUS_ORANGE, "coffee", "D"),
    Category.HOUSING: CategoryStyle(CAMPUS_GREEN, "home", "H"),
    Category.RECREATION: CategoryStyle(CAMPUS_PURPLE, "dumbbell", "R"),
    Category.ADMINISTRATIVE: CategoryStyle(CAMPUS_BLUE, "building", "AS"),
    Category.SERVICES: CategoryStyle(CAMPUS_GREEN, "file-text", "S"),
}

NEUTRAL_STYLE = CategoryStyle(NEUTRAL_COLOR, "map-pin", "?")


def cluster_key(cluster: Cluster) -> str:
    return f"{CLUSTER_KEY_PREFIX}{cluster.id}"


def category_style(category: Category | str, strict: bool = False) -> CategoryStyle:
    """
    Look up the visual style for a category.

    Args:
        category: Category enum member or raw category string
        strict: Raise on unknown categories instead of falling back

    Raises:
        UnknownCategoryError: If strict and the category has no style
    """
    style = CATEGORY_STYLES.get(Category.parse(category))
    if style is not None:
        return style
    if strict:
        raise UnknownCategoryError(f"No visual for category {category!r}")
    logger.warning(f"Unknown category {category!r}, using neutral marker")
    return NEUTRAL_STYLE


def leaf_visual(location: Location, mobile: bool = False, strict: bool = False) -> MarkerVisual:
    style = category_style(location.category, strict=strict)
    return MarkerVisual(
        color=style.color,
        size=LEAF_SIZE[1] if mobile else LEAF_SIZE[0],
        icon=style.icon,
        initials=style.initials,
        label=location.name,
        show_label=not mobile,  # labels clutter narrow screens
    )


def cluster_visual(cluster: Cluster, mobile: bool = False) -> MarkerVisual:
    return MarkerVisual(
        color=CLUSTER_COLOR,
        size=CLUSTER_SIZE[1] if mobile else CLUSTER_SIZE[0],
        label=str(cluster.point_count),
    )


def project(
    nodes: Sequence[ClusterNode],
    catalogue: Mapping[str, Location],
    *,
    mobile: bool = False,
    strict: bool = False,
) -> list[RenderSpec]:
    """
    Pair every cluster node with its visual.

    Args:
        nodes: Output of SpatialIndex.query
        catalogue: Location id -> Location for the indexed point set
        mobile: Use the narrow-display marker sizes
        strict: Raise on unknown categories (development mode)

    Returns:
        RenderSpecs in node order. Leaves whose location is missing from the
        catalogue are skipped.
    """
    specs: list[RenderSpec] = []

    for node in nodes:
        if isinstance(node, Cluster):
            specs.append(
                RenderSpec(
                    key=cluster_key(node),
                    kind=MarkerKind.CLUSTER,
                    lon=node.lon,
                    lat=node.lat,
                    visual=cluster_visual(node, mobile=mobile),
                    node=node,
                )
            )
            continue

        location = catalogue.get(node.location_id)
        if location is None:
            logger.warning(f"Leaf {node.location_id!r} not in catalogue, skipping")
            continue

        specs.append(
            RenderSpec(
                key=node.location_id,
                kind=MarkerKind.LEAF,
                lon=node.lon,
                lat=node.lat,
                visual=leaf_visual(location, mobile=mobile, strict=strict),
                node=node,
            )
        )

    return specs


def user_marker_spec(position: Position) -> RenderSpec:
    """The viewer's own "Me" marker."""
    return RenderSpec(
        key=USER_MARKER_KEY,
        kind=MarkerKind.USER,
        lon=position.lon,
        lat=position.lat,
        visual=MarkerVisual(color=CAMPUS_BLUE, size=USER_MARKER_SIZE, icon="circle", label="Me"),
    )


def shared_marker_spec(shared: SharedLocation) -> RenderSpec:
    return RenderSpec(
        key=SHARED_MARKER_KEY,
        kind=MarkerKind.SHARED,
        lon=shared.lon,
        lat=shared.lat,
        visual=MarkerVisual(
            color=CAMPUS_GREEN, size=USER_MARKER_SIZE, icon="circle", label="Friend's Location"
        ),
    )
