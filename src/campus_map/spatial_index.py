"""
Hierarchical point clustering for the campus map.

The index is built once per catalogue load. Each zoom level holds a
partition of the level below it: walking from the deepest zoom upward,
every node absorbs the not-yet-visited nodes that lie within the
clustering radius (measured in screen pixels at that zoom). Queries are
plain range scans over one precomputed level, so panning and zooming
never redo any clustering work.
"""

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import numpy as np

from campus_map.config import DEFAULT_CLUSTER_RADIUS, DEFAULT_MAX_ZOOM
from campus_map.errors import InputRejected
from campus_map.models import Cluster, ClusterNode, Leaf, Location, validate_coordinates

logger = logging.getLogger(__name__)

# Tile extent used to convert the pixel radius into unit Mercator space
DEFAULT_EXTENT = 512


def lng_x(lng: np.ndarray | float) -> np.ndarray | float:
    """Longitude to spherical Mercator x in [0, 1]."""
    return np.asarray(lng, dtype=np.float64) / 360.0 + 0.5


def lat_y(lat: np.ndarray | float) -> np.ndarray | float:
    """Latitude to spherical Mercator y in [0, 1] (0 is north)."""
    sin = np.sin(np.asarray(lat, dtype=np.float64) * math.pi / 180.0)
    with np.errstate(divide="ignore"):
        y = 0.5 - 0.25 * np.log((1 + sin) / (1 - sin)) / math.pi
    return np.clip(y, 0.0, 1.0)


def x_lng(x: float) -> float:
    return (x - 0.5) * 360.0


def y_lat(y: float) -> float:
    y2 = (180.0 - y * 360.0) * math.pi / 180.0
    return 360.0 * math.atan(math.exp(y2)) / math.pi - 90.0


@dataclass
class _Level:
    """
    Nodes of one zoom level, stored column-wise for vectorised range scans.

    ``refs`` holds a point index for leaves and a cluster id for clusters;
    ``is_cluster`` tells which.
    """

    x: np.ndarray
    y: np.ndarray
    counts: np.ndarray
    refs: np.ndarray
    is_cluster: np.ndarray

    def __len__(self) -> int:
        return len(self.x)


@dataclass
class _ClusterRecord:
    id: int
    zoom: int  # level at which the cluster was formed
    x: float
    y: float
    point_count: int
    children: list[tuple[bool, int]] = field(default_factory=list)


class SpatialIndex:
    """
    Immutable zoom-level cluster index over a set of locations.

    Build with ``SpatialIndex.build(points)``; rebuild to reflect any
    catalogue change.

    Attributes:
        radius: Clustering radius in pixels
        min_zoom: Shallowest zoom level that is clustered
        max_zoom: Deepest zoom level that is clustered; at ``max_zoom + 1``
            every location is a leaf
        extent: Tile extent (pixels) the radius is measured against
    """

    def __init__(
        self,
        location_ids: list[str],
        lons: np.ndarray,
        lats: np.ndarray,
        radius: int,
        min_zoom: int,
        max_zoom: int,
        extent: int,
    ) -> None:
        self.radius = radius
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.extent = extent

        self._location_ids = location_ids
        self._lons = lons
        self._lats = lats
        self._clusters: dict[int, _ClusterRecord] = {}
        self._levels: dict[int, _Level] = {}

        self._build_levels()

    @classmethod
    def build(
        cls,
        points: Iterable[Location],
        radius: int = DEFAULT_CLUSTER_RADIUS,
        max_zoom: int = DEFAULT_MAX_ZOOM,
        min_zoom: int = 0,
        extent: int = DEFAULT_EXTENT,
    ) -> "SpatialIndex":
        """
        Build the index for a point set.

        Args:
            points: Locations to index (order determines cluster seeding)
            radius: Merge distance in pixels at each zoom
            max_zoom: Deepest zoom level to cluster
            min_zoom: Shallowest zoom level to cluster
            extent: Tile extent the radius is relative to

        Returns:
            A built, read-only SpatialIndex

        Raises:
            InputRejected: If any location has malformed coordinates or a
                duplicate id, or if the parameters are out of range
        """
        if radius <= 0:
            raise InputRejected(f"radius must be positive, got {radius}")
        if not 0 <= min_zoom <= max_zoom:
            raise InputRejected(f"invalid zoom range [{min_zoom}, {max_zoom}]")

        location_ids: list[str] = []
        lons: list[float] = []
        lats: list[float] = []
        seen: set[str] = set()

        for location in points:
            validate_coordinates(location.lat, location.lon, what=f"location {location.id!r}")
            if location.id in seen:
                raise InputRejected(f"duplicate location id {location.id!r}")
            seen.add(location.id)
            location_ids.append(location.id)
            lons.append(float(location.lon))
            lats.append(float(location.lat))

        index = cls(
            location_ids,
            np.array(lons, dtype=np.float64),
            np.array(lats, dtype=np.float64),
            radius=radius,
            min_zoom=min_zoom,
            max_zoom=max_zoom,
            extent=extent,
        )
        logger.info(
            f"Built spatial index: {len(location_ids)} points, radius={radius}px, "
            f"zooms {min_zoom}-{max_zoom}, {len(index._clusters)} clusters"
        )
        return index

    def __len__(self) -> int:
        return len(self._location_ids)

    def _build_levels(self) -> None:
        n = len(self._location_ids)
        level = _Level(
            x=lng_x(self._lons),
            y=lat_y(self._lats),
            counts=np.ones(n, dtype=np.int64),
            refs=np.arange(n, dtype=np.int64),
            is_cluster=np.zeros(n, dtype=bool),
        )
        self._levels[self.max_zoom + 1] = level

        for zoom in range(self.max_zoom, self.min_zoom - 1, -1):
            level = self._cluster_level(level, zoom)
            self._levels[zoom] = level
            logger.debug(f"Zoom {zoom}: {len(level)} nodes")

    def _cluster_level(self, previous: _Level, zoom: int) -> _Level:
        """Merge the nodes of ``previous`` (zoom + 1) into the nodes of ``zoom``."""
        r = self.radius / (self.extent * 2 ** zoom)
        n = len(previous)

        # Uniform grid with cell size r: any neighbour within r of a node
        # lies in the 3x3 block of cells around it.
        cell_x = np.floor(previous.x / r).astype(np.int64).tolist()
        cell_y = np.floor(previous.y / r).astype(np.int64).tolist()
        cells: dict[tuple[int, int], list[int]] = defaultdict(list)
        for i in range(n):
            cells[(cell_x[i], cell_y[i])].append(i)

        visited = np.zeros(n, dtype=bool)
        xs: list[float] = []
        ys: list[float] = []
        counts: list[int] = []
        refs: list[int] = []
        is_cluster: list[bool] = []
        r2 = r * r

        for i in range(n):
            if visited[i]:
                continue
            visited[i] = True

            px = float(previous.x[i])
            py = float(previous.y[i])
            members = [i]
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    for j in cells.get((cell_x[i] + dx, cell_y[i] + dy), ()):
                        if visited[j]:
                            continue
                        ddx = float(previous.x[j]) - px
                        ddy = float(previous.y[j]) - py
                        if ddx * ddx + ddy * ddy <= r2:
                            visited[j] = True
                            members.append(j)

            if len(members) == 1:
                # Nothing nearby: carry the node up unchanged
                xs.append(px)
                ys.append(py)
                counts.append(int(previous.counts[i]))
                refs.append(int(previous.refs[i]))
                is_cluster.append(bool(previous.is_cluster[i]))
                continue

            # Members are visited in level order, so the children list and
            # the centroid are deterministic for a given input order.
            members.sort()
            weights = previous.counts[members]
            total = int(weights.sum())
            cx = float(np.dot(previous.x[members], weights) / total)
            cy = float(np.dot(previous.y[members], weights) / total)

            cluster_id = len(self._clusters)
            self._clusters[cluster_id] = _ClusterRecord(
                id=cluster_id,
                zoom=zoom,
                x=cx,
                y=cy,
                point_count=total,
                children=[
                    (bool(previous.is_cluster[m]), int(previous.refs[m])) for m in members
                ],
            )
            xs.append(cx)
            ys.append(cy)
            counts.append(total)
            refs.append(cluster_id)
            is_cluster.append(True)

        return _Level(
            x=np.array(xs, dtype=np.float64),
            y=np.array(ys, dtype=np.float64),
            counts=np.array(counts, dtype=np.int64),
            refs=np.array(refs, dtype=np.int64),
            is_cluster=np.array(is_cluster, dtype=bool),
        )

    def _limit_zoom(self, zoom: float) -> int:
        return max(self.min_zoom, min(int(math.floor(zoom)), self.max_zoom + 1))

    def query(
        self,
        bbox: Sequence[float],
        zoom: float,
    ) -> list[ClusterNode]:
        """
        Return the clusters and leaves visible in a bounding box at a zoom.

        Args:
            bbox: (west, south, east, north) in degrees. A longitude span of
                360 or more covers the whole world; west > east crosses the
                antimeridian.
            zoom: Map zoom; floored and clamped to [min_zoom, max_zoom + 1]

        Returns:
            Nodes in level order; identical input gives identical output
        """
        west, south, east, north = (float(v) for v in bbox)
        if not all(math.isfinite(v) for v in (west, south, east, north)):
            raise InputRejected(f"bbox must be finite, got {tuple(bbox)}")

        min_lat = max(-90.0, min(90.0, south))
        max_lat = max(-90.0, min(90.0, north))
        if east - west >= 360.0:
            min_lng, max_lng = -180.0, 180.0
        else:
            min_lng = ((west + 180.0) % 360.0 + 360.0) % 360.0 - 180.0
            max_lng = 180.0 if east == 180.0 else ((east + 180.0) % 360.0 + 360.0) % 360.0 - 180.0

        level = self._levels[self._limit_zoom(zoom)]
        if len(level) == 0:
            return []

        y0 = lat_y(max_lat)
        y1 = lat_y(min_lat)
        in_lat = (level.y >= y0) & (level.y <= y1)

        if min_lng > max_lng:
            in_lng = (level.x >= lng_x(min_lng)) | (level.x <= lng_x(max_lng))
        else:
            in_lng = (level.x >= lng_x(min_lng)) & (level.x <= lng_x(max_lng))

        return [self._node(level, int(i)) for i in np.nonzero(in_lat & in_lng)[0]]

    def _node(self, level: _Level, i: int) -> ClusterNode:
        if level.is_cluster[i]:
            return self._cluster_node(int(level.refs[i]))
        return self._leaf_node(int(level.refs[i]))

    def _leaf_node(self, point_index: int) -> Leaf:
        return Leaf(
            lon=float(self._lons[point_index]),
            lat=float(self._lats[point_index]),
            location_id=self._location_ids[point_index],
        )

    def _cluster_node(self, cluster_id: int) -> Cluster:
        record = self._clusters[cluster_id]
        return Cluster(
            id=record.id,
            lon=x_lng(record.x),
            lat=y_lat(record.y),
            point_count=record.point_count,
            expansion_zoom=self._expansion_zoom(record),
        )

    def _expansion_zoom(self, record: _ClusterRecord) -> int:
        # A cluster always has >= 2 children one level deeper than where it formed
        return min(record.zoom + 1, self.max_zoom + 1)

    def _record(self, cluster_id: int) -> _ClusterRecord:
        try:
            return self._clusters[cluster_id]
        except KeyError:
            raise KeyError(f"No cluster with id {cluster_id}") from None

    def get_cluster_expansion_zoom(self, cluster_id: int) -> int:
        """Minimum zoom at which the given cluster splits into >= 2 nodes."""
        return self._expansion_zoom(self._record(cluster_id))

    def get_children(self, cluster_id: int) -> list[ClusterNode]:
        """Nodes the cluster splits into at its expansion zoom."""
        record = self._record(cluster_id)
        return [
            self._cluster_node(ref) if is_cluster else self._leaf_node(ref)
            for is_cluster, ref in record.children
        ]

    def get_leaves(
        self, cluster_id: int, limit: int | None = 10, offset: int = 0
    ) -> list[Leaf]:
        """
        Return the locations inside a cluster, depth first.

        Args:
            cluster_id: Cluster to expand
            limit: Maximum number of leaves to return (None for all)
            offset: Number of leaves to skip
        """
        leaves: list[Leaf] = []
        stack = list(reversed(self._record(cluster_id).children))
        skipped = 0

        while stack:
            is_cluster, ref = stack.pop()
            if is_cluster:
                stack.extend(reversed(self._clusters[ref].children))
                continue
            if skipped < offset:
                skipped += 1
                continue
            leaves.append(self._leaf_node(ref))
            if limit is not None and len(leaves) >= limit:
                break

        return leaves
