"""Campus Map - Clustered campus locations, live follow mode and routing."""

from campus_map.follow import FollowController
from campus_map.models import Cluster, Leaf, Location, Viewport
from campus_map.projector import project
from campus_map.reconciler import MarkerReconciler
from campus_map.routing import RoutingAggregator
from campus_map.session import Session
from campus_map.spatial_index import SpatialIndex

__all__ = [
    "Cluster",
    "FollowController",
    "Leaf",
    "Location",
    "MarkerReconciler",
    "RoutingAggregator",
    "Session",
    "SpatialIndex",
    "Viewport",
    "project",
]
