"""Key-based diffing of rendered markers against freshly projected specs."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from campus_map.models import RenderedMarker, RenderSpec

if TYPE_CHECKING:
    from campus_map.renderer import Renderer

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    """
    Instructions that turn the previous marker set into the next one.

    Attributes:
        to_create: Specs whose key was not rendered before
        to_update: Specs whose key is already rendered (moved/restyled in place)
        to_remove: Keys rendered before but absent from the next set
    """

    to_create: list[RenderSpec] = field(default_factory=list)
    to_update: list[RenderSpec] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_remove)


def diff(
    previous: Mapping[str, RenderedMarker],
    next_specs: Iterable[RenderSpec],
) -> ReconcilePlan:
    """
    Compare the rendered set with the next specs by key.

    Runs in O(|previous| + |next|). If ``next_specs`` repeats a key, the
    first occurrence wins.

    Args:
        previous: Currently rendered markers, keyed by marker key
        next_specs: Specs that should be rendered after this step

    Returns:
        A ReconcilePlan whose three key sets are pairwise disjoint
    """
    plan = ReconcilePlan()
    seen: set[str] = set()

    for spec in next_specs:
        if spec.key in seen:
            logger.warning(f"Duplicate marker key {spec.key!r} ignored")
            continue
        seen.add(spec.key)

        if spec.key in previous:
            plan.to_update.append(spec)
        else:
            plan.to_create.append(spec)

    plan.to_remove = [key for key in previous if key not in seen]
    return plan


def _unchanged(marker: RenderedMarker, spec: RenderSpec) -> bool:
    return (
        marker.lon == spec.lon
        and marker.lat == spec.lat
        and marker.kind == spec.kind
        and marker.visual == spec.visual
    )


class MarkerReconciler:
    """
    Sole owner of the markers drawn on the renderer.

    Every renderer-side marker handle is created and destroyed through
    ``reconcile`` or ``clear``; nothing else touches them.
    """

    def __init__(self) -> None:
        self._markers: dict[str, RenderedMarker] = {}

    @property
    def markers(self) -> Mapping[str, RenderedMarker]:
        """Read-only view of the currently rendered markers."""
        return dict(self._markers)

    def __len__(self) -> int:
        return len(self._markers)

    def __contains__(self, key: str) -> bool:
        return key in self._markers

    def reconcile(self, next_specs: Iterable[RenderSpec], renderer: "Renderer") -> ReconcilePlan:
        """
        Bring the renderer in line with ``next_specs``.

        Removals are applied before any marker is attached so a freed
        screen position is never drawn twice. Updates whose position and
        visual are unchanged cause no renderer call.

        Args:
            next_specs: Full set of markers that should be visible
            renderer: Renderer to apply the instructions to

        Returns:
            The plan that was applied
        """
        plan = diff(self._markers, next_specs)

        for key in plan.to_remove:
            renderer.remove_marker(key)
            del self._markers[key]

        for spec in plan.to_update:
            if _unchanged(self._markers[spec.key], spec):
                continue
            renderer.set_marker(spec.key, spec.lon, spec.lat, spec.visual)
            self._markers[spec.key] = RenderedMarker.from_spec(spec)

        for spec in plan.to_create:
            renderer.set_marker(spec.key, spec.lon, spec.lat, spec.visual)
            self._markers[spec.key] = RenderedMarker.from_spec(spec)

        logger.debug(
            f"Reconciled markers: +{len(plan.to_create)} ~{len(plan.to_update)} "
            f"-{len(plan.to_remove)} (now {len(self._markers)})"
        )
        return plan

    def clear(self, renderer: "Renderer") -> None:
        """Remove every owned marker from the renderer."""
        for key in list(self._markers):
            renderer.remove_marker(key)
        self._markers.clear()
