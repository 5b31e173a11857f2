"""Renderer capability and a Plotly-based implementation of it."""

import logging
import math
from typing import Protocol

import plotly.graph_objects as go

from campus_map.config import DEFAULT_CENTER, DEFAULT_ZOOM
from campus_map.models import MarkerVisual, RouteGeometry, Viewport
from campus_map.projector import (
    CAMPUS_BLUE,
    CAMPUS_GREEN,
    CAMPUS_ORANGE,
    CAMPUS_PURPLE,
    CLUSTER_KEY_PREFIX,
    NEUTRAL_COLOR,
    SHARED_MARKER_KEY,
    USER_MARKER_KEY,
)
from campus_map.spatial_index import lat_y, x_lng, y_lat

logger = logging.getLogger(__name__)

# MapLibre tiles are 512px, so the world is 512 * 2**zoom pixels wide
TILE_SIZE = 512
MAX_CAMERA_ZOOM = 22

MAP_STYLES = {
    "street": "open-street-map",
    "light": "carto-positron",
    "dark": "carto-darkmatter",
}

ROUTE_COLOR = "#3b82f6"
ROUTE_WIDTH = 6

LEGEND_NAMES = {
    CAMPUS_BLUE: "Academic / Administrative",
    CAMPUS_ORANGE: "Student services / Dining",
    CAMPUS_GREEN: "Housing / Services",
    CAMPUS_PURPLE: "Recreation",
    NEUTRAL_COLOR: "Other",
}


class Renderer(Protocol):
    """
    What the core needs from a map surface.

    The core only ever draws points with a visual, moves the camera and
    draws a single route overlay; it asks the surface for the visible
    region and zoom.
    """

    def get_viewport(self) -> Viewport: ...

    def set_marker(self, key: str, lon: float, lat: float, visual: MarkerVisual) -> None: ...

    def remove_marker(self, key: str) -> None: ...

    def fly_to(self, lon: float, lat: float, zoom: float) -> None: ...

    def fit_bounds(self, bbox: tuple[float, float, float, float], padding: int) -> None: ...

    def set_route_overlay(self, geometry: RouteGeometry | None) -> None: ...


class PlotlyRenderer:
    """
    Renderer that keeps the drawn state in memory and turns it into a
    Plotly map figure on demand.

    Attributes:
        width_px: Display width in pixels (drives the viewport extent)
        height_px: Display height in pixels
        center: Camera centre as (lon, lat)
        zoom: Camera zoom (fractional)
        markers: key -> (lon, lat, visual) for every drawn marker
        route: Current route overlay, if any
    """

    def __init__(
        self,
        width_px: int = 1280,
        height_px: int = 800,
        center: tuple[float, float] = DEFAULT_CENTER,
        zoom: float = DEFAULT_ZOOM,
        style: str = "street",
    ) -> None:
        self.width_px = width_px
        self.height_px = height_px
        self.center = center
        self.zoom = float(zoom)
        self.style = style
        self.markers: dict[str, tuple[float, float, MarkerVisual]] = {}
        self.route: RouteGeometry | None = None

    def get_viewport(self) -> Viewport:
        """Compute the visible bounding box from camera and display size."""
        world_px = TILE_SIZE * 2 ** self.zoom
        lon, lat = self.center
        half_lon = (self.width_px / 2) / world_px * 360.0
        cy = float(lat_y(lat))
        half_y = (self.height_px / 2) / world_px

        return Viewport(
            west=max(-180.0, lon - half_lon),
            south=y_lat(min(1.0, cy + half_y)),
            east=min(180.0, lon + half_lon),
            north=y_lat(max(0.0, cy - half_y)),
            zoom=int(round(self.zoom)),
        )

    def set_marker(self, key: str, lon: float, lat: float, visual: MarkerVisual) -> None:
        self.markers[key] = (lon, lat, visual)

    def remove_marker(self, key: str) -> None:
        if self.markers.pop(key, None) is None:
            logger.warning(f"remove_marker: {key!r} was not drawn")

    def fly_to(self, lon: float, lat: float, zoom: float) -> None:
        logger.debug(f"Camera fly_to ({lon:.5f}, {lat:.5f}) z{zoom}")
        self.center = (lon, lat)
        self.zoom = float(zoom)

    def fit_bounds(self, bbox: tuple[float, float, float, float], padding: int) -> None:
        """Centre on the bbox and pick the largest zoom that shows all of it."""
        west, south, east, north = bbox
        x0, x1 = (west + 180.0) / 360.0, (east + 180.0) / 360.0
        y0, y1 = float(lat_y(north)), float(lat_y(south))

        usable_w = max(1, self.width_px - 2 * padding)
        usable_h = max(1, self.height_px - 2 * padding)
        zooms = []
        if x1 > x0:
            zooms.append(math.log2(usable_w / ((x1 - x0) * TILE_SIZE)))
        if y1 > y0:
            zooms.append(math.log2(usable_h / ((y1 - y0) * TILE_SIZE)))
        zoom = min(zooms) if zooms else MAX_CAMERA_ZOOM

        self.center = (x_lng((x0 + x1) / 2), y_lat((y0 + y1) / 2))
        self.zoom = max(0.0, min(zoom, MAX_CAMERA_ZOOM))
        logger.debug(f"Camera fit_bounds {bbox} padding={padding} -> z{self.zoom:.2f}")

    def set_route_overlay(self, geometry: RouteGeometry | None) -> None:
        self.route = geometry

    def to_figure(self, title: str = "Campus Map") -> go.Figure:
        """
        Build an interactive Plotly map of the current drawn state.

        Args:
            title: Figure title

        Returns:
            Plotly Figure object ready for display
        """
        fig = go.Figure()

        # Route first so markers draw on top of it
        if self.route is not None:
            _add_route_to_figure(fig, self.route)

        # One trace per legend group keeps the legend readable
        groups: dict[str, list[tuple[str, float, float, MarkerVisual]]] = {}
        badges: list[tuple[str, float, float, MarkerVisual]] = []
        for key, (lon, lat, visual) in self.markers.items():
            if key.startswith(CLUSTER_KEY_PREFIX):
                badges.append((key, lon, lat, visual))
            elif key in (USER_MARKER_KEY, SHARED_MARKER_KEY):
                groups.setdefault(visual.label or key, []).append((key, lon, lat, visual))
            else:
                group = LEGEND_NAMES.get(visual.color, visual.color)
                groups.setdefault(group, []).append((key, lon, lat, visual))

        for name, entries in groups.items():
            _add_markers_to_figure(fig, entries, name)

        if badges:
            _add_cluster_badges_to_figure(fig, badges)

        fig.update_layout(
            title=title,
            map=dict(
                style=MAP_STYLES.get(self.style, self.style),
                center=dict(lon=self.center[0], lat=self.center[1]),
                zoom=self.zoom,
            ),
            width=self.width_px,
            height=self.height_px,
            showlegend=True,
            legend=dict(
                yanchor="top",
                y=0.99,
                xanchor="left",
                x=0.01,
                itemclick="toggle",
                itemdoubleclick="toggleothers",
            ),
            margin=dict(l=0, r=0, t=80, b=0),
            updatemenus=_create_style_buttons(),
        )
        return fig


def _create_style_buttons() -> list[dict]:
    """Dropdown for switching between the street, light and dark basemaps."""
    buttons = [
        dict(
            label=name.capitalize(),
            method="relayout",
            args=[{"map.style": style}],
        )
        for name, style in MAP_STYLES.items()
    ]
    return [
        dict(
            type="dropdown",
            direction="down",
            buttons=buttons,
            pad={"r": 10, "t": 10},
            showactive=True,
            x=0.0,
            xanchor="left",
            y=1.1,
            yanchor="top",
        )
    ]


def _add_markers_to_figure(
    fig: go.Figure,
    entries: list[tuple[str, float, float, MarkerVisual]],
    name: str,
) -> None:
    """Add one legend group of location, user or shared markers."""
    labels = [visual.label if visual.show_label else "" for _, _, _, visual in entries]
    show_text = any(labels)

    hover_texts = []
    for key, lon, lat, visual in entries:
        text = f"<b>{visual.label or key}</b><br>"
        if visual.icon:
            text += f"Icon: {visual.icon} ({visual.initials or '-'})<br>"
        text += f"Position: ({lat:.5f}, {lon:.5f})"
        hover_texts.append(text)

    fig.add_trace(
        go.Scattermap(
            lon=[lon for _, lon, _, _ in entries],
            lat=[lat for _, _, lat, _ in entries],
            mode="markers+text" if show_text else "markers",
            marker=dict(
                size=[visual.size for _, _, _, visual in entries],
                color=[visual.color for _, _, _, visual in entries],
                opacity=0.9,
            ),
            text=labels,
            textposition="top center",
            hovertext=hover_texts,
            hoverinfo="text",
            customdata=[key for key, _, _, _ in entries],
            name=name,
        )
    )


def _add_cluster_badges_to_figure(
    fig: go.Figure,
    badges: list[tuple[str, float, float, MarkerVisual]],
) -> None:
    """Add count badges for clusters."""
    fig.add_trace(
        go.Scattermap(
            lon=[lon for _, lon, _, _ in badges],
            lat=[lat for _, _, lat, _ in badges],
            mode="markers+text",
            marker=dict(
                size=[visual.size for _, _, _, visual in badges],
                color=badges[0][3].color,
                opacity=0.95,
            ),
            text=[visual.label for _, _, _, visual in badges],
            textfont=dict(size=14, color="white"),
            hovertext=[f"<b>{visual.label} locations</b>" for _, _, _, visual in badges],
            hoverinfo="text",
            customdata=[key for key, _, _, _ in badges],
            name="Clusters",
        )
    )


def _add_route_to_figure(fig: go.Figure, route: RouteGeometry) -> None:
    fig.add_trace(
        go.Scattermap(
            lon=[lon for lon, _ in route.coordinates],
            lat=[lat for _, lat in route.coordinates],
            mode="lines",
            line=dict(color=ROUTE_COLOR, width=ROUTE_WIDTH),
            opacity=0.8,
            hoverinfo="skip",
            name=f"Route ({route.profile.label})",
        )
    )


def show_figure(fig: go.Figure) -> None:
    """Display figure in browser."""
    fig.show()


def export_html(fig: go.Figure, output_path: str) -> None:
    """Export figure as standalone HTML file."""
    fig.write_html(output_path, include_plotlyjs=True, full_html=True)
