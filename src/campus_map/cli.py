"""Command-line interface for the campus map."""

import argparse
import asyncio
import logging
import sys

from campus_map.catalogue import SAMPLE_CATALOGUE_PATH, JsonCatalogue
from campus_map.config import EnvCredentialProvider, load_settings
from campus_map.errors import CampusMapError
from campus_map.logging_config import setup_logging
from campus_map.renderer import MAP_STYLES, PlotlyRenderer, export_html, show_figure
from campus_map.session import Session

logger = logging.getLogger(__name__)


def _float_list(value: str, count: int) -> list[float]:
    parts = value.split(",")
    if len(parts) != count:
        raise argparse.ArgumentTypeError(f"expected {count} comma-separated numbers, got {value!r}")
    try:
        return [float(part) for part in parts]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number in {value!r}") from e


def _bbox(value: str) -> tuple[float, float, float, float]:
    west, south, east, north = _float_list(value, 4)
    return west, south, east, north


def _lat_lon(value: str) -> tuple[float, float]:
    lat, lon = _float_list(value, 2)
    return lat, lon


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Campus Map - Clustered campus locations with live routing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # View the bundled campus catalogue in the browser
  python -m campus_map

  # Phone-sized display zoomed out over the campus
  python -m campus_map locations.json --width 390 --zoom 14

  # Route from a position to a location and export the map
  python -m campus_map --position 40.7505,-73.9934 --route-to main-library --export map.html

  # Open a shared location link
  python -m campus_map --shared "?sharedLat=40.7589&sharedLng=-73.9851"
        """,
    )

    parser.add_argument(
        "catalogue",
        type=str,
        nargs="?",
        default=str(SAMPLE_CATALOGUE_PATH),
        help="Path to a JSON catalogue of campus locations (default: bundled sample)",
    )
    parser.add_argument(
        "--viewport",
        type=_bbox,
        metavar="W,S,E,N",
        help="Fit the camera to this bounding box before rendering",
    )
    parser.add_argument(
        "--zoom",
        type=float,
        default=None,
        help="Camera zoom (ignored when --viewport is given)",
    )
    parser.add_argument(
        "--width",
        type=int,
        default=1280,
        metavar="PX",
        help="Display width in pixels; narrow widths use the mobile clustering radius",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=800,
        metavar="PX",
        help="Display height in pixels",
    )
    parser.add_argument(
        "--position",
        type=_lat_lon,
        metavar="LAT,LON",
        help="Live position of the viewer",
    )
    parser.add_argument(
        "--shared",
        type=str,
        metavar="QUERY",
        help="Deep link or query string carrying sharedLat/sharedLng",
    )
    parser.add_argument(
        "--route-to",
        type=str,
        metavar="ID",
        help="Select a location and route to it from --position",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Mapbox access token (default: MAPBOX_TOKEN from the environment)",
    )
    parser.add_argument(
        "--style",
        type=str,
        choices=sorted(MAP_STYLES),
        default="street",
        help="Basemap style",
    )
    parser.add_argument(
        "--export",
        type=str,
        metavar="FILE",
        help="Export to HTML file instead of opening browser",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on locations with an unknown category",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


async def _route(session: Session, location_id: str) -> None:
    try:
        result = await session.select_location(location_id)
    finally:
        await session.close()

    if result.external_url:
        print(f"No live position. Directions to {result.location.name}: {result.external_url}")
    else:
        print(f"{result.location.name}: {result.summary}")


def main() -> None:
    """Main entry point for campus map CLI."""
    args = build_parser().parse_args()

    # Setup logging
    setup_logging()
    if args.verbose:
        logging.getLogger("campus_map").setLevel(logging.DEBUG)

    settings = load_settings()
    if args.strict:
        settings.strict = True

    renderer = PlotlyRenderer(width_px=args.width, height_px=args.height, style=args.style)
    if args.zoom is not None:
        renderer.zoom = args.zoom

    session = Session(
        renderer,
        JsonCatalogue(args.catalogue),
        EnvCredentialProvider(),
        settings=settings,
        display_width_px=args.width,
    )

    logger.info(f"Loading catalogue from {args.catalogue}")
    status = session.setup()
    if status.needs_token and args.token:
        status = session.submit_token(args.token)
    if status.needs_token:
        print("Error: no Mapbox token. Set MAPBOX_TOKEN or pass --token.", file=sys.stderr)
        sys.exit(1)
    if status.catalogue_error:
        print(f"Error: {status.catalogue_error}", file=sys.stderr)
        sys.exit(1)

    if args.viewport:
        renderer.fit_bounds(args.viewport, 0)

    try:
        session.start()
        if args.position:
            session.on_position(*args.position)
        if args.shared and session.apply_deep_link(args.shared) is None:
            print(f"Ignoring invalid shared location: {args.shared}", file=sys.stderr)
        if args.route_to:
            asyncio.run(_route(session, args.route_to))
        session.on_viewport_change()
    except KeyError as e:
        print(f"Error: unknown location {e}", file=sys.stderr)
        sys.exit(1)
    except CampusMapError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    title = f"Campus Map: {len(session.locations)} locations"
    fig = renderer.to_figure(title=title)

    # Display or export
    if args.export:
        logger.info(f"Exporting to {args.export}")
        export_html(fig, args.export)
        print(f"Exported to {args.export}")
    else:
        logger.info("Opening in browser")
        show_figure(fig)


if __name__ == "__main__":
    main()
