"""Load the campus location catalogue."""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from campus_map.errors import InputRejected
from campus_map.models import Category, Location, validate_coordinates

logger = logging.getLogger(__name__)

# Bundled sample catalogue (the seed rows of the campus_locations table)
SAMPLE_CATALOGUE_PATH = Path(__file__).parent / "data" / "campus_locations.json"


class CatalogueProvider(Protocol):
    def list_locations(self) -> list[Location]: ...


def location_from_record(record: Mapping[str, Any]) -> Location:
    """
    Convert one campus_locations record into a Location.

    Records use the table's column names: id, name, category, latitude,
    longitude and an optional description.

    Raises:
        InputRejected: If a required field is missing or the coordinates
            are malformed
    """
    try:
        location_id = str(record["id"])
        name = str(record["name"])
        category = str(record["category"])
        lat = record["latitude"]
        lon = record["longitude"]
    except KeyError as e:
        raise InputRejected(f"catalogue record missing field {e}") from e

    validate_coordinates(lat, lon, what=f"location {location_id!r}")

    parsed = Category.parse(category)
    if not isinstance(parsed, Category):
        logger.warning(f"Location {location_id!r} has unrecognized category {category!r}")

    description = record.get("description")
    return Location(
        id=location_id,
        name=name,
        category=parsed,
        lat=float(lat),
        lon=float(lon),
        description=str(description) if description is not None else None,
    )


def load_catalogue(path: str | os.PathLike) -> list[Location]:
    """
    Load locations from a JSON file holding a list of records.

    Args:
        path: Path to the JSON catalogue

    Returns:
        Locations in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a JSON list of valid records
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Catalogue file not found: {path}")

    with open(path, encoding="utf-8") as catalogue_file:
        try:
            records = json.load(catalogue_file)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse catalogue file: {e}") from e

    if not isinstance(records, list):
        raise ValueError(f"Catalogue must be a JSON list, got {type(records).__name__}")

    locations = [location_from_record(record) for record in records]
    logger.info(f"Loaded catalogue: {len(locations)} locations from {path}")
    return locations


class JsonCatalogue:
    """Catalogue provider reading a JSON file of campus_locations records."""

    def __init__(self, path: str | os.PathLike = SAMPLE_CATALOGUE_PATH) -> None:
        self.path = path

    def list_locations(self) -> list[Location]:
        return load_catalogue(self.path)
