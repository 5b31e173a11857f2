"""Tests for catalogue loading."""

import json

import pytest

from campus_map.catalogue import JsonCatalogue, load_catalogue, location_from_record
from campus_map.errors import InputRejected
from campus_map.models import Category


def _record(**overrides) -> dict:
    record = {
        "id": "main-library",
        "name": "Main Library",
        "category": "academic",
        "latitude": 40.7589,
        "longitude": -73.9851,
    }
    record.update(overrides)
    return record


class TestLocationFromRecord:
    """Tests for location_from_record."""

    def test_full_record(self):
        location = location_from_record(_record(description="Books"))

        assert location.id == "main-library"
        assert location.category is Category.ACADEMIC
        assert (location.lat, location.lon) == (40.7589, -73.9851)
        assert location.description == "Books"

    def test_description_optional(self):
        assert location_from_record(_record()).description is None

    def test_numeric_id_becomes_string(self):
        assert location_from_record(_record(id=42)).id == "42"

    def test_unknown_category_kept_as_string(self):
        location = location_from_record(_record(category="parking"))
        assert location.category == "parking"

    def test_missing_field(self):
        record = _record()
        del record["latitude"]
        with pytest.raises(InputRejected, match="latitude"):
            location_from_record(record)

    def test_out_of_range(self):
        with pytest.raises(InputRejected):
            location_from_record(_record(longitude=-190.0))


class TestLoadCatalogue:
    """Tests for load_catalogue and JsonCatalogue."""

    def test_bundled_sample(self):
        locations = JsonCatalogue().list_locations()

        assert len(locations) == 12
        assert locations[0].name == "Main Library"
        assert {loc.category for loc in locations} == set(Category)

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalogue(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(ValueError, match="parse"):
            load_catalogue(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"locations": []}), encoding="utf-8")
        with pytest.raises(ValueError, match="list"):
            load_catalogue(path)

    def test_custom_file(self, tmp_path):
        path = tmp_path / "campus.json"
        path.write_text(json.dumps([_record(), _record(id="gym", category="recreation")]))

        locations = JsonCatalogue(path).list_locations()

        assert [loc.id for loc in locations] == ["main-library", "gym"]
