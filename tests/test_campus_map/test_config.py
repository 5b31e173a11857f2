"""Tests for environment-driven configuration."""

import pytest
from unittest.mock import patch

from campus_map.config import (
    DEFAULT_CLUSTER_RADIUS,
    DEFAULT_DIRECTIONS_URL,
    EnvCredentialProvider,
    Settings,
    load_settings,
)

ENV_VARS = [
    "MAPBOX_TOKEN",
    "CAMPUS_MAP_CLUSTER_RADIUS",
    "CAMPUS_MAP_MOBILE_CLUSTER_RADIUS",
    "CAMPUS_MAP_MOBILE_WIDTH",
    "CAMPUS_MAP_MAX_ZOOM",
    "CAMPUS_MAP_DIRECTIONS_URL",
    "CAMPUS_MAP_REQUEST_TIMEOUT",
    "CAMPUS_MAP_STRICT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear campus map variables and keep .env files out of the picture."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("campus_map.config.load_dotenv"):
        yield monkeypatch


class TestSettings:
    """Tests for the Settings helpers."""

    @pytest.mark.parametrize(
        "width,mobile",
        [(None, False), (390, True), (768, True), (769, False), (1920, False)],
    )
    def test_is_mobile(self, width, mobile):
        assert Settings().is_mobile(width) is mobile

    def test_radius_for_width(self):
        settings = Settings()
        assert settings.radius_for_width(390) == 20
        assert settings.radius_for_width(1280) == 40


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self, clean_env):
        settings = load_settings()

        assert settings.routing_token is None
        assert settings.cluster_radius == DEFAULT_CLUSTER_RADIUS
        assert settings.directions_url == DEFAULT_DIRECTIONS_URL
        assert settings.strict is False

    def test_overrides(self, clean_env):
        clean_env.setenv("MAPBOX_TOKEN", "pk.test")
        clean_env.setenv("CAMPUS_MAP_CLUSTER_RADIUS", "60")
        clean_env.setenv("CAMPUS_MAP_MOBILE_WIDTH", "600")
        clean_env.setenv("CAMPUS_MAP_REQUEST_TIMEOUT", "2.5")
        clean_env.setenv("CAMPUS_MAP_STRICT", "yes")

        settings = load_settings()

        assert settings.routing_token == "pk.test"
        assert settings.cluster_radius == 60
        assert settings.mobile_width_px == 600
        assert settings.request_timeout == 2.5
        assert settings.strict is True

    def test_malformed_values_fall_back(self, clean_env):
        clean_env.setenv("CAMPUS_MAP_CLUSTER_RADIUS", "wide")
        clean_env.setenv("CAMPUS_MAP_REQUEST_TIMEOUT", "soon")

        settings = load_settings()

        assert settings.cluster_radius == DEFAULT_CLUSTER_RADIUS
        assert settings.request_timeout == 10.0


class TestEnvCredentialProvider:
    """Tests for EnvCredentialProvider."""

    def test_token_present(self, clean_env):
        clean_env.setenv("MAPBOX_TOKEN", "  pk.abc \n")
        assert EnvCredentialProvider().get_routing_token() == "pk.abc"

    def test_token_missing(self, clean_env):
        assert EnvCredentialProvider().get_routing_token() is None
