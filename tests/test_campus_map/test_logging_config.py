"""Tests for logging setup."""

import logging

import pytest

from campus_map.logging_config import log_dir, setup_logging

LOGGER_NAMES = ["", "campus_map", "campus_map.routing"]


@pytest.fixture
def restore_logging():
    """Put back the handlers setup_logging() replaces and close the new ones."""
    saved = {name: (logging.getLogger(name).handlers[:], logging.getLogger(name).level) for name in LOGGER_NAMES}
    yield
    for name, (handlers, level) in saved.items():
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.handlers[:] = handlers
        logger.setLevel(level)


class TestLogDir:
    """Tests for log_dir()."""

    def test_defaults_to_working_directory(self, monkeypatch):
        monkeypatch.delenv("CAMPUS_MAP_LOG_DIR", raising=False)
        assert str(log_dir()) == "logs"

    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CAMPUS_MAP_LOG_DIR", str(tmp_path / "custom"))
        assert log_dir() == tmp_path / "custom"


class TestSetupLogging:
    def test_creates_log_files_in_configured_directory(self, monkeypatch, tmp_path, restore_logging):
        directory = tmp_path / "nested" / "logs"
        monkeypatch.setenv("CAMPUS_MAP_LOG_DIR", str(directory))

        setup_logging()
        logging.getLogger("campus_map.routing").debug("routing ready")

        assert (directory / "campus_map.log").exists()
        assert "routing ready" in (directory / "routing.log").read_text(encoding="utf-8")
