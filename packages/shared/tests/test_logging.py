"""Tests for the shared structlog setup."""

from __future__ import annotations

import logging

import pytest
import structlog

from taskhub_shared.logging import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_text_format(self):
        configure_logging("info", "text")
        config = structlog.get_config()
        assert config["wrapper_class"] is structlog.make_filtering_bound_logger(logging.INFO)
        assert isinstance(config["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_json_format(self):
        configure_logging("debug", "json")
        config = structlog.get_config()
        assert config["wrapper_class"] is structlog.make_filtering_bound_logger(logging.DEBUG)
        assert isinstance(config["processors"][-1], structlog.processors.JSONRenderer)

    def test_level_is_case_insensitive(self):
        configure_logging("WARNING", "json")
        assert structlog.get_config()["wrapper_class"] is structlog.make_filtering_bound_logger(
            logging.WARNING
        )

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            configure_logging("chatty", "json")
