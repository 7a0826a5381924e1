"""Tests for structured logging configuration."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from persistid.core.logging import LEVEL_OFF, configure_logging, resolve_level


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    """Reset logging configuration between tests."""
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def test_configure_logging_console_output() -> None:
    configure_logging(json_output=False, level="INFO")

    assert logging.getLogger().level == logging.INFO
    assert len(logging.getLogger().handlers) == 1


def test_configure_logging_json_output() -> None:
    """JSON output mode produces valid JSON."""
    captured = io.StringIO()

    configure_logging(json_output=True, level="INFO")

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(captured)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)

    log = structlog.get_logger("test_json")
    log.info("allocated", scope="sceneA")

    data = json.loads(captured.getvalue().strip())
    assert data["event"] == "allocated"
    assert data["scope"] == "sceneA"
    assert data["level"] == "info"
    assert "timestamp" in data


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("DEBUG", logging.DEBUG),
        ("WARNING", logging.WARNING),
        ("ERROR", logging.ERROR),
        ("OFF", LEVEL_OFF),
    ],
)
def test_configure_logging_level(name: str, expected: int) -> None:
    configure_logging(json_output=False, level=name)
    assert logging.getLogger().level == expected


def test_off_silences_critical() -> None:
    configure_logging(level="OFF")
    assert not logging.getLogger("persistid").isEnabledFor(logging.CRITICAL)


def test_resolve_level_is_case_insensitive() -> None:
    assert resolve_level("info") == logging.INFO
