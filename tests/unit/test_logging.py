"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from src.core.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    logging.getLogger().handlers.clear()
    structlog.contextvars.clear_contextvars()


def _last_event(capsys: pytest.CaptureFixture[str]) -> dict:
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


class TestSetupLogging:
    """Tests for setup_logging renderers, levels and context merging."""

    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("DEBUG", json_output=True)
        get_logger("governance.test").info("quota_checked", org_id="acme")

        event = _last_event(capsys)
        assert event["event"] == "quota_checked"
        assert event["org_id"] == "acme"
        assert event["level"] == "info"
        assert event["logger"] == "governance.test"
        assert "timestamp" in event

    def test_context_vars_merged(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("INFO", json_output=True)
        structlog.contextvars.bind_contextvars(request_id="req-42")
        get_logger("governance.test").warning("access_denied")

        assert _last_event(capsys)["request_id"] == "req-42"

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("WARNING", json_output=True)
        get_logger("governance.test").info("hidden")
        assert "hidden" not in capsys.readouterr().out

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("INFO")
        get_logger("governance.test").info("plain_event", tier="pro")
        output = capsys.readouterr().out
        assert "plain_event" in output
        assert "tier=pro" in output
