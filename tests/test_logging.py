"""Tests for logging setup and turn context."""

import logging

import pytest

from conftest import text_response

from agent_controller.logging import (
    TurnContextFilter,
    current_turn_id,
    resolve_level,
    setup_logging,
    turn_context,
)


@pytest.fixture
def package_logger():
    logger = logging.getLogger("agent_controller")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


def make_record():
    return logging.LogRecord("agent_controller.test", logging.INFO, __file__, 1, "hi", None, None)


class TestResolveLevel:
    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("AGENT_CONTROLLER_LOG_LEVEL", "ERROR")
        assert resolve_level("debug") == logging.DEBUG

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("AGENT_CONTROLLER_LOG_LEVEL", "info")
        assert resolve_level() == logging.INFO

    def test_invalid_falls_back(self, monkeypatch, capsys):
        monkeypatch.delenv("AGENT_CONTROLLER_LOG_LEVEL", raising=False)
        assert resolve_level("LOUD") == logging.WARNING
        assert "Invalid log level" in capsys.readouterr().err


class TestSetupLogging:
    def test_single_handler(self, package_logger):
        setup_logging("INFO")
        setup_logging("DEBUG")

        ours = [h for h in package_logger.handlers if any(
            isinstance(f, TurnContextFilter) for f in h.filters
        )]
        assert len(ours) == 1
        assert ours[0].level == logging.DEBUG
        assert package_logger.level == logging.DEBUG

    def test_transport_loggers_quiet(self, package_logger):
        setup_logging("INFO")
        assert logging.getLogger("httpx").level == logging.WARNING

        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.DEBUG


class TestTurnContext:
    def test_record_outside_turn(self):
        record = make_record()
        TurnContextFilter().filter(record)
        assert record.turn_id == "-"
        assert current_turn_id() is None

    def test_record_inside_turn(self):
        with turn_context("turn-1"):
            record = make_record()
            TurnContextFilter().filter(record)
            assert current_turn_id() == "turn-1"

        assert record.turn_id == "turn-1"
        assert current_turn_id() is None

    @pytest.mark.anyio
    async def test_turn_binds_id(self, manager, client, caplog):
        client.responses.append(text_response("hi"))
        caplog.set_level(logging.INFO, logger="agent_controller")
        caplog.handler.addFilter(TurnContextFilter())

        await manager.run_turn("hello")

        started = [r for r in caplog.records if r.getMessage().startswith("turn started")]
        assert len(started) == 1
        assert started[0].turn_id.startswith("turn-")
        assert current_turn_id() is None
