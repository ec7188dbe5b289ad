"""Tests for logging configuration."""

import json

import pytest
import structlog

import aicli.logging
from aicli.logging import Timer, bind_invocation, get_logger, setup_logging
from aicli.security import ApprovalGate


class TestSetupLogging:
    """Test setup_logging and invocation binding."""

    def test_log_file_receives_json(self, tmp_path):
        log_file = tmp_path / "logs" / "ai-cli.jsonl"
        setup_logging("INFO", log_file)
        invocation = bind_invocation("ai-cli commit")

        get_logger("aicli.test").info("Gate decided", tier="caution")

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record["event"] == "Gate decided"
        assert record["tier"] == "caution"
        assert record["level"] == "info"
        assert record["invocation"] == invocation
        assert record["cli_command"] == "ai-cli commit"
        structlog.contextvars.clear_contextvars()

    def test_level_filters_debug(self, tmp_path):
        log_file = tmp_path / "ai-cli.jsonl"
        setup_logging("WARNING", log_file)

        get_logger("aicli.test").debug("hidden")
        get_logger("aicli.test").warning("shown")

        events = [json.loads(line)["event"] for line in log_file.read_text().splitlines()]
        assert events == ["shown"]

    def test_reconfiguring_closes_previous_file(self, tmp_path):
        first = tmp_path / "first.jsonl"
        second = tmp_path / "second.jsonl"
        setup_logging("INFO", first)
        previous = aicli.logging._log_sink

        setup_logging("INFO", second)
        get_logger("aicli.test").info("after")

        assert previous.closed
        assert "after" not in first.read_text()
        assert json.loads(second.read_text().splitlines()[-1])["event"] == "after"
        setup_logging("WARNING")
        assert aicli.logging._log_sink is None

    def test_gate_decisions_reach_file_at_default_level(self, tmp_path, trust_store):
        log_file = tmp_path / "ai-cli.jsonl"
        setup_logging("WARNING", log_file)

        ApprovalGate(trust_store).evaluate("git status", tmp_path)

        assert "INFO aicli.audit: Gate request #" in log_file.read_text()
        setup_logging("WARNING")

    def test_invocation_ids_are_fresh(self):
        first = bind_invocation("ai-cli run")
        second = bind_invocation("ai-cli run")

        assert first != second
        structlog.contextvars.clear_contextvars()


class TestTimer:
    """Test the Timer context manager."""

    def test_elapsed(self):
        with Timer("noop") as timer:
            pass

        assert timer.elapsed >= 0

    @pytest.mark.asyncio
    async def test_async_records_failure(self):
        events = []

        class Recorder:
            def debug(self, event, **kw):
                events.append((event, kw))

        with pytest.raises(RuntimeError):
            async with Timer("request", Recorder()):
                raise RuntimeError("boom")

        assert events[0][0] == "Timed operation"
        assert events[0][1]["operation"] == "request"
        assert events[0][1]["failed"] is True
