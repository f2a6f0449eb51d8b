"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from botflow.observability import (
    clear_trace_context,
    get_trace_context,
    set_trace_context,
)
from botflow.observability.logging import (
    PLUGIN_LOGGER,
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
    strip_ansi_codes,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord("botflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(plugin_id="poll")
        set_trace_context(node_id="n1")
        assert get_trace_context() == {"plugin_id": "poll", "node_id": "n1"}

        clear_trace_context()
        assert get_trace_context() == {}

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_context(self):
        async def worker(plugin_id):
            set_trace_context(plugin_id=plugin_id)
            await asyncio.sleep(0)
            return get_trace_context()["plugin_id"]

        assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]


class TestFormatters:
    def test_structured_includes_context_and_extras(self):
        set_trace_context(plugin_id="poll", invocation_id="abc123", node_id="n1")

        record = make_record("\033[31mred\033[0m", event="step")
        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "red"
        assert entry["level"] == "info"
        assert entry["logger"] == "botflow.test"
        assert entry["plugin_id"] == "poll"
        assert entry["node_id"] == "n1"
        assert entry["event"] == "step"

    def test_human_prefix(self):
        set_trace_context(plugin_id="poll", invocation_id="0123456789abcdef", node_id="n1")

        line = strip_ansi_codes(HumanReadableFormatter().format(make_record()))

        assert line == "[INFO    ] [plugin:poll | inv:89abcdef | node:n1] hello"

    def test_human_without_context(self):
        line = strip_ansi_codes(HumanReadableFormatter().format(make_record()))
        assert line == "[INFO    ] hello"


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_loggers(self):
        root = logging.getLogger()
        plugin = logging.getLogger(PLUGIN_LOGGER)
        handlers, level, plugin_level = list(root.handlers), root.level, plugin.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        plugin.setLevel(plugin_level)

    def test_human_format(self):
        configure_logging(level="debug", format="human")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, HumanReadableFormatter)

    def test_auto_picks_json_in_production(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        monkeypatch.setenv("NO_COLOR", "")
        monkeypatch.setenv("FORCE_COLOR", "")

        configure_logging(level="INFO")

        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)

    def test_plugin_level_is_separate(self):
        configure_logging(level="WARNING", format="human", plugin_level="info")
        assert logging.getLogger(PLUGIN_LOGGER).level == logging.INFO

        configure_logging(level="WARNING", format="human")
        assert logging.getLogger(PLUGIN_LOGGER).level == logging.NOTSET
