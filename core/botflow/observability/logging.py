"""
Structured logging with automatic trace context propagation.

Key Features:
- Standard logger.info() calls get the invocation context automatically
- ContextVar-based propagation: concurrent invocations never mix context
- Dual output modes: JSON for production, human-readable for development

Architecture:
    PluginExecutor.execute() → sets plugin_id and invocation_id once
        ↓ (automatic propagation via ContextVar)
    Node dispatch → adds node_id
        ↓ (automatic propagation)
    Handler code → logger.info("message") → gets ALL context automatically
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Each asyncio task gets its own copy of the context, so concurrent
# invocations keep separate trace fields.
trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")

# Extra record attributes copied into JSON output when present.
EXTRA_FIELDS = ("event", "latency_ms", "node_type", "status")

# Logger that receives the output of plugin `log` actions.
PLUGIN_LOGGER = "botflow.plugin"


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Trace context (plugin_id, invocation_id, node_id)
    - Custom fields from the ``extra`` dict
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        context = trace_context.get() or {}
        message = strip_ansi_codes(record.getMessage())

        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        }
        log_entry.update(context)

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            exception_text = self.formatException(record.exc_info)
            log_entry["exception"] = strip_ansi_codes(exception_text)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Colorized level names with a short context prefix for local debugging.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        context = trace_context.get() or {}
        plugin_id = context.get("plugin_id", "")
        invocation_id = context.get("invocation_id", "")
        node_id = context.get("node_id", "")

        prefix_parts = []
        if plugin_id:
            prefix_parts.append(f"plugin:{plugin_id}")
        if invocation_id:
            prefix_parts.append(f"inv:{invocation_id[-8:]}")
        if node_id:
            prefix_parts.append(f"node:{node_id}")

        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        line = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
    plugin_level: str | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Call once at startup (CLI entry point, bot process, test fixtures).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human
        plugin_level: Level for messages from plugin `log` actions
            (the ``botflow.plugin`` logger); inherits ``level`` when None

    Examples:
        configure_logging(level="DEBUG", format="human")
        configure_logging(level="INFO", format="auto")
        configure_logging(level="WARNING", plugin_level="INFO")
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _disable_third_party_colors()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    plugin_logger = logging.getLogger(PLUGIN_LOGGER)
    plugin_logger.setLevel(plugin_level.upper() if plugin_level else logging.NOTSET)

    # HTTP client libraries log through their own handlers when configured;
    # route them through the root formatter so JSON output stays uniform.
    if format == "json":
        for logger_name in ("httpx", "httpcore"):
            logger = logging.getLogger(logger_name)
            logger.handlers.clear()
            logger.propagate = True


def _disable_third_party_colors() -> None:
    """Disable color output in third-party libraries for clean JSON logging."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge fields into the trace context of the current task.

    Called by the engine at key points:
    - PluginExecutor.execute(): plugin_id, invocation_id
    - Node dispatch: node_id

    Example:
        set_trace_context(plugin_id="poll", invocation_id=uuid.uuid4().hex)
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    """
    Get current trace context.

    Returns:
        Dict with plugin_id, invocation_id, node_id.
        Empty dict if no context set.
    """
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context (between tests, or before reusing a task)."""
    trace_context.set(None)
