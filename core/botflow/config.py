"""Shared botflow configuration utilities.

Centralises reading of ~/.botflow/configuration.json so that the engine,
the plugin runtime and the CLI share one implementation.
"""

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

BOTFLOW_CONFIG_FILE = Path.home() / ".botflow" / "configuration.json"

DEFAULT_MAX_LOOP_ITERATIONS = 500
DEFAULT_MAX_STEPS = 100_000
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_MAX_WAIT_MS = 10_000
DEFAULT_INVOCATION_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENT = 10


def get_config_path() -> Path:
    """Config file location; ``BOTFLOW_CONFIG_FILE`` overrides the default."""
    override = os.environ.get("BOTFLOW_CONFIG_FILE")
    return Path(override) if override else BOTFLOW_CONFIG_FILE


def get_botflow_config() -> dict[str, Any]:
    """Load botflow configuration from ~/.botflow/configuration.json."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_engine_settings() -> dict[str, Any]:
    """Return the ``engine`` section of the configuration file."""
    engine = get_botflow_config().get("engine", {})
    return engine if isinstance(engine, dict) else {}


def _engine_setting(key: str, default: Any) -> Callable[[], Any]:
    def read() -> Any:
        value = get_engine_settings().get(key)
        if value is None:
            return default
        try:
            return type(default)(value)
        except (TypeError, ValueError):
            return default

    return read


# ---------------------------------------------------------------------------
# EngineConfig – shared by the executor and the plugin runtime
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Execution limits loaded from ~/.botflow/configuration.json."""

    max_loop_iterations: int = field(
        default_factory=_engine_setting("max_loop_iterations", DEFAULT_MAX_LOOP_ITERATIONS)
    )
    max_steps: int = field(default_factory=_engine_setting("max_steps", DEFAULT_MAX_STEPS))
    http_timeout: float = field(
        default_factory=_engine_setting("http_timeout", DEFAULT_HTTP_TIMEOUT)
    )
    max_wait_ms: int = field(default_factory=_engine_setting("max_wait_ms", DEFAULT_MAX_WAIT_MS))
    invocation_timeout: float = field(
        default_factory=_engine_setting("invocation_timeout", DEFAULT_INVOCATION_TIMEOUT)
    )
    max_concurrent: int = field(
        default_factory=_engine_setting("max_concurrent", DEFAULT_MAX_CONCURRENT)
    )
