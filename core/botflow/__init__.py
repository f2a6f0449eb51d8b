"""
botflow - visual plugin graphs for chat bots.

Compile a graph drawn in the editor, then run it once per trigger event:

    plugin = compile_plugin(graph_json, plugin_id="greeter")
    result = await PluginExecutor().execute(plugin, TriggerEvent(username="Ann"))
"""

from botflow.config import EngineConfig
from botflow.errors import (
    BotflowError,
    GraphValidationError,
    PluginNotRegistered,
    PluginRuntimeError,
)
from botflow.graph import (
    CompiledPlugin,
    ExecutionResult,
    ExecutionStatus,
    GraphSpec,
    PluginExecutor,
    TriggerEvent,
    compile_plugin,
    validate_graph,
)
from botflow.runtime import InertChatPlatform, InMemoryKeyValueStore
from botflow.runtime.plugin_runtime import PluginRuntime

__version__ = "0.1.0"

__all__ = [
    "BotflowError",
    "CompiledPlugin",
    "EngineConfig",
    "ExecutionResult",
    "ExecutionStatus",
    "GraphSpec",
    "GraphValidationError",
    "InertChatPlatform",
    "InMemoryKeyValueStore",
    "PluginExecutor",
    "PluginNotRegistered",
    "PluginRuntime",
    "PluginRuntimeError",
    "TriggerEvent",
    "compile_plugin",
    "validate_graph",
]
