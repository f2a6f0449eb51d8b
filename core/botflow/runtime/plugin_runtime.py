"""
Plugin Runtime - hosts compiled plugins and runs their invocations.

Each registered plugin gets its own concurrency limit; every invocation
runs as one task with a wall-clock timeout. Invocations share the
executor's collaborators (store, platform, HTTP client) but never an
ExecutionContext.
"""

import asyncio
import logging
from collections import deque
from typing import Any

from botflow.config import EngineConfig
from botflow.errors import PluginNotRegistered
from botflow.graph.compiler import CompiledPlugin
from botflow.graph.context import TriggerEvent
from botflow.graph.executor import ExecutionResult, ExecutionStatus, PluginExecutor

logger = logging.getLogger(__name__)


class PluginRuntime:
    """
    Registry of compiled plugins plus bounded, timed invocation.

    Example:
        runtime = PluginRuntime(PluginExecutor(platform=gateway))
        runtime.register(compile_plugin(graph, plugin_id="poll"))

        result = await runtime.invoke("poll", TriggerEvent(user_id="42"))
        if result.status == ExecutionStatus.TIMEOUT:
            ...
    """

    def __init__(
        self,
        executor: PluginExecutor | None = None,
        config: EngineConfig | None = None,
        max_results: int = 1000,
    ):
        """
        Initialize the runtime.

        Args:
            executor: Executor shared by all plugins (a default one is built
                from ``config`` when omitted)
            config: Timeout and concurrency limits; defaults to the
                executor's configuration
            max_results: How many recent results to keep for inspection
        """
        self.executor = executor or PluginExecutor(config=config)
        self.config = config or self.executor.config
        self._plugins: dict[str, CompiledPlugin] = {}
        self._semaphores: dict[str, asyncio.Semaphore] = {}
        self._active: dict[str, int] = {}
        self.results: deque[ExecutionResult] = deque(maxlen=max_results)

    # === REGISTRATION ===

    def register(self, plugin: CompiledPlugin) -> None:
        """
        Register a compiled plugin, replacing any plugin with the same id.

        In-flight invocations of a replaced plugin finish on the old graph.
        """
        replaced = plugin.plugin_id in self._plugins
        self._plugins[plugin.plugin_id] = plugin
        if plugin.plugin_id not in self._semaphores:
            self._semaphores[plugin.plugin_id] = asyncio.Semaphore(self.config.max_concurrent)
            self._active[plugin.plugin_id] = 0
        action = "Replaced" if replaced else "Registered"
        logger.info(f"{action} plugin '{plugin.plugin_id}'")

    def unregister(self, plugin_id: str) -> bool:
        """Remove a plugin. Returns False if it was not registered."""
        if self._plugins.pop(plugin_id, None) is None:
            return False
        self._forget_idle(plugin_id)
        logger.info(f"Unregistered plugin '{plugin_id}'")
        return True

    def _forget_idle(self, plugin_id: str) -> None:
        """Drop slot bookkeeping for an unregistered plugin with nothing in flight."""
        if plugin_id in self._plugins or self._active.get(plugin_id):
            return
        self._semaphores.pop(plugin_id, None)
        self._active.pop(plugin_id, None)

    def get(self, plugin_id: str) -> CompiledPlugin | None:
        return self._plugins.get(plugin_id)

    @property
    def plugin_ids(self) -> list[str]:
        return list(self._plugins)

    # === INVOCATION ===

    async def invoke(
        self,
        plugin_id: str,
        event: TriggerEvent | None = None,
    ) -> ExecutionResult:
        """
        Run one invocation of a registered plugin.

        Waits for a free slot when the plugin is at its concurrency limit.

        Raises:
            PluginNotRegistered: if ``plugin_id`` is unknown
            asyncio.CancelledError: if the caller cancels; the cancelled
                result is still recorded in ``results``
        """
        plugin = self._plugins.get(plugin_id)
        if plugin is None:
            raise PluginNotRegistered(plugin_id)

        semaphore = self._semaphores[plugin_id]
        async with semaphore:
            self._active[plugin_id] = self._active.get(plugin_id, 0) + 1
            try:
                result = await asyncio.wait_for(
                    self.executor.execute(plugin, event),
                    timeout=self.config.invocation_timeout,
                )
            except TimeoutError:
                logger.warning(
                    f"Plugin '{plugin_id}' timed out after {self.config.invocation_timeout}s"
                )
                result = ExecutionResult(
                    success=False,
                    status=ExecutionStatus.TIMEOUT,
                    error=f"Invocation exceeded {self.config.invocation_timeout}s",
                    error_kind="InvocationTimeout",
                )
            except asyncio.CancelledError:
                self.results.append(
                    ExecutionResult(
                        success=False,
                        status=ExecutionStatus.CANCELLED,
                        error="Invocation cancelled",
                        error_kind="InvocationCancelled",
                    )
                )
                raise
            finally:
                self._active[plugin_id] -= 1
                self._forget_idle(plugin_id)

        self.results.append(result)
        return result

    # === STATS ===

    def active_count(self, plugin_id: str | None = None) -> int:
        """In-flight invocations for one plugin, or across all plugins."""
        if plugin_id is not None:
            return self._active.get(plugin_id, 0)
        return sum(self._active.values())

    def get_stats(self) -> dict[str, Any]:
        return {
            "plugins": len(self._plugins),
            "active": {pid: count for pid, count in self._active.items() if count},
            "recent_results": len(self.results),
            "recent_failures": sum(1 for r in self.results if not r.success),
        }
