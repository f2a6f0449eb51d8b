"""
Plugin Executor - Runs compiled plugin graphs.

The executor:
1. Takes a CompiledPlugin and the TriggerEvent that fired it
2. Creates a fresh ExecutionContext for the invocation
3. Executes nodes from the trigger, following edges on the chosen port
4. Returns an ExecutionResult; runtime errors never escape as exceptions
"""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from botflow.config import EngineConfig
from botflow.errors import (
    LoopLimitExceeded,
    MalformedGraphError,
    PluginRuntimeError,
    StepLimitExceeded,
    UndeclaredVariableReference,
)
from botflow.graph.compiler import CompiledPlugin
from botflow.graph.context import ExecutionContext, PluginResponse, TriggerEvent
from botflow.graph.edge import GraphSpec
from botflow.graph.expression import ExpressionEvaluator
from botflow.graph.handlers import HANDLERS
from botflow.graph.node import NodeSpec, PortId
from botflow.graph.registry import semantics_for
from botflow.graph.template import REFERENCE_PATTERN, lookup, references, render, stringify
from botflow.observability import set_trace_context
from botflow.runtime.platform import ChatPlatform, InertChatPlatform
from botflow.runtime.state_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    StoreScope,
    namespace_for,
)

logger = logging.getLogger(__name__)


class ExecutionStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result of one plugin invocation."""

    success: bool
    status: ExecutionStatus = ExecutionStatus.COMPLETED
    responses: list[PluginResponse] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None
    failed_node: str | None = None
    path: list[str] = field(default_factory=list)  # Node IDs executed, in order
    steps_executed: int = 0
    recoverable_errors: list[dict[str, Any]] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0
    invocation_id: str = ""

    @property
    def reply(self) -> str | None:
        """Text of the last plain response, if any."""
        for response in reversed(self.responses):
            if response.content is not None:
                return response.content
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": str(self.status),
            "responses": [r.model_dump(exclude_none=True) for r in self.responses],
            "error": self.error,
            "error_kind": self.error_kind,
            "failed_node": self.failed_node,
            "path": list(self.path),
            "steps_executed": self.steps_executed,
            "recoverable_errors": list(self.recoverable_errors),
            "variables": {k: _jsonable(v) for k, v in self.variables.items()},
            "duration_ms": self.duration_ms,
            "invocation_id": self.invocation_id,
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    return stringify(value)


class Invocation:
    """
    State of one running invocation, handed to every node handler.

    Handlers read and write variables through ``context``, render authored
    text through ``render``/``resolve``, and reach collaborators through
    the executor.
    """

    def __init__(
        self,
        executor: "PluginExecutor",
        plugin: CompiledPlugin,
        event: TriggerEvent,
        invocation_id: str,
    ):
        self.executor = executor
        self.plugin = plugin
        self.invocation_id = invocation_id
        self.context = ExecutionContext(event)
        self.responses: list[PluginResponse] = []
        self.path: list[str] = []
        self.steps = 0
        self.errors: list[PluginRuntimeError] = []

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def graph(self) -> GraphSpec:
        return self.plugin.graph

    @property
    def event(self) -> TriggerEvent:
        return self.context.event

    @property
    def config(self) -> EngineConfig:
        return self.executor.config

    @property
    def store(self) -> KeyValueStore:
        return self.executor.store

    @property
    def platform(self) -> ChatPlatform:
        return self.executor.platform

    @property
    def rng(self) -> random.Random:
        return self.executor.rng

    def namespace(self, scope: StoreScope) -> str:
        owner = self.event.user_id if scope == StoreScope.USER else self.event.guild_id
        return namespace_for(self.plugin.plugin_id, scope, owner)

    async def http_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self.executor.http_client
        if client is not None:
            return await client.request(method, url, **kwargs)
        async with httpx.AsyncClient(
            timeout=self.config.http_timeout, follow_redirects=True
        ) as client:
            return await client.request(method, url, **kwargs)

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def bind(self, name: str, value: Any) -> None:
        self.context.bind(name, value)

    def unbind(self, *names: str) -> None:
        self.context.unbind(*names)

    def check_references(
        self, text: Any, node: NodeSpec, local_names: Collection[str] = ()
    ) -> None:
        """
        Reject references to names that are neither bound, declared upstream,
        nor engine-reserved (leading underscore). ``local_names`` are the
        per-item names an expression is evaluated with (``item``, ``index``).
        """
        scope = self.plugin.scope_of(node.id)
        for name in references(text):
            if name in self.context or name in scope or name in local_names:
                continue
            if not name.startswith("_"):
                raise UndeclaredVariableReference(name, node_id=node.id)

    def render(self, text: Any, node: NodeSpec) -> str:
        """Interpolate authored text. Declared-but-unbound names render as ""."""
        if text is None:
            return ""
        if not isinstance(text, str):
            return stringify(text)
        self.check_references(text, node)
        return render(text, self.context)

    def resolve(self, value: Any, node: NodeSpec) -> Any:
        """
        Like ``render``, but a field that is exactly one reference yields the
        raw value (so ``"{count}"`` stays a number) and non-text config
        passes through unchanged.
        """
        if not isinstance(value, str):
            return value
        match = REFERENCE_PATTERN.fullmatch(value.strip())
        if match:
            self.check_references(value, node)
            return lookup(self.context, match.group(1), match.group(2))
        return self.render(value, node)

    def evaluate(
        self, expression: str, node: NodeSpec, extra_names: dict[str, Any] | None = None
    ) -> Any:
        self.check_references(expression, node, extra_names or ())
        return self.executor.evaluator.evaluate(expression, self.context, extra_names)

    def is_true(
        self, expression: str, node: NodeSpec, extra_names: dict[str, Any] | None = None
    ) -> bool:
        self.check_references(expression, node, extra_names or ())
        return self.executor.evaluator.is_true(expression, self.context, extra_names)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def respond(self, response: PluginResponse) -> None:
        self.responses.append(response)

    def recover(self, error: PluginRuntimeError, error_var: str | None = None) -> None:
        """Record a recoverable error, binding its message to ``error_var`` when given."""
        self.errors.append(error)
        if error_var:
            self.bind(error_var, str(error))
        logger.warning(f"{error.kind} at node '{error.node_id}': {error}")

    async def run_loop_body(self, loop_node: NodeSpec) -> None:
        """Run one pass of a loop node's body subgraph."""
        start_ids = self.graph.successors(loop_node.id, PortId.LOOP_BODY)
        await self.executor._walk(self, start_ids, anchor=loop_node.id)


class PluginExecutor:
    """
    Executes compiled plugins.

    Example:
        executor = PluginExecutor(
            store=InMemoryKeyValueStore(),
            platform=InertChatPlatform(),
        )

        result = await executor.execute(
            plugin=compile_plugin(graph),
            event=TriggerEvent(user_id="42", username="Ann"),
        )
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        store: KeyValueStore | None = None,
        platform: ChatPlatform | None = None,
        http_client: httpx.AsyncClient | None = None,
        evaluator: ExpressionEvaluator | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the executor.

        Args:
            config: Execution limits (defaults from the configuration file)
            store: Key/value store for database and set_state nodes
            platform: Chat platform gateway for embeds and discord actions
            http_client: Shared client for http_request nodes; a short-lived
                client is opened per request when omitted
            evaluator: Host evaluator for condition text
            rng: Random source for random_number variables
        """
        self.config = config or EngineConfig()
        self.store = store or InMemoryKeyValueStore()
        self.platform = platform or InertChatPlatform()
        self.http_client = http_client
        self.evaluator = evaluator or ExpressionEvaluator()
        self.rng = rng or random.Random()

    async def execute(
        self,
        plugin: CompiledPlugin,
        event: TriggerEvent | None = None,
    ) -> ExecutionResult:
        """
        Run one invocation of ``plugin``.

        Runtime errors are returned as a failed ExecutionResult. Cancellation
        propagates to the caller.
        """
        invocation_id = uuid.uuid4().hex
        set_trace_context(plugin_id=plugin.plugin_id, invocation_id=invocation_id, node_id=None)

        invocation = Invocation(self, plugin, event or TriggerEvent(), invocation_id)
        started = time.monotonic()
        logger.info(f"Invocation started for plugin '{plugin.plugin_id}'")

        try:
            await self._walk(invocation, [plugin.trigger_id])
        except LoopLimitExceeded as e:
            # Recoverable, but no errorVar caught it: the invocation ends here.
            invocation.errors.append(e)
            logger.warning(f"Loop limit ended invocation: {e}")
            return self._result(invocation, started, error=e)
        except PluginRuntimeError as e:
            logger.error(f"{e.kind} at node '{e.node_id}': {e}")
            return self._result(invocation, started, error=e)
        except asyncio.CancelledError:
            logger.info(f"Invocation cancelled after {invocation.steps} steps")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in plugin '{plugin.plugin_id}'")
            failed_node = invocation.path[-1] if invocation.path else None
            return self._result(
                invocation,
                started,
                error=e,
                failed_node=failed_node,
            )

        result = self._result(invocation, started)
        logger.info(
            f"Invocation completed in {result.steps_executed} steps "
            f"with {len(result.responses)} response(s)"
        )
        return result

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _walk(
        self,
        invocation: Invocation,
        start_ids: list[str],
        anchor: str | None = None,
    ) -> None:
        """
        Depth-first traversal from ``start_ids``, one branch at a time.

        Each node runs at most once per walk, so branches that rejoin run the
        join node once. A loop body pass is its own walk.

        ``anchor`` is the loop node whose body is being walked: an edge back
        to it ends the current pass instead of re-entering the loop.
        """
        executed: set[str] = set()
        stack = list(reversed(start_ids))
        while stack:
            node_id = stack.pop()
            if node_id == anchor or node_id in executed:
                continue
            executed.add(node_id)

            node = invocation.graph.get_node(node_id)
            if node is None:
                raise MalformedGraphError(f"Edge points at missing node '{node_id}'")

            port = await self._execute_node(invocation, node)
            stack.extend(reversed(self._next_nodes(invocation.graph, node, port)))

    def _next_nodes(self, graph: GraphSpec, node: NodeSpec, port: PortId | None) -> list[str]:
        if not semantics_for(node).is_multi_port:
            return graph.successors(node.id)
        if port is None:
            return []
        return graph.successors(node.id, port)

    async def _execute_node(self, invocation: Invocation, node: NodeSpec) -> PortId | None:
        invocation.steps += 1
        if invocation.steps > self.config.max_steps:
            raise StepLimitExceeded(
                f"Exceeded {self.config.max_steps} steps at node '{node.id}'",
                node_id=node.id,
            )

        semantics = semantics_for(node)
        handler = HANDLERS[node.node_type]

        set_trace_context(node_id=node.id)
        invocation.path.append(node.id)
        logger.debug(f"Step {invocation.steps}: {semantics.source} '{node.display_name}'")

        try:
            return await handler(node, invocation)
        except PluginRuntimeError as e:
            if e.node_id is None:
                e.node_id = node.id
            raise

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _result(
        self,
        invocation: Invocation,
        started: float,
        error: BaseException | None = None,
        failed_node: str | None = None,
    ) -> ExecutionResult:
        result = ExecutionResult(
            success=error is None,
            status=ExecutionStatus.COMPLETED if error is None else ExecutionStatus.FAILED,
            responses=list(invocation.responses),
            path=list(invocation.path),
            steps_executed=invocation.steps,
            recoverable_errors=[
                {"kind": e.kind, "node_id": e.node_id, "message": str(e)}
                for e in invocation.errors
            ],
            variables=invocation.context.snapshot(),
            duration_ms=int((time.monotonic() - started) * 1000),
            invocation_id=invocation.invocation_id,
        )
        if error is not None:
            result.error = str(error)
            if isinstance(error, PluginRuntimeError):
                result.error_kind = error.kind
                result.failed_node = error.node_id
            else:
                result.error_kind = type(error).__name__
                result.failed_node = failed_node
        return result
