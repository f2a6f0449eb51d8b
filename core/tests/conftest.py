"""Shared fixtures for botflow tests."""

import random
from typing import Any

import pytest

from botflow.config import EngineConfig
from botflow.graph.compiler import compile_plugin
from botflow.graph.context import TriggerEvent
from botflow.graph.edge import GraphSpec
from botflow.graph.executor import ExecutionResult, PluginExecutor
from botflow.observability import clear_trace_context
from botflow.runtime.platform import InertChatPlatform
from botflow.runtime.state_store import InMemoryKeyValueStore


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Never read the developer's ~/.botflow/configuration.json."""
    monkeypatch.setenv("BOTFLOW_CONFIG_FILE", str(tmp_path / "configuration.json"))
    yield
    clear_trace_context()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        max_loop_iterations=50,
        max_steps=500,
        http_timeout=1.0,
        max_wait_ms=50,
        invocation_timeout=1.0,
        max_concurrent=2,
    )


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def platform() -> InertChatPlatform:
    return InertChatPlatform()


@pytest.fixture
def executor(engine_config, store, platform) -> PluginExecutor:
    return PluginExecutor(
        config=engine_config,
        store=store,
        platform=platform,
        rng=random.Random(1234),
    )


@pytest.fixture
def make_graph():
    """
    Build a GraphSpec from compact node and edge tuples.

    Nodes: (id, type, config). Edges: (source, target) or (source, target, port).
    """

    def build(nodes: list[tuple[str, str, dict[str, Any]]], edges: list[tuple]) -> GraphSpec:
        return GraphSpec.model_validate(
            {
                "id": "test-plugin",
                "nodes": [
                    {"id": node_id, "type": node_type, "label": node_id, "config": config}
                    for node_id, node_type, config in nodes
                ],
                "edges": [
                    {
                        "id": f"e{i}",
                        "source": edge[0],
                        "target": edge[1],
                        **({"sourceHandle": edge[2]} if len(edge) > 2 else {}),
                    }
                    for i, edge in enumerate(edges)
                ],
            }
        )

    return build


@pytest.fixture
def run_graph(executor, make_graph):
    """Compile and execute a graph built from node and edge tuples."""

    async def run(nodes, edges, event: TriggerEvent | None = None) -> ExecutionResult:
        plugin = compile_plugin(make_graph(nodes, edges))
        return await executor.execute(plugin, event or TriggerEvent())

    return run


@pytest.fixture
def run_chain(run_graph):
    """Execute trigger -> nodes[0] -> nodes[1] -> ... as a straight line."""

    async def run(nodes, event: TriggerEvent | None = None) -> ExecutionResult:
        ids = ["trigger"] + [node_id for node_id, _, _ in nodes]
        edges = list(zip(ids, ids[1:], strict=False))
        return await run_graph([("trigger", "trigger", {}), *nodes], edges, event)

    return run
