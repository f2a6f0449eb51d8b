"""End-to-end tests for PluginExecutor traversal and error handling."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from botflow.errors import GraphValidationError
from botflow.graph.compiler import compile_plugin
from botflow.graph.context import TriggerEvent
from botflow.graph.executor import ExecutionStatus
from botflow.observability import get_trace_context


class TestTraversal:
    @pytest.mark.asyncio
    async def test_random_count_reaches_response(self, run_graph):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("v", "variable", {"name": "count", "type": "random_number", "min": 1, "max": 1}),
                ("c", "comparison", {"left": "{count}", "operator": ">", "right": "0"}),
                ("r", "response", {"message": "count is {count}"}),
            ],
            [("t", "v"), ("v", "c"), ("c", "r", "true")],
        )

        assert result.success is True
        assert result.status == ExecutionStatus.COMPLETED
        assert result.reply == "count is 1"
        assert result.path == ["t", "v", "c", "r"]
        assert result.steps_executed == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("count", "reply"), [(10, "big"), (3, "small")])
    async def test_condition_operator_triple(self, run_graph, count, reply):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("v", "variable", {"name": "count", "type": "number", "value": count}),
                ("c", "condition", {"operator": ">", "left": "{count}", "right": "5"}),
                ("big", "response", {"message": "big"}),
                ("small", "response", {"message": "small"}),
            ],
            [("t", "v"), ("v", "c"), ("c", "big", "true"), ("c", "small", "false")],
        )
        assert result.reply == reply

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("count", "reply"), [(10, "big"), (3, "small")])
    async def test_condition_expression(self, run_graph, count, reply):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("v", "variable", {"name": "count", "type": "number", "value": count}),
                ("c", "condition", {"condition": "{count} > 5"}),
                ("big", "response", {"message": "big"}),
                ("small", "response", {"message": "small"}),
            ],
            [("t", "v"), ("v", "c"), ("c", "big", "true-handle"), ("c", "small", "false-handle")],
        )
        assert result.reply == reply

    @pytest.mark.asyncio
    async def test_fan_out_is_depth_first_in_edge_order(self, run_graph):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("a", "response", {"message": "a"}),
                ("a2", "response", {"message": "a2"}),
                ("b", "response", {"message": "b"}),
            ],
            [("t", "a"), ("t", "b"), ("a", "a2")],
        )
        assert result.path == ["t", "a", "a2", "b"]
        assert [r.content for r in result.responses] == ["a", "a2", "b"]

    @pytest.mark.asyncio
    async def test_untaken_port_is_not_followed(self, run_graph):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("c", "condition", {"condition": "false"}),
                ("r", "response", {"message": "never"}),
            ],
            [("t", "c"), ("c", "r", "true")],
        )
        assert result.success
        assert result.responses == []
        assert result.path == ["t", "c"]

    @pytest.mark.asyncio
    async def test_response_defaults_and_ephemeral(self, run_chain):
        result = await run_chain([("r", "response", {"ephemeral": True})])
        (response,) = result.responses
        assert response.content == "Hello!"
        assert response.ephemeral is True
        assert response.node_id == "r"


class TestReferences:
    @pytest.mark.asyncio
    async def test_interpolates_event_derived_variable(self, run_chain):
        result = await run_chain(
            [
                ("v", "variable", {"name": "username", "type": "user_name"}),
                ("r", "response", {"message": "Hello, {username}!"}),
            ],
            event=TriggerEvent(username="Ann"),
        )
        assert result.reply == "Hello, Ann!"

    @pytest.mark.asyncio
    async def test_undeclared_reference_is_fatal(self, run_chain):
        result = await run_chain([("r", "response", {"message": "Hi {ghost}"})])

        assert result.success is False
        assert result.status == ExecutionStatus.FAILED
        assert result.error_kind == "UndeclaredVariableReference"
        assert result.failed_node == "r"
        assert "ghost" in result.error
        assert result.responses == []

    @pytest.mark.asyncio
    async def test_declared_but_unbound_renders_empty(self, run_graph):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("c", "condition", {"condition": "false"}),
                ("v", "variable", {"name": "x", "value": "set"}),
                ("r", "response", {"message": "x=[{x}]"}),
            ],
            [("t", "c"), ("c", "v", "true"), ("c", "r", "false"), ("v", "r")],
        )
        assert result.success
        assert result.reply == "x=[]"

    @pytest.mark.asyncio
    async def test_reserved_names_are_always_allowed(self, run_chain):
        result = await run_chain([("r", "response", {"message": "id=[{_message_id}]"})])
        assert result.success
        assert result.reply == "id=[]"

    @pytest.mark.asyncio
    async def test_single_reference_keeps_raw_value(self, run_chain):
        result = await run_chain(
            [
                ("v", "variable", {"name": "items", "type": "array", "value": '["a", "b"]'}),
                ("copy", "variable", {"name": "same", "type": "array", "value": "{items}"}),
            ]
        )
        assert result.variables["same"] == ["a", "b"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_node_type_at_runtime(self, run_chain):
        result = await run_chain([("x", "teleport", {}), ("r", "response", {})])
        assert result.error_kind == "UnknownNodeType"
        assert result.failed_node == "x"
        assert result.path == ["trigger"]

    @pytest.mark.asyncio
    async def test_bad_operand_is_fatal(self, run_chain):
        result = await run_chain(
            [
                ("m", "math_operation", {"operation": "divide", "value1": 1, "value2": 0}),
                ("r", "response", {}),
            ]
        )
        assert result.error_kind == "NodeExecutionError"
        assert result.failed_node == "m"
        assert result.responses == []

    @pytest.mark.asyncio
    async def test_cycle_without_loop_node_runs_each_node_once(self, run_graph):
        result = await run_graph(
            [
                ("t", "trigger", {}),
                ("a", "action", {"actionType": "log", "message": "tick"}),
                ("b", "response", {"message": "tock"}),
            ],
            [("t", "a"), ("a", "b"), ("b", "a")],
        )
        assert result.success, result.error
        assert result.path == ["t", "a", "b"]
        assert len(result.responses) == 1

    @pytest.mark.asyncio
    async def test_rejoining_branches_run_join_once(self, run_graph, store):
        result = await run_graph(
            [
                ("trigger", "trigger", {}),
                ("a", "variable", {"name": "left", "type": "string", "value": "L"}),
                ("b", "variable", {"name": "right", "type": "string", "value": "R"}),
                ("save", "database", {"operation": "set", "key": "hits", "value": "1"}),
                ("join", "response", {"message": "joined"}),
            ],
            [
                ("trigger", "a"),
                ("trigger", "b"),
                ("a", "save"),
                ("b", "save"),
                ("save", "join"),
            ],
        )
        assert result.success, result.error
        assert result.path == ["trigger", "a", "save", "join", "b"]
        assert [r.content for r in result.responses] == ["joined"]
        assert len(store.history()) == 1

    @pytest.mark.asyncio
    async def test_platform_error_is_wrapped(self, run_chain, platform):
        platform.send_embed = AsyncMock(side_effect=RuntimeError("gateway down"))
        result = await run_chain(
            [
                ("e", "embed_builder", {"title": "Hi", "embedVar": "card"}),
                ("s", "embed_response", {"embedVar": "card"}),
            ]
        )
        assert result.error_kind == "ExternalCallFailed"
        assert result.failed_node == "s"
        assert "gateway down" in result.error

    @pytest.mark.asyncio
    async def test_state_write_failure_is_recoverable(self, run_chain, store):
        store.set = AsyncMock(side_effect=ZeroDivisionError)
        result = await run_chain(
            [("a", "action", {"actionType": "set_state", "key": "k", "value": "v"})]
        )
        assert result.success
        assert result.recoverable_errors[0]["kind"] == "DatabaseOperationFailed"

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failed_result(self, run_chain, executor):
        executor.rng = Mock(randint=Mock(side_effect=RuntimeError("rng broke")))
        result = await run_chain(
            [("v", "variable", {"name": "n", "type": "random_number"}), ("r", "response", {})]
        )
        assert result.success is False
        assert result.error_kind == "RuntimeError"
        assert result.failed_node == "v"
        assert result.error == "rng broke"

    @pytest.mark.asyncio
    async def test_failures_are_isolated_between_invocations(self, executor, make_graph):
        good = compile_plugin(
            make_graph(
                [("t", "trigger", {}), ("r", "response", {"message": "ok"})], [("t", "r")]
            ),
            plugin_id="good",
        )
        bad = compile_plugin(
            make_graph(
                [("t", "trigger", {}), ("r", "response", {"message": "{nope}"})], [("t", "r")]
            ),
            plugin_id="bad",
        )
        results = await asyncio.gather(
            executor.execute(bad),
            executor.execute(good),
            executor.execute(bad),
        )
        assert [r.success for r in results] == [False, True, False]
        assert results[1].reply == "ok"


class TestResult:
    @pytest.mark.asyncio
    async def test_to_dict_is_json_serializable(self, run_chain):
        result = await run_chain(
            [
                ("e", "embed_builder", {"title": "Card"}),
                ("s", "embed_response", {}),
                ("r", "response", {"message": "done"}),
            ]
        )
        data = json.loads(json.dumps(result.to_dict()))
        assert data["success"] is True
        assert data["status"] == "completed"
        assert data["responses"][0]["embeds"] == [{"title": "Card"}]
        assert data["responses"][1]["content"] == "done"
        assert isinstance(data["variables"]["_sent_message"], str)

    @pytest.mark.asyncio
    async def test_trace_context_is_set(self, run_chain):
        result = await run_chain([("r", "response", {})])
        context = get_trace_context()
        assert context["plugin_id"] == "test-plugin"
        assert context["invocation_id"] == result.invocation_id
        assert context["node_id"] == "r"


class TestCompile:
    def test_invalid_graph_raises(self, make_graph):
        with pytest.raises(GraphValidationError) as exc_info:
            compile_plugin(make_graph([("r", "response", {})], []))
        assert [i.kind for i in exc_info.value.issues] == ["InvalidTriggerCount"]

    def test_compiled_plugin(self, make_graph):
        plugin = compile_plugin(
            make_graph(
                [
                    ("t", "trigger", {}),
                    ("v", "variable", {"name": "city", "type": "user_input"}),
                    ("r", "response", {"message": "{city}"}),
                ],
                [("t", "v"), ("v", "r")],
            ),
            plugin_id="weather",
        )
        assert plugin.plugin_id == "weather"
        assert plugin.trigger_id == "t"
        assert plugin.scope_of("r") == frozenset({"city"})
        assert plugin.scope_of("missing") == frozenset()
        assert plugin.options == [
            {"type": 3, "name": "city", "description": "Enter city", "required": True}
        ]

    def test_optional_option(self, make_graph):
        plugin = compile_plugin(
            make_graph(
                [
                    ("t", "trigger", {}),
                    (
                        "v",
                        "variable",
                        {
                            "name": "note",
                            "type": "user_input",
                            "description": "Anything else?",
                            "required": False,
                        },
                    ),
                    ("r", "response", {}),
                ],
                [("t", "v"), ("v", "r")],
            )
        )
        assert plugin.options == [
            {"type": 3, "name": "note", "description": "Anything else?", "required": False}
        ]
