"""Tests for the graph model: nodes, edges, ports and graph loading."""

import json

from botflow.graph.edge import EdgeSpec, GraphSpec
from botflow.graph.node import NodeSpec, NodeType, PortId


class TestNodeSpec:
    def test_flat_shape(self):
        node = NodeSpec.model_validate(
            {"id": "n1", "type": "response", "label": "Reply", "config": {"message": "hi"}}
        )
        assert node.node_type == NodeType.RESPONSE
        assert node.display_name == "Reply"
        assert node.get("message") == "hi"

    def test_editor_data_shape_is_unwrapped(self):
        node = NodeSpec.model_validate(
            {
                "id": "n1",
                "type": "variable",
                "position": {"x": 10, "y": 20},
                "data": {"label": "Count", "config": {"name": "count"}},
            }
        )
        assert node.label == "Count"
        assert node.config == {"name": "count"}
        assert node.position.x == 10

    def test_null_config_becomes_empty(self):
        node = NodeSpec.model_validate({"id": "n1", "type": "trigger", "config": None})
        assert node.config == {}

    def test_unknown_type_loads(self):
        node = NodeSpec(id="n1", type="teleport")
        assert node.node_type is None
        assert node.display_name == "n1"

    def test_get_treats_empty_as_missing(self):
        node = NodeSpec(id="n1", type="variable", config={"name": "", "value": None, "n": 0})
        assert node.get("name", "fallback") == "fallback"
        assert node.get("value", "x") == "x"
        assert node.get("n", 5) == 0


class TestEdgeSpec:
    def test_no_handle_has_no_port(self):
        assert EdgeSpec(source="a", target="b").port is None

    def test_exact_handle(self):
        edge = EdgeSpec.model_validate({"source": "a", "target": "b", "sourceHandle": "loop-body"})
        assert edge.port == PortId.LOOP_BODY

    def test_handle_containing_port_id(self):
        edge = EdgeSpec.model_validate({"source": "a", "target": "b", "sourceHandle": "true-out"})
        assert edge.port == PortId.TRUE

    def test_unrelated_handle(self):
        edge = EdgeSpec.model_validate({"source": "a", "target": "b", "sourceHandle": "output"})
        assert edge.port is None


class TestGraphSpec:
    def test_successors_by_port(self, make_graph):
        graph = make_graph(
            [
                ("t", "trigger", {}),
                ("c", "condition", {"condition": "true"}),
                ("yes", "response", {}),
                ("no", "response", {}),
            ],
            [("t", "c"), ("c", "yes", "true"), ("c", "no", "false")],
        )
        assert graph.successors("c") == ["yes", "no"]
        assert graph.successors("c", PortId.TRUE) == ["yes"]
        assert graph.successors("c", PortId.FALSE) == ["no"]
        assert graph.successors("c", PortId.COMPLETE) == []

    def test_reachable_from_handles_cycles(self, make_graph):
        graph = make_graph(
            [("a", "trigger", {}), ("b", "response", {}), ("c", "response", {})],
            [("a", "b"), ("b", "c"), ("c", "b")],
        )
        assert graph.reachable_from("a") == {"a", "b", "c"}

    def test_duplicate_ids_first_wins(self):
        graph = GraphSpec(
            nodes=[
                NodeSpec(id="n", type="trigger"),
                NodeSpec(id="n", type="response"),
            ]
        )
        assert graph.get_node("n").type == "trigger"

    def test_load_from_json_text_and_file(self, tmp_path):
        document = {
            "nodes": [{"id": "t", "type": "trigger", "config": {}}],
            "edges": [],
        }
        from_text = GraphSpec.load(json.dumps(document))
        path = tmp_path / "plugin.json"
        path.write_text(json.dumps(document), encoding="utf-8")
        from_file = GraphSpec.load(path)
        from_str_path = GraphSpec.load(str(path))

        for graph in (from_text, from_file, from_str_path):
            assert [n.id for n in graph.nodes] == ["t"]

    def test_round_trip_keeps_source_handle_alias(self, make_graph):
        graph = make_graph(
            [("t", "trigger", {}), ("c", "condition", {}), ("r", "response", {})],
            [("t", "c"), ("c", "r", "true")],
        )
        dumped = graph.to_dict()
        assert dumped["edges"][1]["sourceHandle"] == "true"
        assert GraphSpec.load(dumped).successors("c", PortId.TRUE) == ["r"]
