"""Tests for the scope resolver."""

from botflow.graph.registry import VariableKind
from botflow.graph.scope import (
    build_scope_table,
    find_variable_conflicts,
    format_variable_display,
    get_available_variables,
    get_variable_names,
)


class TestAvailableVariables:
    def test_upstream_declaration_is_visible(self, make_graph):
        graph = make_graph(
            [
                ("t", "trigger", {}),
                ("v", "variable", {"name": "x"}),
                ("r", "response", {"message": "{x}"}),
            ],
            [("t", "v"), ("v", "r")],
        )
        assert get_variable_names("r", graph) == ["x"]
        assert get_variable_names("v", graph) == []
        assert get_variable_names("t", graph) == []

    def test_mutual_cycle_terminates_without_duplicates(self, make_graph):
        graph = make_graph(
            [("a", "variable", {"name": "a"}), ("b", "variable", {"name": "b"})],
            [("a", "b"), ("b", "a")],
        )
        assert get_variable_names("a", graph) == ["b"]
        assert get_variable_names("b", graph) == ["a"]

    def test_self_loop_excludes_own_declarations(self, make_graph):
        graph = make_graph([("a", "variable", {"name": "a"})], [("a", "a")])
        assert get_variable_names("a", graph) == []

    def test_ports_are_ignored(self, make_graph):
        graph = make_graph(
            [
                ("t", "trigger", {}),
                ("cmp", "comparison", {"outputVar": "ok", "left": "1", "right": "1"}),
                ("r", "response", {}),
            ],
            [("t", "cmp"), ("cmp", "r", "false")],
        )
        assert get_variable_names("r", graph) == ["ok"]

    def test_sorted_and_deduplicated(self, make_graph):
        graph = make_graph(
            [
                ("t", "trigger", {}),
                ("v1", "variable", {"name": "zeta"}),
                ("v2", "variable", {"name": "alpha"}),
                ("v3", "variable", {"name": "zeta"}),
                ("r", "response", {}),
            ],
            [("t", "v1"), ("v1", "v2"), ("v2", "v3"), ("v3", "r")],
        )
        names = get_variable_names("r", graph)
        assert names == ["alpha", "zeta"]
        zeta = next(v for v in get_available_variables("r", graph) if v.name == "zeta")
        assert zeta.node_id == "v3"

    def test_diamond_sees_both_branches(self, make_graph):
        graph = make_graph(
            [
                ("t", "trigger", {}),
                ("c", "condition", {"condition": "true"}),
                ("left", "variable", {"name": "l"}),
                ("right", "variable", {"name": "r"}),
                ("join", "response", {}),
            ],
            [
                ("t", "c"),
                ("c", "left", "true"),
                ("c", "right", "false"),
                ("left", "join"),
                ("right", "join"),
            ],
        )
        assert get_variable_names("join", graph) == ["l", "r"]

    def test_dangling_edge_source_is_skipped(self, make_graph):
        graph = make_graph([("r", "response", {})], [("ghost", "r")])
        assert get_variable_names("r", graph) == []

    def test_long_chain_does_not_recurse(self, make_graph):
        count = 3000
        nodes = [("t", "trigger", {})] + [
            (f"v{i}", "variable", {"name": f"x{i}"}) for i in range(count)
        ]
        edges = [("t", "v0")] + [(f"v{i}", f"v{i + 1}") for i in range(count - 1)]
        graph = make_graph(nodes, edges)
        assert len(get_variable_names(f"v{count - 1}", graph)) == count - 1


class TestScopeTable:
    def test_table_covers_every_node(self, make_graph):
        graph = make_graph(
            [
                ("t", "trigger", {}),
                ("v", "variable", {"name": "x"}),
                ("r", "response", {}),
            ],
            [("t", "v"), ("v", "r")],
        )
        table = build_scope_table(graph)
        assert table == {"t": frozenset(), "v": frozenset(), "r": frozenset({"x"})}

    def test_conflicts(self, make_graph):
        graph = make_graph(
            [
                ("v1", "variable", {"name": "x", "type": "number"}),
                ("v2", "variable", {"name": "x", "type": "string"}),
                ("v3", "variable", {"name": "y"}),
            ],
            [],
        )
        conflicts = find_variable_conflicts(graph)
        assert list(conflicts) == ["x"]
        assert {v.type for v in conflicts["x"]} == {VariableKind.NUMBER, VariableKind.STRING}

    def test_display(self, make_graph):
        graph = make_graph(
            [("v", "variable", {"name": "count", "type": "number"}), ("r", "response", {})],
            [("v", "r")],
        )
        (variable,) = get_available_variables("r", graph)
        assert format_variable_display(variable) == "count (number from Variable Node)"
