"""
Scope Resolver - which variables are visible at a node.

Walks the graph backward from the target, collecting the variables every
upstream node declares. Port tags are ignored: a variable declared on a
node is visible on any path passing through it, whichever port was taken
to leave it.
"""

from botflow.graph.edge import GraphSpec
from botflow.graph.registry import Variable, VariableKind, declared_variables


def _walk_backward(target_id: str, graph: GraphSpec) -> list[Variable]:
    """
    Collect declarations of every transitive predecessor of ``target_id``.

    The target is marked visited before the walk starts, so its own
    declarations are never collected, even when a loop-back edge makes it
    its own predecessor. The visited set is what guarantees termination on
    cyclic graphs.
    """
    reverse = graph.reverse_adjacency()
    visited: set[str] = {target_id}
    collected: list[Variable] = []

    # Explicit stack instead of recursion: long chains must not hit the
    # interpreter's recursion limit. Pushing predecessors in reverse keeps
    # the same visiting order as a recursive depth-first walk.
    stack: list[str] = list(reversed(reverse.get(target_id, [])))
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)

        node = graph.get_node(node_id)
        if node is None:
            continue
        collected.extend(declared_variables(node))

        for source_id in reversed(reverse.get(node_id, [])):
            if source_id not in visited:
                stack.append(source_id)

    return collected


def get_available_variables(target_id: str, graph: GraphSpec) -> list[Variable]:
    """
    Variables visible at ``target_id``, de-duplicated by name and sorted by name.

    On a name collision the first declaration met by the walk is kept: the
    nearest one along the first explored path.
    """
    unique: dict[str, Variable] = {}
    for variable in _walk_backward(target_id, graph):
        unique.setdefault(variable.name, variable)
    return sorted(unique.values(), key=lambda v: v.name)


def get_variable_names(target_id: str, graph: GraphSpec) -> list[str]:
    """Names only, for autocomplete."""
    return [v.name for v in get_available_variables(target_id, graph)]


def format_variable_display(variable: Variable) -> str:
    return f"{variable.name} ({variable.type} from {variable.source})"


def build_scope_table(graph: GraphSpec) -> dict[str, frozenset[str]]:
    """Visible variable names for every node in the graph."""
    return {
        node.id: frozenset(get_variable_names(node.id, graph))
        for node in graph.nodes
    }


def find_variable_conflicts(graph: GraphSpec) -> dict[str, list[Variable]]:
    """
    Names declared with more than one kind anywhere in the graph.

    Returns a mapping of variable name to the conflicting declarations.
    """
    by_name: dict[str, list[Variable]] = {}
    for node in graph.nodes:
        for variable in declared_variables(node):
            by_name.setdefault(variable.name, []).append(variable)

    conflicts: dict[str, list[Variable]] = {}
    for name, declarations in by_name.items():
        kinds: set[VariableKind] = {v.type for v in declarations}
        if len(kinds) > 1:
            conflicts[name] = declarations
    return conflicts
