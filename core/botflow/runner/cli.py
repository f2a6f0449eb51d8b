"""CLI commands for validating, inspecting and running plugin graphs."""

import argparse
import asyncio
import json
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from botflow.errors import GraphValidationError
from botflow.graph.compiler import compile_plugin, extract_options, load_graph
from botflow.graph.context import TriggerEvent
from botflow.graph.edge import GraphSpec
from botflow.graph.executor import PluginExecutor
from botflow.graph.scope import format_variable_display, get_available_variables
from botflow.graph.validator import ValidationIssue, validate_graph
from botflow.runtime.platform import InertChatPlatform
from botflow.runtime.state_store import InMemoryKeyValueStore


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register runner commands with the main CLI."""

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a plugin graph",
        description="Check a plugin graph for structural errors and warnings.",
    )
    validate_parser.add_argument("file", help="Path to the graph JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    # scope command
    scope_parser = subparsers.add_parser(
        "scope",
        help="List variables visible at a node",
        description="Show the variables declared upstream of a node.",
    )
    scope_parser.add_argument("file", help="Path to the graph JSON file")
    scope_parser.add_argument("node_id", help="Node to inspect")
    scope_parser.set_defaults(func=cmd_scope)

    # options command
    options_parser = subparsers.add_parser(
        "options",
        help="Print slash-command options",
        description="Print the slash-command options extracted from user_input variables.",
    )
    options_parser.add_argument("file", help="Path to the graph JSON file")
    options_parser.set_defaults(func=cmd_options)

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run a plugin once",
        description="Compile a plugin and execute it once against an in-memory store.",
    )
    run_parser.add_argument("file", help="Path to the graph JSON file")
    run_parser.add_argument(
        "--event",
        "-e",
        type=str,
        help="Trigger event as JSON string",
    )
    run_parser.add_argument(
        "--plugin-id",
        type=str,
        help="Plugin id used for store namespaces (default: graph id)",
    )
    run_parser.set_defaults(func=cmd_run)


def _load(path: str) -> GraphSpec | None:
    try:
        return load_graph(path)
    except FileNotFoundError:
        Console(stderr=True).print(f"[red]File not found:[/red] {path}")
    except (json.JSONDecodeError, ValidationError) as e:
        Console(stderr=True).print(f"[red]Invalid graph file:[/red] {e}")
    return None


def _issue_table(issues: list[ValidationIssue]) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Severity")
    table.add_column("Kind")
    table.add_column("Node")
    table.add_column("Message")
    for issue in issues:
        style = "red" if issue.severity == "error" else "yellow"
        table.add_row(
            f"[{style}]{issue.severity}[/{style}]",
            str(issue.kind),
            issue.node_id or "",
            issue.message,
        )
    return table


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a plugin graph."""
    graph = _load(args.file)
    if graph is None:
        return 1

    console = Console()
    result = validate_graph(graph)
    if result.issues:
        console.print(_issue_table(result.issues))

    if not result.valid:
        console.print(f"[red]✗ {len(result.errors)} error(s)[/red]")
        return 1
    console.print(f"[green]✓ Graph '{graph.id}' is valid[/green]")
    return 0


def cmd_scope(args: argparse.Namespace) -> int:
    """List variables visible at a node."""
    graph = _load(args.file)
    if graph is None:
        return 1
    if not graph.has_node(args.node_id):
        Console(stderr=True).print(f"[red]No node '{args.node_id}' in graph[/red]")
        return 1

    for variable in get_available_variables(args.node_id, graph):
        print(format_variable_display(variable))
    return 0


def cmd_options(args: argparse.Namespace) -> int:
    """Print slash-command options as JSON."""
    graph = _load(args.file)
    if graph is None:
        return 1
    print(json.dumps(extract_options(graph), indent=2))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Compile and execute a plugin once."""
    graph = _load(args.file)
    if graph is None:
        return 1

    event_data: dict[str, Any] = {}
    if args.event:
        try:
            event_data = json.loads(args.event)
        except json.JSONDecodeError as e:
            Console(stderr=True).print(f"[red]Invalid --event JSON:[/red] {e}")
            return 1

    try:
        plugin = compile_plugin(graph, plugin_id=args.plugin_id)
    except GraphValidationError as e:
        Console(stderr=True).print(_issue_table(e.issues))
        return 1

    executor = PluginExecutor(store=InMemoryKeyValueStore(), platform=InertChatPlatform())
    result = asyncio.run(executor.execute(plugin, TriggerEvent.model_validate(event_data)))

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.success else 1
