"""Command-line interface for the task graph engine."""

from __future__ import annotations

import argparse
import logging

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskgraph.config import DEFAULT_MAX_PARALLEL, LOG_FORMAT, LOG_LEVEL, SERVER_HOST, SERVER_PORT
from taskgraph.models import TASK_TYPES, CreateGraphParams, TaskGraph
from taskgraph.service import TaskGraphService
from taskgraph.templates import list_templates

console = Console()

STATUS_STYLES = {
    "pending": "dim",
    "ready": "yellow",
    "running": "blue",
    "completed": "green",
    "failed": "red",
    "skipped": "magenta",
}


def print_templates():
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan")
    table.add_column("Nodes", justify="right")
    table.add_column("Phases", style="green")
    table.add_column("Est. Tokens", justify="right", style="yellow")

    for t in list_templates():
        nodes = "caller-defined" if t["custom"] else str(t["node_count"])
        table.add_row(t["name"], nodes, ", ".join(t["phases"]) or "-", str(t["estimated_tokens"]))
    console.print(table)


def print_graph(graph: TaskGraph):
    """Print node status for a graph."""
    table = Table(show_header=True, header_style="bold magenta", title=f"{graph.name} [{graph.status}]")
    table.add_column("Node", style="cyan")
    table.add_column("Phase", style="green")
    table.add_column("Status")
    table.add_column("Depends On", style="blue")
    table.add_column("Tokens", justify="right", style="yellow")

    for node in graph.nodes.values():
        style = STATUS_STYLES.get(node.status, "white")
        deps = ", ".join(graph.nodes[d].name for d in node.depends_on) or "none"
        table.add_row(
            node.name,
            node.phase,
            f"[{style}]{node.status}[/{style}]",
            deps,
            f"{node.actual_tokens}/{node.estimated_tokens}",
        )
    console.print(table)


def run_demo(task_type: str, max_parallel: int, fail_first: bool = False) -> TaskGraph:
    """Drive a template graph to the end in-process, simulating the external caller.

    Each round starts up to ``max_parallel`` ready nodes and reports them all as
    completed with their estimated cost. With ``fail_first`` the first node run
    fails once before succeeding on retry.
    """
    service = TaskGraphService()
    graph = service.create_graph(CreateGraphParams(name=f"demo-{task_type}", task_type=task_type))
    analysis = service.analyze_graph(graph.id)
    names = [graph.nodes[nid].name for nid in analysis.critical_path]
    console.print(Panel(
        f"[bold]Critical path:[/bold] {' -> '.join(names)} ({analysis.critical_path_length} tokens)\n"
        f"[bold]Levels:[/bold] {len(analysis.parallelizable_groups)}, "
        f"max parallelism {analysis.max_parallelism}",
        title=f"[bold]{graph.name}[/bold]",
        border_style="blue",
    ))

    round_no = 0
    while True:
        ready = service.get_next_nodes(graph.id)[:max_parallel]
        if not ready:
            break
        round_no += 1
        for node in ready:
            service.start_node(graph.id, node.id)
        console.print(f"[bold cyan]Round {round_no}:[/bold cyan] {', '.join(n.name for n in ready)}")
        for node in ready:
            if fail_first:
                fail_first = False
                outcome = service.fail_node(graph.id, node.id, "simulated failure")
                console.print(f"  [red]{outcome.message}[/red]")
                continue
            outcome = service.complete_node(graph.id, node.id, result="ok", tokens_used=node.estimated_tokens)
            if outcome.newly_ready:
                console.print(f"  [green]{node.name}[/green] unlocked {', '.join(n.name for n in outcome.newly_ready)}")

    print_graph(graph)
    final = service.analyze_graph(graph.id)
    console.print(f"[bold]Progress:[/bold] {final.progress}%  [bold]Tokens used:[/bold] {graph.actual_tokens_used}")
    return graph


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(prog="taskgraph", description="DAG task orchestration engine")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default=SERVER_HOST)
    serve.add_argument("--port", type=int, default=SERVER_PORT)

    sub.add_parser("mcp", help="Run the MCP server on stdio")
    sub.add_parser("templates", help="List task archetypes")

    demo = sub.add_parser("demo", help="Drive a template graph to completion in-process")
    demo.add_argument("--type", dest="task_type", default="bugfix", choices=[t for t in TASK_TYPES if t != "custom"])
    demo.add_argument("--max-parallel", type=int, default=DEFAULT_MAX_PARALLEL)
    demo.add_argument("--fail-first", action="store_true", help="Fail the first node once to show a retry")

    args = parser.parse_args(argv)

    if args.command == "serve":
        from taskgraph.server import main as serve_main
        serve_main(host=args.host, port=args.port)
    elif args.command == "mcp":
        from taskgraph.mcp_server import main as mcp_main
        mcp_main()
    elif args.command == "templates":
        print_templates()
    elif args.command == "demo":
        logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
        run_demo(args.task_type, args.max_parallel, args.fail_first)


if __name__ == "__main__":
    main()
