"""MCP server — exposes the task graph tools to an agent over stdio.

Run: python -m taskgraph.mcp_server
"""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from taskgraph.config import EVENT_LOG_FILE, LOG_FORMAT, LOG_LEVEL, MCP_SERVER_NAME
from taskgraph.events import EventBus
from taskgraph.models import ToolCall
from taskgraph.service import TaskGraphService
from taskgraph.tools.context import ToolContext
from taskgraph.tools.definitions import Operation
from taskgraph.tools.setup import create_default_registry

logger = logging.getLogger(__name__)


def create_mcp_server(service: TaskGraphService | None = None) -> FastMCP:
    """One MCP tool per ``Operation``, all bound to ``service``."""
    service = service or TaskGraphService(event_bus=EventBus(log_file=EVENT_LOG_FILE))
    context = ToolContext(service=service)
    registry = create_default_registry()
    mcp = FastMCP(MCP_SERVER_NAME)

    async def call(op: Operation, **args: Any) -> dict:
        return await registry.dispatch(ToolCall(name=op.value, args=args), context)

    @mcp.tool()
    async def create_graph(
        name: str,
        task_type: str,
        description: str | None = None,
        files: list[str] | None = None,
        constraints: list[str] | None = None,
        custom_nodes: list[dict] | None = None,
    ) -> dict:
        """Create a DAG task graph from an archetype (feature, bugfix, refactor, review) or custom nodes."""
        return await call(
            Operation.CREATE_GRAPH, name=name, task_type=task_type, description=description,
            files=files, constraints=constraints, custom_nodes=custom_nodes,
        )

    @mcp.tool()
    async def workflow_start(
        name: str,
        task_type: str,
        description: str | None = None,
        files: list[str] | None = None,
        constraints: list[str] | None = None,
        custom_nodes: list[dict] | None = None,
    ) -> dict:
        """Create a task graph and return the first nodes to execute with instructions."""
        return await call(
            Operation.WORKFLOW_START, name=name, task_type=task_type, description=description,
            files=files, constraints=constraints, custom_nodes=custom_nodes,
        )

    @mcp.tool()
    async def get_next_nodes(graph_id: str) -> dict:
        """Nodes ready to execute now, highest priority first. Empty when nothing is runnable."""
        return await call(Operation.GET_NEXT_NODES, graph_id=graph_id)

    @mcp.tool()
    async def start_node(graph_id: str, node_id: str) -> dict:
        """Mark a ready node as running."""
        return await call(Operation.START_NODE, graph_id=graph_id, node_id=node_id)

    @mcp.tool()
    async def complete_node(
        graph_id: str, node_id: str, result: Any = None, tokens_used: int | None = None,
    ) -> dict:
        """Mark a node completed; reports the dependents that became ready."""
        return await call(
            Operation.COMPLETE_NODE, graph_id=graph_id, node_id=node_id,
            result=result, tokens_used=tokens_used,
        )

    @mcp.tool()
    async def fail_node(graph_id: str, node_id: str, error: str) -> dict:
        """Mark a running node failed. Retries within budget, otherwise skips its dependents."""
        return await call(Operation.FAIL_NODE, graph_id=graph_id, node_id=node_id, error=error)

    @mcp.tool()
    async def analyze_graph(graph_id: str) -> dict:
        """Critical path, parallel groups, progress and remaining token estimate."""
        return await call(Operation.ANALYZE_GRAPH, graph_id=graph_id)

    @mcp.tool()
    async def get_graph(graph_id: str) -> dict:
        """Full snapshot of a graph's nodes and edges."""
        return await call(Operation.GET_GRAPH, graph_id=graph_id)

    @mcp.tool()
    async def list_graphs() -> dict:
        """List all task graphs with status and progress."""
        return await call(Operation.LIST_GRAPHS)

    @mcp.tool()
    async def graph_status(graph_id: str | None = None) -> dict:
        """Engine statistics, or one graph's status and progress."""
        return await call(Operation.GRAPH_STATUS, graph_id=graph_id)

    @mcp.tool()
    async def delete_graph(graph_id: str) -> dict:
        """Delete a task graph."""
        return await call(Operation.DELETE_GRAPH, graph_id=graph_id)

    @mcp.tool()
    async def run_graph(graph_id: str, max_parallel: int | None = None) -> dict:
        """Advisory execution plan in batches. Does not change graph state."""
        return await call(Operation.RUN_GRAPH, graph_id=graph_id, max_parallel=max_parallel)

    @mcp.tool()
    async def list_templates() -> dict:
        """Task archetypes with node counts, phases and token estimates."""
        return await call(Operation.LIST_TEMPLATES)

    return mcp


def main():
    # stdout carries the protocol; logging.basicConfig writes to stderr
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    logger.info(f"Starting MCP server '{MCP_SERVER_NAME}' on stdio")
    create_mcp_server().run()


if __name__ == "__main__":
    main()
