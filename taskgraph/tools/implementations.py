"""Tool implementations — map tool arguments onto the service and shape the responses."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskgraph.models import CreateGraphParams, GraphValidationError, NodeSpec, TaskGraph
from taskgraph.templates import list_templates

if TYPE_CHECKING:
    from taskgraph.tools.context import ToolContext

logger = logging.getLogger(__name__)


def _graph_not_found(graph_id: str) -> dict:
    return {"success": False, "message": f"Graph {graph_id} not found"}


def _create(
    context: ToolContext,
    name: str,
    task_type: str,
    description: str | None,
    files: list[str] | None,
    constraints: list[str] | None,
    custom_nodes: list[dict] | None,
) -> TaskGraph:
    specs = None
    if custom_nodes is not None:
        if not isinstance(custom_nodes, list):
            raise GraphValidationError("custom_nodes must be a list of node objects")
        specs = [NodeSpec.from_dict(n) for n in custom_nodes]
    params = CreateGraphParams(
        name=name,
        task_type=task_type,
        description=description,
        files=files or [],
        constraints=constraints or [],
        custom_nodes=specs,
    )
    return context.service.create_graph(params)


# ---------------------------------------------------------------------------
# Graph Management
# ---------------------------------------------------------------------------


def impl_create_graph(
    context: ToolContext,
    name: str,
    task_type: str,
    description: str | None = None,
    files: list[str] | None = None,
    constraints: list[str] | None = None,
    custom_nodes: list[dict] | None = None,
) -> dict:
    graph = _create(context, name, task_type, description, files, constraints, custom_nodes)
    analysis = context.service.analyze_graph(graph.id)
    return {
        "success": True,
        "graph_id": graph.id,
        "name": graph.name,
        "node_count": len(graph.nodes),
        "edge_count": sum(len(v) for v in graph.edges.values()),
        "estimated_tokens": graph.total_estimated_tokens,
        "parallel_groups": len(analysis.parallelizable_groups),
        "critical_path_length": analysis.critical_path_length,
        "message": f"Created task graph '{graph.name}' with {len(graph.nodes)} nodes",
    }


def impl_workflow_start(
    context: ToolContext,
    name: str,
    task_type: str,
    description: str | None = None,
    files: list[str] | None = None,
    constraints: list[str] | None = None,
    custom_nodes: list[dict] | None = None,
) -> dict:
    """Create a graph and hand back what to run first."""
    graph = _create(context, name, task_type, description, files, constraints, custom_nodes)
    analysis = context.service.analyze_graph(graph.id)
    next_nodes = context.service.get_next_nodes(graph.id)
    return {
        "success": True,
        "workflow": {
            "graph_id": graph.id,
            "name": graph.name,
            "task_type": graph.task_type,
            "description": graph.description,
        },
        "summary": {
            "total_nodes": len(graph.nodes),
            "estimated_tokens": graph.total_estimated_tokens,
            "parallel_groups": len(analysis.parallelizable_groups),
            "critical_path_length": analysis.critical_path_length,
        },
        "next_nodes": [n.brief() for n in next_nodes],
        "all_nodes": [
            {**n.brief(), "depends_on": len(n.depends_on)} for n in graph.nodes.values()
        ],
        "instructions": [
            f"Workflow '{graph.name}' created with {len(graph.nodes)} nodes",
            f"Start with: {', '.join(n.name for n in next_nodes)}",
            "Use start_node to begin a node, complete_node or fail_node to report it",
            "Poll get_next_nodes after each report to find newly ready work",
        ],
    }


def impl_get_graph(context: ToolContext, graph_id: str) -> dict:
    graph = context.service.get_graph(graph_id)
    if not graph:
        return _graph_not_found(graph_id)
    return {"success": True, "graph": graph.to_dict()}


def impl_list_graphs(context: ToolContext) -> dict:
    graphs = []
    for g in context.service.list_graphs():
        analysis = context.service.analyze_graph(g.id)
        graphs.append({
            "id": g.id,
            "name": g.name,
            "task_type": g.task_type,
            "status": g.status,
            "progress": analysis.progress if analysis else 0,
            "nodes": len(g.nodes),
            "created_at": g.created_at,
        })
    return {"success": True, "count": len(graphs), "graphs": graphs}


def impl_graph_status(context: ToolContext, graph_id: str | None = None) -> dict:
    if graph_id is None:
        stats = context.service.get_stats()
        return {
            "success": True,
            "stats": stats,
            "formatted": "\n".join([
                f"Total Graphs: {stats['total_graphs']}",
                f"Active: {stats['active_graphs']}",
                f"Completed: {stats['completed_graphs']}",
                f"Total Nodes: {stats['total_nodes']}",
                f"Completed Nodes: {stats['completed_nodes']}",
            ]),
        }

    graph = context.service.get_graph(graph_id)
    analysis = context.service.analyze_graph(graph_id)
    if not graph or not analysis:
        return _graph_not_found(graph_id)
    return {
        "success": True,
        "graph_id": graph.id,
        "name": graph.name,
        "status": graph.status,
        "current_phase": graph.current_phase,
        "progress": analysis.progress,
        "nodes": analysis.status_counts,
        "tokens": {"estimated": graph.total_estimated_tokens, "actual": graph.actual_tokens_used},
    }


def impl_delete_graph(context: ToolContext, graph_id: str) -> dict:
    success = context.service.delete_graph(graph_id)
    return {"success": success, "message": "Graph deleted" if success else "Graph not found"}


def impl_list_templates(context: ToolContext) -> dict:
    templates = list_templates()
    return {"success": True, "count": len(templates), "templates": templates}


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def impl_get_next_nodes(context: ToolContext, graph_id: str) -> dict:
    nodes = context.service.get_next_nodes(graph_id)
    if not nodes:
        return {"success": True, "count": 0, "nodes": [], "message": "No nodes ready for execution"}
    return {
        "success": True,
        "count": len(nodes),
        "nodes": [n.brief() for n in nodes],
        "can_parallelize": len(nodes) > 1,
        "message": f"{len(nodes)} nodes ready for execution",
    }


def impl_start_node(context: ToolContext, graph_id: str, node_id: str) -> dict:
    outcome = context.service.start_node(graph_id, node_id)
    if not outcome.success:
        return {"success": False, "message": outcome.message}
    node = outcome.node
    return {
        "success": True,
        "node": {**node.brief(), "description": node.description, "files": node.files},
        "message": outcome.message,
    }


def impl_complete_node(
    context: ToolContext,
    graph_id: str,
    node_id: str,
    result: Any = None,
    tokens_used: int | None = None,
) -> dict:
    outcome = context.service.complete_node(graph_id, node_id, result, tokens_used)
    if not outcome.success:
        return {"success": False, "message": outcome.message}
    node = outcome.node
    next_nodes = context.service.get_next_nodes(graph_id)
    return {
        "success": True,
        "completed": {"id": node.id, "name": node.name, "phase": node.phase},
        "newly_ready": [n.brief() for n in outcome.newly_ready],
        "next_nodes_ready": len(next_nodes),
        "next_nodes": [n.brief() for n in next_nodes[: context.next_preview]],
        "message": outcome.message,
    }


def impl_fail_node(context: ToolContext, graph_id: str, node_id: str, error: str) -> dict:
    outcome = context.service.fail_node(graph_id, node_id, error)
    if not outcome.success:
        return {"success": False, "message": outcome.message}
    node = outcome.node
    return {
        "success": True,
        "node": {
            "id": node.id,
            "name": node.name,
            "status": node.status,
            "error": node.error,
            "retry_count": node.retry_count,
            "max_retries": node.max_retries,
        },
        "will_retry": outcome.will_retry,
        "skipped": outcome.skipped,
        "message": outcome.message,
    }


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


def impl_analyze_graph(context: ToolContext, graph_id: str) -> dict:
    graph = context.service.get_graph(graph_id)
    analysis = context.service.analyze_graph(graph_id)
    if not graph or not analysis:
        return _graph_not_found(graph_id)
    return {
        "success": True,
        "graph": {
            "id": graph.id,
            "name": graph.name,
            "status": graph.status,
            "current_phase": graph.current_phase,
        },
        "analysis": analysis.to_dict(),
        "tokens": {"estimated": graph.total_estimated_tokens, "actual": graph.actual_tokens_used},
    }


def impl_run_graph(context: ToolContext, graph_id: str, max_parallel: int | None = None) -> dict:
    """Batched plan for the caller. Advisory only; graph state is untouched."""
    limit = max_parallel if max_parallel is not None else context.max_parallel
    planned = context.service.run_plan(graph_id, limit)
    if planned is None:
        return _graph_not_found(graph_id)
    analysis, plan = planned
    graph = context.service.get_graph(graph_id)
    names = {nid: n.name for nid, n in graph.nodes.items()} if graph else {}
    return {
        "success": True,
        "graph_id": graph_id,
        "max_parallel": limit,
        "total_batches": len(plan),
        "estimated_tokens": analysis.estimated_remaining_tokens,
        "execution_plan": plan,
        "critical_path": [names.get(nid, nid) for nid in analysis.critical_path],
    }
