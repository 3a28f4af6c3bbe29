"""Graph analyzer — ordering, critical path, leveling and progress.

Every function here is a pure read of a ``TaskGraph``. Results are derived from
the current node state each time; nothing is cached between calls.
"""

from __future__ import annotations

import logging
import math
from collections import deque

from taskgraph.models import (
    NODE_STATUSES, CycleError, GraphAnalysis, GraphInvariantError, GraphValidationError,
    TaskGraph, TaskNode,
)

logger = logging.getLogger(__name__)


def topological_sort(graph: TaskGraph) -> list[str]:
    """Kahn's algorithm. Ties are taken in insertion order.

    Raises ``CycleError`` naming the nodes that could not be ordered.
    """
    in_degree = {nid: len(n.depends_on) for nid, n in graph.nodes.items()}
    queue = deque(nid for nid, deg in in_degree.items() if deg == 0)
    order: list[str] = []

    while queue:
        nid = queue.popleft()
        order.append(nid)
        for succ in graph.edges.get(nid, []):
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                queue.append(succ)

    if len(order) != len(graph.nodes):
        ordered = set(order)
        stuck = [nid for nid in graph.nodes if nid not in ordered]
        raise CycleError(stuck)
    return order


def critical_path(graph: TaskGraph, order: list[str] | None = None) -> tuple[list[str], int]:
    """Longest path by ``estimated_tokens`` from any source to any sink.

    ``longest[v] = tokens[v] + max(longest[u] for u in depends_on[v])``, with the
    earliest-inserted predecessor winning ties. Returns ``(node_ids, length)``.
    """
    if not graph.nodes:
        return [], 0
    order = order if order is not None else topological_sort(graph)
    position = {nid: i for i, nid in enumerate(graph.nodes)}

    longest: dict[str, int] = {}
    parent: dict[str, str | None] = {}
    for nid in order:
        node = graph.nodes[nid]
        best_pred = None
        best = 0
        for dep in sorted(node.depends_on, key=position.__getitem__):
            if best_pred is None or longest[dep] > best:
                best_pred, best = dep, longest[dep]
        longest[nid] = node.estimated_tokens + best
        parent[nid] = best_pred

    end = max(graph.nodes, key=lambda nid: (longest[nid], -position[nid]))
    path = []
    current: str | None = end
    while current is not None:
        path.append(current)
        current = parent[current]
    path.reverse()
    return path, longest[end]


def levels(graph: TaskGraph, order: list[str] | None = None) -> dict[str, int]:
    """Earliest-start level: sources are 0, others one past their deepest dependency."""
    order = order if order is not None else topological_sort(graph)
    level: dict[str, int] = {}
    for nid in order:
        deps = graph.nodes[nid].depends_on
        level[nid] = 1 + max(level[d] for d in deps) if deps else 0
    return level


def parallel_groups(graph: TaskGraph, order: list[str] | None = None) -> list[list[str]]:
    """Partition nodes by level. Within a level, nodes keep insertion order."""
    level = levels(graph, order)
    groups: dict[int, list[str]] = {}
    for nid in graph.nodes:
        groups.setdefault(level[nid], []).append(nid)
    return [groups[k] for k in sorted(groups)]


def analyze_graph(graph: TaskGraph) -> GraphAnalysis:
    """Full analysis of the graph's current state.

    A cycle here means a stored graph escaped construction-time validation, so
    it is raised as ``GraphInvariantError`` rather than reported as a result.
    """
    try:
        order = topological_sort(graph)
    except CycleError as e:
        logger.critical(f"Graph {graph.id} holds a cycle: {e}")
        raise GraphInvariantError(f"Graph {graph.id} is not acyclic: {e}") from e

    counts = {status: 0 for status in NODE_STATUSES}
    for node in graph.nodes.values():
        counts[node.status] = counts.get(node.status, 0) + 1

    path, length = critical_path(graph, order)
    total = len(graph.nodes)
    completed = counts["completed"]

    return GraphAnalysis(
        total_nodes=total,
        completed_nodes=completed,
        pending_nodes=counts["pending"] + counts["ready"],
        running_nodes=counts["running"],
        failed_nodes=counts["failed"],
        skipped_nodes=counts["skipped"],
        status_counts=counts,
        critical_path=path,
        critical_path_length=length,
        parallelizable_groups=parallel_groups(graph, order),
        progress=progress(completed, total),
        estimated_remaining_tokens=sum(
            n.estimated_tokens for n in graph.nodes.values()
            if n.status not in ("completed", "skipped")
        ),
    )


def progress(completed: int, total: int) -> int:
    """Percentage of completed nodes, rounded half up."""
    if total == 0:
        return 0
    return math.floor(completed / total * 100 + 0.5)


def run_plan(graph: TaskGraph, analysis: GraphAnalysis, max_parallel: int) -> list[dict]:
    """Advisory batches, one per level, skipping completed and skipped nodes.

    Each batch holds at most ``max_parallel`` nodes (highest priority first);
    the rest of that level is reported under ``deferred``. Never mutates.
    """
    if max_parallel < 1:
        raise GraphValidationError("max_parallel must be at least 1")

    plan = []
    for index, group in enumerate(analysis.parallelizable_groups, start=1):
        pending: list[TaskNode] = [
            graph.nodes[nid] for nid in group
            if graph.nodes[nid].status not in ("completed", "skipped")
        ]
        if not pending:
            continue
        pending.sort(key=lambda n: -n.priority)
        plan.append({
            "batch": index,
            "nodes": [
                {"id": n.id, "name": n.name, "phase": n.phase, "status": n.status}
                for n in pending[:max_parallel]
            ],
            "deferred": [n.id for n in pending[max_parallel:]],
        })
    return plan
