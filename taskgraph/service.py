"""TaskGraphService — the graph store, readiness resolver and node lifecycle.

The service never executes work. A caller asks which nodes are ready, runs them
however it likes (often several at once), and reports each outcome back in any
order. Mutations on one graph are serialized by that graph's lock; different
graphs never contend.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any

from taskgraph import analyzer
from taskgraph.config import DEFAULT_MAX_RETRIES
from taskgraph.events import EventBus
from taskgraph.models import (
    CreateGraphParams, GraphAnalysis, GraphValidationError, TaskGraph, TaskNode,
    TransitionResult,
)
from taskgraph.templates import instantiate

logger = logging.getLogger(__name__)


class TaskGraphService:
    """In-memory store of task graphs and the state machine that drives their nodes."""

    def __init__(self, event_bus: EventBus | None = None, max_retries: int = DEFAULT_MAX_RETRIES):
        self.event_bus = event_bus or EventBus()
        self.max_retries = max_retries
        self._graphs: dict[str, TaskGraph] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._store_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def create_graph(self, params: CreateGraphParams) -> TaskGraph:
        """Instantiate a graph from its archetype and register it.

        Raises ``GraphValidationError`` (including ``CycleError``); a rejected
        graph is never stored.
        """
        graph = instantiate(params, max_retries=self.max_retries)
        with self._store_lock:
            self._graphs[graph.id] = graph
            self._locks[graph.id] = threading.Lock()

        logger.info(f"Created graph '{graph.name}' ({graph.id}) with {len(graph.nodes)} nodes")
        self._emit("graph.created", graph.id, name=graph.name, task_type=graph.task_type,
                   node_count=len(graph.nodes))
        return graph

    def get_graph(self, graph_id: str) -> TaskGraph | None:
        with self._store_lock:
            return self._graphs.get(graph_id)

    def list_graphs(self) -> list[TaskGraph]:
        with self._store_lock:
            return list(self._graphs.values())

    def delete_graph(self, graph_id: str) -> bool:
        with self._store_lock:
            graph = self._graphs.pop(graph_id, None)
            self._locks.pop(graph_id, None)
        if not graph:
            return False
        logger.info(f"Deleted graph {graph_id}")
        self._emit("graph.deleted", graph_id, name=graph.name)
        return True

    def get_stats(self) -> dict:
        graphs = self.list_graphs()
        completed = sum(1 for g in graphs if g.status == "completed")
        return {
            "total_graphs": len(graphs),
            "completed_graphs": completed,
            "active_graphs": len(graphs) - completed,
            "total_nodes": sum(len(g.nodes) for g in graphs),
            "completed_nodes": sum(g.count("completed") for g in graphs),
        }

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def get_next_nodes(self, graph_id: str) -> list[TaskNode]:
        """Ready nodes, highest priority first, insertion order within a priority.

        An unknown graph or a graph with nothing runnable yields an empty list.
        """
        graph = self.get_graph(graph_id)
        if not graph:
            return []
        with self._lock_for(graph_id):
            ready = [
                n for n in graph.nodes.values()
                if n.status == "ready" and graph.deps_met(n)
            ]
        return sorted(ready, key=lambda n: -n.priority)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_node(self, graph_id: str, node_id: str) -> TransitionResult:
        graph = self.get_graph(graph_id)
        if not graph:
            return self._reject(f"Graph {graph_id} not found")

        with self._lock_for(graph_id):
            node = graph.get(node_id)
            if not node or node.status != "ready":
                state = node.status if node else "missing"
                return self._reject(f"Node {node_id} not found or not ready ({state})", node)

            now = time.time()
            node.status = "running"
            node.started_at = now
            if graph.status == "pending":
                graph.status = "running"
                graph.started_at = now
            self._refresh_status(graph)

        logger.info(f"Started node '{node.name}' ({node.id}) in graph {graph_id}")
        self._emit("node.started", graph_id, node_id=node.id, name=node.name)
        return TransitionResult(success=True, message=f"Started node '{node.name}'", node=node)

    def complete_node(
        self,
        graph_id: str,
        node_id: str,
        result: Any = None,
        tokens_used: int | None = None,
    ) -> TransitionResult:
        """Mark a node completed and promote every dependent whose dependencies are now all met.

        Terminal nodes are rejected, so repeating the call accrues nothing and
        promotes nothing.
        """
        if tokens_used is not None and tokens_used < 0:
            raise GraphValidationError("tokens_used must be non-negative")

        graph = self.get_graph(graph_id)
        if not graph:
            return self._reject(f"Graph {graph_id} not found")

        with self._lock_for(graph_id):
            node = graph.get(node_id)
            if not node:
                return self._reject(f"Node {node_id} not found")
            if node.is_terminal:
                return self._reject(f"Node '{node.name}' is already {node.status}", node)

            previous = graph.status
            now = time.time()
            node.status = "completed"
            node.completed_at = now
            node.result = result
            if graph.status == "pending":
                graph.status = "running"
                graph.started_at = now
            if tokens_used:
                node.actual_tokens += tokens_used
                graph.actual_tokens_used += tokens_used

            newly_ready = []
            for dep_id in graph.edges.get(node.id, []):
                dependent = graph.nodes[dep_id]
                if dependent.status == "pending" and graph.deps_met(dependent):
                    dependent.status = "ready"
                    newly_ready.append(dependent)

            self._refresh_status(graph)
            rollup = self._rollup(graph, previous)

        logger.info(
            f"Completed node '{node.name}' ({node.id}); {len(newly_ready)} dependents now ready"
        )
        self._emit("node.completed", graph_id, node_id=node.id, name=node.name,
                   tokens_used=tokens_used or 0)
        for n in newly_ready:
            self._emit("node.ready", graph_id, node_id=n.id, name=n.name)
        self._announce_rollup(graph, rollup)

        return TransitionResult(
            success=True,
            message=f"Completed '{node.name}', {len(newly_ready)} dependents now ready",
            node=node,
            newly_ready=sorted(newly_ready, key=lambda n: -n.priority),
        )

    def fail_node(self, graph_id: str, node_id: str, error: str) -> TransitionResult:
        """Report a failed run. Retries while budget remains, then fails and skips downstream."""
        graph = self.get_graph(graph_id)
        if not graph:
            return self._reject(f"Graph {graph_id} not found")

        with self._lock_for(graph_id):
            node = graph.get(node_id)
            if not node:
                return self._reject(f"Node {node_id} not found")
            if node.status != "running":
                return self._reject(f"Node '{node.name}' is not running ({node.status})", node)

            node.error = error
            previous = graph.status
            if node.retry_count < node.max_retries:
                node.retry_count += 1
                node.status = "ready"
                self._refresh_status(graph)
                will_retry = True
                skipped: list[str] = []
            else:
                node.status = "failed"
                node.completed_at = time.time()
                skipped = self._skip_dependents(graph, node.id)
                self._refresh_status(graph)
                will_retry = False
            rollup = self._rollup(graph, previous)

        if will_retry:
            logger.warning(
                f"Node '{node.name}' failed, retrying ({node.retry_count}/{node.max_retries}): {error}"
            )
            self._emit("node.retrying", graph_id, node_id=node.id, name=node.name,
                       retry_count=node.retry_count, error=error)
            message = f"Will retry '{node.name}' ({node.retry_count}/{node.max_retries})"
        else:
            logger.error(
                f"Node '{node.name}' failed permanently; skipped {len(skipped)} dependents: {error}"
            )
            self._emit("node.failed", graph_id, node_id=node.id, name=node.name, error=error)
            for sid in skipped:
                self._emit("node.skipped", graph_id, node_id=sid, cause=node.id)
            message = f"Node '{node.name}' failed permanently"
        self._announce_rollup(graph, rollup)

        return TransitionResult(
            success=True, message=message, node=node, skipped=skipped, will_retry=will_retry,
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_graph(self, graph_id: str) -> GraphAnalysis | None:
        graph = self.get_graph(graph_id)
        if not graph:
            return None
        with self._lock_for(graph_id):
            return analyzer.analyze_graph(graph)

    def run_plan(self, graph_id: str, max_parallel: int) -> tuple[GraphAnalysis, list[dict]] | None:
        graph = self.get_graph(graph_id)
        if not graph:
            return None
        with self._lock_for(graph_id):
            analysis = analyzer.analyze_graph(graph)
            return analysis, analyzer.run_plan(graph, analysis, max_parallel)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, graph_id: str) -> threading.Lock:
        with self._store_lock:
            lock = self._locks.get(graph_id)
            if lock is None:
                lock = self._locks[graph_id] = threading.Lock()
            return lock

    def _skip_dependents(self, graph: TaskGraph, node_id: str) -> list[str]:
        """Skip every non-terminal transitive dependent. Terminal nodes stop the walk."""
        skipped = []
        queue = deque(graph.edges.get(node_id, []))
        while queue:
            dep_id = queue.popleft()
            dependent = graph.nodes[dep_id]
            if dependent.is_terminal:
                continue
            dependent.status = "skipped"
            dependent.completed_at = time.time()
            skipped.append(dep_id)
            queue.extend(graph.edges.get(dep_id, []))
        return skipped

    def _refresh_status(self, graph: TaskGraph):
        statuses = [n.status for n in graph.nodes.values()]
        if "failed" in statuses:
            graph.status = "failed"
        elif all(s in ("completed", "skipped") for s in statuses):
            graph.status = "completed"
        elif graph.status != "pending":
            graph.status = "running"

        if graph.status in ("completed", "failed") and graph.completed_at is None:
            if all(s in ("completed", "failed", "skipped") for s in statuses):
                graph.completed_at = time.time()

        active = next(
            (n for n in graph.nodes.values() if n.status in ("running", "ready")), None
        )
        if active:
            graph.current_phase = active.phase

    def _rollup(self, graph: TaskGraph, previous: str) -> tuple[str, dict] | None:
        """The graph-level event this transition caused, if any. Call under the graph lock."""
        if graph.status == previous:
            return None
        if graph.status == "completed":
            return "graph.completed", {"tokens_used": graph.actual_tokens_used}
        if graph.status == "failed":
            return "graph.failed", {"failed_nodes": graph.count("failed")}
        return None

    def _announce_rollup(self, graph: TaskGraph, rollup: tuple[str, dict] | None):
        if rollup is None:
            return
        event_type, data = rollup
        if event_type == "graph.completed":
            logger.info(f"Graph '{graph.name}' ({graph.id}) completed, {data['tokens_used']} tokens used")
        else:
            logger.error(f"Graph '{graph.name}' ({graph.id}) failed, {data['failed_nodes']} nodes failed")
        self._emit(event_type, graph.id, **data)

    def _reject(self, message: str, node: TaskNode | None = None) -> TransitionResult:
        logger.warning(message)
        return TransitionResult(success=False, message=message, node=node)

    def _emit(self, event_type: str, graph_id: str, **data: Any):
        self.event_bus.emit_simple(event_type, graph_id, **data)
