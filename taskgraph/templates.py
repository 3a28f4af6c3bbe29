"""Task archetypes and the instantiator that turns them into graphs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from taskgraph.analyzer import topological_sort
from taskgraph.config import DEFAULT_MAX_RETRIES, DEFAULT_PRIORITY
from taskgraph.models import (
    PHASES, TASK_TYPES, CreateGraphParams, CycleError, GraphValidationError, NodeSpec, TaskGraph,
    TaskNode, generate_id,
)

logger = logging.getLogger(__name__)

# Token estimate for a custom node that does not state one
PHASE_TOKEN_ESTIMATES = {
    "analysis": 500,
    "plan": 600,
    "impl": 1500,
    "test": 800,
    "review": 500,
}


@dataclass
class NodeTemplate:
    name: str
    phase: str
    estimated_tokens: int
    priority: int
    tools: list[str] = field(default_factory=list)
    description: str = ""
    max_retries: int | None = None  # None -> engine default


# ---------------------------------------------------------------------------
# Archetypes
# ---------------------------------------------------------------------------

TASK_TEMPLATES: dict[str, list[NodeTemplate]] = {
    "feature": [
        NodeTemplate("Analyze Requirements", "analysis", 500, 10, ["documents_search", "memory_recall", "rag_query"]),
        NodeTemplate("Search Related Code", "analysis", 400, 9, ["rag_query", "rag_related_code"]),
        NodeTemplate("Design Solution", "plan", 800, 8, ["thinking_get_model", "memory_recall"]),
        NodeTemplate("Create Interface", "plan", 400, 7, ["thinking_get_style"]),
        NodeTemplate("Implement Core", "impl", 2000, 10, ["latent_apply_patch", "guard_validate"]),
        NodeTemplate("Implement Helpers", "impl", 1000, 6, ["latent_apply_patch", "guard_validate"]),
        NodeTemplate("Write Unit Tests", "test", 1000, 8, ["testing_run"]),
        NodeTemplate("Integration Test", "test", 600, 7, ["testing_run"]),
        NodeTemplate("Final Review", "review", 500, 9, ["guard_validate", "testing_run"]),
    ],
    "bugfix": [
        NodeTemplate("Reproduce Bug", "analysis", 400, 10, ["memory_recall", "testing_run"],
                     "Reproduce the reported failure and capture the failing case."),
        NodeTemplate("Analyze Root Cause", "analysis", 600, 9, ["rag_query", "rag_related_code"],
                     "Locate the defect and decide the fix approach."),
        NodeTemplate("Apply Fix", "impl", 800, 10, ["latent_apply_patch", "guard_validate"],
                     "Implement the fix."),
        NodeTemplate("Write Regression Test", "test", 500, 9, ["testing_run"],
                     "Encode the reproduction as a test that fails without the fix."),
        NodeTemplate("Verify Fix", "review", 400, 10, ["testing_run_affected"],
                     "Decide whether the fix holds; fail this node to retry verification.",
                     max_retries=5),
    ],
    "refactor": [
        NodeTemplate("Map Current Structure", "analysis", 600, 9, ["rag_query", "documents_search"]),
        NodeTemplate("Identify Patterns", "analysis", 500, 8, ["rag_related_code", "thinking_get_style"]),
        NodeTemplate("Plan Transformation", "plan", 800, 10, ["thinking_get_model", "thinking_get_workflow"]),
        NodeTemplate("Add Safety Tests", "test", 1000, 10, ["testing_run"]),
        NodeTemplate("Apply Refactoring", "impl", 1500, 9, ["latent_apply_patch", "guard_validate"]),
        NodeTemplate("Update Tests", "test", 500, 8, ["testing_run"]),
        NodeTemplate("Verify No Regressions", "review", 400, 10, ["testing_run", "guard_validate"]),
    ],
    "review": [
        NodeTemplate("Load Context", "analysis", 400, 8, ["memory_recall", "documents_search"]),
        NodeTemplate("Analyze Code Structure", "analysis", 500, 9, ["rag_query"]),
        NodeTemplate("Security Check", "analysis", 600, 10, ["guard_validate"]),
        NodeTemplate("Quality Check", "analysis", 500, 9, ["guard_validate", "thinking_get_style"]),
        NodeTemplate("Generate Report", "review", 400, 8, ["memory_store", "documents_create"]),
    ],
}

# (dependent index, dependency index) pairs into the node list above
DEPENDENCY_TEMPLATES: dict[str, list[tuple[int, int]]] = {
    "feature": [
        (2, 0), (2, 1),  # Design <- Analyze + Search
        (3, 2),          # Interface <- Design
        (4, 3),          # Core <- Interface
        (5, 4),          # Helpers <- Core
        (6, 4),          # Unit Tests <- Core, parallel with Helpers
        (7, 5), (7, 6),  # Integration joins Helpers + Unit Tests
        (8, 7),          # Review <- Integration
    ],
    "bugfix": [
        (1, 0),          # Root Cause <- Reproduce
        (2, 1),          # Fix <- Root Cause
        (3, 1),          # Regression Test <- Root Cause, parallel with Fix
        (4, 2), (4, 3),  # Verify joins Fix + Regression Test
    ],
    "refactor": [
        (1, 0),
        (2, 0), (2, 1),
        (3, 2),
        (4, 3),
        (5, 4),
        (6, 5),
    ],
    "review": [
        (1, 0),
        (2, 1),
        (3, 1),          # Quality parallel with Security
        (4, 2), (4, 3),
    ],
}


def list_templates() -> list[dict]:
    """Metadata for every archetype, ``custom`` included."""
    result = []
    for task_type in TASK_TYPES:
        nodes = TASK_TEMPLATES.get(task_type, [])
        phases = list(dict.fromkeys(t.phase for t in nodes))
        result.append({
            "name": task_type,
            "node_count": len(nodes),
            "phases": phases,
            "estimated_tokens": sum(t.estimated_tokens for t in nodes),
            "nodes": [t.name for t in nodes],
            "custom": task_type == "custom",
        })
    return result


# ---------------------------------------------------------------------------
# Instantiation
# ---------------------------------------------------------------------------


def instantiate(params: CreateGraphParams, max_retries: int = DEFAULT_MAX_RETRIES) -> TaskGraph:
    """Build a complete, validated graph. Raises ``GraphValidationError`` on bad input.

    Nothing is registered here; the caller stores the returned graph.
    """
    if params.task_type not in TASK_TYPES:
        raise GraphValidationError(
            f"Unknown task type '{params.task_type}'. Expected one of: {', '.join(TASK_TYPES)}"
        )
    if not params.name:
        raise GraphValidationError("Graph name is required")

    graph = TaskGraph(
        name=params.name,
        description=params.description,
        task_type=params.task_type,
        files=list(params.files),
        constraints=list(params.constraints),
    )

    if params.task_type == "custom":
        _build_custom(graph, params.custom_nodes or [], params.files, max_retries)
    else:
        if params.custom_nodes:
            raise GraphValidationError("custom_nodes is only valid with task_type 'custom'")
        _build_from_template(graph, params.task_type, params.files, max_retries)

    topological_sort(graph)  # raises CycleError

    for node in graph.nodes.values():
        if not node.depends_on:
            node.status = "ready"

    graph.root_id = next((nid for nid, n in graph.nodes.items() if not n.depends_on), "")
    graph.total_estimated_tokens = sum(n.estimated_tokens for n in graph.nodes.values())
    graph.current_phase = graph.nodes[graph.root_id].phase if graph.root_id else "analysis"
    return graph


def _build_from_template(graph: TaskGraph, task_type: str, files: list[str], max_retries: int):
    node_ids = []
    for t in TASK_TEMPLATES[task_type]:
        node = TaskNode(
            id=generate_id(),
            name=t.name,
            description=t.description,
            phase=t.phase,
            estimated_tokens=t.estimated_tokens,
            tools=list(t.tools),
            files=list(files),
            priority=t.priority,
            max_retries=t.max_retries if t.max_retries is not None else max_retries,
        )
        graph.add(node)
        node_ids.append(node.id)

    for dependent, dependency in DEPENDENCY_TEMPLATES[task_type]:
        graph.link(node_ids[dependent], node_ids[dependency])


def _build_custom(graph: TaskGraph, specs: list[NodeSpec], files: list[str], max_retries: int):
    if not specs:
        raise GraphValidationError("task_type 'custom' requires at least one custom node")

    for spec in specs:
        if spec.phase not in PHASES:
            raise GraphValidationError(f"Node '{spec.name}' has unknown phase '{spec.phase}'")
        if spec.estimated_tokens is not None and spec.estimated_tokens < 0:
            raise GraphValidationError(f"Node '{spec.name}' has a negative token estimate")
        if spec.max_retries is not None and spec.max_retries < 0:
            raise GraphValidationError(f"Node '{spec.name}' has a negative max_retries")
        node_id = spec.id or generate_id()
        if node_id in graph.nodes:
            raise GraphValidationError(f"Duplicate node id '{node_id}'")
        graph.add(TaskNode(
            id=node_id,
            name=spec.name,
            description=spec.description,
            phase=spec.phase,
            estimated_tokens=(
                spec.estimated_tokens if spec.estimated_tokens is not None
                else PHASE_TOKEN_ESTIMATES[spec.phase]
            ),
            tools=list(spec.tools),
            files=list(files),
            priority=spec.priority if spec.priority is not None else DEFAULT_PRIORITY,
            max_retries=spec.max_retries if spec.max_retries is not None else max_retries,
        ))

    for spec, node_id in zip(specs, list(graph.nodes)):
        for dep in spec.depends_on:
            if dep not in graph.nodes:
                raise GraphValidationError(f"Node '{node_id}' depends on unknown node '{dep}'")
            if dep == node_id:
                raise CycleError([node_id])
            graph.link(node_id, dep)

    logger.debug(f"Built custom graph with {len(graph.nodes)} nodes")
