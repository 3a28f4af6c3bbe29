"""Core data structures for the task graph engine."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

PHASES = ("analysis", "plan", "impl", "review", "test")
NODE_STATUSES = ("pending", "ready", "running", "completed", "failed", "skipped")
GRAPH_STATUSES = ("pending", "running", "completed", "failed", "paused")
TASK_TYPES = ("feature", "bugfix", "refactor", "review", "custom")

TERMINAL_STATUSES = frozenset({"completed", "failed", "skipped"})


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GraphValidationError(ValueError):
    """A graph (or a request against one) was rejected before any state changed."""


class CycleError(GraphValidationError):
    def __init__(self, node_ids: list[str]):
        self.node_ids = node_ids
        super().__init__(f"Cycle detected among nodes: {', '.join(node_ids)}")


class GraphInvariantError(RuntimeError):
    """A stored graph violates an invariant that construction should have enforced."""


# ---------------------------------------------------------------------------
# Tool System
# ---------------------------------------------------------------------------


@dataclass
class ToolDef:
    """Canonical tool definition, shared by the HTTP and MCP surfaces."""

    name: str
    description: str  # short, for the schema
    parameters: dict[str, Any]  # JSON Schema
    guidance: str = ""  # long, for the calling agent's prompt

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "guidance": self.guidance,
        }


@dataclass
class ToolCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"tc_{uuid.uuid4().hex[:8]}")


# ---------------------------------------------------------------------------
# Graph System
# ---------------------------------------------------------------------------


@dataclass
class TaskNode:
    """A unit of work. The engine tracks it; the caller executes it."""

    id: str = field(default_factory=generate_id)
    name: str = ""
    description: str = ""
    phase: str = "impl"  # analysis | plan | impl | review | test
    status: str = "pending"  # pending | ready | running | completed | failed | skipped
    depends_on: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)  # back-references, derived
    estimated_tokens: int = 0
    actual_tokens: int = 0
    tools: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    result: Any = None
    error: str | None = None
    priority: int = 5
    retry_count: int = 0
    max_retries: int = 3
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def brief(self) -> dict:
        """The slice of a node a caller needs to decide what to run."""
        return {
            "id": self.id,
            "name": self.name,
            "phase": self.phase,
            "status": self.status,
            "tools": self.tools,
            "estimated_tokens": self.estimated_tokens,
            "priority": self.priority,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "phase": self.phase,
            "status": self.status,
            "depends_on": list(self.depends_on),
            "dependents": list(self.dependents),
            "estimated_tokens": self.estimated_tokens,
            "actual_tokens": self.actual_tokens,
            "tools": list(self.tools),
            "files": list(self.files),
            "result": self.result,
            "error": self.error,
            "priority": self.priority,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass
class TaskGraph:
    """A DAG of task nodes. ``edges[a]`` lists the nodes that depend on ``a``."""

    id: str = field(default_factory=generate_id)
    name: str = ""
    description: str | None = None
    task_type: str = "custom"
    root_id: str = ""
    nodes: dict[str, TaskNode] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    status: str = "pending"  # pending | running | completed | failed | paused
    current_phase: str = "analysis"
    files: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    total_estimated_tokens: int = 0
    actual_tokens_used: int = 0
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None

    def add(self, node: TaskNode):
        self.nodes[node.id] = node
        self.edges.setdefault(node.id, [])

    def get(self, node_id: str) -> TaskNode | None:
        return self.nodes.get(node_id)

    def link(self, dependent_id: str, dependency_id: str):
        """Record that ``dependent_id`` depends on ``dependency_id`` on all three views."""
        dependent = self.nodes[dependent_id]
        dependency = self.nodes[dependency_id]
        if dependency_id in dependent.depends_on:
            return
        dependent.depends_on.append(dependency_id)
        dependency.dependents.append(dependent_id)
        self.edges.setdefault(dependency_id, []).append(dependent_id)

    def deps_met(self, node: TaskNode) -> bool:
        return all(
            d in self.nodes and self.nodes[d].status == "completed" for d in node.depends_on
        )

    def count(self, status: str) -> int:
        return sum(1 for n in self.nodes.values() if n.status == status)

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "task_type": self.task_type,
            "status": self.status,
            "current_phase": self.current_phase,
            "node_count": len(self.nodes),
            "completed_nodes": self.count("completed"),
            "total_estimated_tokens": self.total_estimated_tokens,
            "actual_tokens_used": self.actual_tokens_used,
            "created_at": self.created_at,
        }

    def to_dict(self) -> dict:
        return {
            **self.summary(),
            "description": self.description,
            "root_id": self.root_id,
            "files": list(self.files),
            "constraints": list(self.constraints),
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": {k: list(v) for k, v in self.edges.items()},
        }


@dataclass
class GraphAnalysis:
    total_nodes: int = 0
    completed_nodes: int = 0
    pending_nodes: int = 0  # pending + ready
    running_nodes: int = 0
    failed_nodes: int = 0
    skipped_nodes: int = 0
    status_counts: dict[str, int] = field(default_factory=dict)
    critical_path: list[str] = field(default_factory=list)
    critical_path_length: int = 0  # sum of estimated tokens along the path
    parallelizable_groups: list[list[str]] = field(default_factory=list)
    progress: int = 0  # 0-100
    estimated_remaining_tokens: int = 0

    @property
    def max_parallelism(self) -> int:
        return max((len(g) for g in self.parallelizable_groups), default=0)

    def to_dict(self) -> dict:
        return {
            "total_nodes": self.total_nodes,
            "completed_nodes": self.completed_nodes,
            "pending_nodes": self.pending_nodes,
            "running_nodes": self.running_nodes,
            "failed_nodes": self.failed_nodes,
            "skipped_nodes": self.skipped_nodes,
            "status_counts": dict(self.status_counts),
            "critical_path": list(self.critical_path),
            "critical_path_length": self.critical_path_length,
            "parallelizable_groups": [list(g) for g in self.parallelizable_groups],
            "max_parallelism": self.max_parallelism,
            "progress": self.progress,
            "estimated_remaining_tokens": self.estimated_remaining_tokens,
        }


@dataclass
class TransitionResult:
    """Outcome of start/complete/fail. Rejections are values, not exceptions."""

    success: bool
    message: str
    node: TaskNode | None = None
    newly_ready: list[TaskNode] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    will_retry: bool = False


# ---------------------------------------------------------------------------
# Construction Parameters
# ---------------------------------------------------------------------------


@dataclass
class NodeSpec:
    """Caller-supplied node for a ``custom`` graph."""

    name: str
    id: str | None = None
    description: str = ""
    phase: str = "impl"
    depends_on: list[str] = field(default_factory=list)
    tools: list[str] = field(default_factory=list)
    estimated_tokens: int | None = None  # None -> per-phase heuristic
    priority: int | None = None
    max_retries: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> NodeSpec:
        """Build from an untyped tool argument, rejecting anything the engine can't store."""
        if not isinstance(data, dict):
            raise GraphValidationError(f"Custom node must be an object, got {type(data).__name__}")
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise GraphValidationError(f"Unknown custom node fields: {', '.join(sorted(unknown))}")
        if not data.get("name") or not isinstance(data["name"], str):
            raise GraphValidationError("Custom node is missing a name")
        label = data["name"]

        for key in ("id", "description", "phase"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise GraphValidationError(f"Node '{label}': {key} must be a string")
        for key in ("estimated_tokens", "priority", "max_retries"):
            value = data.get(key)
            # bool is an int subclass
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise GraphValidationError(f"Node '{label}': {key} must be an integer")
        for key in ("depends_on", "tools"):
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise GraphValidationError(f"Node '{label}': {key} must be a list of strings")

        # None means "use the default" for every field
        return cls(**{k: v for k, v in data.items() if v is not None})


@dataclass
class CreateGraphParams:
    name: str
    task_type: str
    description: str | None = None
    files: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    custom_nodes: list[NodeSpec] | None = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass
class Event:
    type: str
    graph_id: str
    ts: float = field(default_factory=time.time)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, "graph_id": self.graph_id, "ts": self.ts, "data": self.data}
