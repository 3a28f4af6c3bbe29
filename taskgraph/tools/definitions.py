"""All tool definitions (ToolDef) exposed to the calling agent."""

from enum import Enum

from taskgraph.models import PHASES, TASK_TYPES, ToolDef


class Operation(str, Enum):
    """The closed set of operations. Dispatch resolves names to these, never to free strings."""

    CREATE_GRAPH = "create_graph"
    WORKFLOW_START = "workflow_start"
    GET_NEXT_NODES = "get_next_nodes"
    START_NODE = "start_node"
    COMPLETE_NODE = "complete_node"
    FAIL_NODE = "fail_node"
    ANALYZE_GRAPH = "analyze_graph"
    GET_GRAPH = "get_graph"
    LIST_GRAPHS = "list_graphs"
    GRAPH_STATUS = "graph_status"
    DELETE_GRAPH = "delete_graph"
    RUN_GRAPH = "run_graph"
    LIST_TEMPLATES = "list_templates"


_GRAPH_ID = {"type": "string", "description": "Graph ID"}
_NODE_ID = {"type": "string", "description": "Node ID"}

_CUSTOM_NODE = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Node ID, referenced by other nodes' depends_on"},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "phase": {"type": "string", "enum": list(PHASES)},
        "depends_on": {"type": "array", "items": {"type": "string"}, "default": []},
        "tools": {"type": "array", "items": {"type": "string"}, "default": []},
        "estimated_tokens": {"type": "integer", "minimum": 0},
        "priority": {"type": "integer"},
        "max_retries": {"type": "integer", "minimum": 0},
    },
    "required": ["name"],
}

_CREATE_PROPERTIES = {
    "name": {"type": "string", "description": "Name of the task graph"},
    "task_type": {
        "type": "string",
        "enum": list(TASK_TYPES),
        "description": "Archetype that determines the nodes and their dependencies",
    },
    "description": {"type": "string", "description": "Task description"},
    "files": {
        "type": "array", "items": {"type": "string"},
        "description": "Files involved in the task", "default": [],
    },
    "constraints": {
        "type": "array", "items": {"type": "string"},
        "description": "Constraints to follow", "default": [],
    },
    "custom_nodes": {
        "type": "array", "items": _CUSTOM_NODE,
        "description": "Nodes for task_type 'custom' (required there, rejected elsewhere)",
    },
}

# ---------------------------------------------------------------------------
# Graph Management
# ---------------------------------------------------------------------------

CREATE_GRAPH = ToolDef(
    name=Operation.CREATE_GRAPH.value,
    description="Create a DAG task graph for a multi-step task from an archetype or custom nodes.",
    parameters={
        "type": "object",
        "properties": _CREATE_PROPERTIES,
        "required": ["name", "task_type"],
    },
    guidance="Pick the archetype closest to the work. Use 'custom' only when none fits.",
)

WORKFLOW_START = ToolDef(
    name=Operation.WORKFLOW_START.value,
    description="Create a task graph and return the first nodes to execute plus instructions.",
    parameters={
        "type": "object",
        "properties": _CREATE_PROPERTIES,
        "required": ["name", "task_type"],
    },
    guidance="The usual entry point: one call gives you the graph and what to start first.",
)

GET_GRAPH = ToolDef(
    name=Operation.GET_GRAPH.value,
    description="Full snapshot of a graph: every node with its dependencies, plus edges.",
    parameters={"type": "object", "properties": {"graph_id": _GRAPH_ID}, "required": ["graph_id"]},
)

LIST_GRAPHS = ToolDef(
    name=Operation.LIST_GRAPHS.value,
    description="List all task graphs with their status and progress.",
    parameters={"type": "object", "properties": {}},
)

GRAPH_STATUS = ToolDef(
    name=Operation.GRAPH_STATUS.value,
    description="Engine statistics, or one graph's status and progress when graph_id is given.",
    parameters={"type": "object", "properties": {"graph_id": _GRAPH_ID}},
)

DELETE_GRAPH = ToolDef(
    name=Operation.DELETE_GRAPH.value,
    description="Delete a task graph.",
    parameters={"type": "object", "properties": {"graph_id": _GRAPH_ID}, "required": ["graph_id"]},
)

LIST_TEMPLATES = ToolDef(
    name=Operation.LIST_TEMPLATES.value,
    description="List the task archetypes with their node counts, phases and token estimates.",
    parameters={"type": "object", "properties": {}},
)

# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

GET_NEXT_NODES = ToolDef(
    name=Operation.GET_NEXT_NODES.value,
    description="Nodes ready to execute now (all dependencies completed), highest priority first.",
    parameters={"type": "object", "properties": {"graph_id": _GRAPH_ID}, "required": ["graph_id"]},
    guidance="An empty list is normal: everything may be running, blocked, or done.",
)

START_NODE = ToolDef(
    name=Operation.START_NODE.value,
    description="Mark a ready node as running.",
    parameters={
        "type": "object",
        "properties": {"graph_id": _GRAPH_ID, "node_id": _NODE_ID},
        "required": ["graph_id", "node_id"],
    },
    guidance="Several nodes may run at once. Report each outcome with complete_node or fail_node.",
)

COMPLETE_NODE = ToolDef(
    name=Operation.COMPLETE_NODE.value,
    description="Mark a node completed and report which dependents became ready.",
    parameters={
        "type": "object",
        "properties": {
            "graph_id": _GRAPH_ID,
            "node_id": _NODE_ID,
            "result": {"description": "Result data from execution"},
            "tokens_used": {"type": "integer", "minimum": 0, "description": "Actual tokens consumed"},
        },
        "required": ["graph_id", "node_id"],
    },
)

FAIL_NODE = ToolDef(
    name=Operation.FAIL_NODE.value,
    description="Mark a running node failed. Retries while budget remains, otherwise skips dependents.",
    parameters={
        "type": "object",
        "properties": {
            "graph_id": _GRAPH_ID,
            "node_id": _NODE_ID,
            "error": {"type": "string", "description": "Error message"},
        },
        "required": ["graph_id", "node_id", "error"],
    },
    guidance="The engine does not wait between retries. Back off yourself before restarting.",
)

# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

ANALYZE_GRAPH = ToolDef(
    name=Operation.ANALYZE_GRAPH.value,
    description="Critical path, parallel groups, progress and remaining token estimate.",
    parameters={"type": "object", "properties": {"graph_id": _GRAPH_ID}, "required": ["graph_id"]},
)

RUN_GRAPH = ToolDef(
    name=Operation.RUN_GRAPH.value,
    description="Advisory execution plan: ordered batches of nodes that can run together.",
    parameters={
        "type": "object",
        "properties": {
            "graph_id": _GRAPH_ID,
            "max_parallel": {"type": "integer", "minimum": 1, "description": "Max nodes per batch"},
        },
        "required": ["graph_id"],
    },
    guidance="The plan does not change graph state. Still start and report each node yourself.",
)


ALL_TOOLS = [
    CREATE_GRAPH, WORKFLOW_START, GET_NEXT_NODES, START_NODE, COMPLETE_NODE, FAIL_NODE,
    ANALYZE_GRAPH, GET_GRAPH, LIST_GRAPHS, GRAPH_STATUS, DELETE_GRAPH, RUN_GRAPH,
    LIST_TEMPLATES,
]
