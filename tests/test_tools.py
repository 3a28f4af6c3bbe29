"""Test tool registry, definitions and dispatch."""

import asyncio

import pytest

from taskgraph.models import ToolCall
from taskgraph.service import TaskGraphService
from taskgraph.tools.context import ToolContext
from taskgraph.tools.definitions import ALL_TOOLS, Operation
from taskgraph.tools.setup import create_default_registry


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def context():
    return ToolContext(service=TaskGraphService(), max_parallel=2)


def call(registry, context, name, /, **args):
    return asyncio.run(registry.dispatch(ToolCall(name=name, args=args), context))


CUSTOM = [
    {"id": "a", "name": "A", "phase": "analysis"},
    {"id": "b", "name": "B", "depends_on": ["a"]},
    {"id": "c", "name": "C", "depends_on": ["a"], "priority": 9},
    {"id": "d", "name": "D", "phase": "review", "depends_on": ["b", "c"]},
]


def test_all_tools_defined():
    assert len(ALL_TOOLS) == 13
    assert {t.name for t in ALL_TOOLS} == {op.value for op in Operation}


def test_tool_parameters_valid():
    """All tools take a single JSON object."""
    for tool in ALL_TOOLS:
        assert tool.parameters.get("type") == "object"
        assert "properties" in tool.parameters
        for required in tool.parameters.get("required", []):
            assert required in tool.parameters["properties"]


def test_registry_creation(registry):
    assert sorted(registry.names()) == sorted(op.value for op in Operation)
    assert registry.get_def("complete_node").name == "complete_node"
    assert registry.get_def("nonexistent") is None
    assert registry.resolve("fail_node") is Operation.FAIL_NODE
    assert registry.resolve("bash") is None


def test_unknown_tool(registry, context):
    result = call(registry, context, "spawn_worker")
    assert result == {"success": False, "message": "Unknown tool 'spawn_worker'"}


def test_bad_arguments_are_rejected(registry, context):
    result = call(registry, context, "get_next_nodes", graph="x")
    assert result["success"] is False
    assert "Invalid arguments" in result["message"]


def test_create_graph(registry, context):
    result = call(registry, context, "create_graph", name="Login", task_type="feature")
    assert result["success"]
    assert result["node_count"] == 9
    assert result["graph_id"]
    assert result["critical_path_length"] > 0


def test_create_graph_rejections(registry, context):
    bad_type = call(registry, context, "create_graph", name="x", task_type="epic")
    assert not bad_type["success"]

    bad_field = call(
        registry, context, "create_graph", name="x", task_type="custom",
        custom_nodes=[{"name": "A", "shell": "rm -rf /"}],
    )
    assert not bad_field["success"]
    assert "shell" in bad_field["message"]

    cyclic = call(
        registry, context, "create_graph", name="x", task_type="custom",
        custom_nodes=[
            {"id": "a", "name": "A", "depends_on": ["b"]},
            {"id": "b", "name": "B", "depends_on": ["a"]},
        ],
    )
    assert not cyclic["success"]
    assert "cycle" in cyclic["message"].lower()
    assert context.service.list_graphs() == []


def test_workflow_start(registry, context):
    result = call(registry, context, "workflow_start", name="Crash", task_type="bugfix")
    assert result["success"]
    assert result["summary"]["total_nodes"] == 5
    assert [n["name"] for n in result["next_nodes"]] == ["Reproduce Bug"]
    assert len(result["all_nodes"]) == 5
    assert result["instructions"]


def test_node_lifecycle_through_tools(registry, context):
    gid = call(registry, context, "create_graph", name="c", task_type="custom", custom_nodes=CUSTOM)["graph_id"]

    assert call(registry, context, "get_next_nodes", graph_id=gid)["count"] == 1
    assert call(registry, context, "start_node", graph_id=gid, node_id="a")["success"]
    done = call(registry, context, "complete_node", graph_id=gid, node_id="a", result="ok", tokens_used=50)
    assert done["success"]
    assert [n["id"] for n in done["newly_ready"]] == ["c", "b"]
    assert done["next_nodes_ready"] == 2

    nxt = call(registry, context, "get_next_nodes", graph_id=gid)
    assert nxt["can_parallelize"]
    assert [n["id"] for n in nxt["nodes"]] == ["c", "b"]

    again = call(registry, context, "complete_node", graph_id=gid, node_id="a", tokens_used=50)
    assert not again["success"]
    status = call(registry, context, "graph_status", graph_id=gid)
    assert status["tokens"]["actual"] == 50
    assert status["status"] == "running"


def test_fail_node_retry_then_skip(registry, context):
    nodes = [dict(n, max_retries=1) for n in CUSTOM]
    gid = call(registry, context, "create_graph", name="c", task_type="custom", custom_nodes=nodes)["graph_id"]

    call(registry, context, "start_node", graph_id=gid, node_id="a")
    first = call(registry, context, "fail_node", graph_id=gid, node_id="a", error="flaky")
    assert first["will_retry"]
    assert first["node"]["status"] == "ready"

    call(registry, context, "start_node", graph_id=gid, node_id="a")
    second = call(registry, context, "fail_node", graph_id=gid, node_id="a", error="flaky")
    assert not second["will_retry"]
    assert second["node"]["status"] == "failed"
    assert sorted(second["skipped"]) == ["b", "c", "d"]

    not_running = call(registry, context, "fail_node", graph_id=gid, node_id="a", error="again")
    assert not not_running["success"]


def test_start_node_not_ready(registry, context):
    gid = call(registry, context, "create_graph", name="c", task_type="custom", custom_nodes=CUSTOM)["graph_id"]
    result = call(registry, context, "start_node", graph_id=gid, node_id="d")
    assert not result["success"]
    assert "not ready" in result["message"]


def test_complete_node_negative_tokens(registry, context):
    gid = call(registry, context, "create_graph", name="c", task_type="custom", custom_nodes=CUSTOM)["graph_id"]
    result = call(registry, context, "complete_node", graph_id=gid, node_id="a", tokens_used=-5)
    assert not result["success"]


def test_analyze_and_run_graph(registry, context):
    gid = call(registry, context, "create_graph", name="c", task_type="custom", custom_nodes=CUSTOM)["graph_id"]

    analysis = call(registry, context, "analyze_graph", graph_id=gid)["analysis"]
    assert analysis["parallelizable_groups"] == [["a"], ["b", "c"], ["d"]]
    assert analysis["progress"] == 0

    plan = call(registry, context, "run_graph", graph_id=gid, max_parallel=1)
    assert plan["total_batches"] == 3
    assert plan["execution_plan"][1]["deferred"] == ["b"]
    assert plan["critical_path"][0] == "A"

    default = call(registry, context, "run_graph", graph_id=gid)
    assert default["max_parallel"] == 2

    invalid = call(registry, context, "run_graph", graph_id=gid, max_parallel=0)
    assert not invalid["success"]

    # advisory only
    graph = context.service.get_graph(gid)
    assert graph.get("a").status == "ready"


def test_get_list_delete(registry, context):
    gid = call(registry, context, "create_graph", name="r", task_type="review")["graph_id"]

    snapshot = call(registry, context, "get_graph", graph_id=gid)["graph"]
    assert snapshot["id"] == gid
    assert len(snapshot["nodes"]) == 5

    listed = call(registry, context, "list_graphs")
    assert listed["count"] == 1
    assert listed["graphs"][0]["progress"] == 0

    stats = call(registry, context, "graph_status")
    assert stats["stats"]["total_graphs"] == 1
    assert "Total Graphs: 1" in stats["formatted"]

    assert call(registry, context, "delete_graph", graph_id=gid)["success"]
    assert not call(registry, context, "delete_graph", graph_id=gid)["success"]
    assert not call(registry, context, "get_graph", graph_id=gid)["success"]


@pytest.mark.parametrize("name", ["get_graph", "analyze_graph", "graph_status", "run_graph"])
def test_missing_graph(registry, context, name):
    result = call(registry, context, name, graph_id="nope")
    assert result == {"success": False, "message": "Graph nope not found"}


def test_list_templates(registry, context):
    result = call(registry, context, "list_templates")
    names = [t["name"] for t in result["templates"]]
    assert names == ["feature", "bugfix", "refactor", "review", "custom"]


@pytest.mark.parametrize("bad", [
    {"priority": "high"},
    {"estimated_tokens": "lots"},
    {"max_retries": 1.5},
    {"priority": True},
    {"depends_on": "a"},
    {"tools": ["ok", 3]},
    {"phase": 7},
])
def test_create_graph_rejects_mistyped_custom_fields(registry, context, bad):
    result = call(
        registry, context, "create_graph", name="x", task_type="custom",
        custom_nodes=[{"id": "a", "name": "A", **bad}],
    )
    assert result["success"] is False
    assert "must be" in result["message"]
    assert context.service.list_graphs() == []


def test_create_graph_rejects_non_object_custom_node(registry, context):
    result = call(registry, context, "create_graph", name="x", task_type="custom", custom_nodes=["A"])
    assert result["success"] is False
    assert context.service.list_graphs() == []
