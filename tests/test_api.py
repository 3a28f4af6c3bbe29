"""Test FastAPI endpoints against an in-process engine."""

import pytest
from fastapi.testclient import TestClient

from taskgraph.server import create_app
from taskgraph.service import TaskGraphService


@pytest.fixture
def client():
    return TestClient(create_app(TaskGraphService()))


def create(client, **overrides):
    body = {"name": "Crash on save", "task_type": "bugfix", **overrides}
    resp = client.post("/graphs", json=body)
    assert resp.status_code == 200
    return resp.json()


def test_list_graphs_empty(client):
    resp = client.get("/graphs")
    assert resp.status_code == 200
    assert resp.json()["graphs"] == []


def test_list_tools(client):
    resp = client.get("/tools")
    assert resp.status_code == 200
    assert len(resp.json()) == 13


def test_templates(client):
    resp = client.get("/templates")
    assert resp.json()["count"] == 5


def test_create_graph(client):
    data = create(client)
    assert data["summary"]["total_nodes"] == 5
    assert data["next_nodes"][0]["name"] == "Reproduce Bug"

    gid = data["workflow"]["graph_id"]
    snapshot = client.get(f"/graphs/{gid}").json()["graph"]
    assert snapshot["task_type"] == "bugfix"


def test_create_graph_invalid(client):
    assert client.post("/graphs", json={"name": "x", "task_type": "epic"}).status_code == 400
    assert client.post("/graphs", json={"name": "x", "task_type": "custom"}).status_code == 400
    resp = client.post("/graphs", json={
        "name": "x",
        "task_type": "custom",
        "custom_nodes": [{"name": "A", "estimated_tokens": -1}],
    })
    assert resp.status_code == 422


def test_create_custom_graph(client):
    data = create(client, task_type="custom", custom_nodes=[
        {"id": "a", "name": "A"},
        {"id": "b", "name": "B", "depends_on": ["a"]},
    ])
    assert [n["id"] for n in data["next_nodes"]] == ["a"]


def test_graph_not_found(client):
    assert client.get("/graphs/nonexistent").status_code == 404
    assert client.get("/graphs/nonexistent/status").status_code == 404
    assert client.get("/graphs/nonexistent/analysis").status_code == 404
    assert client.get("/graphs/nonexistent/next").status_code == 404
    assert client.delete("/graphs/nonexistent").status_code == 404


def test_node_not_found(client):
    gid = create(client)["workflow"]["graph_id"]
    assert client.post(f"/graphs/{gid}/nodes/zzz/start").status_code == 404


def test_node_lifecycle(client):
    data = create(client)
    gid = data["workflow"]["graph_id"]
    first = data["next_nodes"][0]["id"]

    assert client.post(f"/graphs/{gid}/nodes/{first}/start").status_code == 200
    assert client.post(f"/graphs/{gid}/nodes/{first}/start").status_code == 409

    resp = client.post(f"/graphs/{gid}/nodes/{first}/complete", json={"result": "repro.py", "tokens_used": 300})
    assert resp.status_code == 200
    assert resp.json()["newly_ready"][0]["name"] == "Analyze Root Cause"

    assert client.post(f"/graphs/{gid}/nodes/{first}/complete", json={}).status_code == 409

    status = client.get(f"/graphs/{gid}/status").json()
    assert status["progress"] == 20
    assert status["tokens"]["actual"] == 300


def test_fail_node(client):
    data = create(client)
    gid = data["workflow"]["graph_id"]
    first = data["next_nodes"][0]["id"]

    assert client.post(f"/graphs/{gid}/nodes/{first}/fail", json={"error": "x"}).status_code == 409
    client.post(f"/graphs/{gid}/nodes/{first}/start")
    resp = client.post(f"/graphs/{gid}/nodes/{first}/fail", json={"error": "flaky"})
    assert resp.status_code == 200
    assert resp.json()["will_retry"] is True


def test_analysis_and_plan(client):
    gid = create(client)["workflow"]["graph_id"]
    analysis = client.get(f"/graphs/{gid}/analysis").json()["analysis"]
    assert len(analysis["parallelizable_groups"]) == 4

    plan = client.get(f"/graphs/{gid}/plan", params={"max_parallel": 1}).json()
    assert plan["total_batches"] == 4
    assert len(plan["execution_plan"][2]["deferred"]) == 1
    assert client.get(f"/graphs/{gid}/plan", params={"max_parallel": 0}).status_code == 400


def test_delete_graph(client):
    gid = create(client)["workflow"]["graph_id"]
    assert client.delete(f"/graphs/{gid}").status_code == 200
    assert client.get(f"/graphs/{gid}").status_code == 404


def test_generic_tool_call(client):
    resp = client.post("/tools/list_graphs", json={})
    assert resp.status_code == 200
    assert resp.json()["success"]
    assert client.post("/tools/bash", json={}).status_code == 404

    missing = client.post("/tools/get_graph", json={"graph_id": "nope"})
    assert missing.status_code == 200
    assert missing.json()["success"] is False


def test_engine_status_and_events(client):
    gid = create(client)["workflow"]["graph_id"]
    stats = client.get("/status").json()["stats"]
    assert stats["total_graphs"] == 1

    events = client.get("/events", params={"graph_id": gid}).json()
    assert events[0]["type"] == "graph.created"


def test_apps_are_isolated():
    one = TestClient(create_app(TaskGraphService()))
    two = TestClient(create_app(TaskGraphService()))
    create(one)
    assert two.get("/graphs").json()["count"] == 0
