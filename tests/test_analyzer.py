"""Test critical path, leveling, ordering and run plans."""

import pytest

from taskgraph import analyzer
from taskgraph.models import CycleError, GraphInvariantError, GraphValidationError, TaskGraph, TaskNode


def make_graph(costs: dict[str, int], deps: dict[str, list[str]]) -> TaskGraph:
    graph = TaskGraph(name="test")
    for nid, cost in costs.items():
        graph.add(TaskNode(id=nid, name=nid, estimated_tokens=cost))
    for nid, parents in deps.items():
        for p in parents:
            graph.link(nid, p)
    return graph


@pytest.fixture
def diamond() -> TaskGraph:
    return make_graph({"A": 1, "B": 5, "C": 2, "D": 1}, {"B": ["A"], "C": ["A"], "D": ["B", "C"]})


def test_topological_sort(diamond):
    order = analyzer.topological_sort(diamond)
    assert order == ["A", "B", "C", "D"]


def test_topological_sort_detects_cycle():
    graph = make_graph({"A": 1, "B": 1, "C": 1}, {"B": ["A", "C"], "C": ["B"]})
    with pytest.raises(CycleError) as exc:
        analyzer.topological_sort(graph)
    assert set(exc.value.node_ids) == {"B", "C"}


def test_critical_path_diamond(diamond):
    path, length = analyzer.critical_path(diamond)
    assert path == ["A", "B", "D"]
    assert length == 7


def test_critical_path_tie_prefers_earliest_predecessor():
    graph = make_graph({"A": 1, "B": 3, "C": 3, "D": 1}, {"B": ["A"], "C": ["A"], "D": ["C", "B"]})
    path, length = analyzer.critical_path(graph)
    assert path == ["A", "B", "D"]
    assert length == 5


def test_critical_path_disconnected_and_empty():
    graph = make_graph({"A": 2, "B": 9, "C": 1}, {"C": ["A"]})
    assert analyzer.critical_path(graph) == (["B"], 9)
    assert analyzer.critical_path(TaskGraph(name="empty")) == ([], 0)


def test_parallel_groups_diamond(diamond):
    assert analyzer.parallel_groups(diamond) == [["A"], ["B", "C"], ["D"]]


def test_levels_use_longest_chain():
    # D depends on A directly and on C through B, so it sits at level 3
    graph = make_graph(
        {"A": 1, "B": 1, "C": 1, "D": 1},
        {"B": ["A"], "C": ["B"], "D": ["A", "C"]},
    )
    assert analyzer.levels(graph) == {"A": 0, "B": 1, "C": 2, "D": 3}


def test_analyze_graph_counts_and_progress(diamond):
    diamond.get("A").status = "completed"
    diamond.get("B").status = "running"
    diamond.get("C").status = "ready"

    analysis = analyzer.analyze_graph(diamond)
    assert analysis.total_nodes == 4
    assert analysis.completed_nodes == 1
    assert analysis.running_nodes == 1
    assert analysis.pending_nodes == 2  # C ready + D pending
    assert analysis.progress == 25
    assert analysis.estimated_remaining_tokens == 5 + 2 + 1
    assert analysis.status_counts["ready"] == 1


def test_remaining_tokens_exclude_skipped_but_count_failed(diamond):
    diamond.get("A").status = "completed"
    diamond.get("B").status = "failed"
    diamond.get("D").status = "skipped"
    analysis = analyzer.analyze_graph(diamond)
    assert analysis.estimated_remaining_tokens == 5 + 2


def test_progress_rounds_half_up():
    assert analyzer.progress(1, 8) == 13
    assert analyzer.progress(1, 3) == 33
    assert analyzer.progress(0, 0) == 0
    assert analyzer.progress(5, 5) == 100


def test_analyze_graph_cycle_is_invariant_violation():
    graph = make_graph({"A": 1, "B": 1}, {"A": ["B"], "B": ["A"]})
    with pytest.raises(GraphInvariantError):
        analyzer.analyze_graph(graph)


def test_run_plan_caps_and_defers():
    graph = make_graph({"A": 1, "B": 1, "C": 1, "D": 1, "E": 1}, {"B": ["A"], "C": ["A"], "D": ["A"], "E": ["B"]})
    graph.get("D").priority = 9
    analysis = analyzer.analyze_graph(graph)

    plan = analyzer.run_plan(graph, analysis, max_parallel=2)
    assert [b["batch"] for b in plan] == [1, 2, 3]
    assert [n["id"] for n in plan[1]["nodes"]] == ["D", "B"]
    assert plan[1]["deferred"] == ["C"]


def test_run_plan_skips_done_nodes_without_mutating(diamond):
    diamond.get("A").status = "completed"
    analysis = analyzer.analyze_graph(diamond)
    plan = analyzer.run_plan(diamond, analysis, max_parallel=3)

    assert [b["batch"] for b in plan] == [2, 3]
    assert diamond.get("B").status == "pending"


def test_run_plan_rejects_zero_parallelism(diamond):
    analysis = analyzer.analyze_graph(diamond)
    with pytest.raises(GraphValidationError):
        analyzer.run_plan(diamond, analysis, max_parallel=0)
