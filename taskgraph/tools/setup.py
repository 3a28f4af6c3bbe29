"""Wire tool definitions to implementations and create the default registry."""

from taskgraph.tools.definitions import (
    ANALYZE_GRAPH, COMPLETE_NODE, CREATE_GRAPH, DELETE_GRAPH, FAIL_NODE, GET_GRAPH,
    GET_NEXT_NODES, GRAPH_STATUS, LIST_GRAPHS, LIST_TEMPLATES, RUN_GRAPH, START_NODE,
    WORKFLOW_START,
)
from taskgraph.tools.implementations import (
    impl_analyze_graph, impl_complete_node, impl_create_graph, impl_delete_graph,
    impl_fail_node, impl_get_graph, impl_get_next_nodes, impl_graph_status,
    impl_list_graphs, impl_list_templates, impl_run_graph, impl_start_node,
    impl_workflow_start,
)
from taskgraph.tools.registry import ToolRegistry


def create_default_registry() -> ToolRegistry:
    """Create a fully-wired tool registry with all built-in tools."""
    registry = ToolRegistry()

    # Graph management
    registry.register(CREATE_GRAPH, impl_create_graph)
    registry.register(WORKFLOW_START, impl_workflow_start)
    registry.register(GET_GRAPH, impl_get_graph)
    registry.register(LIST_GRAPHS, impl_list_graphs)
    registry.register(GRAPH_STATUS, impl_graph_status)
    registry.register(DELETE_GRAPH, impl_delete_graph)
    registry.register(LIST_TEMPLATES, impl_list_templates)

    # Execution
    registry.register(GET_NEXT_NODES, impl_get_next_nodes)
    registry.register(START_NODE, impl_start_node)
    registry.register(COMPLETE_NODE, impl_complete_node)
    registry.register(FAIL_NODE, impl_fail_node)

    # Analysis
    registry.register(ANALYZE_GRAPH, impl_analyze_graph)
    registry.register(RUN_GRAPH, impl_run_graph)

    return registry
