"""ToolContext — the runtime context passed to every tool implementation."""

from __future__ import annotations

from taskgraph.config import DEFAULT_MAX_PARALLEL, NEXT_NODES_PREVIEW
from taskgraph.service import TaskGraphService


class ToolContext:
    """Runtime context available to all tool implementations.

    Holds the service the tools act on. Pass a different service to get an
    independent engine; nothing here is module-global.
    """

    def __init__(
        self,
        service: TaskGraphService | None = None,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        next_preview: int = NEXT_NODES_PREVIEW,
    ):
        self.service = service or TaskGraphService()
        self.max_parallel = max_parallel
        self.next_preview = next_preview

    @property
    def event_bus(self):
        return self.service.event_bus
