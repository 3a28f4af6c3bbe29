"""FastAPI server — HTTP endpoints over the task graph tool boundary."""

from __future__ import annotations

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from taskgraph.config import EVENT_LOG_FILE, LOG_FORMAT, LOG_LEVEL, SERVER_HOST, SERVER_PORT
from taskgraph.events import EventBus
from taskgraph.models import ToolCall
from taskgraph.service import TaskGraphService
from taskgraph.tools.context import ToolContext
from taskgraph.tools.definitions import Operation
from taskgraph.tools.setup import create_default_registry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


class CustomNode(BaseModel):
    name: str
    id: str | None = None
    description: str = ""
    phase: str = "impl"
    depends_on: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    estimated_tokens: int | None = Field(default=None, ge=0)
    priority: int | None = None
    max_retries: int | None = Field(default=None, ge=0)


class CreateGraphRequest(BaseModel):
    name: str
    task_type: str
    description: str | None = None
    files: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    custom_nodes: list[CustomNode] | None = None


class CompleteNodeRequest(BaseModel):
    result: Any = None
    tokens_used: int | None = Field(default=None, ge=0)


class FailNodeRequest(BaseModel):
    error: str


# ---------------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------------


def create_app(service: TaskGraphService | None = None) -> FastAPI:
    """Build an app bound to ``service``. Each app owns its engine; nothing is global."""
    service = service or TaskGraphService(event_bus=EventBus(log_file=EVENT_LOG_FILE))
    context = ToolContext(service=service)
    registry = create_default_registry()

    app = FastAPI(title="TaskGraph", version="1.0", description="DAG task orchestration engine")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service
    app.state.registry = registry

    async def call(op: Operation, **args: Any) -> dict:
        return await registry.dispatch(ToolCall(name=op.value, args=args), context)

    def require_graph(graph_id: str):
        if not service.get_graph(graph_id):
            raise HTTPException(status_code=404, detail=f"Graph {graph_id} not found")

    def require_node(graph_id: str, node_id: str):
        require_graph(graph_id)
        if not service.get_graph(graph_id).get(node_id):
            raise HTTPException(status_code=404, detail=f"Node {node_id} not found")

    def checked(result: dict, status_code: int = 409) -> dict:
        if not result.get("success"):
            raise HTTPException(status_code=status_code, detail=result.get("message") or result.get("error"))
        return result

    # -----------------------------------------------------------------------
    # Tools
    # -----------------------------------------------------------------------

    @app.get("/tools")
    async def list_tools() -> list[dict]:
        """Tool definitions, for agents that call through /tools/{name}."""
        return [t.to_dict() for t in registry.get_all()]

    @app.post("/tools/{name}")
    async def call_tool(name: str, args: dict[str, Any] | None = None) -> dict:
        """Generic tool call. Rejections come back as ``success: false`` with status 200."""
        if not registry.resolve(name):
            raise HTTPException(status_code=404, detail=f"Unknown tool '{name}'")
        return await registry.dispatch(ToolCall(name=name, args=args or {}), context)

    @app.get("/templates")
    async def list_templates() -> dict:
        return await call(Operation.LIST_TEMPLATES)

    # -----------------------------------------------------------------------
    # Graphs
    # -----------------------------------------------------------------------

    @app.post("/graphs")
    async def create_graph(req: CreateGraphRequest) -> dict:
        """Create a graph and return it with the first executable nodes."""
        args = req.model_dump()
        if req.custom_nodes is not None:
            args["custom_nodes"] = [n.model_dump() for n in req.custom_nodes]
        return checked(await call(Operation.WORKFLOW_START, **args), status_code=400)

    @app.get("/graphs")
    async def list_graphs() -> dict:
        return await call(Operation.LIST_GRAPHS)

    @app.get("/status")
    async def engine_status() -> dict:
        return await call(Operation.GRAPH_STATUS)

    @app.get("/graphs/{graph_id}")
    async def get_graph(graph_id: str) -> dict:
        require_graph(graph_id)
        return await call(Operation.GET_GRAPH, graph_id=graph_id)

    @app.delete("/graphs/{graph_id}")
    async def delete_graph(graph_id: str) -> dict:
        return checked(await call(Operation.DELETE_GRAPH, graph_id=graph_id), status_code=404)

    @app.get("/graphs/{graph_id}/status")
    async def graph_status(graph_id: str) -> dict:
        require_graph(graph_id)
        return await call(Operation.GRAPH_STATUS, graph_id=graph_id)

    @app.get("/graphs/{graph_id}/analysis")
    async def analyze_graph(graph_id: str) -> dict:
        require_graph(graph_id)
        return await call(Operation.ANALYZE_GRAPH, graph_id=graph_id)

    @app.get("/graphs/{graph_id}/plan")
    async def run_graph(graph_id: str, max_parallel: int | None = None) -> dict:
        require_graph(graph_id)
        return checked(
            await call(Operation.RUN_GRAPH, graph_id=graph_id, max_parallel=max_parallel),
            status_code=400,
        )

    # -----------------------------------------------------------------------
    # Nodes
    # -----------------------------------------------------------------------

    @app.get("/graphs/{graph_id}/next")
    async def get_next_nodes(graph_id: str) -> dict:
        require_graph(graph_id)
        return await call(Operation.GET_NEXT_NODES, graph_id=graph_id)

    @app.post("/graphs/{graph_id}/nodes/{node_id}/start")
    async def start_node(graph_id: str, node_id: str) -> dict:
        require_node(graph_id, node_id)
        return checked(await call(Operation.START_NODE, graph_id=graph_id, node_id=node_id))

    @app.post("/graphs/{graph_id}/nodes/{node_id}/complete")
    async def complete_node(graph_id: str, node_id: str, req: CompleteNodeRequest | None = None) -> dict:
        require_node(graph_id, node_id)
        req = req or CompleteNodeRequest()
        return checked(await call(
            Operation.COMPLETE_NODE, graph_id=graph_id, node_id=node_id,
            result=req.result, tokens_used=req.tokens_used,
        ))

    @app.post("/graphs/{graph_id}/nodes/{node_id}/fail")
    async def fail_node(graph_id: str, node_id: str, req: FailNodeRequest) -> dict:
        require_node(graph_id, node_id)
        return checked(await call(Operation.FAIL_NODE, graph_id=graph_id, node_id=node_id, error=req.error))

    # -----------------------------------------------------------------------
    # Events (WebSocket + Polling)
    # -----------------------------------------------------------------------

    @app.websocket("/events")
    async def event_stream(websocket: WebSocket):
        """WebSocket stream of engine events."""
        await websocket.accept()
        queue = service.event_bus.subscribe()
        try:
            while True:
                event = await queue.get()
                await websocket.send_json(event.to_dict())
        except WebSocketDisconnect:
            pass
        finally:
            service.event_bus.unsubscribe(queue)

    @app.get("/events")
    async def get_events(limit: int = 50, offset: int = 0, graph_id: str | None = None) -> list[dict]:
        """Get recent events (polling fallback)."""
        events = service.event_bus.recent(limit=limit, offset=offset, graph_id=graph_id)
        return [e.to_dict() for e in events]

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def main(host: str = SERVER_HOST, port: int = SERVER_PORT):
    """Start the TaskGraph HTTP server."""
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    logger.info(f"Starting TaskGraph server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
