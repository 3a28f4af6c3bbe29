"""Event system — append-only log of graph state changes with streaming support."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path

from taskgraph.models import Event

logger = logging.getLogger(__name__)


class EventBus:
    """Append-only event log with subscription support."""

    def __init__(self, log_file: Path | None = None, max_history: int = 10000):
        self._log_file = log_file
        self._max_history = max_history
        self._subscribers: list[tuple[asyncio.Queue, asyncio.AbstractEventLoop | None]] = []
        self._history: list[Event] = []
        self._lock = threading.Lock()

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: Event):
        """Emit an event — log and notify subscribers."""
        with self._lock:
            self._history.append(event)
            if len(self._history) > self._max_history:
                del self._history[: len(self._history) - self._max_history]
            self._persist(event)
        self._notify(event)
        logger.debug(f"Event: {event.type} [{event.graph_id}] {event.data}")

    def emit_simple(self, type: str, graph_id: str, **data):
        """Convenience: emit with keyword args."""
        self.emit(Event(type=type, graph_id=graph_id, data=data))

    def recent(self, limit: int = 50, offset: int = 0, graph_id: str | None = None) -> list[Event]:
        """Get recent events (paginated), optionally for a single graph."""
        with self._lock:
            history = [e for e in self._history if graph_id is None or e.graph_id == graph_id]
        start = max(0, len(history) - offset - limit)
        end = max(0, len(history) - offset)
        return history[start:end]

    def subscribe(self) -> asyncio.Queue:
        """Subscribe to live events.

        The queue belongs to the calling event loop; events emitted from other
        threads are handed to that loop rather than put on the queue directly.
        """
        q: asyncio.Queue = asyncio.Queue(maxsize=1000)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None  # synchronous consumer, delivered inline
        with self._lock:
            self._subscribers.append((q, loop))
        return q

    def unsubscribe(self, q: asyncio.Queue):
        with self._lock:
            self._subscribers = [(s, loop) for s, loop in self._subscribers if s is not q]

    def _persist(self, event: Event):
        if self._log_file:
            with open(self._log_file, "a") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")

    def _notify(self, event: Event):
        with self._lock:
            subscribers = list(self._subscribers)
        for q, loop in subscribers:
            if loop is None or _running_loop() is loop:
                self._offer(q, event)
            elif not loop.is_closed():
                loop.call_soon_threadsafe(self._offer, q, event)

    @staticmethod
    def _offer(q: asyncio.Queue, event: Event):
        try:
            q.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Dropping event {event.type} for a slow subscriber")


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
