"""Tool registry — registers, resolves, and dispatches tool calls."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from taskgraph.models import GraphInvariantError, GraphValidationError, ToolCall, ToolDef
from taskgraph.tools.definitions import Operation

logger = logging.getLogger(__name__)

# Type for tool implementation functions
ToolImpl = Callable[..., Awaitable[dict] | dict]


class ToolRegistry:
    """Registry of tool definitions and their implementations, keyed by ``Operation``."""

    def __init__(self):
        self._tools: dict[Operation, ToolDef] = {}
        self._impls: dict[Operation, ToolImpl] = {}

    def register(self, tool_def: ToolDef, impl: ToolImpl):
        """Register a tool definition with its implementation."""
        op = Operation(tool_def.name)
        self._tools[op] = tool_def
        self._impls[op] = impl

    def get_def(self, name: str) -> ToolDef | None:
        op = self.resolve(name)
        return self._tools.get(op) if op else None

    def get_all(self) -> list[ToolDef]:
        return list(self._tools.values())

    def resolve(self, name: str) -> Operation | None:
        try:
            return Operation(name)
        except ValueError:
            return None

    async def dispatch(self, tool_call: ToolCall, context: Any) -> dict:
        """Execute a tool call and return its structured result.

        Rejections (unknown tool, bad arguments, invalid graph input) come back
        as ``{"success": False, ...}``. A broken graph invariant is re-raised.
        """
        op = self.resolve(tool_call.name)
        impl = self._impls.get(op) if op else None
        if not impl:
            return {"success": False, "message": f"Unknown tool '{tool_call.name}'"}

        try:
            result = impl(context=context, **tool_call.args)
            # Handle both sync and async implementations
            if hasattr(result, "__await__"):
                result = await result
            return result
        except GraphValidationError as e:
            logger.warning(f"Tool '{op.value}' rejected: {e}")
            return {"success": False, "message": str(e)}
        except TypeError as e:
            logger.warning(f"Tool '{op.value}' called with bad arguments: {e}")
            return {"success": False, "message": f"Invalid arguments for {op.value}: {e}"}
        except GraphInvariantError:
            logger.critical(f"Tool '{op.value}' hit a broken graph invariant", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Tool '{op.value}' failed: {e}", exc_info=True)
            return {"success": False, "error": f"Error executing {op.value}: {e}"}

    def names(self) -> list[str]:
        return [op.value for op in self._tools]
