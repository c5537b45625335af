# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Tool registration utilities.

When an :class:`~relaymcp.server.MCPServer` enters its
:meth:`binding <relaymcp.server.MCPServer.binding>` context, decorated
functions are registered as tools automatically.  Outside a binding the
decorator only attaches a :class:`ToolSpec`, which can be registered later
with :meth:`~relaymcp.server.MCPServer.register_tool`.
"""

from __future__ import annotations

from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from . import types
from .context import find_context_parameter
from .utils.schema import build_input_schema


if TYPE_CHECKING:  # pragma: no cover - type-checking helpers only
    from .server import MCPServer

ToolFn = Callable[..., Any]


@dataclass(slots=True)
class ToolSpec:
    """In-memory representation of a tool definition."""

    name: str
    fn: ToolFn
    description: str = ""
    title: str | None = None
    input_schema: dict[str, Any] | None = None
    context_param: str | None = None

    def __post_init__(self) -> None:
        if self.context_param is None:
            self.context_param = find_context_parameter(self.fn)
        if self.input_schema is None:
            skip = (self.context_param,) if self.context_param else ()
            self.input_schema = build_input_schema(self.fn, skip=skip)

    def definition(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            title=self.title,
            description=self.description or None,
            inputSchema=self.input_schema or {"type": "object"},
        )


_TOOL_ATTR = "__relaymcp_tool__"
_ACTIVE_SERVER: ContextVar[MCPServer | None] = ContextVar("_relaymcp_tool_server", default=None)


def get_active_server() -> MCPServer | None:
    """Return the server currently binding tool definitions, if any."""
    return _ACTIVE_SERVER.get()


def set_active_server(server: MCPServer) -> Any:
    return _ACTIVE_SERVER.set(server)


def reset_active_server(token: Any) -> None:
    _ACTIVE_SERVER.reset(token)


def tool(
    name: str | None = None,
    *,
    description: str | None = None,
    title: str | None = None,
    input_schema: dict[str, Any] | None = None,
) -> Callable[[ToolFn], ToolFn]:
    """Decorator that marks a callable as a tool.

    ``input_schema`` overrides the schema otherwise generated from the
    function signature.  Arguments are validated against it before the
    function is called.
    """

    def decorator(fn: ToolFn) -> ToolFn:
        desc = (description if description is not None else (fn.__doc__ or "")).strip()
        spec = ToolSpec(
            name=name or fn.__name__ or "anonymous",
            fn=fn,
            description=desc,
            title=title,
            input_schema=dict(input_schema) if input_schema is not None else None,
        )
        setattr(fn, _TOOL_ATTR, spec)

        server = get_active_server()
        if server is not None:
            server.register_tool(spec)
        return fn

    return decorator


def extract_tool_spec(fn: ToolFn) -> ToolSpec | None:
    """Return the attached :class:`ToolSpec` for *fn*, if present."""
    spec = getattr(fn, _TOOL_ATTR, None)
    if isinstance(spec, ToolSpec):
        return spec
    return None


__all__ = [
    "ToolSpec",
    "ToolFn",
    "tool",
    "extract_tool_spec",
    "get_active_server",
    "set_active_server",
    "reset_active_server",
]
