# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Tool capability service."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any

from ..adapters import normalize_tool_result
from ..registry import CapabilityRegistry
from ... import types
from ...context import Context
from ...errors import invalid_params, not_found
from ...tool import ToolSpec, extract_tool_spec
from ...utils import maybe_await_with_args
from ...utils.schema import validate_arguments


class ToolsService:
    """Lists tools and invokes them after validating their arguments."""

    def __init__(self, registry: CapabilityRegistry, *, logger: logging.Logger) -> None:
        self._registry = registry
        self._logger = logger

    @property
    def tool_names(self) -> list[str]:
        return sorted(spec.name for spec in self._registry.tools.values())

    def register(self, target: ToolSpec | Callable[..., Any]) -> ToolSpec:
        spec = target if isinstance(target, ToolSpec) else extract_tool_spec(target)
        if spec is None:
            fn = target
            spec = ToolSpec(name=getattr(fn, "__name__", "anonymous"), fn=fn, description=(fn.__doc__ or "").strip())
        self._registry.add_tool(spec)
        return spec

    def unregister(self, name: str) -> None:
        self._registry.remove_tool(name)

    async def list_tools(self, _ctx: Context, _params: Mapping[str, Any]) -> types.ListToolsResult:
        return types.ListToolsResult(tools=[spec.definition() for spec in self._registry.tools.values()])

    async def call_tool(self, ctx: Context, params: Mapping[str, Any]) -> types.CallToolResult:
        name = params.get("name")
        if not isinstance(name, str):
            raise invalid_params("tools/call requires a string 'name'")
        spec = self._registry.tools.get(name)
        if spec is None:
            raise not_found(f"Tool not found: {name}", name=name)

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, Mapping):
            raise invalid_params(f"Arguments for tool '{name}' must be an object")
        validate_arguments(spec.input_schema, arguments, subject=f"tool '{name}'")

        kwargs = dict(arguments)
        if spec.context_param is not None:
            kwargs[spec.context_param] = ctx
        self._logger.debug("Calling tool %s", name)
        result = await maybe_await_with_args(spec.fn, **kwargs)
        return normalize_tool_result(result)


__all__ = ["ToolsService"]
