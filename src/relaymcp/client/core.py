# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""High-level MCP client wrapper.

:class:`MCPClient` runs a :class:`~relaymcp.session.ClientSession` over a
pair of object streams, performs the initialization handshake on entry and
exposes typed helpers for every capability method.  Calls to a capability
the server did not declare fail locally with ``CapabilityNotDeclared``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel

from .. import messages, types
from ..session import (
    ClientSession,
    LifecycleHooks,
    NotificationHandler,
    ProgressCallback,
    ReadStream,
    SamplingHandler,
    WriteStream,
)


T_RequestResult = TypeVar("T_RequestResult", bound=BaseModel)


@dataclass(slots=True)
class ClientCapabilitiesConfig:
    """Optional capability handlers for the client."""

    sampling: SamplingHandler | None = None


class MCPClient:
    """Lifecycle-aware wrapper around :class:`~relaymcp.session.ClientSession`.

    Example::

        async with stdio_client("python", ["-m", "relaymcp.demo"]) as (read, write):
            async with MCPClient(read, write) as client:
                result = await client.call_tool("add", {"a": 5, "b": 3})
    """

    def __init__(
        self,
        read_stream: ReadStream,
        write_stream: WriteStream,
        *,
        capabilities: ClientCapabilitiesConfig | None = None,
        client_info: types.Implementation | None = None,
        hooks: LifecycleHooks | None = None,
        shutdown_grace: float | None = None,
    ) -> None:
        self._read_stream = read_stream
        self._write_stream = write_stream
        self._config = capabilities or ClientCapabilitiesConfig()
        self._client_info = client_info
        self._hooks = hooks
        self._shutdown_grace = shutdown_grace

        self._session: ClientSession | None = None
        self.initialize_result: types.InitializeResult | None = None

    # ---------------------------------------------------------------------
    # Async context manager
    # ---------------------------------------------------------------------

    async def __aenter__(self) -> MCPClient:
        kwargs: dict[str, Any] = {}
        if self._shutdown_grace is not None:
            kwargs["shutdown_grace"] = self._shutdown_grace
        session = ClientSession(
            self._read_stream,
            self._write_stream,
            client_info=self._client_info,
            sampling_handler=self._config.sampling,
            hooks=self._hooks,
            **kwargs,
        )
        await session.__aenter__()
        self._session = session
        try:
            self.initialize_result = await session.initialize()
        except BaseException as exc:
            await session.__aexit__(type(exc), exc, exc.__traceback__)
            self._session = None
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool | None:
        if self._session is None:
            return None
        try:
            return await self._session.__aexit__(exc_type, exc, tb)
        finally:
            self._session = None

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    @property
    def session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("Client session not started; use 'async with' before accessing it.")
        return self._session

    @property
    def server_capabilities(self) -> types.ServerCapabilities | None:
        return self.session.server_capabilities

    async def ping(self) -> types.EmptyResult:
        return await self.send_request(messages.PING, None, types.EmptyResult)

    async def send_request(
        self,
        method: str,
        params: Mapping[str, Any] | BaseModel | None,
        result_type: type[T_RequestResult],
        *,
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> T_RequestResult:
        """Forward a request to the server and await the typed result."""
        return await self.session.send_request(
            method, params, result_type, progress_callback=progress_callback, timeout=timeout
        )

    async def cancel_request(self, request_id: types.RequestId, *, reason: str | None = None) -> None:
        """Emit ``notifications/cancelled`` for an in-flight request."""
        await self.session.cancel_request(request_id, reason)

    def on_notification(self, topic: str, handler: NotificationHandler) -> None:
        """Register ``handler`` for server notifications such as ``notifications/resources/updated``."""
        self.session.on_notification(topic, handler)

    # Tools ---------------------------------------------------------------

    async def list_tools(self) -> types.ListToolsResult:
        return await self.send_request(messages.TOOLS_LIST, None, types.ListToolsResult)

    async def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        *,
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> types.CallToolResult:
        params = {"name": name, "arguments": dict(arguments or {})}
        return await self.send_request(
            messages.TOOLS_CALL, params, types.CallToolResult, progress_callback=progress_callback, timeout=timeout
        )

    # Prompts -------------------------------------------------------------

    async def list_prompts(self, filter: str | None = None) -> types.ListPromptsResult:
        params = {"filter": filter} if filter else None
        return await self.send_request(messages.PROMPTS_LIST, params, types.ListPromptsResult)

    async def get_prompt(self, name: str, arguments: Mapping[str, Any] | None = None) -> types.GetPromptResult:
        params = {"name": name, "arguments": {key: str(value) for key, value in (arguments or {}).items()}}
        return await self.send_request(messages.PROMPTS_GET, params, types.GetPromptResult)

    # Resources -----------------------------------------------------------

    async def list_resources(self) -> types.ListResourcesResult:
        return await self.send_request(messages.RESOURCES_LIST, None, types.ListResourcesResult)

    async def list_resource_templates(self) -> types.ListResourceTemplatesResult:
        return await self.send_request(messages.RESOURCES_TEMPLATES_LIST, None, types.ListResourceTemplatesResult)

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        return await self.send_request(messages.RESOURCES_READ, {"uri": uri}, types.ReadResourceResult)

    async def subscribe_resource(self, uri: str) -> types.EmptyResult:
        return await self.send_request(messages.RESOURCES_SUBSCRIBE, {"uri": uri}, types.EmptyResult)

    async def unsubscribe_resource(self, uri: str) -> types.EmptyResult:
        return await self.send_request(messages.RESOURCES_UNSUBSCRIBE, {"uri": uri}, types.EmptyResult)


__all__ = ["MCPClient", "ClientCapabilitiesConfig"]
