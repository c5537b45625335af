# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Composable server surface.

:class:`MCPServer` owns the capability registry and the services built on
it, advertises capabilities during the handshake, and runs one
:class:`~relaymcp.session.ServerSession` per connection.  The registry is
frozen when the server starts serving; later changes need
``allow_dynamic=True`` and are announced with ``list_changed``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import os
import signal
from typing import TYPE_CHECKING, Any

import anyio

from .registry import CapabilityRegistry
from .services import PromptsService, ResourcesService, SamplingService, ToolsService
from .transports import BaseTransport, SseTransport, StdioTransport, TransportFactory
from .. import messages, types
from ..messages import CapabilityKind
from ..prompt import PromptSpec
from ..prompt import reset_active_server as reset_prompt_server
from ..prompt import set_active_server as set_prompt_server
from ..resource import ResourceSpec
from ..resource import reset_active_server as reset_resource_server
from ..resource import set_active_server as set_resource_server
from ..resource_template import ResourceTemplateSpec
from ..resource_template import reset_active_server as reset_resource_template_server
from ..resource_template import set_active_server as set_resource_template_server
from ..session import DEFAULT_SHUTDOWN_GRACE, LifecycleHooks, ServerSession
from ..tool import ToolSpec
from ..tool import reset_active_server as reset_tool_server
from ..tool import set_active_server as set_tool_server
from ..utils import get_logger


if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..context import Context
    from ..session import ReadStream, WriteStream

ServiceHandler = Callable[["Context", dict[str, Any]], Awaitable[Any]]

ENV_TRANSPORT = "RELAYMCP_TRANSPORT"
ENV_HOST = "RELAYMCP_HOST"
ENV_PORT = "RELAYMCP_PORT"


@dataclass(slots=True)
class NotificationFlags:
    """``listChanged`` flags advertised during initialization."""

    prompts_changed: bool = False
    resources_changed: bool = False
    tools_changed: bool = False


class ServerValidationError(RuntimeError):
    """Raised when the server configuration cannot be served."""


class MCPServer:
    """Capability server for one or more sessions."""

    def __init__(
        self,
        name: str,
        *,
        version: str | None = None,
        instructions: str | None = None,
        notification_flags: NotificationFlags | None = None,
        transport: str | None = None,
        allow_dynamic: bool = False,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        hooks: LifecycleHooks | None = None,
    ) -> None:
        self.name = name
        self.version = version or "0.1.0"
        self.instructions = instructions
        self.shutdown_grace = shutdown_grace
        self.hooks = hooks
        self._notification_flags = notification_flags or NotificationFlags()
        self._default_transport = (transport or os.getenv(ENV_TRANSPORT) or "stdio").lower()
        self._allow_dynamic = allow_dynamic
        self._logger = get_logger(f"relaymcp.server.{name}")

        self.registry = CapabilityRegistry(allow_dynamic=allow_dynamic, on_change=self._on_registry_change)
        self.tools = ToolsService(self.registry, logger=self._logger)
        self.prompts = PromptsService(self.registry, logger=self._logger)
        self.resources = ResourcesService(self.registry, logger=self._logger)
        self.sampling = SamplingService(logger=self._logger)

        self._sessions: set[ServerSession] = set()
        self._runtime_started = False
        self._binding_depth = 0
        self._active_transport: BaseTransport | None = None

        self._transport_factories: dict[str, TransportFactory] = {}
        self.register_transport("stdio", lambda server: StdioTransport(server))
        self.register_transport("sse", lambda server: SseTransport(server), aliases=("http", "http-sse"))

    # //////////////////////////////////////////////////////////////////
    # Introspection
    # //////////////////////////////////////////////////////////////////

    @property
    def tool_names(self) -> list[str]:
        return self.tools.tool_names

    @property
    def prompt_names(self) -> list[str]:
        return self.prompts.prompt_names

    @property
    def active_sessions(self) -> tuple[ServerSession, ...]:
        return tuple(self._sessions)

    def declares(self, kind: CapabilityKind) -> bool:
        """Whether ``kind`` is advertised to clients."""
        if kind is CapabilityKind.SAMPLING:
            return False
        return self._allow_dynamic or self.registry.populated(kind)

    def get_capabilities(self) -> types.ServerCapabilities:
        flags = self._notification_flags
        caps = types.ServerCapabilities()
        if self.declares(CapabilityKind.TOOLS):
            caps.tools = types.ToolsCapability(listChanged=flags.tools_changed or self._allow_dynamic)
        if self.declares(CapabilityKind.PROMPTS):
            caps.prompts = types.PromptsCapability(listChanged=flags.prompts_changed or self._allow_dynamic)
        if self.declares(CapabilityKind.RESOURCES):
            caps.resources = types.ResourcesCapability(
                subscribe=True, listChanged=flags.resources_changed or self._allow_dynamic
            )
        return caps

    def initialize_result(self, protocol_version: str | None = None) -> types.InitializeResult:
        return types.InitializeResult(
            protocolVersion=protocol_version or types.LATEST_PROTOCOL_VERSION,
            capabilities=self.get_capabilities(),
            serverInfo=types.Implementation(name=self.name, version=self.version),
            instructions=self.instructions,
        )

    def request_handlers(self) -> dict[str, ServiceHandler]:
        """Method table installed on every :class:`ServerSession`."""
        return {
            messages.TOOLS_LIST: self.tools.list_tools,
            messages.TOOLS_CALL: self.tools.call_tool,
            messages.PROMPTS_LIST: self.prompts.list_prompts,
            messages.PROMPTS_GET: self.prompts.get_prompt,
            messages.RESOURCES_LIST: self.resources.list_resources,
            messages.RESOURCES_TEMPLATES_LIST: self.resources.list_templates,
            messages.RESOURCES_READ: self.resources.read,
            messages.RESOURCES_SUBSCRIBE: self.resources.subscribe,
            messages.RESOURCES_UNSUBSCRIBE: self.resources.unsubscribe,
        }

    # //////////////////////////////////////////////////////////////////
    # Registration
    # //////////////////////////////////////////////////////////////////

    def register_tool(self, target: ToolSpec | Callable[..., Any]) -> ToolSpec:
        return self.tools.register(target)

    def unregister_tool(self, name: str) -> None:
        self.tools.unregister(name)

    def register_prompt(self, target: PromptSpec | Callable[..., Any]) -> PromptSpec:
        return self.prompts.register(target)

    def register_resource(self, target: ResourceSpec | Callable[[], Any]) -> ResourceSpec:
        return self.resources.register(target)

    def register_resource_template(self, target: ResourceTemplateSpec | Callable[..., Any]) -> ResourceTemplateSpec:
        return self.resources.register_template(target)

    @contextmanager
    def binding(self) -> Iterator[MCPServer]:
        """Register every capability decorated inside the block with this server."""
        self._binding_depth += 1
        tool_token = set_tool_server(self)
        resource_token = set_resource_server(self)
        prompt_token = set_prompt_server(self)
        template_token = set_resource_template_server(self)
        try:
            yield self
        finally:
            reset_tool_server(tool_token)
            reset_resource_server(resource_token)
            reset_prompt_server(prompt_token)
            reset_resource_template_server(template_token)
            self._binding_depth -= 1

    # //////////////////////////////////////////////////////////////////
    # Notifications
    # //////////////////////////////////////////////////////////////////

    async def notify_resource_updated(self, uri: str) -> int:
        """Tell every session subscribed to ``uri`` that it changed."""
        return await self.resources.notify_updated(self.active_sessions, uri)

    async def notify_tools_list_changed(self) -> None:
        await self._broadcast_list_changed(CapabilityKind.TOOLS)

    async def notify_prompts_list_changed(self) -> None:
        await self._broadcast_list_changed(CapabilityKind.PROMPTS)

    async def notify_resources_list_changed(self) -> None:
        await self._broadcast_list_changed(CapabilityKind.RESOURCES)

    async def _broadcast_list_changed(self, kind: CapabilityKind) -> None:
        for session in self.active_sessions:
            await session.notifications.list_changed(kind)

    def _on_registry_change(self, kind: CapabilityKind) -> None:
        self._logger.debug("%s changed at runtime", kind.value)
        for session in self.active_sessions:
            session.spawn(session.notifications.list_changed, kind)

    # //////////////////////////////////////////////////////////////////
    # Sampling
    # //////////////////////////////////////////////////////////////////

    async def request_sampling(
        self,
        params: types.CreateMessageRequestParams,
        *,
        session: ServerSession | None = None,
        timeout: float | None = None,
    ) -> types.CreateMessageResult:
        """Ask a client to sample.  Without ``session`` the server must have exactly one."""
        if session is None:
            sessions = self.active_sessions
            if len(sessions) != 1:
                raise RuntimeError(f"request_sampling needs an explicit session ({len(sessions)} active)")
            session = sessions[0]
        return await self.sampling.create_message(session, params, timeout=timeout)

    # //////////////////////////////////////////////////////////////////
    # Running
    # //////////////////////////////////////////////////////////////////

    async def run(self, read_stream: ReadStream, write_stream: WriteStream) -> None:
        """Serve one connection until it closes."""
        self._start_runtime()
        session = ServerSession(
            read_stream, write_stream, self, hooks=self.hooks, shutdown_grace=self.shutdown_grace
        )
        self._sessions.add(session)
        try:
            await session.run()
        finally:
            self._sessions.discard(session)

    async def shutdown_sessions(self, grace: float | None = None) -> None:
        """Gracefully shut down every active session."""
        async with anyio.create_task_group() as tg:
            for session in self.active_sessions:
                tg.start_soon(session.shutdown, grace)

    def validate(self) -> None:
        """Reject configurations that cannot be served."""
        if self._allow_dynamic:
            return
        if not any(self.declares(kind) for kind in CapabilityKind):
            raise ServerValidationError(f"Server '{self.name}' registers no tools, prompts or resources")

    def _start_runtime(self) -> None:
        if not self._runtime_started:
            self._runtime_started = True
            self.registry.freeze()
            self._logger.debug(
                "Registry frozen: %d tool(s), %d prompt(s), %d resource(s), %d template(s)",
                len(self.registry.tools),
                len(self.registry.prompts),
                len(self.registry.resources),
                len(self.registry.templates),
            )

    # //////////////////////////////////////////////////////////////////
    # Transport registry
    # //////////////////////////////////////////////////////////////////

    def register_transport(self, name: str, factory: TransportFactory, *, aliases: Iterable[str] | None = None) -> None:
        self._transport_factories[name.lower()] = factory
        for alias in aliases or ():
            self._transport_factories[alias.lower()] = factory

    def _transport_for_name(self, name: str) -> BaseTransport:
        factory = self._transport_factories.get(name.lower())
        if factory is None:
            raise ValueError(f"Unsupported transport '{name}'.")
        transport = factory(self)
        if not isinstance(transport, BaseTransport):  # pragma: no cover - defensive
            raise TypeError("Transport factory must return a BaseTransport instance")
        return transport

    # //////////////////////////////////////////////////////////////////
    # Transport helpers
    # //////////////////////////////////////////////////////////////////

    async def serve_stdio(self, *, validate: bool = True, announce: bool = True) -> None:
        await self.serve(transport="stdio", validate=validate, verbose=announce)

    async def serve_sse(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        validate: bool = True,
        announce: bool = True,
        **uvicorn_options: Any,
    ) -> None:
        await self.serve(transport="sse", host=host, port=port, validate=validate, verbose=announce, **uvicorn_options)

    async def serve(
        self,
        *,
        transport: str | None = None,
        validate: bool = True,
        verbose: bool = True,
        handle_signals: bool = True,
        **transport_kwargs: Any,
    ) -> None:
        """Serve over ``transport`` until the peer disconnects or a signal arrives.

        ``SIGINT``/``SIGTERM`` stop accepting new requests, let in-flight ones
        finish (or cancel them after ``shutdown_grace``) and then return
        normally, so the process can exit with status 0.
        """
        selected = (transport or self._default_transport).lower()
        if validate:
            self.validate()

        if selected in {"sse", "http", "http-sse"}:
            transport_kwargs.setdefault("host", os.getenv(ENV_HOST) or None)
            port = transport_kwargs.get("port") or os.getenv(ENV_PORT)
            transport_kwargs["port"] = int(port) if port else None

        instance = self._transport_for_name(selected)
        self._active_transport = instance
        if verbose:
            self._logger.info("Serving %s via %s", self.name, instance.transport_display_name)

        try:
            async with anyio.create_task_group() as tg:
                if handle_signals and isinstance(instance, StdioTransport):
                    # uvicorn installs its own handlers for the HTTP binding.
                    tg.start_soon(self._watch_signals, instance)

                await instance.run(**transport_kwargs)
                tg.cancel_scope.cancel()
        finally:
            self._active_transport = None
        if verbose:
            self._logger.info("Server %s stopped", self.name)

    async def stop(self) -> None:
        """Stop the running transport, draining sessions first."""
        if self._active_transport is not None:
            await self._active_transport.stop()
        else:
            await self.shutdown_sessions()

    async def _watch_signals(self, transport: BaseTransport) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                self._logger.info("Received %s; shutting down", signal.Signals(signum).name)
                await transport.stop()
                return


__all__ = ["MCPServer", "NotificationFlags", "ServerValidationError", "ENV_TRANSPORT", "ENV_HOST", "ENV_PORT"]
