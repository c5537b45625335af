# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Shared test helpers: in-memory connections and recording streams."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from itertools import count
from typing import Any

import anyio
import anyio.lowlevel
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from relaymcp.client import ClientCapabilitiesConfig, MCPClient
from relaymcp.messages import Message, Notification, Request, Response
from relaymcp.server import MCPServer
from relaymcp.session import LifecycleHooks


def memory_pipe(
    size: int = 32,
) -> tuple[MemoryObjectSendStream[Message | Exception], MemoryObjectReceiveStream[Message | Exception]]:
    return anyio.create_memory_object_stream[Message | Exception](size)


@asynccontextmanager
async def connected_client(
    server: MCPServer,
    *,
    capabilities: ClientCapabilitiesConfig | None = None,
    client_hooks: LifecycleHooks | None = None,
) -> AsyncIterator[MCPClient]:
    """Run ``server`` and an initialized :class:`MCPClient` over memory streams."""
    to_server, server_inbox = memory_pipe()
    to_client, client_inbox = memory_pipe()
    async with anyio.create_task_group() as tg:
        tg.start_soon(server.run, server_inbox, to_client)
        async with MCPClient(
            client_inbox, to_server, capabilities=capabilities, hooks=client_hooks, shutdown_grace=1
        ) as client:
            yield client


class RawPeer:
    """Speaks raw envelopes to a running server, bypassing the client session."""

    def __init__(self, server: MCPServer) -> None:
        self.server = server
        self._ids = count(1)
        self._to_server, self._server_inbox = memory_pipe()
        self._to_peer, self._inbox = memory_pipe()
        self.notifications: list[Notification] = []

    @asynccontextmanager
    async def running(self) -> AsyncIterator[RawPeer]:
        async with anyio.create_task_group() as tg:
            tg.start_soon(self.server.run, self._server_inbox, self._to_peer)
            try:
                yield self
            finally:
                await self._to_server.aclose()

    async def send(self, message: Message | Exception) -> None:
        await self._to_server.send(message)

    async def request(self, method: str, params: dict[str, Any] | None = None, *, request_id: Any = None) -> Any:
        request_id = next(self._ids) if request_id is None else request_id
        await self.send(Request(id=request_id, method=method, params=params or {}))
        return request_id

    async def receive(self, timeout: float = 5) -> Message:
        with anyio.fail_after(timeout):
            item = await self._inbox.receive()
        assert not isinstance(item, Exception)
        return item

    async def response(self, timeout: float = 5) -> Response:
        """Next response; notifications seen on the way are kept in :attr:`notifications`."""
        while True:
            message = await self.receive(timeout)
            if isinstance(message, Response):
                return message
            assert isinstance(message, Notification)
            self.notifications.append(message)

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Response:
        await self.request(method, params)
        return await self.response()


class RecordingSender:
    """Async callable that records every notification it is asked to send."""

    def __init__(self, *, fail_with: BaseException | None = None) -> None:
        self.sent: list[Notification] = []
        self._fail_with = fail_with

    async def __call__(self, notification: Notification) -> None:
        await anyio.lowlevel.checkpoint()
        if self._fail_with is not None:
            raise self._fail_with
        self.sent.append(notification)

    @property
    def topics(self) -> list[str]:
        return [notification.method for notification in self.sent]
