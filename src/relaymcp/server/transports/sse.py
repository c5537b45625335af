# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""HTTP split binding: Server-Sent Events down, POST up.

``GET /sse`` opens an event stream.  Its first event, ``endpoint``, carries
the URL the client must POST to (``/messages?session_id=<hex>``); every
server -> client message then follows as a ``message`` event.  Each POST
delivers exactly one JSON message and is answered ``202 Accepted`` as soon as
it is queued; the reply, if any, arrives on the event stream.

Sessions run in a task group owned by the application lifespan, so the ASGI
app must be served with lifespan support (uvicorn does this by default).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from sse_starlette.sse import EventSourceResponse
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route
from uvicorn import Config, Server

from .base import BaseTransport
from ...errors import MessageDecodeError
from ...messages import Message, parse_message, serialize
from ...utils import get_logger


if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..core import MCPServer


logger = get_logger("relaymcp.server.sse")


@dataclass(slots=True)
class SseSession:
    """Stream endpoints for one connected client."""

    session_id: str
    inbound: MemoryObjectSendStream[Message | Exception]
    outbound: MemoryObjectReceiveStream[Message]


class SseSessionManager:
    """Tracks live event streams and routes POSTed messages to them."""

    def __init__(self, server: MCPServer, *, messages_path: str = "/messages") -> None:
        self._server = server
        self._messages_path = messages_path
        self._sessions: dict[str, SseSession] = {}
        self._task_group: TaskGroup | None = None

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield
            finally:
                await self._server.shutdown_sessions()
                tg.cancel_scope.cancel()
                self._task_group = None

    def open_session(self) -> SseSession:
        """Create a session and start serving it."""
        if self._task_group is None:
            raise RuntimeError("SSE session manager is not running; serve the app with lifespan enabled")
        read_send, read_receive = anyio.create_memory_object_stream(32)
        write_send, write_receive = anyio.create_memory_object_stream(32)
        session = SseSession(session_id=uuid4().hex, inbound=read_send, outbound=write_receive)
        self._sessions[session.session_id] = session
        self._task_group.start_soon(self._serve, session.session_id, read_receive, write_send)
        logger.debug("Opened SSE session %s", session.session_id)
        return session

    def close_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.inbound.close()
        logger.debug("Closed SSE session %s", session_id)

    async def _serve(
        self,
        session_id: str,
        read_stream: MemoryObjectReceiveStream[Message | Exception],
        write_stream: MemoryObjectSendStream[Message],
    ) -> None:
        try:
            await self._server.run(read_stream, write_stream)
        finally:
            self.close_session(session_id)

    # ------------------------------------------------------------------
    # ASGI endpoints
    # ------------------------------------------------------------------

    async def handle_sse(self, request: Request) -> Response:
        session = self.open_session()
        endpoint = f"{request.scope.get('root_path', '')}{self._messages_path}?session_id={session.session_id}"

        async def events() -> AsyncIterator[dict[str, str]]:
            try:
                yield {"event": "endpoint", "data": endpoint}
                async for message in session.outbound:
                    yield {"event": "message", "data": serialize(message)}
            finally:
                self.close_session(session.session_id)
                session.outbound.close()

        return EventSourceResponse(events(), headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})

    async def handle_post(self, request: Request) -> Response:
        session_id = request.query_params.get("session_id")
        if not session_id:
            return PlainTextResponse("session_id is required", status_code=400)
        session = self._sessions.get(session_id)
        if session is None:
            return PlainTextResponse("Could not find session", status_code=404)

        body = await request.body()
        try:
            message = parse_message(body)
        except MessageDecodeError as exc:
            logger.warning("Rejected malformed message for session %s: %s", session_id, exc)
            return PlainTextResponse(f"Could not parse message: {exc}", status_code=400)

        try:
            await session.inbound.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            return PlainTextResponse("Session is closed", status_code=410)
        return PlainTextResponse("Accepted", status_code=202)

    def build_app(self, *, sse_path: str = "/sse") -> Starlette:
        @asynccontextmanager
        async def lifespan(_app: Starlette) -> AsyncIterator[None]:
            async with self.run():
                yield

        routes = [
            Route(sse_path, self.handle_sse, methods=["GET"]),
            Route(self._messages_path, self.handle_post, methods=["POST"]),
        ]
        return Starlette(routes=routes, lifespan=lifespan)


class SseTransport(BaseTransport):
    """Serve an :class:`relaymcp.server.MCPServer` over the HTTP split binding."""

    TRANSPORT = ("sse", "SSE", "HTTP + Server-Sent Events")

    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 8000
    DEFAULT_LOG_LEVEL = "info"

    def __init__(self, server: MCPServer, *, sse_path: str = "/sse", messages_path: str = "/messages") -> None:
        super().__init__(server)
        self._sse_path = sse_path
        self.manager = SseSessionManager(server, messages_path=messages_path)
        self._uvicorn: Server | None = None

    def build_app(self) -> Starlette:
        return self.manager.build_app(sse_path=self._sse_path)

    async def run(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        log_level: str | None = None,
        **uvicorn_options: Any,
    ) -> None:
        uvicorn_options.setdefault("timeout_graceful_shutdown", int(self.server.shutdown_grace) or 1)
        config = Config(
            app=self.build_app(),
            host=host or self.DEFAULT_HOST,
            port=port or self.DEFAULT_PORT,
            log_level=log_level or self.DEFAULT_LOG_LEVEL,
            **uvicorn_options,
        )
        self._uvicorn = Server(config)
        try:
            await self._uvicorn.serve()
        finally:
            self._uvicorn = None

    async def stop(self) -> None:
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True


__all__ = ["SseTransport", "SseSessionManager", "SseSession"]
