# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Session engine shared by servers and clients.

A session sits between a pair of anyio object streams and does three jobs:

* inbound requests are dispatched concurrently, one task per request, and
  each produces exactly one response;
* outbound requests get monotonically increasing integer ids and are matched
  with their responses (an unknown id is logged and discarded);
* notifications are routed: ``notifications/cancelled`` flips the matching
  request's cancellation token, ``notifications/progress`` feeds the progress
  callback of the outbound request that supplied the token, and every other
  topic goes to the registered handlers.

The read stream carries decoded :class:`~relaymcp.messages.Message` objects
or the exception raised while decoding a frame.  Such exceptions are logged
and dropped; they have no id to answer.

Lifecycle is ``CREATED -> INITIALIZED -> CLOSED``.  :class:`LifecycleHooks`
callbacks run synchronously at each transition.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum
import logging
import math
from typing import TYPE_CHECKING, Any, TypeVar

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream, TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import BaseModel, ValidationError

from . import messages, types
from .cancellation import CancellationToken
from .context import Context, context_scope
from .dispatcher import Dispatcher
from .errors import ErrorTag, ProtocolError, invalid_params
from .messages import CapabilityKind, Message, Notification, Request, Response
from .notifications import NotificationBus
from .subscriptions import SubscriptionTable
from .utils import get_logger, maybe_await_with_args


if TYPE_CHECKING:  # pragma: no cover - typing only
    from .server import MCPServer


ReadStream = ObjectReceiveStream[Message | Exception]
WriteStream = ObjectSendStream[Message]
ProgressCallback = Callable[[float, float | None, str | None], Awaitable[None] | None]
NotificationHandler = Callable[[Notification], Awaitable[None] | None]
SamplingHandler = Callable[
    [types.CreateMessageRequestParams], Awaitable[types.CreateMessageResult | Mapping[str, Any]]
]

ResultT = TypeVar("ResultT", bound=BaseModel)

# One queued callback: (label for logs, callable, positional args).
_Delivery = tuple[str, Callable[..., Any], tuple[Any, ...]]

DEFAULT_SHUTDOWN_GRACE = 5.0


class SessionState(str, Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    CLOSED = "closed"


@dataclass(slots=True)
class LifecycleHooks:
    """Callbacks invoked synchronously at session state transitions."""

    on_initialized: Callable[[BaseSession], None] | None = None
    on_error: Callable[[BaseSession, BaseException], None] | None = None
    on_close: Callable[[BaseSession], None] | None = None


@dataclass(slots=True)
class _OutboundRequest:
    method: str
    send: MemoryObjectSendStream[Response]


class BaseSession:
    """Direction-agnostic request/response correlation over a stream pair."""

    def __init__(
        self,
        read_stream: ReadStream,
        write_stream: WriteStream,
        *,
        hooks: LifecycleHooks | None = None,
        subscriptions: SubscriptionTable | None = None,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        logger: logging.Logger | None = None,
    ) -> None:
        self._read = read_stream
        self._write = write_stream
        self._hooks = hooks or LifecycleHooks()
        self._logger = logger or get_logger(f"relaymcp.session.{type(self).__name__.lower()}")
        self._shutdown_grace = shutdown_grace

        self.subscriptions = subscriptions
        self.dispatcher = Dispatcher(
            gate=self._is_capability_declared,
            on_failure=lambda _request, exc: self._report_error(exc),
            logger=self._logger,
        )
        self.notifications = NotificationBus(self.send_notification, subscriptions, logger=self._logger)

        self._state = SessionState.CREATED
        self._next_id = 0
        self._outbound: dict[types.RequestId, _OutboundRequest] = {}
        self._progress_callbacks: dict[types.ProgressToken, ProgressCallback] = {}
        self._notification_handlers: dict[str, list[NotificationHandler]] = {}
        self._lanes: dict[tuple[str, Any], MemoryObjectSendStream[_Delivery]] = {}

        self._exit_stack: AsyncExitStack | None = None
        self._task_group: TaskGroup | None = None
        self._closed: anyio.Event | None = None
        self._stopping = False
        self._responding = 0
        self._drained: anyio.Event | None = None

        self.dispatcher.register(messages.PING, self._on_ping)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is SessionState.CLOSED

    def pending_outbound(self) -> list[types.RequestId]:
        return list(self._outbound)

    # ------------------------------------------------------------------
    # Context management
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BaseSession:
        self._closed = anyio.Event()
        self._exit_stack = AsyncExitStack()
        self._task_group = await self._exit_stack.enter_async_context(anyio.create_task_group())
        self._task_group.start_soon(self._receive_loop, name=f"{type(self).__name__}.receive")
        return self

    async def __aexit__(self, *exc_info: Any) -> bool | None:
        await self.shutdown()
        assert self._exit_stack is not None and self._task_group is not None
        # Whatever outlived the grace period is cancelled here.
        self._task_group.cancel_scope.cancel()
        return await self._exit_stack.__aexit__(*exc_info)

    async def run(self) -> None:
        """Serve until the inbound stream ends or :meth:`shutdown` completes."""
        async with self:
            await self.wait_closed()

    async def wait_closed(self) -> None:
        if self._closed is None:
            raise RuntimeError("Session has not been started")
        await self._closed.wait()

    async def shutdown(self, grace: float | None = None) -> None:
        """Stop accepting requests, drain in-flight ones, then close.

        Requests still pending after ``grace`` seconds have their tokens
        flipped and get one more grace period to answer ``Cancelled``.
        """
        if self._stopping:
            if self._closed is not None:
                await self._closed.wait()
            return
        self._stopping = True
        grace = self._shutdown_grace if grace is None else grace
        self._logger.debug("Shutting down (%d request(s) in flight)", self._responding)

        with anyio.move_on_after(grace):
            await self._wait_drained()
        if self._responding:
            self._fail_outbound()
            self.dispatcher.cancel_all("Session shutting down")
            with anyio.move_on_after(grace):
                await self._wait_drained()

        self._fail_outbound()
        self._close_lanes()
        await self._write.aclose()
        if self.subscriptions is not None:
            self.subscriptions.clear()
        self._transition(SessionState.CLOSED)
        if self._closed is not None:
            self._closed.set()

    # ------------------------------------------------------------------
    # Outbound traffic
    # ------------------------------------------------------------------

    async def send_request(
        self,
        method: str,
        params: Mapping[str, Any] | BaseModel | None = None,
        result_type: type[ResultT] | None = None,
        *,
        progress_callback: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for its response.

        Returns the validated ``result_type`` instance, or the raw result
        mapping when no type is given.

        Raises:
            ProtocolError: The peer answered with an error, the request timed
                out, or the session closed before an answer arrived.
        """
        if self._stopping or self.is_closed:
            raise RuntimeError("Session is closed")
        self._check_outbound(method)

        request_id = self._next_id
        self._next_id += 1

        payload = types.dump_model(params) if isinstance(params, BaseModel) else dict(params or {})
        if progress_callback is not None:
            meta = dict(payload.get("_meta") or {})
            meta["progressToken"] = request_id
            payload["_meta"] = meta
            self._progress_callbacks[request_id] = progress_callback

        send, receive = anyio.create_memory_object_stream(1)
        self._outbound[request_id] = _OutboundRequest(method=method, send=send)
        try:
            await self._write.send(Request(id=request_id, method=method, params=payload))
            try:
                with anyio.fail_after(timeout):
                    response: Response = await receive.receive()
            except TimeoutError:
                await self.cancel_request(request_id, f"Timed out after {timeout}s")
                raise ProtocolError(ErrorTag.CANCELLED, f"Request {method} timed out after {timeout}s") from None
            except anyio.EndOfStream:
                raise ProtocolError(ErrorTag.CANCELLED, "Session closed before a response arrived") from None
        finally:
            self._outbound.pop(request_id, None)
            self._progress_callbacks.pop(request_id, None)
            lane = self._lanes.pop(("progress", request_id), None)
            if lane is not None:
                lane.close()
            send.close()
            receive.close()

        if response.error is not None:
            raise ProtocolError.from_error(response.error)
        result = response.result or {}
        if result_type is None:
            return result
        try:
            return result_type.model_validate(result)
        except ValidationError as exc:
            raise ProtocolError(ErrorTag.INVALID_REQUEST, f"Malformed {method} result: {exc}") from exc

    async def send_notification(self, notification: Notification) -> None:
        await self._write.send(notification)

    async def cancel_request(self, request_id: types.RequestId, reason: str | None = None) -> None:
        """Ask the peer to cancel an outbound request; the response still arrives."""
        params: dict[str, Any] = {"requestId": request_id}
        if reason:
            params["reason"] = reason
        await self.notifications.emit(messages.CANCELLED, params)

    def on_notification(self, topic: str, handler: NotificationHandler) -> None:
        self._notification_handlers.setdefault(topic, []).append(handler)

    def spawn(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> bool:
        """Run ``fn(*args)`` in the session's task group.  Returns False once stopping."""
        if self._task_group is None or self._stopping:
            return False
        self._task_group.start_soon(fn, *args)
        return True

    # ------------------------------------------------------------------
    # Inbound traffic
    # ------------------------------------------------------------------

    async def _receive_loop(self) -> None:
        try:
            async for item in self._read:
                if isinstance(item, Exception):
                    self._logger.warning("Dropping undecodable message: %s", item)
                    self._report_error(item)
                    continue
                await self._route(item)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            pass
        self._logger.debug("Inbound stream ended")
        await self.shutdown()

    async def _route(self, message: Message) -> None:
        if isinstance(message, Request):
            if self._stopping:
                refusal = ProtocolError(ErrorTag.INVALID_REQUEST, "Session is shutting down")
                await self._send_quietly(Response.failure(message.id, refusal.error))
                return
            assert self._task_group is not None
            # Counted until the response is written, not just until the handler returns.
            self._responding += 1
            self._task_group.start_soon(self._handle_request, message, name=f"request:{message.id}")
        elif isinstance(message, Response):
            self._handle_response(message)
        else:
            await self._handle_notification(message)

    async def _handle_request(self, request: Request) -> None:
        try:
            response = await self.dispatcher.handle(request)
            await self._send_quietly(response)
        finally:
            self._responding -= 1
            if not self._responding and self._drained is not None:
                self._drained.set()

    async def _wait_drained(self) -> None:
        while self._responding:
            if self._drained is None or self._drained.is_set():
                self._drained = anyio.Event()
            await self._drained.wait()

    def _handle_response(self, response: Response) -> None:
        entry = self._outbound.pop(response.id, None)
        if entry is None:
            self._logger.warning("Discarding response for unknown request id %r", response.id)
            return
        lane = ("progress", response.id)
        if lane in self._lanes:
            # Progress callbacks for this request run before its caller resumes.
            self._enqueue(lane, "response delivery", self._deliver_response, entry, response)
            self._lanes.pop(lane).close()
            return
        self._deliver_response(entry, response)

    def _deliver_response(self, entry: _OutboundRequest, response: Response) -> None:
        try:
            entry.send.send_nowait(response)
        except (anyio.WouldBlock, anyio.ClosedResourceError, anyio.BrokenResourceError):
            self._logger.debug("Requester for id %r is gone; response dropped", response.id)

    async def _handle_notification(self, notification: Notification) -> None:
        params = notification.params
        if notification.method == messages.CANCELLED:
            request_id = params.get("requestId")
            if request_id is not None:
                self.dispatcher.cancel(request_id, params.get("reason"))
            return

        if notification.method == messages.PROGRESS:
            callback = self._progress_callbacks.get(params.get("progressToken"))  # type: ignore[arg-type]
            if callback is None:
                self._logger.debug("Progress for unknown token %r ignored", params.get("progressToken"))
                return
            self._enqueue(
                ("progress", params.get("progressToken")),
                "progress callback",
                callback,
                params.get("progress", 0),
                params.get("total"),
                params.get("message"),
            )
            return

        await self._received_notification(notification)
        for handler in list(self._notification_handlers.get(notification.method, ())):
            self._enqueue(("topic", notification.method), f"handler for {notification.method}", handler, notification)

    async def _received_notification(self, notification: Notification) -> None:
        """Hook for subclasses; called before registered handlers."""

    async def _on_ping(self, _request: Request, _token: CancellationToken) -> types.EmptyResult:
        return types.EmptyResult()

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    def _is_capability_declared(self, kind: CapabilityKind) -> bool:
        return False

    def _check_outbound(self, method: str) -> None:
        """Raise before sending ``method`` when the peer cannot accept it."""

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _make_context(self, request: Request, token: CancellationToken) -> Context:
        return Context(
            request_id=request.id,
            session=self,
            cancellation=token,
            progress_token=request.progress_token,
        )

    async def _send_quietly(self, message: Message) -> None:
        try:
            await self._write.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            self._logger.debug("Outbound stream closed; dropped %s", type(message).__name__.lower())

    async def _invoke(self, label: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            await maybe_await_with_args(fn, *args)
        except Exception as exc:
            self._logger.exception("Notification %s failed", label)
            self._report_error(exc)

    def _enqueue(self, lane: tuple[str, Any], label: str, fn: Callable[..., Any], *args: Any) -> None:
        """Queue a callback behind earlier ones on the same lane.

        Callbacks never run inside the receive loop: a handler that sends a
        request waits for a response only that loop can deliver.  Each lane
        is drained by its own task, so per-topic order is kept.
        """
        queue = self._lanes.get(lane)
        if queue is None:
            assert self._task_group is not None
            queue, pending = anyio.create_memory_object_stream[_Delivery](math.inf)
            self._lanes[lane] = queue
            self._task_group.start_soon(self._drain_lane, pending, name=f"lane:{lane[0]}:{lane[1]}")
        queue.send_nowait((label, fn, args))

    async def _drain_lane(self, pending: MemoryObjectReceiveStream[_Delivery]) -> None:
        async with pending:
            async for label, fn, args in pending:
                await self._invoke(label, fn, *args)

    def _close_lanes(self) -> None:
        for queue in self._lanes.values():
            queue.close()
        self._lanes.clear()

    def _fail_outbound(self) -> None:
        for entry in list(self._outbound.values()):
            entry.send.close()
        self._outbound.clear()

    def _transition(self, state: SessionState) -> None:
        if self._state is state or self._state is SessionState.CLOSED:
            return
        self._logger.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state
        hook: Callable[[BaseSession], None] | None = None
        if state is SessionState.INITIALIZED:
            hook = self._hooks.on_initialized
        elif state is SessionState.CLOSED:
            hook = self._hooks.on_close
        if hook is None:
            return
        try:
            hook(self)
        except Exception:
            self._logger.exception("Lifecycle hook for %s failed", state.value)

    def _report_error(self, exc: BaseException) -> None:
        if self._hooks.on_error is None:
            return
        try:
            self._hooks.on_error(self, exc)
        except Exception:
            self._logger.exception("on_error hook failed")


class ServerSession(BaseSession):
    """Server end of a connection: answers the handshake and capability methods."""

    def __init__(
        self,
        read_stream: ReadStream,
        write_stream: WriteStream,
        server: MCPServer,
        *,
        hooks: LifecycleHooks | None = None,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ) -> None:
        super().__init__(
            read_stream,
            write_stream,
            hooks=hooks,
            subscriptions=SubscriptionTable(server.resources.exists),
            shutdown_grace=shutdown_grace,
            logger=get_logger(f"relaymcp.server.{server.name}.session"),
        )
        self.server = server
        self.client_info: types.Implementation | None = None
        self.client_capabilities = types.ClientCapabilities()
        self.protocol_version = types.LATEST_PROTOCOL_VERSION

        self.dispatcher.register(messages.INITIALIZE, self._on_initialize)
        for method, handler in server.request_handlers().items():
            self.dispatcher.register(method, self._bind(handler))

    def client_supports(self, kind: CapabilityKind) -> bool:
        if kind is CapabilityKind.SAMPLING:
            return self.client_capabilities.sampling is not None
        return False

    def _is_capability_declared(self, kind: CapabilityKind) -> bool:
        return self.server.declares(kind)

    def _make_context(self, request: Request, token: CancellationToken) -> Context:
        ctx = super()._make_context(request, token)
        ctx.server = self.server
        return ctx

    def _bind(self, handler: Callable[[Context, dict[str, Any]], Awaitable[Any]]):
        async def dispatch(request: Request, token: CancellationToken) -> Any:
            ctx = self._make_context(request, token)
            with context_scope(ctx):
                return await handler(ctx, request.arguments)

        return dispatch

    async def _on_initialize(self, request: Request, _token: CancellationToken) -> types.InitializeResult:
        try:
            params = types.InitializeRequestParams.model_validate(request.arguments)
        except ValidationError as exc:
            raise invalid_params(f"Invalid initialize parameters: {exc.errors()[0]['msg']}") from exc
        self.client_info = params.clientInfo
        self.client_capabilities = params.capabilities
        self.protocol_version = params.protocolVersion
        self._logger.info("Client %s %s connected", params.clientInfo.name, params.clientInfo.version)
        return self.server.initialize_result(params.protocolVersion)

    async def _received_notification(self, notification: Notification) -> None:
        if notification.method == messages.INITIALIZED:
            self._transition(SessionState.INITIALIZED)


class ClientSession(BaseSession):
    """Client end of a connection: performs the handshake and answers sampling."""

    def __init__(
        self,
        read_stream: ReadStream,
        write_stream: WriteStream,
        *,
        client_info: types.Implementation | None = None,
        sampling_handler: SamplingHandler | None = None,
        hooks: LifecycleHooks | None = None,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
    ) -> None:
        super().__init__(read_stream, write_stream, hooks=hooks, shutdown_grace=shutdown_grace)
        self.client_info = client_info or types.Implementation(name="relaymcp-client", version="0.1.0")
        self._sampling_handler = sampling_handler
        self.capabilities = types.ClientCapabilities(
            sampling=types.SamplingCapability() if sampling_handler is not None else None
        )
        self.server_info: types.Implementation | None = None
        self.server_capabilities: types.ServerCapabilities | None = None
        self.instructions: str | None = None

        if sampling_handler is not None:
            self.dispatcher.register(messages.SAMPLING_CREATE_MESSAGE, self._on_create_message)

    async def initialize(self) -> types.InitializeResult:
        params = types.InitializeRequestParams(
            protocolVersion=types.LATEST_PROTOCOL_VERSION,
            capabilities=self.capabilities,
            clientInfo=self.client_info,
        )
        result = await self.send_request(messages.INITIALIZE, params, types.InitializeResult)
        self.server_info = result.serverInfo
        self.server_capabilities = result.capabilities
        self.instructions = result.instructions
        await self.send_notification(Notification(method=messages.INITIALIZED))
        self._transition(SessionState.INITIALIZED)
        return result

    def server_supports(self, kind: CapabilityKind) -> bool:
        caps = self.server_capabilities
        if caps is None:
            return False
        return getattr(caps, kind.value, None) is not None

    def _is_capability_declared(self, kind: CapabilityKind) -> bool:
        return kind is CapabilityKind.SAMPLING and self._sampling_handler is not None

    def _check_outbound(self, method: str) -> None:
        kind = messages.METHOD_KINDS.get(method)
        if kind is None or self.server_capabilities is None:
            return
        if not self.server_supports(kind):
            raise ProtocolError(
                ErrorTag.CAPABILITY_NOT_DECLARED,
                f"Server did not declare the '{kind.value}' capability",
                {"capability": kind.value},
            )

    async def _on_create_message(self, request: Request, token: CancellationToken) -> types.CreateMessageResult:
        assert self._sampling_handler is not None
        try:
            params = types.CreateMessageRequestParams.model_validate(request.arguments)
        except ValidationError as exc:
            raise invalid_params(f"Invalid sampling parameters: {exc.errors()[0]['msg']}") from exc
        with context_scope(self._make_context(request, token)):
            result = await maybe_await_with_args(self._sampling_handler, params)
        if isinstance(result, types.CreateMessageResult):
            return result
        return types.CreateMessageResult.model_validate(result)


__all__ = [
    "BaseSession",
    "ServerSession",
    "ClientSession",
    "SessionState",
    "LifecycleHooks",
    "ProgressCallback",
    "NotificationHandler",
    "SamplingHandler",
    "DEFAULT_SHUTDOWN_GRACE",
]
