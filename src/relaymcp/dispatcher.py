# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Inbound request dispatch.

The :class:`Dispatcher` is shared by both ends of a session: the server uses
it for client requests and the client uses it for server-initiated sampling.
:meth:`Dispatcher.handle` turns every request into exactly one
:class:`~relaymcp.messages.Response`.  It never raises; whatever the handler
does is folded into a tagged error.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
import logging
from typing import Any

import anyio
from pydantic import BaseModel

from . import types
from .cancellation import CancellationToken
from .errors import ErrorTag, ProtocolError, RequestCancelled
from .messages import CapabilityKind, Request, Response
from .utils import get_logger


RequestHandler = Callable[[Request, CancellationToken], Awaitable[BaseModel | Mapping[str, Any] | None]]
CapabilityGate = Callable[[CapabilityKind], bool]
FailureHook = Callable[[Request, BaseException], None]


@dataclass(slots=True)
class PendingRequest:
    """Book-keeping for one in-flight inbound request."""

    request_id: types.RequestId
    method: str
    token: CancellationToken = field(default_factory=CancellationToken)


class Dispatcher:
    """Routes requests to handlers by method and tracks them while they run."""

    def __init__(
        self,
        *,
        gate: CapabilityGate | None = None,
        on_failure: FailureHook | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._handlers: dict[str, RequestHandler] = {}
        self._pending: dict[types.RequestId, PendingRequest] = {}
        self._gate = gate
        self._on_failure = on_failure
        self._logger = logger or get_logger("relaymcp.dispatcher")
        self._idle: anyio.Event | None = None

    # ------------------------------------------------------------------
    # Handler table
    # ------------------------------------------------------------------

    def register(self, method: str, handler: RequestHandler) -> None:
        self._handlers[method] = handler

    def unregister(self, method: str) -> None:
        self._handlers.pop(method, None)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, request: Request) -> Response:
        """Run the handler for ``request`` and return its single response."""
        if request.id in self._pending:
            self._logger.warning("Rejecting request %r: id already in flight", request.id)
            return self._failure(
                request, ProtocolError(ErrorTag.INVALID_REQUEST, f"Request id {request.id!r} is already in flight")
            )

        handler = self._handlers.get(request.method)
        kind = request.capability_kind
        if kind is not None and self._gate is not None and not self._gate(kind):
            return self._failure(
                request,
                ProtocolError(
                    ErrorTag.CAPABILITY_NOT_DECLARED,
                    f"Capability '{kind.value}' was not declared",
                    {"capability": kind.value},
                ),
            )
        if handler is None:
            return self._failure(
                request, ProtocolError(ErrorTag.METHOD_NOT_FOUND, f"Method not found: {request.method}")
            )

        pending = PendingRequest(request_id=request.id, method=request.method)
        self._pending[request.id] = pending
        self._logger.debug("Dispatching %s (id=%r)", request.method, request.id)
        try:
            try:
                result = await handler(request, pending.token)
            except ProtocolError as exc:
                return self._failure(request, exc)
            except RequestCancelled as exc:
                return self._cancelled(request, exc.reason)
            except Exception as exc:
                self._logger.exception("Handler for %s (id=%r) failed", request.method, request.id)
                if self._on_failure is not None:
                    self._on_failure(request, exc)
                message = str(exc) or type(exc).__name__
                return self._failure(request, ProtocolError(ErrorTag.HANDLER_FAILURE, message))

            # A handler that ignored its token still loses its result.
            if pending.token.cancelled:
                return self._cancelled(request, pending.token.reason)
            return Response.success(request.id, result if result is not None else types.EmptyResult())
        finally:
            self._pending.pop(request.id, None)
            if not self._pending and self._idle is not None:
                self._idle.set()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, request_id: types.RequestId, reason: str | None = None) -> bool:
        """Flip the token for ``request_id``.  Unknown or finished ids are ignored."""
        pending = self._pending.get(request_id)
        if pending is None:
            self._logger.debug("Ignoring cancellation for unknown request id %r", request_id)
            return False
        flipped = pending.token.cancel(reason)
        if flipped:
            self._logger.debug("Cancelled request %r (%s)", request_id, reason or "no reason given")
        return flipped

    def cancel_all(self, reason: str | None = None) -> int:
        return sum(1 for request_id in list(self._pending) if self.cancel(request_id, reason))

    def pending_ids(self) -> list[types.RequestId]:
        return list(self._pending)

    def is_pending(self, request_id: types.RequestId) -> bool:
        return request_id in self._pending

    async def wait_idle(self) -> None:
        """Return once no request is in flight."""
        while self._pending:
            if self._idle is None or self._idle.is_set():
                self._idle = anyio.Event()
            await self._idle.wait()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _cancelled(self, request: Request, reason: str | None) -> Response:
        data = {"reason": reason} if reason else None
        return self._failure(request, ProtocolError(ErrorTag.CANCELLED, "Request cancelled", data))

    def _failure(self, request: Request, exc: ProtocolError) -> Response:
        self._logger.debug("Request %r failed with %s: %s", request.id, exc.tag.value, exc.message)
        return Response.failure(request.id, exc.error)


__all__ = ["Dispatcher", "PendingRequest", "RequestHandler", "CapabilityGate"]
