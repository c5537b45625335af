# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Request context for capability handlers.

Handlers reach the active :class:`Context` either through :func:`get_context`
or by declaring a parameter annotated with :class:`Context`, which the
runtime fills in and leaves out of the advertised input schema.

Example::

    from relaymcp import Context, tool

    @tool(description="Counts to n")
    async def count(n: int, ctx: Context) -> str:
        async with ctx.progress(total=n) as tracker:
            for _ in range(n):
                await ctx.checkpoint()
                await tracker.advance()
        return "done"
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractAsyncContextManager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import inspect
from typing import TYPE_CHECKING, Any

from . import types
from .cancellation import CancellationToken
from .progress import ProgressTracker, progress as progress_manager
from .utils.schema import resolve_type_hints


if TYPE_CHECKING:  # pragma: no cover - typing only
    from .server import MCPServer
    from .session import BaseSession


_CURRENT_CONTEXT: ContextVar[Context | None] = ContextVar("relaymcp_current_context", default=None)


def get_context() -> Context:
    """Return the active :class:`Context`.

    Raises:
        LookupError: If called outside of a request handler.
    """
    ctx = _CURRENT_CONTEXT.get()
    if ctx is None:
        raise LookupError("No active context; use get_context() from within a request handler")
    return ctx


@dataclass(slots=True)
class Context:
    """Per-request view handed to handlers."""

    request_id: types.RequestId
    session: BaseSession
    cancellation: CancellationToken
    progress_token: types.ProgressToken | None = None
    server: MCPServer | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    async def checkpoint(self) -> None:
        """Cancellation checkpoint; raises once the request was cancelled."""
        await self.cancellation.checkpoint()

    async def sleep(self, seconds: float) -> None:
        await self.cancellation.sleep(seconds)

    async def report_progress(
        self,
        progress: float,
        *,
        total: float | None = None,
        message: str | None = None,
    ) -> None:
        """Emit a single progress notification if the caller supplied a token."""
        if self.progress_token is None:
            return
        await self.session.notifications.progress(self.progress_token, progress, total, message)

    def progress(self, total: float | None = None) -> AbstractAsyncContextManager[ProgressTracker]:
        return progress_manager(self.session.notifications, self.progress_token, total)

    async def create_message(
        self, params: types.CreateMessageRequestParams, *, timeout: float | None = None
    ) -> types.CreateMessageResult:
        """Ask the connected client to sample an LLM completion."""
        if self.server is None:
            raise RuntimeError("Sampling requires a server-side context")
        return await self.server.sampling.create_message(self.session, params, timeout=timeout)  # type: ignore[arg-type]


@contextmanager
def context_scope(ctx: Context) -> Iterator[Context]:
    """Make ``ctx`` the ambient context for the duration of the block."""
    token = _CURRENT_CONTEXT.set(ctx)
    try:
        yield ctx
    finally:
        _CURRENT_CONTEXT.reset(token)


def find_context_parameter(fn: Callable[..., Any]) -> str | None:
    """Name of the parameter of ``fn`` annotated with :class:`Context`, if any."""
    hints = resolve_type_hints(fn)
    for name, param in inspect.signature(fn).parameters.items():
        annotation = hints.get(name, param.annotation)
        if annotation is Context or annotation == "Context":
            return name
    return None


__all__ = ["Context", "get_context", "context_scope", "find_context_parameter"]
