# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Cooperative cancellation for dispatched requests.

A :class:`CancellationToken` is handed to every handler invocation.  The
dispatcher flips it when the peer sends ``notifications/cancelled`` for the
request id; the handler notices at its next checkpoint.  A handler that never
checks its token runs to completion, and the dispatcher then discards the
result and answers ``Cancelled``.
"""

from __future__ import annotations

import anyio
import anyio.lowlevel

from .errors import RequestCancelled


class CancellationToken:
    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Set the token.  Returns ``False`` when it was already set."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled(self._reason)

    async def checkpoint(self) -> None:
        """Yield to the event loop, then raise if the token was set meanwhile."""
        await anyio.lowlevel.checkpoint()
        self.raise_if_cancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` but wake early (and raise) once cancelled."""
        with anyio.move_on_after(seconds):
            await self._event.wait()
        self.raise_if_cancelled()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<CancellationToken {state}>"


__all__ = ["CancellationToken"]
