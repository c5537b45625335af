# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Shared transport primitives for :mod:`relaymcp.server`.

A transport owns the byte-level plumbing (pipes, HTTP) and hands the server a
pair of object streams per connection via :meth:`MCPServer.run
<relaymcp.server.MCPServer.run>`.  It never interprets message content.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable


if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..core import MCPServer


class BaseTransport(ABC):
    """Common base for server transports."""

    TRANSPORT: ClassVar[tuple[str, ...]] = ("base", "Base")

    def __init__(self, server: MCPServer) -> None:
        self._server = server

    @property
    def server(self) -> MCPServer:
        return self._server

    @property
    def transport_display_name(self) -> str:
        return self.TRANSPORT[-1]

    @abstractmethod
    async def run(self, **kwargs: Any) -> None:
        """Serve until the transport is exhausted or the server shuts down."""

    async def stop(self) -> None:
        """Ask a running transport to wind down; the default does nothing."""


@runtime_checkable
class TransportFactory(Protocol):
    """Callable that produces a configured transport for an ``MCPServer``."""

    def __call__(self, server: MCPServer) -> BaseTransport:  # pragma: no cover - protocol
        ...


__all__ = ["BaseTransport", "TransportFactory"]
