# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Server transports."""

from __future__ import annotations

from .base import BaseTransport, TransportFactory
from .sse import SseSession, SseSessionManager, SseTransport
from .stdio import StdioTransport, get_stdio_server, stdio_server


__all__ = [
    "BaseTransport",
    "TransportFactory",
    "StdioTransport",
    "stdio_server",
    "get_stdio_server",
    "SseTransport",
    "SseSessionManager",
    "SseSession",
]
