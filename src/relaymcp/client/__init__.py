# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Public client-side helpers for relaymcp."""

from __future__ import annotations

from .connection import open_connection
from .core import ClientCapabilitiesConfig, MCPClient
from .transports import sse_client, stdio_client


__all__ = [
    "MCPClient",
    "ClientCapabilitiesConfig",
    "open_connection",
    "stdio_client",
    "sse_client",
]
