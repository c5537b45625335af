# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Server-side surface of relaymcp."""

from __future__ import annotations

from .core import MCPServer, NotificationFlags, ServerValidationError
from .registry import CapabilityRegistry, RegistryFrozenError
from .transports import BaseTransport, SseTransport, StdioTransport


__all__ = [
    "MCPServer",
    "NotificationFlags",
    "ServerValidationError",
    "CapabilityRegistry",
    "RegistryFrozenError",
    "BaseTransport",
    "StdioTransport",
    "SseTransport",
]
