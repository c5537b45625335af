# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""relaymcp framework primitives."""

from __future__ import annotations

from . import types
from .cancellation import CancellationToken
from .client import ClientCapabilitiesConfig, MCPClient, open_connection
from .context import Context, get_context
from .errors import ErrorTag, ProtocolError, RequestCancelled
from .progress import progress
from .prompt import prompt, template_prompt
from .resource import resource
from .resource_template import resource_template
from .server import MCPServer, NotificationFlags
from .session import LifecycleHooks
from .tool import tool


__all__ = [
    "NotificationFlags",
    "MCPClient",
    "MCPServer",
    "ClientCapabilitiesConfig",
    "open_connection",
    "tool",
    "resource",
    "resource_template",
    "prompt",
    "template_prompt",
    "progress",
    "types",
    "Context",
    "get_context",
    "CancellationToken",
    "LifecycleHooks",
    "ErrorTag",
    "ProtocolError",
    "RequestCancelled",
]
