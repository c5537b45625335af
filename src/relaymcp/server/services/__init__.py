# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Capability services used by :class:`relaymcp.server.MCPServer`."""

from __future__ import annotations

from .prompts import PromptsService
from .resources import ResourcesService
from .sampling import SamplingService
from .tools import ToolsService


__all__ = ["PromptsService", "ResourcesService", "SamplingService", "ToolsService"]
