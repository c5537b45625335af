# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Re-export of the MCP schema bindings.

The reference SDK ships generated Pydantic models for every payload under
``mcp.types``; this module re-exports them so the rest of :mod:`relaymcp`
has a single import site.  Only the JSON-RPC envelopes and the session engine
are implemented here; payload shapes always come from the SDK.
"""

from __future__ import annotations

from typing import Any

from mcp import types as _types
from pydantic import BaseModel


_SDK_NAMES = tuple(name for name in dir(_types) if not name.startswith("_"))

globals().update({name: getattr(_types, name) for name in _SDK_NAMES})

# Codes the schema bindings leave unnamed.
RESOURCE_NOT_FOUND = -32002
REQUEST_CANCELLED = -32800


def dump_model(model: BaseModel) -> dict[str, Any]:
    """Return the JSON-ready wire form of ``model``, omitting unset optionals."""
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


__all__ = (*_SDK_NAMES, "RESOURCE_NOT_FOUND", "REQUEST_CANCELLED", "dump_model")
