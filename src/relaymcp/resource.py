# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Static resource registration.

Usage mirrors the :mod:`relaymcp.tool` ambient registration pattern.
"""

from __future__ import annotations

from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from . import types


if TYPE_CHECKING:  # pragma: no cover
    from .server import MCPServer

ResourceFn = Callable[[], Any]


@dataclass(slots=True)
class ResourceSpec:
    uri: str
    fn: ResourceFn
    name: str | None = None
    description: str | None = None
    mime_type: str | None = None

    def definition(self) -> types.Resource:
        return types.Resource(
            uri=self.uri,
            name=self.name or self.uri,
            description=self.description,
            mimeType=self.mime_type,
        )


_RESOURCE_ATTR = "__relaymcp_resource__"
_ACTIVE_SERVER: ContextVar[MCPServer | None] = ContextVar("_relaymcp_resource_server", default=None)


def get_active_server() -> MCPServer | None:
    return _ACTIVE_SERVER.get()


def set_active_server(server: MCPServer) -> object:
    return _ACTIVE_SERVER.set(server)


def reset_active_server(token: object) -> None:
    _ACTIVE_SERVER.reset(token)


def resource(
    uri: str,
    *,
    name: str | None = None,
    description: str | None = None,
    mime_type: str | None = None,
) -> Callable[[ResourceFn], ResourceFn]:
    """Register a resource-producing callable.

    The decorated function may be sync or async and returns ``str`` (text),
    ``bytes`` (binary, sent base64-encoded) or a list of resource contents.
    """

    def decorator(fn: ResourceFn) -> ResourceFn:
        spec = ResourceSpec(uri=uri, fn=fn, name=name, description=description, mime_type=mime_type)
        setattr(fn, _RESOURCE_ATTR, spec)

        server = get_active_server()
        if server is not None:
            server.register_resource(spec)
        return fn

    return decorator


def extract_resource_spec(fn: ResourceFn) -> ResourceSpec | None:
    spec = getattr(fn, _RESOURCE_ATTR, None)
    if isinstance(spec, ResourceSpec):
        return spec
    return None


__all__ = ["resource", "ResourceSpec", "extract_resource_spec", "set_active_server", "reset_active_server"]
