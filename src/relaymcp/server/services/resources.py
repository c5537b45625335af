# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Resource capability service.

Reads try the static table first and then each template in registration
order.  Subscriptions live on the session; this service only validates the
URI and forwards to the session's table.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
import logging
from typing import TYPE_CHECKING, Any

from ..adapters import normalize_resource_payload
from ..registry import CapabilityRegistry
from ... import types
from ...context import Context
from ...errors import invalid_params, not_found
from ...resource import ResourceSpec, extract_resource_spec
from ...resource_template import ResourceTemplateSpec, extract_resource_template_spec
from ...utils import maybe_await_with_args


if TYPE_CHECKING:  # pragma: no cover - typing only
    from ...session import BaseSession


class ResourcesService:
    def __init__(self, registry: CapabilityRegistry, *, logger: logging.Logger) -> None:
        self._registry = registry
        self._logger = logger

    def register(self, target: ResourceSpec | Callable[[], Any]) -> ResourceSpec:
        spec = target if isinstance(target, ResourceSpec) else extract_resource_spec(target)
        if spec is None:
            raise TypeError(f"{target!r} is not a resource; decorate it with @resource first")
        self._registry.add_resource(spec)
        return spec

    def register_template(self, target: ResourceTemplateSpec | Callable[..., Any]) -> ResourceTemplateSpec:
        spec = target if isinstance(target, ResourceTemplateSpec) else extract_resource_template_spec(target)
        if spec is None:
            raise TypeError(f"{target!r} is not a resource template; decorate it with @resource_template first")
        self._registry.add_template(spec)
        return spec

    def exists(self, uri: str) -> bool:
        return self._registry.resource_exists(uri)

    async def list_resources(self, _ctx: Context, _params: Mapping[str, Any]) -> types.ListResourcesResult:
        return types.ListResourcesResult(resources=[spec.definition() for spec in self._registry.resources.values()])

    async def list_templates(self, _ctx: Context, _params: Mapping[str, Any]) -> types.ListResourceTemplatesResult:
        return types.ListResourceTemplatesResult(
            resourceTemplates=[spec.definition() for spec in self._registry.templates.values()]
        )

    async def read(self, _ctx: Context, params: Mapping[str, Any]) -> types.ReadResourceResult:
        uri = _require_uri(params)
        return await self.read_uri(uri)

    async def read_uri(self, uri: str) -> types.ReadResourceResult:
        static = self._registry.resources.get(uri)
        if static is not None:
            payload = await maybe_await_with_args(static.fn)
            return normalize_resource_payload(uri, static.mime_type, payload)

        matched = self._registry.match_template(uri)
        if matched is None:
            raise not_found(f"Resource not found: {uri}", uri=uri)
        spec, values = matched
        payload = await maybe_await_with_args(spec.fn, **values)
        return normalize_resource_payload(uri, spec.mime_type, payload)

    async def subscribe(self, ctx: Context, params: Mapping[str, Any]) -> types.EmptyResult:
        uri = _require_uri(params)
        table = ctx.session.subscriptions
        if table is None:
            raise RuntimeError("Session does not track subscriptions")
        if table.subscribe(uri):
            self._logger.debug("Subscribed to %s", uri)
        return types.EmptyResult()

    async def unsubscribe(self, ctx: Context, params: Mapping[str, Any]) -> types.EmptyResult:
        uri = _require_uri(params)
        table = ctx.session.subscriptions
        if table is not None and table.unsubscribe(uri):
            self._logger.debug("Unsubscribed from %s", uri)
        return types.EmptyResult()

    async def notify_updated(self, sessions: Iterable[BaseSession], uri: str) -> int:
        """Emit ``resources/updated`` to every session subscribed to ``uri``."""
        delivered = 0
        for session in sessions:
            if await session.notifications.resource_updated(uri):
                delivered += 1
        return delivered


def _require_uri(params: Mapping[str, Any]) -> str:
    uri = params.get("uri")
    if not isinstance(uri, str) or not uri:
        raise invalid_params("Request requires a string 'uri'")
    return uri


__all__ = ["ResourcesService"]
