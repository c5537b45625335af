# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Templated resources such as ``greeting://{name}``.

:class:`UriTemplate` supports simple ``{placeholder}`` expansion: each
placeholder matches one or more characters other than ``/``, ``?`` and ``#``,
and the captured value is percent-decoded before it reaches the handler.
"""

from __future__ import annotations

from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, field
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, unquote

from . import types


if TYPE_CHECKING:  # pragma: no cover
    from .server import MCPServer

ResourceTemplateFn = Callable[..., Any]

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class UriTemplate:
    __slots__ = ("template", "parameters", "_pattern")

    def __init__(self, template: str) -> None:
        self.template = template
        self.parameters: tuple[str, ...] = tuple(_PLACEHOLDER.findall(template))
        if len(set(self.parameters)) != len(self.parameters):
            raise ValueError(f"Duplicate placeholder in URI template {template!r}")

        parts: list[str] = []
        position = 0
        for match in _PLACEHOLDER.finditer(template):
            parts.append(re.escape(template[position : match.start()]))
            parts.append(f"(?P<{match.group(1)}>[^/?#]+)")
            position = match.end()
        parts.append(re.escape(template[position:]))
        self._pattern = re.compile("".join(parts))

    def match(self, uri: str) -> dict[str, str] | None:
        """Return decoded placeholder values, or ``None`` when ``uri`` does not fit."""
        found = self._pattern.fullmatch(uri)
        if found is None:
            return None
        return {key: unquote(value) for key, value in found.groupdict().items()}

    def expand(self, **values: Any) -> str:
        missing = [name for name in self.parameters if name not in values]
        if missing:
            raise KeyError(f"Missing values for {', '.join(missing)}")
        return _PLACEHOLDER.sub(lambda m: quote(str(values[m.group(1)]), safe=""), self.template)

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"


@dataclass(slots=True)
class ResourceTemplateSpec:
    uri_template: str
    fn: ResourceTemplateFn
    name: str | None = None
    description: str | None = None
    mime_type: str | None = None
    matcher: UriTemplate = field(init=False)

    def __post_init__(self) -> None:
        self.matcher = UriTemplate(self.uri_template)

    def definition(self) -> types.ResourceTemplate:
        return types.ResourceTemplate(
            uriTemplate=self.uri_template,
            name=self.name or self.uri_template,
            description=self.description,
            mimeType=self.mime_type,
        )


_TEMPLATE_ATTR = "__relaymcp_resource_template__"
_ACTIVE_SERVER: ContextVar[MCPServer | None] = ContextVar("_relaymcp_resource_template_server", default=None)


def get_active_server() -> MCPServer | None:
    return _ACTIVE_SERVER.get()


def set_active_server(server: MCPServer) -> object:
    return _ACTIVE_SERVER.set(server)


def reset_active_server(token: object) -> None:
    _ACTIVE_SERVER.reset(token)


def resource_template(
    uri_template: str,
    *,
    name: str | None = None,
    description: str | None = None,
    mime_type: str | None = None,
) -> Callable[[ResourceTemplateFn], ResourceTemplateFn]:
    """Register a handler for every URI matching ``uri_template``.

    The handler is called with the decoded placeholders as keyword
    arguments, e.g. ``greeting://Alice`` calls ``fn(name="Alice")``.
    """

    def decorator(fn: ResourceTemplateFn) -> ResourceTemplateFn:
        spec = ResourceTemplateSpec(
            uri_template=uri_template, fn=fn, name=name, description=description, mime_type=mime_type
        )
        setattr(fn, _TEMPLATE_ATTR, spec)

        server = get_active_server()
        if server is not None:
            server.register_resource_template(spec)
        return fn

    return decorator


def extract_resource_template_spec(fn: ResourceTemplateFn) -> ResourceTemplateSpec | None:
    spec = getattr(fn, _TEMPLATE_ATTR, None)
    if isinstance(spec, ResourceTemplateSpec):
        return spec
    return None


__all__ = [
    "UriTemplate",
    "ResourceTemplateSpec",
    "resource_template",
    "extract_resource_template_spec",
    "set_active_server",
    "reset_active_server",
]
