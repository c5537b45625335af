# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Prompt registration and template rendering.

A prompt is either a list of ``(role, template)`` pairs rendered with
:func:`render_template`, or a callable that builds the messages itself.
Rendering is pure: the same name and arguments always produce the same
messages.  Placeholders use the ``{{key}}`` form; a placeholder with no
matching argument is left in the output verbatim.

Usage mirrors the :mod:`relaymcp.tool` ambient registration pattern.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from contextvars import ContextVar
from dataclasses import dataclass, field
import re
from typing import TYPE_CHECKING, Any

from . import types
from .errors import ErrorTag, ProtocolError


if TYPE_CHECKING:  # pragma: no cover
    from .server import MCPServer

PromptFn = Callable[..., Any]
MessageTemplate = tuple[types.Role, str]

_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}")


def render_template(template: str, arguments: Mapping[str, Any]) -> str:
    """Substitute ``{{key}}`` tokens from ``arguments`` in a single pass.

    >>> render_template("Hi {{name}}", {})
    'Hi {{name}}'
    >>> render_template("Hi {{name}}", {"name": "Alice"})
    'Hi Alice'
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in arguments:
            return match.group(0)
        return str(arguments[key])

    return _PLACEHOLDER.sub(_replace, template)


@dataclass(slots=True)
class PromptArgumentSpec:
    name: str
    description: str | None = None
    required: bool = False
    default: str | None = None

    def definition(self) -> types.PromptArgument:
        return types.PromptArgument(name=self.name, description=self.description, required=self.required)


@dataclass(slots=True)
class PromptSpec:
    name: str
    description: str | None = None
    title: str | None = None
    arguments: list[PromptArgumentSpec] = field(default_factory=list)
    messages: list[MessageTemplate] | None = None
    fn: PromptFn | None = None

    def __post_init__(self) -> None:
        if (self.messages is None) == (self.fn is None):
            raise ValueError(f"Prompt '{self.name}' needs exactly one of 'messages' or a render function")

    def definition(self) -> types.Prompt:
        return types.Prompt(
            name=self.name,
            title=self.title,
            description=self.description,
            arguments=[argument.definition() for argument in self.arguments] or None,
        )

    def resolve_arguments(self, supplied: Mapping[str, Any] | None) -> dict[str, str]:
        """Check required arguments and fill declared defaults.

        Raises:
            ProtocolError: tagged ``MissingRequiredParam``, naming the first
                declared-required argument that is absent.
        """
        resolved = {key: str(value) for key, value in (supplied or {}).items() if value is not None}
        for argument in self.arguments:
            if argument.name in resolved:
                continue
            if argument.default is not None:
                resolved[argument.name] = argument.default
            elif argument.required:
                raise ProtocolError(
                    ErrorTag.MISSING_REQUIRED_PARAM,
                    f"Missing required argument '{argument.name}' for prompt '{self.name}'",
                    {"argument": argument.name, "prompt": self.name},
                )
        return resolved

    def render(self, arguments: Mapping[str, str]) -> list[types.PromptMessage]:
        assert self.messages is not None
        return [
            types.PromptMessage(
                role=role,
                content=types.TextContent(type="text", text=render_template(text, arguments)),
            )
            for role, text in self.messages
        ]


_PROMPT_ATTR = "__relaymcp_prompt__"
_ACTIVE_SERVER: ContextVar[MCPServer | None] = ContextVar("_relaymcp_prompt_server", default=None)


def get_active_server() -> MCPServer | None:
    return _ACTIVE_SERVER.get()


def set_active_server(server: MCPServer) -> object:
    return _ACTIVE_SERVER.set(server)


def reset_active_server(token: object) -> None:
    _ACTIVE_SERVER.reset(token)


def _coerce_arguments(arguments: Iterable[PromptArgumentSpec | Mapping[str, Any] | str] | None) -> list[PromptArgumentSpec]:
    result: list[PromptArgumentSpec] = []
    for item in arguments or ():
        if isinstance(item, PromptArgumentSpec):
            result.append(item)
        elif isinstance(item, str):
            result.append(PromptArgumentSpec(name=item, required=True))
        else:
            result.append(PromptArgumentSpec(**item))
    return result


def prompt(
    name: str | None = None,
    *,
    description: str | None = None,
    title: str | None = None,
    arguments: Iterable[PromptArgumentSpec | Mapping[str, Any] | str] | None = None,
) -> Callable[[PromptFn], PromptFn]:
    """Register a callable that renders prompt messages.

    The callable receives the resolved arguments as keyword arguments and
    returns messages as :class:`~relaymcp.types.PromptMessage` objects,
    mappings, ``(role, text)`` pairs or a :class:`~relaymcp.types.GetPromptResult`.
    A bare string in ``arguments`` declares a required argument.
    """

    def decorator(fn: PromptFn) -> PromptFn:
        spec = PromptSpec(
            name=name or fn.__name__,
            description=description if description is not None else ((fn.__doc__ or "").strip() or None),
            title=title,
            arguments=_coerce_arguments(arguments),
            fn=fn,
        )
        setattr(fn, _PROMPT_ATTR, spec)

        server = get_active_server()
        if server is not None:
            server.register_prompt(spec)
        return fn

    return decorator


def template_prompt(
    name: str,
    messages: Sequence[MessageTemplate],
    *,
    description: str | None = None,
    title: str | None = None,
    arguments: Iterable[PromptArgumentSpec | Mapping[str, Any] | str] | None = None,
) -> PromptSpec:
    """Build (and, inside a binding, register) a prompt from message templates."""
    spec = PromptSpec(
        name=name,
        description=description,
        title=title,
        arguments=_coerce_arguments(arguments),
        messages=list(messages),
    )
    server = get_active_server()
    if server is not None:
        server.register_prompt(spec)
    return spec


def extract_prompt_spec(fn: PromptFn) -> PromptSpec | None:
    spec = getattr(fn, _PROMPT_ATTR, None)
    if isinstance(spec, PromptSpec):
        return spec
    return None


__all__ = [
    "prompt",
    "template_prompt",
    "render_template",
    "PromptSpec",
    "PromptArgumentSpec",
    "extract_prompt_spec",
    "set_active_server",
    "reset_active_server",
]
