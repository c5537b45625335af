# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Prompt capability service."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any

from ..adapters import normalize_prompt_messages
from ..registry import CapabilityRegistry
from ... import types
from ...context import Context
from ...errors import invalid_params, not_found
from ...prompt import PromptSpec, extract_prompt_spec
from ...utils import maybe_await_with_args


class PromptsService:
    def __init__(self, registry: CapabilityRegistry, *, logger: logging.Logger) -> None:
        self._registry = registry
        self._logger = logger

    @property
    def prompt_names(self) -> list[str]:
        return sorted(spec.name for spec in self._registry.prompts.values())

    def register(self, target: PromptSpec | Callable[..., Any]) -> PromptSpec:
        spec = target if isinstance(target, PromptSpec) else extract_prompt_spec(target)
        if spec is None:
            raise TypeError(f"{target!r} is not a prompt; decorate it with @prompt first")
        self._registry.add_prompt(spec)
        return spec

    async def list_prompts(self, _ctx: Context, params: Mapping[str, Any]) -> types.ListPromptsResult:
        """List prompts; an optional ``filter`` keeps those whose name or description contains it."""
        needle = params.get("filter")
        prompts = [spec.definition() for spec in self._registry.prompts.values()]
        if isinstance(needle, str) and needle:
            lowered = needle.lower()
            prompts = [
                item
                for item in prompts
                if lowered in item.name.lower() or lowered in (item.description or "").lower()
            ]
        return types.ListPromptsResult(prompts=prompts)

    async def get_prompt(self, _ctx: Context, params: Mapping[str, Any]) -> types.GetPromptResult:
        name = params.get("name")
        if not isinstance(name, str):
            raise invalid_params("prompts/get requires a string 'name'")
        spec = self._registry.prompts.get(name)
        if spec is None:
            raise not_found(f"Prompt not found: {name}", name=name)

        supplied = params.get("arguments") or {}
        if not isinstance(supplied, Mapping):
            raise invalid_params(f"Arguments for prompt '{name}' must be an object")
        arguments = spec.resolve_arguments(supplied)

        if spec.messages is not None:
            messages = spec.render(arguments)
        else:
            assert spec.fn is not None
            if spec.arguments:
                declared = {argument.name for argument in spec.arguments}
                arguments = {key: value for key, value in arguments.items() if key in declared}
            messages = normalize_prompt_messages(await maybe_await_with_args(spec.fn, **arguments))
        return types.GetPromptResult(description=spec.description, messages=messages)


__all__ = ["PromptsService"]
