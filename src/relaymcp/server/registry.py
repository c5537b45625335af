# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Capability registry: one id-keyed table per capability kind.

The registry is filled while the server is being configured and frozen when
it starts serving.  A frozen registry rejects changes unless the server was
created with ``allow_dynamic=True``; in that mode every change is reported
through ``on_change`` so the server can emit ``list_changed``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from ..messages import CapabilityKind
from ..prompt import PromptSpec
from ..resource import ResourceSpec
from ..resource_template import ResourceTemplateSpec
from ..tool import ToolSpec


SpecT = TypeVar("SpecT")
ChangeCallback = Callable[[CapabilityKind], None]


class RegistryFrozenError(RuntimeError):
    """Raised when a frozen registry is mutated without dynamic mode."""


class _Table(Generic[SpecT]):
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: dict[str, SpecT] = {}

    def get(self, key: str) -> SpecT | None:
        return self._items.get(key)

    def put(self, key: str, spec: SpecT) -> None:
        self._items[key] = spec

    def pop(self, key: str) -> SpecT | None:
        return self._items.pop(key, None)

    def values(self) -> list[SpecT]:
        return list(self._items.values())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class CapabilityRegistry:
    def __init__(self, *, allow_dynamic: bool = False, on_change: ChangeCallback | None = None) -> None:
        self.tools: _Table[ToolSpec] = _Table()
        self.prompts: _Table[PromptSpec] = _Table()
        self.resources: _Table[ResourceSpec] = _Table()
        self.templates: _Table[ResourceTemplateSpec] = _Table()
        self._allow_dynamic = allow_dynamic
        self._on_change = on_change
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def allow_dynamic(self) -> bool:
        return self._allow_dynamic

    def freeze(self) -> None:
        self._frozen = True

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_tool(self, spec: ToolSpec) -> None:
        self._mutate(CapabilityKind.TOOLS, lambda: self.tools.put(spec.name, spec))

    def remove_tool(self, name: str) -> None:
        self._mutate(CapabilityKind.TOOLS, lambda: self.tools.pop(name))

    def add_prompt(self, spec: PromptSpec) -> None:
        self._mutate(CapabilityKind.PROMPTS, lambda: self.prompts.put(spec.name, spec))

    def add_resource(self, spec: ResourceSpec) -> None:
        self._mutate(CapabilityKind.RESOURCES, lambda: self.resources.put(spec.uri, spec))

    def add_template(self, spec: ResourceTemplateSpec) -> None:
        self._mutate(CapabilityKind.RESOURCES, lambda: self.templates.put(spec.uri_template, spec))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def populated(self, kind: CapabilityKind) -> bool:
        if kind is CapabilityKind.TOOLS:
            return len(self.tools) > 0
        if kind is CapabilityKind.PROMPTS:
            return len(self.prompts) > 0
        if kind is CapabilityKind.RESOURCES:
            return len(self.resources) > 0 or len(self.templates) > 0
        # Sampling is served by the client, never registered here.
        return False

    def match_template(self, uri: str) -> tuple[ResourceTemplateSpec, dict[str, str]] | None:
        for spec in self.templates.values():
            values = spec.matcher.match(uri)
            if values is not None:
                return spec, values
        return None

    def resource_exists(self, uri: str) -> bool:
        return uri in self.resources or self.match_template(uri) is not None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _mutate(self, kind: CapabilityKind, change: Callable[[], object]) -> None:
        if self._frozen and not self._allow_dynamic:
            raise RegistryFrozenError(
                f"Cannot change {kind.value} after the server started; create it with allow_dynamic=True"
            )
        change()
        if self._frozen and self._on_change is not None:
            self._on_change(kind)


__all__ = ["CapabilityRegistry", "RegistryFrozenError"]
