# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""JSON Schema generation and argument validation for capability handlers.

Input schemas are derived from handler signatures through Pydantic and then
stripped of cosmetic metadata.  Arguments received off the wire are checked
against the declared schema with :mod:`jsonschema` before the handler runs;
a mismatch becomes an ``InvalidParams`` error and the handler is skipped.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, MutableMapping
import inspect
from typing import Any, get_type_hints

import jsonschema
from pydantic import create_model
from pydantic.json_schema import JsonSchemaValue

from ..errors import invalid_params


JsonSchema = JsonSchemaValue

EMPTY_OBJECT_SCHEMA: JsonSchema = {"type": "object", "properties": {}}


class SchemaError(RuntimeError):
    """Raised when a schema cannot be generated from a callable."""


def resolve_type_hints(fn: Callable[..., Any]) -> dict[str, Any]:
    """Return evaluated annotations for ``fn``; unresolved names map to nothing."""
    try:
        return get_type_hints(fn)
    except Exception:  # forward references we cannot evaluate
        return {}


def build_input_schema(fn: Callable[..., Any], *, skip: Iterable[str] = ()) -> JsonSchema:
    """Derive an object schema describing the keyword arguments of ``fn``.

    Args:
        fn: Handler whose signature describes its parameters.
        skip: Parameter names that are injected by the runtime (for example a
            request :class:`~relaymcp.context.Context`) and therefore not part
            of the wire schema.

    Raises:
        SchemaError: If the signature uses ``*args``/``**kwargs`` or Pydantic
            cannot express one of the annotations.
    """
    skipped = set(skip)
    hints = resolve_type_hints(fn)
    fields: dict[str, Any] = {}

    for name, param in inspect.signature(fn).parameters.items():
        if name in skipped:
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            return {"type": "object"}
        annotation = hints.get(name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[name] = (annotation, default)

    if not fields:
        return dict(EMPTY_OBJECT_SCHEMA)

    model_name = f"{getattr(fn, '__name__', 'handler').title().replace('_', '')}Arguments"
    try:
        schema = create_model(model_name, **fields).model_json_schema()
    except Exception as exc:
        raise SchemaError(f"Unable to derive input schema for {fn!r}") from exc
    return compress_schema(schema)


def compress_schema(schema: JsonSchema, *, drop_titles: bool = True, relax_additional_properties: bool = True) -> JsonSchema:
    """Return a structurally equivalent schema with cosmetic noise removed."""
    clone = _clone_schema(schema)
    if drop_titles:
        _strip_field(clone, "title")
    if relax_additional_properties:
        _relax_additional_properties(clone)
    _prune_empty_required(clone)
    return clone


def validate_arguments(schema: Mapping[str, Any] | None, arguments: Mapping[str, Any], *, subject: str) -> None:
    """Raise an ``InvalidParams`` :class:`~relaymcp.errors.ProtocolError` on mismatch."""
    if not schema:
        return
    try:
        jsonschema.validate(instance=dict(arguments), schema=dict(schema))
    except jsonschema.ValidationError as exc:
        path = "/".join(str(part) for part in exc.absolute_path)
        location = f" at '{path}'" if path else ""
        raise invalid_params(f"Invalid arguments for {subject}{location}: {exc.message}", path=path or None) from exc


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _clone_schema(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {k: _clone_schema(v) for k, v in schema.items()}
    if isinstance(schema, list):
        return [_clone_schema(item) for item in schema]
    return schema


def _strip_field(node: Any, field_name: str) -> None:
    if isinstance(node, MutableMapping):
        node.pop(field_name, None)
        for key, value in node.items():
            # ``properties`` keys are parameter names, not keywords.
            if key == "properties" and isinstance(value, MutableMapping):
                for prop in value.values():
                    _strip_field(prop, field_name)
            else:
                _strip_field(value, field_name)
    elif isinstance(node, list):
        for value in node:
            _strip_field(value, field_name)


def _relax_additional_properties(node: Any) -> None:
    if isinstance(node, MutableMapping):
        if node.get("additionalProperties") is False:
            node.pop("additionalProperties")
        for value in node.values():
            _relax_additional_properties(value)
    elif isinstance(node, list):
        for value in node:
            _relax_additional_properties(value)


def _prune_empty_required(node: Any) -> None:
    if isinstance(node, MutableMapping):
        required = node.get("required")
        if isinstance(required, list) and not required:
            node.pop("required")
        for value in node.values():
            _prune_empty_required(value)
    elif isinstance(node, list):
        for value in node:
            _prune_empty_required(value)


__all__ = [
    "JsonSchema",
    "SchemaError",
    "EMPTY_OBJECT_SCHEMA",
    "build_input_schema",
    "compress_schema",
    "resolve_type_hints",
    "validate_arguments",
]
