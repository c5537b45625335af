# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Normalization helpers for handler results.

Handlers may return plain Python values; these adapters turn them into the
result models that go over the wire so the services stay thin.
"""

from __future__ import annotations

import base64
from collections.abc import Iterable, Mapping
import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .. import types


__all__ = ["normalize_tool_result", "normalize_prompt_messages", "normalize_resource_payload"]

_CONTENT_ADAPTER: TypeAdapter[types.ContentBlock] = TypeAdapter(types.ContentBlock)


def normalize_tool_result(value: Any) -> types.CallToolResult:
    """Coerce arbitrary tool output into ``CallToolResult``.

    Strings become a single text block, ``(payload, structured)`` tuples carry
    structured content, and mappings shaped like a result are taken as-is.
    """
    if isinstance(value, types.CallToolResult):
        return value

    if isinstance(value, Mapping) and any(key in value for key in ("content", "structuredContent", "isError")):
        try:
            return types.CallToolResult.model_validate(dict(value))
        except ValidationError:
            pass

    structured: Any | None = None
    payload = value
    if isinstance(value, tuple) and len(value) == 2:
        payload, structured = value
    elif isinstance(value, Mapping):
        structured = dict(value)

    result = types.CallToolResult(content=_coerce_content_blocks(payload))
    if isinstance(structured, Mapping):
        result.structuredContent = dict(structured)
    return result


def _coerce_content_blocks(source: Any) -> list[types.ContentBlock]:
    if source is None:
        return []
    if isinstance(source, (types.TextContent, types.ImageContent, types.EmbeddedResource)):
        return [source]
    if isinstance(source, Mapping):
        block = _content_from_mapping(source)
        return [block] if block is not None else [_as_text_content(source)]
    if isinstance(source, (bytes, bytearray)):
        return [types.TextContent(type="text", text=base64.b64encode(bytes(source)).decode("ascii"))]
    if isinstance(source, str):
        return [types.TextContent(type="text", text=source)]
    if isinstance(source, Iterable):
        blocks: list[types.ContentBlock] = []
        for item in source:
            blocks.extend(_coerce_content_blocks(item))
        return blocks
    return [_as_text_content(source)]


def _content_from_mapping(data: Mapping[str, Any]) -> types.ContentBlock | None:
    if data.get("type") is None:
        return None
    try:
        return _CONTENT_ADAPTER.validate_python(dict(data))
    except ValidationError:
        return None


def _as_text_content(value: Any) -> types.TextContent:
    if isinstance(value, str):
        return types.TextContent(type="text", text=value)
    try:
        text = json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(value)
    return types.TextContent(type="text", text=text)


def normalize_prompt_messages(value: Any) -> list[types.PromptMessage]:
    """Coerce prompt handler output into an ordered list of messages."""
    if isinstance(value, types.GetPromptResult):
        return list(value.messages)
    if isinstance(value, (str, types.PromptMessage, Mapping)) or (
        isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str)
    ):
        value = [value]

    messages: list[types.PromptMessage] = []
    for item in value or ():
        if isinstance(item, types.PromptMessage):
            messages.append(item)
        elif isinstance(item, str):
            messages.append(types.PromptMessage(role="user", content=types.TextContent(type="text", text=item)))
        elif isinstance(item, tuple):
            role, content = item
            block = content if not isinstance(content, str) else types.TextContent(type="text", text=content)
            messages.append(types.PromptMessage(role=role, content=block))
        else:
            messages.append(types.PromptMessage.model_validate(dict(item)))
    return messages


def normalize_resource_payload(uri: str, declared_mime: str | None, payload: Any) -> types.ReadResourceResult:
    """Coerce resource handler output into ``ReadResourceResult``."""
    if isinstance(payload, types.ReadResourceResult):
        return payload

    if isinstance(payload, (types.TextResourceContents, types.BlobResourceContents)):
        return types.ReadResourceResult(contents=[payload])

    if isinstance(payload, list):
        contents: list[types.TextResourceContents | types.BlobResourceContents] = []
        for item in payload:
            contents.extend(normalize_resource_payload(uri, declared_mime, item).contents)
        return types.ReadResourceResult(contents=contents)

    if isinstance(payload, Mapping):
        data = {"uri": uri, "mimeType": declared_mime, **payload}
        model = types.BlobResourceContents if "blob" in data else types.TextResourceContents
        return types.ReadResourceResult(contents=[model.model_validate(data)])

    if isinstance(payload, (bytes, bytearray)):
        encoded = base64.b64encode(bytes(payload)).decode("ascii")
        blob = types.BlobResourceContents(uri=uri, mimeType=declared_mime or "application/octet-stream", blob=encoded)
        return types.ReadResourceResult(contents=[blob])

    return types.ReadResourceResult(
        contents=[types.TextResourceContents(uri=uri, mimeType=declared_mime or "text/plain", text=str(payload))]
    )
