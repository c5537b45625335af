# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Message envelope: the request, response and notification variants.

Frames are JSON-RPC 2.0 objects.  A frame with ``method`` and ``id`` is a
request, ``method`` without ``id`` is a notification, and ``id`` with exactly
one of ``result``/``error`` is a response.  Anything else is rejected with
:class:`~relaymcp.errors.MessageDecodeError` so the caller can log and drop it.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from . import types
from .errors import MessageDecodeError


class CapabilityKind(str, Enum):
    TOOLS = "tools"
    PROMPTS = "prompts"
    RESOURCES = "resources"
    SAMPLING = "sampling"


# Methods
INITIALIZE = "initialize"
PING = "ping"
TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"
PROMPTS_LIST = "prompts/list"
PROMPTS_GET = "prompts/get"
RESOURCES_LIST = "resources/list"
RESOURCES_TEMPLATES_LIST = "resources/templates/list"
RESOURCES_READ = "resources/read"
RESOURCES_SUBSCRIBE = "resources/subscribe"
RESOURCES_UNSUBSCRIBE = "resources/unsubscribe"
SAMPLING_CREATE_MESSAGE = "sampling/createMessage"

# Notification topics
INITIALIZED = "notifications/initialized"
CANCELLED = "notifications/cancelled"
PROGRESS = "notifications/progress"
RESOURCE_UPDATED = "notifications/resources/updated"
TOOLS_LIST_CHANGED = "notifications/tools/list_changed"
PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"

LIST_CHANGED_TOPICS: dict[CapabilityKind, str] = {
    CapabilityKind.TOOLS: TOOLS_LIST_CHANGED,
    CapabilityKind.PROMPTS: PROMPTS_LIST_CHANGED,
    CapabilityKind.RESOURCES: RESOURCES_LIST_CHANGED,
}

METHOD_KINDS: dict[str, CapabilityKind] = {
    TOOLS_LIST: CapabilityKind.TOOLS,
    TOOLS_CALL: CapabilityKind.TOOLS,
    PROMPTS_LIST: CapabilityKind.PROMPTS,
    PROMPTS_GET: CapabilityKind.PROMPTS,
    RESOURCES_LIST: CapabilityKind.RESOURCES,
    RESOURCES_TEMPLATES_LIST: CapabilityKind.RESOURCES,
    RESOURCES_READ: CapabilityKind.RESOURCES,
    RESOURCES_SUBSCRIBE: CapabilityKind.RESOURCES,
    RESOURCES_UNSUBSCRIBE: CapabilityKind.RESOURCES,
    SAMPLING_CREATE_MESSAGE: CapabilityKind.SAMPLING,
}

# Param key carrying the item identifier, per method.
_ITEM_KEYS: dict[str, str] = {
    TOOLS_CALL: "name",
    PROMPTS_GET: "name",
    RESOURCES_READ: "uri",
    RESOURCES_SUBSCRIBE: "uri",
    RESOURCES_UNSUBSCRIBE: "uri",
}


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    jsonrpc: Literal["2.0"] = "2.0"

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Request(_Envelope):
    id: types.RequestId
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def capability_kind(self) -> CapabilityKind | None:
        return METHOD_KINDS.get(self.method)

    @property
    def item_id(self) -> str | None:
        key = _ITEM_KEYS.get(self.method)
        if key is None:
            return None
        value = self.params.get(key)
        return None if value is None else str(value)

    @property
    def progress_token(self) -> types.ProgressToken | None:
        meta = self.params.get("_meta")
        if isinstance(meta, Mapping):
            return meta.get("progressToken")
        return None

    @property
    def arguments(self) -> dict[str, Any]:
        """``params`` with the ``_meta`` envelope removed."""
        return {key: value for key, value in self.params.items() if key != "_meta"}


class Response(_Envelope):
    id: types.RequestId
    result: dict[str, Any] | None = None
    error: types.ErrorData | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> Response:
        if (self.result is None) == (self.error is None):
            raise ValueError("response must carry exactly one of 'result' or 'error'")
        return self

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, request_id: types.RequestId, result: BaseModel | Mapping[str, Any]) -> Response:
        payload = types.dump_model(result) if isinstance(result, BaseModel) else dict(result)
        return cls(id=request_id, result=payload)

    @classmethod
    def failure(cls, request_id: types.RequestId, error: types.ErrorData) -> Response:
        return cls(id=request_id, error=error)


class Notification(_Envelope):
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def topic(self) -> str:
        return self.method


Message = Request | Response | Notification


def parse_message(raw: str | bytes | Mapping[str, Any]) -> Message:
    """Decode one frame into its envelope variant."""
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MessageDecodeError(f"Invalid JSON: {exc.msg}") from exc
    else:
        data = raw

    if not isinstance(data, Mapping):
        raise MessageDecodeError("Message must be a JSON object")
    if data.get("jsonrpc") != "2.0":
        raise MessageDecodeError("Message must declare jsonrpc '2.0'")

    if "method" in data:
        model: type[_Envelope] = Request if data.get("id") is not None else Notification
    elif "id" in data and ("result" in data or "error" in data):
        model = Response
    else:
        raise MessageDecodeError("Message is neither a request, a response nor a notification")

    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as exc:
        raise MessageDecodeError(f"Malformed {model.__name__.lower()}: {exc.errors()[0]['msg']}") from exc


def serialize(message: Message) -> str:
    return json.dumps(message.to_wire(), ensure_ascii=False, separators=(",", ":"))


__all__ = [
    "CapabilityKind",
    "Request",
    "Response",
    "Notification",
    "Message",
    "parse_message",
    "serialize",
    "METHOD_KINDS",
    "LIST_CHANGED_TOPICS",
    "INITIALIZE",
    "PING",
    "TOOLS_LIST",
    "TOOLS_CALL",
    "PROMPTS_LIST",
    "PROMPTS_GET",
    "RESOURCES_LIST",
    "RESOURCES_TEMPLATES_LIST",
    "RESOURCES_READ",
    "RESOURCES_SUBSCRIBE",
    "RESOURCES_UNSUBSCRIBE",
    "SAMPLING_CREATE_MESSAGE",
    "INITIALIZED",
    "CANCELLED",
    "PROGRESS",
    "RESOURCE_UPDATED",
    "TOOLS_LIST_CHANGED",
    "PROMPTS_LIST_CHANGED",
    "RESOURCES_LIST_CHANGED",
]
