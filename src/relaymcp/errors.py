# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Error taxonomy shared by both ends of a session.

Every failure a peer can observe travels as an ``error`` object whose
``data.tag`` names one of the :class:`ErrorTag` members.  Inside the process
the same information is carried by :class:`ProtocolError`, which is the only
exception type expected to cross a capability boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from . import types


class ErrorTag(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_PARAMS = "InvalidParams"
    MISSING_REQUIRED_PARAM = "MissingRequiredParam"
    CAPABILITY_NOT_DECLARED = "CapabilityNotDeclared"
    CANCELLED = "Cancelled"
    HANDLER_FAILURE = "HandlerFailure"
    METHOD_NOT_FOUND = "MethodNotFound"
    INVALID_REQUEST = "InvalidRequest"


ERROR_CODES: dict[ErrorTag, int] = {
    ErrorTag.NOT_FOUND: types.RESOURCE_NOT_FOUND,
    ErrorTag.INVALID_PARAMS: types.INVALID_PARAMS,
    ErrorTag.MISSING_REQUIRED_PARAM: types.INVALID_PARAMS,
    ErrorTag.CAPABILITY_NOT_DECLARED: types.METHOD_NOT_FOUND,
    ErrorTag.CANCELLED: types.REQUEST_CANCELLED,
    ErrorTag.HANDLER_FAILURE: types.INTERNAL_ERROR,
    ErrorTag.METHOD_NOT_FOUND: types.METHOD_NOT_FOUND,
    ErrorTag.INVALID_REQUEST: types.INVALID_REQUEST,
}


class ProtocolError(Exception):
    """Tagged failure that is reported to the peer as a structured error."""

    def __init__(self, tag: ErrorTag | str, message: str, data: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.tag = ErrorTag(tag)
        self.message = message
        self.data = dict(data or {})

    @property
    def error(self) -> types.ErrorData:
        payload = {**self.data, "tag": self.tag.value}
        return types.ErrorData(code=ERROR_CODES[self.tag], message=self.message, data=payload)

    @classmethod
    def from_error(cls, error: types.ErrorData) -> ProtocolError:
        """Rebuild the exception from an ``error`` object received off the wire."""
        data = dict(error.data) if isinstance(error.data, dict) else {}
        raw_tag = data.pop("tag", None)
        try:
            tag = ErrorTag(raw_tag)
        except ValueError:
            tag = _tag_for_code(error.code)
        return cls(tag, error.message, data)

    def __repr__(self) -> str:
        return f"ProtocolError(tag={self.tag.value!r}, message={self.message!r})"


class RequestCancelled(Exception):
    """Raised at a cancellation checkpoint once the request's token is set."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "Request cancelled")
        self.reason = reason


class MessageDecodeError(ValueError):
    """Raised when an inbound frame is not a valid protocol message."""


def _tag_for_code(code: int) -> ErrorTag:
    if code == types.RESOURCE_NOT_FOUND:
        return ErrorTag.NOT_FOUND
    if code == types.INVALID_PARAMS:
        return ErrorTag.INVALID_PARAMS
    if code == types.METHOD_NOT_FOUND:
        return ErrorTag.METHOD_NOT_FOUND
    if code == types.REQUEST_CANCELLED:
        return ErrorTag.CANCELLED
    if code == types.INVALID_REQUEST:
        return ErrorTag.INVALID_REQUEST
    return ErrorTag.HANDLER_FAILURE


def not_found(message: str, **data: Any) -> ProtocolError:
    return ProtocolError(ErrorTag.NOT_FOUND, message, data or None)


def invalid_params(message: str, **data: Any) -> ProtocolError:
    return ProtocolError(ErrorTag.INVALID_PARAMS, message, data or None)


__all__ = [
    "ErrorTag",
    "ERROR_CODES",
    "ProtocolError",
    "RequestCancelled",
    "MessageDecodeError",
    "not_found",
    "invalid_params",
]
