# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Server-initiated sampling (``sampling/createMessage``).

The request travels server -> client through the same correlation machinery
as client requests, just in the other direction.  No timeout is applied
unless the caller passes one.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import TYPE_CHECKING, Any

from ... import messages, types
from ...errors import ErrorTag, ProtocolError
from ...messages import CapabilityKind


if TYPE_CHECKING:  # pragma: no cover - typing only
    from ...session import ServerSession


class SamplingService:
    def __init__(self, *, logger: logging.Logger) -> None:
        self._logger = logger

    async def create_message(
        self,
        session: ServerSession,
        params: types.CreateMessageRequestParams | Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> types.CreateMessageResult:
        if not session.client_supports(CapabilityKind.SAMPLING):
            raise ProtocolError(
                ErrorTag.CAPABILITY_NOT_DECLARED,
                "Client did not declare the sampling capability",
                {"capability": CapabilityKind.SAMPLING.value},
            )
        if not isinstance(params, types.CreateMessageRequestParams):
            params = types.CreateMessageRequestParams.model_validate(dict(params))
        self._logger.debug("Requesting sampling (%d message(s))", len(params.messages))
        return await session.send_request(
            messages.SAMPLING_CREATE_MESSAGE, params, types.CreateMessageResult, timeout=timeout
        )


__all__ = ["SamplingService"]
