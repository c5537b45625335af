# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Out-of-band notification delivery.

Notifications are fire-and-forget: a failed send is logged and swallowed so
that a disconnected peer never turns into a handler failure.  Each emission
awaits the session's single outbound stream, so events on one topic leave in
the order they were emitted.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import logging
from typing import Any

import anyio
from pydantic import BaseModel

from . import messages, types
from .messages import CapabilityKind, Notification
from .subscriptions import SubscriptionTable
from .utils import get_logger


SendNotification = Callable[[Notification], Awaitable[None]]


class NotificationBus:
    def __init__(
        self,
        send: SendNotification,
        subscriptions: SubscriptionTable | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._send = send
        self._subscriptions = subscriptions
        self._logger = logger or get_logger("relaymcp.notifications")

    async def emit(self, topic: str, payload: Mapping[str, Any] | BaseModel | None = None) -> bool:
        """Send one notification.  Returns ``False`` when delivery failed."""
        if isinstance(payload, BaseModel):
            params = types.dump_model(payload)
        else:
            params = dict(payload or {})
        try:
            await self._send(Notification(method=topic, params=params))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            self._logger.debug("Dropping %s: outbound stream closed", topic)
            return False
        except Exception:
            self._logger.exception("Failed to deliver %s", topic)
            return False
        return True

    async def progress(
        self,
        token: types.ProgressToken,
        step: float,
        total: float | None = None,
        message: str | None = None,
    ) -> bool:
        params = types.ProgressNotificationParams(progressToken=token, progress=step, total=total, message=message)
        return await self.emit(messages.PROGRESS, params)

    async def resource_updated(self, uri: str) -> bool:
        """Emit ``resources/updated`` if ``uri`` is subscribed; otherwise do nothing."""
        if self._subscriptions is None or not self._subscriptions.is_subscribed(uri):
            return False
        return await self.emit(messages.RESOURCE_UPDATED, {"uri": uri})

    async def list_changed(self, kind: CapabilityKind) -> bool:
        topic = messages.LIST_CHANGED_TOPICS.get(kind)
        if topic is None:
            raise ValueError(f"No list_changed notification exists for {kind.value}")
        return await self.emit(topic)


__all__ = ["NotificationBus", "SendNotification"]
