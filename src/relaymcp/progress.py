# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Step-wise progress reporting for long-running handlers.

A handler that performs ``N`` discrete steps calls :meth:`ProgressTracker.advance`
once per completed step and thereby emits exactly ``N`` events with progress
values ``1..N``.  Emission is awaited, so every event is on the wire before
the handler returns and its response is written.  Without a progress token
the tracker still counts but sends nothing.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from . import types


if TYPE_CHECKING:  # pragma: no cover - typing only
    from .notifications import NotificationBus


class ProgressTracker:
    __slots__ = ("_bus", "_token", "_total", "_current", "_emitted")

    def __init__(self, bus: NotificationBus, token: types.ProgressToken | None, total: float | None = None) -> None:
        self._bus = bus
        self._token = token
        self._total = total
        self._current: float = 0
        self._emitted = 0

    @property
    def current(self) -> float:
        return self._current

    @property
    def total(self) -> float | None:
        return self._total

    @property
    def emitted(self) -> int:
        return self._emitted

    async def advance(self, amount: float = 1, *, message: str | None = None) -> None:
        if amount <= 0:
            raise ValueError("Progress must strictly increase")
        await self._emit(self._current + amount, message)

    async def set(self, value: float, *, message: str | None = None) -> None:
        if value <= self._current:
            raise ValueError(f"Progress must strictly increase (current={self._current}, new={value})")
        await self._emit(value, message)

    async def _emit(self, value: float, message: str | None) -> None:
        self._current = value
        if self._token is None:
            return
        if await self._bus.progress(self._token, value, self._total, message):
            self._emitted += 1


@asynccontextmanager
async def progress(
    bus: NotificationBus, token: types.ProgressToken | None, total: float | None = None
) -> AsyncIterator[ProgressTracker]:
    yield ProgressTracker(bus, token, total)


__all__ = ["ProgressTracker", "progress"]
