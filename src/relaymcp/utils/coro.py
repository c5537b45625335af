# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Helpers for calling user callables that may or may not be coroutines."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import inspect
from typing import Any, TypeVar


T = TypeVar("T")


async def maybe_await(value: T | Awaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


async def maybe_await_with_args(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``fn`` and await the result when it is awaitable.

    Synchronous callables run inline on the session's event loop; they should
    not block.
    """
    return await maybe_await(fn(*args, **kwargs))


__all__ = ["maybe_await", "maybe_await_with_args"]
