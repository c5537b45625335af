# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import anyio
import pytest

from relaymcp.cancellation import CancellationToken
from relaymcp.errors import RequestCancelled


@pytest.mark.anyio
async def test_cancel_is_idempotent_and_keeps_first_reason() -> None:
    token = CancellationToken()
    assert not token.cancelled
    assert token.cancel("first") is True
    assert token.cancel("second") is False
    assert token.cancelled
    assert token.reason == "first"


@pytest.mark.anyio
async def test_checkpoint_raises_once_cancelled() -> None:
    token = CancellationToken()
    await token.checkpoint()
    token.cancel()
    with pytest.raises(RequestCancelled):
        await token.checkpoint()


@pytest.mark.anyio
async def test_sleep_wakes_early_on_cancel() -> None:
    token = CancellationToken()

    async def flip() -> None:
        await anyio.sleep(0.05)
        token.cancel("stop")

    with anyio.fail_after(2):
        async with anyio.create_task_group() as tg:
            tg.start_soon(flip)
            with pytest.raises(RequestCancelled) as excinfo:
                await token.sleep(30)
    assert excinfo.value.reason == "stop"
