# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Client transports.

Both helpers yield ``(read_stream, write_stream)`` object streams suitable
for :class:`~relaymcp.client.MCPClient`:

* :func:`stdio_client` launches the server as a subprocess and speaks
  newline-delimited JSON over its ``stdin``/``stdout``.  The child's
  ``stderr`` is inherited so its logs stay visible.
* :func:`sse_client` opens ``GET <url>``, waits for the ``endpoint`` event and
  POSTs every outbound message there; replies arrive as ``message`` events.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import timedelta
import os
from urllib.parse import urljoin

import anyio
from anyio.abc import TaskStatus
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
import httpx
from httpx_sse import aconnect_sse

from ..framing import decode_frame, encode_line, iter_lines
from ..messages import Message, serialize
from ..utils import get_logger


logger = get_logger("relaymcp.client.transports")

Streams = tuple[MemoryObjectReceiveStream[Message | Exception], MemoryObjectSendStream[Message]]


@asynccontextmanager
async def stdio_client(
    command: str,
    args: Sequence[str] = (),
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | os.PathLike[str] | None = None,
) -> AsyncGenerator[Streams, None]:
    """Spawn ``command`` and bridge its standard streams."""
    read_send, read_receive = anyio.create_memory_object_stream[Message | Exception](0)
    write_send, write_receive = anyio.create_memory_object_stream[Message](0)

    process = await anyio.open_process(
        [command, *args],
        env=dict(env) if env is not None else None,
        cwd=cwd,
        stderr=None,
    )
    assert process.stdin is not None and process.stdout is not None

    async def reader() -> None:
        async with read_send:
            async for line in iter_lines(process.stdout):
                await read_send.send(decode_frame(line))

    async def writer() -> None:
        async with write_receive:
            async for message in write_receive:
                await process.stdin.send(encode_line(message))

    async with anyio.create_task_group() as tg:
        tg.start_soon(reader)
        tg.start_soon(writer)
        try:
            yield read_receive, write_send
        finally:
            await process.stdin.aclose()
            with anyio.move_on_after(2):
                await process.wait()
            if process.returncode is None:
                logger.debug("Server process did not exit; terminating")
                process.terminate()
                with anyio.CancelScope(shield=True):
                    await process.wait()
            tg.cancel_scope.cancel()
            await process.aclose()


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


@asynccontextmanager
async def sse_client(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout: float | timedelta = 30,
    sse_read_timeout: float | timedelta = 300,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncGenerator[Streams, None]:
    """Connect to an SSE endpoint such as ``http://127.0.0.1:8000/sse``."""
    read_send, read_receive = anyio.create_memory_object_stream[Message | Exception](0)
    write_send, write_receive = anyio.create_memory_object_stream[Message](0)

    client = http_client or httpx.AsyncClient(
        headers=dict(headers or {}),
        timeout=httpx.Timeout(_seconds(timeout), read=_seconds(sse_read_timeout)),
    )

    async def sse_reader(*, task_status: TaskStatus[str] = anyio.TASK_STATUS_IGNORED) -> None:
        started = False
        async with read_send, aconnect_sse(client, "GET", url) as event_source:
            event_source.response.raise_for_status()
            async for event in event_source.aiter_sse():
                if event.event == "endpoint":
                    endpoint = urljoin(url, event.data)
                    logger.debug("SSE endpoint is %s", endpoint)
                    if not started:
                        started = True
                        task_status.started(endpoint)
                elif event.event == "message":
                    await read_send.send(decode_frame(event.data))
                else:
                    logger.debug("Ignoring SSE event %r", event.event)
        if not started:
            raise ConnectionError(f"{url} closed before sending an endpoint event")

    async def post_writer(endpoint: str) -> None:
        async with write_receive:
            async for message in write_receive:
                response = await client.post(
                    endpoint, content=serialize(message), headers={"Content-Type": "application/json"}
                )
                if response.status_code >= 400:
                    logger.warning("POST %s failed with %d: %s", endpoint, response.status_code, response.text)

    try:
        async with anyio.create_task_group() as tg:
            endpoint = await tg.start(sse_reader)
            tg.start_soon(post_writer, endpoint)
            try:
                yield read_receive, write_send
            finally:
                tg.cancel_scope.cancel()
    finally:
        await write_send.aclose()
        if http_client is None:
            await client.aclose()


__all__ = ["stdio_client", "sse_client"]
