# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""STDIO transport: one JSON object per line on ``stdin``/``stdout``.

Logging must stay on ``stderr``; anything else written to ``stdout`` would
corrupt the stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import sys
from typing import BinaryIO

import anyio
import anyio.to_thread
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from .base import BaseTransport
from ...framing import decode_frame, encode_line
from ...messages import Message


async def _stdin_lines(stdin: BinaryIO) -> AsyncIterator[bytes]:
    while True:
        line = await anyio.to_thread.run_sync(stdin.readline, abandon_on_cancel=True)
        if not line:
            return
        if line.strip():
            yield line


@asynccontextmanager
async def stdio_server(
    stdin: BinaryIO | None = None,
    stdout: BinaryIO | None = None,
) -> AsyncIterator[tuple[MemoryObjectReceiveStream[Message | Exception], MemoryObjectSendStream[Message]]]:
    """Bridge the process's standard streams to a pair of object streams."""
    stdin = stdin or sys.stdin.buffer
    stdout = stdout or sys.stdout.buffer

    read_send, read_receive = anyio.create_memory_object_stream(0)
    write_send, write_receive = anyio.create_memory_object_stream(0)

    async def reader() -> None:
        async with read_send:
            async for line in _stdin_lines(stdin):
                await read_send.send(decode_frame(line))

    async def writer() -> None:
        async with write_receive:
            async for message in write_receive:
                stdout.write(encode_line(message))
                stdout.flush()

    async with anyio.create_task_group() as tg:
        tg.start_soon(reader)
        tg.start_soon(writer)
        try:
            yield read_receive, write_send
        finally:
            tg.cancel_scope.cancel()


def get_stdio_server():
    """Return the stdio context manager; tests patch this with in-memory pipes."""
    return stdio_server


class StdioTransport(BaseTransport):
    """Run an :class:`relaymcp.server.MCPServer` over STDIO."""

    TRANSPORT = ("stdio", "STDIO", "Standard IO")

    async def run(self) -> None:
        stdio_ctx = get_stdio_server()
        async with stdio_ctx() as (read_stream, write_stream):
            await self.server.run(read_stream, write_stream)

    async def stop(self) -> None:
        await self.server.shutdown_sessions()


__all__ = ["StdioTransport", "stdio_server", "get_stdio_server"]
