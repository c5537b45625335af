# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""High-level client entrypoint.

`open_connection` wraps transport selection and :class:`~relaymcp.client.MCPClient`
so applications can talk to a server with a single ``async with`` block.
For ``stdio`` the target is the command to launch; for ``sse`` it is the
event-stream URL.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from .core import ClientCapabilitiesConfig, MCPClient
from .transports import sse_client, stdio_client
from ..types import Implementation


StdioNames = {"stdio"}
SseNames = {"sse", "http", "http-sse"}


@asynccontextmanager
async def open_connection(
    target: str,
    *,
    transport: str = "stdio",
    args: Sequence[str] = (),
    env: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
    timeout: float | timedelta = 30,
    sse_read_timeout: float | timedelta = 300,
    capabilities: ClientCapabilitiesConfig | None = None,
    client_info: Implementation | None = None,
    **client_kwargs: Any,
) -> AsyncGenerator[MCPClient, None]:
    """Open a client connection.

    Args:
        target: Command to launch (``stdio``) or event-stream URL (``sse``).
        transport: ``"stdio"`` (default) or ``"sse"``.
        args: Command-line arguments for the launched server.
        env: Environment for the launched server.
        headers: Extra HTTP headers for the SSE binding.
        timeout: HTTP request timeout for the SSE binding.
        sse_read_timeout: Read timeout for the event stream.
        capabilities: Client capabilities advertised during initialization.
        client_info: Implementation metadata sent in the handshake.

    Yields:
        MCPClient: An initialized client.
    """
    selected = transport.lower()

    if selected in StdioNames:
        async with (
            stdio_client(target, args, env=env) as (read_stream, write_stream),
            MCPClient(
                read_stream, write_stream, capabilities=capabilities, client_info=client_info, **client_kwargs
            ) as client,
        ):
            yield client
        return

    if selected in SseNames:
        async with (
            sse_client(target, headers=headers, timeout=timeout, sse_read_timeout=sse_read_timeout) as (
                read_stream,
                write_stream,
            ),
            MCPClient(
                read_stream, write_stream, capabilities=capabilities, client_info=client_info, **client_kwargs
            ) as client,
        ):
            yield client
        return

    raise ValueError(f"Unsupported transport '{transport}'")


__all__ = ["open_connection"]
