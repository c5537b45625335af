# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

from contextlib import asynccontextmanager

import anyio
import pytest

from relaymcp import messages
from relaymcp.messages import Request, Response
from relaymcp.server import MCPServer, ServerValidationError
from relaymcp.server.transports import BaseTransport, StdioTransport
from relaymcp.server.transports import stdio as stdio_module


class RecordingTransport(BaseTransport):
    TRANSPORT = ("recording", "Recording")

    def __init__(self, server: MCPServer) -> None:
        super().__init__(server)
        self.calls: list[dict[str, object]] = []

    async def run(self, **kwargs: object) -> None:
        self.calls.append(kwargs)


@pytest.mark.anyio
async def test_custom_transport_is_selected_by_name(demo_server) -> None:
    created: list[RecordingTransport] = []

    def factory(server: MCPServer) -> RecordingTransport:
        transport = RecordingTransport(server)
        created.append(transport)
        return transport

    demo_server.register_transport("recording", factory, aliases=("rec",))
    await demo_server.serve(transport="REC", verbose=False, option=1)

    assert len(created) == 1
    assert created[0].calls == [{"option": 1}]


@pytest.mark.anyio
async def test_unknown_transport_is_rejected(demo_server) -> None:
    with pytest.raises(ValueError):
        await demo_server.serve(transport="carrier-pigeon", verbose=False)


@pytest.mark.anyio
async def test_empty_server_fails_validation() -> None:
    with pytest.raises(ServerValidationError):
        await MCPServer("empty").serve(transport="stdio", verbose=False)


@pytest.mark.anyio
async def test_stdio_transport_serves_patched_streams(demo_server, monkeypatch: pytest.MonkeyPatch) -> None:
    to_server, server_inbox = anyio.create_memory_object_stream(4)
    to_peer, peer_inbox = anyio.create_memory_object_stream(4)

    @asynccontextmanager
    async def fake_stdio():
        yield server_inbox, to_peer

    monkeypatch.setattr(stdio_module, "get_stdio_server", lambda: fake_stdio)

    async with anyio.create_task_group() as tg:
        tg.start_soon(StdioTransport(demo_server).run)
        await to_server.send(Request(id=1, method=messages.PING))
        with anyio.fail_after(5):
            reply = await peer_inbox.receive()
        await to_server.aclose()

    assert isinstance(reply, Response) and reply.result == {}
    peer_inbox.close()
