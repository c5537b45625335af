# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import pytest

from relaymcp import types
from relaymcp.client import MCPClient
from relaymcp.errors import ErrorTag, ProtocolError
from relaymcp.messages import CapabilityKind
from relaymcp.server import MCPServer
from relaymcp.tool import tool
from tests.helpers import connected_client, memory_pipe


@pytest.mark.anyio
async def test_client_refuses_undeclared_capability_locally() -> None:
    server = MCPServer("tools-only")

    with server.binding():

        @tool()
        def hello() -> str:
            return "hi"

    async with connected_client(server) as client:
        assert client.session.server_supports(CapabilityKind.TOOLS)
        assert not client.session.server_supports(CapabilityKind.PROMPTS)
        with pytest.raises(ProtocolError) as excinfo:
            await client.list_prompts()
        assert client.session.pending_outbound() == []

    assert excinfo.value.tag is ErrorTag.CAPABILITY_NOT_DECLARED


def test_session_requires_context_manager() -> None:
    _, receive = memory_pipe()
    send, _ = memory_pipe()
    client = MCPClient(receive, send)
    with pytest.raises(RuntimeError):
        _ = client.session


@pytest.mark.anyio
async def test_server_info_and_instructions(demo_server) -> None:
    async with connected_client(demo_server) as client:
        session = client.session
        assert session.server_info == types.Implementation(name="relaymcp-demo", version="1.0.0")
        assert session.instructions
        assert client.server_capabilities is not None


@pytest.mark.anyio
async def test_client_info_reaches_server(demo_server) -> None:
    async with connected_client(demo_server) as client:
        (session,) = demo_server.active_sessions
        assert session.client_info == client.session.client_info
        assert session.client_capabilities.sampling is None
