# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import anyio
import pytest

from relaymcp import messages
from relaymcp.messages import Notification
from relaymcp.server import MCPServer, NotificationFlags, RegistryFrozenError
from relaymcp.tool import tool
from tests.helpers import connected_client


def _static_tool(server: MCPServer) -> None:
    with server.binding():

        @tool()
        def first() -> str:
            return "1"


@pytest.mark.anyio
async def test_registry_is_frozen_once_serving() -> None:
    server = MCPServer("static")
    _static_tool(server)

    @tool()
    def late() -> str:
        return "late"

    async with connected_client(server) as client:
        with pytest.raises(RegistryFrozenError):
            server.register_tool(late)
        listed = await client.list_tools()

    assert [item.name for item in listed.tools] == ["first"]
    assert client.initialize_result.capabilities.tools.listChanged is False


@pytest.mark.anyio
async def test_dynamic_registration_emits_list_changed() -> None:
    server = MCPServer("dynamic", allow_dynamic=True)
    _static_tool(server)
    changed = anyio.Event()
    topics: list[str] = []

    async def on_changed(notification: Notification) -> None:
        topics.append(notification.method)
        changed.set()

    @tool()
    def second() -> str:
        return "2"

    async with connected_client(server) as client:
        assert client.initialize_result.capabilities.tools.listChanged is True
        client.on_notification(messages.TOOLS_LIST_CHANGED, on_changed)

        server.register_tool(second)
        with anyio.fail_after(5):
            await changed.wait()
        listed = await client.list_tools()

        server.unregister_tool("second")
        after = await client.list_tools()

    assert topics[0] == messages.TOOLS_LIST_CHANGED
    assert {item.name for item in listed.tools} == {"first", "second"}
    assert [item.name for item in after.tools] == ["first"]


@pytest.mark.anyio
async def test_dynamic_server_declares_every_kind() -> None:
    server = MCPServer("empty", allow_dynamic=True)
    async with connected_client(server) as client:
        caps = client.initialize_result.capabilities
        prompts = await client.list_prompts()

    assert caps.tools is not None and caps.prompts is not None and caps.resources is not None
    assert prompts.prompts == []


@pytest.mark.anyio
async def test_explicit_list_changed_broadcast() -> None:
    server = MCPServer("flags", notification_flags=NotificationFlags(prompts_changed=True))
    received = anyio.Event()

    with server.binding():

        @tool()
        def only() -> str:
            return "x"

    async with connected_client(server) as client:
        client.on_notification(messages.TOOLS_LIST_CHANGED, lambda _n: received.set())
        await server.notify_tools_list_changed()
        with anyio.fail_after(5):
            await received.wait()
