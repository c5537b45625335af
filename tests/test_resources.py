# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import base64
import json

import anyio
import pytest

from relaymcp import messages, types
from relaymcp.demo.server import LIVE_DATA_URI, PIXEL_PNG, README_URI
from relaymcp.errors import ErrorTag, ProtocolError
from relaymcp.messages import Notification
from relaymcp.resource import resource
from relaymcp.server import MCPServer
from tests.helpers import RawPeer, connected_client


@pytest.mark.anyio
async def test_read_static_document(demo_server) -> None:
    async with connected_client(demo_server) as client:
        result = await client.read_resource("example://document/1")

    (item,) = result.contents
    assert isinstance(item, types.TextResourceContents)
    assert str(item.uri) == "example://document/1"
    assert item.text.startswith("这是一个示例文档")


@pytest.mark.anyio
async def test_read_markdown_readme(demo_server) -> None:
    async with connected_client(demo_server) as client:
        result = await client.read_resource(README_URI)
        listed = await client.list_resources()

    (item,) = result.contents
    assert item.mimeType == "text/markdown"
    assert item.text.startswith("# 示例文档")
    readme = next(entry for entry in listed.resources if str(entry.uri) == README_URI)
    assert (readme.name, readme.description) == ("readme.md", "readme")


@pytest.mark.anyio
async def test_read_mixed_text_and_blob(demo_server) -> None:
    async with connected_client(demo_server) as client:
        result = await client.read_resource("example://image/1")

    text, blob = result.contents
    assert isinstance(text, types.TextResourceContents)
    assert isinstance(blob, types.BlobResourceContents)
    assert blob.mimeType == "image/png"
    assert blob.blob == PIXEL_PNG
    assert base64.b64decode(blob.blob).startswith(b"\x89PNG")


@pytest.mark.anyio
async def test_read_template_match(demo_server) -> None:
    async with connected_client(demo_server) as client:
        result = await client.read_resource("greeting://Alice")
        encoded = await client.read_resource("greeting://%E5%BC%A0%E4%B8%89")

    assert result.contents[0].text == "你好，Alice！欢迎使用MCP资源服务。"
    assert encoded.contents[0].text == "你好，张三！欢迎使用MCP资源服务。"


@pytest.mark.anyio
async def test_unknown_uri_is_not_found(demo_server) -> None:
    async with connected_client(demo_server) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.read_resource("example://nothing/here")

    assert excinfo.value.tag is ErrorTag.NOT_FOUND
    assert excinfo.value.data["uri"] == "example://nothing/here"


@pytest.mark.anyio
async def test_listing(demo_server) -> None:
    async with connected_client(demo_server) as client:
        resources = await client.list_resources()
        templates = await client.list_resource_templates()

    assert {str(item.uri) for item in resources.resources} == {
        "example://document/1",
        "example://image/1",
        "example://code/1",
        README_URI,
        LIVE_DATA_URI,
    }
    assert [item.uriTemplate for item in templates.resourceTemplates] == ["greeting://{name}"]


@pytest.mark.anyio
async def test_live_data_is_json(demo_server) -> None:
    async with connected_client(demo_server) as client:
        result = await client.read_resource(LIVE_DATA_URI)
    payload = json.loads(result.contents[0].text)
    assert set(payload) == {"timestamp", "value"}


@pytest.mark.anyio
async def test_subscribe_unknown_uri_is_not_found(demo_server) -> None:
    async with connected_client(demo_server) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.subscribe_resource("example://missing")
    assert excinfo.value.tag is ErrorTag.NOT_FOUND


@pytest.mark.anyio
async def test_updates_follow_subscription_lifecycle(demo_server) -> None:
    updates: list[str] = []
    received = anyio.Event()

    async def on_updated(notification: Notification) -> None:
        updates.append(notification.params["uri"])
        received.set()

    async with connected_client(demo_server) as client:
        client.on_notification(messages.RESOURCE_UPDATED, on_updated)

        assert await demo_server.notify_resource_updated(LIVE_DATA_URI) == 0

        await client.subscribe_resource(LIVE_DATA_URI)
        await client.subscribe_resource(LIVE_DATA_URI)  # idempotent
        assert await demo_server.notify_resource_updated(LIVE_DATA_URI) == 1
        with anyio.fail_after(5):
            await received.wait()

        await client.unsubscribe_resource(LIVE_DATA_URI)
        await client.unsubscribe_resource(LIVE_DATA_URI)  # no-op
        assert await demo_server.notify_resource_updated(LIVE_DATA_URI) == 0
        await client.ping()

    assert updates == [LIVE_DATA_URI]


@pytest.mark.anyio
async def test_update_handler_can_reread_the_resource(demo_server) -> None:
    reads: list[dict[str, float]] = []
    done = anyio.Event()

    async with connected_client(demo_server) as client:

        async def on_updated(notification: Notification) -> None:
            result = await client.read_resource(notification.params["uri"])
            reads.append(json.loads(result.contents[0].text))
            done.set()

        client.on_notification(messages.RESOURCE_UPDATED, on_updated)
        await client.subscribe_resource(LIVE_DATA_URI)
        await demo_server.notify_resource_updated(LIVE_DATA_URI)

        with anyio.fail_after(5):
            await done.wait()
            await client.ping()

    assert len(reads) == 1
    assert set(reads[0]) == {"timestamp", "value"}


@pytest.mark.anyio
async def test_template_uris_can_be_subscribed(demo_server) -> None:
    peer = RawPeer(demo_server)
    async with peer.running():
        response = await peer.call(messages.RESOURCES_SUBSCRIBE, {"uri": "greeting://Bob"})
        assert not response.is_error
        (session,) = demo_server.active_sessions
        assert session.subscriptions.is_subscribed("greeting://Bob")


@pytest.mark.anyio
async def test_bytes_payload_becomes_blob() -> None:
    server = MCPServer("bytes")

    with server.binding():

        @resource("file://raw", mime_type="application/octet-stream")
        def raw() -> bytes:
            return b"\x00\x01"

    async with connected_client(server) as client:
        result = await client.read_resource("file://raw")

    (item,) = result.contents
    assert isinstance(item, types.BlobResourceContents)
    assert base64.b64decode(item.blob) == b"\x00\x01"
