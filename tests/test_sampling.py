# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import pytest

from relaymcp import get_context, types
from relaymcp.client import ClientCapabilitiesConfig
from relaymcp.errors import ErrorTag, ProtocolError, RequestCancelled
from relaymcp.server import MCPServer
from relaymcp.tool import tool
from tests.helpers import connected_client


async def _echo_sampler(params: types.CreateMessageRequestParams) -> types.CreateMessageResult:
    prompt = params.messages[-1].content.text
    return types.CreateMessageResult(
        role="assistant",
        content=types.TextContent(type="text", text=f"echo:{prompt}:{params.maxTokens}"),
        model="fake",
    )


@pytest.mark.anyio
async def test_sample_llm_round_trip(demo_server) -> None:
    config = ClientCapabilitiesConfig(sampling=_echo_sampler)
    async with connected_client(demo_server, capabilities=config) as client:
        result = await client.call_tool("sampleLLM", {"prompt": "你好", "maxTokens": 20})

    assert not result.isError
    assert result.content[0].text == "LLM 采样结果: echo:你好:20"


@pytest.mark.anyio
async def test_sampling_without_client_capability(demo_server) -> None:
    async with connected_client(demo_server) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.call_tool("sampleLLM", {"prompt": "hi"})

    assert excinfo.value.tag is ErrorTag.CAPABILITY_NOT_DECLARED
    assert excinfo.value.data["capability"] == "sampling"


@pytest.mark.anyio
async def test_mapping_results_are_validated() -> None:
    server = MCPServer("sampler")

    with server.binding():

        @tool()
        def noop() -> str:
            return "ok"

    async def sampler(_params: types.CreateMessageRequestParams) -> dict:
        return {"role": "assistant", "content": {"type": "text", "text": "mapped"}, "model": "m"}

    params = types.CreateMessageRequestParams(
        messages=[types.SamplingMessage(role="user", content=types.TextContent(type="text", text="q"))], maxTokens=5
    )
    async with connected_client(server, capabilities=ClientCapabilitiesConfig(sampling=sampler)):
        result = await server.request_sampling(params)

    assert result.content.text == "mapped"
    assert result.model == "m"


@pytest.mark.anyio
async def test_sampling_timeout_is_cancelled() -> None:
    server = MCPServer("slow-sampler")
    observed: list[str | None] = []

    with server.binding():

        @tool()
        def noop() -> str:
            return "ok"

    async def sampler(_params: types.CreateMessageRequestParams) -> types.CreateMessageResult:
        try:
            await get_context().sleep(30)
        except RequestCancelled as exc:
            observed.append(exc.reason)
            raise
        raise AssertionError("unreachable")

    params = types.CreateMessageRequestParams(
        messages=[types.SamplingMessage(role="user", content=types.TextContent(type="text", text="q"))], maxTokens=5
    )
    async with connected_client(server, capabilities=ClientCapabilitiesConfig(sampling=sampler)):
        with pytest.raises(ProtocolError) as excinfo:
            await server.request_sampling(params, timeout=0.1)

    assert excinfo.value.tag is ErrorTag.CANCELLED
    assert observed == ["Timed out after 0.1s"]


@pytest.mark.anyio
async def test_request_sampling_needs_a_single_session() -> None:
    server = MCPServer("idle")
    params = types.CreateMessageRequestParams(
        messages=[types.SamplingMessage(role="user", content=types.TextContent(type="text", text="q"))], maxTokens=5
    )
    with pytest.raises(RuntimeError):
        await server.request_sampling(params)
