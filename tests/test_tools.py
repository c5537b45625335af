# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

from __future__ import annotations

import anyio
import pytest

from relaymcp import Context, get_context, messages
from relaymcp.errors import ErrorTag, ProtocolError
from relaymcp.server import MCPServer
from relaymcp.tool import extract_tool_spec, tool
from tests.helpers import RawPeer, connected_client


def test_binding_registers_tools() -> None:
    server = MCPServer("demo")

    with server.binding():

        @tool(description="Adds two numbers")
        def add(a: int, b: int) -> int:
            return a + b

    assert server.tool_names == ["add"]
    spec = extract_tool_spec(add)
    assert spec is not None
    assert spec.input_schema["required"] == ["a", "b"]
    assert spec.input_schema["properties"]["a"] == {"type": "integer"}


def test_registering_outside_binding() -> None:
    server = MCPServer("demo")

    @tool(description="Multiply numbers")
    def multiply(a: int, b: int) -> int:
        return a * b

    assert "multiply" not in server.tool_names
    server.register_tool(multiply)
    assert "multiply" in server.tool_names


def test_context_parameter_is_hidden_from_schema() -> None:
    @tool()
    async def uses_context(ctx: Context, n: int) -> str:
        return str(n)

    spec = extract_tool_spec(uses_context)
    assert spec is not None
    assert spec.context_param == "ctx"
    assert set(spec.input_schema["properties"]) == {"n"}


def test_explicit_schema_is_kept_verbatim() -> None:
    schema = {"type": "object", "properties": {"q": {"type": "string"}}, "additionalProperties": False}

    @tool(input_schema=schema)
    def search(q: str) -> str:
        return q

    spec = extract_tool_spec(search)
    assert spec is not None
    assert spec.input_schema == schema


@pytest.mark.anyio
async def test_add_end_to_end(demo_server) -> None:
    async with connected_client(demo_server) as client:
        result = await client.call_tool("add", {"a": 5, "b": 3})
        missing = await client.call_tool("add", {"a": 5})

    assert not result.isError
    assert result.content[0].text == "5 + 3 = 8"
    assert missing.isError
    assert missing.content[0].text == "错误: 缺少数字参数"


@pytest.mark.anyio
async def test_list_tools_advertises_demo_catalog(demo_server) -> None:
    async with connected_client(demo_server) as client:
        listed = await client.list_tools()
    names = {item.name for item in listed.tools}
    assert names == {"add", "weather", "calculator", "longRunningOperation", "sampleLLM"}


@pytest.mark.anyio
async def test_unknown_tool_never_invokes_anything() -> None:
    server = MCPServer("counter")
    invocations = 0

    with server.binding():

        @tool()
        def counted() -> str:
            nonlocal invocations
            invocations += 1
            return "ok"

    async with connected_client(server) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.call_tool("nope")
        assert (await client.call_tool("counted")).content[0].text == "ok"

    assert excinfo.value.tag is ErrorTag.NOT_FOUND
    assert invocations == 1


@pytest.mark.anyio
async def test_schema_violation_is_invalid_params() -> None:
    server = MCPServer("strict")
    calls = 0

    with server.binding():

        @tool()
        def square(x: int) -> int:
            nonlocal calls
            calls += 1
            return x * x

    peer = RawPeer(server)
    async with peer.running():
        response = await peer.call(messages.TOOLS_CALL, {"name": "square", "arguments": {"x": "seven"}})

    assert response.error is not None
    assert response.error.data["tag"] == ErrorTag.INVALID_PARAMS.value
    assert response.error.data["path"] == "x"
    assert calls == 0


@pytest.mark.anyio
async def test_handler_exception_is_handler_failure() -> None:
    server = MCPServer("fragile")

    with server.binding():

        @tool()
        def explode() -> str:
            raise RuntimeError("disk on fire")

    async with connected_client(server) as client:
        with pytest.raises(ProtocolError) as excinfo:
            await client.call_tool("explode")

    assert excinfo.value.tag is ErrorTag.HANDLER_FAILURE
    assert "disk on fire" in excinfo.value.message


@pytest.mark.anyio
async def test_ambient_context_is_available_in_handlers() -> None:
    server = MCPServer("ambient")
    seen = []

    with server.binding():

        @tool()
        async def whoami() -> str:
            ctx = get_context()
            seen.append(ctx.request_id)
            return "ok"

    async with connected_client(server) as client:
        await client.call_tool("whoami")

    assert len(seen) == 1
    with pytest.raises(LookupError):
        get_context()


@pytest.mark.anyio
async def test_sync_and_async_tools(demo_server) -> None:
    async with connected_client(demo_server) as client:
        weather = await client.call_tool("weather", {"city": "北京"})
        unknown = await client.call_tool("weather", {"city": "火星"})
        calc = await client.call_tool("calculator", {"expression": "1 + 2 * 3"})
        bad = await client.call_tool("calculator", {"expression": "__import__('os')"})

    assert weather.content[0].text == "北京的天气: 晴朗，25°C"
    assert unknown.content[0].text == "火星的天气: 未找到该城市的天气信息"
    assert calc.content[0].text == "计算结果: 7"
    assert bad.isError


@pytest.mark.anyio
async def test_calculator_refuses_runaway_powers(demo_server) -> None:
    async with connected_client(demo_server) as client:
        with anyio.fail_after(5):
            tower = await client.call_tool("calculator", {"expression": "9**9**9"})
        small = await client.call_tool("calculator", {"expression": "2 ** 10"})

    assert tower.isError
    assert tower.content[0].text.startswith("计算错误: Exponent too large")
    assert small.content[0].text == "计算结果: 1024"


@pytest.mark.anyio
async def test_long_running_operation_waits_a_tenth_of_duration(demo_server) -> None:
    async with connected_client(demo_server) as client:
        started = anyio.current_time()
        result = await client.call_tool("longRunningOperation", {"duration": 2, "steps": 2})
        elapsed = anyio.current_time() - started

    assert result.content[0].text == "操作已完成，共2个步骤，耗时2秒"
    assert 0.15 <= elapsed < 1.5
