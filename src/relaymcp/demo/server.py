# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Demo capabilities: tools, resources, a template and prompts."""

from __future__ import annotations

import ast
import json
import math
import operator
import random
import time
from typing import Any

import anyio

from .. import types
from ..context import Context
from ..prompt import prompt, template_prompt
from ..resource import resource
from ..resource_template import resource_template
from ..server import MCPServer, NotificationFlags
from ..tool import tool
from ..utils import get_logger


logger = get_logger("relaymcp.demo")

WEATHER = {
    "北京": "晴朗，25°C",
    "上海": "多云，28°C",
    "广州": "小雨，30°C",
    "深圳": "阴天，29°C",
}

# 1x1 transparent PNG
PIXEL_PNG = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGAhKmMIQAAAABJRU5ErkJggg=="

README_URI = "mcp://root-docs/README.md"
LIVE_DATA_URI = "resource://live-data"
LIVE_DATA_INTERVAL = 2.0

SAMPLE_CODE = '''def fibonacci(n: int) -> int:
    if n < 2:
        return n
    return fibonacci(n - 1) + fibonacci(n - 2)
'''

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}

# Largest result a power may produce, in bits.
MAX_POWER_BITS = 4096


def _power(base: float | int, exponent: float | int) -> float | int:
    if abs(base) > 1 and abs(exponent) * math.log2(abs(base)) > MAX_POWER_BITS:
        raise ValueError(f"Exponent too large: {exponent}")
    return operator.pow(base, exponent)


_BINARY_OPS[ast.Pow] = _power


def evaluate_expression(expression: str) -> float | int:
    """Evaluate an arithmetic expression without ``eval``.

    >>> evaluate_expression("1 + 2 * 3")
    7
    """

    def _eval(node: ast.AST) -> Any:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            return _BINARY_OPS[type(node.op)](_eval(node.left), _eval(node.right))
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](_eval(node.operand))
        raise ValueError(f"Unsupported expression element: {type(node).__name__}")

    return _eval(ast.parse(expression, mode="eval"))


def _text(value: str) -> types.TextContent:
    return types.TextContent(type="text", text=value)


def _format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class LiveData:
    """Value behind ``resource://live-data``; refreshed by :func:`live_data_updater`."""

    def __init__(self) -> None:
        self.timestamp = time.time()
        self.value = random.random()

    def refresh(self) -> None:
        self.timestamp = time.time()
        self.value = random.random()

    def snapshot(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "value": self.value}


def build_server(name: str = "relaymcp-demo") -> MCPServer:
    server = MCPServer(
        name,
        version="1.0.0",
        instructions="这是一个MCP服务器示例，展示工具、资源和提示模板功能。",
        notification_flags=NotificationFlags(resources_changed=False),
    )
    live = LiveData()
    server.live_data = live  # type: ignore[attr-defined]

    with server.binding():

        @tool(description="将两个数字相加")
        def add(a: float | None = None, b: float | None = None) -> types.CallToolResult:
            if a is None or b is None:
                return types.CallToolResult(content=[_text("错误: 缺少数字参数")], isError=True)
            total = f"{_format_number(a)} + {_format_number(b)} = {_format_number(a + b)}"
            return types.CallToolResult(content=[_text(total)])

        @tool(description="获取指定城市的天气信息")
        def weather(city: str) -> str:
            return f"{city}的天气: {WEATHER.get(city, '未找到该城市的天气信息')}"

        @tool(description="执行基本的数学计算")
        def calculator(expression: str) -> types.CallToolResult:
            try:
                result = _format_number(evaluate_expression(expression))
            except (ValueError, SyntaxError, ArithmeticError) as exc:
                return types.CallToolResult(content=[_text(f"计算错误: {exc}")], isError=True)
            return types.CallToolResult(content=[_text(f"计算结果: {result}")])

        @tool(name="longRunningOperation", description="演示进度通知的长时间运行操作")
        async def long_running_operation(ctx: Context, duration: float = 10, steps: int = 5) -> str:
            # Each step waits a tenth of the nominal duration split evenly.
            step_delay = duration * 0.1 / steps if steps > 0 else 0
            async with ctx.progress(total=steps) as tracker:
                for _ in range(steps):
                    await ctx.checkpoint()
                    await ctx.sleep(step_delay)
                    await tracker.advance()
            return f"操作已完成，共{steps}个步骤，耗时{_format_number(duration)}秒"

        @tool(name="sampleLLM", description="通过客户端的采样能力调用 LLM")
        async def sample_llm(ctx: Context, prompt: str, maxTokens: int = 100, temperature: float = 1.0) -> str:
            result = await ctx.create_message(
                types.CreateMessageRequestParams(
                    messages=[types.SamplingMessage(role="user", content=_text(prompt))],
                    maxTokens=maxTokens,
                    temperature=temperature,
                )
            )
            text = result.content.text if isinstance(result.content, types.TextContent) else "[非文本内容]"
            return f"LLM 采样结果: {text}"

        @resource("example://document/1", name="示例文档", mime_type="text/plain")
        def document() -> str:
            return "这是一个示例文档，用于展示 MCP 资源功能。\n\n资源可以包含纯文本内容，也可以包含二进制数据。"

        @resource("example://image/1", name="示例图片", description="文本说明加一张 1x1 PNG")
        def image() -> list[dict[str, Any]]:
            return [
                {"mimeType": "text/plain", "text": "这是一张 1x1 像素的示例图片。"},
                {"mimeType": "image/png", "blob": PIXEL_PNG},
            ]

        @resource("example://code/1", name="示例代码", mime_type="text/x-python")
        def code() -> str:
            return SAMPLE_CODE

        @resource(README_URI, name="readme.md", description="readme", mime_type="text/markdown")
        def readme() -> str:
            return "# 示例文档\n\n这是一个示例Markdown文档，用于演示MCP资源管理功能。"

        @resource(LIVE_DATA_URI, name="实时数据", mime_type="application/json")
        def live_data() -> str:
            return json.dumps(live.snapshot())

        @resource_template("greeting://{name}", name="问候", mime_type="text/plain")
        def greeting(name: str) -> str:
            return f"你好，{name}！欢迎使用MCP资源服务。"

        template_prompt(
            "simple_prompt",
            [
                ("assistant", "你是一个有用的AI助手，请简洁直接地回答用户问题。"),
                ("user", "请问今天天气如何？"),
            ],
            description="一个简单的对话提示",
        )

        template_prompt(
            "code_review",
            [
                (
                    "user",
                    "请审查以下{{language}}代码:\n\n```{{language}}\n{{code}}\n```\n\n提供详细的改进建议和最佳实践。",
                )
            ],
            description="代码审查提示",
            arguments=[
                {"name": "code", "description": "要审查的代码", "required": True},
                {"name": "language", "description": "编程语言", "required": True},
            ],
        )

        @prompt(
            "email-template",
            description="生成一封专业的电子邮件，当prompt 以 /email 开头时，使用该模板",
            arguments=[
                {"name": "recipient", "description": "收件人名称", "required": True},
                {"name": "topic", "description": "邮件主题", "required": True},
                {"name": "tone", "description": "邮件语气", "required": True, "default": "专业"},
            ],
        )
        def email_template(recipient: str, topic: str, tone: str) -> list[tuple[str, str]]:
            body = (
                f"请为我写一封发给{recipient}的电子邮件，主题是{topic}。\n"
                f"请使用{tone}的语气。\n"
                "邮件应该包含：\n- 开场白\n- 主要内容\n- 结束语\n- 签名"
            )
            return [("user", body)]

        template_prompt(
            "summary-template",
            [
                (
                    "user",
                    "请将以下文本总结为{{length}}的要点列表：\n\n{{text}}\n\n"
                    "总结要求：\n- 保留关键信息\n- 使用清晰的语言\n- 按重要性排序",
                )
            ],
            description="将长文本总结为简洁的要点",
            arguments=[
                {"name": "text", "description": "需要总结的文本", "required": True},
                {"name": "length", "description": "总结长度", "required": True, "default": "中等"},
            ],
        )

        template_prompt(
            "customer-service",
            [
                (
                    "user",
                    "请为以下客户问题生成一个{{tone}}的回复：\n\n客户问题：{{issue}}\n产品名称：{{product}}\n\n"
                    "回复应包含：\n- 问候语\n- 对问题的理解\n- 解决方案\n- 后续支持\n- 结束语",
                )
            ],
            description="生成针对客户问题的专业回复",
            arguments=[
                {"name": "issue", "description": "客户问题", "required": True},
                {"name": "product", "description": "产品名称", "required": True},
                {"name": "tone", "description": "回复语气", "required": False, "default": "专业"},
            ],
        )

        template_prompt(
            "custom-prompt",
            [("user", "请为我生成一个针对{{scenario}}场景的提示模板，目标是{{goal}}。\n额外要求: {{requirements}}")],
            description="根据场景和目标生成个性化提示",
            arguments=[
                {"name": "scenario", "description": "应用场景", "required": True},
                {"name": "goal", "description": "提示目标", "required": True},
                {"name": "requirements", "description": "额外要求", "required": False, "default": "无特殊要求"},
            ],
        )

    return server


async def live_data_updater(server: MCPServer, *, interval: float = LIVE_DATA_INTERVAL) -> None:
    """Refresh the live-data resource forever, notifying subscribers each time."""
    live: LiveData = server.live_data  # type: ignore[attr-defined]
    while True:
        await anyio.sleep(interval)
        live.refresh()
        delivered = await server.notify_resource_updated(LIVE_DATA_URI)
        if delivered:
            logger.debug("live-data update delivered to %d session(s)", delivered)


__all__ = ["build_server", "live_data_updater", "evaluate_expression", "LiveData", "LIVE_DATA_URI", "README_URI"]
