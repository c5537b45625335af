from __future__ import annotations

import pytest

from relaymcp.demo import build_server
from relaymcp.server import MCPServer


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def demo_server() -> MCPServer:
    return build_server()
