# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""``python -m relaymcp.demo [stdio|sse]``"""

from __future__ import annotations

import os
import sys

import anyio

from .server import build_server, live_data_updater
from ..server.core import ENV_TRANSPORT
from ..utils import setup_logger


async def _main(transport: str) -> None:
    server = build_server()
    async with anyio.create_task_group() as tg:
        tg.start_soon(live_data_updater, server)
        await server.serve(transport=transport)
        tg.cancel_scope.cancel()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    transport = argv[0] if argv else os.getenv(ENV_TRANSPORT, "stdio")
    setup_logger()
    anyio.run(_main, transport)
    return 0


if __name__ == "__main__":
    sys.exit(main())
