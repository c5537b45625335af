# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Demo server exercising every capability kind.

Run it with ``python -m relaymcp.demo [stdio|sse]``.
"""

from __future__ import annotations

from .server import build_server, live_data_updater


__all__ = ["build_server", "live_data_updater"]
