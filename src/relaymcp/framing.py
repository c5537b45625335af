# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Newline-delimited JSON framing shared by the stdio bindings on both ends.

Frames that fail to decode are forwarded as the :class:`MessageDecodeError`
itself so the session can log and drop them without losing its place.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import anyio
from anyio.abc import ByteReceiveStream
from anyio.streams.buffered import BufferedByteReceiveStream

from .errors import MessageDecodeError
from .messages import Message, parse_message, serialize


MAX_LINE_BYTES = 16 * 1024 * 1024


def decode_frame(raw: str | bytes) -> Message | MessageDecodeError:
    try:
        return parse_message(raw)
    except MessageDecodeError as exc:
        return exc


def encode_line(message: Message) -> bytes:
    return (serialize(message) + "\n").encode("utf-8")


async def iter_lines(stream: ByteReceiveStream, *, max_bytes: int = MAX_LINE_BYTES) -> AsyncIterator[bytes]:
    """Yield non-empty lines (without the terminator) until the stream ends."""
    buffered = BufferedByteReceiveStream(stream)
    while True:
        try:
            line = await buffered.receive_until(b"\n", max_bytes)
        except (anyio.EndOfStream, anyio.IncompleteRead, anyio.ClosedResourceError, anyio.BrokenResourceError):
            return
        line = line.rstrip(b"\r")
        if line.strip():
            yield line


__all__ = [
    "MAX_LINE_BYTES",
    "decode_frame",
    "encode_line",
    "iter_lines",
]
