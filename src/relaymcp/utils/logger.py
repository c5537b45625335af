# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Logging setup for relaymcp.

Everything goes to ``stderr``: when a session runs over stdio, ``stdout`` is
the wire and must only ever carry protocol frames.  Plain, colored and JSON
output are available; the latter accepts a custom serializer so hosts can
plug in a faster encoder.
"""

from __future__ import annotations

from collections.abc import Callable
import json
import logging
import os
import sys
from typing import Any, ClassVar, Final


RESET: Final[str] = "\033[0m"
LOGGER_COLOR: Final[str] = "\033[94m"

DEFAULT_LOGGER_NAME: Final[str] = "relaymcp"
ENV_LOG_LEVEL: Final[str] = "RELAYMCP_LOG_LEVEL"
ENV_LOG_JSON: Final[str] = "RELAYMCP_LOG_JSON"
ENV_NO_COLOR: Final[str] = "NO_COLOR"
DEFAULT_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"

JsonSerializer = Callable[[dict[str, Any]], str]

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime", "taskName"}
)


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level and logger name."""

    LEVEL_COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[1;31m",
        "CRITICAL": "\033[1;35m",
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname, name = record.levelname, record.name
        record.levelname = f"{self.LEVEL_COLORS.get(levelname, '')}{levelname}{RESET}"
        record.name = f"{LOGGER_COLOR}{name}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name


class RelayHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler installed by :func:`setup_logger`; always targets stderr."""

    def __init__(self) -> None:
        super().__init__(stream=sys.stderr)


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields land under ``context``."""

    def __init__(self, serializer: JsonSerializer, *, datefmt: str | None = None) -> None:
        super().__init__(datefmt=datefmt)
        self._serializer = serializer

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        extra = {key: value for key, value in record.__dict__.items() if key not in _RECORD_KEYS}
        if extra:
            payload["context"] = extra
        return self._serializer(payload)


def _default_json_serializer(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _read_bool_env(key: str) -> bool:
    value = os.getenv(key)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(ENV_LOG_LEVEL) or logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    *,
    level: int | str | None = None,
    use_json: bool | None = None,
    use_color: bool | None = None,
    json_serializer: JsonSerializer | None = None,
    fmt: str | None = None,
    datefmt: str | None = DEFAULT_DATEFMT,
    force: bool = False,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level. Falls back to ``RELAYMCP_LOG_LEVEL`` then ``INFO``.
        use_json: Emit JSON lines. Defaults to ``RELAYMCP_LOG_JSON``.
        use_color: Colorize plain output. Disabled by ``NO_COLOR`` or JSON mode.
        json_serializer: Replacement for :func:`json.dumps` in JSON mode.
        fmt: Format string for plain output.
        datefmt: Date format for both modes.
        force: Replace a previously installed :class:`RelayHandler`.
    """
    root = logging.getLogger()
    existing = [handler for handler in root.handlers if isinstance(handler, RelayHandler)]
    if existing and not force:
        return
    for handler in existing:
        root.removeHandler(handler)
        handler.close()

    resolved_level = _resolve_level(level)
    root.setLevel(resolved_level)

    resolved_json = use_json if use_json is not None else _read_bool_env(ENV_LOG_JSON)
    if use_color is not None:
        resolved_color = use_color
    elif os.getenv(ENV_NO_COLOR):
        resolved_color = False
    else:
        resolved_color = not resolved_json and sys.stderr.isatty()

    handler = RelayHandler()
    handler.setLevel(resolved_level)

    formatter: logging.Formatter
    if resolved_json:
        formatter = StructuredJSONFormatter(json_serializer or _default_json_serializer, datefmt=datefmt)
    elif resolved_color:
        formatter = ColoredFormatter(fmt or DEFAULT_FORMAT, datefmt=datefmt)
    else:
        formatter = logging.Formatter(fmt or DEFAULT_FORMAT, datefmt=datefmt)

    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the ``relaymcp`` namespace, configuring on first use."""
    if not any(isinstance(handler, RelayHandler) for handler in logging.getLogger().handlers):
        setup_logger()
    return logging.getLogger(name or DEFAULT_LOGGER_NAME)


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "ColoredFormatter",
    "RelayHandler",
    "StructuredJSONFormatter",
    "get_logger",
    "setup_logger",
]
