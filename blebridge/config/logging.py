"""Logging setup for the BLE bridge daemon.

Every line is a JSON object. Session loggers are wrapped in
:class:`PeripheralLogAdapter` so lines emitted on behalf of one peripheral
carry its address and family as top-level keys, which keeps a busy bridge
greppable per device.
"""

from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from datetime import datetime, timezone
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .const import LOG_STREAM_ENV
from .settings import RuntimeConfig

SYSLOG_SOCKETS: tuple[Path, ...] = (Path("/dev/log"), Path("/var/run/log"))
SYSLOG_IDENT = "blebridge "
LOGGER_PREFIX = "blebridge."

# Chatty third-party loggers pinned to INFO even when the bridge runs at DEBUG.
QUIET_LOGGERS: tuple[str, ...] = ("bleak", "transitions", "aiomqtt")

PERIPHERAL_KEYS: tuple[str, ...] = ("peripheral", "family")

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"[{bytes(value).hex(' ').upper()}]"
    return str(value)


class PeripheralLogAdapter(logging.LoggerAdapter):
    """Attach the peripheral address and family to every record."""

    def __init__(self, logger: logging.Logger, address: str, family: str) -> None:
        super().__init__(logger, {"peripheral": address, "family": family})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


class StructuredLogFormatter(logging.Formatter):
    """Render a record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(LOGGER_PREFIX)
        document: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }
        for key in PERIPHERAL_KEYS:
            value = record.__dict__.get(key)
            if value is not None:
                document[key] = value

        extra = {
            key: _json_safe(value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in PERIPHERAL_KEYS and not key.startswith("_")
        }
        if extra:
            document["extra"] = extra
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return msgspec.json.encode(document).decode("utf-8")


def _build_handler() -> logging.Handler:
    """Syslog when a socket exists, stderr otherwise or when forced by env."""
    if not os.environ.get(LOG_STREAM_ENV):
        socket_path = next((path for path in SYSLOG_SOCKETS if path.exists()), None)
        if socket_path is not None:
            handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_DAEMON)
            handler.ident = SYSLOG_IDENT
            return handler
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig) -> None:
    level = "DEBUG" if config.debug_logging else "INFO"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": StructuredLogFormatter}},
            "handlers": {"bridge": {"()": _build_handler, "level": level, "formatter": "json"}},
            "loggers": {name: {"level": "INFO"} for name in QUIET_LOGGERS},
            "root": {"level": level, "handlers": ["bridge"]},
        }
    )
    logging.getLogger("blebridge").info(
        "Logging configured at %s for %d peripheral(s).", level, len(config.peripherals)
    )


__all__ = ["PeripheralLogAdapter", "StructuredLogFormatter", "configure_logging"]
