"""JSON envelope codec for the EasyTouch dialect.

Responses arrive as UTF-8 JSON split over several reads or notifications;
:class:`JsonAccumulator` reassembles them by tracking brace depth outside of
string literals and hands complete documents to msgspec.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Final

import msgspec

from ..errors import ProtocolError

logger = logging.getLogger("blebridge.protocol.text")

MAX_BUFFERED_BYTES: Final[int] = 16 * 1024


def encode_envelope(message: Mapping[str, Any]) -> bytes:
    return msgspec.json.encode(dict(message))


def decode_envelope(raw: bytes | str) -> dict[str, Any]:
    """Decode one flat envelope; values may be scalars or one nested group."""
    try:
        document = msgspec.json.decode(raw.encode("utf-8") if isinstance(raw, str) else raw)
    except msgspec.DecodeError as exc:
        raise ProtocolError(f"malformed JSON envelope: {exc}") from exc
    if not isinstance(document, dict):
        raise ProtocolError("JSON envelope must be an object")
    return document


class JsonAccumulator:
    """Collect chunks until one or more complete JSON objects are present."""

    __slots__ = ("_buffer", "_depth", "_in_string", "_escape", "_start")

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.reset()

    def reset(self) -> None:
        self._buffer.clear()
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._start = -1

    @property
    def pending(self) -> bool:
        return self._start >= 0

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        documents: list[dict[str, Any]] = []
        for byte in chunk:
            if self._start < 0:
                if byte == 0x7B:  # '{'
                    self._start = 0
                    self._buffer.append(byte)
                    self._depth = 1
                # Bytes before the first '{' are line noise.
                continue

            self._buffer.append(byte)
            if self._in_string:
                if self._escape:
                    self._escape = False
                elif byte == 0x5C:  # '\\'
                    self._escape = True
                elif byte == 0x22:  # '"'
                    self._in_string = False
                continue

            if byte == 0x22:
                self._in_string = True
            elif byte == 0x7B:
                self._depth += 1
            elif byte == 0x7D:  # '}'
                self._depth -= 1
                if self._depth == 0:
                    raw = bytes(self._buffer)
                    self.reset()
                    try:
                        documents.append(decode_envelope(raw))
                    except ProtocolError as exc:
                        logger.warning("Dropping undecodable JSON message: %s", exc)

            if len(self._buffer) > MAX_BUFFERED_BYTES:
                logger.warning("JSON buffer exceeded %d bytes; discarding partial message.", MAX_BUFFERED_BYTES)
                self.reset()
        return documents


__all__ = ["JsonAccumulator", "decode_envelope", "encode_envelope"]
