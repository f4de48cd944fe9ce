"""Self-delimiting frame codec used on the OneControl data characteristics.

This is not textbook COBS: each code byte carries the count of following
non-zero bytes in its low six bits and the count of zeros that follow the
block in multiples of 64 in the upper bits. A CRC8 over the payload is
appended before stuffing, and frames are bounded by ``0x00`` on both ends.
"""

from __future__ import annotations

import logging
from typing import Final

logger = logging.getLogger("blebridge.protocol.cobs")

FRAME_CHAR: Final[int] = 0x00
MAX_DATA_BYTES: Final[int] = 63
ZERO_RUN_UNIT: Final[int] = 64
MAX_COMPRESSED_CODE: Final[int] = 192

CRC8_INIT: Final[int] = 0x55


def _build_crc8_table() -> tuple[int, ...]:
    # Reflected Dallas/Maxim polynomial (0x31 reversed).
    table: list[int] = []
    for value in range(256):
        crc = value
        for _ in range(8):
            crc = (crc >> 1) ^ 0x8C if crc & 0x01 else crc >> 1
        table.append(crc)
    return tuple(table)


CRC8_TABLE: Final[tuple[int, ...]] = _build_crc8_table()


def crc8(data: bytes | bytearray, init: int = CRC8_INIT) -> int:
    crc = init
    for byte in data:
        crc = CRC8_TABLE[(crc ^ byte) & 0xFF]
    return crc


def cobs_encode(payload: bytes, *, start_frame: bool = True) -> bytes:
    """Stuff *payload* plus its CRC8 into a delimited frame."""
    out = bytearray()
    if start_frame:
        out.append(FRAME_CHAR)
    if not payload:
        return bytes(out)

    source = bytes(payload) + bytes((crc8(payload),))
    total = len(source)
    index = 0
    while index < total:
        code_index = len(out)
        out.append(0xFF)
        code = 0
        while index < total:
            byte = source[index]
            if byte == FRAME_CHAR:
                break
            out.append(byte)
            index += 1
            code += 1
            if code >= MAX_DATA_BYTES:
                break
        while index < total and source[index] == FRAME_CHAR:
            index += 1
            code += ZERO_RUN_UNIT
            if code >= MAX_COMPRESSED_CODE:
                break
        out[code_index] = code
    out.append(FRAME_CHAR)
    return bytes(out)


class CobsStreamDecoder:
    """Incremental decoder; state persists across notification deliveries."""

    __slots__ = ("_buffer", "_code", "frames_ok", "frames_dropped")

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._code = 0
        self.frames_ok = 0
        self.frames_dropped = 0

    def reset(self) -> None:
        self._buffer.clear()
        self._code = 0

    def feed_byte(self, byte: int) -> bytes | None:
        """Consume one byte; return a payload when a valid frame closes."""
        if byte == FRAME_CHAR:
            return self._close_frame()

        if self._code == 0:
            self._code = byte
        else:
            self._code -= 1
            self._buffer.append(byte)

        if (self._code & MAX_DATA_BYTES) == 0:
            while self._code > 0:
                self._buffer.append(FRAME_CHAR)
                self._code -= ZERO_RUN_UNIT
        return None

    def feed(self, data: bytes | bytearray) -> list[bytes]:
        frames: list[bytes] = []
        for byte in data:
            frame = self.feed_byte(byte)
            if frame is not None:
                frames.append(frame)
        return frames

    def _close_frame(self) -> bytes | None:
        try:
            # Leading delimiter or truncated block: nothing to emit.
            if self._code != 0 or len(self._buffer) <= 1:
                if self._buffer or self._code:
                    self.frames_dropped += 1
                return None
            received = self._buffer[-1]
            body = bytes(self._buffer[:-1])
            calculated = crc8(body)
            if received != calculated:
                self.frames_dropped += 1
                logger.debug(
                    "Frame CRC mismatch (received 0x%02X, calculated 0x%02X); dropped.",
                    received,
                    calculated,
                )
                return None
            self.frames_ok += 1
            return body
        finally:
            self.reset()


__all__ = [
    "CRC8_TABLE",
    "CobsStreamDecoder",
    "cobs_encode",
    "crc8",
]
