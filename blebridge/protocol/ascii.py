"""Delimited ASCII sample codec for the GoPower dialect."""

from __future__ import annotations

import logging
from typing import Final

from ..errors import ProtocolError

logger = logging.getLogger("blebridge.protocol.ascii")

FIELD_DELIMITER: Final[str] = ";"
EXPECTED_FIELD_COUNT: Final[int] = 32
MAX_BUFFERED_CHARS: Final[int] = 4096


class IncompleteSampleError(ProtocolError):
    """A sample carried fewer fields than the dialect requires."""

    def __init__(self, count: int, expected: int) -> None:
        super().__init__(f"sample has {count} fields, expected {expected}")
        self.count = count
        self.expected = expected


def split_fields(sample: str, expected: int = EXPECTED_FIELD_COUNT) -> tuple[str, ...]:
    fields = tuple(field.strip() for field in sample.split(FIELD_DELIMITER))
    if len(fields) < expected:
        raise IncompleteSampleError(len(fields), expected)
    return fields


def parse_unsigned(field: str) -> int:
    """Parse a zero-padded decimal such as ``00012``."""
    if not field.isdigit():
        raise ProtocolError(f"not an unsigned decimal: {field!r}")
    return int(field, 10)


def parse_signed(field: str) -> int:
    """Parse a signed field such as ``+06`` or ``-05``."""
    if field[:1] in ("+", "-"):
        sign = -1 if field[0] == "-" else 1
        return sign * parse_unsigned(field[1:])
    return parse_unsigned(field)


class DelimitedAccumulator:
    """Buffer notification chunks until a full sample has arrived."""

    __slots__ = ("_buffer", "_expected")

    def __init__(self, expected: int = EXPECTED_FIELD_COUNT) -> None:
        self._buffer = ""
        self._expected = expected

    def reset(self) -> None:
        self._buffer = ""

    def feed(self, chunk: bytes) -> str | None:
        self._buffer += chunk.decode("ascii", errors="replace")
        if self._buffer.count(FIELD_DELIMITER) >= self._expected - 1:
            sample, self._buffer = self._buffer, ""
            return sample
        if len(self._buffer) > MAX_BUFFERED_CHARS:
            logger.warning("ASCII buffer overflow; discarding %d chars.", len(self._buffer))
            self._buffer = ""
        return None


__all__ = [
    "DelimitedAccumulator",
    "EXPECTED_FIELD_COUNT",
    "FIELD_DELIMITER",
    "IncompleteSampleError",
    "parse_signed",
    "parse_unsigned",
    "split_fields",
]
