"""Wire codecs for the three peripheral dialects."""

from __future__ import annotations

from .cobs import CobsStreamDecoder, cobs_encode, crc8
from .tea import derive_session_key, derive_unlock_key, tea_encrypt

__all__ = [
    "CobsStreamDecoder",
    "cobs_encode",
    "crc8",
    "derive_session_key",
    "derive_unlock_key",
    "tea_encrypt",
]
