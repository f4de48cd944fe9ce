"""TEA-style key derivation used by the OneControl gateway.

Both authentication exchanges feed a 32-bit challenge through the same
32-round mixer with a per-exchange cipher constant. Only the byte order of
the challenge and of the produced key differs between the exchanges, so it
is always passed in explicitly.
"""

from __future__ import annotations

from typing import Final, Literal

ByteOrder = Literal["big", "little"]

TEA_DELTA: Final[int] = 0x9E3779B9
TEA_ROUNDS: Final[int] = 32
TEA_C1: Final[int] = 0x43729561
TEA_C2: Final[int] = 0x7265746E
TEA_C3: Final[int] = 0x7421ED44
TEA_C4: Final[int] = 0x5378A963

UNLOCK_CIPHER: Final[int] = 0x2483FFD5
SESSION_CIPHER: Final[int] = 0x8100080D

SESSION_KEY_LENGTH: Final[int] = 16
CHALLENGE_LENGTH: Final[int] = 4
PIN_MAX_LENGTH: Final[int] = 6

_MASK32: Final[int] = 0xFFFFFFFF


def tea_encrypt(cypher: int, seed: int) -> int:
    """Mix *seed* with *cypher* and return the 32-bit result."""
    cypher &= _MASK32
    seed &= _MASK32
    num = TEA_DELTA
    for _ in range(TEA_ROUNDS):
        seed = (seed + (((cypher << 4) + TEA_C1) ^ (cypher + num) ^ ((cypher >> 5) + TEA_C2))) & _MASK32
        cypher = (cypher + (((seed << 4) + TEA_C3) ^ (seed + num) ^ ((seed >> 5) + TEA_C4))) & _MASK32
        num = (num + TEA_DELTA) & _MASK32
    return seed


def _challenge_value(challenge: bytes, byteorder: ByteOrder) -> int:
    if len(challenge) != CHALLENGE_LENGTH:
        raise ValueError(f"challenge must be {CHALLENGE_LENGTH} bytes, got {len(challenge)}")
    return int.from_bytes(challenge, byteorder)


def derive_unlock_key(
    challenge: bytes,
    cypher: int = UNLOCK_CIPHER,
    *,
    byteorder: ByteOrder = "big",
) -> bytes:
    """Return the 4-byte bus unlock key for a challenge read from UNLOCK_STATUS."""
    value = tea_encrypt(cypher, _challenge_value(challenge, byteorder))
    return value.to_bytes(CHALLENGE_LENGTH, byteorder)


def derive_session_key(
    seed: bytes,
    pin: str,
    cypher: int = SESSION_CIPHER,
    *,
    byteorder: ByteOrder = "little",
) -> bytes:
    """Return the 16-byte session key answering a SEED notification.

    Layout: cipher output (4 bytes), ASCII PIN (up to 6 bytes), zero padding.
    """
    pin_bytes = pin.encode("ascii")
    if not pin_bytes or len(pin_bytes) > PIN_MAX_LENGTH:
        raise ValueError(f"pin must be 1-{PIN_MAX_LENGTH} ASCII characters")
    value = tea_encrypt(cypher, _challenge_value(seed, byteorder))
    key = bytearray(SESSION_KEY_LENGTH)
    key[0:CHALLENGE_LENGTH] = value.to_bytes(CHALLENGE_LENGTH, byteorder)
    key[CHALLENGE_LENGTH : CHALLENGE_LENGTH + len(pin_bytes)] = pin_bytes
    return bytes(key)


__all__ = [
    "ByteOrder",
    "SESSION_CIPHER",
    "UNLOCK_CIPHER",
    "derive_session_key",
    "derive_unlock_key",
    "tea_encrypt",
]
