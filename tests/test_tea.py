"""Tests for the OneControl key derivation."""

from __future__ import annotations

import pytest

from blebridge.protocol.tea import (
    SESSION_CIPHER,
    UNLOCK_CIPHER,
    derive_session_key,
    derive_unlock_key,
    tea_encrypt,
)


def test_tea_encrypt_regression_vectors() -> None:
    assert tea_encrypt(UNLOCK_CIPHER, 0x01020304) == 0x1AD4A47D
    assert tea_encrypt(SESSION_CIPHER, 0x04030201) == 0x129D5AB2
    assert tea_encrypt(0, 0) == 0xC3B0079B


def test_tea_encrypt_is_deterministic() -> None:
    results = {tea_encrypt(UNLOCK_CIPHER, 0xDEADBEEF) for _ in range(5)}
    assert len(results) == 1


def test_tea_encrypt_masks_inputs_to_32_bits() -> None:
    assert tea_encrypt(UNLOCK_CIPHER | (1 << 40), 0x01020304 | (1 << 36)) == 0x1AD4A47D


def test_unlock_key_for_documented_challenge() -> None:
    assert derive_unlock_key(bytes([0x01, 0x02, 0x03, 0x04])) == bytes.fromhex("1AD4A47D")


def test_unlock_key_byte_order_is_explicit() -> None:
    key = derive_unlock_key(bytes([0x04, 0x03, 0x02, 0x01]), byteorder="little")
    assert key == bytes.fromhex("7DA4D41A")


def test_session_key_layout() -> None:
    key = derive_session_key(bytes([0x01, 0x02, 0x03, 0x04]), "090336")

    assert len(key) == 16
    assert key[:4] == bytes.fromhex("B25A9D12")
    assert key[4:10] == b"090336"
    assert key[10:] == bytes(6)


def test_session_key_short_pin_is_zero_padded() -> None:
    key = derive_session_key(bytes(4), "12")
    assert key[4:6] == b"12"
    assert key[6:] == bytes(10)


@pytest.mark.parametrize("challenge", [b"", b"\x01\x02\x03", b"\x01\x02\x03\x04\x05"])
def test_challenge_length_is_enforced(challenge: bytes) -> None:
    with pytest.raises(ValueError):
        derive_unlock_key(challenge)


@pytest.mark.parametrize("pin", ["", "1234567"])
def test_session_key_rejects_bad_pin(pin: str) -> None:
    with pytest.raises(ValueError):
        derive_session_key(bytes(4), pin)
