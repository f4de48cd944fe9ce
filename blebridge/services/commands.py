"""Command pipeline helpers shared by the device sessions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import msgspec
import tenacity

from ..errors import InvalidCommandError, TransportError
from ..protocol.topics import CommandRoute
from ..transport.ble import BleTransport

logger = logging.getLogger("blebridge.commands")

ON_PAYLOADS = frozenset({"ON", "1", "TRUE"})
OFF_PAYLOADS = frozenset({"OFF", "0", "FALSE"})


def _log_write_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.debug("Write attempt %d failed (%s); retrying in %.2fs", retry_state.attempt_number, exc, delay)


async def write_with_retry(
    transport: BleTransport,
    uuid: str,
    data: bytes,
    *,
    extra_attempts: int = 0,
    wait: tenacity.wait.wait_base | None = None,
    response: bool = True,
) -> None:
    """Write *data*, retrying transport failures up to *extra_attempts* times.

    The last :class:`TransportError` is re-raised once the attempts run out.
    """
    retryer = tenacity.AsyncRetrying(
        wait=wait or tenacity.wait_none(),
        retry=tenacity.retry_if_exception_type(TransportError),
        stop=tenacity.stop_after_attempt(extra_attempts + 1),
        before_sleep=_log_write_retry,
        reraise=True,
    )
    async for attempt in retryer:
        with attempt:
            await transport.write(uuid, data, response)


def decode_text(payload: bytes) -> str:
    try:
        return payload.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise InvalidCommandError("command", "-", f"payload is not UTF-8: {exc}") from exc


def parse_switch_payload(route: CommandRoute, payload: bytes) -> bool:
    text = decode_text(payload).upper()
    if text in ON_PAYLOADS:
        return True
    if text in OFF_PAYLOADS:
        return False
    raise InvalidCommandError(route.entity_type, f"{route.table_id}:{route.device_id}", f"expected ON/OFF, got {text!r}")


def parse_number(route: CommandRoute, payload: bytes, *, low: float, high: float) -> float:
    text = decode_text(payload)
    try:
        value = float(text)
    except ValueError as exc:
        raise InvalidCommandError(
            route.entity_type, f"{route.table_id}:{route.device_id}", f"expected a number, got {text!r}"
        ) from exc
    if not low <= value <= high:
        raise InvalidCommandError(
            route.entity_type, f"{route.table_id}:{route.device_id}", f"{value:g} outside {low:g}..{high:g}"
        )
    return value


def parse_json_object(route: CommandRoute, payload: bytes) -> Mapping[str, Any] | None:
    """Return the JSON object in *payload*, or None when it is not JSON."""
    text = decode_text(payload)
    if not text.startswith("{"):
        return None
    try:
        document = msgspec.json.decode(text)
    except msgspec.DecodeError as exc:
        raise InvalidCommandError(route.entity_type, f"{route.table_id}:{route.device_id}", str(exc)) from exc
    if not isinstance(document, dict):
        raise InvalidCommandError(route.entity_type, f"{route.table_id}:{route.device_id}", "expected a JSON object")
    return document


__all__ = [
    "decode_text",
    "parse_json_object",
    "parse_number",
    "parse_switch_payload",
    "write_with_retry",
]
