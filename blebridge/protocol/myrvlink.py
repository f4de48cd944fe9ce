"""OneControl (MyRvLink) event decoding and command encoding.

Events are the payloads emitted by :class:`~.cobs.CobsStreamDecoder`; the
first byte is the event tag. Several events exist in a short and an extended
wire form, distinguished by total length only; the extension fields decode
to ``None`` when absent.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Final, Literal

import msgspec

from ..errors import ProtocolError
from .structures import (
    ActionDimmablePacket,
    ActionHvacPacket,
    ActionSwitchPacket,
    CommandResponseEvent,
    DeviceStatusEvent,
    GetDevicesMetadataPacket,
    GetDevicesPacket,
    HvacZoneBlock,
    MetadataResponseEvent,
    RvStatusEvent,
)

logger = logging.getLogger("blebridge.protocol.myrvlink")

DEFAULT_DEVICE_TABLE_ID: Final[int] = 0x08
COMMAND_ID_MAX: Final[int] = 0xFFFE

RELAY_EXTENDED_LENGTH: Final[int] = 9
HVAC_ZONE_LENGTH: Final[int] = 11
HVAC_SHORT_ZONE_LENGTH: Final[int] = 9
HVAC_MIN_LENGTH: Final[int] = 2 + HVAC_SHORT_ZONE_LENGTH
METADATA_ENTRY_PROTOCOL: Final[int] = 2
METADATA_ENTRY_PAYLOAD: Final[int] = 17

RV_INVALID_RAW: Final[frozenset[int]] = frozenset({0xFFFF})
RV_TEMPERATURE_INVALID_RAW: Final[frozenset[int]] = frozenset({0xFFFF, 0x7FFF})
HVAC_INVALID_TEMPERATURE_RAW: Final[frozenset[int]] = frozenset({0x8000, 0x2FF0})

COVER_STATUS_NAMES: Final[dict[int, str]] = {
    0xC0: "stopped",
    0xC2: "opening",
    0xC3: "closing",
}
DIMMER_MODE_NAMES: Final[dict[int, str]] = {0: "off", 1: "on", 2: "blink", 3: "swell"}


class EventType(IntEnum):
    GATEWAY_INFORMATION = 0x01
    DEVICE_COMMAND = 0x02
    DEVICE_ONLINE_STATUS = 0x03
    DEVICE_LOCK_STATUS = 0x04
    RELAY_LATCHING_STATUS_1 = 0x05
    RELAY_LATCHING_STATUS_2 = 0x06
    RV_STATUS = 0x07
    DIMMABLE_LIGHT_STATUS = 0x08
    RGB_LIGHT_STATUS = 0x09
    GENERATOR_STATUS = 0x0A
    HVAC_STATUS = 0x0B
    TANK_SENSOR_STATUS = 0x0C
    HBRIDGE_MOMENTARY_STATUS_1 = 0x0D
    HBRIDGE_MOMENTARY_STATUS_2 = 0x0E
    HOUR_METER_STATUS = 0x0F
    LEVELER_STATUS = 0x10
    SESSION_STATUS = 0x1A
    TANK_SENSOR_STATUS_V2 = 0x1B
    REAL_TIME_CLOCK = 0x20


class CommandType(IntEnum):
    GET_DEVICES = 0x01
    GET_DEVICES_METADATA = 0x02
    ACTION_SWITCH = 0x40
    ACTION_MOVEMENT = 0x41
    ACTION_DIMMABLE = 0x43
    ACTION_HVAC = 0x45


# Events without a dedicated entity: published as a raw JSON summary.
GENERIC_EVENT_NAMES: Final[dict[int, str]] = {
    EventType.RGB_LIGHT_STATUS: "rgb_light",
    EventType.GENERATOR_STATUS: "generator",
    EventType.HOUR_METER_STATUS: "hour_meter",
    EventType.LEVELER_STATUS: "leveler",
}


class CommandIdAllocator:
    """Hand out 16-bit command ids in ``1..0xFFFE``, wrapping."""

    __slots__ = ("_next",)

    def __init__(self, start: int = 1) -> None:
        self._next = start if 1 <= start <= COMMAND_ID_MAX else 1

    def next(self) -> int:
        value = self._next
        self._next = 1 if value >= COMMAND_ID_MAX else value + 1
        return value


# --- Decoded events ---


class RelayStatus(msgspec.Struct, frozen=True):
    table_id: int
    device_id: int
    is_on: bool
    dtc: int | None = None


class CoverStatus(msgspec.Struct, frozen=True):
    table_id: int
    device_id: int
    status: int
    position: int | None

    @property
    def state(self) -> str:
        return COVER_STATUS_NAMES.get(self.status, "unknown")


class TankStatus(msgspec.Struct, frozen=True):
    table_id: int
    device_id: int
    level: int


class RvStatus(msgspec.Struct, frozen=True):
    voltage: float | None
    temperature: float | None


class HvacZoneStatus(msgspec.Struct, frozen=True):
    device_id: int
    command: int
    low_trip: int
    high_trip: int
    zone_status: int
    indoor_temperature: float | None
    outdoor_temperature: float | None
    dtc: int | None = None

    @property
    def heat_mode(self) -> int:
        return self.command & 0x07

    @property
    def heat_source(self) -> int:
        return (self.command >> 4) & 0x03

    @property
    def fan_mode(self) -> int:
        return (self.command >> 6) & 0x03

    @property
    def zone_mode(self) -> int:
        return self.zone_status & 0x8F

    @property
    def failed_thermistor(self) -> bool:
        return bool(self.zone_status & 0x80)


class CommandResponse(msgspec.Struct, frozen=True):
    command_id: int
    response_type: int

    @property
    def success(self) -> bool:
        return self.response_type in (0x01, 0x81)

    @property
    def complete(self) -> bool:
        return self.response_type in (0x81, 0x82)


class FunctionEntry(msgspec.Struct, frozen=True):
    table_id: int
    device_id: int
    function_name: int
    function_instance: int


def decode_relay_status(payload: bytes) -> RelayStatus:
    if len(payload) < 5:
        raise ProtocolError(f"relay status too short: {len(payload)} bytes")
    head = DeviceStatusEvent.decode(payload)
    dtc = None
    if len(payload) >= RELAY_EXTENDED_LENGTH:
        dtc = (payload[5] << 8) | payload[6]
    return RelayStatus(
        table_id=head.table_id,
        device_id=head.device_id,
        is_on=(head.status & 0x0F) == 0x01,
        dtc=dtc,
    )


def decode_cover_status(payload: bytes) -> CoverStatus:
    head = DeviceStatusEvent.decode(payload)
    position = payload[4] if len(payload) > 4 and payload[4] != 0xFF else None
    return CoverStatus(head.table_id, head.device_id, head.status, position)


def decode_tank_status(payload: bytes, *, minimum: int = 5) -> TankStatus:
    if len(payload) < minimum:
        raise ProtocolError(f"tank status too short: {len(payload)} bytes")
    head = DeviceStatusEvent.decode(payload)
    return TankStatus(head.table_id, head.device_id, head.status)


def _fixed_8_8(raw: int, *, signed: bool) -> float:
    if signed and raw & 0x8000:
        raw -= 0x10000
    return raw / 256.0


def decode_rv_status(payload: bytes) -> RvStatus:
    event = RvStatusEvent.decode(payload)
    voltage = None if event.voltage_raw in RV_INVALID_RAW else _fixed_8_8(event.voltage_raw, signed=False)
    temperature = (
        None
        if event.temperature_raw in RV_TEMPERATURE_INVALID_RAW
        else _fixed_8_8(event.temperature_raw, signed=True)
    )
    return RvStatus(voltage=voltage, temperature=temperature)


def _hvac_temperature(raw: int) -> float | None:
    if raw in HVAC_INVALID_TEMPERATURE_RAW:
        return None
    return _fixed_8_8(raw, signed=True)


def _hvac_zone_size(body_length: int) -> int:
    if body_length % HVAC_ZONE_LENGTH == 0:
        return HVAC_ZONE_LENGTH
    if body_length % HVAC_SHORT_ZONE_LENGTH == 0:
        return HVAC_SHORT_ZONE_LENGTH
    return HVAC_ZONE_LENGTH if body_length >= HVAC_ZONE_LENGTH else HVAC_SHORT_ZONE_LENGTH


def decode_hvac_status(payload: bytes) -> tuple[int, tuple[HvacZoneStatus, ...]]:
    """Return ``(table_id, zones)``; zones carry a DTC only in the 11-byte form."""
    if len(payload) < HVAC_MIN_LENGTH:
        raise ProtocolError(f"hvac status too short: {len(payload)} bytes")
    table_id = payload[1]
    body = payload[2:]
    size = _hvac_zone_size(len(body))
    zones: list[HvacZoneStatus] = []
    for offset in range(0, len(body) - size + 1, size):
        chunk = body[offset : offset + size]
        block = HvacZoneBlock.decode(chunk)
        dtc = (chunk[9] << 8) | chunk[10] if size == HVAC_ZONE_LENGTH else None
        zones.append(
            HvacZoneStatus(
                device_id=block.device_id,
                command=block.command,
                low_trip=block.low_trip,
                high_trip=block.high_trip,
                zone_status=block.zone_status,
                indoor_temperature=_hvac_temperature(block.indoor_raw),
                outdoor_temperature=_hvac_temperature(block.outdoor_raw),
                dtc=dtc,
            )
        )
    return table_id, tuple(zones)


def decode_command_response(payload: bytes) -> CommandResponse:
    event = CommandResponseEvent.decode(payload)
    return CommandResponse(event.command_id, event.response_type)


def decode_metadata_response(
    payload: bytes,
    *,
    name_byte_order: Literal["big", "little"] = "big",
) -> tuple[FunctionEntry, ...]:
    """Parse a GetDevicesMetadata response into function-name entries.

    The function-name code is two bytes whose order is opposite to the
    little-endian command id on current firmware. It is taken from
    *name_byte_order* so new firmware revisions can be accommodated without
    touching the parser.
    """
    event = MetadataResponseEvent.decode(payload)
    entries: list[FunctionEntry] = []
    data = event.entries
    offset = 0
    index = 0
    while index < event.count and offset + 2 < len(data):
        protocol = data[offset]
        size = data[offset + 1]
        end = offset + 2 + size
        if end > len(data):
            logger.debug("Metadata entry %d overflows payload (need %d, have %d).", index, end, len(data))
            break
        if protocol == METADATA_ENTRY_PROTOCOL and size == METADATA_ENTRY_PAYLOAD:
            entries.append(
                FunctionEntry(
                    table_id=event.table_id,
                    device_id=(event.start_id + index) & 0xFF,
                    function_name=int.from_bytes(data[offset + 2 : offset + 4], name_byte_order),
                    function_instance=data[offset + 4],
                )
            )
        offset = end
        index += 1
    return tuple(entries)


# --- Command builders ---


def encode_get_devices(command_id: int, table_id: int) -> bytes:
    return GetDevicesPacket(command_id=command_id, table_id=table_id).encode()


def encode_get_devices_metadata(command_id: int, table_id: int) -> bytes:
    return GetDevicesMetadataPacket(command_id=command_id, table_id=table_id).encode()


def encode_switch(command_id: int, table_id: int, device_id: int, on: bool) -> bytes:
    return ActionSwitchPacket(
        command_id=command_id,
        table_id=table_id,
        state=0x01 if on else 0x00,
        device_ids=bytes((device_id,)),
    ).encode()


def encode_dimmable(command_id: int, table_id: int, device_id: int, brightness: int) -> bytes:
    level = max(0, min(255, brightness))
    return ActionDimmablePacket(
        command_id=command_id,
        table_id=table_id,
        device_id=device_id,
        mode=0x01 if level else 0x00,
        brightness=level,
    ).encode()


def encode_hvac(
    command_id: int,
    table_id: int,
    device_id: int,
    *,
    heat_mode: int,
    heat_source: int,
    fan_mode: int,
    low_trip: int,
    high_trip: int,
) -> bytes:
    command = (heat_mode & 0x07) | ((heat_source & 0x03) << 4) | ((fan_mode & 0x03) << 6)
    return ActionHvacPacket(
        command_id=command_id,
        table_id=table_id,
        device_id=device_id,
        command=command,
        low_trip=max(0, min(255, low_trip)),
        high_trip=max(0, min(255, high_trip)),
    ).encode()


__all__ = [
    "CommandIdAllocator",
    "CommandResponse",
    "CommandType",
    "CoverStatus",
    "DEFAULT_DEVICE_TABLE_ID",
    "DIMMER_MODE_NAMES",
    "EventType",
    "FunctionEntry",
    "GENERIC_EVENT_NAMES",
    "HvacZoneStatus",
    "RelayStatus",
    "RvStatus",
    "TankStatus",
    "decode_command_response",
    "decode_cover_status",
    "decode_hvac_status",
    "decode_metadata_response",
    "decode_relay_status",
    "decode_rv_status",
    "decode_tank_status",
    "encode_dimmable",
    "encode_get_devices",
    "encode_get_devices_metadata",
    "encode_hvac",
    "encode_switch",
]
