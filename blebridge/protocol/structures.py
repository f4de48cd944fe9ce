"""Binary packet layouts for the OneControl bus.

Each packet is a hybrid: a construct schema validates the wire layout and a
frozen msgspec struct carries the typed fields. Schema members whose names
start with ``_`` (tags, reserved bytes, trailing extensions) are checked or
skipped but never surface as struct fields.
"""

from __future__ import annotations

from typing import Any, ClassVar, Type, TypeVar

import msgspec
from construct import (  # type: ignore
    Const,
    Construct,
    ConstructError,
    GreedyBytes,
    Int8ub,
    Int16ub,
    Int16ul,
    Struct as BinStruct,
)

from ..errors import ProtocolError

T = TypeVar("T", bound="BaseStruct")


class BaseStruct(msgspec.Struct, frozen=True):
    """Base class for hybrid msgspec/construct structures."""

    _SCHEMA: ClassVar[Construct[Any]]
    MIN_LENGTH: ClassVar[int] = 1

    @classmethod
    def decode(cls: Type[T], data: bytes | bytearray | memoryview) -> T:
        raw = bytes(data)
        if len(raw) < cls.MIN_LENGTH:
            raise ProtocolError(f"{cls.__name__}: {len(raw)} bytes, need at least {cls.MIN_LENGTH}")
        try:
            container: Any = cls._SCHEMA.parse(raw)
        except ConstructError as exc:
            raise ProtocolError(f"{cls.__name__}: {exc}") from exc
        return cls(**{k: v for k, v in container.items() if not k.startswith("_")})

    def encode(self) -> bytes:
        return self._SCHEMA.build(msgspec.structs.asdict(self))


# --- Outbound commands (command id is little-endian) ---


class GetDevicesPacket(BaseStruct, frozen=True):
    command_id: int
    table_id: int
    start_id: int = 0
    max_count: int = 0xFF

    _SCHEMA = BinStruct(
        "command_id" / Int16ul,
        "_command_type" / Const(0x01, Int8ub),
        "table_id" / Int8ub,
        "start_id" / Int8ub,
        "max_count" / Int8ub,
    )


class GetDevicesMetadataPacket(BaseStruct, frozen=True):
    command_id: int
    table_id: int
    start_id: int = 0
    max_count: int = 0xFF

    _SCHEMA = BinStruct(
        "command_id" / Int16ul,
        "_command_type" / Const(0x02, Int8ub),
        "table_id" / Int8ub,
        "start_id" / Int8ub,
        "max_count" / Int8ub,
    )


class ActionSwitchPacket(BaseStruct, frozen=True):
    command_id: int
    table_id: int
    state: int
    device_ids: bytes

    _SCHEMA = BinStruct(
        "command_id" / Int16ul,
        "_command_type" / Const(0x40, Int8ub),
        "table_id" / Int8ub,
        "state" / Int8ub,
        "device_ids" / GreedyBytes,
    )


class ActionDimmablePacket(BaseStruct, frozen=True):
    command_id: int
    table_id: int
    device_id: int
    mode: int
    brightness: int

    _SCHEMA = BinStruct(
        "command_id" / Int16ul,
        "_command_type" / Const(0x43, Int8ub),
        "table_id" / Int8ub,
        "device_id" / Int8ub,
        "mode" / Int8ub,
        "brightness" / Int8ub,
        "_reserved" / Const(0x00, Int8ub),
    )


class ActionHvacPacket(BaseStruct, frozen=True):
    command_id: int
    table_id: int
    device_id: int
    command: int
    low_trip: int
    high_trip: int

    _SCHEMA = BinStruct(
        "command_id" / Int16ul,
        "_command_type" / Const(0x45, Int8ub),
        "table_id" / Int8ub,
        "device_id" / Int8ub,
        "command" / Int8ub,
        "low_trip" / Int8ub,
        "high_trip" / Int8ub,
    )


# --- Inbound events (first byte is the event tag) ---


class GatewayInformationEvent(BaseStruct, frozen=True):
    protocol_version: int
    options: int
    device_count: int
    table_id: int

    MIN_LENGTH = 5
    _SCHEMA = BinStruct(
        "_tag" / Int8ub,
        "protocol_version" / Int8ub,
        "options" / Int8ub,
        "device_count" / Int8ub,
        "table_id" / Int8ub,
        "_rest" / GreedyBytes,
    )


class DeviceStatusEvent(BaseStruct, frozen=True):
    """Common ``[tag][table][device][status]`` prefix shared by several events."""

    table_id: int
    device_id: int
    status: int
    extension: bytes

    MIN_LENGTH = 4
    _SCHEMA = BinStruct(
        "_tag" / Int8ub,
        "table_id" / Int8ub,
        "device_id" / Int8ub,
        "status" / Int8ub,
        "extension" / GreedyBytes,
    )


class DimmableLightEvent(BaseStruct, frozen=True):
    table_id: int
    device_id: int
    mode: int
    brightness: int

    MIN_LENGTH = 5
    _SCHEMA = BinStruct(
        "_tag" / Int8ub,
        "table_id" / Int8ub,
        "device_id" / Int8ub,
        "mode" / Int8ub,
        "brightness" / Int8ub,
        "_rest" / GreedyBytes,
    )


class RvStatusEvent(BaseStruct, frozen=True):
    voltage_raw: int
    temperature_raw: int

    MIN_LENGTH = 6
    _SCHEMA = BinStruct(
        "_tag" / Int8ub,
        "voltage_raw" / Int16ub,
        "temperature_raw" / Int16ub,
        "_rest" / GreedyBytes,
    )


class CommandResponseEvent(BaseStruct, frozen=True):
    command_id: int
    response_type: int
    body: bytes

    MIN_LENGTH = 4
    _SCHEMA = BinStruct(
        "_tag" / Int8ub,
        "command_id" / Int16ul,
        "response_type" / Int8ub,
        "body" / GreedyBytes,
    )


class MetadataResponseEvent(BaseStruct, frozen=True):
    command_id: int
    response_type: int
    table_id: int
    start_id: int
    count: int
    entries: bytes

    MIN_LENGTH = 8
    _SCHEMA = BinStruct(
        "_tag" / Int8ub,
        "command_id" / Int16ul,
        "response_type" / Int8ub,
        "table_id" / Int8ub,
        "start_id" / Int8ub,
        "count" / Int8ub,
        "entries" / GreedyBytes,
    )


class HvacZoneBlock(BaseStruct, frozen=True):
    """One zone of an HVAC status event, without the optional DTC suffix."""

    device_id: int
    command: int
    low_trip: int
    high_trip: int
    zone_status: int
    indoor_raw: int
    outdoor_raw: int

    MIN_LENGTH = 9
    _SCHEMA = BinStruct(
        "device_id" / Int8ub,
        "command" / Int8ub,
        "low_trip" / Int8ub,
        "high_trip" / Int8ub,
        "zone_status" / Int8ub,
        "indoor_raw" / Int16ub,
        "outdoor_raw" / Int16ub,
        "_rest" / GreedyBytes,
    )


__all__ = [
    "ActionDimmablePacket",
    "ActionHvacPacket",
    "ActionSwitchPacket",
    "BaseStruct",
    "CommandResponseEvent",
    "DeviceStatusEvent",
    "DimmableLightEvent",
    "GatewayInformationEvent",
    "GetDevicesMetadataPacket",
    "GetDevicesPacket",
    "HvacZoneBlock",
    "MetadataResponseEvent",
    "RvStatusEvent",
]
