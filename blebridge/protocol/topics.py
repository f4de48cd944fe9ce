"""MQTT topic helpers shared across bridge components.

Every state, command, diagnostic and discovery topic is built here; avoid
hardcoding topic strings elsewhere.
"""

from __future__ import annotations

from enum import StrEnum

import msgspec

from ..config.const import BRIDGE_STATUS_SEGMENT


class Topic(StrEnum):
    DEVICE = "device"
    COMMAND = "command"
    DIAG = "diag"
    EVENTS = "events"
    AVAILABILITY = "availability"


class CommandRoute(msgspec.Struct, frozen=True):
    """Parsed representation of an inbound command topic."""

    raw: str
    entity_type: str
    table_id: int
    device_id: int
    subfield: str | None = None


def _split_segments(path: str) -> tuple[str, ...]:
    if not path:
        return ()
    return tuple(segment for segment in path.split("/") if segment)


def topic_path(prefix: str, *segments: str | int) -> str:
    """Join prefix and sub-segments into a topic path."""
    parts = list(_split_segments(prefix))
    for segment in segments:
        cleaned = str(segment).strip("/")
        if cleaned:
            parts.append(cleaned)
    if not parts:
        raise ValueError("topic cannot be empty")
    return "/".join(parts)


def peripheral_base(prefix: str, namespace: str, address: str) -> str:
    """e.g. homeassistant/onecontrol/24:DC:C3:ED:1E:0A"""
    return topic_path(prefix, namespace, address)


def state_topic(base: str, table_id: int, device_id: int, field: str) -> str:
    return topic_path(base, Topic.DEVICE, table_id, device_id, field)


def command_topic(base: str, entity_type: str, table_id: int, device_id: int, subfield: str | None = None) -> str:
    if subfield:
        return topic_path(base, Topic.COMMAND, entity_type, table_id, device_id, subfield)
    return topic_path(base, Topic.COMMAND, entity_type, table_id, device_id)


def command_pattern(base: str) -> str:
    return topic_path(base, Topic.COMMAND, "#")


def diag_topic(base: str, name: str) -> str:
    return topic_path(base, Topic.DIAG, name)


def event_topic(base: str, name: str) -> str:
    return topic_path(base, Topic.EVENTS, name)


def availability_topic(base: str) -> str:
    return topic_path(base, Topic.AVAILABILITY)


def bridge_status_topic(prefix: str) -> str:
    return topic_path(prefix, BRIDGE_STATUS_SEGMENT, "status")


def node_id(namespace: str, address: str) -> str:
    return f"{namespace}_ble_{address.replace(':', '').lower()}"


def object_id(object_prefix: str, table_id: int, device_id: int) -> str:
    return f"{object_prefix}_{table_id:02x}{device_id:02x}"


def discovery_topic(
    discovery_prefix: str,
    component: str,
    namespace: str,
    address: str,
    object_prefix: str,
    table_id: int,
    device_id: int,
) -> str:
    """e.g. homeassistant/light/onecontrol_ble_24dcc3ed1e0a/light_0809/config"""
    return topic_path(
        discovery_prefix,
        component,
        node_id(namespace, address),
        object_id(object_prefix, table_id, device_id),
        "config",
    )


def named_discovery_topic(
    discovery_prefix: str, component: str, namespace: str, address: str, object_name: str
) -> str:
    """Discovery topic for per-peripheral records that have no entity key."""
    return topic_path(discovery_prefix, component, node_id(namespace, address), object_name, "config")


def parse_command_topic(base: str, topic_name: str) -> CommandRoute | None:
    """Parse ``{base}/command/{type}/{table}/{id}[/{sub}]``."""
    base_segments = _split_segments(base)
    segments = _split_segments(topic_name)
    if segments[: len(base_segments)] != base_segments:
        return None
    remainder = segments[len(base_segments) :]
    if len(remainder) not in (4, 5) or remainder[0] != Topic.COMMAND:
        return None
    try:
        table_id = int(remainder[2])
        device_id = int(remainder[3])
    except ValueError:
        return None
    if not (0 <= table_id <= 0xFF and 0 <= device_id <= 0xFF):
        return None
    return CommandRoute(
        raw=topic_name,
        entity_type=remainder[1],
        table_id=table_id,
        device_id=device_id,
        subfield=remainder[4] if len(remainder) == 5 else None,
    )


__all__ = [
    "CommandRoute",
    "Topic",
    "availability_topic",
    "bridge_status_topic",
    "command_pattern",
    "command_topic",
    "diag_topic",
    "discovery_topic",
    "event_topic",
    "named_discovery_topic",
    "node_id",
    "object_id",
    "parse_command_topic",
    "peripheral_base",
    "state_topic",
    "topic_path",
]
