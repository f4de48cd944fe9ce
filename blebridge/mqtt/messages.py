"""Outbound MQTT messages produced by the sessions.

Sessions emit three kinds of publish: per-field entity state (plain text),
Home Assistant discovery documents (JSON) and availability markers. Each kind
fixes its QoS, retain flag and MQTT v5 properties here so the sink only has
to forward the queued message.
"""

from __future__ import annotations

from typing import Final

import msgspec
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties

UserProperty = tuple[str, str]

QOS_AT_MOST_ONCE: Final[int] = 0
QOS_AT_LEAST_ONCE: Final[int] = 1

CONTENT_TYPE_TEXT: Final[str] = "text/plain"
CONTENT_TYPE_JSON: Final[str] = "application/json"

# Seconds a non-retained state publish may wait at the broker.
VOLATILE_STATE_EXPIRY: Final[int] = 60


class QueuedPublish(msgspec.Struct):
    """Outbound MQTT publish waiting in the sink queue."""

    topic_name: str
    payload: bytes
    qos: int = QOS_AT_MOST_ONCE
    retain: bool = False
    content_type: str | None = None
    message_expiry_interval: int | None = None
    user_properties: tuple[UserProperty, ...] = ()

    @classmethod
    def entity_state(cls, topic: str, value: str, *, retain: bool = True) -> QueuedPublish:
        return cls(
            topic_name=topic,
            payload=value.encode("utf-8"),
            retain=retain,
            content_type=CONTENT_TYPE_TEXT,
            message_expiry_interval=None if retain else VOLATILE_STATE_EXPIRY,
        )

    @classmethod
    def discovery(cls, topic: str, document: object) -> QueuedPublish:
        return cls(
            topic_name=topic,
            payload=msgspec.json.encode(document),
            qos=QOS_AT_LEAST_ONCE,
            retain=True,
            content_type=CONTENT_TYPE_JSON,
            user_properties=(("schema", "homeassistant"),),
        )

    @classmethod
    def availability(cls, topic: str, payload: str) -> QueuedPublish:
        return cls(
            topic_name=topic,
            payload=payload.encode("utf-8"),
            qos=QOS_AT_LEAST_ONCE,
            retain=True,
            content_type=CONTENT_TYPE_TEXT,
        )

    def properties(self) -> Properties | None:
        """MQTT v5 PUBLISH properties; None when the message carries none."""
        if not (self.content_type or self.message_expiry_interval is not None or self.user_properties):
            return None
        props = Properties(PacketTypes.PUBLISH)
        if self.content_type is not None:
            props.ContentType = self.content_type
            # Every payload the bridge emits is UTF-8.
            props.PayloadFormatIndicator = 1
        if self.message_expiry_interval is not None:
            props.MessageExpiryInterval = self.message_expiry_interval
        if self.user_properties:
            props.UserProperty = list(self.user_properties)
        return props


__all__ = [
    "CONTENT_TYPE_JSON",
    "CONTENT_TYPE_TEXT",
    "QOS_AT_LEAST_ONCE",
    "QOS_AT_MOST_ONCE",
    "QueuedPublish",
]
