"""Home Assistant MQTT discovery documents.

Each builder returns a :class:`DiscoveryRecord`; the entity publisher keeps
the builder closure per ``(entity type, key)`` so a resolved friendly name
can be pushed by calling it again.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import msgspec

from .. import __version__
from ..protocol.topics import (
    availability_topic,
    command_topic,
    diag_topic,
    discovery_topic,
    named_discovery_topic,
    node_id,
    object_id,
    state_topic,
)

PAYLOAD_ON = "ON"
PAYLOAD_OFF = "OFF"
PAYLOAD_PRESS = "PRESS"

_MANUFACTURERS = {
    "onecontrol": "Lippert",
    "easytouch": "Micro-Air",
    "gopower": "GoPower",
}
_MODELS = {
    "onecontrol": "OneControl Gateway",
    "easytouch": "EasyTouch Thermostat",
    "gopower": "Solar Charge Controller",
}


class DiscoveryRecord(msgspec.Struct, frozen=True):
    component: str
    topic: str
    payload: dict[str, Any]


DiscoveryBuilder = Callable[[str], DiscoveryRecord]


class DiscoveryContext(msgspec.Struct, frozen=True):
    """Per-peripheral values shared by every discovery document."""

    discovery_prefix: str
    namespace: str
    address: str
    base: str

    @property
    def node(self) -> str:
        return node_id(self.namespace, self.address)

    def device_info(self) -> dict[str, Any]:
        return {
            "identifiers": [self.node],
            "name": f"{_MODELS.get(self.namespace, self.namespace)} {self.address[-8:]}",
            "model": _MODELS.get(self.namespace, self.namespace),
            "manufacturer": _MANUFACTURERS.get(self.namespace, "Unknown"),
            "sw_version": __version__,
            "connections": [["mac", self.address]],
        }

    def _common(self, unique: str, name: str) -> dict[str, Any]:
        return {
            "unique_id": f"{self.node}_{unique}",
            "name": name,
            "device": self.device_info(),
            "availability_topic": availability_topic(self.base),
        }

    def _keyed(self, component: str, prefix: str, table_id: int, device_id: int, name: str) -> tuple[str, dict[str, Any]]:
        topic = discovery_topic(
            self.discovery_prefix, component, self.namespace, self.address, prefix, table_id, device_id
        )
        return topic, self._common(object_id(prefix, table_id, device_id), name)

    def switch(self, table_id: int, device_id: int, name: str) -> DiscoveryRecord:
        topic, payload = self._keyed("switch", "switch", table_id, device_id, name)
        payload.update(
            state_topic=state_topic(self.base, table_id, device_id, "state"),
            command_topic=command_topic(self.base, "switch", table_id, device_id),
            payload_on=PAYLOAD_ON,
            payload_off=PAYLOAD_OFF,
            optimistic=False,
        )
        return DiscoveryRecord("switch", topic, payload)

    def light(self, table_id: int, device_id: int, name: str) -> DiscoveryRecord:
        topic, payload = self._keyed("light", "light", table_id, device_id, name)
        command = command_topic(self.base, "light", table_id, device_id)
        payload.update(
            state_topic=state_topic(self.base, table_id, device_id, "state"),
            command_topic=command,
            brightness_state_topic=state_topic(self.base, table_id, device_id, "brightness"),
            brightness_command_topic=f"{command}/brightness",
            brightness_scale=255,
            on_command_type="brightness",
            payload_on=PAYLOAD_ON,
            payload_off=PAYLOAD_OFF,
            optimistic=False,
        )
        return DiscoveryRecord("light", topic, payload)

    def sensor(
        self,
        table_id: int,
        device_id: int,
        name: str,
        *,
        field: str,
        object_prefix: str = "sensor",
        unit: str | None = None,
        device_class: str | None = None,
        state_class: str | None = "measurement",
        icon: str | None = None,
        entity_category: str | None = None,
    ) -> DiscoveryRecord:
        topic, payload = self._keyed("sensor", object_prefix, table_id, device_id, name)
        payload["state_topic"] = state_topic(self.base, table_id, device_id, field)
        for key, value in (
            ("unit_of_measurement", unit),
            ("device_class", device_class),
            ("state_class", state_class),
            ("icon", icon),
            ("entity_category", entity_category),
        ):
            if value is not None:
                payload[key] = value
        return DiscoveryRecord("sensor", topic, payload)

    def tank(self, table_id: int, device_id: int, name: str) -> DiscoveryRecord:
        return self.sensor(
            table_id, device_id, name, field="level", object_prefix="tank", unit="%", icon="mdi:storage-tank"
        )

    def cover_sensor(self, table_id: int, device_id: int, name: str) -> DiscoveryRecord:
        # Motion is reported only; no command topic is advertised.
        return self.sensor(
            table_id, device_id, name, field="state", object_prefix="cover", state_class=None, icon="mdi:arrow-expand-horizontal"
        )

    def climate(
        self,
        table_id: int,
        device_id: int,
        name: str,
        *,
        modes: Sequence[str],
        fan_modes: Sequence[str],
        min_temp: float | None = None,
        max_temp: float | None = None,
        dual_setpoint: bool = True,
    ) -> DiscoveryRecord:
        topic, payload = self._keyed("climate", "hvac", table_id, device_id, name)

        def state(field: str) -> str:
            return state_topic(self.base, table_id, device_id, field)

        def command(sub: str) -> str:
            return command_topic(self.base, "hvac", table_id, device_id, sub)

        payload.update(
            mode_state_topic=state("mode"),
            mode_command_topic=command("mode"),
            modes=list(modes),
            fan_mode_state_topic=state("fan_mode"),
            fan_mode_command_topic=command("fan_mode"),
            fan_modes=list(fan_modes),
            current_temperature_topic=state("current_temperature"),
            temperature_state_topic=state("target_temperature"),
            temperature_command_topic=command("temperature"),
            temperature_unit="F",
            precision=1.0,
        )
        if dual_setpoint:
            payload.update(
                temperature_high_state_topic=state("target_temperature_high"),
                temperature_high_command_topic=command("temperature_high"),
                temperature_low_state_topic=state("target_temperature_low"),
                temperature_low_command_topic=command("temperature_low"),
            )
        if min_temp is not None:
            payload["min_temp"] = min_temp
        if max_temp is not None:
            payload["max_temp"] = max_temp
        return DiscoveryRecord("climate", topic, payload)

    def button(self, table_id: int, device_id: int, name: str, *, action: str, icon: str | None = None) -> DiscoveryRecord:
        topic, payload = self._keyed("button", f"button_{action}", table_id, device_id, name)
        payload.update(
            command_topic=command_topic(self.base, "button", table_id, device_id, action),
            payload_press=PAYLOAD_PRESS,
            entity_category="config",
        )
        if icon:
            payload["icon"] = icon
        return DiscoveryRecord("button", topic, payload)

    def diagnostic(self, name: str, label: str) -> DiscoveryRecord:
        """Binary sensor for ``diag/{name}``."""
        topic = named_discovery_topic(self.discovery_prefix, "binary_sensor", self.namespace, self.address, f"diag_{name}")
        payload = {
            "unique_id": f"{self.node}_diag_{name}",
            "name": label,
            "state_topic": diag_topic(self.base, name),
            "payload_on": PAYLOAD_ON,
            "payload_off": PAYLOAD_OFF,
            "entity_category": "diagnostic",
            "device": self.device_info(),
        }
        return DiscoveryRecord("binary_sensor", topic, payload)

    def diagnostic_text(self, name: str, label: str, icon: str | None = None) -> DiscoveryRecord:
        topic = named_discovery_topic(self.discovery_prefix, "sensor", self.namespace, self.address, f"diag_{name}")
        payload: dict[str, Any] = {
            "unique_id": f"{self.node}_diag_{name}",
            "name": label,
            "state_topic": diag_topic(self.base, name),
            "entity_category": "diagnostic",
            "device": self.device_info(),
        }
        if icon:
            payload["icon"] = icon
        return DiscoveryRecord("sensor", topic, payload)


__all__ = [
    "DiscoveryBuilder",
    "DiscoveryContext",
    "DiscoveryRecord",
    "PAYLOAD_OFF",
    "PAYLOAD_ON",
    "PAYLOAD_PRESS",
]
