"""Entity state model.

Entities are a tagged union of frozen msgspec structs. Every site that
needs per-variant behaviour matches exhaustively and ends in
``assert_never`` so a new variant cannot be silently ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, Final, assert_never

import msgspec

from ..protocol.myrvlink import COVER_STATUS_NAMES, DIMMER_MODE_NAMES

logger = logging.getLogger("blebridge.state.entities")

UNAVAILABLE: Final[str] = "None"


class EntityKey(msgspec.Struct, frozen=True, order=True):
    table_id: int
    device_id: int

    def __str__(self) -> str:
        return f"{self.table_id}:{self.device_id}"

    @property
    def address(self) -> int:
        return (self.table_id << 8) | self.device_id

    @classmethod
    def parse(cls, text: str) -> EntityKey:
        table, _, device = text.partition(":")
        return cls(int(table), int(device))


class _EntityBase(msgspec.Struct, frozen=True, kw_only=True, tag_field="kind"):
    table_id: int
    device_id: int
    name: str = ""

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.table_id, self.device_id)


class Switch(_EntityBase, frozen=True, kw_only=True, tag="switch"):
    is_on: bool
    dtc: int | None = None


class DimmableLight(_EntityBase, frozen=True, kw_only=True, tag="light"):
    brightness: int
    mode: int


class Tank(_EntityBase, frozen=True, kw_only=True, tag="tank"):
    level: int


class CoverSensor(_EntityBase, frozen=True, kw_only=True, tag="cover"):
    status: int
    position: int | None = None


class NumericSensor(_EntityBase, frozen=True, kw_only=True, tag="sensor"):
    metric: str
    value: float | int | str
    unit: str | None = None
    precision: int | None = None


class HvacZone(_EntityBase, frozen=True, kw_only=True, tag="hvac"):
    mode: str
    fan_mode: str = "off"
    action: str | None = None
    current_temperature: float | None = None
    outdoor_temperature: float | None = None
    target_temperature: float | None = None
    target_temperature_high: float | None = None
    target_temperature_low: float | None = None
    modes: tuple[str, ...] = ()
    min_temperature: float | None = None
    max_temperature: float | None = None
    dtc: int | None = None


Entity = Switch | DimmableLight | Tank | CoverSensor | NumericSensor | HvacZone


def entity_type(entity: Entity) -> str:
    """Stable type tag used in topics and in the discovery publication set."""
    match entity:
        case Switch():
            return "switch"
        case DimmableLight():
            return "light"
        case Tank():
            return "tank"
        case CoverSensor():
            return "cover"
        case NumericSensor():
            return f"sensor_{entity.metric}"
        case HvacZone():
            return "hvac"
        case _:
            assert_never(entity)


def _fmt(value: float | None, precision: int = 1) -> str:
    if value is None:
        return UNAVAILABLE
    return f"{value:.{precision}f}"


def state_fields(entity: Entity) -> dict[str, str]:
    """Render the sink sub-topics for *entity*: field name to payload."""
    match entity:
        case Switch():
            fields = {"state": "ON" if entity.is_on else "OFF"}
            if entity.dtc is not None:
                fields["dtc"] = str(entity.dtc)
            return fields
        case DimmableLight():
            return {
                "state": "ON" if entity.mode != 0 else "OFF",
                "brightness": str(entity.brightness),
                "mode": DIMMER_MODE_NAMES.get(entity.mode, str(entity.mode)),
            }
        case Tank():
            return {"level": str(entity.level)}
        case CoverSensor():
            fields = {"state": COVER_STATUS_NAMES.get(entity.status, "unknown")}
            if entity.position is not None:
                fields["position"] = str(entity.position)
            return fields
        case NumericSensor():
            if isinstance(entity.value, float) and entity.precision is not None:
                return {entity.metric: f"{entity.value:.{entity.precision}f}"}
            return {entity.metric: str(entity.value)}
        case HvacZone():
            fields = {
                "mode": entity.mode,
                "fan_mode": entity.fan_mode,
                "current_temperature": _fmt(entity.current_temperature),
                "target_temperature": _fmt(entity.target_temperature, 0),
                "target_temperature_high": _fmt(entity.target_temperature_high, 0),
                "target_temperature_low": _fmt(entity.target_temperature_low, 0),
            }
            if entity.action is not None:
                fields["action"] = entity.action
            if entity.outdoor_temperature is not None:
                fields["outdoor_temperature"] = _fmt(entity.outdoor_temperature)
            if entity.dtc is not None:
                fields["dtc"] = str(entity.dtc)
            return fields
        case _:
            assert_never(entity)


def fallback_name(entity: Entity) -> str:
    """Generic label used until metadata resolves a friendly name."""
    address = entity.key.address
    match entity:
        case Switch():
            return f"Switch {address:04x}"
        case DimmableLight():
            return f"Light {address:04x}"
        case Tank():
            return f"Tank {address:04x}"
        case CoverSensor():
            return f"Cover {address:04x}"
        case NumericSensor():
            return entity.metric.replace("_", " ").title()
        case HvacZone():
            return f"Climate Zone {entity.device_id}"
        case _:
            assert_never(entity)


def matches_target(entity: Entity, target: dict[str, Any]) -> bool:
    return all(getattr(entity, field, None) == value for field, value in target.items())


class EntityStateModel:
    """At most one live entity per key, overwritten in place."""

    __slots__ = ("_entities",)

    def __init__(self) -> None:
        self._entities: dict[EntityKey, Entity] = {}

    def accept(self, entity: Entity) -> Entity | None:
        """Store *entity*; return the value it replaced."""
        key = entity.key
        previous = self._entities.get(key)
        self._entities[key] = entity
        return previous

    def get(self, key: EntityKey) -> Entity | None:
        return self._entities.get(key)

    def clear(self) -> None:
        self._entities.clear()

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, key: object) -> bool:
        return key in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._entities.values()))


__all__ = [
    "CoverSensor",
    "DimmableLight",
    "Entity",
    "EntityKey",
    "EntityStateModel",
    "HvacZone",
    "NumericSensor",
    "Switch",
    "Tank",
    "entity_type",
    "fallback_name",
    "matches_target",
    "state_fields",
]
