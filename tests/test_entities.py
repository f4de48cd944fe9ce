"""Tests for the entity state model."""

from __future__ import annotations

import msgspec
import pytest

from blebridge.state.entities import (
    CoverSensor,
    DimmableLight,
    Entity,
    EntityKey,
    EntityStateModel,
    HvacZone,
    NumericSensor,
    Switch,
    Tank,
    entity_type,
    fallback_name,
    matches_target,
    state_fields,
)


def test_entity_key_text_form() -> None:
    key = EntityKey(8, 5)
    assert str(key) == "8:5"
    assert key.address == 0x0805
    assert EntityKey.parse("8:5") == key
    with pytest.raises(ValueError):
        EntityKey.parse("eight:5")


@pytest.mark.parametrize(
    ("entity", "tag", "name"),
    [
        (Switch(table_id=8, device_id=5, is_on=True), "switch", "Switch 0805"),
        (DimmableLight(table_id=8, device_id=9, brightness=10, mode=1), "light", "Light 0809"),
        (Tank(table_id=8, device_id=10, level=33), "tank", "Tank 080a"),
        (CoverSensor(table_id=8, device_id=11, status=0xC0), "cover", "Cover 080b"),
        (NumericSensor(table_id=0, device_id=1, metric="pv_voltage", value=18.4), "sensor_pv_voltage", "Pv Voltage"),
        (HvacZone(table_id=8, device_id=2, mode="cool"), "hvac", "Climate Zone 2"),
    ],
)
def test_type_tag_and_fallback_name(entity: Entity, tag: str, name: str) -> None:
    assert entity_type(entity) == tag
    assert fallback_name(entity) == name


def test_switch_fields_include_dtc_only_when_known() -> None:
    assert state_fields(Switch(table_id=8, device_id=5, is_on=False)) == {"state": "OFF"}
    assert state_fields(Switch(table_id=8, device_id=5, is_on=True, dtc=300)) == {"state": "ON", "dtc": "300"}


def test_dimmable_fields() -> None:
    fields = state_fields(DimmableLight(table_id=8, device_id=9, brightness=200, mode=1))
    assert fields == {"state": "ON", "brightness": "200", "mode": "on"}
    assert state_fields(DimmableLight(table_id=8, device_id=9, brightness=0, mode=0))["state"] == "OFF"


def test_numeric_sensor_precision() -> None:
    voltage = NumericSensor(table_id=0, device_id=1, metric="pv_voltage", value=18.4, precision=2)
    assert state_fields(voltage) == {"pv_voltage": "18.40"}
    firmware = NumericSensor(table_id=0, device_id=9, metric="firmware", value="12")
    assert state_fields(firmware) == {"firmware": "12"}


def test_hvac_fields_render_unknown_temperatures() -> None:
    zone = HvacZone(
        table_id=8,
        device_id=1,
        mode="heat_cool",
        fan_mode="auto",
        current_temperature=71.5,
        target_temperature_low=68,
        target_temperature_high=76,
    )
    fields = state_fields(zone)
    assert fields["current_temperature"] == "71.5"
    assert fields["target_temperature"] == "None"
    assert fields["target_temperature_low"] == "68"
    assert "outdoor_temperature" not in fields


def test_entities_round_trip_through_tagged_union() -> None:
    entity = DimmableLight(table_id=8, device_id=9, brightness=42, mode=1)
    encoded = msgspec.json.encode(entity)
    assert b'"kind":"light"' in encoded
    assert msgspec.json.decode(encoded, type=Entity) == entity


def test_matches_target() -> None:
    light = DimmableLight(table_id=8, device_id=9, brightness=200, mode=1)
    assert matches_target(light, {"brightness": 200})
    assert not matches_target(light, {"brightness": 0})
    assert not matches_target(light, {"missing": 1})


def test_state_model_keeps_one_entity_per_key() -> None:
    model = EntityStateModel()
    first = Switch(table_id=8, device_id=5, is_on=False)
    second = Switch(table_id=8, device_id=5, is_on=True)

    assert model.accept(first) is None
    assert model.accept(second) == first
    assert len(model) == 1
    assert model.get(EntityKey(8, 5)) == second
    assert EntityKey(8, 5) in model

    model.clear()
    assert len(model) == 0
