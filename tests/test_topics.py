"""Tests for MQTT topic construction and command routing."""

from __future__ import annotations

import pytest

from blebridge.protocol.topics import (
    CommandRoute,
    availability_topic,
    bridge_status_topic,
    command_pattern,
    command_topic,
    diag_topic,
    discovery_topic,
    node_id,
    parse_command_topic,
    peripheral_base,
    state_topic,
    topic_path,
)

BASE = "homeassistant/onecontrol/24:DC:C3:ED:1E:0A"


def test_peripheral_base_and_children() -> None:
    assert peripheral_base("homeassistant", "onecontrol", "24:DC:C3:ED:1E:0A") == BASE
    assert state_topic(BASE, 8, 9, "brightness") == f"{BASE}/device/8/9/brightness"
    assert command_topic(BASE, "light", 8, 9) == f"{BASE}/command/light/8/9"
    assert command_topic(BASE, "hvac", 8, 1, "mode") == f"{BASE}/command/hvac/8/1/mode"
    assert command_pattern(BASE) == f"{BASE}/command/#"
    assert diag_topic(BASE, "connected") == f"{BASE}/diag/connected"
    assert availability_topic(BASE) == f"{BASE}/availability"


def test_topic_path_normalises_slashes() -> None:
    assert topic_path("/a//b/", "/c/", 5) == "a/b/c/5"
    with pytest.raises(ValueError):
        topic_path("", "")


def test_discovery_topic_layout() -> None:
    assert node_id("onecontrol", "24:DC:C3:ED:1E:0A") == "onecontrol_ble_24dcc3ed1e0a"
    topic = discovery_topic("homeassistant", "light", "onecontrol", "24:DC:C3:ED:1E:0A", "light", 8, 9)
    assert topic == "homeassistant/light/onecontrol_ble_24dcc3ed1e0a/light_0809/config"


def test_bridge_status_topic() -> None:
    assert bridge_status_topic("homeassistant").startswith("homeassistant/")
    assert bridge_status_topic("homeassistant").endswith("/status")


def test_parse_command_topic() -> None:
    route = parse_command_topic(BASE, f"{BASE}/command/light/8/9/brightness")
    assert route == CommandRoute(
        raw=f"{BASE}/command/light/8/9/brightness",
        entity_type="light",
        table_id=8,
        device_id=9,
        subfield="brightness",
    )
    plain = parse_command_topic(BASE, f"{BASE}/command/switch/8/5")
    assert plain is not None and plain.subfield is None


@pytest.mark.parametrize(
    "topic",
    [
        "homeassistant/onecontrol/11:22:33:44:55:66/command/switch/8/5",
        f"{BASE}/device/8/5/state",
        f"{BASE}/command/switch/8",
        f"{BASE}/command/switch/eight/5",
        f"{BASE}/command/switch/8/300",
        f"{BASE}/command/light/8/9/brightness/extra",
    ],
)
def test_parse_command_topic_rejects(topic: str) -> None:
    assert parse_command_topic(BASE, topic) is None
