"""Tests for configuration loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from marshmallow import ValidationError

from blebridge.config.common import parse_bool, parse_float, parse_int
from blebridge.config.settings import (
    PeripheralConfig,
    RuntimeConfig,
    get_config_source,
    load_runtime_config,
)


def _write_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, document: object) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(document))
    monkeypatch.setenv("BLEBRIDGE_CONFIG", str(path))
    return path


def test_missing_document_yields_defaults() -> None:
    config = load_runtime_config()
    assert config.mqtt_host == "localhost"
    assert config.mqtt_port == 1883
    assert config.peripherals == ()
    assert get_config_source() == "defaults"


def test_document_overrides_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = _write_config(
        monkeypatch,
        tmp_path,
        {
            "_comment": "ignored",
            "mqtt_host": "broker.local",
            "mqtt_topic": "/rv//bridge/",
            "debug": True,
            "peripherals": [
                {"address": "24:dc:c3:ed:1e:0a", "family": "onecontrol", "pin": "123456"},
                {"address": "AA:BB:CC:DD:EE:01", "family": "easytouch", "password": "pw"},
                {"address": "AA:BB:CC:DD:EE:02", "family": "gopower", "enabled": False},
            ],
        },
    )

    config = load_runtime_config()

    assert config.mqtt_host == "broker.local"
    assert config.mqtt_topic == "rv/bridge"
    assert config.debug_logging is True
    assert config.peripherals[0].address == "24:DC:C3:ED:1E:0A"
    assert config.peripherals[0].pin == "123456"
    assert [p.family for p in config.enabled_peripherals] == ["onecontrol", "easytouch"]
    assert get_config_source() == str(path)


@pytest.mark.parametrize(
    "document",
    [
        {"peripherals": [{"address": "not-a-mac", "family": "gopower"}]},
        {"peripherals": [{"address": "AA:BB:CC:DD:EE:01", "family": "toaster"}]},
        {"peripherals": [{"address": "AA:BB:CC:DD:EE:01", "family": "easytouch"}]},
        {
            "peripherals": [
                {"address": "AA:BB:CC:DD:EE:02", "family": "gopower"},
                {"address": "aa:bb:cc:dd:ee:02", "family": "gopower"},
            ]
        },
        {"watchdog_interval": 60, "watchdog_threshold": 30},
        {"mqtt_certfile": "/etc/cert.pem"},
        {"mqtt_port": 70000},
        {"mqtt_topic": "///"},
    ],
)
def test_invalid_documents_are_rejected(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, document: dict
) -> None:
    _write_config(monkeypatch, tmp_path, document)
    with pytest.raises(ValidationError):
        load_runtime_config()


def test_malformed_json_refuses_to_start(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{broken")
    monkeypatch.setenv("BLEBRIDGE_CONFIG", str(path))
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_runtime_config()


def test_non_object_root_is_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _write_config(monkeypatch, tmp_path, ["mqtt_host"])
    with pytest.raises(ValueError, match="must be an object"):
        load_runtime_config()


def test_peripheral_config_validation() -> None:
    assert PeripheralConfig(address=" aa:bb:cc:dd:ee:ff ", family="GoPower").family == "gopower"
    with pytest.raises(ValueError):
        PeripheralConfig(address="AA:BB:CC:DD:EE:FF", family="onecontrol", pin="1234567")
    with pytest.raises(ValueError):
        PeripheralConfig(address="AA:BB:CC:DD:EE:FF", family="onecontrol", name_byte_order="middle")


def test_runtime_config_validation(caplog: pytest.LogCaptureFixture) -> None:
    with pytest.raises(ValueError):
        RuntimeConfig(mqtt_queue_limit=0)
    with pytest.raises(ValueError):
        RuntimeConfig(watchdog_interval=10.0, watchdog_threshold=5.0)
    with pytest.raises(ValueError, match="duplicate"):
        RuntimeConfig(
            peripherals=(
                PeripheralConfig(address="AA:BB:CC:DD:EE:02", family="gopower"),
                PeripheralConfig(address="AA:BB:CC:DD:EE:02", family="gopower"),
            )
        )

    RuntimeConfig()
    assert "TLS is disabled" in caplog.text


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), ("yes", True), ("On", True), (1, True), ("0", False), (None, False), ("nope", False)],
)
def test_parse_bool(value: object, expected: bool) -> None:
    assert parse_bool(value) is expected


def test_parse_numbers_fall_back_to_default() -> None:
    assert parse_int("12.7", 0) == 12
    assert parse_int("abc", 5) == 5
    assert parse_float(None, 1.5) == 1.5
