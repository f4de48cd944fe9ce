"""Tests for daemon task wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from blebridge.config.settings import PeripheralConfig, RuntimeConfig
from blebridge.daemon import BridgeDaemon, SupervisedTaskSpec
from blebridge.devices import EasyTouchSession, GoPowerSession, OneControlSession, session_class
from blebridge.state import status


def test_supervision_covers_every_enabled_peripheral(runtime_config: RuntimeConfig) -> None:
    daemon = BridgeDaemon(runtime_config)
    names = [spec.name for spec in daemon._setup_supervision()]

    assert names == [
        "mqtt-link",
        "status-writer",
        "session:onecontrol/24:DC:C3:ED:1E:0A",
        "session:easytouch/AA:BB:CC:DD:EE:01",
        "session:gopower/AA:BB:CC:DD:EE:02",
    ]
    assert daemon.exporter is None


def test_disabled_peripherals_and_metrics(tmp_path: Path) -> None:
    config = RuntimeConfig(
        metrics_enabled=True,
        metrics_port=0,
        name_cache_path=str(tmp_path / "names.json"),
        peripherals=(
            PeripheralConfig(address="AA:BB:CC:DD:EE:02", family="gopower", enabled=False),
        ),
    )
    daemon = BridgeDaemon(config)
    specs = daemon._setup_supervision()

    assert [spec.name for spec in specs] == ["mqtt-link", "status-writer", "prometheus-exporter"]
    assert daemon.exporter is not None
    assert all(spec.fatal_exceptions == () for spec in specs)


def test_session_classes_by_family() -> None:
    assert session_class("onecontrol") is OneControlSession
    assert session_class("easytouch") is EasyTouchSession
    assert session_class("gopower") is GoPowerSession
    with pytest.raises(ValueError):
        session_class("toaster")


@pytest.mark.asyncio
async def test_run_cleans_up_status_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, runtime_config: RuntimeConfig
) -> None:
    target = tmp_path / "status.json"
    target.write_text("{}")
    monkeypatch.setattr(status, "STATUS_FILE", target)

    ran: list[str] = []

    def spec(name: str) -> SupervisedTaskSpec:
        async def factory() -> None:
            ran.append(name)

        return SupervisedTaskSpec(name=name, factory=factory)

    daemon = BridgeDaemon(runtime_config)
    monkeypatch.setattr(daemon, "_setup_supervision", lambda: [spec("a"), spec("b")])
    await daemon.run()

    assert sorted(ran) == ["a", "b"]
    assert not target.exists()
