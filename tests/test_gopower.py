"""Tests for the GoPower charge controller session."""

from __future__ import annotations

import asyncio

import pytest

from blebridge.config.settings import PeripheralConfig, RuntimeConfig
from blebridge.devices import gopower
from blebridge.devices.gopower import (
    NOTIFY,
    REBOOT_COMMAND,
    SERVICE,
    UNLOCK_COMMAND,
    WRITE,
    GoPowerSession,
    parse_sample,
)
from blebridge.errors import InvalidCommandError, ProtocolError, SessionTerminated, TransportError
from blebridge.protocol.ascii import IncompleteSampleError
from blebridge.protocol.topics import parse_command_topic
from blebridge.state.context import BridgeState

from mocks import FakeSink, FakeTransport

CONTROLLER_SERVICES = {SERVICE: frozenset({NOTIFY, WRITE})}


def make_sample(**overrides: str) -> str:
    fields = ["0"] * 32
    values = {
        0: "01250",
        2: "13250",
        8: "00012",
        10: "085",
        11: "18400",
        14: "ABCD",
        16: "+25",
        19: "00012",
        20: "00034",
        24: "00210",
    }
    for index, value in values.items():
        fields[index] = value
    for name, value in overrides.items():
        fields[int(name.lstrip("f"))] = value
    return ";".join(fields)


@pytest.fixture(autouse=True)
def _fast_timings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gopower, "GOPOWER_UNLOCK_DELAY", 0)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport(CONTROLLER_SERVICES)


@pytest.fixture()
def session(
    gopower_peripheral: PeripheralConfig,
    runtime_config: RuntimeConfig,
    bridge_state: BridgeState,
    fake_sink: FakeSink,
    transport: FakeTransport,
) -> GoPowerSession:
    return GoPowerSession(gopower_peripheral, runtime_config, bridge_state, fake_sink, transport)


def sensor_topic(session: GoPowerSession, device_id: int, metric: str) -> str:
    return f"{session.base}/device/0/{device_id}/{metric}"


def test_parse_sample_scales_fields() -> None:
    sample = parse_sample(make_sample())

    assert sample.solar_voltage == pytest.approx(18.4)
    assert sample.solar_current == pytest.approx(1.25)
    assert sample.solar_power == pytest.approx(23.0)
    assert sample.battery_voltage == pytest.approx(13.25)
    assert sample.state_of_charge == 85
    assert sample.temperature == 25
    assert (sample.amp_hours_today, sample.amp_hours_yesterday, sample.amp_hours_week) == (12, 34, 210)
    assert sample.firmware == "12"
    assert sample.serial == "43981"


def test_negative_temperature_and_bad_serial() -> None:
    sample = parse_sample(make_sample(f16="-07", f14="ZZZZ"))
    assert sample.temperature == -7
    assert sample.serial is None


def test_short_sample_is_rejected() -> None:
    with pytest.raises(IncompleteSampleError):
        parse_sample(";".join(["1"] * 20))


@pytest.mark.parametrize("sample", [make_sample(f10="8x"), ";".join(["00012"] * 31)])
def test_bad_sample_is_dropped_whole(session: GoPowerSession, fake_sink: FakeSink, sample: str) -> None:
    with pytest.raises(ProtocolError):
        session.process_sample(sample)
    assert fake_sink.states == []
    assert session.samples == 0


def test_process_sample_publishes_sensors(session: GoPowerSession, fake_sink: FakeSink) -> None:
    session.process_sample(make_sample())

    assert fake_sink.last_state(sensor_topic(session, 1, "solar_voltage")) == "18.400"
    assert fake_sink.last_state(sensor_topic(session, 2, "solar_current")) == "1.250"
    assert fake_sink.last_state(sensor_topic(session, 3, "solar_power")) == "23.0"
    assert fake_sink.last_state(sensor_topic(session, 4, "battery_voltage")) == "13.250"
    assert fake_sink.last_state(sensor_topic(session, 5, "state_of_charge")) == "85"
    assert fake_sink.last_state(sensor_topic(session, 6, "temperature")) == "25"
    assert fake_sink.last_state(sensor_topic(session, 9, "amp_hours_week")) == "210"
    assert fake_sink.last_state(f"{session.base}/diag/serial_number") == "43981"
    assert fake_sink.last_state(f"{session.base}/diag/firmware_version") == "12"
    assert session.samples == 1

    state_classes = {
        payload["state_topic"].rsplit("/", 1)[-1]: payload.get("state_class")
        for _, payload in fake_sink.discoveries
        if "state_topic" in payload
    }
    assert state_classes["amp_hours_today"] == "total_increasing"
    assert state_classes["amp_hours_yesterday"] == "total"
    assert state_classes["solar_power"] == "measurement"


def test_repeated_sample_does_not_reannounce(session: GoPowerSession, fake_sink: FakeSink) -> None:
    session.process_sample(make_sample())
    announced = len(fake_sink.discoveries)
    session.process_sample(make_sample(f10="090"))

    assert len(fake_sink.discoveries) == announced
    assert fake_sink.state_count(f"{session.base}/diag/serial_number") == 1
    assert fake_sink.last_state(sensor_topic(session, 5, "state_of_charge")) == "90"


@pytest.mark.asyncio
async def test_fragmented_notifications_form_one_sample(session: GoPowerSession, fake_sink: FakeSink) -> None:
    raw = make_sample().encode("ascii")
    await session.handle_notification(NOTIFY, raw[:40])
    assert session.samples == 0
    await session.handle_notification(NOTIFY, raw[40:])
    assert session.samples == 1
    assert fake_sink.last_state(sensor_topic(session, 5, "state_of_charge")) == "85"


@pytest.mark.asyncio
async def test_establish_polls_immediately(
    session: GoPowerSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    await session.establish()

    assert session.session.authenticated
    assert transport.notifications == {NOTIFY: True}
    assert transport.writes_to(WRITE) == [b" "]
    assert session.session.timers.active("poll")
    assert fake_sink.last_state(f"{session.base}/diag/model_number") == "GP-PWM-30-SB"
    session.session.timers.cancel_all()


@pytest.mark.asyncio
async def test_missing_characteristic_fails_setup(
    gopower_peripheral: PeripheralConfig,
    runtime_config: RuntimeConfig,
    bridge_state: BridgeState,
    fake_sink: FakeSink,
) -> None:
    transport = FakeTransport({SERVICE: frozenset({NOTIFY})})
    session = GoPowerSession(gopower_peripheral, runtime_config, bridge_state, fake_sink, transport)
    with pytest.raises(TransportError, match="missing"):
        await session.establish()


@pytest.mark.asyncio
async def test_reboot_writes_unlock_then_reboot(session: GoPowerSession, transport: FakeTransport) -> None:
    route = parse_command_topic(session.base, f"{session.base}/command/button/0/0/reboot")
    assert route is not None

    assert await session.dispatch_command(route, b"press")
    assert transport.writes_to(WRITE) == [UNLOCK_COMMAND, REBOOT_COMMAND]

    assert not await session.dispatch_command(route, b"ON")
    assert len(transport.writes) == 2


def test_sensor_commands_are_rejected(session: GoPowerSession) -> None:
    with pytest.raises(InvalidCommandError):
        session.handle_command(f"{session.base}/command/sensor_solar_voltage/0/1", b"1")


@pytest.mark.asyncio
async def test_run_publishes_then_ends_on_link_drop(
    session: GoPowerSession, transport: FakeTransport, fake_sink: FakeSink, bridge_state: BridgeState
) -> None:
    task = asyncio.create_task(session.run())
    for _ in range(100):
        if session.is_ready:
            break
        await asyncio.sleep(0.01)
    assert session.is_ready

    raw = make_sample().encode("ascii")
    transport.notify(NOTIFY, raw[:50])
    transport.notify(NOTIFY, raw[50:])
    for _ in range(100):
        if session.samples:
            break
        await asyncio.sleep(0.01)
    assert fake_sink.last_state(sensor_topic(session, 4, "battery_voltage")) == "13.250"
    assert session.session.messages_handled == 2

    transport.drop(8)
    with pytest.raises(SessionTerminated, match="reason 8"):
        await asyncio.wait_for(task, timeout=1.0)
    assert fake_sink.availability[-1] == (f"{session.base}/availability", False)
    assert len(bridge_state.sessions) == 0
