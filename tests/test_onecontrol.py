"""Tests for the OneControl gateway session."""

from __future__ import annotations

import asyncio

import pytest

from blebridge.config.settings import PeripheralConfig, RuntimeConfig
from blebridge.devices import onecontrol
from blebridge.devices.onecontrol import (
    AUTH_SERVICE,
    AUTH_STATUS,
    DATA_READ,
    DATA_SERVICE,
    DATA_WRITE,
    KEY,
    SEED,
    UNLOCK_STATUS,
    OneControlSession,
    is_unlocked,
)
from blebridge.errors import (
    AuthenticationFailed,
    ControlDisabledError,
    ReadOnlyEntityError,
    SessionTerminated,
    TransportError,
)
from blebridge.protocol.cobs import cobs_encode
from blebridge.protocol.myrvlink import (
    encode_dimmable,
    encode_get_devices,
    encode_get_devices_metadata,
    encode_hvac,
    encode_switch,
)
from blebridge.protocol.topics import parse_command_topic
from blebridge.state.context import BridgeState
from blebridge.state.entities import EntityKey
from blebridge.state.pending import PendingGuard

from mocks import FakeSink, FakeTransport

GATEWAY_SERVICES = {
    AUTH_SERVICE: frozenset({SEED, UNLOCK_STATUS, KEY, AUTH_STATUS}),
    DATA_SERVICE: frozenset({DATA_WRITE, DATA_READ}),
}
CHALLENGE = bytes([0x01, 0x02, 0x03, 0x04])
METADATA_FRAME = bytes([0x02, 0x07, 0x00, 0x01, 0x08, 0x05, 0x01, 0x02, 0x11, 0x00, 0x30, 0x02]) + bytes(14)
HVAC_FRAME = bytes([0x0B, 0x08, 0x01, 0x81, 68, 76, 0x02, 0x48, 0x00, 0x80, 0x00, 0x00, 0x05])


class FakeClock:
    def __init__(self) -> None:
        self.now = 50.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(autouse=True)
def _fast_timings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(onecontrol, "ONECONTROL_UNLOCK_VERIFY_DELAY", 0)
    monkeypatch.setattr(onecontrol, "ONECONTROL_METADATA_DELAY", 0)
    monkeypatch.setattr(onecontrol, "ONECONTROL_DIMMER_DEBOUNCE", 0)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport(GATEWAY_SERVICES)


@pytest.fixture()
def session(
    onecontrol_peripheral: PeripheralConfig,
    runtime_config: RuntimeConfig,
    bridge_state: BridgeState,
    fake_sink: FakeSink,
    transport: FakeTransport,
):
    return OneControlSession(onecontrol_peripheral, runtime_config, bridge_state, fake_sink, transport)


def route(session: OneControlSession, suffix: str):
    parsed = parse_command_topic(session.base, f"{session.base}/command/{suffix}")
    assert parsed is not None
    return parsed


async def feed(session: OneControlSession, *frames: bytes) -> None:
    await session.handle_notification(DATA_READ, b"".join(cobs_encode(frame) for frame in frames))


def test_unlock_marker() -> None:
    assert is_unlocked(b"Unlocked\x00")
    assert not is_unlocked(b"Locked")
    assert not is_unlocked(CHALLENGE)


@pytest.mark.asyncio
async def test_unlock_then_subscribe_reaches_ready(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    """Challenge answered with TEA key, verified, then notifications enabled."""
    transport.reads[UNLOCK_STATUS].extend([CHALLENGE, b"Unlocked"])
    phases: list[str] = []
    original_subscribe = session.subscribe

    async def spy() -> None:
        phases.append(session.fsm_state)
        await original_subscribe()

    session.subscribe = spy  # type: ignore[method-assign]
    await session.establish()

    assert transport.writes[0] == (KEY, bytes.fromhex("1AD4A47D"), False)
    assert phases == [OneControlSession.STATE_SUBSCRIBING]
    assert transport.notifications == {SEED: True, DATA_READ: True, AUTH_STATUS: True}
    assert session.is_ready
    assert session.session.phase == "ready"
    assert session.session.mtu == 185
    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_get_devices(1, 0x08))]
    assert f"{session.base}/command/#" in fake_sink.handlers
    assert fake_sink.availability[0] == (f"{session.base}/availability", True)
    session.session.timers.cancel_all()


@pytest.mark.asyncio
async def test_already_unlocked_gateway_skips_key(session: OneControlSession, transport: FakeTransport) -> None:
    transport.reads[UNLOCK_STATUS].append(b"Unlocked")
    await session.establish()
    assert transport.writes_to(KEY) == []
    assert session.is_ready
    session.session.timers.cancel_all()


@pytest.mark.asyncio
async def test_unlock_rejected(session: OneControlSession, transport: FakeTransport) -> None:
    transport.reads[UNLOCK_STATUS].extend([CHALLENGE, b"Locked"])
    with pytest.raises(AuthenticationFailed):
        await session.establish()
    assert not session.is_ready


@pytest.mark.asyncio
async def test_unexpected_challenge_size(session: OneControlSession, transport: FakeTransport) -> None:
    transport.reads[UNLOCK_STATUS].append(b"\x01\x02")
    with pytest.raises(AuthenticationFailed, match="2 bytes"):
        await session.establish()
    assert transport.writes == []


@pytest.mark.asyncio
async def test_missing_characteristics_fail_setup(
    onecontrol_peripheral: PeripheralConfig,
    runtime_config: RuntimeConfig,
    bridge_state: BridgeState,
    fake_sink: FakeSink,
) -> None:
    transport = FakeTransport({AUTH_SERVICE: frozenset({SEED, KEY})})
    session = OneControlSession(onecontrol_peripheral, runtime_config, bridge_state, fake_sink, transport)
    with pytest.raises(TransportError, match="missing"):
        await session.establish()


@pytest.mark.asyncio
async def test_authentication_waits_for_both_flags(session: OneControlSession, transport: FakeTransport) -> None:
    transport.reads[UNLOCK_STATUS].append(b"Unlocked")
    session.session.handles[UNLOCK_STATUS] = AUTH_SERVICE

    session.services_discovered = True
    assert not await session.maybe_start_authentication()
    session.mtu_negotiated = True
    assert await session.maybe_start_authentication()
    assert not await session.maybe_start_authentication()
    assert not transport.reads[UNLOCK_STATUS]


@pytest.mark.asyncio
async def test_seed_is_answered_with_session_key(session: OneControlSession, transport: FakeTransport) -> None:
    await session.handle_notification(SEED, CHALLENGE)

    assert transport.writes == [(KEY, bytes.fromhex("B25A9D12") + b"090336" + bytes(6), True)]
    assert session.session_key_sent

    with pytest.raises(AuthenticationFailed):
        await session.handle_notification(SEED, b"\x01\x02\x03")


@pytest.mark.asyncio
async def test_gateway_information_authenticates_and_requests_metadata(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    await feed(session, bytes([0x01, 0x05, 0x00, 0x10, 0x08]))
    await asyncio.sleep(0.02)

    assert session.session.authenticated
    assert session.table_id == 0x08
    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_get_devices_metadata(1, 0x08))]
    assert fake_sink.last_state(f"{session.base}/diag/authenticated") == "ON"
    assert '"device_count":16' in fake_sink.last_state(f"{session.base}/events/gateway_information")


@pytest.mark.asyncio
async def test_relay_and_rv_status_publish(session: OneControlSession, fake_sink: FakeSink) -> None:
    await feed(session, bytes([0x05, 0x08, 0x05, 0x01, 0x00]), bytes([0x07, 0x0D, 0x00, 0x48, 0x00, 0x00]))

    assert fake_sink.last_state(f"{session.base}/device/8/5/state") == "ON"
    assert fake_sink.last_state(f"{session.base}/device/0/1/voltage") == "13.000"
    assert fake_sink.last_state(f"{session.base}/device/0/2/temperature") == "72.0"
    assert session.session.last_data_at == pytest.approx(session.clock(), abs=5.0)


@pytest.mark.asyncio
async def test_corrupt_frames_are_counted(session: OneControlSession, fake_sink: FakeSink) -> None:
    frame = bytearray(cobs_encode(bytes([0x05, 0x08, 0x05, 0x01, 0x00])))
    frame[3] ^= 0x40
    await session.handle_notification(DATA_READ, bytes(frame))

    assert session.session.frames_dropped == 1
    assert fake_sink.states == []


@pytest.mark.asyncio
async def test_metadata_renames_announced_entity(
    session: OneControlSession, fake_sink: FakeSink, bridge_state: BridgeState
) -> None:
    await feed(session, bytes([0x05, 0x08, 0x05, 0x01, 0x00]))
    topic = "homeassistant/switch/onecontrol_ble_24dcc3ed1e0a/switch_0805/config"
    assert fake_sink.last_discovery(topic)["name"] == "Switch 0805"

    await feed(session, METADATA_FRAME)

    assert fake_sink.last_discovery(topic)["name"] == "Porch Light 2"
    assert bridge_state.names.get(str(session.identity), EntityKey(8, 5)) == "Porch Light 2"


@pytest.mark.asyncio
async def test_stale_dimmer_echo_is_suppressed(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    clock = FakeClock()
    session.session.pending = PendingGuard(clock)
    brightness_topic = f"{session.base}/device/8/9/brightness"

    assert await session.dispatch_command(route(session, "light/8/9/brightness"), b"200")
    assert fake_sink.last_state(brightness_topic) == "200"

    await feed(session, bytes([0x08, 0x08, 0x09, 0x00, 0x00]))
    assert fake_sink.last_state(brightness_topic) == "200"
    assert fake_sink.state_count(brightness_topic) == 1

    await feed(session, bytes([0x08, 0x08, 0x09, 0x01, 0xC8]))
    assert fake_sink.state_count(brightness_topic) == 2
    assert EntityKey(8, 9) not in session.session.pending

    await asyncio.sleep(0.02)
    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_dimmable(1, 8, 9, 200))]


@pytest.mark.asyncio
async def test_dimmer_commands_are_debounced(
    monkeypatch: pytest.MonkeyPatch, session: OneControlSession, transport: FakeTransport
) -> None:
    monkeypatch.setattr(onecontrol, "ONECONTROL_DIMMER_DEBOUNCE", 0.05)
    for level in (b"50", b"100", b"150"):
        await session.dispatch_command(route(session, "light/8/9/brightness"), level)
    assert transport.writes_to(DATA_WRITE) == []

    await asyncio.sleep(0.15)
    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_dimmable(1, 8, 9, 150))]


@pytest.mark.asyncio
async def test_dimmer_off_is_sent_immediately(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    await session.dispatch_command(route(session, "light/8/9"), b'{"state":"OFF"}')

    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_dimmable(1, 8, 9, 0))]
    assert fake_sink.last_state(f"{session.base}/device/8/9/state") == "OFF"
    assert session.session.pending.get(EntityKey(8, 9)).target == {"mode": 0}


@pytest.mark.asyncio
async def test_dimmer_off_after_brightness_waits_for_off_echo(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    session.session.pending = PendingGuard(FakeClock())
    state_topic = f"{session.base}/device/8/9/state"

    await session.dispatch_command(route(session, "light/8/9/brightness"), b"200")
    await session.dispatch_command(route(session, "light/8/9"), b'{"state":"OFF"}')
    assert session.session.pending.get(EntityKey(8, 9)).target == {"mode": 0}
    published = fake_sink.state_count(state_topic)

    await feed(session, bytes([0x08, 0x08, 0x09, 0x01, 0xC8]))
    assert fake_sink.state_count(state_topic) == published
    assert fake_sink.last_state(state_topic) == "OFF"

    await feed(session, bytes([0x08, 0x08, 0x09, 0x00, 0x00]))
    assert fake_sink.state_count(state_topic) == published + 1
    assert fake_sink.last_state(state_topic) == "OFF"
    assert EntityKey(8, 9) not in session.session.pending

    await asyncio.sleep(0.02)
    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_dimmable(1, 8, 9, 0))]
    session.session.timers.cancel_all()


@pytest.mark.asyncio
async def test_dimmer_on_after_off_waits_for_brightness_echo(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    session.session.pending = PendingGuard(FakeClock())
    brightness_topic = f"{session.base}/device/8/9/brightness"

    await session.dispatch_command(route(session, "light/8/9"), b'{"state":"OFF"}')
    await session.dispatch_command(route(session, "light/8/9/brightness"), b"120")
    assert session.session.pending.get(EntityKey(8, 9)).target == {"brightness": 120}
    published = fake_sink.state_count(brightness_topic)

    await feed(session, bytes([0x08, 0x08, 0x09, 0x00, 0x00]))
    assert fake_sink.state_count(brightness_topic) == published
    assert fake_sink.last_state(brightness_topic) == "120"

    await feed(session, bytes([0x08, 0x08, 0x09, 0x01, 0x78]))
    assert fake_sink.state_count(brightness_topic) == published + 1
    assert EntityKey(8, 9) not in session.session.pending

    await asyncio.sleep(0.02)
    assert transport.writes_to(DATA_WRITE) == [
        cobs_encode(encode_dimmable(1, 8, 9, 0)),
        cobs_encode(encode_dimmable(2, 8, 9, 120)),
    ]
    session.session.timers.cancel_all()


@pytest.mark.asyncio
async def test_switch_command(session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink) -> None:
    assert await session.dispatch_command(route(session, "switch/8/5"), b"ON")

    assert transport.writes_to(DATA_WRITE) == [cobs_encode(encode_switch(1, 8, 5, True))]
    assert fake_sink.last_state(f"{session.base}/device/8/5/state") == "ON"

    await feed(session, bytes([0x05, 0x08, 0x05, 0x00, 0x00]))
    assert fake_sink.last_state(f"{session.base}/device/8/5/state") == "ON"


@pytest.mark.asyncio
async def test_hvac_mode_command_uses_last_status(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    await feed(session, HVAC_FRAME)
    assert fake_sink.last_state(f"{session.base}/device/8/1/mode") == "heat"
    assert fake_sink.last_state(f"{session.base}/device/8/1/dtc") == "5"

    assert await session.dispatch_command(route(session, "hvac/8/1/mode"), b"cool")

    expected = encode_hvac(1, 8, 1, heat_mode=2, heat_source=0, fan_mode=2, low_trip=68, high_trip=76)
    assert transport.writes_to(DATA_WRITE) == [cobs_encode(expected)]
    assert fake_sink.last_state(f"{session.base}/device/8/1/mode") == "cool"

    await feed(session, HVAC_FRAME)
    assert fake_sink.last_state(f"{session.base}/device/8/1/mode") == "cool"


@pytest.mark.asyncio
async def test_hvac_command_before_status_is_rejected(session: OneControlSession, transport: FakeTransport) -> None:
    assert not await session.dispatch_command(route(session, "hvac/8/1/mode"), b"cool")
    assert transport.writes == []


@pytest.mark.parametrize(
    ("suffix", "error"),
    [("cover/8/11", ControlDisabledError), ("tank/8/10", ReadOnlyEntityError), ("sensor_voltage/0/1", ReadOnlyEntityError)],
)
def test_unsafe_or_read_only_commands_are_rejected(session: OneControlSession, suffix: str, error: type) -> None:
    with pytest.raises(error):
        session.handle_command(f"{session.base}/command/{suffix}", b"OPEN")


@pytest.mark.asyncio
async def test_teardown_is_idempotent(
    session: OneControlSession, transport: FakeTransport, fake_sink: FakeSink
) -> None:
    transport.reads[UNLOCK_STATUS].append(b"Unlocked")
    await session.establish()
    await session.dispatch_command(route(session, "switch/8/5"), b"OFF")
    assert len(session.session.pending) == 1

    assert await session.teardown("test")
    assert not await session.teardown("again")

    assert len(session.session.pending) == 0
    assert transport.disconnect_calls == 1
    assert session.fsm_state == OneControlSession.STATE_DISCONNECTED
    assert fake_sink.availability[-1] == (f"{session.base}/availability", False)
    assert f"{session.base}/command/#" not in fake_sink.handlers


@pytest.mark.asyncio
async def test_link_drop_ends_run(session: OneControlSession, transport: FakeTransport, bridge_state: BridgeState) -> None:
    transport.reads[UNLOCK_STATUS].append(b"Unlocked")
    task = asyncio.create_task(session.run())
    for _ in range(100):
        if session.is_ready:
            break
        await asyncio.sleep(0.01)
    assert session.is_ready
    assert len(bridge_state.sessions) == 1

    transport.drop(19)
    with pytest.raises(SessionTerminated, match="reason 19"):
        await asyncio.wait_for(task, timeout=1.0)
    assert len(bridge_state.sessions) == 0
