"""Tests for the queue-backed MQTT sink."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import aiomqtt
import pytest
from paho.mqtt.packettypes import PacketTypes

from blebridge.config.settings import RuntimeConfig
from blebridge.errors import ReadOnlyEntityError
from blebridge.mqtt.messages import QOS_AT_LEAST_ONCE, QueuedPublish
from blebridge.state.context import BridgeState, create_bridge_state
from blebridge.transport.mqtt import PAYLOAD_OFFLINE, PAYLOAD_ONLINE, MqttSink, connect_properties, tls_context

BASE = "homeassistant/onecontrol/24:DC:C3:ED:1E:0A"


def test_publishes_are_queued(runtime_config: RuntimeConfig, bridge_state: BridgeState) -> None:
    sink = MqttSink(runtime_config, bridge_state)
    sink.publish_state(f"{BASE}/device/8/5/state", "ON")
    sink.publish_discovery("homeassistant/switch/x/config", {"name": "Pump"})
    sink.publish_availability(f"{BASE}/availability", False)

    queue = bridge_state.mqtt_publish_queue
    state = queue.get_nowait()
    discovery = queue.get_nowait()
    availability = queue.get_nowait()

    assert (state.payload, state.retain) == (b"ON", True)
    assert json.loads(discovery.payload) == {"name": "Pump"}
    assert discovery.content_type == "application/json"
    assert (availability.payload, availability.qos, availability.retain) == (
        PAYLOAD_OFFLINE.encode(),
        QOS_AT_LEAST_ONCE,
        True,
    )


def test_full_queue_drops_and_counts(tmp_path) -> None:
    config = RuntimeConfig(mqtt_queue_limit=1, name_cache_path=str(tmp_path / "names.json"))
    state = create_bridge_state(config)
    sink = MqttSink(config, state)

    sink.publish_state("a/b", "1")
    sink.publish_state("a/b", "2")
    sink.publish_state("a/c", "3")

    assert state.mqtt_publish_queue.qsize() == 1
    assert state.mqtt_dropped_messages == 2
    assert state.mqtt_drop_counts == {"a/b": 1, "a/c": 1}


@pytest.mark.asyncio
async def test_route_command_matches_wildcards(runtime_config: RuntimeConfig, bridge_state: BridgeState) -> None:
    sink = MqttSink(runtime_config, bridge_state)
    received: list[tuple[str, bytes]] = []

    async def handler(topic: str, payload: bytes) -> None:
        received.append((topic, payload))

    sink.subscribe_commands(f"{BASE}/command/#", handler)

    assert await sink.route_command(f"{BASE}/command/switch/8/5", b"ON")
    assert not await sink.route_command("homeassistant/other/command/switch/8/5", b"ON")
    assert received == [(f"{BASE}/command/switch/8/5", b"ON")]

    sink.unsubscribe_commands(f"{BASE}/command/#")
    assert not await sink.route_command(f"{BASE}/command/switch/8/5", b"ON")


@pytest.mark.asyncio
async def test_route_command_contains_handler_errors(
    runtime_config: RuntimeConfig, bridge_state: BridgeState, caplog: pytest.LogCaptureFixture
) -> None:
    sink = MqttSink(runtime_config, bridge_state)

    def rejecting(topic: str, payload: bytes) -> None:
        raise ReadOnlyEntityError("tank", "8:10")

    def broken(topic: str, payload: bytes) -> None:
        raise ValueError("bad payload")

    sink.subscribe_commands(f"{BASE}/command/tank/#", rejecting)
    sink.subscribe_commands(f"{BASE}/command/+/8/11", broken)

    assert await sink.route_command(f"{BASE}/command/tank/8/10", b"1")
    assert await sink.route_command(f"{BASE}/command/cover/8/11", b"OPEN")
    assert "read-only" in caplog.text
    assert "bad payload" in caplog.text


def test_topics_and_fsm(runtime_config: RuntimeConfig, bridge_state: BridgeState) -> None:
    sink = MqttSink(runtime_config, bridge_state)
    assert sink.status_topic == "homeassistant/blebridge/status"
    assert sink.command_filter == "homeassistant/+/+/command/#"
    assert sink.fsm_state == MqttSink.STATE_DISCONNECTED

    sink.trigger("subscribed")
    assert sink.fsm_state == MqttSink.STATE_DISCONNECTED
    sink.trigger("connect")
    sink.trigger("connected")
    sink.trigger("subscribed")
    assert sink.fsm_state == MqttSink.STATE_READY
    sink.trigger("disconnect")
    assert sink.fsm_state == MqttSink.STATE_DISCONNECTED


@pytest.mark.asyncio
async def test_publisher_loop_forwards_with_properties(
    runtime_config: RuntimeConfig, bridge_state: BridgeState
) -> None:
    sink = MqttSink(runtime_config, bridge_state)
    client = MagicMock()
    published = asyncio.Event()
    client.publish = AsyncMock(side_effect=lambda *args, **kwargs: published.set())

    sink.publish_discovery("homeassistant/switch/x/config", {"name": "Pump"})
    task = asyncio.create_task(sink._publisher_loop(client))
    await asyncio.wait_for(published.wait(), timeout=1.0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    args, kwargs = client.publish.call_args
    assert args[0] == "homeassistant/switch/x/config"
    assert kwargs["qos"] == QOS_AT_LEAST_ONCE
    assert kwargs["retain"] is True
    assert kwargs["properties"].ContentType == "application/json"


@pytest.mark.asyncio
async def test_publisher_loop_requeues_on_broker_error(
    runtime_config: RuntimeConfig, bridge_state: BridgeState
) -> None:
    sink = MqttSink(runtime_config, bridge_state)
    client = MagicMock()
    client.publish = AsyncMock(side_effect=aiomqtt.MqttError("gone"))

    sink.publish_state("a/b", PAYLOAD_ONLINE)
    with pytest.raises(aiomqtt.MqttError):
        await sink._publisher_loop(client)

    assert bridge_state.mqtt_publish_failures == 1
    assert bridge_state.mqtt_publish_queue.get_nowait().topic_name == "a/b"


def test_message_properties_per_kind() -> None:
    state = QueuedPublish.entity_state("a/b", "ON").properties()
    assert state is not None
    assert state.ContentType == "text/plain"
    assert state.PayloadFormatIndicator == 1

    volatile = QueuedPublish.entity_state("a/b", "ON", retain=False)
    assert volatile.properties().MessageExpiryInterval == 60

    discovery = QueuedPublish.discovery("homeassistant/switch/x/config", {"name": "Pump"})
    assert discovery.properties().ContentType == "application/json"
    assert discovery.properties().UserProperty == [("schema", "homeassistant")]

    availability = QueuedPublish.availability("a/availability", PAYLOAD_ONLINE)
    assert (availability.qos, availability.retain) == (QOS_AT_LEAST_ONCE, True)

    assert QueuedPublish(topic_name="a/b", payload=b"x").properties() is None

    connect = connect_properties()
    assert connect.packetType == PacketTypes.CONNECT
    assert connect.SessionExpiryInterval == 0


def test_tls_context(tmp_path) -> None:
    assert tls_context(RuntimeConfig()) is None

    context = tls_context(RuntimeConfig(mqtt_tls=True, mqtt_tls_insecure=True))
    assert context is not None
    assert context.check_hostname is False

    with pytest.raises(RuntimeError, match="CA bundle not found"):
        tls_context(RuntimeConfig(mqtt_tls=True, mqtt_cafile=str(tmp_path / "ca.pem")))

    with pytest.raises(RuntimeError, match="set together"):
        tls_context(RuntimeConfig(mqtt_tls=True, mqtt_certfile=str(tmp_path / "client.pem")))
