"""MQTT sink for the bridge daemon."""

from __future__ import annotations

import asyncio
import inspect
import logging
import ssl
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiomqtt
import tenacity
from paho.mqtt.client import topic_matches_sub
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties
from transitions import Machine

from blebridge.config.const import MQTT_TLS_MIN_VERSION_NAME
from blebridge.config.settings import RuntimeConfig
from blebridge.errors import BridgeError
from blebridge.mqtt.messages import QOS_AT_LEAST_ONCE, QueuedPublish
from blebridge.protocol.topics import bridge_status_topic, topic_path
from blebridge.state.context import BridgeState
from blebridge.util import log_hexdump

from .sink import CommandHandler

logger = logging.getLogger("blebridge.mqtt")

PAYLOAD_ONLINE = "online"
PAYLOAD_OFFLINE = "offline"


def tls_context(config: RuntimeConfig) -> ssl.SSLContext | None:
    """Client TLS context for the broker link; None when TLS is off.

    A client certificate needs both halves of the pair. Any failure to build
    the context is fatal for the sink, so it surfaces as RuntimeError before
    the first connection attempt.
    """
    if not config.tls_enabled:
        return None
    if config.mqtt_cafile and not Path(config.mqtt_cafile).exists():
        raise RuntimeError(f"MQTT CA bundle not found: {config.mqtt_cafile}")
    if bool(config.mqtt_certfile) != bool(config.mqtt_keyfile):
        raise RuntimeError("mqtt_certfile and mqtt_keyfile must be set together")

    try:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=config.mqtt_cafile or None)
        context.minimum_version = getattr(ssl.TLSVersion, MQTT_TLS_MIN_VERSION_NAME)
        if config.mqtt_tls_insecure:
            context.check_hostname = False
        if config.mqtt_certfile:
            context.load_cert_chain(config.mqtt_certfile, config.mqtt_keyfile)
    except (OSError, ssl.SSLError) as exc:
        raise RuntimeError(f"MQTT TLS setup failed: {exc}") from exc
    return context


def connect_properties() -> Properties:
    """CONNECT properties: no broker-side session, detailed failure reasons.

    Command subscriptions are re-established on every connect, so nothing is
    gained by letting the broker keep the session.
    """
    props = Properties(PacketTypes.CONNECT)
    props.SessionExpiryInterval = 0
    props.RequestProblemInformation = 1
    return props


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    if retry_state.attempt_number > 1:
        logger.info(
            "Reconnecting MQTT (attempt %d, next wait %.2fs)...",
            retry_state.attempt_number,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )


class MqttSink:
    """Queue-backed MQTT sink with FSM-based connection state."""

    if TYPE_CHECKING:
        fsm_state: str
        trigger: Callable[..., bool]

    STATE_DISCONNECTED = "disconnected"
    STATE_CONNECTING = "connecting"
    STATE_SUBSCRIBING = "subscribing"
    STATE_READY = "ready"

    def __init__(self, config: RuntimeConfig, state: BridgeState) -> None:
        self.config = config
        self.state = state
        self.fsm_state = self.STATE_DISCONNECTED
        self._handlers: dict[str, CommandHandler] = {}
        self._client: aiomqtt.Client | None = None

        self.machine = Machine(
            model=self,
            states=[
                self.STATE_DISCONNECTED,
                self.STATE_CONNECTING,
                self.STATE_SUBSCRIBING,
                self.STATE_READY,
            ],
            initial=self.STATE_DISCONNECTED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )

        self.machine.add_transition("connect", "*", self.STATE_CONNECTING)
        self.machine.add_transition("connected", self.STATE_CONNECTING, self.STATE_SUBSCRIBING)
        self.machine.add_transition("subscribed", self.STATE_SUBSCRIBING, self.STATE_READY)
        self.machine.add_transition("disconnect", "*", self.STATE_DISCONNECTED)

    @property
    def status_topic(self) -> str:
        return bridge_status_topic(self.config.mqtt_topic)

    @property
    def command_filter(self) -> str:
        return topic_path(self.config.mqtt_topic, "+", "+", "command", "#")

    # --- Sink interface ---

    def _enqueue(self, message: QueuedPublish) -> None:
        try:
            self.state.mqtt_publish_queue.put_nowait(message)
        except asyncio.QueueFull:
            self.state.record_mqtt_drop(message.topic_name)
            logger.warning("MQTT queue full; %s not delivered.", message.topic_name)

    def publish_state(self, topic: str, payload: str, retained: bool = True) -> None:
        self._enqueue(QueuedPublish.entity_state(topic, payload, retain=retained))

    def publish_discovery(self, topic: str, payload: Mapping[str, Any]) -> None:
        self._enqueue(QueuedPublish.discovery(topic, dict(payload)))

    def publish_availability(self, topic: str, online: bool) -> None:
        self._enqueue(QueuedPublish.availability(topic, PAYLOAD_ONLINE if online else PAYLOAD_OFFLINE))

    def subscribe_commands(self, pattern: str, handler: CommandHandler) -> None:
        self._handlers[pattern] = handler
        logger.debug("Command handler registered for %s.", pattern)

    def unsubscribe_commands(self, pattern: str) -> None:
        self._handlers.pop(pattern, None)

    # --- Connection loop ---

    async def run(self) -> None:
        """Main run loop with reconnection logic."""
        context = tls_context(self.config)
        reconnect_delay = max(1, self.config.reconnect_delay)

        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=reconnect_delay, max=60) + tenacity.wait_random(0, 2),
            retry=tenacity.retry_if_exception_type((aiomqtt.MqttError, OSError, asyncio.TimeoutError)),
            stop=tenacity.stop_never,
            before_sleep=_log_retry_attempt,
            reraise=True,
        )

        try:
            async for attempt in retryer:
                with attempt:
                    try:
                        await self._connect_session(context)
                    except* (aiomqtt.MqttError, OSError, asyncio.TimeoutError) as exc_group:
                        for exc in exc_group.exceptions:
                            logger.error("MQTT connection error: %s", exc)
                        raise exc_group.exceptions[0]
                    finally:
                        self._client = None
                        self.state.mqtt_connected = False
                        if self.fsm_state != self.STATE_DISCONNECTED:
                            self.trigger("disconnect")
        except asyncio.CancelledError:
            logger.info("MQTT sink stopping.")
            self.trigger("disconnect")
            raise

    async def _connect_session(self, context: ssl.SSLContext | None) -> None:
        if not self.config.mqtt_user:
            logger.warning("MQTT connecting without authentication (anonymous).")

        self.trigger("connect")

        async with aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port,
            username=self.config.mqtt_user or None,
            password=self.config.mqtt_pass or None,
            tls_context=context,
            logger=logging.getLogger("blebridge.mqtt.client"),
            protocol=aiomqtt.ProtocolVersion.V5,
            clean_session=None,
            properties=connect_properties(),
            will=aiomqtt.Will(self.status_topic, PAYLOAD_OFFLINE, qos=QOS_AT_LEAST_ONCE, retain=True),
        ) as client:
            self._client = client
            self.trigger("connected")
            logger.info("Connected to MQTT broker %s:%d.", self.config.mqtt_host, self.config.mqtt_port)

            await client.subscribe(self.command_filter, qos=QOS_AT_LEAST_ONCE)
            await client.publish(self.status_topic, PAYLOAD_ONLINE, qos=QOS_AT_LEAST_ONCE, retain=True)
            self.state.mqtt_connected = True
            self.trigger("subscribed")

            async with asyncio.TaskGroup() as task_group:
                task_group.create_task(self._publisher_loop(client))
                task_group.create_task(self._subscriber_loop(client))

    async def _publisher_loop(self, client: aiomqtt.Client) -> None:
        queue = self.state.mqtt_publish_queue
        while True:
            message = await queue.get()
            topic_name = message.topic_name
            if logger.isEnabledFor(logging.DEBUG):
                log_hexdump(logger, logging.DEBUG, f"MQTT PUB > {topic_name}", message.payload)
            try:
                await client.publish(
                    topic_name,
                    message.payload,
                    qos=int(message.qos),
                    retain=message.retain,
                    properties=message.properties(),
                )
            except asyncio.CancelledError:
                try:
                    queue.put_nowait(message)
                except asyncio.QueueFull:
                    logger.warning("MQTT queue full during shutdown; message dropped.")
                raise
            except aiomqtt.MqttError as exc:
                self.state.mqtt_publish_failures += 1
                logger.warning("MQTT publish of %s failed (%s); requeuing.", topic_name, exc)
                try:
                    queue.put_nowait(message)
                except asyncio.QueueFull:
                    self.state.record_mqtt_drop(topic_name)
                    logger.error("MQTT queue full; %s not delivered.", topic_name)
                raise
            finally:
                queue.task_done()

    async def _subscriber_loop(self, client: aiomqtt.Client) -> None:
        try:
            async for message in client.messages:
                topic = str(message.topic)
                payload = bytes(message.payload) if isinstance(message.payload, (bytes, bytearray)) else (
                    str(message.payload).encode("utf-8") if message.payload is not None else b""
                )
                if logger.isEnabledFor(logging.DEBUG):
                    log_hexdump(logger, logging.DEBUG, f"MQTT SUB < {topic}", payload)
                await self.route_command(topic, payload)
        except aiomqtt.MqttError as exc:
            logger.warning("MQTT subscriber loop interrupted: %s", exc)
            raise

    async def route_command(self, topic: str, payload: bytes) -> bool:
        """Hand *payload* to every handler whose pattern matches *topic*."""
        matched = False
        for pattern, handler in list(self._handlers.items()):
            if not topic_matches_sub(pattern, topic):
                continue
            matched = True
            try:
                result = handler(topic, payload)
                if inspect.isawaitable(result):
                    await result
            except BridgeError as exc:
                logger.warning("Command on %s rejected: %s", topic, exc)
            except (ValueError, TypeError, KeyError) as exc:
                logger.exception("Error processing command topic %s: %s", topic, exc)
        if not matched:
            logger.debug("No handler for command topic %s.", topic)
        return matched


async def mqtt_task(config: RuntimeConfig, state: BridgeState, sink: MqttSink | None = None) -> None:
    """Wrapper to run the MqttSink."""
    await (sink or MqttSink(config, state)).run()


__all__ = ["MqttSink", "PAYLOAD_OFFLINE", "PAYLOAD_ONLINE", "connect_properties", "mqtt_task", "tls_context"]
