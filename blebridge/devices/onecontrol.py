"""OneControl gateway session.

Authentication happens in two steps. The bus unlock answers a 4-byte
challenge read from UNLOCK_STATUS. The session key answers the SEED
notification that arrives once notifications are enabled. After that the
gateway streams COBS-framed MyRvLink events on DATA_READ and accepts
commands on DATA_WRITE.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from functools import partial
from typing import Any, Final

import msgspec

from ..config.const import (
    FAMILY_ONECONTROL,
    ONECONTROL_DIMMER_DEBOUNCE,
    ONECONTROL_DIMMER_PENDING_WINDOW,
    ONECONTROL_HEARTBEAT_INTERVAL,
    ONECONTROL_HVAC_PENDING_WINDOW,
    ONECONTROL_MAX_TRACKED_REQUESTS,
    ONECONTROL_METADATA_DELAY,
    ONECONTROL_METADATA_FALLBACK,
    ONECONTROL_MTU,
    ONECONTROL_SWITCH_PENDING_WINDOW,
    ONECONTROL_UNLOCK_VERIFY_DELAY,
)
from ..config.settings import PeripheralConfig, RuntimeConfig
from ..errors import (
    AuthenticationFailed,
    ControlDisabledError,
    InvalidCommandError,
    ReadOnlyEntityError,
    TransportError,
)
from ..protocol.cobs import CobsStreamDecoder, cobs_encode
from ..protocol.function_names import friendly_name, is_placeholder
from ..protocol.myrvlink import (
    DEFAULT_DEVICE_TABLE_ID,
    GENERIC_EVENT_NAMES,
    METADATA_ENTRY_PAYLOAD,
    METADATA_ENTRY_PROTOCOL,
    CommandIdAllocator,
    CommandType,
    EventType,
    HvacZoneStatus,
    decode_command_response,
    decode_cover_status,
    decode_hvac_status,
    decode_metadata_response,
    decode_relay_status,
    decode_rv_status,
    decode_tank_status,
    encode_dimmable,
    encode_get_devices,
    encode_get_devices_metadata,
    encode_hvac,
    encode_switch,
)
from ..protocol.structures import DeviceStatusEvent, DimmableLightEvent, GatewayInformationEvent
from ..protocol.tea import derive_session_key, derive_unlock_key
from ..protocol.topics import CommandRoute, state_topic
from ..services.commands import parse_json_object, parse_number, parse_switch_payload
from ..services.discovery import DiscoveryBuilder
from ..services.dispatcher import EventDispatcher
from ..services.session import BaseSession
from ..state.context import BridgeState
from ..state.entities import CoverSensor, DimmableLight, EntityKey, HvacZone, NumericSensor, Switch, Tank
from ..transport.ble import BleTransport, ServiceMap
from ..transport.sink import Sink

_UUID_SUFFIX: Final[str] = "-0200-a58e-e411-afe28044e62c"


def _uuid(short: int) -> str:
    return f"{short:08x}{_UUID_SUFFIX}"


AUTH_SERVICE: Final[str] = _uuid(0x10)
SEED: Final[str] = _uuid(0x11)
UNLOCK_STATUS: Final[str] = _uuid(0x12)
KEY: Final[str] = _uuid(0x13)
AUTH_STATUS: Final[str] = _uuid(0x14)
DATA_SERVICE: Final[str] = _uuid(0x30)
DATA_WRITE: Final[str] = _uuid(0x33)
DATA_READ: Final[str] = _uuid(0x34)

REQUIRED_CHARACTERISTICS: Final[tuple[str, ...]] = (SEED, KEY, DATA_WRITE, DATA_READ)
UNLOCKED_MARKER: Final[str] = "unlocked"

HVAC_MODES: Final[dict[int, str]] = {0: "off", 1: "heat", 2: "cool", 3: "heat_cool"}
HVAC_FAN_MODES: Final[dict[int, str]] = {0: "auto", 1: "high", 2: "low"}
HVAC_MIN_TEMP_F: Final[int] = 40
HVAC_MAX_TEMP_F: Final[int] = 99

SYSTEM_TABLE_ID: Final[int] = 0
VOLTAGE_DEVICE_ID: Final[int] = 1
TEMPERATURE_DEVICE_ID: Final[int] = 2

READ_ONLY_TYPES: Final[frozenset[str]] = frozenset({"tank", "sensor"})
CONTROLLABLE_TYPES: Final[frozenset[str]] = frozenset({"switch", "light", "hvac"})


def is_unlocked(data: bytes) -> bool:
    return UNLOCKED_MARKER in data.decode("utf-8", errors="replace").strip().lower()


def hvac_action(zone_mode: int) -> str:
    if zone_mode == 0:
        return "off"
    if zone_mode == 2:
        return "cooling"
    if 3 <= zone_mode <= 6:
        return "heating"
    return "idle"


def _target_for(mode: str, low_trip: int, high_trip: int) -> float | None:
    if mode == "heat":
        return float(low_trip)
    if mode == "cool":
        return float(high_trip)
    return None


class OneControlSession(BaseSession):
    """Session for a OneControl (MyRvLink) gateway."""

    family = FAMILY_ONECONTROL

    def __init__(
        self,
        peripheral: PeripheralConfig,
        config: RuntimeConfig,
        state: BridgeState,
        sink: Sink,
        transport: BleTransport,
        **kwargs: Any,
    ) -> None:
        super().__init__(peripheral, config, state, sink, transport, **kwargs)
        self.decoder = CobsStreamDecoder()
        self.events: EventDispatcher[bytes] = EventDispatcher(str(self.identity), lambda frame: frame[0] if frame else None)
        self.command_ids = CommandIdAllocator()
        self.table_id = DEFAULT_DEVICE_TABLE_ID

        self.services_discovered = False
        self.mtu_negotiated = False
        self._auth_started = False
        self._unlocked = False
        self.session_key_sent = False
        self.gateway_seen = False
        self.metadata_requested = False

        self._requests: OrderedDict[int, CommandType] = OrderedDict()
        self._last_brightness: dict[EntityKey, int] = {}
        self._dimmer_targets: dict[EntityKey, int] = {}
        self._hvac_raw: dict[EntityKey, HvacZoneStatus] = {}
        self._register_handlers()

    @staticmethod
    def secret_for(peripheral: PeripheralConfig) -> str:
        return peripheral.pin

    def _register_handlers(self) -> None:
        register = self.events.register
        register(EventType.GATEWAY_INFORMATION, self._on_gateway_information)
        register(EventType.DEVICE_COMMAND, self._on_command_response)
        register(EventType.DEVICE_ONLINE_STATUS, self._on_online_status)
        register(EventType.DEVICE_LOCK_STATUS, self._on_lock_status)
        register(EventType.RELAY_LATCHING_STATUS_1, self._on_relay_status)
        register(EventType.RELAY_LATCHING_STATUS_2, self._on_relay_status)
        register(EventType.RV_STATUS, self._on_rv_status)
        register(EventType.DIMMABLE_LIGHT_STATUS, self._on_dimmable_status)
        register(EventType.HVAC_STATUS, self._on_hvac_status)
        register(EventType.TANK_SENSOR_STATUS, self._on_tank_status)
        register(EventType.TANK_SENSOR_STATUS_V2, partial(self._on_tank_status, minimum=6))
        register(EventType.HBRIDGE_MOMENTARY_STATUS_1, self._on_cover_status)
        register(EventType.HBRIDGE_MOMENTARY_STATUS_2, self._on_cover_status)
        register(EventType.SESSION_STATUS, self._on_session_heartbeat)
        register(EventType.REAL_TIME_CLOCK, self._on_real_time_clock)
        for tag in GENERIC_EVENT_NAMES:
            register(tag, self._on_generic_event)

    # --- Setup ---

    async def discover(self) -> None:
        try:
            async with asyncio.TaskGroup() as task_group:
                task_group.create_task(self._discover_services())
                task_group.create_task(self._negotiate_mtu())
        except* (AuthenticationFailed, TransportError) as group:
            raise group.exceptions[0] from None

    async def _discover_services(self) -> None:
        services = await self.transport.discover_services()
        self.on_services(services)
        self.discovered()
        self.services_discovered = True
        await self.maybe_start_authentication()

    def on_services(self, services: ServiceMap) -> None:
        super().on_services(services)
        missing = [uuid for uuid in REQUIRED_CHARACTERISTICS if uuid not in self.session.handles]
        if missing:
            raise TransportError(f"gateway is missing characteristics: {', '.join(missing)}")

    async def _negotiate_mtu(self) -> None:
        self.session.mtu = await self.transport.request_mtu(ONECONTROL_MTU)
        self.logger.debug("%s: MTU %s.", self.identity, self.session.mtu)
        self.mtu_negotiated = True
        await self.maybe_start_authentication()

    async def maybe_start_authentication(self) -> bool:
        """Start the bus unlock once both discovery and MTU negotiation finished.

        Safe to call from either completion path and any number of times;
        only the first call with both flags set does anything.
        """
        if self._auth_started or not (self.services_discovered and self.mtu_negotiated):
            return False
        self._auth_started = True
        await self.unlock_gateway()
        return True

    async def unlock_gateway(self) -> None:
        if UNLOCK_STATUS not in self.session.handles:
            self.logger.warning("%s: no UNLOCK_STATUS characteristic; skipping bus unlock.", self.identity)
            self._unlocked = True
            return

        status = await self.transport.read(UNLOCK_STATUS)
        if is_unlocked(status):
            self.logger.info("%s: gateway already unlocked.", self.identity)
            self._unlocked = True
            return
        if len(status) != 4:
            raise AuthenticationFailed(f"unexpected unlock challenge of {len(status)} bytes")

        await self.write(KEY, derive_unlock_key(status), response=False)
        await asyncio.sleep(ONECONTROL_UNLOCK_VERIFY_DELAY)
        verify = await self.transport.read(UNLOCK_STATUS)
        if not is_unlocked(verify):
            raise AuthenticationFailed(f"gateway did not confirm unlock ({verify!r})")
        self._unlocked = True
        self.logger.info("%s: gateway unlocked.", self.identity)

    async def authenticate(self) -> None:
        if not self._unlocked:
            raise AuthenticationFailed("bus unlock did not complete")

    async def subscribe(self) -> None:
        for uuid in (SEED, DATA_READ, AUTH_STATUS):
            if uuid in self.session.handles:
                await self.transport.set_notification(uuid, True)

    async def on_ready(self) -> None:
        self.session.timers.schedule(ONECONTROL_METADATA_FALLBACK, "metadata-fallback", self.request_metadata)
        await self._heartbeat()

    # --- Inbound ---

    async def handle_notification(self, uuid: str, data: bytes) -> None:
        if uuid == SEED:
            await self.answer_seed(data)
        elif uuid == DATA_READ:
            frames = self.decoder.feed(data)
            self.session.frames_dropped = self.decoder.frames_dropped
            for frame in frames:
                self.mark_liveness()
                await self.events.dispatch(frame)
        elif uuid == AUTH_STATUS:
            self.logger.debug("%s: auth status %s", self.identity, data.hex(" "))
            self.mark_liveness()
        else:
            self.logger.debug("%s: notification on unexpected characteristic %s", self.identity, uuid)

    async def answer_seed(self, seed: bytes) -> None:
        if len(seed) != 4:
            raise AuthenticationFailed(f"malformed seed of {len(seed)} bytes")
        try:
            key = derive_session_key(seed, self.session.secret)
        except ValueError as exc:
            raise AuthenticationFailed(str(exc)) from exc
        await self.write(KEY, key)
        self.session_key_sent = True
        self.logger.info("%s: session key sent.", self.identity)

    async def _on_gateway_information(self, frame: bytes) -> None:
        event = GatewayInformationEvent.decode(frame)
        self.table_id = event.table_id
        if not self.session.authenticated:
            self.session.authenticated = True
            self.logger.info("%s: gateway information received; session authenticated.", self.identity)
            self.publish_diagnostics()
        if not self.gateway_seen:
            self.gateway_seen = True
            self.session.timers.schedule(ONECONTROL_METADATA_DELAY, "metadata", self.request_metadata)
        self.publisher.publish_event(
            "gateway_information",
            {
                "protocol_version": event.protocol_version,
                "options": event.options,
                "device_count": event.device_count,
                "device_table_id": event.table_id,
            },
        )

    async def _on_command_response(self, frame: bytes) -> None:
        response = decode_command_response(frame)
        kind = self._requests.get(response.command_id)
        if response.complete:
            self._requests.pop(response.command_id, None)
        if kind is None and not self._looks_like_metadata(frame):
            self.logger.debug("%s: response for untracked command %d", self.identity, response.command_id)
            return
        if kind is None or kind == CommandType.GET_DEVICES_METADATA:
            await self._apply_metadata(frame)
        elif not response.success:
            self.logger.warning(
                "%s: command %d (%s) failed with 0x%02X", self.identity, response.command_id, kind.name, response.response_type
            )

    @staticmethod
    def _looks_like_metadata(frame: bytes) -> bool:
        return len(frame) >= 9 and frame[7] == METADATA_ENTRY_PROTOCOL and frame[8] == METADATA_ENTRY_PAYLOAD

    async def _apply_metadata(self, frame: bytes) -> None:
        entries = decode_metadata_response(frame, name_byte_order=self.peripheral.name_byte_order)  # type: ignore[arg-type]
        for entry in entries:
            key = EntityKey(entry.table_id, entry.device_id)
            name = friendly_name(entry.function_name, entry.function_instance)
            if is_placeholder(name) and self.state.names.get(str(self.identity), key):
                continue
            await self.publisher.apply_friendly_name(key, name)
        self.logger.info("%s: resolved %d function names.", self.identity, len(entries))

    def _on_online_status(self, frame: bytes) -> None:
        event = DeviceStatusEvent.decode(frame)
        topic = state_topic(self.base, event.table_id, event.device_id, "online")
        self.sink.publish_state(topic, "ON" if event.status else "OFF", True)

    def _on_lock_status(self, frame: bytes) -> None:
        event = DeviceStatusEvent.decode(frame)
        topic = state_topic(self.base, event.table_id, event.device_id, "lock")
        self.sink.publish_state(topic, "LOCKED" if event.status else "UNLOCKED", True)

    def _on_relay_status(self, frame: bytes) -> None:
        status = decode_relay_status(frame)
        entity = Switch(table_id=status.table_id, device_id=status.device_id, is_on=status.is_on, dtc=status.dtc)
        self.publisher.publish(entity, partial(self.discovery.switch, status.table_id, status.device_id))

    def _on_rv_status(self, frame: bytes) -> None:
        status = decode_rv_status(frame)
        if status.voltage is not None:
            voltage = NumericSensor(
                table_id=SYSTEM_TABLE_ID,
                device_id=VOLTAGE_DEVICE_ID,
                name="System Voltage",
                metric="voltage",
                value=status.voltage,
                unit="V",
                precision=3,
            )
            self.publisher.publish(
                voltage,
                partial(
                    self.discovery.sensor,
                    SYSTEM_TABLE_ID,
                    VOLTAGE_DEVICE_ID,
                    field="voltage",
                    object_prefix="system_voltage",
                    unit="V",
                    device_class="voltage",
                    icon="mdi:car-battery",
                ),
            )
        if status.temperature is not None:
            temperature = NumericSensor(
                table_id=SYSTEM_TABLE_ID,
                device_id=TEMPERATURE_DEVICE_ID,
                name="System Temperature",
                metric="temperature",
                value=status.temperature,
                unit="°F",
                precision=1,
            )
            self.publisher.publish(
                temperature,
                partial(
                    self.discovery.sensor,
                    SYSTEM_TABLE_ID,
                    TEMPERATURE_DEVICE_ID,
                    field="temperature",
                    object_prefix="system_temperature",
                    unit="°F",
                    device_class="temperature",
                ),
            )

    def _on_dimmable_status(self, frame: bytes) -> None:
        event = DimmableLightEvent.decode(frame)
        entity = DimmableLight(
            table_id=event.table_id, device_id=event.device_id, brightness=event.brightness, mode=event.mode
        )
        if self.publisher.publish(entity, partial(self.discovery.light, event.table_id, event.device_id)):
            if event.mode != 0 and event.brightness > 0:
                self._last_brightness[entity.key] = event.brightness

    def _on_hvac_status(self, frame: bytes) -> None:
        table_id, zones = decode_hvac_status(frame)
        for zone in zones:
            key = EntityKey(table_id, zone.device_id)
            self._hvac_raw[key] = zone
            mode = HVAC_MODES.get(zone.heat_mode, "off")
            entity = HvacZone(
                table_id=table_id,
                device_id=zone.device_id,
                mode=mode,
                fan_mode=HVAC_FAN_MODES.get(zone.fan_mode, "auto"),
                action=hvac_action(zone.zone_mode),
                current_temperature=zone.indoor_temperature,
                outdoor_temperature=zone.outdoor_temperature,
                target_temperature=_target_for(mode, zone.low_trip, zone.high_trip),
                target_temperature_high=float(zone.high_trip),
                target_temperature_low=float(zone.low_trip),
                modes=tuple(HVAC_MODES.values()),
                min_temperature=HVAC_MIN_TEMP_F,
                max_temperature=HVAC_MAX_TEMP_F,
                dtc=zone.dtc,
            )
            self.publisher.publish(entity, self._climate_builder(table_id, zone.device_id))

    def _climate_builder(self, table_id: int, device_id: int) -> DiscoveryBuilder:
        return partial(
            self.discovery.climate,
            table_id,
            device_id,
            modes=tuple(HVAC_MODES.values()),
            fan_modes=tuple(HVAC_FAN_MODES.values()),
            min_temp=HVAC_MIN_TEMP_F,
            max_temp=HVAC_MAX_TEMP_F,
        )

    def _on_tank_status(self, frame: bytes, minimum: int = 5) -> None:
        status = decode_tank_status(frame, minimum=minimum)
        entity = Tank(table_id=status.table_id, device_id=status.device_id, level=status.level)
        self.publisher.publish(entity, partial(self.discovery.tank, status.table_id, status.device_id))

    def _on_cover_status(self, frame: bytes) -> None:
        status = decode_cover_status(frame)
        entity = CoverSensor(
            table_id=status.table_id, device_id=status.device_id, status=status.status, position=status.position
        )
        self.publisher.publish(entity, partial(self.discovery.cover_sensor, status.table_id, status.device_id))

    def _on_session_heartbeat(self, frame: bytes) -> None:
        self.logger.debug("%s: session heartbeat", self.identity)

    def _on_real_time_clock(self, frame: bytes) -> None:
        self.publisher.publish_event("rtc", {"raw": frame.hex(" ").upper()})

    def _on_generic_event(self, frame: bytes) -> None:
        name = GENERIC_EVENT_NAMES[frame[0]]
        self.publisher.publish_event(
            name,
            {
                "event": name,
                "table_id": frame[1] if len(frame) > 1 else 0,
                "device_id": frame[2] if len(frame) > 2 else 0,
                "size": len(frame),
                "raw": frame.hex(" ").upper(),
            },
        )

    # --- Outbound ---

    async def send_command(self, kind: CommandType, payload: bytes, command_id: int) -> None:
        self._requests[command_id] = kind
        while len(self._requests) > ONECONTROL_MAX_TRACKED_REQUESTS:
            self._requests.popitem(last=False)
        await self.write(DATA_WRITE, cobs_encode(payload))

    async def request_devices(self) -> None:
        command_id = self.command_ids.next()
        await self.send_command(CommandType.GET_DEVICES, encode_get_devices(command_id, self.table_id), command_id)

    async def request_metadata(self) -> None:
        if self.metadata_requested or self.closed:
            return
        self.metadata_requested = True
        command_id = self.command_ids.next()
        self.logger.info("%s: requesting device metadata for table 0x%02X.", self.identity, self.table_id)
        await self.send_command(
            CommandType.GET_DEVICES_METADATA, encode_get_devices_metadata(command_id, self.table_id), command_id
        )

    async def _heartbeat(self) -> None:
        if self.closed:
            return
        try:
            await self.request_devices()
        except TransportError as exc:
            await self.teardown(f"heartbeat failed: {exc}")
            return
        self.publish_diagnostics()
        self.session.timers.schedule(ONECONTROL_HEARTBEAT_INTERVAL, "heartbeat", self._heartbeat)

    # --- Commands ---

    def check_control(self, route: CommandRoute) -> None:
        key = EntityKey(route.table_id, route.device_id)
        if route.entity_type == "cover":
            raise ControlDisabledError(route.entity_type, key)
        if route.entity_type in READ_ONLY_TYPES or route.entity_type.startswith("sensor"):
            raise ReadOnlyEntityError(route.entity_type, key)
        if route.entity_type not in CONTROLLABLE_TYPES:
            raise InvalidCommandError(route.entity_type, key, "unsupported entity type")

    async def execute_command(self, route: CommandRoute, payload: bytes) -> None:
        if route.entity_type == "switch":
            await self._command_switch(route, payload)
        elif route.entity_type == "light":
            await self._command_light(route, payload)
        elif route.entity_type == "hvac":
            await self._command_hvac(route, payload)

    async def _command_switch(self, route: CommandRoute, payload: bytes) -> None:
        on = parse_switch_payload(route, payload)
        key = EntityKey(route.table_id, route.device_id)
        self.publisher.publish_optimistic(
            Switch(table_id=route.table_id, device_id=route.device_id, is_on=on),
            partial(self.discovery.switch, route.table_id, route.device_id),
        )
        self.session.pending.install(key, {"is_on": on}, ONECONTROL_SWITCH_PENDING_WINDOW)
        command_id = self.command_ids.next()
        await self.send_command(
            CommandType.ACTION_SWITCH, encode_switch(command_id, route.table_id, route.device_id, on), command_id
        )

    def _requested_brightness(self, route: CommandRoute, payload: bytes) -> int:
        key = EntityKey(route.table_id, route.device_id)
        if route.subfield == "brightness":
            return int(parse_number(route, payload, low=0, high=255))
        document = parse_json_object(route, payload)
        if document is not None:
            state = str(document.get("state", "ON")).upper()
            if state == "OFF":
                return 0
            if "brightness" in document:
                try:
                    value = int(document["brightness"])
                except (TypeError, ValueError) as exc:
                    raise InvalidCommandError(route.entity_type, key, f"bad brightness {document['brightness']!r}") from exc
                return max(0, min(255, value))
            return self._last_brightness.get(key, 255)
        if parse_switch_payload(route, payload):
            return self._last_brightness.get(key, 255)
        return 0

    async def _command_light(self, route: CommandRoute, payload: bytes) -> None:
        brightness = self._requested_brightness(route, payload)
        key = EntityKey(route.table_id, route.device_id)
        token = f"dimmer:{key}"
        builder = partial(self.discovery.light, route.table_id, route.device_id)

        self.publisher.publish_optimistic(
            DimmableLight(
                table_id=route.table_id, device_id=route.device_id, brightness=brightness, mode=1 if brightness else 0
            ),
            builder,
        )
        if brightness == 0:
            self.session.timers.cancel(token)
            self._dimmer_targets.pop(key, None)
            self.session.pending.install(key, {"mode": 0}, ONECONTROL_DIMMER_PENDING_WINDOW, merge=False)
            await self._send_dimmer(key, 0)
            return

        self._dimmer_targets[key] = brightness
        self.session.pending.install(
            key, {"brightness": brightness}, ONECONTROL_DIMMER_PENDING_WINDOW, merge=False
        )
        self.session.timers.schedule(ONECONTROL_DIMMER_DEBOUNCE, token, partial(self._flush_dimmer, key))

    async def _flush_dimmer(self, key: EntityKey) -> None:
        brightness = self._dimmer_targets.pop(key, None)
        if brightness is None:
            return
        try:
            await self._send_dimmer(key, brightness)
        except TransportError as exc:
            await self.teardown(f"dimmer write failed: {exc}")
            return
        self._last_brightness[key] = brightness

    async def _send_dimmer(self, key: EntityKey, brightness: int) -> None:
        command_id = self.command_ids.next()
        await self.send_command(
            CommandType.ACTION_DIMMABLE,
            encode_dimmable(command_id, key.table_id, key.device_id, brightness),
            command_id,
        )

    async def _command_hvac(self, route: CommandRoute, payload: bytes) -> None:
        key = EntityKey(route.table_id, route.device_id)
        current = self.session.entities.get(key)
        raw = self._hvac_raw.get(key)
        if not isinstance(current, HvacZone) or raw is None:
            raise InvalidCommandError(route.entity_type, key, "no zone status received yet")

        heat_mode = raw.heat_mode
        fan_mode = raw.fan_mode
        low_trip = raw.low_trip
        high_trip = raw.high_trip
        text = payload.decode("utf-8", errors="replace").strip().lower()
        sub = route.subfield or "mode"
        target: dict[str, object]

        if sub == "mode":
            modes = {name: code for code, name in HVAC_MODES.items()}
            if text not in modes:
                raise InvalidCommandError(route.entity_type, key, f"unknown mode {text!r}")
            heat_mode = modes[text]
            target = {"mode": text}
        elif sub == "fan_mode":
            fans = {name: code for code, name in HVAC_FAN_MODES.items()}
            if text not in fans:
                raise InvalidCommandError(route.entity_type, key, f"unknown fan mode {text!r}")
            fan_mode = fans[text]
            target = {"fan_mode": text}
        elif sub in ("temperature", "temperature_low", "temperature_high"):
            value = int(round(parse_number(route, payload, low=HVAC_MIN_TEMP_F, high=HVAC_MAX_TEMP_F)))
            if sub == "temperature_high" or (sub == "temperature" and current.mode == "cool"):
                high_trip = value
                target = {"target_temperature_high": float(value)}
            else:
                low_trip = value
                target = {"target_temperature_low": float(value)}
        else:
            raise InvalidCommandError(route.entity_type, key, f"unknown hvac field {sub!r}")

        mode_name = HVAC_MODES.get(heat_mode, "off")
        optimistic = msgspec.structs.replace(
            current,
            mode=mode_name,
            fan_mode=HVAC_FAN_MODES.get(fan_mode, "auto"),
            target_temperature=_target_for(mode_name, low_trip, high_trip),
            target_temperature_high=float(high_trip),
            target_temperature_low=float(low_trip),
        )
        self.publisher.publish_optimistic(optimistic, self._climate_builder(route.table_id, route.device_id))
        self.session.pending.install(key, target, ONECONTROL_HVAC_PENDING_WINDOW)
        command_id = self.command_ids.next()
        await self.send_command(
            CommandType.ACTION_HVAC,
            encode_hvac(
                command_id,
                route.table_id,
                route.device_id,
                heat_mode=heat_mode,
                heat_source=raw.heat_source,
                fan_mode=fan_mode,
                low_trip=low_trip,
                high_trip=high_trip,
            ),
            command_id,
        )


__all__ = [
    "AUTH_SERVICE",
    "AUTH_STATUS",
    "DATA_READ",
    "DATA_SERVICE",
    "DATA_WRITE",
    "KEY",
    "OneControlSession",
    "SEED",
    "UNLOCK_STATUS",
    "is_unlocked",
]
