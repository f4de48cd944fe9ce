"""EasyTouch thermostat session.

The thermostat speaks JSON over a vendor service: requests go to the
command characteristic, responses come back on the return characteristic,
either as notifications or, on firmware without notify support, through a
read issued after each write. Responses are told apart by ``Type`` and the
``RT`` response-type field.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from functools import partial
from typing import Any, Final

import msgspec
import tenacity

from ..config.const import (
    EASYTOUCH_CHANGE_REFRESH_DELAY,
    EASYTOUCH_CONFIG_SPACING,
    EASYTOUCH_CONFIG_ZONES,
    EASYTOUCH_FOLLOWUP_READS,
    EASYTOUCH_MAX_TEMP_F,
    EASYTOUCH_MIN_TEMP_F,
    EASYTOUCH_PENDING_WINDOW,
    EASYTOUCH_POLL_INTERVAL,
    EASYTOUCH_READ_DELAY,
    EASYTOUCH_VERIFY_DELAY,
    EASYTOUCH_WRITE_EXTRA_ATTEMPTS,
    EASYTOUCH_WRITE_RETRY_BASE,
    EASYTOUCH_WRITE_RETRY_START,
    EASYTOUCH_WRITE_RETRY_STEP,
    FAMILY_EASYTOUCH,
)
from ..config.settings import PeripheralConfig, RuntimeConfig
from ..errors import AuthenticationFailed, InvalidCommandError, ProtocolError, TransportError
from ..protocol.text import JsonAccumulator, encode_envelope
from ..protocol.topics import CommandRoute
from ..services.commands import decode_text, parse_number, write_with_retry
from ..services.discovery import PAYLOAD_PRESS, DiscoveryBuilder
from ..services.dispatcher import EventDispatcher
from ..services.session import BaseSession
from ..state.context import BridgeState
from ..state.entities import EntityKey, HvacZone
from ..transport.ble import BleTransport, ServiceMap
from ..transport.sink import Sink

_BASE_UUID: Final[str] = "-0000-1000-8000-00805f9b34fb"


def _uuid16(short: int) -> str:
    return f"{short:08x}{_BASE_UUID}"


SERVICE: Final[str] = _uuid16(0x00FF)
PASSWORD: Final[str] = _uuid16(0xDD01)
JSON_CMD: Final[str] = _uuid16(0xEE01)
JSON_RETURN: Final[str] = _uuid16(0xFF01)

MODEL_NUMBER: Final[str] = _uuid16(0x2A24)
SERIAL_NUMBER: Final[str] = _uuid16(0x2A25)
FIRMWARE_REVISION: Final[str] = _uuid16(0x2A26)

REQUIRED_CHARACTERISTICS: Final[tuple[str, ...]] = (PASSWORD, JSON_CMD, JSON_RETURN)

DEVICE_MODES: Final[dict[int, str]] = {0: "off", 1: "fan_only", 2: "cool", 4: "heat", 6: "dry", 11: "auto"}
MODE_VALUES: Final[dict[str, int]] = {name: value for value, name in DEVICE_MODES.items()}
DEFAULT_MODES: Final[tuple[str, ...]] = ("off", "heat", "cool", "auto", "fan_only", "dry")

FAN_NAMES: Final[dict[int, str]] = {0: "off", 1: "low", 2: "high", 65: "low", 66: "high", 128: "auto"}
FAN_ONLY_NAMES: Final[dict[int, str]] = {0: "off", 1: "low", 2: "high"}
FAN_VALUES: Final[dict[str, int]] = {"off": 0, "low": 1, "high": 2, "auto": 128}
SUPPORTED_FAN_MODES: Final[tuple[str, ...]] = ("auto", "low", "high")

# Change keys per mode; modes without an entry have no adjustable setpoint or fan.
SETPOINT_KEYS: Final[dict[str, str]] = {"cool": "cool_sp", "heat": "heat_sp", "dry": "dry_sp"}
FAN_KEYS: Final[dict[str, str]] = {"fan_only": "fanOnly", "cool": "coolFan", "heat": "heatFan", "auto": "autoFan"}

OUTSIDE_TEMP_INVALID: Final[int] = 255
SYSTEM_POWER_FLAG: Final[int] = 0x08
ZONE_TABLE_ID: Final[int] = 0
REBOOT_ACTION: Final[str] = "reboot"
MIN_ZONE_FIELDS: Final[int] = 12


class ZoneConfig(msgspec.Struct, frozen=True):
    zone: int
    available_modes: int = 0
    min_cool: int = EASYTOUCH_MIN_TEMP_F
    max_cool: int = EASYTOUCH_MAX_TEMP_F
    min_heat: int = EASYTOUCH_MIN_TEMP_F
    max_heat: int = EASYTOUCH_MAX_TEMP_F

    @property
    def modes(self) -> tuple[str, ...]:
        return modes_from_mask(self.available_modes)


class ZoneStatus(msgspec.Struct, frozen=True, kw_only=True):
    zone: int
    auto_heat_sp: int
    auto_cool_sp: int
    cool_sp: int
    heat_sp: int
    dry_sp: int
    fan_only_speed: int
    cool_fan_speed: int
    electric_fan_speed: int
    auto_fan_speed: int
    mode: int
    gas_fan_speed: int
    ambient: int
    outside: int = OUTSIDE_TEMP_INVALID
    fault: int = 0
    flags: int = 0

    @property
    def cycle_active(self) -> bool:
        return bool(self.flags & 0x01)

    @property
    def cooling(self) -> bool:
        return bool(self.flags & 0x02)

    @property
    def heating(self) -> bool:
        return bool(self.flags & 0x04)


class ThermostatStatus(msgspec.Struct, frozen=True):
    zones: dict[int, ZoneStatus]
    system_power: bool = True
    serial_number: str | None = None
    firmware_revision: str | None = None
    device_type: str | None = None
    config_index: int | None = None


def modes_from_mask(mask: int) -> tuple[str, ...]:
    """Translate the MAV bitmask; bit N means device mode N is available."""
    if mask == 0:
        return DEFAULT_MODES
    modes = ["off"]
    for bit in range(16):
        name = DEVICE_MODES.get(bit)
        if mask & (1 << bit) and name is not None and name not in modes:
            modes.append(name)
    return tuple(modes)


def response_tag(document: Mapping[str, Any]) -> str | None:
    kind = document.get("Type")
    if kind == "Response":
        return document.get("RT")
    if kind == "Change Result":
        return "Change"
    return kind


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ProtocolError(f"{what} is not numeric: {value!r}")
    try:
        return int(value)
    except ValueError as exc:
        raise ProtocolError(f"{what} is not numeric: {value!r}") from exc


def _zone_status(zone: int, values: Sequence[Any]) -> ZoneStatus:
    fields = [_int(value, f"zone {zone} field {index}") for index, value in enumerate(values)]
    fields.extend([0] * max(0, 13 - len(fields)))
    return ZoneStatus(
        zone=zone,
        auto_heat_sp=fields[0],
        auto_cool_sp=fields[1],
        cool_sp=fields[2],
        heat_sp=fields[3],
        dry_sp=fields[4],
        fan_only_speed=fields[6],
        cool_fan_speed=fields[7],
        electric_fan_speed=fields[8],
        auto_fan_speed=fields[9],
        mode=fields[10],
        gas_fan_speed=fields[11],
        ambient=fields[12],
        outside=fields[13] if len(fields) > 13 else OUTSIDE_TEMP_INVALID,
        fault=fields[14] if len(fields) > 14 else 0,
        flags=fields[15] if len(fields) > 15 else 0,
    )


def parse_status(document: Mapping[str, Any]) -> ThermostatStatus:
    """Parse a ``Status`` response; zones with too few fields are skipped."""
    raw_zones = document.get("Z_sts")
    if not isinstance(raw_zones, dict):
        raise ProtocolError("status response has no Z_sts object")

    zones: dict[int, ZoneStatus] = {}
    for name, values in raw_zones.items():
        try:
            zone = int(name)
        except ValueError:
            continue
        if not isinstance(values, list) or len(values) < MIN_ZONE_FIELDS:
            continue
        zones[zone] = _zone_status(zone, values)

    params = document.get("PRM")
    system_power = True
    if isinstance(params, list) and len(params) > 1:
        system_power = bool(_int(params[1], "PRM[1]") & SYSTEM_POWER_FLAG)

    config_index = document.get("CI")
    return ThermostatStatus(
        zones=zones,
        system_power=system_power,
        serial_number=_text(document.get("SN")),
        firmware_revision=_text(document.get("REV")),
        device_type=_text(document.get("TT")),
        config_index=config_index if isinstance(config_index, int) and config_index >= 0 else None,
    )


def parse_config(document: Mapping[str, Any], requested_zone: int) -> ZoneConfig | None:
    config = document.get("CFG")
    if not isinstance(config, dict):
        return None
    limits = config.get("SPL")
    limits = limits if isinstance(limits, list) else []

    def limit(index: int, default: int) -> int:
        return _int(limits[index], f"SPL[{index}]") if index < len(limits) else default

    return ZoneConfig(
        zone=_int(config.get("Zone", requested_zone), "Zone"),
        available_modes=_int(config.get("MAV", 0), "MAV"),
        min_cool=limit(0, EASYTOUCH_MIN_TEMP_F),
        max_cool=limit(1, EASYTOUCH_MAX_TEMP_F),
        min_heat=limit(2, EASYTOUCH_MIN_TEMP_F),
        max_heat=limit(3, EASYTOUCH_MAX_TEMP_F),
    )


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def fan_mode_name(status: ZoneStatus, mode: str) -> str:
    if mode == "fan_only":
        return FAN_ONLY_NAMES.get(status.fan_only_speed, "off")
    speed = {
        "cool": status.cool_fan_speed,
        "heat": status.electric_fan_speed,
        "auto": status.auto_fan_speed,
    }.get(mode)
    if speed is None:
        return "off"
    return FAN_NAMES.get(speed, "auto")


def zone_action(status: ZoneStatus) -> str:
    if status.cooling:
        return "cooling"
    if status.heating:
        return "heating"
    if status.cycle_active and status.mode == MODE_VALUES["fan_only"]:
        return "fan"
    if status.mode == MODE_VALUES["off"]:
        return "off"
    return "idle"


def zone_entity(status: ZoneStatus, *, system_power: bool, config: ZoneConfig | None) -> HvacZone:
    """Build the climate entity; a powered-down system always reports ``off``."""
    mode = DEVICE_MODES.get(status.mode, "off") if system_power else "off"
    target: float | None = None
    high: float | None = None
    low: float | None = None
    if mode == "cool":
        target = float(status.cool_sp)
    elif mode == "heat":
        target = float(status.heat_sp)
    elif mode == "dry":
        target = float(status.dry_sp)
    elif mode == "auto":
        high = float(status.auto_cool_sp)
        low = float(status.auto_heat_sp)

    return HvacZone(
        table_id=ZONE_TABLE_ID,
        device_id=status.zone,
        mode=mode,
        fan_mode=fan_mode_name(status, mode),
        action=zone_action(status),
        current_temperature=float(status.ambient),
        outdoor_temperature=None if status.outside == OUTSIDE_TEMP_INVALID else float(status.outside),
        target_temperature=target,
        target_temperature_high=high,
        target_temperature_low=low,
        modes=config.modes if config is not None else DEFAULT_MODES,
        min_temperature=config.min_heat if config is not None else EASYTOUCH_MIN_TEMP_F,
        max_temperature=config.max_cool if config is not None else EASYTOUCH_MAX_TEMP_F,
        dtc=status.fault or None,
    )


def change_request(zone: int, **changes: Any) -> dict[str, Any]:
    return {"Type": "Change", "Changes": {"zone": zone, **changes}}


class EasyTouchSession(BaseSession):
    """Session for a Micro-Air EasyTouch thermostat."""

    family = FAMILY_EASYTOUCH

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
        self.accumulator = JsonAccumulator()
        self.responses: EventDispatcher[dict[str, Any]] = EventDispatcher(str(self.identity), response_tag)
        self.responses.register("Config", self._on_config)
        self.responses.register("Status", self._on_status)
        self.responses.register("Change", self._on_change_result)

        self.notifications = False
        self.zone_configs: dict[int, ZoneConfig] = {}
        self.zones: dict[int, ZoneStatus] = {}
        self.device_info: dict[str, str] = {}
        self._exchange = asyncio.Lock()

    @staticmethod
    def secret_for(peripheral: PeripheralConfig) -> str:
        return peripheral.password

    # --- Setup ---

    def on_services(self, services: ServiceMap) -> None:
        super().on_services(services)
        missing = [uuid for uuid in REQUIRED_CHARACTERISTICS if uuid not in self.session.handles]
        if missing:
            raise TransportError(f"thermostat is missing characteristics: {', '.join(missing)}")

    async def authenticate(self) -> None:
        password = self.session.secret
        if not password:
            raise AuthenticationFailed("no password configured")
        await self.write(PASSWORD, password.encode("utf-8"))
        echo = await self.transport.read(PASSWORD)
        if echo.rstrip(b"\x00").decode("utf-8", errors="replace").strip() != password:
            raise AuthenticationFailed("thermostat did not echo the password")
        self.session.authenticated = True
        self.mark_liveness()
        self.logger.info("%s: password accepted.", self.identity)
        self.publish_diagnostics()

    async def subscribe(self) -> None:
        try:
            await self.transport.set_notification(JSON_RETURN, True)
        except TransportError as exc:
            self.logger.info("%s: notifications unavailable (%s); reading responses after writes.", self.identity, exc)
            return
        self.notifications = True

    async def on_ready(self) -> None:
        self.publisher.publish_button(
            partial(self.discovery.button, ZONE_TABLE_ID, 0, action=REBOOT_ACTION, icon="mdi:restart"),
            EntityKey(ZONE_TABLE_ID, 0),
            REBOOT_ACTION,
            "Reboot",
        )
        await self._read_device_information()
        for zone in EASYTOUCH_CONFIG_ZONES:
            await self.send_json({"Type": "Get Config", "Zone": zone})
            await asyncio.sleep(EASYTOUCH_CONFIG_SPACING)
        await self._poll()

    async def _read_device_information(self) -> None:
        for uuid, name in ((MODEL_NUMBER, "model_number"), (SERIAL_NUMBER, "serial_number"), (FIRMWARE_REVISION, "firmware_version")):
            if uuid not in self.session.handles:
                continue
            try:
                raw = await self.transport.read(uuid)
            except TransportError as exc:
                self.logger.debug("%s: device information %s unreadable: %s", self.identity, name, exc)
                continue
            self._set_device_info(name, _text(raw.rstrip(b"\x00").decode("utf-8", errors="replace")))

    # --- Outbound ---

    async def send_json(self, message: Mapping[str, Any]) -> None:
        """Write one request; without notifications, read the reply back."""
        payload = encode_envelope(message)
        async with self._exchange:
            await asyncio.sleep(EASYTOUCH_WRITE_RETRY_BASE)
            await write_with_retry(
                self.transport,
                JSON_CMD,
                payload,
                extra_attempts=EASYTOUCH_WRITE_EXTRA_ATTEMPTS,
                wait=tenacity.wait_incrementing(start=EASYTOUCH_WRITE_RETRY_START, increment=EASYTOUCH_WRITE_RETRY_STEP),
            )
            self.logger.debug("%s: sent %s", self.identity, payload.decode("utf-8"))
            if not self.notifications:
                await self._read_reply()

    async def _read_reply(self) -> None:
        for _ in range(EASYTOUCH_FOLLOWUP_READS):
            await asyncio.sleep(EASYTOUCH_READ_DELAY)
            chunk = await self.transport.read(JSON_RETURN)
            if chunk:
                await self.consume(chunk)
            if not self.accumulator.pending:
                return

    async def request_status(self, zone: int = 0) -> None:
        await self.send_json({"Type": "Get Status", "Zone": zone, "EM": "x", "TM": 0})

    async def _poll(self) -> None:
        if self.closed:
            return
        try:
            await self.request_status()
        except TransportError as exc:
            await self.teardown(f"status poll failed: {exc}")
            return
        self.publish_diagnostics()
        self.session.timers.schedule(EASYTOUCH_POLL_INTERVAL, "poll", self._poll)

    async def _refresh(self) -> None:
        try:
            await self.request_status()
        except TransportError as exc:
            await self.teardown(f"status refresh failed: {exc}")

    # --- Inbound ---

    async def handle_notification(self, uuid: str, data: bytes) -> None:
        if uuid == JSON_RETURN:
            await self.consume(data)
        else:
            self.logger.debug("%s: notification on unexpected characteristic %s", self.identity, uuid)

    async def consume(self, chunk: bytes) -> None:
        for document in self.accumulator.feed(chunk):
            self.mark_liveness()
            if not await self.responses.dispatch(document):
                self.logger.debug("%s: unhandled response %s", self.identity, response_tag(document))

    def _on_config(self, document: dict[str, Any]) -> None:
        config = parse_config(document, requested_zone=len(self.zone_configs))
        if config is None:
            self.logger.warning("%s: config response without CFG object.", self.identity)
            return
        self.zone_configs[config.zone] = config
        self.logger.info(
            "%s: zone %d modes %s, cool %d-%d, heat %d-%d",
            self.identity,
            config.zone,
            ",".join(config.modes),
            config.min_cool,
            config.max_cool,
            config.min_heat,
            config.max_heat,
        )

    def _on_status(self, document: dict[str, Any]) -> None:
        status = parse_status(document)
        self._apply_device_info(status)
        for zone, zone_status in sorted(status.zones.items()):
            self.zones[zone] = zone_status
            entity = zone_entity(zone_status, system_power=status.system_power, config=self.zone_configs.get(zone))
            self.publisher.publish(entity, self._climate_builder(zone))

    def _on_change_result(self, document: dict[str, Any]) -> None:
        if document.get("Success") is True:
            self.session.timers.schedule(EASYTOUCH_CHANGE_REFRESH_DELAY, "change-refresh", self._refresh)
        else:
            self.logger.warning("%s: thermostat rejected change: %s", self.identity, document)

    def _apply_device_info(self, status: ThermostatStatus) -> None:
        if status.serial_number is not None:
            self._set_device_info("serial_number", status.serial_number)
            if len(status.serial_number) >= 3:
                self._set_device_info("model_number", status.serial_number[:3])
        self._set_device_info("firmware_version", status.firmware_revision)
        self._set_device_info("device_type", status.device_type)
        if status.config_index is not None:
            self._set_device_info("config_index", str(status.config_index))

    def _set_device_info(self, name: str, value: str | None) -> None:
        if value is None or name in self.device_info:
            return
        self.device_info[name] = value
        label, icon = DEVICE_INFO_LABELS[name]
        self.publisher.publish_diag_text(name, label, value, icon)

    def _climate_builder(self, zone: int) -> DiscoveryBuilder:
        config = self.zone_configs.get(zone)
        return partial(
            self.discovery.climate,
            ZONE_TABLE_ID,
            zone,
            modes=config.modes if config is not None else DEFAULT_MODES,
            fan_modes=SUPPORTED_FAN_MODES,
            min_temp=config.min_heat if config is not None else EASYTOUCH_MIN_TEMP_F,
            max_temp=config.max_cool if config is not None else EASYTOUCH_MAX_TEMP_F,
        )

    # --- Commands ---

    def check_control(self, route: CommandRoute) -> None:
        key = EntityKey(route.table_id, route.device_id)
        if route.entity_type == "button":
            if route.subfield != REBOOT_ACTION:
                raise InvalidCommandError(route.entity_type, key, f"unknown action {route.subfield!r}")
            return
        if route.entity_type != "hvac":
            raise InvalidCommandError(route.entity_type, key, "unsupported entity type")
        if route.table_id != ZONE_TABLE_ID:
            raise InvalidCommandError(route.entity_type, key, "unknown zone")

    async def execute_command(self, route: CommandRoute, payload: bytes) -> None:
        if route.entity_type == "button":
            await self._command_reboot(route, payload)
        else:
            await self._command_zone(route, payload)

    async def _command_reboot(self, route: CommandRoute, payload: bytes) -> None:
        if decode_text(payload).upper() != PAYLOAD_PRESS:
            raise InvalidCommandError(route.entity_type, EntityKey(route.table_id, route.device_id), "expected PRESS")
        self.logger.info("%s: rebooting thermostat.", self.identity)
        await self.send_json(change_request(0, reset=" OK"))

    async def _command_zone(self, route: CommandRoute, payload: bytes) -> None:
        zone = route.device_id
        key = EntityKey(ZONE_TABLE_ID, zone)
        current = self.session.entities.get(key)
        if zone not in self.zones or not isinstance(current, HvacZone):
            raise InvalidCommandError(route.entity_type, key, "no status received for zone yet")

        sub = route.subfield or "mode"
        text = decode_text(payload).lower()
        changes: dict[str, Any]
        target: dict[str, Any]

        if sub == "mode":
            if text not in MODE_VALUES:
                raise InvalidCommandError(route.entity_type, key, f"unknown mode {text!r}")
            changes = {"power": 0 if text == "off" else 1, "mode": MODE_VALUES[text]}
            target = {"mode": text}
        elif sub == "fan_mode":
            fan_key = FAN_KEYS.get(current.mode)
            if fan_key is None:
                raise InvalidCommandError(route.entity_type, key, f"fan is fixed in {current.mode} mode")
            allowed = FAN_ONLY_NAMES.values() if current.mode == "fan_only" else SUPPORTED_FAN_MODES
            if text not in allowed:
                raise InvalidCommandError(route.entity_type, key, f"unknown fan mode {text!r}")
            changes = {fan_key: FAN_VALUES[text]}
            target = {"fan_mode": text}
        elif sub == "temperature":
            setpoint_key = SETPOINT_KEYS.get(current.mode)
            if setpoint_key is None:
                raise InvalidCommandError(route.entity_type, key, f"no single setpoint in {current.mode} mode")
            value = self._setpoint(route, payload)
            changes = {setpoint_key: value}
            target = {"target_temperature": float(value)}
        elif sub in ("temperature_high", "temperature_low"):
            value = self._setpoint(route, payload)
            field = "target_temperature_high" if sub == "temperature_high" else "target_temperature_low"
            changes = {"autoCool_sp" if sub == "temperature_high" else "autoHeat_sp": value}
            target = {field: float(value)} if current.mode == "auto" else {}
        else:
            raise InvalidCommandError(route.entity_type, key, f"unknown climate field {sub!r}")

        if target:
            self.publisher.publish_optimistic(msgspec.structs.replace(current, **target), self._climate_builder(zone))
            self.session.pending.install(key, target, EASYTOUCH_PENDING_WINDOW)
        await self.send_json(change_request(zone, **changes))
        self.session.timers.schedule(EASYTOUCH_VERIFY_DELAY, f"verify:{zone}", self._refresh)

    @staticmethod
    def _setpoint(route: CommandRoute, payload: bytes) -> int:
        return int(round(parse_number(route, payload, low=EASYTOUCH_MIN_TEMP_F, high=EASYTOUCH_MAX_TEMP_F)))


DEVICE_INFO_LABELS: Final[dict[str, tuple[str, str]]] = {
    "model_number": ("Model Number", "mdi:barcode"),
    "serial_number": ("Serial Number", "mdi:identifier"),
    "firmware_version": ("Firmware Version", "mdi:chip"),
    "device_type": ("Device Type", "mdi:thermostat"),
    "config_index": ("Config Index", "mdi:cog"),
}


__all__ = [
    "EasyTouchSession",
    "JSON_CMD",
    "JSON_RETURN",
    "PASSWORD",
    "ZoneConfig",
    "ZoneStatus",
    "modes_from_mask",
    "parse_config",
    "parse_status",
    "response_tag",
    "zone_entity",
]
