"""GoPower solar charge controller session.

No authentication: once notifications are enabled the controller answers a
single space written to the write characteristic with one ASCII sample of
32 ``;``-separated fields, possibly spread over several notifications.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import partial
from typing import Any, Final

import msgspec

from ..config.const import FAMILY_GOPOWER, GOPOWER_POLL_INTERVAL, GOPOWER_UNLOCK_DELAY
from ..config.settings import PeripheralConfig, RuntimeConfig
from ..errors import InvalidCommandError, TransportError
from ..protocol.ascii import DelimitedAccumulator, parse_signed, parse_unsigned, split_fields
from ..protocol.topics import CommandRoute
from ..services.commands import decode_text
from ..services.discovery import PAYLOAD_PRESS
from ..services.session import BaseSession
from ..state.context import BridgeState
from ..state.entities import EntityKey, NumericSensor
from ..transport.ble import BleTransport, ServiceMap
from ..transport.sink import Sink

_BASE_UUID: Final[str] = "-0000-1000-8000-00805f9b34fb"

SERVICE: Final[str] = f"0000fff0{_BASE_UUID}"
NOTIFY: Final[str] = f"0000fff1{_BASE_UUID}"
WRITE: Final[str] = f"0000fff2{_BASE_UUID}"

POLL_COMMAND: Final[bytes] = b" "
UNLOCK_COMMAND: Final[bytes] = b"&G++0900"
REBOOT_COMMAND: Final[bytes] = b"&LDD0100"

MODEL_NUMBER: Final[str] = "GP-PWM-30-SB"
SENSOR_TABLE_ID: Final[int] = 0
REBOOT_ACTION: Final[str] = "reboot"

FIELD_SOLAR_CURRENT: Final[int] = 0
FIELD_BATTERY_VOLTAGE: Final[int] = 2
FIELD_FIRMWARE: Final[int] = 8
FIELD_SOC: Final[int] = 10
FIELD_SOLAR_VOLTAGE: Final[int] = 11
FIELD_SERIAL: Final[int] = 14
FIELD_TEMP_C: Final[int] = 16
FIELD_AH_TODAY: Final[int] = 19
FIELD_AH_YESTERDAY: Final[int] = 20
FIELD_AH_WEEK: Final[int] = 24


class ControllerSample(msgspec.Struct, frozen=True, kw_only=True):
    solar_voltage: float
    solar_current: float
    battery_voltage: float
    state_of_charge: int
    temperature: int
    amp_hours_today: int
    amp_hours_yesterday: int
    amp_hours_week: int
    firmware: str
    serial: str | None = None

    @property
    def solar_power(self) -> float:
        return self.solar_voltage * self.solar_current


def parse_sample(sample: str) -> ControllerSample:
    """Decode one full sample.

    Raises :class:`~blebridge.protocol.ascii.IncompleteSampleError` for a
    short sample and :class:`~blebridge.errors.ProtocolError` for a malformed field; either way
    nothing from the sample is used.
    """
    fields = split_fields(sample)
    try:
        serial: str | None = str(int(fields[FIELD_SERIAL], 16))
    except ValueError:
        serial = None
    return ControllerSample(
        solar_voltage=parse_unsigned(fields[FIELD_SOLAR_VOLTAGE]) / 1000.0,
        solar_current=parse_unsigned(fields[FIELD_SOLAR_CURRENT]) / 1000.0,
        battery_voltage=parse_unsigned(fields[FIELD_BATTERY_VOLTAGE]) / 1000.0,
        state_of_charge=parse_unsigned(fields[FIELD_SOC]),
        temperature=parse_signed(fields[FIELD_TEMP_C]),
        amp_hours_today=parse_unsigned(fields[FIELD_AH_TODAY]),
        amp_hours_yesterday=parse_unsigned(fields[FIELD_AH_YESTERDAY]),
        amp_hours_week=parse_unsigned(fields[FIELD_AH_WEEK]),
        firmware=str(parse_unsigned(fields[FIELD_FIRMWARE])),
        serial=serial,
    )


class SensorSpec(msgspec.Struct, frozen=True):
    device_id: int
    metric: str
    label: str
    unit: str | None
    device_class: str | None
    icon: str
    precision: int | None
    read: Callable[[ControllerSample], float | int]
    state_class: str = "measurement"


SENSORS: Final[tuple[SensorSpec, ...]] = (
    SensorSpec(1, "solar_voltage", "Solar Voltage", "V", "voltage", "mdi:solar-panel", 3, lambda s: s.solar_voltage),
    SensorSpec(2, "solar_current", "Solar Current", "A", "current", "mdi:current-dc", 3, lambda s: s.solar_current),
    SensorSpec(3, "solar_power", "Solar Power", "W", "power", "mdi:solar-power", 1, lambda s: s.solar_power),
    SensorSpec(4, "battery_voltage", "Battery Voltage", "V", "voltage", "mdi:car-battery", 3, lambda s: s.battery_voltage),
    SensorSpec(5, "state_of_charge", "State of Charge", "%", "battery", "mdi:battery", None, lambda s: s.state_of_charge),
    SensorSpec(6, "temperature", "Temperature", "°C", "temperature", "mdi:thermometer", None, lambda s: s.temperature),
    SensorSpec(
        7, "amp_hours_today", "Amp Hours Today", "Ah", None, "mdi:battery-charging", None,
        lambda s: s.amp_hours_today, "total_increasing",
    ),
    SensorSpec(
        8, "amp_hours_yesterday", "Amp Hours Yesterday", "Ah", None, "mdi:battery-charging", None,
        lambda s: s.amp_hours_yesterday, "total",
    ),
    SensorSpec(
        9, "amp_hours_week", "Amp Hours Week", "Ah", None, "mdi:battery-charging", None,
        lambda s: s.amp_hours_week, "total",
    ),
)


class GoPowerSession(BaseSession):
    """Session for a GoPower PWM solar charge controller."""

    family = FAMILY_GOPOWER

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
        self.accumulator = DelimitedAccumulator()
        self.samples = 0
        self._device_info: dict[str, str] = {}

    def on_services(self, services: ServiceMap) -> None:
        super().on_services(services)
        missing = [uuid for uuid in (NOTIFY, WRITE) if uuid not in self.session.handles]
        if missing:
            raise TransportError(f"controller is missing characteristics: {', '.join(missing)}")

    async def authenticate(self) -> None:
        self.session.authenticated = True

    async def subscribe(self) -> None:
        await self.transport.set_notification(NOTIFY, True)

    async def on_ready(self) -> None:
        self.publisher.publish_button(
            partial(self.discovery.button, SENSOR_TABLE_ID, 0, action=REBOOT_ACTION, icon="mdi:restart"),
            EntityKey(SENSOR_TABLE_ID, 0),
            REBOOT_ACTION,
            "Reboot",
        )
        self._set_device_info("model_number", MODEL_NUMBER)
        await self._poll()

    async def _poll(self) -> None:
        if self.closed:
            return
        try:
            await self.write(WRITE, POLL_COMMAND)
        except TransportError as exc:
            await self.teardown(f"poll failed: {exc}")
            return
        self.publish_diagnostics()
        self.session.timers.schedule(GOPOWER_POLL_INTERVAL, "poll", self._poll)

    # --- Inbound ---

    async def handle_notification(self, uuid: str, data: bytes) -> None:
        if uuid != NOTIFY:
            self.logger.debug("%s: notification on unexpected characteristic %s", self.identity, uuid)
            return
        sample = self.accumulator.feed(data)
        if sample is not None:
            self.process_sample(sample)

    def process_sample(self, sample: str) -> ControllerSample:
        parsed = parse_sample(sample)
        self.samples += 1
        self.mark_liveness()
        for spec in SENSORS:
            value = spec.read(parsed)
            entity = NumericSensor(
                table_id=SENSOR_TABLE_ID,
                device_id=spec.device_id,
                name=spec.label,
                metric=spec.metric,
                value=value,
                unit=spec.unit,
                precision=spec.precision,
            )
            self.publisher.publish(
                entity,
                partial(
                    self.discovery.sensor,
                    SENSOR_TABLE_ID,
                    spec.device_id,
                    field=spec.metric,
                    object_prefix=spec.metric,
                    unit=spec.unit,
                    device_class=spec.device_class,
                    state_class=spec.state_class,
                    icon=spec.icon,
                ),
            )
        self._set_device_info("firmware_version", parsed.firmware)
        if parsed.serial is not None:
            self._set_device_info("serial_number", parsed.serial)
        return parsed

    def _set_device_info(self, name: str, value: str) -> None:
        if self._device_info.get(name) == value:
            return
        self._device_info[name] = value
        label, icon = DEVICE_INFO_LABELS[name]
        self.publisher.publish_diag_text(name, label, value, icon)

    # --- Commands ---

    def check_control(self, route: CommandRoute) -> None:
        key = EntityKey(route.table_id, route.device_id)
        if route.entity_type != "button" or route.subfield != REBOOT_ACTION:
            raise InvalidCommandError(route.entity_type, key, "only the reboot button accepts commands")

    async def execute_command(self, route: CommandRoute, payload: bytes) -> None:
        if decode_text(payload).upper() != PAYLOAD_PRESS:
            raise InvalidCommandError(route.entity_type, EntityKey(route.table_id, route.device_id), "expected PRESS")
        self.logger.info("%s: rebooting controller.", self.identity)
        await self.write(WRITE, UNLOCK_COMMAND)
        await asyncio.sleep(GOPOWER_UNLOCK_DELAY)
        await self.write(WRITE, REBOOT_COMMAND)


DEVICE_INFO_LABELS: Final[dict[str, tuple[str, str]]] = {
    "model_number": ("Model Number", "mdi:barcode"),
    "serial_number": ("Serial Number", "mdi:identifier"),
    "firmware_version": ("Firmware Version", "mdi:chip"),
}


__all__ = [
    "ControllerSample",
    "GoPowerSession",
    "NOTIFY",
    "SENSORS",
    "WRITE",
    "parse_sample",
]
