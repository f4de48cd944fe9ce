"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import Schema, ValidationError, fields, post_load, pre_load, validate, validates_schema

from .const import (
    DEFAULT_BLE_CONNECT_TIMEOUT,
    DEFAULT_DISCOVERY_PREFIX,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QUEUE_LIMIT,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_NAME_CACHE_PATH,
    DEFAULT_ONECONTROL_PIN,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_STATUS_INTERVAL,
    DEFAULT_WATCHDOG_INTERVAL,
    DEFAULT_WATCHDOG_THRESHOLD,
    FAMILIES,
)
from .settings import PeripheralConfig, RuntimeConfig


class PeripheralSchema(Schema):
    """Schema for one bridged peripheral entry."""

    address = fields.Str(required=True, validate=validate.Regexp(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$"))
    family = fields.Str(required=True, validate=validate.OneOf(FAMILIES))
    pin = fields.Str(load_default=DEFAULT_ONECONTROL_PIN, validate=validate.Length(min=1, max=6))
    password = fields.Str(load_default="")
    enabled = fields.Bool(load_default=True)
    name_byte_order = fields.Str(load_default="big", validate=validate.OneOf(("big", "little")))

    @post_load
    def make_peripheral(self, data: Dict[str, Any], **kwargs: Any) -> PeripheralConfig:
        try:
            return PeripheralConfig(**data)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for BLE bridge configuration."""

    # MQTT
    mqtt_host = fields.Str(load_default=DEFAULT_MQTT_HOST, validate=validate.Length(min=1))
    mqtt_port = fields.Int(load_default=DEFAULT_MQTT_PORT, validate=validate.Range(min=1, max=65535))
    mqtt_user = fields.Str(load_default=None, allow_none=True)
    mqtt_pass = fields.Str(load_default=None, allow_none=True)
    mqtt_tls = fields.Bool(load_default=False)
    mqtt_tls_insecure = fields.Bool(load_default=False)
    mqtt_cafile = fields.Str(load_default=None, allow_none=True)
    mqtt_certfile = fields.Str(load_default=None, allow_none=True)
    mqtt_keyfile = fields.Str(load_default=None, allow_none=True)
    mqtt_topic = fields.Str(load_default=DEFAULT_MQTT_TOPIC, validate=validate.Length(min=1))
    discovery_prefix = fields.Str(load_default=DEFAULT_DISCOVERY_PREFIX, validate=validate.Length(min=1))
    mqtt_queue_limit = fields.Int(load_default=DEFAULT_MQTT_QUEUE_LIMIT, validate=validate.Range(min=1))
    reconnect_delay = fields.Int(load_default=DEFAULT_RECONNECT_DELAY, validate=validate.Range(min=1))

    # System
    status_interval = fields.Int(load_default=DEFAULT_STATUS_INTERVAL, validate=validate.Range(min=1))
    debug_logging = fields.Bool(load_default=False)
    watchdog_interval = fields.Float(load_default=DEFAULT_WATCHDOG_INTERVAL, validate=validate.Range(min=0.5))
    watchdog_threshold = fields.Float(load_default=DEFAULT_WATCHDOG_THRESHOLD, validate=validate.Range(min=1.0))
    ble_connect_timeout = fields.Float(load_default=DEFAULT_BLE_CONNECT_TIMEOUT, validate=validate.Range(min=1.0))
    metrics_enabled = fields.Bool(load_default=False)
    metrics_host = fields.Str(load_default=DEFAULT_METRICS_HOST)
    metrics_port = fields.Int(load_default=DEFAULT_METRICS_PORT, validate=validate.Range(min=0, max=65535))
    name_cache_path = fields.Str(load_default=DEFAULT_NAME_CACHE_PATH, validate=validate.Length(min=1))

    peripherals = fields.List(fields.Nested(PeripheralSchema), load_default=list)

    @pre_load
    def normalize_topics(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        for key in ("mqtt_topic", "discovery_prefix"):
            if key in data and isinstance(data[key], str):
                # Empty after normalisation fails the Length validator.
                data[key] = "/".join(segment for segment in data[key].split("/") if segment)
        return data

    @validates_schema
    def validate_watchdog_window(self, data: Dict[str, Any], **kwargs: Any) -> None:
        if data["watchdog_threshold"] < data["watchdog_interval"]:
            raise ValidationError(
                "watchdog_threshold must be greater than or equal to watchdog_interval",
                field_name="watchdog_threshold",
            )

    @validates_schema
    def validate_unique_peripherals(self, data: Dict[str, Any], **kwargs: Any) -> None:
        addresses = [peripheral.address for peripheral in data.get("peripherals", [])]
        if len(addresses) != len(set(addresses)):
            raise ValidationError("peripheral addresses must be unique", field_name="peripherals")

    @validates_schema
    def validate_tls_files(self, data: Dict[str, Any], **kwargs: Any) -> None:
        if bool(data.get("mqtt_certfile")) != bool(data.get("mqtt_keyfile")):
            raise ValidationError(
                "Both mqtt_certfile and mqtt_keyfile must be provided for mTLS.",
                field_name="mqtt_certfile",
            )

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        data["peripherals"] = tuple(data.get("peripherals", ()))
        return RuntimeConfig(**data)
