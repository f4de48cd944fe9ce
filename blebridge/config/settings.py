"""Settings loader for the BLE bridge daemon.

Configuration is loaded from a JSON document (``$BLEBRIDGE_CONFIG``,
default ``/etc/blebridge/config.json``) and validated through the
marshmallow schema in :mod:`blebridge.config.schema`. A missing document
falls back to the dataclass defaults, which bridge no peripherals.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from .common import get_config_path, get_default_config, load_config_file, parse_bool
from .const import (
    DEFAULT_BLE_CONNECT_TIMEOUT,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_DISCOVERY_PREFIX,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QUEUE_LIMIT,
    DEFAULT_MQTT_TLS,
    DEFAULT_MQTT_TLS_INSECURE,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_NAME_CACHE_PATH,
    DEFAULT_ONECONTROL_PIN,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_STATUS_INTERVAL,
    DEFAULT_WATCHDOG_INTERVAL,
    DEFAULT_WATCHDOG_THRESHOLD,
    FAMILIES,
    FAMILY_EASYTOUCH,
    FAMILY_ONECONTROL,
)

logger = logging.getLogger(__name__)

_MAC_RE = re.compile(r"^[0-9A-F]{2}(:[0-9A-F]{2}){5}$")
_PIN_MAX_LEN = 6


@dataclass(slots=True)
class PeripheralConfig:
    """One bridged peripheral."""

    address: str
    family: str
    pin: str = DEFAULT_ONECONTROL_PIN
    password: str = ""
    enabled: bool = True
    name_byte_order: str = "big"

    def __post_init__(self) -> None:
        self.address = self.address.strip().upper()
        if not _MAC_RE.match(self.address):
            raise ValueError(f"invalid peripheral address: {self.address!r}")
        self.family = self.family.strip().lower()
        if self.family not in FAMILIES:
            raise ValueError(f"unsupported peripheral family: {self.family!r}")
        if self.name_byte_order not in ("big", "little"):
            raise ValueError("name_byte_order must be 'big' or 'little'")
        if self.family == FAMILY_ONECONTROL:
            if not self.pin or len(self.pin) > _PIN_MAX_LEN or not self.pin.isascii():
                raise ValueError("onecontrol pin must be 1-6 ASCII characters")
        if self.family == FAMILY_EASYTOUCH and not self.password:
            raise ValueError("easytouch peripherals require a password")


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the daemon."""

    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_user: str | None = None
    mqtt_pass: str | None = None
    mqtt_tls: bool = DEFAULT_MQTT_TLS
    mqtt_tls_insecure: bool = DEFAULT_MQTT_TLS_INSECURE
    mqtt_cafile: str | None = None
    mqtt_certfile: str | None = None
    mqtt_keyfile: str | None = None
    mqtt_topic: str = DEFAULT_MQTT_TOPIC
    discovery_prefix: str = DEFAULT_DISCOVERY_PREFIX
    mqtt_queue_limit: int = DEFAULT_MQTT_QUEUE_LIMIT
    reconnect_delay: int = DEFAULT_RECONNECT_DELAY
    status_interval: int = DEFAULT_STATUS_INTERVAL
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    watchdog_interval: float = DEFAULT_WATCHDOG_INTERVAL
    watchdog_threshold: float = DEFAULT_WATCHDOG_THRESHOLD
    ble_connect_timeout: float = DEFAULT_BLE_CONNECT_TIMEOUT
    metrics_enabled: bool = DEFAULT_METRICS_ENABLED
    metrics_host: str = DEFAULT_METRICS_HOST
    metrics_port: int = DEFAULT_METRICS_PORT
    name_cache_path: str = DEFAULT_NAME_CACHE_PATH
    peripherals: tuple[PeripheralConfig, ...] = field(default_factory=tuple)

    @property
    def tls_enabled(self) -> bool:
        return self.mqtt_tls

    def __post_init__(self) -> None:
        self.mqtt_topic = self._build_topic_prefix(self.mqtt_topic, "mqtt_topic")
        self.discovery_prefix = self._build_topic_prefix(self.discovery_prefix, "discovery_prefix")
        for field_name in ("mqtt_queue_limit", "reconnect_delay", "status_interval"):
            setattr(self, field_name, self._require_positive(field_name, int(getattr(self, field_name))))
        self.watchdog_interval = self._require_positive_float("watchdog_interval", float(self.watchdog_interval))
        self.watchdog_threshold = self._require_positive_float("watchdog_threshold", float(self.watchdog_threshold))
        if self.watchdog_threshold < self.watchdog_interval:
            raise ValueError("watchdog_threshold must be greater than or equal to watchdog_interval")

        seen: set[str] = set()
        for peripheral in self.peripherals:
            if peripheral.address in seen:
                raise ValueError(f"duplicate peripheral address: {peripheral.address}")
            seen.add(peripheral.address)

        if not self.mqtt_tls:
            logger.warning("MQTT TLS is disabled; MQTT credentials and payloads will be sent in plaintext.")
        elif self.mqtt_tls_insecure:
            logger.warning("MQTT TLS hostname verification is disabled (mqtt_tls_insecure=1).")

    @property
    def enabled_peripherals(self) -> tuple[PeripheralConfig, ...]:
        return tuple(p for p in self.peripherals if p.enabled)

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value

    @staticmethod
    def _require_positive_float(name: str, value: float) -> float:
        if value <= 0.0:
            raise ValueError(f"{name} must be a positive number")
        return value

    @staticmethod
    def _build_topic_prefix(prefix: str, name: str = "mqtt_topic") -> str:
        segments = [segment for segment in prefix.split("/") if segment]
        normalized = "/".join(segments)
        if not normalized:
            raise ValueError(f"{name} must contain at least one segment")
        return normalized


def _load_raw_config() -> dict[str, Any]:
    raw = get_default_config()
    document = load_config_file(get_config_path())
    if document:
        raw.update(document)
    return raw


def get_config_source() -> str:
    path = get_config_path()
    return str(path) if path.exists() else "defaults"


def load_runtime_config() -> RuntimeConfig:
    """Load configuration from the JSON document or defaults."""
    from .schema import RuntimeConfigSchema

    raw = _load_raw_config()

    # 'debug' is the user-facing key.
    debug = parse_bool(raw.pop("debug", False))
    raw["debug_logging"] = parse_bool(raw.get("debug_logging")) or debug

    return RuntimeConfigSchema().load(raw)
