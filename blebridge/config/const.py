"""Default values and protocol timings for the BLE bridge daemon."""

from __future__ import annotations

from typing import Final

# MQTT
DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_TOPIC: Final[str] = "homeassistant"
DEFAULT_DISCOVERY_PREFIX: Final[str] = "homeassistant"
DEFAULT_MQTT_QUEUE_LIMIT: Final[int] = 512
DEFAULT_MQTT_TLS: Final[bool] = False
DEFAULT_MQTT_TLS_INSECURE: Final[bool] = False
DEFAULT_RECONNECT_DELAY: Final[int] = 5
MQTT_TLS_MIN_VERSION_NAME: Final[str] = "TLSv1_2"
BRIDGE_STATUS_SEGMENT: Final[str] = "blebridge"

# Daemon
DEFAULT_CONFIG_PATH: Final[str] = "/etc/blebridge/config.json"
CONFIG_PATH_ENV: Final[str] = "BLEBRIDGE_CONFIG"
LOG_STREAM_ENV: Final[str] = "BLEBRIDGE_LOG_STREAM"
DEFAULT_NAME_CACHE_PATH: Final[str] = "/var/lib/blebridge/names.json"
STATUS_FILE_PATH: Final[str] = "/tmp/blebridge/status.json"
DEFAULT_STATUS_INTERVAL: Final[int] = 30
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9131

# Session supervision
SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 2.0
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 120.0
SUPERVISOR_DEFAULT_RESTART_INTERVAL: Final[float] = 600.0
SUPERVISOR_MIN_RESTART_WINDOW: Final[float] = 10.0
SUPERVISOR_STATUS_RESTART_INTERVAL: Final[float] = 60.0
SUPERVISOR_STATUS_MAX_BACKOFF: Final[float] = 30.0
DEFAULT_BLE_CONNECT_TIMEOUT: Final[float] = 20.0

# Health watchdog
DEFAULT_WATCHDOG_INTERVAL: Final[float] = 60.0
DEFAULT_WATCHDOG_THRESHOLD: Final[float] = 300.0
WATCHDOG_MIN_INTERVAL: Final[float] = 0.01
DATA_HEALTHY_WINDOW: Final[float] = 15.0

# Dispatcher
DISPATCH_QUEUE_LIMIT: Final[int] = 1024
DISPATCH_IDLE_TIMEOUT: Final[float] = 1.0

# OneControl
DEFAULT_ONECONTROL_PIN: Final[str] = "090336"
ONECONTROL_MTU: Final[int] = 185
ONECONTROL_UNLOCK_VERIFY_DELAY: Final[float] = 0.5
ONECONTROL_HEARTBEAT_INTERVAL: Final[float] = 5.0
ONECONTROL_METADATA_DELAY: Final[float] = 0.5
ONECONTROL_METADATA_FALLBACK: Final[float] = 1.5
ONECONTROL_DIMMER_DEBOUNCE: Final[float] = 0.2
ONECONTROL_DIMMER_PENDING_WINDOW: Final[float] = 12.0
ONECONTROL_SWITCH_PENDING_WINDOW: Final[float] = 12.0
ONECONTROL_HVAC_PENDING_WINDOW: Final[float] = 12.0
ONECONTROL_MAX_TRACKED_REQUESTS: Final[int] = 64

# EasyTouch
EASYTOUCH_POLL_INTERVAL: Final[float] = 4.0
EASYTOUCH_PENDING_WINDOW: Final[float] = 8.0
EASYTOUCH_VERIFY_DELAY: Final[float] = 4.0
EASYTOUCH_CHANGE_REFRESH_DELAY: Final[float] = 0.5
EASYTOUCH_WRITE_EXTRA_ATTEMPTS: Final[int] = 2
EASYTOUCH_WRITE_RETRY_BASE: Final[float] = 0.1
EASYTOUCH_WRITE_RETRY_START: Final[float] = 0.4
EASYTOUCH_WRITE_RETRY_STEP: Final[float] = 0.2
EASYTOUCH_READ_DELAY: Final[float] = 0.05
EASYTOUCH_FOLLOWUP_READS: Final[int] = 3
EASYTOUCH_CONFIG_SPACING: Final[float] = 0.3
EASYTOUCH_MIN_TEMP_F: Final[int] = 60
EASYTOUCH_MAX_TEMP_F: Final[int] = 90
EASYTOUCH_CONFIG_ZONES: Final[tuple[int, ...]] = (0, 1, 2, 3)

# GoPower
GOPOWER_POLL_INTERVAL: Final[float] = 4.0
GOPOWER_UNLOCK_DELAY: Final[float] = 0.2

FAMILY_ONECONTROL: Final[str] = "onecontrol"
FAMILY_EASYTOUCH: Final[str] = "easytouch"
FAMILY_GOPOWER: Final[str] = "gopower"
FAMILIES: Final[tuple[str, ...]] = (FAMILY_ONECONTROL, FAMILY_EASYTOUCH, FAMILY_GOPOWER)
