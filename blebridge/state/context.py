"""Runtime state container for the bridge daemon."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import msgspec

from ..config.const import DEFAULT_MQTT_QUEUE_LIMIT
from ..config.settings import RuntimeConfig
from ..mqtt.messages import QueuedPublish
from .names import FriendlyNameCache
from .session import SessionTable

logger = logging.getLogger("blebridge.state")


def _mqtt_publish_queue_factory() -> asyncio.Queue[QueuedPublish]:
    return asyncio.Queue(DEFAULT_MQTT_QUEUE_LIMIT)


def _session_table_factory() -> SessionTable:
    return SessionTable()


def _drop_counts_factory() -> dict[str, int]:
    return {}


def _supervisor_stats_factory() -> dict[str, SupervisorStats]:
    return {}


class SupervisorStats(msgspec.Struct):
    """Task supervisor statistics."""

    restarts: int = 0
    last_failure_unix: float = 0.0
    last_exception: str | None = None
    backoff_seconds: float = 0.0
    auth_failures: int = 0
    fatal: bool = False

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


class BridgeState(msgspec.Struct):
    """Aggregated mutable state shared across the daemon layers."""

    names: FriendlyNameCache
    sessions: SessionTable = msgspec.field(default_factory=_session_table_factory)
    mqtt_publish_queue: asyncio.Queue[QueuedPublish] = msgspec.field(default_factory=_mqtt_publish_queue_factory)
    mqtt_queue_limit: int = DEFAULT_MQTT_QUEUE_LIMIT
    mqtt_connected: bool = False
    mqtt_dropped_messages: int = 0
    mqtt_drop_counts: dict[str, int] = msgspec.field(default_factory=_drop_counts_factory)
    mqtt_publish_failures: int = 0
    supervisor_stats: dict[str, SupervisorStats] = msgspec.field(default_factory=_supervisor_stats_factory)
    watchdog_teardowns: int = 0
    config_source: str = "defaults"
    started_unix: float = 0.0

    def record_mqtt_drop(self, topic: str) -> None:
        self.mqtt_dropped_messages += 1
        self.mqtt_drop_counts[topic] = self.mqtt_drop_counts.get(topic, 0) + 1

    def record_supervisor_failure(
        self,
        name: str,
        *,
        backoff: float,
        exc: BaseException,
        fatal: bool = False,
    ) -> None:
        from ..errors import AuthenticationFailed

        stats = self.supervisor_stats.setdefault(name, SupervisorStats())
        stats.restarts += 1
        stats.last_failure_unix = time.time()
        stats.last_exception = f"{exc.__class__.__name__}: {exc}"
        stats.backoff_seconds = backoff
        stats.fatal = fatal
        if isinstance(exc, AuthenticationFailed):
            stats.auth_failures += 1

    def mark_supervisor_healthy(self, name: str) -> None:
        stats = self.supervisor_stats.get(name)
        if stats is None:
            return
        stats.backoff_seconds = 0.0
        stats.fatal = False

    def build_status_snapshot(self) -> dict[str, Any]:
        return {
            "mqtt_connected": self.mqtt_connected,
            "mqtt_queue_size": self.mqtt_publish_queue.qsize(),
            "mqtt_queue_limit": self.mqtt_queue_limit,
            "mqtt_messages_dropped": self.mqtt_dropped_messages,
            "mqtt_drop_counts": dict(self.mqtt_drop_counts),
            "mqtt_publish_failures": self.mqtt_publish_failures,
            "sessions": self.sessions.snapshot(),
            "supervisors": {name: stats.as_dict() for name, stats in self.supervisor_stats.items()},
            "watchdog_teardowns": self.watchdog_teardowns,
            "config_source": self.config_source,
            "uptime_seconds": round(time.time() - self.started_unix, 1) if self.started_unix else 0.0,
            "heartbeat_unix": time.time(),
        }


def create_bridge_state(config: RuntimeConfig) -> BridgeState:
    names = FriendlyNameCache(config.name_cache_path)
    names.load()
    state = BridgeState(names=names)
    state.mqtt_publish_queue = asyncio.Queue(config.mqtt_queue_limit)
    state.mqtt_queue_limit = config.mqtt_queue_limit
    state.started_unix = time.time()
    return state


__all__ = ["BridgeState", "SupervisorStats", "create_bridge_state"]
