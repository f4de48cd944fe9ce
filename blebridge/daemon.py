#!/usr/bin/env python3
"""Async orchestrator for the BLE bridge daemon.

Architecture:
    main() -> BridgeDaemon -> TaskGroup
        ├── mqtt-link (mqtt_task)
        ├── status-writer (status_writer)
        ├── session:{family}/{address} (one per enabled peripheral)
        └── prometheus-exporter (optional)

Every task runs under :func:`supervise_task`, so a session that tears
down is rebuilt from scratch after a backoff.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import NoReturn

import msgspec

import uvloop

from .config.const import (
    SUPERVISOR_DEFAULT_MAX_BACKOFF,
    SUPERVISOR_DEFAULT_MIN_BACKOFF,
    SUPERVISOR_DEFAULT_RESTART_INTERVAL,
    SUPERVISOR_STATUS_MAX_BACKOFF,
    SUPERVISOR_STATUS_RESTART_INTERVAL,
)
from .config.logging import configure_logging
from .config.settings import PeripheralConfig, RuntimeConfig, get_config_source, load_runtime_config
from .devices import session_class
from .metrics import PrometheusExporter
from .services.task_supervisor import supervise_task
from .state.context import BridgeState, create_bridge_state
from .state.session import PeripheralIdentity
from .state.status import cleanup_status_file, status_writer
from .transport.ble import BleakTransport
from .transport.mqtt import MqttSink, mqtt_task

logger = logging.getLogger("blebridge")


class SupervisedTaskSpec(msgspec.Struct):
    """Declaration of a supervised async task."""

    name: str
    factory: Callable[[], Awaitable[None]]
    fatal_exceptions: tuple[type[BaseException], ...] = ()
    restart_interval: float = SUPERVISOR_DEFAULT_RESTART_INTERVAL
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF


class BridgeDaemon:
    """Owns the MQTT sink, the shared state and one session task per peripheral."""

    def __init__(self, config: RuntimeConfig) -> None:
        self.config = config
        self.state: BridgeState = create_bridge_state(config)
        self.state.config_source = get_config_source()
        self.sink = MqttSink(config, self.state)
        self.exporter: PrometheusExporter | None = None

    async def _run_mqtt_link(self) -> None:
        await mqtt_task(self.config, self.state, self.sink)

    async def _run_status_writer(self) -> None:
        await status_writer(self.state, self.config.status_interval)

    def _session_factory(self, peripheral: PeripheralConfig) -> Callable[[], Awaitable[None]]:
        cls = session_class(peripheral.family)

        async def run_session() -> None:
            session = cls(
                peripheral,
                self.config,
                self.state,
                self.sink,
                BleakTransport(),
                on_disconnect=self._on_disconnect,
            )
            await session.run()

        return run_session

    @staticmethod
    def _on_disconnect(identity: PeripheralIdentity, reason: str) -> None:
        logger.info("%s disconnected: %s", identity, reason)

    def _setup_supervision(self) -> list[SupervisedTaskSpec]:
        specs: list[SupervisedTaskSpec] = [
            SupervisedTaskSpec(name="mqtt-link", factory=self._run_mqtt_link),
            SupervisedTaskSpec(
                name="status-writer",
                factory=self._run_status_writer,
                restart_interval=SUPERVISOR_STATUS_RESTART_INTERVAL,
                max_backoff=SUPERVISOR_STATUS_MAX_BACKOFF,
            ),
        ]

        for peripheral in self.config.enabled_peripherals:
            specs.append(
                SupervisedTaskSpec(
                    name=f"session:{peripheral.family}/{peripheral.address}",
                    factory=self._session_factory(peripheral),
                )
            )

        if self.config.metrics_enabled:
            self.exporter = PrometheusExporter(self.state, self.config.metrics_host, self.config.metrics_port)
            specs.append(
                SupervisedTaskSpec(
                    name="prometheus-exporter",
                    factory=self.exporter.run,
                    restart_interval=SUPERVISOR_STATUS_RESTART_INTERVAL,
                    max_backoff=SUPERVISOR_STATUS_MAX_BACKOFF,
                )
            )
        return specs

    async def _supervise(self, spec: SupervisedTaskSpec) -> None:
        await supervise_task(
            spec.name,
            spec.factory,
            fatal_exceptions=spec.fatal_exceptions,
            min_backoff=spec.min_backoff,
            max_backoff=spec.max_backoff,
            state=self.state,
            restart_interval=spec.restart_interval,
        )

    async def run(self) -> None:
        """Main async entry point."""
        specs = self._setup_supervision()
        if not self.config.enabled_peripherals:
            logger.warning("No peripherals are enabled; only the MQTT link will run.")

        try:
            async with asyncio.TaskGroup() as task_group:
                for spec in specs:
                    task_group.create_task(self._supervise(spec), name=spec.name)
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical("Unhandled exception in main task group: %s", group_exc, exc_info=group_exc)
            raise
        finally:
            cleanup_status_file()
            logger.info("BLE bridge daemon stopped.")


def main() -> NoReturn:  # pragma: no cover
    config = load_runtime_config()
    configure_logging(config)

    logger.info(
        "Starting BLE bridge daemon. MQTT: %s:%d, peripherals: %s",
        config.mqtt_host,
        config.mqtt_port,
        ", ".join(f"{p.family}/{p.address}" for p in config.enabled_peripherals) or "none",
    )

    try:
        daemon = BridgeDaemon(config)
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except RuntimeError as exc:
        logger.critical("Startup aborted due to runtime error: %s", exc)
        sys.exit(1)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
