"""Prometheus exporter for the BLE bridge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import Any, cast

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from . import __version__
from .state.context import BridgeState

logger = logging.getLogger("blebridge.metrics")

_SESSION_LABELS = ("address", "family")
_SESSION_GAUGES: tuple[tuple[str, str, str], ...] = (
    ("connected", "blebridge_session_connected", "1 while the BLE link is up"),
    ("authenticated", "blebridge_session_authenticated", "1 once the session authenticated"),
    ("entities", "blebridge_session_entities", "Entities tracked by the session"),
    ("pending_commands", "blebridge_session_pending_commands", "Commands inside their pending window"),
    ("messages_handled", "blebridge_session_messages_handled", "Notifications processed by the session"),
    ("frames_dropped", "blebridge_session_frames_dropped", "Frames dropped by the stream decoder"),
)


class _BridgeStateCollector(Collector):
    """Project the bridge and session state onto Prometheus gauges."""

    def __init__(self, state: BridgeState) -> None:
        self._state = state

    def collect(self) -> Iterator[Any]:
        state = self._state

        yield _gauge("blebridge_mqtt_connected", "1 while the MQTT client is connected", float(state.mqtt_connected))
        yield _gauge("blebridge_mqtt_queue_size", "Messages waiting in the MQTT publish queue", state.mqtt_publish_queue.qsize())
        yield _gauge("blebridge_mqtt_messages_dropped", "Messages dropped on a full queue", state.mqtt_dropped_messages)
        yield _gauge("blebridge_mqtt_publish_failures", "Publishes that raised an MQTT error", state.mqtt_publish_failures)
        yield _gauge("blebridge_watchdog_teardowns", "Sessions torn down by the health watchdog", state.watchdog_teardowns)
        yield _gauge("blebridge_sessions", "Live peripheral sessions", len(state.sessions))

        snapshots = state.sessions.snapshot()
        for field, name, documentation in _SESSION_GAUGES:
            metric = GaugeMetricFamily(name, documentation, labels=_SESSION_LABELS)
            for snapshot in snapshots:
                value = snapshot.get(field)
                metric.add_metric((snapshot["address"], snapshot["family"]), float(value or 0))
            yield metric

        restarts = GaugeMetricFamily(
            "blebridge_supervisor_restarts", "Restarts performed by a task supervisor", labels=("task",)
        )
        auth_failures = GaugeMetricFamily(
            "blebridge_supervisor_auth_failures", "Authentication failures seen by a supervisor", labels=("task",)
        )
        for task, stats in state.supervisor_stats.items():
            restarts.add_metric((task,), stats.restarts)
            auth_failures.add_metric((task,), stats.auth_failures)
        yield restarts
        yield auth_failures

        info = InfoMetricFamily("blebridge", "BLE bridge build information")
        info.add_metric((), {"version": __version__, "config_source": state.config_source})
        yield info


def _gauge(name: str, documentation: str, value: float) -> GaugeMetricFamily:
    metric = GaugeMetricFamily(name, documentation)
    metric.add_metric((), float(value))
    return metric


class PrometheusExporter:
    """Serve the collector over a minimal HTTP endpoint."""

    def __init__(self, state: BridgeState, host: str, port: int) -> None:
        self._state = state
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._resolved_port: int | None = None
        self._registry = CollectorRegistry()
        self._registry.register(_BridgeStateCollector(state))

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._handle_client, host=self._host, port=self._port)
        sockets = self._server.sockets or []
        if sockets:
            sockname = sockets[0].getsockname()
            if isinstance(sockname, tuple) and len(sockname) >= 2:
                port_candidate = cast(tuple[object, ...], sockname)[1]
                if isinstance(port_candidate, int):
                    self._resolved_port = port_candidate
        logger.info("Prometheus exporter listening on %s:%d", self._host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return
            parts = request_line.decode("ascii", errors="ignore").split()
            if len(parts) < 2:
                await self._write_response(writer, 400, b"")
                return
            method, path = parts[0], parts[1]
            while True:
                line = await reader.readline()
                if not line or line in {b"\r\n", b"\n"}:
                    break
            if method != "GET" or path not in {"/metrics", "/"}:
                await self._write_response(writer, 404, b"")
                return
            await self._write_response(writer, 200, self.render(), content_type=CONTENT_TYPE_LATEST)
        except (OSError, ValueError) as exc:
            logger.warning("Prometheus client request error: %s", exc)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, RuntimeError):
                logger.debug("Error closing metrics client connection", exc_info=True)

    async def _write_response(
        self,
        writer: asyncio.StreamWriter,
        status: int,
        body: bytes,
        *,
        content_type: str = "text/plain; charset=utf-8",
    ) -> None:
        phrases = {200: "OK", 400: "Bad Request", 404: "Not Found"}
        status_line = f"HTTP/1.1 {status} {phrases.get(status, 'Error')}\r\n"
        headers = f"Content-Type: {content_type}\r\nContent-Length: {len(body)}\r\nConnection: close\r\n\r\n"
        writer.write(status_line.encode("ascii") + headers.encode("ascii") + body)
        await writer.drain()

    def render(self) -> bytes:
        return generate_latest(self._registry)


__all__ = ["PrometheusExporter"]
