"""Session skeleton shared by every peripheral family.

A :class:`BaseSession` owns one connection attempt: it drives the
``transitions`` state machine through connect, discovery, authentication
and subscription, runs the single notification consumer, the command
consumer and the health watchdog in one task group, and tears everything
down exactly once. Family subclasses fill in the protocol hooks.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, ClassVar

from transitions import Machine

from ..config.const import DATA_HEALTHY_WINDOW
from ..config.logging import PeripheralLogAdapter
from ..config.settings import PeripheralConfig, RuntimeConfig
from ..errors import (
    AuthenticationFailed,
    ControlRejected,
    ProtocolError,
    SessionTerminated,
    TransportError,
)
from ..protocol.topics import CommandRoute, command_pattern, parse_command_topic, peripheral_base
from ..state.context import BridgeState
from ..state.session import PeripheralIdentity, Session, create_session
from ..transport.ble import LINK_DISCONNECTED, BleTransport, ServiceMap
from ..transport.sink import Sink
from ..watchdog import HealthWatchdog
from .discovery import DiscoveryContext
from .dispatcher import InboundQueue
from .publisher import EntityPublisher

DisconnectNotifier = Callable[[PeripheralIdentity, str], None]

COMMAND_QUEUE_LIMIT = 32


class BaseSession:
    """Connection lifecycle for one peripheral."""

    if TYPE_CHECKING:
        fsm_state: str
        start_connect: Callable[[], bool]
        connected: Callable[[], bool]
        discovered: Callable[[], bool]
        authenticated: Callable[[], bool]
        subscribed: Callable[[], bool]
        teardown_fsm: Callable[[], bool]

    family: ClassVar[str] = ""

    STATE_DISCONNECTED = "disconnected"
    STATE_CONNECTING = "connecting"
    STATE_DISCOVERING = "discovering"
    STATE_AUTHENTICATING = "authenticating"
    STATE_SUBSCRIBING = "subscribing"
    STATE_READY = "ready"

    def __init__(
        self,
        peripheral: PeripheralConfig,
        config: RuntimeConfig,
        state: BridgeState,
        sink: Sink,
        transport: BleTransport,
        *,
        on_disconnect: DisconnectNotifier | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.peripheral = peripheral
        self.config = config
        self.state = state
        self.sink = sink
        self.transport = transport
        self.clock = clock
        self._on_disconnect = on_disconnect

        self.identity = PeripheralIdentity(peripheral.address, self.family)
        self.session: Session = create_session(self.identity, self.secret_for(peripheral))
        self.base = peripheral_base(config.mqtt_topic, self.family, peripheral.address)
        self.discovery = DiscoveryContext(
            discovery_prefix=config.discovery_prefix,
            namespace=self.family,
            address=peripheral.address,
            base=self.base,
        )
        self.publisher = EntityPublisher(self.session, sink, state.names, self.discovery)
        self.logger = PeripheralLogAdapter(
            logging.getLogger(f"blebridge.session.{self.family}"), peripheral.address, self.family
        )
        self.watchdog = HealthWatchdog(
            self.session,
            self.teardown,
            interval=config.watchdog_interval,
            threshold=config.watchdog_threshold,
            state=state,
            clock=clock,
        )

        self.inbound: InboundQueue | None = None
        self._commands: asyncio.Queue[tuple[str, bytes]] = asyncio.Queue(COMMAND_QUEUE_LIMIT)
        self._terminated = asyncio.Event()
        self._termination: SessionTerminated | None = None
        self._teardown_started = False
        self._background: set[asyncio.Task[object]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

        self.fsm_state = self.STATE_DISCONNECTED
        self.machine = Machine(
            model=self,
            states=[
                self.STATE_DISCONNECTED,
                self.STATE_CONNECTING,
                self.STATE_DISCOVERING,
                self.STATE_AUTHENTICATING,
                self.STATE_SUBSCRIBING,
                self.STATE_READY,
            ],
            initial=self.STATE_DISCONNECTED,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
            after_state_change="_record_phase",
        )
        self.machine.add_transition("start_connect", self.STATE_DISCONNECTED, self.STATE_CONNECTING)
        self.machine.add_transition("connected", self.STATE_CONNECTING, self.STATE_DISCOVERING)
        self.machine.add_transition("discovered", self.STATE_DISCOVERING, self.STATE_AUTHENTICATING)
        self.machine.add_transition("authenticated", self.STATE_AUTHENTICATING, self.STATE_SUBSCRIBING)
        self.machine.add_transition("subscribed", self.STATE_SUBSCRIBING, self.STATE_READY)
        self.machine.add_transition("teardown_fsm", "*", self.STATE_DISCONNECTED)

    def _record_phase(self) -> None:
        self.session.phase = self.fsm_state

    @staticmethod
    def secret_for(peripheral: PeripheralConfig) -> str:
        return ""

    @property
    def closed(self) -> bool:
        return self._teardown_started

    @property
    def is_ready(self) -> bool:
        return self.fsm_state == self.STATE_READY

    # --- Family hooks ---

    async def discover(self) -> None:
        services = await self.transport.discover_services()
        self.on_services(services)
        self.discovered()

    def on_services(self, services: ServiceMap) -> None:
        for service, characteristics in services.items():
            for uuid in characteristics:
                self.session.handles[uuid] = service

    async def authenticate(self) -> None:
        """Run the family's authentication exchange."""

    async def subscribe(self) -> None:
        raise NotImplementedError

    async def on_ready(self) -> None:
        """Called once the session reaches ``ready``."""

    async def handle_notification(self, uuid: str, data: bytes) -> None:
        raise NotImplementedError

    def check_control(self, route: CommandRoute) -> None:
        """Raise :class:`ControlRejected` when *route* must not reach the device."""

    async def execute_command(self, route: CommandRoute, payload: bytes) -> None:
        raise NotImplementedError

    # --- Lifecycle ---

    async def run(self) -> None:
        """Run the session until teardown; always raises :class:`SessionTerminated`."""
        self._loop = asyncio.get_running_loop()
        self.inbound = InboundQueue(self._loop, name=str(self.identity))
        self.state.sessions.add(self.session)
        try:
            async with asyncio.TaskGroup() as task_group:
                task_group.create_task(self._lifecycle(), name=f"{self.identity}:lifecycle")
                task_group.create_task(self._reader_loop(), name=f"{self.identity}:reader")
                task_group.create_task(self._command_loop(), name=f"{self.identity}:commands")
                task_group.create_task(self.watchdog.run(), name=f"{self.identity}:watchdog")
        except* SessionTerminated as group:
            raise group.exceptions[0] from None
        finally:
            await self.teardown("session stopped")
            self.state.sessions.remove(self.identity, self.session)

    async def _lifecycle(self) -> None:
        try:
            await self.establish()
        except AuthenticationFailed as exc:
            await self.teardown(exc.reason, auth_failed=True)
        except (TransportError, ProtocolError) as exc:
            await self.teardown(f"setup failed: {exc}")
        await self._terminated.wait()
        raise self._termination or SessionTerminated("terminated")

    async def establish(self) -> None:
        self.start_connect()
        self.session.mark_started(self.clock())
        self.logger.info("%s: connecting.", self.identity)
        await self.transport.connect(
            self.peripheral.address,
            on_notify=self._on_notify,
            on_state_change=self._on_state_change,
            timeout=self.config.ble_connect_timeout,
        )
        self.session.connected = True
        self.connected()
        self.publisher.publish_availability(True)
        self.publish_diagnostics()

        await self.discover()
        await self.authenticate()
        if self.closed:
            return
        self.authenticated()
        await self.subscribe()
        self.subscribed()
        self.sink.subscribe_commands(command_pattern(self.base), self.handle_command)
        self.logger.info("%s: session ready.", self.identity)
        await self.on_ready()

    async def teardown(self, reason: str, *, auth_failed: bool = False) -> bool:
        """Close the session; only the first call does any work."""
        if self._teardown_started:
            return False
        self._teardown_started = True
        self._termination = AuthenticationFailed(reason) if auth_failed else SessionTerminated(reason)
        log = self.logger.error if auth_failed else self.logger.info
        log("%s: teardown (%s).", self.identity, reason)

        self.watchdog.stop()
        self.sink.unsubscribe_commands(command_pattern(self.base))
        self.session.reset()
        self.publisher.publish_diagnostics(data_healthy=False)
        self.publisher.publish_availability(False)
        self.publisher.reset()
        self.teardown_fsm()
        if self.inbound is not None:
            self.inbound.drain()

        try:
            await self.transport.disconnect()
        except (TransportError, OSError) as exc:
            self.logger.debug("%s: disconnect failed during teardown: %s", self.identity, exc)

        if self._on_disconnect is not None:
            self._on_disconnect(self.identity, reason)
        self._terminated.set()
        return True

    def schedule_teardown(self, reason: str, *, auth_failed: bool = False) -> None:
        """Request teardown from a context that cannot await it."""
        if self._teardown_started:
            return
        task = asyncio.create_task(self.teardown(reason, auth_failed=auth_failed))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # --- Transport callbacks (any thread) ---

    def _on_notify(self, uuid: str, data: bytes) -> None:
        if self.inbound is not None and not self._teardown_started:
            self.inbound.submit(uuid, data)

    def _on_state_change(self, link_state: str, reason: int) -> None:
        if link_state != LINK_DISCONNECTED or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self.schedule_teardown, f"link lost (reason {reason})")

    # --- Consumers ---

    async def _reader_loop(self) -> None:
        assert self.inbound is not None
        while not self._teardown_started:
            item = await self.inbound.get()
            if item is None or self._teardown_started:
                continue
            try:
                await self.handle_notification(item.uuid, item.data)
            except ProtocolError as exc:
                self.logger.warning("%s: dropped malformed notification on %s: %s", self.identity, item.uuid, exc)
            except AuthenticationFailed as exc:
                await self.teardown(exc.reason, auth_failed=True)
            except TransportError as exc:
                await self.teardown(f"transport failure: {exc}")
            else:
                self.session.messages_handled += 1

    def handle_command(self, topic: str, payload: bytes) -> None:
        """Sink command handler: validate synchronously, then queue for the session."""
        route = parse_command_topic(self.base, topic)
        if route is None:
            self.logger.debug("%s: ignoring unrecognised command topic %s", self.identity, topic)
            return
        self.check_control(route)
        try:
            self._commands.put_nowait((topic, payload))
        except asyncio.QueueFull:
            self.logger.warning("%s: command queue full; %s dropped.", self.identity, topic)

    async def _command_loop(self) -> None:
        while True:
            topic, payload = await self._commands.get()
            route = parse_command_topic(self.base, topic)
            if route is None:
                continue
            if not self.is_ready:
                self.logger.warning("%s: not ready; command %s dropped.", self.identity, topic)
                continue
            try:
                await self.dispatch_command(route, payload)
            except TransportError as exc:
                await self.teardown(f"command write failed: {exc}")

    async def dispatch_command(self, route: CommandRoute, payload: bytes) -> bool:
        """Check and execute one command; False when it was rejected."""
        try:
            self.check_control(route)
            await self.execute_command(route, payload)
        except ControlRejected as exc:
            self.logger.warning("%s: command rejected: %s", self.identity, exc)
            return False
        return True

    # --- Shared helpers ---

    def mark_liveness(self) -> None:
        self.session.mark_data(self.clock())

    def data_healthy(self) -> bool:
        return self.session.data_healthy(DATA_HEALTHY_WINDOW, self.clock())

    def publish_diagnostics(self) -> None:
        self.publisher.publish_diagnostics(data_healthy=self.data_healthy())

    async def write(self, uuid: str, data: bytes, response: bool = True) -> None:
        await self.transport.write(uuid, data, response)


__all__ = ["BaseSession", "DisconnectNotifier"]
