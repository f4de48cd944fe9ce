"""Per-peripheral session record, timers and session table."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import msgspec

from .discovery import DiscoveryPublicationSet
from .entities import EntityStateModel
from .pending import PendingGuard

logger = logging.getLogger("blebridge.state.session")

TimerCallback = Callable[[], Awaitable[Any] | None]


class PeripheralIdentity(msgspec.Struct, frozen=True):
    address: str
    family: str

    def __str__(self) -> str:
        return f"{self.family}/{self.address}"


class SessionTimers:
    """Named one-shot timers owned by one session.

    ``schedule`` replaces any timer registered under the same token.
    ``cancel_all`` closes the set: callbacks that were scheduled before it
    never run afterwards and later ``schedule`` calls are ignored.
    """

    def __init__(self, name: str = "session") -> None:
        self._name = name
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, delay: float, token: str, callback: TimerCallback) -> bool:
        if self._closed:
            logger.debug("%s: timer %s ignored after teardown.", self._name, token)
            return False
        self.cancel(token)
        task = asyncio.create_task(self._run(delay, token, callback), name=f"{self._name}:{token}")
        self._tasks[token] = task
        return True

    def active(self, token: str) -> bool:
        task = self._tasks.get(token)
        return task is not None and not task.done()

    def cancel(self, token: str) -> None:
        task = self._tasks.pop(token, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        self._closed = True
        current = asyncio.current_task()
        for task in self._tasks.values():
            if task is not current and not task.done():
                task.cancel()
        self._tasks.clear()

    def __len__(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def _run(self, delay: float, token: str, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        if self._closed:
            return
        if self._tasks.get(token) is asyncio.current_task():
            del self._tasks[token]
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s: timer %s failed.", self._name, token)


def _entities_factory() -> EntityStateModel:
    return EntityStateModel()


def _pending_factory() -> PendingGuard:
    return PendingGuard()


def _discovery_factory() -> DiscoveryPublicationSet:
    return DiscoveryPublicationSet()


class Session(msgspec.Struct):
    """Everything one peripheral connection owns; discarded on teardown."""

    identity: PeripheralIdentity
    timers: SessionTimers
    phase: str = "disconnected"
    mtu: int | None = None
    handles: dict[str, str] = msgspec.field(default_factory=dict)
    connected: bool = False
    authenticated: bool = False
    started_at: float = 0.0
    last_data_at: float = 0.0
    secret: str = ""
    entities: EntityStateModel = msgspec.field(default_factory=_entities_factory)
    pending: PendingGuard = msgspec.field(default_factory=_pending_factory)
    discovery: DiscoveryPublicationSet = msgspec.field(default_factory=_discovery_factory)
    frames_dropped: int = 0
    messages_handled: int = 0

    def mark_started(self, now: float | None = None) -> None:
        self.started_at = time.monotonic() if now is None else now

    def mark_data(self, now: float | None = None) -> None:
        """Refresh liveness; only inbound traffic from the peripheral counts."""
        self.last_data_at = time.monotonic() if now is None else now

    def liveness_reference(self) -> float:
        return self.last_data_at or self.started_at

    def data_healthy(self, window: float, now: float | None = None) -> bool:
        if self.last_data_at <= 0.0:
            return False
        current = time.monotonic() if now is None else now
        return current - self.last_data_at <= window

    def reset(self) -> None:
        self.timers.cancel_all()
        self.pending.clear()
        self.entities.clear()
        self.discovery.clear()
        self.handles.clear()
        self.mtu = None
        self.phase = "disconnected"
        self.connected = False
        self.authenticated = False
        self.started_at = 0.0
        self.last_data_at = 0.0
        self.secret = ""

    def snapshot(self) -> dict[str, Any]:
        return {
            "address": self.identity.address,
            "family": self.identity.family,
            "phase": self.phase,
            "connected": self.connected,
            "authenticated": self.authenticated,
            "mtu": self.mtu,
            "entities": len(self.entities),
            "pending_commands": len(self.pending),
            "messages_handled": self.messages_handled,
            "frames_dropped": self.frames_dropped,
            "last_data_age": round(time.monotonic() - self.last_data_at, 1) if self.last_data_at else None,
        }


def create_session(identity: PeripheralIdentity, secret: str = "") -> Session:
    return Session(identity=identity, timers=SessionTimers(str(identity)), secret=secret)


class SessionTable:
    """Live sessions keyed by peripheral identity."""

    def __init__(self) -> None:
        self._sessions: dict[PeripheralIdentity, Session] = {}

    def add(self, session: Session) -> None:
        self._sessions[session.identity] = session

    def get(self, identity: PeripheralIdentity) -> Session | None:
        return self._sessions.get(identity)

    def remove(self, identity: PeripheralIdentity, session: Session | None = None) -> None:
        current = self._sessions.get(identity)
        if current is not None and (session is None or current is session):
            del self._sessions[identity]

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)

    def snapshot(self) -> list[dict[str, Any]]:
        return [session.snapshot() for session in self]


__all__ = [
    "PeripheralIdentity",
    "Session",
    "SessionTable",
    "SessionTimers",
    "create_session",
]
