"""Per-session health watchdog."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from transitions import Machine

from .config.const import DEFAULT_WATCHDOG_INTERVAL, DEFAULT_WATCHDOG_THRESHOLD, WATCHDOG_MIN_INTERVAL
from .state.context import BridgeState
from .state.session import Session

Teardown = Callable[[str], Awaitable[bool]]

ZOMBIE = "zombie"
STALE = "stale"


class HealthWatchdog:
    """Detect zombie and stale sessions and tear them down once.

    A *zombie* is connected but has not authenticated within the threshold
    of session start; a *stale* session is authenticated but nothing inbound
    has refreshed its liveness timestamp. Outbound writes and polls never
    count as liveness. After a detection the watchdog moves to ``tripped``
    and never re-arms.
    """

    if TYPE_CHECKING:
        fsm_state: str
        start: Callable[[], bool]
        trip: Callable[[], bool]
        stop: Callable[[], bool]

    STATE_IDLE = "idle"
    STATE_MONITORING = "monitoring"
    STATE_TRIPPED = "tripped"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        session: Session,
        teardown: Teardown,
        *,
        interval: float = DEFAULT_WATCHDOG_INTERVAL,
        threshold: float = DEFAULT_WATCHDOG_THRESHOLD,
        state: BridgeState | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._session = session
        self._teardown = teardown
        self._interval = max(WATCHDOG_MIN_INTERVAL, interval)
        self._threshold = threshold
        self._state = state
        self._clock = clock
        self._logger = logger or logging.getLogger("blebridge.watchdog")
        self.verdict: str | None = None

        self.state_machine = Machine(
            model=self,
            states=[
                self.STATE_IDLE,
                self.STATE_MONITORING,
                self.STATE_TRIPPED,
                self.STATE_STOPPED,
            ],
            initial=self.STATE_IDLE,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )

        self.state_machine.add_transition(trigger="start", source=self.STATE_IDLE, dest=self.STATE_MONITORING)
        self.state_machine.add_transition(trigger="trip", source=self.STATE_MONITORING, dest=self.STATE_TRIPPED)
        self.state_machine.add_transition(
            trigger="stop", source=[self.STATE_IDLE, self.STATE_MONITORING], dest=self.STATE_STOPPED
        )

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def completed(self) -> bool:
        return self.fsm_state in (self.STATE_TRIPPED, self.STATE_STOPPED)

    def check(self, now: float | None = None) -> str | None:
        """Classify the session; None while it looks healthy."""
        session = self._session
        if not session.connected:
            return None
        current = self._clock() if now is None else now
        if not session.authenticated:
            return ZOMBIE if current - session.started_at > self._threshold else None
        if current - session.liveness_reference() > self._threshold:
            return STALE
        return None

    async def run(self) -> None:
        """Check every interval until a detection fires or the task is cancelled."""
        self.start()
        try:
            while self.fsm_state == self.STATE_MONITORING:
                await asyncio.sleep(self._interval)
                if self.fsm_state != self.STATE_MONITORING:
                    break
                verdict = self.check()
                if verdict is None:
                    continue
                self.verdict = verdict
                self.trip()
                self._logger.warning(
                    "%s: %s session detected (no progress for over %.0fs); tearing down.",
                    self._session.identity,
                    verdict,
                    self._threshold,
                )
                if await self._teardown(f"watchdog: {verdict}") and self._state is not None:
                    self._state.watchdog_teardowns += 1
        except asyncio.CancelledError:
            self.stop()
            self._logger.debug("%s: watchdog cancelled", self._session.identity)
            raise


__all__ = ["HealthWatchdog", "STALE", "ZOMBIE"]
