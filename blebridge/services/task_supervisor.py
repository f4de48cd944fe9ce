"""Asyncio task supervision helpers for the BLE bridge."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import tenacity

from ..config.const import (
    SUPERVISOR_DEFAULT_MAX_BACKOFF,
    SUPERVISOR_DEFAULT_MIN_BACKOFF,
    SUPERVISOR_DEFAULT_RESTART_INTERVAL,
    SUPERVISOR_MIN_RESTART_WINDOW,
)
from ..errors import AuthenticationFailed
from ..state.context import BridgeState


class _SupervisorRetryState:
    """Tracks run health and backoff across tenacity attempts.

    A run that stayed up longer than *window* resets the backoff so a
    session that drops after hours of service reconnects quickly.
    """

    def __init__(
        self,
        name: str,
        log: logging.Logger,
        state: BridgeState | None,
        window: float,
        min_backoff: float,
        max_backoff: float,
    ) -> None:
        self.name = name
        self.log = log
        self.state = state
        self.window = window
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.last_start_time = 0.0
        self.failures = 0

    def mark_started(self) -> None:
        self.last_start_time = time.monotonic()

    def is_healthy_runtime(self) -> bool:
        if self.last_start_time <= 0:
            return False
        return (time.monotonic() - self.last_start_time) > self.window

    def wait(self, retry_state: tenacity.RetryCallState) -> float:
        return min(self.max_backoff, self.min_backoff * (2 ** max(0, self.failures - 1)))

    def after(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return
        if self.is_healthy_runtime():
            self.log.info("%s was healthy long enough; resetting backoff", self.name)
            self.failures = 0
            if self.state is not None:
                self.state.mark_supervisor_healthy(self.name)
        self.failures += 1
        if self.state is not None:
            self.state.record_supervisor_failure(self.name, backoff=self.wait(retry_state), exc=exc)

    def before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        if isinstance(exc, AuthenticationFailed):
            self.log.error("%s authentication failed (%s); retrying in %.1fs", self.name, exc, delay)
        else:
            self.log.warning("%s failed (%s); restarting in %.1fs", self.name, exc, delay)


async def supervise_task(
    name: str,
    coro_factory: Callable[[], Awaitable[None]],
    *,
    fatal_exceptions: tuple[type[BaseException], ...] = (),
    min_backoff: float = SUPERVISOR_DEFAULT_MIN_BACKOFF,
    max_backoff: float = SUPERVISOR_DEFAULT_MAX_BACKOFF,
    state: BridgeState | None = None,
    restart_interval: float = SUPERVISOR_DEFAULT_RESTART_INTERVAL,
    logger: logging.Logger | None = None,
) -> None:
    """Run *coro_factory* forever, restarting it on failure with backoff.

    A clean return ends supervision. Only *fatal_exceptions* and
    cancellation escape.
    """
    log = logger or logging.getLogger("blebridge.supervisor")
    helper = _SupervisorRetryState(
        name,
        log,
        state,
        max(SUPERVISOR_MIN_RESTART_WINDOW, restart_interval),
        min_backoff,
        max_backoff,
    )

    retryer = tenacity.AsyncRetrying(
        wait=helper.wait,
        retry=tenacity.retry_if_not_exception_type(
            (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit) + fatal_exceptions
        ),
        stop=tenacity.stop_never,
        before_sleep=helper.before_sleep,
        after=helper.after,
        reraise=True,
    )

    try:
        async for attempt in retryer:
            with attempt:
                helper.mark_started()
                await coro_factory()
                log.warning("%s task exited cleanly; supervisor exiting", name)
                if state is not None:
                    state.mark_supervisor_healthy(name)
                return
    except fatal_exceptions as exc:
        log.critical("%s failed with fatal exception: %s", name, exc)
        if state is not None:
            state.record_supervisor_failure(name, backoff=0.0, exc=exc, fatal=True)
        raise
    except asyncio.CancelledError:
        log.debug("%s supervisor cancelled", name)
        raise


__all__ = ["supervise_task"]
