"""Tests for supervised task restarts."""

from __future__ import annotations

import asyncio
import logging
import time
from unittest.mock import MagicMock

import pytest
import tenacity

from blebridge.errors import AuthenticationFailed, SessionTerminated
from blebridge.services.task_supervisor import _SupervisorRetryState, supervise_task
from blebridge.state.context import BridgeState


class _Fatal(Exception):
    pass


@pytest.mark.asyncio
async def test_restarts_until_clean_exit(bridge_state: BridgeState) -> None:
    calls = 0

    async def flaky() -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise SessionTerminated("link lost")
        if calls == 2:
            raise AuthenticationFailed("bad key")

    await asyncio.wait_for(
        supervise_task("session:x", flaky, min_backoff=0.001, max_backoff=0.002, state=bridge_state),
        timeout=2.0,
    )

    stats = bridge_state.supervisor_stats["session:x"]
    assert calls == 3
    assert stats.restarts == 2
    assert stats.auth_failures == 1
    assert stats.backoff_seconds == 0.0


@pytest.mark.asyncio
async def test_fatal_exception_escapes(bridge_state: BridgeState) -> None:
    async def fatal() -> None:
        raise _Fatal("config broken")

    with pytest.raises(_Fatal):
        await supervise_task("mqtt-link", fatal, fatal_exceptions=(_Fatal,), state=bridge_state)

    assert bridge_state.supervisor_stats["mqtt-link"].fatal is True


@pytest.mark.asyncio
async def test_cancellation_is_not_retried() -> None:
    started = asyncio.Event()

    async def forever() -> None:
        started.set()
        await asyncio.sleep(3600)

    task = asyncio.create_task(supervise_task("status-writer", forever))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_backoff_doubles_and_caps() -> None:
    helper = _SupervisorRetryState("x", logging.getLogger("test"), None, 10.0, 2.0, 10.0)
    retry_state = MagicMock(spec=tenacity.RetryCallState)
    waits = []
    for failures in range(1, 6):
        helper.failures = failures
        waits.append(helper.wait(retry_state))
    assert waits == [2.0, 4.0, 8.0, 10.0, 10.0]


def test_healthy_run_resets_backoff() -> None:
    state = MagicMock()
    helper = _SupervisorRetryState("session:x", logging.getLogger("test"), state, 10.0, 2.0, 60.0)
    helper.failures = 4
    helper.window = -1.0
    helper.last_start_time = time.monotonic()

    retry_state = MagicMock(spec=tenacity.RetryCallState)
    retry_state.outcome = MagicMock()
    retry_state.outcome.exception.return_value = SessionTerminated("drop")
    helper.after(retry_state)

    assert helper.failures == 1
    state.mark_supervisor_healthy.assert_called_once_with("session:x")
    assert state.record_supervisor_failure.call_args.kwargs["backoff"] == 2.0


def test_auth_failures_log_as_errors() -> None:
    log = MagicMock(spec=logging.Logger)
    helper = _SupervisorRetryState("session:x", log, None, 10.0, 2.0, 60.0)
    retry_state = MagicMock(spec=tenacity.RetryCallState)
    retry_state.outcome = MagicMock()
    retry_state.outcome.exception.return_value = AuthenticationFailed("rejected")
    retry_state.next_action = MagicMock()
    retry_state.next_action.sleep = 2.0

    helper.before_sleep(retry_state)

    log.error.assert_called_once()
    log.warning.assert_not_called()
