"""Periodic status writer for the bridge daemon."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import msgspec

from ..config.const import STATUS_FILE_PATH
from .context import BridgeState

logger = logging.getLogger("blebridge.status")
STATUS_FILE = Path(STATUS_FILE_PATH)


async def status_writer(state: BridgeState, interval: int) -> None:
    """Persist lightweight status information periodically."""

    while True:
        try:
            payload = state.build_status_snapshot()
            write_task = asyncio.create_task(asyncio.to_thread(_write_status_file, payload))
            try:
                await asyncio.shield(write_task)
            except asyncio.CancelledError:
                await write_task
                raise
        except asyncio.CancelledError:
            logger.info("Status writer task cancelled.")
            raise
        except OSError as exc:
            logger.warning("Failed to write status file %s: %s", STATUS_FILE, exc)
        await asyncio.sleep(interval)


def cleanup_status_file() -> None:
    """Remove the status file if it exists."""

    try:
        STATUS_FILE.unlink(missing_ok=True)
    except OSError:
        logger.debug("Ignoring error while removing status file.")


def _write_status_file(payload: dict[str, Any]) -> None:
    STATUS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile(
        "wb",
        dir=STATUS_FILE.parent,
        delete=False,
    ) as handle:
        handle.write(msgspec.json.encode(payload))
        temp_name = handle.name
    Path(temp_name).replace(STATUS_FILE)
