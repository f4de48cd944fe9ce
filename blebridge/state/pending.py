"""Race suppression for locally issued commands.

While a command's window is open, status updates for its key that disagree
with the commanded target are dropped so a stale echo from the device cannot
bounce the value back. A matching update clears the entry; an update after
the window discards the entry and is published regardless of value.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import msgspec

from .entities import Entity, EntityKey, matches_target

logger = logging.getLogger("blebridge.state.pending")


class PendingCommand(msgspec.Struct, frozen=True):
    key: EntityKey
    target: dict[str, Any]
    issued_at: float
    window: float

    def age(self, now: float) -> float:
        return now - self.issued_at

    def expired(self, now: float) -> bool:
        return self.age(now) > self.window


class PendingGuard:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[EntityKey, PendingCommand] = {}

    def install(
        self, key: EntityKey, target: dict[str, Any], window: float, *, merge: bool = True
    ) -> PendingCommand:
        """Record a commanded target.

        With *merge* a live entry keeps the fields this command does not
        touch, so independent setpoints issued back to back are all awaited.
        Commands whose fields are mutually exclusive (a dimmer going OFF after
        a brightness change) pass ``merge=False`` and replace the target.
        """
        now = self._clock()
        existing = self._entries.get(key)
        if merge and existing is not None and not existing.expired(now):
            target = {**existing.target, **target}
        entry = PendingCommand(key=key, target=dict(target), issued_at=now, window=window)
        self._entries[key] = entry
        return entry

    def admit(self, entity: Entity) -> bool:
        """Return True when *entity* may be published."""
        key = entity.key
        entry = self._entries.get(key)
        if entry is None:
            return True
        now = self._clock()
        if entry.expired(now):
            del self._entries[key]
            logger.debug("Pending command for %s expired after %.1fs.", key, entry.age(now))
            return True
        if matches_target(entity, entry.target):
            del self._entries[key]
            logger.debug("Status for %s matches pending target; cleared.", key)
            return True
        logger.debug(
            "Suppressing status for %s during pending window (age %.1fs, target %s).",
            key,
            entry.age(now),
            entry.target,
        )
        return False

    def get(self, key: EntityKey) -> PendingCommand | None:
        return self._entries.get(key)

    def discard(self, key: EntityKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


__all__ = ["PendingCommand", "PendingGuard"]
