"""Persistent friendly-name cache shared by all sessions.

The document is ``{identity: {"table:device": name}}``. Every update is
written back immediately through a temporary file and an atomic rename.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from tempfile import NamedTemporaryFile

import msgspec

from .entities import EntityKey

logger = logging.getLogger("blebridge.state.names")


class FriendlyNameCache:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._names: dict[str, dict[str, str]] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            logger.info("No friendly-name cache at %s; starting empty.", self._path)
            return
        except OSError as exc:
            logger.warning("Failed to read friendly-name cache %s: %s", self._path, exc)
            return
        try:
            document = msgspec.json.decode(raw, type=dict[str, dict[str, str]])
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            logger.warning("Ignoring corrupt friendly-name cache %s: %s", self._path, exc)
            return
        with self._lock:
            self._names = document
        logger.info("Loaded %d cached names for %d peripherals.", sum(map(len, document.values())), len(document))

    def get(self, identity: str, key: EntityKey) -> str | None:
        with self._lock:
            return self._names.get(identity, {}).get(str(key))

    def names_for(self, identity: str) -> dict[EntityKey, str]:
        with self._lock:
            entries = dict(self._names.get(identity, {}))
        resolved: dict[EntityKey, str] = {}
        for raw_key, name in entries.items():
            try:
                resolved[EntityKey.parse(raw_key)] = name
            except ValueError:
                logger.debug("Skipping malformed cache key %r for %s.", raw_key, identity)
        return resolved

    def set(self, identity: str, key: EntityKey, name: str) -> bool:
        """Store *name* and persist; False when it was already cached."""
        with self._lock:
            names = self._names.setdefault(identity, {})
            if names.get(str(key)) == name:
                return False
            names[str(key)] = name
            snapshot = msgspec.json.encode(self._names)
            try:
                self._write(snapshot)
            except OSError as exc:
                logger.warning("Failed to persist friendly-name cache %s: %s", self._path, exc)
        return True

    async def update(self, identity: str, key: EntityKey, name: str) -> bool:
        return await asyncio.to_thread(self.set, identity, key, name)

    def _write(self, payload: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile("wb", dir=self._path.parent, delete=False) as handle:
            handle.write(payload)
            temp_name = handle.name
        Path(temp_name).replace(self._path)


__all__ = ["FriendlyNameCache"]
