"""Inbound notification queue and tag-based event dispatch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

from ..config.const import DISPATCH_IDLE_TIMEOUT, DISPATCH_QUEUE_LIMIT
from ..errors import ProtocolError

logger = logging.getLogger("blebridge.dispatcher")

MessageT = TypeVar("MessageT")
Handler = Callable[[Any], Awaitable[None] | None]


class Notification:
    __slots__ = ("uuid", "data")

    def __init__(self, uuid: str, data: bytes) -> None:
        self.uuid = uuid
        self.data = data

    def __repr__(self) -> str:
        return f"Notification({self.uuid!r}, {self.data.hex(' ')})"


class InboundQueue:
    """Thread-safe handoff from transport callbacks to one session consumer.

    ``submit`` may be called from any thread; items are placed on the
    owning loop with ``call_soon_threadsafe`` so byte order is preserved.
    A full queue drops the newest delivery.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        maxsize: int = DISPATCH_QUEUE_LIMIT,
        name: str = "session",
    ) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize)
        self._name = name
        self.dropped = 0

    def submit(self, uuid: str, data: bytes | bytearray) -> None:
        item = Notification(uuid, bytes(data))
        if self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._put(item)
        else:
            self._loop.call_soon_threadsafe(self._put, item)

    def _put(self, item: Notification) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("%s: inbound queue full; notification on %s dropped.", self._name, item.uuid)

    async def get(self, timeout: float = DISPATCH_IDLE_TIMEOUT) -> Notification | None:
        """Wait up to *timeout* for the next delivery; None when idle."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except TimeoutError:
            return None

    def drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def qsize(self) -> int:
        return self._queue.qsize()


class EventDispatcher(Generic[MessageT]):
    """Route complete protocol messages to handlers by leading tag."""

    def __init__(self, name: str, tag_of: Callable[[MessageT], Hashable | None]) -> None:
        self._name = name
        self._tag_of = tag_of
        self._handlers: dict[Hashable, Handler] = {}
        self.unknown = 0
        self.malformed = 0

    def register(self, tag: Hashable, handler: Handler) -> None:
        self._handlers[tag] = handler

    def registered(self, tag: Hashable) -> bool:
        return tag in self._handlers

    async def dispatch(self, message: MessageT) -> bool:
        """Run the matching handler; return False when the message was dropped."""
        try:
            tag = self._tag_of(message)
        except (ProtocolError, LookupError, TypeError, ValueError) as exc:
            self.malformed += 1
            logger.warning("%s: cannot classify message: %s", self._name, exc)
            return False

        handler = self._handlers.get(tag) if tag is not None else None
        if handler is None:
            self.unknown += 1
            logger.debug("%s: no handler for tag %r; dropped.", self._name, tag)
            return False

        try:
            result = handler(message)
            if result is not None:
                await result
        except ProtocolError as exc:
            self.malformed += 1
            logger.warning("%s: malformed %r message dropped: %s", self._name, tag, exc)
            return False
        return True


__all__ = ["EventDispatcher", "InboundQueue", "Notification"]
