"""Sink interface consumed by the protocol engine.

Implementations must never raise to the caller: a failed publish is logged
and treated as not delivered.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, runtime_checkable

CommandHandler = Callable[[str, bytes], Awaitable[None] | None]


@runtime_checkable
class Sink(Protocol):
    def publish_state(self, topic: str, payload: str, retained: bool = True) -> None: ...

    def publish_discovery(self, topic: str, payload: Mapping[str, Any]) -> None: ...

    def publish_availability(self, topic: str, online: bool) -> None: ...

    def subscribe_commands(self, pattern: str, handler: CommandHandler) -> None: ...

    def unsubscribe_commands(self, pattern: str) -> None: ...


__all__ = ["CommandHandler", "Sink"]
