"""Exception hierarchy shared by sessions, codecs and the command pipeline."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for engine faults."""


class ProtocolError(BridgeError):
    """A single inbound unit (frame, message, sample) could not be decoded."""


class SessionTerminated(BridgeError):
    """The session was torn down (transport drop, watchdog, explicit stop)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AuthenticationFailed(SessionTerminated):
    """The peripheral rejected or never completed authentication."""


class TransportError(BridgeError):
    """A BLE operation failed."""


class ControlRejected(BridgeError):
    """A control request was refused before any transport I/O."""

    def __init__(self, entity_type: str, key: object, message: str) -> None:
        super().__init__(f"{entity_type} {key}: {message}")
        self.entity_type = entity_type
        self.key = key


class ReadOnlyEntityError(ControlRejected):
    def __init__(self, entity_type: str, key: object) -> None:
        super().__init__(entity_type, key, "entity is read-only")


class ControlDisabledError(ControlRejected):
    def __init__(self, entity_type: str, key: object) -> None:
        super().__init__(entity_type, key, "control is disabled for safety")


class InvalidCommandError(ControlRejected):
    """Payload could not be translated into a protocol command."""


__all__ = [
    "AuthenticationFailed",
    "BridgeError",
    "ControlDisabledError",
    "ControlRejected",
    "InvalidCommandError",
    "ProtocolError",
    "ReadOnlyEntityError",
    "SessionTerminated",
    "TransportError",
]
