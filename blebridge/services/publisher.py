"""Entity state publication and discovery bookkeeping for one session."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import msgspec

from ..protocol.topics import availability_topic, diag_topic, event_topic, state_topic
from ..state.entities import Entity, EntityKey, entity_type, fallback_name, state_fields
from ..state.names import FriendlyNameCache
from ..state.session import Session
from ..transport.sink import Sink
from .discovery import PAYLOAD_OFF, PAYLOAD_ON, DiscoveryBuilder, DiscoveryContext

logger = logging.getLogger("blebridge.publisher")

DIAGNOSTICS: tuple[tuple[str, str], ...] = (
    ("connected", "Connected"),
    ("authenticated", "Authenticated"),
    ("data_healthy", "Data Healthy"),
)


def _flag(value: bool) -> str:
    return PAYLOAD_ON if value else PAYLOAD_OFF


class EntityPublisher:
    """Publishes entity state through the sink and tracks discovery records.

    Discovery builders are remembered per ``(entity type, key)`` so a
    friendly name resolved later is pushed only for the types this session
    has already announced.
    """

    def __init__(
        self,
        session: Session,
        sink: Sink,
        names: FriendlyNameCache,
        context: DiscoveryContext,
    ) -> None:
        self.session = session
        self.sink = sink
        self.names = names
        self.context = context
        self._builders: dict[tuple[str, EntityKey], DiscoveryBuilder] = {}
        self._diag_announced: set[str] = set()

    @property
    def identity(self) -> str:
        return str(self.session.identity)

    @property
    def base(self) -> str:
        return self.context.base

    def resolve_name(self, key: EntityKey, fallback: str) -> str:
        return self.names.get(self.identity, key) or fallback

    def publish_entity_state(
        self,
        type_tag: str,
        key: EntityKey,
        fields: Mapping[str, str],
        discovery_builder: DiscoveryBuilder,
        *,
        fallback: str = "",
    ) -> None:
        for field, value in fields.items():
            self.sink.publish_state(state_topic(self.base, key.table_id, key.device_id, field), value, True)

        if self.session.discovery.add(type_tag, key):
            self._builders[(type_tag, key)] = discovery_builder
            record = discovery_builder(self.resolve_name(key, fallback or f"Device {key}"))
            self.sink.publish_discovery(record.topic, record.payload)
            logger.debug("%s: announced %s %s as %s.", self.identity, type_tag, key, record.component)

    def publish(self, entity: Entity, discovery_builder: DiscoveryBuilder) -> bool:
        """Publish a device-reported *entity* unless a pending command holds it back."""
        if not self.session.pending.admit(entity):
            return False
        self.session.entities.accept(entity)
        self.publish_entity_state(
            entity_type(entity),
            entity.key,
            state_fields(entity),
            discovery_builder,
            fallback=entity.name or fallback_name(entity),
        )
        return True

    def publish_optimistic(self, entity: Entity, discovery_builder: DiscoveryBuilder) -> None:
        """Publish the commanded value immediately, bypassing the pending guard."""
        self.session.entities.accept(entity)
        self.publish_entity_state(
            entity_type(entity),
            entity.key,
            state_fields(entity),
            discovery_builder,
            fallback=entity.name or fallback_name(entity),
        )

    async def apply_friendly_name(self, key: EntityKey, name: str) -> int:
        """Persist *name* for *key* and re-announce already published types.

        Returns the number of discovery records pushed again.
        """
        changed = await self.names.update(self.identity, key, name)
        if not changed:
            return 0
        republished = 0
        for type_tag in sorted(self.session.discovery.types_for(key)):
            builder = self._builders.get((type_tag, key))
            if builder is None:
                continue
            record = builder(name)
            self.sink.publish_discovery(record.topic, record.payload)
            republished += 1
        if republished:
            logger.info("%s: %s renamed to %r (%d records).", self.identity, key, name, republished)
        return republished

    def publish_availability(self, online: bool) -> None:
        self.sink.publish_availability(availability_topic(self.base), online)

    def publish_diagnostics(self, *, data_healthy: bool) -> None:
        if "flags" not in self._diag_announced:
            self._diag_announced.add("flags")
            for name, label in DIAGNOSTICS:
                record = self.context.diagnostic(name, label)
                self.sink.publish_discovery(record.topic, record.payload)
        values = {
            "connected": self.session.connected,
            "authenticated": self.session.authenticated,
            "data_healthy": data_healthy,
        }
        for name, value in values.items():
            self.sink.publish_state(diag_topic(self.base, name), _flag(value), True)

    def publish_diag_text(self, name: str, label: str, value: str, icon: str | None = None) -> None:
        if name not in self._diag_announced:
            self._diag_announced.add(name)
            record = self.context.diagnostic_text(name, label, icon)
            self.sink.publish_discovery(record.topic, record.payload)
        self.sink.publish_state(diag_topic(self.base, name), value, True)

    def publish_event(self, name: str, document: Mapping[str, Any]) -> None:
        payload = msgspec.json.encode(dict(document)).decode("utf-8")
        self.sink.publish_state(event_topic(self.base, name), payload, False)

    def publish_button(self, discovery_builder: DiscoveryBuilder, key: EntityKey, action: str, label: str) -> None:
        """Announce a command-only entity once per session."""
        type_tag = f"button_{action}"
        if self.session.discovery.add(type_tag, key):
            self._builders[(type_tag, key)] = discovery_builder
            record = discovery_builder(label)
            self.sink.publish_discovery(record.topic, record.payload)

    def reset(self) -> None:
        self._builders.clear()
        self._diag_announced.clear()


__all__ = ["DIAGNOSTICS", "EntityPublisher"]
