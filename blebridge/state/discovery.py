"""Per-session record of which discovery documents have been published."""

from __future__ import annotations

from .entities import EntityKey


class DiscoveryPublicationSet:
    __slots__ = ("_published",)

    def __init__(self) -> None:
        self._published: dict[EntityKey, set[str]] = {}

    def add(self, entity_type: str, key: EntityKey) -> bool:
        """Mark ``(entity_type, key)``; False when it was already present."""
        types = self._published.setdefault(key, set())
        if entity_type in types:
            return False
        types.add(entity_type)
        return True

    def discard(self, entity_type: str, key: EntityKey) -> None:
        types = self._published.get(key)
        if types is not None:
            types.discard(entity_type)
            if not types:
                del self._published[key]

    def types_for(self, key: EntityKey) -> frozenset[str]:
        return frozenset(self._published.get(key, ()))

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:
            return False
        entity_type, key = item
        return entity_type in self._published.get(key, ())

    def __len__(self) -> int:
        return sum(len(types) for types in self._published.values())

    def clear(self) -> None:
        self._published.clear()


__all__ = ["DiscoveryPublicationSet"]
