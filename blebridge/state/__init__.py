"""Runtime state: sessions, entities and persisted names."""
