"""Transport adapters: BLE below the engine, MQTT above it."""
