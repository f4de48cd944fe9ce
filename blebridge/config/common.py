"""Utility helpers shared across the BLE bridge configuration layer."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Final

import msgspec

from .const import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH

logger = logging.getLogger(__name__)

_TRUE_STRINGS: Final[frozenset[str]] = frozenset({"1", "yes", "on", "true", "enable", "enabled"})


def parse_bool(value: object) -> bool:
    """Parse a boolean value safely from various types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if value is None:
        return False
    s = str(value).lower().strip()
    return s in _TRUE_STRINGS


def parse_int(value: object, default: int) -> int:
    """Parse an integer value safely, handling floats and strings."""
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return default


def parse_float(value: object, default: float) -> float:
    """Parse a float value safely."""
    try:
        return float(value)  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return default


def get_config_path() -> Path:
    return Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def load_config_file(path: Path) -> dict[str, Any] | None:
    """Read the JSON configuration document, or None when it does not exist.

    Malformed documents raise ``ValueError`` so the daemon refuses to start
    with a half-understood configuration.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.warning("Configuration file %s not found; using defaults.", path)
        return None
    except OSError as exc:
        logger.error("Failed to read configuration file %s: %s", path, exc)
        raise

    try:
        document = msgspec.json.decode(raw)
    except msgspec.DecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(document, dict):
        raise ValueError(f"Configuration root in {path} must be an object")
    return {str(k): v for k, v in document.items() if not str(k).startswith("_")}


def get_default_config() -> dict[str, Any]:
    """Provide default configuration values.

    Derived from the ``RuntimeConfig`` field defaults so the dataclass stays
    the single source of truth.
    """
    import dataclasses

    # Lazy import to break circular dependency (settings -> common -> settings).
    from blebridge.config.settings import RuntimeConfig

    defaults: dict[str, Any] = {}
    for fi in dataclasses.fields(RuntimeConfig):
        if fi.default is not dataclasses.MISSING:
            defaults[fi.name] = fi.default
        elif fi.default_factory is not dataclasses.MISSING:
            defaults[fi.name] = fi.default_factory()
    # Keys consumed before schema validation.
    defaults["debug"] = False
    defaults["peripherals"] = []
    return defaults


__all__: Final[tuple[str, ...]] = (
    "parse_bool",
    "parse_int",
    "parse_float",
    "get_config_path",
    "load_config_file",
    "get_default_config",
)
