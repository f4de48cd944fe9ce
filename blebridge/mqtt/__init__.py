"""MQTT message model shared by the sink and the bridge state."""

from __future__ import annotations

from .messages import QOS_AT_LEAST_ONCE, QOS_AT_MOST_ONCE, QueuedPublish

__all__ = ["QOS_AT_LEAST_ONCE", "QOS_AT_MOST_ONCE", "QueuedPublish"]
