"""BLE Bridge package initialisation."""

__version__ = "1.0.0"

import logging
import sys

logger = logging.getLogger(__name__)


def _check_dependencies():
    """Verify the MQTT client stack is recent enough for the sink adapter."""
    import paho.mqtt.client as mqtt

    # aiomqtt 2.x requires paho-mqtt 2.x (CallbackAPIVersion).
    if not hasattr(mqtt, "CallbackAPIVersion"):
        logger.critical(
            "FATAL: Incompatible paho-mqtt version detected. "
            "blebridge requires paho-mqtt 2.x with CallbackAPIVersion support."
        )
        sys.exit(1)


_check_dependencies()
