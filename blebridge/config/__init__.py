"""Configuration helpers for the BLE bridge daemon."""

from .const import *  # noqa: F401, F403
from .common import *  # noqa: F401, F403
from . import logging, settings  # noqa: F401
