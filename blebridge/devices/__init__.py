"""Peripheral family sessions."""

from __future__ import annotations

from typing import Final

from ..config.const import FAMILY_EASYTOUCH, FAMILY_GOPOWER, FAMILY_ONECONTROL
from ..services.session import BaseSession
from .easytouch import EasyTouchSession
from .gopower import GoPowerSession
from .onecontrol import OneControlSession

SESSION_CLASSES: Final[dict[str, type[BaseSession]]] = {
    FAMILY_ONECONTROL: OneControlSession,
    FAMILY_EASYTOUCH: EasyTouchSession,
    FAMILY_GOPOWER: GoPowerSession,
}


def session_class(family: str) -> type[BaseSession]:
    try:
        return SESSION_CLASSES[family]
    except KeyError:
        raise ValueError(f"unknown peripheral family {family!r}") from None


__all__ = [
    "EasyTouchSession",
    "GoPowerSession",
    "OneControlSession",
    "SESSION_CLASSES",
    "session_class",
]
