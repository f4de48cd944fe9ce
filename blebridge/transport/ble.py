"""BLE transport capability and its bleak adapter.

Sessions only ever talk to :class:`BleTransport`; :class:`BleakTransport`
is the production implementation. Every operation is asynchronous and may
fail with :class:`~blebridge.errors.TransportError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from bleak import BleakClient
from bleak.exc import BleakError

from ..errors import TransportError
from ..util import log_hexdump

logger = logging.getLogger("blebridge.transport.ble")

NotifyCallback = Callable[[str, bytes], None]
StateCallback = Callable[[str, int], None]
ServiceMap = dict[str, frozenset[str]]

LINK_DISCONNECTED = "disconnected"


@runtime_checkable
class BleTransport(Protocol):
    @property
    def is_connected(self) -> bool: ...

    async def connect(
        self,
        address: str,
        *,
        on_notify: NotifyCallback,
        on_state_change: StateCallback,
        timeout: float,
    ) -> None: ...

    async def discover_services(self) -> ServiceMap: ...

    async def read(self, uuid: str) -> bytes: ...

    async def write(self, uuid: str, data: bytes, response: bool = True) -> None: ...

    async def set_notification(self, uuid: str, enabled: bool) -> None: ...

    async def request_mtu(self, mtu: int) -> int: ...

    async def disconnect(self) -> None: ...


class BleakTransport:
    """:class:`BleTransport` over :class:`bleak.BleakClient`."""

    def __init__(self) -> None:
        self._client: BleakClient | None = None
        self._on_notify: NotifyCallback | None = None
        self._on_state_change: StateCallback | None = None
        self._address = ""

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def _require_client(self) -> BleakClient:
        if self._client is None or not self._client.is_connected:
            raise TransportError(f"{self._address or 'peripheral'} is not connected")
        return self._client

    def _handle_disconnect(self, _client: BleakClient) -> None:
        logger.info("BLE link to %s dropped.", self._address)
        if self._on_state_change is not None:
            self._on_state_change(LINK_DISCONNECTED, 0)

    def _handle_notify(self, sender: Any, data: bytearray) -> None:
        uuid = str(getattr(sender, "uuid", sender)).lower()
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"BLE NOTIFY < {uuid}", bytes(data))
        if self._on_notify is not None:
            self._on_notify(uuid, bytes(data))

    async def connect(
        self,
        address: str,
        *,
        on_notify: NotifyCallback,
        on_state_change: StateCallback,
        timeout: float,
    ) -> None:
        self._address = address
        self._on_notify = on_notify
        self._on_state_change = on_state_change
        self._client = BleakClient(address, disconnected_callback=self._handle_disconnect, timeout=timeout)
        try:
            await self._client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            self._client = None
            raise TransportError(f"connect to {address} failed: {exc}") from exc

    async def discover_services(self) -> ServiceMap:
        client = self._require_client()
        try:
            services = client.services
        except BleakError as exc:
            raise TransportError(f"service discovery failed: {exc}") from exc
        return {
            str(service.uuid).lower(): frozenset(str(char.uuid).lower() for char in service.characteristics)
            for service in services
        }

    async def read(self, uuid: str) -> bytes:
        client = self._require_client()
        try:
            data = bytes(await client.read_gatt_char(uuid))
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportError(f"read {uuid} failed: {exc}") from exc
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"BLE READ < {uuid}", data)
        return data

    async def write(self, uuid: str, data: bytes, response: bool = True) -> None:
        client = self._require_client()
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"BLE WRITE > {uuid}", data)
        try:
            await client.write_gatt_char(uuid, data, response=response)
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportError(f"write {uuid} failed: {exc}") from exc

    async def set_notification(self, uuid: str, enabled: bool) -> None:
        client = self._require_client()
        try:
            if enabled:
                await client.start_notify(uuid, self._handle_notify)
            else:
                await client.stop_notify(uuid)
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportError(f"notify {uuid} -> {enabled} failed: {exc}") from exc

    async def request_mtu(self, mtu: int) -> int:
        # BlueZ negotiates the ATT MTU on connect; report what was agreed.
        client = self._require_client()
        negotiated = int(client.mtu_size)
        if negotiated < mtu:
            logger.debug("Requested MTU %d, link negotiated %d.", mtu, negotiated)
        return negotiated

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            logger.debug("Ignoring error while disconnecting %s: %s", self._address, exc)


__all__ = [
    "BleTransport",
    "BleakTransport",
    "LINK_DISCONNECTED",
    "NotifyCallback",
    "ServiceMap",
    "StateCallback",
]
