"""
BLE transport for the beacon (bleak).

The beacon exposes an HM-10 style serial characteristic: commands are
written to it as ASCII and status strings arrive as notifications.
"""

import asyncio
import inspect
import logging
from typing import Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from guardian import config
from guardian.errors import NotConnected, NotFound, PermissionDenied, WriteError
from .base import BeaconLink, DeviceHandle

logger = logging.getLogger(__name__)


class BleakBeaconLink(BeaconLink):
    """
    Usage:
        >>> link = BleakBeaconLink(name_prefix="GUARDIAN")
        >>> await link.pair()
        >>> await link.send("BUZZER_ON")
    """

    def __init__(
        self,
        name_prefix: str = config.BEACON_NAME_PREFIX,
        char_uuid: str = config.BEACON_CHAR_UUID,
        scan_timeout: float = config.BEACON_SCAN_TIMEOUT
    ):
        super().__init__()
        self.name_prefix = name_prefix
        self.char_uuid = char_uuid
        self.scan_timeout = scan_timeout
        self._client: Optional[BleakClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks = set()

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def pair(self) -> DeviceHandle:
        self._loop = asyncio.get_running_loop()
        prefix = self.name_prefix

        try:
            device = await BleakScanner.find_device_by_filter(
                lambda d, adv: bool(d.name) and d.name.startswith(prefix),
                timeout=self.scan_timeout,
            )
        except BleakError as e:
            if "permission" in str(e).lower() or "not authorized" in str(e).lower():
                raise PermissionDenied(f"Bluetooth access denied: {e}") from e
            raise WriteError(f"Bluetooth scan failed: {e}") from e

        if device is None:
            raise NotFound(f"No beacon named '{prefix}*' in range")

        client = BleakClient(device, disconnected_callback=self._on_disconnected)
        try:
            await client.connect()
            await client.start_notify(self.char_uuid, self._on_notify)
        except BleakError as e:
            raise WriteError(f"Failed to connect to {device.address}: {e}") from e

        self._client = client
        await self._dispatch(self._emit_status(True))
        return DeviceHandle(address=device.address, name=device.name or "")

    async def send(self, command: str) -> None:
        if not self.connected:
            raise NotConnected("Beacon is not connected")
        try:
            await self._client.write_gatt_char(self.char_uuid, command.encode("ascii"), response=False)
        except (BleakError, OSError) as e:
            raise WriteError(f"Beacon write failed: {e}") from e

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except BleakError as e:
            logger.warning("Beacon disconnect failed: %s", e)
        await self._dispatch(self._emit_status(False))

    def _on_notify(self, _characteristic, data: bytearray) -> None:
        raw = bytes(data).decode("ascii", errors="ignore")
        self._schedule(self._emit_data(raw))

    def _on_disconnected(self, _client: BleakClient) -> None:
        if self._client is None:
            return
        self._client = None
        logger.info("Beacon dropped the connection")
        self._schedule(self._emit_status(False))

    def _schedule(self, results) -> None:
        # bleak invokes these callbacks on the event loop thread
        for result in results:
            if inspect.iscoroutine(result) and self._loop is not None:
                task = self._loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _dispatch(results) -> None:
        for result in results:
            if inspect.isawaitable(result):
                await result
