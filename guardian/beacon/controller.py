"""
Beacon controller.

Actuator state is two-phase: ``requested`` flips when a command is written,
``confirmed`` only when the beacon reports the new state. A disconnect
resets both to unknown.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Optional

from guardian.errors import GuardianError, NotConnected
from guardian.models import LogKind
from .base import BUZZER_OFF, BUZZER_ON, LED_OFF, LED_ON, BeaconLink, DeviceHandle
from .parser import BeaconStatus, parse_status

logger = logging.getLogger(__name__)


@dataclass
class ActuatorState:
    requested: Optional[bool] = None
    confirmed: Optional[bool] = None

    @property
    def settled(self) -> bool:
        return self.requested is None or self.requested == self.confirmed

    def reset(self) -> None:
        self.requested = None
        self.confirmed = None


class BeaconController:
    """
    Drives one beacon link and feeds its reports into the child status.

    ``status_writer`` and ``sos`` are optional: a parent phone pairs a beacon
    only to sound it and does not publish its state.
    """

    def __init__(self, link: BeaconLink, status_writer=None, sos=None, log=None):
        self.link = link
        self._writer = status_writer
        self._sos = sos
        self._log = log
        self.device: Optional[DeviceHandle] = None
        self.buzzer = ActuatorState()
        self.led = ActuatorState()
        self.battery: Optional[int] = None
        self.last_raw: Optional[str] = None
        self._beacon_sos = False
        link.on_status_change(self._on_status_change)
        link.on_data_received(self._on_data)

    @property
    def connected(self) -> bool:
        return self.link.connected

    async def pair(self) -> DeviceHandle:
        self.device = await self.link.pair()
        logger.info("Paired beacon %s", self.device.address)
        return self.device

    async def send(self, command: str) -> None:
        """
        Raises:
            NotConnected: No paired beacon
            WriteError: Transport failure
        """
        if not self.link.connected:
            await self._log_failure("Beacon is not connected")
            raise NotConnected("Beacon is not connected")
        try:
            await self.link.send(command)
        except GuardianError as e:
            await self._log_failure(f"Failed to send {command}: {e}")
            raise

        if command in (BUZZER_ON, BUZZER_OFF):
            self.buzzer.requested = command == BUZZER_ON
        elif command in (LED_ON, LED_OFF):
            self.led.requested = command == LED_ON
        if self._log is not None:
            await self._log.append(f"Command: {command}", kind=LogKind.COMMAND, title="Sent to beacon")

    async def set_buzzer(self, on: bool) -> None:
        await self.send(BUZZER_ON if on else BUZZER_OFF)

    async def set_led(self, on: bool) -> None:
        await self.send(LED_ON if on else LED_OFF)

    async def disconnect(self) -> None:
        await self.link.disconnect()

    async def _log_failure(self, message: str) -> None:
        logger.warning(message)
        if self._log is not None:
            await self._log.append(message, kind=LogKind.DANGER, title="Beacon error")

    async def _patch_status(self, **fields) -> None:
        if self._writer is None:
            return
        try:
            await self._writer.patch(**fields)
        except GuardianError as e:
            logger.warning("Failed to publish beacon state: %s", e)

    async def _on_status_change(self, connected: bool) -> None:
        if not connected:
            self.buzzer.reset()
            self.led.reset()
            self._beacon_sos = False
        logger.info("Beacon %s", "connected" if connected else "disconnected")
        await self._patch_status(beacon_connected=connected)

    async def _on_data(self, raw: str) -> BeaconStatus:
        self.last_raw = raw
        status = parse_status(raw)

        if status.buzzer is not None:
            self.buzzer.confirmed = status.buzzer
        if status.led is not None:
            self.led.confirmed = status.led

        if status.battery is not None and status.battery != self.battery:
            self.battery = status.battery
            await self._patch_status(beacon_battery=status.battery)

        if status.sos is not None:
            rising = status.sos and not self._beacon_sos
            self._beacon_sos = status.sos
            if rising and self._sos is not None and not self._sos.active:
                result = self._sos.set_sos(True)
                if inspect.isawaitable(result):
                    await result
        return status
