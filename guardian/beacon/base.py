"""
Beacon link boundary.

The core only sees pairing, a send of short ASCII commands, and callbacks for
connection changes and raw received text. The radio transport is hidden.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List

StatusCallback = Callable[[bool], Any]
DataCallback = Callable[[str], Any]

BUZZER_ON = "BUZZER_ON"
BUZZER_OFF = "BUZZER_OFF"
LED_ON = "LED_ON"
LED_OFF = "LED_OFF"


@dataclass
class DeviceHandle:
    address: str
    name: str = ""


class BeaconLink(ABC):

    def __init__(self):
        self._status_callbacks: List[StatusCallback] = []
        self._data_callbacks: List[DataCallback] = []

    @property
    @abstractmethod
    def connected(self) -> bool:
        pass

    @abstractmethod
    async def pair(self) -> DeviceHandle:
        """
        Raises:
            PermissionDenied: Radio access refused
            NotFound: No matching device in range
        """
        pass

    @abstractmethod
    async def send(self, command: str) -> None:
        """
        Raises:
            NotConnected: No paired device
            WriteError: Transport failure
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    def on_status_change(self, callback: StatusCallback) -> Callable[[], None]:
        self._status_callbacks.append(callback)
        return lambda: self._status_callbacks.remove(callback)

    def on_data_received(self, callback: DataCallback) -> Callable[[], None]:
        self._data_callbacks.append(callback)
        return lambda: self._data_callbacks.remove(callback)

    def _emit_status(self, connected: bool) -> List[Any]:
        return [callback(connected) for callback in list(self._status_callbacks)]

    def _emit_data(self, raw: str) -> List[Any]:
        return [callback(raw) for callback in list(self._data_callbacks)]
