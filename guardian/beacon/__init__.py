"""
Beacon link adapter: boundary, status parser, controller and BLE transport.
"""

from .base import BUZZER_OFF, BUZZER_ON, LED_OFF, LED_ON, BeaconLink, DeviceHandle
from .controller import ActuatorState, BeaconController
from .parser import BeaconStatus, parse_status

__all__ = [
    "BUZZER_OFF",
    "BUZZER_ON",
    "LED_OFF",
    "LED_ON",
    "BeaconLink",
    "DeviceHandle",
    "ActuatorState",
    "BeaconController",
    "BeaconStatus",
    "parse_status",
]
