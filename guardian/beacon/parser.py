"""
Tolerant parser for beacon status strings such as ``BAT:88|SOS:0``.

Tokens are ``KEY:VALUE`` pairs separated by ``|``, ``,``, ``;`` or
whitespace. Unknown keys land in ``extras``; malformed values are dropped.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

_SEPARATORS = re.compile(r"[|,;\s]+")


@dataclass
class BeaconStatus:
    battery: Optional[int] = None
    sos: Optional[bool] = None
    buzzer: Optional[bool] = None
    led: Optional[bool] = None
    extras: Dict[str, str] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return self.battery is None and self.sos is None and self.buzzer is None and self.led is None


def _flag(value: str) -> Optional[bool]:
    if value in ("1", "ON"):
        return True
    if value in ("0", "OFF"):
        return False
    return None


def parse_status(raw: str) -> BeaconStatus:
    status = BeaconStatus()
    for token in _SEPARATORS.split((raw or "").strip()):
        if ":" not in token:
            continue
        key, _, value = token.partition(":")
        key = key.strip().upper()
        value = value.strip().upper()

        if key == "BAT":
            if value.isdigit() and 0 <= int(value) <= 100:
                status.battery = int(value)
        elif key == "SOS":
            status.sos = _flag(value)
        elif key == "BUZ":
            status.buzzer = _flag(value)
        elif key == "LED":
            status.led = _flag(value)
        elif key:
            status.extras[key] = value
    return status
