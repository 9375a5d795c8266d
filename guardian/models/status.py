"""
Pydantic models for the child status record and the activity log.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import WireModel

# Fields of ChildStatus, each owned by a different writer
CHILD_STATUS_FIELDS = frozenset({
    "online",
    "lastSeen",
    "battery",
    "sos",
    "beaconConnected",
    "beaconBattery",
})


class ChildStatus(WireModel):
    """Stored at families/{familyId}/childStatus."""
    online: bool = False
    last_seen: Optional[int] = None
    battery: Optional[int] = Field(None, ge=0, le=100)
    sos: bool = False
    beacon_connected: Optional[bool] = None
    beacon_battery: Optional[int] = Field(None, ge=0, le=100)


class LogKind(str, Enum):
    DANGER = "danger"
    INFO = "info"
    LOGIN = "login"
    COMMAND = "command"


class LogEntry(WireModel):
    """Stored at families/{familyId}/logs/{timestamp}."""
    message: str
    timestamp: int
    kind: LogKind = LogKind.INFO
    title: Optional[str] = None
