"""
Pydantic model for the single parent-to-child command slot.
"""

from enum import Enum
from typing import Optional

from .base import WireModel


class CommandType(str, Enum):
    VIBRATE = "VIBRATE"
    STOP_VIBRATE = "STOP_VIBRATE"
    REQUEST_LOCATION = "REQUEST_LOCATION"
    BUZZER_ON = "BUZZER_ON"
    BUZZER_OFF = "BUZZER_OFF"


class CommandStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"


class Command(WireModel):
    """Stored at families/{familyId}/commands."""
    type: CommandType
    status: CommandStatus = CommandStatus.PENDING
    timestamp: int
    executed_at: Optional[int] = None

    def same_as(self, other: "Command") -> bool:
        """True if both describe the same send (type and timestamp)."""
        return other is not None and self.type == other.type and self.timestamp == other.timestamp
