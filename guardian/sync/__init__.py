"""
Synchronization services: location, presence, SOS, commands, activity log.
"""

from .activity_log import ActivityLog
from .alerts import AlertLoop
from .commands import BuzzerRouter, CommandChannel, CommandDispatcher, CommandPolicy, CommandState
from .location import LocationSync, LocationTracker, SafeZone, distance, is_online
from .presence import BatteryMonitor, ChildStatusWriter, PresenceMonitor
from .sos import SosController, SosWatcher

__all__ = [
    "ActivityLog",
    "AlertLoop",
    "BuzzerRouter",
    "CommandChannel",
    "CommandDispatcher",
    "CommandPolicy",
    "CommandState",
    "LocationSync",
    "LocationTracker",
    "SafeZone",
    "distance",
    "is_online",
    "BatteryMonitor",
    "ChildStatusWriter",
    "PresenceMonitor",
    "SosController",
    "SosWatcher",
]
