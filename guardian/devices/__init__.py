"""
Device boundaries and their implementations.
"""

from .base import (
    BatteryReader,
    Notifier,
    PositionFix,
    PositionSource,
    Vibrator,
    WatchHandle,
    WatchOptions,
)
from .notify import LogNotifier, WebhookNotifier, default_notifier

__all__ = [
    "BatteryReader",
    "Notifier",
    "PositionFix",
    "PositionSource",
    "Vibrator",
    "WatchHandle",
    "WatchOptions",
    "LogNotifier",
    "WebhookNotifier",
    "default_notifier",
]
