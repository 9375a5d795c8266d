"""
Device boundaries.

The services in ``guardian.sync`` only see these interfaces. Real
implementations live next to this module; tests pass fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from guardian import config


@dataclass
class WatchOptions:
    """Positioning request options."""
    enable_high_accuracy: bool = True
    timeout_ms: int = config.GPS_TIMEOUT_MS
    max_fix_age_ms: int = config.GPS_MAX_FIX_AGE_MS


@dataclass
class PositionFix:
    """One fix as delivered by a positioning source."""
    lat: float
    lng: float
    accuracy: float = 0.0
    provider: str = "gps"
    timestamp: Optional[int] = None


FixCallback = Callable[[PositionFix], Awaitable[Any]]
ErrorCallback = Callable[[Exception], Awaitable[Any]]
WatchHandle = Callable[[], None]


class PositionSource(ABC):
    """
    Continuous and one-shot positioning.

    The source pushes fixes; callers never poll it. Failures are delivered
    to ``on_error`` as ``PermissionDenied`` or ``WriteError``.
    """

    @abstractmethod
    def watch(self, on_fix: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> WatchHandle:
        """Start pushing fixes. The returned handle stops the watch."""
        pass

    @abstractmethod
    async def current_position(self, options: WatchOptions) -> PositionFix:
        """One-shot fix."""
        pass


class BatteryReader(ABC):

    @abstractmethod
    async def level(self) -> int:
        """Battery level 0-100."""
        pass


class Vibrator(ABC):

    @abstractmethod
    async def start(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass


class Notifier(ABC):
    """Fire-and-forget local notification surface."""

    @abstractmethod
    async def notify(self, title: str, body: str, require_interaction: bool = False) -> None:
        pass
