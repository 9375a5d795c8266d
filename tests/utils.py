"""
Test utilities: a controllable clock and fakes for every device boundary.
"""

import inspect
from typing import List, Optional

from guardian.auth import OperatorChannel, RelayRequest
from guardian.beacon import BeaconLink, DeviceHandle
from guardian.devices import BatteryReader, Notifier, PositionFix, PositionSource, Vibrator, WatchOptions
from guardian.errors import NotConnected, NotFound, WriteError

START_MS = 1_700_000_000_000


class FakeClock:
    """Callable clock in epoch milliseconds that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class RecordingOperator(OperatorChannel):

    def __init__(self):
        self.requests: List[RelayRequest] = []

    async def relay(self, request: RelayRequest) -> None:
        self.requests.append(request)

    @property
    def last_code(self) -> str:
        return self.requests[-1].code


class FakePositionSource(PositionSource):

    def __init__(self):
        self.on_fix = None
        self.on_error = None
        self.options: Optional[WatchOptions] = None
        self.next_fix: Optional[PositionFix] = None
        self.next_error: Optional[Exception] = None
        self.requests: List[WatchOptions] = []

    @property
    def watching(self) -> bool:
        return self.on_fix is not None

    def watch(self, on_fix, on_error, options):
        self.on_fix, self.on_error, self.options = on_fix, on_error, options

        def clear():
            self.on_fix = None
            self.on_error = None

        return clear

    async def emit(self, lat: float, lng: float, accuracy: float = 5.0):
        await self.on_fix(PositionFix(lat=lat, lng=lng, accuracy=accuracy))

    async def fail(self, error: Exception):
        await self.on_error(error)

    async def current_position(self, options):
        self.requests.append(options)
        if self.next_error is not None:
            raise self.next_error
        if self.next_fix is None:
            raise WriteError("No fix available")
        return self.next_fix


async def _drain(results):
    for result in results:
        if inspect.isawaitable(result):
            await result


class FakeBeaconLink(BeaconLink):

    def __init__(self, available: bool = True):
        super().__init__()
        self.available = available
        self.is_connected = False
        self.sent: List[str] = []
        self.fail_writes = False

    @property
    def connected(self) -> bool:
        return self.is_connected

    async def pair(self):
        if not self.available:
            raise NotFound("No beacon in range")
        self.is_connected = True
        await _drain(self._emit_status(True))
        return DeviceHandle(address="AA:BB:CC:DD:EE:FF", name="GUARDIAN-1")

    async def send(self, command: str):
        if not self.is_connected:
            raise NotConnected("Beacon is not connected")
        if self.fail_writes:
            raise WriteError("write failed")
        self.sent.append(command)

    async def disconnect(self):
        self.is_connected = False
        await _drain(self._emit_status(False))

    async def receive(self, raw: str):
        await _drain(self._emit_data(raw))


class RecordingNotifier(Notifier):

    def __init__(self):
        self.notifications = []

    async def notify(self, title, body, require_interaction=False):
        self.notifications.append((title, body, require_interaction))


class FakeVibrator(Vibrator):

    def __init__(self):
        self.calls: List[str] = []
        self.fail = False

    async def start(self):
        if self.fail:
            raise WriteError("vibration motor unavailable")
        self.calls.append("start")

    async def stop(self):
        self.calls.append("stop")


class FakeBattery(BatteryReader):

    def __init__(self, level: int = 80):
        self.value = level
        self.error: Optional[Exception] = None

    async def level(self) -> int:
        if self.error is not None:
            raise self.error
        return self.value


async def register_family(identity, operator, username: str = "Budi", password: str = "rahasia1"):
    """Register and confirm a family, returning the parent's profile."""
    await identity.register(username, password, "Ani", "081234567890")
    return await identity.confirm_registration(username, operator.last_code)
