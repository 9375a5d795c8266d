"""
Location synchronization.

Each role overwrites its own LocationRecord on every fix and subscribes to
the peer's record. Staleness is derived on read, never stored.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Union

from pydantic import ValidationError

from guardian import config, paths
from guardian.devices.base import PositionSource, WatchOptions
from guardian.errors import GuardianError, InvalidInput, PermissionDenied
from guardian.models import LocationProvider, LocationRecord, LogKind, Role
from guardian.store.base import Snapshot, StateStore, Unsubscribe
from guardian.utils.time import Clock, now_ms

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371e3

Point = Union[LocationRecord, Tuple[float, float], dict]


def _lat_lng(point: Point) -> Tuple[float, float]:
    if isinstance(point, tuple):
        return point
    if isinstance(point, dict):
        return point["lat"], point["lng"]
    return point.lat, point.lng


def distance(a: Point, b: Point) -> float:
    """Great-circle distance in meters (haversine)."""
    lat1, lng1 = _lat_lng(a)
    lat2, lng2 = _lat_lng(b)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_online(record: Optional[LocationRecord], now: int = None, stale_ms: int = config.LOCATION_STALE_MS) -> bool:
    """
    True if the record is fresher than ``stale_ms``.

    This is location freshness only; connectivity is ChildStatus.online.
    """
    if record is None:
        return False
    now = now_ms() if now is None else now
    return (now - record.updated_at) < stale_ms


@dataclass
class SafeZone:
    lat: float
    lng: float
    radius_m: float

    def distance_to(self, record: Point) -> float:
        return distance((self.lat, self.lng), record)

    def contains(self, record: Point) -> bool:
        return self.distance_to(record) <= self.radius_m


class LocationSync:
    """
    Location publish/subscribe for one role of one family.

    Only the own role's record can be written through this object.
    """

    def __init__(self, store: StateStore, family_id: str, role: Role, clock: Clock = now_ms):
        self._store = store
        self.family_id = family_id
        self.role = Role(role)
        self._clock = clock

    @property
    def own_path(self) -> str:
        return paths.location(self.family_id, self.role.value)

    @property
    def peer_path(self) -> str:
        return paths.location(self.family_id, self.role.peer.value)

    async def publish_location(self, fix: Any) -> LocationRecord:
        """
        Overwrite the own LocationRecord from a fix.

        Raises:
            InvalidInput: Coordinates out of range
        """
        try:
            record = LocationRecord(
                lat=fix.lat,
                lng=fix.lng,
                accuracy=fix.accuracy or 0,
                updated_at=self._clock(),
                provider=getattr(fix, "provider", LocationProvider.GPS),
            )
        except ValidationError as e:
            raise InvalidInput(f"Invalid coordinates: {e.errors()[0]['msg']}") from e

        await self._store.set(self.own_path, record.to_wire())
        return record

    async def own_location(self) -> Optional[LocationRecord]:
        return LocationRecord.from_wire(await self._store.get(self.own_path))

    async def subscribe_to_peer_location(
        self,
        callback: Callable[[Optional[LocationRecord]], Any]
    ) -> Unsubscribe:
        """Invoke ``callback`` with the peer's record (or None) on every write."""

        def on_location(snapshot: Snapshot):
            try:
                record = LocationRecord.from_wire(snapshot.val())
            except ValidationError:
                logger.warning("Ignoring malformed location at %s", snapshot.path)
                return None
            return callback(record)

        return await self._store.subscribe(self.peer_path, on_location)


class LocationTracker:
    """
    Binds a PositionSource watch to ``publish_location``.

    ``gps_ok`` mirrors positioning health for permission indicators.
    Positioning failures are logged to the activity log and retried by the
    next fix, never by a retry loop.
    """

    def __init__(
        self,
        sync: LocationSync,
        source: PositionSource,
        log=None,
        options: Optional[WatchOptions] = None
    ):
        self._sync = sync
        self._source = source
        self._log = log
        self._options = options or WatchOptions()
        self._watch = None
        self.gps_ok: Optional[bool] = None
        self.last_fix = None
        self.last_record: Optional[LocationRecord] = None

    @property
    def watching(self) -> bool:
        return self._watch is not None

    def start(self) -> None:
        if self._watch is None:
            self._watch = self._source.watch(self._on_fix, self._on_error, self._options)

    def stop(self) -> None:
        watch, self._watch = self._watch, None
        if watch is not None:
            watch()

    async def _publish(self, fix) -> Optional[LocationRecord]:
        try:
            record = await self._sync.publish_location(fix)
        except GuardianError as e:
            logger.warning("Failed to publish location: %s", e)
            return None
        self.last_fix = fix
        self.last_record = record
        return record

    async def _on_fix(self, fix) -> None:
        self.gps_ok = True
        await self._publish(fix)

    async def _on_error(self, error: Exception) -> None:
        self.gps_ok = False
        title = "GPS permission denied" if isinstance(error, PermissionDenied) else "GPS error"
        logger.warning("%s: %s", title, error)
        if self._log is not None:
            await self._log.append(str(error), kind=LogKind.DANGER, title=title)

    async def request_current_location(self) -> Optional[LocationRecord]:
        """One-shot high-accuracy fix, published immediately."""
        options = WatchOptions(
            enable_high_accuracy=True,
            timeout_ms=self._options.timeout_ms,
            max_fix_age_ms=0,
        )
        try:
            fix = await self._source.current_position(options)
        except GuardianError as e:
            await self._on_error(e)
            return None
        self.gps_ok = True
        return await self._publish(fix)

    async def republish(self) -> Optional[LocationRecord]:
        """Publish the last fix again with a fresh timestamp."""
        if self.last_fix is None:
            return None
        return await self._publish(self.last_fix)
