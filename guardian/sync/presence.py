"""
Child presence and status.

ChildStatus is written by several independent triggers (connection
lifecycle, battery poll, SOS button, beacon), so every write is a
field-level merge. ``ChildStatusWriter`` is the only way to write it.
"""

import asyncio
import logging
from typing import Any, Optional

from pydantic.alias_generators import to_camel

from guardian import config, paths
from guardian.devices.base import BatteryReader
from guardian.errors import GuardianError
from guardian.models import CHILD_STATUS_FIELDS, ChildStatus
from guardian.store.base import CONNECTED_PATH, SERVER_TIMESTAMP, OnDisconnect, Snapshot, StateStore
from guardian.utils.time import Clock, now_ms

logger = logging.getLogger(__name__)


class ChildStatusWriter:
    """
    Merge-only writer for families/{id}/childStatus.

    Usage:
        >>> await writer.patch(battery=50)
        >>> await writer.patch(sos=True, last_seen=now)
    """

    def __init__(self, store: StateStore, family_id: str):
        self._store = store
        self.path = paths.child_status(family_id)

    async def patch(self, **fields: Any) -> None:
        """
        Merge the given fields. Keyword names may be snake_case or camelCase.

        Raises:
            ValueError: Empty patch or a field ChildStatus does not have
        """
        if not fields:
            raise ValueError("Empty status patch")
        patch = {}
        for name, value in fields.items():
            key = to_camel(name)
            if key not in CHILD_STATUS_FIELDS:
                raise ValueError(f"Unknown ChildStatus field '{name}'")
            patch[key] = value
        await self._store.update(self.path, patch)

    async def read(self) -> Optional[ChildStatus]:
        return ChildStatus.from_wire(await self._store.get(self.path))

    def disconnect_hook(self) -> OnDisconnect:
        return self._store.on_disconnect(self.path)


class PresenceMonitor:
    """
    Marks the child online whenever the store connection is (re)established.

    On every transition to connected, the offline hook is registered first
    and the online write follows, so a drop between the two can never leave
    ``online: true`` behind. Registering the hook again on reconnect replaces
    the previous registration.
    """

    def __init__(self, store: StateStore, writer: ChildStatusWriter, clock: Clock = now_ms):
        self._store = store
        self._writer = writer
        self._clock = clock
        self._unsubscribe = None
        self.connected = False

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = await self._store.subscribe(CONNECTED_PATH, self._on_connection)

    def stop(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    async def _on_connection(self, snapshot: Snapshot) -> None:
        self.connected = bool(snapshot.val())
        if not self.connected:
            return
        try:
            await self._writer.disconnect_hook().update({"online": False, "lastSeen": SERVER_TIMESTAMP})
            await self._writer.patch(online=True, last_seen=self._clock())
        except GuardianError as e:
            # next reconnect retries
            logger.warning("Failed to mark child online: %s", e)

    async def release(self) -> None:
        """
        Detach without writing offline. Used when another device took over
        the session, which now owns the online flag.
        """
        self.stop()
        try:
            await self._writer.disconnect_hook().cancel()
        except GuardianError as e:
            logger.warning("Failed to cancel presence hook: %s", e)

    async def go_offline(self) -> None:
        """Graceful logout: write offline now and drop the hook."""
        self.stop()
        await self._writer.disconnect_hook().cancel()
        await self._writer.patch(online=False, last_seen=self._clock())


class BatteryMonitor:
    """Polls the phone battery at a fixed interval and merges it into ChildStatus."""

    def __init__(
        self,
        reader: BatteryReader,
        writer: ChildStatusWriter,
        interval: float = config.BATTERY_POLL_SECONDS
    ):
        self._reader = reader
        self._writer = writer
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self.last_level: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> Optional[int]:
        try:
            level = max(0, min(100, int(await self._reader.level())))
            await self._writer.patch(battery=level)
        except (GuardianError, OSError, ValueError) as e:
            logger.warning("Battery poll failed: %s", e)
            return None
        self.last_level = level
        return level

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            # a cancel aimed at the caller still propagates
            await asyncio.wait({task})
