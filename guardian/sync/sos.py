"""
SOS raise/clear on the child and the alarm reaction on the parent.
"""

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from guardian import paths
from guardian.devices.base import Notifier
from guardian.errors import GuardianError
from guardian.models import ChildStatus, LogKind
from guardian.store.base import Snapshot, StateStore, Unsubscribe
from guardian.utils.time import Clock, now_ms
from .activity_log import ActivityLog
from .alerts import AlertLoop
from .location import LocationTracker
from .presence import ChildStatusWriter

logger = logging.getLogger(__name__)

BUZZER_ON = "BUZZER_ON"


class SosController:
    """
    Child-side SOS toggle.

    Raising SOS also republishes the last fix with a fresh timestamp and asks
    the paired beacon, if any, to sound.
    """

    def __init__(
        self,
        writer: ChildStatusWriter,
        log: ActivityLog,
        tracker: Optional[LocationTracker] = None,
        beacon=None,
        clock: Clock = now_ms
    ):
        self._writer = writer
        self._log = log
        self._tracker = tracker
        self.beacon = beacon
        self._clock = clock
        self.active = False

    async def set_sos(self, active: bool) -> None:
        await self._writer.patch(sos=active, last_seen=self._clock())
        self.active = active

        if active:
            await self._log.append("Sending a danger signal!", kind=LogKind.DANGER, title="SOS TRIGGERED")
            if self._tracker is not None:
                await self._tracker.republish()
            if self.beacon is not None and self.beacon.connected:
                try:
                    await self.beacon.send(BUZZER_ON)
                except GuardianError as e:
                    logger.warning("Beacon did not take the SOS buzzer: %s", e)
        else:
            await self._log.append("SOS cleared", kind=LogKind.INFO, title="SOS")


class SosWatcher:
    """
    Parent-side reaction to ChildStatus.sos.

    Only transitions count: repeated snapshots with the same ``sos`` value do
    nothing. A rising edge starts the alert loop and sends a notification
    that requires interaction; a falling edge stops the loop.
    """

    def __init__(
        self,
        store: StateStore,
        family_id: str,
        alert: AlertLoop,
        notifier: Notifier,
        on_status: Callable[[Optional[ChildStatus]], Any] = None
    ):
        self._store = store
        self._path = paths.child_status(family_id)
        self._alert = alert
        self._notifier = notifier
        self._on_status = on_status
        self._previous = False
        self.status: Optional[ChildStatus] = None

    async def start(self) -> Unsubscribe:
        return await self._store.subscribe(self._path, self._on_snapshot)

    async def _on_snapshot(self, snapshot: Snapshot) -> None:
        try:
            status = ChildStatus.from_wire(snapshot.val())
        except ValidationError:
            logger.warning("Ignoring malformed child status")
            return
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

        sos = bool(status and status.sos)
        if sos == self._previous:
            return
        self._previous = sos

        if sos:
            await self._alert.start()
            try:
                await self._notifier.notify("SOS!", "Your child has triggered an SOS alert.", require_interaction=True)
            except GuardianError as e:
                logger.warning("SOS notification failed: %s", e)
        else:
            await self._alert.stop()

    async def stop(self) -> None:
        await self._alert.stop()
        self._previous = False
