"""
Session orchestrator.

``GuardianClient`` authenticates and returns a role session. Every service
a session starts registers its teardown in one ListenerGroup, so logout and
forced session expiry detach everything at once.

Usage:
    >>> client = GuardianClient(store, position_source=source, notifier=notifier)
    >>> session = await client.login("budi", "secret1")
    >>> await session.send_command(CommandType.VIBRATE)
    >>> await session.logout()
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

from guardian.auth import IdentityManager
from guardian.beacon import BeaconController, BeaconLink
from guardian.devices.base import BatteryReader, Notifier, PositionSource, Vibrator
from guardian.devices.notify import default_notifier
from guardian.errors import GuardianError, WriteError
from guardian.models import ChildCredentials, ChildStatus, Command, CommandType, LocationRecord, LogEntry, LogKind, Role, UserProfile
from guardian.providers import AnalysisResult, SafetyAnalyzer, SafetySnapshot
from guardian.store.base import ListenerGroup, StateStore
from guardian.sync import (
    ActivityLog,
    AlertLoop,
    BatteryMonitor,
    BuzzerRouter,
    ChildStatusWriter,
    CommandChannel,
    CommandDispatcher,
    CommandState,
    LocationSync,
    LocationTracker,
    PresenceMonitor,
    SafeZone,
    SosController,
    SosWatcher,
    distance,
    is_online,
)
from guardian.utils.time import Clock, now_ms

logger = logging.getLogger(__name__)


class Session:
    """State and teardown shared by both roles."""

    def __init__(self, client: "GuardianClient", profile: UserProfile):
        self.client = client
        self.profile = profile
        self.family_id = profile.family_id
        self.role = Role(profile.role)
        self.listeners = ListenerGroup()
        self.expired = asyncio.Event()
        self.closed = False

        store, clock = client.store, client.clock
        self.log = ActivityLog(store, self.family_id, clock=clock)
        self.location = LocationSync(store, self.family_id, self.role, clock=clock)
        self.tracker = (
            LocationTracker(self.location, client.position_source, log=self.log)
            if client.position_source is not None else None
        )
        self.peer_location: Optional[LocationRecord] = None
        self.logs: List[LogEntry] = []

    async def start(self) -> "Session":
        self.listeners.add(await self.client.identity.watch_session(
            self.profile.username, self.profile.session_token, self._on_session_expired
        ))
        self.listeners.add(await self.location.subscribe_to_peer_location(self._on_peer_location))
        self.listeners.add(await self.log.subscribe(self._on_logs))
        if self.tracker is not None:
            self.tracker.start()
            self.listeners.add(self.tracker.stop)
        return self

    def _on_peer_location(self, record: Optional[LocationRecord]) -> None:
        self.peer_location = record

    def _on_logs(self, entries: List[LogEntry]) -> None:
        self.logs = entries

    def peer_online(self) -> bool:
        return is_online(self.peer_location, now=self.client.clock())

    def distance_to_peer(self) -> Optional[float]:
        if self.peer_location is None or self.tracker is None or self.tracker.last_record is None:
            return None
        return distance(self.tracker.last_record, self.peer_location)

    async def _on_session_expired(self) -> None:
        logger.info("Session for %s replaced by another login", self.profile.username)
        await self.close()
        self.expired.set()
        callback = self.client.on_session_expired
        if callback is not None:
            result = callback(self)
            if inspect.isawaitable(result):
                await result

    async def close(self) -> None:
        """Detach every listener and stop background work."""
        if self.closed:
            return
        self.closed = True
        self.listeners.close()

    async def logout(self) -> None:
        await self.close()


class ChildSession(Session):
    """
    Child phone: publishes location, presence and battery, executes parent
    commands and raises SOS.
    """

    def __init__(self, client: "GuardianClient", profile: UserProfile):
        super().__init__(client, profile)
        store = client.store
        self.status = ChildStatusWriter(store, self.family_id)
        self.presence = PresenceMonitor(store, self.status, clock=client.clock)
        self.battery = (
            BatteryMonitor(client.battery_reader, self.status)
            if client.battery_reader is not None else None
        )
        self.sos = SosController(self.status, self.log, tracker=self.tracker, clock=client.clock)
        self.beacon = (
            BeaconController(client.beacon_link, status_writer=self.status, sos=self.sos, log=self.log)
            if client.beacon_link is not None else None
        )
        self.sos.beacon = self.beacon
        self.commands = CommandChannel(store, self.family_id, self.log, clock=client.clock)
        self.dispatcher = CommandDispatcher(self.commands, self._actions(), self.log)

    def _actions(self):
        actions = {CommandType.REQUEST_LOCATION: self._request_location}
        vibrator = self.client.vibrator
        if vibrator is not None:
            actions[CommandType.VIBRATE] = vibrator.start
            actions[CommandType.STOP_VIBRATE] = vibrator.stop
        if self.beacon is not None:
            actions[CommandType.BUZZER_ON] = lambda: self.beacon.set_buzzer(True)
            actions[CommandType.BUZZER_OFF] = lambda: self.beacon.set_buzzer(False)
        return actions

    async def _request_location(self) -> None:
        if self.tracker is None:
            raise WriteError("No positioning source on this device")
        if await self.tracker.request_current_location() is None:
            raise WriteError("Could not get a location fix")

    async def start(self) -> "ChildSession":
        await super().start()
        await self.presence.start()
        self.listeners.add(self.presence.stop)
        self.listeners.add(await self.dispatcher.start())
        if self.battery is not None:
            self.battery.start()
        return self

    async def pair_beacon(self):
        if self.beacon is None:
            raise WriteError("No beacon link on this device")
        return await self.beacon.pair()

    async def set_sos(self, active: bool) -> None:
        await self.sos.set_sos(active)

    async def logout(self) -> None:
        """Graceful logout: mark offline and cancel the presence hook."""
        try:
            await self.presence.go_offline()
        except GuardianError as e:
            logger.warning("Failed to mark child offline on logout: %s", e)
        await self.close()

    async def close(self) -> None:
        if self.closed:
            return
        await super().close()
        await self.presence.release()
        if self.battery is not None:
            await self.battery.stop()
        vibrator = self.client.vibrator
        if vibrator is not None:
            try:
                await vibrator.stop()
            except GuardianError as e:
                logger.warning("Failed to stop vibration on close: %s", e)


class ParentSession(Session):
    """
    Parent phone: observes the child, sends commands and sounds the SOS alarm.
    """

    def __init__(self, client: "GuardianClient", profile: UserProfile, safe_zone: Optional[SafeZone] = None):
        super().__init__(client, profile)
        store = client.store
        self.commands = CommandChannel(store, self.family_id, self.log, clock=client.clock)
        self.beacon = (
            BeaconController(client.beacon_link, log=self.log)
            if client.beacon_link is not None else None
        )
        self.buzzer = BuzzerRouter(self.commands, self.beacon)
        self.alert = AlertLoop(client.alert_impulse or self._default_impulse)
        self.sos_watcher = SosWatcher(store, self.family_id, self.alert, client.notifier, on_status=self._on_status)
        self.child_status: Optional[ChildStatus] = None
        self.safe_zone = safe_zone
        self.last_command: Optional[Command] = None

    def _default_impulse(self):
        vibrator = self.client.vibrator
        if vibrator is not None:
            return vibrator.start()
        return None

    def _on_status(self, status: Optional[ChildStatus]) -> None:
        self.child_status = status

    async def start(self) -> "ParentSession":
        await super().start()
        self.listeners.add(await self.sos_watcher.start())
        self.listeners.add(await self.commands.watch(self._on_command))
        return self

    def _on_command(self, command: Optional[Command], _state) -> None:
        self.last_command = command

    @property
    def command_state(self) -> Optional[CommandState]:
        """Display state of the slot, re-derived on every read so a pending command ages into expired."""
        return self.commands.policy.state_of(self.last_command)

    async def send_command(self, command_type: CommandType):
        return await self.commands.send_command(command_type)

    async def set_buzzer(self, on: bool) -> str:
        return await self.buzzer.set_buzzer(on)

    async def child_credentials(self) -> ChildCredentials:
        return await self.client.identity.get_child_credentials(self.family_id, requested_by=self.profile.username)

    def child_in_safe_zone(self) -> Optional[bool]:
        if self.safe_zone is None or self.peer_location is None:
            return None
        return self.safe_zone.contains(self.peer_location)

    def safety_snapshot(self) -> SafetySnapshot:
        status = self.child_status or ChildStatus()
        return SafetySnapshot(
            beacon_connected=bool(status.beacon_connected),
            beacon_battery=status.beacon_battery,
            buzzer_on=bool(self.beacon and self.beacon.buzzer.requested) or status.sos,
            led_on=bool(self.beacon and self.beacon.led.requested),
            phone_online=status.online,
            phone_battery=status.battery,
            gps_active=self.peer_online(),
        )

    async def analyze(self) -> AnalysisResult:
        analyzer = self.client.analyzer or SafetyAnalyzer([])
        return await analyzer.summarize(self.safety_snapshot())

    async def close(self) -> None:
        await super().close()
        await self.sos_watcher.stop()


class GuardianClient:
    """
    Explicitly constructed service container for one device.

    Devices are optional; a session only starts the services whose device
    was provided.
    """

    def __init__(
        self,
        store: StateStore,
        identity: Optional[IdentityManager] = None,
        position_source: Optional[PositionSource] = None,
        battery_reader: Optional[BatteryReader] = None,
        vibrator: Optional[Vibrator] = None,
        notifier: Optional[Notifier] = None,
        beacon_link: Optional[BeaconLink] = None,
        analyzer: Optional[SafetyAnalyzer] = None,
        alert_impulse: Optional[Callable[[], Any]] = None,
        on_session_expired: Optional[Callable[[Session], Any]] = None,
        clock: Clock = now_ms
    ):
        self.store = store
        self.clock = clock
        self.identity = identity or IdentityManager(store, clock=clock)
        self.position_source = position_source
        self.battery_reader = battery_reader
        self.vibrator = vibrator
        self.notifier = notifier or default_notifier()
        self.beacon_link = beacon_link
        self.analyzer = analyzer
        self.alert_impulse = alert_impulse
        self.on_session_expired = on_session_expired

    async def _open(self, profile: UserProfile) -> Session:
        if Role(profile.role) is Role.CHILD:
            session = ChildSession(self, profile)
        else:
            session = ParentSession(self, profile)
        await session.start()
        await session.log.append(f"{profile.username} signed in", kind=LogKind.LOGIN, title="Login")
        return session

    async def register(self, username: str, password: str, child_name: str, child_contact: str) -> str:
        return await self.identity.register(username, password, child_name, child_contact)

    async def confirm_registration(self, username: str, code: str) -> Session:
        return await self._open(await self.identity.confirm_registration(username, code))

    async def login(self, username: str, password: str) -> Session:
        return await self._open(await self.identity.login(username, password))

    async def resume(self, token: str) -> Session:
        return await self._open(await self.identity.resume(token))
