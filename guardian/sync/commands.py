"""
Parent-to-child command channel.

A family has a single command slot. The parent overwrites it on every send;
the child listens, runs the matching local action and flips the status to
``executed``. Freshness and duplicate checks happen in one place, the
receiver's ``CommandPolicy``.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from guardian import config, paths
from guardian.errors import GuardianError, StaleCommand
from guardian.models import Command, CommandStatus, CommandType, LogKind
from guardian.store.base import Snapshot, StateStore, Unsubscribe
from guardian.utils.time import Clock, now_ms
from .activity_log import ActivityLog

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


class CommandState(str, Enum):
    """What the parent shows for the slot."""
    PENDING = "pending"
    EXECUTED = "executed"
    EXPIRED = "expired"


class CommandPolicy:
    """
    Receiver-side freshness rule.

    A command is actionable only while pending and ``0 <= age < freshness``,
    where small negative ages (sender clock ahead) up to ``skew_ms`` count
    as zero.
    """

    def __init__(
        self,
        clock: Clock = now_ms,
        freshness_ms: int = config.COMMAND_FRESHNESS_MS,
        skew_ms: int = config.COMMAND_CLOCK_SKEW_MS
    ):
        self._clock = clock
        self.freshness_ms = freshness_ms
        self.skew_ms = skew_ms

    def check(self, command: Command) -> None:
        """
        Raises:
            StaleCommand: The command must not trigger its action
        """
        if command.status != CommandStatus.PENDING:
            raise StaleCommand(f"{command.type.value} is already {command.status.value}")
        age = self._clock() - command.timestamp
        if age < -self.skew_ms:
            raise StaleCommand(f"{command.type.value} is {-age} ms in the future")
        if age >= self.freshness_ms:
            raise StaleCommand(f"{command.type.value} is {age} ms old")

    def is_actionable(self, command: Command) -> bool:
        try:
            self.check(command)
        except StaleCommand as e:
            logger.debug("Ignoring command: %s", e)
            return False
        return True

    def state_of(self, command: Optional[Command]) -> Optional[CommandState]:
        """Display state for the parent; stale pending commands read as expired."""
        if command is None:
            return None
        if command.status == CommandStatus.EXECUTED:
            return CommandState.EXECUTED
        if self._clock() - command.timestamp >= self.freshness_ms:
            return CommandState.EXPIRED
        return CommandState.PENDING


def _parse(snapshot: Snapshot) -> Optional[Command]:
    try:
        return Command.from_wire(snapshot.val())
    except ValidationError:
        logger.warning("Ignoring malformed command at %s", snapshot.path)
        return None


class CommandChannel:
    """
    Both ends of the command slot for one family.

    Usage:
        >>> await parent_channel.send_command(CommandType.VIBRATE)
        >>> unsubscribe = await child_channel.listen_for_commands(on_command)
    """

    def __init__(
        self,
        store: StateStore,
        family_id: str,
        log: ActivityLog,
        clock: Clock = now_ms,
        policy: Optional[CommandPolicy] = None
    ):
        self._store = store
        self._path = paths.commands(family_id)
        self._log = log
        self._clock = clock
        self.policy = policy or CommandPolicy(clock)

    async def send_command(self, command_type: CommandType) -> Command:
        """Overwrite the slot with a new pending command (last write wins)."""
        command = Command(type=CommandType(command_type), timestamp=self._clock())
        await self._store.set(self._path, command.to_wire())
        await self._log.append(f"Command sent: {command.type.value}", kind=LogKind.COMMAND, title="Command")
        return command

    async def current(self) -> Optional[Command]:
        return Command.from_wire(await self._store.get(self._path))

    async def watch(self, callback: Callable[[Optional[Command], Optional[CommandState]], Any]) -> Unsubscribe:
        """Parent view of the slot with its derived display state."""

        def on_slot(snapshot: Snapshot):
            command = _parse(snapshot)
            return callback(command, self.policy.state_of(command))

        return await self._store.subscribe(self._path, on_slot)

    async def listen_for_commands(self, on_command: Callable[[Command], Any]) -> Unsubscribe:
        """
        Deliver each actionable command once.

        Stale, executed and already-delivered snapshots are dropped, so
        repeated delivery of the same value is harmless.
        """
        delivered: Optional[Tuple[CommandType, int]] = None

        def on_slot(snapshot: Snapshot):
            nonlocal delivered
            command = _parse(snapshot)
            if command is None or not self.policy.is_actionable(command):
                return None
            if delivered == (command.type, command.timestamp):
                return None
            delivered = (command.type, command.timestamp)
            return on_command(command)

        return await self._store.subscribe(self._path, on_slot)

    async def mark_executed(self, command: Command) -> bool:
        """
        Flip the slot to executed if it still holds ``command``.

        A newer command that replaced it is left alone. The read and the
        write are separate operations, so a send landing between them can
        still be marked; that window is accepted.
        """
        current = await self.current()
        if current is None or not current.same_as(command) or current.status != CommandStatus.PENDING:
            logger.debug("Not marking %s executed, slot moved on", command.type.value)
            return False

        await self._store.update(self._path, {
            "status": CommandStatus.EXECUTED.value,
            "executedAt": self._clock(),
        })
        await self._log.append(f"Command executed: {command.type.value}", kind=LogKind.COMMAND, title="Command")
        return True


class CommandDispatcher:
    """
    Child-side executor: maps command types to local actions.

    An action that fails is logged to the activity log and the command stays
    pending. Types without an action are ignored the same way. A command
    that was overwritten before its turn came is skipped.
    """

    def __init__(self, channel: CommandChannel, actions: Dict[CommandType, Action], log: ActivityLog):
        self._channel = channel
        self._actions = dict(actions)
        self._log = log
        self._unsubscribe: Optional[Unsubscribe] = None
        self.executed = []

    async def start(self) -> Unsubscribe:
        if self._unsubscribe is None:
            self._unsubscribe = await self._channel.listen_for_commands(self.handle)
        return self.stop

    def stop(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    async def handle(self, command: Command) -> bool:
        current = await self._channel.current()
        if current is None or not current.same_as(command):
            # a newer send replaced it before we got to run
            logger.debug("Skipping superseded %s", command.type.value)
            return False

        await self._log.append(
            f"Received command: {command.type.value}", kind=LogKind.COMMAND, title="Parent command"
        )
        action = self._actions.get(command.type)
        if action is None:
            logger.warning("No action for %s", command.type.value)
            await self._log.append(
                f"{command.type.value} is not supported on this device", kind=LogKind.DANGER, title="Command failed"
            )
            return False

        try:
            await action()
        except Exception as e:
            logger.exception("Action for %s failed", command.type.value)
            await self._log.append(str(e) or command.type.value, kind=LogKind.DANGER, title="Command failed")
            return False

        self.executed.append(command)
        return await self._channel.mark_executed(command)


class BuzzerRouter:
    """
    Parent-side buzzer control.

    With a beacon paired to the parent phone the code goes straight to it;
    otherwise the command travels through the slot and the child forwards it.
    """

    def __init__(self, channel: CommandChannel, beacon=None):
        self._channel = channel
        self.beacon = beacon

    async def set_buzzer(self, on: bool) -> str:
        command_type = CommandType.BUZZER_ON if on else CommandType.BUZZER_OFF
        if self.beacon is not None and self.beacon.connected:
            try:
                await self.beacon.set_buzzer(on)
                return "beacon"
            except GuardianError as e:
                logger.warning("Direct buzzer write failed, routing through child: %s", e)
        await self._channel.send_command(command_type)
        return "command"
