"""
End-to-end session tests: a parent phone and a child phone sharing one tree.
"""

import pytest

from guardian import config, paths
from guardian.auth import IdentityManager
from guardian.client import ChildSession, GuardianClient, ParentSession
from guardian.models import CommandStatus, CommandType, LogKind
from guardian.providers.base import RISK_CAUTION, RISK_DANGER
from guardian.sync import CommandState

from ..utils import FakeBattery, FakeBeaconLink, FakePositionSource, FakeVibrator, RecordingNotifier


class Phones:
    """Both devices of one family, wired to the same database."""

    def __init__(self, database, operator, clock):
        self.database = database
        self.operator = operator
        self.clock = clock
        self.parent_vibrator = FakeVibrator()
        self.notifier = RecordingNotifier()
        self.parent_client = self.client(
            "parent-phone",
            position_source=FakePositionSource(),
            vibrator=self.parent_vibrator,
            notifier=self.notifier,
        )
        self.child_source = FakePositionSource()
        self.child_vibrator = FakeVibrator()
        self.child_beacon = FakeBeaconLink()
        self.child_client = self.client(
            "child-phone",
            position_source=self.child_source,
            battery_reader=FakeBattery(64),
            vibrator=self.child_vibrator,
            beacon_link=self.child_beacon,
        )
        self.sessions = []

    def client(self, client_id, **devices):
        store = self.database.client(client_id)
        identity = IdentityManager(store, operator=self.operator, clock=self.clock)
        return GuardianClient(store, identity=identity, clock=self.clock, **devices)

    async def sign_up(self):
        await self.parent_client.register("Budi", "rahasia1", "Ani", "081234567890")
        parent = await self.parent_client.confirm_registration("Budi", self.operator.last_code)
        credentials = await parent.child_credentials()
        self.clock.advance(1_000)
        child = await self.child_client.login(credentials.username, credentials.pin)
        self.sessions += [parent, child]
        await self.database.settle()
        return parent, child

    async def close(self):
        for session in self.sessions:
            await session.close()


@pytest.fixture
async def phones(database, operator, clock):
    phones = Phones(database, operator, clock)
    yield phones
    await phones.close()


@pytest.mark.unit
class TestSessions:
    """Test session setup and teardown."""

    async def test_roles(self, phones):
        parent, child = await phones.sign_up()

        assert isinstance(parent, ParentSession)
        assert isinstance(child, ChildSession)
        assert parent.family_id == child.family_id

    async def test_child_online_after_login(self, phones, database):
        parent, child = await phones.sign_up()

        status = await child.status.read()
        assert status.online is True
        assert status.battery == 64
        assert parent.child_status.online is True

    async def test_logins_are_logged(self, phones):
        parent, child = await phones.sign_up()

        kinds = [entry.kind for entry in parent.logs]
        assert kinds.count(LogKind.LOGIN) == 2

    async def test_child_logout_marks_offline(self, phones, database):
        parent, child = await phones.sign_up()

        await child.logout()
        await database.settle()

        assert parent.child_status.online is False
        assert database.hooks_for("child-phone") == {}
        assert len(child.listeners) == 0

    async def test_second_login_expires_first_session(self, phones, database):
        parent, child = await phones.sign_up()
        credentials = await parent.child_credentials()
        tablet = phones.client("child-tablet", position_source=FakePositionSource())

        second = await tablet.login(credentials.username, credentials.pin)
        phones.sessions.append(second)
        await database.settle()

        assert child.expired.is_set()
        assert child.closed
        assert not second.expired.is_set()

    async def test_replaced_phone_dropping_keeps_child_online(self, phones, database):
        parent, child = await phones.sign_up()
        credentials = await parent.child_credentials()
        tablet = phones.client("child-tablet", position_source=FakePositionSource())
        second = await tablet.login(credentials.username, credentials.pin)
        phones.sessions.append(second)
        await database.settle()

        assert database.hooks_for("child-phone") == {}
        assert phones.child_vibrator.calls[-1] == "stop"

        await phones.child_client.store.drop()
        await database.settle()

        status = await second.status.read()
        assert status.online is True
        assert parent.child_status.online is True

    async def test_expiry_callback(self, database, operator, clock):
        expired = []
        phones = Phones(database, operator, clock)
        phones.parent_client.on_session_expired = expired.append
        parent, _ = await phones.sign_up()

        await phones.parent_client.identity.login("budi", "rahasia1")
        await database.settle()

        assert expired == [parent]
        await phones.close()

    async def test_resume(self, phones):
        parent, _ = await phones.sign_up()

        resumed = await phones.parent_client.resume(parent.profile.session_token)
        phones.sessions.append(resumed)

        assert isinstance(resumed, ParentSession)


@pytest.mark.unit
class TestParentChildFlows:
    """Test commands, location and SOS across the two phones."""

    async def test_vibrate_command(self, phones, database):
        parent, child = await phones.sign_up()

        await parent.send_command(CommandType.VIBRATE)
        await database.settle()

        slot = await parent.commands.current()
        assert phones.child_vibrator.calls == ["start"]
        assert slot.status == CommandStatus.EXECUTED

    async def test_child_location_reaches_parent(self, phones, database):
        parent, child = await phones.sign_up()

        await phones.child_source.emit(-6.2, 106.8)
        await database.settle()

        assert parent.peer_location.lat == -6.2
        assert parent.peer_online()

    async def test_request_location_without_fix_stays_pending(self, phones, database):
        parent, child = await phones.sign_up()

        await parent.send_command(CommandType.REQUEST_LOCATION)
        await database.settle()

        assert (await parent.commands.current()).status == CommandStatus.PENDING
        assert parent.logs[0].kind == LogKind.DANGER

        assert parent.command_state == CommandState.PENDING
        phones.clock.advance(config.COMMAND_FRESHNESS_MS)
        assert parent.command_state == CommandState.EXPIRED

    async def test_buzzer_routed_through_child_beacon(self, phones, database):
        parent, child = await phones.sign_up()
        await child.pair_beacon()

        assert await parent.set_buzzer(True) == "command"
        await database.settle()

        assert phones.child_beacon.sent == ["BUZZER_ON"]
        assert (await parent.commands.current()).status == CommandStatus.EXECUTED

    async def test_sos_alerts_parent(self, phones, database):
        parent, child = await phones.sign_up()

        await child.set_sos(True)
        await database.settle()

        assert parent.alert.running
        assert phones.notifier.notifications[0][2] is True

        await child.set_sos(False)
        await database.settle()

        assert not parent.alert.running

    async def test_analysis_uses_child_status(self, phones, database):
        parent, child = await phones.sign_up()

        assert (await parent.analyze()).risk_level == RISK_CAUTION

        await child.set_sos(True)
        await database.settle()

        assert (await parent.analyze()).risk_level == RISK_DANGER

    async def test_beacon_state_published(self, phones, database):
        parent, child = await phones.sign_up()

        await child.pair_beacon()
        await phones.child_beacon.receive("BAT:55|SOS:0")
        await database.settle()

        snapshot = parent.safety_snapshot()
        assert snapshot.beacon_connected is True
        assert snapshot.beacon_battery == 55
        assert await database.client("auditor").get(paths.child_status(parent.family_id) + "/beaconBattery") == 55
