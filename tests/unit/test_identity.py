"""
Unit tests for registration, login and single-session enforcement.
"""

import pytest

from guardian import config, paths
from guardian.auth import IdentityManager, verify_password
from guardian.errors import BadCode, BadCredentials, DuplicateUsername, Expired, InvalidInput, NotFound
from guardian.models import Role

from ..utils import register_family


@pytest.mark.unit
class TestRegistration:
    """Test the two-step registration flow."""

    async def test_register_parks_pending_record(self, identity, operator, parent_store, clock):
        key = await identity.register("Budi", "rahasia1", "Ani", "081234567890")

        pending = await parent_store.get(paths.pending_registration(key))
        assert key == "budi"
        assert pending["childName"] == "Ani"
        assert pending["createdAt"] == clock.now
        assert pending["code"] == operator.last_code
        assert verify_password("rahasia1", pending["passwordHash"])
        assert "rahasia1" not in str(pending)

    async def test_code_goes_to_operator_with_link(self, identity, operator):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")

        request = operator.requests[0]
        assert request.username == "budi"
        assert request.child_name == "Ani"
        assert request.link.startswith("https://wa.me/")

    @pytest.mark.parametrize("username,password,child_name,contact", [
        ("Budi", "rahasia1", "Ani", "12345"),
        ("Budi", "rahasia1", "Ani", "+6281234567890"),
        ("Budi", "", "Ani", "081234567890"),
        ("Budi", "rahasia1", "  ", "081234567890"),
        ("bu.di", "rahasia1", "Ani", "081234567890"),
    ])
    async def test_invalid_input_stores_nothing(self, identity, operator, parent_store,
                                                username, password, child_name, contact):
        with pytest.raises(InvalidInput):
            await identity.register(username, password, child_name, contact)

        assert await parent_store.get(paths.PENDING_REGISTRATIONS) is None
        assert operator.requests == []

    async def test_register_again_replaces_pending(self, identity, parent_store):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")
        await identity.register("Budi", "rahasia2", "Ani", "081234567890")

        pending = await parent_store.get(paths.pending_registration("budi"))
        assert verify_password("rahasia2", pending["passwordHash"])

    async def test_taken_username_rejected(self, identity, family):
        with pytest.raises(DuplicateUsername):
            await identity.register("BUDI", "rahasia1", "Ani", "081234567890")

    async def test_taken_derived_child_username_rejected(self, identity, parent_store):
        child_key = f"{config.CHILD_USERNAME_PREFIX}budi"
        await parent_store.set(paths.account(child_key), {"role": "child"})

        with pytest.raises(DuplicateUsername):
            await identity.register("Budi", "rahasia1", "Ani", "081234567890")


@pytest.mark.unit
class TestConfirmation:
    """Test confirm_registration outcomes."""

    async def test_confirm_creates_family_in_one_write(self, identity, operator, parent_store, database):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")
        before = database.commit

        profile = await identity.confirm_registration("budi", operator.last_code)

        assert database.commit == before + 1
        parent = await parent_store.get(paths.account("budi"))
        child = await parent_store.get(paths.account(f"{config.CHILD_USERNAME_PREFIX}budi"))
        family = await parent_store.get(paths.family(profile.family_id))
        assert parent["familyId"] == child["familyId"] == family["familyId"] == profile.family_id
        assert parent["role"] == "parent"
        assert child["role"] == "child"
        assert child["displayName"] == "Ani"
        assert family["parentUsernameKey"] == "budi"
        assert await parent_store.get(paths.pending_registration("budi")) is None

    async def test_confirm_returns_active_parent_profile(self, identity, operator, parent_store):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")

        profile = await identity.confirm_registration("Budi", operator.last_code)

        assert profile.role is Role.PARENT
        assert profile.username == "budi"
        assert await parent_store.get(paths.session_token("budi")) == profile.session_token

    async def test_child_pin_is_hashed(self, identity, family, parent_store):
        credentials = await identity.get_child_credentials(family.family_id)
        child = await parent_store.get(paths.account(credentials.username))

        assert child["passwordHash"] != credentials.pin
        assert verify_password(credentials.pin, child["passwordHash"])

    async def test_wrong_code_leaves_pending(self, identity, operator, parent_store):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")
        wrong = "000000" if operator.last_code != "000000" else "111111"

        with pytest.raises(BadCode):
            await identity.confirm_registration("budi", wrong)

        assert await parent_store.get(paths.pending_registration("budi")) is not None
        assert await parent_store.get(paths.account("budi")) is None

    async def test_expired_even_with_right_code(self, identity, operator, parent_store, clock):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")
        clock.advance(config.REGISTRATION_TTL_MS)

        with pytest.raises(Expired):
            await identity.confirm_registration("budi", operator.last_code)

        assert await parent_store.get(paths.pending_registration("budi")) is None
        assert await parent_store.get(paths.account("budi")) is None

    async def test_just_inside_window_confirms(self, identity, operator, clock):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")
        clock.advance(config.REGISTRATION_TTL_MS - 1)

        profile = await identity.confirm_registration("budi", operator.last_code)

        assert profile.username == "budi"

    async def test_unknown_registration(self, identity):
        with pytest.raises(NotFound):
            await identity.confirm_registration("nobody", "123456")

    async def test_username_taken_meanwhile(self, identity, operator, parent_store):
        await identity.register("Budi", "rahasia1", "Ani", "081234567890")
        await parent_store.set(paths.account("budi"), {"role": "parent"})

        with pytest.raises(DuplicateUsername):
            await identity.confirm_registration("budi", operator.last_code)


@pytest.mark.unit
class TestLogin:
    """Test login, resume and session fencing."""

    async def test_parent_login(self, identity, family):
        profile = await identity.login("Budi", "rahasia1")

        assert profile.role is Role.PARENT
        assert profile.family_id == family.family_id
        assert profile.session_token != family.session_token

    async def test_child_login_with_pin(self, identity, family):
        credentials = await identity.get_child_credentials(family.family_id)

        profile = await identity.login(credentials.username, credentials.pin)

        assert profile.role is Role.CHILD
        assert profile.family_id == family.family_id
        assert profile.display_name == "Ani"

    @pytest.mark.parametrize("username,password", [
        ("budi", "wrong-password"),
        ("nobody", "rahasia1"),
        ("bu.di", "rahasia1"),
    ])
    async def test_bad_credentials(self, identity, family, username, password):
        with pytest.raises(BadCredentials):
            await identity.login(username, password)

    async def test_second_login_expires_first_once(self, identity, family, database):
        first = await identity.login("budi", "rahasia1")
        expirations = []
        await identity.watch_session("budi", first.session_token, lambda: expirations.append(1))

        await identity.login("budi", "rahasia1")
        await identity.login("budi", "rahasia1")
        await database.settle()

        assert expirations == [1]

    async def test_rewrite_of_same_token_does_not_expire(self, identity, family, parent_store):
        profile = await identity.login("budi", "rahasia1")
        expirations = []
        await identity.watch_session("budi", profile.session_token, lambda: expirations.append(1))

        await parent_store.set(paths.session_token("budi"), profile.session_token)
        await parent_store.update(paths.account("budi"), {"displayName": "Pak Budi"})

        assert expirations == []

    async def test_resume_current_token(self, identity, family):
        profile = await identity.login("budi", "rahasia1")

        resumed = await identity.resume(profile.session_token)

        assert resumed.username == "budi"
        assert resumed.session_token == profile.session_token

    async def test_resume_superseded_token(self, identity, family):
        old = await identity.login("budi", "rahasia1")
        await identity.login("budi", "rahasia1")

        with pytest.raises(Expired):
            await identity.resume(old.session_token)

    async def test_resume_garbage_token(self, identity):
        with pytest.raises(Expired):
            await identity.resume("not-a-token")


@pytest.mark.unit
class TestChildCredentials:

    async def test_read_credentials(self, identity, family):
        credentials = await identity.get_child_credentials(family.family_id)

        assert credentials.username == f"{config.CHILD_USERNAME_PREFIX}budi"
        assert len(credentials.pin) == 4

    async def test_missing_credentials(self, identity):
        with pytest.raises(NotFound):
            await identity.get_child_credentials("fam_missing")

    async def test_separate_manager_sees_same_accounts(self, child_store, family, operator):
        other = IdentityManager(child_store, operator=operator)

        profile = await other.login("budi", "rahasia1")

        assert profile.family_id == family.family_id

    async def test_second_family_is_independent(self, identity, operator, family):
        second = await register_family(identity, operator, username="Sari", password="rahasia2")

        assert second.family_id != family.family_id
