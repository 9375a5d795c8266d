"""
Identity and session management.

Registration is two-step. ``register`` parks a pending record carrying a
hashed password and a one-time code; ``confirm_registration`` turns it into
a parent account, a child account and a family in one multi-path write.

Every login mints a new session token and overwrites the account's
``sessionToken``. Clients watch that field and treat any other value as a
forced logout, which keeps a single active session per account.
"""

import logging
import re
import secrets
from typing import Any, Callable, Optional

from jwt.exceptions import InvalidTokenError

from guardian import config, paths
from guardian.errors import (
    BadCode,
    BadCredentials,
    DuplicateUsername,
    Expired,
    InvalidInput,
    NotFound,
)
from guardian.models import (
    Account,
    ChildCredentials,
    Family,
    PendingRegistration,
    Role,
    UserProfile,
)
from guardian.store.base import FORBIDDEN_KEY_CHARS, StateStore, Unsubscribe
from guardian.utils.audit_log import log_auth_event, log_sensitive_operation
from guardian.utils.time import Clock, now_ms
from .operator import AuditOperatorChannel, OperatorChannel, RelayRequest, build_relay_link
from .password import hash_password, verify_password
from .tokens import create_session_token, decode_session_token

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def username_key(username: str) -> str:
    """
    Derive the store key for a username: case-folded, whitespace removed.

    Raises:
        InvalidInput: If the key is empty or contains reserved characters
    """
    key = _WHITESPACE.sub("", username or "").lower()
    if not key:
        raise InvalidInput("Username must not be empty")
    if (FORBIDDEN_KEY_CHARS | {"/"}) & set(key):
        raise InvalidInput("Username must not contain . $ # [ ] or /")
    return key


def child_username_key(parent_key: str) -> str:
    """Child accounts are always the parent's key behind a fixed prefix."""
    return f"{config.CHILD_USERNAME_PREFIX}{parent_key}"


def generate_code() -> str:
    """6-digit one-time verification code."""
    return f"{secrets.randbelow(10 ** 6):06d}"


def generate_pin() -> str:
    """4-digit child PIN."""
    return f"{secrets.randbelow(10 ** 4):04d}"


class IdentityManager:
    """
    Account creation, credential checks and session fencing.

    Usage:
        >>> identity = IdentityManager(store)
        >>> await identity.register("Budi", "secret1", "Ani", "081234567890")
        >>> profile = await identity.confirm_registration("Budi", "123456")
        >>> unsubscribe = await identity.watch_session(
        ...     profile.username, profile.session_token, on_expired)
    """

    def __init__(
        self,
        store: StateStore,
        operator: Optional[OperatorChannel] = None,
        clock: Clock = now_ms,
        registration_ttl_ms: int = config.REGISTRATION_TTL_MS,
        contact_pattern: str = config.CHILD_CONTACT_PATTERN
    ):
        self._store = store
        self._operator = operator or AuditOperatorChannel()
        self._clock = clock
        self._ttl_ms = registration_ttl_ms
        self._contact = re.compile(contact_pattern)

    async def _account(self, key: str) -> Optional[Account]:
        return Account.from_wire(await self._store.get(paths.account(key)))

    async def _ensure_available(self, key: str) -> None:
        for candidate in (key, child_username_key(key)):
            if await self._store.get(paths.account(candidate)) is not None:
                raise DuplicateUsername(f"Username '{candidate}' is already taken")

    # -- registration ------------------------------------------------------

    async def register(self, username: str, password: str, child_name: str, child_contact: str) -> str:
        """
        Start a registration and hand the verification code to the operator.

        Returns:
            The username key the pending registration is stored under

        Raises:
            InvalidInput: Malformed username, empty password or child name, bad contact
            DuplicateUsername: The parent or derived child username is taken
        """
        key = username_key(username)
        child_name = (child_name or "").strip()
        child_contact = (child_contact or "").strip()

        if not password:
            raise InvalidInput("Password must not be empty")
        if not child_name:
            raise InvalidInput("Child name must not be empty")
        if not self._contact.match(child_contact):
            raise InvalidInput("Child phone number must use the 08... format")

        try:
            await self._ensure_available(key)
        except DuplicateUsername:
            log_auth_event("register", key, False, details="username taken")
            raise

        code = generate_code()
        pending = PendingRegistration(
            username_key=key,
            password_hash=hash_password(password),
            child_name=child_name,
            child_contact=child_contact,
            code=code,
            created_at=self._clock(),
        )
        # a restarted registration replaces the earlier pending record
        await self._store.set(paths.pending_registration(key), pending.to_wire())

        await self._operator.relay(RelayRequest(
            username=key,
            child_name=child_name,
            code=code,
            link=build_relay_link(key, child_name),
        ))
        log_auth_event("register", key, True)
        return key

    async def confirm_registration(self, username: str, submitted_code: str) -> UserProfile:
        """
        Complete a registration.

        Raises:
            NotFound: No pending registration for this username
            Expired: The pending registration is older than the TTL (it is deleted)
            BadCode: Code mismatch (the pending registration is left untouched)
            DuplicateUsername: The username was taken since registration started
        """
        key = username_key(username)
        pending = PendingRegistration.from_wire(await self._store.get(paths.pending_registration(key)))
        if pending is None:
            log_auth_event("confirm_registration", key, False, details="no pending registration")
            raise NotFound("No pending registration for this username")

        now = self._clock()
        if now - pending.created_at >= self._ttl_ms:
            await self._store.remove(paths.pending_registration(key))
            log_auth_event("confirm_registration", key, False, details="expired")
            raise Expired("Verification window has passed, please register again")

        if (submitted_code or "").strip() != pending.code:
            log_auth_event("confirm_registration", key, False, details="bad code")
            raise BadCode("Verification code does not match")

        await self._ensure_available(key)

        family_id = f"fam_{now}_{secrets.token_hex(6)}"
        child_key = child_username_key(key)
        pin = generate_pin()
        token = create_session_token(key, Role.PARENT.value, family_id)

        parent = Account(
            username_key=key,
            password_hash=pending.password_hash,
            role=Role.PARENT,
            family_id=family_id,
            display_name=key,
            session_token=token,
            created_at=now,
        )
        child = Account(
            username_key=child_key,
            password_hash=hash_password(pin),
            role=Role.CHILD,
            family_id=family_id,
            display_name=pending.child_name,
            phone_number=pending.child_contact,
            created_at=now,
        )
        family = Family(
            family_id=family_id,
            parent_username_key=key,
            child_username_key=child_key,
            created_at=now,
            child_credentials_snapshot=ChildCredentials(username=child_key, pin=pin),
        )

        # both accounts and the family land together, and the pending record goes with them
        await self._store.update("", {
            paths.account(key): parent.to_wire(),
            paths.account(child_key): child.to_wire(),
            paths.family(family_id): family.to_wire(),
            paths.pending_registration(key): None,
        })

        log_auth_event("confirm_registration", key, True, family_id=family_id)
        return self._profile(parent)

    # -- sessions ----------------------------------------------------------

    async def login(self, username: str, password: str) -> UserProfile:
        """
        Check credentials and take over the account's session.

        Any other session of this account observes the new token and expires.

        Raises:
            BadCredentials: Unknown username or wrong password
        """
        try:
            key = username_key(username)
        except InvalidInput:
            raise BadCredentials("Invalid username or password")

        account = await self._account(key)
        if account is None or not verify_password(password or "", account.password_hash):
            log_auth_event("login", key, False)
            raise BadCredentials("Invalid username or password")

        token = create_session_token(key, account.role.value, account.family_id)
        await self._store.set(paths.session_token(key), token)
        account.session_token = token

        log_auth_event("login", key, True, family_id=account.family_id)
        return self._profile(account)

    async def resume(self, token: str) -> UserProfile:
        """
        Restore a profile from a stored session token.

        Raises:
            Expired: The token is invalid or another login has replaced it
        """
        try:
            payload = decode_session_token(token)
        except InvalidTokenError:
            log_auth_event("resume", None, False, details="invalid token")
            raise Expired("Session is no longer valid")

        key = payload["sub"]
        account = await self._account(key)
        if account is None or account.session_token != token:
            log_auth_event("resume", key, False, details="superseded")
            raise Expired("Session is no longer valid")

        log_auth_event("resume", key, True, family_id=account.family_id)
        return self._profile(account)

    async def watch_session(
        self,
        username: str,
        known_token: str,
        on_expired: Callable[[], Any]
    ) -> Unsubscribe:
        """
        Watch the account's session token.

        ``on_expired`` runs once, the first time a present token differs from
        ``known_token``. The watch stays attached until the returned handle
        is called.
        """
        key = username_key(username)
        fired = False

        def on_token(snapshot):
            nonlocal fired
            token = snapshot.val()
            if fired or token is None or token == known_token:
                return None
            fired = True
            log_auth_event("session_expired", key, False, details="signed in elsewhere")
            return on_expired()

        return await self._store.subscribe(paths.session_token(key), on_token)

    async def get_child_credentials(self, family_id: str, requested_by: str = None) -> ChildCredentials:
        """
        Read the child login details kept on the family record.

        Raises:
            NotFound: The family has no credentials snapshot
        """
        credentials = ChildCredentials.from_wire(await self._store.get(paths.child_credentials(family_id)))
        if credentials is None:
            raise NotFound("Child credentials not found")
        log_sensitive_operation("child_credentials_read", requested_by or "unknown", family_id=family_id)
        return credentials

    @staticmethod
    def _profile(account: Account) -> UserProfile:
        return UserProfile(
            username=account.username_key,
            role=account.role,
            family_id=account.family_id,
            display_name=account.display_name,
            phone_number=account.phone_number,
            session_token=account.session_token,
        )
