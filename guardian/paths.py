"""
Store layout.

    users/{usernameKey}                      Account
    pending_registrations/{usernameKey}      PendingRegistration
    families/{familyId}                      Family
    families/{familyId}/{role}Location       LocationRecord (one per role)
    families/{familyId}/childStatus          ChildStatus (multi-writer, merge only)
    families/{familyId}/commands             Command slot
    families/{familyId}/logs/{timestamp}     LogEntry ring buffer
"""

from guardian.store.base import join_path

USERS = "users"
PENDING_REGISTRATIONS = "pending_registrations"
FAMILIES = "families"


def account(username_key: str) -> str:
    return join_path(USERS, username_key)


def session_token(username_key: str) -> str:
    return join_path(USERS, username_key, "sessionToken")


def pending_registration(username_key: str) -> str:
    return join_path(PENDING_REGISTRATIONS, username_key)


def family(family_id: str) -> str:
    return join_path(FAMILIES, family_id)


def child_credentials(family_id: str) -> str:
    return join_path(FAMILIES, family_id, "childCredentialsSnapshot")


def location(family_id: str, role: str) -> str:
    return join_path(FAMILIES, family_id, f"{role}Location")


def child_status(family_id: str) -> str:
    return join_path(FAMILIES, family_id, "childStatus")


def commands(family_id: str) -> str:
    return join_path(FAMILIES, family_id, "commands")


def logs(family_id: str) -> str:
    return join_path(FAMILIES, family_id, "logs")
