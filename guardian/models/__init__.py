"""
Pydantic models for records in the shared tree and for requests.
"""

from .account import (
    Account,
    ChildCredentials,
    Family,
    LoginRequest,
    PendingRegistration,
    RegistrationRequest,
    Role,
    UserProfile,
)
from .command import Command, CommandStatus, CommandType
from .location import LocationProvider, LocationRecord
from .status import CHILD_STATUS_FIELDS, ChildStatus, LogEntry, LogKind

__all__ = [
    # Account models
    "Account",
    "ChildCredentials",
    "Family",
    "LoginRequest",
    "PendingRegistration",
    "RegistrationRequest",
    "Role",
    "UserProfile",

    # Command models
    "Command",
    "CommandStatus",
    "CommandType",

    # Location models
    "LocationProvider",
    "LocationRecord",

    # Status models
    "CHILD_STATUS_FIELDS",
    "ChildStatus",
    "LogEntry",
    "LogKind",
]
