"""
Pydantic models for accounts, families and registration.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .base import WireModel


class Role(str, Enum):
    PARENT = "parent"
    CHILD = "child"

    @property
    def peer(self) -> "Role":
        return Role.CHILD if self is Role.PARENT else Role.PARENT


class Account(WireModel):
    """Stored at users/{usernameKey}."""
    username_key: str
    password_hash: str
    role: Role
    family_id: str
    display_name: str
    phone_number: Optional[str] = None
    session_token: Optional[str] = None
    created_at: Optional[int] = None


class PendingRegistration(WireModel):
    """Stored at pending_registrations/{usernameKey} until confirmed or expired."""
    username_key: str
    password_hash: str
    child_name: str
    child_contact: str
    code: str
    created_at: int


class ChildCredentials(WireModel):
    """Login details for the child phone, readable by the parent."""
    username: str
    pin: str


class Family(WireModel):
    """Stored at families/{familyId}; nested subtrees are ignored here."""
    family_id: str
    parent_username_key: str
    child_username_key: str
    created_at: int
    child_credentials_snapshot: Optional[ChildCredentials] = None


class UserProfile(WireModel):
    """Profile returned to the caller after login or confirmation."""
    username: str
    role: Role
    family_id: str
    display_name: str
    phone_number: Optional[str] = None
    session_token: str


class RegistrationRequest(BaseModel):
    """Request model for starting a parent registration."""
    username: str = Field(..., min_length=1, max_length=50, description="Desired username")
    password: str = Field(..., min_length=6, description="Password (minimum 6 characters)")
    child_name: str = Field(..., min_length=1, max_length=100, description="Child display name")
    child_contact: str = Field(..., min_length=1, max_length=20, description="Child phone number")


class LoginRequest(BaseModel):
    """Request model for username/password login."""
    username: str = Field(..., min_length=1, description="Username")
    password: str = Field(..., min_length=1, description="Password")
