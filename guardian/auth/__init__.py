"""
Authentication module for Guardian Link.

This module provides:
- Password and PIN hashing and verification
- Session token generation and validation
- Registration, login and single-session enforcement
- The out-of-band operator channel for verification codes
"""

from .identity import IdentityManager, child_username_key, username_key
from .operator import AuditOperatorChannel, OperatorChannel, RelayRequest, build_relay_link
from .password import hash_password, verify_password
from .tokens import create_session_token, decode_session_token

__all__ = [
    "IdentityManager",
    "child_username_key",
    "username_key",
    "AuditOperatorChannel",
    "OperatorChannel",
    "RelayRequest",
    "build_relay_link",
    "hash_password",
    "verify_password",
    "create_session_token",
    "decode_session_token",
]
