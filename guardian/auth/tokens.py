"""
Session token utilities.

A session token is a signed JWT (HS256). Its value doubles as the fencing
token stored on the account: every login mints a new one, and a client whose
token no longer matches the stored value has been logged out elsewhere.
"""

import secrets
from datetime import datetime, timezone
from typing import Dict

import jwt
from jwt.exceptions import InvalidTokenError

from guardian import config


def create_session_token(username_key: str, role: str, family_id: str) -> str:
    """
    Create a session token.

    Args:
        username_key: The account's username key
        role: 'parent' or 'child'
        family_id: Family the account belongs to

    Returns:
        Encoded JWT token string
    """
    payload = {
        "sub": username_key,  # Subject (username key)
        "role": role,
        "familyId": family_id,
        "type": "session",
        "jti": secrets.token_hex(8),  # two logins in the same second still differ
        "iat": datetime.now(timezone.utc)
    }

    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_session_token(token: str) -> Dict:
    """
    Decode and validate a session token.

    Args:
        token: The JWT token string to decode

    Returns:
        Dictionary containing the token payload

    Raises:
        InvalidTokenError: If the token is invalid or not a session token
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except InvalidTokenError as e:
        raise InvalidTokenError(f"Invalid token: {str(e)}")

    if payload.get("type") != "session":
        raise InvalidTokenError("Invalid token: not a session token")
    return payload
