"""
Password and PIN hashing and verification utilities.

Uses bcrypt with the work factor from ``BCRYPT_ROUNDS`` (default 12).
"""

import bcrypt

from guardian import config


def hash_password(password: str, rounds: int = None) -> str:
    """
    Hash a password (or child PIN) using bcrypt.

    Args:
        password: The plain-text password to hash
        rounds: Work factor override, defaults to config.BCRYPT_ROUNDS

    Returns:
        The hashed password as a string
    """
    # Generate salt and hash the password
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt(rounds=rounds or config.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)

    # Return as string for storage in the tree
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: The plain-text password to verify
        password_hash: The hashed password to compare against

    Returns:
        True if the password matches, False otherwise
    """
    try:
        password_bytes = password.encode('utf-8')
        hash_bytes = password_hash.encode('utf-8')
        return bcrypt.checkpw(password_bytes, hash_bytes)
    except (ValueError, TypeError, AttributeError):
        # Malformed or missing hash never verifies
        return False
