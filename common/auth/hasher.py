"""
One-way hashing for passwords and AuthPins.

bcrypt with a per-hash salt. Input is pre-hashed with SHA-256 so secrets
longer than bcrypt's 72-byte limit are not silently truncated.
"""

import base64
import hashlib

import bcrypt as bcrypt_lib


def _prehash(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.b64encode(digest)


def hash_secret(secret: str, rounds: int = 12) -> str:
    """Hash a password or PIN. Every call uses a fresh salt."""
    salt = bcrypt_lib.gensalt(rounds=rounds)
    return bcrypt_lib.hashpw(_prehash(secret), salt).decode("utf-8")


def verify_secret(secret: str, hashed: str) -> bool:
    """
    Check a password or PIN against a stored hash.

    Returns False for a missing or unparseable hash instead of raising.
    """
    if not secret or not hashed:
        return False

    try:
        return bcrypt_lib.checkpw(_prehash(secret), hashed.encode("utf-8"))
    except ValueError:
        return False
