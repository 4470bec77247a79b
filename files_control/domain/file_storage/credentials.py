"""
Password hashing for protected download grants.

PBKDF2-HMAC-SHA256 with a random salt; every binary field is stored base64
encoded. Plaintext passwords are never persisted.
"""

import base64
import binascii
import hashlib
import hmac
import os
from typing import Optional

from .value_objects import PasswordRecord

ALGORITHM = "pbkdf2-sha256"
DEFAULT_ITERATIONS = 120000
HASH_BYTES = 32
SALT_BYTES = 16


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, iterations, dklen=HASH_BYTES
    )


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS,
                  salt: Optional[bytes] = None) -> PasswordRecord:
    """
    Hash a password with a fresh random salt.

    Args:
        password: Plaintext password
        iterations: PBKDF2 iteration count
        salt: Explicit salt, only meant for deterministic tests

    Returns:
        PasswordRecord with base64 encoded hash and salt
    """
    if salt is None:
        salt = os.urandom(SALT_BYTES)
    derived = _derive(password, salt, iterations)
    return PasswordRecord(
        hash=base64.b64encode(derived).decode("ascii"),
        salt=base64.b64encode(salt).decode("ascii"),
        iterations=iterations,
        algorithm=ALGORITHM,
    )


def verify_password(password: Optional[str], record: Optional[PasswordRecord]) -> bool:
    """
    Check a plaintext password against a stored record in constant time.

    Records with a missing hash, salt or iteration count, a foreign algorithm
    tag, or undecodable fields never verify.
    """
    if password is None or record is None:
        return False
    if not record.hash or not record.salt or not record.iterations:
        return False
    if record.algorithm and record.algorithm != ALGORITHM:
        return False

    try:
        expected = base64.b64decode(record.hash, validate=True)
        salt = base64.b64decode(record.salt, validate=True)
    except (binascii.Error, ValueError):
        return False

    if len(expected) != HASH_BYTES or not salt:
        return False

    derived = _derive(password, salt, int(record.iterations))
    return hmac.compare_digest(derived, expected)
