"""
Salted address hashing.

Pending and banned subscriber entries store HMAC-SHA512(salt, address)
instead of the address. Digests carry the literal prefix b"sha512:" so the
stored format names its algorithm. Both digest and salt are persisted
base64-encoded.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

HASH_PREFIX = b"sha512:"
SALT_BYTES = hashlib.sha512().digest_size


def hash_for_salt(data: bytes, salt: bytes) -> bytes:
    """Digest of data under a given salt."""
    return HASH_PREFIX + hmac.new(salt, data, hashlib.sha512).digest()


def hash_data(data: bytes) -> tuple[bytes, bytes]:
    """Digest of data under a fresh random salt. Returns (digest, salt)."""
    salt = secrets.token_bytes(SALT_BYTES)
    return hash_for_salt(data, salt), salt


def verify_hash(data: bytes, digest: bytes, salt: bytes) -> bool:
    """Constant-time check that digest was produced from data and salt."""
    return hmac.compare_digest(digest, hash_for_salt(data, salt))


def b64encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def b64decode(value: str) -> bytes:
    """Strict base64 decode. Raises binascii.Error (a ValueError) on bad input."""
    return base64.b64decode(value.encode("ascii"), validate=True)
