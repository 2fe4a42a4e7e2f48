"""
Password comparison methods for tenant logins.

Tenant descriptors store credentials in the format of their configured
PasswordMethod. Each method compares a submitted password with one stored
credential and returns (matched, error):

- "" / "plain": stored plaintext, compared via peppered SHA-512 digests so
  the comparison takes the same time whatever the lengths
- "bcrypt_plain": bcrypt hash string (passlib)
- "bcrypt64": base64-encoded bcrypt hash string
- "argon2": argon2 hash string (argon2-cffi)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from passlib.context import CryptContext

from announcer.core.registry import PasswordMethod, Registry

_pepper = secrets.token_bytes(hashlib.sha512().digest_size)

bcrypt_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
argon2_hasher = PasswordHasher()


def _encode(password: str) -> bytes:
    return hmac.new(_pepper, password.encode("utf-8"), hashlib.sha512).digest()


def compare_plain(password: str, truth: str) -> tuple[bool, Exception | None]:
    return hmac.compare_digest(_encode(password), _encode(truth)), None


def compare_bcrypt_plain(password: str, truth: str) -> tuple[bool, Exception | None]:
    try:
        return bool(bcrypt_context.verify(password, truth)), None
    except (ValueError, TypeError) as e:
        return False, e


def compare_bcrypt64(password: str, truth: str) -> tuple[bool, Exception | None]:
    try:
        decoded = base64.b64decode(truth, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        return False, e
    return compare_bcrypt_plain(password, decoded)


def compare_argon2(password: str, truth: str) -> tuple[bool, Exception | None]:
    try:
        argon2_hasher.verify(truth, password)
        return True, None
    except VerifyMismatchError:
        return False, None
    except (InvalidHashError, VerificationError) as e:
        return False, e


PASSWORD_METHODS: dict[str, PasswordMethod] = {
    "": compare_plain,
    "plain": compare_plain,
    "bcrypt_plain": compare_bcrypt_plain,
    "bcrypt64": compare_bcrypt64,
    "argon2": compare_argon2,
}


def hash_password(method: str, password: str) -> str:
    """Produce a credential in the format a method expects."""
    if method in ("", "plain"):
        return password
    if method == "bcrypt_plain":
        return str(bcrypt_context.hash(password))
    if method == "bcrypt64":
        return base64.b64encode(bcrypt_context.hash(password).encode("utf-8")).decode("ascii")
    if method == "argon2":
        return str(argon2_hasher.hash(password))
    raise ValueError(f"Unknown password method {method!r}")


def register_password_methods(registry: Registry) -> None:
    for name, method in PASSWORD_METHODS.items():
        registry.register_password_method(method, name)
