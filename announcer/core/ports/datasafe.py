"""
DataSafe port.

Storage backend interface for per-tenant plugin configuration blobs and the
append-only announcement log. Two implementations ship with the package:
a flat-file store and a SQLite store (see announcer.adapters.datasafe).

Key requirements:
- GetConfig returns b"" when nothing was ever saved
- SaveAnnouncement returns an id reflecting arrival order
- Tenant keys and plugin names are validated before any path or row is built
- The backend serializes writes itself
"""

from __future__ import annotations

from typing import Protocol

from announcer.core.entities import Announcement

# Characters that can never appear in a tenant key or plugin name
RESERVED_CHARACTERS = ("/", "\\", "\x00", "\ufdd0")


class DataSafeError(Exception):
    """Base error for storage backends."""


class InvalidIdentifierError(DataSafeError):
    """Tenant key or plugin name is not usable as a storage identifier."""


class DataSafeNotConfiguredError(DataSafeError):
    """Backend used before initialise_datasafe was called."""


class UnknownAnnouncementError(DataSafeError):
    """No announcement exists for the requested id."""


def validate_identifier(value: str, what: str = "identifier") -> str:
    """
    Reject identifiers that could escape their namespace.

    Raises:
        InvalidIdentifierError: empty, '.', '..' or containing a reserved character
    """
    if not value:
        raise InvalidIdentifierError(f"{what} must not be empty")
    if value in (".", ".."):
        raise InvalidIdentifierError(f"{what} must not be '{value}'")
    for char in RESERVED_CHARACTERS:
        if char in value:
            raise InvalidIdentifierError(f"{what} {value!r} contains reserved character {char!r}")
    return value


class DataSafePort(Protocol):
    """Storage backend used by the host and by plugins through their context."""

    def initialise_datasafe(self, config: bytes) -> None:
        """Prepare the backend. Called once before any other method."""
        ...

    def get_config(self, key: str, plugin: str) -> bytes:
        """Return the stored blob, or b"" if nothing was saved yet."""
        ...

    def set_config(self, key: str, plugin: str, config: bytes) -> None:
        """Replace the stored blob."""
        ...

    def save_announcement(self, key: str, announcement: Announcement) -> str:
        """Append an announcement and return its id."""
        ...

    def get_announcement(self, key: str, announcement_id: str) -> Announcement:
        """Return one announcement. Raises UnknownAnnouncementError."""
        ...

    def get_all_announcements(self, key: str) -> list[Announcement]:
        """Return all announcements in arrival order."""
        ...

    def get_announcement_keys(self, key: str) -> list[str]:
        """Return all announcement ids in arrival order."""
        ...

    def close(self) -> None:
        """Release files or connections."""
        ...
