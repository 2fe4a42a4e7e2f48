"""
Core entities shared by the host, the storage backends and every plugin.

Announcements and error-log entries are immutable once created. Both
serialize to the JSON shape used on disk and by the dump/insert CLI
(`Header`, `Message`, `Time`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.now(UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class Announcement:
    """A published message (header + body) and its creation time."""

    header: str
    message: str
    time: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def text(self) -> str:
        """Header and body as one block, used by chat delivery."""
        if not self.header:
            return self.message
        return f"{self.header}\n\n{self.message}"

    def to_dict(self) -> dict[str, str]:
        return {
            "Header": self.header,
            "Message": self.message,
            "Time": self.time.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Announcement:
        return cls(
            header=str(data.get("Header", "")),
            message=str(data.get("Message", "")),
            time=_parse_time(data.get("Time")),
        )


@dataclass(frozen=True)
class ErrorEntry:
    """One line of a tenant's error log."""

    time: datetime
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"Time": self.time.isoformat(), "Message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorEntry:
        return cls(time=_parse_time(data.get("Time")), message=str(data.get("Message", "")))
