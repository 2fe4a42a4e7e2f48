"""
RegisterMail component models.

Persisted configuration (subscriber list + send queue) and the outputs of
the subscribe / verify / unsubscribe / admin flows.

Subscriber entry states:
- hashed: Data is base64(HMAC-SHA512(salt, address)). Pending verification,
  or banned by an admin. The address itself is not stored.
- plain: Data is the confirmed address.

Transitions:
- (new) -> hashed         subscribe
- hashed -> plain         verify with matching salt + address
- plain -> (removed)      unsubscribe, admin delete
- plain -> hashed         admin ban
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from announcer.core.entities import Announcement
from announcer.core.services.sealing import PluginConfig

PLUGIN_NAME = "RegisterMail"
MAX_RETRIES = 10
SEND_INTERVAL_SECONDS = 60.0


class SubscriberEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: str = Field(alias="Data")
    salt: str = Field(alias="Salt")
    hash: bool = Field(alias="Hash")


class QueuedAnnouncement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    header: str = Field(alias="Header")
    message: str = Field(alias="Message")
    time: datetime = Field(default_factory=lambda: datetime.now(UTC), alias="Time")

    @classmethod
    def of(cls, announcement: Announcement) -> QueuedAnnouncement:
        return cls(header=announcement.header, message=announcement.message, time=announcement.time)


class QueueItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: SubscriberEntry = Field(alias="To")
    announcement: QueuedAnnouncement = Field(alias="Announcement")
    number_errors: int = Field(default=0, alias="NumberErrors")
    unsubscribe_url: str = Field(default="", alias="UnsubscribeURL")


class RegisterMailConfig(PluginConfig):
    secret_fields: ClassVar[tuple[str, ...]] = ("smtp_password",)

    subject_prefix: str = Field(default="", alias="SubjectPrefix")
    from_address: str = Field(default="", alias="From")
    to_data: list[SubscriberEntry] = Field(default_factory=list, alias="ToData")
    smtp_server: str = Field(default="", alias="SMTPServer")
    smtp_server_port: int = Field(default=587, alias="SMTPServerPort")
    smtp_user: str = Field(default="", alias="SMTPUser")
    smtp_password: str = Field(default="", alias="SMTPPassword")
    rate_limit: int = Field(default=0, alias="RateLimit")
    register_mail_text: str = Field(default="", alias="RegisterMailText")
    unregister_link_text: str = Field(default="", alias="UnregisterLinkText")
    register_password: str = Field(default="", alias="RegisterPassword")
    server_name: str = Field(default="", alias="ServerName")
    queue: list[QueueItem] = Field(default_factory=list, alias="Queue")


# --- Flow outputs ---


class SubscribeError(Enum):
    """Why a subscribe request was rejected."""

    CONSENT_MISSING = "consent_missing"
    CAPTCHA_FAILED = "captcha_failed"
    PASSWORD_MISMATCH = "password_mismatch"
    INVALID_ADDRESS = "invalid_address"
    ALREADY_REGISTERED = "already_registered"
    BANNED = "banned"


@dataclass(frozen=True)
class SubscribeInput:
    mail: str
    dsgvo: str
    captcha_id: str
    captcha_answer: str
    register_password: str = ""


@dataclass(frozen=True)
class SubscribeOutput:
    success: bool
    error: SubscribeError | None = None
    entry: SubscriberEntry | None = None
    verify_url: str = ""


class VerifyOutcome(Enum):
    VERIFIED = "verified"
    ALREADY_CONFIRMED = "already_confirmed"
    FORBIDDEN = "forbidden"


class UnsubscribeOutcome(Enum):
    REMOVED = "removed"
    UNCHANGED = "unchanged"  # Hashed or unknown; reported as success
    FORBIDDEN = "forbidden"


@dataclass
class TickResult:
    """Outcome of one send worker tick."""

    skipped: bool = False  # Configuration incomplete
    processed: int = 0
    sent: int = 0
    failed: int = 0
    requeued: int = 0
    dropped: int = 0
