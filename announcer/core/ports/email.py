"""
Email port.

Protocol-based interface for sending announcement and confirmation mails.
Used by the RegisterMail and SimpleSendMail plugins.

Implementations:
1. SMTPEmailAdapter: authenticated TLS SMTP, one session per send
2. DevEmailAdapter: records mails in memory and logs them (dev/test)

Both are created from SMTPSettings through a MailerFactory so plugins can
build a fresh transport whenever their configuration changes.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import formataddr, parseaddr
from enum import Enum
from typing import Protocol

# RFC 5322 simplified
EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


class EmailStatus(Enum):
    """Email send result status."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Dev adapter


class InvalidAddressError(ValueError):
    """Raised when a string is not a usable mail address."""


@dataclass(frozen=True)
class EmailAddress:
    """
    Email address with optional display name.

    Examples:
        EmailAddress("user@example.com")
        EmailAddress("user@example.com", "Jane Doe")
    """

    email: str
    name: str | None = None

    def __str__(self) -> str:
        """Format as RFC 5322 address."""
        if self.name:
            return formataddr((self.name, self.email))
        return self.email

    @classmethod
    def parse(cls, value: str) -> EmailAddress:
        """
        Parse `addr` or `Name <addr>`.

        Raises:
            InvalidAddressError: if no syntactically valid address is found
        """
        value = (value or "").strip()
        name, addr = parseaddr(value)
        if not addr or len(addr) > 254 or not EMAIL_REGEX.match(addr):
            raise InvalidAddressError(f"mail: invalid address {value!r}")
        return cls(email=addr, name=name or None)


@dataclass(frozen=True)
class SMTPSettings:
    """Connection data for one SMTP account."""

    server: str
    port: int
    user: str
    password: str


@dataclass(frozen=True)
class EmailMessage:
    """
    Email message to be sent.

    Carries both HTML and plain text body.
    """

    recipients: tuple[EmailAddress, ...]
    subject: str
    body_text: str
    body_html: str
    sender: EmailAddress
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.recipients:
            raise ValueError("At least one recipient is required")
        if not self.sender.email:
            raise ValueError("Sender email is required")


@dataclass
class EmailResult:
    """Result of an email send attempt."""

    status: EmailStatus
    recipients: tuple[str, ...] = ()
    message_id: str | None = None
    error: str | None = None
    sent_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status != EmailStatus.FAILED

    @classmethod
    def success(cls, recipients: tuple[str, ...], message_id: str | None = None) -> EmailResult:
        return cls(
            status=EmailStatus.SENT,
            recipients=recipients,
            message_id=message_id,
            sent_at=datetime.now(UTC),
        )

    @classmethod
    def failed(cls, recipients: tuple[str, ...], error: str) -> EmailResult:
        return cls(status=EmailStatus.FAILED, recipients=recipients, error=error)


class EmailPort(Protocol):
    """Mail transport bound to one SMTP account."""

    def send(self, message: EmailMessage) -> EmailResult:
        """
        Send one message to all its recipients.

        Must not raise; failures are reported as EmailStatus.FAILED.
        """
        ...

    def check_connection(self) -> None:
        """
        Open and authenticate a session without sending.

        Raises:
            EmailError: if the server can not be reached or login fails
        """
        ...


MailerFactory = Callable[[SMTPSettings], EmailPort]


# --- Error Types ---


class EmailError(Exception):
    """Base exception for email errors."""
