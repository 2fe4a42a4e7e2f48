"""
Dev Email Adapter.

Logs emails instead of sending them and keeps them in memory for test
assertions. Implements EmailPort; create_dev_mailer_factory returns a
MailerFactory so plugins can be wired to it exactly like to SMTP.

Key behaviors:
- Returns SKIPPED status (not SENT)
- Can be switched to fail every send (fail_with) to exercise retry paths
- Can reject logins (reject_login) to exercise connection checks
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from announcer.core.ports.email import (
    EmailError,
    EmailMessage,
    EmailResult,
    EmailStatus,
    MailerFactory,
    SMTPSettings,
)

logger = logging.getLogger(__name__)


@dataclass
class SentEmail:
    """Record of a logged email for test assertions."""

    id: str
    recipients: tuple[str, ...]
    subject: str
    body_html: str
    body_text: str
    sender: str
    headers: dict[str, str]
    logged_at: datetime


@dataclass
class DevEmailAdapter:
    """Dev email adapter that logs instead of sending."""

    settings: SMTPSettings | None = None
    sent_emails: list[SentEmail] = field(default_factory=list)
    fail_with: str | None = None
    reject_login: str | None = None
    log_level: int = logging.INFO
    body_preview_length: int = 100

    def send(self, message: EmailMessage) -> EmailResult:
        recipients = tuple(str(r) for r in message.recipients)
        if self.fail_with is not None:
            logger.log(self.log_level, "EMAIL (dev): failing send to %s", recipients)
            return EmailResult.failed(recipients, self.fail_with)

        message_id = f"dev-{uuid4().hex[:12]}"
        self.sent_emails.append(
            SentEmail(
                id=message_id,
                recipients=recipients,
                subject=message.subject,
                body_html=message.body_html,
                body_text=message.body_text,
                sender=str(message.sender),
                headers=dict(message.headers),
                logged_at=datetime.now(UTC),
            )
        )

        preview = message.body_text[: self.body_preview_length]
        if len(message.body_text) > self.body_preview_length:
            preview += "..."
        logger.log(
            self.log_level,
            "EMAIL (dev): To=%s, Subject=%s, From=%s, Body=%s, MessageID=%s",
            ", ".join(recipients),
            message.subject,
            message.sender,
            preview,
            message_id,
        )
        return EmailResult(
            status=EmailStatus.SKIPPED,
            recipients=recipients,
            message_id=message_id,
            error="Dev mode - email logged, not sent",
        )

    def check_connection(self) -> None:
        if self.reject_login is not None:
            raise EmailError(self.reject_login)

    # --- Test Helper Methods ---

    def get_last_email(self) -> SentEmail | None:
        return self.sent_emails[-1] if self.sent_emails else None

    def get_emails_to(self, recipient: str) -> list[SentEmail]:
        return [e for e in self.sent_emails if recipient in e.recipients]

    def clear(self) -> None:
        self.sent_emails.clear()

    @property
    def email_count(self) -> int:
        return len(self.sent_emails)


def create_dev_mailer_factory(adapter: DevEmailAdapter | None = None) -> MailerFactory:
    """
    MailerFactory that always hands out one shared DevEmailAdapter.

    The adapter's settings are updated to the latest requested SMTPSettings.
    """
    shared = adapter or DevEmailAdapter()

    def factory(settings: SMTPSettings) -> DevEmailAdapter:
        shared.settings = settings
        return shared

    return factory
