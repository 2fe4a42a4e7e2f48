"""
SimpleSendMail component.

One mail per announcement to a fixed recipient list, sent right away.
"""

from __future__ import annotations

from announcer.components.simple_mail.models import SimpleMailConfig
from announcer.core.entities import Announcement
from announcer.core.ports.email import (
    EmailAddress,
    EmailMessage,
    InvalidAddressError,
    SMTPSettings,
)
from announcer.core.services.formatting import format_text


def parse_recipients(value: str) -> list[str]:
    """
    Parse a comma-separated address list.

    Raises:
        InvalidAddressError: if any element is not a valid address
    """
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if not parts:
        raise InvalidAddressError("mail: empty address list")
    return [str(EmailAddress.parse(p)) for p in parts]


def is_complete(config: SimpleMailConfig) -> bool:
    try:
        EmailAddress.parse(config.from_address)
        for recipient in config.to:
            EmailAddress.parse(recipient)
    except InvalidAddressError:
        return False
    return bool(
        config.to
        and config.smtp_server
        and config.smtp_user
        and config.smtp_password
        and 0 <= config.smtp_server_port <= 65535
    )


def smtp_settings(config: SimpleMailConfig) -> SMTPSettings:
    return SMTPSettings(
        server=config.smtp_server,
        port=config.smtp_server_port,
        user=config.smtp_user,
        password=config.smtp_password,
    )


def build_mail(config: SimpleMailConfig, announcement: Announcement) -> EmailMessage:
    subject = announcement.header
    if config.subject_prefix:
        subject = f"{config.subject_prefix} {subject}"
    return EmailMessage(
        recipients=tuple(EmailAddress.parse(r) for r in config.to),
        subject=subject,
        body_text=announcement.message,
        body_html=format_text(announcement.message),
        sender=EmailAddress.parse(config.from_address),
    )
