"""
Core ports (Protocols) for the announcer.

Storage, plugin, mail, captcha and chat bot collaborators are expressed as
Protocols so adapters can be swapped in tests.
"""

from announcer.core.ports.bots import (
    BotAPIError,
    DiscordClientPort,
    TelegramClientPort,
)
from announcer.core.ports.captcha import (
    DEFAULT_CAPTCHA_WINDOW,
    CaptchaChallenge,
    CaptchaPort,
)
from announcer.core.ports.datasafe import (
    DataSafeError,
    DataSafeNotConfiguredError,
    DataSafePort,
    InvalidIdentifierError,
    UnknownAnnouncementError,
    validate_identifier,
)
from announcer.core.ports.email import (
    EmailAddress,
    EmailError,
    EmailMessage,
    EmailPort,
    EmailResult,
    EmailStatus,
    InvalidAddressError,
    MailerFactory,
    SMTPSettings,
)
from announcer.core.ports.plugin import (
    ErrorSink,
    PluginConfigError,
    PluginContext,
    PluginFactory,
    PluginPort,
)

__all__ = [
    "BotAPIError",
    "DiscordClientPort",
    "TelegramClientPort",
    "DEFAULT_CAPTCHA_WINDOW",
    "CaptchaChallenge",
    "CaptchaPort",
    "DataSafeError",
    "DataSafeNotConfiguredError",
    "DataSafePort",
    "InvalidIdentifierError",
    "UnknownAnnouncementError",
    "validate_identifier",
    "EmailAddress",
    "EmailError",
    "EmailMessage",
    "EmailPort",
    "EmailResult",
    "EmailStatus",
    "InvalidAddressError",
    "MailerFactory",
    "SMTPSettings",
    "ErrorSink",
    "PluginConfigError",
    "PluginContext",
    "PluginFactory",
    "PluginPort",
]
