"""
SimpleSendMail component.

Immediate announcement mail to a fixed recipient list.
"""

from announcer.components.simple_mail.component import (
    build_mail,
    is_complete,
    parse_recipients,
    smtp_settings,
)
from announcer.components.simple_mail.models import PLUGIN_NAME, SimpleMailConfig
from announcer.components.simple_mail.plugin import SimpleMailPlugin

__all__ = [
    "build_mail",
    "is_complete",
    "parse_recipients",
    "smtp_settings",
    "PLUGIN_NAME",
    "SimpleMailConfig",
    "SimpleMailPlugin",
]
