"""
SMTP Email Adapter.

Sends multipart (plain + HTML) mails through an authenticated SMTP session.
Every send opens a fresh session: port 465 uses implicit TLS, any other
port upgrades with STARTTLS before login.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage as MIMEMessage
from email.utils import formatdate, make_msgid

from announcer.core.ports.email import (
    EmailError,
    EmailMessage,
    EmailResult,
    SMTPSettings,
)

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
DEFAULT_TIMEOUT = 30.0


class SMTPEmailAdapter:
    def __init__(self, settings: SMTPSettings, timeout: float = DEFAULT_TIMEOUT):
        self.settings = settings
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: SMTPSettings) -> SMTPEmailAdapter:
        return cls(settings)

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        server: smtplib.SMTP
        if self.settings.port == IMPLICIT_TLS_PORT:
            server = smtplib.SMTP_SSL(
                self.settings.server, self.settings.port, timeout=self.timeout, context=context
            )
        else:
            server = smtplib.SMTP(self.settings.server, self.settings.port, timeout=self.timeout)
            server.starttls(context=context)
        server.login(self.settings.user, self.settings.password)
        return server

    @staticmethod
    def _quit(server: smtplib.SMTP) -> None:
        try:
            server.quit()
        except smtplib.SMTPException as e:
            logger.debug("SMTP quit failed: %s", e)

    @staticmethod
    def build_mime(message: EmailMessage) -> MIMEMessage:
        mime = MIMEMessage()
        mime["From"] = str(message.sender)
        mime["To"] = ", ".join(str(r) for r in message.recipients)
        mime["Subject"] = message.subject
        mime["Date"] = formatdate(localtime=True)
        mime["Message-ID"] = make_msgid(domain=message.sender.email.rpartition("@")[2] or None)
        for name, value in message.headers.items():
            mime[name] = value
        mime.set_content(message.body_text)
        if message.body_html:
            mime.add_alternative(message.body_html, subtype="html")
        return mime

    def send(self, message: EmailMessage) -> EmailResult:
        recipients = tuple(r.email for r in message.recipients)
        mime = self.build_mime(message)
        try:
            server = self._connect()
            try:
                server.send_message(mime, from_addr=message.sender.email, to_addrs=list(recipients))
            finally:
                self._quit(server)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP send via %s failed: %s", self.settings.server, e)
            return EmailResult.failed(recipients, str(e))
        return EmailResult.success(recipients, message_id=mime["Message-ID"])

    def check_connection(self) -> None:
        try:
            server = self._connect()
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"SMTP login to {self.settings.server} failed: {e}") from e
        self._quit(server)
