"""
SimpleSendMail plugin.

Sends every announcement as one mail to the configured recipients. A
config change with complete settings logs in to the SMTP server first;
a rejected login clears the stored password.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from announcer.components.simple_mail.component import (
    build_mail,
    is_complete,
    parse_recipients,
    smtp_settings,
)
from announcer.components.simple_mail.models import PLUGIN_NAME, SimpleMailConfig
from announcer.core.entities import Announcement
from announcer.core.ports.email import (
    EmailAddress,
    EmailError,
    EmailResult,
    InvalidAddressError,
    MailerFactory,
)
from announcer.core.ports.plugin import PluginConfigError, PluginContext
from announcer.core.services.actor import Actor
from announcer.core.services.formatting import config_state, escape
from announcer.core.services.sealing import ConfigStore

logger = logging.getLogger(__name__)


class SimpleMailPlugin:
    name = PLUGIN_NAME

    def __init__(self, ctx: PluginContext, mailer_factory: MailerFactory):
        self.ctx = ctx
        self.mailer_factory = mailer_factory
        self.store = ConfigStore(
            ctx.datasafe, ctx.tenant_key, PLUGIN_NAME, SimpleMailConfig, ctx.codec
        )
        self.config = self.store.load()
        self.actor = Actor(
            f"{PLUGIN_NAME} ({ctx.tenant_key})",
            counter=ctx.counter,
            on_error=ctx.errors,
            threaded=ctx.run_workers,
        )

    def _report(self, message: str) -> None:
        text = f"{PLUGIN_NAME} ({self.ctx.tenant_key}): {message}"
        logger.error(text)
        self.ctx.errors(text)

    # --- Plugin contract ---

    def get_config(self) -> str:
        return self.actor.call(self._render_config)

    def _render_config(self) -> str:
        c = self.config
        return f"""<h1>{PLUGIN_NAME}</h1>
{config_state(is_complete(c))}
<form method="POST">
<input type="hidden" name="target" value="{PLUGIN_NAME}">
<p><input id="SimpleSendMail_prefix" type="text" name="prefix" value="{escape(c.subject_prefix)}" placeholder="prefix"> <label for="SimpleSendMail_prefix">subject prefix</label></p>
<p><input id="SimpleSendMail_from" type="text" name="from" value="{escape(c.from_address)}" placeholder="from" required> <label for="SimpleSendMail_from">from</label></p>
<p><input id="SimpleSendMail_to" type="text" name="to" value="{escape(', '.join(c.to))}" placeholder="to" required> <label for="SimpleSendMail_to">to (separate by comma)</label></p>
<p><input id="SimpleSendMail_server" type="text" name="server" value="{escape(c.smtp_server)}" placeholder="server" required> <label for="SimpleSendMail_server">SMTP server</label></p>
<p><input id="SimpleSendMail_port" type="number" min="0" max="65535" step="1" name="port" value="{c.smtp_server_port}" required> <label for="SimpleSendMail_port">SMTP port</label></p>
<p><input id="SimpleSendMail_user" type="text" name="user" value="{escape(c.smtp_user)}" placeholder="user" required> <label for="SimpleSendMail_user">user</label></p>
<p><input id="SimpleSendMail_password" type="password" name="password" placeholder="password"> <label for="SimpleSendMail_password">password</label></p>
<p><input type="submit" value="Update"></p>
</form>"""

    def process_config_change(self, form: Mapping[str, str]) -> None:
        self.actor.call(self._apply_form, dict(form))

    def _apply_form(self, form: dict[str, str]) -> None:
        updated = self.config.model_copy(deep=True)
        updated.subject_prefix = form.get("prefix", "")
        try:
            if form.get("from"):
                updated.from_address = str(EmailAddress.parse(form["from"]))
            if form.get("to"):
                updated.to = parse_recipients(form["to"])
        except InvalidAddressError as e:
            raise PluginConfigError(str(e)) from e
        if form.get("server"):
            updated.smtp_server = form["server"].strip()
        if form.get("port", "").strip():
            try:
                port = int(form["port"])
            except ValueError as e:
                raise PluginConfigError(f"port: {form['port']!r} is not a number") from e
            if not 0 <= port <= 65535:
                raise PluginConfigError(f"Port {port} out of range")
            updated.smtp_server_port = port
        if form.get("user"):
            updated.smtp_user = form["user"]
        if form.get("password"):
            updated.smtp_password = form["password"]

        self.config = updated
        if is_complete(updated):
            try:
                self.mailer_factory(smtp_settings(updated)).check_connection()
            except EmailError as e:
                self.config.smtp_password = ""
                self.store.save(self.config)
                raise PluginConfigError(f"{PLUGIN_NAME}: {e}") from e
        self.store.save(self.config)

    def new_announcement(self, announcement: Announcement, announcement_id: str) -> None:
        self.actor.call(self._send, announcement)

    def _send(self, announcement: Announcement) -> EmailResult | None:
        if not is_complete(self.config):
            self._report(
                f"no valid configuration, can not send announcement ({announcement.header})"
            )
            return None
        mailer = self.mailer_factory(smtp_settings(self.config))
        result = mailer.send(build_mail(self.config, announcement))
        if not result.ok:
            self._report(f"error while sending announcement ({announcement.header}): {result.error}")
        return result

    def build_router(self) -> Any | None:
        return None

    def close(self) -> None:
        self.actor.stop()
