"""
RegisterMail plugin.

Binds the functional core to one tenant: state lives on an actor, is
loaded from and persisted to the DataSafe through a ConfigStore (SMTP
password sealed), and a timer posts a send tick to the actor once a minute.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from announcer.components.register_mail.component import (
    enqueue_announcement,
    is_complete,
    run_ban,
    run_delete,
    run_send_tick,
    run_subscribe,
    run_unsubscribe,
    run_verify,
)
from announcer.components.register_mail.models import (
    PLUGIN_NAME,
    SEND_INTERVAL_SECONDS,
    RegisterMailConfig,
    SubscribeInput,
    SubscribeOutput,
    TickResult,
    UnsubscribeOutcome,
    VerifyOutcome,
)
from announcer.core.entities import Announcement
from announcer.core.ports.captcha import CaptchaChallenge, CaptchaPort
from announcer.core.ports.email import EmailAddress, InvalidAddressError, MailerFactory
from announcer.core.ports.plugin import PluginConfigError, PluginContext
from announcer.core.services.actor import Actor
from announcer.core.services.formatting import config_state, escape
from announcer.core.services.sealing import ConfigStore

logger = logging.getLogger(__name__)


def _parse_int(form: Mapping[str, str], field: str, low: int, high: int | None = None) -> int | None:
    raw = form.get(field, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise PluginConfigError(f"{field}: {raw!r} is not a number") from e
    if value < low or (high is not None and value > high):
        raise PluginConfigError(f"{field}: {value} out of range")
    return value


class RegisterMailPlugin:
    name = PLUGIN_NAME

    def __init__(
        self,
        ctx: PluginContext,
        mailer_factory: MailerFactory,
        captcha: CaptchaPort,
        send_interval: float = SEND_INTERVAL_SECONDS,
    ):
        self.ctx = ctx
        self.mailer_factory = mailer_factory
        self.captcha = captcha
        self.store = ConfigStore(
            ctx.datasafe, ctx.tenant_key, PLUGIN_NAME, RegisterMailConfig, ctx.codec
        )
        self.config = self.store.load()
        self.actor = Actor(
            f"{PLUGIN_NAME} ({ctx.tenant_key})",
            counter=ctx.counter,
            on_error=ctx.errors,
            threaded=ctx.run_workers,
        )
        self.actor.every(send_interval, self._tick)

    # --- Helpers (actor thread) ---

    def _report(self, message: str) -> None:
        text = f"{PLUGIN_NAME} ({self.ctx.tenant_key}): {message}"
        logger.error(text)
        self.ctx.errors(text)

    def _save(self) -> None:
        self.store.save(self.config)

    def _save_or_report(self, what: str) -> None:
        try:
            self._save()
        except Exception as e:
            self._report(f"error while saving {what}: {e}")

    # --- Send worker ---

    def _tick(self) -> TickResult:
        result = run_send_tick(self.config, self.mailer_factory, self._report)
        if not result.skipped:
            self._save_or_report("queue")
        if result.processed:
            logger.info(
                "%s (%s): tick processed=%d sent=%d requeued=%d dropped=%d",
                PLUGIN_NAME,
                self.ctx.tenant_key,
                result.processed,
                result.sent,
                result.requeued,
                result.dropped,
            )
        return result

    def tick(self) -> TickResult:
        """Run one send tick now and wait for it."""
        return self.actor.call(self._tick)

    # --- Plugin contract ---

    def get_config(self) -> str:
        return self.actor.call(self._render_config)

    def _render_config(self) -> str:
        c = self.config
        known = [e.data for e in c.to_data if not e.hash]
        hashed = len(c.to_data) - len(known)
        users = "\n".join(
            f"""<li>{escape(address)}
<form method="POST" action="RegisterMail/delete.html" style="display:inline">
<input type="hidden" name="mail" value="{escape(address)}"><input type="submit" value="delete"></form>
<form method="POST" action="RegisterMail/ban.html" style="display:inline">
<input type="hidden" name="mail" value="{escape(address)}"><input type="submit" value="ban"></form>
</li>"""
            for address in known
        )
        return f"""<h1>{PLUGIN_NAME}</h1>
{config_state(is_complete(c))}
<p><a href="RegisterMail/subscribe.html">RegisterMail/subscribe.html</a></p>
<p>{len(known)} confirmed, {hashed} pending or banned, {len(c.queue)} mails queued</p>
<form method="POST">
<input type="hidden" name="target" value="{PLUGIN_NAME}">
<p><input id="RegisterMail_prefix" type="text" name="prefix" value="{escape(c.subject_prefix)}" placeholder="prefix"> <label for="RegisterMail_prefix">subject prefix</label></p>
<p><input id="RegisterMail_from" type="text" name="from" value="{escape(c.from_address)}" placeholder="from" required> <label for="RegisterMail_from">from</label></p>
<p><input id="RegisterMail_server" type="text" name="server" value="{escape(c.smtp_server)}" placeholder="server" required> <label for="RegisterMail_server">SMTP server</label></p>
<p><input id="RegisterMail_port" type="number" min="0" max="65535" step="1" name="port" value="{c.smtp_server_port}" required> <label for="RegisterMail_port">SMTP port</label></p>
<p><input id="RegisterMail_user" type="text" name="user" value="{escape(c.smtp_user)}" placeholder="user" required> <label for="RegisterMail_user">user</label></p>
<p><input id="RegisterMail_password" type="password" name="password" placeholder="password"> <label for="RegisterMail_password">password (leave empty to keep)</label></p>
<p><input id="RegisterMail_rate" type="number" min="0" step="1" name="rate" value="{c.rate_limit}" required> <label for="RegisterMail_rate">rate limit (mails per minute, 0 = unlimited)</label></p>
<p><input id="RegisterMail_registermailtext" type="text" name="registermailtext" value="{escape(c.register_mail_text)}" required> <label for="RegisterMail_registermailtext">text for initial register confirmation mail</label></p>
<p><input id="RegisterMail_unregisterlinktext" type="text" name="unregisterlinktext" value="{escape(c.unregister_link_text)}" required> <label for="RegisterMail_unregisterlinktext">text displayed before unregister link on every mail</label></p>
<p><input id="RegisterMail_registerpassword" type="text" name="registerpassword" value="{escape(c.register_password)}"> <label for="RegisterMail_registerpassword">password required for registering (leave empty for no password)</label></p>
<p><input id="RegisterMail_thisserver" type="text" name="thisserver" value="{escape(c.server_name)}" required> <label for="RegisterMail_thisserver">public URL of this page</label></p>
<p><input type="submit" value="Update"></p>
</form>
<details>
<summary>Known users</summary>
<ul>
{users}
</ul>
</details>
<script>
var s = document.getElementById("RegisterMail_thisserver");
if (!s.value) {{ s.value = document.location.href.replace(/\\/$/, ""); }}
</script>"""

    def process_config_change(self, form: Mapping[str, str]) -> None:
        self.actor.call(self._apply_form, dict(form))

    def _apply_form(self, form: dict[str, str]) -> None:
        updated = self.config.model_copy(deep=True)
        updated.subject_prefix = form.get("prefix", "")

        if form.get("from"):
            try:
                updated.from_address = str(EmailAddress.parse(form["from"]))
            except InvalidAddressError as e:
                raise PluginConfigError(str(e)) from e
        if form.get("server"):
            updated.smtp_server = form["server"].strip()
        port = _parse_int(form, "port", 0, 65535)
        if port is not None:
            updated.smtp_server_port = port
        if form.get("user"):
            updated.smtp_user = form["user"]
        if form.get("password"):
            updated.smtp_password = form["password"]
        rate = _parse_int(form, "rate", 0)
        if rate is not None:
            updated.rate_limit = rate

        updated.register_mail_text = form.get("registermailtext", "")
        updated.unregister_link_text = form.get("unregisterlinktext", "")
        updated.register_password = form.get("registerpassword", "")
        updated.server_name = form.get("thisserver", "").strip().rstrip("/")

        self.config = updated
        self._save()

    def new_announcement(self, announcement: Announcement, announcement_id: str) -> None:
        self.actor.call(self._enqueue, announcement)

    def _enqueue(self, announcement: Announcement) -> int:
        queued = enqueue_announcement(self.config, announcement)
        self._save_or_report("queue")
        return queued

    def build_router(self) -> Any:
        from announcer.components.register_mail.routes import build_router

        return build_router(self)

    def close(self) -> None:
        self.actor.stop()

    # --- Subscription flows (called by the routes) ---

    def is_complete(self) -> bool:
        return self.actor.call(lambda: is_complete(self.config))

    def issue_captcha(self) -> CaptchaChallenge:
        return self.captcha.issue(datetime.now(UTC))

    def has_register_password(self) -> bool:
        return self.actor.call(lambda: bool(self.config.register_password))

    def subscribe(self, input: SubscribeInput) -> SubscribeOutput:
        return self.actor.call(self._subscribe, input)

    def _subscribe(self, input: SubscribeInput) -> SubscribeOutput:
        output = run_subscribe(self.config, input, self.captcha, self.ctx.short_description)
        if output.success:
            try:
                self._save()
            except Exception as e:
                self._report(f"error while saving new register: {e}")
                raise
        return output

    def verify(self, salt: str, address: str) -> VerifyOutcome:
        return self.actor.call(self._mutate, run_verify, salt, address)

    def unsubscribe(self, salt: str, address: str) -> UnsubscribeOutcome:
        return self.actor.call(self._mutate, run_unsubscribe, salt, address)

    def delete(self, address: str = "", salt: str = "") -> bool:
        return self.actor.call(self._mutate, run_delete, address, salt)

    def ban(self, address: str) -> bool:
        return self.actor.call(self._mutate, run_ban, address)

    def _mutate(self, fn: Any, *args: Any) -> Any:
        before = self.config.model_dump()
        result = fn(self.config, *args)
        if self.config.model_dump() != before:
            self._save()
        return result
