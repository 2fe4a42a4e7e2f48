"""
RegisterMail public pages, mounted under /{key}/RegisterMail.

Endpoints:
- GET/POST subscribe.html - Registration form with captcha
- GET verify.html - Confirm an address (link from the verification mail)
- GET/POST unsubscribe.html - Unsubscribe form and its submission
- POST delete.html - Admin: remove an address
- POST ban.html - Admin: ban an address

Every endpoint answers 500 while the plugin configuration is incomplete.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse

from announcer.api.auth_utils import get_client_ip, is_admin
from announcer.api.templates import html_response, status_response, text_response
from announcer.components.register_mail.models import (
    PLUGIN_NAME,
    SubscribeError,
    SubscribeInput,
    UnsubscribeOutcome,
    VerifyOutcome,
)
from announcer.core.services.formatting import escape

if TYPE_CHECKING:
    from announcer.components.register_mail.plugin import RegisterMailPlugin

logger = logging.getLogger(__name__)

SUBSCRIBE_ERROR_STATUS = {
    SubscribeError.CONSENT_MISSING: 403,
    SubscribeError.CAPTCHA_FAILED: 403,
    SubscribeError.PASSWORD_MISMATCH: 403,
    SubscribeError.INVALID_ADDRESS: 400,
    SubscribeError.ALREADY_REGISTERED: 400,
    SubscribeError.BANNED: 400,
}


def build_router(plugin: RegisterMailPlugin) -> APIRouter:
    router = APIRouter(prefix=f"/{plugin.ctx.tenant_key}/{PLUGIN_NAME}")
    t = plugin.ctx.translation
    description = plugin.ctx.short_description

    def subscribe_form(message: str = "", status_code: int = 200) -> HTMLResponse:
        challenge = plugin.issue_captcha()
        password_field = ""
        if plugin.has_register_password():
            password_field = f"""<p><label for="rp">{escape(t.password)}</label><br>
<input type="password" id="rp" name="rp" required></p>"""
        notice = f'<p class="message">{escape(message)}</p>' if message else ""
        body = f"""<h1>{escape(description)}</h1>
{notice}
<p>{escape(t.register_mail_register)}</p>
<form method="POST">
<p><label for="mail">{escape(t.register_mail_email)}</label><br>
<input type="email" id="mail" name="mail" required></p>
{password_field}
<input type="hidden" name="id" value="{escape(challenge.id)}">
<p><label for="c">{escape(t.register_mail_captcha)}</label><br>
{escape(t.captcha_text_before)} {escape(challenge.question)} {escape(t.captcha_text_after)}<br>
<input type="text" id="c" name="c" inputmode="numeric" autocomplete="off" required></p>
<p><input type="checkbox" id="dsgvo" name="dsgvo" required>
<label for="dsgvo"><a href="/dsgvo.html">{escape(t.accept_privacy_policy)}</a></label></p>
<p><input type="submit" value="{escape(t.register_mail_register_now)}"></p>
</form>"""
        return html_response(t, body, status_code=status_code, title=description)

    @router.get("/subscribe.html", response_class=HTMLResponse)
    def subscribe_page() -> HTMLResponse:
        if not plugin.is_complete():
            return text_response(t, t.register_mail_registration_closed, 500)
        return subscribe_form()

    @router.post("/subscribe.html", response_class=HTMLResponse)
    def subscribe(
        request: Request,
        mail: Annotated[str, Form()] = "",
        dsgvo: Annotated[str, Form()] = "",
        id: Annotated[str, Form()] = "",
        c: Annotated[str, Form()] = "",
        rp: Annotated[str, Form()] = "",
    ) -> HTMLResponse:
        if not plugin.is_complete():
            return text_response(t, t.register_mail_registration_closed, 500)

        output = plugin.subscribe(
            SubscribeInput(
                mail=mail.strip(),
                dsgvo=dsgvo,
                captcha_id=id,
                captcha_answer=c.strip(),
                register_password=rp,
            )
        )
        if output.success:
            logger.info("%s (%s): new registration", PLUGIN_NAME, plugin.ctx.tenant_key)
            return text_response(t, t.register_mail_register_success)

        if output.error is None:
            raise RuntimeError(f"{plugin.ctx.tenant_key}: subscribe failed without an error code")
        status_code = SUBSCRIBE_ERROR_STATUS[output.error]
        if output.error is SubscribeError.CAPTCHA_FAILED:
            logger.info(
                "%s (%s): captcha failed from %s",
                PLUGIN_NAME,
                plugin.ctx.tenant_key,
                get_client_ip(request),
            )
            return subscribe_form(t.register_mail_register_captcha_failure, status_code)
        return status_response(t, status_code)

    @router.get("/verify.html", response_class=HTMLResponse)
    def verify(key: str = "", mail: str = "") -> HTMLResponse:
        if not plugin.is_complete():
            return status_response(t, 500)
        outcome = plugin.verify(key, mail)
        if outcome is VerifyOutcome.FORBIDDEN:
            return status_response(t, 403)
        return text_response(t, t.register_mail_validation_success)

    @router.get("/unsubscribe.html", response_class=HTMLResponse)
    def unsubscribe_page(key: str = "", mail: str = "") -> HTMLResponse:
        if not plugin.is_complete():
            return status_response(t, 500)
        body = f"""<h1>{escape(description)}</h1>
<form method="POST">
<input type="hidden" name="key" value="{escape(key)}">
<input type="hidden" name="mail" value="{escape(mail)}">
<p>{escape(mail)}</p>
<p><input type="submit" value="{escape(t.register_mail_unregister)}"></p>
</form>"""
        return html_response(t, body, title=description)

    @router.post("/unsubscribe.html", response_class=HTMLResponse)
    def unsubscribe(
        request: Request,
        key: Annotated[str, Form()] = "",
        mail: Annotated[str, Form()] = "",
    ) -> HTMLResponse:
        if not plugin.is_complete():
            return status_response(t, 500)
        # One-click unsubscribe (List-Unsubscribe-Post) keeps both in the query
        key = key or request.query_params.get("key", "")
        mail = mail or request.query_params.get("mail", "")
        outcome = plugin.unsubscribe(key, mail)
        if outcome is UnsubscribeOutcome.FORBIDDEN:
            return status_response(t, 403)
        return text_response(t, t.register_mail_unregister_successful)

    @router.post("/delete.html", response_class=HTMLResponse)
    def delete(
        request: Request,
        mail: Annotated[str, Form()] = "",
        key: Annotated[str, Form()] = "",
    ) -> HTMLResponse:
        if not is_admin(request, plugin.ctx.tenant_key):
            return status_response(t, 403)
        if not plugin.is_complete():
            return status_response(t, 500)
        if not plugin.delete(address=mail, salt=key):
            return status_response(t, 404)
        logger.info("%s (%s): admin deleted an address", PLUGIN_NAME, plugin.ctx.tenant_key)
        return text_response(t, t.register_mail_deleted)

    @router.post("/ban.html", response_class=HTMLResponse)
    def ban(request: Request, mail: Annotated[str, Form()] = "") -> HTMLResponse:
        if not is_admin(request, plugin.ctx.tenant_key):
            return status_response(t, 403)
        if not plugin.is_complete():
            return status_response(t, 500)
        if not plugin.ban(mail):
            return status_response(t, 404)
        logger.info("%s (%s): admin banned an address", PLUGIN_NAME, plugin.ctx.tenant_key)
        return text_response(t, t.register_mail_banned)

    return router
