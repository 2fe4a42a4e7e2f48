"""
Tenant pages.

Endpoints:
- GET /{key}/ - Login form, or the publish form (+ admin panels)
- POST /{key}/ - target=publish, target=#errors, or a plugin name
- POST /{key}/login - Password login, sets the user or admin cookie
- GET /{key}/logout - Clears both cookies
- GET /{key}/history.html - Published announcements (logged in)
"""

from __future__ import annotations

import logging
from urllib.parse import quote_plus

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from announcer.api.auth_utils import (
    clear_login_cookies,
    get_client_ip,
    is_admin,
    is_logged_in,
    set_login_cookie,
)
from announcer.api.deps import Runtime, get_host, get_runtime
from announcer.api.templates import (
    history_page,
    html_response,
    login_page,
    main_page,
    status_response,
)
from announcer.components.host import AnnouncementHost, PublishInput
from announcer.core.ports.plugin import PluginConfigError

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CACHE = {"Cache-Control": "no-cache, no-store, must-revalidate"}


def _redirect(key: str, message: str = "") -> RedirectResponse:
    url = f"/{key}/"
    if message:
        url += f"?message={quote_plus(message)}"
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/{key}/", response_class=HTMLResponse)
def tenant_page(
    request: Request,
    message: str = "",
    host: AnnouncementHost = Depends(get_host),
    runtime: Runtime = Depends(get_runtime),
) -> HTMLResponse:
    t = runtime.translation
    if not is_logged_in(request, host.key):
        response = html_response(
            t, login_page(t, host.short_description, message), title=host.short_description
        )
    else:
        admin = is_admin(request, host.key)
        show_errors = admin or host.config.show_errors_to_users
        body = main_page(
            t,
            host.short_description,
            message,
            errors=host.get_errors() if show_errors else [],
            is_admin=admin,
            panels=host.plugin_panels() if admin else [],
        )
        response = html_response(t, body, title=host.short_description)
    response.headers.update(NO_CACHE)
    return response


@router.post("/{key}/")
async def tenant_post(
    request: Request,
    host: AnnouncementHost = Depends(get_host),
    runtime: Runtime = Depends(get_runtime),
) -> Response:
    t = runtime.translation
    if not is_logged_in(request, host.key):
        return status_response(t, status.HTTP_403_FORBIDDEN)

    form = await request.form()
    fields = {name: value for name, value in form.items() if isinstance(value, str)}
    target = fields.get("target", "")

    if target == "publish":
        output = await run_in_threadpool(
            host.publish,
            PublishInput(
                dsgvo=fields.get("dsgvo", ""),
                subject=fields.get("subject", ""),
                message=fields.get("message", ""),
            ),
        )
        if not output.success:
            if output.errors and output.errors[0].code == "CONSENT_MISSING":
                return status_response(t, status.HTTP_412_PRECONDITION_FAILED)
            return status_response(t, status.HTTP_400_BAD_REQUEST)
        logger.info("%s: announcement published", host.key)
        return _redirect(host.key, t.announcement_published)

    if not is_admin(request, host.key):
        return status_response(t, status.HTTP_403_FORBIDDEN)

    try:
        await run_in_threadpool(host.process_config_change, target, fields)
    except KeyError:
        return status_response(t, status.HTTP_400_BAD_REQUEST)
    except PluginConfigError as e:
        logger.info("%s: config change for %s rejected: %s", host.key, target, e)
        return _redirect(host.key, str(e))
    return _redirect(host.key)


@router.post("/{key}/login")
def login(
    request: Request,
    password: str = Form(""),
    host: AnnouncementHost = Depends(get_host),
    runtime: Runtime = Depends(get_runtime),
) -> Response:
    t = runtime.translation
    level = host.login(password)
    if level is None:
        if runtime.config.log_failed_login:
            logger.warning("Failed login from %s", get_client_ip(request))
        return status_response(t, status.HTTP_403_FORBIDDEN)

    response = _redirect(host.key)
    set_login_cookie(response, host.key, level, runtime.config.login_minutes)
    return response


@router.get("/{key}/logout")
def logout(host: AnnouncementHost = Depends(get_host)) -> Response:
    response = _redirect(host.key)
    clear_login_cookies(response, host.key)
    return response


@router.get("/{key}/history.html", response_class=HTMLResponse)
def history(
    request: Request,
    host: AnnouncementHost = Depends(get_host),
    runtime: Runtime = Depends(get_runtime),
) -> HTMLResponse:
    t = runtime.translation
    if not is_logged_in(request, host.key):
        response = status_response(t, status.HTTP_403_FORBIDDEN)
    else:
        try:
            announcements = host.history()
        except Exception:
            logger.exception("%s: can not read history", host.key)
            response = status_response(t, status.HTTP_500_INTERNAL_SERVER_ERROR)
        else:
            response = html_response(
                t,
                history_page(t, host.short_description, announcements),
                title=host.short_description,
            )
    response.headers.update(NO_CACHE)
    return response
