"""
Site-wide pages: landing page, robots.txt, privacy policy and impressum.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, PlainTextResponse

from announcer.api.deps import Runtime, get_runtime
from announcer.api.templates import html_response, text_response
from announcer.core.services.formatting import format_text

router = APIRouter()

ROBOTS_TXT = "User-agent: *\nDisallow: /\n"


@router.get("/", response_class=HTMLResponse)
def landing(runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    return text_response(runtime.translation, "Announcer")


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots() -> PlainTextResponse:
    return PlainTextResponse(ROBOTS_TXT)


@router.get("/dsgvo.html", response_class=HTMLResponse)
def dsgvo(runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    t = runtime.translation
    return html_response(t, format_text(runtime.dsgvo), title=t.privacy_policy)


@router.get("/impressum.html", response_class=HTMLResponse)
def impressum(runtime: Runtime = Depends(get_runtime)) -> HTMLResponse:
    t = runtime.translation
    return html_response(t, format_text(runtime.impressum), title=t.impressum)
