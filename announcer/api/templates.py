"""
Server-rendered HTML pages.

Small f-string templates; every interpolated value goes through escape()
unless it is an HTML fragment produced by our own code (plugin panels,
formatted announcement text).
"""

from __future__ import annotations

from collections.abc import Iterable

from fastapi.responses import HTMLResponse

from announcer.core.entities import Announcement, ErrorEntry
from announcer.core.services.formatting import escape, format_text
from announcer.core.services.translation import Translation

STYLE = """
body { font-family: sans-serif; max-width: 50em; margin: 1em auto; padding: 0 1em; }
textarea { width: 100%; min-height: 12em; }
input[type=text] { width: 100%; }
.message { border: 1px solid #888; padding: 0.5em; }
.errors { color: #a00; }
footer { margin-top: 3em; font-size: small; }
"""


def page(t: Translation, title: str, body_html: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="{escape(t.language)}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="robots" content="noindex, nofollow">
<title>{escape(title)}</title>
<style>{STYLE}</style>
</head>
<body>
{body_html}
<footer>
<a href="/impressum.html">{escape(t.impressum)}</a> -
<a href="/dsgvo.html">{escape(t.privacy_policy)}</a>
</footer>
</body>
</html>
"""


def html_response(t: Translation, body_html: str, status_code: int = 200, title: str = "") -> HTMLResponse:
    return HTMLResponse(page(t, title or "Announcer", body_html), status_code=status_code)


def text_response(t: Translation, text: str, status_code: int = 200) -> HTMLResponse:
    return html_response(t, f"<p>{escape(text)}</p>", status_code=status_code)


STATUS_TEXT = {
    400: "400 Bad Request",
    403: "403 Forbidden",
    404: "404 Not Found",
    405: "405 Method Not Allowed",
    412: "412 Precondition Failed",
    500: "500 Internal Server Error",
}


def status_response(t: Translation, status_code: int) -> HTMLResponse:
    return text_response(t, STATUS_TEXT.get(status_code, str(status_code)), status_code)


# --- Tenant pages ---


def _flash(message: str) -> str:
    if not message:
        return ""
    return f'<p class="message">{escape(message)}</p>'


def _errors_html(t: Translation, errors: Iterable[ErrorEntry], can_clear: bool) -> str:
    entries = list(errors)
    if not entries:
        return ""
    items = "\n".join(
        f"<li>{escape(e.time.strftime('%Y-%m-%d %H:%M:%S'))}: {escape(e.message)}</li>"
        for e in entries
    )
    clear = ""
    if can_clear:
        clear = f"""<form method="POST">
<input type="hidden" name="target" value="#errors">
<input type="submit" value="{escape(t.delete_messages)}">
</form>"""
    return f"""<details class="errors" open>
<summary>{escape(t.errors)} ({len(entries)})</summary>
<ul>{items}</ul>
{clear}
</details>"""


def login_page(t: Translation, description: str, message: str = "") -> str:
    return f"""<h1>{escape(description)}</h1>
{_flash(message)}
<form method="POST" action="login">
<p><label for="password">{escape(t.password)}</label><br>
<input type="password" id="password" name="password" required></p>
<p><input type="submit" value="{escape(t.login)}"></p>
</form>"""


def main_page(
    t: Translation,
    description: str,
    message: str,
    errors: Iterable[ErrorEntry],
    is_admin: bool,
    panels: Iterable[tuple[str, str]],
) -> str:
    panel_html = "\n<hr>\n".join(html for _, html in panels) if is_admin else ""
    return f"""<h1>{escape(description)}</h1>
<p><a href="history.html">{escape(t.history)}</a> - <a href="logout">{escape(t.logout)}</a></p>
{_flash(message)}
{_errors_html(t, errors, can_clear=is_admin)}
<h2>{escape(t.publish_announcement)}</h2>
<form method="POST">
<input type="hidden" name="target" value="publish">
<p><label for="subject">{escape(t.subject)}</label><br>
<input type="text" id="subject" name="subject" required></p>
<p><label for="message">{escape(t.message)}</label><br>
<textarea id="message" name="message" required></textarea></p>
<p><input type="checkbox" id="dsgvo" name="dsgvo" required>
<label for="dsgvo">{escape(t.accept_privacy_policy)}</label></p>
<p><input type="submit" value="{escape(t.publish_announcement)}"></p>
</form>
{('<hr>' + panel_html) if panel_html else ''}"""


def history_page(t: Translation, description: str, announcements: Iterable[Announcement]) -> str:
    items = "\n".join(
        f"""<article>
<h3>{escape(a.header)}</h3>
<p><small>{escape(a.time.strftime('%Y-%m-%d %H:%M'))}</small></p>
{format_text(a.message)}
</article>"""
        for a in reversed(list(announcements))
    )
    return f"""<h1>{escape(description)}: {escape(t.published_announcements)}</h1>
<p><a href="./">{escape(t.back)}</a></p>
{items}"""
