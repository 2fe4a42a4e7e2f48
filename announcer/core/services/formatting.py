"""
Plain text to HTML formatting.

Announcement bodies are typed as plain text. For HTML mail parts and pages
the text is escaped first, then URLs become links and line breaks become
<br> / paragraphs. Nothing the user typed is ever emitted as markup.
"""

from __future__ import annotations

import html
import re

URL_RE = re.compile(r"\bhttps?://[^\s<>\"']+", re.IGNORECASE)

# Trailing punctuation that usually ends a sentence, not the URL
_TRAILING = ".,;:!?)"

CONFIG_VALID = '<h1 style="color: green;">&#9745; configuration valid</h1>'
CONFIG_INVALID = '<h1 style="color: red;">&#9746; configuration not valid</h1>'


def escape(text: str) -> str:
    return html.escape(text, quote=True)


def config_state(valid: bool) -> str:
    """Admin panel banner for a plugin configuration."""
    return CONFIG_VALID if valid else CONFIG_INVALID


def _linkify(escaped: str) -> str:
    def repl(match: re.Match[str]) -> str:
        url = match.group(0)
        tail = ""
        while url and url[-1] in _TRAILING:
            tail = url[-1] + tail
            url = url[:-1]
        return f'<a href="{url}" rel="noopener">{url}</a>{tail}'

    return URL_RE.sub(repl, escaped)


def format_text(text: str) -> str:
    """Render plain text as safe HTML paragraphs."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n").strip("\n")
    if not normalized:
        return ""
    paragraphs = re.split(r"\n{2,}", normalized)
    rendered = []
    for paragraph in paragraphs:
        lines = [_linkify(escape(line)) for line in paragraph.split("\n")]
        rendered.append("<p>" + "<br>\n".join(lines) + "</p>")
    return "\n".join(rendered)
