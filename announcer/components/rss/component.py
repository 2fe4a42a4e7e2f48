"""
RSS component.

Renders the tenant's most recent announcements as an RSS 2.0 document.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Sequence
from datetime import UTC, datetime
from email.utils import format_datetime

from announcer.components.rss.models import GENERATOR
from announcer.core.entities import Announcement


def select_shown(announcements: Sequence[Announcement], number_shown: int) -> list[Announcement]:
    """The last number_shown announcements in publication order (0 = all)."""
    if number_shown <= 0:
        return list(announcements)
    return list(announcements[-number_shown:])


def _rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return format_datetime(value)


def render_feed(
    title: str,
    link: str,
    announcements: Sequence[Announcement],
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(UTC)

    rss = ET.Element("rss", {"version": "2.0"})
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = title
    ET.SubElement(channel, "link").text = link
    ET.SubElement(channel, "description").text = title
    ET.SubElement(channel, "generator").text = GENERATOR
    ET.SubElement(channel, "lastBuildDate").text = _rfc822(now)

    # Newest first
    for announcement in reversed(announcements):
        item = ET.SubElement(channel, "item")
        ET.SubElement(item, "title").text = announcement.header
        ET.SubElement(item, "description").text = announcement.message
        ET.SubElement(item, "pubDate").text = _rfc822(announcement.time)

    return ET.tostring(rss, encoding="utf-8", xml_declaration=True).decode("utf-8")
