"""
RSS component.

RSS 2.0 feed of a tenant's announcements.
"""

from announcer.components.rss.component import render_feed, select_shown
from announcer.components.rss.models import (
    FEED_MEDIA_TYPE,
    FEED_PATH,
    PLUGIN_NAME,
    RETRY_SECONDS,
    RSSConfig,
)
from announcer.components.rss.plugin import RSSPlugin

__all__ = [
    "render_feed",
    "select_shown",
    "FEED_MEDIA_TYPE",
    "FEED_PATH",
    "PLUGIN_NAME",
    "RETRY_SECONDS",
    "RSSConfig",
    "RSSPlugin",
]
