"""RSS component models."""

from __future__ import annotations

from pydantic import Field

from announcer.core.services.sealing import PluginConfig

PLUGIN_NAME = "RSS"
FEED_PATH = "RSS/feed.rss"
FEED_MEDIA_TYPE = "application/rss+xml; charset=utf-8"
RETRY_SECONDS = 15 * 60
GENERATOR = "announcer"


class RSSConfig(PluginConfig):
    number_shown: int = Field(default=0, alias="NumberShown")  # 0 = all
    link: str = Field(default="", alias="Link")
    cache: str = Field(default="", alias="Cache")
