"""
RSS plugin.

Keeps a rendered feed of the tenant's announcements in its configuration
and serves it at /{key}/RSS/feed.rss. The feed is rebuilt from the
DataSafe on every announcement and config change; when the DataSafe can
not be read the old feed stays and a rebuild is retried later.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fastapi import APIRouter, Response

from announcer.components.rss.component import render_feed, select_shown
from announcer.components.rss.models import (
    FEED_MEDIA_TYPE,
    FEED_PATH,
    PLUGIN_NAME,
    RETRY_SECONDS,
    RSSConfig,
)
from announcer.core.entities import Announcement
from announcer.core.ports.plugin import PluginConfigError, PluginContext
from announcer.core.services.actor import Actor
from announcer.core.services.formatting import escape
from announcer.core.services.sealing import ConfigStore

logger = logging.getLogger(__name__)


class RSSPlugin:
    name = PLUGIN_NAME

    def __init__(self, ctx: PluginContext, retry_seconds: float = RETRY_SECONDS):
        self.ctx = ctx
        self.retry_seconds = retry_seconds
        self.retry_scheduled = False
        self.store = ConfigStore(ctx.datasafe, ctx.tenant_key, PLUGIN_NAME, RSSConfig, ctx.codec)
        self.config = self.store.load()
        self.actor = Actor(
            f"{PLUGIN_NAME} ({ctx.tenant_key})",
            counter=ctx.counter,
            on_error=ctx.errors,
            threaded=ctx.run_workers,
        )
        if not self.config.cache:
            self.actor.call(self._update)

    def _report(self, message: str) -> None:
        text = f"{PLUGIN_NAME} ({self.ctx.tenant_key}): {message}"
        logger.error(text)
        self.ctx.errors(text)

    # --- Feed ---

    def _update(self) -> bool:
        try:
            announcements = self.ctx.datasafe.get_all_announcements(self.ctx.tenant_key)
        except Exception as e:
            self._report(f"can not read announcements, retrying in {self.retry_seconds:.0f}s: {e}")
            self.retry_scheduled = True
            self.actor.after(self.retry_seconds, self._retry)
            return False

        shown = select_shown(announcements, self.config.number_shown)
        self.config.cache = render_feed(self.ctx.short_description, self.config.link, shown)
        try:
            self.store.save(self.config)
        except Exception as e:
            self._report(f"error while saving feed: {e}")
        return True

    def _retry(self) -> bool:
        self.retry_scheduled = False
        return self._update()

    def update(self) -> bool:
        """Rebuild the feed now and wait for it."""
        return self.actor.call(self._update)

    def feed(self) -> str:
        return self.actor.call(lambda: self.config.cache)

    # --- Plugin contract ---

    def get_config(self) -> str:
        return self.actor.call(self._render_config)

    def _render_config(self) -> str:
        return f"""<h1>{PLUGIN_NAME}</h1>
<p><a href="{FEED_PATH}">{FEED_PATH}</a></p>
<form method="POST">
<input type="hidden" name="target" value="{PLUGIN_NAME}">
<p><label for="RSS_items">Number Items: </label><input type="number" id="RSS_items" name="items" min="0" step="1" value="{self.config.number_shown}" required></p>
<p><label for="RSS_link">Link:</label> <input type="text" id="RSS_link" name="link" value="{escape(self.config.link)}"></p>
<p><input type="submit" value="Update"></p>
</form>"""

    def process_config_change(self, form: Mapping[str, str]) -> None:
        self.actor.call(self._apply_form, dict(form))

    def _apply_form(self, form: dict[str, str]) -> None:
        raw = form.get("items", "").strip()
        if not raw:
            return
        try:
            number = int(raw)
        except ValueError as e:
            raise PluginConfigError(f"items: {raw!r} is not a number") from e
        if number < 0:
            raise PluginConfigError(f"number {number} is smaller than 0")
        self.config.number_shown = number
        self.config.link = form.get("link", "").strip()
        self._update()

    def new_announcement(self, announcement: Announcement, announcement_id: str) -> None:
        # The feed is rebuilt from the DataSafe, not from the argument
        self.actor.call(self._update)

    def build_router(self) -> Any:
        router = APIRouter(prefix=f"/{self.ctx.tenant_key}")

        @router.get(f"/{FEED_PATH}")
        def feed() -> Response:
            return Response(content=self.feed(), media_type=FEED_MEDIA_TYPE)

        return router

    def close(self) -> None:
        self.actor.stop()
