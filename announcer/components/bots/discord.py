"""
Discord plugin.

Targets are guild channels. The guild list is polled over REST every
30 seconds; in each guild the bot posts to the announcement channels, or
to the text channels if the guild has none. Leaving a guild drops its
channels.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from announcer.adapters.bots.discord_client import DiscordBotClient
from announcer.components.bots.component import (
    classify_discord_error,
    discord_invite_url,
    pick_discord_channels,
    refresh_discord_targets,
)
from announcer.components.bots.models import (
    DISCORD_CREATE_BOT_URL,
    DISCORD_GUILD_POLL_SECONDS,
    DISCORD_MESSAGE_LIMIT,
    DISCORD_PLUGIN_NAME,
    SEND_INTERVAL_SECONDS,
    DiscordConfig,
    DiscordRefresh,
    FailureKind,
)
from announcer.components.bots.plugin import BotPlugin
from announcer.core.ports.bots import BotAPIError, DiscordClientPort
from announcer.core.ports.plugin import PluginContext
from announcer.core.services.formatting import escape
from announcer.core.services.segmenting import Segment

logger = logging.getLogger(__name__)


class DiscordPlugin(BotPlugin[DiscordConfig, str]):
    name = DISCORD_PLUGIN_NAME
    limit = DISCORD_MESSAGE_LIMIT
    config_model = DiscordConfig

    def __init__(
        self,
        ctx: PluginContext,
        client_factory: Callable[[str], DiscordClientPort] = DiscordBotClient,
        send_interval: float = SEND_INTERVAL_SECONDS,
        guild_poll_interval: float = DISCORD_GUILD_POLL_SECONDS,
    ):
        self.bot_user_id = ""
        self.application_id = ""
        self.guild_count = 0
        super().__init__(ctx, client_factory, send_interval)
        self.actor.every(guild_poll_interval, self._refresh_guilds)

    # --- Connection ---

    def _open(self, client: DiscordClientPort) -> None:
        user = client.get_current_user()
        self.bot_user_id = str(user["id"])
        try:
            self.application_id = str(client.get_application()["id"])
        except BotAPIError as e:
            # A bot user shares its id with its application
            logger.warning("%s (%s): application lookup failed: %s", self.name, self.ctx.tenant_key, e)
            self.application_id = self.bot_user_id

    def _start_inbound(self) -> None:
        self._refresh_guilds()

    # --- Target discovery ---

    def refresh_guilds(self) -> DiscordRefresh | None:
        """Poll the guild list now and wait for the result."""
        return self.actor.call(self._refresh_guilds)

    def _refresh_guilds(self) -> DiscordRefresh | None:
        client = self.client
        if client is None:
            return None
        try:
            guilds = client.get_guilds()
        except BotAPIError as e:
            self._report(f"can not list guilds: {e}")
            return None

        guild_channels: dict[str, list[str] | None] = {}
        for guild in guilds:
            guild_id = str(guild["id"])
            try:
                guild_channels[guild_id] = pick_discord_channels(client.get_guild_channels(guild_id))
            except BotAPIError as e:
                self._report(f"can not list channels of guild {guild_id}: {e}")
                guild_channels[guild_id] = None
        self.guild_count = len(guild_channels)

        refresh = refresh_discord_targets(self.config.targets, self.config.excluded, guild_channels)
        for target in refresh.removed:
            self.queues.drop(target.channel_id)
        if refresh.changed or refresh.excluded != self.config.excluded:
            self.config.targets = refresh.targets
            self.config.excluded = refresh.excluded
            logger.info(
                "%s (%s): %d channels in %d guilds (+%d -%d)",
                self.name,
                self.ctx.tenant_key,
                len(refresh.targets),
                self.guild_count,
                len(refresh.added),
                len(refresh.removed),
            )
            self._save_or_report("targets")
        for target in refresh.added:
            self._queue_reply(target.channel_id, self.ctx.translation.bot_send_on_this_channel)
        return refresh

    # --- Sending ---

    def _target_keys(self) -> list[str]:
        return [t.channel_id for t in self.config.targets]

    def _send(self, client: DiscordClientPort, target: str, segment: Segment) -> None:
        client.send_message(target, segment.text, silent=segment.silent)

    def _classify(self, error: BotAPIError) -> FailureKind:
        return classify_discord_error(error)

    def _remove_target(self, target: str) -> None:
        removed = [t for t in self.config.targets if t.channel_id == target]
        self.config.targets = [t for t in self.config.targets if t.channel_id != target]
        self.config.excluded.extend(t for t in removed if t not in self.config.excluded)

    def _panel_details(self) -> str:
        if not self.application_id:
            return f'<p>Create bot: <a href="{DISCORD_CREATE_BOT_URL}">{DISCORD_CREATE_BOT_URL}</a></p>'
        url = discord_invite_url(self.application_id)
        return f'<p><a href="{escape(url)}">{escape(url)}</a></p>\n<p>{self.guild_count} guilds</p>'
