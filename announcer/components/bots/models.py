"""
Chat bot component models.

Persisted configuration of the Telegram and Discord plugins and the
decisions taken from inbound platform events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from announcer.core.services.sealing import PluginConfig

TELEGRAM_PLUGIN_NAME = "Telegram"
DISCORD_PLUGIN_NAME = "Discord"

TELEGRAM_MESSAGE_LIMIT = 4096
DISCORD_MESSAGE_LIMIT = 2000

SEND_INTERVAL_SECONDS = 2.0
TELEGRAM_POLL_TIMEOUT = 10  # seconds, long-poll getUpdates
TELEGRAM_POLL_RETRY_SECONDS = 5.0
DISCORD_GUILD_POLL_SECONDS = 30.0

DISCORD_CHANNEL_TEXT = 0
DISCORD_CHANNEL_NEWS = 5
DISCORD_INVITE_PERMISSIONS = 2048  # SEND_MESSAGES
DISCORD_CREATE_BOT_URL = "https://discord.com/developers/applications"


class FailureKind(Enum):
    """How a failed delivery affects the target."""

    PERMANENT = "permanent"  # Target is gone or blocked us; remove it
    TRANSIENT = "transient"  # Rate limit, server or network error; keep it


class BotConfig(PluginConfig):
    secret_fields: ClassVar[tuple[str, ...]] = ("token",)

    token: str = Field(default="", alias="Token")


class TelegramConfig(BotConfig):
    targets: list[int] = Field(default_factory=list, alias="Targets")


class DiscordTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    guild_id: str = Field(alias="GuildID")
    channel_id: str = Field(alias="ChannelID")


class DiscordConfig(BotConfig):
    targets: list[DiscordTarget] = Field(default_factory=list, alias="Targets")
    # Channels removed after a permanent failure; not re-added while their guild exists
    excluded: list[DiscordTarget] = Field(default_factory=list, alias="Excluded")


@dataclass
class TelegramUpdateAction:
    """What one getUpdates entry asks the plugin to do."""

    add: int | None = None
    remove: int | None = None
    migrate: tuple[int, int] | None = None  # (old chat id, new chat id)
    reply_to: int | None = None
    reply: str = ""


@dataclass
class DiscordRefresh:
    """Result of matching the bot's guilds against the stored targets."""

    targets: list[DiscordTarget]
    excluded: list[DiscordTarget]
    added: list[DiscordTarget] = field(default_factory=list)
    removed: list[DiscordTarget] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


@dataclass
class SendOutcome:
    """Result of one send worker tick."""

    target: str = ""
    sent: bool = False
    failure: FailureKind | None = None
    error: str = ""
