"""
Chat bot component.

Telegram and Discord delivery with per-target segment queues and
target discovery from platform events.
"""

from announcer.components.bots.component import (
    SegmentQueues,
    apply_telegram_action,
    classify_discord_error,
    classify_telegram_error,
    discord_invite_url,
    enqueue_text,
    interpret_telegram_update,
    pick_discord_channels,
    refresh_discord_targets,
)
from announcer.components.bots.discord import DiscordPlugin
from announcer.components.bots.models import (
    DISCORD_MESSAGE_LIMIT,
    DISCORD_PLUGIN_NAME,
    TELEGRAM_MESSAGE_LIMIT,
    TELEGRAM_PLUGIN_NAME,
    DiscordConfig,
    DiscordRefresh,
    DiscordTarget,
    FailureKind,
    SendOutcome,
    TelegramConfig,
    TelegramUpdateAction,
)
from announcer.components.bots.plugin import BotPlugin
from announcer.components.bots.telegram import TelegramPlugin

__all__ = [
    # Component
    "SegmentQueues",
    "apply_telegram_action",
    "classify_discord_error",
    "classify_telegram_error",
    "discord_invite_url",
    "enqueue_text",
    "interpret_telegram_update",
    "pick_discord_channels",
    "refresh_discord_targets",
    # Models
    "DISCORD_MESSAGE_LIMIT",
    "DISCORD_PLUGIN_NAME",
    "TELEGRAM_MESSAGE_LIMIT",
    "TELEGRAM_PLUGIN_NAME",
    "DiscordConfig",
    "DiscordRefresh",
    "DiscordTarget",
    "FailureKind",
    "SendOutcome",
    "TelegramConfig",
    "TelegramUpdateAction",
    # Plugins
    "BotPlugin",
    "DiscordPlugin",
    "TelegramPlugin",
]
