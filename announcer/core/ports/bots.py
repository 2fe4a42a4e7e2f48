"""
Chat bot client ports.

Thin HTTP clients for the Telegram Bot API and the Discord REST API. Both
raise BotAPIError for any failed call; network failures carry code 0.
"""

from __future__ import annotations

from typing import Any, Protocol


class BotAPIError(Exception):
    """A platform API call failed."""

    def __init__(
        self,
        code: int,
        description: str,
        retry_after: float | None = None,
        migrate_to_chat_id: int | None = None,
    ):
        super().__init__(f"{code}: {description}")
        self.code = code
        self.description = description
        self.retry_after = retry_after
        self.migrate_to_chat_id = migrate_to_chat_id


class TelegramClientPort(Protocol):
    def get_me(self) -> dict[str, Any]:
        ...

    def get_updates(self, offset: int, timeout: int) -> list[dict[str, Any]]:
        ...

    def send_message(self, chat_id: int, text: str, silent: bool = False) -> dict[str, Any]:
        ...

    def close(self) -> None:
        ...


class DiscordClientPort(Protocol):
    def get_current_user(self) -> dict[str, Any]:
        ...

    def get_application(self) -> dict[str, Any]:
        ...

    def get_guilds(self) -> list[dict[str, Any]]:
        ...

    def get_guild_channels(self, guild_id: str) -> list[dict[str, Any]]:
        ...

    def send_message(self, channel_id: str, content: str, silent: bool = False) -> dict[str, Any]:
        ...

    def close(self) -> None:
        ...
