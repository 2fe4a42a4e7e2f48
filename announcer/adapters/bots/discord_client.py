"""
Discord REST API client (httpx).

Authenticates with a bot token. Non-2xx responses raise BotAPIError with
the HTTP status and Discord's error message; 429 responses also carry
retry_after.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from announcer.core.ports.bots import BotAPIError

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"
SUPPRESS_NOTIFICATIONS = 1 << 12
GUILD_PAGE_SIZE = 200


class DiscordBotClient:
    def __init__(
        self,
        token: str,
        base_url: str = API_BASE,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=30.0,
            transport=transport,
            headers={"Authorization": f"Bot {token}", "User-Agent": "announcer (bot, 0.1)"},
        )

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise BotAPIError(0, f"{method} {path}: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            message = str(body.get("message") or response.text[:300])
            raise BotAPIError(response.status_code, message, retry_after=body.get("retry_after"))

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def get_current_user(self) -> dict[str, Any]:
        result: dict[str, Any] = self._request("GET", "/users/@me")
        return result

    def get_application(self) -> dict[str, Any]:
        result: dict[str, Any] = self._request("GET", "/oauth2/applications/@me")
        return result

    def get_guilds(self) -> list[dict[str, Any]]:
        guilds: list[dict[str, Any]] = []
        after = ""
        while True:
            path = f"/users/@me/guilds?limit={GUILD_PAGE_SIZE}"
            if after:
                path += f"&after={after}"
            page = self._request("GET", path) or []
            guilds.extend(page)
            if len(page) < GUILD_PAGE_SIZE:
                return guilds
            after = str(page[-1]["id"])

    def get_guild_channels(self, guild_id: str) -> list[dict[str, Any]]:
        return list(self._request("GET", f"/guilds/{guild_id}/channels") or [])

    def send_message(self, channel_id: str, content: str, silent: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": content}
        if silent:
            payload["flags"] = SUPPRESS_NOTIFICATIONS
        result: dict[str, Any] = self._request("POST", f"/channels/{channel_id}/messages", payload)
        return result

    def close(self) -> None:
        self._client.close()
