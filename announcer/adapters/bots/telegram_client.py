"""
Telegram Bot API client (httpx).

Every call is a JSON POST to https://api.telegram.org/bot<token>/<method>.
A response with "ok": false raises BotAPIError carrying the API's
error_code, description and, when present, retry_after and
migrate_to_chat_id.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from announcer.core.ports.bots import BotAPIError

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"


class TelegramBotClient:
    def __init__(
        self,
        token: str,
        base_url: str = API_BASE,
        transport: httpx.BaseTransport | None = None,
    ):
        self._token = token
        self._client = httpx.Client(base_url=base_url, timeout=35.0, transport=transport)

    def _api(self, method: str, params: dict[str, Any] | None = None, timeout: float = 35.0) -> Any:
        try:
            response = self._client.post(
                f"/bot{self._token}/{method}", json=params or {}, timeout=timeout
            )
        except httpx.HTTPError as e:
            raise BotAPIError(0, f"{method}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise BotAPIError(response.status_code, f"{method}: invalid response body") from e

        if not body.get("ok"):
            parameters = body.get("parameters") or {}
            raise BotAPIError(
                int(body.get("error_code") or response.status_code),
                str(body.get("description") or "unknown error"),
                retry_after=parameters.get("retry_after"),
                migrate_to_chat_id=parameters.get("migrate_to_chat_id"),
            )
        return body.get("result")

    def get_me(self) -> dict[str, Any]:
        result: dict[str, Any] = self._api("getMe", timeout=10.0)
        return result

    def get_updates(self, offset: int, timeout: int) -> list[dict[str, Any]]:
        result = self._api(
            "getUpdates",
            {
                "offset": offset,
                "timeout": timeout,
                "allowed_updates": ["message", "channel_post", "my_chat_member"],
            },
            timeout=timeout + 10.0,
        )
        return list(result or [])

    def send_message(self, chat_id: int, text: str, silent: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = self._api(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "disable_notification": silent,
                "disable_web_page_preview": True,
            },
        )
        return result

    def close(self) -> None:
        self._client.close()
