"""
Telegram plugin.

Targets are chat ids learned from getUpdates: private chats that talk to
the bot, groups and channels it is added to, and /start commands. A daemon
thread long-polls the Bot API and hands every update to the actor.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from announcer.adapters.bots.telegram_client import TelegramBotClient
from announcer.components.bots.component import (
    apply_telegram_action,
    classify_telegram_error,
    interpret_telegram_update,
)
from announcer.components.bots.models import (
    SEND_INTERVAL_SECONDS,
    TELEGRAM_MESSAGE_LIMIT,
    TELEGRAM_PLUGIN_NAME,
    TELEGRAM_POLL_RETRY_SECONDS,
    TELEGRAM_POLL_TIMEOUT,
    FailureKind,
    TelegramConfig,
    TelegramUpdateAction,
)
from announcer.components.bots.plugin import BotPlugin
from announcer.core.ports.bots import BotAPIError, TelegramClientPort
from announcer.core.ports.plugin import PluginContext
from announcer.core.services.actor import ActorStoppedError
from announcer.core.services.formatting import escape
from announcer.core.services.segmenting import Segment

logger = logging.getLogger(__name__)


class TelegramPlugin(BotPlugin[TelegramConfig, int]):
    name = TELEGRAM_PLUGIN_NAME
    limit = TELEGRAM_MESSAGE_LIMIT
    config_model = TelegramConfig

    def __init__(
        self,
        ctx: PluginContext,
        client_factory: Callable[[str], TelegramClientPort] = TelegramBotClient,
        send_interval: float = SEND_INTERVAL_SECONDS,
        poll_timeout: int = TELEGRAM_POLL_TIMEOUT,
    ):
        self.bot_id = 0
        self.bot_username = ""
        self.poll_timeout = poll_timeout
        self._poll_stop: threading.Event | None = None
        super().__init__(ctx, client_factory, send_interval)

    # --- Connection ---

    def _open(self, client: TelegramClientPort) -> None:
        me = client.get_me()
        self.bot_id = int(me["id"])
        self.bot_username = str(me.get("username", ""))

    def _start_inbound(self) -> None:
        if not self.ctx.run_workers:
            return
        stop = threading.Event()
        self._poll_stop = stop
        threading.Thread(
            target=self._poll_loop,
            args=(self.client, stop),
            name=f"telegram-poll-{self.ctx.tenant_key}",
            daemon=True,
        ).start()

    def _stop_inbound(self) -> None:
        # The poller is not joined: it may be waiting on this actor
        if self._poll_stop is not None:
            self._poll_stop.set()
            self._poll_stop = None

    def _poll_loop(self, client: TelegramClientPort, stop: threading.Event) -> None:
        offset = 0
        while not stop.is_set():
            try:
                updates = client.get_updates(offset, self.poll_timeout)
            except BotAPIError as e:
                if stop.is_set():
                    break
                if e.code == 401:
                    self._report(f"token rejected, polling stopped: {e}")
                    break
                logger.warning("%s (%s): getUpdates failed: %s", self.name, self.ctx.tenant_key, e)
                stop.wait(TELEGRAM_POLL_RETRY_SECONDS)
                continue
            except Exception as e:
                # Closing the client under a running long poll lands here
                if not stop.is_set():
                    self._report(f"polling stopped: {e}")
                break

            for update in updates:
                offset = max(offset, int(update.get("update_id", 0)) + 1)
                try:
                    self.actor.call(self._handle_update, client, update)
                except ActorStoppedError:
                    return
                except Exception as e:
                    self._report(f"error while handling update: {e}")

    # --- Inbound ---

    def handle_update(self, update: dict[str, Any]) -> TelegramUpdateAction | None:
        """Process one getUpdates entry with the current client."""
        return self.actor.call(self._handle_update, self.client, update)

    def _handle_update(
        self, client: TelegramClientPort | None, update: dict[str, Any]
    ) -> TelegramUpdateAction | None:
        if client is None or client is not self.client:
            return None  # stale poller of a replaced token

        action = interpret_telegram_update(update, self.bot_id, self.ctx.translation)
        if action.migrate is not None:
            self.queues.rename(*action.migrate)
        if action.remove is not None:
            self.queues.drop(action.remove)
        if apply_telegram_action(self.config.targets, action):
            logger.info(
                "%s (%s): targets updated, %d known",
                self.name,
                self.ctx.tenant_key,
                len(self.config.targets),
            )
            self._save_or_report("targets")
        if action.reply_to is not None:
            self._queue_reply(action.reply_to, action.reply)
        return action

    # --- Sending ---

    def _target_keys(self) -> list[int]:
        return list(self.config.targets)

    def _send(self, client: TelegramClientPort, target: int, segment: Segment) -> None:
        try:
            client.send_message(target, segment.text, silent=segment.silent)
        except BotAPIError as e:
            if e.migrate_to_chat_id is None:
                raise
            new_id = int(e.migrate_to_chat_id)
            apply_telegram_action(self.config.targets, TelegramUpdateAction(migrate=(target, new_id)))
            self.queues.rename(target, new_id)
            self._save_or_report("targets")
            client.send_message(new_id, segment.text, silent=segment.silent)

    def _classify(self, error: BotAPIError) -> FailureKind:
        return classify_telegram_error(error)

    def _remove_target(self, target: int) -> None:
        if target in self.config.targets:
            self.config.targets.remove(target)

    def _panel_details(self) -> str:
        if not self.bot_username:
            return ""
        return f'<p><a href="https://t.me/{escape(self.bot_username)}">@{escape(self.bot_username)}</a></p>'
