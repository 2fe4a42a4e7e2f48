"""
Shared chat bot plugin machinery.

A BotPlugin owns one platform client built from the configured token, the
persisted target list and the per-target segment queues. All of it lives
on an actor; a timer posts the send tick every two seconds. Subclasses
supply the platform specifics (token check, inbound discovery, sending,
error classification).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Generic, TypeVar

from announcer.components.bots.component import SegmentQueues, enqueue_text
from announcer.components.bots.models import (
    SEND_INTERVAL_SECONDS,
    BotConfig,
    FailureKind,
    SendOutcome,
)
from announcer.core.entities import Announcement
from announcer.core.ports.bots import BotAPIError
from announcer.core.ports.plugin import PluginConfigError, PluginContext
from announcer.core.services.actor import Actor
from announcer.core.services.formatting import config_state, escape
from announcer.core.services.sealing import ConfigStore
from announcer.core.services.segmenting import Segment, split_message

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=BotConfig)
K = TypeVar("K", int, str)


class BotPlugin(ABC, Generic[C, K]):
    name: ClassVar[str]
    limit: ClassVar[int]
    config_model: ClassVar[type[BotConfig]]

    def __init__(
        self,
        ctx: PluginContext,
        client_factory: Callable[[str], Any],
        send_interval: float = SEND_INTERVAL_SECONDS,
    ):
        self.ctx = ctx
        self.client_factory = client_factory
        self.store: ConfigStore[Any] = ConfigStore(
            ctx.datasafe, ctx.tenant_key, self.name, self.config_model, ctx.codec
        )
        self.config: C = self.store.load()
        self.queues: SegmentQueues[K] = SegmentQueues()
        self.client: Any = None
        self.connected_token = ""
        self.actor = Actor(
            f"{self.name} ({ctx.tenant_key})",
            counter=ctx.counter,
            on_error=ctx.errors,
            threaded=ctx.run_workers,
        )
        self.actor.every(send_interval, self._tick)
        try:
            self.actor.call(self._connect)
        except BotAPIError as e:
            self._report(f"can not connect: {e}")

    # --- Platform hooks ---

    @abstractmethod
    def _open(self, client: Any) -> None:
        """Check the token with the platform. Raises BotAPIError."""
        pass

    def _start_inbound(self) -> None:
        pass

    def _stop_inbound(self) -> None:
        pass

    @abstractmethod
    def _target_keys(self) -> list[K]:
        """Current delivery targets in send order."""
        pass

    @abstractmethod
    def _send(self, client: Any, target: K, segment: Segment) -> None:
        """Deliver one segment. Raises BotAPIError."""
        pass

    @abstractmethod
    def _classify(self, error: BotAPIError) -> FailureKind:
        pass

    @abstractmethod
    def _remove_target(self, target: K) -> None:
        """Drop a target after a permanent failure."""
        pass

    def _panel_details(self) -> str:
        return ""

    # --- Helpers (actor thread) ---

    def _report(self, message: str) -> None:
        text = f"{self.name} ({self.ctx.tenant_key}): {message}"
        logger.error(text)
        self.ctx.errors(text)

    def _save_or_report(self, what: str) -> None:
        try:
            self.store.save(self.config)
        except Exception as e:
            self._report(f"error while saving {what}: {e}")

    def _queue_reply(self, target: K, text: str) -> None:
        if text:
            self.queues.push(target, split_message(text, self.limit))

    # --- Connection ---

    def _connect(self) -> None:
        if self.client is not None and self.connected_token == self.config.token:
            return
        self._disconnect()
        if not self.config.token:
            return
        client = self.client_factory(self.config.token)
        try:
            self._open(client)
        except BotAPIError:
            client.close()
            raise
        self.client = client
        self.connected_token = self.config.token
        logger.info("%s (%s): connected", self.name, self.ctx.tenant_key)
        self._start_inbound()

    def _disconnect(self) -> None:
        if self.client is None:
            return
        self._stop_inbound()
        self.client.close()
        self.client = None
        self.connected_token = ""

    @property
    def connected(self) -> bool:
        return self.client is not None

    # --- Send worker ---

    def _tick(self) -> SendOutcome:
        if self.client is None:
            return SendOutcome()
        item = self.queues.pop()
        if item is None:
            return SendOutcome()

        target, segment = item
        try:
            self._send(self.client, target, segment)
        except BotAPIError as e:
            kind = self._classify(e)
            if kind is FailureKind.PERMANENT:
                dropped = self.queues.drop(target)
                self._remove_target(target)
                self._save_or_report("targets")
                self._report(f"removing target {target} ({dropped} segments dropped): {e}")
            else:
                self._report(f"error while sending to {target}: {e}")
            return SendOutcome(target=str(target), failure=kind, error=str(e))
        return SendOutcome(target=str(target), sent=True)

    def tick(self) -> SendOutcome:
        """Run one send tick now and wait for it."""
        return self.actor.call(self._tick)

    # --- Plugin contract ---

    def get_config(self) -> str:
        return self.actor.call(self._render_config)

    def _render_config(self) -> str:
        return f"""<h1>{self.name}</h1>
{config_state(self.connected)}
{self._panel_details()}
<p>{len(self._target_keys())} targets, {len(self.queues)} messages pending</p>
<form method="POST">
<input type="hidden" name="target" value="{self.name}">
<p><input id="{self.name}_token" type="text" name="token" value="{escape(self.config.token)}" placeholder="token"> <label for="{self.name}_token">{self.name} bot API token</label></p>
<p><input type="submit" value="Update"></p>
</form>"""

    def process_config_change(self, form: Mapping[str, str]) -> None:
        self.actor.call(self._apply_form, dict(form))

    def _apply_form(self, form: dict[str, str]) -> None:
        self.config.token = form.get("token", "").strip()
        self.store.save(self.config)
        try:
            self._connect()
        except BotAPIError as e:
            raise PluginConfigError(f"{self.name}: can not connect: {e}") from e

    def new_announcement(self, announcement: Announcement, announcement_id: str) -> None:
        self.actor.call(self._enqueue, announcement)

    def _enqueue(self, announcement: Announcement) -> int:
        if self.client is None:
            logger.debug("%s (%s): not connected, skipping", self.name, self.ctx.tenant_key)
            return 0
        targets = self._target_keys()
        enqueue_text(self.queues, targets, announcement.text, self.limit)
        return len(targets)

    def build_router(self) -> Any | None:
        return None

    def close(self) -> None:
        if not self.actor.stopped:
            self.actor.call(self._disconnect)
        self.actor.stop()
