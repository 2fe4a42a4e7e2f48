"""
Chat bot component.

Functional core shared by the Telegram and Discord plugins.

Key behaviors:
- Announcements are cut into segments that fit the platform limit and
  queued per target; the send worker takes one segment per tick,
  rotating over the targets
- A failed send is classified: permanent failures remove the target and
  its pending segments, transient ones only drop the segment
- Targets are discovered from inbound events (Telegram updates) or by
  polling the guild list (Discord)
"""

from __future__ import annotations

from collections import OrderedDict, deque
from collections.abc import Hashable, Iterable, Mapping
from typing import Any, Generic, TypeVar
from urllib.parse import quote_plus

from announcer.components.bots.models import (
    DISCORD_CHANNEL_NEWS,
    DISCORD_CHANNEL_TEXT,
    DISCORD_INVITE_PERMISSIONS,
    DiscordRefresh,
    DiscordTarget,
    FailureKind,
    TelegramUpdateAction,
)
from announcer.core.ports.bots import BotAPIError
from announcer.core.services.segmenting import Segment, split_message
from announcer.core.services.translation import Translation

K = TypeVar("K", bound=Hashable)


class SegmentQueues(Generic[K]):
    """Per-target FIFO queues drained round-robin, one segment per pop."""

    def __init__(self) -> None:
        self._queues: OrderedDict[K, deque[Segment]] = OrderedDict()

    def push(self, target: K, segments: Iterable[Segment]) -> None:
        queue = self._queues.setdefault(target, deque())
        queue.extend(segments)

    def pop(self) -> tuple[K, Segment] | None:
        """Next segment of the next target; the target moves to the back."""
        while self._queues:
            target, queue = next(iter(self._queues.items()))
            if not queue:
                del self._queues[target]
                continue
            segment = queue.popleft()
            if queue:
                self._queues.move_to_end(target)
            else:
                del self._queues[target]
            return target, segment
        return None

    def drop(self, target: K) -> int:
        queue = self._queues.pop(target, None)
        return len(queue) if queue else 0

    def rename(self, old: K, new: K) -> None:
        queue = self._queues.pop(old, None)
        if queue:
            self.push(new, queue)

    def pending(self, target: K | None = None) -> int:
        if target is not None:
            return len(self._queues.get(target, ()))
        return sum(len(q) for q in self._queues.values())

    def __len__(self) -> int:
        return self.pending()


def enqueue_text(queues: SegmentQueues[K], targets: Iterable[K], text: str, limit: int) -> int:
    """Segment text once and queue it for every target. Returns segments per target."""
    segments = split_message(text, limit)
    for target in targets:
        queues.push(target, segments)
    return len(segments)


# --- Error classification ---


def classify_telegram_error(error: BotAPIError) -> FailureKind:
    if error.code in (403, 404):
        return FailureKind.PERMANENT
    if error.code == 400 and "chat not found" in error.description.lower():
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT


def classify_discord_error(error: BotAPIError) -> FailureKind:
    if error.code in (403, 404):
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT


# --- Telegram ---

JOINED_STATUSES = ("member", "administrator", "creator")
LEFT_STATUSES = ("left", "kicked")


def interpret_telegram_update(
    update: Mapping[str, Any], bot_id: int, t: Translation
) -> TelegramUpdateAction:
    """Map one getUpdates entry to target list changes and an optional reply."""
    action = TelegramUpdateAction()

    member_update = update.get("my_chat_member")
    if member_update:
        chat_id = int(member_update["chat"]["id"])
        status = member_update.get("new_chat_member", {}).get("status", "")
        if status in JOINED_STATUSES:
            action.add = chat_id
            if member_update["chat"].get("type") != "private":
                action.reply_to = chat_id
                action.reply = t.bot_send_on_this_channel
        elif status in LEFT_STATUSES:
            action.remove = chat_id
        return action

    post = update.get("channel_post")
    if post:
        action.add = int(post["chat"]["id"])
        return action

    message = update.get("message")
    if not message:
        return action

    chat = message["chat"]
    chat_id = int(chat["id"])

    if "migrate_to_chat_id" in message:
        action.migrate = (chat_id, int(message["migrate_to_chat_id"]))
        return action
    if "migrate_from_chat_id" in message:
        action.migrate = (int(message["migrate_from_chat_id"]), chat_id)
        return action

    if chat_id == bot_id:
        return action

    if int(message.get("left_chat_member", {}).get("id", 0)) == bot_id:
        action.remove = chat_id
        return action

    joined = any(int(m.get("id", 0)) == bot_id for m in message.get("new_chat_members", []))
    text = message.get("text", "")

    # Every other message registers its chat; only private chats and joins get a reply
    action.add = chat_id
    if chat.get("type") == "private":
        action.reply_to = chat_id
        action.reply = t.bot_user_greetings if text.startswith("/start") else t.bot_answer_message
    elif joined:
        action.reply_to = chat_id
        action.reply = t.bot_send_on_this_channel
    return action


def apply_telegram_action(targets: list[int], action: TelegramUpdateAction) -> bool:
    """Update the target list in place. Returns True if it changed."""
    changed = False
    if action.migrate is not None:
        old, new = action.migrate
        if old in targets:
            targets.remove(old)
            changed = True
        if new not in targets:
            targets.append(new)
            changed = True
    if action.add is not None and action.add not in targets:
        targets.append(action.add)
        changed = True
    if action.remove is not None and action.remove in targets:
        targets.remove(action.remove)
        changed = True
    return changed


# --- Discord ---


def pick_discord_channels(channels: Iterable[Mapping[str, Any]]) -> list[str]:
    """Announcement channels of a guild, or its text channels if it has none."""
    channels = list(channels)
    news = [str(c["id"]) for c in channels if c.get("type") == DISCORD_CHANNEL_NEWS]
    if news:
        return news
    return [str(c["id"]) for c in channels if c.get("type") == DISCORD_CHANNEL_TEXT]


def refresh_discord_targets(
    current: Iterable[DiscordTarget],
    excluded: Iterable[DiscordTarget],
    guild_channels: Mapping[str, list[str] | None],
) -> DiscordRefresh:
    """
    Rebuild the target list from the bot's guilds.

    guild_channels maps every guild the bot is in to its chosen channels;
    None means the channel list could not be fetched and the guild keeps
    its current targets. Guilds missing from the mapping are gone.
    """
    current = list(current)
    excluded_now = [e for e in excluded if e.guild_id in guild_channels]
    blocked = set(excluded_now)

    targets: list[DiscordTarget] = []
    for guild_id, channel_ids in guild_channels.items():
        if channel_ids is None:
            targets.extend(t for t in current if t.guild_id == guild_id)
            continue
        for channel_id in channel_ids:
            target = DiscordTarget(guild_id=guild_id, channel_id=channel_id)
            if target not in blocked:
                targets.append(target)

    before = set(current)
    after = set(targets)
    return DiscordRefresh(
        targets=targets,
        excluded=excluded_now,
        added=[t for t in targets if t not in before],
        removed=[t for t in current if t not in after],
    )


def discord_invite_url(application_id: str) -> str:
    return (
        "https://discord.com/api/oauth2/authorize"
        f"?client_id={quote_plus(application_id)}&scope=bot&permissions={DISCORD_INVITE_PERMISSIONS}"
    )
