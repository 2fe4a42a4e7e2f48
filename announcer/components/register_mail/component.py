"""
RegisterMail component.

Functional core for double opt-in mail registration and the rate-limited
send queue. Every function works on a RegisterMailConfig in place; the
plugin runs them on its actor and persists afterwards.

Key behaviors:
- Subscribe stores a hashed entry and queues a verification mail whose URL
  carries the salt and the address
- An address is never stored in plaintext twice; hashed entries are matched
  by recomputing the digest with their salt (constant-time compare)
- Verify is the only hashed -> plain transition, admin ban the only
  plain -> hashed one
- The send tick takes up to RateLimit items (0 = all) from the head of the
  queue; failed items go back to the tail until they failed more than
  MAX_RETRIES times
"""

from __future__ import annotations

import binascii
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from urllib.parse import quote_plus

from announcer.components.register_mail.models import (
    MAX_RETRIES,
    QueuedAnnouncement,
    QueueItem,
    RegisterMailConfig,
    SubscribeError,
    SubscribeInput,
    SubscribeOutput,
    SubscriberEntry,
    TickResult,
    UnsubscribeOutcome,
    VerifyOutcome,
)
from announcer.core.entities import Announcement
from announcer.core.ports.captcha import CaptchaPort
from announcer.core.ports.email import (
    EmailAddress,
    EmailMessage,
    InvalidAddressError,
    MailerFactory,
    SMTPSettings,
)
from announcer.core.services.formatting import format_text
from announcer.core.services.hashing import (
    b64decode,
    b64encode,
    hash_data,
    verify_hash,
)

logger = logging.getLogger(__name__)


# --- Configuration ---


def is_complete(config: RegisterMailConfig) -> bool:
    """All settings needed to send are present."""
    try:
        EmailAddress.parse(config.from_address)
    except InvalidAddressError:
        return False
    return bool(
        config.smtp_server
        and config.smtp_user
        and config.smtp_password
        and 0 <= config.smtp_server_port <= 65535
        and config.rate_limit >= 0
        and config.register_mail_text
        and config.unregister_link_text
        and config.server_name
    )


def smtp_settings(config: RegisterMailConfig) -> SMTPSettings:
    return SMTPSettings(
        server=config.smtp_server,
        port=config.smtp_server_port,
        user=config.smtp_user,
        password=config.smtp_password,
    )


def build_verify_url(server_name: str, salt: str, address: str) -> str:
    return (
        f"{server_name}/RegisterMail/verify.html"
        f"?key={quote_plus(salt)}&mail={quote_plus(address)}"
    )


def build_unsubscribe_url(server_name: str, salt: str, address: str) -> str:
    return (
        f"{server_name}/RegisterMail/unsubscribe.html"
        f"?key={quote_plus(salt)}&mail={quote_plus(address)}"
    )


# --- Subscriber list ---


def matches_hashed(entry: SubscriberEntry, address: str) -> bool:
    """
    True if a hashed entry was produced from address.

    Raises:
        ValueError: stored digest or salt is not valid base64
    """
    try:
        digest = b64decode(entry.data)
        salt = b64decode(entry.salt)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"corrupt subscriber entry: {e}") from e
    return verify_hash(address.encode("utf-8"), digest, salt)


def find_by_salt(config: RegisterMailConfig, salt: str) -> int | None:
    for i, entry in enumerate(config.to_data):
        if entry.salt == salt:
            return i
    return None


def find_plain(config: RegisterMailConfig, address: str) -> int | None:
    for i, entry in enumerate(config.to_data):
        if not entry.hash and entry.data == address:
            return i
    return None


def _remove_entry(config: RegisterMailConfig, index: int) -> SubscriberEntry:
    # Swap with last and truncate
    entries = config.to_data
    removed = entries[index]
    entries[index] = entries[-1]
    entries.pop()
    return removed


def _drop_queued_for(config: RegisterMailConfig, salt: str) -> int:
    before = len(config.queue)
    config.queue = [item for item in config.queue if item.to.salt != salt]
    return before - len(config.queue)


def run_subscribe(
    config: RegisterMailConfig,
    input: SubscribeInput,
    captcha: CaptchaPort,
    description: str,
    now: datetime | None = None,
) -> SubscribeOutput:
    """
    Register a new address as a hashed entry and queue its verification mail.

    Checks, in order: consent, captcha, registration password, address
    syntax, plaintext duplicate, hashed duplicate.
    """
    now = now or datetime.now(UTC)

    if not input.dsgvo:
        return SubscribeOutput(success=False, error=SubscribeError.CONSENT_MISSING)

    if not captcha.verify(input.captcha_id, input.captcha_answer, now):
        return SubscribeOutput(success=False, error=SubscribeError.CAPTCHA_FAILED)

    if input.register_password != config.register_password:
        return SubscribeOutput(success=False, error=SubscribeError.PASSWORD_MISMATCH)

    try:
        address = EmailAddress.parse(input.mail).email
    except InvalidAddressError:
        return SubscribeOutput(success=False, error=SubscribeError.INVALID_ADDRESS)

    for entry in config.to_data:
        if entry.hash:
            if matches_hashed(entry, address):
                return SubscribeOutput(success=False, error=SubscribeError.BANNED)
        elif entry.data == address:
            return SubscribeOutput(success=False, error=SubscribeError.ALREADY_REGISTERED)

    digest, salt_bytes = hash_data(address.encode("utf-8"))
    salt = b64encode(salt_bytes)
    entry = SubscriberEntry(data=b64encode(digest), salt=salt, hash=True)
    config.to_data.append(entry)

    verify_url = build_verify_url(config.server_name, salt, address)
    config.queue.append(
        QueueItem(
            to=SubscriberEntry(data=address, salt=salt, hash=False),
            announcement=QueuedAnnouncement(
                header=description,
                message=f"{config.register_mail_text}\n\n{verify_url}",
                time=now,
            ),
        )
    )
    return SubscribeOutput(success=True, entry=entry, verify_url=verify_url)


def run_verify(config: RegisterMailConfig, salt: str, address: str) -> VerifyOutcome:
    """Turn the hashed entry with this salt into a confirmed one."""
    if not salt or not address:
        return VerifyOutcome.FORBIDDEN
    index = find_by_salt(config, salt)
    if index is None:
        return VerifyOutcome.FORBIDDEN
    entry = config.to_data[index]
    if not entry.hash:
        return VerifyOutcome.ALREADY_CONFIRMED
    if not matches_hashed(entry, address):
        return VerifyOutcome.FORBIDDEN
    if find_plain(config, address) is not None:
        # Confirmed through another entry meanwhile
        _remove_entry(config, index)
        return VerifyOutcome.ALREADY_CONFIRMED
    config.to_data[index] = SubscriberEntry(data=address, salt=salt, hash=False)
    return VerifyOutcome.VERIFIED


def run_unsubscribe(config: RegisterMailConfig, salt: str, address: str) -> UnsubscribeOutcome:
    """
    Remove a confirmed entry identified by salt and address.

    Hashed or unknown entries are left alone and reported like a success.
    """
    if not salt or not address:
        return UnsubscribeOutcome.FORBIDDEN
    index = find_by_salt(config, salt)
    if index is None:
        return UnsubscribeOutcome.UNCHANGED
    entry = config.to_data[index]
    if entry.hash or entry.data != address:
        return UnsubscribeOutcome.UNCHANGED
    _remove_entry(config, index)
    _drop_queued_for(config, salt)
    return UnsubscribeOutcome.REMOVED


def run_delete(config: RegisterMailConfig, address: str = "", salt: str = "") -> bool:
    """Admin: remove an entry so the address may register again."""
    index = find_plain(config, address) if address else None
    if index is None and salt:
        index = find_by_salt(config, salt)
    if index is None:
        return False
    removed = _remove_entry(config, index)
    _drop_queued_for(config, removed.salt)
    return True


def run_ban(config: RegisterMailConfig, address: str) -> bool:
    """Admin: replace a confirmed address by its hash, blocking re-registration."""
    index = find_plain(config, address)
    if index is None:
        return False
    entry = config.to_data[index]
    # Fresh salt: old verify and unsubscribe links must stop working
    digest, salt_bytes = hash_data(address.encode("utf-8"))
    config.to_data[index] = SubscriberEntry(
        data=b64encode(digest), salt=b64encode(salt_bytes), hash=True
    )
    _drop_queued_for(config, entry.salt)
    return True


# --- Queue ---


def enqueue_announcement(config: RegisterMailConfig, announcement: Announcement) -> int:
    """Queue one mail per confirmed subscriber. Returns the number queued."""
    queued = 0
    for entry in config.to_data:
        if entry.hash:
            continue
        url = build_unsubscribe_url(config.server_name, entry.salt, entry.data)
        config.queue.append(
            QueueItem(
                to=entry.model_copy(),
                announcement=QueuedAnnouncement(
                    header=announcement.header,
                    message=f"{announcement.message}\n\n{config.unregister_link_text}\n\n{url}",
                    time=announcement.time,
                ),
                unsubscribe_url=url,
            )
        )
        queued += 1
    return queued


def build_mail(config: RegisterMailConfig, item: QueueItem) -> EmailMessage:
    subject = item.announcement.header
    if config.subject_prefix:
        subject = f"{config.subject_prefix} {subject}"
    headers = {}
    if item.unsubscribe_url:
        headers["List-Unsubscribe"] = f"<{item.unsubscribe_url}>"
        headers["List-Unsubscribe-Post"] = "List-Unsubscribe=One-Click"
    return EmailMessage(
        recipients=(EmailAddress(item.to.data),),
        subject=subject,
        body_text=item.announcement.message,
        body_html=format_text(item.announcement.message),
        sender=EmailAddress.parse(config.from_address),
        headers=headers,
    )


def run_send_tick(
    config: RegisterMailConfig,
    mailer_factory: MailerFactory,
    report: Callable[[str], None],
) -> TickResult:
    """
    Process one batch of the send queue.

    Skips the whole tick while the configuration is incomplete.
    """
    if not is_complete(config):
        return TickResult(skipped=True)

    count = config.rate_limit
    if count == 0 or count > len(config.queue):
        count = len(config.queue)
    batch = config.queue[:count]
    config.queue = config.queue[count:]

    result = TickResult(processed=len(batch))
    if not batch:
        return result

    mailer = mailer_factory(smtp_settings(config))
    for item in batch:
        if item.to.hash:
            continue
        send_result = mailer.send(build_mail(config, item))
        if send_result.ok:
            result.sent += 1
            continue

        result.failed += 1
        item.number_errors += 1
        if item.number_errors <= MAX_RETRIES:
            config.queue.append(item)
            result.requeued += 1
            report(
                f"error while sending announcement ({item.announcement.header}), "
                f"attempt {item.number_errors}: {send_result.error}"
            )
        else:
            result.dropped += 1
            report(
                f"giving up on announcement ({item.announcement.header}) "
                f"after {item.number_errors} attempts: {send_result.error}"
            )
    return result
