"""
RegisterMail component.

Double opt-in e-mail registration with a rate-limited, retrying send queue.
"""

from announcer.components.register_mail.component import (
    build_mail,
    build_unsubscribe_url,
    build_verify_url,
    enqueue_announcement,
    is_complete,
    run_ban,
    run_delete,
    run_send_tick,
    run_subscribe,
    run_unsubscribe,
    run_verify,
)
from announcer.components.register_mail.models import (
    MAX_RETRIES,
    PLUGIN_NAME,
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
from announcer.components.register_mail.plugin import RegisterMailPlugin

__all__ = [
    # Component
    "build_mail",
    "build_unsubscribe_url",
    "build_verify_url",
    "enqueue_announcement",
    "is_complete",
    "run_ban",
    "run_delete",
    "run_send_tick",
    "run_subscribe",
    "run_unsubscribe",
    "run_verify",
    # Models
    "MAX_RETRIES",
    "PLUGIN_NAME",
    "QueueItem",
    "RegisterMailConfig",
    "SubscribeError",
    "SubscribeInput",
    "SubscribeOutput",
    "SubscriberEntry",
    "TickResult",
    "UnsubscribeOutcome",
    "VerifyOutcome",
    # Plugin
    "RegisterMailPlugin",
]
