"""
Plugin port.

Every delivery backend (mail, chat bots, RSS) attached to a tenant exposes
the same small capability set:

- get_config: HTML fragment for the admin panel
- process_config_change: apply a submitted admin form
- new_announcement: accept a freshly published announcement

Plugins that serve pages of their own (subscribe forms, feeds) also return
a router from build_router; the host mounts it under /{key}/.

Factories registered in the Registry receive a PluginContext holding the
tenant identity, the write-only error sink and the shared collaborators.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from announcer.core.entities import Announcement
from announcer.core.ports.datasafe import DataSafePort

if TYPE_CHECKING:
    from announcer.core.services.process_counter import ProcessCounter
    from announcer.core.services.sealing import SecretCodec
    from announcer.core.services.translation import Translation

ErrorSink = Callable[[str], None]


class PluginConfigError(Exception):
    """Submitted plugin configuration was rejected. The message is shown to the admin."""


@dataclass(frozen=True)
class PluginContext:
    """Everything a plugin factory gets to build one tenant's plugin instance."""

    tenant_key: str
    short_description: str
    errors: ErrorSink
    datasafe: DataSafePort
    codec: SecretCodec
    translation: Translation
    counter: ProcessCounter
    run_workers: bool = True  # False in tests: ticks are driven by hand


class PluginPort(Protocol):
    name: str

    def get_config(self) -> str:
        """Admin panel HTML fragment."""
        ...

    def process_config_change(self, form: Mapping[str, str]) -> None:
        """Apply an admin form. Raises PluginConfigError on bad input."""
        ...

    def new_announcement(self, announcement: Announcement, announcement_id: str) -> None:
        """Deliver or enqueue an announcement."""
        ...

    def build_router(self) -> Any | None:
        """Optional FastAPI router with the plugin's own pages."""
        ...

    def close(self) -> None:
        """Stop background workers."""
        ...


PluginFactory = Callable[[PluginContext], PluginPort]
