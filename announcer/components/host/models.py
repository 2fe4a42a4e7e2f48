"""
Announcement host models.

Tenant descriptor, host lifecycle state, publish input/output and the
fan-out handle returned to callers.
"""

from __future__ import annotations

from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Lifecycle ---


class HostState(Enum):
    """
    Tenant host state.

    unregistered -> loading -> active (terminal until process exit)
    """

    UNREGISTERED = "unregistered"
    LOADING = "loading"
    ACTIVE = "active"


class LoginLevel(Enum):
    USER = "user"
    ADMIN = "admin"


# --- Configuration ---


class TenantConfigError(Exception):
    """Tenant descriptor can not be loaded. Fatal at startup."""


class TenantConfig(BaseModel):
    """One tenant descriptor file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(alias="Key")
    short_description: str = Field(default="", alias="ShortDescription")
    plugins: list[str] = Field(default_factory=list, alias="Plugins")
    password_admin: list[str] = Field(default_factory=list, alias="PasswordAdmin")
    password_user: list[str] = Field(default_factory=list, alias="PasswordUser")
    password_method: str = Field(default="", alias="PasswordMethod")
    show_errors_to_users: bool = Field(default=False, alias="ShowErrorsToUsers")


# --- Publish ---


@dataclass(frozen=True)
class ValidationError:
    """Validation error detail."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class PublishInput:
    dsgvo: str
    subject: str
    message: str


@dataclass
class FanOut:
    """
    Handle on one announcement's plugin deliveries.

    The HTTP handler never waits on it; tests use wait().
    """

    announcement_id: str
    futures: list[Future[None]] = field(default_factory=list)

    def wait(self, timeout: float | None = None) -> bool:
        """True if every delivery finished within timeout."""
        if not self.futures:
            return True
        _, pending = wait(self.futures, timeout=timeout)
        return not pending

    @property
    def done(self) -> bool:
        return all(f.done() for f in self.futures)


@dataclass
class PublishOutput:
    success: bool
    errors: list[ValidationError] = field(default_factory=list)
    fan_out: FanOut | None = None
