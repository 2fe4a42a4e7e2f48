"""
Announcement host component.

One tenant: identity, credentials, plugins, error log and publish fan-out.
"""

from announcer.components.host.component import (
    ERROR_LOG_KEY,
    ERROR_TARGET,
    AnnouncementHost,
    TenantDirectory,
    load_tenant_config,
    load_tenants,
    validate_key,
    validate_publish,
)
from announcer.components.host.models import (
    FanOut,
    HostState,
    LoginLevel,
    PublishInput,
    PublishOutput,
    TenantConfig,
    TenantConfigError,
    ValidationError,
)

__all__ = [
    # Component
    "AnnouncementHost",
    "TenantDirectory",
    "load_tenant_config",
    "load_tenants",
    "validate_key",
    "validate_publish",
    "ERROR_LOG_KEY",
    "ERROR_TARGET",
    # Models
    "FanOut",
    "HostState",
    "LoginLevel",
    "PublishInput",
    "PublishOutput",
    "TenantConfig",
    "TenantConfigError",
    "ValidationError",
]
