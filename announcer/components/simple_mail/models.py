"""SimpleSendMail component models."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from announcer.core.services.sealing import PluginConfig

PLUGIN_NAME = "SimpleSendMail"


class SimpleMailConfig(PluginConfig):
    secret_fields: ClassVar[tuple[str, ...]] = ("smtp_password",)

    subject_prefix: str = Field(default="", alias="SubjectPrefix")
    from_address: str = Field(default="", alias="From")
    to: list[str] = Field(default_factory=list, alias="To")
    smtp_server: str = Field(default="", alias="SMTPServer")
    smtp_server_port: int = Field(default=587, alias="SMTPServerPort")
    smtp_user: str = Field(default="", alias="SMTPUser")
    smtp_password: str = Field(default="", alias="SMTPPassword")
