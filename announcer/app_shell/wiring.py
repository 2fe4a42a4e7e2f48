"""
Process wiring.

Builds the registry with every built-in backend and turns a ServerConfig
into a Runtime: translation, initialised DataSafe, loaded tenants.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from pathlib import Path

from announcer.adapters.auth.password_methods import register_password_methods
from announcer.adapters.bots.discord_client import DiscordBotClient
from announcer.adapters.bots.telegram_client import TelegramBotClient
from announcer.adapters.captcha import SignedArithmeticCaptcha
from announcer.adapters.datasafe.file import FileDataSafe
from announcer.adapters.datasafe.sqlite import SQLiteDataSafe
from announcer.adapters.smtp_email import SMTPEmailAdapter
from announcer.api.deps import Runtime
from announcer.app_shell.config import (
    ServerConfig,
    read_datasafe_config,
    read_document,
    resolve,
)
from announcer.components.bots import DiscordPlugin, TelegramPlugin
from announcer.components.host import load_tenants
from announcer.components.register_mail import RegisterMailPlugin
from announcer.components.rss import RSSPlugin
from announcer.components.simple_mail import SimpleMailPlugin
from announcer.core.ports.bots import DiscordClientPort, TelegramClientPort
from announcer.core.ports.captcha import CaptchaPort
from announcer.core.ports.datasafe import DataSafePort
from announcer.core.ports.email import MailerFactory
from announcer.core.registry import Registry
from announcer.core.services.process_counter import ProcessCounter
from announcer.core.services.sealing import SecretCodec
from announcer.core.services.translation import load_translation

logger = logging.getLogger(__name__)


def build_default_registry(
    secret: str,
    mailer_factory: MailerFactory = SMTPEmailAdapter.from_settings,
    captcha: CaptchaPort | None = None,
    telegram_client_factory: Callable[[str], TelegramClientPort] = TelegramBotClient,
    discord_client_factory: Callable[[str], DiscordClientPort] = DiscordBotClient,
) -> Registry:
    registry = Registry()

    registry.register_datasafe(FileDataSafe(), "file")
    registry.register_datasafe(SQLiteDataSafe(), "SQLite")

    register_password_methods(registry)

    captcha = captcha or SignedArithmeticCaptcha(secret)
    registry.register_plugin(
        partial(RegisterMailPlugin, mailer_factory=mailer_factory, captcha=captcha),
        "RegisterMail",
    )
    registry.register_plugin(partial(SimpleMailPlugin, mailer_factory=mailer_factory), "SimpleSendMail")
    registry.register_plugin(RSSPlugin, "RSS")
    registry.register_plugin(partial(TelegramPlugin, client_factory=telegram_client_factory), "Telegram")
    registry.register_plugin(partial(DiscordPlugin, client_factory=discord_client_factory), "Discord")
    return registry


def open_datasafe(registry: Registry, config: ServerConfig, base_dir: Path) -> DataSafePort:
    """
    Look up and initialise the configured DataSafe.
    Raises ValueError for an unknown backend name.
    """
    datasafe, found = registry.get_datasafe(config.datasafe)
    if not found or datasafe is None:
        raise ValueError(f"Unknown data safe {config.datasafe!r}")
    datasafe.initialise_datasafe(read_datasafe_config(config, base_dir))
    return datasafe


def build_runtime(
    config: ServerConfig,
    base_dir: Path,
    registry: Registry,
    secret: str,
    run_workers: bool = True,
) -> Runtime:
    translation = load_translation(config.language)
    logger.info("Language set to %r", config.language)

    datasafe = open_datasafe(registry, config, base_dir)
    counter = ProcessCounter()
    hosts = load_tenants(
        resolve(base_dir, config.path_config),
        registry=registry,
        datasafe=datasafe,
        codec=SecretCodec(secret),
        translation=translation,
        counter=counter,
        run_workers=run_workers,
    )
    logger.info("Loaded %d tenants", len(hosts))

    return Runtime(
        config=config,
        translation=translation,
        datasafe=datasafe,
        counter=counter,
        hosts={host.key: host for host in hosts},
        impressum=read_document(base_dir, config.path_impressum),
        dsgvo=read_document(base_dir, config.path_dsgvo),
    )
