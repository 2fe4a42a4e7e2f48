from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import pytest

from announcer.adapters.datasafe.file import FileDataSafe
from announcer.adapters.dev_email import DevEmailAdapter, create_dev_mailer_factory
from announcer.core.ports.bots import BotAPIError
from announcer.core.ports.captcha import DEFAULT_CAPTCHA_WINDOW, CaptchaChallenge
from announcer.core.ports.email import MailerFactory
from announcer.core.ports.plugin import PluginContext
from announcer.core.services.process_counter import ProcessCounter
from announcer.core.services.sealing import SecretCodec
from announcer.core.services.translation import Translation, load_translation

TEST_SECRET = "test-secret"


class ErrorRecorder:
    """Error sink that keeps every reported message."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def __call__(self, message: str) -> None:
        self.messages.append(message)


class FixedCaptcha:
    """Captcha whose only valid challenge is CHALLENGE_ID answered with ANSWER."""

    CHALLENGE_ID = "fixed-challenge"
    ANSWER = "42"

    def issue(self, now: datetime) -> CaptchaChallenge:
        return CaptchaChallenge(id=self.CHALLENGE_ID, question="40 + 2 = ?")

    def verify(
        self,
        challenge_id: str,
        answer: str,
        now: datetime,
        window: timedelta = DEFAULT_CAPTCHA_WINDOW,
    ) -> bool:
        return challenge_id == self.CHALLENGE_ID and answer.strip() == self.ANSWER


class FakeTelegramClient:
    """In-memory Telegram Bot API. A token of "bad" is rejected by get_me."""

    def __init__(self, token: str, failures: dict[int, BotAPIError] | None = None) -> None:
        self.token = token
        self.failures = failures if failures is not None else {}
        self.sent: list[tuple[int, str, bool]] = []
        self.closed = False

    def get_me(self) -> dict[str, Any]:
        if self.token == "bad":
            raise BotAPIError(401, "Unauthorized")
        return {"id": 999, "username": "news_bot"}

    def get_updates(self, offset: int, timeout: int) -> list[dict[str, Any]]:
        return []

    def send_message(self, chat_id: int, text: str, silent: bool = False) -> dict[str, Any]:
        error = self.failures.get(chat_id)
        if error is not None:
            raise error
        self.sent.append((chat_id, text, silent))
        return {"message_id": len(self.sent)}

    def close(self) -> None:
        self.closed = True


class FakeDiscordClient:
    """In-memory Discord REST API over a shared guild -> channels mapping."""

    def __init__(
        self,
        token: str,
        guilds: dict[str, list[dict[str, Any]]] | None = None,
        failures: dict[str, BotAPIError] | None = None,
    ) -> None:
        self.token = token
        self.guilds = guilds if guilds is not None else {}
        self.failures = failures if failures is not None else {}
        self.sent: list[tuple[str, str, bool]] = []
        self.closed = False

    def get_current_user(self) -> dict[str, Any]:
        if self.token == "bad":
            raise BotAPIError(401, "401: Unauthorized")
        return {"id": "111", "username": "news_bot"}

    def get_application(self) -> dict[str, Any]:
        return {"id": "222"}

    def get_guilds(self) -> list[dict[str, Any]]:
        return [{"id": guild_id} for guild_id in self.guilds]

    def get_guild_channels(self, guild_id: str) -> list[dict[str, Any]]:
        return list(self.guilds[guild_id])

    def send_message(self, channel_id: str, content: str, silent: bool = False) -> dict[str, Any]:
        error = self.failures.get(channel_id)
        if error is not None:
            raise error
        self.sent.append((channel_id, content, silent))
        return {"id": str(len(self.sent))}

    def close(self) -> None:
        self.closed = True


class FakeClientFactory:
    """Client factory that remembers every client it built."""

    def __init__(self, client_cls: type, **shared: Any) -> None:
        self.client_cls = client_cls
        self.shared = shared
        self.clients: list[Any] = []

    def __call__(self, token: str) -> Any:
        client = self.client_cls(token, **self.shared)
        self.clients.append(client)
        return client

    @property
    def last(self) -> Any:
        return self.clients[-1]


@pytest.fixture
def datasafe(tmp_path) -> FileDataSafe:
    """File datasafe rooted in a temporary directory."""
    safe = FileDataSafe()
    safe.initialise_datasafe(str(tmp_path / "data").encode("utf-8"))
    return safe


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec(TEST_SECRET)


@pytest.fixture
def translation() -> Translation:
    return load_translation("en")


@pytest.fixture
def counter() -> ProcessCounter:
    return ProcessCounter()


@pytest.fixture
def errors() -> ErrorRecorder:
    return ErrorRecorder()


@pytest.fixture
def captcha() -> FixedCaptcha:
    return FixedCaptcha()


@pytest.fixture
def mailer() -> DevEmailAdapter:
    return DevEmailAdapter()


@pytest.fixture
def mailer_factory(mailer: DevEmailAdapter) -> MailerFactory:
    return create_dev_mailer_factory(mailer)


@pytest.fixture
def make_context(datasafe, codec, translation, counter, errors) -> Callable[..., PluginContext]:
    """
    Build PluginContexts for one tenant.

    Workers are off: actors run inline and ticks are driven by the test.
    """

    def _make(key: str = "test", description: str = "Test Tenant") -> PluginContext:
        return PluginContext(
            tenant_key=key,
            short_description=description,
            errors=errors,
            datasafe=datasafe,
            codec=codec,
            translation=translation,
            counter=counter,
            run_workers=False,
        )

    return _make
