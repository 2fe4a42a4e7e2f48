"""
Fixtures for tests that run the whole server: config.json, one tenant
descriptor with every plugin, documents and a file datasafe in tmp_path.
"""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from announcer.adapters.dev_email import create_dev_mailer_factory
from announcer.api.deps import Runtime
from announcer.api.main import create_app
from announcer.app_shell.config import load_server_config
from announcer.app_shell.wiring import build_default_registry, build_runtime
from tests.conftest import (
    TEST_SECRET,
    FakeClientFactory,
    FakeDiscordClient,
    FakeTelegramClient,
)

TENANT_KEY = "t"
USER_PASSWORD = "userpw"
ADMIN_PASSWORD = "adminpw"
PLUGINS = ["RegisterMail", "SimpleSendMail", "RSS", "Telegram", "Discord"]


@pytest.fixture
def server_dir(tmp_path) -> Path:
    tenants = tmp_path / "config"
    tenants.mkdir()
    (tenants / "t.json").write_text(
        json.dumps(
            {
                "Key": TENANT_KEY,
                "ShortDescription": "Test Club",
                "Plugins": PLUGINS,
                "PasswordUser": [USER_PASSWORD],
                "PasswordAdmin": [ADMIN_PASSWORD],
            }
        ),
        encoding="utf-8",
    )
    (tmp_path / "datasafe.conf").write_text(str(tmp_path / "data"), encoding="utf-8")
    (tmp_path / "dsgvo.txt").write_text("We store your address.\n\nNothing else.", encoding="utf-8")
    (tmp_path / "impressum.txt").write_text("Test Club e.V.", encoding="utf-8")
    (tmp_path / "config.json").write_text(
        json.dumps(
            {
                "PathConfig": "config",
                "PathDSGVO": "dsgvo.txt",
                "PathImpressum": "impressum.txt",
                "DataSafe": "file",
                "DataSafeConfig": "datasafe.conf",
                "LogFailedLogin": True,
                "LoginMinutes": 30,
            }
        ),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def telegram_clients() -> FakeClientFactory:
    return FakeClientFactory(FakeTelegramClient)


@pytest.fixture
def discord_clients() -> FakeClientFactory:
    return FakeClientFactory(FakeDiscordClient, guilds={"g1": [{"id": "c1", "type": 0}]})


@pytest.fixture
def runtime(server_dir, mailer, captcha, telegram_clients, discord_clients) -> Runtime:
    registry = build_default_registry(
        TEST_SECRET,
        mailer_factory=create_dev_mailer_factory(mailer),
        captcha=captcha,
        telegram_client_factory=telegram_clients,
        discord_client_factory=discord_clients,
    )
    config = load_server_config(server_dir / "config.json")
    runtime = build_runtime(config, server_dir, registry, TEST_SECRET, run_workers=False)
    yield runtime
    runtime.shutdown(timeout=5)


@pytest.fixture
def client(runtime) -> TestClient:
    return TestClient(create_app(runtime))


def login(client: TestClient, password: str) -> None:
    response = client.post(f"/{TENANT_KEY}/login", data={"password": password}, follow_redirects=False)
    assert response.status_code == 303


def publish(client: TestClient, runtime: Runtime, subject: str, message: str) -> None:
    response = client.post(
        f"/{TENANT_KEY}/",
        data={"target": "publish", "dsgvo": "on", "subject": subject, "message": message},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert runtime.counter.wait_idle(poll_interval=0.01, timeout=5)
