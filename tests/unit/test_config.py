"""
Unit tests for process configuration and wiring.
"""

import json
import logging

import pytest

from announcer.adapters.datasafe.file import FileDataSafe
from announcer.adapters.datasafe.sqlite import SQLiteDataSafe
from announcer.app_shell.config import (
    DEV_SECRET,
    SECRET_ENV,
    ServerConfig,
    get_secret_key,
    load_server_config,
    parse_address,
    read_datasafe_config,
    read_document,
)
from announcer.app_shell.wiring import build_default_registry, open_datasafe


def write_config(tmp_path, data) -> object:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestLoadServerConfig:
    def test_defaults(self, tmp_path) -> None:
        config = load_server_config(write_config(tmp_path, {}))

        assert config.language == "en"
        assert config.address == "127.0.0.1:8080"
        assert config.login_minutes == 60 * 24
        assert config.datasafe == "file"
        assert not config.log_failed_login

    def test_recognized_keys(self, tmp_path) -> None:
        config = load_server_config(
            write_config(
                tmp_path,
                {
                    "Language": "de",
                    "Address": ":9000",
                    "LogFailedLogin": True,
                    "LoginMinutes": 30,
                    "PathConfig": "tenants",
                    "PathImpressum": "impressum.txt",
                    "PathDSGVO": "dsgvo.txt",
                    "DataSafe": "SQLite",
                    "DataSafeConfig": "db.conf",
                    "Unknown": "ignored",
                },
            )
        )

        assert config.language == "de"
        assert config.log_failed_login
        assert config.login_minutes == 30
        assert config.path_config == "tenants"
        assert config.datasafe == "SQLite"
        assert config.datasafe_config == "db.conf"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_server_config(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{broken", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid JSON"):
            load_server_config(path)

    def test_invalid_login_minutes(self, tmp_path) -> None:
        with pytest.raises(ValueError, match="validation failed"):
            load_server_config(write_config(tmp_path, {"LoginMinutes": 0}))


class TestHelpers:
    @pytest.mark.parametrize(
        "address, expected",
        [
            ("127.0.0.1:8080", ("127.0.0.1", 8080)),
            (":9000", ("0.0.0.0", 9000)),
            ("[::1]:80", ("::1", 80)),
        ],
    )
    def test_parse_address(self, address: str, expected) -> None:
        assert parse_address(address) == expected

    @pytest.mark.parametrize("address", ["localhost", "host:abc", "host:0", "host:70000"])
    def test_parse_address_rejects(self, address: str) -> None:
        with pytest.raises(ValueError):
            parse_address(address)

    def test_documents_resolve_relative_to_config(self, tmp_path) -> None:
        (tmp_path / "impressum.txt").write_text("Contact", encoding="utf-8")

        assert read_document(tmp_path, "impressum.txt") == "Contact"
        assert read_document(tmp_path, "") == ""

    def test_datasafe_config_file(self, tmp_path) -> None:
        (tmp_path / "ds.conf").write_bytes(b"/var/lib/announcer")

        config = ServerConfig(datasafe_config="ds.conf")

        assert read_datasafe_config(config, tmp_path) == b"/var/lib/announcer"
        assert read_datasafe_config(ServerConfig(), tmp_path) == b""

    def test_secret_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv(SECRET_ENV, "from-env")

        assert get_secret_key() == "from-env"

    def test_dev_secret_warns(self, monkeypatch, caplog) -> None:
        monkeypatch.delenv(SECRET_ENV, raising=False)

        with caplog.at_level(logging.WARNING):
            assert get_secret_key() == DEV_SECRET
        assert SECRET_ENV in caplog.text


class TestWiring:
    def test_default_registry_has_all_backends(self) -> None:
        registry = build_default_registry("secret")

        assert registry.plugin_names() == sorted(
            ["RegisterMail", "SimpleSendMail", "RSS", "Telegram", "Discord"]
        )
        assert isinstance(registry.get_datasafe("file")[0], FileDataSafe)
        assert isinstance(registry.get_datasafe("SQLite")[0], SQLiteDataSafe)
        for method in ["", "plain", "bcrypt_plain", "bcrypt64", "argon2"]:
            assert registry.password_method_exists(method)

    def test_open_datasafe_initialises_backend(self, tmp_path) -> None:
        (tmp_path / "ds.conf").write_text(str(tmp_path / "store"), encoding="utf-8")
        config = ServerConfig(datasafe="file", datasafe_config="ds.conf")

        safe = open_datasafe(build_default_registry("secret"), config, tmp_path)

        safe.set_config("t", "RSS", b"x")
        assert (tmp_path / "store" / "config" / "t" / "RSS").read_bytes() == b"x"

    def test_open_unknown_datasafe(self, tmp_path) -> None:
        with pytest.raises(ValueError, match="Unknown data safe"):
            open_datasafe(build_default_registry("secret"), ServerConfig(datasafe="nope"), tmp_path)
