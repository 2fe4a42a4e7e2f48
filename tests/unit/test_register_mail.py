"""
Unit tests for the RegisterMail component and plugin.

The functional core is driven directly on RegisterMailConfig objects; the
plugin runs with workers off so ticks happen only when a test asks.
"""

import json
from datetime import UTC, datetime

import pytest

from announcer.components.register_mail import (
    MAX_RETRIES,
    QueueItem,
    RegisterMailConfig,
    RegisterMailPlugin,
    SubscribeError,
    SubscribeInput,
    UnsubscribeOutcome,
    VerifyOutcome,
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
from announcer.core.entities import Announcement
from announcer.core.ports.plugin import PluginConfigError
from announcer.core.services.sealing import SEALED_PREFIX
from tests.conftest import FixedCaptcha

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
ADDRESS = "reader@example.com"


def complete_config(**overrides) -> RegisterMailConfig:
    data = {
        "from_address": "news@example.com",
        "smtp_server": "smtp.example.com",
        "smtp_user": "news",
        "smtp_password": "secret",
        "register_mail_text": "Please confirm",
        "unregister_link_text": "Unsubscribe here",
        "server_name": "https://example.com/t",
    }
    data.update(overrides)
    return RegisterMailConfig(**data)


def subscribe_input(mail: str = ADDRESS, **overrides) -> SubscribeInput:
    data = {
        "mail": mail,
        "dsgvo": "on",
        "captcha_id": FixedCaptcha.CHALLENGE_ID,
        "captcha_answer": FixedCaptcha.ANSWER,
    }
    data.update(overrides)
    return SubscribeInput(**data)


def subscribe_and_verify(config: RegisterMailConfig, captcha, address: str = ADDRESS) -> str:
    output = run_subscribe(config, subscribe_input(address), captcha, "Tenant", NOW)
    assert output.success
    assert run_verify(config, output.entry.salt, address) is VerifyOutcome.VERIFIED
    config.queue.clear()
    return output.entry.salt


class TestIsComplete:
    def test_complete(self) -> None:
        assert is_complete(complete_config())

    @pytest.mark.parametrize(
        "field, value",
        [
            ("from_address", "not an address"),
            ("smtp_server", ""),
            ("smtp_password", ""),
            ("register_mail_text", ""),
            ("server_name", ""),
            ("smtp_server_port", 70000),
            ("rate_limit", -1),
        ],
    )
    def test_incomplete(self, field: str, value) -> None:
        assert not is_complete(complete_config(**{field: value}))


class TestSubscribe:
    def test_stores_hashed_entry_and_queues_verification(self, captcha) -> None:
        config = complete_config()

        output = run_subscribe(config, subscribe_input(), captcha, "Tenant", NOW)

        assert output.success
        [entry] = config.to_data
        assert entry.hash
        assert ADDRESS not in entry.data
        [item] = config.queue
        assert item.to.data == ADDRESS
        assert item.announcement.header == "Tenant"
        assert item.announcement.message.startswith("Please confirm\n\n")
        assert output.verify_url in item.announcement.message
        assert output.verify_url == build_verify_url("https://example.com/t", entry.salt, ADDRESS)

    @pytest.mark.parametrize(
        "overrides, error",
        [
            ({"dsgvo": ""}, SubscribeError.CONSENT_MISSING),
            ({"captcha_answer": "41"}, SubscribeError.CAPTCHA_FAILED),
            ({"captcha_id": "other"}, SubscribeError.CAPTCHA_FAILED),
            ({"mail": "not-an-address"}, SubscribeError.INVALID_ADDRESS),
        ],
    )
    def test_rejections(self, captcha, overrides, error) -> None:
        config = complete_config()

        output = run_subscribe(config, subscribe_input(**overrides), captcha, "Tenant", NOW)

        assert not output.success
        assert output.error is error
        assert config.to_data == []
        assert config.queue == []

    def test_consent_checked_before_captcha(self, captcha) -> None:
        output = run_subscribe(
            complete_config(), subscribe_input(dsgvo="", captcha_answer="wrong"), captcha, "T", NOW
        )

        assert output.error is SubscribeError.CONSENT_MISSING

    def test_register_password(self, captcha) -> None:
        config = complete_config(register_password="club")

        wrong = run_subscribe(config, subscribe_input(register_password="nope"), captcha, "T", NOW)
        right = run_subscribe(config, subscribe_input(register_password="club"), captcha, "T", NOW)

        assert wrong.error is SubscribeError.PASSWORD_MISMATCH
        assert right.success

    def test_pending_address_can_not_register_twice(self, captcha) -> None:
        config = complete_config()
        run_subscribe(config, subscribe_input(), captcha, "T", NOW)

        output = run_subscribe(config, subscribe_input(), captcha, "T", NOW)

        assert output.error is SubscribeError.BANNED
        assert len(config.to_data) == 1

    def test_confirmed_address_can_not_register_twice(self, captcha) -> None:
        config = complete_config()
        subscribe_and_verify(config, captcha)

        output = run_subscribe(config, subscribe_input(), captcha, "T", NOW)

        assert output.error is SubscribeError.ALREADY_REGISTERED

    def test_display_name_is_dropped(self, captcha) -> None:
        config = complete_config()

        output = run_subscribe(config, subscribe_input(f"Reader <{ADDRESS}>"), captcha, "T", NOW)

        assert output.success
        assert config.queue[0].to.data == ADDRESS


class TestVerify:
    def test_verify_turns_entry_plain(self, captcha) -> None:
        config = complete_config()
        salt = run_subscribe(config, subscribe_input(), captcha, "T", NOW).entry.salt

        assert run_verify(config, salt, ADDRESS) is VerifyOutcome.VERIFIED
        [entry] = config.to_data
        assert not entry.hash
        assert entry.data == ADDRESS
        assert entry.salt == salt

    def test_verify_again_is_already_confirmed(self, captcha) -> None:
        config = complete_config()
        salt = subscribe_and_verify(config, captcha)

        assert run_verify(config, salt, ADDRESS) is VerifyOutcome.ALREADY_CONFIRMED

    def test_wrong_address_or_salt(self, captcha) -> None:
        config = complete_config()
        salt = run_subscribe(config, subscribe_input(), captcha, "T", NOW).entry.salt

        assert run_verify(config, salt, "other@example.com") is VerifyOutcome.FORBIDDEN
        assert run_verify(config, "unknown-salt", ADDRESS) is VerifyOutcome.FORBIDDEN
        assert run_verify(config, "", ADDRESS) is VerifyOutcome.FORBIDDEN
        assert config.to_data[0].hash


class TestUnsubscribe:
    def test_removes_confirmed_entry_and_its_queue(self, captcha) -> None:
        config = complete_config()
        salt = subscribe_and_verify(config, captcha)
        enqueue_announcement(config, Announcement(header="h", message="m", time=NOW))

        assert run_unsubscribe(config, salt, ADDRESS) is UnsubscribeOutcome.REMOVED
        assert config.to_data == []
        assert config.queue == []

    def test_pending_entry_is_left_alone(self, captcha) -> None:
        config = complete_config()
        salt = run_subscribe(config, subscribe_input(), captcha, "T", NOW).entry.salt

        assert run_unsubscribe(config, salt, ADDRESS) is UnsubscribeOutcome.UNCHANGED
        assert len(config.to_data) == 1

    def test_address_must_match(self, captcha) -> None:
        config = complete_config()
        salt = subscribe_and_verify(config, captcha)

        assert run_unsubscribe(config, salt, "other@example.com") is UnsubscribeOutcome.UNCHANGED
        assert run_unsubscribe(config, "unknown", ADDRESS) is UnsubscribeOutcome.UNCHANGED
        assert run_unsubscribe(config, "", "") is UnsubscribeOutcome.FORBIDDEN
        assert len(config.to_data) == 1


class TestAdmin:
    def test_delete_allows_registering_again(self, captcha) -> None:
        config = complete_config()
        subscribe_and_verify(config, captcha)

        assert run_delete(config, address=ADDRESS)
        assert config.to_data == []
        assert run_subscribe(config, subscribe_input(), captcha, "T", NOW).success

    def test_delete_pending_by_salt(self, captcha) -> None:
        config = complete_config()
        salt = run_subscribe(config, subscribe_input(), captcha, "T", NOW).entry.salt

        assert run_delete(config, salt=salt)
        assert config.to_data == []
        assert config.queue == []

    def test_delete_unknown(self) -> None:
        assert not run_delete(complete_config(), address=ADDRESS)

    def test_ban_blocks_registration_and_old_links(self, captcha) -> None:
        config = complete_config()
        old_salt = subscribe_and_verify(config, captcha)

        assert run_ban(config, ADDRESS)

        [entry] = config.to_data
        assert entry.hash
        assert entry.salt != old_salt
        assert run_verify(config, old_salt, ADDRESS) is VerifyOutcome.FORBIDDEN
        assert run_unsubscribe(config, old_salt, ADDRESS) is UnsubscribeOutcome.UNCHANGED
        output = run_subscribe(config, subscribe_input(), captcha, "T", NOW)
        assert output.error is SubscribeError.BANNED

    def test_ban_requires_confirmed_address(self, captcha) -> None:
        config = complete_config()
        run_subscribe(config, subscribe_input(), captcha, "T", NOW)

        assert not run_ban(config, ADDRESS)


class TestQueue:
    def test_enqueue_only_confirmed(self, captcha) -> None:
        config = complete_config()
        salt = subscribe_and_verify(config, captcha)
        run_subscribe(config, subscribe_input("pending@example.com"), captcha, "T", NOW)
        config.queue.clear()

        queued = enqueue_announcement(config, Announcement(header="News", message="Text", time=NOW))

        assert queued == 1
        [item] = config.queue
        url = build_unsubscribe_url("https://example.com/t", salt, ADDRESS)
        assert item.unsubscribe_url == url
        assert item.announcement.message == f"Text\n\nUnsubscribe here\n\n{url}"

    def test_build_mail(self, captcha) -> None:
        config = complete_config(subject_prefix="[News]")
        subscribe_and_verify(config, captcha)
        enqueue_announcement(config, Announcement(header="Hello", message="Body", time=NOW))

        mail = build_mail(config, config.queue[0])

        assert mail.subject == "[News] Hello"
        assert [r.email for r in mail.recipients] == [ADDRESS]
        assert mail.sender.email == "news@example.com"
        assert mail.headers["List-Unsubscribe"].startswith("<https://example.com/t/RegisterMail/")
        assert mail.headers["List-Unsubscribe-Post"] == "List-Unsubscribe=One-Click"

    def test_verification_mail_has_no_unsubscribe_header(self, captcha) -> None:
        config = complete_config()
        run_subscribe(config, subscribe_input(), captcha, "T", NOW)

        assert build_mail(config, config.queue[0]).headers == {}


class TestSendTick:
    def fill(self, config: RegisterMailConfig, count: int) -> None:
        for i in range(count):
            config.queue.append(
                QueueItem.model_validate(
                    {
                        "To": {"Data": f"r{i}@example.com", "Salt": f"s{i}", "Hash": False},
                        "Announcement": {"Header": f"H{i}", "Message": "M"},
                    }
                )
            )

    def test_incomplete_config_skips(self, mailer, mailer_factory, errors) -> None:
        config = complete_config(smtp_server="")
        self.fill(config, 2)

        result = run_send_tick(config, mailer_factory, errors)

        assert result.skipped
        assert len(config.queue) == 2
        assert mailer.email_count == 0

    def test_unlimited_sends_everything(self, mailer, mailer_factory, errors) -> None:
        config = complete_config()
        self.fill(config, 3)

        result = run_send_tick(config, mailer_factory, errors)

        assert (result.processed, result.sent) == (3, 3)
        assert config.queue == []
        assert [e.subject for e in mailer.sent_emails] == ["H0", "H1", "H2"]
        assert mailer.settings.server == "smtp.example.com"

    def test_rate_limit_takes_from_head(self, mailer, mailer_factory, errors) -> None:
        config = complete_config(rate_limit=2)
        self.fill(config, 5)

        run_send_tick(config, mailer_factory, errors)

        assert [e.subject for e in mailer.sent_emails] == ["H0", "H1"]
        assert [item.announcement.header for item in config.queue] == ["H2", "H3", "H4"]

    def test_failures_go_to_tail_then_are_dropped(self, mailer, mailer_factory, errors) -> None:
        config = complete_config()
        self.fill(config, 1)
        mailer.fail_with = "connection refused"

        for attempt in range(1, MAX_RETRIES + 1):
            result = run_send_tick(config, mailer_factory, errors)
            assert result.requeued == 1
            assert config.queue[0].number_errors == attempt

        result = run_send_tick(config, mailer_factory, errors)

        assert result.dropped == 1
        assert config.queue == []
        assert len(errors.messages) == MAX_RETRIES + 1
        assert "connection refused" in errors.messages[0]
        assert errors.messages[-1].startswith("giving up")

    def test_failed_item_goes_behind_waiting_items(self, mailer, mailer_factory, errors) -> None:
        config = complete_config(rate_limit=1)
        self.fill(config, 2)
        mailer.fail_with = "busy"

        run_send_tick(config, mailer_factory, errors)

        assert [item.announcement.header for item in config.queue] == ["H1", "H0"]

    def test_hashed_recipients_are_skipped(self, mailer, mailer_factory, errors) -> None:
        config = complete_config()
        self.fill(config, 1)
        config.queue[0].to.hash = True

        result = run_send_tick(config, mailer_factory, errors)

        assert result.processed == 1
        assert result.sent == 0
        assert config.queue == []
        assert mailer.email_count == 0


class TestRegisterMailPlugin:
    def configure(self, plugin: RegisterMailPlugin, **overrides) -> None:
        form = {
            "target": "RegisterMail",
            "prefix": "[T]",
            "from": "news@example.com",
            "server": "smtp.example.com",
            "port": "465",
            "user": "news",
            "password": "smtp-secret",
            "rate": "0",
            "registermailtext": "Please confirm",
            "unregisterlinktext": "Leave",
            "registerpassword": "",
            "thisserver": "https://example.com/test/",
        }
        form.update(overrides)
        plugin.process_config_change(form)

    def test_config_form_is_applied_and_persisted(self, make_context, mailer_factory, captcha, datasafe) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)

        self.configure(plugin)

        assert plugin.is_complete()
        assert plugin.config.server_name == "https://example.com/test"
        assert plugin.config.smtp_server_port == 465
        raw = json.loads(datasafe.get_config("test", "RegisterMail"))
        assert raw["SMTPPassword"].startswith(SEALED_PREFIX)
        reloaded = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        assert reloaded.config.smtp_password == "smtp-secret"

    def test_empty_password_keeps_the_old_one(self, make_context, mailer_factory, captcha) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        self.configure(plugin)

        self.configure(plugin, password="")

        assert plugin.config.smtp_password == "smtp-secret"

    @pytest.mark.parametrize(
        "overrides", [{"port": "abc"}, {"port": "70000"}, {"rate": "-1"}, {"from": "nope"}]
    )
    def test_invalid_form_changes_nothing(self, make_context, mailer_factory, captcha, overrides) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        self.configure(plugin)

        with pytest.raises(PluginConfigError):
            self.configure(plugin, prefix="changed", **overrides)
        assert plugin.config.subject_prefix == "[T]"

    def test_subscribe_verify_announce(self, make_context, mailer, mailer_factory, captcha) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        self.configure(plugin)

        output = plugin.subscribe(subscribe_input())
        assert output.success
        plugin.tick()
        verification = mailer.get_last_email()
        assert verification.subject == "[T] Test Tenant"
        assert output.verify_url in verification.body_text

        assert plugin.verify(output.entry.salt, ADDRESS) is VerifyOutcome.VERIFIED
        plugin.new_announcement(Announcement(header="News", message="Hello"), "1")
        plugin.tick()

        [news] = mailer.get_emails_to(ADDRESS)[1:]
        assert news.subject == "[T] News"
        assert news.body_text.startswith("Hello\n\nLeave\n\n")
        assert "List-Unsubscribe" in news.headers

    def test_state_survives_restart(self, make_context, mailer_factory, captcha) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        self.configure(plugin)
        salt = plugin.subscribe(subscribe_input()).entry.salt
        plugin.verify(salt, ADDRESS)
        plugin.close()

        reloaded = RegisterMailPlugin(make_context(), mailer_factory, captcha)

        assert [e.data for e in reloaded.config.to_data] == [ADDRESS]

    def test_admin_panel_lists_confirmed_addresses(self, make_context, mailer_factory, captcha) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        self.configure(plugin)
        salt = plugin.subscribe(subscribe_input()).entry.salt
        plugin.verify(salt, ADDRESS)
        plugin.subscribe(subscribe_input("pending@example.com"))

        panel = plugin.get_config()

        assert ADDRESS in panel
        assert "pending@example.com" not in panel
        assert "1 confirmed, 1 pending or banned" in panel

    def test_failed_sends_are_reported_to_the_tenant(self, make_context, mailer, mailer_factory, captcha, errors) -> None:
        plugin = RegisterMailPlugin(make_context(), mailer_factory, captcha)
        self.configure(plugin)
        plugin.subscribe(subscribe_input())
        mailer.fail_with = "mailbox unavailable"

        result = plugin.tick()

        assert result.requeued == 1
        assert errors.messages[0].startswith("RegisterMail (test):")
        assert "mailbox unavailable" in errors.messages[0]
