"""
Unit tests for the announcement host.

Plugins are fakes registered under their own names; storage is the file
datasafe in a temporary directory.
"""

import json
import threading

import pytest

from announcer.adapters.auth.password_methods import hash_password, register_password_methods
from announcer.api.deps import Runtime
from announcer.app_shell.config import ServerConfig
from announcer.components.host import (
    ERROR_LOG_KEY,
    AnnouncementHost,
    HostState,
    LoginLevel,
    PublishInput,
    TenantConfig,
    TenantConfigError,
    TenantDirectory,
    load_tenants,
    validate_key,
    validate_publish,
)
from announcer.core.entities import Announcement
from announcer.core.ports.plugin import PluginConfigError, PluginContext
from announcer.core.registry import Registry


class FakePlugin:
    def __init__(self, ctx: PluginContext, name: str, fail: bool = False, gate=None) -> None:
        self.ctx = ctx
        self.name = name
        self.fail = fail
        self.gate = gate
        self.received: list[tuple[Announcement, str]] = []
        self.forms: list[dict[str, str]] = []
        self.closed = False

    def get_config(self) -> str:
        return f"<p>{self.name} panel</p>"

    def process_config_change(self, form) -> None:
        if form.get("bad"):
            raise PluginConfigError("bad value")
        if form.get("crash"):
            raise RuntimeError("crashed")
        self.forms.append(dict(form))

    def new_announcement(self, announcement: Announcement, announcement_id: str) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        self.received.append((announcement, announcement_id))

    def build_router(self):
        return None

    def close(self) -> None:
        self.closed = True
        self.received_when_closed = len(self.received)


class PluginFactory:
    """Registers a factory per name and remembers the instances it built."""

    def __init__(self, registry: Registry) -> None:
        self.registry = registry
        self.instances: dict[str, FakePlugin] = {}

    def add(self, name: str, **options) -> None:
        def factory(ctx: PluginContext) -> FakePlugin:
            plugin = FakePlugin(ctx, name, **options)
            self.instances[name] = plugin
            return plugin

        self.registry.register_plugin(factory, name)


@pytest.fixture
def registry() -> Registry:
    registry = Registry()
    register_password_methods(registry)
    return registry


@pytest.fixture
def plugins(registry) -> PluginFactory:
    return PluginFactory(registry)


@pytest.fixture
def make_host(registry, datasafe, codec, translation, counter):
    tenants = TenantDirectory()
    hosts: list[AnnouncementHost] = []

    def _make(**fields) -> AnnouncementHost:
        data = {"Key": "t", "ShortDescription": "Tenant", "PasswordUser": ["user"], "PasswordAdmin": ["admin"]}
        data.update(fields)
        host = AnnouncementHost(
            TenantConfig.model_validate(data),
            registry=registry,
            datasafe=datasafe,
            codec=codec,
            translation=translation,
            counter=counter,
            tenants=tenants,
            run_workers=False,
        )
        hosts.append(host)
        return host

    yield _make
    for host in hosts:
        host.close()


def consented(subject: str = "Subject", message: str = "Body") -> PublishInput:
    return PublishInput(dsgvo="on", subject=subject, message=message)


class TestValidation:
    @pytest.mark.parametrize("key", ["news", "a.b_c~d-1"])
    def test_valid_keys(self, key: str) -> None:
        validate_key(key)

    @pytest.mark.parametrize("key", ["", ".", "..", "a/b", "a b", "a#b", "x" * 201])
    def test_invalid_keys(self, key: str) -> None:
        with pytest.raises(TenantConfigError):
            validate_key(key)

    def test_consent_checked_first(self) -> None:
        errors = validate_publish(PublishInput(dsgvo="", subject="", message=""))

        assert [e.code for e in errors] == ["CONSENT_MISSING"]

    def test_empty_fields(self) -> None:
        errors = validate_publish(PublishInput(dsgvo="on", subject="Test", message="  "))

        assert [(e.code, e.field) for e in errors] == [("EMPTY_FIELD", "message")]


class TestLoad:
    def test_load_builds_plugins_in_order(self, make_host, plugins) -> None:
        plugins.add("A")
        plugins.add("B")
        host = make_host(Plugins=["A", "B"])

        host.load()

        assert host.state is HostState.ACTIVE
        assert list(host.plugins) == ["A", "B"]
        assert plugins.instances["A"].ctx.tenant_key == "t"
        assert not plugins.instances["A"].ctx.run_workers

    def test_unknown_plugin_fails_fast(self, make_host) -> None:
        with pytest.raises(TenantConfigError, match="unknown plugin"):
            make_host(Plugins=["Missing"]).load()

    def test_duplicate_plugin(self, make_host, plugins) -> None:
        plugins.add("A")

        with pytest.raises(TenantConfigError, match="listed twice"):
            make_host(Plugins=["A", "A"]).load()

    def test_duplicate_key(self, make_host) -> None:
        make_host().load()

        with pytest.raises(TenantConfigError, match="already exists"):
            make_host().load()

    def test_unknown_password_method(self, make_host) -> None:
        with pytest.raises(TenantConfigError, match="password method"):
            make_host(PasswordMethod="rot13").load()

    def test_load_twice(self, make_host) -> None:
        host = make_host()
        host.load()

        with pytest.raises(TenantConfigError):
            host.load()

    def test_failing_factory_closes_built_plugins(self, make_host, plugins, registry) -> None:
        plugins.add("A")

        def broken(ctx):
            raise RuntimeError("no config")

        registry.register_plugin(broken, "Broken")

        with pytest.raises(TenantConfigError, match="can not load plugin Broken"):
            make_host(Plugins=["A", "Broken"]).load()
        assert plugins.instances["A"].closed

    def test_plugin_without_factory_closes_built_plugins(
        self, make_host, plugins, registry, monkeypatch
    ) -> None:
        plugins.add("A")
        lookup = registry.get_plugin
        monkeypatch.setattr(
            registry, "get_plugin", lambda name: (None, True) if name == "Ghost" else lookup(name)
        )

        with pytest.raises(TenantConfigError, match="unknown plugin 'Ghost'"):
            make_host(Plugins=["A", "Ghost"]).load()
        assert plugins.instances["A"].closed

    def test_error_log_is_restored(self, make_host, datasafe) -> None:
        datasafe.set_config(
            "t", ERROR_LOG_KEY, json.dumps([{"Time": "2024-01-01T00:00:00+00:00", "Message": "old"}]).encode()
        )
        host = make_host()

        host.load()

        assert [e.message for e in host.get_errors()] == ["old"]

    def test_corrupt_error_log(self, make_host, datasafe) -> None:
        datasafe.set_config("t", ERROR_LOG_KEY, b"{broken")

        with pytest.raises(TenantConfigError, match="corrupt"):
            make_host().load()


class TestLogin:
    def test_user_and_admin(self, make_host) -> None:
        host = make_host()
        host.load()

        assert host.login("user") is LoginLevel.USER
        assert host.login("admin") is LoginLevel.ADMIN
        assert host.login("nobody") is None
        assert host.login("") is None

    def test_hashed_credentials(self, make_host) -> None:
        host = make_host(
            PasswordMethod="argon2",
            PasswordUser=[hash_password("argon2", "u-pass")],
            PasswordAdmin=[hash_password("argon2", "a-pass")],
        )
        host.load()

        assert host.login("u-pass") is LoginLevel.USER
        assert host.login("a-pass") is LoginLevel.ADMIN
        assert host.login("user") is None


class TestPublish:
    def test_rejects_without_consent(self, make_host, plugins, datasafe) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()

        output = host.publish(PublishInput(dsgvo="", subject="S", message="M"))

        assert not output.success
        assert output.errors[0].code == "CONSENT_MISSING"
        assert datasafe.get_all_announcements("t") == []

    def test_saves_and_fans_out(self, make_host, plugins, datasafe) -> None:
        plugins.add("A")
        plugins.add("B")
        host = make_host(Plugins=["A", "B"])
        host.load()

        output = host.publish(consented("  Hello ", "Line 1\r\nLine 2"))

        assert output.success
        assert output.fan_out is not None
        assert output.fan_out.wait(timeout=5)
        stored = datasafe.get_all_announcements("t")
        assert [(a.header, a.message) for a in stored] == [("Hello", "Line 1\nLine 2")]
        for name in ("A", "B"):
            [(announcement, announcement_id)] = plugins.instances[name].received
            assert announcement.header == "Hello"
            assert announcement_id == output.fan_out.announcement_id == "1"

    def test_failing_plugin_does_not_affect_others(self, make_host, plugins) -> None:
        plugins.add("Bad", fail=True)
        plugins.add("Good")
        host = make_host(Plugins=["Bad", "Good"])
        host.load()

        output = host.publish(consented())

        assert output.fan_out.wait(timeout=5)
        assert len(plugins.instances["Good"].received) == 1
        assert any("Bad exploded" in e.message for e in host.get_errors())

    def test_slow_plugin_does_not_block_publish(self, make_host, plugins, counter) -> None:
        gate = threading.Event()
        plugins.add("Slow", gate=gate)
        plugins.add("Fast")
        host = make_host(Plugins=["Slow", "Fast"])
        host.load()

        output = host.publish(consented())

        assert output.success
        assert not output.fan_out.done
        assert not counter.wait_idle(poll_interval=0.01, timeout=0.05)
        gate.set()
        assert output.fan_out.wait(timeout=5)
        assert counter.wait_idle(poll_interval=0.01, timeout=5)
        assert len(plugins.instances["Slow"].received) == 1

    def test_slow_plugin_does_not_delay_other_plugins(self, make_host, plugins, counter) -> None:
        gate = threading.Event()
        plugins.add("Slow", gate=gate)
        plugins.add("Fast")
        host = make_host(Plugins=["Slow", "Fast"])
        host.load()

        outputs = [host.publish(consented(f"Subject {i}")) for i in range(6)]

        fast_futures = [output.fan_out.futures[1] for output in outputs]
        for future in fast_futures:
            future.result(timeout=5)
        fast = plugins.instances["Fast"].received
        assert [a.header for a, _ in fast] == [f"Subject {i}" for i in range(6)]
        assert plugins.instances["Slow"].received == []

        gate.set()
        assert all(output.fan_out.wait(timeout=5) for output in outputs)
        slow = plugins.instances["Slow"].received
        assert [a.header for a, _ in slow] == [f"Subject {i}" for i in range(6)]

    def test_storage_failure_still_broadcasts(self, make_host, plugins, datasafe, monkeypatch) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()

        def broken(key, announcement):
            raise OSError("disk full")

        monkeypatch.setattr(datasafe, "save_announcement", broken)

        output = host.publish(consented())

        assert output.success
        assert output.fan_out.wait(timeout=5)
        assert len(plugins.instances["A"].received) == 1
        assert plugins.instances["A"].received[0][1] == ""
        assert any("disk full" in e.message for e in host.get_errors())

    def test_fan_out_requires_active_host(self, make_host) -> None:
        with pytest.raises(RuntimeError):
            make_host().fan_out(Announcement(header="h", message="m"), "1")


class TestErrorLog:
    def test_errors_are_persisted_and_cleared(self, make_host, datasafe) -> None:
        host = make_host()
        host.load()

        host.report_error("first")
        host.report_error("second")

        assert [e.message for e in host.get_errors()] == ["first", "second"]
        stored = json.loads(datasafe.get_config("t", ERROR_LOG_KEY))
        assert [e["Message"] for e in stored] == ["first", "second"]

        host.process_config_change("#errors", {})

        assert host.get_errors() == []
        assert json.loads(datasafe.get_config("t", ERROR_LOG_KEY)) == []

    def test_plugins_report_through_context(self, make_host, plugins) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()

        plugins.instances["A"].ctx.errors("A: something failed")

        assert host.get_errors()[-1].message == "A: something failed"


class TestAdmin:
    def test_config_change_routed_to_plugin(self, make_host, plugins) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()

        host.process_config_change("A", {"target": "A", "x": "1"})

        assert plugins.instances["A"].forms == [{"target": "A", "x": "1"}]

    def test_unknown_target(self, make_host) -> None:
        host = make_host()
        host.load()

        with pytest.raises(KeyError):
            host.process_config_change("Nope", {})

    def test_plugin_rejection_and_crash_become_config_errors(self, make_host, plugins) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()

        with pytest.raises(PluginConfigError, match="bad value"):
            host.process_config_change("A", {"bad": "1"})
        with pytest.raises(PluginConfigError, match="crashed"):
            host.process_config_change("A", {"crash": "1"})

    def test_panels_and_history(self, make_host, plugins) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()
        host.publish(consented("One")).fan_out.wait(timeout=5)

        assert host.plugin_panels() == [("A", "<p>A panel</p>")]
        assert [a.header for a in host.history()] == ["One"]
        assert host.routers() == []

    def test_close_closes_plugins(self, make_host, plugins) -> None:
        plugins.add("A")
        host = make_host(Plugins=["A"])
        host.load()

        host.close()

        assert plugins.instances["A"].closed

    def test_runtime_shutdown_drains_before_closing(
        self, make_host, plugins, datasafe, translation, counter
    ) -> None:
        gate = threading.Event()
        plugins.add("Slow", gate=gate)
        host = make_host(Plugins=["Slow"])
        host.load()
        host.publish(consented("Last words"))
        runtime = Runtime(
            config=ServerConfig(),
            translation=translation,
            datasafe=datasafe,
            counter=counter,
            hosts={host.key: host},
        )
        timer = threading.Timer(0.1, gate.set)
        timer.start()

        assert runtime.shutdown(timeout=5)

        timer.join()
        slow = plugins.instances["Slow"]
        assert slow.closed
        assert slow.received_when_closed == 1


class TestLoadTenants:
    def write(self, directory, name, data) -> None:
        (directory / name).write_text(json.dumps(data), encoding="utf-8")

    def test_loads_every_descriptor(self, tmp_path, registry, plugins, datasafe, codec, translation, counter) -> None:
        plugins.add("A")
        tenants = tmp_path / "tenants"
        (tenants / "nested").mkdir(parents=True)
        self.write(tenants, "one.json", {"Key": "one", "Plugins": ["A"]})
        self.write(tenants / "nested", "two.json", {"Key": "two"})

        hosts = load_tenants(
            tenants,
            registry=registry,
            datasafe=datasafe,
            codec=codec,
            translation=translation,
            counter=counter,
            run_workers=False,
        )

        assert sorted(h.key for h in hosts) == ["one", "two"]
        for host in hosts:
            host.close()

    def test_duplicate_key_across_files(self, tmp_path, registry, datasafe, codec, translation, counter) -> None:
        self.write(tmp_path, "a.json", {"Key": "same"})
        self.write(tmp_path, "b.json", {"Key": "same"})

        with pytest.raises(TenantConfigError, match="already exists"):
            load_tenants(
                tmp_path,
                registry=registry,
                datasafe=datasafe,
                codec=codec,
                translation=translation,
                counter=counter,
                run_workers=False,
            )

    def test_invalid_descriptor(self, tmp_path, registry, datasafe, codec, translation, counter) -> None:
        (tmp_path / "bad.json").write_text("{", encoding="utf-8")

        with pytest.raises(TenantConfigError):
            load_tenants(
                tmp_path,
                registry=registry,
                datasafe=datasafe,
                codec=codec,
                translation=translation,
                counter=counter,
                run_workers=False,
            )

    def test_missing_directory(self, tmp_path, registry, datasafe, codec, translation, counter) -> None:
        with pytest.raises(TenantConfigError, match="does not exist"):
            load_tenants(
                tmp_path / "missing",
                registry=registry,
                datasafe=datasafe,
                codec=codec,
                translation=translation,
                counter=counter,
            )
