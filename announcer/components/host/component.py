"""
Announcement host component.

Owns one tenant: its key, credentials, plugin instances and error log.

Key behaviors:
- Construction validates the key, the password method and the plugin list,
  then builds every plugin through the registry (unknown name fails fast)
- Publishing validates consent and fields, appends to storage and fans the
  announcement out to every plugin, each on its own single worker so
  deliveries to one plugin stay in order and never wait for another plugin
- A plugin that raises or blocks never affects the other plugins or the
  caller
- Asynchronous plugin failures arrive through the error sink and are
  drained by one worker thread into the persisted error log
"""

from __future__ import annotations

import json
import logging
import queue
import re
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

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
from announcer.core.entities import Announcement, ErrorEntry
from announcer.core.ports.datasafe import DataSafePort
from announcer.core.ports.plugin import PluginConfigError, PluginContext, PluginPort
from announcer.core.registry import Registry
from announcer.core.services.process_counter import ProcessCounter
from announcer.core.services.sealing import SecretCodec
from announcer.core.services.translation import Translation

logger = logging.getLogger(__name__)

ERROR_LOG_KEY = "#errors"
ERROR_TARGET = "#errors"
KEY_PATTERN = re.compile(r"^[A-Za-z0-9._~-]{1,200}$")

_STOP = object()


# --- Pure Functions ---


def validate_key(key: str) -> None:
    """Raise TenantConfigError unless key is usable in URLs and storage paths."""
    if not KEY_PATTERN.match(key) or key in (".", ".."):
        raise TenantConfigError(
            f"invalid key {key!r}: use 1-200 characters from A-Z a-z 0-9 . _ ~ -"
        )


def validate_publish(input: PublishInput) -> list[ValidationError]:
    """Consent first, then non-empty subject and message."""
    if not input.dsgvo:
        return [ValidationError("CONSENT_MISSING", "Privacy policy not accepted", "dsgvo")]
    errors = []
    if not input.subject.strip():
        errors.append(ValidationError("EMPTY_FIELD", "Subject is required", "subject"))
    if not input.message.strip():
        errors.append(ValidationError("EMPTY_FIELD", "Message is required", "message"))
    return errors


class TenantDirectory:
    """Process-wide set of registered tenant keys."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set()

    def claim(self, key: str) -> None:
        with self._lock:
            if key in self._keys:
                raise TenantConfigError(f"key {key!r} already exists")
            self._keys.add(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys


# --- Host ---


class AnnouncementHost:
    def __init__(
        self,
        config: TenantConfig,
        registry: Registry,
        datasafe: DataSafePort,
        codec: SecretCodec,
        translation: Translation,
        counter: ProcessCounter,
        tenants: TenantDirectory,
        run_workers: bool = True,
    ):
        self.config = config
        self.registry = registry
        self.datasafe = datasafe
        self.codec = codec
        self.translation = translation
        self.counter = counter
        self.tenants = tenants
        self.run_workers = run_workers

        self.state = HostState.UNREGISTERED
        self.plugins: dict[str, PluginPort] = {}
        self._errors: list[ErrorEntry] = []
        self._errors_lock = threading.Lock()
        self._error_queue: queue.Queue[Any] = queue.Queue()
        self._error_worker: threading.Thread | None = None
        self._pools: dict[str, ThreadPoolExecutor] = {}

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def short_description(self) -> str:
        return self.config.short_description

    # --- Lifecycle ---

    def load(self) -> None:
        """
        Validate the descriptor and build all plugins.

        Raises:
            TenantConfigError: on any configuration problem
        """
        if self.state != HostState.UNREGISTERED:
            raise TenantConfigError(f"{self.key}: host already loaded")

        validate_key(self.key)
        if not self.registry.password_method_exists(self.config.password_method):
            raise TenantConfigError(
                f"{self.key}: unknown password method {self.config.password_method!r}"
            )
        seen: set[str] = set()
        for name in self.config.plugins:
            if name in seen:
                raise TenantConfigError(f"{self.key}: plugin {name!r} listed twice")
            seen.add(name)
            _, found = self.registry.get_plugin(name)
            if not found:
                raise TenantConfigError(f"{self.key}: unknown plugin {name!r}")

        self.tenants.claim(self.key)
        self.state = HostState.LOADING

        self._errors = self._load_errors()
        if self.run_workers:
            self._error_worker = threading.Thread(
                target=self._drain_errors, name=f"errors-{self.key}", daemon=True
            )
            self._error_worker.start()

        context = PluginContext(
            tenant_key=self.key,
            short_description=self.short_description,
            errors=self.report_error,
            datasafe=self.datasafe,
            codec=self.codec,
            translation=self.translation,
            counter=self.counter,
            run_workers=self.run_workers,
        )
        for name in self.config.plugins:
            factory, _ = self.registry.get_plugin(name)
            if factory is None:
                self.close()
                raise TenantConfigError(f"{self.key}: unknown plugin {name!r}")
            try:
                self.plugins[name] = factory(context)
            except Exception as e:
                self.close()
                raise TenantConfigError(f"{self.key}: can not load plugin {name}: {e}") from e

        self._pools = {
            name: ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"fanout-{self.key}-{name}")
            for name in self.plugins
        }
        self.state = HostState.ACTIVE
        logger.info("Tenant %s active with plugins %s", self.key, ", ".join(self.plugins) or "-")

    def close(self) -> None:
        for pool in self._pools.values():
            pool.shutdown(wait=False)
        for name, plugin in self.plugins.items():
            try:
                plugin.close()
            except Exception:
                logger.exception("%s: closing plugin %s failed", self.key, name)
        if self._error_worker is not None:
            self._error_queue.put(_STOP)
            self._error_worker.join(timeout=5.0)
            self._error_worker = None

    # --- Error log ---

    def _load_errors(self) -> list[ErrorEntry]:
        raw = self.datasafe.get_config(self.key, ERROR_LOG_KEY)
        if not raw:
            return []
        try:
            return [ErrorEntry.from_dict(item) for item in json.loads(raw.decode("utf-8"))]
        except (ValueError, TypeError) as e:
            raise TenantConfigError(f"{self.key}: error log is corrupt: {e}") from e

    def _persist_errors(self) -> None:
        # Caller holds _errors_lock
        payload = json.dumps([e.to_dict() for e in self._errors]).encode("utf-8")
        try:
            self.datasafe.set_config(self.key, ERROR_LOG_KEY, payload)
        except Exception:
            logger.exception("%s: can not persist error log", self.key)

    def _append_error(self, entry: ErrorEntry) -> None:
        with self.counter.track(), self._errors_lock:
            self._errors.append(entry)
            self._persist_errors()

    def report_error(self, message: str) -> None:
        """Error sink handed to plugins."""
        entry = ErrorEntry(time=datetime.now(UTC), message=message)
        if self._error_worker is None:
            self._append_error(entry)
        else:
            self._error_queue.put(entry)

    def _drain_errors(self) -> None:
        while True:
            item = self._error_queue.get()
            if item is _STOP:
                return
            try:
                self._append_error(item)
            except Exception:
                logger.exception("%s: error log worker failed", self.key)

    def get_errors(self) -> list[ErrorEntry]:
        with self._errors_lock:
            return list(self._errors)

    def clear_errors(self) -> None:
        with self.counter.track(), self._errors_lock:
            self._errors = []
            self._persist_errors()
        logger.info("%s: error log cleared", self.key)

    # --- Login ---

    def login(self, password: str) -> LoginLevel | None:
        """User credentials are checked before admin credentials."""
        if not password:
            return None
        method = self.config.password_method
        if self.registry.compare_password(method, password, self.config.password_user):
            return LoginLevel.USER
        if self.registry.compare_password(method, password, self.config.password_admin):
            return LoginLevel.ADMIN
        return None

    # --- Publish ---

    def publish(self, input: PublishInput) -> PublishOutput:
        errors = validate_publish(input)
        if errors:
            return PublishOutput(success=False, errors=errors)

        announcement = Announcement(
            header=input.subject.strip(),
            message=input.message.replace("\r\n", "\n"),
            time=datetime.now(UTC),
        )
        with self.counter.track():
            try:
                announcement_id = self.datasafe.save_announcement(self.key, announcement)
            except Exception as e:
                # Still broadcast: the announcement is already in memory
                logger.exception("%s: can not save announcement", self.key)
                self.report_error(f"can not save announcement '{announcement.header}': {e}")
                announcement_id = ""

        return PublishOutput(success=True, fan_out=self.fan_out(announcement, announcement_id))

    def fan_out(self, announcement: Announcement, announcement_id: str) -> FanOut:
        if self.state != HostState.ACTIVE:
            raise RuntimeError(f"{self.key}: host is not active")
        result = FanOut(announcement_id=announcement_id)
        for name, plugin in self.plugins.items():
            # Counted from submission: shutdown waits for queued deliveries too
            self.counter.start()
            try:
                future = self._pools[name].submit(self._deliver, name, plugin, announcement, announcement_id)
            except RuntimeError:
                self.counter.end()
                raise
            result.futures.append(future)
        return result

    def _deliver(
        self, name: str, plugin: PluginPort, announcement: Announcement, announcement_id: str
    ) -> None:
        try:
            plugin.new_announcement(announcement, announcement_id)
        except Exception as e:
            logger.exception("%s: plugin %s failed on new announcement", self.key, name)
            self.report_error(f"{name}: {e}")
        finally:
            self.counter.end()

    # --- Admin ---

    def process_config_change(self, target: str, form: Mapping[str, str]) -> None:
        """
        Route an admin form to a plugin (or the error log).

        Raises:
            KeyError: unknown target
            PluginConfigError: the plugin rejected the form
        """
        if target == ERROR_TARGET:
            self.clear_errors()
            return
        plugin = self.plugins.get(target)
        if plugin is None:
            raise KeyError(target)
        with self.counter.track():
            try:
                plugin.process_config_change(form)
            except PluginConfigError:
                raise
            except Exception as e:
                logger.exception("%s: plugin %s config change failed", self.key, target)
                raise PluginConfigError(str(e)) from e

    def plugin_panels(self) -> list[tuple[str, str]]:
        panels = []
        for name, plugin in self.plugins.items():
            with self.counter.track():
                try:
                    panels.append((name, plugin.get_config()))
                except Exception as e:
                    logger.exception("%s: plugin %s can not render config", self.key, name)
                    panels.append((name, f"<p>{name}: {e}</p>"))
        return panels

    def history(self) -> list[Announcement]:
        with self.counter.track():
            return self.datasafe.get_all_announcements(self.key)

    def routers(self) -> list[Any]:
        routers = []
        for plugin in self.plugins.values():
            router = plugin.build_router()
            if router is not None:
                routers.append(router)
        return routers


# --- Loading ---


def load_tenant_config(path: Path) -> TenantConfig:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise TenantConfigError(f"{path}: {e}") from e
    try:
        return TenantConfig.model_validate(data)
    except PydanticValidationError as e:
        raise TenantConfigError(f"{path}: tenant validation failed:\n{e}") from e


def load_tenants(
    directory: Path,
    registry: Registry,
    datasafe: DataSafePort,
    codec: SecretCodec,
    translation: Translation,
    counter: ProcessCounter,
    tenants: TenantDirectory | None = None,
    run_workers: bool = True,
) -> list[AnnouncementHost]:
    """Load every *.json descriptor below directory (sorted by path)."""
    if not directory.is_dir():
        raise TenantConfigError(f"tenant directory {directory} does not exist")
    tenants = tenants or TenantDirectory()
    hosts: list[AnnouncementHost] = []
    try:
        for path in sorted(directory.rglob("*.json")):
            config = load_tenant_config(path)
            host = AnnouncementHost(
                config,
                registry=registry,
                datasafe=datasafe,
                codec=codec,
                translation=translation,
                counter=counter,
                tenants=tenants,
                run_workers=run_workers,
            )
            host.load()
            hosts.append(host)
    except TenantConfigError:
        for host in hosts:
            host.close()
        raise
    return hosts
