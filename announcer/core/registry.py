"""
Registry of named backends.

Maps names to plugin factories, DataSafe backends and password comparison
functions. One instance is built at process start (see
announcer.app_shell.wiring.build_default_registry) and handed to the
tenant construction path; afterwards it is only read.

Names are registered once: a second registration under the same name fails
and the first one stays in place.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from announcer.core.ports.datasafe import DataSafePort
from announcer.core.ports.plugin import PluginFactory

logger = logging.getLogger(__name__)

# (password, truth) -> (matched, error)
PasswordMethod = Callable[[str, str], tuple[bool, Exception | None]]

# Internal storage keys start with this prefix (e.g. the error log)
RESERVED_PREFIX = "#"


class AlreadyRegisteredError(Exception):
    """A backend with this name is already registered."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"{kind} '{name}' is already registered")
        self.kind = kind
        self.name = name


class Registry:
    """Thread-safe name -> backend mapping."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._plugins: dict[str, PluginFactory] = {}
        self._datasafes: dict[str, DataSafePort] = {}
        self._password_methods: dict[str, PasswordMethod] = {}

    # --- Registration ---

    def register_plugin(self, factory: PluginFactory, name: str) -> None:
        if not name or name.startswith(RESERVED_PREFIX):
            raise ValueError(f"invalid plugin name {name!r}")
        with self._lock:
            if name in self._plugins:
                raise AlreadyRegisteredError("plugin", name)
            self._plugins[name] = factory

    def register_datasafe(self, backend: DataSafePort, name: str) -> None:
        with self._lock:
            if name in self._datasafes:
                raise AlreadyRegisteredError("datasafe", name)
            self._datasafes[name] = backend

    def register_password_method(self, method: PasswordMethod, name: str) -> None:
        with self._lock:
            if name in self._password_methods:
                raise AlreadyRegisteredError("password method", name)
            self._password_methods[name] = method

    # --- Lookup ---

    def get_plugin(self, name: str) -> tuple[PluginFactory | None, bool]:
        with self._lock:
            factory = self._plugins.get(name)
        return factory, factory is not None

    def get_datasafe(self, name: str) -> tuple[DataSafePort | None, bool]:
        with self._lock:
            backend = self._datasafes.get(name)
        return backend, backend is not None

    def password_method_exists(self, name: str) -> bool:
        with self._lock:
            return name in self._password_methods

    def get_password_method(self, name: str) -> PasswordMethod | None:
        with self._lock:
            return self._password_methods.get(name)

    def plugin_names(self) -> list[str]:
        with self._lock:
            return sorted(self._plugins)

    def compare_password(self, method_name: str, password: str, truths: Iterable[str]) -> bool:
        """
        Check a password against a list of stored credentials.

        Errors raised by the comparison function are logged and count as
        no match.
        """
        method = self.get_password_method(method_name)
        if method is None:
            logger.error("Unknown password method %r", method_name)
            return False
        for truth in truths:
            matched, err = method(password, truth)
            if err is not None:
                logger.error("Password method %r failed: %s", method_name, err)
                continue
            if matched:
                return True
        return False
