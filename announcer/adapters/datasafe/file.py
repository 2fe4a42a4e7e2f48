"""
Flat-file DataSafe.

Layout under the base directory (config bytes, default ./data):

    config/<key>/<plugin>         raw plugin blob
    announcements/<key>.json      JSON list of announcements

One lock guards the whole instance. Announcement ids are 1-based
positions in the per-tenant list.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from announcer.core.entities import Announcement
from announcer.core.ports.datasafe import (
    DataSafeNotConfiguredError,
    UnknownAnnouncementError,
    validate_identifier,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_PATH = "./data"


class FileDataSafe:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.base_path: Path | None = None

    def initialise_datasafe(self, config: bytes) -> None:
        base = config.decode("utf-8").strip() or DEFAULT_BASE_PATH
        with self._lock:
            self.base_path = Path(base).resolve()
            (self.base_path / "config").mkdir(parents=True, exist_ok=True)
            (self.base_path / "announcements").mkdir(parents=True, exist_ok=True)
        logger.info("File datasafe at %s", self.base_path)

    # --- Paths ---

    def _base(self) -> Path:
        if self.base_path is None:
            raise DataSafeNotConfiguredError("file datasafe is not initialised")
        return self.base_path

    def _safe_path(self, *parts: str) -> Path:
        base = self._base()
        target = base.joinpath(*parts).resolve()
        # Prevent traversal
        if not str(target).startswith(str(base) + os.sep):
            raise ValueError(f"Path traversal attempt detected: {'/'.join(parts)}")
        return target

    def _config_path(self, key: str, plugin: str) -> Path:
        validate_identifier(key, "key")
        validate_identifier(plugin, "plugin")
        return self._safe_path("config", key, plugin)

    def _announcement_path(self, key: str) -> Path:
        validate_identifier(key, "key")
        return self._safe_path("announcements", f"{key}.json")

    def _read_announcements(self, key: str) -> list[Announcement]:
        path = self._announcement_path(key)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return [Announcement.from_dict(item) for item in data]

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)

    # --- Config ---

    def get_config(self, key: str, plugin: str) -> bytes:
        with self._lock:
            path = self._config_path(key, plugin)
            if not path.exists():
                return b""
            with open(path, "rb") as f:
                return f.read()

    def set_config(self, key: str, plugin: str, config: bytes) -> None:
        with self._lock:
            self._write_atomic(self._config_path(key, plugin), config)

    # --- Announcements ---

    def save_announcement(self, key: str, announcement: Announcement) -> str:
        with self._lock:
            announcements = self._read_announcements(key)
            announcements.append(announcement)
            payload = json.dumps([a.to_dict() for a in announcements], indent=1)
            self._write_atomic(self._announcement_path(key), payload.encode("utf-8"))
            return str(len(announcements))

    def get_announcement(self, key: str, announcement_id: str) -> Announcement:
        try:
            index = int(announcement_id)
        except ValueError as e:
            raise UnknownAnnouncementError(f"invalid announcement id {announcement_id!r}") from e
        with self._lock:
            announcements = self._read_announcements(key)
        if index < 1 or index > len(announcements):
            raise UnknownAnnouncementError(f"unknown announcement id {announcement_id!r}")
        return announcements[index - 1]

    def get_all_announcements(self, key: str) -> list[Announcement]:
        with self._lock:
            return self._read_announcements(key)

    def get_announcement_keys(self, key: str) -> list[str]:
        with self._lock:
            count = len(self._read_announcements(key))
        return [str(i) for i in range(1, count + 1)]

    def close(self) -> None:
        pass
