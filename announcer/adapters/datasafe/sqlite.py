"""
SQLite DataSafe.

Relational storage for plugin blobs and announcements. Config bytes are
the database path (default ./data/announcer.db). Every statement runs in
autocommit mode; announcement ids are the AUTOINCREMENT row ids and all
reads are ordered by them.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from announcer.core.entities import Announcement
from announcer.core.ports.datasafe import (
    DataSafeNotConfiguredError,
    InvalidIdentifierError,
    UnknownAnnouncementError,
    validate_identifier,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "./data/announcer.db"
MAX_IDENTIFIER_LENGTH = 500

SCHEMA = """
CREATE TABLE IF NOT EXISTS config (
    k TEXT NOT NULL,
    plugin TEXT NOT NULL,
    data BLOB NOT NULL,
    PRIMARY KEY (k, plugin)
);
CREATE TABLE IF NOT EXISTS announcement (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    k TEXT NOT NULL,
    header TEXT NOT NULL,
    message TEXT NOT NULL,
    time TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_announcement_k ON announcement(k, id);
"""


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def _check(value: str, what: str) -> str:
    validate_identifier(value, what)
    if len(value) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(f"{what} longer than {MAX_IDENTIFIER_LENGTH} characters")
    return value


class SQLiteDataSafe:
    def __init__(self) -> None:
        self.db_path: str | None = None
        self._write_lock = threading.Lock()

    def initialise_datasafe(self, config: bytes) -> None:
        db_path = config.decode("utf-8").strip() or DEFAULT_DB_PATH
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        conn = self._get_conn()
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()
        logger.info("SQLite datasafe at %s", db_path)

    def _get_conn(self) -> sqlite3.Connection:
        if self.db_path is None:
            raise DataSafeNotConfiguredError("SQLite datasafe is not initialised")
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=30)
        conn.row_factory = dict_factory
        return conn

    # --- Config ---

    def get_config(self, key: str, plugin: str) -> bytes:
        _check(key, "key")
        _check(plugin, "plugin")
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT data FROM config WHERE k = ? AND plugin = ?", (key, plugin)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return b""
        return bytes(row["data"])

    def set_config(self, key: str, plugin: str, config: bytes) -> None:
        _check(key, "key")
        _check(plugin, "plugin")
        with self._write_lock:
            conn = self._get_conn()
            try:
                conn.execute(
                    "INSERT INTO config (k, plugin, data) VALUES (?, ?, ?) "
                    "ON CONFLICT(k, plugin) DO UPDATE SET data = excluded.data",
                    (key, plugin, sqlite3.Binary(config)),
                )
            finally:
                conn.close()

    # --- Announcements ---

    def save_announcement(self, key: str, announcement: Announcement) -> str:
        _check(key, "key")
        with self._write_lock:
            conn = self._get_conn()
            try:
                cursor = conn.execute(
                    "INSERT INTO announcement (k, header, message, time) VALUES (?, ?, ?, ?)",
                    (key, announcement.header, announcement.message, announcement.time.isoformat()),
                )
                return str(cursor.lastrowid)
            finally:
                conn.close()

    def get_announcement(self, key: str, announcement_id: str) -> Announcement:
        _check(key, "key")
        try:
            row_id = int(announcement_id)
        except ValueError as e:
            raise UnknownAnnouncementError(f"invalid announcement id {announcement_id!r}") from e
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT header, message, time FROM announcement WHERE k = ? AND id = ?",
                (key, row_id),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise UnknownAnnouncementError(f"unknown announcement id {announcement_id!r}")
        return self._to_announcement(row)

    def get_all_announcements(self, key: str) -> list[Announcement]:
        _check(key, "key")
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT header, message, time FROM announcement WHERE k = ? ORDER BY id", (key,)
            ).fetchall()
        finally:
            conn.close()
        return [self._to_announcement(row) for row in rows]

    def get_announcement_keys(self, key: str) -> list[str]:
        _check(key, "key")
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT id FROM announcement WHERE k = ? ORDER BY id", (key,)
            ).fetchall()
        finally:
            conn.close()
        return [str(row["id"]) for row in rows]

    @staticmethod
    def _to_announcement(row: dict[str, Any]) -> Announcement:
        return Announcement.from_dict(
            {"Header": row["header"], "Message": row["message"], "Time": row["time"]}
        )

    def close(self) -> None:
        pass
