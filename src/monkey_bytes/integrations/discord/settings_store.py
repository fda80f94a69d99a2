from __future__ import annotations

import asyncio
import copy
import json
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from ...core.sqlite_utils import connect_sqlite
from ...core.time_utils import now_iso

GUILD_SETTINGS_SCHEMA_VERSION = 1
_MISSING = object()


@dataclass(frozen=True)
class GuildSettings:
    guild_id: str
    settings: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.settings, path, default)


def _split_path(path: str) -> list[str]:
    parts = [part for part in str(path).split(".") if part]
    if not parts:
        raise ValueError("settings path must be non-empty")
    return parts


def get_path(document: Mapping[str, Any], path: str, default: Any = None) -> Any:
    current: Any = document
    for part in _split_path(path):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return copy.deepcopy(current)


def set_path(document: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Set ``value`` at a dotted path, creating intermediate mappings."""
    parts = _split_path(path)
    current = document
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = copy.deepcopy(value)
    return document


class GuildSettingsStore:
    """Per-guild settings documents in sqlite.

    Each guild owns one JSON document addressed by dotted paths; the store does
    not interpret its contents. All sqlite work runs on a single worker thread.
    """

    def __init__(
        self, db_path: Path, *, defaults: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._db_path = db_path
        self._defaults = copy.deepcopy(dict(defaults or {}))
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="guild-settings"
        )
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        await self._run(self._connection_sync)

    async def close(self) -> None:
        await self._run(self._close_sync)
        self._executor.shutdown(wait=True)

    async def find_or_create(self, guild_id: str) -> GuildSettings:
        return await self._run(self._find_or_create_sync, _guild_key(guild_id))

    async def get(self, guild_id: str, path: str, default: Any = None) -> Any:
        record = await self.find_or_create(guild_id)
        return record.get(path, default)

    async def update(self, guild_id: str, path: str, value: Any) -> GuildSettings:
        return await self._run(self._update_sync, _guild_key(guild_id), path, value)

    async def delete(self, guild_id: str) -> bool:
        return await self._run(self._delete_sync, _guild_key(guild_id))

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    def _connection_sync(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = connect_sqlite(self._db_path)
            self._ensure_schema(self._connection)
        return self._connection

    def _close_sync(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_info (
                    version INTEGER NOT NULL
                )
                """
            )
            row = conn.execute(
                "SELECT version FROM schema_info ORDER BY version DESC LIMIT 1"
            ).fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO schema_info(version) VALUES (?)",
                    (GUILD_SETTINGS_SCHEMA_VERSION,),
                )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS guild_settings (
                    guild_id TEXT PRIMARY KEY,
                    settings_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def _fetch_sync(
        self, conn: sqlite3.Connection, guild_id: str
    ) -> Optional[GuildSettings]:
        row = conn.execute(
            "SELECT * FROM guild_settings WHERE guild_id = ?", (guild_id,)
        ).fetchone()
        if row is None:
            return None
        try:
            settings = json.loads(row["settings_json"])
        except json.JSONDecodeError:
            settings = {}
        return GuildSettings(
            guild_id=str(row["guild_id"]),
            settings=settings if isinstance(settings, dict) else {},
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
        )

    def _find_or_create_sync(self, guild_id: str) -> GuildSettings:
        conn = self._connection_sync()
        existing = self._fetch_sync(conn, guild_id)
        if existing is not None:
            return existing
        timestamp = now_iso()
        with conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO guild_settings (
                    guild_id, settings_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?)
                """,
                (guild_id, json.dumps(self._defaults), timestamp, timestamp),
            )
        record = self._fetch_sync(conn, guild_id)
        assert record is not None
        return record

    def _update_sync(self, guild_id: str, path: str, value: Any) -> GuildSettings:
        record = self._find_or_create_sync(guild_id)
        settings = set_path(copy.deepcopy(record.settings), path, value)
        conn = self._connection_sync()
        with conn:
            conn.execute(
                """
                UPDATE guild_settings
                   SET settings_json = ?, updated_at = ?
                 WHERE guild_id = ?
                """,
                (json.dumps(settings), now_iso(), guild_id),
            )
        updated = self._fetch_sync(conn, guild_id)
        assert updated is not None
        return updated

    def _delete_sync(self, guild_id: str) -> bool:
        conn = self._connection_sync()
        with conn:
            cursor = conn.execute(
                "DELETE FROM guild_settings WHERE guild_id = ?", (guild_id,)
            )
        return cursor.rowcount > 0


def _guild_key(guild_id: str) -> str:
    key = str(guild_id or "").strip()
    if not key:
        raise ValueError("guild_id must be non-empty")
    return key
