from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from monkey_bytes.integrations.discord.settings_store import (
    GUILD_SETTINGS_SCHEMA_VERSION,
    GuildSettingsStore,
    get_path,
    set_path,
)


def test_dotted_paths_read_and_create_nested_mappings() -> None:
    document: dict = {"logging": {"channel": "123"}, "prefix": "!"}

    assert get_path(document, "logging.channel") == "123"
    assert get_path(document, "logging.missing", "fallback") == "fallback"
    assert get_path(document, "prefix.deeper") is None

    set_path(document, "welcome.message.text", "hi")
    set_path(document, "prefix.nested", True)

    assert document["welcome"] == {"message": {"text": "hi"}}
    assert document["prefix"] == {"nested": True}
    with pytest.raises(ValueError):
        get_path(document, "..")


@pytest.mark.anyio
async def test_find_or_create_seeds_defaults_once(tmp_path: Path) -> None:
    store = GuildSettingsStore(
        tmp_path / "state.sqlite3", defaults={"logging": {"enabled": False}}
    )
    await store.initialize()
    try:
        created = await store.find_or_create("guild-1")
        again = await store.find_or_create(" guild-1 ")
    finally:
        await store.close()

    assert created.guild_id == "guild-1"
    assert created.settings == {"logging": {"enabled": False}}
    assert created.created_at == again.created_at
    assert created.created_at.endswith("Z")


@pytest.mark.anyio
async def test_update_writes_nested_value_and_persists(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "state.sqlite3"
    store = GuildSettingsStore(db_path)
    await store.initialize()
    try:
        updated = await store.update("guild-1", "logging.channel_id", "555")
        await store.update("guild-1", "logging.enabled", True)
    finally:
        await store.close()

    assert updated.get("logging.channel_id") == "555"

    reopened = GuildSettingsStore(db_path)
    try:
        assert await reopened.get("guild-1", "logging") == {
            "channel_id": "555",
            "enabled": True,
        }
        assert await reopened.get("guild-1", "missing.key", 7) == 7
        assert await reopened.get("guild-2", "logging") is None
    finally:
        await reopened.close()


@pytest.mark.anyio
async def test_returned_documents_are_copies(tmp_path: Path) -> None:
    store = GuildSettingsStore(tmp_path / "state.sqlite3")
    try:
        await store.update("guild-1", "roles", ["admin"])
        roles = await store.get("guild-1", "roles")
        roles.append("mod")
        assert await store.get("guild-1", "roles") == ["admin"]
    finally:
        await store.close()


@pytest.mark.anyio
async def test_delete_reports_whether_a_row_existed(tmp_path: Path) -> None:
    store = GuildSettingsStore(tmp_path / "state.sqlite3")
    try:
        await store.find_or_create("guild-1")
        assert await store.delete("guild-1") is True
        assert await store.delete("guild-1") is False
    finally:
        await store.close()


@pytest.mark.anyio
async def test_invalid_keys_are_rejected(tmp_path: Path) -> None:
    store = GuildSettingsStore(tmp_path / "state.sqlite3")
    try:
        with pytest.raises(ValueError):
            await store.find_or_create("  ")
        with pytest.raises(ValueError):
            await store.update("guild-1", "", "x")
    finally:
        await store.close()


@pytest.mark.anyio
async def test_schema_version_is_recorded(tmp_path: Path) -> None:
    db_path = tmp_path / "state.sqlite3"
    store = GuildSettingsStore(db_path)
    await store.initialize()
    await store.initialize()
    await store.close()

    with sqlite3.connect(db_path) as conn:
        rows = conn.execute("SELECT version FROM schema_info").fetchall()
    assert rows == [(GUILD_SETTINGS_SCHEMA_VERSION,)]
