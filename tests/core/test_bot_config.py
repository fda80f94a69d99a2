from __future__ import annotations

import os
from pathlib import Path

import pytest

from monkey_bytes.core.config import (
    DEFAULT_CONFIG,
    ROOT_CONFIG_FILENAME,
    ROOT_OVERRIDE_FILENAME,
    ConfigError,
    load_bot_config,
)


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    config = load_bot_config(tmp_path, load_env=False)

    assert config.config_path is None
    assert config.root == tmp_path.resolve()
    assert config.discord_bot == DEFAULT_CONFIG["discord_bot"]
    assert config.log.path == (tmp_path / ".monkey-bytes/bot.log").resolve()
    assert config.log.backup_count == 3


def test_file_and_override_merge_over_defaults(tmp_path: Path) -> None:
    (tmp_path / ROOT_CONFIG_FILENAME).write_text(
        "discord_bot:\n"
        "  command_registration:\n"
        "    scope: guild\n"
        "    guild_ids: ['1']\n"
        "log:\n"
        "  max_bytes: 1024\n",
        encoding="utf-8",
    )
    (tmp_path / ROOT_OVERRIDE_FILENAME).write_text(
        "discord_bot:\n  command_registration:\n    guild_ids: ['2', '3']\n",
        encoding="utf-8",
    )

    config = load_bot_config(tmp_path, load_env=False)

    registration = config.discord_bot["command_registration"]
    assert config.config_path == tmp_path / ROOT_CONFIG_FILENAME
    assert registration["scope"] == "guild"
    assert registration["guild_ids"] == ["2", "3"]
    assert registration["item_delay_seconds"] == 1.5
    assert config.log.max_bytes == 1024


def test_invalid_yaml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / ROOT_CONFIG_FILENAME).write_text("discord_bot: [\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_bot_config(tmp_path, load_env=False)


def test_broken_override_names_the_file(tmp_path: Path) -> None:
    (tmp_path / ROOT_OVERRIDE_FILENAME).write_text("- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="override"):
        load_bot_config(tmp_path, load_env=False)


def test_non_mapping_discord_section_is_rejected(tmp_path: Path) -> None:
    (tmp_path / ROOT_CONFIG_FILENAME).write_text(
        "discord_bot: nope\n", encoding="utf-8"
    )

    with pytest.raises(ConfigError, match="discord_bot"):
        load_bot_config(tmp_path, load_env=False)


@pytest.mark.parametrize(
    "log_section",
    ["  path: ''\n", "  max_bytes: 0\n", "  backup_count: -1\n", "  max_bytes: big\n"],
)
def test_invalid_log_section(tmp_path: Path, log_section: str) -> None:
    (tmp_path / ROOT_CONFIG_FILENAME).write_text(
        "log:\n" + log_section, encoding="utf-8"
    )

    with pytest.raises(ConfigError):
        load_bot_config(tmp_path, load_env=False)


def test_root_must_be_a_directory(tmp_path: Path) -> None:
    missing = tmp_path / "missing"

    with pytest.raises(ConfigError):
        load_bot_config(missing, load_env=False)


def test_dotenv_in_root_overrides_process_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("MONKEY_BYTES_BOT_TOKEN", "stale")
    (tmp_path / ".env").write_text("MONKEY_BYTES_BOT_TOKEN=fresh\n", encoding="utf-8")

    load_bot_config(tmp_path)

    assert os.environ["MONKEY_BYTES_BOT_TOKEN"] == "fresh"
