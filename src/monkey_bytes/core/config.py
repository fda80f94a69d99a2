import copy
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger("monkey_bytes.core.config")

ROOT_CONFIG_FILENAME = "monkey-bytes.yml"
ROOT_OVERRIDE_FILENAME = "monkey-bytes.override.yml"
DEFAULT_LOG_PATH = ".monkey-bytes/bot.log"
DEFAULT_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 3


class ConfigError(Exception):
    """Raised when the bot config file is missing, malformed or invalid."""


def _default_discord_bot_section() -> Dict[str, Any]:
    """Build the default discord_bot section."""
    return {
        "bot_token_env": "MONKEY_BYTES_BOT_TOKEN",
        "app_id_env": "MONKEY_BYTES_APP_ID",
        "command_registration": {
            "enabled": True,
            "scope": "global",
            "guild_ids": [],
            "item_delay_seconds": 1.5,
            "guild_delay_seconds": 1.0,
            "guild_max_attempts": 3,
            "guild_base_delay_seconds": 2.0,
            "delete_delay_seconds": 0.3,
        },
        "cooldowns": {
            "default_seconds": 3,
        },
        "loading": {
            "skip_commands": ["ping", "help", "invite"],
            "animate": True,
            "interval_seconds": 0.8,
        },
        "component_routes": {
            "setup": "setup",
            "reset": "reset",
            "logs": "logs",
            "help": "help",
        },
        "custom_id_delimiter": "-",
        "state_file": ".monkey-bytes/state.sqlite3",
    }


DEFAULT_CONFIG: Dict[str, Any] = {
    "version": 1,
    "discord_bot": _default_discord_bot_section(),
    "log": {
        "path": DEFAULT_LOG_PATH,
        "max_bytes": DEFAULT_LOG_MAX_BYTES,
        "backup_count": DEFAULT_LOG_BACKUP_COUNT,
    },
}


@dataclasses.dataclass
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int


@dataclasses.dataclass
class BotConfig:
    root: Path
    config_path: Optional[Path]
    raw: Dict[str, Any]
    log: LogConfig

    @property
    def discord_bot(self) -> Dict[str, Any]:
        section = self.raw.get("discord_bot")
        return section if isinstance(section, dict) else {}


def _merge_defaults(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_dotenv_for_root(root: Path) -> None:
    """
    Best-effort load of environment variables for the provided bot root.

    A root-local .env wins over inherited process env so stale shell exports
    do not shadow the bot's own token.
    """
    try:
        candidate = root.resolve() / ".env"
        if candidate.exists():
            load_dotenv(dotenv_path=candidate, override=True)
    except OSError as exc:
        logger.debug("Failed to load .env file: %s", exc)


def _parse_log_config(root: Path, raw: Any) -> LogConfig:
    cfg = raw if isinstance(raw, dict) else {}
    path_value = cfg.get("path", DEFAULT_LOG_PATH)
    if not isinstance(path_value, str) or not path_value.strip():
        raise ConfigError("log.path must be a non-empty string")
    try:
        max_bytes = int(cfg.get("max_bytes", DEFAULT_LOG_MAX_BYTES))
        backup_count = int(cfg.get("backup_count", DEFAULT_LOG_BACKUP_COUNT))
    except (TypeError, ValueError) as exc:
        raise ConfigError("log.max_bytes and log.backup_count must be integers") from exc
    if max_bytes <= 0:
        raise ConfigError("log.max_bytes must be > 0")
    if backup_count < 0:
        raise ConfigError("log.backup_count must be >= 0")
    return LogConfig(
        path=(root / path_value).resolve(),
        max_bytes=max_bytes,
        backup_count=backup_count,
    )


def resolve_config_data(root: Path, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge raw config data over the defaults."""
    return _merge_defaults(DEFAULT_CONFIG, data)


def load_bot_config(root: Optional[Path] = None, *, load_env: bool = True) -> BotConfig:
    """Load ``monkey-bytes.yml`` (plus optional override file) from ``root``.

    A missing config file is not an error: defaults apply and secrets come from
    the environment.
    """
    root = (root or Path.cwd()).resolve()
    if not root.is_dir():
        raise ConfigError(f"Config root is not a directory: {root}")
    if load_env:
        load_dotenv_for_root(root)

    config_path = root / ROOT_CONFIG_FILENAME
    data = _load_yaml_dict(config_path)
    override_path = root / ROOT_OVERRIDE_FILENAME
    try:
        override = _load_yaml_dict(override_path)
    except ConfigError as exc:
        raise ConfigError(
            f"Invalid override config {override_path}; fix or delete it: {exc}"
        ) from exc
    if override:
        data = _merge_defaults(data, override)

    merged = resolve_config_data(root, data)
    if not isinstance(merged.get("discord_bot"), dict):
        raise ConfigError("discord_bot section must be a mapping")
    return BotConfig(
        root=root,
        config_path=config_path if config_path.exists() else None,
        raw=merged,
        log=_parse_log_config(root, merged.get("log")),
    )
