from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .dispatcher import (
    DEFAULT_COMPONENT_ROUTES,
    DEFAULT_SKIP_LOADING_COMMANDS,
    DispatcherSettings,
)
from .errors import DiscordConfigError
from .interactions import DEFAULT_CUSTOM_ID_DELIMITER

DEFAULT_BOT_TOKEN_ENV = "MONKEY_BYTES_BOT_TOKEN"
DEFAULT_APP_ID_ENV = "MONKEY_BYTES_APP_ID"
DEFAULT_STATE_FILE = ".monkey-bytes/state.sqlite3"
DEFAULT_COMMAND_SCOPE = "global"
DEFAULT_COOLDOWN_SECONDS = 3.0
DEFAULT_LOADING_INTERVAL_SECONDS = 0.8


class DiscordBotConfigError(DiscordConfigError):
    """Raised when discord bot config is invalid."""


@dataclass(frozen=True)
class DiscordCommandRegistration:
    enabled: bool = True
    scope: str = DEFAULT_COMMAND_SCOPE
    guild_ids: tuple[str, ...] = ()
    item_delay_seconds: float = 1.5
    guild_delay_seconds: float = 1.0
    guild_max_attempts: int = 3
    guild_base_delay_seconds: float = 2.0
    delete_delay_seconds: float = 0.3


@dataclass(frozen=True)
class DiscordLoadingConfig:
    skip_commands: frozenset[str] = frozenset(DEFAULT_SKIP_LOADING_COMMANDS)
    animate: bool = True
    interval_seconds: float = DEFAULT_LOADING_INTERVAL_SECONDS


@dataclass(frozen=True)
class DiscordBotConfig:
    root: Path
    bot_token_env: str
    app_id_env: str
    bot_token: Optional[str]
    application_id: Optional[str]
    command_registration: DiscordCommandRegistration
    default_cooldown_seconds: float
    loading: DiscordLoadingConfig
    component_routes: dict[str, str]
    custom_id_delimiter: str
    state_file: Path
    extras: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_raw(cls, *, root: Path, raw: dict[str, Any]) -> "DiscordBotConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        bot_token_env = str(cfg.get("bot_token_env", DEFAULT_BOT_TOKEN_ENV)).strip()
        app_id_env = str(cfg.get("app_id_env", DEFAULT_APP_ID_ENV)).strip()
        if not bot_token_env:
            raise DiscordBotConfigError("discord_bot.bot_token_env must be non-empty")
        if not app_id_env:
            raise DiscordBotConfigError("discord_bot.app_id_env must be non-empty")

        registration_raw = cfg.get("command_registration")
        registration_cfg = (
            registration_raw if isinstance(registration_raw, dict) else {}
        )
        scope_raw = (
            str(registration_cfg.get("scope", DEFAULT_COMMAND_SCOPE)).strip().lower()
        )
        if scope_raw not in {"global", "guild"}:
            raise DiscordBotConfigError(
                "discord_bot.command_registration.scope must be 'global' or 'guild'"
            )
        command_registration = DiscordCommandRegistration(
            enabled=_parse_bool_or_default(
                registration_cfg.get("enabled"),
                default=True,
                key="discord_bot.command_registration.enabled",
            ),
            scope=scope_raw,
            guild_ids=tuple(_parse_string_ids(registration_cfg.get("guild_ids"))),
            item_delay_seconds=_parse_non_negative_float(
                registration_cfg.get("item_delay_seconds"),
                default=1.5,
                key="discord_bot.command_registration.item_delay_seconds",
            ),
            guild_delay_seconds=_parse_non_negative_float(
                registration_cfg.get("guild_delay_seconds"),
                default=1.0,
                key="discord_bot.command_registration.guild_delay_seconds",
            ),
            guild_max_attempts=_parse_positive_int_or_default(
                registration_cfg.get("guild_max_attempts"),
                default=3,
                key="discord_bot.command_registration.guild_max_attempts",
            ),
            guild_base_delay_seconds=_parse_non_negative_float(
                registration_cfg.get("guild_base_delay_seconds"),
                default=2.0,
                key="discord_bot.command_registration.guild_base_delay_seconds",
            ),
            delete_delay_seconds=_parse_non_negative_float(
                registration_cfg.get("delete_delay_seconds"),
                default=0.3,
                key="discord_bot.command_registration.delete_delay_seconds",
            ),
        )

        cooldowns_raw = cfg.get("cooldowns")
        cooldowns_cfg = cooldowns_raw if isinstance(cooldowns_raw, dict) else {}
        default_cooldown = _parse_non_negative_float(
            cooldowns_cfg.get("default_seconds"),
            default=DEFAULT_COOLDOWN_SECONDS,
            key="discord_bot.cooldowns.default_seconds",
        )

        loading_raw = cfg.get("loading")
        loading_cfg = loading_raw if isinstance(loading_raw, dict) else {}
        skip_raw = loading_cfg.get("skip_commands")
        loading = DiscordLoadingConfig(
            skip_commands=(
                frozenset(DEFAULT_SKIP_LOADING_COMMANDS)
                if skip_raw is None
                else frozenset(_parse_string_ids(skip_raw))
            ),
            animate=_parse_bool_or_default(
                loading_cfg.get("animate"),
                default=True,
                key="discord_bot.loading.animate",
            ),
            interval_seconds=_parse_non_negative_float(
                loading_cfg.get("interval_seconds"),
                default=DEFAULT_LOADING_INTERVAL_SECONDS,
                key="discord_bot.loading.interval_seconds",
            ),
        )

        routes_raw = cfg.get("component_routes")
        if routes_raw is None:
            component_routes = dict(DEFAULT_COMPONENT_ROUTES)
        elif isinstance(routes_raw, dict):
            component_routes = {
                str(owner).strip(): str(target).strip()
                for owner, target in routes_raw.items()
                if str(owner).strip() and target is not None and str(target).strip()
            }
        else:
            raise DiscordBotConfigError("discord_bot.component_routes must be a mapping")

        delimiter = cfg.get("custom_id_delimiter", DEFAULT_CUSTOM_ID_DELIMITER)
        if not isinstance(delimiter, str) or not delimiter:
            raise DiscordBotConfigError(
                "discord_bot.custom_id_delimiter must be a non-empty string"
            )

        state_file_value = cfg.get("state_file", DEFAULT_STATE_FILE)
        if not isinstance(state_file_value, str) or not state_file_value.strip():
            raise DiscordBotConfigError("discord_bot.state_file must be a string path")

        known = {
            "bot_token_env",
            "app_id_env",
            "command_registration",
            "cooldowns",
            "loading",
            "component_routes",
            "custom_id_delimiter",
            "state_file",
        }
        return cls(
            root=root,
            bot_token_env=bot_token_env,
            app_id_env=app_id_env,
            bot_token=os.environ.get(bot_token_env),
            application_id=os.environ.get(app_id_env),
            command_registration=command_registration,
            default_cooldown_seconds=default_cooldown,
            loading=loading,
            component_routes=component_routes,
            custom_id_delimiter=delimiter,
            state_file=(root / state_file_value).resolve(),
            extras={key: value for key, value in cfg.items() if key not in known},
        )

    def require_credentials(self) -> tuple[str, str]:
        """Return ``(bot_token, application_id)`` or raise when either is unset."""
        if not self.bot_token:
            raise DiscordBotConfigError(f"env var {self.bot_token_env} is unset")
        if not self.application_id:
            raise DiscordBotConfigError(f"env var {self.app_id_env} is unset")
        return self.bot_token, self.application_id

    def dispatcher_settings(
        self, *, animate_loading: Optional[bool] = None
    ) -> DispatcherSettings:
        return DispatcherSettings(
            default_cooldown_seconds=self.default_cooldown_seconds,
            skip_loading_commands=self.loading.skip_commands,
            component_routes=dict(self.component_routes),
            custom_id_delimiter=self.custom_id_delimiter,
            animate_loading=(
                self.loading.animate if animate_loading is None else animate_loading
            ),
            loading_interval_seconds=self.loading.interval_seconds,
        )


def _parse_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise DiscordBotConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_non_negative_float(value: Any, *, default: float, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise DiscordBotConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise DiscordBotConfigError(f"{key} must be a number") from exc
    if parsed < 0:
        raise DiscordBotConfigError(f"{key} must be >= 0")
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise DiscordBotConfigError(f"{key} must be a boolean")
