from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from ....core.config import ConfigError, load_bot_config
from ....core.logging_utils import setup_rotating_logger
from ....integrations.discord.command_registry import (
    CommandRegistrationManager,
    RegistrationResult,
    RegistrationTarget,
)
from ....integrations.discord.commands import builtin_handlers
from ....integrations.discord.config import DiscordBotConfig, DiscordBotConfigError
from ....integrations.discord.errors import DiscordAPIError
from ....integrations.discord.registry import HandlerRegistry
from ....integrations.discord.rest import DiscordRestClient

LOGGER_NAME = "monkey_bytes.discord.commands"


def _load_discord_config(
    path: Optional[Path],
) -> tuple[DiscordBotConfig, logging.Logger]:
    config = load_bot_config(path or Path.cwd())
    logger = setup_rotating_logger(LOGGER_NAME, config.log)
    return DiscordBotConfig.from_raw(root=config.root, raw=config.discord_bot), logger


def _command_definitions() -> list[dict[str, Any]]:
    registry = HandlerRegistry(logger=logging.getLogger(LOGGER_NAME))
    registry.register_all(builtin_handlers())
    return registry.definitions()


def _build_manager(
    config: DiscordBotConfig, rest: Any, *, logger: logging.Logger
) -> CommandRegistrationManager:
    registration = config.command_registration
    return CommandRegistrationManager(
        rest,
        application_id=config.application_id or "",
        logger=logger,
        item_delay_seconds=registration.item_delay_seconds,
        guild_delay_seconds=registration.guild_delay_seconds,
        guild_max_attempts=registration.guild_max_attempts,
        guild_base_delay_seconds=registration.guild_base_delay_seconds,
        delete_delay_seconds=registration.delete_delay_seconds,
    )


def _resolve_targets(
    config: DiscordBotConfig, *, scope: Optional[str], guild_ids: list[str]
) -> tuple[str, tuple[str, ...]]:
    resolved_scope = (scope or config.command_registration.scope).strip().lower()
    if guild_ids and scope is None:
        resolved_scope = "guild"
    resolved_guilds = tuple(guild_ids) or config.command_registration.guild_ids
    if resolved_scope not in {"global", "guild"}:
        raise ValueError("scope must be 'global' or 'guild'")
    if resolved_scope == "guild" and not resolved_guilds:
        raise ValueError("guild scope requires at least one guild_id")
    return resolved_scope, resolved_guilds


async def _register_discord_commands(
    config: DiscordBotConfig,
    *,
    scope: str,
    guild_ids: tuple[str, ...],
    reset: bool,
    logger: logging.Logger,
    rest_client_factory: Optional[Callable[..., Any]] = None,
) -> list[RegistrationResult]:
    bot_token, _application_id = config.require_credentials()
    definitions = _command_definitions()
    factory = rest_client_factory or DiscordRestClient
    async with factory(bot_token=bot_token) as rest:
        manager = _build_manager(config, rest, logger=logger)
        if not reset:
            return await manager.sync_commands(
                definitions, scope=scope, guild_ids=guild_ids
            )
        targets = (
            [RegistrationTarget.application()]
            if scope == "global"
            else [RegistrationTarget.for_guild(guild_id) for guild_id in guild_ids]
        )
        return [await manager.reset_commands(definitions, target) for target in targets]


async def _list_discord_commands(
    config: DiscordBotConfig,
    *,
    guild_id: Optional[str],
    logger: logging.Logger,
    rest_client_factory: Optional[Callable[..., Any]] = None,
) -> list[dict[str, Any]]:
    bot_token, _application_id = config.require_credentials()
    factory = rest_client_factory or DiscordRestClient
    async with factory(bot_token=bot_token) as rest:
        manager = _build_manager(config, rest, logger=logger)
        target = (
            RegistrationTarget.for_guild(guild_id)
            if guild_id
            else RegistrationTarget.application()
        )
        return await manager.list_commands(target)


def _echo_results(results: list[RegistrationResult]) -> bool:
    ok = True
    for result in results:
        label = result.target.label
        if result.failed:
            ok = False
            typer.echo(
                f"{label}: FAILED after {result.attempts} attempt(s): {result.error}"
            )
            continue
        line = f"{label}: {len(result.registered)} command(s) registered"
        line += f" ({result.mode})"
        if result.deleted:
            line += f", {result.deleted} deleted first"
        typer.echo(line)
        for error in result.errors:
            ok = False
            typer.echo(f"  {error.name}: {error.message}")
    return ok


def register_discord_commands(app: typer.Typer, *, raise_exit: Callable) -> None:
    def _run_registration(
        path: Optional[Path],
        scope: Optional[str],
        guild: Optional[list[str]],
        *,
        reset: bool,
    ) -> None:
        try:
            config, logger = _load_discord_config(path)
            resolved_scope, guild_ids = _resolve_targets(
                config, scope=scope, guild_ids=list(guild or [])
            )
            results = asyncio.run(
                _register_discord_commands(
                    config,
                    scope=resolved_scope,
                    guild_ids=guild_ids,
                    reset=reset,
                    logger=logger,
                )
            )
        except (ConfigError, DiscordBotConfigError, ValueError) as exc:
            raise_exit(str(exc), cause=exc)
        except DiscordAPIError as exc:
            raise_exit(f"Discord API error: {exc}", cause=exc)
        if not _echo_results(results):
            raise_exit("Command registration finished with errors.")
        typer.echo("Discord application commands synchronized.")

    @app.command("register")
    def commands_register(
        path: Optional[Path] = typer.Option(None, "--path", help="Bot root path"),
        scope: Optional[str] = typer.Option(
            None, "--scope", help="Registration scope: global or guild"
        ),
        guild: Optional[list[str]] = typer.Option(
            None, "--guild", help="Guild id (repeatable); implies --scope guild"
        ),
    ) -> None:
        """Publish the bot's command definitions to Discord."""
        _run_registration(path, scope, guild, reset=False)

    @app.command("reset")
    def commands_reset(
        path: Optional[Path] = typer.Option(None, "--path", help="Bot root path"),
        scope: Optional[str] = typer.Option(
            None, "--scope", help="Registration scope: global or guild"
        ),
        guild: Optional[list[str]] = typer.Option(
            None, "--guild", help="Guild id (repeatable); implies --scope guild"
        ),
    ) -> None:
        """Delete every registered command, then register the current set."""
        _run_registration(path, scope, guild, reset=True)

    @app.command("list")
    def commands_list(
        path: Optional[Path] = typer.Option(None, "--path", help="Bot root path"),
        guild: Optional[str] = typer.Option(None, "--guild", help="Guild id"),
    ) -> None:
        """List the commands Discord currently has registered."""
        try:
            config, logger = _load_discord_config(path)
            commands = asyncio.run(
                _list_discord_commands(
                    config,
                    guild_id=guild,
                    logger=logger,
                )
            )
        except (ConfigError, DiscordBotConfigError, ValueError) as exc:
            raise_exit(str(exc), cause=exc)
        except DiscordAPIError as exc:
            raise_exit(f"Discord API error: {exc}", cause=exc)
        if not commands:
            typer.echo("No commands registered.")
            return
        for command in commands:
            typer.echo(
                f"{command.get('id', '?')}\t{command.get('name', '?')}\t"
                f"type={command.get('type', 1)}"
            )
