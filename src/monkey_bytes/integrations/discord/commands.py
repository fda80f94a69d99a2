"""Built-in command handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from ...core.logging_utils import log_event
from .command_registry import CommandRegistrationManager, RegistrationResult
from .config import DiscordCommandRegistration
from .constants import (
    COMPONENT_TYPE_ACTION_ROW,
    COMPONENT_TYPE_STRING_SELECT,
    OPTION_TYPE_BOOLEAN,
    OPTION_TYPE_STRING,
    PERMISSION_ADMINISTRATOR,
)
from .registry import HandlerContext, InteractionHandler
from .rendering import (
    EMBED_COLOR_DEFAULT,
    build_embed,
    build_error_embed,
    build_success_embed,
    format_inline_code,
)
from .responder import Interaction

DISCORD_EPOCH_MS = 1420070400000
HELP_SELECT_CUSTOM_ID = "help-detail"
_MAX_SELECT_OPTIONS = 25


def snowflake_timestamp_ms(snowflake: str) -> Optional[int]:
    try:
        return (int(snowflake) >> 22) + DISCORD_EPOCH_MS
    except (TypeError, ValueError):
        return None


def _format_duration(seconds: float) -> str:
    total = int(max(seconds, 0))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = [
        f"{value}{unit}"
        for value, unit in ((days, "d"), (hours, "h"), (minutes, "m"))
        if value
    ]
    parts.append(f"{secs}s")
    return " ".join(parts)


def _summarize_results(results: list[RegistrationResult]) -> tuple[bool, str]:
    lines: list[str] = []
    ok = True
    for result in results:
        if result.failed:
            ok = False
            lines.append(f"{result.target.label}: failed ({result.error})")
            continue
        line = f"{result.target.label}: {len(result.registered)} registered"
        if result.errors:
            ok = False
            failed_names = ", ".join(error.name for error in result.errors)
            line += f", {len(result.errors)} failed ({failed_names})"
        lines.append(line)
    return ok, "\n".join(lines) or "No registration targets configured."


class PingCommand(InteractionHandler):
    name = "ping"
    description = "Check the bot's response time"
    cooldown = 5
    skip_loading = True
    options = (
        {
            "type": OPTION_TYPE_BOOLEAN,
            "name": "reload_commands",
            "description": "Re-register all slash commands (administrators only)",
            "required": False,
        },
    )

    def __init__(self, *, clock: Any = None) -> None:
        self._clock = clock or time.time

    async def execute(self, interaction: Interaction, context: HandlerContext) -> None:
        if interaction.options.get("reload_commands"):
            await self._reload_commands(interaction, context)
            return

        created_ms = snowflake_timestamp_ms(interaction.id)
        now_ms = int(self._clock() * 1000)
        description = "🏓 Pong!"
        if created_ms is not None:
            description += f"\n**Bot Latency:** {max(now_ms - created_ms, 0)}ms"
        started_at = context.service("started_at")
        if isinstance(started_at, (int, float)):
            uptime = _format_duration(time.monotonic() - started_at)
            description += f"\n**Uptime:** {uptime}"
        await interaction.reply(
            embeds=[build_embed(description=description, color=EMBED_COLOR_DEFAULT)],
            ephemeral=True,
        )

    async def _reload_commands(
        self, interaction: Interaction, context: HandlerContext
    ) -> None:
        if not interaction.event.member_permissions & PERMISSION_ADMINISTRATOR:
            await interaction.reply(
                embeds=[
                    build_error_embed(
                        "You need the Administrator permission to reload commands."
                    )
                ],
                ephemeral=True,
            )
            return
        manager = context.service("registration")
        if not isinstance(manager, CommandRegistrationManager):
            await interaction.reply(
                embeds=[build_error_embed("Command registration is not configured.")],
                ephemeral=True,
            )
            return
        registration = context.service("registration_config")
        if not isinstance(registration, DiscordCommandRegistration):
            registration = DiscordCommandRegistration()

        await interaction.defer_reply(ephemeral=True)
        definitions = context.registry.definitions()
        results = await manager.sync_commands(
            definitions,
            scope=registration.scope,
            guild_ids=registration.guild_ids,
        )
        ok, summary = _summarize_results(results)
        log_event(
            context.logger,
            logging.INFO if ok else logging.WARNING,
            "discord.commands.reload",
            user_id=interaction.user_id,
            guild_id=interaction.guild_id,
            command_count=len(definitions),
            ok=ok,
        )
        embed = (
            build_success_embed(f"Commands reloaded.\n{summary}")
            if ok
            else build_error_embed(f"Command reload finished with errors.\n{summary}")
        )
        await interaction.edit_reply(embeds=[embed])


class HelpCommand(InteractionHandler):
    name = "help"
    description = "Get help with bot commands"
    cooldown = 5
    skip_loading = True
    options = (
        {
            "type": OPTION_TYPE_STRING,
            "name": "command",
            "description": "Get help for a specific command",
            "required": False,
        },
    )

    async def execute(self, interaction: Interaction, context: HandlerContext) -> None:
        command_name = interaction.options.get("command")
        if isinstance(command_name, str) and command_name.strip():
            embed = self._command_embed(context, command_name.strip())
            if embed is None:
                await interaction.reply(
                    "I couldn't find a command called "
                    f"{format_inline_code(command_name.strip())}.",
                    ephemeral=True,
                )
                return
            await interaction.reply(embeds=[embed], ephemeral=True)
            return

        handlers = [
            handler
            for handler in context.registry.handlers()
            if handler.definition() is not None and not handler.is_context_menu
        ]
        lines = [
            f"`/{handler.name}` - {handler.description or 'No description'}"
            for handler in handlers
        ]
        embed = build_embed(
            title="Command Help",
            description=(
                "Here are the available commands.\n"
                "Use `/help <command>` for more details about a specific command.\n\n"
                + "\n".join(lines)
            ),
        )
        components = self._select_components(handlers)
        await interaction.reply(embeds=[embed], components=components, ephemeral=True)

    async def handle_select_menu(
        self, interaction: Interaction, context: HandlerContext
    ) -> None:
        selected = interaction.values[0] if interaction.values else ""
        embed = self._command_embed(context, selected)
        if embed is None:
            embed = build_error_embed(
                f"I couldn't find a command called {format_inline_code(selected)}."
            )
        await interaction.update(embeds=[embed])

    def _command_embed(
        self, context: HandlerContext, command_name: str
    ) -> Optional[dict[str, Any]]:
        handler = context.registry.lookup_command(command_name)
        if handler is None:
            return None
        lines = [f"**Description:** {handler.description or 'No description'}"]
        for option in handler.options:
            name = option.get("name")
            if name:
                lines.append(f"`{name}`: {option.get('description', '')}")
        if handler.cooldown:
            lines.append(f"**Cooldown:** {handler.cooldown} seconds")
        return build_embed(
            title=f"Command: /{handler.name}", description="\n".join(lines)
        )

    @staticmethod
    def _select_components(
        handlers: list[InteractionHandler],
    ) -> Optional[list[dict[str, Any]]]:
        if not handlers:
            return None
        options = [
            {
                "label": handler.name,
                "value": handler.name,
                "description": (handler.description or handler.name)[:100],
            }
            for handler in handlers[:_MAX_SELECT_OPTIONS]
        ]
        return [
            {
                "type": COMPONENT_TYPE_ACTION_ROW,
                "components": [
                    {
                        "type": COMPONENT_TYPE_STRING_SELECT,
                        "custom_id": HELP_SELECT_CUSTOM_ID,
                        "placeholder": "Select a command for details",
                        "options": options,
                    }
                ],
            }
        ]


def builtin_handlers() -> list[InteractionHandler]:
    return [PingCommand(), HelpCommand()]
