from __future__ import annotations

import asyncio
import copy
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ...core.exceptions import TransientError
from ...core.logging_utils import log_event
from ...core.retry import SleepFn, transient_retrying
from .constants import CONTEXT_MENU_COMMAND_TYPES, OPTION_TYPE_SUB_COMMAND
from .errors import DiscordAPIError
from .rest import DiscordRestClient

SCOPE_GLOBAL = "global"
SCOPE_GUILD = "guild"
MODE_BULK = "bulk"
MODE_PER_ITEM = "per_item"


@dataclass(frozen=True)
class RegistrationTarget:
    scope: str = SCOPE_GLOBAL
    guild_id: Optional[str] = None

    @classmethod
    def application(cls) -> "RegistrationTarget":
        return cls(scope=SCOPE_GLOBAL)

    @classmethod
    def for_guild(cls, guild_id: str) -> "RegistrationTarget":
        guild_id = str(guild_id).strip()
        if not guild_id:
            raise ValueError("guild target requires a guild_id")
        return cls(scope=SCOPE_GUILD, guild_id=guild_id)

    @property
    def is_guild(self) -> bool:
        return self.scope == SCOPE_GUILD

    @property
    def label(self) -> str:
        return f"guild:{self.guild_id}" if self.is_guild else SCOPE_GLOBAL


@dataclass(frozen=True)
class RegistrationItemError:
    name: str
    message: str


@dataclass
class RegistrationResult:
    target: RegistrationTarget
    registered: list[dict[str, Any]] = field(default_factory=list)
    errors: list[RegistrationItemError] = field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None
    attempts: int = 0
    mode: str = MODE_BULK
    deleted: int = 0

    @property
    def registered_names(self) -> list[str]:
        return [str(item.get("name")) for item in self.registered]

    @property
    def ok(self) -> bool:
        return not self.failed and not self.errors


def has_subcommands(definition: dict[str, Any]) -> bool:
    options = definition.get("options")
    if not isinstance(options, list):
        return False
    return any(
        isinstance(option, dict) and option.get("type") == OPTION_TYPE_SUB_COMMAND
        for option in options
    )


def prepare_definitions(
    definitions: Iterable[dict[str, Any]],
    *,
    logger: Optional[logging.Logger] = None,
) -> list[dict[str, Any]]:
    """Copy definitions into a registration payload.

    Context-menu (user/message) definitions lose their ``description``; Discord
    rejects it on those types. Unnamed entries are skipped and the first
    definition for a name wins.
    """
    logger = logger or logging.getLogger(__name__)
    prepared: list[dict[str, Any]] = []
    seen: set[str] = set()
    for definition in definitions:
        if not isinstance(definition, dict):
            continue
        name = definition.get("name")
        if not isinstance(name, str) or not name.strip():
            log_event(
                logger,
                logging.WARNING,
                "discord.commands.definition_invalid",
                reason="missing_name",
            )
            continue
        if name in seen:
            log_event(
                logger,
                logging.WARNING,
                "discord.commands.definition_duplicate",
                name=name,
            )
            continue
        seen.add(name)
        payload = copy.deepcopy(definition)
        if payload.get("type") in CONTEXT_MENU_COMMAND_TYPES:
            payload.pop("description", None)
        prepared.append(payload)
    return prepared


class CommandRegistrationManager:
    """Publishes command definitions to Discord.

    Calls are strictly sequential with fixed pauses between them; Discord's
    command endpoints are rate limited per application.
    """

    def __init__(
        self,
        rest: DiscordRestClient,
        *,
        application_id: str,
        logger: Optional[logging.Logger] = None,
        item_delay_seconds: float = 1.5,
        guild_delay_seconds: float = 1.0,
        guild_max_attempts: int = 3,
        guild_base_delay_seconds: float = 2.0,
        delete_delay_seconds: float = 0.3,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        application_id = str(application_id or "").strip()
        if not application_id:
            raise ValueError("application_id is required for command registration")
        self._rest = rest
        self._application_id = application_id
        self._logger = logger or logging.getLogger(__name__)
        self._item_delay = max(float(item_delay_seconds), 0.0)
        self._guild_delay = max(float(guild_delay_seconds), 0.0)
        self._guild_max_attempts = max(int(guild_max_attempts), 1)
        self._guild_base_delay = max(float(guild_base_delay_seconds), 0.0)
        self._delete_delay = max(float(delete_delay_seconds), 0.0)
        self._sleep = sleep or asyncio.sleep

    @property
    def application_id(self) -> str:
        return self._application_id

    async def register_all(
        self,
        definitions: Iterable[dict[str, Any]],
        target: Optional[RegistrationTarget] = None,
    ) -> RegistrationResult:
        target = target or RegistrationTarget.application()
        payload = prepare_definitions(definitions, logger=self._logger)
        if target.is_guild:
            return await self._register_guild(payload, target)
        try:
            registered = await self._bulk_overwrite(payload, target)
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.bulk_failed",
                target=target.label,
                command_count=len(payload),
                status_code=exc.status_code,
                exc=exc,
            )
            return await self._register_per_item(payload, target, attempts=1)
        return RegistrationResult(target=target, registered=registered, attempts=1)

    async def register_guilds(
        self,
        definitions: Iterable[dict[str, Any]],
        guild_ids: Iterable[str],
    ) -> dict[str, RegistrationResult]:
        """Register into each guild in turn; one guild's failure never stops the rest."""
        payload = prepare_definitions(definitions, logger=self._logger)
        results: dict[str, RegistrationResult] = {}
        for index, guild_id in enumerate(_normalize_guild_ids(guild_ids)):
            if index:
                await self._sleep(self._guild_delay)
            target = RegistrationTarget.for_guild(guild_id)
            try:
                results[guild_id] = await self._register_guild(payload, target)
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "discord.commands.guild_unexpected_error",
                    guild_id=guild_id,
                    exc=exc,
                )
                results[guild_id] = RegistrationResult(
                    target=target, failed=True, error=str(exc)
                )
        failed = [guild_id for guild_id, result in results.items() if result.failed]
        log_event(
            self._logger,
            logging.INFO if not failed else logging.WARNING,
            "discord.commands.guilds_summary",
            guild_count=len(results),
            failed_guilds=failed,
        )
        return results

    async def list_commands(
        self, target: Optional[RegistrationTarget] = None
    ) -> list[dict[str, Any]]:
        target = target or RegistrationTarget.application()
        return await self._rest.list_application_commands(
            application_id=self._application_id, guild_id=target.guild_id
        )

    async def reset_commands(
        self,
        definitions: Iterable[dict[str, Any]],
        target: Optional[RegistrationTarget] = None,
    ) -> RegistrationResult:
        """Delete every existing command for ``target``, then register afresh.

        Listing or deletion failures are logged and registration still runs.
        """
        target = target or RegistrationTarget.application()
        definitions = list(definitions)
        try:
            existing = await self.list_commands(target)
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.list_failed",
                target=target.label,
                exc=exc,
            )
            existing = []

        deleted = 0
        for index, command in enumerate(existing):
            command_id = str(command.get("id") or "").strip()
            if not command_id:
                continue
            if index:
                await self._sleep(self._delete_delay)
            try:
                await self._rest.delete_application_command(
                    application_id=self._application_id,
                    command_id=command_id,
                    guild_id=target.guild_id,
                )
            except DiscordAPIError as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "discord.commands.delete_failed",
                    target=target.label,
                    command_id=command_id,
                    name=command.get("name"),
                    exc=exc,
                )
                continue
            deleted += 1
        log_event(
            self._logger,
            logging.INFO,
            "discord.commands.deleted",
            target=target.label,
            existing_count=len(existing),
            deleted_count=deleted,
        )

        result = await self.register_all(definitions, target)
        return dataclasses.replace(result, deleted=deleted)

    async def sync_commands(
        self,
        definitions: Iterable[dict[str, Any]],
        *,
        scope: str,
        guild_ids: Iterable[str] = (),
    ) -> list[RegistrationResult]:
        normalized_scope = scope.strip().lower()
        if normalized_scope == SCOPE_GLOBAL:
            return [await self.register_all(definitions)]
        if normalized_scope != SCOPE_GUILD:
            raise ValueError("scope must be 'global' or 'guild'")
        normalized_guild_ids = _normalize_guild_ids(guild_ids)
        if not normalized_guild_ids:
            raise ValueError("guild scope requires at least one guild_id")
        results = await self.register_guilds(definitions, normalized_guild_ids)
        return list(results.values())

    async def _bulk_overwrite(
        self, payload: list[dict[str, Any]], target: RegistrationTarget
    ) -> list[dict[str, Any]]:
        updated = await self._rest.bulk_overwrite_application_commands(
            application_id=self._application_id,
            commands=payload,
            guild_id=target.guild_id,
        )
        registered = updated or [copy.deepcopy(item) for item in payload]
        self._log_summary(registered, target, mode=MODE_BULK)
        return registered

    async def _register_guild(
        self, payload: list[dict[str, Any]], target: RegistrationTarget
    ) -> RegistrationResult:
        attempts = 0
        registered: list[dict[str, Any]] = []
        try:
            async for attempt in transient_retrying(
                self._guild_max_attempts,
                self._guild_base_delay,
                sleep=self._sleep,
                logger=self._logger,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    registered = await self._bulk_overwrite(payload, target)
        except TransientError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.commands.guild_failed",
                guild_id=target.guild_id,
                attempts=attempts,
                exc=exc,
            )
            return RegistrationResult(
                target=target, failed=True, error=str(exc), attempts=attempts
            )
        except DiscordAPIError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.bulk_failed",
                target=target.label,
                command_count=len(payload),
                status_code=exc.status_code,
                exc=exc,
            )
            return await self._register_per_item(payload, target, attempts=attempts)
        return RegistrationResult(target=target, registered=registered, attempts=attempts)

    async def _register_per_item(
        self,
        payload: list[dict[str, Any]],
        target: RegistrationTarget,
        *,
        attempts: int,
    ) -> RegistrationResult:
        registered: list[dict[str, Any]] = []
        errors: list[RegistrationItemError] = []
        for index, definition in enumerate(payload):
            if index:
                await self._sleep(self._item_delay)
            name = str(definition.get("name"))
            try:
                created = await self._rest.create_application_command(
                    application_id=self._application_id,
                    command=definition,
                    guild_id=target.guild_id,
                )
            except DiscordAPIError as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "discord.commands.item_failed",
                    target=target.label,
                    name=name,
                    status_code=exc.status_code,
                    exc=exc,
                )
                errors.append(RegistrationItemError(name=name, message=str(exc)))
                continue
            registered.append(created or copy.deepcopy(definition))

        self._log_summary(registered, target, mode=MODE_PER_ITEM)
        failed = bool(payload) and not registered
        return RegistrationResult(
            target=target,
            registered=registered,
            errors=errors,
            failed=failed,
            error=(
                f"all {len(payload)} command registrations failed" if failed else None
            ),
            attempts=attempts,
            mode=MODE_PER_ITEM,
        )

    def _log_summary(
        self,
        registered: list[dict[str, Any]],
        target: RegistrationTarget,
        *,
        mode: str,
    ) -> None:
        for item in registered:
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.commands.registered_item",
                target=target.label,
                name=item.get("name"),
                type=item.get("type"),
                has_subcommands=has_subcommands(item),
            )
        log_event(
            self._logger,
            logging.INFO,
            "discord.commands.registered",
            target=target.label,
            mode=mode,
            command_count=len(registered),
            names=[item.get("name") for item in registered],
            with_subcommands=[
                item.get("name") for item in registered if has_subcommands(item)
            ],
        )


def _normalize_guild_ids(guild_ids: Iterable[str]) -> list[str]:
    normalized: list[str] = []
    for guild_id in guild_ids:
        token = str(guild_id).strip()
        if token and token not in normalized:
            normalized.append(token)
    return normalized
