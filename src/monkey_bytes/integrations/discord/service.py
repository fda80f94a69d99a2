from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from ...core.logging_utils import log_event
from .command_registry import (
    CommandRegistrationManager,
    RegistrationResult,
    RegistrationTarget,
)
from .commands import builtin_handlers
from .config import DiscordBotConfig
from .dispatcher import DispatchResult, InteractionDispatcher
from .errors import DiscordConfigError
from .registry import HandlerRegistry, InteractionHandler
from .rest import DiscordRestClient
from .settings_store import GuildSettingsStore

COOLDOWN_SWEEP_INTERVAL_SECONDS = 60.0

DispatchCallback = Callable[[str, dict[str, Any]], Awaitable[Any]]


class GatewayConnector(Protocol):
    """Delivers gateway dispatch events; reconnects and heartbeats are its job."""

    async def run(self, on_dispatch: DispatchCallback) -> None: ...

    async def stop(self) -> None: ...


class DiscordBotService:
    def __init__(
        self,
        config: DiscordBotConfig,
        *,
        logger: logging.Logger,
        rest_client: Optional[DiscordRestClient] = None,
        gateway: Optional[GatewayConnector] = None,
        settings_store: Optional[GuildSettingsStore] = None,
        handlers: Optional[Iterable[InteractionHandler]] = None,
        registration: Optional[CommandRegistrationManager] = None,
        animate_loading: Optional[bool] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self._config = config
        self._logger = logger
        self._gateway = gateway
        self._ready_guild_ids: set[str] = set()

        self._rest = (
            rest_client
            if rest_client is not None
            else DiscordRestClient(bot_token=config.bot_token or "")
        )
        self._owns_rest = rest_client is None

        self._store = (
            settings_store
            if settings_store is not None
            else GuildSettingsStore(config.state_file)
        )
        self._owns_store = settings_store is None

        self._registry = HandlerRegistry(logger=logger)
        self._registry.register_all(
            handlers if handlers is not None else builtin_handlers()
        )

        application_id = (config.application_id or "").strip()
        registration_cfg = config.command_registration
        if registration is None and application_id:
            registration = CommandRegistrationManager(
                self._rest,
                application_id=application_id,
                logger=logger,
                item_delay_seconds=registration_cfg.item_delay_seconds,
                guild_delay_seconds=registration_cfg.guild_delay_seconds,
                guild_max_attempts=registration_cfg.guild_max_attempts,
                guild_base_delay_seconds=registration_cfg.guild_base_delay_seconds,
                delete_delay_seconds=registration_cfg.delete_delay_seconds,
                sleep=sleep,
            )
        self._registration = registration

        self._dispatcher = InteractionDispatcher(
            self._rest,
            self._registry,
            settings=config.dispatcher_settings(animate_loading=animate_loading),
            services={
                "config": config,
                "settings": self._store,
                "registration": registration,
                "registration_config": registration_cfg,
                "started_at": time.monotonic(),
            },
            application_id=application_id or None,
            logger=logger,
        )

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def dispatcher(self) -> InteractionDispatcher:
        return self._dispatcher

    async def on_dispatch(
        self, event_type: str, payload: dict[str, Any]
    ) -> Optional[DispatchResult]:
        if not isinstance(payload, dict):
            self._logger.warning("on_dispatch: %s payload is not a mapping", event_type)
            return None
        if event_type == "INTERACTION_CREATE":
            return await self._dispatcher.dispatch(payload)
        if event_type == "READY":
            self._remember_ready_guilds(payload)
        elif event_type == "GUILD_CREATE":
            await self._on_guild_create(payload)
        return None

    def _remember_ready_guilds(self, payload: dict[str, Any]) -> None:
        guilds = payload.get("guilds")
        if not isinstance(guilds, list):
            return
        for guild in guilds:
            if isinstance(guild, dict) and guild.get("id"):
                self._ready_guild_ids.add(str(guild["id"]))

    async def _on_guild_create(self, payload: dict[str, Any]) -> None:
        guild_id = str(payload.get("id") or "").strip()
        if not guild_id:
            return
        # Guilds listed in READY are replayed on connect; only new joins count.
        if guild_id in self._ready_guild_ids:
            self._ready_guild_ids.discard(guild_id)
            return
        log_event(
            self._logger,
            logging.INFO,
            "discord.guild.joined",
            guild_id=guild_id,
            name=payload.get("name"),
        )
        await self._register_commands_for_guild(guild_id)
        try:
            await self._store.find_or_create(guild_id)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.guild.settings_failed",
                guild_id=guild_id,
                exc=exc,
            )

    async def _register_commands_for_guild(self, guild_id: str) -> None:
        if self._registration is None or not self._config.command_registration.enabled:
            return
        try:
            result = await self._registration.register_all(
                self._registry.definitions(), RegistrationTarget.for_guild(guild_id)
            )
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.guild.register_failed",
                guild_id=guild_id,
                exc=exc,
            )
            return
        if result.failed:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.guild.register_failed",
                guild_id=guild_id,
                error=result.error,
                attempts=result.attempts,
            )

    async def sync_application_commands(self) -> list[RegistrationResult]:
        registration = self._config.command_registration
        if not registration.enabled:
            log_event(self._logger, logging.INFO, "discord.commands.sync.disabled")
            return []
        if self._registration is None:
            raise DiscordConfigError(
                "missing Discord application id for command sync"
            )
        if registration.scope == "guild" and not registration.guild_ids:
            raise ValueError("guild scope requires at least one guild_id")
        return await self._registration.sync_commands(
            self._registry.definitions(),
            scope=registration.scope,
            guild_ids=registration.guild_ids,
        )

    async def _sync_application_commands_on_startup(self) -> None:
        try:
            results = await self.sync_application_commands()
        except (ValueError, DiscordConfigError):
            raise
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.sync.startup_failed",
                scope=self._config.command_registration.scope,
                exc=exc,
            )
            return
        failed = [result.target.label for result in results if not result.ok]
        if failed:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.commands.sync.partial",
                failed_targets=failed,
            )

    async def _sweep_cooldowns(self) -> None:
        while True:
            await asyncio.sleep(COOLDOWN_SWEEP_INTERVAL_SECONDS)
            removed = self._dispatcher.cooldowns.sweep()
            if removed:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "discord.cooldowns.swept",
                    removed=removed,
                )

    async def run_forever(self) -> None:
        if self._gateway is None:
            raise DiscordConfigError("no gateway connector configured")
        await self._store.initialize()
        await self._sync_application_commands_on_startup()
        sweep_task = asyncio.create_task(self._sweep_cooldowns())
        try:
            log_event(
                self._logger,
                logging.INFO,
                "discord.bot.starting",
                state_file=str(self._config.state_file),
                handler_count=len(self._registry),
            )
            await self._gateway.run(self.on_dispatch)
        finally:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
            await self._shutdown()

    async def _shutdown(self) -> None:
        if self._gateway is not None:
            with contextlib.suppress(Exception):
                await self._gateway.stop()
        if self._owns_rest:
            with contextlib.suppress(Exception):
                await self._rest.close()
        if self._owns_store:
            with contextlib.suppress(Exception):
                await self._store.close()
