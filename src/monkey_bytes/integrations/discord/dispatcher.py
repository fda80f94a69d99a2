from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from ...core.logging_utils import log_event
from .cooldowns import (
    DEFAULT_COOLDOWN_SECONDS,
    CooldownTracker,
    cooldown_seconds_for,
    format_cooldown_message,
)
from .errors import DiscordError
from .interactions import (
    DEFAULT_CUSTOM_ID_DELIMITER,
    CustomId,
    InteractionEvent,
    InteractionKind,
    parse_custom_id,
    parse_interaction_event,
)
from .loading import ActiveIndicators, LoadingIndicator
from .registry import (
    CAPABILITY_BY_KIND,
    HandlerContext,
    HandlerRegistry,
    InteractionHandler,
)
from .rendering import build_error_embed
from .responder import Interaction
from .rest import DiscordRestClient

DEFAULT_SKIP_LOADING_COMMANDS = ("ping", "help", "invite")
DEFAULT_COMPONENT_ROUTES = {
    "setup": "setup",
    "reset": "reset",
    "logs": "logs",
    "help": "help",
}


class DispatchStatus(str, Enum):
    HANDLED = "handled"
    FAILED = "failed"
    COOLDOWN = "cooldown"
    NOT_FOUND = "not_found"
    STALE = "stale"
    IGNORED = "ignored"


class DispatchErrorKind(str, Enum):
    HANDLER_NOT_FOUND = "handler_not_found"
    COOLDOWN_ACTIVE = "cooldown_active"
    HANDLER_EXECUTION_FAILED = "handler_execution_failed"
    STALE_COMPONENT = "stale_component"


@dataclass(frozen=True)
class DispatchError:
    kind: DispatchErrorKind
    message: str
    exc: Optional[BaseException] = None
    remaining_seconds: Optional[float] = None


@dataclass(frozen=True)
class HandlerOutcome:
    error: Optional[DispatchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls) -> "HandlerOutcome":
        return cls()

    @classmethod
    def failure(cls, error: DispatchError) -> "HandlerOutcome":
        return cls(error=error)


@dataclass(frozen=True)
class DispatchResult:
    status: DispatchStatus
    interaction_id: Optional[str] = None
    kind: Optional[InteractionKind] = None
    identifier: Optional[str] = None
    error: Optional[DispatchError] = None
    interaction: Optional[Interaction] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class DispatcherSettings:
    default_cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    skip_loading_commands: frozenset[str] = frozenset(DEFAULT_SKIP_LOADING_COMMANDS)
    component_routes: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_COMPONENT_ROUTES)
    )
    custom_id_delimiter: str = DEFAULT_CUSTOM_ID_DELIMITER
    animate_loading: bool = False
    loading_interval_seconds: float = 0.8


@dataclass(frozen=True)
class _KindTexts:
    loading: str
    success: str
    failure: str
    fallback_failure: str
    style: str
    color: str


def _label(name: str) -> str:
    return name[:1].upper() + name[1:]


def _texts_for(kind: InteractionKind, *, name: str, action: Optional[str]) -> _KindTexts:
    if kind is InteractionKind.COMMAND:
        label = _label(name)
        return _KindTexts(
            loading=f"Processing {label} command...",
            success=f"{label} command completed successfully.",
            failure="There was an error while executing this command!",
            fallback_failure="There was an error while executing this command!",
            style="dots",
            color="blue",
        )
    if kind is InteractionKind.CONTEXT_MENU_COMMAND:
        label = _label(name)
        return _KindTexts(
            loading=f"Processing {label}...",
            success=f"{label} completed successfully.",
            failure="There was an error while executing this context menu command!",
            fallback_failure=(
                "There was an error while executing this context menu command!"
            ),
            style="dots",
            color="purple",
        )
    if kind is InteractionKind.SELECT_MENU:
        return _KindTexts(
            loading=f"Processing {action or 'selection'}...",
            success="Selection processed successfully.",
            failure="There was an error processing your selection!",
            fallback_failure="There was an error processing your selection!",
            style="bounce",
            color="blue",
        )
    if kind is InteractionKind.MODAL_SUBMIT:
        return _KindTexts(
            loading=f"Processing {action or 'submission'}...",
            success="Submission processed successfully.",
            failure="There was an error processing your submission!",
            fallback_failure="There was an error processing your submission!",
            style="bounce",
            color="blue",
        )
    return _KindTexts(
        loading=f"Processing {action or 'action'}...",
        success="Action completed successfully.",
        failure="There was an error processing your action!",
        fallback_failure="There was an error processing your button click!",
        style="bounce",
        color="blue",
    )


class InteractionDispatcher:
    """Routes interactions to handlers and owns the per-process dispatch state.

    One instance owns the cooldown tracker and the active-indicator map. Every
    dispatched interaction gets at most one initial response: the cooldown
    notice, the loading indicator, the handler's own reply or the error
    fallback.
    """

    def __init__(
        self,
        rest: DiscordRestClient,
        registry: HandlerRegistry,
        *,
        settings: Optional[DispatcherSettings] = None,
        cooldowns: Optional[CooldownTracker] = None,
        indicators: Optional[ActiveIndicators] = None,
        services: Optional[dict[str, Any]] = None,
        application_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._rest = rest
        self._registry = registry
        self._settings = settings or DispatcherSettings()
        self.cooldowns = cooldowns if cooldowns is not None else CooldownTracker()
        self.indicators = (
            indicators if indicators is not None else ActiveIndicators()
        )
        self.services: dict[str, Any] = services if services is not None else {}
        self._application_id = application_id
        self._logger = logger or logging.getLogger(__name__)

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def settings(self) -> DispatcherSettings:
        return self._settings

    async def dispatch(
        self, payload: Union[InteractionEvent, dict[str, Any]]
    ) -> DispatchResult:
        if isinstance(payload, InteractionEvent):
            event: Optional[InteractionEvent] = payload
        else:
            event = parse_interaction_event(
                payload, application_id=self._application_id
            )
        if event is None:
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.dispatch.ignored",
                interaction_id=payload.get("id") if isinstance(payload, dict) else None,
                interaction_type=(
                    payload.get("type") if isinstance(payload, dict) else None
                ),
            )
            return DispatchResult(status=DispatchStatus.IGNORED)

        interaction = Interaction(event, self._rest)
        log_event(
            self._logger,
            logging.DEBUG,
            "discord.dispatch.received",
            interaction_id=event.interaction_id,
            kind=event.kind.value,
            identifier=event.identifier,
            user_id=event.user_id,
            guild_id=event.guild_id,
        )
        if event.kind.is_command:
            return await self._dispatch_command(interaction)
        return await self._dispatch_component(interaction)

    async def _dispatch_command(self, interaction: Interaction) -> DispatchResult:
        event = interaction.event
        capability = CAPABILITY_BY_KIND[event.kind]
        handler = self._registry.lookup(event.kind, event.identifier)
        if handler is None or not handler.supports(capability):
            return await self._resolve_error(
                interaction,
                DispatchError(
                    DispatchErrorKind.HANDLER_NOT_FOUND,
                    f"no handler for {event.kind.value} {event.identifier!r}",
                ),
            )

        name = event.identifier
        # Context menus and user-less interactions are never rate limited.
        if event.kind is InteractionKind.COMMAND and event.user_id:
            remaining = self.cooldowns.check(name, event.user_id)
            if remaining > 0:
                return await self._resolve_error(
                    interaction,
                    DispatchError(
                        DispatchErrorKind.COOLDOWN_ACTIVE,
                        format_cooldown_message(name, remaining),
                        remaining_seconds=remaining,
                    ),
                )
            self.cooldowns.arm(
                name,
                event.user_id,
                cooldown_seconds_for(
                    handler.cooldown, self._settings.default_cooldown_seconds
                ),
            )

        use_loading = not (
            name in self._settings.skip_loading_commands or handler.skip_loading
        )
        return await self._run_handler(
            interaction,
            handler,
            _texts_for(event.kind, name=name, action=None),
            use_loading=use_loading,
        )

    async def _dispatch_component(self, interaction: Interaction) -> DispatchResult:
        event = interaction.event
        capability = CAPABILITY_BY_KIND[event.kind]
        custom_id = parse_custom_id(
            event.identifier, delimiter=self._settings.custom_id_delimiter
        )
        texts = _texts_for(event.kind, name=custom_id.owner, action=custom_id.action)

        route = self._settings.component_routes.get(custom_id.owner)
        if route:
            handler = self._registry.lookup(event.kind, route)
            if handler is not None and handler.supports(capability):
                return await self._run_handler(
                    interaction,
                    handler,
                    texts,
                    use_loading=False,
                    custom_id=custom_id,
                )

        handler = self._registry.lookup(event.kind, custom_id.owner)
        if handler is None or not handler.supports(capability):
            return await self._resolve_error(
                interaction,
                DispatchError(
                    DispatchErrorKind.STALE_COMPONENT,
                    f"no {capability.value} handler for custom id {event.identifier!r}",
                ),
            )
        return await self._run_handler(
            interaction,
            handler,
            texts,
            use_loading=not handler.skip_loading_components,
            custom_id=custom_id,
        )

    def _context(
        self,
        *,
        indicator: Optional[LoadingIndicator],
        custom_id: Optional[CustomId],
    ) -> HandlerContext:
        return HandlerContext(
            registry=self._registry,
            indicators=self.indicators,
            cooldowns=self.cooldowns,
            logger=self._logger,
            services=self.services,
            indicator=indicator,
            custom_id=custom_id,
        )

    async def _start_indicator(
        self,
        interaction: Interaction,
        handler: InteractionHandler,
        texts: _KindTexts,
    ) -> Optional[LoadingIndicator]:
        indicator = LoadingIndicator(
            interaction,
            text=texts.loading,
            style=handler.loading_style or texts.style,
            color=handler.loading_color or texts.color,
            ephemeral=handler.ephemeral,
            animate=self._settings.animate_loading,
            interval_seconds=self._settings.loading_interval_seconds,
            logger=self._logger,
        )
        try:
            self.indicators.add(indicator)
        except ValueError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.dispatch.indicator_conflict",
                interaction_id=interaction.id,
                exc=exc,
            )
            return None
        try:
            await indicator.start()
        except Exception:
            # start() already logged the failure.
            self.indicators.discard(interaction.id)
            return None
        return indicator

    async def _invoke(
        self,
        interaction: Interaction,
        handler: InteractionHandler,
        context: HandlerContext,
    ) -> HandlerOutcome:
        method = getattr(handler, CAPABILITY_BY_KIND[interaction.kind].value)
        try:
            await method(interaction, context)
        except Exception as exc:
            return HandlerOutcome.failure(
                DispatchError(
                    DispatchErrorKind.HANDLER_EXECUTION_FAILED,
                    f"{type(handler).__name__} failed on "
                    f"{interaction.event.identifier!r}: {exc}",
                    exc=exc,
                )
            )
        return HandlerOutcome.success()

    async def _run_handler(
        self,
        interaction: Interaction,
        handler: InteractionHandler,
        texts: _KindTexts,
        *,
        use_loading: bool,
        custom_id: Optional[CustomId] = None,
    ) -> DispatchResult:
        indicator: Optional[LoadingIndicator] = None
        try:
            if use_loading:
                indicator = await self._start_indicator(interaction, handler, texts)
            context = self._context(indicator=indicator, custom_id=custom_id)
            outcome = await self._invoke(interaction, handler, context)
            if outcome.error is not None:
                return await self._resolve_error(
                    interaction, outcome.error, texts=texts, indicator=indicator
                )
            if indicator is not None:
                await indicator.stop(texts.success, success=True)
            log_event(
                self._logger,
                logging.INFO,
                "discord.dispatch.handled",
                interaction_id=interaction.id,
                kind=interaction.kind.value,
                identifier=interaction.event.identifier,
                handler=handler.name,
            )
            return self._result(interaction, DispatchStatus.HANDLED)
        finally:
            if indicator is not None:
                if not indicator.stopped:
                    await indicator.stop(texts.failure, success=False)
                self.indicators.discard(interaction.id)

    async def _resolve_error(
        self,
        interaction: Interaction,
        error: DispatchError,
        *,
        texts: Optional[_KindTexts] = None,
        indicator: Optional[LoadingIndicator] = None,
    ) -> DispatchResult:
        event = interaction.event
        if error.kind is DispatchErrorKind.HANDLER_NOT_FOUND:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.dispatch.handler_not_found",
                interaction_id=event.interaction_id,
                kind=event.kind.value,
                identifier=event.identifier,
            )
            return self._result(interaction, DispatchStatus.NOT_FOUND, error)

        if error.kind is DispatchErrorKind.STALE_COMPONENT:
            log_event(
                self._logger,
                logging.INFO,
                "discord.dispatch.stale_component",
                interaction_id=event.interaction_id,
                kind=event.kind.value,
                custom_id=event.identifier,
            )
            return self._result(interaction, DispatchStatus.STALE, error)

        if error.kind is DispatchErrorKind.COOLDOWN_ACTIVE:
            log_event(
                self._logger,
                logging.INFO,
                "discord.dispatch.cooldown",
                interaction_id=event.interaction_id,
                command=event.identifier,
                user_id=event.user_id,
                remaining_seconds=round(error.remaining_seconds or 0.0, 3),
            )
            await self._send_error(interaction, error.message)
            return self._result(interaction, DispatchStatus.COOLDOWN, error)

        log_event(
            self._logger,
            logging.ERROR,
            "discord.dispatch.handler_failed",
            interaction_id=event.interaction_id,
            kind=event.kind.value,
            identifier=event.identifier,
            exc=error.exc,
            exc_info=True,
        )
        texts = texts or _texts_for(event.kind, name=event.identifier, action=None)
        if indicator is not None and not indicator.stopped:
            await indicator.stop(texts.failure, success=False)
        else:
            await self._send_error(interaction, texts.fallback_failure)
        return self._result(interaction, DispatchStatus.FAILED, error)

    async def _send_error(self, interaction: Interaction, message: str) -> None:
        try:
            await interaction.respond(embeds=[build_error_embed(message)], ephemeral=True)
        except DiscordError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.dispatch.error_reply_failed",
                interaction_id=interaction.id,
                replied=interaction.replied,
                deferred=interaction.deferred,
                exc=exc,
            )

    @staticmethod
    def _result(
        interaction: Interaction,
        status: DispatchStatus,
        error: Optional[DispatchError] = None,
    ) -> DispatchResult:
        return DispatchResult(
            status=status,
            interaction_id=interaction.id,
            kind=interaction.kind,
            identifier=interaction.event.identifier,
            error=error,
            interaction=interaction,
        )
