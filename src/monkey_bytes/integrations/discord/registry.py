from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from ...core.logging_utils import log_event
from .constants import COMMAND_TYPE_CHAT_INPUT, CONTEXT_MENU_COMMAND_TYPES
from .cooldowns import CooldownTracker
from .interactions import CustomId, InteractionKind
from .loading import ActiveIndicators, ColorSpec, LoadingIndicator


class HandlerCapability(str, Enum):
    EXECUTE = "execute"
    BUTTON = "handle_button"
    SELECT_MENU = "handle_select_menu"
    MODAL = "handle_modal"


CAPABILITY_BY_KIND: dict[InteractionKind, HandlerCapability] = {
    InteractionKind.COMMAND: HandlerCapability.EXECUTE,
    InteractionKind.CONTEXT_MENU_COMMAND: HandlerCapability.EXECUTE,
    InteractionKind.BUTTON: HandlerCapability.BUTTON,
    InteractionKind.SELECT_MENU: HandlerCapability.SELECT_MENU,
    InteractionKind.MODAL_SUBMIT: HandlerCapability.MODAL,
}


class InteractionHandler:
    """Base class for command and component handlers.

    Subclasses define any of ``execute``, ``handle_button``,
    ``handle_select_menu`` and ``handle_modal`` as
    ``async def method(self, interaction, context)``; a missing method means
    the handler does not accept that kind of interaction.
    """

    name: str = ""
    description: str = ""
    command_type: int = COMMAND_TYPE_CHAT_INPUT
    options: tuple[dict[str, Any], ...] = ()
    default_member_permissions: Optional[str] = None
    # Extra custom-id owner tokens routed to this handler besides ``name``.
    component_owners: tuple[str, ...] = ()

    cooldown: Optional[float] = None
    skip_loading: bool = False
    skip_loading_components: bool = False
    loading_style: Optional[str] = None
    loading_color: ColorSpec = None
    ephemeral: bool = True

    @property
    def is_context_menu(self) -> bool:
        return self.command_type in CONTEXT_MENU_COMMAND_TYPES

    def supports(self, capability: HandlerCapability) -> bool:
        return callable(getattr(self, capability.value, None))

    def definition(self) -> Optional[dict[str, Any]]:
        """Command definition published to Discord, or ``None`` for none."""
        if not self.name:
            return None
        payload: dict[str, Any] = {"name": self.name, "type": self.command_type}
        if self.description:
            payload["description"] = self.description
        if self.options:
            payload["options"] = [dict(option) for option in self.options]
        if self.default_member_permissions is not None:
            payload["default_member_permissions"] = self.default_member_permissions
        return payload


@dataclass
class HandlerContext:
    """Shared state handed to every handler call."""

    registry: "HandlerRegistry"
    indicators: ActiveIndicators
    cooldowns: CooldownTracker
    logger: logging.Logger
    services: dict[str, Any] = field(default_factory=dict)
    indicator: Optional[LoadingIndicator] = None
    custom_id: Optional[CustomId] = None

    def service(self, name: str) -> Any:
        return self.services.get(name)

    async def stop_loading(
        self,
        text: Optional[str] = None,
        *,
        success: bool = True,
        embeds: Optional[list[dict[str, Any]]] = None,
        components: Optional[list[dict[str, Any]]] = None,
    ) -> bool:
        if self.indicator is None:
            return False
        return await self.indicator.stop(
            text, success=success, embeds=embeds, components=components
        )


class HandlerRegistry:
    """Maps command names and custom-id owner tokens to handlers.

    The first handler registered under a name keeps it; later duplicates are
    logged and dropped.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._commands: dict[str, InteractionHandler] = {}
        self._context_menus: dict[str, InteractionHandler] = {}
        self._owners: dict[str, InteractionHandler] = {}
        self._ordered: list[InteractionHandler] = []

    def register(self, handler: InteractionHandler) -> bool:
        name = handler.name.strip()
        if not name:
            raise ValueError("handler name must be non-empty")
        table = self._context_menus if handler.is_context_menu else self._commands
        if name in table:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.registry.duplicate",
                name=name,
                kept=type(table[name]).__name__,
                dropped=type(handler).__name__,
            )
            return False
        table[name] = handler
        self._ordered.append(handler)
        for owner in (name, *handler.component_owners):
            self._owners.setdefault(owner, handler)
        return True

    def register_all(self, handlers: Iterable[InteractionHandler]) -> int:
        return sum(1 for handler in handlers if self.register(handler))

    def lookup(
        self, kind: InteractionKind, identifier: str
    ) -> Optional[InteractionHandler]:
        if kind is InteractionKind.COMMAND:
            return self._commands.get(identifier)
        if kind is InteractionKind.CONTEXT_MENU_COMMAND:
            handler = self._context_menus.get(identifier)
            if handler is None:
                handler = self._commands.get(identifier)
            return handler
        return self._owners.get(identifier)

    def lookup_command(self, name: str) -> Optional[InteractionHandler]:
        return self._commands.get(name) or self._context_menus.get(name)

    def handlers(self) -> list[InteractionHandler]:
        return list(self._ordered)

    def definitions(self) -> list[dict[str, Any]]:
        definitions: list[dict[str, Any]] = []
        for handler in self._ordered:
            definition = handler.definition()
            if definition is not None:
                definitions.append(definition)
        return definitions

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, name: object) -> bool:
        return name in self._commands or name in self._context_menus
