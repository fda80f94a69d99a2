"""Discord interaction dispatch and command registration."""

from .command_registry import (
    CommandRegistrationManager,
    RegistrationItemError,
    RegistrationResult,
    RegistrationTarget,
    prepare_definitions,
)
from .config import DiscordBotConfig, DiscordBotConfigError
from .cooldowns import CooldownTracker
from .dispatcher import (
    DispatchError,
    DispatchErrorKind,
    DispatchResult,
    DispatchStatus,
    DispatcherSettings,
    HandlerOutcome,
    InteractionDispatcher,
)
from .interactions import InteractionEvent, InteractionKind, parse_interaction_event
from .loading import ActiveIndicators, IndicatorState, LoadingIndicator
from .registry import HandlerContext, HandlerRegistry, InteractionHandler
from .responder import Interaction
from .rest import DiscordRestClient
from .service import DiscordBotService
from .settings_store import GuildSettingsStore

__all__ = [
    "ActiveIndicators",
    "CommandRegistrationManager",
    "CooldownTracker",
    "DiscordBotConfig",
    "DiscordBotConfigError",
    "DiscordBotService",
    "DiscordRestClient",
    "DispatchError",
    "DispatchErrorKind",
    "DispatchResult",
    "DispatchStatus",
    "DispatcherSettings",
    "GuildSettingsStore",
    "HandlerContext",
    "HandlerOutcome",
    "HandlerRegistry",
    "IndicatorState",
    "Interaction",
    "InteractionDispatcher",
    "InteractionEvent",
    "InteractionHandler",
    "InteractionKind",
    "LoadingIndicator",
    "RegistrationItemError",
    "RegistrationResult",
    "RegistrationTarget",
    "parse_interaction_event",
    "prepare_definitions",
]
