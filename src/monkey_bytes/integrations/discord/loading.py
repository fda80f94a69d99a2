from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Union

from ...core.logging_utils import log_event
from .errors import DiscordError
from .rendering import EMBED_COLOR_ERROR, EMBED_COLOR_SUCCESS, build_embed
from .responder import Interaction

DEFAULT_LOADING_TEXT = "Loading..."
DEFAULT_LOADING_STYLE = "dots"
DEFAULT_LOADING_COLOR = "blue"
DEFAULT_INTERVAL_SECONDS = 0.8

ANIMATIONS: dict[str, tuple[str, ...]] = {
    "dots": ("⣾", "⣽", "⣻", "⢿", "⡿", "⣟", "⣯", "⣷"),
    "line": (
        "▰▱▱▱▱▱▱",
        "▰▰▱▱▱▱▱",
        "▰▰▰▱▱▱▱",
        "▰▰▰▰▱▱▱",
        "▰▰▰▰▰▱▱",
        "▰▰▰▰▰▰▱",
        "▰▰▰▰▰▰▰",
        "▰▱▱▱▱▱▱",
    ),
    "pulse": ("●∙∙∙", "∙●∙∙", "∙∙●∙", "∙∙∙●", "∙∙●∙", "∙●∙∙"),
    "bounce": ("⠁", "⠂", "⠄", "⡀", "⢀", "⠠", "⠐", "⠈"),
    "spin": ("◜", "◠", "◝", "◞", "◡", "◟"),
    "clock": (
        "🕛", "🕐", "🕑", "🕒", "🕓", "🕔", "🕕", "🕖", "🕗", "🕘", "🕙", "🕚",
    ),
    "earth": ("🌎", "🌍", "🌏"),
    "moon": ("🌑", "🌒", "🌓", "🌔", "🌕", "🌖", "🌗", "🌘"),
    "hearts": ("💗", "💓", "💔", "💕", "💖", "💘", "💝"),
    "gear": ("⚙️", "🔧", "⚙️", "🔩"),
}

THEMES: dict[str, int] = {
    "blue": 0x3498DB,
    "green": 0x2ECC71,
    "purple": 0x9B59B6,
    "orange": 0xE67E22,
    "red": 0xE74C3C,
    "gray": 0x95A5A6,
}

ColorSpec = Union[str, int, None]


class IndicatorState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


def resolve_color(color: ColorSpec) -> int:
    """Map a theme name, ``#rrggbb`` string or int to an embed colour."""
    if isinstance(color, bool):
        return THEMES["blue"]
    if isinstance(color, int):
        return color
    if isinstance(color, str):
        name = color.strip().lower()
        if name == "random":
            return random.randint(0, 0xFFFFFF)
        if name in THEMES:
            return THEMES[name]
        if name.startswith("#"):
            try:
                return int(name[1:], 16)
            except ValueError:
                return THEMES["blue"]
    return THEMES["blue"]


class LoadingIndicator:
    """Ephemeral "processing" message bound to one interaction.

    ``idle -> active -> stopped``; the first ``stop`` wins and later calls are
    no-ops. A stopped indicator never becomes active again.
    """

    def __init__(
        self,
        interaction: Interaction,
        *,
        text: Optional[str] = None,
        style: Optional[str] = None,
        color: ColorSpec = None,
        ephemeral: bool = True,
        animate: bool = False,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.interaction = interaction
        self.text = text or DEFAULT_LOADING_TEXT
        self.style = style if style in ANIMATIONS else DEFAULT_LOADING_STYLE
        self.color = color if color is not None else DEFAULT_LOADING_COLOR
        self.ephemeral = ephemeral
        self.animate = animate
        self.interval_seconds = max(float(interval_seconds), 0.05)
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock or time.monotonic
        self._state = IndicatorState.IDLE
        self._frame = 0
        self._started_at: Optional[float] = None
        self._animation_task: Optional[asyncio.Task[None]] = None

    @property
    def interaction_id(self) -> str:
        return self.interaction.id

    @property
    def state(self) -> IndicatorState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is IndicatorState.ACTIVE

    @property
    def stopped(self) -> bool:
        return self._state is IndicatorState.STOPPED

    @property
    def frames(self) -> tuple[str, ...]:
        return ANIMATIONS[self.style]

    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(self._clock() - self._started_at, 0.0)

    def build_embed(self) -> dict[str, Any]:
        frame = self.frames[self._frame % len(self.frames)]
        return build_embed(
            description=f"{frame} {self.text}",
            color=resolve_color(self.color),
            footer=f"Time elapsed: {self.elapsed_seconds():.1f}s",
        )

    async def start(self) -> "LoadingIndicator":
        if self._state is not IndicatorState.IDLE:
            return self
        self._state = IndicatorState.ACTIVE
        self._started_at = self._clock()
        try:
            if self.interaction.acknowledged:
                await self.interaction.edit_reply(embeds=[self.build_embed()])
            else:
                await self.interaction.reply(
                    embeds=[self.build_embed()], ephemeral=self.ephemeral
                )
        except Exception as exc:
            self._state = IndicatorState.STOPPED
            log_event(
                self._logger,
                logging.WARNING,
                "discord.loading.start_failed",
                interaction_id=self.interaction_id,
                exc=exc,
            )
            raise
        if self.animate:
            self._animation_task = asyncio.create_task(self._animate())
        return self

    async def _animate(self) -> None:
        while self._state is IndicatorState.ACTIVE:
            await asyncio.sleep(self.interval_seconds)
            if self._state is not IndicatorState.ACTIVE:
                return
            self._frame = (self._frame + 1) % len(self.frames)
            try:
                await self.interaction.edit_reply(embeds=[self.build_embed()])
            except DiscordError as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "discord.loading.animation_failed",
                    interaction_id=self.interaction_id,
                    exc=exc,
                )
                return

    async def _cancel_animation(self) -> None:
        task = self._animation_task
        self._animation_task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def update_text(self, text: str) -> bool:
        if self._state is not IndicatorState.ACTIVE:
            return False
        self.text = text or DEFAULT_LOADING_TEXT
        try:
            await self.interaction.edit_reply(embeds=[self.build_embed()])
        except DiscordError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.loading.update_failed",
                interaction_id=self.interaction_id,
                exc=exc,
            )
            return False
        return True

    async def stop(
        self,
        text: Optional[str] = None,
        *,
        success: bool = True,
        embeds: Optional[list[dict[str, Any]]] = None,
        components: Optional[list[dict[str, Any]]] = None,
    ) -> bool:
        """Render the final state. Returns ``False`` when already stopped."""
        if self._state is IndicatorState.STOPPED:
            return False
        self._state = IndicatorState.STOPPED
        await self._cancel_animation()
        if not self.interaction.acknowledged:
            return True

        if text:
            final_embeds: Optional[list[dict[str, Any]]] = [
                build_embed(
                    description=text,
                    color=EMBED_COLOR_SUCCESS if success else EMBED_COLOR_ERROR,
                )
            ]
        else:
            final_embeds = embeds
        try:
            await self.interaction.edit_reply(
                embeds=final_embeds if final_embeds is not None else [],
                components=components,
            )
        except DiscordError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "discord.loading.stop_failed",
                interaction_id=self.interaction_id,
                success=success,
                exc=exc,
            )
        return True


class ActiveIndicators:
    """Interaction id -> active indicator; at most one entry per interaction."""

    def __init__(self) -> None:
        self._items: dict[str, LoadingIndicator] = {}

    def add(self, indicator: LoadingIndicator) -> None:
        existing = self._items.get(indicator.interaction_id)
        if existing is not None and not existing.stopped:
            raise ValueError(
                f"interaction {indicator.interaction_id} already has an active indicator"
            )
        self._items[indicator.interaction_id] = indicator

    def get(self, interaction_id: str) -> Optional[LoadingIndicator]:
        return self._items.get(interaction_id)

    def discard(self, interaction_id: str) -> Optional[LoadingIndicator]:
        return self._items.pop(interaction_id, None)

    def __contains__(self, interaction_id: object) -> bool:
        return interaction_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))
