from __future__ import annotations

from typing import Any, Optional

from .constants import (
    CALLBACK_CHANNEL_MESSAGE_WITH_SOURCE,
    CALLBACK_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE,
    CALLBACK_DEFERRED_UPDATE_MESSAGE,
    CALLBACK_UPDATE_MESSAGE,
    DISCORD_EPHEMERAL_FLAG,
)
from .errors import InteractionAlreadyAcknowledged, InteractionNotAcknowledged
from .interactions import InteractionEvent, InteractionKind
from .rendering import truncate_for_discord
from .rest import DiscordRestClient


def build_message_data(
    content: Optional[str] = None,
    *,
    embeds: Optional[list[dict[str, Any]]] = None,
    components: Optional[list[dict[str, Any]]] = None,
    ephemeral: bool = False,
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if content is not None:
        data["content"] = truncate_for_discord(content)
    if embeds is not None:
        data["embeds"] = embeds
    if components is not None:
        data["components"] = components
    if ephemeral:
        data["flags"] = DISCORD_EPHEMERAL_FLAG
    return data


class Interaction:
    """Response handle for one interaction.

    Tracks the ``replied`` / ``deferred`` flags so the initial response is sent
    at most once. The flags only move forward: a second initial response raises
    ``InteractionAlreadyAcknowledged`` instead of reaching Discord, and
    follow-ups or edits before any initial response raise
    ``InteractionNotAcknowledged``.
    """

    def __init__(self, event: InteractionEvent, rest: DiscordRestClient) -> None:
        self.event = event
        self._rest = rest
        self.replied = False
        self.deferred = False
        self.follow_up_count = 0

    @property
    def id(self) -> str:
        return self.event.interaction_id

    @property
    def kind(self) -> InteractionKind:
        return self.event.kind

    @property
    def user_id(self) -> Optional[str]:
        return self.event.user_id

    @property
    def guild_id(self) -> Optional[str]:
        return self.event.guild_id

    @property
    def options(self) -> dict[str, Any]:
        return self.event.options

    @property
    def values(self) -> tuple[str, ...]:
        return self.event.values

    @property
    def acknowledged(self) -> bool:
        return self.replied or self.deferred

    async def _send_initial(
        self,
        callback_type: int,
        data: Optional[dict[str, Any]],
        *,
        defer: bool,
    ) -> None:
        if self.acknowledged:
            raise InteractionAlreadyAcknowledged(
                f"interaction {self.id} already received its initial response"
            )
        # Claim the slot before awaiting so a concurrent caller cannot also send.
        if defer:
            self.deferred = True
        else:
            self.replied = True
        payload: dict[str, Any] = {"type": callback_type}
        if data is not None:
            payload["data"] = data
        try:
            await self._rest.create_interaction_response(
                interaction_id=self.event.interaction_id,
                interaction_token=self.event.token,
                payload=payload,
            )
        except Exception:
            if defer:
                self.deferred = False
            else:
                self.replied = False
            raise

    async def reply(
        self,
        content: Optional[str] = None,
        *,
        embeds: Optional[list[dict[str, Any]]] = None,
        components: Optional[list[dict[str, Any]]] = None,
        ephemeral: bool = False,
    ) -> None:
        await self._send_initial(
            CALLBACK_CHANNEL_MESSAGE_WITH_SOURCE,
            build_message_data(
                content, embeds=embeds, components=components, ephemeral=ephemeral
            ),
            defer=False,
        )

    async def defer_reply(self, *, ephemeral: bool = False) -> None:
        data = {"flags": DISCORD_EPHEMERAL_FLAG} if ephemeral else None
        await self._send_initial(
            CALLBACK_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE, data, defer=True
        )

    async def defer_update(self) -> None:
        await self._send_initial(CALLBACK_DEFERRED_UPDATE_MESSAGE, None, defer=True)

    async def update(
        self,
        content: Optional[str] = None,
        *,
        embeds: Optional[list[dict[str, Any]]] = None,
        components: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        """Replace the message a component is attached to (initial response)."""
        await self._send_initial(
            CALLBACK_UPDATE_MESSAGE,
            build_message_data(content, embeds=embeds, components=components),
            defer=False,
        )

    async def edit_reply(
        self,
        content: Optional[str] = None,
        *,
        embeds: Optional[list[dict[str, Any]]] = None,
        components: Optional[list[dict[str, Any]]] = None,
    ) -> dict[str, Any]:
        if not self.acknowledged:
            raise InteractionNotAcknowledged(
                f"interaction {self.id} has no response to edit"
            )
        return await self._rest.edit_original_interaction_response(
            application_id=self.event.application_id,
            interaction_token=self.event.token,
            payload=build_message_data(content, embeds=embeds, components=components),
        )

    async def follow_up(
        self,
        content: Optional[str] = None,
        *,
        embeds: Optional[list[dict[str, Any]]] = None,
        components: Optional[list[dict[str, Any]]] = None,
        ephemeral: bool = False,
    ) -> dict[str, Any]:
        if not self.acknowledged:
            raise InteractionNotAcknowledged(
                f"interaction {self.id} must be answered before following up"
            )
        message = await self._rest.create_followup_message(
            application_id=self.event.application_id,
            interaction_token=self.event.token,
            payload=build_message_data(
                content, embeds=embeds, components=components, ephemeral=ephemeral
            ),
        )
        self.follow_up_count += 1
        return message

    async def respond(
        self,
        content: Optional[str] = None,
        *,
        embeds: Optional[list[dict[str, Any]]] = None,
        ephemeral: bool = False,
    ) -> None:
        """Reply if unanswered, otherwise send a follow-up."""
        if self.acknowledged:
            await self.follow_up(content, embeds=embeds, ephemeral=ephemeral)
        else:
            await self.reply(content, embeds=embeds, ephemeral=ephemeral)
