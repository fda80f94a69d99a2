from __future__ import annotations

import asyncio
from typing import Any

import pytest

from monkey_bytes.integrations.discord.errors import DiscordTransientError
from monkey_bytes.integrations.discord.interactions import (
    InteractionEvent,
    InteractionKind,
)
from monkey_bytes.integrations.discord.loading import (
    ActiveIndicators,
    IndicatorState,
    LoadingIndicator,
    THEMES,
    resolve_color,
)
from monkey_bytes.integrations.discord.responder import Interaction


class _FakeRest:
    def __init__(self, *, fail_initial: bool = False) -> None:
        self.fail_initial = fail_initial
        self.interaction_responses: list[dict[str, Any]] = []
        self.edits: list[dict[str, Any]] = []

    async def create_interaction_response(
        self,
        *,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> None:
        if self.fail_initial:
            raise DiscordTransientError("network down")
        self.interaction_responses.append(payload)

    async def edit_original_interaction_response(
        self,
        *,
        application_id: str,
        interaction_token: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        self.edits.append(payload)
        return {"id": "msg-1"}


def _interaction(rest: _FakeRest, interaction_id: str = "inter-1") -> Interaction:
    event = InteractionEvent(
        interaction_id=interaction_id,
        token="token-1",
        application_id="app-1",
        kind=InteractionKind.COMMAND,
        identifier="setup",
        user_id="user-1",
    )
    return Interaction(event, rest)


@pytest.mark.anyio
async def test_start_replies_with_processing_embed_when_unanswered() -> None:
    rest = _FakeRest()
    interaction = _interaction(rest)
    indicator = LoadingIndicator(
        interaction, text="Processing Setup command...", color="purple"
    )

    await indicator.start()

    assert indicator.state is IndicatorState.ACTIVE
    assert interaction.replied is True
    assert len(rest.interaction_responses) == 1
    payload = rest.interaction_responses[0]
    assert payload["type"] == 4
    assert payload["data"]["flags"] == 64
    embed = payload["data"]["embeds"][0]
    assert embed["description"].endswith("Processing Setup command...")
    assert embed["color"] == THEMES["purple"]
    assert embed["footer"]["text"].startswith("Time elapsed: ")


@pytest.mark.anyio
async def test_start_edits_original_response_when_already_deferred() -> None:
    rest = _FakeRest()
    interaction = _interaction(rest)
    await interaction.defer_reply()
    rest.interaction_responses.clear()

    await LoadingIndicator(interaction).start()

    assert rest.interaction_responses == []
    assert len(rest.edits) == 1


@pytest.mark.anyio
async def test_stop_twice_changes_visible_state_once() -> None:
    rest = _FakeRest()
    indicator = LoadingIndicator(_interaction(rest))
    await indicator.start()

    first = await indicator.stop("Setup command completed successfully.")
    second = await indicator.stop("There was an error!", success=False)

    assert first is True
    assert second is False
    assert indicator.stopped
    assert len(rest.edits) == 1
    final_embed = rest.edits[0]["embeds"][0]
    assert final_embed["description"] == "Setup command completed successfully."
    assert final_embed["color"] == THEMES["green"]


@pytest.mark.anyio
async def test_stop_failure_uses_red_and_custom_components() -> None:
    rest = _FakeRest()
    indicator = LoadingIndicator(_interaction(rest))
    await indicator.start()

    await indicator.stop("boom", success=False, components=[])

    assert rest.edits[0]["embeds"][0]["color"] == THEMES["red"]
    assert rest.edits[0]["components"] == []


@pytest.mark.anyio
async def test_stopped_indicator_never_restarts_or_updates() -> None:
    rest = _FakeRest()
    indicator = LoadingIndicator(_interaction(rest))
    await indicator.start()
    await indicator.stop("done")
    rest.edits.clear()

    await indicator.start()
    updated = await indicator.update_text("still going")

    assert updated is False
    assert indicator.state is IndicatorState.STOPPED
    assert rest.edits == []
    assert len(rest.interaction_responses) == 1


@pytest.mark.anyio
async def test_update_text_edits_while_active() -> None:
    rest = _FakeRest()
    indicator = LoadingIndicator(_interaction(rest))
    await indicator.start()

    assert await indicator.update_text("Step 2 of 3") is True
    assert rest.edits[-1]["embeds"][0]["description"].endswith("Step 2 of 3")


@pytest.mark.anyio
async def test_stop_before_start_sends_nothing() -> None:
    rest = _FakeRest()
    indicator = LoadingIndicator(_interaction(rest))

    assert await indicator.stop("done") is True
    assert rest.edits == []
    assert rest.interaction_responses == []


@pytest.mark.anyio
async def test_start_failure_marks_indicator_stopped_and_raises() -> None:
    rest = _FakeRest(fail_initial=True)
    interaction = _interaction(rest)
    indicator = LoadingIndicator(interaction)

    with pytest.raises(DiscordTransientError):
        await indicator.start()

    assert indicator.stopped
    assert interaction.replied is False


@pytest.mark.anyio
async def test_animation_task_edits_frames_and_is_cancelled_on_stop() -> None:
    rest = _FakeRest()
    indicator = LoadingIndicator(
        _interaction(rest), style="spin", animate=True, interval_seconds=0.05
    )
    await indicator.start()
    await asyncio.sleep(0.2)
    await indicator.stop("done")
    edits_after_stop = len(rest.edits)
    await asyncio.sleep(0.15)

    assert edits_after_stop >= 2
    assert len(rest.edits) == edits_after_stop
    assert rest.edits[-1]["embeds"][0]["description"] == "done"


def test_resolve_color_variants() -> None:
    assert resolve_color("blue") == THEMES["blue"]
    assert resolve_color("GREEN") == THEMES["green"]
    assert resolve_color("#ff0000") == 0xFF0000
    assert resolve_color(0x123456) == 0x123456
    assert resolve_color("not-a-theme") == THEMES["blue"]
    assert resolve_color("#zz") == THEMES["blue"]
    assert 0 <= resolve_color("random") <= 0xFFFFFF


def test_unknown_style_falls_back_to_dots() -> None:
    indicator = LoadingIndicator(_interaction(_FakeRest()), style="sparkle")
    assert indicator.style == "dots"


@pytest.mark.anyio
async def test_active_indicators_allow_one_active_entry_per_interaction() -> None:
    rest = _FakeRest()
    interaction = _interaction(rest)
    indicators = ActiveIndicators()
    first = LoadingIndicator(interaction)
    indicators.add(first)

    with pytest.raises(ValueError):
        indicators.add(LoadingIndicator(interaction))

    await first.stop()
    replacement = LoadingIndicator(interaction)
    indicators.add(replacement)
    assert indicators.get("inter-1") is replacement
    assert indicators.discard("inter-1") is replacement
    assert "inter-1" not in indicators
