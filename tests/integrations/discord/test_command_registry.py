from __future__ import annotations

import logging
from typing import Any, Optional

import pytest

from monkey_bytes.integrations.discord.command_registry import (
    MODE_BULK,
    MODE_PER_ITEM,
    CommandRegistrationManager,
    RegistrationTarget,
    has_subcommands,
    prepare_definitions,
)
from monkey_bytes.integrations.discord.errors import (
    DiscordAPIError,
    DiscordPermanentError,
    DiscordTransientError,
    DiscordValidationError,
)


class _FakeRest:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        # guild_id (None for global) -> errors raised by successive bulk PUTs.
        self.bulk_errors: dict[Optional[str], list[Exception]] = {}
        self.bulk_always_fails: dict[Optional[str], Exception] = {}
        self.item_failures: set[str] = set()
        self.existing: list[dict[str, Any]] = []
        self.delete_failures: set[str] = set()
        self.list_error: Optional[Exception] = None

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        self.calls.append({"op": "bulk", "guild_id": guild_id, "commands": commands})
        if guild_id in self.bulk_always_fails:
            raise self.bulk_always_fails[guild_id]
        pending = self.bulk_errors.get(guild_id)
        if pending:
            raise pending.pop(0)
        return [
            {"id": f"cmd-{index}", **command} for index, command in enumerate(commands)
        ]

    async def create_application_command(
        self,
        *,
        application_id: str,
        command: dict[str, Any],
        guild_id: Optional[str] = None,
    ) -> dict[str, Any]:
        self.calls.append({"op": "post", "guild_id": guild_id, "name": command["name"]})
        if command["name"] in self.item_failures:
            raise DiscordValidationError("bad option", status_code=400)
        return {"id": f"id-{command['name']}", **command}

    async def list_application_commands(
        self, *, application_id: str, guild_id: Optional[str] = None
    ) -> list[dict[str, Any]]:
        self.calls.append({"op": "list", "guild_id": guild_id})
        if self.list_error is not None:
            raise self.list_error
        return list(self.existing)

    async def delete_application_command(
        self,
        *,
        application_id: str,
        command_id: str,
        guild_id: Optional[str] = None,
    ) -> None:
        self.calls.append({"op": "delete", "guild_id": guild_id, "id": command_id})
        if command_id in self.delete_failures:
            raise DiscordPermanentError("missing access", status_code=403)

    def ops(self) -> list[str]:
        return [call["op"] for call in self.calls]


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


DEFINITIONS = [
    {"name": "ping", "type": 1, "description": "Check latency"},
    {"name": "help", "type": 1, "description": "Show help"},
    {
        "name": "settings",
        "type": 1,
        "description": "Manage settings",
        "options": [{"type": 1, "name": "view", "description": "View settings"}],
    },
]


def _manager(
    rest: _FakeRest, sleep: _SleepRecorder, **kwargs: Any
) -> CommandRegistrationManager:
    return CommandRegistrationManager(
        rest,
        application_id="app-1",
        logger=logging.getLogger("test.commands"),
        sleep=sleep,
        **kwargs,
    )


def test_prepare_definitions_strips_context_menu_descriptions() -> None:
    definitions = [
        {"name": "User Info", "type": 2, "description": "not allowed"},
        {"name": "Report", "type": 3, "description": "not allowed"},
        {"name": "ping", "type": 1, "description": "kept"},
    ]

    prepared = prepare_definitions(definitions)

    assert "description" not in prepared[0]
    assert "description" not in prepared[1]
    assert prepared[2]["description"] == "kept"
    assert definitions[0]["description"] == "not allowed"


def test_prepare_definitions_first_definition_wins() -> None:
    prepared = prepare_definitions(
        [
            {"name": "ping", "description": "first"},
            {"name": "ping", "description": "second"},
            {"description": "unnamed"},
        ]
    )

    assert prepared == [{"name": "ping", "description": "first"}]


def test_has_subcommands() -> None:
    assert has_subcommands(DEFINITIONS[2])
    assert not has_subcommands(DEFINITIONS[0])


def test_manager_requires_application_id() -> None:
    with pytest.raises(ValueError):
        CommandRegistrationManager(_FakeRest(), application_id=" ")


@pytest.mark.anyio
async def test_bulk_registration_registers_everything_in_one_call() -> None:
    rest = _FakeRest()
    sleep = _SleepRecorder()

    result = await _manager(rest, sleep).register_all(DEFINITIONS)

    assert rest.ops() == ["bulk"]
    assert rest.calls[0]["guild_id"] is None
    assert result.mode == MODE_BULK
    assert result.ok
    assert result.attempts == 1
    assert result.registered_names == ["ping", "help", "settings"]
    assert sleep.delays == []


@pytest.mark.anyio
async def test_bulk_failure_falls_back_to_one_post_per_command() -> None:
    rest = _FakeRest()
    rest.bulk_always_fails[None] = DiscordValidationError("bad batch", status_code=400)
    rest.item_failures = {"help"}
    sleep = _SleepRecorder()

    result = await _manager(rest, sleep, item_delay_seconds=1.5).register_all(
        DEFINITIONS
    )

    assert rest.ops() == ["bulk", "post", "post", "post"]
    assert result.mode == MODE_PER_ITEM
    assert result.failed is False
    assert result.registered_names == ["ping", "settings"]
    assert [error.name for error in result.errors] == ["help"]
    assert sleep.delays == [1.5, 1.5]


@pytest.mark.anyio
async def test_per_item_fallback_with_no_successes_marks_failure() -> None:
    rest = _FakeRest()
    rest.bulk_always_fails[None] = DiscordAPIError("boom", status_code=409)
    rest.item_failures = {"ping", "help", "settings"}

    result = await _manager(rest, _SleepRecorder()).register_all(DEFINITIONS)

    assert result.failed is True
    assert result.registered == []
    assert len(result.errors) == 3


@pytest.mark.anyio
async def test_guild_transient_failures_retry_with_doubling_delay() -> None:
    rest = _FakeRest()
    rest.bulk_errors["guild-1"] = [
        DiscordTransientError("server error", status_code=502),
        DiscordTransientError("server error", status_code=503),
    ]
    sleep = _SleepRecorder()

    result = await _manager(rest, sleep).register_all(
        DEFINITIONS, RegistrationTarget.for_guild("guild-1")
    )

    assert result.ok
    assert result.attempts == 3
    assert rest.ops() == ["bulk", "bulk", "bulk"]
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.anyio
async def test_guild_failure_does_not_stop_other_guilds() -> None:
    rest = _FakeRest()
    rest.bulk_always_fails["guild-a"] = DiscordTransientError(
        "gateway timeout", status_code=504
    )
    sleep = _SleepRecorder()

    results = await _manager(rest, sleep, guild_delay_seconds=1.0).register_guilds(
        DEFINITIONS, ["guild-a", "guild-b", "guild-a"]
    )

    assert list(results) == ["guild-a", "guild-b"]
    assert results["guild-a"].failed is True
    assert results["guild-a"].attempts == 3
    assert "gateway timeout" in (results["guild-a"].error or "")
    assert results["guild-b"].ok
    assert results["guild-b"].registered_names == ["ping", "help", "settings"]
    assert sleep.delays == [2.0, 4.0, 1.0]


@pytest.mark.anyio
async def test_guild_permanent_failure_uses_per_item_fallback() -> None:
    rest = _FakeRest()
    rest.bulk_always_fails["guild-1"] = DiscordValidationError(
        "bad batch", status_code=400
    )
    sleep = _SleepRecorder()

    result = await _manager(rest, sleep, item_delay_seconds=0.5).register_all(
        DEFINITIONS, RegistrationTarget.for_guild("guild-1")
    )

    assert rest.ops() == ["bulk", "post", "post", "post"]
    assert all(call["guild_id"] == "guild-1" for call in rest.calls)
    assert result.mode == MODE_PER_ITEM
    assert result.attempts == 1
    assert sleep.delays == [0.5, 0.5]


@pytest.mark.anyio
async def test_reset_deletes_existing_then_registers() -> None:
    rest = _FakeRest()
    rest.existing = [
        {"id": "old-1", "name": "legacy"},
        {"id": "old-2", "name": "broken"},
        {"name": "no-id"},
        {"id": "old-3", "name": "stale"},
    ]
    rest.delete_failures = {"old-2"}
    sleep = _SleepRecorder()

    result = await _manager(rest, sleep, delete_delay_seconds=0.3).reset_commands(
        DEFINITIONS
    )

    assert rest.ops() == ["list", "delete", "delete", "delete", "bulk"]
    assert result.deleted == 2
    assert result.ok
    assert sleep.delays == [0.3, 0.3]


@pytest.mark.anyio
async def test_reset_continues_when_listing_fails() -> None:
    rest = _FakeRest()
    rest.list_error = DiscordTransientError("network down")

    result = await _manager(rest, _SleepRecorder()).reset_commands(
        DEFINITIONS, RegistrationTarget.for_guild("guild-9")
    )

    assert rest.ops() == ["list", "bulk"]
    assert rest.calls[1]["guild_id"] == "guild-9"
    assert result.deleted == 0
    assert result.ok


@pytest.mark.anyio
async def test_sync_commands_scopes() -> None:
    rest = _FakeRest()
    manager = _manager(rest, _SleepRecorder())

    global_results = await manager.sync_commands(DEFINITIONS, scope="GLOBAL")
    guild_results = await manager.sync_commands(
        DEFINITIONS, scope="guild", guild_ids=[" guild-b ", "guild-a"]
    )

    assert [result.target.label for result in global_results] == ["global"]
    assert [result.target.label for result in guild_results] == [
        "guild:guild-b",
        "guild:guild-a",
    ]


@pytest.mark.anyio
async def test_sync_commands_rejects_bad_scope_and_missing_guilds() -> None:
    manager = _manager(_FakeRest(), _SleepRecorder())

    with pytest.raises(ValueError):
        await manager.sync_commands(DEFINITIONS, scope="everywhere")
    with pytest.raises(ValueError):
        await manager.sync_commands(DEFINITIONS, scope="guild", guild_ids=["  "])


def test_registration_target_requires_guild_id() -> None:
    with pytest.raises(ValueError):
        RegistrationTarget.for_guild("")
    assert RegistrationTarget.application().label == "global"
