from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from monkey_bytes.integrations.discord.errors import (
    DiscordAPIError,
    DiscordNotFoundError,
    DiscordPermanentError,
    DiscordTransientError,
    DiscordValidationError,
)
from monkey_bytes.integrations.discord.rest import DiscordRestClient


async def _configure_mock_client(
    client: DiscordRestClient, transport: httpx.MockTransport
) -> None:
    await client._client.aclose()
    client._client = httpx.AsyncClient(
        base_url="https://discord.test/api/v10",
        transport=transport,
        timeout=10.0,
    )


def _client() -> DiscordRestClient:
    return DiscordRestClient(bot_token="abc123", base_url="https://discord.test/api/v10")


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        recorded.append(seconds)

    monkeypatch.setattr(
        "monkey_bytes.integrations.discord.rest.asyncio.sleep", fake_sleep
    )
    return recorded


@pytest.mark.anyio
async def test_command_routes_global_and_guild() -> None:
    observed: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed.append((request.method, request.url.path))
        assert request.headers.get("Authorization") == "Bot abc123"
        if request.method == "PUT":
            return httpx.Response(200, json=[{"id": "cmd-1"}, "junk"])
        if request.method == "POST":
            return httpx.Response(201, json={"id": "cmd-2"})
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json=[])

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        listed = await client.list_application_commands(
            application_id="app-1", guild_id="guild-2"
        )
        overwritten = await client.bulk_overwrite_application_commands(
            application_id="app-1", commands=[{"name": "ping"}]
        )
        created = await client.create_application_command(
            application_id="app-1", command={"name": "help"}, guild_id="guild-2"
        )
        deleted = await client.delete_application_command(
            application_id="app-1", command_id="cmd-1"
        )
    finally:
        await client.close()

    assert listed == []
    assert overwritten == [{"id": "cmd-1"}]
    assert created == {"id": "cmd-2"}
    assert deleted is None
    assert observed == [
        ("GET", "/api/v10/applications/app-1/guilds/guild-2/commands"),
        ("PUT", "/api/v10/applications/app-1/commands"),
        ("POST", "/api/v10/applications/app-1/guilds/guild-2/commands"),
        ("DELETE", "/api/v10/applications/app-1/commands/cmd-1"),
    ]


@pytest.mark.anyio
async def test_interaction_routes() -> None:
    observed: list[tuple[str, str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed.append(
            (request.method, request.url.path, json.loads(request.content or b"null"))
        )
        if request.url.path.endswith("/callback"):
            return httpx.Response(204)
        return httpx.Response(200, json={"id": "msg-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        await client.create_interaction_response(
            interaction_id="inter-1",
            interaction_token="tok",
            payload={"type": 5},
        )
        followup = await client.create_followup_message(
            application_id="app-1", interaction_token="tok", payload={"content": "hi"}
        )
        edited = await client.edit_original_interaction_response(
            application_id="app-1", interaction_token="tok", payload={"content": "x"}
        )
    finally:
        await client.close()

    assert followup == {"id": "msg-1"}
    assert edited == {"id": "msg-1"}
    assert observed == [
        ("POST", "/api/v10/interactions/inter-1/tok/callback", {"type": 5}),
        ("POST", "/api/v10/webhooks/app-1/tok", {"content": "hi"}),
        ("PATCH", "/api/v10/webhooks/app-1/tok/messages/@original", {"content": "x"}),
    ]


@pytest.mark.anyio
async def test_rate_limit_retry_after_retries_and_succeeds(sleeps: list[float]) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(429, headers={"Retry-After": "0.25"}, json={})
        if attempts["count"] == 2:
            return httpx.Response(429, json={"retry_after": 1.5})
        return httpx.Response(200, json={"id": "msg-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.create_followup_message(
            application_id="app-1", interaction_token="tok", payload={"content": "x"}
        )
    finally:
        await client.close()

    assert payload == {"id": "msg-1"}
    assert attempts["count"] == 3
    assert sleeps == [0.25, 1.5]


@pytest.mark.anyio
async def test_rate_limit_exhaustion_raises_transient(sleeps: list[float]) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "2"}, json={})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordTransientError) as excinfo:
            await client.list_application_commands(application_id="app-1")
    finally:
        await client.close()

    assert excinfo.value.status_code == 429
    assert excinfo.value.retry_after == 2.0
    assert sleeps == [2.0, 2.0, 2.0]


@pytest.mark.anyio
async def test_server_errors_retry_then_raise_transient(sleeps: list[float]) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(502, text="bad gateway")

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordTransientError) as excinfo:
            await client.bulk_overwrite_application_commands(
                application_id="app-1", commands=[]
            )
    finally:
        await client.close()

    assert attempts["count"] == 4
    assert len(sleeps) == 3
    assert excinfo.value.status_code == 502
    assert "bad gateway" in str(excinfo.value)


@pytest.mark.anyio
async def test_network_errors_are_retried(sleeps: list[float]) -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[])

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        listed = await client.list_application_commands(application_id="app-1")
    finally:
        await client.close()

    assert listed == []
    assert attempts["count"] == 2
    assert len(sleeps) == 1


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (400, DiscordValidationError),
        (401, DiscordPermanentError),
        (403, DiscordPermanentError),
        (404, DiscordNotFoundError),
        (409, DiscordAPIError),
    ],
)
async def test_client_errors_are_not_retried(
    sleeps: list[float], status_code: int, error_type: type[Exception]
) -> None:
    attempts = {"count": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(status_code, json={"message": "nope"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(error_type) as excinfo:
            await client.create_application_command(
                application_id="app-1", command={"name": "ping"}
            )
    finally:
        await client.close()

    assert attempts["count"] == 1
    assert sleeps == []
    assert excinfo.value.status_code == status_code
    assert not isinstance(excinfo.value, DiscordTransientError)
