"""Test harness configuration.

This repo uses a `src/` layout. In some developer environments an older
installed `monkey_bytes` package can shadow the local sources.

Ensure tests always import the in-repo code.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 60


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


@pytest.fixture()
def bot_root(tmp_path: Path) -> Path:
    """A bot root with a config file that keeps registration pauses at zero."""
    root = tmp_path / "bot"
    root.mkdir()
    (root / "monkey-bytes.yml").write_text(
        "discord_bot:\n"
        "  command_registration:\n"
        "    item_delay_seconds: 0\n"
        "    guild_delay_seconds: 0\n"
        "    guild_base_delay_seconds: 0\n"
        "    delete_delay_seconds: 0\n"
        "  loading:\n"
        "    animate: false\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def discord_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONKEY_BYTES_BOT_TOKEN", "test-token")
    monkeypatch.setenv("MONKEY_BYTES_APP_ID", "app-1")


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    """The code under test is asyncio-only; don't run anyio tests on trio."""
    return "asyncio"
