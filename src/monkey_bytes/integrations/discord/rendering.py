from __future__ import annotations

from typing import Any, Final, Optional

from .constants import DISCORD_MAX_EMBED_DESCRIPTION_LENGTH, DISCORD_MAX_MESSAGE_LENGTH

EMBED_COLOR_DEFAULT: Final[int] = 0xFFD700
EMBED_COLOR_SUCCESS: Final[int] = 0x2ECC71
EMBED_COLOR_ERROR: Final[int] = 0xE74C3C

_TRUNCATION_SUFFIX = "..."


def escape_discord_code(text: str) -> str:
    if not text:
        return ""
    return text.replace("\\", "\\\\").replace("`", "\\`")


def format_inline_code(code: str) -> str:
    if not code:
        return "``"
    return f"`{escape_discord_code(code)}`"


def truncate_for_discord(text: str, max_len: int = DISCORD_MAX_MESSAGE_LENGTH) -> str:
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    if max_len <= len(_TRUNCATION_SUFFIX):
        return text[:max_len]
    return text[: max_len - len(_TRUNCATION_SUFFIX)].rstrip() + _TRUNCATION_SUFFIX


def build_embed(
    *,
    description: Optional[str] = None,
    title: Optional[str] = None,
    color: int = EMBED_COLOR_DEFAULT,
    fields: Optional[list[dict[str, Any]]] = None,
    footer: Optional[str] = None,
) -> dict[str, Any]:
    embed: dict[str, Any] = {"color": color}
    if title:
        embed["title"] = truncate_for_discord(title, 256)
    if description:
        embed["description"] = truncate_for_discord(
            description, DISCORD_MAX_EMBED_DESCRIPTION_LENGTH
        )
    if fields:
        embed["fields"] = fields[:25]
    if footer:
        embed["footer"] = {"text": truncate_for_discord(footer, 2048)}
    return embed


def build_error_embed(message: str) -> dict[str, Any]:
    return build_embed(description=f"❌ {message}", color=EMBED_COLOR_ERROR)


def build_success_embed(message: str) -> dict[str, Any]:
    return build_embed(description=f"✅ {message}", color=EMBED_COLOR_SUCCESS)
