from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .constants import (
    COMMAND_TYPE_CHAT_INPUT,
    COMPONENT_TYPE_BUTTON,
    CONTEXT_MENU_COMMAND_TYPES,
    INTERACTION_TYPE_APPLICATION_COMMAND,
    INTERACTION_TYPE_MESSAGE_COMPONENT,
    INTERACTION_TYPE_MODAL_SUBMIT,
    OPTION_TYPE_SUB_COMMAND,
    OPTION_TYPE_SUB_COMMAND_GROUP,
    SELECT_COMPONENT_TYPES,
)

DEFAULT_CUSTOM_ID_DELIMITER = "-"


class InteractionKind(str, Enum):
    COMMAND = "command"
    CONTEXT_MENU_COMMAND = "context_menu_command"
    BUTTON = "button"
    SELECT_MENU = "select_menu"
    MODAL_SUBMIT = "modal_submit"

    @property
    def is_command(self) -> bool:
        return self in (InteractionKind.COMMAND, InteractionKind.CONTEXT_MENU_COMMAND)


@dataclass(frozen=True)
class InteractionEvent:
    """One user action delivered by the gateway, normalized for dispatch.

    ``identifier`` is the command name for command kinds and the component or
    modal custom id for the others.
    """

    interaction_id: str
    token: str
    application_id: str
    kind: InteractionKind
    identifier: str
    user_id: Optional[str] = None
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    command_path: tuple[str, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)
    values: tuple[str, ...] = ()
    member_permissions: int = 0
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CustomId:
    owner: str
    action: Optional[str]
    payload: Optional[str]
    raw: str


def parse_custom_id(
    custom_id: str, *, delimiter: str = DEFAULT_CUSTOM_ID_DELIMITER
) -> CustomId:
    """Split ``owner<d>action<d>payload``; the payload keeps any later delimiters."""
    parts = custom_id.split(delimiter, 2)
    owner = parts[0]
    action = parts[1] if len(parts) > 1 and parts[1] else None
    payload = parts[2] if len(parts) > 2 and parts[2] else None
    return CustomId(owner=owner, action=action, payload=payload, raw=custom_id)


def _as_id(value: object) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def extract_command_path_and_options(
    interaction_payload: dict[str, Any],
) -> tuple[tuple[str, ...], dict[str, Any]]:
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return (), {}

    root_name = data.get("name")
    if not isinstance(root_name, str) or not root_name:
        return (), {}

    path: list[str] = [root_name]
    options = data.get("options")
    current_options = options if isinstance(options, list) else []

    while current_options:
        first = current_options[0]
        if not isinstance(first, dict):
            break
        option_type = first.get("type")
        if option_type not in (OPTION_TYPE_SUB_COMMAND, OPTION_TYPE_SUB_COMMAND_GROUP):
            break
        name = first.get("name")
        if isinstance(name, str) and name:
            path.append(name)
        nested = first.get("options")
        current_options = nested if isinstance(nested, list) else []

    parsed_options: dict[str, Any] = {}
    for item in current_options:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        parsed_options[name] = item.get("value")

    return tuple(path), parsed_options


def extract_interaction_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("id"))


def extract_interaction_token(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("token"))


def extract_channel_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("channel_id"))


def extract_guild_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("guild_id"))


def extract_user_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    member = interaction_payload.get("member")
    if isinstance(member, dict):
        member_user = member.get("user")
        if isinstance(member_user, dict):
            user_id = _as_id(member_user.get("id"))
            if user_id:
                return user_id
    user = interaction_payload.get("user")
    if isinstance(user, dict):
        return _as_id(user.get("id"))
    return None


def extract_member_permissions(interaction_payload: dict[str, Any]) -> int:
    member = interaction_payload.get("member")
    if not isinstance(member, dict):
        return 0
    try:
        return int(member.get("permissions") or 0)
    except (TypeError, ValueError):
        return 0


def extract_component_custom_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return None
    return _as_id(data.get("custom_id"))


def extract_component_values(interaction_payload: dict[str, Any]) -> list[str]:
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return []
    values = data.get("values")
    if not isinstance(values, list):
        return []
    return [str(v) for v in values if isinstance(v, (str, int, float))]


def extract_modal_values(interaction_payload: dict[str, Any]) -> dict[str, str]:
    """Flatten modal action rows into ``{text_input_custom_id: value}``."""
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return {}
    rows = data.get("components")
    if not isinstance(rows, list):
        return {}
    values: dict[str, str] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        components = row.get("components")
        if not isinstance(components, list):
            continue
        for component in components:
            if not isinstance(component, dict):
                continue
            custom_id = _as_id(component.get("custom_id"))
            value = component.get("value")
            if custom_id and isinstance(value, str):
                values[custom_id] = value
    return values


def classify_interaction(interaction_payload: dict[str, Any]) -> Optional[InteractionKind]:
    interaction_type = interaction_payload.get("type")
    data = interaction_payload.get("data")
    data = data if isinstance(data, dict) else {}

    if interaction_type == INTERACTION_TYPE_APPLICATION_COMMAND:
        command_type = data.get("type", COMMAND_TYPE_CHAT_INPUT)
        if command_type in CONTEXT_MENU_COMMAND_TYPES:
            return InteractionKind.CONTEXT_MENU_COMMAND
        return InteractionKind.COMMAND
    if interaction_type == INTERACTION_TYPE_MESSAGE_COMPONENT:
        component_type = data.get("component_type")
        if component_type == COMPONENT_TYPE_BUTTON:
            return InteractionKind.BUTTON
        if component_type in SELECT_COMPONENT_TYPES:
            return InteractionKind.SELECT_MENU
        return None
    if interaction_type == INTERACTION_TYPE_MODAL_SUBMIT:
        return InteractionKind.MODAL_SUBMIT
    return None


def parse_interaction_event(
    interaction_payload: dict[str, Any],
    *,
    application_id: Optional[str] = None,
) -> Optional[InteractionEvent]:
    """Normalize a raw INTERACTION_CREATE payload.

    Returns ``None`` for interaction types the dispatcher does not route
    (pings, autocomplete) and for payloads missing the id, token or identifier.
    """
    kind = classify_interaction(interaction_payload)
    interaction_id = extract_interaction_id(interaction_payload)
    token = extract_interaction_token(interaction_payload)
    if kind is None or not interaction_id or not token:
        return None

    command_path: tuple[str, ...] = ()
    options: dict[str, Any] = {}
    values: tuple[str, ...] = ()
    if kind.is_command:
        command_path, options = extract_command_path_and_options(interaction_payload)
        identifier = command_path[0] if command_path else None
        if kind is InteractionKind.CONTEXT_MENU_COMMAND:
            data = interaction_payload.get("data")
            target_id = _as_id(data.get("target_id")) if isinstance(data, dict) else None
            if target_id:
                options = {**options, "target_id": target_id}
    else:
        identifier = extract_component_custom_id(interaction_payload)
        if kind is InteractionKind.MODAL_SUBMIT:
            modal_values = extract_modal_values(interaction_payload)
            options = dict(modal_values)
            values = tuple(modal_values.values())
        else:
            values = tuple(extract_component_values(interaction_payload))
    if not identifier:
        return None

    resolved_application_id = (
        _as_id(interaction_payload.get("application_id")) or application_id or ""
    )
    return InteractionEvent(
        interaction_id=interaction_id,
        token=token,
        application_id=resolved_application_id,
        kind=kind,
        identifier=identifier,
        user_id=extract_user_id(interaction_payload),
        guild_id=extract_guild_id(interaction_payload),
        channel_id=extract_channel_id(interaction_payload),
        command_path=command_path,
        options=options,
        values=values,
        member_permissions=extract_member_permissions(interaction_payload),
        raw=interaction_payload,
    )
