from __future__ import annotations

DISCORD_API_BASE_URL = "https://discord.com/api/v10"

# Discord hard limit for message content.
DISCORD_MAX_MESSAGE_LENGTH = 2000
DISCORD_MAX_EMBED_DESCRIPTION_LENGTH = 4096

DISCORD_EPHEMERAL_FLAG = 64

# Interaction types (https://discord.com/developers/docs/interactions/receiving-and-responding).
INTERACTION_TYPE_PING = 1
INTERACTION_TYPE_APPLICATION_COMMAND = 2
INTERACTION_TYPE_MESSAGE_COMPONENT = 3
INTERACTION_TYPE_AUTOCOMPLETE = 4
INTERACTION_TYPE_MODAL_SUBMIT = 5

# Application command types.
COMMAND_TYPE_CHAT_INPUT = 1
COMMAND_TYPE_USER = 2
COMMAND_TYPE_MESSAGE = 3
CONTEXT_MENU_COMMAND_TYPES = frozenset({COMMAND_TYPE_USER, COMMAND_TYPE_MESSAGE})

# Application command option types.
OPTION_TYPE_SUB_COMMAND = 1
OPTION_TYPE_SUB_COMMAND_GROUP = 2
OPTION_TYPE_STRING = 3
OPTION_TYPE_INTEGER = 4
OPTION_TYPE_BOOLEAN = 5

# Message component types.
COMPONENT_TYPE_ACTION_ROW = 1
COMPONENT_TYPE_BUTTON = 2
COMPONENT_TYPE_STRING_SELECT = 3
COMPONENT_TYPE_TEXT_INPUT = 4
COMPONENT_TYPE_USER_SELECT = 5
COMPONENT_TYPE_ROLE_SELECT = 6
COMPONENT_TYPE_MENTIONABLE_SELECT = 7
COMPONENT_TYPE_CHANNEL_SELECT = 8
SELECT_COMPONENT_TYPES = frozenset(
    {
        COMPONENT_TYPE_STRING_SELECT,
        COMPONENT_TYPE_USER_SELECT,
        COMPONENT_TYPE_ROLE_SELECT,
        COMPONENT_TYPE_MENTIONABLE_SELECT,
        COMPONENT_TYPE_CHANNEL_SELECT,
    }
)

# Interaction callback types.
CALLBACK_CHANNEL_MESSAGE_WITH_SOURCE = 4
CALLBACK_DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5
CALLBACK_DEFERRED_UPDATE_MESSAGE = 6
CALLBACK_UPDATE_MESSAGE = 7

# Permission bit for ADMINISTRATOR.
PERMISSION_ADMINISTRATOR = 1 << 3
