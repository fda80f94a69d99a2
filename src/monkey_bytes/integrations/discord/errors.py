from __future__ import annotations

from typing import Optional

from ...core.exceptions import BotError, PermanentError, TransientError


class DiscordError(BotError):
    """Base Discord integration error."""


class DiscordConfigError(DiscordError):
    """Discord integration configuration error."""


class DiscordAPIError(DiscordError):
    """Discord API request error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        user_message: Optional[str] = None,
    ) -> None:
        if user_message is None:
            user_message = "Discord API error. Please try again later."
        super().__init__(message, user_message=user_message)
        self.status_code = status_code
        self.retry_after = retry_after


class DiscordTransientError(DiscordAPIError, TransientError):
    """Retryable Discord API error (rate limits, network issues, 5xx)."""


class DiscordPermanentError(DiscordAPIError, PermanentError):
    """Non-retryable Discord API error (auth failures, forbidden)."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity


class DiscordValidationError(DiscordPermanentError):
    """Discord rejected the payload as malformed (HTTP 400)."""


class DiscordNotFoundError(DiscordPermanentError):
    """The addressed Discord resource does not exist (HTTP 404)."""


class InteractionAlreadyAcknowledged(DiscordError):
    """An initial response was attempted on an already answered interaction."""


class InteractionNotAcknowledged(DiscordError):
    """A follow-up or edit was attempted before any initial response."""
