from __future__ import annotations

from typing import Optional


class BotError(Exception):
    """Base error for the bot runtime.

    ``user_message`` is safe to show to end users; the exception message itself
    may contain internal detail and is only ever logged.
    """

    recoverable: bool = True
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(BotError):
    """Retryable failure (rate limits, network hiccups, upstream 5xx)."""

    recoverable = True
    severity = "warning"


class PermanentError(BotError):
    """Non-retryable failure (bad config, rejected payloads, auth)."""

    recoverable = False
    severity = "error"
