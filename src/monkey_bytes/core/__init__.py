"""Core runtime primitives."""

from .exceptions import BotError, PermanentError, TransientError
from .logging_utils import log_event, setup_rotating_logger

__all__ = [
    "BotError",
    "PermanentError",
    "TransientError",
    "log_event",
    "setup_rotating_logger",
]
