from __future__ import annotations

import math
import time
from typing import Callable, Optional

DEFAULT_COOLDOWN_SECONDS = 3.0


def format_cooldown_message(command_name: str, remaining_seconds: float) -> str:
    return (
        f"Please wait {remaining_seconds:.1f} more second(s) before reusing "
        f"the `{command_name}` command."
    )


class CooldownTracker:
    """Per-command, per-user expiry map.

    Expired entries are deleted when they are read, or in bulk by ``sweep``;
    nothing is scheduled in the background. Times are in seconds on the
    ``clock`` timeline (``time.monotonic`` by default).
    """

    def __init__(self, *, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._expiries: dict[str, dict[str, float]] = {}

    def now(self) -> float:
        return self._clock()

    def check(
        self, command_name: str, user_id: str, now: Optional[float] = None
    ) -> float:
        """Return the seconds left on the cooldown, or ``0.0`` when allowed."""
        current = self.now() if now is None else now
        users = self._expiries.get(command_name)
        if not users:
            return 0.0
        expiry = users.get(user_id)
        if expiry is None:
            return 0.0
        if current >= expiry:
            del users[user_id]
            if not users:
                del self._expiries[command_name]
            return 0.0
        return expiry - current

    def arm(
        self,
        command_name: str,
        user_id: str,
        duration_seconds: float,
        now: Optional[float] = None,
    ) -> float:
        current = self.now() if now is None else now
        expiry = current + max(float(duration_seconds), 0.0)
        self._expiries.setdefault(command_name, {})[user_id] = expiry
        return expiry

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop every expired entry; returns how many were removed."""
        current = self.now() if now is None else now
        removed = 0
        for command_name in list(self._expiries):
            users = self._expiries[command_name]
            for user_id in [uid for uid, expiry in users.items() if current >= expiry]:
                del users[user_id]
                removed += 1
            if not users:
                del self._expiries[command_name]
        return removed

    def clear(self) -> None:
        self._expiries.clear()

    def __len__(self) -> int:
        return sum(len(users) for users in self._expiries.values())


def cooldown_seconds_for(handler_cooldown: Optional[float], default: float) -> float:
    if handler_cooldown is None:
        return default
    value = float(handler_cooldown)
    if math.isnan(value) or value < 0:
        return default
    return value
