"""Reconnect backoff for the client transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voxrelay.config.settings import ClientSettings


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Linear backoff with a ceiling on delay and on attempts.

    Attempt ``n`` (1-based) waits ``min(base_s + n * increment_s, max_s)``.
    With the defaults: 1.5s, 2.0s, 2.5s, ... capped at 5.0s, 10 attempts.
    """

    base_s: float = 1.0
    increment_s: float = 0.5
    max_s: float = 5.0
    max_attempts: int = 10

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> ReconnectPolicy:
        return cls(
            base_s=settings.reconnect_base_s,
            increment_s=settings.reconnect_increment_s,
            max_s=settings.reconnect_max_s,
            max_attempts=settings.max_reconnect_attempts,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before reconnect attempt ``attempt``."""
        return min(self.base_s + attempt * self.increment_s, self.max_s)

    def exhausted(self, attempts: int) -> bool:
        """True once ``attempts`` reconnects have been made."""
        return attempts >= self.max_attempts
