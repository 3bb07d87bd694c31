"""Reconnect scheduling after an unexpected connection drop."""

from __future__ import annotations

from dataclasses import dataclass

from waton.core.errors import DisconnectReason


def is_logged_out(reason: BaseException | None) -> bool:
    status_code = getattr(reason, "status_code", None)
    return status_code == int(DisconnectReason.LOGGED_OUT)


@dataclass
class ReconnectPolicy:
    """Geometric backoff with a ceiling and an attempt budget.

    ``max_attempts == 0`` never gives up. ``factor == 1`` gives a fixed delay.
    """

    base_delay: float = 3.0
    factor: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 10
    attempts: int = 0

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    @property
    def exhausted(self) -> bool:
        return self.max_attempts > 0 and self.attempts >= self.max_attempts

    def next_delay(self) -> float | None:
        if self.exhausted:
            return None
        try:
            delay = min(self.base_delay * (self.factor**self.attempts), self.max_delay)
        except OverflowError:
            delay = self.max_delay
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0
