"""Phone-number pairing: input validation and the code poll loop."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from wabridge.core.entities import ConnectionState
from wabridge.core.errors import ValidationError

MIN_PHONE_DIGITS = 10
PAIRING_INSTRUCTIONS = (
    "Enter this code in WhatsApp: Settings → Linked Devices → Link a Device → Link with phone number"
)

_NON_DIGIT_RE = re.compile(r"\D")


def clean_phone_number(raw: object) -> str:
    if not raw or not isinstance(raw, (str, int)):
        raise ValidationError("Phone number is required")
    digits = _NON_DIGIT_RE.sub("", str(raw))
    if len(digits) < MIN_PHONE_DIGITS:
        raise ValidationError("Invalid phone number format")
    return digits


class PairingOutcome(str, Enum):
    PAIRED = "paired"
    CONNECTED = "connected"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class PairingResult:
    outcome: PairingOutcome
    pairing_code: str | None = None
    error: str | None = None


async def wait_for_pairing_outcome(
    read_state: Callable[[], ConnectionState],
    *,
    attempts: int = 30,
    interval: float = 0.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PairingResult:
    """Poll connection state until a code, an error or a live connection shows up."""
    for _ in range(max(0, attempts)):
        state = read_state()
        if state.pairing_code:
            return PairingResult(PairingOutcome.PAIRED, pairing_code=state.pairing_code)
        if state.error:
            return PairingResult(PairingOutcome.ERRORED, error=state.error)
        if state.connected:
            return PairingResult(PairingOutcome.CONNECTED)
        await sleep(interval)

    state = read_state()
    if state.pairing_code:
        return PairingResult(PairingOutcome.PAIRED, pairing_code=state.pairing_code)
    return PairingResult(PairingOutcome.TIMED_OUT)
