import asyncio

import pytest

from wabridge.core.entities import ConnectionState
from wabridge.core.errors import ValidationError
from wabridge.pairing import PairingOutcome, clean_phone_number, wait_for_pairing_outcome


def _run(coro):
    return asyncio.run(coro)


async def _no_sleep(_interval: float) -> None:
    return None


def test_clean_phone_number_strips_formatting() -> None:
    assert clean_phone_number("+62 (812) 3456-7890") == "6281234567890"
    assert clean_phone_number(6281234567890) == "6281234567890"


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        (None, "Phone number is required"),
        ("", "Phone number is required"),
        (["6281234567890"], "Phone number is required"),
        ("12345", "Invalid phone number format"),
        ("+1 (555) 12", "Invalid phone number format"),
    ],
)
def test_clean_phone_number_rejects(raw, message) -> None:
    with pytest.raises(ValidationError) as exc_info:
        clean_phone_number(raw)
    assert exc_info.value.message == message
    assert exc_info.value.status_code == 400


def test_poll_returns_code_once_it_appears() -> None:
    async def _case() -> None:
        states = iter(
            [ConnectionState(connecting=True), ConnectionState(connecting=True), ConnectionState(pairing_code="X1Y2-Z3W4")]
        )
        result = await wait_for_pairing_outcome(lambda: next(states), attempts=5, sleep=_no_sleep)
        assert result.outcome is PairingOutcome.PAIRED
        assert result.pairing_code == "X1Y2-Z3W4"

    _run(_case())


def test_poll_prefers_code_over_error() -> None:
    async def _case() -> None:
        state = ConnectionState(pairing_code="X1Y2-Z3W4", error="late error")
        result = await wait_for_pairing_outcome(lambda: state, attempts=1, sleep=_no_sleep)
        assert result.outcome is PairingOutcome.PAIRED

    _run(_case())


def test_poll_reports_error() -> None:
    async def _case() -> None:
        result = await wait_for_pairing_outcome(
            lambda: ConnectionState(error="rate-overlimit"), attempts=3, sleep=_no_sleep
        )
        assert result.outcome is PairingOutcome.ERRORED
        assert result.error == "rate-overlimit"

    _run(_case())


def test_poll_reports_existing_connection() -> None:
    async def _case() -> None:
        result = await wait_for_pairing_outcome(lambda: ConnectionState(connected=True), sleep=_no_sleep)
        assert result.outcome is PairingOutcome.CONNECTED

    _run(_case())


def test_poll_times_out_after_attempts() -> None:
    async def _case() -> None:
        sleeps: list[float] = []

        async def _record(interval: float) -> None:
            sleeps.append(interval)

        result = await wait_for_pairing_outcome(
            lambda: ConnectionState(connecting=True), attempts=4, interval=0.25, sleep=_record
        )
        assert result.outcome is PairingOutcome.TIMED_OUT
        assert sleeps == [0.25] * 4

    _run(_case())


def test_poll_checks_once_more_after_last_attempt() -> None:
    async def _case() -> None:
        states = iter([ConnectionState(), ConnectionState(pairing_code="LATE-CODE")])
        result = await wait_for_pairing_outcome(lambda: next(states), attempts=1, sleep=_no_sleep)
        assert result.outcome is PairingOutcome.PAIRED
        assert result.pairing_code == "LATE-CODE"

    _run(_case())
