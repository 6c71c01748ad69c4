import pytest

from osm_pipeline.core.exceptions import SourceRequestRejected, SourceUnavailable
from osm_pipeline.core.retry import backoff_delay, with_exponential_backoff


@pytest.mark.asyncio
async def test_backoff_retries_until_success() -> None:
    state = {"count": 0}
    delays: list[float] = []

    async def flaky_operation() -> str:
        state["count"] += 1
        if state["count"] < 3:
            raise SourceUnavailable("temporary failure")
        return "ok"

    async def record_sleep(delay: float) -> None:
        delays.append(delay)

    result = await with_exponential_backoff(
        flaky_operation, retries=3, base_delay_seconds=1.0, sleep_fn=record_sleep
    )
    assert result == "ok"
    assert state["count"] == 3
    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_backoff_reraises_last_error_unchanged() -> None:
    retried: list[int] = []

    async def failing_operation() -> str:
        raise SourceUnavailable("hard failure")

    async def no_sleep(_: float) -> None:
        return None

    with pytest.raises(SourceUnavailable, match="hard failure"):
        await with_exponential_backoff(
            failing_operation,
            retries=3,
            base_delay_seconds=0.0,
            on_retry=lambda attempt, delay, exc: retried.append(attempt),
            sleep_fn=no_sleep,
        )
    assert retried == [1, 2]


@pytest.mark.asyncio
async def test_backoff_stops_when_should_retry_declines() -> None:
    state = {"count": 0}

    async def rejected_operation() -> str:
        state["count"] += 1
        raise SourceRequestRejected("bad query", status_code=400)

    with pytest.raises(SourceRequestRejected):
        await with_exponential_backoff(
            rejected_operation,
            retries=5,
            base_delay_seconds=0.0,
            should_retry=lambda exc: not isinstance(exc, SourceRequestRejected),
        )
    assert state["count"] == 1


@pytest.mark.asyncio
async def test_backoff_rejects_non_positive_retries() -> None:
    async def operation() -> str:
        return "never"

    with pytest.raises(ValueError):
        await with_exponential_backoff(operation, retries=0)


def test_backoff_delay_doubles_and_caps() -> None:
    delays = [backoff_delay(attempt, 1.0, 5.0) for attempt in range(1, 6)]

    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps() -> None:
    slept: list[float] = []

    async def failing_operation() -> str:
        raise SourceUnavailable("down")

    async def record_sleep(delay: float) -> None:
        slept.append(delay)

    with pytest.raises(SourceUnavailable):
        await with_exponential_backoff(failing_operation, retries=1, sleep_fn=record_sleep)
    assert slept == []
