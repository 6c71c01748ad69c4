import asyncio

import pytest

from osm_pipeline.providers.rate_gate import RateGate


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_first_request_starts_immediately() -> None:
    clock = FakeClock()
    gate = RateGate(0.5, clock=clock, sleep_fn=clock.sleep)

    assert await gate.wait() == 0.0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_back_to_back_requests_are_spaced() -> None:
    clock = FakeClock()
    gate = RateGate(0.5, clock=clock, sleep_fn=clock.sleep)

    await gate.wait()
    clock.now += 0.2
    waited = await gate.wait()

    assert waited == pytest.approx(0.3)
    assert clock.sleeps == [pytest.approx(0.3)]


@pytest.mark.asyncio
async def test_no_wait_after_interval_elapsed() -> None:
    clock = FakeClock()
    gate = RateGate(0.5, clock=clock, sleep_fn=clock.sleep)

    await gate.wait()
    clock.now += 2.0

    assert await gate.wait() == 0.0


@pytest.mark.asyncio
async def test_concurrent_waiters_are_serialized() -> None:
    clock = FakeClock()
    gate = RateGate(0.5, clock=clock, sleep_fn=clock.sleep)

    await asyncio.gather(*[gate.wait() for _ in range(4)])

    assert clock.sleeps == [pytest.approx(0.5)] * 3
    assert clock.now == pytest.approx(101.5)


@pytest.mark.asyncio
async def test_zero_interval_gate_never_sleeps() -> None:
    clock = FakeClock()
    gate = RateGate(0, clock=clock, sleep_fn=clock.sleep)

    for _ in range(5):
        await gate.wait()

    assert clock.sleeps == []


def test_rate_gate_rejects_negative_interval() -> None:
    with pytest.raises(ValueError):
        RateGate(-0.1)
