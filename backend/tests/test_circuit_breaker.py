import pytest

from app.schemas.safety import CircuitStatus
from app.services.safety import CircuitBreaker


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def ticker() -> Ticker:
    return Ticker()


@pytest.fixture()
def breaker(ticker) -> CircuitBreaker:
    return CircuitBreaker("threats", failure_threshold=3, cooldown_seconds=30, clock=ticker)


async def trip(breaker: CircuitBreaker, times: int = 3) -> None:
    for _ in range(times):
        assert await breaker.allow_request()
        await breaker.record_failure()


@pytest.mark.asyncio
async def test_starts_closed(breaker):
    assert breaker.state == CircuitStatus.CLOSED
    assert await breaker.allow_request()


@pytest.mark.asyncio
async def test_opens_after_consecutive_failures(breaker):
    await trip(breaker, 2)
    assert breaker.state == CircuitStatus.CLOSED

    await trip(breaker, 1)
    assert breaker.state == CircuitStatus.OPEN
    assert not await breaker.allow_request()


@pytest.mark.asyncio
async def test_success_resets_failure_count(breaker):
    await trip(breaker, 2)
    await breaker.record_success()
    await trip(breaker, 2)

    assert breaker.state == CircuitStatus.CLOSED
    assert breaker.failure_count == 2


@pytest.mark.asyncio
async def test_half_open_after_cooldown(breaker, ticker):
    await trip(breaker)

    ticker.now = 29.9
    assert not await breaker.allow_request()

    ticker.now = 30.0
    assert await breaker.allow_request()
    assert breaker.state == CircuitStatus.HALF_OPEN


@pytest.mark.asyncio
async def test_half_open_allows_single_trial(breaker, ticker):
    await trip(breaker)
    ticker.now = 31

    assert await breaker.allow_request()
    assert not await breaker.allow_request()


@pytest.mark.asyncio
async def test_trial_success_closes(breaker, ticker):
    await trip(breaker)
    ticker.now = 31
    await breaker.allow_request()

    await breaker.record_success()

    assert breaker.state == CircuitStatus.CLOSED
    assert breaker.failure_count == 0
    assert await breaker.allow_request()


@pytest.mark.asyncio
async def test_trial_failure_reopens_with_fresh_cooldown(breaker, ticker):
    await trip(breaker)
    ticker.now = 31
    await breaker.allow_request()

    await breaker.record_failure()

    assert breaker.state == CircuitStatus.OPEN
    ticker.now = 60
    assert not await breaker.allow_request()
    ticker.now = 61
    assert await breaker.allow_request()


@pytest.mark.asyncio
async def test_released_trial_frees_slot(breaker, ticker):
    await trip(breaker)
    ticker.now = 31
    await breaker.allow_request()

    breaker.release_trial()

    assert await breaker.allow_request()


@pytest.mark.asyncio
async def test_snapshot(breaker):
    await trip(breaker)
    state = breaker.snapshot()

    assert state.name == "threats"
    assert state.state == CircuitStatus.OPEN
    assert state.failure_count == 3
    assert state.opened_at is not None
    assert state.last_failure_at is not None
