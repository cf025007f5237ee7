import pytest

from app.proxy.rate_limit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_sixty_first_request_is_blocked(clock):
    limiter = FixedWindowRateLimiter(clock=clock)
    for i in range(60):
        decision = await limiter.hit("1.2.3.4", "groq")
        assert decision.allowed
        assert decision.remaining == 59 - i

    blocked = await limiter.hit("1.2.3.4", "groq")
    assert not blocked.allowed
    assert blocked.remaining == 0
    assert blocked.headers()["Retry-After"] == "60"


@pytest.mark.asyncio
async def test_blocked_requests_do_not_extend_window(clock):
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=10, clock=clock)
    assert (await limiter.hit("c", "p")).allowed
    clock.advance(4)
    assert not (await limiter.hit("c", "p")).allowed
    clock.advance(6)
    assert (await limiter.hit("c", "p")).allowed


@pytest.mark.asyncio
async def test_providers_and_clients_are_independent(clock):
    limiter = FixedWindowRateLimiter(max_requests=2, clock=clock)
    for _ in range(2):
        await limiter.hit("c1", "groq")

    assert not (await limiter.hit("c1", "groq")).allowed
    assert (await limiter.hit("c1", "claude")).allowed
    assert (await limiter.hit("c2", "groq")).allowed


@pytest.mark.asyncio
async def test_reset_after_counts_down(clock):
    limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=60, clock=clock)
    await limiter.hit("c", "p")
    clock.advance(20.5)
    decision = await limiter.hit("c", "p")
    assert decision.reset_after == pytest.approx(39.5)
    assert decision.headers() == {
        "RateLimit-Limit": "5",
        "RateLimit-Remaining": "3",
        "RateLimit-Reset": "40",
    }


@pytest.mark.asyncio
async def test_idle_keys_are_swept(clock):
    limiter = FixedWindowRateLimiter(
        max_requests=5, window_seconds=10, idle_windows=2, clock=clock
    )
    await limiter.hit("old", "p")
    clock.advance(15)
    await limiter.hit("recent", "p")
    assert limiter.stats()["activeKeys"] == 2

    clock.advance(20)
    await limiter.hit("new", "p")
    # "old" is 35s idle (>= 30s horizon), "recent" only 20s
    assert limiter.stats()["activeKeys"] == 2
    assert ("old", "p") not in limiter._states


@pytest.mark.parametrize(
    "kwargs", [{"max_requests": 0}, {"window_seconds": 0}, {"window_seconds": -1}]
)
def test_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(**kwargs)
