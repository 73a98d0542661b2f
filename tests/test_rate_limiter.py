from radar.auth.rate_limit import MemoryRateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_blocks():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=3, clock=clock)

    assert [limiter.allow("k") for _ in range(3)] == [True, True, True]
    assert limiter.allow("k") is False
    assert limiter.remaining("k") == 0


def test_window_resets_after_expiry():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=1, clock=clock)

    assert limiter.allow("k")
    assert not limiter.allow("k")
    clock.now += 61
    assert limiter.allow("k")


def test_retry_after_rounds_up():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=1, clock=clock)
    assert limiter.retry_after("k") == 0

    limiter.allow("k")
    clock.now += 10.5
    assert limiter.retry_after("k") == 50


def test_limit_override_per_key():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=1, clock=clock)

    assert limiter.allow("a", limit_override=2)
    assert limiter.allow("a", limit_override=2)
    assert not limiter.allow("a", limit_override=2)
    assert limiter.remaining("b", limit_override=5) == 5


def test_keys_are_independent():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=1, clock=clock)
    assert limiter.allow("oracle:u1")
    assert limiter.allow("oracle:u2")
    assert not limiter.allow("oracle:u1")


def test_sweep_removes_expired_windows():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=5, sweep_interval=300, clock=clock)
    limiter.allow("a")
    limiter.allow("b")
    assert len(limiter) == 2

    clock.now += 61
    assert limiter.sweep() == 2
    assert len(limiter) == 0


def test_periodic_sweep_runs_on_allow():
    clock = FakeClock()
    limiter = MemoryRateLimiter(window_seconds=60, max_requests=5, sweep_interval=300, clock=clock)
    limiter.allow("old")
    clock.now += 301
    limiter.allow("new")
    assert len(limiter) == 1
