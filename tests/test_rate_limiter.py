from retouch.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter


def test_memory_rate_limiter_allows_then_blocks():
    rl = InMemoryRateLimiter()
    key = "k1"
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is False


def test_memory_rate_limiter_keys_are_independent():
    rl = InMemoryRateLimiter()
    assert rl.allow("a", max_requests=1, window_seconds=60) is True
    assert rl.allow("b", max_requests=1, window_seconds=60) is True
    assert rl.allow("a", max_requests=1, window_seconds=60) is False


def test_memory_rate_limiter_window_expires():
    rl = InMemoryRateLimiter()
    assert rl.allow("k", max_requests=1, window_seconds=0) is True
    assert rl.allow("k", max_requests=1, window_seconds=0) is True
