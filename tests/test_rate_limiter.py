"""Tests for the sliding-window rate limiter."""

import time

from teamchat.core.rate_limiter import SlidingWindowRateLimiter


def test_blocks_after_limit_and_reports_reset_time():
    limiter = SlidingWindowRateLimiter(max_attempts=3, window_seconds=60)
    started = time.time()

    results = [limiter.hit("1.2.3.4") for _ in range(3)]
    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]

    blocked = limiter.hit("1.2.3.4")
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert started + 59 <= blocked.reset_at <= time.time() + 61


def test_window_slides_past_oldest_attempt():
    limiter = SlidingWindowRateLimiter(max_attempts=2, window_seconds=1)
    assert limiter.hit("k").allowed is True
    assert limiter.hit("k").allowed is True
    assert limiter.hit("k").allowed is False

    time.sleep(1.2)
    assert limiter.hit("k").allowed is True


def test_rejected_attempts_do_not_extend_the_block():
    limiter = SlidingWindowRateLimiter(max_attempts=1, window_seconds=1)
    first = limiter.hit("k")
    for _ in range(5):
        blocked = limiter.hit("k")
        assert blocked.allowed is False
        assert blocked.reset_at == first.reset_at

    time.sleep(1.2)
    assert limiter.hit("k").allowed is True


def test_keys_are_independent_and_resettable():
    limiter = SlidingWindowRateLimiter(max_attempts=1, window_seconds=60)
    assert limiter.hit("a").allowed is True
    assert limiter.hit("b").allowed is True
    assert limiter.hit("a").allowed is False

    limiter.reset("a")
    assert limiter.hit("a").allowed is True
    assert limiter.hit("b").allowed is False

    limiter.reset()
    assert limiter.hit("b").allowed is True


def test_limiters_do_not_share_storage():
    first = SlidingWindowRateLimiter(max_attempts=1, window_seconds=60)
    second = SlidingWindowRateLimiter(max_attempts=1, window_seconds=60)
    assert first.hit("k").allowed is True
    assert second.hit("k").allowed is True
    assert first.hit("k").allowed is False
