"""Tests for retry delay computation and the global throttle."""

import pytest

from dispatch.delivery.backoff import JITTER_RATIO, BackoffPolicy, Throttle


class TestBackoffPolicy:
    def test_delay_doubles_per_round_without_jitter(self):
        policy = BackoffPolicy(base_delay=0.5, max_delay=60, rng=lambda: 0.0)
        assert [policy.delay(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        policy = BackoffPolicy(base_delay=1, max_delay=5, rng=lambda: 0.0)
        assert policy.delay(10) == 5

    def test_jitter_only_shortens_delay(self):
        policy = BackoffPolicy(base_delay=1, max_delay=60, rng=lambda: 1.0)
        assert policy.delay(1) == pytest.approx(1 - JITTER_RATIO)

    @pytest.mark.parametrize("low,high", [(0.0, 0.999), (0.999, 0.0), (0.3, 0.7)])
    def test_successive_delays_strictly_increase_under_any_jitter(self, low, high):
        values = iter([low, high] * 4)
        policy = BackoffPolicy(base_delay=0.1, max_delay=60, rng=lambda: next(values))
        delays = [policy.delay(n) for n in range(1, 6)]
        assert all(a < b for a, b in zip(delays, delays[1:]))


class TestThrottle:
    def test_starts_without_penalty(self):
        assert Throttle(0.5, 10).penalty == 0

    def test_signal_widens_from_base(self):
        throttle = Throttle(0.5, 10)
        assert throttle.signal() == 0.5
        assert throttle.signal() == 1.0
        assert throttle.signal() == 2.0

    def test_signal_is_capped(self):
        throttle = Throttle(4, 10)
        for _ in range(5):
            throttle.signal()
        assert throttle.penalty == 10

    def test_signal_honours_retry_after(self):
        throttle = Throttle(0.5, 60)
        assert throttle.signal(retry_after=7) == 7

    def test_relax_halves_and_clears(self):
        throttle = Throttle(1, 10)
        throttle.signal()
        throttle.signal()
        throttle.relax()
        assert throttle.penalty == 1
        throttle.relax()
        assert throttle.penalty == 0.5
        throttle.relax()
        assert throttle.penalty == 0.25
        throttle.relax()
        assert throttle.penalty == 0
