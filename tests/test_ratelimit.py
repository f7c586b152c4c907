"""Tests for per-subscriber rate limiting."""

import pytest

from copier.errors import RateLimitExceeded, ValidationError
from copier.ratelimit import InMemoryRateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return InMemoryRateLimiter(limit=10, window_seconds=60, clock=clock)


class TestInMemoryRateLimiter:

    def test_ten_requests_admitted_eleventh_rejected(self, limiter):
        for i in range(10):
            decision = limiter.check("alice")
            assert decision.admitted, f"request {i + 1} rejected"
            assert decision.remaining == 9 - i

        decision = limiter.check("alice")
        assert not decision.admitted
        assert decision.retry_after == pytest.approx(60)

    def test_window_expiry_readmits(self, limiter, clock):
        for _ in range(10):
            limiter.check("alice")
        assert not limiter.check("alice").admitted

        clock.advance(60.001)
        assert limiter.check("alice").admitted

    def test_window_boundary_is_inclusive(self, limiter, clock):
        """Reset happens only once now is strictly past the window end."""
        for _ in range(10):
            limiter.check("alice")

        clock.advance(60)
        assert not limiter.check("alice").admitted

    def test_rejections_do_not_extend_window(self, limiter, clock):
        for _ in range(10):
            limiter.check("alice")
        clock.advance(30)
        assert not limiter.check("alice").admitted
        clock.advance(31)
        assert limiter.check("alice").admitted

    def test_subscribers_are_independent(self, limiter):
        for _ in range(10):
            limiter.check("alice")
        assert not limiter.check("alice").admitted
        assert limiter.check("bob").admitted

    @pytest.mark.parametrize("subscriber_id", [None, "", "   "])
    def test_missing_subscriber_is_validation_error(self, limiter, subscriber_id):
        with pytest.raises(ValidationError):
            limiter.check(subscriber_id)

    def test_enforce_raises_when_exhausted(self, limiter):
        for _ in range(10):
            limiter.enforce("alice")
        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.enforce("alice")
        assert exc_info.value.subscriber_id == "alice"

    def test_reset_clears_windows(self, limiter):
        for _ in range(10):
            limiter.check("alice")
        limiter.reset()
        assert limiter.check("alice").admitted

    def test_invalid_configuration(self):
        with pytest.raises(ValueError, match="limit must be positive"):
            InMemoryRateLimiter(limit=0)
        with pytest.raises(ValueError, match="window_seconds must be positive"):
            InMemoryRateLimiter(window_seconds=0)

    def test_expired_windows_are_dropped(self, limiter, clock):
        """Windows for ids that stopped calling do not accumulate."""
        for n in range(100):
            limiter.check(f"anon-{n}")
        assert limiter.tracked() == 100

        clock.advance(61)
        limiter.check("alice")

        assert limiter.tracked() == 1

    def test_sweep_keeps_live_windows(self, limiter, clock):
        for _ in range(10):
            limiter.check("alice")
        clock.advance(30)
        limiter.check("bob")

        clock.advance(31)
        limiter.check("carol")

        assert limiter.tracked() == 2
        # count carries over from the live window
        assert limiter.check("bob").remaining == 8
