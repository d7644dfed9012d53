"""
Tests for watch state and the retry backoff policy.
"""

import pytest

from kvconfig.core.domain.events import ChangeEvent
from kvconfig.core.domain.watch import RetryBackoff, Watch, WatchState


class TestRetryBackoff:
    """Test cases for bounded exponential backoff."""

    def test_doubles_until_cap(self) -> None:
        backoff = RetryBackoff(500, 3000)

        delays = [backoff.next_delay() for _ in range(6)]

        assert delays == [500, 1000, 2000, 3000, 3000, 3000]
        assert backoff.failures == 6

    def test_delays_never_decrease_while_failing(self) -> None:
        backoff = RetryBackoff(7, 1000)

        delays = [backoff.next_delay() for _ in range(20)]

        assert delays == sorted(delays)
        assert all(7 <= delay <= 1000 for delay in delays)

    def test_reset(self) -> None:
        backoff = RetryBackoff(100, 1000)
        backoff.next_delay()
        backoff.next_delay()

        backoff.reset()

        assert backoff.current_ms == 100
        assert backoff.failures == 0
        assert backoff.next_delay() == 100

    def test_cap_below_start_is_raised_to_start(self) -> None:
        backoff = RetryBackoff(500, 100)

        assert backoff.next_delay() == 500
        assert backoff.next_delay() == 500

    def test_negative_start_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryBackoff(-1, 100)

    def test_defaults(self) -> None:
        backoff = RetryBackoff()

        assert backoff.start_ms == 500
        assert backoff.max_ms == 900000


class TestWatch:

    def test_initial_state(self) -> None:
        watch = Watch(key="db.url", path="ns/db/url", backoff=RetryBackoff())

        assert watch.state == WatchState.IDLE
        assert watch.resume_token == 0
        assert watch.previously_deleted is False
        assert watch.notifications == 0


class TestChangeEvent:

    def test_deleted(self) -> None:
        assert ChangeEvent("ns/a", None, 1).deleted is True
        assert ChangeEvent("ns/a", "", 1).deleted is False
