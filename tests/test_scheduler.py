"""
Tests for the poll loop: failure counting, termination and cycle timing.
"""

from unittest.mock import MagicMock

import pytest

from errors import Failure, FetchError, RetriesExhausted, WriteError
from scheduler import PollScheduler, State


class FakeClock:
    """Monotonic clock advanced by the fake sleep and by cycle work."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _scripted_fetch(outcomes, reading):
    """Fetch that fails with a network error for every False in outcomes."""
    script = iter(outcomes)

    def fetch():
        if next(script):
            return reading
        raise FetchError(Failure.NETWORK, "unreachable")

    return fetch


class TestRunCycle:
    def test_success_writes_fetched_reading(self, reading):
        write = MagicMock()
        scheduler = PollScheduler(lambda: reading, write, 60, 3)
        assert scheduler.run_cycle() is True
        write.assert_called_once_with(reading)
        assert scheduler.failures == 0

    def test_fetch_failure_skips_write(self):
        write = MagicMock()
        fetch = MagicMock(side_effect=FetchError(Failure.RATE_LIMITED))
        scheduler = PollScheduler(fetch, write, 60, 3)
        assert scheduler.run_cycle() is False
        write.assert_not_called()
        assert scheduler.failures == 1

    def test_write_failure_after_fetch_counts_once(self, reading):
        write = MagicMock(side_effect=WriteError(Failure.DATABASE_NOT_FOUND))
        scheduler = PollScheduler(lambda: reading, write, 60, 3)
        assert scheduler.run_cycle() is False
        assert scheduler.failures == 1

    def test_counter_follows_trailing_failures(self, reading):
        outcomes = [False, False, True, False, False, True, False]
        scheduler = PollScheduler(_scripted_fetch(outcomes, reading), MagicMock(), 60, 10)
        counts = []
        for _ in outcomes:
            scheduler.run_cycle()
            counts.append(scheduler.failures)
        assert counts == [1, 2, 0, 1, 2, 0, 1]

    def test_failure_is_logged_with_classification(self, caplog):
        fetch = MagicMock(side_effect=FetchError(Failure.AUTH_REJECTED, "OpenWeather answered 401"))
        scheduler = PollScheduler(fetch, MagicMock(), 60, 3)
        scheduler.run_cycle()
        assert "auth rejected" in caplog.text
        assert "OpenWeather answered 401" in caplog.text

    def test_defects_propagate(self, reading):
        write = MagicMock(side_effect=KeyError("bug"))
        scheduler = PollScheduler(lambda: reading, write, 60, 3)
        with pytest.raises(KeyError):
            scheduler.run_cycle()
        assert scheduler.failures == 0

    def test_max_retry_must_be_positive(self, reading):
        with pytest.raises(ValueError):
            PollScheduler(lambda: reading, MagicMock(), 60, 0)


class TestRun:
    def test_fail_fail_succeed_then_three_failures_terminates(self, reading):
        outcomes = [False, False, True, False, False, False, True]
        fetch = MagicMock(side_effect=_scripted_fetch(outcomes, reading))
        clock = FakeClock()
        scheduler = PollScheduler(fetch, MagicMock(), 60, 3, clock=clock, sleep=clock.sleep)
        assert scheduler.state == State.IDLE

        with pytest.raises(RetriesExhausted) as exc_info:
            scheduler.run()

        assert fetch.call_count == 6
        assert exc_info.value.failures == 3
        assert scheduler.failures == 3
        assert scheduler.state == State.TERMINATED
        # no wait after the terminal cycle
        assert len(clock.sleeps) == 5

    def test_write_failures_exhaust_the_same_budget(self, reading):
        write = MagicMock(side_effect=WriteError(Failure.SERVER_ERROR))
        clock = FakeClock()
        scheduler = PollScheduler(lambda: reading, write, 60, 2, clock=clock, sleep=clock.sleep)
        with pytest.raises(RetriesExhausted):
            scheduler.run()
        assert write.call_count == 2

    def test_max_retry_one_stops_on_first_failure(self):
        fetch = MagicMock(side_effect=FetchError(Failure.NETWORK))
        clock = FakeClock()
        scheduler = PollScheduler(fetch, MagicMock(), 60, 1, clock=clock, sleep=clock.sleep)
        with pytest.raises(RetriesExhausted):
            scheduler.run()
        assert fetch.call_count == 1
        assert clock.sleeps == []

    def test_interval_measured_from_cycle_start(self, reading):
        clock = FakeClock()
        durations = iter([10, 75, 0])

        def slow_write(_):
            clock.now += next(durations)

        fetch = MagicMock(side_effect=_scripted_fetch([True, True, True, False], reading))
        scheduler = PollScheduler(fetch, slow_write, 60, 1, clock=clock, sleep=clock.sleep)
        with pytest.raises(RetriesExhausted):
            scheduler.run()
        # 60 - 10, then an overrun starts immediately, then a full interval
        assert clock.sleeps == [50, 0.0, 60]

    def test_running_state_while_polling(self, reading):
        states = []
        clock = FakeClock()
        scheduler = None

        def fetch():
            states.append(scheduler.state)
            raise FetchError(Failure.NETWORK)

        scheduler = PollScheduler(fetch, MagicMock(), 60, 2, clock=clock, sleep=clock.sleep)
        with pytest.raises(RetriesExhausted):
            scheduler.run()
        assert states == [State.RUNNING, State.RUNNING]
