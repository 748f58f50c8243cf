"""Run fetch-then-write cycles on a fixed interval

Each cycle starts `interval` seconds after the start of the previous one. A
cycle in which either the fetch or the write fails counts as one failure; a
fully successful cycle resets the count. Reaching `max_retry` consecutive
failures stops the loop with RetriesExhausted.
"""
import time
import logging
from enum import Enum
from typing import Callable
from errors import CycleFailure, RetriesExhausted
from openweather import Reading


class State(Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


class PollScheduler:
    def __init__(
        self,
        fetch: Callable[[], Reading],
        write: Callable[[Reading], None],
        interval: float,
        max_retry: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retry < 1:
            raise ValueError("max_retry must be at least 1")
        self.fetch = fetch
        self.write = write
        self.interval = interval
        self.max_retry = max_retry
        self.state = State.IDLE
        self._clock = clock
        self._sleep = sleep
        self._failures = 0

    @property
    def failures(self) -> int:
        return self._failures

    def run_cycle(self) -> bool:
        """Fetch one reading and write it

        Returns:
            bool: True if both fetch and write succeeded
        """
        try:
            reading = self.fetch()
            self.write(reading)
        except CycleFailure as err:
            self._failures += 1
            logging.error(
                "Cycle failed during %s (%s): %s [%s/%s]",
                err.leg,
                err.kind.value,
                err,
                self._failures,
                self.max_retry,
            )
            return False

        if self._failures:
            logging.info("Recovered after %s failed cycle(s)", self._failures)
        self._failures = 0
        return True

    def run(self) -> None:
        """Poll until the failure budget is used up

        Raises:
            RetriesExhausted: after `max_retry` consecutive failed cycles
        """
        self.state = State.RUNNING
        while True:
            started = self._clock()
            self.run_cycle()

            if self._failures >= self.max_retry:
                self.state = State.TERMINATED
                raise RetriesExhausted(self._failures)

            # an overrunning cycle starts its successor right away
            self._sleep(max(0.0, started + self.interval - self._clock()))
