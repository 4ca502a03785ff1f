"""ABOUTME: Clock sources the scheduler measures against.
ABOUTME: The synth's audio clock is the real one; MonotonicClock drives silent mode."""

import time

from music.errors import ClockUnavailableError


class Clock:
    """Interface for a monotonic clock in seconds that can be suspended."""

    def now(self) -> float:
        raise NotImplementedError

    def is_available(self) -> bool:
        return True

    def resume(self) -> None:
        """Bring a suspended clock back, raising ClockUnavailableError on failure."""
        if not self.is_available():
            raise ClockUnavailableError(f"{type(self).__name__} cannot be resumed")


class MonotonicClock(Clock):
    """Wall-clock stand-in for the audio clock, zeroed at construction."""

    def __init__(self):
        self._zero = time.monotonic()

    def now(self) -> float:
        return time.monotonic() - self._zero
