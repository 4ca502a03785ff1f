"""ABOUTME: Start/stop state machine that owns the shared time origin.
ABOUTME: Publishes the immutable PhaseState read by the scheduler and the renderer."""

import logging
import math
import threading
from enum import Enum
from typing import Optional, Sequence

from music.clock import Clock
from music.errors import ClockUnavailableError
from music.phase import PhaseState

logger = logging.getLogger(__name__)


class TransportState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class Transport:
    """
    Idle/Running transport.

    start() stamps a fresh origin from the clock on every play or resume;
    the old origin is never reused, so voices restart from their offsets
    rather than jumping ahead by the length of the pause.
    """

    def __init__(self, clock: Clock, offsets: Sequence[Optional[float]], lock: Optional[threading.RLock] = None):
        self.clock = clock
        self._lock = lock or threading.RLock()
        self._state = PhaseState(origin=None, playing=False, offsets=tuple(offsets))
        self._last_origin: Optional[float] = None

    def snapshot(self) -> PhaseState:
        """Current published state. Safe to call from any thread without the lock."""
        return self._state

    @property
    def state(self) -> TransportState:
        return TransportState.RUNNING if self._state.playing else TransportState.IDLE

    def is_playing(self) -> bool:
        return self._state.playing

    @property
    def origin(self) -> Optional[float]:
        return self._state.origin

    def ensure_clock(self):
        """Resume the clock if it is suspended; raise ClockUnavailableError if it stays down."""
        if self.clock.is_available():
            return
        logger.info("Audio clock is suspended, attempting to resume")
        self.clock.resume()
        if not self.clock.is_available():
            raise ClockUnavailableError("Audio clock did not resume")
        logger.info("Audio clock resumed")

    def start(self) -> bool:
        """Idle → Running with a new origin. Returns False if already running."""
        with self._lock:
            if self._state.playing:
                logger.debug("Already playing, ignoring start request")
                return False
            self.ensure_clock()

            origin = self.clock.now()
            if self._last_origin is not None and origin <= self._last_origin:
                origin = math.nextafter(self._last_origin, math.inf)
            self._last_origin = origin

            self._state = PhaseState(origin=origin, playing=True, offsets=self._state.offsets)
            logger.info("Transport started at audio time %.3f", origin)
            return True

    def stop(self) -> bool:
        """Running → Idle. Offsets are kept. Returns False if already idle."""
        with self._lock:
            if not self._state.playing:
                return False
            self._state = self._state._replace(playing=False)
            logger.info("Transport stopped")
            return True

    def publish_offsets(self, offsets: Sequence[Optional[float]]):
        """Swap in a whole new set of offsets in one step."""
        with self._lock:
            self._state = self._state._replace(offsets=tuple(offsets))
